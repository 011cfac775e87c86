"""Assembly of a configured bot for the train, cycle and run commands."""

from __future__ import annotations

from dataclasses import dataclass

from rltrader.data.sources import CandleSource, resolve_candle_source
from rltrader.live.controller import LiveCycleController
from rltrader.notify import LoggingNotifier, Notifier
from rltrader.paper.exchange import OrderExecution, PaperExchange
from rltrader.storage import JsonModelStore, JsonPositionStore, ModelStore, PositionStore
from rltrader.strategies.pool import StrategyPool
from rltrader.strategies.rl_band import RLBandStrategy
from rltrader.training.backtest import BacktestSimulator
from rltrader.training.multi_backtest import MultiSymbolTrainer
from rltrader.types import BotConfig, WatchlistTrainingResult


@dataclass
class BotComponents:
    """Collaborators of a configured bot.

    :param config: Configuration the components were built from.
    :param pool: Strategies serving the watchlist.
    :param candle_source: Market data source.
    :param execution: Exchange orders are routed to.
    :param model_store: Store for Q-tables and performance.
    :param position_store: Store for managed positions.
    :param notifier: Notification sink.
    """

    config: BotConfig
    pool: StrategyPool
    candle_source: CandleSource
    execution: OrderExecution
    model_store: ModelStore
    position_store: PositionStore
    notifier: Notifier


def build_components(
    config: BotConfig,
    candle_source: CandleSource | None = None,
    notifier: Notifier | None = None,
) -> BotComponents:
    """Build the collaborators described by ``config``.

    Orders go to a :class:`PaperExchange` priced from the candle source,
    holding whatever positions the position store still has open.

    :param config: Validated bot configuration.
    :param candle_source: Override for the configured data source.
    :param notifier: Override for the default logging notifier.
    """
    source = candle_source or resolve_candle_source(config)
    position_store = JsonPositionStore(config.storage_root)

    exchange = PaperExchange(
        source,
        balance=config.initial_balance,
        timeframe=config.strategy.timeframe,
    )
    exchange.restore_holdings(position_store.all_positions())

    return BotComponents(
        config=config,
        pool=StrategyPool(
            lambda: RLBandStrategy.from_settings(config.strategy),
            scope=config.engine_scope,
        ),
        candle_source=source,
        execution=exchange,
        model_store=JsonModelStore(config.storage_root),
        position_store=position_store,
        notifier=notifier or LoggingNotifier(),
    )


def build_controller(components: BotComponents) -> LiveCycleController:
    return LiveCycleController(
        pool=components.pool,
        watchlist=list(components.config.watchlist),
        candle_source=components.candle_source,
        execution=components.execution,
        model_store=components.model_store,
        position_store=components.position_store,
        notifier=components.notifier,
        settings=components.config.live,
    )


def train_watchlist(
    components: BotComponents,
    days: int | None = None,
    symbols: list[str] | None = None,
) -> WatchlistTrainingResult:
    """Load stored models, then train on the history of each symbol.

    :param components: Bot collaborators.
    :param days: Days of history (default: ``training_days`` from config).
    :param symbols: Symbols to train (default: the watchlist).
    """
    watchlist = symbols or list(components.config.watchlist)
    components.pool.load(components.model_store, watchlist)

    simulator = BacktestSimulator(
        pool=components.pool,
        candle_source=components.candle_source,
        model_store=components.model_store,
        notifier=components.notifier,
    )
    trainer = MultiSymbolTrainer(simulator, watchlist, notifier=components.notifier)
    return trainer.train_all(days or components.config.training_days)
