"""Historical replay that trains a strategy on archived candles.

The simulator walks a symbol's history day by day and bar by bar, driving the
same strategy and position life cycle the live controller uses. Positions are
local to the replay; only trade results and Q-tables reach the stores.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from rltrader.lifecycle import PositionLifecycle
from rltrader.notify import safe_notify
from rltrader.types import BacktestResult, StrategyPerformance, Symbol

if TYPE_CHECKING:
    from rltrader.data.sources import CandleSource
    from rltrader.lifecycle import ExitDecision
    from rltrader.notify import Notifier
    from rltrader.storage.base import ModelStore
    from rltrader.strategies.base import Strategy
    from rltrader.strategies.pool import StrategyPool
    from rltrader.types import Candle, Position

logger = logging.getLogger(__name__)


class BacktestSimulator:
    """Replay daily and intraday candles through a strategy to train it.

    Example usage::

        simulator = BacktestSimulator(
            pool=StrategyPool(RLBandStrategy),
            candle_source=YahooCandleSource(),
            model_store=JsonModelStore(),
        )
        result = simulator.train_on_history("BTC-USD", days=30)
        if result is not None:
            print(f"{result.total_trades} trades, win rate {result.win_rate:.2%}")

    :param pool: Strategies serving the symbols to train.
    :param candle_source: Source of daily and intraday candles.
    :param model_store: Store receiving trade results and Q-tables.
    :param notifier: Optional notification sink.
    :param window_size: Bars in the sliding decision window.
    :param bars_per_day: Max intraday bars requested per day.
    """

    def __init__(
        self,
        pool: StrategyPool,
        candle_source: CandleSource,
        model_store: ModelStore,
        notifier: Notifier | None = None,
        window_size: int = 20,
        bars_per_day: int = 96,
    ) -> None:
        self.pool = pool
        self.candle_source = candle_source
        self.model_store = model_store
        self.notifier = notifier
        self.window_size = window_size
        self.bars_per_day = bars_per_day

    def train_on_history(
        self,
        symbol: str,
        days: int = 30,
        end_time: datetime | None = None,
    ) -> BacktestResult | None:
        """Train on the ``days`` days of history ending at ``end_time``.

        :param symbol: Symbol to replay.
        :param days: Number of daily candles to request.
        :param end_time: End of the history (default: now).
        :returns: Aggregate trade statistics, or None when fewer than half
            of the requested days are available or fetching them fails.
        """
        strategy = self.pool.for_symbol(symbol)
        end = end_time or datetime.now(timezone.utc)
        start = end - timedelta(days=days)

        logger.info("Starting historical training for %s with %d days of data", symbol, days)
        safe_notify(self.notifier, f"Starting training for {symbol} with {days} days of data")

        try:
            daily = self.candle_source.get_candles(symbol, "1d", days, start, end)
        except Exception as e:
            logger.error("Error fetching daily candles for %s: %s", symbol, e, exc_info=True)
            safe_notify(self.notifier, f"Error in training for {symbol}: {e}")
            return None

        if len(daily) < days * 0.5:
            message = f"Not enough daily candles for {symbol}, got {len(daily)}/{days}"
            logger.warning(message)
            safe_notify(self.notifier, message)
            return None

        result = BacktestResult(symbol=Symbol(symbol), days=days)
        performance = StrategyPerformance(symbol=Symbol(symbol), strategy_name=strategy.name)
        lifecycle = PositionLifecycle(strategy)

        for day_candle in daily:
            try:
                processed = self._replay_day(
                    symbol, day_candle.timestamp, strategy, lifecycle, result, performance
                )
            except Exception as e:
                logger.error(
                    "Error replaying %s on %s: %s",
                    symbol,
                    day_candle.timestamp.date().isoformat(),
                    e,
                    exc_info=True,
                )
                continue
            if processed:
                result.days_processed += 1

        result.total_trades = performance.total_trades
        result.win_count = performance.win_count
        result.win_rate = performance.win_rate
        result.profit_loss_ratio = performance.profit_loss_ratio

        logger.info(
            "Training completed for %s: %d trades, %d winning, win rate %.2f%%",
            symbol,
            result.total_trades,
            result.win_count,
            result.win_rate * 100,
        )
        safe_notify(
            self.notifier,
            f"Training completed for {symbol}\n"
            f"Total trades: {result.total_trades}\n"
            f"Winning trades: {result.win_count}\n"
            f"Win rate: {result.win_rate * 100:.2f}%",
        )
        return result

    def _replay_day(
        self,
        symbol: str,
        day: datetime,
        strategy: Strategy,
        lifecycle: PositionLifecycle,
        result: BacktestResult,
        performance: StrategyPerformance,
    ) -> bool:
        """Replay one UTC day of intraday bars.

        :returns: False when the day has too few bars and was skipped.
        """
        day_start = day.astimezone(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
        day_end = day_start + timedelta(days=1) - timedelta(milliseconds=1)
        label = day_start.date().isoformat()

        bars = self.candle_source.get_candles(
            symbol, strategy.timeframe, self.bars_per_day, day_start, day_end
        )
        if len(bars) < self.window_size:
            logger.warning("Not enough intraday candles for %s on %s, skipping", symbol, label)
            return False

        logger.info("Training on %d bars for %s on %s", len(bars), symbol, label)

        entry_signal = strategy.check_entry_signal(bars[: self.window_size], symbol)
        position: Position | None = None

        for j in range(self.window_size, len(bars) - 1):
            window = bars[j - self.window_size + 1 : j + 1]
            bar = window[-1]

            if position is None and entry_signal is not None:
                position = lifecycle.open_position(
                    symbol, entry_signal, entry_price=bar.close, opened_at=bar.timestamp
                )
                logger.debug(
                    "Training: entered %s %s at %.8g", symbol, position.signal.value, bar.close
                )
                continue

            if position is not None:
                decision = lifecycle.evaluate(position, bar.close, window, fill_at_level=True)
                if decision is not None:
                    self._book(lifecycle, position, decision, bar, window, result, performance)
                    position = None
                    entry_signal = None

            if position is None:
                entry_signal = strategy.check_entry_signal(window, symbol)

        if position is not None:
            last = bars[-1]
            window = bars[-self.window_size :]
            decision = lifecycle.force_close_decision(position, last.close)
            self._book(lifecycle, position, decision, last, window, result, performance)

        self.model_store.save_model(symbol, strategy.name, strategy.save_model())
        return True

    def _book(
        self,
        lifecycle: PositionLifecycle,
        position: Position,
        decision: ExitDecision,
        bar: Candle,
        window: list[Candle],
        result: BacktestResult,
        performance: StrategyPerformance,
    ) -> None:
        lifecycle.close(position, decision, bar.timestamp, window)
        is_win = decision.pnl_percent > 0

        result.trades.append(position)
        performance.record(is_win, decision.pnl_percent, at=bar.timestamp)
        self.model_store.record_trade_result(
            position.symbol, position.strategy_name, is_win, decision.pnl_percent
        )
