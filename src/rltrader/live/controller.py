"""Live polling controller for strategy-managed positions."""

from __future__ import annotations

import logging
import signal
import threading
import time
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

from rltrader.exceptions import ExecutionError
from rltrader.lifecycle import ExitDecision, PositionLifecycle
from rltrader.notify import safe_notify
from rltrader.types import LiveSettings, OrderSide, OrderSpec, Position, Symbol

if TYPE_CHECKING:
    from rltrader.data.sources import CandleSource
    from rltrader.notify import Notifier
    from rltrader.paper.exchange import OrderExecution
    from rltrader.storage.base import ModelStore, PositionStore
    from rltrader.strategies.base import Strategy
    from rltrader.strategies.pool import StrategyPool
    from rltrader.types import Candle, Signal

logger = logging.getLogger(__name__)

# Symbols with fewer candles than this are skipped for the cycle
MIN_CANDLES = 20

# Upper bound on exchange quantity precision, and fallback when unavailable
MAX_QUANTITY_PRECISION = 8
DEFAULT_QUANTITY_PRECISION = 3


class CycleReport(BaseModel):
    """What one polling cycle did.

    :param started_at: Cycle start time.
    :param closed: Positions closed during the cycle.
    :param opened: Positions opened during the cycle.
    :param skipped: Symbols skipped for lack of candles.
    :param errors: Symbols whose processing failed.
    """

    started_at: datetime
    closed: list[Position] = Field(default_factory=list)
    opened: list[Position] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)


class LiveCycleController:
    """Check exits, scan for entries and persist models once per cycle.

    Each symbol is processed in isolation: a failing collaborator call is
    logged, reported through the notifier and skips only that symbol.

    Example usage::

        pool = StrategyPool(RLBandStrategy, scope="shared")
        controller = LiveCycleController(
            pool=pool,
            watchlist=["BTC-USD", "ETH-USD"],
            candle_source=source,
            execution=PaperExchange(source),
            model_store=JsonModelStore(),
            position_store=JsonPositionStore(),
        )
        controller.load_models()
        controller.run()

    :param pool: Strategies serving the watched symbols.
    :param watchlist: Symbols to trade.
    :param candle_source: Source of candle windows.
    :param execution: Exchange orders are routed to.
    :param model_store: Store for Q-tables and trade performance.
    :param position_store: Store for managed positions.
    :param notifier: Optional notification sink.
    :param settings: Polling and sizing settings.
    """

    def __init__(
        self,
        pool: StrategyPool,
        watchlist: list[str],
        candle_source: CandleSource,
        execution: OrderExecution,
        model_store: ModelStore,
        position_store: PositionStore,
        notifier: Notifier | None = None,
        settings: LiveSettings | None = None,
    ) -> None:
        self.pool = pool
        self.watchlist = list(watchlist)
        self.candle_source = candle_source
        self.execution = execution
        self.model_store = model_store
        self.position_store = position_store
        self.notifier = notifier
        self.settings = settings or LiveSettings()

        self._cycle_lock = threading.Lock()
        self._running = False
        self._cycles = 0

    @property
    def strategy_name(self) -> str:
        return self.pool.name

    def load_models(self) -> None:
        """Load stored models and apply recorded performance to the strategies."""
        self.pool.load(self.model_store, self.watchlist)

    # ------------------------------------------------------------------
    # Cycle
    # ------------------------------------------------------------------

    def run_cycle(self) -> CycleReport | None:
        """Run one polling cycle.

        :returns: Cycle report, or None when another cycle is in flight.
        """
        if not self._cycle_lock.acquire(blocking=False):
            logger.warning("Cycle already in progress, skipping")
            return None

        try:
            report = CycleReport(started_at=datetime.now(timezone.utc))
            logger.info("Starting check cycle")
            self._check_exits(report)
            self._scan_entries(report)
            self._save_models(report)
            self._cycles += 1
            logger.info(
                "Completed check cycle: %d closed, %d opened, %d skipped, %d errors",
                len(report.closed),
                len(report.opened),
                len(report.skipped),
                len(report.errors),
            )
            return report
        finally:
            self._cycle_lock.release()

    def _fetch_window(
        self, symbol: str, strategy: Strategy, report: CycleReport
    ) -> list[Candle] | None:
        candles = self.candle_source.get_candles(
            symbol, strategy.timeframe, self.settings.candle_count
        )
        if len(candles) < MIN_CANDLES:
            logger.warning("Not enough candles for %s (%d), skipping", symbol, len(candles))
            report.skipped.append(symbol)
            return None
        return candles

    def _fail(self, report: CycleReport, symbol: str, action: str, error: Exception) -> None:
        logger.error("Error %s %s: %s", action, symbol, error, exc_info=True)
        report.errors.append(symbol)
        safe_notify(self.notifier, f"Error {action} {symbol}: {error}")

    # ------------------------------------------------------------------
    # Exits
    # ------------------------------------------------------------------

    def _check_exits(self, report: CycleReport) -> None:
        try:
            positions = self.position_store.open_positions(self.strategy_name)
        except Exception as e:
            self._fail(report, "open positions", "loading", e)
            return

        logger.info("Found %d open positions to monitor", len(positions))
        for position in positions:
            try:
                self._check_exit(position, report)
            except Exception as e:
                self._fail(report, position.symbol, "exiting", e)

    def _check_exit(self, position: Position, report: CycleReport) -> None:
        strategy = self.pool.for_symbol(position.symbol)
        candles = self._fetch_window(position.symbol, strategy, report)
        if candles is None:
            return

        price = self.execution.get_current_price(position.symbol)
        lifecycle = PositionLifecycle(strategy)
        decision = lifecycle.evaluate(position, price, candles, fill_at_level=False)
        if decision is not None:
            self._exit(position, decision, lifecycle, strategy, candles)
            report.closed.append(position)

    def _exit(
        self,
        position: Position,
        decision: ExitDecision,
        lifecycle: PositionLifecycle,
        strategy: Strategy,
        candles: list[Candle],
    ) -> None:
        self.execution.close_position(position.symbol, OrderSide.closing(position.signal))
        lifecycle.close(position, decision, datetime.now(timezone.utc), candles)
        self.position_store.update(position)

        is_win = decision.pnl_percent > 0
        self.model_store.record_trade_result(
            position.symbol, self.strategy_name, is_win, decision.pnl_percent
        )
        self.model_store.save_model(position.symbol, self.strategy_name, strategy.save_model())

        safe_notify(
            self.notifier,
            f"Exit {position.symbol} {position.signal.value.upper()}\n"
            f"Profit: {decision.pnl_percent:.2f}%\n"
            f"Entry: {position.entry_price}\n"
            f"Exit: {decision.exit_price}\n"
            f"Hold time: {position.hold_time_minutes} min\n"
            f"Reason: {decision.reason.value}",
        )

    # ------------------------------------------------------------------
    # Entries
    # ------------------------------------------------------------------

    def _scan_entries(self, report: CycleReport) -> None:
        max_positions = self.pool.max_positions
        try:
            open_count = self.position_store.count_open(self.strategy_name)
        except Exception as e:
            self._fail(report, "open positions", "counting", e)
            return

        if open_count >= max_positions:
            logger.info("Already at maximum %d positions, skipping entry scan", max_positions)
            return

        for symbol in self.watchlist:
            try:
                if self.position_store.get_open(symbol, self.strategy_name) is not None:
                    logger.info("Already have an open position for %s, skipping", symbol)
                    continue

                strategy = self.pool.for_symbol(symbol)
                candles = self._fetch_window(symbol, strategy, report)
                if candles is None:
                    continue

                entry_signal = strategy.check_entry_signal(candles, symbol)
                if entry_signal is None:
                    continue

                logger.info("Got entry signal for %s: %s", symbol, entry_signal.side.value)
                position = self._enter(symbol, entry_signal, strategy)
                if position is None:
                    continue
            except Exception as e:
                self._fail(report, symbol, "entering", e)
                continue

            report.opened.append(position)
            open_count += 1
            if open_count >= max_positions:
                logger.info(
                    "Reached maximum %d positions after adding %s, stopping entry scan",
                    max_positions,
                    symbol,
                )
                break

    def _quantity_precision(self, symbol: str) -> int:
        try:
            return min(self.execution.get_quantity_precision(symbol), MAX_QUANTITY_PRECISION)
        except ExecutionError:
            logger.warning(
                "Could not get quantity precision for %s, using %d",
                symbol,
                DEFAULT_QUANTITY_PRECISION,
            )
            return DEFAULT_QUANTITY_PRECISION

    def _enter(self, symbol: str, entry_signal: Signal, strategy: Strategy) -> Position | None:
        price = self.execution.get_current_price(symbol)
        balance = self.execution.get_balance()

        allocation = min(
            self.settings.max_allocation_usd,
            balance * self.settings.allocation_fraction,
        )
        precision = self._quantity_precision(symbol)
        quantity = self.execution.adjust_precision(allocation / price, precision)
        if quantity <= 0:
            logger.warning(
                "Allocation %.2f too small for %s at %.8g, skipping entry",
                allocation,
                symbol,
                price,
            )
            return None

        open_side = OrderSide.opening(entry_signal.side)
        close_side = OrderSide.closing(entry_signal.side)
        self.execution.place_market_order(
            OrderSpec(symbol=Symbol(symbol), side=open_side, quantity=quantity)
        )
        self.execution.place_stop_loss_order(
            OrderSpec(
                symbol=Symbol(symbol),
                side=close_side,
                quantity=quantity,
                stop_price=entry_signal.stop_loss,
            )
        )
        self.execution.place_take_profit_order(
            OrderSpec(
                symbol=Symbol(symbol),
                side=close_side,
                quantity=quantity,
                stop_price=entry_signal.take_profit,
            )
        )

        position = PositionLifecycle(strategy).open_position(
            symbol,
            entry_signal,
            entry_price=price,
            opened_at=datetime.now(timezone.utc),
            allocation=allocation,
            quantity=quantity,
        )
        self.position_store.add(position)

        safe_notify(
            self.notifier,
            f"Entry {symbol} {entry_signal.side.value.upper()}\n"
            f"Price: {price}\n"
            f"Stop loss: {entry_signal.stop_loss:.8f}\n"
            f"Take profit: {entry_signal.take_profit:.8f}\n"
            f"Confidence: {entry_signal.confidence:.2f}\n"
            f"Size: ${allocation:.2f}",
        )
        logger.info("Entered %s %s at %.8g", symbol, entry_signal.side.value, price)
        return position

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _save_models(self, report: CycleReport) -> None:
        for symbol in self.watchlist:
            try:
                blob = self.pool.for_symbol(symbol).save_model()
                self.model_store.save_model(symbol, self.strategy_name, blob)
                curve = self.model_store.learning_curve(symbol, self.strategy_name)
                if curve is not None:
                    logger.debug("Learning curve for %s: %s", symbol, curve.model_dump())
            except Exception as e:
                self._fail(report, symbol, "saving model for", e)

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    def run(self, max_cycles: int | None = None) -> None:
        """Run cycles every ``settings.interval_seconds`` until interrupted.

        Runs continuously until interrupted (Ctrl+C) or ``max_cycles`` reached.

        :param max_cycles: Optional maximum number of cycles to run.
        """
        self._running = True

        def signal_handler(signum: int, frame: Any) -> None:
            logger.info("Stopping live trading")
            self._running = False

        original_handler = signal.signal(signal.SIGINT, signal_handler)

        try:
            self.load_models()
            logger.info(
                "Starting live trading: %s on %s every %ss",
                self.strategy_name,
                ", ".join(self.watchlist),
                self.settings.interval_seconds,
            )

            while self._running:
                if max_cycles and self._cycles >= max_cycles:
                    break

                self.run_cycle()

                if self._running and not (max_cycles and self._cycles >= max_cycles):
                    time.sleep(self.settings.interval_seconds)
        finally:
            signal.signal(signal.SIGINT, original_handler)
            self._running = False
            logger.info("Live trading stopped after %d cycles", self._cycles)
