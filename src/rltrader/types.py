"""Core type definitions for the trading bot.

All data models use Pydantic BaseModel for automatic validation, JSON
serialization, and better error messages.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Literal, NewType

from pydantic import BaseModel, ConfigDict, Field

from rltrader.exceptions import PositionClosedError

# Type aliases for domain-specific identifiers
Symbol = NewType("Symbol", str)
StateKey = NewType("StateKey", str)


# ---------------------------------------------------------------------------
# Base Configuration
# ---------------------------------------------------------------------------


class FrozenModel(BaseModel):
    """Base model with frozen (immutable) configuration."""

    model_config = ConfigDict(frozen=True)


class MutableModel(BaseModel):
    """Base model for mutable state objects."""

    model_config = ConfigDict(validate_assignment=True)


# ---------------------------------------------------------------------------
# Market Data Types
# ---------------------------------------------------------------------------


class Candle(FrozenModel):
    """OHLCV candle as returned by a candle source.

    :param timestamp: Open time of the candle (timezone-aware).
    :param open: Opening price.
    :param high: Highest price during the candle period.
    :param low: Lowest price during the candle period.
    :param close: Closing price.
    :param volume: Traded volume during the candle period.
    """

    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0


class BollingerBands(FrozenModel):
    """Latest Bollinger band values of a candle window."""

    upper: float
    middle: float
    lower: float


class IndicatorSnapshot(FrozenModel):
    """Indicator values computed over a trailing candle window.

    ``bollinger`` is None when the window is shorter than the band period;
    ``rsi`` and ``atr`` are None when shorter than their periods.

    :param bollinger: Latest Bollinger band values.
    :param rsi: Latest RSI value in [0, 100].
    :param atr: Latest average true range.
    :param current_price: Close of the newest candle.
    """

    bollinger: BollingerBands | None = None
    rsi: float | None = None
    atr: float | None = None
    current_price: float


# ---------------------------------------------------------------------------
# Decision Types
# ---------------------------------------------------------------------------


class Action(str, Enum):
    """Action chosen by the Q-learning policy."""

    LONG = "long"
    SHORT = "short"
    HOLD = "hold"


class Side(str, Enum):
    """Direction of an open position."""

    LONG = "long"
    SHORT = "short"

    @property
    def opposite(self) -> Side:
        """The side that would reverse this one."""
        return Side.SHORT if self is Side.LONG else Side.LONG

    @property
    def action(self) -> Action:
        """The policy action that agrees with this side."""
        return Action(self.value)


class SignalMetadata(FrozenModel):
    """Context attached to an entry signal.

    :param strategy: Name of the strategy that produced the signal.
    :param timeframe: Candle timeframe the signal was computed on.
    :param indicators: Raw indicator snapshot at decision time.
    :param state: Discrete state key the decision was taken in.
    """

    strategy: str
    timeframe: str
    indicators: IndicatorSnapshot
    state: StateKey


class Signal(FrozenModel):
    """Entry signal returned by a strategy.

    :param side: Direction to open.
    :param confidence: Q-value of the chosen action (0 for unseen states).
    :param entry_price: Price the stop and target levels were derived from.
    :param stop_loss: Stop-loss price level.
    :param take_profit: Take-profit price level.
    :param metadata: Decision context.
    """

    side: Side
    confidence: float
    entry_price: float
    stop_loss: float
    take_profit: float
    metadata: SignalMetadata


# ---------------------------------------------------------------------------
# Position Types
# ---------------------------------------------------------------------------


class PositionStatus(str, Enum):
    """Life-cycle status of a managed position."""

    OPEN = "open"
    CLOSED = "closed"


class ExitReason(str, Enum):
    """Why a managed position was closed."""

    STOP_LOSS = "StopLoss"
    TAKE_PROFIT = "TakeProfit"
    STRATEGY_EXIT_SIGNAL = "StrategyExitSignal"
    FORCED_END_OF_PERIOD = "ForcedEndOfPeriod"


class Position(MutableModel):
    """A position whose exit timing is governed by a strategy.

    Created open on entry and mutated exactly once, by :meth:`close`.

    :param position_id: Unique identifier for the position.
    :param symbol: Market symbol.
    :param signal: Side of the position.
    :param entry_price: Fill price of the entry.
    :param stop_loss: Stop-loss price level, if any.
    :param take_profit: Take-profit price level, if any.
    :param allocation: Quote-currency amount allocated to the position.
    :param quantity: Base-asset quantity held.
    :param strategy_name: Strategy managing the position.
    :param status: Open or closed.
    :param exit_reason: Reason recorded at close.
    :param exit_price: Price the position was closed at.
    :param pnl_percent: Realized PnL in percent (None while open).
    :param pnl_amount: Realized PnL in quote currency.
    :param hold_time_minutes: Minutes between open and close.
    :param opened_at: Entry time.
    :param closed_at: Close time.
    :param market_conditions: Signal metadata captured at entry.
    """

    position_id: str
    symbol: Symbol
    signal: Side
    entry_price: float
    stop_loss: float | None = None
    take_profit: float | None = None
    allocation: float = 0.0
    quantity: float = 0.0
    strategy_name: str = ""
    status: PositionStatus = PositionStatus.OPEN
    exit_reason: ExitReason | None = None
    exit_price: float | None = None
    pnl_percent: float | None = None
    pnl_amount: float | None = None
    hold_time_minutes: int | None = None
    opened_at: datetime
    closed_at: datetime | None = None
    market_conditions: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_open(self) -> bool:
        return self.status is PositionStatus.OPEN

    def close(
        self,
        exit_price: float,
        exit_reason: ExitReason,
        pnl_percent: float,
        closed_at: datetime,
    ) -> None:
        """Move the position to its terminal closed state.

        :param exit_price: Price the position was closed at.
        :param exit_reason: Why the position closed.
        :param pnl_percent: Realized PnL in percent.
        :param closed_at: Close time.
        :raises PositionClosedError: If the position is already closed.
        """
        if not self.is_open:
            raise PositionClosedError(
                f"Position {self.position_id} for {self.symbol} is already closed "
                f"({self.exit_reason.value if self.exit_reason else 'unknown'})"
            )
        self.exit_price = exit_price
        self.exit_reason = exit_reason
        self.pnl_percent = pnl_percent
        self.pnl_amount = self.allocation * pnl_percent / 100
        self.hold_time_minutes = round((closed_at - self.opened_at).total_seconds() / 60)
        self.closed_at = closed_at
        self.status = PositionStatus.CLOSED


# ---------------------------------------------------------------------------
# Performance Types
# ---------------------------------------------------------------------------


class PerformanceSummary(FrozenModel):
    """Read-only performance figures used to tune a strategy.

    :param win_rate: Fraction of winning trades in [0, 1].
    :param profit_loss_ratio: Average win divided by average loss.
    :param total_trades: Number of recorded trades.
    """

    win_rate: float = 0.0
    profit_loss_ratio: float = 1.0
    total_trades: int = 0


class StrategyPerformance(MutableModel):
    """Aggregated trade outcomes for one (symbol, strategy) pair.

    :param symbol: Market symbol.
    :param strategy_name: Strategy the trades belong to.
    :param total_trades: Number of recorded trades.
    :param win_count: Number of winning trades.
    :param loss_count: Number of losing (or flat) trades.
    :param total_profit_percent: Sum of winning PnL percentages.
    :param total_loss_percent: Sum of absolute losing PnL percentages.
    :param win_rate: ``win_count / total_trades``.
    :param profit_loss_ratio: Average win over average loss.
    :param consecutive_wins: Current winning streak.
    :param consecutive_losses: Current losing streak.
    :param best_trade: Best single-trade PnL percentage.
    :param worst_trade: Worst single-trade PnL percentage.
    :param updated_at: Time of the last recorded trade.
    """

    symbol: Symbol
    strategy_name: str
    total_trades: int = 0
    win_count: int = 0
    loss_count: int = 0
    total_profit_percent: float = 0.0
    total_loss_percent: float = 0.0
    win_rate: float = 0.0
    profit_loss_ratio: float = 1.0
    consecutive_wins: int = 0
    consecutive_losses: int = 0
    best_trade: float = 0.0
    worst_trade: float = 0.0
    updated_at: datetime | None = None

    def record(self, is_win: bool, pnl_percent: float, at: datetime | None = None) -> None:
        """Fold one trade outcome into the aggregates."""
        self.total_trades += 1

        if is_win:
            self.win_count += 1
            self.total_profit_percent += pnl_percent
            self.consecutive_wins += 1
            self.consecutive_losses = 0
            self.best_trade = max(self.best_trade, pnl_percent)
        else:
            self.loss_count += 1
            self.total_loss_percent += abs(pnl_percent)
            self.consecutive_losses += 1
            self.consecutive_wins = 0
            self.worst_trade = min(self.worst_trade, pnl_percent)

        self.win_rate = self.win_count / self.total_trades

        avg_profit = self.total_profit_percent / self.win_count if self.win_count else 0.0
        # No losses yet: divide by 1 so the ratio equals the average win
        avg_loss = self.total_loss_percent / self.loss_count if self.loss_count else 1.0
        self.profit_loss_ratio = avg_profit / avg_loss if avg_loss > 0 else avg_profit
        self.updated_at = at

    def summary(self) -> PerformanceSummary:
        return PerformanceSummary(
            win_rate=self.win_rate,
            profit_loss_ratio=self.profit_loss_ratio,
            total_trades=self.total_trades,
        )


# ---------------------------------------------------------------------------
# Order Types
# ---------------------------------------------------------------------------


class OrderSide(str, Enum):
    """Exchange order side."""

    BUY = "BUY"
    SELL = "SELL"

    @classmethod
    def opening(cls, side: Side) -> OrderSide:
        """Order side that opens a position on ``side``."""
        return cls.BUY if side is Side.LONG else cls.SELL

    @classmethod
    def closing(cls, side: Side) -> OrderSide:
        """Order side that closes a position on ``side``."""
        return cls.SELL if side is Side.LONG else cls.BUY


class OrderSpec(FrozenModel):
    """Order request sent to the execution collaborator.

    :param symbol: Market symbol to trade.
    :param side: Order side.
    :param quantity: Base-asset quantity.
    :param stop_price: Trigger price for stop-loss / take-profit orders.
    """

    symbol: Symbol
    side: OrderSide
    quantity: float
    stop_price: float | None = None


class OrderHandle(FrozenModel):
    """Acknowledgement returned by the execution collaborator.

    :param order_id: Exchange order identifier.
    :param symbol: Market symbol.
    :param side: Order side.
    :param order_type: "market", "stop_loss", "take_profit" or "close".
    :param quantity: Ordered quantity.
    :param price: Fill price for market orders, trigger price otherwise.
    :param timestamp: When the order was accepted.
    """

    order_id: str
    symbol: Symbol
    side: OrderSide
    order_type: str
    quantity: float
    price: float | None = None
    timestamp: datetime


# ---------------------------------------------------------------------------
# Training Types
# ---------------------------------------------------------------------------


class BacktestResult(BaseModel):
    """Outcome of replaying one symbol's history through a strategy.

    :param symbol: Symbol that was replayed.
    :param days: Number of days requested.
    :param days_processed: Days that had enough intraday bars.
    :param total_trades: Number of closed trades.
    :param win_count: Number of winning trades.
    :param win_rate: ``win_count / total_trades`` (0 when no trades).
    :param profit_loss_ratio: Average win over average loss.
    :param trades: Closed positions in the order they were closed.
    """

    symbol: Symbol
    days: int
    days_processed: int = 0
    total_trades: int = 0
    win_count: int = 0
    win_rate: float = 0.0
    profit_loss_ratio: float = 1.0
    trades: list[Position] = Field(default_factory=list)


class SymbolTrainingStats(FrozenModel):
    """Per-symbol figures in a watchlist training summary."""

    trades: int
    win_rate: float
    profit_loss_ratio: float


class WatchlistTrainingResult(BaseModel):
    """Roll-up of training runs across a watchlist.

    :param total_trades: Trades across all symbols.
    :param winning_trades: Winning trades across all symbols.
    :param symbols: Per-symbol statistics for symbols that trained.
    """

    total_trades: int = 0
    winning_trades: int = 0
    symbols: dict[str, SymbolTrainingStats] = Field(default_factory=dict)

    @property
    def overall_win_rate(self) -> float:
        """Overall win rate as a percentage."""
        if self.total_trades == 0:
            return 0.0
        return self.winning_trades / self.total_trades * 100


class QTableSummary(FrozenModel):
    """Learning-curve statistics of a Q-table.

    :param state_count: Number of states in the table.
    :param avg_q_long: Mean Q-value of the long action.
    :param avg_q_short: Mean Q-value of the short action.
    :param avg_q_hold: Mean Q-value of the hold action.
    :param max_q_long: Max Q-value of the long action.
    :param max_q_short: Max Q-value of the short action.
    :param max_q_hold: Max Q-value of the hold action.
    :param states_with_positive_q: States whose best action value is positive.
    """

    state_count: int
    avg_q_long: float = 0.0
    avg_q_short: float = 0.0
    avg_q_hold: float = 0.0
    max_q_long: float | None = None
    max_q_short: float | None = None
    max_q_hold: float | None = None
    states_with_positive_q: int = 0


# ---------------------------------------------------------------------------
# Configuration Types
# ---------------------------------------------------------------------------


class StrategySettings(FrozenModel):
    """Tunable parameters of the Q-learning strategy.

    :param alpha: Learning rate.
    :param gamma: Discount factor.
    :param epsilon: Initial exploration rate.
    :param stop_loss_percentage: Initial stop distance in percent.
    :param take_profit_percentage: Initial target distance in percent.
    :param risk_per_trade: Balance percentage risked per trade in ATR sizing.
    :param max_positions: Max concurrently open positions.
    :param timeframe: Candle timeframe the strategy trades.
    :param seed: Seed for exploration draws, or None for OS entropy.
    """

    alpha: float = 0.3
    gamma: float = 0.7
    epsilon: float = 0.2
    stop_loss_percentage: float = 1.0
    take_profit_percentage: float = 2.0
    risk_per_trade: float = 2.0
    max_positions: int = 3
    timeframe: str = "15m"
    seed: int | None = None


class LiveSettings(FrozenModel):
    """Settings of the live polling loop.

    :param interval_seconds: Seconds between cycles.
    :param candle_count: Candles fetched per symbol per cycle.
    :param max_allocation_usd: Upper bound on a new position's allocation.
    :param allocation_fraction: Fraction of balance allocated per position.
    """

    interval_seconds: float = 900.0
    candle_count: int = 50
    max_allocation_usd: float = 10.0
    allocation_fraction: float = 0.005


class BotConfig(FrozenModel):
    """Complete configuration of a bot instance.

    :param watchlist: Symbols to trade and train on.
    :param strategy: Strategy parameters.
    :param engine_scope: "shared" for one strategy across all symbols,
        "per_symbol" for an isolated strategy per symbol.
    :param data_source: Candle source type ("yahoo", "csv", "memory").
    :param source_params: Source-specific parameters.
    :param storage_root: Directory for models, performance and positions.
    :param initial_balance: Paper account starting balance.
    :param live: Live loop settings.
    :param training_days: Default number of days to train on.
    :param log_level: Logging level.
    """

    watchlist: list[Symbol]
    strategy: StrategySettings = Field(default_factory=StrategySettings)
    engine_scope: Literal["shared", "per_symbol"] = "shared"
    data_source: str = "yahoo"
    source_params: dict[str, Any] = Field(default_factory=dict)
    storage_root: str | None = None
    initial_balance: float = 1000.0
    live: LiveSettings = Field(default_factory=LiveSettings)
    training_days: int = 30
    log_level: str = "INFO"


# ---------------------------------------------------------------------------
# Exports
# ---------------------------------------------------------------------------

__all__ = [
    # Type aliases
    "Symbol",
    "StateKey",
    # Base models
    "FrozenModel",
    "MutableModel",
    # Market data
    "Candle",
    "BollingerBands",
    "IndicatorSnapshot",
    # Decisions
    "Action",
    "Side",
    "SignalMetadata",
    "Signal",
    # Positions
    "PositionStatus",
    "ExitReason",
    "Position",
    # Performance
    "PerformanceSummary",
    "StrategyPerformance",
    # Orders
    "OrderSide",
    "OrderSpec",
    "OrderHandle",
    # Training
    "BacktestResult",
    "SymbolTrainingStats",
    "WatchlistTrainingResult",
    "QTableSummary",
    # Configuration
    "StrategySettings",
    "LiveSettings",
    "BotConfig",
]
