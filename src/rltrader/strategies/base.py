"""Base strategy class that all trading strategies must implement.

Strategies receive trailing candle windows and decide when managed
positions are opened and closed.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from rltrader.types import Candle, PerformanceSummary, Position, Side, Signal


class Strategy(ABC):
    """Abstract base class for trading strategies.

    All strategies must implement :meth:`check_entry_signal` and
    :meth:`check_exit_signal`. Both are called by the live controller and the
    backtest simulator with a window of recent candles, ordered oldest to
    newest.

    Learning strategies override :meth:`learn_from_close`, :meth:`save_model`
    and :meth:`load_model`; the defaults do nothing.

    :param params: Strategy-specific configuration parameters.

    Example usage::

        class AlwaysLongStrategy(Strategy):
            name = "Always Long"

            def check_entry_signal(self, candles, symbol):
                price = candles[-1].close
                return Signal(side=Side.LONG, confidence=1.0, entry_price=price,
                              stop_loss=price * 0.99, take_profit=price * 1.02,
                              metadata=...)

            def check_exit_signal(self, candles, position):
                return False
    """

    name: str = "Strategy"
    timeframe: str = "15m"
    max_positions: int = 3

    def __init__(self, params: dict[str, Any] | None = None) -> None:
        """Initialize strategy with parameters.

        :param params: Strategy-specific configuration parameters.
        """
        self.params = params or {}

    @abstractmethod
    def check_entry_signal(self, candles: list[Candle], symbol: str) -> Signal | None:
        """Decide whether to open a position on ``symbol``.

        :param candles: Trailing candle window.
        :param symbol: Symbol the window belongs to.
        :returns: Entry signal, or None to stay flat.
        """
        ...

    @abstractmethod
    def check_exit_signal(self, candles: list[Candle], position: Position) -> bool:
        """Decide whether an open position should be closed.

        :param candles: Trailing candle window.
        :param position: Open position to evaluate.
        :returns: True when the position should be closed now.
        """
        ...

    def learn_from_close(
        self,
        candles: list[Candle],
        position_side: Side,
        pnl_percent: float,
    ) -> None:
        """Learn from a close that the strategy did not decide itself.

        Called when a stop-loss, take-profit or end-of-period close fires.

        :param candles: Candle window at the time of the close.
        :param position_side: Side of the closed position.
        :param pnl_percent: Realized PnL in percent.
        """
        pass

    def apply_performance(self, symbol: str, performance: PerformanceSummary | None) -> None:
        """Tune risk and learning parameters from recorded performance."""
        pass

    def save_model(self) -> str | None:
        """Serialize learned state, or None if there is nothing to persist."""
        return None

    def load_model(self, blob: str | None) -> bool:
        """Restore learned state from :meth:`save_model` output.

        :returns: True if a model was loaded.
        """
        return False
