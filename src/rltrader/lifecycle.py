"""Life cycle of a managed position: open, exit arbitration, close.

A position moves from open to closed exactly once. While open it is checked,
in priority order, against its hard stop-loss, its hard take-profit and the
strategy's exit signal. Every close performs exactly one learning update on
the strategy: strategy exits learn inside the exit check, every other close
learns when it is applied by :meth:`PositionLifecycle.close`.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from rltrader.exceptions import PositionClosedError
from rltrader.types import ExitReason, FrozenModel, Position, Side, Symbol

if TYPE_CHECKING:
    from rltrader.strategies.base import Strategy
    from rltrader.types import Candle, Signal

logger = logging.getLogger(__name__)


class ExitDecision(FrozenModel):
    """Outcome of an exit evaluation that closes the position.

    :param reason: Why the position closes.
    :param exit_price: Price the close is booked at.
    :param pnl_percent: Realized PnL at ``exit_price``.
    """

    reason: ExitReason
    exit_price: float
    pnl_percent: float

    @property
    def learns_on_close(self) -> bool:
        """Whether applying this decision owes the strategy a learning update."""
        return self.reason is not ExitReason.STRATEGY_EXIT_SIGNAL


def compute_pnl_percent(side: Side, entry_price: float, exit_price: float) -> float:
    """Signed PnL in percent of the entry price.

    Long: ``(exit - entry) / entry * 100``; short: ``(entry - exit) / entry * 100``.
    """
    if side is Side.LONG:
        return (exit_price - entry_price) / entry_price * 100
    return (entry_price - exit_price) / entry_price * 100


class PositionLifecycle:
    """Drive managed positions of one strategy from entry to close.

    :param strategy: Strategy consulted for exit signals and learning.
    """

    def __init__(self, strategy: Strategy) -> None:
        self.strategy = strategy

    def open_position(
        self,
        symbol: str,
        signal: Signal,
        entry_price: float,
        opened_at: datetime,
        allocation: float = 0.0,
        quantity: float = 0.0,
    ) -> Position:
        """Create an open position from an entry signal.

        :param symbol: Market symbol.
        :param signal: Entry signal carrying side and stop/target levels.
        :param entry_price: Fill price of the entry.
        :param opened_at: Entry time.
        :param allocation: Quote-currency amount allocated.
        :param quantity: Base-asset quantity.
        """
        return Position(
            position_id=uuid.uuid4().hex,
            symbol=Symbol(symbol),
            signal=signal.side,
            entry_price=entry_price,
            stop_loss=signal.stop_loss,
            take_profit=signal.take_profit,
            allocation=allocation,
            quantity=quantity,
            strategy_name=self.strategy.name,
            opened_at=opened_at,
            market_conditions=signal.metadata.model_dump(mode="json"),
        )

    def check_hard_exit(
        self,
        position: Position,
        price: float,
        fill_at_level: bool = True,
    ) -> ExitDecision | None:
        """Check the stop-loss, then the take-profit, against ``price``.

        :param position: Open position.
        :param price: Observed price.
        :param fill_at_level: Book the close at the stop/target level instead
            of the observed price.
        :returns: Exit decision, or None when neither level is crossed.
        """
        reason: ExitReason | None = None
        level: float | None = None

        if position.signal is Side.LONG:
            if position.stop_loss is not None and price <= position.stop_loss:
                reason, level = ExitReason.STOP_LOSS, position.stop_loss
            elif position.take_profit is not None and price >= position.take_profit:
                reason, level = ExitReason.TAKE_PROFIT, position.take_profit
        else:
            if position.stop_loss is not None and price >= position.stop_loss:
                reason, level = ExitReason.STOP_LOSS, position.stop_loss
            elif position.take_profit is not None and price <= position.take_profit:
                reason, level = ExitReason.TAKE_PROFIT, position.take_profit

        if reason is None or level is None:
            return None

        exit_price = level if fill_at_level else price
        return ExitDecision(
            reason=reason,
            exit_price=exit_price,
            pnl_percent=compute_pnl_percent(position.signal, position.entry_price, exit_price),
        )

    def evaluate(
        self,
        position: Position,
        price: float,
        candles: list[Candle],
        fill_at_level: bool = False,
    ) -> ExitDecision | None:
        """Decide whether an open position closes at ``price``.

        Strategy exits learn inside the strategy's exit check. Hard exits do
        not learn here; their update is applied by :meth:`close` once the
        close has actually happened.

        :param position: Open position.
        :param price: Observed price, normally the close of the newest candle.
        :param candles: Trailing candle window.
        :param fill_at_level: Book hard exits at the stop/target level.
        :returns: Exit decision, or None to keep holding.
        :raises PositionClosedError: If the position is already closed.
        """
        self._ensure_open(position)

        decision = self.check_hard_exit(position, price, fill_at_level=fill_at_level)
        if decision is not None:
            return decision

        if self.strategy.check_exit_signal(candles, position):
            return ExitDecision(
                reason=ExitReason.STRATEGY_EXIT_SIGNAL,
                exit_price=price,
                pnl_percent=compute_pnl_percent(position.signal, position.entry_price, price),
            )
        return None

    def force_close_decision(self, position: Position, price: float) -> ExitDecision:
        """Close at ``price`` because the replay period ended.

        :raises PositionClosedError: If the position is already closed.
        """
        self._ensure_open(position)

        return ExitDecision(
            reason=ExitReason.FORCED_END_OF_PERIOD,
            exit_price=price,
            pnl_percent=compute_pnl_percent(position.signal, position.entry_price, price),
        )

    def close(
        self,
        position: Position,
        decision: ExitDecision,
        closed_at: datetime,
        candles: list[Candle],
    ) -> Position:
        """Apply the terminal mutation described by ``decision``.

        Stop-loss, take-profit and forced closes then learn from the realized
        PnL against the state of ``candles``.

        :raises PositionClosedError: If the position is already closed.
        """
        position.close(
            exit_price=decision.exit_price,
            exit_reason=decision.reason,
            pnl_percent=decision.pnl_percent,
            closed_at=closed_at,
        )
        if decision.learns_on_close:
            self.strategy.learn_from_close(candles, position.signal, decision.pnl_percent)
        logger.info(
            "Closed %s %s at %.8g (%s), PnL %.2f%%",
            position.symbol,
            position.signal.value,
            decision.exit_price,
            decision.reason.value,
            decision.pnl_percent,
        )
        return position

    @staticmethod
    def _ensure_open(position: Position) -> None:
        if not position.is_open:
            raise PositionClosedError(
                f"Position {position.position_id} for {position.symbol} is already closed"
            )
