"""Reward functions for the Q-learning strategy.

Different reward signals encourage different trading behaviors.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from rltrader.types import Action, Side


class RewardFunction(ABC):
    """Base class for reward functions.

    Reward functions score the action taken in the previous state given the
    position that was held while it played out.
    """

    @abstractmethod
    def compute(
        self,
        action: Action,
        position_side: Side | None,
        pnl_percent: float | None,
    ) -> float:
        """Compute the reward for a transition.

        :param action: Action chosen in the previous state.
        :param position_side: Side of the position held, None when flat.
        :param pnl_percent: Realized PnL in percent when the position just
            closed, None otherwise.
        :returns: Reward value.
        """
        pass


class PositionReward(RewardFunction):
    """Reward realized PnL on closes and directional consistency otherwise.

    Gains are scaled by ``win_scale`` and losses by ``loss_scale``. While a
    position is open without a realized PnL, agreeing with its side earns
    ``consistency_bonus`` and opposing it costs the same amount.

    :param win_scale: Multiplier for positive PnL.
    :param loss_scale: Multiplier for zero or negative PnL.
    :param consistency_bonus: Reward magnitude for agreeing/opposing actions.
    """

    def __init__(
        self,
        win_scale: float = 10.0,
        loss_scale: float = 5.0,
        consistency_bonus: float = 0.1,
    ) -> None:
        self.win_scale = win_scale
        self.loss_scale = loss_scale
        self.consistency_bonus = consistency_bonus

    def compute(
        self,
        action: Action,
        position_side: Side | None,
        pnl_percent: float | None,
    ) -> float:
        """Return the scaled PnL, the consistency bonus, or 0."""
        if position_side is None:
            return 0.0

        if pnl_percent is not None:
            scale = self.win_scale if pnl_percent > 0 else self.loss_scale
            return pnl_percent * scale

        if action is position_side.action:
            return self.consistency_bonus
        if action is position_side.opposite.action:
            return -self.consistency_bonus
        return 0.0
