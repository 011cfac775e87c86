"""Tabular action-value store with epsilon-greedy selection."""

from __future__ import annotations

import json
import logging
from typing import Any

import numpy as np

from rltrader.types import Action, QTableSummary

logger = logging.getLogger(__name__)

# Order used for uniform exploration draws
ACTIONS: tuple[Action, ...] = (Action.LONG, Action.SHORT, Action.HOLD)


class QTable:
    """State to action-value mapping updated with the Bellman rule.

    Rows are created with every action at 0.0 the first time a state is
    touched by selection or update.

    :param alpha: Learning rate.
    :param gamma: Discount factor applied to the next state's best value.
    :param rng: Random generator for exploration draws.
    :param seed: Seed used when ``rng`` is not given.
    """

    def __init__(
        self,
        alpha: float = 0.3,
        gamma: float = 0.7,
        rng: np.random.Generator | None = None,
        seed: int | None = None,
    ) -> None:
        self.alpha = alpha
        self.gamma = gamma
        self.rng = rng if rng is not None else np.random.default_rng(seed)
        self.values: dict[str, dict[Action, float]] = {}

    def __len__(self) -> int:
        return len(self.values)

    def __contains__(self, state: object) -> bool:
        return state in self.values

    def row(self, state: str) -> dict[Action, float]:
        """Return the action values of ``state``, creating the row if unseen."""
        if state not in self.values:
            self.values[state] = {action: 0.0 for action in ACTIONS}
        return self.values[state]

    def get(self, state: str, action: Action) -> float:
        """Stored value of ``action`` in ``state``; 0.0 if never touched."""
        row = self.values.get(state)
        if row is None:
            return 0.0
        return row.get(action, 0.0)

    def best_action(self, state: str, epsilon: float) -> Action:
        """Select an action epsilon-greedily.

        Exploitation prefers ``hold`` and switches only on a strictly greater
        value, checking ``long`` before ``short``.

        :param state: State to select in.
        :param epsilon: Probability of a uniformly random action.
        :returns: Chosen action.
        """
        if self.rng.random() < epsilon:
            return ACTIONS[int(self.rng.integers(len(ACTIONS)))]

        row = self.row(state)
        best = Action.HOLD
        best_value = row[Action.HOLD]
        for action in (Action.LONG, Action.SHORT):
            if row[action] > best_value:
                best = action
                best_value = row[action]
        return best

    def update(
        self,
        state: str | None,
        action: Action,
        reward: float,
        next_state: str | None,
    ) -> float | None:
        """Apply one Bellman update to ``Q[state][action]``.

        Both rows exist after the call. No-op when either state is missing.

        :returns: The updated value, or None when nothing was updated.
        """
        if not state or not next_state:
            return None

        row = self.row(state)
        max_next = max(self.row(next_state).values())

        old_value = row[action]
        new_value = old_value + self.alpha * (reward + self.gamma * max_next - old_value)
        row[action] = new_value

        logger.debug(
            "Q-value updated: state=%s action=%s reward=%.4f value=%.4f",
            state,
            action.value,
            reward,
            new_value,
        )
        return new_value

    def to_dict(self) -> dict[str, dict[str, float]]:
        return {
            state: {action.value: value for action, value in row.items()}
            for state, row in self.values.items()
        }

    def to_json(self) -> str:
        """Serialize as ``{state: {"long": q, "short": q, "hold": q}}``."""
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(cls, blob: str, **kwargs: Any) -> QTable:
        """Rebuild a table from :meth:`to_json` output.

        :param blob: Serialized table.
        :param kwargs: Constructor arguments for the new table.
        :raises ValueError: If the blob is not a valid serialized table.
        """
        raw = json.loads(blob)
        if not isinstance(raw, dict):
            raise ValueError("Q-table blob must be a JSON object")

        table = cls(**kwargs)
        for state, raw_row in raw.items():
            if not isinstance(raw_row, dict):
                raise ValueError(f"Q-table row for state '{state}' must be an object")
            row: dict[Action, float] = {}
            for action in ACTIONS:
                value = raw_row.get(action.value, 0.0)
                if isinstance(value, bool) or not isinstance(value, (int, float)):
                    raise ValueError(
                        f"Q-table value '{action.value}' for state '{state}' must be a number"
                    )
                row[action] = float(value)
            table.values[state] = row
        return table

    def summary(self) -> QTableSummary:
        """Learning-curve statistics of the current table."""
        if not self.values:
            return QTableSummary(state_count=0)

        matrix = np.array(
            [[row[action] for action in ACTIONS] for row in self.values.values()],
            dtype=np.float64,
        )
        averages = matrix.mean(axis=0)
        maxima = matrix.max(axis=0)
        return QTableSummary(
            state_count=len(self.values),
            avg_q_long=float(averages[0]),
            avg_q_short=float(averages[1]),
            avg_q_hold=float(averages[2]),
            max_q_long=float(maxima[0]),
            max_q_short=float(maxima[1]),
            max_q_hold=float(maxima[2]),
            states_with_positive_q=int((matrix.max(axis=1) > 0).sum()),
        )
