"""Q-learning strategy trading between Bollinger support and resistance.

The strategy discretizes each candle window into a band/RSI state, picks an
action from its Q-table, and learns from the transitions it observes while
flat and while holding a position.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import numpy as np

from rltrader.exceptions import IndicatorUnavailableError
from rltrader.rl.features import TechnicalIndicators
from rltrader.rl.qtable import QTable
from rltrader.rl.rewards import PositionReward, RewardFunction
from rltrader.rl.state import StateEncoder
from rltrader.strategies.base import Strategy
from rltrader.types import Action, Side, Signal, SignalMetadata, StateKey

if TYPE_CHECKING:
    from rltrader.types import (
        Candle,
        IndicatorSnapshot,
        PerformanceSummary,
        Position,
        StrategySettings,
    )

logger = logging.getLogger(__name__)


class RLBandStrategy(Strategy):
    """Tabular Q-learning strategy over Bollinger band and RSI states.

    One instance holds one Q-table and one pending ``(last_state,
    last_action)`` memory. Every entry or exit evaluation first learns from
    the pending memory, then records its own decision as the new memory.

    Example usage::

        strategy = RLBandStrategy({"seed": 42})
        signal = strategy.check_entry_signal(candles, "BTCUSDT")
        if signal is not None:
            print(signal.side, signal.stop_loss, signal.take_profit)

    :param params: Strategy parameters:
        - alpha: Learning rate (default: 0.3)
        - gamma: Discount factor (default: 0.7)
        - epsilon: Exploration rate (default: 0.2)
        - stop_loss_percentage: Stop distance in percent (default: 1.0)
        - take_profit_percentage: Target distance in percent (default: 2.0)
        - risk_per_trade: Balance percentage risked per trade (default: 2.0)
        - max_positions: Max concurrently open positions (default: 3)
        - timeframe: Candle timeframe (default: "15m")
        - seed: Seed for exploration draws (default: None)
    :param rng: Random generator for exploration; overrides ``seed``.
    :param reward_function: Reward model (default: :class:`PositionReward`).
    :param encoder: State encoder (default: :class:`StateEncoder`).
    """

    name = "RL Support-Resistance Strategy"

    window_size = 20
    band_period = 20
    band_deviation = 2.0
    rsi_period = 14
    atr_period = 14

    def __init__(
        self,
        params: dict[str, Any] | None = None,
        rng: np.random.Generator | None = None,
        reward_function: RewardFunction | None = None,
        encoder: StateEncoder | None = None,
    ) -> None:
        super().__init__(params)
        self.alpha = float(self.params.get("alpha", 0.3))
        self.gamma = float(self.params.get("gamma", 0.7))
        self.epsilon = float(self.params.get("epsilon", 0.2))
        self.stop_loss_percentage = float(self.params.get("stop_loss_percentage", 1.0))
        self.take_profit_percentage = float(self.params.get("take_profit_percentage", 2.0))
        self.risk_per_trade = float(self.params.get("risk_per_trade", 2.0))
        self.max_positions = int(self.params.get("max_positions", 3))
        self.timeframe = str(self.params.get("timeframe", "15m"))

        self.rng = rng if rng is not None else np.random.default_rng(self.params.get("seed"))
        self.q_table = QTable(alpha=self.alpha, gamma=self.gamma, rng=self.rng)
        self.reward_function = reward_function or PositionReward()
        self.encoder = encoder or StateEncoder()
        self.indicators = TechnicalIndicators(
            band_period=self.band_period,
            band_deviation=self.band_deviation,
            rsi_period=self.rsi_period,
            atr_period=self.atr_period,
        )

        self.last_state: StateKey | None = None
        self.last_action: Action | None = None
        self.last_reward = 0.0

    @classmethod
    def from_settings(
        cls,
        settings: StrategySettings,
        rng: np.random.Generator | None = None,
    ) -> RLBandStrategy:
        """Build a strategy from validated configuration settings."""
        return cls(settings.model_dump(), rng=rng)

    # ------------------------------------------------------------------
    # Observation and learning
    # ------------------------------------------------------------------

    def observe(self, candles: list[Candle]) -> tuple[IndicatorSnapshot, StateKey | None]:
        """Compute the indicators and state key of a candle window.

        :raises IndicatorUnavailableError: If the window is empty.
        """
        indicators = self.indicators.compute(candles)
        return indicators, self.encoder.encode(indicators)

    def learn(
        self,
        current_state: StateKey,
        position_side: Side | None,
        pnl_percent: float | None,
    ) -> None:
        """Apply one Bellman update from the pending memory to ``current_state``.

        Does nothing until the strategy has taken its first decision.

        :param current_state: State reached by the pending action.
        :param position_side: Side of the position held, None when flat.
        :param pnl_percent: Realized PnL when a position just closed.
        """
        if not self.last_state or self.last_action is None:
            return

        reward = self.reward_function.compute(self.last_action, position_side, pnl_percent)
        self.q_table.update(self.last_state, self.last_action, reward, current_state)
        self.last_reward = reward

    def learn_from_close(
        self,
        candles: list[Candle],
        position_side: Side,
        pnl_percent: float,
    ) -> None:
        try:
            _, state = self.observe(candles)
        except IndicatorUnavailableError as e:
            logger.warning("Skipping close update: %s", e)
            return
        if state:
            self.learn(state, position_side, pnl_percent)

    def _decide(self, state: StateKey) -> Action:
        action = self.q_table.best_action(state, self.epsilon)
        self.last_state = state
        self.last_action = action
        return action

    # ------------------------------------------------------------------
    # Signals
    # ------------------------------------------------------------------

    def check_entry_signal(self, candles: list[Candle], symbol: str) -> Signal | None:
        """Evaluate a flat symbol and return a long/short signal or None.

        Learns from the pending memory as a flat transition, then picks the
        best action for the current state. ``hold`` yields no signal.
        """
        try:
            indicators, state = self.observe(candles)
            if state is None:
                return None

            self.learn(state, None, None)
            action = self._decide(state)
            if action is Action.HOLD:
                return None

            return self._build_signal(Side(action.value), state, indicators)
        except IndicatorUnavailableError as e:
            logger.warning("No entry signal for %s: %s", symbol, e)
            return None
        except Exception:
            logger.error("Error in entry evaluation for %s", symbol, exc_info=True)
            return None

    def check_exit_signal(self, candles: list[Candle], position: Position) -> bool:
        """Return True when the best action now opposes the held side.

        Learns with the position side and, when it is non-zero, the running
        PnL of the position.
        """
        try:
            _, state = self.observe(candles)
            if state is None:
                return False

            self.learn(state, position.signal, position.pnl_percent or None)
            action = self._decide(state)
            return action is position.signal.opposite.action
        except IndicatorUnavailableError as e:
            logger.warning("No exit signal for %s: %s", position.symbol, e)
            return False
        except Exception:
            logger.error("Error in exit evaluation for %s", position.symbol, exc_info=True)
            return False

    def _build_signal(
        self,
        side: Side,
        state: StateKey,
        indicators: IndicatorSnapshot,
    ) -> Signal:
        price = indicators.current_price
        stop_offset = self.stop_loss_percentage / 100
        target_offset = self.take_profit_percentage / 100

        if side is Side.LONG:
            stop_loss = price * (1 - stop_offset)
            take_profit = price * (1 + target_offset)
        else:
            stop_loss = price * (1 + stop_offset)
            take_profit = price * (1 - target_offset)

        return Signal(
            side=side,
            confidence=self.q_table.get(state, side.action),
            entry_price=price,
            stop_loss=stop_loss,
            take_profit=take_profit,
            metadata=SignalMetadata(
                strategy=self.name,
                timeframe=self.timeframe,
                indicators=indicators,
                state=state,
            ),
        )

    # ------------------------------------------------------------------
    # Sizing
    # ------------------------------------------------------------------

    def calculate_position_size(self, balance: float, current_price: float, atr: float) -> float:
        """Risk-based position size in quote currency.

        Risks ``risk_per_trade`` percent of the balance against a stop placed
        1.5 ATR away.

        :param balance: Account balance.
        :param current_price: Current asset price.
        :param atr: Average true range of the asset.
        :returns: Position size in quote currency (0 when ATR is not positive).
        """
        stop_distance = atr * 1.5
        if stop_distance <= 0:
            return 0.0
        risk = balance * self.risk_per_trade / 100
        return risk / stop_distance * current_price

    # ------------------------------------------------------------------
    # Performance feedback
    # ------------------------------------------------------------------

    def adjust_stop_loss(self, symbol: str, performance: PerformanceSummary | None) -> None:
        """Tighten the stop on a high win rate and widen it on a low one."""
        if performance is None:
            return

        win_rate = performance.win_rate or 0.5
        if win_rate > 0.7:
            self.stop_loss_percentage = 0.8
        elif win_rate < 0.3:
            self.stop_loss_percentage = 1.2
        else:
            self.stop_loss_percentage = 1.0

        logger.info(
            "Adjusted stop loss for %s from win rate %.2f: %.1f%%",
            symbol,
            win_rate,
            self.stop_loss_percentage,
        )

    def adjust_take_profit(self, symbol: str, performance: PerformanceSummary | None) -> None:
        """Raise the target on a high profit/loss ratio and lower it on a low one."""
        if performance is None:
            return

        ratio = performance.profit_loss_ratio or 1.0
        if ratio > 2.0:
            self.take_profit_percentage = 2.5
        elif ratio < 0.5:
            self.take_profit_percentage = 1.5
        else:
            self.take_profit_percentage = 2.0

        logger.info(
            "Adjusted take profit for %s from profit/loss ratio %.2f: %.1f%%",
            symbol,
            ratio,
            self.take_profit_percentage,
        )

    def adjust_learning_parameters(self, total_trades: int) -> None:
        """Decay exploration as trades accumulate. Epsilon never increases."""
        if total_trades > 100:
            self.epsilon = min(self.epsilon, 0.1)
        elif total_trades > 50:
            self.epsilon = min(self.epsilon, 0.15)

        logger.info("Adjusted learning parameters: epsilon=%.2f", self.epsilon)

    def apply_performance(self, symbol: str, performance: PerformanceSummary | None) -> None:
        if performance is None:
            return
        self.adjust_stop_loss(symbol, performance)
        self.adjust_take_profit(symbol, performance)
        self.adjust_learning_parameters(performance.total_trades or 0)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save_model(self) -> str | None:
        """Serialize the Q-table. Other fields are not persisted."""
        try:
            return self.q_table.to_json()
        except (TypeError, ValueError):
            logger.error("Error serializing Q-table", exc_info=True)
            return None

    def load_model(self, blob: str | None) -> bool:
        """Replace the Q-table with a serialized one.

        :returns: False when ``blob`` is empty or malformed.
        """
        if not blob:
            return False

        try:
            table = QTable.from_json(blob, alpha=self.alpha, gamma=self.gamma, rng=self.rng)
        except ValueError:
            logger.error("Error loading Q-table", exc_info=True)
            return False

        self.q_table = table
        logger.info("RL model loaded with %d states", len(table))
        return True
