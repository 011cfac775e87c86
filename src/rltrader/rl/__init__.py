"""Reinforcement learning building blocks for the trading strategy.

Provides indicator computation, state discretization, the tabular
action-value store and reward functions.
"""

from rltrader.rl.features import TechnicalIndicators, compute_indicators
from rltrader.rl.qtable import ACTIONS, QTable
from rltrader.rl.rewards import PositionReward, RewardFunction
from rltrader.rl.state import StateEncoder, encode_state, price_bucket, rsi_bucket

__all__ = [
    # Features
    "TechnicalIndicators",
    "compute_indicators",
    # State
    "StateEncoder",
    "encode_state",
    "price_bucket",
    "rsi_bucket",
    # Q-table
    "ACTIONS",
    "QTable",
    # Rewards
    "RewardFunction",
    "PositionReward",
]
