"""Trading strategies."""

from rltrader.strategies.base import Strategy
from rltrader.strategies.pool import EngineScope, StrategyPool
from rltrader.strategies.rl_band import RLBandStrategy

__all__ = [
    "Strategy",
    "RLBandStrategy",
    "StrategyPool",
    "EngineScope",
]
