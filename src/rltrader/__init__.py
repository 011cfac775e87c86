"""Reinforcement-learning trading bot package root."""

from rltrader.exceptions import ConfigError, StrategyError, TradingError

__version__ = "0.1.0"

__all__ = ["ConfigError", "StrategyError", "TradingError", "__version__"]
