"""Command implementations for the trading bot CLI."""

from rltrader.commands.bot_config import load_bot_config
from rltrader.commands.run_bot import (BotComponents, build_components,
                                       build_controller, train_watchlist)

__all__ = [
    "load_bot_config",
    "BotComponents",
    "build_components",
    "build_controller",
    "train_watchlist",
]
