"""Training and backtesting module."""

from rltrader.training.backtest import BacktestSimulator
from rltrader.training.multi_backtest import MultiSymbolTrainer, format_training_summary

__all__ = [
    # Backtest
    "BacktestSimulator",
    # Watchlist training
    "MultiSymbolTrainer",
    "format_training_summary",
]
