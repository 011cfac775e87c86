"""Watchlist-wide training runner.

Trains every watched symbol in turn and rolls the per-symbol statistics up
into one summary.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from rltrader.notify import safe_notify
from rltrader.types import SymbolTrainingStats, WatchlistTrainingResult

if TYPE_CHECKING:
    from datetime import datetime

    from rltrader.notify import Notifier
    from rltrader.training.backtest import BacktestSimulator

logger = logging.getLogger(__name__)


class MultiSymbolTrainer:
    """Run the backtest simulator over a watchlist.

    Example usage::

        trainer = MultiSymbolTrainer(simulator, ["BTC-USD", "ETH-USD"])
        summary = trainer.train_all(days=30)
        print(f"Overall win rate: {summary.overall_win_rate:.2f}%")

    :param simulator: Simulator used for each symbol.
    :param watchlist: Symbols to train, in order.
    :param notifier: Optional notification sink.
    """

    def __init__(
        self,
        simulator: BacktestSimulator,
        watchlist: list[str],
        notifier: Notifier | None = None,
    ) -> None:
        self.simulator = simulator
        self.watchlist = list(watchlist)
        self.notifier = notifier

    def train_all(self, days: int = 30, end_time: datetime | None = None) -> WatchlistTrainingResult:
        """Train every symbol and aggregate the results.

        Symbols without enough history are left out of the summary.
        """
        logger.info(
            "Starting training for all %d symbols with %d days of data", len(self.watchlist), days
        )
        safe_notify(
            self.notifier,
            f"Starting training for all {len(self.watchlist)} symbols with {days} days of data",
        )

        summary = WatchlistTrainingResult()
        for symbol in self.watchlist:
            logger.info("Training symbol: %s", symbol)
            result = self.simulator.train_on_history(symbol, days, end_time=end_time)
            if result is None:
                continue

            summary.total_trades += result.total_trades
            summary.winning_trades += result.win_count
            summary.symbols[symbol] = SymbolTrainingStats(
                trades=result.total_trades,
                win_rate=result.win_rate,
                profit_loss_ratio=result.profit_loss_ratio,
            )

        message = format_training_summary(summary)
        logger.info(message)
        safe_notify(self.notifier, message)
        return summary


def format_training_summary(summary: WatchlistTrainingResult) -> str:
    """Plain-text summary, symbols with trades sorted by win rate."""
    lines = [
        "Training completed for all symbols",
        f"Total trades: {summary.total_trades}",
        f"Winning trades: {summary.winning_trades}",
        f"Overall win rate: {summary.overall_win_rate:.2f}%",
        "",
        "Performance by symbol:",
    ]
    ranked = sorted(
        ((symbol, stats) for symbol, stats in summary.symbols.items() if stats.trades > 0),
        key=lambda item: item[1].win_rate,
        reverse=True,
    )
    for symbol, stats in ranked:
        lines.append(f"{symbol}: {stats.trades} trades, {stats.win_rate * 100:.2f}% win rate")
    return "\n".join(lines)
