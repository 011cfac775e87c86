"""Persistence interfaces for learned models, performance and positions."""

from __future__ import annotations

import logging
import os
import re
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path

from rltrader.rl.qtable import QTable
from rltrader.types import FrozenModel, Position, QTableSummary, StrategyPerformance, Symbol

logger = logging.getLogger(__name__)

HOME_ENV_VAR = "RLTRADER_HOME"


def default_root() -> Path:
    """Storage root: ``$RLTRADER_HOME`` if set, else ``~/.rltrader``."""
    env_root = os.environ.get(HOME_ENV_VAR)
    if env_root:
        return Path(env_root)
    return Path.home() / ".rltrader"


def sanitize_name(name: str) -> str:
    """Strip everything but ASCII letters and digits."""
    return re.sub(r"[^a-zA-Z0-9]", "", name)


class ModelRef(FrozenModel):
    """Identifies a stored model by its sanitized symbol and strategy names."""

    symbol: str
    strategy: str


class LearningCurve(QTableSummary):
    """Q-table statistics combined with the recorded performance.

    Performance fields are None when no trade has been recorded.
    """

    win_rate: float | None = None
    profit_loss_ratio: float | None = None
    total_trades: int | None = None


class ModelStore(ABC):
    """Stores Q-table blobs and trade performance per (symbol, strategy)."""

    @abstractmethod
    def load_model(self, symbol: str, strategy_name: str) -> str | None:
        """Return the stored blob, or None when no model was saved."""
        ...

    @abstractmethod
    def save_model(self, symbol: str, strategy_name: str, blob: str | None) -> bool:
        """Store a blob, replacing any previous one.

        :returns: False when ``blob`` is empty and nothing was stored.
        :raises StorageError: If writing fails.
        """
        ...

    @abstractmethod
    def get_strategy_performance(
        self, symbol: str, strategy_name: str
    ) -> StrategyPerformance | None:
        """Return aggregated performance, or None before the first trade."""
        ...

    @abstractmethod
    def _put_performance(self, performance: StrategyPerformance) -> None:
        """Persist an updated performance record."""
        ...

    @abstractmethod
    def list_models(self) -> list[ModelRef]:
        """List every stored model."""
        ...

    def record_trade_result(
        self,
        symbol: str,
        strategy_name: str,
        is_win: bool,
        pnl_percent: float,
    ) -> StrategyPerformance:
        """Fold one closed trade into the stored performance.

        :param symbol: Market symbol.
        :param strategy_name: Strategy that managed the trade.
        :param is_win: Whether the trade closed with a positive PnL.
        :param pnl_percent: Realized PnL in percent.
        :returns: Updated performance record.
        :raises StorageError: If reading or writing fails.
        """
        performance = self.get_strategy_performance(symbol, strategy_name)
        if performance is None:
            performance = StrategyPerformance(symbol=Symbol(symbol), strategy_name=strategy_name)

        performance.record(is_win, pnl_percent, at=datetime.now(timezone.utc))
        self._put_performance(performance)

        logger.info(
            "Trade result recorded for %s (%s): win=%s pnl=%.2f%%",
            symbol,
            strategy_name,
            is_win,
            pnl_percent,
        )
        return performance

    def learning_curve(self, symbol: str, strategy_name: str) -> LearningCurve | None:
        """Summarize the stored Q-table with the recorded performance.

        :returns: Learning-curve statistics, or None when no model is stored.
        :raises ValueError: If the stored blob is not a valid Q-table.
        """
        blob = self.load_model(symbol, strategy_name)
        if not blob:
            return None

        summary = QTable.from_json(blob).summary()
        performance = self.get_strategy_performance(symbol, strategy_name)
        if performance is None:
            return LearningCurve(**summary.model_dump())
        return LearningCurve(
            **summary.model_dump(),
            win_rate=performance.win_rate,
            profit_loss_ratio=performance.profit_loss_ratio,
            total_trades=performance.total_trades,
        )


class PositionStore(ABC):
    """Stores managed positions across cycles."""

    @abstractmethod
    def all_positions(self) -> list[Position]:
        """Every stored position, open or closed, in insertion order."""
        ...

    @abstractmethod
    def add(self, position: Position) -> None:
        """Store a new position.

        :raises StorageError: If a position with the same id exists or
            writing fails.
        """
        ...

    @abstractmethod
    def update(self, position: Position) -> None:
        """Replace a stored position with the same id.

        :raises StorageError: If the position is unknown or writing fails.
        """
        ...

    def open_positions(self, strategy_name: str) -> list[Position]:
        """Open positions managed by ``strategy_name``."""
        return [
            p for p in self.all_positions() if p.is_open and p.strategy_name == strategy_name
        ]

    def get_open(self, symbol: str, strategy_name: str) -> Position | None:
        """The open position of ``symbol`` under ``strategy_name``, if any."""
        for position in self.open_positions(strategy_name):
            if position.symbol == symbol:
                return position
        return None

    def count_open(self, strategy_name: str) -> int:
        return len(self.open_positions(strategy_name))
