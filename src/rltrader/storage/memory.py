"""In-memory stores for tests and dry runs."""

from __future__ import annotations

from rltrader.exceptions import StorageError
from rltrader.storage.base import ModelRef, ModelStore, PositionStore, sanitize_name
from rltrader.types import Position, StrategyPerformance


class InMemoryModelStore(ModelStore):
    """Model store keeping blobs and performance in dictionaries.

    ``saves`` records every ``(symbol, strategy_name)`` pair saved, in order.
    """

    def __init__(self) -> None:
        self.models: dict[tuple[str, str], str] = {}
        self.performance: dict[tuple[str, str], StrategyPerformance] = {}
        self.saves: list[tuple[str, str]] = []

    def load_model(self, symbol: str, strategy_name: str) -> str | None:
        return self.models.get((symbol, strategy_name))

    def save_model(self, symbol: str, strategy_name: str, blob: str | None) -> bool:
        if not blob:
            return False
        self.models[(symbol, strategy_name)] = blob
        self.saves.append((symbol, strategy_name))
        return True

    def get_strategy_performance(
        self, symbol: str, strategy_name: str
    ) -> StrategyPerformance | None:
        performance = self.performance.get((symbol, strategy_name))
        return performance.model_copy() if performance is not None else None

    def _put_performance(self, performance: StrategyPerformance) -> None:
        key = (str(performance.symbol), performance.strategy_name)
        self.performance[key] = performance.model_copy()

    def list_models(self) -> list[ModelRef]:
        return [
            ModelRef(symbol=sanitize_name(symbol), strategy=sanitize_name(strategy))
            for symbol, strategy in sorted(self.models)
        ]


class InMemoryPositionStore(PositionStore):
    """Position store keeping positions in a list."""

    def __init__(self, positions: list[Position] | None = None) -> None:
        self.positions: list[Position] = list(positions or [])

    def all_positions(self) -> list[Position]:
        return list(self.positions)

    def add(self, position: Position) -> None:
        if any(p.position_id == position.position_id for p in self.positions):
            raise StorageError(f"Position {position.position_id} already stored")
        self.positions.append(position)

    def update(self, position: Position) -> None:
        for i, stored in enumerate(self.positions):
            if stored.position_id == position.position_id:
                self.positions[i] = position
                return
        raise StorageError(f"Unknown position {position.position_id}")
