"""File-backed store for managed positions (``{root}/positions.json``)."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from pydantic import ValidationError

from rltrader.exceptions import StorageError
from rltrader.storage.base import PositionStore, default_root
from rltrader.types import Position

logger = logging.getLogger(__name__)


class JsonPositionStore(PositionStore):
    """Position store persisting every position as a JSON list.

    :param root: Storage root directory (default: :func:`default_root`).
    """

    POSITIONS_FILE = "positions.json"

    def __init__(self, root: str | Path | None = None) -> None:
        self.root = Path(root) if root is not None else default_root()
        self.path = self.root / self.POSITIONS_FILE

    def all_positions(self) -> list[Position]:
        if not self.path.exists():
            return []

        try:
            with open(self.path, encoding="utf-8") as f:
                raw = json.load(f)
        except OSError as e:
            raise StorageError(f"Failed to read positions file: {e}") from e
        except json.JSONDecodeError as e:
            raise StorageError(f"Invalid JSON in positions file {self.path}: {e}") from e

        if not isinstance(raw, list):
            raise StorageError(f"Positions file {self.path} must hold a list")

        try:
            return [Position.model_validate(item) for item in raw]
        except ValidationError as e:
            raise StorageError(f"Invalid position record in {self.path}: {e}") from e

    def add(self, position: Position) -> None:
        positions = self.all_positions()
        if any(p.position_id == position.position_id for p in positions):
            raise StorageError(f"Position {position.position_id} already stored")

        positions.append(position)
        self._write(positions)
        logger.debug("Stored position %s for %s", position.position_id, position.symbol)

    def update(self, position: Position) -> None:
        positions = self.all_positions()
        for i, stored in enumerate(positions):
            if stored.position_id == position.position_id:
                positions[i] = position
                self._write(positions)
                return
        raise StorageError(f"Unknown position {position.position_id}")

    def _write(self, positions: list[Position]) -> None:
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump([p.model_dump(mode="json") for p in positions], f, indent=2)
        except OSError as e:
            raise StorageError(f"Failed to write positions file: {e}") from e
