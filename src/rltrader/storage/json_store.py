"""File-backed model and performance storage.

Layout under the storage root::

    {root}/models/{symbol}_{strategy}.json   Q-table blobs
    {root}/performance.json                  {strategy: {symbol: performance}}

Symbol and strategy names are reduced to ASCII letters and digits in file
names.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from rltrader.exceptions import StorageError
from rltrader.storage.base import ModelRef, ModelStore, default_root, sanitize_name
from rltrader.types import StrategyPerformance

logger = logging.getLogger(__name__)


class JsonModelStore(ModelStore):
    """Model store writing one JSON file per model and one performance file.

    :param root: Storage root directory (default: :func:`default_root`).
    """

    PERFORMANCE_FILE = "performance.json"

    def __init__(self, root: str | Path | None = None) -> None:
        self.root = Path(root) if root is not None else default_root()
        self.models_dir = self.root / "models"
        self.performance_path = self.root / self.PERFORMANCE_FILE

    def model_path(self, symbol: str, strategy_name: str) -> Path:
        """File path of the model stored for ``(symbol, strategy_name)``."""
        return self.models_dir / f"{sanitize_name(symbol)}_{sanitize_name(strategy_name)}.json"

    def load_model(self, symbol: str, strategy_name: str) -> str | None:
        path = self.model_path(symbol, strategy_name)
        if not path.exists():
            logger.info("No saved model found for %s (%s)", symbol, strategy_name)
            return None

        try:
            return path.read_text(encoding="utf-8")
        except OSError as e:
            raise StorageError(f"Failed to read model for {symbol}: {e}") from e

    def save_model(self, symbol: str, strategy_name: str, blob: str | None) -> bool:
        if not blob:
            logger.warning("No model data to save for %s (%s)", symbol, strategy_name)
            return False

        path = self.model_path(symbol, strategy_name)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(blob, encoding="utf-8")
        except OSError as e:
            raise StorageError(f"Failed to save model for {symbol}: {e}") from e

        logger.debug("Model saved for %s (%s) at %s", symbol, strategy_name, path)
        return True

    def list_models(self) -> list[ModelRef]:
        if not self.models_dir.exists():
            return []

        models = []
        for path in sorted(self.models_dir.glob("*.json")):
            symbol, _, strategy = path.stem.partition("_")
            models.append(ModelRef(symbol=symbol, strategy=strategy))
        return models

    def _read_performance(self) -> dict[str, dict[str, Any]]:
        if not self.performance_path.exists():
            return {}

        try:
            with open(self.performance_path, encoding="utf-8") as f:
                raw = json.load(f)
        except OSError as e:
            raise StorageError(f"Failed to read performance file: {e}") from e
        except json.JSONDecodeError as e:
            raise StorageError(
                f"Invalid JSON in performance file {self.performance_path}: {e}"
            ) from e

        if not isinstance(raw, dict):
            raise StorageError(f"Performance file {self.performance_path} must hold an object")
        return raw

    def get_strategy_performance(
        self, symbol: str, strategy_name: str
    ) -> StrategyPerformance | None:
        raw = self._read_performance().get(strategy_name, {}).get(symbol)
        if raw is None:
            return None

        try:
            return StrategyPerformance.model_validate(raw)
        except ValidationError as e:
            raise StorageError(
                f"Invalid performance record for {symbol} ({strategy_name}): {e}"
            ) from e

    def _put_performance(self, performance: StrategyPerformance) -> None:
        data = self._read_performance()
        data.setdefault(performance.strategy_name, {})[str(performance.symbol)] = (
            performance.model_dump(mode="json")
        )

        try:
            self.root.mkdir(parents=True, exist_ok=True)
            with open(self.performance_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
        except OSError as e:
            raise StorageError(f"Failed to write performance file: {e}") from e
