"""Persistence for learned models, trade performance and positions."""

from rltrader.storage.base import (
    HOME_ENV_VAR,
    LearningCurve,
    ModelRef,
    ModelStore,
    PositionStore,
    default_root,
    sanitize_name,
)
from rltrader.storage.json_store import JsonModelStore
from rltrader.storage.memory import InMemoryModelStore, InMemoryPositionStore
from rltrader.storage.positions import JsonPositionStore

__all__ = [
    # Interfaces
    "ModelStore",
    "PositionStore",
    "ModelRef",
    "LearningCurve",
    # Implementations
    "JsonModelStore",
    "JsonPositionStore",
    "InMemoryModelStore",
    "InMemoryPositionStore",
    # Helpers
    "HOME_ENV_VAR",
    "default_root",
    "sanitize_name",
]
