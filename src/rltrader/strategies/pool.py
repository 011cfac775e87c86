"""Mapping of watched symbols to the strategy instances that trade them.

In ``shared`` scope one strategy instance, with one Q-table and one pending
memory, serves every symbol. In ``per_symbol`` scope each symbol gets its own
instance, so learning and tuned risk parameters never cross symbols.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable, Literal

from rltrader.exceptions import ConfigError

if TYPE_CHECKING:
    from rltrader.storage.base import ModelStore
    from rltrader.strategies.base import Strategy

logger = logging.getLogger(__name__)

EngineScope = Literal["shared", "per_symbol"]


class StrategyPool:
    """Resolve the strategy instance serving each symbol.

    :param factory: Builds a fresh strategy instance.
    :param scope: ``"shared"`` or ``"per_symbol"``.
    """

    def __init__(self, factory: Callable[[], Strategy], scope: EngineScope = "shared") -> None:
        if scope not in ("shared", "per_symbol"):
            raise ConfigError(f"Invalid engine scope '{scope}'. Valid options: shared, per_symbol")

        self.factory = factory
        self.scope = scope
        self._prototype = factory()
        self._instances: dict[str, Strategy] = {}

    @classmethod
    def shared(cls, strategy: Strategy) -> StrategyPool:
        """Pool serving every symbol with ``strategy``."""
        return cls(lambda: strategy, scope="shared")

    @property
    def name(self) -> str:
        return self._prototype.name

    @property
    def max_positions(self) -> int:
        return self._prototype.max_positions

    @property
    def timeframe(self) -> str:
        return self._prototype.timeframe

    def for_symbol(self, symbol: str) -> Strategy:
        """Strategy instance that trades ``symbol``."""
        if self.scope == "shared":
            return self._prototype
        if symbol not in self._instances:
            self._instances[symbol] = self.factory()
        return self._instances[symbol]

    def load(self, model_store: ModelStore, symbols: list[str]) -> None:
        """Load stored models and tune parameters from recorded performance.

        In shared scope the models are loaded in ``symbols`` order into the
        same instance, so the last stored model wins.
        """
        for symbol in symbols:
            strategy = self.for_symbol(symbol)

            if strategy.load_model(model_store.load_model(symbol, self.name)):
                logger.info("Loaded model for %s", symbol)
            else:
                logger.info("No existing model found for %s, starting fresh", symbol)

            performance = model_store.get_strategy_performance(symbol, self.name)
            if performance is not None:
                strategy.apply_performance(symbol, performance.summary())
