"""Trading bot exception hierarchy.

All bot-specific exceptions derive from :class:`TradingError` so callers can
catch all trading-related errors uniformly.
"""

from __future__ import annotations


class TradingError(Exception):
    """Base class for trading-related exceptions.

    Derived exceptions should extend this class so that callers can catch all
    trading-specific errors uniformly.
    """


class ConfigError(TradingError):
    """Raised when configuration files or parameters are invalid."""


class CollaboratorError(TradingError):
    """Raised when an external collaborator (exchange, store, notifier) fails.

    The cycle and training drivers catch these, log them, and continue with a
    degraded outcome for the affected symbol or day.
    """


class DataSourceError(CollaboratorError):
    """Raised when fetching candles from a data source fails."""


class ExecutionError(CollaboratorError):
    """Raised when an order or account query against the exchange fails."""


class StorageError(CollaboratorError):
    """Raised when reading from or writing to storage fails."""


class NotificationError(CollaboratorError):
    """Raised when a notification cannot be delivered."""


class StrategyError(TradingError):
    """Raised when strategy execution fails."""


class IndicatorUnavailableError(StrategyError):
    """Raised when the candle window is too short to compute indicators."""


class PositionClosedError(StrategyError):
    """Raised when a closed position is asked to close again."""


__all__ = [
    "TradingError",
    "ConfigError",
    "CollaboratorError",
    "DataSourceError",
    "ExecutionError",
    "StorageError",
    "NotificationError",
    "StrategyError",
    "IndicatorUnavailableError",
    "PositionClosedError",
]
