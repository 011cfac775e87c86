"""Candle source implementations for fetching market data.

This module provides an abstract interface for candle sources and concrete
implementations for Yahoo Finance, CSV files and in-memory fixtures.
"""

from __future__ import annotations

import csv
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any

from rltrader.exceptions import DataSourceError
from rltrader.types import Candle

if TYPE_CHECKING:
    from rltrader.types import BotConfig


def select_candles(
    candles: list[Candle],
    count: int,
    start_time: datetime | None = None,
    end_time: datetime | None = None,
) -> list[Candle]:
    """Apply the time window and count limit shared by all sources.

    With only a ``start_time`` the earliest ``count`` candles in the window
    are returned; otherwise the latest ``count``. Both bounds are inclusive.
    """
    selected = [
        c
        for c in sorted(candles, key=lambda c: c.timestamp)
        if (start_time is None or c.timestamp >= start_time)
        and (end_time is None or c.timestamp <= end_time)
    ]
    if count <= 0:
        return []
    if start_time is not None and end_time is None:
        return selected[:count]
    return selected[-count:]


class CandleSource(ABC):
    """Abstract base class for candle sources.

    All candle source implementations must inherit from this class and
    implement the :meth:`get_candles` method.
    """

    @abstractmethod
    def get_candles(
        self,
        symbol: str,
        timeframe: str,
        count: int,
        start_time: datetime | None = None,
        end_time: datetime | None = None,
    ) -> list[Candle]:
        """Fetch candles for a symbol.

        :param symbol: Symbol to fetch.
        :param timeframe: Candle timeframe (e.g., "15m", "1h", "1d").
        :param count: Maximum number of candles to return.
        :param start_time: Optional inclusive start of the window.
        :param end_time: Optional inclusive end of the window.
        :returns: Candles ordered oldest to newest; may be fewer than ``count``.
        :raises DataSourceError: If fetching fails.
        """
        ...


class YahooCandleSource(CandleSource):
    """Candle source that fetches data from Yahoo Finance via yfinance.

    :param source_params: Optional parameters for configuring the source.
        - timeout: Request timeout in seconds (default: 30)
    """

    # Map our timeframe format to yfinance interval format
    TIMEFRAME_MAP = {
        "1m": "1m",
        "5m": "5m",
        "15m": "15m",
        "30m": "30m",
        "1h": "60m",
        "60m": "60m",
        "1d": "1d",
        "1wk": "1wk",
    }

    # Lookback requested when no window is given (within yfinance limits)
    DEFAULT_PERIODS = {
        "1m": "5d",
        "5m": "30d",
        "15m": "30d",
        "30m": "30d",
        "60m": "60d",
        "1d": "1y",
        "1wk": "5y",
    }

    def __init__(self, source_params: dict[str, Any] | None = None) -> None:
        self.params = source_params or {}
        self.timeout = self.params.get("timeout", 30)

    def get_candles(
        self,
        symbol: str,
        timeframe: str,
        count: int,
        start_time: datetime | None = None,
        end_time: datetime | None = None,
    ) -> list[Candle]:
        """Fetch candles from Yahoo Finance.

        :raises DataSourceError: If yfinance is missing, the timeframe is
            unsupported or the request fails.
        """
        try:
            import yfinance as yf
        except ImportError as e:
            raise DataSourceError(
                "yfinance is not installed. Install it with: pip install yfinance"
            ) from e

        interval = self.TIMEFRAME_MAP.get(timeframe)
        if interval is None:
            raise DataSourceError(
                f"Unsupported timeframe '{timeframe}'. "
                f"Supported: {list(self.TIMEFRAME_MAP.keys())}"
            )

        try:
            ticker = yf.Ticker(symbol)
            if start_time is not None:
                # yfinance treats end as exclusive
                end = (end_time or datetime.now(timezone.utc)) + timedelta(seconds=1)
                df = ticker.history(
                    start=start_time,
                    end=end,
                    interval=interval,
                    timeout=self.timeout,
                )
            else:
                df = ticker.history(
                    period=self.DEFAULT_PERIODS[interval],
                    interval=interval,
                    timeout=self.timeout,
                )
        except Exception as e:
            raise DataSourceError(f"Failed to fetch candles for '{symbol}': {e}") from e

        if df.empty:
            return []

        candles = []
        for timestamp, row in df.iterrows():
            ts = timestamp.to_pydatetime()
            if ts.tzinfo is None:
                ts = ts.replace(tzinfo=timezone.utc)
            candles.append(
                Candle(
                    timestamp=ts.astimezone(timezone.utc),
                    open=float(row["Open"]),
                    high=float(row["High"]),
                    low=float(row["Low"]),
                    close=float(row["Close"]),
                    volume=float(row["Volume"]),
                )
            )

        return select_candles(candles, count, start_time, end_time)


class CSVCandleSource(CandleSource):
    """Candle source that reads one CSV file per symbol and timeframe.

    Files are looked up as ``{directory}/{symbol}_{timeframe}.csv`` with the
    columns ``timestamp, open, high, low, close, volume``.

    :param source_params: Required parameters:
        - directory: Directory holding the CSV files.
        Optional parameters:
        - delimiter: CSV delimiter (default: ",")
        - timestamp_format: strptime format for timestamps (default: ISO format)
    """

    def __init__(self, source_params: dict[str, Any] | None = None) -> None:
        self.params = source_params or {}
        directory = self.params.get("directory")
        if not directory:
            raise DataSourceError("CSVCandleSource requires 'directory' in source_params")
        self.directory = Path(directory)
        self.delimiter = self.params.get("delimiter", ",")
        self.timestamp_format = self.params.get("timestamp_format")

    def path_for(self, symbol: str, timeframe: str) -> Path:
        return self.directory / f"{symbol}_{timeframe}.csv"

    def get_candles(
        self,
        symbol: str,
        timeframe: str,
        count: int,
        start_time: datetime | None = None,
        end_time: datetime | None = None,
    ) -> list[Candle]:
        """Read candles from the symbol's CSV file.

        :raises DataSourceError: If the file is missing or malformed.
        """
        path = self.path_for(symbol, timeframe)
        if not path.exists():
            raise DataSourceError(f"CSV file not found: {path}")

        candles = []
        try:
            with open(path, newline="", encoding="utf-8") as f:
                reader = csv.DictReader(f, delimiter=self.delimiter)
                for row in reader:
                    try:
                        candles.append(
                            Candle(
                                timestamp=self._parse_timestamp(row["timestamp"]),
                                open=float(row["open"]),
                                high=float(row["high"]),
                                low=float(row["low"]),
                                close=float(row["close"]),
                                volume=float(row.get("volume") or 0.0),
                            )
                        )
                    except (KeyError, ValueError) as e:
                        raise DataSourceError(f"Failed to parse row {row}: {e}") from e
        except csv.Error as e:
            raise DataSourceError(f"CSV parsing error: {e}") from e
        except OSError as e:
            raise DataSourceError(f"Failed to read CSV file: {e}") from e

        return select_candles(candles, count, start_time, end_time)

    def _parse_timestamp(self, value: str) -> datetime:
        if self.timestamp_format:
            ts = datetime.strptime(value, self.timestamp_format)
        else:
            ts = datetime.fromisoformat(value.replace("Z", "+00:00"))
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        return ts


class InMemoryCandleSource(CandleSource):
    """Candle source serving pre-loaded candles, for tests and offline runs.

    :param candles: Mapping of ``(symbol, timeframe)`` to candles.
    :param fail_symbols: Symbols whose requests raise :class:`DataSourceError`.
    """

    def __init__(
        self,
        candles: dict[tuple[str, str], list[Candle]] | None = None,
        fail_symbols: set[str] | None = None,
    ) -> None:
        self.candles: dict[tuple[str, str], list[Candle]] = dict(candles or {})
        self.fail_symbols = set(fail_symbols or ())
        self.requests: list[tuple[str, str, int, datetime | None, datetime | None]] = []

    def set_candles(self, symbol: str, timeframe: str, candles: list[Candle]) -> None:
        self.candles[(symbol, timeframe)] = list(candles)

    def get_candles(
        self,
        symbol: str,
        timeframe: str,
        count: int,
        start_time: datetime | None = None,
        end_time: datetime | None = None,
    ) -> list[Candle]:
        self.requests.append((symbol, timeframe, count, start_time, end_time))
        if symbol in self.fail_symbols:
            raise DataSourceError(f"Candles unavailable for '{symbol}'")
        return select_candles(
            self.candles.get((symbol, timeframe), []), count, start_time, end_time
        )


def resolve_candle_source(config: BotConfig) -> CandleSource:
    """Construct a candle source from configuration.

    :param config: Bot configuration with data_source and source_params.
    :returns: CandleSource instance for the specified type.
    :raises DataSourceError: If the data_source type is unrecognized.
    """
    source_type = config.data_source.lower()

    if source_type == "yahoo":
        return YahooCandleSource(config.source_params)
    elif source_type == "csv":
        return CSVCandleSource(config.source_params)
    elif source_type == "memory":
        return InMemoryCandleSource()
    else:
        raise DataSourceError(
            f"Unrecognized data source type: '{config.data_source}'. "
            f"Supported types: yahoo, csv, memory"
        )
