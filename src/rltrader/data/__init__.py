"""Market data source management module."""

from rltrader.data.sources import (CandleSource, CSVCandleSource,
                                   InMemoryCandleSource, YahooCandleSource,
                                   resolve_candle_source, select_candles)

__all__ = [
    "CandleSource",
    "YahooCandleSource",
    "CSVCandleSource",
    "InMemoryCandleSource",
    "resolve_candle_source",
    "select_candles",
]
