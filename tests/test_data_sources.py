"""Tests for candle source implementations."""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from rltrader.data.sources import (CandleSource, CSVCandleSource,
                                   InMemoryCandleSource, YahooCandleSource,
                                   resolve_candle_source, select_candles)
from rltrader.exceptions import DataSourceError
from rltrader.types import BotConfig, Candle, Symbol

START = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_candles(count: int) -> list[Candle]:
    return [
        Candle(
            timestamp=START + timedelta(minutes=15 * i),
            open=100.0 + i,
            high=101.0 + i,
            low=99.0 + i,
            close=100.5 + i,
            volume=10.0,
        )
        for i in range(count)
    ]


class TestCandleSourceProtocol:
    """Tests for the CandleSource abstract base class."""

    def test_candle_source_is_abstract(self) -> None:
        with pytest.raises(TypeError, match="abstract"):
            CandleSource()  # type: ignore[abstract]

    def test_subclass_must_implement_get_candles(self) -> None:
        class IncompleteSource(CandleSource):
            pass

        with pytest.raises(TypeError, match="abstract"):
            IncompleteSource()  # type: ignore[abstract]


class TestSelectCandles:
    """Tests for window and count selection."""

    def test_latest_without_start(self) -> None:
        candles = make_candles(10)
        assert select_candles(candles, 3) == candles[-3:]

    def test_earliest_with_start(self) -> None:
        candles = make_candles(10)
        selected = select_candles(candles, 3, start_time=candles[2].timestamp)
        assert selected == candles[2:5]

    def test_bounds_are_inclusive(self) -> None:
        candles = make_candles(10)
        selected = select_candles(
            candles, 100, start_time=candles[2].timestamp, end_time=candles[4].timestamp
        )
        assert selected == candles[2:5]

    def test_latest_with_both_bounds(self) -> None:
        """A closed window over more candles than requested keeps the newest."""
        candles = make_candles(10)
        selected = select_candles(
            candles, 3, start_time=candles[2].timestamp, end_time=candles[7].timestamp
        )
        assert selected == candles[5:8]

    def test_sorts_by_timestamp(self) -> None:
        candles = make_candles(5)
        assert select_candles(list(reversed(candles)), 5) == candles

    def test_zero_count(self) -> None:
        assert select_candles(make_candles(5), 0) == []


class TestYahooCandleSource:
    """Tests for YahooCandleSource."""

    def test_init_with_defaults(self) -> None:
        assert YahooCandleSource().timeout == 30

    def test_init_with_custom_params(self) -> None:
        assert YahooCandleSource({"timeout": 60}).timeout == 60

    def test_unsupported_timeframe_raises_error(self) -> None:
        with patch.dict("sys.modules", {"yfinance": MagicMock()}):
            with pytest.raises(DataSourceError, match="Unsupported timeframe"):
                YahooCandleSource().get_candles("BTC-USD", "7m", 10)

    def test_get_candles_returns_candles(self) -> None:
        """get_candles converts the yfinance frame into candles."""
        import pandas as pd

        mock_df = pd.DataFrame(
            {
                "Open": [150.0, 151.0],
                "High": [155.0, 156.0],
                "Low": [148.0, 149.0],
                "Close": [153.0, 154.0],
                "Volume": [1000000, 2000000],
            },
            index=pd.DatetimeIndex(
                [
                    pd.Timestamp("2024-01-01 10:00:00", tz="UTC"),
                    pd.Timestamp("2024-01-01 10:15:00", tz="UTC"),
                ]
            ),
        )
        mock_ticker = MagicMock()
        mock_ticker.history.return_value = mock_df

        with patch.dict("sys.modules", {"yfinance": MagicMock()}):
            mock_yf = sys.modules["yfinance"]
            mock_yf.Ticker.return_value = mock_ticker

            candles = YahooCandleSource().get_candles("BTC-USD", "15m", 1)

        mock_yf.Ticker.assert_called_once_with("BTC-USD")
        _, kwargs = mock_ticker.history.call_args
        assert kwargs["interval"] == "15m"
        assert kwargs["period"] == "30d"

        assert len(candles) == 1
        assert candles[0].close == 154.0
        assert candles[0].volume == 2000000
        assert candles[0].timestamp == datetime(2024, 1, 1, 10, 15, tzinfo=timezone.utc)

    def test_window_request_uses_start_and_end(self) -> None:
        import pandas as pd

        mock_ticker = MagicMock()
        mock_ticker.history.return_value = pd.DataFrame()
        end = START + timedelta(days=1)

        with patch.dict("sys.modules", {"yfinance": MagicMock()}):
            sys.modules["yfinance"].Ticker.return_value = mock_ticker
            candles = YahooCandleSource().get_candles("ETH-USD", "1h", 24, START, end)

        assert candles == []
        _, kwargs = mock_ticker.history.call_args
        assert kwargs["start"] == START
        assert kwargs["end"] == end + timedelta(seconds=1)
        assert kwargs["interval"] == "60m"

    def test_request_failure_raises(self) -> None:
        mock_ticker = MagicMock()
        mock_ticker.history.side_effect = RuntimeError("network down")

        with patch.dict("sys.modules", {"yfinance": MagicMock()}):
            sys.modules["yfinance"].Ticker.return_value = mock_ticker
            with pytest.raises(DataSourceError, match="network down"):
                YahooCandleSource().get_candles("BTC-USD", "15m", 10)


class TestCSVCandleSource:
    """Tests for CSVCandleSource."""

    def write_csv(self, directory: Path, name: str, rows: list[str]) -> None:
        header = "timestamp,open,high,low,close,volume"
        (directory / name).write_text("\n".join([header, *rows]) + "\n")

    def test_requires_directory(self) -> None:
        with pytest.raises(DataSourceError, match="requires 'directory'"):
            CSVCandleSource()

    def test_reads_candles(self, tmp_path: Path) -> None:
        self.write_csv(
            tmp_path,
            "BTC-USD_15m.csv",
            [
                "2024-01-01T00:00:00Z,100,101,99,100.5,10",
                "2024-01-01T00:15:00Z,100.5,102,100,101.5,12",
                "2024-01-01T00:30:00,101.5,103,101,102.5,",
            ],
        )
        source = CSVCandleSource({"directory": str(tmp_path)})

        candles = source.get_candles("BTC-USD", "15m", 10)

        assert [c.close for c in candles] == [100.5, 101.5, 102.5]
        assert candles[0].timestamp == START
        assert candles[2].timestamp.tzinfo is not None
        assert candles[2].volume == 0.0

    def test_window(self, tmp_path: Path) -> None:
        self.write_csv(
            tmp_path,
            "BTC-USD_1d.csv",
            [f"2024-01-0{d}T00:00:00Z,1,1,1,{d},1" for d in range(1, 8)],
        )
        source = CSVCandleSource({"directory": str(tmp_path)})

        candles = source.get_candles(
            "BTC-USD", "1d", 10, START + timedelta(days=2), START + timedelta(days=4)
        )

        assert [c.close for c in candles] == [3.0, 4.0, 5.0]

    def test_missing_file(self, tmp_path: Path) -> None:
        source = CSVCandleSource({"directory": str(tmp_path)})
        with pytest.raises(DataSourceError, match="not found"):
            source.get_candles("BTC-USD", "15m", 10)

    def test_malformed_row(self, tmp_path: Path) -> None:
        self.write_csv(tmp_path, "BTC-USD_15m.csv", ["2024-01-01T00:00:00Z,abc,1,1,1,1"])
        source = CSVCandleSource({"directory": str(tmp_path)})
        with pytest.raises(DataSourceError, match="Failed to parse row"):
            source.get_candles("BTC-USD", "15m", 10)


class TestInMemoryCandleSource:
    """Tests for InMemoryCandleSource."""

    def test_serves_and_records(self) -> None:
        candles = make_candles(30)
        source = InMemoryCandleSource({("BTC-USD", "15m"): candles})

        assert source.get_candles("BTC-USD", "15m", 20) == candles[-20:]
        assert source.get_candles("BTC-USD", "1h", 20) == []
        assert source.requests[0] == ("BTC-USD", "15m", 20, None, None)

    def test_failing_symbol(self) -> None:
        source = InMemoryCandleSource(fail_symbols={"BAD"})
        with pytest.raises(DataSourceError):
            source.get_candles("BAD", "15m", 20)


class TestResolveCandleSource:
    """Tests for resolve_candle_source."""

    def test_yahoo(self) -> None:
        config = BotConfig(watchlist=[Symbol("BTC-USD")], source_params={"timeout": 5})
        source = resolve_candle_source(config)
        assert isinstance(source, YahooCandleSource)
        assert source.timeout == 5

    def test_csv(self, tmp_path: Path) -> None:
        config = BotConfig(
            watchlist=[Symbol("BTC-USD")],
            data_source="csv",
            source_params={"directory": str(tmp_path)},
        )
        assert isinstance(resolve_candle_source(config), CSVCandleSource)

    def test_memory(self) -> None:
        config = BotConfig(watchlist=[Symbol("BTC-USD")], data_source="memory")
        assert isinstance(resolve_candle_source(config), InMemoryCandleSource)

    def test_unknown(self) -> None:
        config = BotConfig(watchlist=[Symbol("BTC-USD")], data_source="ftp")
        with pytest.raises(DataSourceError, match="Unrecognized data source"):
            resolve_candle_source(config)
