"""Technical indicators computed over a trailing candle window.

Produces the :class:`~rltrader.types.IndicatorSnapshot` the state encoder
discretizes: Bollinger bands, Wilder RSI and Wilder ATR of the newest candle.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np
from numpy.typing import NDArray

from rltrader.exceptions import IndicatorUnavailableError
from rltrader.types import BollingerBands, IndicatorSnapshot

if TYPE_CHECKING:
    from rltrader.types import Candle


class TechnicalIndicators:
    """Compute band, momentum and volatility indicators from candles.

    Each indicator is reported for the newest candle only. An indicator whose
    period is longer than the available history is reported as None.

    :param band_period: Bollinger moving-average period.
    :param band_deviation: Number of standard deviations for the bands.
    :param rsi_period: RSI smoothing period.
    :param atr_period: ATR smoothing period.
    """

    def __init__(
        self,
        band_period: int = 20,
        band_deviation: float = 2.0,
        rsi_period: int = 14,
        atr_period: int = 14,
    ) -> None:
        self.band_period = band_period
        self.band_deviation = band_deviation
        self.rsi_period = rsi_period
        self.atr_period = atr_period

    def compute(self, candles: list[Candle]) -> IndicatorSnapshot:
        """Compute the indicator snapshot of the newest candle.

        :param candles: Candle window ordered oldest to newest.
        :returns: Snapshot of the latest indicator values.
        :raises IndicatorUnavailableError: If the window is empty.
        """
        if not candles:
            raise IndicatorUnavailableError("Cannot compute indicators on an empty window")

        closes = np.array([c.close for c in candles], dtype=np.float64)
        highs = np.array([c.high for c in candles], dtype=np.float64)
        lows = np.array([c.low for c in candles], dtype=np.float64)

        return IndicatorSnapshot(
            bollinger=self._compute_bollinger(closes),
            rsi=self._compute_rsi(closes),
            atr=self._compute_atr(highs, lows, closes),
            current_price=float(closes[-1]),
        )

    def _compute_bollinger(self, closes: NDArray[np.float64]) -> BollingerBands | None:
        """Bands of the last ``band_period`` closes (population deviation)."""
        if len(closes) < self.band_period:
            return None

        window = closes[-self.band_period :]
        middle = float(np.mean(window))
        deviation = float(np.std(window))
        return BollingerBands(
            upper=middle + self.band_deviation * deviation,
            middle=middle,
            lower=middle - self.band_deviation * deviation,
        )

    def _compute_rsi(self, closes: NDArray[np.float64]) -> float | None:
        """Wilder-smoothed RSI in [0, 100]."""
        if len(closes) <= self.rsi_period:
            return None

        changes = np.diff(closes)
        gains = np.where(changes > 0, changes, 0.0)
        losses = np.where(changes < 0, -changes, 0.0)

        avg_gain = float(np.mean(gains[: self.rsi_period]))
        avg_loss = float(np.mean(losses[: self.rsi_period]))
        for gain, loss in zip(gains[self.rsi_period :], losses[self.rsi_period :]):
            avg_gain = (avg_gain * (self.rsi_period - 1) + gain) / self.rsi_period
            avg_loss = (avg_loss * (self.rsi_period - 1) + loss) / self.rsi_period

        if avg_loss == 0:
            return 100.0
        if avg_gain == 0:
            return 0.0
        rs = avg_gain / avg_loss
        return 100.0 - (100.0 / (1.0 + rs))

    def _compute_atr(
        self,
        highs: NDArray[np.float64],
        lows: NDArray[np.float64],
        closes: NDArray[np.float64],
    ) -> float | None:
        """Wilder-smoothed average true range."""
        if len(closes) <= self.atr_period:
            return None

        prev_closes = closes[:-1]
        true_ranges = np.maximum.reduce([
            highs[1:] - lows[1:],
            np.abs(highs[1:] - prev_closes),
            np.abs(lows[1:] - prev_closes),
        ])

        atr = float(np.mean(true_ranges[: self.atr_period]))
        for tr in true_ranges[self.atr_period :]:
            atr = (atr * (self.atr_period - 1) + tr) / self.atr_period
        return atr


def compute_indicators(
    candles: list[Candle],
    band_period: int = 20,
    band_deviation: float = 2.0,
    rsi_period: int = 14,
    atr_period: int = 14,
) -> IndicatorSnapshot:
    """Convenience wrapper around :class:`TechnicalIndicators`.

    :param candles: Candle window ordered oldest to newest.
    :returns: Snapshot of the latest indicator values.
    :raises IndicatorUnavailableError: If the window is empty.
    """
    return TechnicalIndicators(
        band_period=band_period,
        band_deviation=band_deviation,
        rsi_period=rsi_period,
        atr_period=atr_period,
    ).compute(candles)
