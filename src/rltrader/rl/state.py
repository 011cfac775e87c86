"""Discretization of indicator snapshots into Q-table state keys."""

from __future__ import annotations

from typing import TYPE_CHECKING

from rltrader.types import StateKey

if TYPE_CHECKING:
    from rltrader.types import IndicatorSnapshot


def price_bucket(price: float, upper: float, middle: float, lower: float) -> int:
    """Position of the price relative to the Bollinger bands.

    First match wins: above the upper band is 2, below the lower band is -2,
    above the middle band is 1, below it is -1. A price exactly on the middle
    band is 0.
    """
    if price > upper:
        return 2
    if price < lower:
        return -2
    if price > middle:
        return 1
    if price < middle:
        return -1
    return 0


def rsi_bucket(rsi: float | None) -> int:
    """RSI zone: overbought 2, oversold -2, strong 1, weak -1, neutral 0."""
    if rsi is None:
        return 0
    if rsi > 70:
        return 2
    if rsi < 30:
        return -2
    if rsi > 60:
        return 1
    if rsi < 40:
        return -1
    return 0


def encode_state(indicators: IndicatorSnapshot | None) -> StateKey | None:
    """Encode an indicator snapshot as ``"{price_bucket}_{rsi_bucket}"``.

    :param indicators: Snapshot to encode.
    :returns: State key, or None when the snapshot or its bands are missing.
    """
    if indicators is None or indicators.bollinger is None:
        return None

    bands = indicators.bollinger
    price = price_bucket(indicators.current_price, bands.upper, bands.middle, bands.lower)
    return StateKey(f"{price}_{rsi_bucket(indicators.rsi)}")


class StateEncoder:
    """Encoder object held by strategies; swap it to change the state space."""

    def encode(self, indicators: IndicatorSnapshot | None) -> StateKey | None:
        return encode_state(indicators)
