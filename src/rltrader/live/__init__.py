"""Live trading loop over strategy-managed positions."""

from rltrader.live.controller import CycleReport, LiveCycleController

__all__ = [
    "CycleReport",
    "LiveCycleController",
]
