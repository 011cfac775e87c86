"""Order execution for live and paper trading."""

from rltrader.paper.exchange import OrderExecution, PaperExchange

__all__ = [
    "OrderExecution",
    "PaperExchange",
]
