"""Order execution interface and a paper exchange filling at the last close."""

from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from datetime import datetime, timezone

from rltrader.data.sources import CandleSource
from rltrader.exceptions import DataSourceError, ExecutionError
from rltrader.types import OrderHandle, OrderSide, OrderSpec, Position, Side, Symbol

logger = logging.getLogger(__name__)


class OrderExecution(ABC):
    """Abstract base class for exchanges the live controller trades on."""

    @abstractmethod
    def get_current_price(self, symbol: str) -> float:
        """Latest traded price of ``symbol``.

        :raises ExecutionError: If the price is unavailable.
        """
        pass

    @abstractmethod
    def get_balance(self) -> float:
        """Available quote-currency balance."""
        pass

    @abstractmethod
    def get_quantity_precision(self, symbol: str) -> int:
        """Number of decimals allowed in order quantities for ``symbol``."""
        pass

    def adjust_precision(self, quantity: float, precision: int) -> float:
        """Round ``quantity`` down to ``precision`` decimals."""
        factor = 10**precision
        return math.floor(quantity * factor) / factor

    @abstractmethod
    def place_market_order(self, spec: OrderSpec) -> OrderHandle:
        """Open or extend a position at market."""
        pass

    @abstractmethod
    def place_stop_loss_order(self, spec: OrderSpec) -> OrderHandle:
        """Register a stop-loss order triggered at ``spec.stop_price``."""
        pass

    @abstractmethod
    def place_take_profit_order(self, spec: OrderSpec) -> OrderHandle:
        """Register a take-profit order triggered at ``spec.stop_price``."""
        pass

    @abstractmethod
    def close_position(self, symbol: str, side: OrderSide) -> OrderHandle:
        """Close the whole position on ``symbol`` with an order on ``side``."""
        pass


class PaperExchange(OrderExecution):
    """Simulated exchange for paper trading.

    Market orders fill immediately at the close of the newest candle from
    ``candle_source``. Stop and target orders are recorded but never
    triggered; the strategy's life cycle closes positions explicitly.

    Example usage::

        exchange = PaperExchange(YahooCandleSource(), balance=1000.0)
        price = exchange.get_current_price("BTC-USD")
        exchange.place_market_order(
            OrderSpec(symbol="BTC-USD", side=OrderSide.BUY, quantity=0.001)
        )

    :param candle_source: Source used to price fills.
    :param balance: Starting quote-currency balance.
    :param timeframe: Timeframe of the candles used for pricing.
    :param quantity_precision: Decimals allowed in order quantities.
    """

    def __init__(
        self,
        candle_source: CandleSource,
        balance: float = 1000.0,
        timeframe: str = "15m",
        quantity_precision: int = 3,
    ) -> None:
        self.candle_source = candle_source
        self.balance = balance
        self.timeframe = timeframe
        self.quantity_precision = quantity_precision

        self.holdings: dict[str, float] = {}
        self.pending_orders: dict[str, list[OrderHandle]] = {}
        self.orders: list[OrderHandle] = []

    def get_current_price(self, symbol: str) -> float:
        try:
            candles = self.candle_source.get_candles(symbol, self.timeframe, 1)
        except DataSourceError as e:
            raise ExecutionError(f"No price for {symbol}: {e}") from e
        if not candles:
            raise ExecutionError(f"No price for {symbol}: no candles available")
        return candles[-1].close

    def get_balance(self) -> float:
        return self.balance

    def get_quantity_precision(self, symbol: str) -> int:
        return self.quantity_precision

    def place_market_order(self, spec: OrderSpec) -> OrderHandle:
        if spec.quantity <= 0:
            raise ExecutionError(f"Order quantity must be positive, got {spec.quantity}")

        price = self.get_current_price(spec.symbol)
        signed = spec.quantity if spec.side is OrderSide.BUY else -spec.quantity
        self.holdings[spec.symbol] = self.holdings.get(spec.symbol, 0.0) + signed
        self.balance -= signed * price
        return self._record(spec.symbol, spec.side, "market", spec.quantity, price)

    def place_stop_loss_order(self, spec: OrderSpec) -> OrderHandle:
        return self._record_pending(spec, "stop_loss")

    def place_take_profit_order(self, spec: OrderSpec) -> OrderHandle:
        return self._record_pending(spec, "take_profit")

    def close_position(self, symbol: str, side: OrderSide) -> OrderHandle:
        held = self.holdings.get(symbol, 0.0)
        if held == 0:
            raise ExecutionError(f"No open position on {symbol}")

        expected = OrderSide.SELL if held > 0 else OrderSide.BUY
        if side is not expected:
            raise ExecutionError(
                f"Closing a {'long' if held > 0 else 'short'} position on {symbol} "
                f"requires a {expected.value} order, got {side.value}"
            )

        price = self.get_current_price(symbol)
        self.balance += held * price
        self.holdings.pop(symbol)
        self.pending_orders.pop(symbol, None)
        return self._record(Symbol(symbol), side, "close", abs(held), price)

    def restore_holdings(self, positions: list[Position]) -> None:
        """Rebuild holdings for positions opened by an earlier process.

        The balance is debited at each position's entry price.
        """
        for position in positions:
            if not position.is_open or position.quantity <= 0:
                continue
            signed = position.quantity if position.signal is Side.LONG else -position.quantity
            self.holdings[position.symbol] = self.holdings.get(position.symbol, 0.0) + signed
            self.balance -= signed * position.entry_price
            logger.debug("Restored paper holding %s %.8g", position.symbol, signed)

    def _record_pending(self, spec: OrderSpec, order_type: str) -> OrderHandle:
        if spec.stop_price is None:
            raise ExecutionError(f"{order_type} order on {spec.symbol} needs a stop price")
        handle = self._record(spec.symbol, spec.side, order_type, spec.quantity, spec.stop_price)
        self.pending_orders.setdefault(spec.symbol, []).append(handle)
        return handle

    def _record(
        self,
        symbol: Symbol,
        side: OrderSide,
        order_type: str,
        quantity: float,
        price: float,
    ) -> OrderHandle:
        handle = OrderHandle(
            order_id=f"paper-{len(self.orders)}",
            symbol=symbol,
            side=side,
            order_type=order_type,
            quantity=quantity,
            price=price,
            timestamp=datetime.now(timezone.utc),
        )
        self.orders.append(handle)
        logger.info(
            "Paper %s %s %s %.8g @ %.8g",
            order_type,
            side.value,
            symbol,
            quantity,
            price,
        )
        return handle
