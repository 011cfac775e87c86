"""Tests for the live polling controller."""

from datetime import datetime, timedelta, timezone

import pytest

from rltrader.data.sources import InMemoryCandleSource
from rltrader.exceptions import ExecutionError
from rltrader.lifecycle import PositionLifecycle
from rltrader.live import LiveCycleController
from rltrader.live import controller as controller_module
from rltrader.notify import MemoryNotifier
from rltrader.paper import PaperExchange
from rltrader.storage import InMemoryModelStore, InMemoryPositionStore
from rltrader.strategies import RLBandStrategy, Strategy, StrategyPool
from rltrader.types import (Action, Candle, ExitReason, IndicatorSnapshot,
                            LiveSettings, OrderSide, Position, Side, Signal,
                            SignalMetadata, StateKey)

START = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_candles(count: int, price: float = 100.0) -> list[Candle]:
    return [
        Candle(
            timestamp=START + timedelta(minutes=15 * i),
            open=price,
            high=price + 1,
            low=price - 1,
            close=price,
        )
        for i in range(count)
    ]


def make_signal(side: Side, price: float) -> Signal:
    if side is Side.LONG:
        stop_loss, take_profit = price * 0.99, price * 1.02
    else:
        stop_loss, take_profit = price * 1.01, price * 0.98
    return Signal(
        side=side,
        confidence=0.0,
        entry_price=price,
        stop_loss=stop_loss,
        take_profit=take_profit,
        metadata=SignalMetadata(
            strategy="Scripted",
            timeframe="15m",
            indicators=IndicatorSnapshot(current_price=price),
            state=StateKey("0_2"),
        ),
    )


class ScriptedStrategy(Strategy):
    """Strategy with fixed entry sides and exit symbols that records calls."""

    name = "Scripted"

    def __init__(
        self,
        entries: dict[str, Side] | None = None,
        exit_symbols: tuple[str, ...] = (),
        max_positions: int = 3,
    ) -> None:
        super().__init__()
        self.entries = entries or {}
        self.exit_symbols = exit_symbols
        self.max_positions = max_positions
        self.entry_checks: list[str] = []
        self.exit_checks: list[str] = []
        self.closes: list[tuple[Side, float]] = []

    def check_entry_signal(self, candles, symbol):
        self.entry_checks.append(symbol)
        side = self.entries.get(symbol)
        if side is None:
            return None
        return make_signal(side, candles[-1].close)

    def check_exit_signal(self, candles, position):
        self.exit_checks.append(position.symbol)
        return position.symbol in self.exit_symbols

    def learn_from_close(self, candles, position_side, pnl_percent):
        self.closes.append((position_side, pnl_percent))

    def save_model(self):
        return "{}"


@pytest.fixture
def source() -> InMemoryCandleSource:
    return InMemoryCandleSource(
        {
            ("BTC-USD", "15m"): make_candles(50, 100.0),
            ("ETH-USD", "15m"): make_candles(50, 20.0),
            ("SOL-USD", "15m"): make_candles(50, 5.0),
        }
    )


@pytest.fixture
def exchange(source: InMemoryCandleSource) -> PaperExchange:
    return PaperExchange(source, balance=1000.0)


@pytest.fixture
def model_store() -> InMemoryModelStore:
    return InMemoryModelStore()


@pytest.fixture
def position_store() -> InMemoryPositionStore:
    return InMemoryPositionStore()


@pytest.fixture
def notifier() -> MemoryNotifier:
    return MemoryNotifier()


@pytest.fixture
def build(source, exchange, model_store, position_store, notifier):
    """Build a controller around a strategy pool."""

    def _build(
        strategy: Strategy,
        watchlist: list[str] | None = None,
        settings: LiveSettings | None = None,
    ) -> LiveCycleController:
        return LiveCycleController(
            pool=StrategyPool.shared(strategy),
            watchlist=watchlist or ["BTC-USD", "ETH-USD"],
            candle_source=source,
            execution=exchange,
            model_store=model_store,
            position_store=position_store,
            notifier=notifier,
            settings=settings,
        )

    return _build


def open_stored_position(
    strategy: Strategy,
    position_store: InMemoryPositionStore,
    exchange: PaperExchange,
    symbol: str = "BTC-USD",
    side: Side = Side.LONG,
    entry_price: float = 100.0,
    stop_loss: float | None = None,
    take_profit: float | None = None,
) -> Position:
    position = PositionLifecycle(strategy).open_position(
        symbol,
        make_signal(side, entry_price),
        entry_price=entry_price,
        opened_at=datetime.now(timezone.utc) - timedelta(minutes=30),
        allocation=5.0,
        quantity=0.05,
    )
    position.stop_loss = stop_loss
    position.take_profit = take_profit
    position_store.add(position)
    exchange.restore_holdings([position])
    return position


class TestEntries:
    """Tests for the entry scan."""

    def test_opens_position_with_orders(self, build, exchange, position_store, notifier) -> None:
        strategy = ScriptedStrategy(entries={"BTC-USD": Side.LONG})
        controller = build(strategy)

        report = controller.run_cycle()

        assert report is not None
        assert [p.symbol for p in report.opened] == ["BTC-USD"]

        position = position_store.get_open("BTC-USD", "Scripted")
        assert position is not None
        assert position.entry_price == 100.0
        # min(10, 1000 * 0.005) allocated at 100
        assert position.allocation == pytest.approx(5.0)
        assert position.quantity == pytest.approx(0.05)
        assert position.stop_loss == pytest.approx(99.0)
        assert position.take_profit == pytest.approx(102.0)

        orders = [(o.order_type, o.side) for o in exchange.orders]
        assert orders == [
            ("market", OrderSide.BUY),
            ("stop_loss", OrderSide.SELL),
            ("take_profit", OrderSide.SELL),
        ]
        assert exchange.pending_orders["BTC-USD"][0].price == pytest.approx(99.0)
        assert any(m.startswith("Entry BTC-USD LONG") for m in notifier.messages)

    def test_short_entry_uses_sell_then_buy(self, build, exchange) -> None:
        controller = build(ScriptedStrategy(entries={"ETH-USD": Side.SHORT}))

        controller.run_cycle()

        assert [o.side for o in exchange.orders] == [OrderSide.SELL, OrderSide.BUY, OrderSide.BUY]
        assert exchange.holdings["ETH-USD"] == pytest.approx(-0.25)

    def test_stops_at_max_positions(self, build, position_store) -> None:
        """The scan stops as soon as the open count reaches the maximum."""
        strategy = ScriptedStrategy(
            entries={s: Side.LONG for s in ("BTC-USD", "ETH-USD", "SOL-USD")},
            max_positions=2,
        )
        controller = build(strategy, watchlist=["BTC-USD", "ETH-USD", "SOL-USD"])

        report = controller.run_cycle()

        assert report is not None
        assert len(report.opened) == 2
        assert position_store.count_open("Scripted") == 2
        assert strategy.entry_checks == ["BTC-USD", "ETH-USD"]

    def test_no_scan_when_already_full(self, build, exchange, position_store) -> None:
        strategy = ScriptedStrategy(entries={"SOL-USD": Side.LONG}, max_positions=2)
        open_stored_position(strategy, position_store, exchange, "BTC-USD")
        open_stored_position(strategy, position_store, exchange, "ETH-USD", entry_price=20.0)
        controller = build(strategy, watchlist=["BTC-USD", "ETH-USD", "SOL-USD"])

        report = controller.run_cycle()

        assert report is not None
        assert report.opened == []
        assert strategy.entry_checks == []

    def test_symbol_with_open_position_is_skipped(self, build, exchange, position_store) -> None:
        strategy = ScriptedStrategy(entries={"BTC-USD": Side.LONG, "ETH-USD": Side.LONG})
        open_stored_position(strategy, position_store, exchange, "BTC-USD")
        controller = build(strategy)

        report = controller.run_cycle()

        assert report is not None
        assert strategy.entry_checks == ["ETH-USD"]
        assert [p.symbol for p in report.opened] == ["ETH-USD"]

    def test_short_history_is_skipped(self, build, source) -> None:
        source.set_candles("ETH-USD", "15m", make_candles(10, 20.0))
        strategy = ScriptedStrategy(entries={"ETH-USD": Side.LONG})
        controller = build(strategy)

        report = controller.run_cycle()

        assert report is not None
        assert report.skipped == ["ETH-USD"]
        assert strategy.entry_checks == ["BTC-USD"]
        assert report.opened == []

    def test_failing_symbol_does_not_stop_others(self, build, source, notifier) -> None:
        source.fail_symbols.add("BTC-USD")
        strategy = ScriptedStrategy(entries={"BTC-USD": Side.LONG, "ETH-USD": Side.LONG})
        controller = build(strategy)

        report = controller.run_cycle()

        assert report is not None
        assert report.errors == ["BTC-USD"]
        assert [p.symbol for p in report.opened] == ["ETH-USD"]
        assert any(m.startswith("Error entering BTC-USD") for m in notifier.messages)

    def test_too_small_allocation_skips_entry(self, build, exchange, position_store) -> None:
        controller = build(
            ScriptedStrategy(entries={"BTC-USD": Side.LONG}),
            settings=LiveSettings(max_allocation_usd=0.01),
        )

        report = controller.run_cycle()

        assert report is not None
        assert report.opened == []
        assert report.errors == []
        assert exchange.orders == []
        assert position_store.all_positions() == []

    def test_precision_is_capped(self, build, exchange, source) -> None:
        source.set_candles("SOL-USD", "15m", make_candles(50, 3.0))
        exchange.quantity_precision = 12
        controller = build(ScriptedStrategy(entries={"SOL-USD": Side.LONG}), watchlist=["SOL-USD"])

        report = controller.run_cycle()

        assert report is not None
        assert report.opened[0].quantity == pytest.approx(1.66666666, abs=1e-12)

    def test_precision_fallback(self, build, exchange, monkeypatch) -> None:
        def no_precision(symbol):
            raise ExecutionError("exchange info unavailable")

        monkeypatch.setattr(exchange, "get_quantity_precision", no_precision)
        controller = build(ScriptedStrategy(entries={"ETH-USD": Side.LONG}))

        report = controller.run_cycle()

        assert report is not None
        # 5 / 20 floored at three decimals
        assert report.opened[0].quantity == pytest.approx(0.25)


class TestExits:
    """Tests for exit checks."""

    def test_strategy_exit_closes_and_records(
        self, build, exchange, position_store, model_store, notifier
    ) -> None:
        strategy = ScriptedStrategy(exit_symbols=("BTC-USD",))
        position = open_stored_position(
            strategy, position_store, exchange, stop_loss=95.0, take_profit=110.0
        )
        controller = build(strategy)

        report = controller.run_cycle()

        assert report is not None
        assert [p.position_id for p in report.closed] == [position.position_id]

        stored = position_store.all_positions()[0]
        assert not stored.is_open
        assert stored.exit_reason is ExitReason.STRATEGY_EXIT_SIGNAL
        assert stored.pnl_percent == pytest.approx(0.0)
        assert stored.hold_time_minutes == 30
        assert "BTC-USD" not in exchange.holdings

        performance = model_store.get_strategy_performance("BTC-USD", "Scripted")
        assert performance is not None
        assert performance.total_trades == 1
        assert performance.win_count == 0
        assert strategy.closes == []
        assert any(m.startswith("Exit BTC-USD LONG") for m in notifier.messages)

    def test_take_profit_at_observed_price_learns(
        self, build, exchange, position_store, model_store
    ) -> None:
        strategy = ScriptedStrategy()
        open_stored_position(
            strategy, position_store, exchange, entry_price=90.0, stop_loss=85.0, take_profit=99.0
        )
        controller = build(strategy)

        controller.run_cycle()

        stored = position_store.all_positions()[0]
        assert stored.exit_reason is ExitReason.TAKE_PROFIT
        assert stored.exit_price == 100.0
        assert stored.pnl_percent == pytest.approx(100 / 9)
        assert strategy.closes == [(Side.LONG, pytest.approx(100 / 9))]
        assert strategy.exit_checks == []
        assert model_store.get_strategy_performance("BTC-USD", "Scripted").win_count == 1  # type: ignore[union-attr]

    def test_short_stop_loss(self, build, exchange, position_store) -> None:
        strategy = ScriptedStrategy()
        open_stored_position(
            strategy,
            position_store,
            exchange,
            side=Side.SHORT,
            entry_price=98.0,
            stop_loss=99.5,
            take_profit=90.0,
        )

        build(strategy).run_cycle()

        stored = position_store.all_positions()[0]
        assert stored.exit_reason is ExitReason.STOP_LOSS
        assert stored.pnl_percent == pytest.approx(-200 / 98)
        assert strategy.closes[0][0] is Side.SHORT

    def test_holding_position_stays_open(self, build, exchange, position_store) -> None:
        strategy = ScriptedStrategy()
        open_stored_position(strategy, position_store, exchange, stop_loss=95.0, take_profit=110.0)

        report = build(strategy).run_cycle()

        assert report is not None
        assert report.closed == []
        assert strategy.exit_checks == ["BTC-USD"]
        assert position_store.count_open("Scripted") == 1

    def test_exit_failure_is_isolated(self, build, exchange, position_store, notifier) -> None:
        """A failed close leaves the position open and reports the symbol."""
        strategy = ScriptedStrategy(exit_symbols=("BTC-USD",))
        position = open_stored_position(strategy, position_store, exchange)
        exchange.holdings.clear()

        report = build(strategy).run_cycle()

        assert report is not None
        assert report.errors == ["BTC-USD"]
        assert report.closed == []
        assert position_store.get_open("BTC-USD", "Scripted").position_id == position.position_id  # type: ignore[union-attr]
        assert any(m.startswith("Error exiting BTC-USD") for m in notifier.messages)

    def test_failed_hard_exit_does_not_learn(self, build, exchange, position_store) -> None:
        """A take-profit whose close keeps failing never updates the strategy."""
        strategy = ScriptedStrategy()
        position = open_stored_position(
            strategy, position_store, exchange, entry_price=90.0, stop_loss=85.0, take_profit=99.0
        )
        exchange.holdings.clear()
        controller = build(strategy)

        for _ in range(3):
            report = controller.run_cycle()
            assert report is not None
            assert report.errors == ["BTC-USD"]

        assert strategy.closes == []
        assert position_store.get_open("BTC-USD", "Scripted").position_id == position.position_id  # type: ignore[union-attr]

    def test_other_strategies_positions_are_ignored(self, build, exchange, position_store) -> None:
        strategy = ScriptedStrategy(exit_symbols=("BTC-USD",))
        other = ScriptedStrategy()
        other.name = "Other"
        open_stored_position(other, position_store, exchange)

        report = build(strategy).run_cycle()

        assert report is not None
        assert report.closed == []
        assert strategy.exit_checks == []


class TestCycle:
    """Tests for cycle bookkeeping."""

    def test_cycle_in_flight_is_skipped(self, build) -> None:
        controller = build(ScriptedStrategy())
        controller._cycle_lock.acquire()
        try:
            assert controller.run_cycle() is None
        finally:
            controller._cycle_lock.release()

        assert controller.run_cycle() is not None

    def test_models_saved_every_cycle(self, build, model_store) -> None:
        strategy = RLBandStrategy({"epsilon": 0.0, "seed": 1})
        controller = build(strategy)

        controller.run_cycle()

        assert model_store.saves == [
            ("BTC-USD", strategy.name),
            ("ETH-USD", strategy.name),
        ]
        assert "0_2" in model_store.load_model("BTC-USD", strategy.name)  # type: ignore[operator]

    def test_load_models_restores_strategy(self, build, model_store) -> None:
        trained = RLBandStrategy()
        trained.q_table.row("0_2")[Action.LONG] = 1.0
        model_store.save_model("BTC-USD", trained.name, trained.save_model())

        strategy = RLBandStrategy({"epsilon": 0.0})
        controller = build(strategy, watchlist=["BTC-USD"])
        controller.load_models()

        assert strategy.q_table.get("0_2", Action.LONG) == 1.0
        report = controller.run_cycle()
        assert report is not None
        assert [p.signal for p in report.opened] == [Side.LONG]

    def test_run_stops_after_max_cycles(self, build, monkeypatch) -> None:
        sleeps: list[float] = []
        monkeypatch.setattr(controller_module.time, "sleep", sleeps.append)
        controller = build(ScriptedStrategy(), settings=LiveSettings(interval_seconds=60))

        controller.run(max_cycles=2)

        assert controller._cycles == 2
        assert sleeps == [60]
