#!/usr/bin/env python3
"""Command-line interface for the reinforcement-learning trading bot."""

from __future__ import annotations

import argparse
import logging
import sys

from rltrader.types import BotConfig

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _load_config(path: str) -> BotConfig | None:
    from rltrader.commands.bot_config import load_bot_config
    from rltrader.exceptions import ConfigError

    try:
        config = load_bot_config(path)
    except ConfigError as e:
        print(f"Configuration error: {e}")
        return None

    logging.basicConfig(level=config.log_level, format=LOG_FORMAT)
    return config


def cmd_train(args: argparse.Namespace) -> int:
    """Train the strategy on historical data for the watchlist."""
    from rltrader.commands.run_bot import build_components, train_watchlist
    from rltrader.exceptions import TradingError
    from rltrader.training import format_training_summary

    config = _load_config(args.config)
    if config is None:
        return 1

    days = args.days or config.training_days
    symbols = [args.symbol] if args.symbol else list(config.watchlist)

    print("=" * 60)
    print("TRAINING")
    print("=" * 60)
    print(f"Symbols:     {', '.join(symbols)}")
    print(f"Days:        {days}")
    print(f"Scope:       {config.engine_scope}")
    print(f"Source:      {config.data_source}")

    try:
        components = build_components(config)
        summary = train_watchlist(components, days=days, symbols=symbols)
    except TradingError as e:
        print(f"Training failed: {e}")
        return 1

    print()
    print(format_training_summary(summary))
    return 0


def cmd_cycle(args: argparse.Namespace) -> int:
    """Run a single live cycle against the paper exchange."""
    from rltrader.commands.run_bot import build_components, build_controller
    from rltrader.exceptions import TradingError

    config = _load_config(args.config)
    if config is None:
        return 1

    try:
        controller = build_controller(build_components(config))
        controller.load_models()
    except TradingError as e:
        print(f"Failed to start: {e}")
        return 1

    report = controller.run_cycle()
    if report is None:
        print("A cycle is already in progress")
        return 1

    print("=" * 60)
    print("CYCLE")
    print("=" * 60)
    print(f"Started:     {report.started_at.isoformat()}")
    print(f"Opened:      {', '.join(p.symbol for p in report.opened) or '-'}")
    print(f"Closed:      {', '.join(p.symbol for p in report.closed) or '-'}")
    print(f"Skipped:     {', '.join(report.skipped) or '-'}")
    print(f"Errors:      {', '.join(report.errors) or '-'}")
    return 1 if report.errors else 0


def cmd_run(args: argparse.Namespace) -> int:
    """Poll continuously until interrupted."""
    from rltrader.commands.run_bot import build_components, build_controller
    from rltrader.exceptions import TradingError

    config = _load_config(args.config)
    if config is None:
        return 1

    try:
        controller = build_controller(build_components(config))
    except TradingError as e:
        print(f"Failed to start: {e}")
        return 1

    print(f"🚀 Trading {', '.join(config.watchlist)} every {config.live.interval_seconds:g}s")
    print("   Press Ctrl+C to stop")
    controller.run(max_cycles=args.max_cycles)
    return 0


def cmd_inspect_model(args: argparse.Namespace) -> int:
    """Show the stored Q-table statistics for a symbol, or list stored models."""
    from rltrader.exceptions import StorageError
    from rltrader.storage import JsonModelStore
    from rltrader.strategies import RLBandStrategy

    config = _load_config(args.config)
    if config is None:
        return 1

    store = JsonModelStore(config.storage_root)

    try:
        if args.symbol is None:
            models = store.list_models()
            if not models:
                print("No stored models.")
                return 0
            print(f"{'Symbol':<16} Strategy")
            print("-" * 48)
            for ref in models:
                print(f"{ref.symbol:<16} {ref.strategy}")
            return 0

        curve = store.learning_curve(args.symbol, RLBandStrategy.name)
    except (StorageError, ValueError) as e:
        print(f"Failed to read model: {e}")
        return 1

    if curve is None:
        print(f"No stored model for {args.symbol}")
        return 1

    print("=" * 60)
    print(f"MODEL: {args.symbol}")
    print("=" * 60)
    print(f"States:          {curve.state_count}")
    print(f"Positive states: {curve.states_with_positive_q}")
    for label, avg, best in (
        ("long", curve.avg_q_long, curve.max_q_long),
        ("short", curve.avg_q_short, curve.max_q_short),
        ("hold", curve.avg_q_hold, curve.max_q_hold),
    ):
        if best is None:
            print(f"Q {label:<6} -")
        else:
            print(f"Q {label:<6} avg {avg:+.4f}  max {best:+.4f}")
    if curve.total_trades is not None:
        print(f"Trades:          {curve.total_trades}")
        print(f"Win rate:        {curve.win_rate:.2%}")
        print(f"P/L ratio:       {curve.profit_loss_ratio:.2f}")
    return 0


def cmd_positions(args: argparse.Namespace) -> int:
    """List managed positions."""
    from rltrader.exceptions import StorageError
    from rltrader.storage import JsonPositionStore

    config = _load_config(args.config)
    if config is None:
        return 1

    try:
        positions = JsonPositionStore(config.storage_root).all_positions()
    except StorageError as e:
        print(f"Failed to read positions: {e}")
        return 1

    if not args.all:
        positions = [p for p in positions if p.is_open]
    if not positions:
        print("No positions.")
        return 0

    print(f"{'Symbol':<12} {'Side':<6} {'Status':<7} {'Entry':>14} {'PnL %':>8}  Reason")
    print("-" * 64)
    for p in positions:
        pnl = f"{p.pnl_percent:+.2f}" if p.pnl_percent is not None else "-"
        reason = p.exit_reason.value if p.exit_reason is not None else ""
        print(
            f"{p.symbol:<12} {p.signal.value:<6} {p.status.value:<7} "
            f"{p.entry_price:>14.8g} {pnl:>8}  {reason}"
        )
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Reinforcement-learning trading bot CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Train command
    train_parser = subparsers.add_parser("train", help="Train on historical data")
    train_parser.add_argument("config", help="Path to YAML configuration file")
    train_parser.add_argument("--days", type=int, help="Days of history (default: from config)")
    train_parser.add_argument("--symbol", help="Train a single symbol instead of the watchlist")

    # Cycle command
    cycle_parser = subparsers.add_parser("cycle", help="Run one live cycle")
    cycle_parser.add_argument("config", help="Path to YAML configuration file")

    # Run command
    run_parser = subparsers.add_parser("run", help="Run live cycles until interrupted")
    run_parser.add_argument("config", help="Path to YAML configuration file")
    run_parser.add_argument("--max-cycles", type=int, help="Stop after this many cycles")

    # Inspect model command
    inspect_parser = subparsers.add_parser("inspect-model", help="Inspect a stored Q-table")
    inspect_parser.add_argument("config", help="Path to YAML configuration file")
    inspect_parser.add_argument(
        "symbol", nargs="?", default=None, help="Symbol to inspect (omit to list models)"
    )

    # Positions command
    positions_parser = subparsers.add_parser("positions", help="List managed positions")
    positions_parser.add_argument("config", help="Path to YAML configuration file")
    positions_parser.add_argument(
        "--all", action="store_true", help="Include closed positions"
    )

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    if args.command == "train":
        return cmd_train(args)
    elif args.command == "cycle":
        return cmd_cycle(args)
    elif args.command == "run":
        return cmd_run(args)
    elif args.command == "inspect-model":
        return cmd_inspect_model(args)
    elif args.command == "positions":
        return cmd_positions(args)

    return 0


if __name__ == "__main__":
    sys.exit(main())
