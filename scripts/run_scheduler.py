#!/usr/bin/env python3
"""
Run or trigger the monthly profit settlement.

Usage:
    python scripts/run_scheduler.py serve
    python scripts/run_scheduler.py check
    python scripts/run_scheduler.py settle --month 1 --year 2024 [--preview]

Commands:
  serve   Run the daily settlement scheduler in the foreground until
          interrupted (Ctrl-C or SIGTERM).
  check   Run one daily check now.  Settles the previous month only if
          today is the configured trigger day.
  settle  Execute (or, with --preview, dry-run) one month's settlement
          immediately.

Configuration comes from --config (YAML) and INVENTORY_* environment
variables; --db-url overrides both.
"""

import argparse
import signal
import sys
import threading
from pathlib import Path
from uuid import UUID

# Add project root to path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Monthly profit settlement: scheduler and operator commands.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="YAML configuration file (default: environment only).",
    )
    parser.add_argument(
        "--db-url",
        default=None,
        help="Database URL (overrides config and INVENTORY_DATABASE_URL).",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("serve", help="Run the scheduler until interrupted.")
    sub.add_parser("check", help="Run one daily check now.")

    settle = sub.add_parser("settle", help="Settle one month immediately.")
    settle.add_argument("--month", type=int, required=True, help="Month (1-12).")
    settle.add_argument("--year", type=int, required=True, help="Year.")
    settle.add_argument(
        "--actor-id",
        type=UUID,
        default=None,
        help="Operator UUID recorded on the settlement.",
    )
    settle.add_argument(
        "--preview",
        action="store_true",
        help="Show what would be settled; write nothing.",
    )
    return parser.parse_args(argv)


def _print_settlement(info) -> None:
    print(f"Settlement {info.period_label}")
    print(f"  id:               {info.id}")
    print(f"  total_profit:     {info.total_profit}")
    print(f"  amount_per_owner: {info.amount_per_owner}")
    print(f"  orders_locked:    {info.order_count}")
    print(f"  executed_at:      {info.executed_at.isoformat()}")


def _serve(scheduler) -> int:
    stop = threading.Event()

    def _handle_signal(signum, frame):
        stop.set()

    signal.signal(signal.SIGTERM, _handle_signal)
    scheduler.start()
    print("Scheduler running. Press Ctrl-C to stop.")
    try:
        while not stop.is_set() and scheduler.is_running:
            stop.wait(timeout=1.0)
    except KeyboardInterrupt:
        pass
    finally:
        scheduler.stop()
    print("Scheduler stopped.")
    return 0


def _settle(args, session_factory, config) -> int:
    from inventory_kernel.db.engine import session_scope
    from inventory_kernel.exceptions import InventoryKernelError
    from inventory_kernel.logging_config import LogContext
    from inventory_kernel.services.settlement_service import ProfitSettlementEngine

    try:
        with LogContext.bind(trigger="cli", actor_id=args.actor_id):
            with session_scope(session_factory) as session:
                engine = ProfitSettlementEngine(session, config=config)
                if args.preview:
                    preview = engine.preview(args.month, args.year)
                    print(f"Preview {args.year:04d}-{args.month:02d}")
                    print(f"  window:           {preview.window_start.isoformat()} .. "
                          f"{preview.window_end.isoformat()}")
                    print(f"  orders:           {len(preview.order_ids)}")
                    print(f"  total_profit:     {preview.total_profit}")
                    print(f"  amount_per_owner: {preview.amount_per_owner}")
                    print(f"  already_executed: {preview.already_executed}")
                    return 0
                info = engine.execute(args.month, args.year, actor_id=args.actor_id)
    except InventoryKernelError as e:
        print(f"ERROR [{e.code}]: {e}", file=sys.stderr)
        return 1

    _print_settlement(info)
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    # Lazy imports so we fail fast on args first
    from dataclasses import replace

    from inventory_kernel.config import load_config
    from inventory_kernel.db.engine import (
        create_tables,
        get_session_factory,
        init_engine_from_url,
    )
    from inventory_kernel.exceptions import ConfigurationError
    from inventory_kernel.logging_config import configure_logging

    from inventory_jobs.services.scheduler import SettlementScheduler

    try:
        config = load_config(args.config)
    except ConfigurationError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    if args.db_url:
        config = replace(config, database_url=args.db_url)

    configure_logging(level=config.log_level_value)

    try:
        init_engine_from_url(config.database_url)
        create_tables()
    except Exception as e:
        print(f"ERROR: Database init failed: {e}", file=sys.stderr)
        return 1

    session_factory = get_session_factory()

    if args.command == "settle":
        return _settle(args, session_factory, config)

    scheduler = SettlementScheduler(session_factory, config=config)
    if args.command == "check":
        info = scheduler.execute_daily_check()
        if info is None:
            print("No settlement executed.")
        else:
            _print_settlement(info)
        return 0

    return _serve(scheduler)


if __name__ == "__main__":
    sys.exit(main())
