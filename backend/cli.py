"""Round engine CLI entry point.

Usage:
    python -m cli run            # foreground scheduler
    python -m cli tick           # one scheduler pass
    python -m cli init-db
    python -m cli config
    python -m cli status
    python -m cli cancel-round --round-id <uuid> --reason "feed outage"
    python -m cli credit --user-id <uuid> --amount 1000
"""

import argparse
import asyncio
import logging
import sys
from decimal import Decimal, InvalidOperation
from uuid import UUID

from pydantic import ValidationError

from observability import __version__, initialize_logfire
from utils.logging import configure_logging

logger = logging.getLogger(__name__)


def _init_logfire() -> None:
    """Initialize Logfire if available, without failing commands."""
    try:
        from config import get_settings

        initialize_logfire(get_settings(), service_name="updown-rounds-cli")
    except Exception as e:
        logger.warning(f"Failed to initialize Logfire: {e}")


def _run(coro_factory):
    """Run a coroutine and release pooled connections afterwards."""
    from database.session import close_db

    async def _wrapped():
        try:
            return await coro_factory()
        finally:
            await close_db()

    return asyncio.run(_wrapped())


def cmd_init_db(args: argparse.Namespace) -> int:
    """Create database tables."""
    from database.session import init_db

    try:
        _run(init_db)
        print("\n✓ Database schema created\n")
        return 0
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        print(f"\n❌ Database initialization failed: {e}\n")
        return 1


def cmd_config(args: argparse.Namespace) -> int:
    """Display effective configuration."""
    try:
        from config import get_settings

        settings = get_settings()

        print("\n=== Round Engine Configuration ===\n")
        print(f"Environment: {settings.environment}\n")

        print("Betting:")
        print(f"  Bet Range: ${settings.min_bet:,} - ${settings.max_bet:,}")
        print(f"  Fee: {settings.fee_percent}%")
        print(f"  Platform Cut: {settings.platform_cut_percent}%")
        print(f"  Tie Threshold: {settings.tie_threshold_percent}%\n")

        print("Rounds (seconds):")
        print(f"  Duration: {settings.round_duration_seconds}")
        print(f"  Lock Window: {settings.lock_window_seconds}")
        print(f"  Upcoming Buffer: {settings.upcoming_buffer_seconds}")
        print(f"  Tick Interval: {settings.round_tick_seconds}")
        print(f"  Scheduler In API: {settings.scheduler_in_api}\n")

        print("Price Oracle:")
        for source in settings.price_sources:
            print(f"  • {source}")
        print(f"  Timeout: {settings.price_timeout_seconds}s")
        print(f"  Max Sample Age: {settings.price_max_age_seconds}s\n")

        print(f"Logfire: {'✓ Set' if settings.logfire_token else '✗ Not set'}\n")
        return 0

    except ValidationError as e:
        print("\n❌ Configuration Error:\n")
        for error in e.errors():
            print(f"  • {'.'.join(str(x) for x in error['loc'])}: {error['msg']}")
        print()
        return 1


def cmd_status(args: argparse.Namespace) -> int:
    """Show the current and upcoming rounds."""
    from database.session import get_db_session
    from services.round_engine import get_round_engine

    async def _status():
        engine = get_round_engine()
        async with get_db_session() as db:
            return (
                await engine.rounds.get_current_round(db),
                await engine.rounds.get_upcoming_round(db),
            )

    try:
        current, upcoming = _run(_status)
    except Exception as e:
        logger.error(f"Failed to read status: {e}")
        print(f"\n❌ Failed to read status: {e}\n")
        return 1

    print("\n=== Rounds ===\n")
    if current is not None:
        print(f"Current: #{current.round_number} ({current.status})")
        print(f"  Start Price: {current.start_price}")
        print(f"  Locks: {current.lock_time}  Ends: {current.end_time}")
        print(f"  UP ${current.up_stake_total} ({current.up_bet_count} bets)")
        print(f"  DOWN ${current.down_stake_total} ({current.down_bet_count} bets)\n")
    else:
        print("Current: (none)\n")
    if upcoming is not None:
        print(f"Upcoming: #{upcoming.round_number} starts {upcoming.start_time}\n")
    else:
        print("Upcoming: (none)\n")
    return 0


def cmd_tick(args: argparse.Namespace) -> int:
    """Run a single scheduler tick."""
    _init_logfire()
    from services.round_engine import get_round_engine

    try:
        report = _run(get_round_engine().scheduler.tick)
    except Exception as e:
        logger.error(f"Tick failed: {e}", exc_info=True)
        print(f"\n❌ Tick failed: {e}\n")
        return 1

    print("\n✓ Tick complete\n")
    for name, ids in report.as_dict().items():
        print(f"  {name.capitalize()}: {len(ids)}")
    print()
    return 1 if report.failed else 0


def cmd_cancel_round(args: argparse.Namespace) -> int:
    """Cancel a round and refund its bets."""
    _init_logfire()
    from database.session import get_db_session
    from services.round_engine import get_round_engine
    from utils.errors import RoundsError

    async def _cancel():
        async with get_db_session() as db:
            return await get_round_engine().settlement.cancel_round(
                db, args.round_id, args.reason
            )

    try:
        summary = _run(_cancel)
    except RoundsError as e:
        print(f"\n❌ {e.message}\n")
        return 1

    print(f"\n✓ Round #{summary.round.round_number} cancelled")
    print(f"  Bets refunded: {summary.bets_settled}\n")
    return 0


def cmd_credit(args: argparse.Namespace) -> int:
    """Credit a user's wallet."""
    from database.session import get_db_session
    from services.ledger_service import ledger_service

    async def _credit():
        async with get_db_session() as db:
            wallet = await ledger_service.credit(db, args.user_id, args.amount, args.reason)
            await db.commit()
            return wallet

    try:
        wallet = _run(_credit)
    except Exception as e:
        logger.error(f"Credit failed: {e}")
        print(f"\n❌ Credit failed: {e}\n")
        return 1

    print(f"\n✓ Credited ${args.amount} to {args.user_id}")
    print(f"  Balance: ${wallet.balance}  Available: ${wallet.available}\n")
    return 0


def cmd_run(args: argparse.Namespace) -> int:
    """Start the round scheduler in the foreground."""
    try:
        _init_logfire()

        if args.debug:
            logging.getLogger().setLevel(logging.DEBUG)

        from config import get_settings
        from scheduler import start_scheduler

        settings = get_settings()

        print("\n=== Up/Down Round Engine ===\n")
        print(f"Version: {__version__}")
        print(f"Round: {settings.round_duration_seconds}s "
              f"(betting closes {settings.lock_window_seconds}s before end)")
        print(f"Tick: every {settings.round_tick_seconds}s\n")

        start_scheduler(settings)
        return 0

    except KeyboardInterrupt:
        print("\n\nReceived interrupt signal. Shutting down...\n")
        return 0
    except Exception as e:
        logger.error(f"Failed to start scheduler: {e}", exc_info=True)
        print(f"\nFailed to start: {e}\n")
        return 1


def _amount(value: str) -> Decimal:
    try:
        amount = Decimal(value)
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"Invalid amount: {value}")
    if amount <= 0:
        raise argparse.ArgumentTypeError("Amount must be positive")
    return amount


def main() -> int:
    """Main CLI entry point."""
    configure_logging()

    parser = argparse.ArgumentParser(
        description="Up/Down round engine: timed price prediction rounds",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"updown-rounds {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    parser_init = subparsers.add_parser("init-db", help="Create database tables")
    parser_init.set_defaults(func=cmd_init_db)

    parser_config = subparsers.add_parser("config", help="Display configuration")
    parser_config.set_defaults(func=cmd_config)

    parser_status = subparsers.add_parser("status", help="Show current and upcoming rounds")
    parser_status.set_defaults(func=cmd_status)

    parser_tick = subparsers.add_parser("tick", help="Run one scheduler tick")
    parser_tick.set_defaults(func=cmd_tick)

    parser_cancel = subparsers.add_parser(
        "cancel-round",
        help="Cancel a round and refund every bet",
    )
    parser_cancel.add_argument("--round-id", type=UUID, required=True, help="Round to cancel")
    parser_cancel.add_argument("--reason", required=True, help="Reason recorded on the round")
    parser_cancel.set_defaults(func=cmd_cancel_round)

    parser_credit = subparsers.add_parser("credit", help="Credit a user's wallet")
    parser_credit.add_argument("--user-id", type=UUID, required=True, help="Wallet owner")
    parser_credit.add_argument("--amount", type=_amount, required=True, help="Amount to add")
    parser_credit.add_argument(
        "--reason",
        default="Administrative credit",
        help="Description stored on the ledger entry",
    )
    parser_credit.set_defaults(func=cmd_credit)

    parser_run = subparsers.add_parser("run", help="Start the round scheduler")
    parser_run.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    parser_run.set_defaults(func=cmd_run)

    args = parser.parse_args()

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
