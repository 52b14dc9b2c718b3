#!/usr/bin/env python3
"""RTB Device Workflow CLI.

Command-line tools for operating the device inventory against PostgreSQL:
schema setup and spreadsheet-driven bulk operations.

Environment Variables Required:
    - DATABASE_URL: PostgreSQL connection string

Example Usage:
    $ python main.py init-db                      # Create tables
    $ python main.py intake devices.xlsx          # Register devices from a sheet
    $ python main.py bulk-assign allocation.csv   # Assign devices to schools
"""
import argparse
import asyncio
import logging
import sys
from datetime import datetime, timezone
from uuid import UUID

from dotenv import load_dotenv

load_dotenv()

# Local imports
from src.rtb.core.config import Settings
from src.rtb.core.database import close_pool, create_pool
from src.rtb.core.exceptions import RTBError
from src.rtb.workflow.adapters import (
    LoggingAuditSink,
    LoggingNotificationSink,
    OpenpyxlSheetParser,
    SinkEventPublisher,
    StaticUserDirectory,
)
from src.rtb.workflow.adapters.postgres_schema import apply_schema
from src.rtb.workflow.adapters.postgres_store import PostgresStore
from src.rtb.workflow.domain.entities import Actor, BulkResult, Role
from src.rtb.workflow.use_cases import (
    AssignmentEngine,
    BulkAssignUseCase,
    BulkIntakeUseCase,
    InventoryUseCase,
)

logger = logging.getLogger(__name__)

SYSTEM_USER_ID = UUID(int=0)


def print_result(title: str, result: BulkResult) -> None:
    """Print a bulk result with one line per failed row."""
    print("\n" + "=" * 60)
    print(title)
    print("=" * 60)
    print(result.summary)

    if result.failed:
        print(f"\n{'Row':<6} {'Key':<24} {'Code':<20} Reason")
        print("-" * 80)
        for failure in result.failed:
            row = failure.row_number if failure.row_number is not None else "-"
            print(f"{row!s:<6} {failure.key[:22]:<24} {failure.code:<20} {failure.reason}")


async def run_command(args: argparse.Namespace, settings: Settings) -> int:
    """Run one CLI command against the configured database.

    Returns:
        Process exit code
    """
    pool = await create_pool(
        settings.database_url,
        min_size=settings.db_pool_min_size,
        max_size=settings.db_pool_max_size,
    )
    try:
        if args.command == "init-db":
            await apply_schema(pool)
            print("[Main] Schema applied")
            return 0

        with open(args.file, "rb") as f:
            content = f.read()

        store = PostgresStore(pool)
        publisher = SinkEventPublisher(
            LoggingAuditSink(),
            LoggingNotificationSink(),
            StaticUserDirectory(settings.staff_notify_user_ids),
        )
        actor = Actor(user_id=args.user_id, role=Role.ADMIN, name="cli")
        parser = OpenpyxlSheetParser()

        if args.command == "intake":
            inventory = InventoryUseCase(store.unit_of_work, publisher)
            result = await BulkIntakeUseCase(inventory, parser).execute_file(actor, content)
            print_result(f"INTAKE: {args.file}", result)
        else:
            engine = AssignmentEngine(store.unit_of_work, publisher)
            use_case = BulkAssignUseCase(engine, store.unit_of_work, parser)
            result = await use_case.execute_file(actor, content)
            print_result(f"BULK ASSIGN: {args.file}", result)

        return 1 if result.failed else 0
    finally:
        await close_pool(pool)


def main():
    parser = argparse.ArgumentParser(
        description="RTB device inventory and assignment tools",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py init-db                   # Apply the PostgreSQL schema
  python main.py intake devices.xlsx       # Bulk device intake
  python main.py bulk-assign assign.csv    # Bulk assignment by school code
        """,
    )
    parser.add_argument(
        "--user-id",
        type=UUID,
        default=SYSTEM_USER_ID,
        help="Acting admin user id recorded in audit entries",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("init-db", help="Create tables and indexes")

    intake = subparsers.add_parser(
        "intake",
        help="Register devices from an Excel/CSV sheet "
        "(Serial Number, Category, Brand, Model, Condition, Specifications)",
    )
    intake.add_argument("file", metavar="FILE")

    bulk_assign = subparsers.add_parser(
        "bulk-assign",
        help="Assign devices to schools from an Excel/CSV sheet (Serial Number, School Code)",
    )
    bulk_assign.add_argument("file", metavar="FILE")

    args = parser.parse_args()

    try:
        settings = Settings.from_env()
    except RTBError as e:
        print(f"[Main] Configuration error: {e.message}")
        sys.exit(1)

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if not settings.database_url:
        print("[Main] DATABASE_URL is not set")
        sys.exit(1)

    start_time = datetime.now(timezone.utc)
    try:
        exit_code = asyncio.run(run_command(args, settings))
    except FileNotFoundError as e:
        print(f"[Main] File not found: {e.filename}")
        sys.exit(1)
    except RTBError as e:
        logger.error(f"{args.command} failed: {e!r}")
        print(f"[Main] {e.code}: {e.message}")
        sys.exit(1)

    duration = (datetime.now(timezone.utc) - start_time).total_seconds()
    print(f"\n[Main] Completed in {duration:.1f} seconds")
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
