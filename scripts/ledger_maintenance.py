#!/usr/bin/env python3
"""Ledger maintenance CLI.

Administrative operations on nagrik numbers and constituency aggregates.
Every subcommand prints a report and logs through structlog under one
correlation ID.

Usage:
    python scripts/ledger_maintenance.py recompute 7 12
    python scripts/ledger_maintenance.py verify --all
    python scripts/ledger_maintenance.py bootstrap --first 1 --last 243
    python scripts/ledger_maintenance.py health
    python scripts/ledger_maintenance.py migrate-schema
    python scripts/ledger_maintenance.py backfill-pseudonyms
    python scripts/ledger_maintenance.py verify-pseudonyms

Options:
    --store {memory,postgres}   Document store backend (default: $NAGRIK_DOCUMENT_STORE)
    --environment ENV           Log output mode (default: $NAGRIK_ENV)

Exit Codes:
    0 - Operation completed and found no problems
    1 - Operation failed or found problems (check report and logs)
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

# Add project root to path for imports
_project_root = Path(__file__).parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

from structlog import get_logger

from src.bootstrap.ledger import (
    DOCUMENT_STORE_ENV,
    get_aggregate_reconciliation_service,
    get_document_store,
    get_ledger_config,
    get_pseudonym_allocator,
)
from src.bootstrap.logging import configure_logging
from src.domain.exceptions import NagrikError
from src.infrastructure.adapters.persistence.sql_document_store import (
    SqlDocumentStore,
)
from src.infrastructure.observability import correlation_scope

logger = get_logger()


@dataclass
class MaintenanceReport:
    """Summary of one maintenance command."""

    command: str
    started_at: datetime
    completed_at: datetime | None = None
    lines: list[str] = field(default_factory=list)
    problems: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.problems

    def add(self, line: str) -> None:
        self.lines.append(line)

    def problem(self, line: str) -> None:
        self.problems.append(line)

    def print_report(self) -> None:
        duration = (
            (self.completed_at - self.started_at).total_seconds()
            if self.completed_at
            else 0
        )

        print("\n" + "=" * 60)
        print(f"LEDGER MAINTENANCE: {self.command.upper()}")
        print("=" * 60 + "\n")
        print(f"  Started: {self.started_at.isoformat()}")
        if self.completed_at:
            print(f"  Duration: {duration:.2f} seconds")

        if self.lines:
            print("\n  Results:")
            for line in self.lines:
                print(f"    {line}")

        if self.problems:
            print("\n  Problems:")
            for line in self.problems:
                print(f"    - {line}")

        print("\n" + "-" * 60)
        print("COMPLETED" if self.ok else "COMPLETED WITH PROBLEMS")
        print("-" * 60 + "\n")


def _constituency_ids(args: argparse.Namespace) -> list[int]:
    if getattr(args, "all", False) or not args.constituency_ids:
        config = get_ledger_config()
        return list(range(config.constituency_first, config.constituency_last + 1))
    return list(args.constituency_ids)


async def _recompute(args: argparse.Namespace, report: MaintenanceReport) -> None:
    service = get_aggregate_reconciliation_service()
    for constituency_id in _constituency_ids(args):
        try:
            aggregate = await service.recompute(constituency_id)
        except (NagrikError, ValueError) as e:
            report.problem(f"constituency {constituency_id}: {e}")
            continue
        report.add(
            f"constituency {constituency_id}: "
            f"{aggregate.contribution_count} contributions folded"
        )


async def _verify(args: argparse.Namespace, report: MaintenanceReport) -> None:
    service = get_aggregate_reconciliation_service()
    results = await service.verify_batch(_constituency_ids(args))
    consistent = 0
    for result in results:
        if result.is_consistent:
            consistent += 1
            continue
        detail = (
            f"constituency {result.constituency_id}: stored "
            f"{result.stored.contribution_count} vs recomputed "
            f"{result.recomputed.contribution_count}"
        )
        if result.corrupted_contributions:
            detail += f", corrupted {', '.join(result.corrupted_contributions)}"
        report.problem(detail)
    report.add(f"Verified: {len(results)}")
    report.add(f"Consistent: {consistent}")


async def _bootstrap(args: argparse.Namespace, report: MaintenanceReport) -> None:
    service = get_aggregate_reconciliation_service()
    created = await service.bootstrap(args.first, args.last)
    report.add(f"Aggregates created: {created}")


async def _health(args: argparse.Namespace, report: MaintenanceReport) -> None:
    service = get_aggregate_reconciliation_service()
    health = await service.health_check(args.first, args.last)
    report.add(f"Aggregate documents: {health.total_count}")
    report.add(f"Valid: {health.valid_count}")
    for issue in health.issues:
        report.problem(issue)


async def _migrate_schema(args: argparse.Namespace, report: MaintenanceReport) -> None:
    service = get_aggregate_reconciliation_service()
    migration = await service.migrate_schema()
    report.add(f"Aggregate documents: {migration.total}")
    report.add(f"Migrated: {migration.migrated}")
    report.add(f"Already current: {migration.current}")
    for key, error in migration.failures.items():
        report.problem(f"constituency {key}: {error}")


async def _backfill_pseudonyms(
    args: argparse.Namespace, report: MaintenanceReport
) -> None:
    allocator = get_pseudonym_allocator()
    backfill = await allocator.backfill(args.participant_keys or None)
    report.add(f"Participants: {backfill.total}")
    report.add(f"Assigned: {backfill.migrated}")
    report.add(f"Skipped (already assigned): {backfill.skipped}")
    for key, error in backfill.failures.items():
        report.problem(f"participant {key}: {error}")


async def _verify_pseudonyms(
    args: argparse.Namespace, report: MaintenanceReport
) -> None:
    allocator = get_pseudonym_allocator()
    uniqueness = await allocator.verify_uniqueness()
    report.add(f"Participants: {uniqueness.total}")
    report.add(f"With nagrik number: {uniqueness.with_pseudonym}")
    report.add(f"Missing nagrik number: {len(uniqueness.missing)}")
    for value, keys in sorted(uniqueness.duplicates.items()):
        report.problem(f"nagrik number {value} shared by {', '.join(keys)}")
    for key in uniqueness.below_base:
        report.problem(f"participant {key} holds a value below the base")


COMMANDS = {
    "recompute": _recompute,
    "verify": _verify,
    "bootstrap": _bootstrap,
    "health": _health,
    "migrate-schema": _migrate_schema,
    "backfill-pseudonyms": _backfill_pseudonyms,
    "verify-pseudonyms": _verify_pseudonyms,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Nagrik ledger maintenance: aggregates and nagrik numbers",
    )
    parser.add_argument(
        "--store",
        choices=["memory", "postgres"],
        default=None,
        help=f"Document store backend (default: ${DOCUMENT_STORE_ENV} or memory)",
    )
    parser.add_argument(
        "--environment",
        default=None,
        help="Log output mode: production (JSON) or development (console)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    for name, help_text in (
        ("recompute", "Rebuild aggregates from the contribution log"),
        ("verify", "Compare stored aggregates with the contribution log"),
    ):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("constituency_ids", nargs="*", type=int)
        cmd.add_argument(
            "--all",
            action="store_true",
            help="Every constituency in the configured range",
        )

    for name, help_text in (
        ("bootstrap", "Create zero aggregates for constituencies lacking one"),
        ("health", "Report gaps and legacy aggregate documents"),
    ):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("--first", type=int, default=None)
        cmd.add_argument("--last", type=int, default=None)

    sub.add_parser("migrate-schema", help="Rewrite legacy aggregate documents")

    backfill = sub.add_parser(
        "backfill-pseudonyms", help="Assign nagrik numbers to participants lacking one"
    )
    backfill.add_argument("participant_keys", nargs="*")

    sub.add_parser(
        "verify-pseudonyms", help="Report missing and duplicate nagrik numbers"
    )
    return parser


async def run_command(args: argparse.Namespace) -> MaintenanceReport:
    """Run one parsed command and return its report."""
    report = MaintenanceReport(
        command=args.command, started_at=datetime.now(timezone.utc)
    )
    store = get_document_store()
    if isinstance(store, SqlDocumentStore):
        await store.ensure_schema()

    with correlation_scope() as correlation_id:
        log = logger.bind(command=args.command, correlation_id=correlation_id)
        log.info("maintenance_started")
        try:
            await COMMANDS[args.command](args, report)
        except (NagrikError, ValueError) as e:
            log.error("maintenance_failed", error=str(e), error_type=type(e).__name__)
            report.problem(str(e))
        report.completed_at = datetime.now(timezone.utc)
        log.info("maintenance_completed", ok=report.ok, problems=len(report.problems))
    return report


def main(argv: Sequence[str] | None = None) -> int:
    """Parse arguments, run the command and return the exit code."""
    args = build_parser().parse_args(argv)
    if args.store:
        os.environ[DOCUMENT_STORE_ENV] = args.store
    configure_logging(args.environment)

    report = asyncio.run(run_command(args))
    report.print_report()
    return 0 if report.ok else 1


if __name__ == "__main__":
    sys.exit(main())
