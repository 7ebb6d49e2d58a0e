"""Access Compliance Command Line Interface.

Provides operational tools for:
- Schema setup and verification
- Access delta recompute
- Eligibility upserts
- History and delta queries

Usage:
    python -m access_compliance.cli init-db
    python -m access_compliance.cli recompute
    python -m access_compliance.cli upsert-eligibility --employee-id E100 --eligible false --reason "badge expired"
    python -m access_compliance.cli history --employee-id E100
    python -m access_compliance.cli delta --employee-id E100
    python -m access_compliance.cli schema-check
"""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import datetime
from typing import Callable

from access_compliance.config import get_settings
from access_compliance.database import (
    create_schema,
    get_engine,
    make_session_factory,
    missing_tables,
)
from access_compliance.errors import AccessComplianceError, PreconditionFailedError
from access_compliance.models import Base
from access_compliance.services import (
    AccessDeltaQueries,
    AccessDeltaRecomputer,
    EligibilityQueries,
    EligibilityReconciler,
)
from access_compliance.sources import SqlViewComplianceSource

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_PRECONDITION = 2


def parse_datetime(s: str) -> datetime:
    """Parse ISO datetime string."""
    return datetime.fromisoformat(s.replace("Z", "+00:00"))


def parse_bool(s: str) -> bool:
    """Parse a true/false flag."""
    value = s.strip().lower()
    if value in ("true", "yes", "1"):
        return True
    if value in ("false", "no", "0"):
        return False
    raise argparse.ArgumentTypeError(f"expected true or false, got {s!r}")


class AccessComplianceCli:
    """Access Compliance Command Line Interface."""

    def __init__(self) -> None:
        self.parser = self._build_parser()

    def _build_parser(self) -> argparse.ArgumentParser:
        """Build argument parser."""
        parser = argparse.ArgumentParser(
            prog="access-compliance",
            description="Access eligibility and access delta tools",
        )
        parser.add_argument(
            "--database-url",
            type=str,
            help="Database URL (default: $DATABASE_URL)",
        )
        parser.add_argument(
            "--source-view",
            type=str,
            help="Compliance view name (default: $COMPLIANCE_SOURCE_VIEW)",
        )
        subparsers = parser.add_subparsers(dest="command", help="Commands")

        subparsers.add_parser(
            "init-db",
            help="Create tables and seed the action vocabulary",
        )

        subparsers.add_parser(
            "recompute",
            help="Recompute RESTRICT rows from the compliance view",
        )

        upsert = subparsers.add_parser(
            "upsert-eligibility",
            help="Record an eligibility evaluation for one employee",
        )
        upsert.add_argument(
            "--employee-id",
            type=str,
            required=True,
            help="Employee ID",
        )
        upsert.add_argument(
            "--eligible",
            type=parse_bool,
            required=True,
            help="New eligibility (true/false)",
        )
        upsert.add_argument(
            "--reason",
            type=str,
            help="Reason recorded if eligibility changes",
        )

        history = subparsers.add_parser(
            "history",
            help="Show eligibility transitions for one employee",
        )
        history.add_argument(
            "--employee-id",
            type=str,
            required=True,
            help="Employee ID",
        )

        delta = subparsers.add_parser(
            "delta",
            help="List access delta rows",
        )
        delta.add_argument(
            "--employee-id",
            type=str,
            help="Filter by employee ID",
        )
        delta.add_argument(
            "--since",
            type=parse_datetime,
            help="Rows with run timestamp at or after this time (ISO format)",
        )
        delta.add_argument(
            "--until",
            type=parse_datetime,
            help="Rows with run timestamp at or before this time (ISO format)",
        )

        subparsers.add_parser(
            "schema-check",
            help="Verify required tables exist",
        )

        return parser

    def run(self, args: list[str] | None = None) -> int:
        """Run the CLI with given arguments."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return EXIT_FAILURE

        # Dispatch to command handler
        handlers: dict[str, Callable[..., int]] = {
            "init-db": self._cmd_init_db,
            "recompute": self._cmd_recompute,
            "upsert-eligibility": self._cmd_upsert_eligibility,
            "history": self._cmd_history,
            "delta": self._cmd_delta,
            "schema-check": self._cmd_schema_check,
        }

        handler = handlers.get(parsed.command)
        if handler is None:
            print(f"Unknown command: {parsed.command}", file=sys.stderr)
            return EXIT_FAILURE

        try:
            return handler(parsed)
        except PreconditionFailedError as e:
            print(f"PRECONDITION FAILED: {e}", file=sys.stderr)
            return EXIT_PRECONDITION
        except AccessComplianceError as e:
            print(f"ERROR: {e}", file=sys.stderr)
            return EXIT_FAILURE

    def _engine(self, args: argparse.Namespace):
        return get_engine(args.database_url)

    def _cmd_init_db(self, args: argparse.Namespace) -> int:
        """Create schema."""
        engine = self._engine(args)
        create_schema(engine)
        print("Schema created.")
        return EXIT_OK

    def _cmd_recompute(self, args: argparse.Namespace) -> int:
        """Recompute access delta."""
        engine = self._engine(args)
        view = args.source_view or get_settings().compliance_source_view
        recomputer = AccessDeltaRecomputer(
            make_session_factory(engine),
            SqlViewComplianceSource(engine, view),
        )
        recomputer.recompute()

        summary = recomputer.last_summary
        print(f"Recompute from {view}: {summary.final_state.value}")
        print(f"  Facts read:      {summary.facts_read}")
        print(f"  Facts discarded: {summary.facts_discarded}")
        if summary.was_empty:
            print("  All compliant; access delta unchanged.")
        else:
            print(f"  Run timestamp:   {summary.run_ts.isoformat()}")
            print(f"  Rows deleted:    {summary.rows_deleted}")
            print(f"  Rows inserted:   {summary.rows_inserted}")
        return EXIT_OK

    def _cmd_upsert_eligibility(self, args: argparse.Namespace) -> int:
        """Upsert eligibility."""
        reconciler = EligibilityReconciler(make_session_factory(self._engine(args)))
        reconciler.upsert(args.employee_id, args.eligible, args.reason)
        print(f"{args.employee_id}: {reconciler.last_outcome.value} (eligible={args.eligible})")
        return EXIT_OK

    def _cmd_history(self, args: argparse.Namespace) -> int:
        """Print eligibility history."""
        queries = EligibilityQueries(make_session_factory(self._engine(args)))
        state = queries.get_state(args.employee_id)
        if state is None:
            print(f"No eligibility recorded for {args.employee_id}")
            return EXIT_FAILURE

        print(f"{state.employee_id}: eligible={state.eligible}")
        print(f"  Effective:    {state.effective_ts.isoformat()}")
        print(f"  Last checked: {state.last_checked_ts.isoformat()}")
        transitions = queries.get_history(args.employee_id)
        print(f"\nTransitions ({len(transitions)}):")
        for t in transitions:
            reason = f" | {t.reason}" if t.reason else ""
            print(f"  {t.changed_ts.isoformat()} | {t.old_eligible} -> {t.new_eligible}{reason}")
        return EXIT_OK

    def _cmd_delta(self, args: argparse.Namespace) -> int:
        """Print access delta rows."""
        queries = AccessDeltaQueries(make_session_factory(self._engine(args)))
        rows = queries.list_rows(
            employee_id=args.employee_id,
            run_from=args.since,
            run_to=args.until,
        )
        for row in rows:
            print(
                f"{row.run_ts.isoformat()} | {row.employee_id} | {row.card_number or '-'} | "
                f"{row.action_type} | {row.reason or ''}"
            )
        print(f"{len(rows)} row(s)")
        return EXIT_OK

    def _cmd_schema_check(self, args: argparse.Namespace) -> int:
        """Verify schema."""
        required = sorted(Base.metadata.tables)
        missing = missing_tables(self._engine(args), required)

        print("[Tables]")
        for name in required:
            mark = "✗" if name in missing else "✓"
            suffix = " (MISSING)" if name in missing else ""
            print(f"  {mark} {name}{suffix}")

        if missing:
            print("\nSchema verification: FAILED")
            print("Run: access-compliance init-db")
            return EXIT_FAILURE
        print("\nSchema verification: PASSED")
        return EXIT_OK


def main() -> int:
    """CLI entry point."""
    logging.basicConfig(
        level=get_settings().log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    cli = AccessComplianceCli()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
