"""Payroll execution command line interface.

Provides operational tools for:
- Exception reports
- Approval history
- Ledger consistency checks

Usage:
    python -m payroll_execution.cli exceptions --run-id X [--json]
    python -m payroll_execution.cli history --run-id X
    python -m payroll_execution.cli verify-ledger --run-id X
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Awaitable, Callable
from uuid import UUID

from payroll_execution.config import get_settings
from payroll_execution.database import dispose_db, get_session
from payroll_execution.errors import PayrollExecutionError
from payroll_execution.services.approval_ledger import ApprovalLedger
from payroll_execution.services.lookups import fetch_run
from payroll_execution.services.payroll_run_service import PayrollRunService


def parse_uuid(s: str) -> UUID:
    """Parse UUID string."""
    return UUID(s)


class PayrollCli:
    """Payroll execution command line interface."""

    def __init__(self) -> None:
        self.parser = self._build_parser()

    def _build_parser(self) -> argparse.ArgumentParser:
        """Build argument parser."""
        parser = argparse.ArgumentParser(
            prog="python -m payroll_execution.cli",
            description="Payroll execution operational tools",
        )
        subparsers = parser.add_subparsers(dest="command", help="Commands")

        exceptions = subparsers.add_parser(
            "exceptions",
            help="Show the exception report for a payroll run",
        )
        exceptions.add_argument(
            "--run-id",
            type=parse_uuid,
            required=True,
            help="Payroll run ID",
        )
        exceptions.add_argument(
            "--json",
            action="store_true",
            help="Print the canonical JSON report",
        )

        history = subparsers.add_parser(
            "history",
            help="Show the approval ledger of a payroll run",
        )
        history.add_argument(
            "--run-id",
            type=parse_uuid,
            required=True,
            help="Payroll run ID",
        )

        verify = subparsers.add_parser(
            "verify-ledger",
            help="Check the run's actor fields against a ledger replay",
        )
        verify.add_argument(
            "--run-id",
            type=parse_uuid,
            required=True,
            help="Payroll run ID",
        )

        return parser

    def run(self, args: list[str] | None = None) -> int:
        """Run the CLI with given arguments."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 1

        handlers: dict[str, Callable[[argparse.Namespace], Awaitable[int]]] = {
            "exceptions": self._cmd_exceptions,
            "history": self._cmd_history,
            "verify-ledger": self._cmd_verify_ledger,
        }

        handler = handlers.get(parsed.command)
        if handler is None:
            print(f"Unknown command: {parsed.command}", file=sys.stderr)
            return 1

        return asyncio.run(self._dispatch(handler, parsed))

    async def _dispatch(
        self,
        handler: Callable[[argparse.Namespace], Awaitable[int]],
        args: argparse.Namespace,
    ) -> int:
        try:
            return await handler(args)
        except PayrollExecutionError as e:
            print(f"ERROR [{e.code}]: {e}", file=sys.stderr)
            return 1
        finally:
            await dispose_db()

    async def _cmd_exceptions(self, args: argparse.Namespace) -> int:
        """Print the exception report of a run."""
        async with get_session() as session:
            report = await PayrollRunService(session).get_exceptions(args.run_id)

        if args.json:
            print(report.to_json())
            return 0

        print(f"Exceptions for run: {args.run_id}")
        print(f"  Employees:   {report.total_employees}")
        print(f"  Net pay:     {report.total_net_pay:,.2f}")
        print(f"  Critical:    {report.critical_count}")
        print(f"  Warnings:    {report.warning_count}")
        for issue in report.issues:
            print(f"    [{issue.severity.value:<8}] {issue.employee_id}  {issue.issue}")
        return 2 if report.has_blocking_issues else 0

    async def _cmd_history(self, args: argparse.Namespace) -> int:
        """Print the approval ledger of a run."""
        async with get_session() as session:
            entries = await PayrollRunService(session).get_history(args.run_id)

        print(f"Approval history for run: {args.run_id}")
        print("-" * 60)
        for entry in entries:
            line = (
                f"  {entry.occurred_at.isoformat()} | {entry.action:<16} "
                f"{entry.from_status or '-'} -> {entry.to_status} "
                f"by {entry.actor_id} ({entry.actor_role})"
            )
            if entry.reason:
                line += f"  reason: {entry.reason}"
            print(line)
        return 0

    async def _cmd_verify_ledger(self, args: argparse.Namespace) -> int:
        """Replay the ledger and compare with the run's cached fields."""
        async with get_session() as session:
            run = await fetch_run(session, args.run_id)
            drifted = await ApprovalLedger(session).verify(run)

        print(f"Ledger verification for run: {run.run_code} ({args.run_id})")
        print("=" * 60)
        if not drifted:
            print("Ledger verification: PASSED")
            return 0
        print("Ledger verification: FAILED")
        print(f"\n{len(drifted)} field(s) drifted:")
        for name in drifted:
            print(f"  - {name}")
        print(json.dumps({"run_id": str(args.run_id), "drifted": drifted}))
        return 1


def main() -> int:
    """CLI entry point."""
    logging.basicConfig(level=get_settings().log_level)
    cli = PayrollCli()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
