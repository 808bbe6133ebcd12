"""Payroll engine command line interface.

Provides tools for:
- Calculating a period from a JSON document
- Inspecting the rate table in force on a date
- Checking a proposed overtime submission against labor-law limits
- Calculating THR, regular or at resignation

Usage:
    indopayroll calculate payroll.json [--store]
    indopayroll rates --as-of 2024-03-25
    indopayroll check-overtime submission.json
    indopayroll thr request.json
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import asdict
from datetime import date
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Any, Callable
from uuid import UUID

from pydantic import BaseModel
from pydantic import ValidationError as SchemaValidationError

from indopayroll.calculators.engine import PayrollBatchResult, PayrollOrchestrator
from indopayroll.calculators.holiday_allowance import HolidayAllowanceCalculator
from indopayroll.calculators.overtime_calculator import (
    ComplianceViolationError,
    InMemoryOvertimeLedger,
    OvertimeCalculator,
)
from indopayroll.calculators.rate_table import RateTable, RateTableRegistry, load_rate_tables
from indopayroll.config import get_settings
from indopayroll.exceptions import PayrollError
from indopayroll.schemas import ComplianceCheckIn, HolidayAllowanceIn, PayrollDocument

logger = logging.getLogger(__name__)


def parse_date(s: str) -> date:
    """Parse ISO date string."""
    return date.fromisoformat(s)


def json_default(value: Any) -> Any:
    """Render Decimals, dates and UUIDs as strings."""
    if isinstance(value, (Decimal, UUID)):
        return str(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def dump(data: Any) -> str:
    return json.dumps(data, default=json_default, indent=2, sort_keys=True)


def batch_to_dict(batch: PayrollBatchResult, rate_table_version: str) -> dict[str, Any]:
    return {
        "rate_table_version": rate_table_version,
        "results": [r.to_dict() for r in batch.results],
        "failures": [asdict(f) for f in batch.failures],
        "totals": {
            "employees": batch.success_count,
            "failed": batch.error_count,
            "gross": batch.total_gross,
            "net": batch.total_net,
            "income_tax": batch.total_tax,
            "social_security": batch.total_social_security,
            "overtime": batch.total_overtime,
            "holiday_allowance": batch.total_holiday_allowance,
        },
    }


def rate_table_to_dict(table: RateTable) -> dict[str, Any]:
    return {
        "version": table.version,
        "effective_start": table.effective_start,
        "effective_end": table.effective_end,
        "ptkp": table.ptkp,
        "brackets": [
            {"upper_limit": b.upper_limit, "rate": b.rate} for b in table.brackets
        ],
        "health": asdict(table.health),
        "employment": asdict(table.employment),
        "work_accident_rates": {k.value: v for k, v in table.work_accident_rates.items()},
        "overtime": {
            "tiers": {
                group: [asdict(t) for t in tiers] for group, tiers in table.overtime.tiers.items()
            },
            "standard_working_days": table.overtime.standard_working_days,
            "standard_daily_hours": table.overtime.standard_daily_hours,
            "daily_limit": table.overtime.daily_limit,
            "extended_daily_limit": table.overtime.extended_daily_limit,
            "weekly_limit": table.overtime.weekly_limit,
        },
        "holiday_allowance": asdict(table.holiday_allowance),
    }


class PayrollCli:
    """Payroll engine command line interface."""

    def __init__(self) -> None:
        self.parser = self._build_parser()

    def _build_parser(self) -> argparse.ArgumentParser:
        """Build argument parser."""
        parser = argparse.ArgumentParser(
            prog="indopayroll",
            description="Indonesian payroll calculation engine",
        )
        parser.add_argument(
            "--rate-table",
            help="Rate table JSON document (default: RATE_TABLE_PATH or packaged tables)",
        )
        subparsers = parser.add_subparsers(dest="command", help="Commands")

        # calculate command
        calculate = subparsers.add_parser(
            "calculate",
            help="Calculate payroll for every employee in a document",
        )
        calculate.add_argument(
            "input",
            help="Payroll document (JSON file, '-' for stdin)",
        )
        calculate.add_argument(
            "--workers",
            type=int,
            help="Worker threads (default: BATCH_MAX_WORKERS)",
        )
        calculate.add_argument(
            "--store",
            action="store_true",
            help="Store results in DATABASE_URL",
        )

        # rates command
        rates = subparsers.add_parser(
            "rates",
            help="Show the rate table in force on a date",
        )
        rates.add_argument(
            "--as-of",
            type=parse_date,
            help="Date (YYYY-MM-DD, default: latest version)",
        )

        # check-overtime command
        overtime = subparsers.add_parser(
            "check-overtime",
            help="Check a proposed overtime submission against labor-law limits",
        )
        overtime.add_argument(
            "input",
            help="Compliance check document (JSON file, '-' for stdin)",
        )

        # thr command
        thr = subparsers.add_parser(
            "thr",
            help="Calculate THR holiday allowance",
        )
        thr.add_argument(
            "input",
            help="THR request document (JSON file, '-' for stdin)",
        )

        return parser

    def run(self, args: list[str] | None = None) -> int:
        """Run the CLI with given arguments."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 1

        # Dispatch to command handler
        handlers: dict[str, Callable[..., int]] = {
            "calculate": self._cmd_calculate,
            "rates": self._cmd_rates,
            "check-overtime": self._cmd_check_overtime,
            "thr": self._cmd_thr,
        }

        handler = handlers.get(parsed.command)
        if handler is None:
            print(f"Unknown command: {parsed.command}", file=sys.stderr)
            return 1

        try:
            return handler(parsed)
        except SchemaValidationError as e:
            print(f"ERROR: invalid input document:\n{e}", file=sys.stderr)
            return 1
        except PayrollError as e:
            print(f"ERROR: {e}", file=sys.stderr)
            return 1

    def _registry(self, args: argparse.Namespace) -> RateTableRegistry:
        return load_rate_tables(args.rate_table or get_settings().rate_table_path)

    @staticmethod
    def _read(source: str, schema: type[BaseModel]) -> Any:
        try:
            if source == "-":
                raw = sys.stdin.read()
            else:
                raw = Path(source).read_text(encoding="utf-8")
        except OSError as e:
            raise PayrollError(f"Cannot read {source}: {e}") from e
        return schema.model_validate_json(raw)

    def _cmd_calculate(self, args: argparse.Namespace) -> int:
        """Calculate a payroll document."""
        document: PayrollDocument = self._read(args.input, PayrollDocument)
        registry = self._registry(args)
        requests = document.to_requests()
        period = requests[0].period
        rates = registry.resolve(period.payment_date)

        if args.store:
            batch = asyncio.run(self._store(document, registry, args.workers))
        else:
            orchestrator = PayrollOrchestrator(rates, max_workers=args.workers)
            batch = orchestrator.calculate_batch(requests)

        output = batch_to_dict(batch, rates.version)
        output["period_id"] = document.period_id
        print(dump(output))
        return 0 if batch.success else 1

    @staticmethod
    async def _store(
        document: PayrollDocument,
        registry: RateTableRegistry,
        workers: int | None,
    ) -> PayrollBatchResult:
        from indopayroll.database import create_tables, get_session, init_db
        from indopayroll.services.payroll_run_service import PayrollRunService

        engine, _ = init_db()
        requests = document.to_requests()
        try:
            await create_tables(engine)
            async with get_session() as session:
                service = PayrollRunService(session, registry, max_workers=workers)
                return await service.run_requests(requests[0].period, requests)
        finally:
            await engine.dispose()

    def _cmd_rates(self, args: argparse.Namespace) -> int:
        """Show a rate table version."""
        registry = self._registry(args)
        table = registry.resolve(args.as_of) if args.as_of else registry.latest
        print(dump(rate_table_to_dict(table)))
        return 0

    def _cmd_check_overtime(self, args: argparse.Namespace) -> int:
        """Check overtime compliance."""
        check: ComplianceCheckIn = self._read(args.input, ComplianceCheckIn)
        calculator = OvertimeCalculator(self._registry(args).resolve(check.work_date))
        report = calculator.check_compliance(
            check.employee_id,
            check.work_date,
            check.proposed_hours,
            InMemoryOvertimeLedger(check.recorded_entries()),
        )
        output = asdict(report)
        output["is_compliant"] = report.is_compliant
        output["policy"] = check.policy
        print(dump(output))

        try:
            calculator.enforce_compliance(report, check.policy)
        except ComplianceViolationError as e:
            print(f"BLOCKED: {e}", file=sys.stderr)
            return 2
        return 0

    def _cmd_thr(self, args: argparse.Namespace) -> int:
        """Calculate THR."""
        request: HolidayAllowanceIn = self._read(args.input, HolidayAllowanceIn)
        calculator = HolidayAllowanceCalculator(self._registry(args).resolve(request.as_of_date))
        if request.resignation:
            result = calculator.calculate_resignation(
                request.base(),
                request.employment_start,
                request.as_of_date,
                request.last_payment_date,
            )
        else:
            result = calculator.calculate(
                request.base(), request.employment_start, request.as_of_date, request.kind
            )

        output = asdict(result)
        output["is_full"] = result.is_full
        print(dump(output))
        return 0


def main() -> int:
    """CLI entry point."""
    logging.basicConfig(
        level=get_settings().log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    cli = PayrollCli()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
