"""Idempotent persistence of calculated payroll results."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from indopayroll.calculators.types import ZERO, PayrollResult, PayrollStatus
from indopayroll.exceptions import ConfigurationError, NotFoundError, PayrollError
from indopayroll.models import MONEY_COLUMNS, EmployeePayrollRecord
from indopayroll.services.state_machine import InvalidTransitionError, PayrollStateMachine

logger = logging.getLogger(__name__)


class ResultLockedError(PayrollError):
    """Raised when recalculation would overwrite an approved or paid result."""

    def __init__(self, employee_id: UUID, period_id: UUID, status: str):
        self.employee_id = employee_id
        self.period_id = period_id
        self.status = status
        super().__init__(
            f"Payroll result for employee {employee_id} period {period_id} is {status} "
            "and can no longer be recalculated"
        )


@dataclass
class PeriodSummary:
    """Totals over every stored result of one period."""

    period_id: UUID
    employee_count: int = 0
    total_gross: Decimal = ZERO
    total_deductions: Decimal = ZERO
    total_net: Decimal = ZERO
    total_tax: Decimal = ZERO
    total_social_security: Decimal = ZERO
    total_overtime: Decimal = ZERO
    total_holiday_allowance: Decimal = ZERO
    status_counts: dict[str, int] = field(default_factory=dict)


class PayrollResultStore:
    """Stores at most one result per (employee, period).

    Key invariants:
    1. One row per (employee_id, payroll_period_id), enforced by unique constraint
    2. Recalculation overwrites the whole row via ON CONFLICT DO UPDATE
    3. Rows in APPROVED or PAID are never overwritten; the conflict update is
       guarded by a status predicate so a concurrent approval cannot be lost
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    def _insert(self):
        dialect = self.session.get_bind().dialect.name
        if dialect == "postgresql":
            return postgresql.insert
        if dialect == "sqlite":
            return sqlite.insert
        raise ConfigurationError(f"Result store does not support the {dialect!r} dialect")

    async def save(self, result: PayrollResult) -> EmployeePayrollRecord:
        """Insert or overwrite the result for its (employee, period).

        Raises:
            ResultLockedError: If the stored result is APPROVED or PAID
        """
        values = self._values(result)
        insert = self._insert()
        stmt = insert(EmployeePayrollRecord).values(employee_payroll_id=uuid4(), **values)
        stmt = stmt.on_conflict_do_update(
            index_elements=["employee_id", "payroll_period_id"],
            set_={
                **{name: stmt.excluded[name] for name in values},
                "approved_at": None,
                "paid_at": None,
            },
            where=EmployeePayrollRecord.status.in_(
                [s.value for s in PayrollStateMachine.CALCULATION_ALLOWED]
            ),
        )
        outcome = await self.session.execute(stmt)

        if outcome.rowcount == 0:
            existing = await self.get(result.employee_id, result.period_id)
            raise ResultLockedError(result.employee_id, result.period_id, existing.status)

        logger.info(
            "Stored payroll %s (calculation %s) for employee %s",
            result.payroll_number,
            result.calculation_id,
            result.employee_id,
        )
        return await self.get(result.employee_id, result.period_id)

    @staticmethod
    def _values(result: PayrollResult) -> dict[str, Any]:
        values: dict[str, Any] = {
            "employee_id": result.employee_id,
            "payroll_period_id": result.period_id,
            "payroll_number": result.payroll_number,
            "calculation_id": result.calculation_id,
            "inputs_fingerprint": result.inputs_fingerprint,
            "rate_table_version": result.rate_table_version,
            "status": result.status.value,
            "working_days": result.working_days,
            "overtime_hours": {k.value: str(v) for k, v in result.overtime_hours.items()},
            "compliance_warnings": list(result.compliance_warnings),
            "detail": result.to_dict(),
            "calculated_at": datetime.now(timezone.utc),
        }
        money = result.money_fields()
        values.update({name: money[name] for name in MONEY_COLUMNS})
        return values

    async def get(self, employee_id: UUID, period_id: UUID) -> EmployeePayrollRecord:
        """Get the stored result, raising NotFoundError if missing."""
        record = await self.session.scalar(
            select(EmployeePayrollRecord)
            .where(
                EmployeePayrollRecord.employee_id == employee_id,
                EmployeePayrollRecord.payroll_period_id == period_id,
            )
            .execution_options(populate_existing=True)
        )
        if record is None:
            raise NotFoundError("payroll result", f"employee {employee_id} period {period_id}")
        return record

    async def list_for_period(self, period_id: UUID) -> list[EmployeePayrollRecord]:
        result = await self.session.scalars(
            select(EmployeePayrollRecord)
            .where(EmployeePayrollRecord.payroll_period_id == period_id)
            .order_by(EmployeePayrollRecord.payroll_number)
            .execution_options(populate_existing=True)
        )
        return list(result.all())

    async def period_summary(self, period_id: UUID) -> PeriodSummary:
        """Aggregate totals for a period."""
        summary = PeriodSummary(period_id=period_id)
        for record in await self.list_for_period(period_id):
            summary.employee_count += 1
            summary.total_gross += record.gross_salary
            summary.total_deductions += record.total_deductions
            summary.total_net += record.net_salary
            summary.total_tax += record.income_tax
            summary.total_social_security += (
                record.health_employee
                + record.health_family
                + record.old_age_employee
                + record.pension_employee
            )
            summary.total_overtime += record.overtime_pay
            summary.total_holiday_allowance += record.holiday_allowance
            summary.status_counts[record.status] = summary.status_counts.get(record.status, 0) + 1
        return summary

    async def transition(
        self,
        employee_id: UUID,
        period_id: UUID,
        to_status: PayrollStatus,
    ) -> EmployeePayrollRecord:
        """Move a stored result through the approval workflow."""
        record = await self.get(employee_id, period_id)
        errors = PayrollStateMachine.validate_record_for_transition(record, to_status)
        if errors:
            raise InvalidTransitionError(record.status, to_status.value, "; ".join(errors))

        now = datetime.now(timezone.utc)
        if PayrollStateMachine.is_reopen(record.status, to_status):
            record.approved_at = None
        elif to_status == PayrollStatus.APPROVED:
            record.approved_at = now
        elif to_status == PayrollStatus.PAID:
            record.paid_at = now

        logger.info(
            "Payroll %s: %s -> %s", record.payroll_number, record.status, to_status.value
        )
        record.status = to_status.value
        await self.session.flush()
        return record
