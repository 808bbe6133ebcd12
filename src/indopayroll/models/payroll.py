"""Stored payroll results."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, CheckConstraint, DateTime, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from indopayroll.models.base import Base, TimestampMixin

# Columns copied one-to-one from PayrollResult.money_fields()
MONEY_COLUMNS = (
    "basic_salary",
    "total_allowances",
    "overtime_pay",
    "holiday_allowance",
    "gross_salary",
    "health_employee",
    "health_family",
    "old_age_employee",
    "pension_employee",
    "income_tax",
    "loan_deduction",
    "other_deductions",
    "total_deductions",
    "net_salary",
)


class EmployeePayrollRecord(Base, TimestampMixin):
    """One calculated payroll result per employee per period."""

    __tablename__ = "employee_payroll"

    employee_payroll_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    employee_id: Mapped[UUID] = mapped_column(nullable=False)
    payroll_period_id: Mapped[UUID] = mapped_column(nullable=False)
    payroll_number: Mapped[str] = mapped_column(String, nullable=False)
    calculation_id: Mapped[UUID] = mapped_column(nullable=False)
    inputs_fingerprint: Mapped[str] = mapped_column(String(32), nullable=False)
    rate_table_version: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="CALCULATED")
    working_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    basic_salary: Mapped[Decimal] = mapped_column(nullable=False)
    total_allowances: Mapped[Decimal] = mapped_column(nullable=False)
    overtime_pay: Mapped[Decimal] = mapped_column(nullable=False)
    holiday_allowance: Mapped[Decimal] = mapped_column(nullable=False)
    gross_salary: Mapped[Decimal] = mapped_column(nullable=False)
    health_employee: Mapped[Decimal] = mapped_column(nullable=False)
    health_family: Mapped[Decimal] = mapped_column(nullable=False)
    old_age_employee: Mapped[Decimal] = mapped_column(nullable=False)
    pension_employee: Mapped[Decimal] = mapped_column(nullable=False)
    income_tax: Mapped[Decimal] = mapped_column(nullable=False)
    loan_deduction: Mapped[Decimal] = mapped_column(nullable=False)
    other_deductions: Mapped[Decimal] = mapped_column(nullable=False)
    total_deductions: Mapped[Decimal] = mapped_column(nullable=False)
    net_salary: Mapped[Decimal] = mapped_column(nullable=False)

    overtime_hours: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    compliance_warnings: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    detail: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    calculated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        UniqueConstraint(
            "employee_id",
            "payroll_period_id",
            name="employee_payroll_employee_period_unique",
        ),
        CheckConstraint(
            "status IN ('DRAFT', 'CALCULATED', 'VERIFIED', 'APPROVED', 'PAID')",
            name="employee_payroll_status_check",
        ),
        CheckConstraint("net_salary >= 0", name="employee_payroll_net_check"),
    )
