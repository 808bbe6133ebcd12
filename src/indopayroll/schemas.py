"""Pydantic schemas for JSON input documents."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from indopayroll.calculators.engine import PayrollRequest
from indopayroll.calculators.types import (
    CompensationProfile,
    CompliancePolicy,
    DayType,
    HolidayAllowanceBase,
    HolidayAllowanceKind,
    OvertimeEntry,
    OvertimeStatus,
    PayrollPeriod,
    RiskCategory,
    TaxFreeStatus,
)
from indopayroll.exceptions import ValidationError


class InputBase(BaseModel):
    """Base schema for input documents."""

    model_config = ConfigDict(extra="forbid", frozen=True)


# ============================================================================
# Payroll calculation
# ============================================================================


class CompensationProfileIn(InputBase):
    """Employee compensation snapshot."""

    basic_salary: Decimal = Field(ge=0)
    fixed_allowances: Decimal = Field(default=Decimal("0"), ge=0)
    variable_allowance: Decimal = Field(default=Decimal("0"), ge=0)
    tax_free_status: str = Field(description="PTKP code such as TK/0, K/2 or K/I/1")
    employment_start: date
    has_covered_family: bool = False
    risk_category: RiskCategory | None = None

    @field_validator("tax_free_status")
    @classmethod
    def _parse_tax_free_status(cls, value: str) -> str:
        try:
            return TaxFreeStatus.from_code(value).code
        except ValidationError as e:
            raise ValueError(e.message) from e

    def to_domain(self) -> CompensationProfile:
        return CompensationProfile(
            basic_salary=self.basic_salary,
            tax_free_status=TaxFreeStatus.from_code(self.tax_free_status),
            employment_start=self.employment_start,
            fixed_allowances=self.fixed_allowances,
            variable_allowance=self.variable_allowance,
            has_covered_family=self.has_covered_family,
            risk_category=self.risk_category,
        )


class PayrollPeriodIn(InputBase):
    """Payroll period definition."""

    start_date: date
    end_date: date
    payment_date: date
    period_code: str = Field(min_length=1)
    holiday_allowance: bool = False
    holiday_allowance_kind: HolidayAllowanceKind | None = None

    def to_domain(self) -> PayrollPeriod:
        return PayrollPeriod(
            start_date=self.start_date,
            end_date=self.end_date,
            payment_date=self.payment_date,
            period_code=self.period_code,
            holiday_allowance=self.holiday_allowance,
            holiday_allowance_kind=self.holiday_allowance_kind,
        )


class OvertimeEntryIn(InputBase):
    """One overtime submission."""

    entry_id: UUID = Field(default_factory=uuid4)
    work_date: date
    day_type: DayType
    hours: Decimal = Field(gt=0)
    status: OvertimeStatus = OvertimeStatus.APPROVED

    def to_domain(self, employee_id: UUID) -> OvertimeEntry:
        return OvertimeEntry(
            entry_id=self.entry_id,
            employee_id=employee_id,
            work_date=self.work_date,
            day_type=self.day_type,
            hours=self.hours,
            status=self.status,
        )


class EmployeePayrollIn(InputBase):
    """Per-employee part of a calculation document."""

    employee_id: UUID
    profile: CompensationProfileIn
    overtime: list[OvertimeEntryIn] = Field(default_factory=list)
    loan_deduction: Decimal = Field(default=Decimal("0"), ge=0)
    other_deductions: Decimal = Field(default=Decimal("0"), ge=0)
    ytd_annual_income: Decimal | None = Field(default=None, ge=0)


class PayrollDocument(InputBase):
    """One period and the employees to calculate for it."""

    period_id: UUID = Field(default_factory=uuid4)
    period: PayrollPeriodIn
    employees: list[EmployeePayrollIn] = Field(min_length=1)

    @model_validator(mode="after")
    def _unique_employees(self) -> PayrollDocument:
        seen: set[UUID] = set()
        for employee in self.employees:
            if employee.employee_id in seen:
                raise ValueError(f"employee {employee.employee_id} is listed more than once")
            seen.add(employee.employee_id)
        return self

    def to_requests(self) -> list[PayrollRequest]:
        period = self.period.to_domain()
        return [
            PayrollRequest(
                employee_id=e.employee_id,
                period_id=self.period_id,
                profile=e.profile.to_domain(),
                period=period,
                approved_overtime=tuple(o.to_domain(e.employee_id) for o in e.overtime),
                loan_deduction=e.loan_deduction,
                other_deductions=e.other_deductions,
                ytd_annual_income=e.ytd_annual_income,
            )
            for e in self.employees
        ]


# ============================================================================
# Overtime compliance
# ============================================================================


class ComplianceCheckIn(InputBase):
    """A proposed overtime submission and the hours already recorded."""

    employee_id: UUID
    work_date: date
    proposed_hours: Decimal = Field(gt=0)
    recorded: list[OvertimeEntryIn] = Field(default_factory=list)
    policy: CompliancePolicy = CompliancePolicy.ADVISORY

    def recorded_entries(self) -> list[OvertimeEntry]:
        return [entry.to_domain(self.employee_id) for entry in self.recorded]


# ============================================================================
# Holiday allowance
# ============================================================================


class HolidayAllowanceIn(InputBase):
    """THR request, regular or at resignation."""

    basic_salary: Decimal = Field(ge=0)
    fixed_allowances: Decimal = Field(default=Decimal("0"), ge=0)
    employment_start: date
    as_of_date: date
    kind: HolidayAllowanceKind | None = None
    resignation: bool = False
    last_payment_date: date | None = None

    def base(self) -> HolidayAllowanceBase:
        return HolidayAllowanceBase(self.basic_salary, self.fixed_allowances)
