"""Type definitions for the calculation pipeline.

Every input and result is an immutable value object created fresh per
calculation. Enumerations are closed: adding a member means updating every
table keyed by it, which the rate table validates at load time.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from indopayroll.exceptions import ValidationError

ZERO = Decimal("0")
MAX_COUNTED_DEPENDENTS = 3


def require_non_negative(name: str, value: Decimal | None) -> Decimal:
    """Fail fast on a missing or negative amount."""
    if value is None:
        raise ValidationError(name, "is required")
    if not isinstance(value, Decimal):
        raise ValidationError(name, f"must be a Decimal, got {type(value).__name__}")
    if value < 0:
        raise ValidationError(name, f"must not be negative, got {value}")
    return value


class MaritalStatus(str, Enum):
    """Marital status used for the PTKP lookup."""

    UNMARRIED = "TK"
    MARRIED = "K"
    MARRIED_WORKING_SPOUSE = "K/I"


class DayType(str, Enum):
    """Overtime day classification."""

    WEEKDAY = "WEEKDAY"
    AFTER_HOURS = "AFTER_HOURS"
    WEEKEND = "WEEKEND"
    HOLIDAY = "HOLIDAY"

    @property
    def tier_group(self) -> str:
        """Key of the overtime tier schedule this day type is priced with."""
        if self in (DayType.WEEKDAY, DayType.AFTER_HOURS):
            return "weekday"
        return "rest_day"


class HolidayAllowanceKind(str, Enum):
    """Religious holidays that trigger a THR payment."""

    IDUL_FITRI = "IDUL_FITRI"
    CHRISTMAS = "CHRISTMAS"
    NYEPI = "NYEPI"
    WAISAK = "WAISAK"
    CHINESE_NEW_YEAR = "CHINESE_NEW_YEAR"


class RiskCategory(str, Enum):
    """Work-accident (JKK) risk tiers."""

    VERY_LOW = "VERY_LOW"
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    VERY_HIGH = "VERY_HIGH"


class OvertimeStatus(str, Enum):
    """Approval state of an overtime submission."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


class PayrollStatus(str, Enum):
    """Lifecycle of a stored payroll result."""

    DRAFT = "DRAFT"
    CALCULATED = "CALCULATED"
    VERIFIED = "VERIFIED"
    APPROVED = "APPROVED"
    PAID = "PAID"


class CompliancePolicy(str, Enum):
    """How an approval workflow treats overtime limit breaches."""

    ADVISORY = "ADVISORY"
    BLOCK_EXTENDED = "BLOCK_EXTENDED"
    BLOCK_WEEKLY = "BLOCK_WEEKLY"
    BLOCK_ALL = "BLOCK_ALL"


# ===== Inputs =====


@dataclass(frozen=True)
class TaxFreeStatus:
    """PTKP status: marital status x dependents (at most 3 counted)."""

    marital_status: MaritalStatus
    dependents: int = 0

    def __post_init__(self) -> None:
        if self.dependents < 0:
            raise ValidationError("dependents", f"must not be negative, got {self.dependents}")

    @property
    def counted_dependents(self) -> int:
        return min(self.dependents, MAX_COUNTED_DEPENDENTS)

    @property
    def code(self) -> str:
        """PTKP table key, e.g. ``TK/0`` or ``K/I/2``."""
        return f"{self.marital_status.value}/{self.counted_dependents}"

    @classmethod
    def from_code(cls, code: str) -> TaxFreeStatus:
        """Parse ``TK/0``, ``K/3``, ``K/I/1`` (also ``TK0``, ``K_I_1``)."""
        normalized = code.strip().upper().replace("_", "/")
        marital, _, dependents = normalized.rpartition("/")
        if not marital:
            # Compact form such as TK0 or K2
            marital, dependents = normalized[:-1], normalized[-1]
        marital = marital.rstrip("/")
        try:
            return cls(MaritalStatus(marital), int(dependents))
        except ValueError as e:
            raise ValidationError("tax_free_status", f"unknown PTKP code {code!r}") from e


@dataclass(frozen=True)
class HolidayAllowanceBase:
    """THR base components. Variable allowances have no place here."""

    basic_salary: Decimal
    fixed_allowances: Decimal = ZERO

    def __post_init__(self) -> None:
        require_non_negative("basic_salary", self.basic_salary)
        require_non_negative("fixed_allowances", self.fixed_allowances)

    @property
    def total(self) -> Decimal:
        return self.basic_salary + self.fixed_allowances


@dataclass(frozen=True)
class CompensationProfile:
    """Employee compensation snapshot supplied by the HR collaborator."""

    basic_salary: Decimal
    tax_free_status: TaxFreeStatus
    employment_start: date
    fixed_allowances: Decimal = ZERO
    variable_allowance: Decimal = ZERO
    has_covered_family: bool = False
    risk_category: RiskCategory | None = None

    def __post_init__(self) -> None:
        require_non_negative("basic_salary", self.basic_salary)
        require_non_negative("fixed_allowances", self.fixed_allowances)
        require_non_negative("variable_allowance", self.variable_allowance)
        if self.employment_start is None:
            raise ValidationError("employment_start", "is required")

    @property
    def total_allowances(self) -> Decimal:
        return self.fixed_allowances + self.variable_allowance

    def holiday_allowance_base(self) -> HolidayAllowanceBase:
        return HolidayAllowanceBase(
            basic_salary=self.basic_salary,
            fixed_allowances=self.fixed_allowances,
        )


@dataclass(frozen=True)
class PayrollPeriod:
    """Payroll period definition. Never changes once calculation begins."""

    start_date: date
    end_date: date
    payment_date: date
    period_code: str
    holiday_allowance: bool = False
    holiday_allowance_kind: HolidayAllowanceKind | None = None

    def __post_init__(self) -> None:
        if self.end_date < self.start_date:
            raise ValidationError(
                "end_date", f"{self.end_date} is before start_date {self.start_date}"
            )
        if self.holiday_allowance and self.holiday_allowance_kind is None:
            raise ValidationError(
                "holiday_allowance_kind", "is required when holiday_allowance is set"
            )

    def contains(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date


@dataclass(frozen=True)
class OvertimeEntry:
    """One overtime submission for one calendar day."""

    entry_id: UUID
    employee_id: UUID
    work_date: date
    day_type: DayType
    hours: Decimal
    status: OvertimeStatus = OvertimeStatus.APPROVED

    def __post_init__(self) -> None:
        require_non_negative("hours", self.hours)
        if self.hours == 0:
            raise ValidationError("hours", "must be positive")

    @property
    def is_approved(self) -> bool:
        return self.status == OvertimeStatus.APPROVED


# ===== Calculator results =====


@dataclass(frozen=True)
class TaxBracket:
    """One progressive band. ``upper_limit`` None means unbounded."""

    upper_limit: Decimal | None
    rate: Decimal


@dataclass(frozen=True)
class TaxCalculationResult:
    """PPh 21 calculation for one employee and period."""

    gross_annual_income: Decimal
    tax_free_status: str
    tax_free_allowance: Decimal
    taxable_income_annual: Decimal
    taxable_income_monthly: Decimal
    bracket_taxes: tuple[Decimal, ...]
    total_annual_tax: Decimal
    monthly_tax: Decimal


@dataclass(frozen=True)
class EmployerContributionResult:
    """Employer-side BPJS contributions. Informational; never affects net pay."""

    risk_category: RiskCategory | None
    health: Decimal
    old_age: Decimal
    pension: Decimal
    work_accident: Decimal
    death: Decimal
    work_accident_rate: Decimal

    @property
    def total(self) -> Decimal:
        return self.health + self.old_age + self.pension + self.work_accident + self.death


@dataclass(frozen=True)
class SocialSecurityResult:
    """Employee-side BPJS contributions and the caps that were applied."""

    health_employee: Decimal
    health_family: Decimal
    old_age_employee: Decimal
    pension_employee: Decimal
    health_salary_cap: Decimal
    employment_salary_cap: Decimal
    health_base: Decimal
    employment_base: Decimal
    employer: EmployerContributionResult | None = None

    @property
    def health_total(self) -> Decimal:
        return self.health_employee + self.health_family

    @property
    def employment_total(self) -> Decimal:
        return self.old_age_employee + self.pension_employee

    @property
    def total_employee(self) -> Decimal:
        return self.health_total + self.employment_total


@dataclass(frozen=True)
class OvertimePayBreakdown:
    """Pricing detail for one day's effective overtime hours."""

    effective_hours: Decimal
    day_type: DayType
    hourly_rate: Decimal
    average_multiplier: Decimal
    pay: Decimal


@dataclass(frozen=True)
class OvertimeResult:
    """Overtime pay for a whole period."""

    total_pay: Decimal
    total_hours: Decimal
    hours_by_day_type: dict[DayType, Decimal]
    average_multiplier: Decimal
    hourly_rate: Decimal
    days: tuple[OvertimePayBreakdown, ...] = ()
    daily_limit_exceeded: bool = False
    weekly_limit_exceeded: bool = False
    max_daily_hours: Decimal = ZERO
    max_weekly_hours: Decimal = ZERO


@dataclass(frozen=True)
class ComplianceWarning:
    """Structured overtime limit breach. A signal, never an exception."""

    code: str
    severity: str
    message: str
    hours: Decimal
    limit: Decimal


@dataclass(frozen=True)
class ComplianceReport:
    """Overtime compliance verdict for one proposed submission."""

    employee_id: UUID
    work_date: date
    proposed_hours: Decimal
    exceeds_daily_limit: bool
    exceeds_extended_limit: bool
    exceeds_weekly_limit: bool
    current_weekly_hours: Decimal
    projected_weekly_hours: Decimal
    daily_limit: Decimal
    extended_daily_limit: Decimal
    weekly_limit: Decimal
    week_start: date
    week_end: date
    warnings: tuple[ComplianceWarning, ...] = ()

    @property
    def is_compliant(self) -> bool:
        return not self.exceeds_extended_limit and not self.exceeds_weekly_limit

    def is_blocked(self, policy: CompliancePolicy) -> bool:
        if policy == CompliancePolicy.BLOCK_EXTENDED:
            return self.exceeds_extended_limit
        if policy == CompliancePolicy.BLOCK_WEEKLY:
            return self.exceeds_weekly_limit
        if policy == CompliancePolicy.BLOCK_ALL:
            return self.exceeds_extended_limit or self.exceeds_weekly_limit
        return False


@dataclass(frozen=True)
class HolidayAllowanceResult:
    """THR calculation outcome."""

    eligible: bool
    months_of_service: int
    allowance_base: Decimal
    percentage: Decimal
    amount: Decimal
    kind: HolidayAllowanceKind | None
    calculation_start: date
    as_of_date: date
    is_resignation: bool = False
    reason: str | None = None

    @property
    def is_full(self) -> bool:
        return self.eligible and self.percentage == Decimal("100")


# ===== Aggregate =====


@dataclass(frozen=True)
class PayrollResult:
    """Itemized gross-to-net payroll for one (employee, period)."""

    employee_id: UUID
    period_id: UUID
    payroll_number: str
    calculation_id: UUID
    inputs_fingerprint: str
    rate_table_version: str
    status: PayrollStatus
    working_days: int

    basic_salary: Decimal
    total_allowances: Decimal
    overtime_pay: Decimal
    overtime_hours: dict[DayType, Decimal]
    holiday_allowance: Decimal
    gross_salary: Decimal

    health_employee: Decimal
    health_family: Decimal
    old_age_employee: Decimal
    pension_employee: Decimal
    income_tax: Decimal
    loan_deduction: Decimal
    other_deductions: Decimal
    total_deductions: Decimal
    net_salary: Decimal

    tax: TaxCalculationResult
    social_security: SocialSecurityResult
    overtime: OvertimeResult
    holiday: HolidayAllowanceResult | None = None
    compliance_warnings: tuple[str, ...] = field(default=())

    @property
    def social_security_total(self) -> Decimal:
        return (
            self.health_employee
            + self.health_family
            + self.old_age_employee
            + self.pension_employee
        )

    def money_fields(self) -> dict[str, Decimal]:
        """Every itemized money line, in slip order."""
        return {
            "basic_salary": self.basic_salary,
            "total_allowances": self.total_allowances,
            "overtime_pay": self.overtime_pay,
            "holiday_allowance": self.holiday_allowance,
            "gross_salary": self.gross_salary,
            "health_employee": self.health_employee,
            "health_family": self.health_family,
            "old_age_employee": self.old_age_employee,
            "pension_employee": self.pension_employee,
            "income_tax": self.income_tax,
            "loan_deduction": self.loan_deduction,
            "other_deductions": self.other_deductions,
            "total_deductions": self.total_deductions,
            "net_salary": self.net_salary,
        }

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-ready dict (Decimals as strings)."""
        data: dict[str, Any] = {
            "employee_id": str(self.employee_id),
            "period_id": str(self.period_id),
            "payroll_number": self.payroll_number,
            "calculation_id": str(self.calculation_id),
            "inputs_fingerprint": self.inputs_fingerprint,
            "rate_table_version": self.rate_table_version,
            "status": self.status.value,
            "working_days": self.working_days,
            "overtime_hours": {k.value: str(v) for k, v in self.overtime_hours.items()},
            "tax": {
                "tax_free_status": self.tax.tax_free_status,
                "tax_free_allowance": str(self.tax.tax_free_allowance),
                "gross_annual_income": str(self.tax.gross_annual_income),
                "taxable_income_annual": str(self.tax.taxable_income_annual),
                "taxable_income_monthly": str(self.tax.taxable_income_monthly),
                "bracket_taxes": [str(b) for b in self.tax.bracket_taxes],
                "total_annual_tax": str(self.tax.total_annual_tax),
            },
            "compliance_warnings": list(self.compliance_warnings),
        }
        data.update({name: str(value) for name, value in self.money_fields().items()})
        if self.social_security.employer is not None:
            employer = self.social_security.employer
            data["employer_contributions"] = {
                "health": str(employer.health),
                "old_age": str(employer.old_age),
                "pension": str(employer.pension),
                "work_accident": str(employer.work_accident),
                "death": str(employer.death),
                "total": str(employer.total),
            }
        return data
