"""Payroll calculation engine - main orchestrator."""

from __future__ import annotations

import hashlib
import json
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Iterable, Sequence
from uuid import UUID

from indopayroll.calculators.holiday_allowance import HolidayAllowanceCalculator
from indopayroll.calculators.overtime_calculator import OvertimeCalculator
from indopayroll.calculators.rate_table import RateTable
from indopayroll.calculators.social_security import SocialSecurityCalculator
from indopayroll.calculators.tax_calculator import MONTHS_PER_YEAR, TaxCalculator
from indopayroll.calculators.types import (
    ZERO,
    CompensationProfile,
    OvertimeEntry,
    OvertimeResult,
    PayrollPeriod,
    PayrollResult,
    PayrollStatus,
    require_non_negative,
)
from indopayroll.config import get_settings
from indopayroll.exceptions import ConfigurationError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


def count_working_days(start: date, end: date) -> int:
    """Weekdays (Monday to Friday) between two dates, inclusive."""
    days = 0
    current = start
    while current <= end:
        if current.weekday() < 5:
            days += 1
        current += timedelta(days=1)
    return days


def payroll_number(employee_id: UUID, period: PayrollPeriod) -> str:
    """Slip number such as ``PAY-MONTHLY-202403-1A2B3C4D``."""
    return "PAY-{}-{:04d}{:02d}-{}".format(
        period.period_code,
        period.start_date.year,
        period.start_date.month,
        str(employee_id)[:8].upper(),
    )


def duplicate_request_error(employee_id: UUID, period_id: UUID) -> ValidationError:
    """Error for a second request with the same (employee, period) key."""
    return ValidationError(
        "employee_id",
        f"duplicate request for employee {employee_id} in period {period_id}",
    )


@dataclass(frozen=True)
class PayrollRequest:
    """Everything needed to calculate one employee for one period."""

    employee_id: UUID
    period_id: UUID
    profile: CompensationProfile
    period: PayrollPeriod
    approved_overtime: tuple[OvertimeEntry, ...] = ()
    loan_deduction: Decimal = ZERO
    other_deductions: Decimal = ZERO
    ytd_annual_income: Decimal | None = None


@dataclass(frozen=True)
class EmployeeFailure:
    """A per-employee error captured at the batch boundary."""

    employee_id: UUID
    period_id: UUID
    error_type: str
    message: str

    @classmethod
    def from_exception(cls, employee_id: UUID, period_id: UUID, exc: Exception) -> EmployeeFailure:
        return cls(
            employee_id=employee_id,
            period_id=period_id,
            error_type=type(exc).__name__,
            message=str(exc),
        )


@dataclass
class PayrollBatchResult:
    """Result of calculating many employees."""

    results: list[PayrollResult] = field(default_factory=list)
    failures: list[EmployeeFailure] = field(default_factory=list)
    total_gross: Decimal = ZERO
    total_net: Decimal = ZERO
    total_tax: Decimal = ZERO
    total_social_security: Decimal = ZERO
    total_overtime: Decimal = ZERO
    total_holiday_allowance: Decimal = ZERO

    @property
    def success_count(self) -> int:
        return len(self.results)

    @property
    def error_count(self) -> int:
        return len(self.failures)

    @property
    def success(self) -> bool:
        return not self.failures

    @classmethod
    def from_outcomes(cls, outcomes: Iterable[PayrollResult | EmployeeFailure]) -> PayrollBatchResult:
        batch = cls()
        for outcome in outcomes:
            if isinstance(outcome, EmployeeFailure):
                batch.failures.append(outcome)
                continue
            batch.results.append(outcome)
            batch.total_gross += outcome.gross_salary
            batch.total_net += outcome.net_salary
            batch.total_tax += outcome.income_tax
            batch.total_social_security += outcome.social_security_total
            batch.total_overtime += outcome.overtime_pay
            batch.total_holiday_allowance += outcome.holiday_allowance
        return batch


class PayrollOrchestrator:
    """Composes the four calculators into one itemized payroll result.

    Calculation pipeline (stable order per employee):
    1) Price approved overtime per calendar day
    2) THR as of the period end date, when the period pays it
    3) Gross = basic + allowances + overtime + THR
    4) Employee BPJS on capped bases (employer side for reporting)
    5) PPh 21 from year-to-date income, or gross x 12 when none is supplied
    6) Deductions = BPJS + PPh 21 + loan + other
    7) Net = gross - deductions, never negative

    Results are always ``CALCULATED``; later statuses belong to the approval
    workflow.
    """

    def __init__(
        self,
        rates: RateTable,
        engine_version: str | None = None,
        max_workers: int | None = None,
    ):
        settings = get_settings()
        self.rates = rates
        self.engine_version = engine_version or settings.engine_version
        self.max_workers = max_workers or settings.batch_max_workers
        self.tax_calculator = TaxCalculator(rates)
        self.social_security_calculator = SocialSecurityCalculator(rates)
        self.overtime_calculator = OvertimeCalculator(rates)
        self.holiday_allowance_calculator = HolidayAllowanceCalculator(rates)

    def calculate(
        self,
        employee_id: UUID,
        period_id: UUID,
        profile: CompensationProfile,
        period: PayrollPeriod,
        approved_overtime: Iterable[OvertimeEntry] = (),
        loan_deduction: Decimal = ZERO,
        other_deductions: Decimal = ZERO,
        ytd_annual_income: Decimal | None = None,
    ) -> PayrollResult:
        """Calculate one employee's payroll for one period."""
        require_non_negative("loan_deduction", loan_deduction)
        require_non_negative("other_deductions", other_deductions)
        if ytd_annual_income is not None:
            require_non_negative("ytd_annual_income", ytd_annual_income)

        entries = tuple(approved_overtime)
        self._check_overtime_entries(employee_id, period, entries)

        overtime = self.overtime_calculator.calculate_period(entries, profile.basic_salary)

        holiday = None
        holiday_amount = ZERO
        if period.holiday_allowance:
            holiday = self.holiday_allowance_calculator.calculate_for_profile(
                profile, period.end_date, period.holiday_allowance_kind
            )
            holiday_amount = holiday.amount

        gross = profile.basic_salary + profile.total_allowances + overtime.total_pay + holiday_amount

        social_security = self.social_security_calculator.calculate_contributions(
            profile.basic_salary,
            profile.total_allowances,
            profile.has_covered_family,
            risk_category=profile.risk_category,
            include_employer=True,
        )

        annual_income = ytd_annual_income if ytd_annual_income is not None else gross * MONTHS_PER_YEAR
        tax = self.tax_calculator.calculate_monthly_tax(annual_income, profile.tax_free_status)

        total_deductions = (
            social_security.total_employee + tax.monthly_tax + loan_deduction + other_deductions
        )
        net = gross - total_deductions
        if net < 0:
            raise ValidationError(
                "net_salary",
                f"deductions {total_deductions} exceed gross {gross} for employee {employee_id}",
            )

        inputs_fingerprint = self._compute_inputs_fingerprint(
            profile, period, entries, loan_deduction, other_deductions, ytd_annual_income
        )

        result = PayrollResult(
            employee_id=employee_id,
            period_id=period_id,
            payroll_number=payroll_number(employee_id, period),
            calculation_id=self._generate_calculation_id(employee_id, period_id, inputs_fingerprint),
            inputs_fingerprint=inputs_fingerprint,
            rate_table_version=self.rates.version,
            status=PayrollStatus.CALCULATED,
            working_days=count_working_days(period.start_date, period.end_date),
            basic_salary=profile.basic_salary,
            total_allowances=profile.total_allowances,
            overtime_pay=overtime.total_pay,
            overtime_hours=dict(overtime.hours_by_day_type),
            holiday_allowance=holiday_amount,
            gross_salary=gross,
            health_employee=social_security.health_employee,
            health_family=social_security.health_family,
            old_age_employee=social_security.old_age_employee,
            pension_employee=social_security.pension_employee,
            income_tax=tax.monthly_tax,
            loan_deduction=loan_deduction,
            other_deductions=other_deductions,
            total_deductions=total_deductions,
            net_salary=net,
            tax=tax,
            social_security=social_security,
            overtime=overtime,
            holiday=holiday,
            compliance_warnings=self._overtime_warnings(overtime),
        )

        logger.info(
            "Payroll calculated for employee %s period %s: gross=%s deductions=%s net=%s",
            employee_id,
            period.period_code,
            gross,
            total_deductions,
            net,
        )
        return result

    def calculate_request(self, request: PayrollRequest) -> PayrollResult:
        return self.calculate(
            request.employee_id,
            request.period_id,
            request.profile,
            request.period,
            approved_overtime=request.approved_overtime,
            loan_deduction=request.loan_deduction,
            other_deductions=request.other_deductions,
            ytd_annual_income=request.ytd_annual_income,
        )

    def calculate_batch(
        self,
        requests: Iterable[PayrollRequest],
        max_workers: int | None = None,
    ) -> PayrollBatchResult:
        """Calculate many employees on a bounded worker pool.

        One employee's failure is recorded and the rest continue. A repeated
        (employee, period) key is calculated once; later repeats are reported
        as failures. A ``ConfigurationError`` aborts the whole batch.
        """
        unique: list[PayrollRequest] = []
        duplicates: list[EmployeeFailure] = []
        seen: set[tuple[UUID, UUID]] = set()
        for request in requests:
            key = (request.employee_id, request.period_id)
            if key in seen:
                logger.warning("Duplicate request for employee %s period %s", *key)
                duplicates.append(
                    EmployeeFailure.from_exception(
                        request.employee_id,
                        request.period_id,
                        duplicate_request_error(*key),
                    )
                )
                continue
            seen.add(key)
            unique.append(request)

        workers = max_workers or self.max_workers

        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = [pool.submit(self._calculate_isolated, r) for r in unique]
            try:
                outcomes = [f.result() for f in futures]
            except ConfigurationError:
                for f in futures:
                    f.cancel()
                logger.error("Configuration error, aborting batch of %d employees", len(unique))
                raise

        batch = PayrollBatchResult.from_outcomes([*outcomes, *duplicates])
        logger.info(
            "Batch calculated: %d succeeded, %d failed, total gross=%s net=%s",
            batch.success_count,
            batch.error_count,
            batch.total_gross,
            batch.total_net,
        )
        return batch

    def _calculate_isolated(self, request: PayrollRequest) -> PayrollResult | EmployeeFailure:
        try:
            return self.calculate_request(request)
        except ConfigurationError:
            raise
        except (ValidationError, NotFoundError) as e:
            logger.warning("Payroll failed for employee %s: %s", request.employee_id, e)
            return EmployeeFailure.from_exception(request.employee_id, request.period_id, e)
        except Exception as e:
            # Catch unexpected errors
            logger.exception("Unexpected error calculating employee %s", request.employee_id)
            return EmployeeFailure.from_exception(request.employee_id, request.period_id, e)

    @staticmethod
    def _check_overtime_entries(
        employee_id: UUID, period: PayrollPeriod, entries: Sequence[OvertimeEntry]
    ) -> None:
        for entry in entries:
            if entry.employee_id != employee_id:
                raise ValidationError(
                    "approved_overtime",
                    f"entry {entry.entry_id} belongs to employee {entry.employee_id}",
                )
            if not period.contains(entry.work_date):
                raise ValidationError(
                    "approved_overtime",
                    f"entry {entry.entry_id} on {entry.work_date} is outside "
                    f"{period.start_date}..{period.end_date}",
                )

    def _overtime_warnings(self, overtime: OvertimeResult) -> tuple[str, ...]:
        rules = self.rates.overtime
        warnings = []
        if overtime.daily_limit_exceeded:
            warnings.append(
                f"DAILY_LIMIT: {overtime.max_daily_hours}h overtime in one day "
                f"(limit: {rules.daily_limit}h)"
            )
        if overtime.weekly_limit_exceeded:
            warnings.append(
                f"WEEKLY_LIMIT: {overtime.max_weekly_hours}h overtime in one week "
                f"(limit: {rules.weekly_limit}h)"
            )
        return tuple(warnings)

    def _generate_calculation_id(
        self,
        employee_id: UUID,
        period_id: UUID,
        inputs_fingerprint: str,
    ) -> UUID:
        """Generate deterministic calculation ID."""
        data = {
            "employee_id": str(employee_id),
            "period_id": str(period_id),
            "engine_version": self.engine_version,
            "rate_table_version": self.rates.version,
            "inputs_fingerprint": inputs_fingerprint,
        }
        json_str = json.dumps(data, sort_keys=True)
        hash_bytes = hashlib.sha256(json_str.encode()).digest()
        return UUID(bytes=hash_bytes[:16])

    @staticmethod
    def _compute_inputs_fingerprint(
        profile: CompensationProfile,
        period: PayrollPeriod,
        entries: Sequence[OvertimeEntry],
        loan_deduction: Decimal,
        other_deductions: Decimal,
        ytd_annual_income: Decimal | None,
    ) -> str:
        """Compute fingerprint of all inputs used in calculation."""
        data: dict[str, Any] = {
            "profile": {
                "basic_salary": str(profile.basic_salary),
                "fixed_allowances": str(profile.fixed_allowances),
                "variable_allowance": str(profile.variable_allowance),
                "tax_free_status": profile.tax_free_status.code,
                "employment_start": profile.employment_start.isoformat(),
                "has_covered_family": profile.has_covered_family,
                "risk_category": profile.risk_category.value if profile.risk_category else None,
            },
            "period": {
                "start_date": period.start_date.isoformat(),
                "end_date": period.end_date.isoformat(),
                "payment_date": period.payment_date.isoformat(),
                "period_code": period.period_code,
                "holiday_allowance": period.holiday_allowance,
                "holiday_allowance_kind": (
                    period.holiday_allowance_kind.value if period.holiday_allowance_kind else None
                ),
            },
            "overtime": sorted(
                [
                    {
                        "entry_id": str(e.entry_id),
                        "work_date": e.work_date.isoformat(),
                        "day_type": e.day_type.value,
                        "hours": str(e.hours),
                    }
                    for e in entries
                ],
                key=lambda e: e["entry_id"],
            ),
            "loan_deduction": str(loan_deduction),
            "other_deductions": str(other_deductions),
            "ytd_annual_income": None if ytd_annual_income is None else str(ytd_annual_income),
        }
        json_str = json.dumps(data, sort_keys=True)
        return hashlib.sha256(json_str.encode()).hexdigest()[:32]
