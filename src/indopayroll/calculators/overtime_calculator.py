"""Overtime pay and labor-law compliance (UU Ketenagakerjaan No. 13/2003).

Pricing:
- Weekday / after hours: 1.5x first hour, 2x every hour after
- Weekend / holiday: 2x up to 8 hours, 3x from 8 to 9, 4x beyond 9

Tiers apply to marginal hour ranges and the total is rounded once, after all
tiers are composed.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, Protocol, runtime_checkable
from uuid import UUID

from indopayroll.calculators.rate_table import OvertimeTier, RateTable
from indopayroll.calculators.rounding import quantize_rate, round_half_up
from indopayroll.calculators.types import (
    ZERO,
    ComplianceReport,
    CompliancePolicy,
    ComplianceWarning,
    DayType,
    OvertimeEntry,
    OvertimePayBreakdown,
    OvertimeResult,
    OvertimeStatus,
    require_non_negative,
)
from indopayroll.exceptions import ValidationError

logger = logging.getLogger(__name__)


class ComplianceViolationError(ValidationError):
    """Raised when a caller's policy blocks an overtime limit breach."""

    def __init__(self, report: ComplianceReport, policy: CompliancePolicy):
        self.report = report
        self.policy = policy
        super().__init__(
            "proposed_hours",
            f"{report.proposed_hours}h on {report.work_date} blocked by {policy.value}: "
            + " ".join(w.message for w in report.warnings),
        )


@runtime_checkable
class OvertimeLedger(Protocol):
    """Source of already-recorded overtime hours for an employee."""

    def total_hours(self, employee_id: UUID, start: date, end: date) -> Decimal:
        """Total overtime hours recorded between two dates, inclusive."""
        ...


class InMemoryOvertimeLedger:
    """Ledger over a list of overtime entries.

    Approved and pending submissions both count toward the weekly total;
    rejected and cancelled ones do not. Duplicate entry ids count once.
    """

    COUNTED_STATUSES = frozenset({OvertimeStatus.APPROVED, OvertimeStatus.PENDING})

    def __init__(self, entries: Iterable[OvertimeEntry] = ()):
        self._entries: dict[UUID, OvertimeEntry] = {}
        for entry in entries:
            self.add(entry)

    def add(self, entry: OvertimeEntry) -> None:
        self._entries[entry.entry_id] = entry

    def total_hours(self, employee_id: UUID, start: date, end: date) -> Decimal:
        return sum(
            (
                e.hours
                for e in self._entries.values()
                if e.employee_id == employee_id
                and start <= e.work_date <= end
                and e.status in self.COUNTED_STATUSES
            ),
            ZERO,
        )


def week_bounds(day: date) -> tuple[date, date]:
    """Monday and Sunday of the week containing a date."""
    monday = day - timedelta(days=day.weekday())
    return monday, monday + timedelta(days=6)


class OvertimeCalculator:
    """Converts approved overtime hours into pay and checks labor-law limits."""

    def __init__(self, rates: RateTable):
        self.rates = rates
        self.rules = rates.overtime

    def hourly_rate(self, monthly_salary: Decimal) -> Decimal:
        """Monthly salary / (standard working days x standard daily hours)."""
        require_non_negative("monthly_salary", monthly_salary)
        monthly_hours = self.rules.standard_daily_hours * self.rules.standard_working_days
        return quantize_rate(monthly_salary / monthly_hours)

    def _tiers(self, day_type: DayType) -> tuple[OvertimeTier, ...]:
        return self.rules.tiers[day_type.tier_group]

    def _weighted_hours(self, hours: Decimal, day_type: DayType) -> Decimal:
        """Sum of marginal band hours times their multiplier."""
        weighted = ZERO
        lower = ZERO
        for tier in self._tiers(day_type):
            if hours <= lower:
                break
            upper = hours if tier.up_to is None else min(hours, tier.up_to)
            weighted += (upper - lower) * tier.multiplier
            if tier.up_to is None:
                break
            lower = tier.up_to
        return weighted

    def calculate_pay(
        self,
        effective_hours: Decimal,
        day_type: DayType,
        hourly_rate: Decimal,
    ) -> Decimal:
        """Overtime pay for one day's effective hours."""
        require_non_negative("effective_hours", effective_hours)
        require_non_negative("hourly_rate", hourly_rate)
        if effective_hours == 0:
            return ZERO
        return round_half_up(hourly_rate * self._weighted_hours(effective_hours, day_type))

    def average_multiplier(self, effective_hours: Decimal, day_type: DayType) -> Decimal:
        """Effective multiplier across all hours (for reporting)."""
        require_non_negative("effective_hours", effective_hours)
        if effective_hours == 0:
            return ZERO
        return quantize_rate(self._weighted_hours(effective_hours, day_type) / effective_hours)

    def calculate_with_breakdown(
        self,
        effective_hours: Decimal,
        day_type: DayType,
        monthly_salary: Decimal,
    ) -> OvertimePayBreakdown:
        """Overtime pay with the hourly rate and multiplier used."""
        hourly = self.hourly_rate(monthly_salary)
        return OvertimePayBreakdown(
            effective_hours=effective_hours,
            day_type=day_type,
            hourly_rate=hourly,
            average_multiplier=self.average_multiplier(effective_hours, day_type),
            pay=self.calculate_pay(effective_hours, day_type, hourly),
        )

    def calculate_period(
        self,
        entries: Iterable[OvertimeEntry],
        monthly_salary: Decimal,
    ) -> OvertimeResult:
        """Price a period's approved overtime.

        Entries are deduplicated by id and combined per calendar day before
        pricing, so tiers apply to the day's total hours.
        """
        hourly = self.hourly_rate(monthly_salary)
        days = self._group_by_day(entries)

        breakdowns: list[OvertimePayBreakdown] = []
        hours_by_type: dict[DayType, Decimal] = defaultdict(lambda: ZERO)
        weekly_hours: dict[date, Decimal] = defaultdict(lambda: ZERO)
        weighted_total = ZERO

        for work_date in sorted(days):
            day_type, hours = days[work_date]
            breakdowns.append(
                OvertimePayBreakdown(
                    effective_hours=hours,
                    day_type=day_type,
                    hourly_rate=hourly,
                    average_multiplier=self.average_multiplier(hours, day_type),
                    pay=self.calculate_pay(hours, day_type, hourly),
                )
            )
            hours_by_type[day_type] += hours
            weekly_hours[week_bounds(work_date)[0]] += hours
            weighted_total += self._weighted_hours(hours, day_type)

        total_hours = sum((b.effective_hours for b in breakdowns), ZERO)
        max_daily = max((b.effective_hours for b in breakdowns), default=ZERO)
        max_weekly = max(weekly_hours.values(), default=ZERO)

        return OvertimeResult(
            total_pay=sum((b.pay for b in breakdowns), ZERO),
            total_hours=total_hours,
            hours_by_day_type=dict(hours_by_type),
            average_multiplier=(
                quantize_rate(weighted_total / total_hours) if total_hours else ZERO
            ),
            hourly_rate=hourly,
            days=tuple(breakdowns),
            daily_limit_exceeded=max_daily > self.rules.daily_limit,
            weekly_limit_exceeded=max_weekly > self.rules.weekly_limit,
            max_daily_hours=max_daily,
            max_weekly_hours=max_weekly,
        )

    @staticmethod
    def _group_by_day(entries: Iterable[OvertimeEntry]) -> dict[date, tuple[DayType, Decimal]]:
        seen: set[UUID] = set()
        days: dict[date, tuple[DayType, Decimal]] = {}

        for entry in entries:
            if not entry.is_approved:
                raise ValidationError(
                    "approved_overtime",
                    f"entry {entry.entry_id} is {entry.status.value}, only APPROVED is payable",
                )
            if entry.entry_id in seen:
                continue
            seen.add(entry.entry_id)

            existing = days.get(entry.work_date)
            if existing is None:
                days[entry.work_date] = (entry.day_type, entry.hours)
                continue
            if existing[0] != entry.day_type:
                raise ValidationError(
                    "approved_overtime",
                    f"{entry.work_date} submitted as both {existing[0].value} "
                    f"and {entry.day_type.value}",
                )
            days[entry.work_date] = (existing[0], existing[1] + entry.hours)

        return days

    def check_compliance(
        self,
        employee_id: UUID,
        work_date: date,
        proposed_hours: Decimal,
        ledger: OvertimeLedger,
    ) -> ComplianceReport:
        """Check a proposed submission against daily and weekly limits.

        The report is advisory; see ``enforce_compliance`` for blocking.
        """
        require_non_negative("proposed_hours", proposed_hours)
        rules = self.rules

        exceeds_daily = proposed_hours > rules.daily_limit
        exceeds_extended = proposed_hours > rules.extended_daily_limit

        week_start, week_end = week_bounds(work_date)
        current_weekly = ledger.total_hours(employee_id, week_start, week_end)
        projected_weekly = current_weekly + proposed_hours
        exceeds_weekly = projected_weekly > rules.weekly_limit

        warnings: list[ComplianceWarning] = []
        if exceeds_extended:
            warnings.append(
                ComplianceWarning(
                    code="EXTENDED_DAILY_LIMIT",
                    severity="CRITICAL",
                    message=f"Exceeds maximum daily limit of {rules.extended_daily_limit} hours.",
                    hours=proposed_hours,
                    limit=rules.extended_daily_limit,
                )
            )
        elif exceeds_daily:
            warnings.append(
                ComplianceWarning(
                    code="DAILY_LIMIT",
                    severity="WARNING",
                    message=(
                        f"Exceeds standard daily limit of {rules.daily_limit} hours "
                        "(special approval required)."
                    ),
                    hours=proposed_hours,
                    limit=rules.daily_limit,
                )
            )
        if exceeds_weekly:
            warnings.append(
                ComplianceWarning(
                    code="WEEKLY_LIMIT",
                    severity="WARNING",
                    message=(
                        f"Total weekly overtime will be {projected_weekly} hours "
                        f"(limit: {rules.weekly_limit} hours)."
                    ),
                    hours=projected_weekly,
                    limit=rules.weekly_limit,
                )
            )

        for warning in warnings:
            logger.warning(
                "Overtime compliance %s for employee %s on %s: %s",
                warning.code,
                employee_id,
                work_date,
                warning.message,
            )

        return ComplianceReport(
            employee_id=employee_id,
            work_date=work_date,
            proposed_hours=proposed_hours,
            exceeds_daily_limit=exceeds_daily,
            exceeds_extended_limit=exceeds_extended,
            exceeds_weekly_limit=exceeds_weekly,
            current_weekly_hours=current_weekly,
            projected_weekly_hours=projected_weekly,
            daily_limit=rules.daily_limit,
            extended_daily_limit=rules.extended_daily_limit,
            weekly_limit=rules.weekly_limit,
            week_start=week_start,
            week_end=week_end,
            warnings=tuple(warnings),
        )

    @staticmethod
    def enforce_compliance(
        report: ComplianceReport,
        policy: CompliancePolicy = CompliancePolicy.ADVISORY,
    ) -> ComplianceReport:
        """Raise ``ComplianceViolationError`` if the policy blocks the report."""
        if report.is_blocked(policy):
            raise ComplianceViolationError(report, policy)
        return report
