"""THR (Tunjangan Hari Raya) holiday allowance.

Rules (Permenaker No. 6/2016):
- Less than 1 month of service: not eligible
- 12 months or more: full THR (basic salary + fixed allowances)
- Otherwise prorated linearly: base x months / 12

Variable allowances never enter the base: ``HolidayAllowanceBase`` has no
field for them.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from decimal import Decimal

from indopayroll.calculators.rate_table import RateTable
from indopayroll.calculators.rounding import quantize_rate, round_half_up
from indopayroll.calculators.types import (
    ZERO,
    CompensationProfile,
    HolidayAllowanceBase,
    HolidayAllowanceKind,
    HolidayAllowanceResult,
    require_non_negative,
)
from indopayroll.exceptions import ValidationError

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")


def months_of_service(start: date, end: date) -> int:
    """Whole calendar months from start to end.

    A month only counts once the day of month is reached again, so
    2024-01-31 to 2024-02-29 is 0 months and 2024-01-15 to 2024-02-15 is 1.
    """
    total = (end.year - start.year) * 12 + (end.month - start.month)
    if total > 0 and end.day < start.day:
        total -= 1
    elif total < 0 and end.day > start.day:
        total += 1
    return total


class HolidayAllowanceCalculator:
    """Calculates prorated THR from tenure."""

    def __init__(self, rates: RateTable):
        self.rates = rates
        self.rules = rates.holiday_allowance

    def prorated_amount(self, base: HolidayAllowanceBase, months: int) -> Decimal:
        """THR amount for a number of months of service."""
        if months < self.rules.minimum_months:
            return ZERO
        if months >= self.rules.full_months:
            return base.total
        return round_half_up(base.total * months / self.rules.full_months)

    def percentage(self, months: int) -> Decimal:
        if months < self.rules.minimum_months:
            return ZERO
        if months >= self.rules.full_months:
            return HUNDRED
        return quantize_rate(Decimal(months) * HUNDRED / self.rules.full_months)

    def is_eligible(self, employment_start: date, as_of_date: date) -> bool:
        return months_of_service(employment_start, as_of_date) >= self.rules.minimum_months

    def payment_deadline(self, holiday_date: date) -> date:
        """Latest date THR may be paid before the holiday."""
        return holiday_date - timedelta(days=self.rules.payment_lead_days)

    def calculate(
        self,
        base: HolidayAllowanceBase,
        employment_start: date,
        as_of_date: date,
        kind: HolidayAllowanceKind | None = None,
    ) -> HolidayAllowanceResult:
        """Calculate THR as of a date."""
        if as_of_date < employment_start:
            raise ValidationError(
                "as_of_date", f"{as_of_date} is before employment start {employment_start}"
            )

        months = months_of_service(employment_start, as_of_date)
        result = self._build(base, months, employment_start, as_of_date, kind)

        logger.debug(
            "THR %s: %d months of service, %s%% of %s = %s",
            kind.value if kind else "-",
            months,
            result.percentage,
            base.total,
            result.amount,
        )
        return result

    def calculate_for_profile(
        self,
        profile: CompensationProfile,
        as_of_date: date,
        kind: HolidayAllowanceKind | None = None,
    ) -> HolidayAllowanceResult:
        return self.calculate(
            profile.holiday_allowance_base(), profile.employment_start, as_of_date, kind
        )

    def calculate_resignation(
        self,
        base: HolidayAllowanceBase,
        employment_start: date,
        resignation_date: date,
        last_payment_date: date | None = None,
    ) -> HolidayAllowanceResult:
        """THR owed at resignation.

        Counts from the later of the last THR payment and the employment
        start, so a period already covered by a payment is not paid twice.
        """
        if resignation_date < employment_start:
            raise ValidationError(
                "resignation_date",
                f"{resignation_date} is before employment start {employment_start}",
            )

        start = employment_start
        if last_payment_date is not None and last_payment_date > employment_start:
            start = last_payment_date

        months = max(0, months_of_service(start, resignation_date))
        result = self._build(base, months, start, resignation_date, None, is_resignation=True)

        logger.info(
            "Resignation THR: %d months from %s to %s, amount %s",
            months,
            start,
            resignation_date,
            result.amount,
        )
        return result

    def estimate_budget(
        self,
        employee_count: int,
        average_basic_salary: Decimal,
        average_fixed_allowances: Decimal = ZERO,
    ) -> Decimal:
        """Full-THR budget estimate for a headcount."""
        if employee_count < 0:
            raise ValidationError("employee_count", f"must not be negative, got {employee_count}")
        base = HolidayAllowanceBase(average_basic_salary, average_fixed_allowances)
        return base.total * employee_count

    def _build(
        self,
        base: HolidayAllowanceBase,
        months: int,
        start: date,
        as_of_date: date,
        kind: HolidayAllowanceKind | None,
        is_resignation: bool = False,
    ) -> HolidayAllowanceResult:
        eligible = months >= self.rules.minimum_months
        reason = None
        if not eligible:
            reason = (
                "Less than 1 month since last THR payment or employment start"
                if is_resignation
                else f"Less than {self.rules.minimum_months} month of service"
            )

        return HolidayAllowanceResult(
            eligible=eligible,
            months_of_service=months,
            allowance_base=base.total,
            percentage=self.percentage(months),
            amount=self.prorated_amount(base, months),
            kind=kind,
            calculation_start=start,
            as_of_date=as_of_date,
            is_resignation=is_resignation,
            reason=reason,
        )
