"""Unit tests for OvertimeCalculator."""

import logging
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from indopayroll.calculators.overtime_calculator import (
    ComplianceViolationError,
    InMemoryOvertimeLedger,
    OvertimeCalculator,
    OvertimeLedger,
    week_bounds,
)
from indopayroll.calculators.types import CompliancePolicy, DayType, OvertimeStatus
from indopayroll.exceptions import ValidationError

HOURLY = Decimal("50000")
SALARY_AT_50K_HOURLY = Decimal("8400000")


@pytest.fixture
def calc(rates):
    return OvertimeCalculator(rates)


class TestHourlyRate:
    """Monthly salary / (21 x 8)."""

    def test_exact(self, calc):
        assert calc.hourly_rate(SALARY_AT_50K_HOURLY) == Decimal("50000.00")

    def test_rounded_to_two_decimals(self, calc):
        assert calc.hourly_rate(Decimal("10000000")) == Decimal("59523.81")


class TestPayCalculation:
    """Marginal tier pricing."""

    def test_weekday_two_and_a_half_hours(self, calc):
        """1h at 1.5x plus 1.5h at 2x."""
        assert calc.calculate_pay(Decimal("2.5"), DayType.WEEKDAY, HOURLY) == Decimal("225000")

    def test_weekday_exactly_one_hour(self, calc):
        assert calc.calculate_pay(Decimal("1"), DayType.WEEKDAY, HOURLY) == Decimal("75000")

    def test_weekday_under_one_hour_all_first_tier(self, calc):
        assert calc.calculate_pay(Decimal("0.5"), DayType.WEEKDAY, HOURLY) == Decimal("37500")

    def test_after_hours_priced_as_weekday(self, calc):
        assert calc.calculate_pay(
            Decimal("2.5"), DayType.AFTER_HOURS, HOURLY
        ) == calc.calculate_pay(Decimal("2.5"), DayType.WEEKDAY, HOURLY)

    def test_weekend_exactly_eight_hours(self, calc):
        assert calc.calculate_pay(Decimal("8"), DayType.WEEKEND, HOURLY) == Decimal("800000")

    def test_weekend_ninth_hour_at_triple(self, calc):
        assert calc.calculate_pay(Decimal("8.5"), DayType.WEEKEND, HOURLY) == Decimal("875000")

    def test_weekend_beyond_nine_hours_at_quadruple(self, calc):
        """8h x 2 + 1h x 3 + 1h x 4, not 10h at the top rate."""
        assert calc.calculate_pay(Decimal("10"), DayType.WEEKEND, HOURLY) == Decimal("1150000")

    def test_holiday_priced_as_weekend(self, calc):
        assert calc.calculate_pay(Decimal("10"), DayType.HOLIDAY, HOURLY) == Decimal("1150000")

    def test_rounded_once_after_tiers(self, calc):
        """Per-tier rounding would give 89,286 + 119,048 = 208,334."""
        hourly = Decimal("59523.81")
        assert calc.calculate_pay(Decimal("2"), DayType.WEEKDAY, hourly) == Decimal("208333")

    def test_zero_hours(self, calc):
        assert calc.calculate_pay(Decimal("0"), DayType.WEEKEND, HOURLY) == Decimal("0")

    def test_negative_hours_rejected(self, calc):
        with pytest.raises(ValidationError):
            calc.calculate_pay(Decimal("-1"), DayType.WEEKDAY, HOURLY)

    @pytest.mark.parametrize("day_type", list(DayType))
    def test_strictly_increasing_in_hours(self, calc, day_type):
        previous = Decimal("-1")
        for quarter_hours in range(1, 60):
            pay = calc.calculate_pay(Decimal(quarter_hours) / 4, day_type, HOURLY)
            assert pay > previous
            previous = pay


class TestBreakdown:
    """Average multiplier and hourly rate reporting."""

    def test_average_multiplier(self, calc):
        assert calc.average_multiplier(Decimal("2.5"), DayType.WEEKDAY) == Decimal("1.80")
        assert calc.average_multiplier(Decimal("10"), DayType.WEEKEND) == Decimal("2.30")

    def test_with_breakdown(self, calc):
        breakdown = calc.calculate_with_breakdown(
            Decimal("2.5"), DayType.WEEKDAY, SALARY_AT_50K_HOURLY
        )
        assert breakdown.hourly_rate == Decimal("50000.00")
        assert breakdown.average_multiplier == Decimal("1.80")
        assert breakdown.pay == Decimal("225000")


class TestPeriodCalculation:
    """Aggregation of a period's approved entries."""

    def test_entries_combined_per_day(self, calc, make_overtime):
        employee_id = uuid4()
        monday = date(2024, 3, 4)
        first = make_overtime(employee_id, monday, "2")
        entries = [
            first,
            make_overtime(employee_id, monday, "1"),
            make_overtime(employee_id, date(2024, 3, 9), "10", DayType.WEEKEND),
            first,  # resubmitted, counted once
        ]

        result = calc.calculate_period(entries, SALARY_AT_50K_HOURLY)

        assert [d.pay for d in result.days] == [Decimal("275000"), Decimal("1150000")]
        assert result.total_pay == Decimal("1425000")
        assert result.total_hours == Decimal("13")
        assert result.hours_by_day_type == {
            DayType.WEEKDAY: Decimal("3"),
            DayType.WEEKEND: Decimal("10"),
        }
        assert result.average_multiplier == Decimal("2.19")
        assert result.daily_limit_exceeded is True
        assert result.weekly_limit_exceeded is False
        assert result.max_daily_hours == Decimal("10")
        assert result.max_weekly_hours == Decimal("13")

    def test_weekly_limit_flag(self, calc, make_overtime):
        employee_id = uuid4()
        entries = [make_overtime(employee_id, date(2024, 3, d), "3") for d in range(4, 9)]

        result = calc.calculate_period(entries, SALARY_AT_50K_HOURLY)

        assert result.daily_limit_exceeded is False
        assert result.weekly_limit_exceeded is True
        assert result.max_weekly_hours == Decimal("15")

    def test_weeks_counted_separately(self, calc, make_overtime):
        employee_id = uuid4()
        entries = [make_overtime(employee_id, date(2024, 3, d), "3") for d in (7, 8, 11, 12)]

        result = calc.calculate_period(entries, SALARY_AT_50K_HOURLY)

        assert result.max_weekly_hours == Decimal("6")

    def test_no_entries(self, calc):
        result = calc.calculate_period([], SALARY_AT_50K_HOURLY)
        assert result.total_pay == Decimal("0")
        assert result.average_multiplier == Decimal("0")
        assert result.days == ()

    def test_unapproved_entry_rejected(self, calc, make_overtime):
        entry = make_overtime(uuid4(), date(2024, 3, 4), "2", status=OvertimeStatus.PENDING)
        with pytest.raises(ValidationError, match="PENDING"):
            calc.calculate_period([entry], SALARY_AT_50K_HOURLY)

    def test_conflicting_day_types_rejected(self, calc, make_overtime):
        employee_id = uuid4()
        day = date(2024, 3, 9)
        entries = [
            make_overtime(employee_id, day, "2", DayType.WEEKDAY),
            make_overtime(employee_id, day, "2", DayType.WEEKEND),
        ]
        with pytest.raises(ValidationError):
            calc.calculate_period(entries, SALARY_AT_50K_HOURLY)


class TestCompliance:
    """Daily and weekly limit checks."""

    @pytest.fixture
    def employee_id(self):
        return uuid4()

    @pytest.fixture
    def ledger(self, employee_id, make_overtime):
        return InMemoryOvertimeLedger(
            [
                make_overtime(employee_id, date(2024, 3, 3), "3"),  # previous week
                make_overtime(employee_id, date(2024, 3, 4), "3"),
                make_overtime(employee_id, date(2024, 3, 5), "3"),
                make_overtime(employee_id, date(2024, 3, 6), "3", status=OvertimeStatus.PENDING),
                make_overtime(employee_id, date(2024, 3, 6), "4", status=OvertimeStatus.REJECTED),
                make_overtime(uuid4(), date(2024, 3, 5), "5"),  # someone else
            ]
        )

    def test_week_runs_monday_to_sunday(self):
        assert week_bounds(date(2024, 3, 10)) == (date(2024, 3, 4), date(2024, 3, 10))
        assert week_bounds(date(2024, 3, 4)) == (date(2024, 3, 4), date(2024, 3, 10))

    def test_ledger_is_a_port(self, ledger):
        assert isinstance(ledger, OvertimeLedger)

    def test_within_limits(self, calc, employee_id, ledger):
        report = calc.check_compliance(employee_id, date(2024, 3, 7), Decimal("2"), ledger)

        assert report.is_compliant
        assert report.warnings == ()
        assert report.current_weekly_hours == Decimal("9")
        assert report.projected_weekly_hours == Decimal("11")

    def test_daily_limit_is_a_warning(self, calc, employee_id, ledger):
        report = calc.check_compliance(employee_id, date(2024, 3, 7), Decimal("4"), ledger)

        assert report.exceeds_daily_limit
        assert not report.exceeds_extended_limit
        assert not report.exceeds_weekly_limit
        assert report.is_compliant
        assert [(w.code, w.severity) for w in report.warnings] == [("DAILY_LIMIT", "WARNING")]

    def test_extended_and_weekly_limits(self, calc, employee_id, ledger, caplog):
        with caplog.at_level(logging.WARNING):
            report = calc.check_compliance(employee_id, date(2024, 3, 7), Decimal("6"), ledger)

        assert report.exceeds_extended_limit
        assert report.exceeds_weekly_limit
        assert not report.is_compliant
        assert report.week_start == date(2024, 3, 4)
        assert report.week_end == date(2024, 3, 10)
        assert [(w.code, w.severity) for w in report.warnings] == [
            ("EXTENDED_DAILY_LIMIT", "CRITICAL"),
            ("WEEKLY_LIMIT", "WARNING"),
        ]
        assert report.warnings[1].hours == Decimal("15")
        assert "EXTENDED_DAILY_LIMIT" in caplog.text

    def test_advisory_policy_never_blocks(self, calc, employee_id, ledger):
        report = calc.check_compliance(employee_id, date(2024, 3, 7), Decimal("6"), ledger)
        assert calc.enforce_compliance(report, CompliancePolicy.ADVISORY) is report

    @pytest.mark.parametrize(
        "policy",
        [CompliancePolicy.BLOCK_EXTENDED, CompliancePolicy.BLOCK_WEEKLY, CompliancePolicy.BLOCK_ALL],
    )
    def test_blocking_policies(self, calc, employee_id, ledger, policy):
        report = calc.check_compliance(employee_id, date(2024, 3, 7), Decimal("6"), ledger)
        with pytest.raises(ComplianceViolationError) as exc_info:
            calc.enforce_compliance(report, policy)
        assert exc_info.value.report is report
        assert isinstance(exc_info.value, ValidationError)

    def test_weekly_only_breach_not_blocked_by_extended_policy(
        self, calc, employee_id, ledger, make_overtime
    ):
        ledger.add(make_overtime(employee_id, date(2024, 3, 7), "3"))
        report = calc.check_compliance(employee_id, date(2024, 3, 8), Decimal("3.5"), ledger)

        assert report.projected_weekly_hours == Decimal("15.5")
        assert report.exceeds_weekly_limit
        assert not report.exceeds_extended_limit
        calc.enforce_compliance(report, CompliancePolicy.BLOCK_EXTENDED)
        with pytest.raises(ComplianceViolationError):
            calc.enforce_compliance(report, CompliancePolicy.BLOCK_WEEKLY)
