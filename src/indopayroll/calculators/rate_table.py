"""Versioned statutory rate tables with effective-date resolution.

Rate tables are stored as JSON with structure:
{
    "versions": [
        {
            "version": "2024.1",
            "effective_start": "2024-01-01",
            "effective_end": null,
            "tax": {"ptkp": {"TK/0": 54000000, ...}, "brackets": [...]},
            "social_security": {"health": {...}, "employment": {...},
                                "work_accident_rates": {"VERY_LOW": "0.0024", ...}},
            "overtime": {"tiers": {"weekday": [...], "rest_day": [...]}, ...},
            "holiday_allowance": {"minimum_months": 1, "full_months": 12, ...}
        }
    ]
}

Indonesian regulations revise caps and rates periodically, so nothing here is
a compiled constant: a new regulation is a new version in the document.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any

from indopayroll.calculators.types import (
    MAX_COUNTED_DEPENDENTS,
    MaritalStatus,
    RiskCategory,
    TaxBracket,
)
from indopayroll.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_RATE_TABLE_PATH = Path(__file__).resolve().parent.parent / "data" / "rate_tables.json"

REQUIRED_PTKP_KEYS = frozenset(
    f"{status.value}/{dependents}"
    for status in MaritalStatus
    for dependents in range(MAX_COUNTED_DEPENDENTS + 1)
)


class RateTableNotFoundError(ConfigurationError):
    """Raised when no rate table version is effective on a date."""

    def __init__(self, as_of_date: date):
        self.as_of_date = as_of_date
        super().__init__(f"No rate table effective {as_of_date}")


@dataclass(frozen=True)
class OvertimeTier:
    """Marginal overtime band: hours up to ``up_to`` paid at ``multiplier``."""

    up_to: Decimal | None
    multiplier: Decimal


@dataclass(frozen=True)
class HealthRates:
    """BPJS Kesehatan cap and rates."""

    salary_cap: Decimal
    employee_rate: Decimal
    family_rate: Decimal
    employer_rate: Decimal


@dataclass(frozen=True)
class EmploymentRates:
    """BPJS Ketenagakerjaan cap and rates (JHT, JP, JKM)."""

    salary_cap: Decimal
    old_age_employee_rate: Decimal
    old_age_employer_rate: Decimal
    pension_employee_rate: Decimal
    pension_employer_rate: Decimal
    death_employer_rate: Decimal


@dataclass(frozen=True)
class OvertimeRules:
    """Overtime pricing tiers and labor-law limits."""

    tiers: dict[str, tuple[OvertimeTier, ...]]
    standard_working_days: int = 21
    standard_daily_hours: Decimal = Decimal("8")
    daily_limit: Decimal = Decimal("3")
    extended_daily_limit: Decimal = Decimal("4")
    weekly_limit: Decimal = Decimal("14")


@dataclass(frozen=True)
class HolidayAllowanceRules:
    """THR eligibility and proration constants."""

    minimum_months: int = 1
    full_months: int = 12
    payment_lead_days: int = 7


@dataclass(frozen=True)
class RateTable:
    """One version of every statutory table the calculators consume.

    Validated on construction: an inconsistent table corrupts every employee's
    result, so it must never reach a calculator.
    """

    version: str
    effective_start: date
    ptkp: dict[str, Decimal]
    brackets: tuple[TaxBracket, ...]
    health: HealthRates
    employment: EmploymentRates
    work_accident_rates: dict[RiskCategory, Decimal]
    overtime: OvertimeRules
    holiday_allowance: HolidayAllowanceRules = field(default_factory=HolidayAllowanceRules)
    effective_end: date | None = None

    def __post_init__(self) -> None:
        errors = self.validate()
        if errors:
            raise ConfigurationError(
                f"Rate table {self.version!r} is invalid: " + "; ".join(errors)
            )

    def validate(self) -> list[str]:
        """Return list of configuration problems (empty if valid)."""
        errors: list[str] = []

        if self.effective_end is not None and self.effective_end < self.effective_start:
            errors.append("effective_end precedes effective_start")

        missing = sorted(REQUIRED_PTKP_KEYS - set(self.ptkp))
        if missing:
            errors.append(f"missing PTKP amounts for {', '.join(missing)}")
        if any(amount < 0 for amount in self.ptkp.values()):
            errors.append("PTKP amounts must not be negative")

        errors.extend(self._validate_brackets())

        for name, value in (
            ("health salary cap", self.health.salary_cap),
            ("employment salary cap", self.employment.salary_cap),
        ):
            if value <= 0:
                errors.append(f"{name} must be positive")

        missing_risk = [r.value for r in RiskCategory if r not in self.work_accident_rates]
        if missing_risk:
            errors.append(f"missing work-accident rates for {', '.join(missing_risk)}")
        if not any(rate > 0 for rate in self.work_accident_rates.values()):
            errors.append("at least one work-accident rate must be positive")

        for group in ("weekday", "rest_day"):
            tiers = self.overtime.tiers.get(group)
            if not tiers:
                errors.append(f"missing overtime tiers for {group}")
                continue
            errors.extend(self._validate_tiers(group, tiers))

        if self.overtime.standard_working_days <= 0 or self.overtime.standard_daily_hours <= 0:
            errors.append("standard working days and hours must be positive")
        if not (
            0 < self.overtime.daily_limit <= self.overtime.extended_daily_limit
            <= self.overtime.weekly_limit
        ):
            errors.append("overtime limits must satisfy 0 < daily <= extended <= weekly")

        if not 0 < self.holiday_allowance.minimum_months <= self.holiday_allowance.full_months:
            errors.append("holiday allowance months must satisfy 0 < minimum <= full")

        return errors

    def _validate_brackets(self) -> list[str]:
        errors: list[str] = []
        if not self.brackets:
            return ["no tax brackets configured"]

        previous_limit = Decimal("0")
        previous_rate = Decimal("-1")
        for i, bracket in enumerate(self.brackets):
            is_last = i == len(self.brackets) - 1
            if bracket.upper_limit is None and not is_last:
                errors.append(f"bracket {i + 1} is unbounded but not last")
            if bracket.upper_limit is not None:
                if is_last:
                    errors.append("last bracket must be unbounded")
                if bracket.upper_limit <= previous_limit:
                    errors.append(f"bracket {i + 1} limit is not strictly increasing")
                previous_limit = bracket.upper_limit
            if bracket.rate <= previous_rate:
                errors.append(f"bracket {i + 1} rate is not strictly increasing")
            if not 0 <= bracket.rate <= 1:
                errors.append(f"bracket {i + 1} rate out of range")
            previous_rate = bracket.rate
        return errors

    @staticmethod
    def _validate_tiers(group: str, tiers: tuple[OvertimeTier, ...]) -> list[str]:
        errors: list[str] = []
        previous = Decimal("0")
        for i, tier in enumerate(tiers):
            is_last = i == len(tiers) - 1
            if tier.up_to is None and not is_last:
                errors.append(f"{group} tier {i + 1} is unbounded but not last")
            if tier.up_to is not None:
                if is_last:
                    errors.append(f"last {group} tier must be unbounded")
                if tier.up_to <= previous:
                    errors.append(f"{group} tier {i + 1} bound is not strictly increasing")
                previous = tier.up_to
            if tier.multiplier <= 0:
                errors.append(f"{group} tier {i + 1} multiplier must be positive")
        return errors

    def is_effective(self, as_of_date: date) -> bool:
        """Check if this version applies on a date."""
        if as_of_date < self.effective_start:
            return False
        return self.effective_end is None or as_of_date <= self.effective_end

    @property
    def lowest_work_accident_rate(self) -> Decimal:
        return min(rate for rate in self.work_accident_rates.values() if rate > 0)


class RateTableRegistry:
    """Resolves the rate table version effective on a date.

    Versions may not overlap; gaps are allowed and surface as
    ``RateTableNotFoundError`` when a calculation falls into one.
    """

    def __init__(self, tables: list[RateTable]):
        if not tables:
            raise ConfigurationError("At least one rate table version is required")
        self.tables = sorted(tables, key=lambda t: t.effective_start)
        self._check_overlaps()

    def _check_overlaps(self) -> None:
        versions = [t.version for t in self.tables]
        if len(set(versions)) != len(versions):
            raise ConfigurationError(f"Duplicate rate table versions: {versions}")
        for earlier, later in zip(self.tables, self.tables[1:]):
            if earlier.effective_end is None or earlier.effective_end >= later.effective_start:
                raise ConfigurationError(
                    f"Rate table {earlier.version!r} overlaps {later.version!r}"
                )

    def resolve(self, as_of_date: date) -> RateTable:
        """Get the rate table effective on a date."""
        for table in self.tables:
            if table.is_effective(as_of_date):
                return table
        raise RateTableNotFoundError(as_of_date)

    def get_version(self, version: str) -> RateTable:
        for table in self.tables:
            if table.version == version:
                return table
        raise ConfigurationError(f"Unknown rate table version {version!r}")

    @property
    def latest(self) -> RateTable:
        return self.tables[-1]


# === Loading ===


def _decimal(value: Any, where: str) -> Decimal:
    if value is None:
        raise ConfigurationError(f"Missing value for {where}")
    try:
        return Decimal(str(value))
    except ArithmeticError as e:
        raise ConfigurationError(f"Invalid number for {where}: {value!r}") from e


def _optional_decimal(value: Any, where: str) -> Decimal | None:
    return None if value is None else _decimal(value, where)


def _date(value: Any, where: str) -> date:
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid date for {where}: {value!r}") from e


def parse_rate_table(payload: dict[str, Any]) -> RateTable:
    """Build a validated ``RateTable`` from one JSON version payload."""
    try:
        version = payload["version"]
        tax = payload["tax"]
        social = payload["social_security"]
        health = social["health"]
        employment = social["employment"]
        overtime = payload["overtime"]
    except KeyError as e:
        raise ConfigurationError(f"Rate table is missing section {e}") from e

    try:
        brackets = tuple(
            TaxBracket(
                upper_limit=_optional_decimal(b.get("upper_limit"), f"{version} bracket"),
                rate=_decimal(b.get("rate"), f"{version} bracket rate"),
            )
            for b in tax.get("brackets", [])
        )

        work_accident_rates = {
            RiskCategory(code): _decimal(rate, f"{version} JKK {code}")
            for code, rate in social.get("work_accident_rates", {}).items()
        }
    except ValueError as e:
        raise ConfigurationError(f"Rate table {version!r}: {e}") from e

    tiers = {
        group: tuple(
            OvertimeTier(
                up_to=_optional_decimal(t.get("up_to"), f"{version} {group} tier"),
                multiplier=_decimal(t.get("multiplier"), f"{version} {group} multiplier"),
            )
            for t in group_tiers
        )
        for group, group_tiers in overtime.get("tiers", {}).items()
    }

    thr = payload.get("holiday_allowance", {})
    end = payload.get("effective_end")

    return RateTable(
        version=version,
        effective_start=_date(payload.get("effective_start"), f"{version} effective_start"),
        effective_end=_date(end, f"{version} effective_end") if end else None,
        ptkp={
            code: _decimal(amount, f"{version} PTKP {code}")
            for code, amount in tax.get("ptkp", {}).items()
        },
        brackets=brackets,
        health=HealthRates(
            salary_cap=_decimal(health.get("salary_cap"), f"{version} health cap"),
            employee_rate=_decimal(health.get("employee_rate"), f"{version} health rate"),
            family_rate=_decimal(health.get("family_rate"), f"{version} family rate"),
            employer_rate=_decimal(health.get("employer_rate"), f"{version} health employer"),
        ),
        employment=EmploymentRates(
            salary_cap=_decimal(employment.get("salary_cap"), f"{version} employment cap"),
            old_age_employee_rate=_decimal(
                employment.get("old_age_employee_rate"), f"{version} JHT employee"
            ),
            old_age_employer_rate=_decimal(
                employment.get("old_age_employer_rate"), f"{version} JHT employer"
            ),
            pension_employee_rate=_decimal(
                employment.get("pension_employee_rate"), f"{version} JP employee"
            ),
            pension_employer_rate=_decimal(
                employment.get("pension_employer_rate"), f"{version} JP employer"
            ),
            death_employer_rate=_decimal(
                employment.get("death_employer_rate"), f"{version} JKM employer"
            ),
        ),
        work_accident_rates=work_accident_rates,
        overtime=OvertimeRules(
            tiers=tiers,
            standard_working_days=int(overtime.get("standard_working_days", 21)),
            standard_daily_hours=_decimal(
                overtime.get("standard_daily_hours", 8), f"{version} daily hours"
            ),
            daily_limit=_decimal(overtime.get("daily_limit", 3), f"{version} daily limit"),
            extended_daily_limit=_decimal(
                overtime.get("extended_daily_limit", 4), f"{version} extended limit"
            ),
            weekly_limit=_decimal(overtime.get("weekly_limit", 14), f"{version} weekly limit"),
        ),
        holiday_allowance=HolidayAllowanceRules(
            minimum_months=int(thr.get("minimum_months", 1)),
            full_months=int(thr.get("full_months", 12)),
            payment_lead_days=int(thr.get("payment_lead_days", 7)),
        ),
    )


def load_rate_tables(path: str | Path | None = None) -> RateTableRegistry:
    """Load and validate every rate table version from a JSON document."""
    source = Path(path) if path else DEFAULT_RATE_TABLE_PATH
    try:
        with source.open("r", encoding="utf-8") as fp:
            document = json.load(fp)
    except OSError as e:
        raise ConfigurationError(f"Cannot read rate tables from {source}: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Rate tables at {source} are not valid JSON: {e}") from e

    registry = RateTableRegistry([parse_rate_table(v) for v in document.get("versions", [])])
    logger.info(
        "Loaded %d rate table version(s) from %s: %s",
        len(registry.tables),
        source,
        ", ".join(t.version for t in registry.tables),
    )
    return registry
