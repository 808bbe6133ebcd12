"""BPJS Kesehatan and BPJS Ketenagakerjaan contribution calculation."""

from __future__ import annotations

import logging
from decimal import Decimal

from indopayroll.calculators.rate_table import RateTable
from indopayroll.calculators.rounding import round_half_up
from indopayroll.calculators.types import (
    ZERO,
    EmployerContributionResult,
    RiskCategory,
    SocialSecurityResult,
    require_non_negative,
)

logger = logging.getLogger(__name__)


class SocialSecurityCalculator:
    """Calculates capped-salary BPJS contributions.

    Bases:
    - Health (Kesehatan): basic salary, capped at the health salary cap
    - Employment (Ketenagakerjaan): basic salary + allowances, capped at the
      employment salary cap

    Every contribution is rounded half-up on its own before any totals.
    """

    def __init__(self, rates: RateTable):
        self.rates = rates

    def calculate_contributions(
        self,
        basic_salary: Decimal,
        total_allowances: Decimal,
        has_covered_family: bool,
        risk_category: RiskCategory | str | None = None,
        include_employer: bool = False,
    ) -> SocialSecurityResult:
        """Calculate employee-side contributions, optionally with employer side."""
        require_non_negative("basic_salary", basic_salary)
        require_non_negative("total_allowances", total_allowances)

        health = self.rates.health
        employment = self.rates.employment

        health_base = min(basic_salary, health.salary_cap)
        employment_base = min(basic_salary + total_allowances, employment.salary_cap)

        employer = None
        if include_employer:
            employer = self.calculate_employer_contributions(
                basic_salary, total_allowances, risk_category
            )

        return SocialSecurityResult(
            health_employee=round_half_up(health_base * health.employee_rate),
            health_family=(
                round_half_up(health_base * health.family_rate) if has_covered_family else ZERO
            ),
            old_age_employee=round_half_up(employment_base * employment.old_age_employee_rate),
            pension_employee=round_half_up(employment_base * employment.pension_employee_rate),
            health_salary_cap=health.salary_cap,
            employment_salary_cap=employment.salary_cap,
            health_base=health_base,
            employment_base=employment_base,
            employer=employer,
        )

    def calculate_employer_contributions(
        self,
        basic_salary: Decimal,
        total_allowances: Decimal,
        risk_category: RiskCategory | str | None,
    ) -> EmployerContributionResult:
        """Calculate employer contributions (reporting only)."""
        require_non_negative("basic_salary", basic_salary)
        require_non_negative("total_allowances", total_allowances)

        health_base = min(basic_salary, self.rates.health.salary_cap)
        employment_base = min(basic_salary + total_allowances, self.rates.employment.salary_cap)
        employment = self.rates.employment

        category, jkk_rate = self.jkk_rate(risk_category)

        return EmployerContributionResult(
            risk_category=category,
            health=round_half_up(health_base * self.rates.health.employer_rate),
            old_age=round_half_up(employment_base * employment.old_age_employer_rate),
            pension=round_half_up(employment_base * employment.pension_employer_rate),
            work_accident=round_half_up(employment_base * jkk_rate),
            death=round_half_up(employment_base * employment.death_employer_rate),
            work_accident_rate=jkk_rate,
        )

    def jkk_rate(
        self, risk_category: RiskCategory | str | None
    ) -> tuple[RiskCategory | None, Decimal]:
        """Get the work-accident rate for a risk category.

        Unknown or missing categories fall back to the lowest non-zero tier.
        """
        category = self._parse_risk_category(risk_category)
        if category is not None:
            return category, self.rates.work_accident_rates[category]

        lowest = self.rates.lowest_work_accident_rate
        if risk_category is not None:
            logger.warning(
                "Unknown risk category %r, using lowest work-accident rate %s",
                risk_category,
                lowest,
            )
        return None, lowest

    @staticmethod
    def _parse_risk_category(value: RiskCategory | str | None) -> RiskCategory | None:
        if value is None or isinstance(value, RiskCategory):
            return value
        try:
            return RiskCategory(value.strip().upper())
        except ValueError:
            return None

    def calculate_total_cost(
        self,
        basic_salary: Decimal,
        total_allowances: Decimal,
        has_covered_family: bool,
        risk_category: RiskCategory | str | None = None,
    ) -> Decimal:
        """Total BPJS cost: employee deductions plus employer contributions."""
        employee = self.calculate_contributions(basic_salary, total_allowances, has_covered_family)
        employer = self.calculate_employer_contributions(
            basic_salary, total_allowances, risk_category
        )
        return employee.total_employee + employer.total
