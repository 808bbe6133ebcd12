"""PPh 21 income tax calculation with injected PTKP and bracket tables."""

from __future__ import annotations

import logging
from decimal import Decimal

from indopayroll.calculators.rate_table import RateTable
from indopayroll.calculators.rounding import floor_to_thousand, round_half_up
from indopayroll.calculators.types import (
    ZERO,
    TaxCalculationResult,
    TaxFreeStatus,
    require_non_negative,
)
from indopayroll.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

MONTHS_PER_YEAR = Decimal("12")


class TaxCalculator:
    """Calculates monthly PPh 21 from annual gross income.

    Pipeline:
    1) Look up PTKP for the tax-free status
    2) PKP = max(0, gross - PTKP), floored to a multiple of 1,000
    3) Apply progressive brackets on marginal bands, each rounded half-up
    4) Monthly tax = annual tax / 12, rounded half-up
    """

    def __init__(self, rates: RateTable):
        self.rates = rates

    def calculate_monthly_tax(
        self,
        gross_annual_income: Decimal,
        tax_free_status: TaxFreeStatus,
    ) -> TaxCalculationResult:
        """Calculate PPh 21 for one employee and period."""
        require_non_negative("gross_annual_income", gross_annual_income)

        allowance = self.tax_free_allowance(tax_free_status)
        taxable_annual = self.taxable_income(gross_annual_income, allowance)
        bracket_taxes = self.calculate_progressive_tax(taxable_annual)
        total_annual_tax = sum(bracket_taxes, ZERO)

        result = TaxCalculationResult(
            gross_annual_income=gross_annual_income,
            tax_free_status=tax_free_status.code,
            tax_free_allowance=allowance,
            taxable_income_annual=taxable_annual,
            taxable_income_monthly=round_half_up(taxable_annual / MONTHS_PER_YEAR),
            bracket_taxes=bracket_taxes,
            total_annual_tax=total_annual_tax,
            monthly_tax=round_half_up(total_annual_tax / MONTHS_PER_YEAR),
        )

        logger.debug(
            "PPh 21 calculated: status=%s PKP annual=%s total annual tax=%s monthly=%s",
            result.tax_free_status,
            taxable_annual,
            total_annual_tax,
            result.monthly_tax,
        )
        return result

    def tax_free_allowance(self, tax_free_status: TaxFreeStatus) -> Decimal:
        """Get the PTKP amount for a marital/dependent status."""
        try:
            return self.rates.ptkp[tax_free_status.code]
        except KeyError:
            raise ConfigurationError(
                f"Rate table {self.rates.version!r} has no PTKP for {tax_free_status.code}"
            ) from None

    @staticmethod
    def taxable_income(gross_annual_income: Decimal, tax_free_allowance: Decimal) -> Decimal:
        """PKP: income above PTKP, floored to the nearest 1,000."""
        return floor_to_thousand(max(ZERO, gross_annual_income - tax_free_allowance))

    def calculate_progressive_tax(self, taxable_income: Decimal) -> tuple[Decimal, ...]:
        """Tax per bracket, each band taxed only on the income inside it."""
        contributions: list[Decimal] = []
        remaining = taxable_income
        lower = ZERO

        for bracket in self.rates.brackets:
            if remaining <= 0:
                contributions.append(ZERO)
                continue

            if bracket.upper_limit is None:
                in_bracket = remaining
            else:
                in_bracket = min(remaining, bracket.upper_limit - lower)
                lower = bracket.upper_limit

            contributions.append(round_half_up(in_bracket * bracket.rate))
            remaining -= in_bracket

        return tuple(contributions)
