"""Payroll calculation engine."""

from indopayroll.calculators.engine import (
    EmployeeFailure,
    PayrollBatchResult,
    PayrollOrchestrator,
    PayrollRequest,
)
from indopayroll.calculators.holiday_allowance import HolidayAllowanceCalculator
from indopayroll.calculators.overtime_calculator import (
    ComplianceViolationError,
    InMemoryOvertimeLedger,
    OvertimeCalculator,
    OvertimeLedger,
)
from indopayroll.calculators.rate_table import (
    RateTable,
    RateTableNotFoundError,
    RateTableRegistry,
    load_rate_tables,
)
from indopayroll.calculators.social_security import SocialSecurityCalculator
from indopayroll.calculators.tax_calculator import TaxCalculator

__all__ = [
    "PayrollOrchestrator",
    "PayrollRequest",
    "PayrollBatchResult",
    "EmployeeFailure",
    "TaxCalculator",
    "SocialSecurityCalculator",
    "OvertimeCalculator",
    "OvertimeLedger",
    "InMemoryOvertimeLedger",
    "ComplianceViolationError",
    "HolidayAllowanceCalculator",
    "RateTable",
    "RateTableRegistry",
    "RateTableNotFoundError",
    "load_rate_tables",
]
