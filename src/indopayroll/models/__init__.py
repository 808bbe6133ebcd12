"""SQLAlchemy ORM models."""

from indopayroll.models.base import Base, TimestampMixin
from indopayroll.models.payroll import MONEY_COLUMNS, EmployeePayrollRecord

__all__ = [
    "Base",
    "TimestampMixin",
    "EmployeePayrollRecord",
    "MONEY_COLUMNS",
]
