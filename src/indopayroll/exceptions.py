"""Error taxonomy for the payroll engine.

Per-employee errors (validation, not found) are caught at the batch boundary
and reported per employee. Configuration errors abort the whole run.
"""

from __future__ import annotations


class PayrollError(Exception):
    """Base class for all payroll engine errors."""


class ValidationError(PayrollError):
    """Raised when a required input is negative, missing or inconsistent."""

    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}")


class NotFoundError(PayrollError):
    """Raised when a referenced employee, period or calculation is missing."""

    def __init__(self, entity: str, key: object):
        self.entity = entity
        self.key = key
        super().__init__(f"{entity} not found: {key}")


class ConfigurationError(PayrollError):
    """Raised when rate-table configuration is missing or inconsistent."""
