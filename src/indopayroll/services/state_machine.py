"""Payroll result state machine with transition validation."""

from __future__ import annotations

from typing import TYPE_CHECKING

from indopayroll.calculators.types import PayrollStatus
from indopayroll.exceptions import PayrollError

if TYPE_CHECKING:
    from indopayroll.models import EmployeePayrollRecord


class InvalidTransitionError(PayrollError):
    """Raised when an invalid state transition is attempted."""

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class PayrollStateMachine:
    """State machine for payroll result status transitions.

    Allowed transitions:
    - DRAFT → CALCULATED
    - CALCULATED → VERIFIED
    - VERIFIED → APPROVED
    - VERIFIED → CALCULATED (reopen)
    - APPROVED → PAID
    - APPROVED → CALCULATED (reopen)

    The calculation engine only ever produces CALCULATED results.
    """

    VALID_TRANSITIONS: dict[PayrollStatus, list[PayrollStatus]] = {
        PayrollStatus.DRAFT: [PayrollStatus.CALCULATED],
        PayrollStatus.CALCULATED: [PayrollStatus.VERIFIED],
        PayrollStatus.VERIFIED: [PayrollStatus.APPROVED, PayrollStatus.CALCULATED],
        PayrollStatus.APPROVED: [PayrollStatus.PAID, PayrollStatus.CALCULATED],
        PayrollStatus.PAID: [],  # Terminal state
    }

    # Statuses where recalculation may overwrite the stored result
    CALCULATION_ALLOWED = {
        PayrollStatus.DRAFT,
        PayrollStatus.CALCULATED,
        PayrollStatus.VERIFIED,
    }

    RESULTS_IMMUTABLE = {
        PayrollStatus.APPROVED,
        PayrollStatus.PAID,
    }

    @classmethod
    def can_transition(cls, from_status: PayrollStatus | str, to_status: PayrollStatus | str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(PayrollStatus(from_status), [])
        return PayrollStatus(to_status) in allowed

    @classmethod
    def validate_transition(cls, from_status: PayrollStatus | str, to_status: PayrollStatus | str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(PayrollStatus(from_status).value, PayrollStatus(to_status).value)

    @classmethod
    def can_calculate(cls, status: PayrollStatus | str) -> bool:
        """Check if (re)calculation is allowed in this status."""
        return PayrollStatus(status) in cls.CALCULATION_ALLOWED

    @classmethod
    def are_results_immutable(cls, status: PayrollStatus | str) -> bool:
        return PayrollStatus(status) in cls.RESULTS_IMMUTABLE

    @classmethod
    def is_reopen(cls, from_status: PayrollStatus | str, to_status: PayrollStatus | str) -> bool:
        """Check if this transition sends a result back for recalculation."""
        return (
            PayrollStatus(from_status) in (PayrollStatus.VERIFIED, PayrollStatus.APPROVED)
            and PayrollStatus(to_status) == PayrollStatus.CALCULATED
        )

    @classmethod
    def next_statuses(cls, current_status: PayrollStatus | str) -> list[PayrollStatus]:
        """Get list of valid next statuses from current status."""
        return list(cls.VALID_TRANSITIONS.get(PayrollStatus(current_status), []))

    @classmethod
    def validate_record_for_transition(
        cls, record: EmployeePayrollRecord, to_status: PayrollStatus | str
    ) -> list[str]:
        """Validate a stored result for a specific transition.

        Returns list of error messages (empty if valid).
        """
        errors: list[str] = []
        from_status = PayrollStatus(record.status)
        to_status = PayrollStatus(to_status)

        if not cls.can_transition(from_status, to_status):
            errors.append(f"Cannot transition from '{from_status.value}' to '{to_status.value}'")
            return errors

        if to_status in (PayrollStatus.VERIFIED, PayrollStatus.APPROVED):
            if record.gross_salary - record.total_deductions != record.net_salary:
                errors.append(
                    f"Net {record.net_salary} does not equal gross {record.gross_salary} "
                    f"minus deductions {record.total_deductions}"
                )
            if record.net_salary < 0:
                errors.append(f"Net salary is negative: {record.net_salary}")

        elif to_status == PayrollStatus.PAID:
            if record.approved_at is None:
                errors.append("Result has no approval timestamp")

        return errors
