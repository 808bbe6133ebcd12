"""Tests for the payroll result state machine."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from indopayroll.calculators.types import PayrollStatus
from indopayroll.models import EmployeePayrollRecord
from indopayroll.services.state_machine import InvalidTransitionError, PayrollStateMachine


def _record(status: str, gross="10000000", deductions="700000", net="9300000", approved_at=None):
    return EmployeePayrollRecord(
        status=status,
        gross_salary=Decimal(gross),
        total_deductions=Decimal(deductions),
        net_salary=Decimal(net),
        approved_at=approved_at,
    )


class TestTransitions:
    """Allowed and forbidden status moves."""

    @pytest.mark.parametrize(
        "from_status,to_status",
        [
            (PayrollStatus.DRAFT, PayrollStatus.CALCULATED),
            (PayrollStatus.CALCULATED, PayrollStatus.VERIFIED),
            (PayrollStatus.VERIFIED, PayrollStatus.APPROVED),
            (PayrollStatus.VERIFIED, PayrollStatus.CALCULATED),
            (PayrollStatus.APPROVED, PayrollStatus.PAID),
            (PayrollStatus.APPROVED, PayrollStatus.CALCULATED),
        ],
    )
    def test_valid(self, from_status, to_status):
        assert PayrollStateMachine.can_transition(from_status, to_status)
        PayrollStateMachine.validate_transition(from_status, to_status)

    @pytest.mark.parametrize(
        "from_status,to_status",
        [
            (PayrollStatus.CALCULATED, PayrollStatus.APPROVED),
            (PayrollStatus.CALCULATED, PayrollStatus.PAID),
            (PayrollStatus.DRAFT, PayrollStatus.PAID),
            (PayrollStatus.PAID, PayrollStatus.CALCULATED),
            (PayrollStatus.PAID, PayrollStatus.APPROVED),
        ],
    )
    def test_invalid(self, from_status, to_status):
        assert not PayrollStateMachine.can_transition(from_status, to_status)
        with pytest.raises(InvalidTransitionError) as exc_info:
            PayrollStateMachine.validate_transition(from_status, to_status)
        assert exc_info.value.from_status == from_status.value
        assert exc_info.value.to_status == to_status.value

    def test_accepts_strings(self):
        assert PayrollStateMachine.can_transition("CALCULATED", "VERIFIED")

    def test_paid_is_terminal(self):
        assert PayrollStateMachine.next_statuses(PayrollStatus.PAID) == []

    def test_reopen(self):
        assert PayrollStateMachine.is_reopen(PayrollStatus.APPROVED, PayrollStatus.CALCULATED)
        assert not PayrollStateMachine.is_reopen(PayrollStatus.DRAFT, PayrollStatus.CALCULATED)


class TestCalculationGuards:
    """Which statuses accept a recalculation."""

    @pytest.mark.parametrize("status", ["DRAFT", "CALCULATED", "VERIFIED"])
    def test_recalculation_allowed(self, status):
        assert PayrollStateMachine.can_calculate(status)
        assert not PayrollStateMachine.are_results_immutable(status)

    @pytest.mark.parametrize("status", ["APPROVED", "PAID"])
    def test_results_immutable(self, status):
        assert not PayrollStateMachine.can_calculate(status)
        assert PayrollStateMachine.are_results_immutable(status)


class TestRecordValidation:
    """Checks run against a stored result before a transition."""

    def test_consistent_record_can_be_verified(self):
        assert PayrollStateMachine.validate_record_for_transition(
            _record("CALCULATED"), PayrollStatus.VERIFIED
        ) == []

    def test_inconsistent_totals_block_approval(self):
        errors = PayrollStateMachine.validate_record_for_transition(
            _record("VERIFIED", net="9400000"), PayrollStatus.APPROVED
        )
        assert len(errors) == 1
        assert "does not equal" in errors[0]

    def test_payment_requires_approval_timestamp(self):
        errors = PayrollStateMachine.validate_record_for_transition(
            _record("APPROVED"), PayrollStatus.PAID
        )
        assert errors == ["Result has no approval timestamp"]

        approved = _record("APPROVED", approved_at=datetime(2024, 3, 20, tzinfo=timezone.utc))
        assert PayrollStateMachine.validate_record_for_transition(approved, PayrollStatus.PAID) == []

    def test_invalid_transition_reported(self):
        errors = PayrollStateMachine.validate_record_for_transition(
            _record("CALCULATED"), PayrollStatus.PAID
        )
        assert errors == ["Cannot transition from 'CALCULATED' to 'PAID'"]
