"""Payroll engine services."""

from indopayroll.services.payroll_run_service import PayrollRunService
from indopayroll.services.result_store import PayrollResultStore, PeriodSummary, ResultLockedError
from indopayroll.services.state_machine import InvalidTransitionError, PayrollStateMachine

__all__ = [
    "PayrollStateMachine",
    "InvalidTransitionError",
    "PayrollResultStore",
    "PeriodSummary",
    "ResultLockedError",
    "PayrollRunService",
]
