"""Tests for PayrollResultStore.

Tests idempotent upserts, locking of approved results and the approval
workflow on stored rows.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from indopayroll.calculators.engine import PayrollOrchestrator
from indopayroll.calculators.types import PayrollStatus
from indopayroll.exceptions import NotFoundError
from indopayroll.services.result_store import PayrollResultStore, ResultLockedError
from indopayroll.services.state_machine import InvalidTransitionError


@pytest.fixture
def orchestrator(rates):
    return PayrollOrchestrator(rates, engine_version="test", max_workers=1)


@pytest.fixture
def store(session):
    return PayrollResultStore(session)


@pytest.fixture
def calculate(orchestrator, make_profile, regular_period):
    """Calculate a result for the given employee and period."""

    def _calculate(employee_id, period_id, **kwargs):
        profile = make_profile(**kwargs.pop("profile", {}))
        return orchestrator.calculate(employee_id, period_id, profile, regular_period, **kwargs)

    return _calculate


class TestSave:
    """Upsert semantics."""

    @pytest.mark.asyncio
    async def test_save_and_get(self, store, calculate):
        employee_id, period_id = uuid4(), uuid4()
        result = calculate(employee_id, period_id)

        record = await store.save(result)

        assert record.employee_id == employee_id
        assert record.payroll_period_id == period_id
        assert record.status == "CALCULATED"
        assert record.calculation_id == result.calculation_id
        assert record.rate_table_version == "2024.1"
        assert record.gross_salary == Decimal("10000000")
        assert record.net_salary == result.net_salary
        assert record.detail["payroll_number"] == result.payroll_number

    @pytest.mark.asyncio
    async def test_saving_twice_keeps_one_row(self, store, calculate):
        employee_id, period_id = uuid4(), uuid4()
        result = calculate(employee_id, period_id)

        first = await store.save(result)
        first_id = first.employee_payroll_id
        second = await store.save(result)

        assert second.employee_payroll_id == first_id
        assert len(await store.list_for_period(period_id)) == 1

    @pytest.mark.asyncio
    async def test_recalculation_overwrites(self, store, calculate):
        employee_id, period_id = uuid4(), uuid4()
        await store.save(calculate(employee_id, period_id))

        updated = await store.save(
            calculate(employee_id, period_id, loan_deduction=Decimal("1000000"))
        )

        assert updated.loan_deduction == Decimal("1000000")
        assert updated.net_salary == Decimal("7975000")

    @pytest.mark.asyncio
    async def test_verified_result_can_be_recalculated(self, store, calculate):
        employee_id, period_id = uuid4(), uuid4()
        await store.save(calculate(employee_id, period_id))
        await store.transition(employee_id, period_id, PayrollStatus.VERIFIED)

        record = await store.save(calculate(employee_id, period_id))

        assert record.status == "CALCULATED"

    @pytest.mark.asyncio
    async def test_approved_result_is_locked(self, store, calculate):
        employee_id, period_id = uuid4(), uuid4()
        await store.save(calculate(employee_id, period_id))
        await store.transition(employee_id, period_id, PayrollStatus.VERIFIED)
        await store.transition(employee_id, period_id, PayrollStatus.APPROVED)

        with pytest.raises(ResultLockedError) as exc_info:
            await store.save(calculate(employee_id, period_id, loan_deduction=Decimal("1")))

        assert exc_info.value.status == "APPROVED"
        record = await store.get(employee_id, period_id)
        assert record.loan_deduction == Decimal("0")

    @pytest.mark.asyncio
    async def test_get_missing(self, store):
        with pytest.raises(NotFoundError):
            await store.get(uuid4(), uuid4())


class TestTransition:
    """Approval workflow on stored results."""

    @pytest.mark.asyncio
    async def test_full_workflow(self, store, calculate):
        employee_id, period_id = uuid4(), uuid4()
        await store.save(calculate(employee_id, period_id))

        await store.transition(employee_id, period_id, PayrollStatus.VERIFIED)
        approved = await store.transition(employee_id, period_id, PayrollStatus.APPROVED)
        assert approved.approved_at is not None

        paid = await store.transition(employee_id, period_id, PayrollStatus.PAID)
        assert paid.status == "PAID"
        assert paid.paid_at is not None

    @pytest.mark.asyncio
    async def test_reopen_clears_approval(self, store, calculate):
        employee_id, period_id = uuid4(), uuid4()
        await store.save(calculate(employee_id, period_id))
        await store.transition(employee_id, period_id, PayrollStatus.VERIFIED)
        await store.transition(employee_id, period_id, PayrollStatus.APPROVED)

        reopened = await store.transition(employee_id, period_id, PayrollStatus.CALCULATED)

        assert reopened.status == "CALCULATED"
        assert reopened.approved_at is None
        record = await store.save(calculate(employee_id, period_id, loan_deduction=Decimal("1")))
        assert record.loan_deduction == Decimal("1")

    @pytest.mark.asyncio
    async def test_skipping_approval_rejected(self, store, calculate):
        employee_id, period_id = uuid4(), uuid4()
        await store.save(calculate(employee_id, period_id))

        with pytest.raises(InvalidTransitionError):
            await store.transition(employee_id, period_id, PayrollStatus.PAID)


class TestPeriodSummary:
    """Aggregates over a period."""

    @pytest.mark.asyncio
    async def test_summary(self, store, calculate):
        period_id = uuid4()
        first = calculate(uuid4(), period_id)
        second = calculate(uuid4(), period_id, profile={"basic_salary": Decimal("8400000")})
        await store.save(first)
        await store.save(second)
        await store.save(calculate(uuid4(), uuid4()))  # other period
        await store.transition(first.employee_id, period_id, PayrollStatus.VERIFIED)

        summary = await store.period_summary(period_id)

        assert summary.employee_count == 2
        assert summary.total_gross == Decimal("18400000")
        assert summary.total_net == first.net_salary + second.net_salary
        assert summary.total_tax == first.income_tax + second.income_tax
        assert summary.total_social_security == (
            first.social_security_total + second.social_security_total
        )
        assert summary.status_counts == {"VERIFIED": 1, "CALCULATED": 1}

    @pytest.mark.asyncio
    async def test_empty_period(self, store):
        summary = await store.period_summary(uuid4())
        assert summary.employee_count == 0
        assert summary.total_net == Decimal("0")
