"""Payroll run service - calculates and stores a whole period."""

from __future__ import annotations

import asyncio
import logging
from decimal import Decimal
from typing import Iterable, Mapping, Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from indopayroll.calculators.engine import (
    EmployeeFailure,
    PayrollBatchResult,
    PayrollOrchestrator,
    PayrollRequest,
    duplicate_request_error,
)
from indopayroll.calculators.rate_table import RateTableRegistry
from indopayroll.calculators.types import (
    ZERO,
    CompensationProfile,
    OvertimeEntry,
    PayrollPeriod,
    PayrollResult,
)
from indopayroll.exceptions import NotFoundError
from indopayroll.services.result_store import PayrollResultStore, ResultLockedError

logger = logging.getLogger(__name__)


class PayrollRunService:
    """Runs the calculation engine over many employees and stores results.

    Operations:
    - run_period: look up profiles, calculate every employee, upsert
      each success into the result store
    - run_requests: calculate and store prepared requests for one period

    Per-employee problems (missing profile, invalid input, locked result) are
    reported in the batch; a configuration error aborts the run.
    """

    def __init__(
        self,
        session: AsyncSession,
        registry: RateTableRegistry,
        engine_version: str | None = None,
        max_workers: int | None = None,
    ):
        self.session = session
        self.registry = registry
        self.engine_version = engine_version
        self.max_workers = max_workers
        self.store = PayrollResultStore(session)

    async def run_period(
        self,
        period_id: UUID,
        period: PayrollPeriod,
        employee_ids: Iterable[UUID],
        profiles: Mapping[UUID, CompensationProfile],
        overtime: Mapping[UUID, Sequence[OvertimeEntry]] | None = None,
        loan_deductions: Mapping[UUID, Decimal] | None = None,
        other_deductions: Mapping[UUID, Decimal] | None = None,
        ytd_annual_incomes: Mapping[UUID, Decimal] | None = None,
    ) -> PayrollBatchResult:
        """Calculate and store every employee of a period."""
        overtime = overtime or {}
        loan_deductions = loan_deductions or {}
        other_deductions = other_deductions or {}
        ytd_annual_incomes = ytd_annual_incomes or {}

        failures: list[EmployeeFailure] = []
        requests: list[PayrollRequest] = []
        seen: set[UUID] = set()
        for employee_id in employee_ids:
            if employee_id in seen:
                failures.append(
                    EmployeeFailure.from_exception(
                        employee_id, period_id, duplicate_request_error(employee_id, period_id)
                    )
                )
                continue
            seen.add(employee_id)

            profile = profiles.get(employee_id)
            if profile is None:
                failures.append(
                    EmployeeFailure.from_exception(
                        employee_id,
                        period_id,
                        NotFoundError("compensation profile", employee_id),
                    )
                )
                continue
            requests.append(
                PayrollRequest(
                    employee_id=employee_id,
                    period_id=period_id,
                    profile=profile,
                    period=period,
                    approved_overtime=tuple(overtime.get(employee_id, ())),
                    loan_deduction=loan_deductions.get(employee_id, ZERO),
                    other_deductions=other_deductions.get(employee_id, ZERO),
                    ytd_annual_income=ytd_annual_incomes.get(employee_id),
                )
            )

        return await self._run(period, requests, failures)

    async def run_requests(
        self,
        period: PayrollPeriod,
        requests: Sequence[PayrollRequest],
    ) -> PayrollBatchResult:
        """Calculate and store prepared requests exactly as given."""
        return await self._run(period, requests, [])

    async def _run(
        self,
        period: PayrollPeriod,
        requests: Sequence[PayrollRequest],
        failures: list[EmployeeFailure],
    ) -> PayrollBatchResult:
        rates = self.registry.resolve(period.payment_date)
        orchestrator = PayrollOrchestrator(
            rates, engine_version=self.engine_version, max_workers=self.max_workers
        )

        logger.info(
            "Running payroll %s with rate table %s: %d employees, %d rejected before calculation",
            period.period_code,
            rates.version,
            len(requests),
            len(failures),
        )

        # CPU-bound; keep the event loop free while the pool works
        batch = await asyncio.to_thread(orchestrator.calculate_batch, requests)

        outcomes: list[PayrollResult | EmployeeFailure] = list(failures)
        for result in batch.results:
            try:
                await self.store.save(result)
                outcomes.append(result)
            except ResultLockedError as e:
                logger.warning("Skipping locked result for employee %s: %s", result.employee_id, e)
                outcomes.append(
                    EmployeeFailure.from_exception(result.employee_id, result.period_id, e)
                )
        outcomes.extend(batch.failures)

        return PayrollBatchResult.from_outcomes(outcomes)
