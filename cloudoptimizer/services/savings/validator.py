"""
Savings Validation

Daily batch that checks whether implemented recommendations delivered the
savings they promised, by comparing average daily cost before and after
implementation:

  before = [implemented - 14d, implemented - 1d]
  after  = [implemented + 7d,  today - 1d]      (first week skipped to let costs settle)

ratio = actual monthly savings / expected monthly savings
  >= 0.5         VALIDATED
  >= 0.25        PARTIAL
  otherwise      FAILED

Candidates whose after-window is still too short are deferred to a later run.
Each candidate commits on its own; one failure never stops the batch.
"""

import uuid
from datetime import date, datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cloudoptimizer.core.config import get_settings
from cloudoptimizer.core.metrics import SAVINGS_VALIDATIONS
from cloudoptimizer.db.base import utcnow
from cloudoptimizer.models.recommendation import ImplementedRecommendation, ValidationStatus
from cloudoptimizer.schemas.costs import CostRecord
from cloudoptimizer.schemas.savings import ValidationOutcome, ValidationRunSummary
from cloudoptimizer.services.adapters.registry import DataSourceRegistry

logger = structlog.get_logger()

CENT = Decimal("0.01")


def average_daily_cost(records: List[CostRecord]) -> Decimal:
    total = sum((r.daily_cost for r in records), Decimal("0"))
    return (total / len(records)).quantize(CENT, rounding=ROUND_HALF_UP)


class SavingsValidator:
    def __init__(self, db: AsyncSession, registry: DataSourceRegistry):
        self.db = db
        self.registry = registry
        settings = get_settings()
        self.validation_threshold = settings.VALIDATION_THRESHOLD
        self.partial_threshold = settings.PARTIAL_THRESHOLD
        self.comparison_days = settings.VALIDATION_COMPARISON_DAYS
        self.stabilization_days = settings.VALIDATION_STABILIZATION_DAYS
        self.min_after_days = settings.VALIDATION_MIN_AFTER_DAYS

    async def _candidate_ids(self, now: datetime) -> List[uuid.UUID]:
        result = await self.db.execute(
            select(ImplementedRecommendation.id)
            .where(
                ImplementedRecommendation.validation_status == ValidationStatus.PENDING,
                ImplementedRecommendation.scheduled_validation_at <= now,
            )
            .order_by(ImplementedRecommendation.scheduled_validation_at)
        )
        return list(result.scalars().all())

    async def run_daily_validation(self, now: Optional[datetime] = None) -> ValidationRunSummary:
        now = now or utcnow()
        candidate_ids = await self._candidate_ids(now)
        summary = ValidationRunSummary(candidates=len(candidate_ids))
        logger.info("savings_validation_started", candidates=len(candidate_ids))

        for implementation_id in candidate_ids:
            try:
                outcome = await self.validate(implementation_id, now)
            except Exception as e:
                await self.db.rollback()
                summary.errors += 1
                logger.error("savings_validation_item_failed",
                             implementation_id=str(implementation_id),
                             error=str(e))
                continue

            SAVINGS_VALIDATIONS.labels(outcome=outcome.value).inc()
            if outcome == ValidationOutcome.VALIDATED:
                summary.validated += 1
            elif outcome == ValidationOutcome.PARTIAL:
                summary.partial += 1
            elif outcome == ValidationOutcome.FAILED:
                summary.failed += 1
            else:
                summary.deferred += 1

        logger.info("savings_validation_complete",
                    validated=summary.validated,
                    partial=summary.partial,
                    failed=summary.failed,
                    deferred=summary.deferred,
                    errors=summary.errors)
        return summary

    async def validate(self, implementation_id: uuid.UUID, now: datetime) -> ValidationOutcome:
        """Validate one implementation and commit the result. DEFERRED leaves it untouched."""
        implementation = await self.db.get(ImplementedRecommendation, implementation_id)
        outcome = await self._evaluate(implementation, now)
        if outcome != ValidationOutcome.DEFERRED:
            await self.db.commit()
        return outcome

    async def _evaluate(self, impl: ImplementedRecommendation, now: datetime) -> ValidationOutcome:
        log = logger.bind(implementation_id=str(impl.id), resource_id=impl.resource_id)

        source = self.registry.find(impl.provider)
        if source is None:
            log.warning("savings_validation_no_data_source", provider=impl.provider.value)
            return self._mark_failed(impl, now, "No adapter available for provider")

        implemented_on: date = impl.implemented_at.date()
        today = now.date()

        after_start = implemented_on + timedelta(days=self.stabilization_days)
        after_end = today - timedelta(days=1)
        if (after_end - after_start).days + 1 < self.min_after_days:
            log.debug("savings_validation_deferred", after_start=str(after_start), after_end=str(after_end))
            return ValidationOutcome.DEFERRED

        before = await source.fetch_cost_data(
            impl.tenant_id,
            impl.resource_id,
            implemented_on - timedelta(days=self.comparison_days),
            implemented_on - timedelta(days=1),
        )
        if not before:
            log.warning("savings_validation_no_baseline")
            return self._mark_failed(impl, now, "No cost data available before implementation")

        after = await source.fetch_cost_data(impl.tenant_id, impl.resource_id, after_start, after_end)
        expected = Decimal(str(impl.expected_monthly_savings or 0))

        if not after:
            if "DELETE" in impl.action.value:
                impl.cost_before_daily = float(average_daily_cost(before))
                impl.cost_after_daily = 0.0
                impl.actual_monthly_savings = float(expected)
                impl.validated_at = now
                impl.validation_status = ValidationStatus.VALIDATED
                impl.validation_notes = "Resource deleted - full savings realized"
                log.info("savings_validated_resource_deleted", expected=float(expected))
                return ValidationOutcome.VALIDATED
            return self._mark_failed(impl, now, "No cost data available after implementation")

        avg_before = average_daily_cost(before)
        avg_after = average_daily_cost(after)
        actual = (avg_before - avg_after) * 30
        ratio = float(actual / expected) if expected > 0 else 0.0

        if ratio >= self.validation_threshold:
            outcome, label = ValidationOutcome.VALIDATED, "Savings validated"
        elif ratio >= self.partial_threshold:
            outcome, label = ValidationOutcome.PARTIAL, "Partial savings"
        else:
            outcome, label = ValidationOutcome.FAILED, "Insufficient savings"

        impl.cost_before_daily = float(avg_before)
        impl.cost_after_daily = float(avg_after)
        impl.actual_monthly_savings = float(actual)
        impl.validated_at = now
        impl.validation_status = outcome.validation_status
        impl.validation_notes = (
            f"{label}: ${float(actual):.2f}/mo actual vs ${float(expected):.2f}/mo expected "
            f"({ratio * 100:.0f}%)"
        )

        log.info("savings_validation_resolved",
                 before_daily=float(avg_before),
                 after_daily=float(avg_after),
                 actual_monthly=float(actual),
                 ratio=round(ratio, 3),
                 outcome=outcome.value)
        return outcome

    @staticmethod
    def _mark_failed(impl: ImplementedRecommendation, now: datetime, reason: str) -> ValidationOutcome:
        impl.validated_at = now
        impl.validation_status = ValidationStatus.FAILED
        impl.validation_notes = reason
        return ValidationOutcome.FAILED
