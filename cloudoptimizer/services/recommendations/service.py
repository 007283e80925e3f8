"""
Recommendation lifecycle: dismissal, implementation tracking and expiry.

Operations on a recommendation the tenant does not own, or one in the wrong
status, return None and leave it untouched.
"""

import uuid
from datetime import datetime, timedelta
from typing import List, Optional

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from cloudoptimizer.core.config import get_settings
from cloudoptimizer.db.base import utcnow
from cloudoptimizer.models.recommendation import (
    ImplementedRecommendation,
    Recommendation,
    RecommendationStatus,
    ValidationStatus,
)
from cloudoptimizer.schemas.savings import SavingsMetrics
from cloudoptimizer.services.recommendations.persistence import RecommendationRepository

logger = structlog.get_logger()


class RecommendationService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.settings = get_settings()
        self.repository = RecommendationRepository(db)

    async def get(self, tenant_id: str, recommendation_id: uuid.UUID) -> Optional[Recommendation]:
        result = await self.db.execute(
            select(Recommendation).where(
                Recommendation.id == recommendation_id,
                Recommendation.tenant_id == tenant_id,
            )
        )
        return result.scalar_one_or_none()

    async def dismiss(
        self,
        tenant_id: str,
        recommendation_id: uuid.UUID,
        reason: Optional[str] = None,
        actioned_by: Optional[str] = None,
    ) -> Optional[Recommendation]:
        rec = await self.get(tenant_id, recommendation_id)
        if rec is None:
            logger.warning("recommendation_not_found", tenant_id=tenant_id, recommendation_id=str(recommendation_id))
            return None
        if rec.status != RecommendationStatus.ACTIVE:
            logger.warning("recommendation_dismiss_rejected",
                           recommendation_id=str(recommendation_id),
                           status=rec.status.value)
            return None

        rec.status = RecommendationStatus.DISMISSED
        rec.feedback = reason
        rec.actioned_by = actioned_by
        rec.actioned_at = utcnow()
        await self.db.commit()

        logger.info("recommendation_dismissed",
                    tenant_id=tenant_id,
                    recommendation_id=str(recommendation_id),
                    actioned_by=actioned_by)
        return rec

    async def undismiss(self, tenant_id: str, recommendation_id: uuid.UUID) -> Optional[Recommendation]:
        """Restore a DISMISSED recommendation unless a newer ACTIVE one already covers its action."""
        rec = await self.get(tenant_id, recommendation_id)
        if rec is None:
            logger.warning("recommendation_not_found", tenant_id=tenant_id, recommendation_id=str(recommendation_id))
            return None
        if rec.status != RecommendationStatus.DISMISSED:
            logger.warning("recommendation_undismiss_rejected",
                           recommendation_id=str(recommendation_id),
                           status=rec.status.value)
            return None

        active = await self.repository.find_active(rec.tenant_id, rec.provider, rec.resource_id, rec.action)
        if active is not None:
            logger.warning("recommendation_undismiss_superseded",
                           recommendation_id=str(recommendation_id),
                           active_id=str(active.id))
            return None

        rec.status = RecommendationStatus.ACTIVE
        rec.feedback = None
        rec.actioned_by = None
        rec.actioned_at = None
        rec.expires_at = utcnow() + timedelta(days=self.settings.RECOMMENDATION_TTL_DAYS)
        await self.db.commit()

        logger.info("recommendation_restored", tenant_id=tenant_id, recommendation_id=str(recommendation_id))
        return rec

    async def mark_implemented(
        self,
        tenant_id: str,
        recommendation_id: uuid.UUID,
        implemented_by: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Optional[ImplementedRecommendation]:
        """
        Record that the tenant applied a recommendation and schedule its savings validation.
        Calling it again returns the existing tracking record.
        """
        rec = await self.get(tenant_id, recommendation_id)
        if rec is None:
            logger.warning("recommendation_not_found", tenant_id=tenant_id, recommendation_id=str(recommendation_id))
            return None

        existing = await self.db.execute(
            select(ImplementedRecommendation).where(
                ImplementedRecommendation.recommendation_id == recommendation_id,
                ImplementedRecommendation.tenant_id == tenant_id,
            )
        )
        implementation = existing.scalar_one_or_none()
        if implementation is not None:
            logger.info("recommendation_already_implemented", recommendation_id=str(recommendation_id))
            return implementation

        now = now or utcnow()
        rec.status = RecommendationStatus.IMPLEMENTED
        rec.actioned_by = implemented_by
        rec.actioned_at = now

        implementation = ImplementedRecommendation(
            recommendation_id=rec.id,
            tenant_id=tenant_id,
            resource_id=rec.resource_id,
            provider=rec.provider,
            resource_type=rec.resource_type,
            action=rec.action,
            summary=rec.summary,
            implemented_at=now,
            implemented_by=implemented_by,
            expected_monthly_savings=rec.estimated_monthly_savings,
            validation_status=ValidationStatus.PENDING,
            scheduled_validation_at=now + timedelta(days=self.settings.VALIDATION_DELAY_DAYS),
        )
        self.db.add(implementation)
        await self.db.commit()

        logger.info("recommendation_implemented",
                    tenant_id=tenant_id,
                    recommendation_id=str(recommendation_id),
                    implementation_id=str(implementation.id),
                    expected_monthly_savings=implementation.expected_monthly_savings)
        return implementation

    async def get_savings_metrics(self, tenant_id: str) -> SavingsMetrics:
        totals = await self.db.execute(
            select(
                func.count(ImplementedRecommendation.id),
                func.coalesce(func.sum(ImplementedRecommendation.expected_monthly_savings), 0),
            ).where(ImplementedRecommendation.tenant_id == tenant_id)
        )
        implemented_count, total_expected = totals.one()

        validated = await self.db.execute(
            select(
                func.count(ImplementedRecommendation.id),
                func.coalesce(func.sum(ImplementedRecommendation.actual_monthly_savings), 0),
            ).where(
                ImplementedRecommendation.tenant_id == tenant_id,
                ImplementedRecommendation.validation_status == ValidationStatus.VALIDATED,
            )
        )
        validated_count, total_validated = validated.one()

        success_rate = validated_count / implemented_count * 100 if implemented_count else 0.0
        return SavingsMetrics(
            tenant_id=tenant_id,
            total_expected_savings=float(total_expected or 0),
            total_validated_savings=float(total_validated or 0),
            implemented_count=implemented_count,
            validated_count=validated_count,
            validation_success_rate=success_rate,
        )

    async def list_implemented(self, tenant_id: str) -> List[ImplementedRecommendation]:
        result = await self.db.execute(
            select(ImplementedRecommendation)
            .where(ImplementedRecommendation.tenant_id == tenant_id)
            .order_by(ImplementedRecommendation.implemented_at.desc())
        )
        return list(result.scalars().all())

    async def list_dismissed(self, tenant_id: str) -> List[Recommendation]:
        result = await self.db.execute(
            select(Recommendation)
            .where(
                Recommendation.tenant_id == tenant_id,
                Recommendation.status == RecommendationStatus.DISMISSED,
            )
            .order_by(Recommendation.actioned_at.desc())
        )
        return list(result.scalars().all())

    async def top_recommendations(self, tenant_id: str, limit: int = 10) -> List[Recommendation]:
        """ACTIVE recommendations with the largest estimated savings first."""
        result = await self.db.execute(
            select(Recommendation)
            .where(
                Recommendation.tenant_id == tenant_id,
                Recommendation.status == RecommendationStatus.ACTIVE,
            )
            .order_by(Recommendation.estimated_monthly_savings.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def has_active_recommendations(self, tenant_id: str, resource_id: str) -> bool:
        result = await self.db.execute(
            select(func.count(Recommendation.id)).where(
                Recommendation.tenant_id == tenant_id,
                Recommendation.resource_id == resource_id,
                Recommendation.status == RecommendationStatus.ACTIVE,
            )
        )
        return result.scalar_one() > 0

    async def expire_stale(self, now: Optional[datetime] = None) -> int:
        """Move ACTIVE recommendations past their expiry to EXPIRED. Returns rows changed."""
        now = now or utcnow()
        result = await self.db.execute(
            update(Recommendation)
            .where(
                Recommendation.status == RecommendationStatus.ACTIVE,
                Recommendation.expires_at.is_not(None),
                Recommendation.expires_at < now,
            )
            .values(status=RecommendationStatus.EXPIRED, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

        expired = result.rowcount or 0
        if expired:
            logger.info("recommendations_expired", count=expired)
        return expired
