"""
Recommendation write path.

Every generated recommendation goes through a single INSERT .. ON CONFLICT
targeting the partial unique index on (tenant_id, provider, resource_id, action)
WHERE status = 'ACTIVE'. Concurrent analyses of the same resource therefore
converge on one ACTIVE row instead of racing a read-then-insert.
"""

import uuid
from datetime import datetime, timedelta
from typing import Optional

import structlog
from sqlalchemy import select, text
from sqlalchemy.ext.asyncio import AsyncSession

from cloudoptimizer.core.config import get_settings
from cloudoptimizer.db.base import utcnow
from cloudoptimizer.db.upsert import insert_for
from cloudoptimizer.models.cloud import CloudProvider
from cloudoptimizer.models.recommendation import (
    Recommendation,
    RecommendationAction,
    RecommendationStatus,
)
from cloudoptimizer.schemas.analysis import RecommendationDraft

logger = structlog.get_logger()

ACTIVE_KEY_COLUMNS = ["tenant_id", "provider", "resource_id", "action"]
ACTIVE_ROW_PREDICATE = "status = 'ACTIVE'"


class RecommendationRepository:
    def __init__(self, db: AsyncSession, ttl_days: Optional[int] = None):
        self.db = db
        self.ttl_days = ttl_days or get_settings().RECOMMENDATION_TTL_DAYS

    async def find_active(
        self,
        tenant_id: str,
        provider: CloudProvider,
        resource_id: str,
        action: RecommendationAction,
    ) -> Optional[Recommendation]:
        result = await self.db.execute(
            select(Recommendation)
            .where(
                Recommendation.tenant_id == tenant_id,
                Recommendation.provider == provider,
                Recommendation.resource_id == resource_id,
                Recommendation.action == action,
                Recommendation.status == RecommendationStatus.ACTIVE,
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def upsert_active(self, draft: RecommendationDraft, now: Optional[datetime] = None) -> Recommendation:
        """
        Insert the draft as a new ACTIVE recommendation, or refresh the existing
        ACTIVE row for the same key in place (content, generated_at, expires_at).
        Does not commit.
        """
        now = now or utcnow()
        expires_at = now + timedelta(days=self.ttl_days)

        stmt = insert_for(self.db, Recommendation).values(
            id=uuid.uuid4(),
            tenant_id=draft.tenant_id,
            provider=draft.provider,
            resource_id=draft.resource_id,
            resource_name=draft.resource_name,
            resource_type=draft.resource_type,
            action=draft.action,
            summary=draft.summary[:500],
            details=draft.details,
            current_config=draft.current_config,
            suggested_config=draft.suggested_config,
            estimated_monthly_savings=round(draft.estimated_monthly_savings, 2),
            savings_percentage=draft.savings_percentage,
            confidence=draft.confidence,
            risk_level=draft.risk_level,
            status=RecommendationStatus.ACTIVE,
            generated_at=now,
            expires_at=expires_at,
            created_at=now,
            updated_at=now,
        )
        # Core upserts bypass ORM onupdate hooks, so updated_at is set explicitly
        stmt = stmt.on_conflict_do_update(
            index_elements=ACTIVE_KEY_COLUMNS,
            index_where=text(ACTIVE_ROW_PREDICATE),
            set_={
                "resource_name": stmt.excluded.resource_name,
                "summary": stmt.excluded.summary,
                "details": stmt.excluded.details,
                "current_config": stmt.excluded.current_config,
                "suggested_config": stmt.excluded.suggested_config,
                "estimated_monthly_savings": stmt.excluded.estimated_monthly_savings,
                "savings_percentage": stmt.excluded.savings_percentage,
                "confidence": stmt.excluded.confidence,
                "risk_level": stmt.excluded.risk_level,
                "generated_at": stmt.excluded.generated_at,
                "expires_at": stmt.excluded.expires_at,
                "updated_at": stmt.excluded.updated_at,
            },
        )
        await self.db.execute(stmt)

        row = await self.find_active(draft.tenant_id, draft.provider, draft.resource_id, draft.action)
        logger.debug("recommendation_upserted",
                     tenant_id=draft.tenant_id,
                     resource_id=draft.resource_id,
                     action=draft.action.value,
                     recommendation_id=str(row.id))
        return row
