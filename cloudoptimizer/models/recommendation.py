"""
Recommendation Models

Stores optimization recommendations produced by the recommendation engine and
the follow-up record created when a tenant reports one as implemented.

Lifecycle:
1. Engine emits ACTIVE recommendation (upserted, one ACTIVE row per resource+action)
2. Tenant dismisses it (DISMISSED) or implements it (IMPLEMENTED)
3. Implemented recommendations get an ImplementedRecommendation row (PENDING)
4. Daily validator compares before/after cost and resolves the validation status
5. Stale ACTIVE rows expire (EXPIRED)
"""

import uuid
from enum import Enum
from datetime import datetime
from typing import Optional

from sqlalchemy import String, Text, Float, Numeric, DateTime, ForeignKey, Index, Uuid, Enum as SQLEnum, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cloudoptimizer.db.base import Base, utcnow
from cloudoptimizer.models.cloud import CloudProvider, ResourceType


class RecommendationAction(str, Enum):
    """Actionable optimization operations."""
    DOWNSIZE_INSTANCE = "DOWNSIZE_INSTANCE"
    UPSIZE_INSTANCE = "UPSIZE_INSTANCE"
    PURCHASE_RESERVATION = "PURCHASE_RESERVATION"
    DELETE_RESOURCE = "DELETE_RESOURCE"
    CHANGE_REGION = "CHANGE_REGION"
    CHANGE_STORAGE_TIER = "CHANGE_STORAGE_TIER"
    USE_SPOT_INSTANCES = "USE_SPOT_INSTANCES"
    SCHEDULE_SHUTDOWN = "SCHEDULE_SHUTDOWN"
    CONSOLIDATE_RESOURCES = "CONSOLIDATE_RESOURCES"
    MIGRATE_SERVICE = "MIGRATE_SERVICE"
    NO_ACTION = "NO_ACTION"

    @property
    def display_name(self) -> str:
        return _ACTION_TEXT[self][0]

    @property
    def description(self) -> str:
        return _ACTION_TEXT[self][1]

    @property
    def risk_level(self) -> "RiskLevel":
        if self == RecommendationAction.DELETE_RESOURCE:
            return RiskLevel.HIGH
        if self in (
            RecommendationAction.DOWNSIZE_INSTANCE,
            RecommendationAction.UPSIZE_INSTANCE,
            RecommendationAction.CHANGE_REGION,
        ):
            return RiskLevel.MEDIUM
        return RiskLevel.LOW


_ACTION_TEXT = {
    RecommendationAction.DOWNSIZE_INSTANCE: ("Downsize instance", "Reduce compute capacity to match actual usage"),
    RecommendationAction.UPSIZE_INSTANCE: ("Upsize instance", "Increase capacity to prevent performance degradation"),
    RecommendationAction.PURCHASE_RESERVATION: ("Purchase reservation", "Convert to 1 or 3 year commitment for savings"),
    RecommendationAction.DELETE_RESOURCE: ("Delete resource", "Remove idle or orphaned resource"),
    RecommendationAction.CHANGE_REGION: ("Change region", "Migrate to lower-cost region"),
    RecommendationAction.CHANGE_STORAGE_TIER: ("Change storage tier", "Move to appropriate access tier"),
    RecommendationAction.USE_SPOT_INSTANCES: ("Use spot instances", "Switch to spot/preemptible for cost savings"),
    RecommendationAction.SCHEDULE_SHUTDOWN: ("Schedule shutdown", "Auto-stop during off-hours"),
    RecommendationAction.CONSOLIDATE_RESOURCES: ("Consolidate resources", "Merge underutilized resources"),
    RecommendationAction.MIGRATE_SERVICE: ("Migrate service", "Switch to more cost-effective service"),
    RecommendationAction.NO_ACTION: ("No action", "Resource is well-optimized"),
}


class RiskLevel(str, Enum):
    """Operational risk of applying a recommendation."""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class RecommendationStatus(str, Enum):
    """Lifecycle status of a recommendation."""
    ACTIVE = "ACTIVE"
    IMPLEMENTED = "IMPLEMENTED"
    DISMISSED = "DISMISSED"
    EXPIRED = "EXPIRED"
    VALIDATING = "VALIDATING"


class ValidationStatus(str, Enum):
    """Outcome of comparing realized against expected savings."""
    PENDING = "PENDING"
    VALIDATED = "VALIDATED"
    PARTIAL = "PARTIAL"
    FAILED = "FAILED"


class Recommendation(Base):
    """
    An actionable cost optimization recommendation for one resource.

    At most one ACTIVE row exists per (tenant, provider, resource, action),
    enforced by a partial unique index and written through an atomic upsert.
    """

    __tablename__ = "recommendations"
    __table_args__ = (
        Index(
            "uq_recommendations_active_key",
            "tenant_id", "provider", "resource_id", "action",
            unique=True,
            postgresql_where=text("status = 'ACTIVE'"),
            sqlite_where=text("status = 'ACTIVE'"),
        ),
        Index("ix_recommendations_tenant_status", "tenant_id", "status"),
        Index("ix_recommendations_expires_at", "expires_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    provider: Mapped[CloudProvider] = mapped_column(SQLEnum(CloudProvider), nullable=False)
    resource_id: Mapped[str] = mapped_column(String(512), nullable=False)
    resource_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    resource_type: Mapped[ResourceType] = mapped_column(SQLEnum(ResourceType), nullable=False)

    action: Mapped[RecommendationAction] = mapped_column(SQLEnum(RecommendationAction), nullable=False)
    summary: Mapped[str] = mapped_column(String(500), nullable=False)
    details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    current_config: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    suggested_config: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    estimated_monthly_savings: Mapped[float] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=False, default=0.0)
    savings_percentage: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    confidence: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    risk_level: Mapped[RiskLevel] = mapped_column(SQLEnum(RiskLevel), nullable=False, default=RiskLevel.LOW)

    status: Mapped[RecommendationStatus] = mapped_column(
        SQLEnum(RecommendationStatus),
        nullable=False,
        default=RecommendationStatus.ACTIVE,
    )
    generated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Tenant feedback
    actioned_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    actioned_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    feedback: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    implementation: Mapped[Optional["ImplementedRecommendation"]] = relationship(
        back_populates="recommendation", uselist=False
    )


class ImplementedRecommendation(Base):
    """
    Tracks a recommendation the tenant has acted on so realized savings can be verified.
    Created once at implementation time and only mutated by the savings validator.
    """

    __tablename__ = "implemented_recommendations"
    __table_args__ = (
        Index("ix_implemented_status_scheduled", "validation_status", "scheduled_validation_at"),
        Index("ix_implemented_tenant", "tenant_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    recommendation_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("recommendations.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    resource_id: Mapped[str] = mapped_column(String(512), nullable=False)
    provider: Mapped[CloudProvider] = mapped_column(SQLEnum(CloudProvider), nullable=False)
    resource_type: Mapped[ResourceType] = mapped_column(SQLEnum(ResourceType), nullable=False)
    action: Mapped[RecommendationAction] = mapped_column(SQLEnum(RecommendationAction), nullable=False)
    summary: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    implemented_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    implemented_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    expected_monthly_savings: Mapped[float] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=False)
    actual_monthly_savings: Mapped[Optional[float]] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=True)
    cost_before_daily: Mapped[Optional[float]] = mapped_column(Numeric(12, 4, asdecimal=False), nullable=True)
    cost_after_daily: Mapped[Optional[float]] = mapped_column(Numeric(12, 4, asdecimal=False), nullable=True)

    scheduled_validation_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    validated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    validation_status: Mapped[ValidationStatus] = mapped_column(
        SQLEnum(ValidationStatus),
        nullable=False,
        default=ValidationStatus.PENDING,
    )
    validation_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    recommendation: Mapped["Recommendation"] = relationship(back_populates="implementation")
