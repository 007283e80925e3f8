"""
Alternative SKU catalogue, tradeoff dimensions and per-tenant scoring preferences.
"""

import uuid
from enum import Enum
from datetime import datetime
from typing import Optional, Dict

from sqlalchemy import String, Text, Float, Integer, Boolean, DateTime, ForeignKey, Index, UniqueConstraint, JSON, Uuid, Enum as SQLEnum
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cloudoptimizer.db.base import Base, utcnow
from cloudoptimizer.models.cloud import CloudProvider, ResourceType


class AlternativeCategory(str, Enum):
    """How an alternative SKU relates to the current one."""
    DOWNSIZE = "DOWNSIZE"
    UPSIZE = "UPSIZE"
    DIFFERENT_FAMILY = "DIFFERENT_FAMILY"
    CROSS_CLOUD = "CROSS_CLOUD"


class ResourceAlternative(Base):
    """A seeded mapping from a current SKU to a candidate replacement SKU."""
    __tablename__ = "resource_alternatives"
    __table_args__ = (
        Index("ix_resource_alternatives_lookup", "provider", "current_sku"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    provider: Mapped[CloudProvider] = mapped_column(SQLEnum(CloudProvider), nullable=False)
    resource_type: Mapped[ResourceType] = mapped_column(SQLEnum(ResourceType), nullable=False)
    current_sku: Mapped[str] = mapped_column(String(128), nullable=False)

    alternative_sku: Mapped[str] = mapped_column(String(128), nullable=False)
    alternative_provider: Mapped[CloudProvider] = mapped_column(SQLEnum(CloudProvider), nullable=False)
    vcpu: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    memory_gb: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    # Catalogue price used when the alternative's own provider has no registered pricing source
    estimated_hourly_price: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    sku_family: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    category: Mapped[AlternativeCategory] = mapped_column(SQLEnum(AlternativeCategory), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    scores: Mapped[list["AlternativeTradeoffScore"]] = relationship(
        back_populates="alternative", cascade="all, delete-orphan"
    )

    @property
    def is_cross_cloud(self) -> bool:
        return self.provider != self.alternative_provider


class TradeoffDimension(Base):
    """An independent axis used to score alternatives."""
    __tablename__ = "tradeoff_dimensions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    display_name: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    default_weight: Mapped[float] = mapped_column(Float, nullable=False)
    higher_is_better: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class AlternativeTradeoffScore(Base):
    """Memoized output of a dimension scorer for one alternative."""
    __tablename__ = "alternative_tradeoff_scores"
    __table_args__ = (
        UniqueConstraint("alternative_id", "dimension_id", name="uix_alternative_dimension"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    alternative_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("resource_alternatives.id", ondelete="CASCADE"), nullable=False
    )
    dimension_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("tradeoff_dimensions.id", ondelete="CASCADE"), nullable=False
    )
    score: Mapped[float] = mapped_column(Float, nullable=False)
    explanation: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    current_value: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    alternative_value: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    confidence: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    last_updated: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    alternative: Mapped["ResourceAlternative"] = relationship(back_populates="scores")
    dimension: Mapped["TradeoffDimension"] = relationship()


class TenantPreferences(Base):
    """Per-tenant knobs for alternative ranking."""
    __tablename__ = "tenant_preferences"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    minimum_savings_threshold: Mapped[float] = mapped_column(Float, nullable=False, default=10.0)
    include_multi_cloud: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    minimum_confidence: Mapped[float] = mapped_column(Float, nullable=False, default=0.6)
    auto_dismiss_implemented: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    # dimension name -> weight; always stored normalized to sum to 1
    dimension_weights: Mapped[Optional[Dict[str, float]]] = mapped_column(
        JSON().with_variant(JSONB, "postgresql"), nullable=True
    )
