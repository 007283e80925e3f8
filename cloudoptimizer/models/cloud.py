"""
Cloud cost records and the provider/resource vocabularies shared across the pipeline.

CostRecord rows are append-only: once ingested they are never updated, so
forecasts and savings validation always see the same history.
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import String, Integer, Float, Numeric, Date, DateTime, Index, UniqueConstraint, Uuid, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from cloudoptimizer.db.base import Base, utcnow


class CloudProvider(str, Enum):
    """Supported cloud providers."""
    AZURE = "AZURE"
    AWS = "AWS"
    GCP = "GCP"

    @classmethod
    def from_string(cls, value: str) -> "CloudProvider":
        if isinstance(value, CloudProvider):
            return value
        try:
            return cls[value.strip().upper()]
        except KeyError:
            raise ValueError(f"Unknown cloud provider: {value}")


class ResourceType(str, Enum):
    """Categories of cloud resources. Only some are candidates for sizing analysis."""
    COMPUTE = "COMPUTE"
    STORAGE = "STORAGE"
    DATABASE = "DATABASE"
    NETWORK = "NETWORK"
    KUBERNETES = "KUBERNETES"
    SERVERLESS = "SERVERLESS"
    ANALYTICS = "ANALYTICS"
    CACHING = "CACHING"
    MESSAGING = "MESSAGING"
    MONITORING = "MONITORING"
    UNKNOWN = "UNKNOWN"

    @property
    def is_optimizable(self) -> bool:
        return self in _OPTIMIZABLE_TYPES

    @classmethod
    def from_string(cls, value: Optional[str]) -> "ResourceType":
        if isinstance(value, ResourceType):
            return value
        if not value:
            return cls.UNKNOWN
        try:
            return cls[value.strip().upper()]
        except KeyError:
            return cls.UNKNOWN


_OPTIMIZABLE_TYPES = frozenset({
    ResourceType.COMPUTE,
    ResourceType.STORAGE,
    ResourceType.DATABASE,
    ResourceType.KUBERNETES,
    ResourceType.SERVERLESS,
    ResourceType.ANALYTICS,
    ResourceType.CACHING,
})


class CostRecord(Base):
    """One day of cost and utilization for a single resource."""
    __tablename__ = "cost_records"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    provider: Mapped[CloudProvider] = mapped_column(SQLEnum(CloudProvider), nullable=False)
    resource_type: Mapped[ResourceType] = mapped_column(SQLEnum(ResourceType), nullable=False, default=ResourceType.UNKNOWN)
    resource_id: Mapped[str] = mapped_column(String(512), nullable=False)
    resource_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    sku: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    vcpu: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    memory_gb: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    storage_gb: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    avg_cpu_utilization: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    avg_memory_utilization: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    # Canonical (provider-agnostic) region
    region: Mapped[str] = mapped_column(String(64), nullable=False, default="unknown")

    # Financials (DECIMAL for money)
    daily_cost: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)

    record_date: Mapped[date] = mapped_column(Date, nullable=False)
    ingested_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("tenant_id", "provider", "resource_id", "record_date", name="uix_cost_record_resource_day"),
        Index("ix_cost_records_tenant_resource_date", "tenant_id", "resource_id", "record_date"),
    )
