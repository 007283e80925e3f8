"""
Cloud Cost and Usage Schemas - Normalization Layer
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import List, Optional, Dict
from pydantic import BaseModel, ConfigDict, Field

from cloudoptimizer.models.cloud import CloudProvider, ResourceType


class CostRecord(BaseModel):
    """
    One day of cost/utilization for a resource.

    Provider adapters return these with provider-native regions and raw
    utilization values; the normalizer turns them into canonical records.
    """
    model_config = ConfigDict(frozen=True, from_attributes=True)

    tenant_id: str
    provider: CloudProvider
    resource_type: ResourceType = ResourceType.UNKNOWN
    resource_id: str
    resource_name: Optional[str] = None
    sku: Optional[str] = None
    vcpu: Optional[int] = None
    memory_gb: Optional[float] = None
    storage_gb: Optional[float] = None
    avg_cpu_utilization: Optional[float] = Field(None, description="Fraction of CPU used, 0..1 once normalized")
    avg_memory_utilization: Optional[float] = None
    region: Optional[str] = None
    daily_cost: Decimal = Field(..., description="Cost for the day in USD")
    record_date: date
    ingested_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class TimeSeriesPoint(BaseModel):
    """Projection of a cost record used by forecasting and classification."""
    date: date
    cost: float
    cpu_utilization: Optional[float] = None
    memory_utilization: Optional[float] = None


class NormalizedResourceCost(BaseModel):
    """Aggregate cost summary for one resource over a window. Recomputed on demand."""
    tenant_id: str
    provider: CloudProvider
    resource_id: str
    resource_name: Optional[str] = None
    resource_type: ResourceType = ResourceType.UNKNOWN
    sku: Optional[str] = None
    canonical_region: str = "unknown"
    vcpu: Optional[int] = None
    memory_gb: Optional[float] = None
    storage_gb: Optional[float] = None
    total_cost: float
    avg_daily_cost: float
    avg_cpu_utilization: Optional[float] = None
    avg_memory_utilization: Optional[float] = None
    data_point_count: int
    period_start: date
    period_end: date

    @property
    def display_name(self) -> str:
        return self.resource_name or self.resource_id


class ResourceMetadata(BaseModel):
    """Current configuration of a resource as reported by its provider."""
    resource_id: str
    name: Optional[str] = None
    resource_type: ResourceType = ResourceType.UNKNOWN
    sku: Optional[str] = None
    region: Optional[str] = None
    vcpu: Optional[int] = None
    memory_gb: Optional[float] = None
    storage_gb: Optional[float] = None
    tags: Dict[str, str] = Field(default_factory=dict)
    status: Optional[str] = None


class UtilizationMetrics(BaseModel):
    """Utilization aggregate for a resource over a window, values in 0..1."""
    resource_id: str
    period_start: date
    period_end: date
    avg_cpu: Optional[float] = None
    max_cpu: Optional[float] = None
    p95_cpu: Optional[float] = None
    avg_memory: Optional[float] = None
    max_memory: Optional[float] = None
    data_points: List[TimeSeriesPoint] = Field(default_factory=list)


class SkuInfo(BaseModel):
    """A purchasable SKU with its shape and on-demand price."""
    sku: str
    provider: CloudProvider
    region: Optional[str] = None
    vcpu: Optional[int] = None
    memory_gb: Optional[float] = None
    hourly_price: Optional[float] = None
    family: Optional[str] = None
