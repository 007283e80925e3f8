from abc import ABC, abstractmethod
from datetime import date
from typing import List, Optional

from cloudoptimizer.models.cloud import CloudProvider
from cloudoptimizer.schemas.costs import CostRecord, ResourceMetadata, SkuInfo, UtilizationMetrics


class CostDataSource(ABC):
    """
    Abstract Base Class for per-provider cost data sources.

    Standardizes the interface for:
    - Cost ingestion (daily records, provider-native regions)
    - Resource metadata lookup
    - SKU pricing
    - Utilization metrics

    Implementations raise UpstreamUnavailableError when the provider cannot be reached.
    Missing data is signalled with None / empty lists, not exceptions.
    """

    provider: CloudProvider

    @abstractmethod
    async def fetch_cost_data(
        self,
        tenant_id: str,
        resource_id: str,
        start_date: date,
        end_date: date
    ) -> List[CostRecord]:
        """Fetch daily cost records for a resource, inclusive of both dates."""
        pass

    @abstractmethod
    async def fetch_resource_metadata(self, tenant_id: str, resource_id: str) -> Optional[ResourceMetadata]:
        """Fetch the current configuration of a resource."""
        pass

    @abstractmethod
    async def get_sku_pricing(self, sku: str, region: Optional[str]) -> Optional[float]:
        """On-demand hourly price in USD, or None if the SKU is unknown."""
        pass

    @abstractmethod
    async def fetch_utilization_metrics(
        self,
        tenant_id: str,
        resource_id: str,
        start_date: date,
        end_date: date
    ) -> Optional[UtilizationMetrics]:
        """Fetch utilization aggregates for a resource."""
        pass

    async def list_available_skus(self, region: Optional[str] = None) -> List[SkuInfo]:
        """SKUs offered in a region. Sources without a catalogue return nothing."""
        return []
