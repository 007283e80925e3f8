"""
Local development data source.

Generates deterministic cost and utilization data so the full pipeline can be
exercised without provider credentials. Resource ids steer the profile:
  - contains "idle"                            -> 2-5% CPU
  - contains "underutilized" or "test-vm-01"   -> 10-18% CPU
  - anything else                              -> 45-75% CPU
  - contains "db"                              -> DATABASE at ~$10/day, else COMPUTE at ~$4.50/day
"""

import random
from datetime import date, timedelta
from decimal import Decimal
from typing import List, Optional

import structlog

from cloudoptimizer.models.cloud import CloudProvider, ResourceType
from cloudoptimizer.schemas.costs import CostRecord, ResourceMetadata, SkuInfo, UtilizationMetrics
from cloudoptimizer.services.adapters.base import CostDataSource

logger = structlog.get_logger()

DEFAULT_SKU = {
    CloudProvider.AZURE: "Standard_D4s_v3",
    CloudProvider.AWS: "m5.xlarge",
    CloudProvider.GCP: "n2-standard-4",
}

DEFAULT_REGION = {
    CloudProvider.AZURE: "eastus",
    CloudProvider.AWS: "us-east-1",
    CloudProvider.GCP: "us-east1",
}

# Hourly on-demand prices (USD)
SKU_PRICES = {
    "Standard_D4s_v3": 0.192,
    "m5.xlarge": 0.192,
    "Standard_D2s_v3": 0.096,
    "m5.large": 0.096,
    "Standard_B2s": 0.0416,
    "t3.small": 0.0416,
    "Standard_B1s": 0.0104,
}
FALLBACK_PRICE = 0.10

AZURE_CATALOGUE = [
    SkuInfo(sku="Standard_D2s_v3", provider=CloudProvider.AZURE, vcpu=2, memory_gb=8.0, hourly_price=0.096, family="D-series"),
    SkuInfo(sku="Standard_D4s_v3", provider=CloudProvider.AZURE, vcpu=4, memory_gb=16.0, hourly_price=0.192, family="D-series"),
    SkuInfo(sku="Standard_B2s", provider=CloudProvider.AZURE, vcpu=2, memory_gb=4.0, hourly_price=0.0416, family="B-series"),
    SkuInfo(sku="Standard_B1s", provider=CloudProvider.AZURE, vcpu=1, memory_gb=1.0, hourly_price=0.0104, family="B-series"),
]


class MockCostDataSource(CostDataSource):
    def __init__(self, provider: CloudProvider, seed: int = 42):
        self.provider = provider
        self.seed = seed

    def _rng(self, resource_id: str) -> random.Random:
        return random.Random(f"{self.seed}:{self.provider.value}:{resource_id}")

    @staticmethod
    def _profile(resource_id: str) -> str:
        if "idle" in resource_id:
            return "idle"
        if "underutilized" in resource_id or "test-vm-01" in resource_id:
            return "underutilized"
        return "normal"

    @staticmethod
    def _extract_name(resource_id: str) -> str:
        return resource_id.rsplit("/", 1)[-1]

    @staticmethod
    def _resource_type(resource_id: str) -> ResourceType:
        return ResourceType.DATABASE if "db" in resource_id else ResourceType.COMPUTE

    async def fetch_cost_data(
        self,
        tenant_id: str,
        resource_id: str,
        start_date: date,
        end_date: date
    ) -> List[CostRecord]:
        logger.debug("mock_fetch_cost_data", provider=self.provider.value, resource_id=resource_id)
        rng = self._rng(resource_id)
        profile = self._profile(resource_id)
        base_cost = 10.0 if "db" in resource_id else 4.5

        records = []
        current = start_date
        while current <= end_date:
            daily_cost = base_cost + (rng.random() * 2 - 1)
            if profile == "idle":
                cpu = 0.02 + rng.random() * 0.03
            elif profile == "underutilized":
                cpu = 0.10 + rng.random() * 0.08
            else:
                cpu = 0.45 + rng.random() * 0.30

            records.append(CostRecord(
                tenant_id=tenant_id,
                provider=self.provider,
                resource_type=self._resource_type(resource_id),
                resource_id=resource_id,
                resource_name=self._extract_name(resource_id),
                sku=DEFAULT_SKU[self.provider],
                region=DEFAULT_REGION[self.provider],
                vcpu=4,
                memory_gb=16.0,
                avg_cpu_utilization=cpu,
                avg_memory_utilization=cpu * 0.8,
                daily_cost=Decimal(str(round(daily_cost, 6))),
                record_date=current,
            ))
            current += timedelta(days=1)

        return records

    async def fetch_resource_metadata(self, tenant_id: str, resource_id: str) -> Optional[ResourceMetadata]:
        return ResourceMetadata(
            resource_id=resource_id,
            name=self._extract_name(resource_id),
            resource_type=self._resource_type(resource_id),
            sku=DEFAULT_SKU[self.provider],
            region=DEFAULT_REGION[self.provider],
            vcpu=4,
            memory_gb=16.0,
            storage_gb=100.0,
            tags={"environment": "development", "owner": "local-dev"},
            status="Running",
        )

    async def get_sku_pricing(self, sku: str, region: Optional[str]) -> Optional[float]:
        return SKU_PRICES.get(sku, FALLBACK_PRICE)

    async def fetch_utilization_metrics(
        self,
        tenant_id: str,
        resource_id: str,
        start_date: date,
        end_date: date
    ) -> Optional[UtilizationMetrics]:
        profile = self._profile(resource_id)
        avg_cpu, max_cpu = {"idle": (0.03, 0.08), "underutilized": (0.12, 0.25), "normal": (0.55, 0.85)}[profile]
        return UtilizationMetrics(
            resource_id=resource_id,
            period_start=start_date,
            period_end=end_date,
            avg_cpu=avg_cpu,
            max_cpu=max_cpu,
            p95_cpu=max_cpu * 0.9,
            avg_memory=avg_cpu * 0.7,
            max_memory=max_cpu * 0.8,
        )

    async def list_available_skus(self, region: Optional[str] = None) -> List[SkuInfo]:
        if self.provider == CloudProvider.AZURE:
            return list(AZURE_CATALOGUE)
        return []
