import os
# Test settings must be in place BEFORE any cloudoptimizer imports
os.environ["TESTING"] = "True"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["SCHEDULER_ENABLED"] = "False"
os.environ.pop("REDIS_URL", None)
os.environ.pop("FORECAST_ENDPOINT", None)

from datetime import date, timedelta
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence, Union

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Ensure all models are registered in the metadata before create_all
import cloudoptimizer.models  # noqa: F401
from cloudoptimizer.core.exceptions import UpstreamUnavailableError
from cloudoptimizer.db.base import Base
from cloudoptimizer.models.cloud import CloudProvider, ResourceType
from cloudoptimizer.schemas.costs import CostRecord, ResourceMetadata, SkuInfo, UtilizationMetrics
from cloudoptimizer.services.adapters.base import CostDataSource

TENANT_ID = "tenant-a"


class StubCostDataSource(CostDataSource):
    """
    In-memory data source. Records are served filtered by resource and date;
    prices may be keyed by sku or by (sku, region).
    """

    def __init__(
        self,
        provider: CloudProvider = CloudProvider.AZURE,
        records: Optional[Iterable[CostRecord]] = None,
        metadata: Optional[Dict[str, ResourceMetadata]] = None,
        prices: Optional[Dict[Union[str, tuple], float]] = None,
        fail: bool = False,
        failing_resources: Sequence[str] = (),
        skus: Optional[Iterable[SkuInfo]] = None,
    ):
        self.provider = provider
        self.records: List[CostRecord] = list(records or [])
        self.metadata = metadata or {}
        self.prices = prices or {}
        self.fail = fail
        self.failing_resources = set(failing_resources)
        self.skus: List[SkuInfo] = list(skus or [])
        self.cost_calls: List[tuple] = []

    def _check(self, resource_id: Optional[str] = None) -> None:
        if self.fail:
            raise UpstreamUnavailableError(f"{self.provider.value} API unavailable")
        if resource_id in self.failing_resources:
            raise RuntimeError(f"cost export corrupted for {resource_id}")

    async def fetch_cost_data(self, tenant_id, resource_id, start_date, end_date) -> List[CostRecord]:
        self.cost_calls.append((resource_id, start_date, end_date))
        self._check(resource_id)
        return [
            r for r in self.records
            if r.tenant_id == tenant_id
            and r.resource_id == resource_id
            and start_date <= r.record_date <= end_date
        ]

    async def fetch_resource_metadata(self, tenant_id, resource_id) -> Optional[ResourceMetadata]:
        self._check(resource_id)
        return self.metadata.get(resource_id)

    async def get_sku_pricing(self, sku, region) -> Optional[float]:
        self._check()
        if (sku, region) in self.prices:
            return self.prices[(sku, region)]
        return self.prices.get(sku)

    async def fetch_utilization_metrics(self, tenant_id, resource_id, start_date, end_date) -> Optional[UtilizationMetrics]:
        self._check(resource_id)
        return None

    async def list_available_skus(self, region=None) -> List[SkuInfo]:
        self._check()
        return list(self.skus)


def build_records(
    resource_id: str,
    start: date,
    costs: Sequence[float],
    cpu: Union[float, Sequence[Optional[float]], None] = None,
    provider: CloudProvider = CloudProvider.AZURE,
    tenant_id: str = TENANT_ID,
    resource_type: ResourceType = ResourceType.COMPUTE,
    resource_name: Optional[str] = None,
    sku: Optional[str] = "Standard_D4s_v3",
    vcpu: Optional[int] = 4,
    memory_gb: Optional[float] = 16.0,
    region: Optional[str] = "eastus",
) -> List[CostRecord]:
    """One record per day from `start`, one per cost value. `cpu` is a scalar or a per-day list."""
    records = []
    for offset, cost in enumerate(costs):
        if cpu is None or isinstance(cpu, (int, float)):
            day_cpu = cpu
        else:
            day_cpu = cpu[offset]
        records.append(CostRecord(
            tenant_id=tenant_id,
            provider=provider,
            resource_type=resource_type,
            resource_id=resource_id,
            resource_name=resource_name or resource_id,
            sku=sku,
            vcpu=vcpu,
            memory_gb=memory_gb,
            avg_cpu_utilization=day_cpu,
            region=region,
            daily_cost=Decimal(str(cost)),
            record_date=start + timedelta(days=offset),
        ))
    return records


@pytest.fixture
def make_source():
    return StubCostDataSource


@pytest.fixture
def make_records():
    return build_records


@pytest.fixture
def tenant_id():
    return TENANT_ID


@pytest.fixture
async def db():
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_maker() as session:
        yield session

    await engine.dispose()
