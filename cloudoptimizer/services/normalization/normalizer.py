"""
Cost Normalization Service

Turns provider-native cost records into canonical ones (canonical region,
utilization clamped to [0, 1], non-negative cost) and serves the aggregates the
analysis pipeline reads: per-resource summaries and daily time series.

normalize() is pure and idempotent; everything else reads or appends to storage.
"""

import math
from datetime import date, timedelta
from decimal import Decimal
from typing import List, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cloudoptimizer.db.upsert import insert_for
from cloudoptimizer.models.cloud import CloudProvider, CostRecord as CostRecordRow
from cloudoptimizer.schemas.costs import CostRecord, NormalizedResourceCost, TimeSeriesPoint
from cloudoptimizer.services.adapters.registry import DataSourceRegistry
from cloudoptimizer.services.normalization.region import RegionNormalizer

logger = structlog.get_logger()

# Records needed per requested day before analysis is considered reliable
MIN_COVERAGE_RATIO = 0.7


def _clamp_unit(value: Optional[float]) -> Optional[float]:
    if value is None:
        return None
    if math.isnan(value):
        return 0.0
    return min(1.0, max(0.0, float(value)))


class CostNormalizer:
    def __init__(
        self,
        db: AsyncSession,
        registry: DataSourceRegistry,
        region_normalizer: Optional[RegionNormalizer] = None,
    ):
        self.db = db
        self.registry = registry
        self.region_normalizer = region_normalizer or RegionNormalizer()

    def normalize(self, record: CostRecord) -> CostRecord:
        """Return the canonical form of a record. normalize(normalize(x)) == normalize(x)."""
        daily_cost = record.daily_cost if record.daily_cost >= 0 else Decimal("0")
        return record.model_copy(update={
            "region": self.region_normalizer.to_canonical(record.provider, record.region),
            "avg_cpu_utilization": _clamp_unit(record.avg_cpu_utilization),
            "avg_memory_utilization": _clamp_unit(record.avg_memory_utilization),
            "daily_cost": daily_cost,
        })

    async def fetch_and_normalize_costs(
        self,
        tenant_id: str,
        provider: CloudProvider,
        resource_id: str,
        start_date: date,
        end_date: date,
    ) -> List[CostRecord]:
        """
        Pull raw records from the provider's data source, normalize and persist them.
        Existing (tenant, provider, resource, day) rows are left untouched.
        """
        source = self.registry.get(provider)
        raw_records = await source.fetch_cost_data(tenant_id, resource_id, start_date, end_date)
        normalized = [self.normalize(r) for r in raw_records]

        if normalized:
            stmt = insert_for(self.db, CostRecordRow).values([
                {
                    "tenant_id": r.tenant_id,
                    "provider": r.provider,
                    "resource_type": r.resource_type,
                    "resource_id": r.resource_id,
                    "resource_name": r.resource_name,
                    "sku": r.sku,
                    "vcpu": r.vcpu,
                    "memory_gb": r.memory_gb,
                    "storage_gb": r.storage_gb,
                    "avg_cpu_utilization": r.avg_cpu_utilization,
                    "avg_memory_utilization": r.avg_memory_utilization,
                    "region": r.region,
                    "daily_cost": r.daily_cost,
                    "record_date": r.record_date,
                    "ingested_at": r.ingested_at,
                }
                for r in normalized
            ])
            stmt = stmt.on_conflict_do_nothing(
                index_elements=["tenant_id", "provider", "resource_id", "record_date"]
            )
            await self.db.execute(stmt)
            await self.db.commit()

        logger.info("cost_records_normalized",
                    tenant_id=tenant_id,
                    provider=provider.value,
                    resource_id=resource_id,
                    records=len(normalized))
        return normalized

    async def _load_rows(
        self,
        tenant_id: str,
        provider: CloudProvider,
        resource_id: str,
        start_date: date,
        end_date: Optional[date] = None,
    ) -> List[CostRecordRow]:
        stmt = select(CostRecordRow).where(
            CostRecordRow.tenant_id == tenant_id,
            CostRecordRow.provider == provider,
            CostRecordRow.resource_id == resource_id,
            CostRecordRow.record_date >= start_date,
        )
        if end_date is not None:
            stmt = stmt.where(CostRecordRow.record_date <= end_date)
        result = await self.db.execute(stmt.order_by(CostRecordRow.record_date))
        return list(result.scalars().all())

    async def get_resource_cost_summary(
        self,
        tenant_id: str,
        provider: CloudProvider,
        resource_id: str,
        start_date: date,
        end_date: date,
    ) -> Optional[NormalizedResourceCost]:
        """Aggregate a resource's records over [start_date, end_date]. None when there are none."""
        rows = await self._load_rows(tenant_id, provider, resource_id, start_date, end_date)
        if not rows:
            return None

        total_cost = float(sum(float(r.daily_cost) for r in rows))
        cpu_values = [r.avg_cpu_utilization for r in rows if r.avg_cpu_utilization is not None]
        memory_values = [r.avg_memory_utilization for r in rows if r.avg_memory_utilization is not None]
        latest = rows[-1]

        return NormalizedResourceCost(
            tenant_id=tenant_id,
            provider=provider,
            resource_id=resource_id,
            resource_name=latest.resource_name,
            resource_type=latest.resource_type,
            sku=latest.sku,
            canonical_region=self.region_normalizer.to_canonical(provider, latest.region),
            vcpu=latest.vcpu,
            memory_gb=latest.memory_gb,
            storage_gb=latest.storage_gb,
            total_cost=total_cost,
            avg_daily_cost=total_cost / len(rows),
            avg_cpu_utilization=sum(cpu_values) / len(cpu_values) if cpu_values else None,
            avg_memory_utilization=sum(memory_values) / len(memory_values) if memory_values else None,
            data_point_count=len(rows),
            period_start=start_date,
            period_end=end_date,
        )

    async def get_cost_time_series(
        self,
        tenant_id: str,
        provider: CloudProvider,
        resource_id: str,
        days_back: int,
        as_of: Optional[date] = None,
    ) -> List[TimeSeriesPoint]:
        """Daily points for the last `days_back` days, ascending by date."""
        since = (as_of or date.today()) - timedelta(days=days_back)
        rows = await self._load_rows(tenant_id, provider, resource_id, since, as_of)
        return [
            TimeSeriesPoint(
                date=r.record_date,
                cost=float(r.daily_cost),
                cpu_utilization=r.avg_cpu_utilization,
                memory_utilization=r.avg_memory_utilization,
            )
            for r in rows
        ]

    async def has_sufficient_data(
        self,
        tenant_id: str,
        provider: CloudProvider,
        resource_id: str,
        minimum_days: int,
        as_of: Optional[date] = None,
    ) -> bool:
        since = (as_of or date.today()) - timedelta(days=minimum_days)
        rows = await self._load_rows(tenant_id, provider, resource_id, since, as_of)
        return len(rows) >= minimum_days * MIN_COVERAGE_RATIO
