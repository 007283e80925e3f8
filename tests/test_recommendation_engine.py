"""
Tests for RecommendationEngine: emission rules, ACTIVE-row deduplication and
the no-history path.
"""

import asyncio
from datetime import date, timedelta
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from cloudoptimizer.core.exceptions import InvalidResourceError, UnknownProviderError
from cloudoptimizer.db.base import Base
from cloudoptimizer.models.cloud import CloudProvider, ResourceType
from cloudoptimizer.models.recommendation import (
    Recommendation,
    RecommendationAction,
    RecommendationStatus,
    RiskLevel,
)
from cloudoptimizer.schemas.analysis import AnalysisRequest, DetectedConfig, ForecastResult, UtilizationStatus
from cloudoptimizer.services.adapters.registry import DataSourceRegistry
from cloudoptimizer.services.analysis.forecast_backend import ForecastBackend, RemoteForecastBackend
from cloudoptimizer.services.analysis.forecaster import ForecastEngine
from cloudoptimizer.services.normalization.normalizer import CostNormalizer
from cloudoptimizer.services.recommendations.engine import (
    RecommendationEngine,
    describe_config,
    is_likely_non_production,
)
from cloudoptimizer.services.recommendations.service import RecommendationService

AS_OF = date(2026, 3, 31)
START = AS_OF - timedelta(days=29)


class ConfidentBackend(ForecastBackend):
    name = "confident"

    async def forecast(self, series, horizon_days):
        return ForecastResult(success=True, monthly_cost_forecast=300.0, confidence=0.9, model_used="confident")


async def _seed(db, registry, tenant_id, resource_id, start=START):
    await CostNormalizer(db, registry).fetch_and_normalize_costs(
        tenant_id, CloudProvider.AZURE, resource_id, start, AS_OF
    )


async def _rows(db, **filters):
    stmt = select(Recommendation)
    for name, value in filters.items():
        stmt = stmt.where(getattr(Recommendation, name) == value)
    result = await db.execute(stmt)
    return list(result.scalars().all())


class TestEmissionRules:
    """Which recommendations a resource's history produces."""

    @pytest.mark.asyncio
    async def test_underutilized_resource_gets_downsize(self, db, make_source, make_records, tenant_id):
        source = make_source(records=make_records("vm-prod-api-01", START, [10.0] * 30, cpu=0.15))
        registry = DataSourceRegistry([source])
        await _seed(db, registry, tenant_id, "vm-prod-api-01")

        result = await RecommendationEngine(db, registry).analyze_resource(
            tenant_id, CloudProvider.AZURE, "vm-prod-api-01", as_of=AS_OF
        )

        assert result.success is True
        assert result.utilization_status == UtilizationStatus.UNDERUTILIZED
        assert result.estimated_monthly_cost == pytest.approx(300.0)
        assert len(result.recommendations) == 1

        rec = result.recommendations[0]
        assert rec.id is not None
        assert rec.action == RecommendationAction.DOWNSIZE_INSTANCE
        assert rec.estimated_monthly_savings == pytest.approx(150.0)
        assert rec.savings_percentage == pytest.approx(50.0)
        assert rec.confidence == pytest.approx(0.91)
        assert rec.risk_level == RiskLevel.MEDIUM
        assert rec.current_config == "4 vCPU / 16 GB"
        assert rec.suggested_config == "2 vCPU / 8 GB"
        assert rec.status == RecommendationStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_idle_resource_gets_delete(self, db, make_source, make_records, tenant_id):
        source = make_source(records=make_records("vm-orphan", START, [4.0] * 30, cpu=0.02))
        registry = DataSourceRegistry([source])
        await _seed(db, registry, tenant_id, "vm-orphan")

        result = await RecommendationEngine(db, registry).analyze_resource(
            tenant_id, CloudProvider.AZURE, "vm-orphan", as_of=AS_OF
        )

        assert result.utilization_status == UtilizationStatus.IDLE
        [rec] = result.recommendations
        assert rec.action == RecommendationAction.DELETE_RESOURCE
        assert rec.risk_level == RiskLevel.HIGH
        assert rec.estimated_monthly_savings == pytest.approx(120.0)
        assert rec.current_config == "4 vCPU / 16 GB"

    @pytest.mark.asyncio
    async def test_small_savings_are_not_emitted(self, db, make_source, make_records, tenant_id):
        source = make_source(records=make_records("vm-tiny", START, [0.5] * 30, cpu=0.15))
        registry = DataSourceRegistry([source])
        await _seed(db, registry, tenant_id, "vm-tiny")

        result = await RecommendationEngine(db, registry).analyze_resource(
            tenant_id, CloudProvider.AZURE, "vm-tiny", as_of=AS_OF
        )

        assert result.success is True
        assert result.recommendations == []
        assert await _rows(db) == []

    @pytest.mark.asyncio
    async def test_stable_workload_gets_reservation(self, db, make_source, make_records, tenant_id):
        source = make_source(records=make_records("vm-prod-web-01", START, [10.0] * 30, cpu=0.5))
        registry = DataSourceRegistry([source])
        await _seed(db, registry, tenant_id, "vm-prod-web-01")

        engine = RecommendationEngine(db, registry, forecaster=ForecastEngine(backend=ConfidentBackend()))
        result = await engine.analyze_resource(tenant_id, CloudProvider.AZURE, "vm-prod-web-01", as_of=AS_OF)

        assert result.utilization_status == UtilizationStatus.OPTIMIZED
        [rec] = result.recommendations
        assert rec.action == RecommendationAction.PURCHASE_RESERVATION
        assert rec.estimated_monthly_savings == pytest.approx(90.0)
        assert rec.savings_percentage == pytest.approx(30.0)
        assert rec.confidence == pytest.approx(0.9)
        assert rec.risk_level == RiskLevel.LOW

    @pytest.mark.asyncio
    async def test_low_forecast_confidence_blocks_reservation(self, db, make_source, make_records, tenant_id):
        source = make_source(records=make_records("vm-prod-web-01", START, [10.0] * 30, cpu=0.5))
        registry = DataSourceRegistry([source])
        await _seed(db, registry, tenant_id, "vm-prod-web-01")

        result = await RecommendationEngine(db, registry).analyze_resource(
            tenant_id, CloudProvider.AZURE, "vm-prod-web-01", as_of=AS_OF
        )

        assert result.forecast_confidence < 0.8
        assert result.recommendations == []

    @pytest.mark.asyncio
    async def test_non_production_gets_schedule(self, db, make_source, make_records, tenant_id):
        source = make_source(records=make_records("vm-dev-01", START, [10.0] * 30, cpu=0.5))
        registry = DataSourceRegistry([source])
        await _seed(db, registry, tenant_id, "vm-dev-01")

        result = await RecommendationEngine(db, registry).analyze_resource(
            tenant_id, CloudProvider.AZURE, "vm-dev-01", as_of=AS_OF
        )

        [rec] = result.recommendations
        assert rec.action == RecommendationAction.SCHEDULE_SHUTDOWN
        assert rec.estimated_monthly_savings == pytest.approx(150.0)
        assert rec.confidence == pytest.approx(0.7)
        assert rec.current_config == "4 vCPU / 16 GB"

    @pytest.mark.asyncio
    async def test_overutilized_non_production_gets_upsize_only(self, db, make_source, make_records, tenant_id):
        source = make_source(records=make_records("vm-staging-01", START, [10.0] * 30, cpu=0.95))
        registry = DataSourceRegistry([source])
        await _seed(db, registry, tenant_id, "vm-staging-01")

        result = await RecommendationEngine(db, registry).analyze_resource(
            tenant_id, CloudProvider.AZURE, "vm-staging-01", as_of=AS_OF
        )

        # UPSIZE claims no savings, so it falls under the minimum as well
        assert result.utilization_status == UtilizationStatus.OVERUTILIZED
        assert all(r.action != RecommendationAction.SCHEDULE_SHUTDOWN for r in result.recommendations)

    @pytest.mark.asyncio
    async def test_failed_forecast_falls_back_to_average_cost(self, db, make_source, make_records, tenant_id):
        start = AS_OF - timedelta(days=9)
        source = make_source(records=make_records("vm-new", start, [10.0] * 10, cpu=0.15))
        registry = DataSourceRegistry([source])
        await _seed(db, registry, tenant_id, "vm-new", start=start)

        result = await RecommendationEngine(db, registry).analyze_resource(
            tenant_id, CloudProvider.AZURE, "vm-new", as_of=AS_OF
        )

        assert result.forecast_confidence == 0.0
        assert result.estimated_monthly_cost == pytest.approx(300.0)
        assert [r.action for r in result.recommendations] == [RecommendationAction.DOWNSIZE_INSTANCE]


class TestDeduplication:
    """At most one ACTIVE recommendation per resource and action."""

    @pytest.mark.asyncio
    async def test_reanalysis_refreshes_existing_row(self, db, make_source, make_records, tenant_id):
        source = make_source(records=make_records("vm-prod-api-01", START, [10.0] * 30, cpu=0.15))
        registry = DataSourceRegistry([source])
        await _seed(db, registry, tenant_id, "vm-prod-api-01")
        engine = RecommendationEngine(db, registry)

        first = await engine.analyze_resource(tenant_id, CloudProvider.AZURE, "vm-prod-api-01", as_of=AS_OF)
        second = await engine.analyze_resource(tenant_id, CloudProvider.AZURE, "vm-prod-api-01", as_of=AS_OF)

        assert first.recommendations[0].id == second.recommendations[0].id
        active = await _rows(db, status=RecommendationStatus.ACTIVE)
        assert len(active) == 1

    @pytest.mark.asyncio
    async def test_dismissed_row_does_not_block_new_active(self, db, make_source, make_records, tenant_id):
        source = make_source(records=make_records("vm-prod-api-01", START, [10.0] * 30, cpu=0.15))
        registry = DataSourceRegistry([source])
        await _seed(db, registry, tenant_id, "vm-prod-api-01")
        engine = RecommendationEngine(db, registry)

        first = await engine.analyze_resource(tenant_id, CloudProvider.AZURE, "vm-prod-api-01", as_of=AS_OF)
        await RecommendationService(db).dismiss(tenant_id, first.recommendations[0].id, reason="planned migration")
        second = await engine.analyze_resource(tenant_id, CloudProvider.AZURE, "vm-prod-api-01", as_of=AS_OF)

        assert second.recommendations[0].id != first.recommendations[0].id
        assert len(await _rows(db)) == 2
        assert len(await _rows(db, status=RecommendationStatus.ACTIVE)) == 1

    @pytest.mark.asyncio
    async def test_tenants_do_not_share_rows(self, db, make_source, make_records):
        records = (
            make_records("vm-prod-api-01", START, [10.0] * 30, cpu=0.15, tenant_id="tenant-a")
            + make_records("vm-prod-api-01", START, [10.0] * 30, cpu=0.15, tenant_id="tenant-b")
        )
        registry = DataSourceRegistry([make_source(records=records)])
        engine = RecommendationEngine(db, registry)
        for tenant in ("tenant-a", "tenant-b"):
            await _seed(db, registry, tenant, "vm-prod-api-01")
            await engine.analyze_resource(tenant, CloudProvider.AZURE, "vm-prod-api-01", as_of=AS_OF)

        assert len(await _rows(db, status=RecommendationStatus.ACTIVE)) == 2

    @pytest.mark.asyncio
    async def test_concurrent_analyses_leave_one_active_row_per_action(
        self, tmp_path, make_source, make_records, tenant_id
    ):
        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'concurrent.db'}")
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

        source = make_source(records=make_records("vm-dev-api-01", START, [10.0] * 30, cpu=0.15))
        registry = DataSourceRegistry([source])
        async with session_maker() as session:
            await _seed(session, registry, tenant_id, "vm-dev-api-01")

        async def analyze():
            async with session_maker() as session:
                return await RecommendationEngine(session, registry).analyze_resource(
                    tenant_id, CloudProvider.AZURE, "vm-dev-api-01", as_of=AS_OF
                )

        try:
            results = await asyncio.gather(*(analyze() for _ in range(8)))
            async with session_maker() as session:
                active = await _rows(session, status=RecommendationStatus.ACTIVE)
        finally:
            await engine.dispose()

        assert all(result.success for result in results)
        assert sorted(row.action for row in active) == [
            RecommendationAction.DOWNSIZE_INSTANCE,
            RecommendationAction.SCHEDULE_SHUTDOWN,
        ]
        ids_per_action = {
            rec.action: {r.id for result in results for r in result.recommendations if r.action == rec.action}
            for rec in results[0].recommendations
        }
        assert all(len(ids) == 1 for ids in ids_per_action.values())


class TestWithoutHistory:
    """Resources analyzed before any cost data was ingested."""

    @pytest.mark.asyncio
    async def test_no_data_and_no_config(self, db, make_source, tenant_id):
        registry = DataSourceRegistry([make_source()])

        result = await RecommendationEngine(db, registry).analyze_resource(
            tenant_id, CloudProvider.AZURE, "vm-unknown", as_of=AS_OF
        )

        assert result.success is False
        assert result.message == "No cost data available for this resource"

    @pytest.mark.asyncio
    async def test_detected_config_gives_unsaved_hint(self, db, make_source, tenant_id):
        source = make_source(prices={"Standard_D4s_v3": 0.192})
        registry = DataSourceRegistry([source])
        request = AnalysisRequest(detected_config=DetectedConfig(
            sku="Standard_D4s_v3",
            region="eastus",
            vcpu=4,
            memory_gb=16.0,
            resource_type=ResourceType.COMPUTE,
        ))

        result = await RecommendationEngine(db, registry).analyze_resource(
            tenant_id, CloudProvider.AZURE, "vm-new", request=request, as_of=AS_OF
        )

        assert result.success is True
        assert result.utilization_status == UtilizationStatus.INSUFFICIENT_DATA
        assert result.estimated_monthly_cost == pytest.approx(138.24)
        assert result.message == "Limited analysis - no historical data available"
        [hint] = result.recommendations
        assert hint.id is None
        assert hint.summary == "Review resource sizing"
        assert hint.confidence == pytest.approx(0.5)
        assert hint.current_config == "4 vCPU / 16 GB"
        assert await _rows(db) == []

    @pytest.mark.asyncio
    async def test_non_optimizable_type_gets_no_hint(self, db, make_source, tenant_id):
        registry = DataSourceRegistry([make_source(prices={"lb-standard": 0.025})])
        request = AnalysisRequest(detected_config=DetectedConfig(sku="lb-standard", resource_type=ResourceType.NETWORK))

        result = await RecommendationEngine(db, registry).analyze_resource(
            tenant_id, CloudProvider.AZURE, "lb-1", request=request, as_of=AS_OF
        )

        assert result.success is True
        assert result.recommendations == []

    @pytest.mark.asyncio
    async def test_pricing_outage_degrades_to_unknown_cost(self, db, make_source, tenant_id):
        registry = DataSourceRegistry([make_source(fail=True)])
        request = AnalysisRequest(detected_config=DetectedConfig(
            sku="Standard_D4s_v3",
            vcpu=4,
            memory_gb=16.0,
            resource_type=ResourceType.COMPUTE,
        ))

        result = await RecommendationEngine(db, registry).analyze_resource(
            tenant_id, CloudProvider.AZURE, "vm-new", request=request, as_of=AS_OF
        )

        assert result.success is True
        assert result.estimated_monthly_cost == 0.0
        assert result.forecast_confidence == pytest.approx(0.5)
        [hint] = result.recommendations
        assert hint.summary == "Review resource sizing"
        assert hint.current_config == "4 vCPU / 16 GB"


class TestInputValidation:
    """Errors raised to the caller instead of reported in the result."""

    @pytest.mark.asyncio
    async def test_unregistered_provider(self, db, make_source, tenant_id):
        engine = RecommendationEngine(db, DataSourceRegistry([make_source()]))
        with pytest.raises(UnknownProviderError):
            await engine.analyze_resource(tenant_id, CloudProvider.GCP, "vm-1", as_of=AS_OF)

    @pytest.mark.asyncio
    async def test_unknown_provider_name(self, db, make_source, tenant_id):
        engine = RecommendationEngine(db, DataSourceRegistry([make_source()]))
        with pytest.raises(UnknownProviderError) as exc:
            await engine.analyze_resource(tenant_id, "oracle", "vm-1", as_of=AS_OF)
        assert exc.value.code == "unknown_provider"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("resource_id", ["", "   ", "x" * 513])
    async def test_invalid_resource_id(self, db, make_source, tenant_id, resource_id):
        engine = RecommendationEngine(db, DataSourceRegistry([make_source()]))
        with pytest.raises(InvalidResourceError):
            await engine.analyze_resource(tenant_id, CloudProvider.AZURE, resource_id, as_of=AS_OF)


class TestHelpers:
    @pytest.mark.parametrize("resource_id,name,expected", [
        ("vm-dev-01", None, True),
        ("/subscriptions/x/vm-42", "QA runner", True),
        ("vm-nonprod-batch", None, True),
        ("vm-prod-api-01", "checkout", False),
    ])
    def test_non_production_markers(self, resource_id, name, expected):
        assert is_likely_non_production(resource_id, name) is expected

    def test_describe_config(self):
        assert describe_config(4, 16.0) == "4 vCPU / 16 GB"
        assert describe_config(2, None) == "2 vCPU"
        assert describe_config(None, 8.0) == "8 GB"
        assert describe_config(None, None) is None


class TestForecastBackendWiring:
    def test_remote_backend_used_when_endpoint_configured(self):
        with patch("cloudoptimizer.services.analysis.forecast_backend.get_settings") as mock_settings:
            mock_settings.return_value.FORECAST_ENDPOINT = "https://forecast.internal/v1/predict"
            mock_settings.return_value.FORECAST_ENDPOINT_KEY = None
            mock_settings.return_value.FORECAST_TIMEOUT_SECONDS = 5.0
            mock_settings.return_value.FORECAST_MAX_RETRIES = 1

            engine = RecommendationEngine(MagicMock(), DataSourceRegistry())

        assert isinstance(engine.forecaster.backend, RemoteForecastBackend)
        assert engine.forecaster.backend.endpoint == "https://forecast.internal/v1/predict"

    def test_statistics_only_without_endpoint(self):
        assert RecommendationEngine(MagicMock(), DataSourceRegistry()).forecaster.backend is None
