"""
Tests for the individual tradeoff dimension scorers.
"""

import pytest

from cloudoptimizer.models.cloud import CloudProvider, ResourceType
from cloudoptimizer.models.tradeoff import AlternativeCategory, ResourceAlternative
from cloudoptimizer.schemas.tradeoff import CurrentResource, TradeoffDirection
from cloudoptimizer.services.adapters.registry import DataSourceRegistry
from cloudoptimizer.services.tradeoff.providers import (
    AvailabilityTradeoffProvider,
    CostTradeoffProvider,
    EnvironmentalImpactTradeoffProvider,
    MigrationEffortTradeoffProvider,
    PerformanceTradeoffProvider,
    PricingResolver,
    VendorLockInTradeoffProvider,
    default_providers,
    extract_sku_family,
    sla_tier,
)

PRICES = {"Standard_D4s_v3": 0.192, "Standard_D2s_v3": 0.096, "Standard_B2s": 0.0416}


def alternative(
    sku="Standard_D2s_v3",
    alt_provider=CloudProvider.AZURE,
    vcpu=2,
    memory_gb=8.0,
    price=None,
    resource_type=ResourceType.COMPUTE,
):
    return ResourceAlternative(
        provider=CloudProvider.AZURE,
        resource_type=resource_type,
        current_sku="Standard_D4s_v3",
        alternative_sku=sku,
        alternative_provider=alt_provider,
        vcpu=vcpu,
        memory_gb=memory_gb,
        estimated_hourly_price=price,
        category=AlternativeCategory.DOWNSIZE,
        is_active=True,
    )


def current(vcpu=4, memory_gb=16.0, sku="Standard_D4s_v3"):
    return CurrentResource(
        provider=CloudProvider.AZURE,
        resource_id="vm-1",
        sku=sku,
        region="eastus",
        resource_type=ResourceType.COMPUTE,
        vcpu=vcpu,
        memory_gb=memory_gb,
    )


def cost_provider(source):
    return CostTradeoffProvider(PricingResolver(DataSourceRegistry([source])))


class TestCostProvider:
    """Score = 0.5 + savings ratio / 2."""

    @pytest.mark.asyncio
    async def test_half_price_alternative(self, make_source):
        score = await cost_provider(make_source(prices=PRICES)).calculate_score(alternative(), current(), "eastus")

        assert score.score == pytest.approx(0.75)
        assert score.explanation == "50% cost savings ($140.16/mo -> $70.08/mo)"
        assert score.current_value == "$140.16/mo"
        assert score.confidence == pytest.approx(0.9)

    @pytest.mark.asyncio
    async def test_more_expensive_alternative_floors_at_zero(self, make_source):
        prices = dict(PRICES, Standard_E8s_v3=0.504)
        score = await cost_provider(make_source(prices=prices)).calculate_score(
            alternative(sku="Standard_E8s_v3", vcpu=8, memory_gb=64.0), current(), "eastus"
        )

        assert score.score == 0.0
        assert "cost increase" in score.explanation

    @pytest.mark.asyncio
    async def test_catalogue_price_used_for_unregistered_provider(self, make_source):
        score = await cost_provider(make_source(prices=PRICES)).calculate_score(
            alternative(sku="m5.large", alt_provider=CloudProvider.AWS, price=0.096), current(), "eastus"
        )
        assert score.score == pytest.approx(0.75)

    @pytest.mark.asyncio
    async def test_pricing_outage_gives_unknown(self, make_source):
        score = await cost_provider(make_source(fail=True)).calculate_score(alternative(), current(), "eastus")

        assert score.is_unknown
        assert score.score == 0.5
        assert score.explanation == "Pricing data not available"

    @pytest.mark.asyncio
    async def test_missing_current_price_gives_unknown(self, make_source):
        score = await cost_provider(make_source(prices={"Standard_D2s_v3": 0.096})).calculate_score(
            alternative(), current(), "eastus"
        )
        assert score.is_unknown


class TestPerformanceProvider:
    @pytest.mark.asyncio
    async def test_half_capacity(self):
        score = await PerformanceTradeoffProvider().calculate_score(alternative(), current(), "eastus")

        assert score.score == pytest.approx(0.5)
        assert score.explanation == "Reduced to 50% of current capacity - verify workload fits"
        assert score.current_value == "4 vCPU / 16 GB"
        assert score.alternative_value == "2 vCPU / 8 GB"

    @pytest.mark.asyncio
    async def test_larger_alternative_caps_at_one(self):
        score = await PerformanceTradeoffProvider().calculate_score(
            alternative(vcpu=8, memory_gb=32.0), current(), "eastus"
        )
        assert score.score == 1.0

    @pytest.mark.asyncio
    async def test_missing_specs(self):
        score = await PerformanceTradeoffProvider().calculate_score(
            alternative(), current(vcpu=None, memory_gb=None), "eastus"
        )
        assert score.is_unknown
        assert score.explanation == "Missing performance specifications"


class TestAvailabilityProvider:
    @pytest.mark.asyncio
    async def test_burstable_is_one_tier_lower(self):
        score = await AvailabilityTradeoffProvider().calculate_score(
            alternative(sku="Standard_B2s"), current(), "eastus"
        )
        assert score.score == 0.75
        assert score.alternative_value == "Standard (99.5% SLA)"

    @pytest.mark.asyncio
    async def test_same_tier(self):
        score = await AvailabilityTradeoffProvider().calculate_score(alternative(), current(), "eastus")
        assert score.score == 1.0

    def test_sla_tiers(self):
        assert sla_tier("Standard_D4s_v3") == 3
        assert sla_tier("Standard_B1s") == 2
        assert sla_tier("t3.small") == 2
        assert sla_tier(None) == 2


class TestMigrationEffortProvider:
    @pytest.mark.asyncio
    async def test_same_family(self):
        score = await MigrationEffortTradeoffProvider().calculate_score(alternative(), current(), "eastus")
        assert score.score == 1.0

    @pytest.mark.asyncio
    async def test_different_family(self):
        score = await MigrationEffortTradeoffProvider().calculate_score(
            alternative(sku="Standard_B2s"), current(), "eastus"
        )
        assert score.score == 0.75

    @pytest.mark.asyncio
    async def test_cross_cloud(self):
        score = await MigrationEffortTradeoffProvider().calculate_score(
            alternative(sku="m5.large", alt_provider=CloudProvider.AWS), current(), "eastus"
        )
        assert score.score == pytest.approx(0.3)
        assert score.alternative_value == "AWS"

    def test_extract_sku_family(self):
        assert extract_sku_family("Standard_D4s_v3") == "D"
        assert extract_sku_family("Standard_B2s") == "B"
        assert extract_sku_family("m5.xlarge") == "m5"
        assert extract_sku_family("n2-standard-4") == "n2-standard"
        assert extract_sku_family(None) is None


class TestVendorLockInProvider:
    @pytest.mark.asyncio
    async def test_cross_cloud_is_most_portable(self):
        score = await VendorLockInTradeoffProvider().calculate_score(
            alternative(sku="m5.large", alt_provider=CloudProvider.AWS), current(), "eastus"
        )
        assert score.score == pytest.approx(0.9)

    @pytest.mark.asyncio
    async def test_standard_compute(self):
        score = await VendorLockInTradeoffProvider().calculate_score(
            alternative(sku="Standard_B2s"), current(), "eastus"
        )
        assert score.score == pytest.approx(0.8)

    @pytest.mark.asyncio
    async def test_specialised_compute(self):
        score = await VendorLockInTradeoffProvider().calculate_score(
            alternative(sku="HB120rs_v3"), current(), "eastus"
        )
        assert score.score == pytest.approx(0.6)

    @pytest.mark.asyncio
    async def test_proprietary_database(self):
        score = await VendorLockInTradeoffProvider().calculate_score(
            alternative(sku="CosmosDB-Serverless", resource_type=ResourceType.DATABASE), current(), "eastus"
        )
        assert score.score == pytest.approx(0.3)

    @pytest.mark.asyncio
    async def test_serverless(self):
        score = await VendorLockInTradeoffProvider().calculate_score(
            alternative(sku="Y1", resource_type=ResourceType.SERVERLESS), current(), "eastus"
        )
        assert score.score == pytest.approx(0.3)


class TestEnvironmentalImpactProvider:
    @pytest.mark.asyncio
    async def test_medium_carbon_region_with_smaller_sku(self):
        score = await EnvironmentalImpactTradeoffProvider().calculate_score(alternative(), current(), "eastus")

        assert score.score == pytest.approx(0.6)
        assert score.explanation == "Medium carbon region + moderate efficiency improvement"

    @pytest.mark.asyncio
    async def test_low_carbon_region_same_size(self):
        score = await EnvironmentalImpactTradeoffProvider().calculate_score(
            alternative(vcpu=4, memory_gb=16.0), current(), "norwayeast"
        )

        assert score.score == pytest.approx(0.9)
        assert score.explanation == "Low carbon region + same resource size"

    @pytest.mark.asyncio
    async def test_large_reduction_is_significant(self):
        score = await EnvironmentalImpactTradeoffProvider().calculate_score(
            alternative(vcpu=1, memory_gb=1.0), current(), "eastus"
        )
        assert score.score == pytest.approx(0.65)
        assert "significant efficiency improvement" in score.explanation

    @pytest.mark.parametrize("provider, region", [
        (CloudProvider.AZURE, "eastasia"),
        (CloudProvider.AWS, "ap-east-1"),
        (CloudProvider.GCP, "asia-east1"),
    ])
    def test_hong_kong_regions_are_high_carbon(self, provider, region):
        assert EnvironmentalImpactTradeoffProvider().carbon_intensity(provider, region) == pytest.approx(0.7)


class TestDirection:
    def test_higher_is_better(self):
        assert TradeoffDirection.from_score(0.8, True) == TradeoffDirection.IMPROVEMENT
        assert TradeoffDirection.from_score(0.5, True) == TradeoffDirection.NEUTRAL
        assert TradeoffDirection.from_score(0.3, True) == TradeoffDirection.DEGRADATION

    def test_lower_is_better(self):
        assert TradeoffDirection.from_score(0.2, False) == TradeoffDirection.IMPROVEMENT
        assert TradeoffDirection.from_score(0.7, False) == TradeoffDirection.DEGRADATION

    def test_default_providers_cover_all_dimensions(self):
        names = [p.dimension_name for p in default_providers(DataSourceRegistry())]
        assert names == [
            "cost", "performance", "availability",
            "migration_effort", "vendor_lock_in", "environmental_impact",
        ]
