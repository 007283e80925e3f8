"""
Tradeoff dimension scorers.

Each provider scores one independent dimension of switching from the current
resource to an alternative SKU, on a 0..1 scale where higher is better.
Missing inputs produce TradeoffScore.unknown() rather than an exception.
"""

import re
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

import structlog

from cloudoptimizer.core.config import get_settings
from cloudoptimizer.core.exceptions import UpstreamUnavailableError
from cloudoptimizer.models.cloud import ResourceType
from cloudoptimizer.models.tradeoff import ResourceAlternative
from cloudoptimizer.schemas.tradeoff import CurrentResource, TradeoffScore
from cloudoptimizer.services.adapters.registry import DataSourceRegistry
from cloudoptimizer.services.analysis.utilization import format_config
from cloudoptimizer.services.normalization.region import RegionNormalizer

logger = structlog.get_logger()


class TradeoffScoreProvider(ABC):
    """
    Abstract base class for tradeoff dimension scorers.
    The dimension name must match a TradeoffDimension row.
    """

    @property
    @abstractmethod
    def dimension_name(self) -> str:
        pass

    @abstractmethod
    async def calculate_score(
        self,
        alternative: ResourceAlternative,
        current: CurrentResource,
        region: Optional[str],
    ) -> TradeoffScore:
        pass


class PricingResolver:
    """Hourly prices for the current resource and its alternatives."""

    def __init__(self, registry: DataSourceRegistry):
        self.registry = registry

    async def current_hourly(self, current: CurrentResource, region: Optional[str]) -> Optional[float]:
        if current.hourly_price is not None:
            return current.hourly_price
        source = self.registry.find(current.provider)
        if source is None:
            return None
        return await source.get_sku_pricing(current.sku, region)

    async def alternative_hourly(self, alternative: ResourceAlternative, region: Optional[str]) -> Optional[float]:
        source = self.registry.find(alternative.alternative_provider)
        if source is not None:
            price = await source.get_sku_pricing(alternative.alternative_sku, region)
            if price is not None:
                return price
        return alternative.estimated_hourly_price


class CostTradeoffProvider(TradeoffScoreProvider):
    """0.5 at equal cost, 1.0 when the alternative is free, 0.0 at double the cost."""

    def __init__(self, pricing: PricingResolver, hours_per_month: Optional[int] = None):
        self.pricing = pricing
        self.hours_per_month = hours_per_month or get_settings().HOURS_PER_MONTH

    @property
    def dimension_name(self) -> str:
        return "cost"

    async def calculate_score(self, alternative, current, region) -> TradeoffScore:
        try:
            current_hourly = await self.pricing.current_hourly(current, region)
            alternative_hourly = await self.pricing.alternative_hourly(alternative, region)
        except UpstreamUnavailableError as e:
            logger.warning("tradeoff_pricing_unavailable", sku=alternative.alternative_sku, error=e.message)
            return TradeoffScore.unknown("Pricing data not available")

        if current_hourly is None or alternative_hourly is None or current_hourly <= 0:
            return TradeoffScore.unknown("Pricing data not available")

        current_monthly = current_hourly * self.hours_per_month
        alternative_monthly = alternative_hourly * self.hours_per_month
        savings_ratio = (current_monthly - alternative_monthly) / current_monthly
        score = min(1.0, max(0.0, 0.5 + savings_ratio * 0.5))

        if savings_ratio > 0:
            explanation = (
                f"{savings_ratio * 100:.0f}% cost savings "
                f"(${current_monthly:.2f}/mo -> ${alternative_monthly:.2f}/mo)"
            )
        elif savings_ratio < 0:
            explanation = (
                f"{abs(savings_ratio) * 100:.0f}% cost increase "
                f"(${current_monthly:.2f}/mo -> ${alternative_monthly:.2f}/mo)"
            )
        else:
            explanation = "Same cost"

        return TradeoffScore(
            score=score,
            explanation=explanation,
            current_value=f"${current_monthly:.2f}/mo",
            alternative_value=f"${alternative_monthly:.2f}/mo",
            confidence=0.9,
        )


class PerformanceTradeoffProvider(TradeoffScoreProvider):
    @property
    def dimension_name(self) -> str:
        return "performance"

    async def calculate_score(self, alternative, current, region) -> TradeoffScore:
        if not current.vcpu or not current.memory_gb or alternative.vcpu is None or alternative.memory_gb is None:
            return TradeoffScore.unknown("Missing performance specifications")

        vcpu_ratio = alternative.vcpu / current.vcpu
        memory_ratio = alternative.memory_gb / current.memory_gb
        combined = vcpu_ratio * 0.6 + memory_ratio * 0.4

        if combined >= 1.0:
            explanation = "Same or better performance capacity"
        elif combined >= 0.75:
            explanation = f"{combined * 100:.0f}% of current performance capacity"
        elif combined >= 0.5:
            explanation = f"Reduced to {combined * 100:.0f}% of current capacity - verify workload fits"
        else:
            explanation = f"Significantly reduced ({combined * 100:.0f}%) - may impact workload"

        return TradeoffScore(
            score=min(1.0, combined),
            explanation=explanation,
            current_value=format_config(current.vcpu, current.memory_gb),
            alternative_value=format_config(alternative.vcpu, alternative.memory_gb),
            confidence=0.85,
        )


# SKU prefix -> SLA tier, longest prefixes first. Unlisted SKUs are tier 2.
SLA_TIERS: List[tuple] = [
    ("Standard_Ds", 3), ("Standard_D", 3), ("Standard_B", 2), ("Standard_E", 3),
    ("Standard_F", 3), ("Standard_L", 3),
    ("D-series", 3), ("B-series", 2), ("E-series", 3), ("F-series", 3), ("L-series", 3),
    ("n2d-standard", 3), ("n2-standard", 3), ("e2-standard", 2),
    ("m6i", 3), ("c6i", 3), ("t3a", 2), ("m5", 3), ("c5", 3), ("t3", 2),
]
DEFAULT_SLA_TIER = 2
SLA_TIER_NAMES = {
    1: "Basic (99.0% SLA)",
    2: "Standard (99.5% SLA)",
    3: "Premium (99.9% SLA)",
    4: "Mission Critical (99.99% SLA)",
}


def sla_tier(sku: Optional[str]) -> int:
    if not sku:
        return DEFAULT_SLA_TIER
    for prefix, tier in SLA_TIERS:
        if prefix in sku:
            return tier
    return DEFAULT_SLA_TIER


class AvailabilityTradeoffProvider(TradeoffScoreProvider):
    @property
    def dimension_name(self) -> str:
        return "availability"

    async def calculate_score(self, alternative, current, region) -> TradeoffScore:
        current_tier = sla_tier(current.sku)
        alternative_tier = sla_tier(alternative.alternative_sku)

        if alternative_tier >= current_tier:
            score, explanation = 1.0, "Same or better SLA tier"
        elif alternative_tier == current_tier - 1:
            score, explanation = 0.75, "Slightly lower SLA tier - burstable instance"
        else:
            score, explanation = 0.5, "Lower SLA tier - review availability requirements"

        return TradeoffScore(
            score=score,
            explanation=explanation,
            current_value=SLA_TIER_NAMES.get(current_tier, "Unknown tier"),
            alternative_value=SLA_TIER_NAMES.get(alternative_tier, "Unknown tier"),
            confidence=0.8,
        )


def extract_sku_family(sku: Optional[str]) -> Optional[str]:
    """Standard_D4s_v3 -> D, m5.xlarge -> m5, n2-standard-4 -> n2-standard."""
    if not sku:
        return None
    if sku.startswith("Standard_"):
        parts = re.split(r"[_0-9]", sku[len("Standard_"):])
        if parts and parts[0]:
            return parts[0]
    if "." in sku:
        return sku.split(".")[0]
    if "-" in sku:
        head, _, tail = sku.rpartition("-")
        if tail.isdigit():
            return head
    return sku


class MigrationEffortTradeoffProvider(TradeoffScoreProvider):
    """Higher score means less effort."""

    @property
    def dimension_name(self) -> str:
        return "migration_effort"

    async def calculate_score(self, alternative, current, region) -> TradeoffScore:
        current_family = extract_sku_family(current.sku)
        alternative_family = extract_sku_family(alternative.alternative_sku)

        if alternative.is_cross_cloud:
            return TradeoffScore(
                score=0.3,
                explanation="Cross-cloud migration - significant planning and effort required",
                current_value=alternative.provider.value,
                alternative_value=alternative.alternative_provider.value,
                confidence=0.9,
            )
        if current_family is not None and current_family == alternative_family:
            return TradeoffScore(
                score=1.0,
                explanation="Same SKU family - minimal effort, typically no downtime resize",
                current_value="Same family resize",
                alternative_value="In-place resize",
                confidence=0.9,
            )
        return TradeoffScore(
            score=0.75,
            explanation="Different SKU family - may require VM deallocation",
            current_value=current_family or "Current family",
            alternative_value=alternative_family or "Different family",
            confidence=0.9,
        )


PORTABLE_SKU_MARKERS = (
    "Standard_D", "Standard_B", "Standard_E", "Standard_F",
    "m5", "m6i", "t3", "c5", "c6i",
    "n2-standard", "n2d-standard", "e2-standard",
    "Basic", "Standard", "GeneralPurpose",
)
PROPRIETARY_SKU_MARKERS = (
    "Cosmos", "Synapse", "Functions",
    "Aurora", "DynamoDB", "Lambda",
    "Spanner", "BigQuery", "CloudRun",
)


class VendorLockInTradeoffProvider(TradeoffScoreProvider):
    """Higher score means a more portable alternative."""

    @property
    def dimension_name(self) -> str:
        return "vendor_lock_in"

    async def calculate_score(self, alternative, current, region) -> TradeoffScore:
        sku = alternative.alternative_sku or ""
        resource_type = alternative.resource_type
        cross_cloud = alternative.is_cross_cloud

        if cross_cloud:
            score, explanation = 0.9, "Multi-cloud option - reduces vendor dependency"
        elif resource_type in (ResourceType.COMPUTE, ResourceType.STORAGE):
            portable = not sku or any(marker in sku for marker in PORTABLE_SKU_MARKERS)
            score = 0.8 if portable else 0.6
            explanation = (
                "Standard service - easily portable to other clouds" if portable
                else "Some proprietary features - moderate portability"
            )
        elif resource_type == ResourceType.DATABASE:
            proprietary = any(marker in sku for marker in PROPRIETARY_SKU_MARKERS)
            score = 0.3 if proprietary else 0.6
            explanation = (
                "Proprietary database - high vendor lock-in" if proprietary
                else "Standard database - moderate portability"
            )
        elif resource_type == ResourceType.SERVERLESS:
            score, explanation = 0.3, "Serverless service - proprietary, limited portability"
        else:
            score, explanation = 0.5, "Standard vendor lock-in considerations apply"

        return TradeoffScore(
            score=score,
            explanation=explanation,
            current_value=alternative.provider.value if cross_cloud else "Same cloud",
            alternative_value=alternative.alternative_provider.value if cross_cloud else "Standard service",
            confidence=0.75,
        )


# Relative carbon intensity (0..1, lower is cleaner) keyed by canonical region
REGION_CARBON_INTENSITY: Dict[str, float] = {
    "norwayeast": 0.1,
    "swedencentral": 0.15,
    "eu-north-1": 0.2,
    "ca-central-1": 0.25,
    "us-west-1": 0.35,
    "eu-west-1": 0.4,
    "us-east-1": 0.5,
    "australia-east-1": 0.6,
    "asia-east-1": 0.7,
}
DEFAULT_CARBON_INTENSITY = 0.5


class EnvironmentalImpactTradeoffProvider(TradeoffScoreProvider):
    def __init__(self, region_normalizer: Optional[RegionNormalizer] = None):
        self.region_normalizer = region_normalizer or RegionNormalizer()

    @property
    def dimension_name(self) -> str:
        return "environmental_impact"

    def carbon_intensity(self, provider, region: Optional[str]) -> float:
        canonical = self.region_normalizer.to_canonical(provider, region)
        return REGION_CARBON_INTENSITY.get(canonical, DEFAULT_CARBON_INTENSITY)

    async def calculate_score(self, alternative, current, region) -> TradeoffScore:
        intensity = self.carbon_intensity(current.provider, region)

        efficiency_bonus = 0.0
        if current.vcpu and alternative.vcpu is not None and alternative.vcpu < current.vcpu:
            efficiency_bonus = (current.vcpu - alternative.vcpu) / current.vcpu * 0.2

        score = min(1.0, (1.0 - intensity) + efficiency_bonus)

        if intensity <= 0.25:
            carbon_level = "Low"
        elif intensity <= 0.5:
            carbon_level = "Medium"
        else:
            carbon_level = "Higher"

        if efficiency_bonus > 0.1:
            efficiency = "significant efficiency improvement"
        elif efficiency_bonus > 0:
            efficiency = "moderate efficiency improvement"
        else:
            efficiency = "same resource size"

        return TradeoffScore(
            score=score,
            explanation=f"{carbon_level} carbon region + {efficiency}",
            current_value=f"{region or 'unknown'} ({carbon_level} carbon)",
            alternative_value=(
                f"{alternative.vcpu} vCPU (more efficient)" if efficiency_bonus > 0 else "Same region"
            ),
            confidence=0.7,
        )


def default_providers(registry: DataSourceRegistry) -> List[TradeoffScoreProvider]:
    return [
        CostTradeoffProvider(PricingResolver(registry)),
        PerformanceTradeoffProvider(),
        AvailabilityTradeoffProvider(),
        MigrationEffortTradeoffProvider(),
        VendorLockInTradeoffProvider(),
        EnvironmentalImpactTradeoffProvider(),
    ]
