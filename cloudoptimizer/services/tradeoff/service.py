"""
Alternative Comparison

Ranks candidate replacement SKUs for a resource by a tenant-weighted blend of
tradeoff dimension scores.

overall = sum(score_d * weight_d) / sum(weight_d) over active dimensions, using
the tenant's stored weights where present and each dimension's default
otherwise. A dimension whose scorer fails contributes an unknown score
(0.5, confidence 0) instead of failing the comparison.
"""

import asyncio
import math
from typing import Dict, List, Optional, Sequence, Tuple

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cloudoptimizer.core.config import get_settings
from cloudoptimizer.core.exceptions import ConfigurationError, UpstreamUnavailableError
from cloudoptimizer.core.metrics import TRADEOFF_SCORER_FAILURES
from cloudoptimizer.db.base import utcnow
from cloudoptimizer.db.upsert import insert_for
from cloudoptimizer.models.cloud import CloudProvider, ResourceType
from cloudoptimizer.models.tradeoff import (
    AlternativeTradeoffScore,
    ResourceAlternative,
    TenantPreferences,
    TradeoffDimension,
)
from cloudoptimizer.schemas.costs import ResourceMetadata
from cloudoptimizer.schemas.tradeoff import (
    ComparisonResult,
    CurrentResource,
    DimensionScore,
    PreferencesUpdate,
    PreferencesView,
    RankedAlternative,
    TradeoffDirection,
    TradeoffScore,
)
from cloudoptimizer.services.adapters.registry import DataSourceRegistry
from cloudoptimizer.services.tradeoff.providers import PricingResolver, TradeoffScoreProvider, default_providers

logger = structlog.get_logger()

WEIGHT_SUM_TOLERANCE = 1e-6
# Assumed size of a resource the provider returns no metadata for
SYNTHETIC_BASELINE_VCPU = 4
SYNTHETIC_BASELINE_MEMORY_GB = 16.0


def aggregate_scores(scored: Sequence[Tuple[float, float]]) -> float:
    """Weighted mean of (score, weight) pairs; 0.5 when no weight is set."""
    total_weight = sum(weight for _, weight in scored)
    if total_weight <= 0:
        return 0.5
    return sum(score * weight for score, weight in scored) / total_weight


def normalize_weights(weights: Dict[str, float]) -> Dict[str, float]:
    """
    Validate weights and scale them to sum to 1. Weights that already sum to 1
    are returned unchanged.
    """
    for name, weight in weights.items():
        if weight is None or math.isnan(weight) or weight < 0 or weight > 1:
            raise ConfigurationError(
                f"Weight for dimension '{name}' must be between 0 and 1",
                code="invalid_weight",
                details={"dimension": name, "weight": weight},
            )

    total = sum(weights.values())
    if total <= 0:
        raise ConfigurationError("At least one dimension weight must be positive", code="invalid_weight")
    if abs(total - 1.0) <= WEIGHT_SUM_TOLERANCE:
        return dict(weights)
    return {name: weight / total for name, weight in weights.items()}


class AlternativeComparisonService:
    def __init__(
        self,
        db: AsyncSession,
        registry: DataSourceRegistry,
        providers: Optional[List[TradeoffScoreProvider]] = None,
    ):
        self.db = db
        self.registry = registry
        self.providers = providers if providers is not None else default_providers(registry)
        self.pricing = PricingResolver(registry)
        self.settings = get_settings()

    async def compare_alternatives(
        self,
        tenant_id: str,
        provider: CloudProvider,
        resource_id: str,
        current_sku: str,
        region: Optional[str] = None,
    ) -> ComparisonResult:
        """
        Score every active alternative for current_sku and return those that
        save at least the tenant's minimum, best overall score first.
        Raises UnknownProviderError when the provider has no data source.
        """
        source = self.registry.get(provider)
        provider = CloudProvider.from_string(provider)

        try:
            metadata = await source.fetch_resource_metadata(tenant_id, resource_id)
        except UpstreamUnavailableError as e:
            logger.warning("resource_metadata_unavailable", resource_id=resource_id, error=e.message)
            metadata = None

        shape = None if metadata else await self._catalogue_shape(source, current_sku, region)
        current = await self._current_resource(provider, resource_id, current_sku, region, metadata, shape)
        preferences = await self.get_or_create_preferences(tenant_id)
        dimensions = await self.get_active_dimensions()
        weights = self._effective_weights(preferences, dimensions)
        alternatives = await self._load_alternatives(provider, current_sku, preferences.include_multi_cloud)

        ranked: List[RankedAlternative] = []
        for alternative in alternatives:
            monthly_cost = await self._alternative_monthly(alternative, region, current.monthly_cost)
            current_monthly = current.monthly_cost or 0.0
            savings = current_monthly - monthly_cost if monthly_cost is not None else 0.0
            if savings < preferences.minimum_savings_threshold:
                continue

            dimension_scores = await self._score_alternative(alternative, current, region, dimensions, weights)
            ranked.append(RankedAlternative(
                alternative_id=alternative.id,
                sku=alternative.alternative_sku,
                provider=alternative.alternative_provider,
                category=alternative.category,
                vcpu=alternative.vcpu,
                memory_gb=alternative.memory_gb,
                monthly_cost=monthly_cost,
                estimated_monthly_savings=savings,
                savings_percentage=savings / current_monthly * 100 if current_monthly > 0 else 0.0,
                overall_score=aggregate_scores([(s.score, s.weight) for s in dimension_scores]),
                dimension_scores=dimension_scores,
            ))
        await self.db.commit()

        ranked.sort(key=lambda alt: alt.overall_score, reverse=True)
        logger.info("alternatives_compared",
                    tenant_id=tenant_id,
                    provider=provider.value,
                    current_sku=current_sku,
                    candidates=len(alternatives),
                    ranked=len(ranked))

        view = PreferencesView.model_validate(preferences).model_copy(update={"dimension_weights": weights})
        return ComparisonResult(current_resource=current, ranked_alternatives=ranked, preferences=view)

    async def _catalogue_shape(self, source, sku: str, region: Optional[str]) -> Tuple[int, float]:
        """vCPU and memory of a SKU from the provider catalogue, else the synthetic baseline."""
        try:
            catalogue = await source.list_available_skus(region)
        except UpstreamUnavailableError as e:
            logger.warning("sku_catalogue_unavailable", sku=sku, error=e.message)
            catalogue = []

        for info in catalogue:
            if info.sku.lower() == sku.lower() and info.vcpu is not None and info.memory_gb is not None:
                return info.vcpu, info.memory_gb
        logger.info("resource_shape_assumed", sku=sku,
                    vcpu=SYNTHETIC_BASELINE_VCPU, memory_gb=SYNTHETIC_BASELINE_MEMORY_GB)
        return SYNTHETIC_BASELINE_VCPU, SYNTHETIC_BASELINE_MEMORY_GB

    async def _current_resource(
        self,
        provider: CloudProvider,
        resource_id: str,
        current_sku: str,
        region: Optional[str],
        metadata: Optional[ResourceMetadata],
        shape: Optional[Tuple[int, float]] = None,
    ) -> CurrentResource:
        vcpu, memory_gb = shape or (None, None)
        current = CurrentResource(
            provider=provider,
            resource_id=resource_id,
            sku=current_sku,
            region=region or (metadata.region if metadata else None),
            resource_type=metadata.resource_type if metadata else ResourceType.COMPUTE,
            vcpu=metadata.vcpu if metadata else vcpu,
            memory_gb=metadata.memory_gb if metadata else memory_gb,
        )
        try:
            hourly = await self.pricing.current_hourly(current, region)
        except UpstreamUnavailableError as e:
            logger.warning("current_sku_pricing_unavailable", sku=current_sku, error=e.message)
            hourly = None

        if hourly is None:
            return current
        return current.model_copy(update={
            "hourly_price": hourly,
            "monthly_cost": hourly * self.settings.HOURS_PER_MONTH,
        })

    async def _alternative_monthly(
        self,
        alternative: ResourceAlternative,
        region: Optional[str],
        fallback: Optional[float],
    ) -> Optional[float]:
        try:
            hourly = await self.pricing.alternative_hourly(alternative, region)
        except UpstreamUnavailableError as e:
            logger.warning("alternative_pricing_unavailable", sku=alternative.alternative_sku, error=e.message)
            hourly = alternative.estimated_hourly_price
        if hourly is None:
            return fallback
        return hourly * self.settings.HOURS_PER_MONTH

    async def _load_alternatives(
        self,
        provider: CloudProvider,
        current_sku: str,
        include_multi_cloud: bool,
    ) -> List[ResourceAlternative]:
        stmt = select(ResourceAlternative).where(
            ResourceAlternative.provider == provider,
            ResourceAlternative.current_sku == current_sku,
            ResourceAlternative.is_active.is_(True),
        )
        if not include_multi_cloud:
            stmt = stmt.where(ResourceAlternative.alternative_provider == provider)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def _score_alternative(
        self,
        alternative: ResourceAlternative,
        current: CurrentResource,
        region: Optional[str],
        dimensions: List[TradeoffDimension],
        weights: Dict[str, float],
    ) -> List[DimensionScore]:
        by_name = {p.dimension_name: p for p in self.providers}
        scorable = [d for d in dimensions if d.name in by_name]

        scores = await asyncio.gather(*(
            self._score_dimension(by_name[d.name], alternative, current, region) for d in scorable
        ))

        results = []
        for dimension, score in zip(scorable, scores):
            await self._store_score(alternative, dimension, score)
            results.append(DimensionScore(
                dimension=dimension.name,
                display_name=dimension.display_name,
                score=score.score,
                weight=weights.get(dimension.name, dimension.default_weight),
                direction=TradeoffDirection.from_score(score.score, dimension.higher_is_better),
                explanation=score.explanation,
                confidence=score.confidence,
                current_value=score.current_value,
                alternative_value=score.alternative_value,
            ))
        return results

    async def _score_dimension(
        self,
        provider: TradeoffScoreProvider,
        alternative: ResourceAlternative,
        current: CurrentResource,
        region: Optional[str],
    ) -> TradeoffScore:
        try:
            return await provider.calculate_score(alternative, current, region)
        except Exception as e:
            TRADEOFF_SCORER_FAILURES.labels(dimension=provider.dimension_name).inc()
            logger.error("tradeoff_scorer_failed",
                         dimension=provider.dimension_name,
                         alternative_sku=alternative.alternative_sku,
                         error=str(e))
            return TradeoffScore.unknown(f"Unable to score {provider.dimension_name}")

    async def _store_score(
        self,
        alternative: ResourceAlternative,
        dimension: TradeoffDimension,
        score: TradeoffScore,
    ) -> None:
        now = utcnow()
        stmt = insert_for(self.db, AlternativeTradeoffScore).values(
            alternative_id=alternative.id,
            dimension_id=dimension.id,
            score=score.score,
            explanation=score.explanation,
            current_value=score.current_value,
            alternative_value=score.alternative_value,
            confidence=score.confidence,
            last_updated=now,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["alternative_id", "dimension_id"],
            set_={
                "score": stmt.excluded.score,
                "explanation": stmt.excluded.explanation,
                "current_value": stmt.excluded.current_value,
                "alternative_value": stmt.excluded.alternative_value,
                "confidence": stmt.excluded.confidence,
                "last_updated": stmt.excluded.last_updated,
                "updated_at": stmt.excluded.updated_at,
            },
        )
        await self.db.execute(stmt)

    async def get_cached_scores(self, alternative_id) -> List[AlternativeTradeoffScore]:
        result = await self.db.execute(
            select(AlternativeTradeoffScore).where(AlternativeTradeoffScore.alternative_id == alternative_id)
        )
        return list(result.scalars().all())

    @staticmethod
    def _effective_weights(preferences: TenantPreferences, dimensions: List[TradeoffDimension]) -> Dict[str, float]:
        stored = preferences.dimension_weights or {}
        return {d.name: float(stored.get(d.name, d.default_weight)) for d in dimensions}

    async def get_active_dimensions(self) -> List[TradeoffDimension]:
        result = await self.db.execute(
            select(TradeoffDimension)
            .where(TradeoffDimension.is_active.is_(True))
            .order_by(TradeoffDimension.display_order)
        )
        return list(result.scalars().all())

    async def get_or_create_preferences(self, tenant_id: str) -> TenantPreferences:
        result = await self.db.execute(select(TenantPreferences).where(TenantPreferences.tenant_id == tenant_id))
        preferences = result.scalar_one_or_none()
        if preferences is not None:
            return preferences

        preferences = TenantPreferences(
            tenant_id=tenant_id,
            minimum_savings_threshold=self.settings.DEFAULT_MIN_SAVINGS_THRESHOLD,
            include_multi_cloud=self.settings.DEFAULT_INCLUDE_MULTI_CLOUD,
            minimum_confidence=self.settings.MIN_CONFIDENCE_THRESHOLD,
            auto_dismiss_implemented=True,
        )
        self.db.add(preferences)
        await self.db.commit()
        logger.info("tenant_preferences_created", tenant_id=tenant_id)
        return preferences

    async def update_preferences(self, tenant_id: str, update: PreferencesUpdate) -> TenantPreferences:
        """
        Apply a partial update. Dimension weights must name active dimensions and
        lie in [0, 1]; dimensions left out keep their defaults, and the full set is
        stored normalized to sum to 1.
        """
        preferences = await self.get_or_create_preferences(tenant_id)

        if update.dimension_weights is not None:
            dimensions = await self.get_active_dimensions()
            known = {d.name: d for d in dimensions}
            unknown = sorted(set(update.dimension_weights) - set(known))
            if unknown:
                raise ConfigurationError(
                    f"Unknown tradeoff dimensions: {', '.join(unknown)}",
                    code="unknown_dimension",
                    details={"dimensions": unknown},
                )
            merged = {name: d.default_weight for name, d in known.items()}
            merged.update(update.dimension_weights)
            preferences.dimension_weights = normalize_weights(merged)

        if update.include_multi_cloud is not None:
            preferences.include_multi_cloud = update.include_multi_cloud
        if update.minimum_savings_threshold is not None:
            preferences.minimum_savings_threshold = update.minimum_savings_threshold
        if update.minimum_confidence is not None:
            preferences.minimum_confidence = update.minimum_confidence
        if update.auto_dismiss_implemented is not None:
            preferences.auto_dismiss_implemented = update.auto_dismiss_implemented

        await self.db.commit()
        logger.info("tenant_preferences_updated", tenant_id=tenant_id)
        return preferences
