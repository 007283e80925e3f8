"""
Cache-fronted analysis for repeated client lookups of the same resource.
"""

from datetime import date
from typing import Optional

import structlog

from cloudoptimizer.models.cloud import CloudProvider
from cloudoptimizer.schemas.analysis import AnalysisRequest, AnalysisResult
from cloudoptimizer.services.adapters.cache import AnalysisCache, CacheKey
from cloudoptimizer.services.recommendations.engine import RecommendationEngine, validate_resource_id

logger = structlog.get_logger()


class CachedAnalysisService:
    def __init__(self, engine: RecommendationEngine, cache: AnalysisCache):
        self.engine = engine
        self.cache = cache

    async def analyze(
        self,
        tenant_id: str,
        provider: CloudProvider,
        resource_id: str,
        request: Optional[AnalysisRequest] = None,
        as_of: Optional[date] = None,
    ) -> AnalysisResult:
        """
        Serve a cached AnalysisResult when one is fresh. force_refresh drops the
        entry first. Only successful analyses are stored.
        """
        resource_id = validate_resource_id(resource_id)
        request = request or AnalysisRequest()
        provider_key = provider.value if isinstance(provider, CloudProvider) else str(provider).strip().upper()
        key = CacheKey(tenant_id, provider_key, resource_id)

        if request.force_refresh:
            await self.cache.evict(key)
            logger.info("analysis_cache_refresh_forced", tenant_id=tenant_id, resource_id=resource_id)

        return await self.cache.get_or_compute(
            key,
            lambda: self.engine.analyze_resource(tenant_id, provider, resource_id, request, as_of),
        )

    async def invalidate(self, tenant_id: str, provider: CloudProvider, resource_id: str) -> None:
        await self.cache.evict(CacheKey(tenant_id, CloudProvider.from_string(provider).value, resource_id))

    async def invalidate_tenant(self, tenant_id: str) -> int:
        return await self.cache.invalidate_tenant(tenant_id)
