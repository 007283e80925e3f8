"""
Analysis Result Caching

Keeps recent per-resource AnalysisResults so repeated client lookups of the
same resource do not rerun the pipeline:
1. Redis store for production (shared across instances, per-tenant key index)
2. In-memory store for development and tests (bounded)
3. TTL policy from Settings: full analyses live longer than no-history hints
4. Get-or-compute with a per-key lock so concurrent misses run one analysis
"""

import asyncio
import hashlib
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, Dict, NamedTuple, Optional, Tuple

import redis.asyncio as aioredis
import structlog
from pydantic import ValidationError
from redis.exceptions import RedisError

from cloudoptimizer.core.config import get_settings
from cloudoptimizer.core.metrics import ANALYSIS_CACHE_LOOKUPS
from cloudoptimizer.schemas.analysis import AnalysisResult, UtilizationStatus

logger = structlog.get_logger()


class CacheKey(NamedTuple):
    tenant_id: str
    provider: str
    resource_id: str


class AnalysisStore(ABC):
    """
    Where cached analysis results live.
    Stores never raise on lookup or write; an unreachable store is a miss.
    """

    @abstractmethod
    async def load(self, key: CacheKey) -> Optional[AnalysisResult]:
        pass

    @abstractmethod
    async def save(self, key: CacheKey, result: AnalysisResult, ttl_seconds: int) -> None:
        pass

    @abstractmethod
    async def discard(self, key: CacheKey) -> None:
        pass

    @abstractmethod
    async def discard_tenant(self, tenant_id: str) -> int:
        """Drop every entry of one tenant. Returns how many were dropped."""
        pass


class InMemoryAnalysisStore(AnalysisStore):
    """
    Process-local store. Oldest entries are dropped past max_entries.
    Not shared between instances.
    """

    def __init__(self, max_entries: Optional[int] = None):
        self.max_entries = max_entries or get_settings().ANALYSIS_CACHE_MAX_ENTRIES
        self._entries: "OrderedDict[CacheKey, Tuple[AnalysisResult, float]]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    async def load(self, key: CacheKey) -> Optional[AnalysisResult]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        result, expires_at = entry
        if time.monotonic() >= expires_at:
            del self._entries[key]
            return None
        # Callers may mutate what they get back
        return result.model_copy(deep=True)

    async def save(self, key: CacheKey, result: AnalysisResult, ttl_seconds: int) -> None:
        self._entries.pop(key, None)
        self._entries[key] = (result.model_copy(deep=True), time.monotonic() + ttl_seconds)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    async def discard(self, key: CacheKey) -> None:
        self._entries.pop(key, None)

    async def discard_tenant(self, tenant_id: str) -> int:
        doomed = [key for key in self._entries if key.tenant_id == tenant_id]
        for key in doomed:
            del self._entries[key]
        return len(doomed)


class RedisAnalysisStore(AnalysisStore):
    """
    Redis-backed store. Each tenant keeps a set of its entry keys so a tenant
    can be invalidated without scanning the keyspace.
    Connection failures degrade to cache misses, never to analysis failures.
    """

    KEY_PREFIX = "cloudoptimizer:analysis"

    def __init__(self, redis_url: Optional[str] = None, index_ttl_seconds: Optional[int] = None):
        settings = get_settings()
        self.redis_url = redis_url or settings.REDIS_URL
        self.index_ttl_seconds = index_ttl_seconds or settings.ANALYSIS_CACHE_TTL_SECONDS
        self._client = None

    def entry_key(self, key: CacheKey) -> str:
        # Resource ids are long ARNs / Azure paths; the tenant stays readable
        digest = hashlib.sha256(key.resource_id.encode()).hexdigest()[:32]
        return f"{self.KEY_PREFIX}:{key.tenant_id}:{key.provider}:{digest}"

    def index_key(self, tenant_id: str) -> str:
        return f"{self.KEY_PREFIX}:{tenant_id}:index"

    def _get_client(self):
        if self._client is None and self.redis_url:
            try:
                self._client = aioredis.from_url(
                    self.redis_url,
                    decode_responses=True,
                    socket_connect_timeout=5,
                    socket_timeout=5,
                )
                logger.info("redis_connected", url=self.redis_url.split("@")[-1])
            except (RedisError, ConnectionError, ValueError) as e:
                logger.error("redis_connection_failed", error=str(e))
                return None
        return self._client

    async def load(self, key: CacheKey) -> Optional[AnalysisResult]:
        client = self._get_client()
        if client is None:
            return None
        entry_key = self.entry_key(key)
        try:
            payload = await client.get(entry_key)
        except (RedisError, ConnectionError) as e:
            logger.warning("redis_get_failed", key=entry_key, error=str(e))
            return None
        if payload is None:
            return None
        try:
            return AnalysisResult.model_validate_json(payload)
        except ValidationError:
            # Written by an older schema; recompute instead
            logger.warning("cached_analysis_unreadable", key=entry_key)
            await self.discard(key)
            return None

    async def save(self, key: CacheKey, result: AnalysisResult, ttl_seconds: int) -> None:
        client = self._get_client()
        if client is None:
            return
        entry_key = self.entry_key(key)
        index_key = self.index_key(key.tenant_id)
        try:
            pipe = client.pipeline(transaction=True)
            pipe.set(entry_key, result.model_dump_json(), ex=ttl_seconds)
            pipe.sadd(index_key, entry_key)
            pipe.expire(index_key, max(ttl_seconds, self.index_ttl_seconds))
            await pipe.execute()
        except (RedisError, ConnectionError) as e:
            logger.warning("redis_set_failed", key=entry_key, error=str(e))

    async def discard(self, key: CacheKey) -> None:
        client = self._get_client()
        if client is None:
            return
        entry_key = self.entry_key(key)
        try:
            await client.delete(entry_key)
            await client.srem(self.index_key(key.tenant_id), entry_key)
        except (RedisError, ConnectionError) as e:
            logger.warning("redis_delete_failed", key=entry_key, error=str(e))

    async def discard_tenant(self, tenant_id: str) -> int:
        client = self._get_client()
        if client is None:
            return 0
        index_key = self.index_key(tenant_id)
        try:
            members = await client.smembers(index_key)
            deleted = await client.delete(*members) if members else 0
            await client.delete(index_key)
            return deleted
        except (RedisError, ConnectionError) as e:
            logger.warning("redis_tenant_invalidation_failed", tenant_id=tenant_id, error=str(e))
            return 0


class _KeyLock:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = asyncio.Lock()
        self.users = 0


class AnalysisCache:
    """
    Get-or-compute over an AnalysisStore.

    Usage:
        cache = AnalysisCache(InMemoryAnalysisStore())
        result = await cache.get_or_compute(
            CacheKey(tenant_id, provider, resource_id),
            lambda: engine.analyze_resource(tenant_id, provider, resource_id, request),
        )
    """

    def __init__(
        self,
        store: AnalysisStore,
        ttl_seconds: Optional[int] = None,
        limited_ttl_seconds: Optional[int] = None,
    ):
        settings = get_settings()
        self.store = store
        self.ttl_seconds = ttl_seconds or settings.ANALYSIS_CACHE_TTL_SECONDS
        self.limited_ttl_seconds = min(
            limited_ttl_seconds or settings.ANALYSIS_CACHE_LIMITED_TTL_SECONDS, self.ttl_seconds
        )
        # Only keys with a holder or waiter have an entry
        self._locks: Dict[CacheKey, _KeyLock] = {}

    def ttl_for(self, result: AnalysisResult) -> int:
        if result.utilization_status == UtilizationStatus.INSUFFICIENT_DATA:
            return self.limited_ttl_seconds
        return self.ttl_seconds

    @asynccontextmanager
    async def _locked(self, key: CacheKey) -> AsyncIterator[None]:
        entry = self._locks.get(key)
        if entry is None:
            entry = self._locks[key] = _KeyLock()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                del self._locks[key]

    async def get(self, key: CacheKey) -> Optional[AnalysisResult]:
        cached = await self.store.load(key)
        if cached is not None:
            ANALYSIS_CACHE_LOOKUPS.labels(result="hit").inc()
            logger.debug("cache_hit", tenant_id=key.tenant_id, resource_id=key.resource_id)
            return cached

        ANALYSIS_CACHE_LOOKUPS.labels(result="miss").inc()
        logger.debug("cache_miss", tenant_id=key.tenant_id, resource_id=key.resource_id)
        return None

    async def put(self, key: CacheKey, result: AnalysisResult) -> None:
        await self.store.save(key, result, self.ttl_for(result))

    async def get_or_compute(
        self,
        key: CacheKey,
        compute: Callable[[], Awaitable[AnalysisResult]],
    ) -> AnalysisResult:
        """
        Return the cached result or compute and store it.
        Concurrent callers for the same key wait on one computation.
        Unsuccessful results are returned but never stored.
        """
        cached = await self.get(key)
        if cached is not None:
            return cached

        async with self._locked(key):
            # Another waiter may have filled the entry while we queued
            cached = await self.store.load(key)
            if cached is not None:
                return cached

            result = await compute()
            if result.success:
                await self.put(key, result)
            return result

    async def evict(self, key: CacheKey) -> None:
        await self.store.discard(key)

    async def invalidate_tenant(self, tenant_id: str) -> int:
        deleted = await self.store.discard_tenant(tenant_id)
        logger.info("analysis_cache_invalidated", tenant_id=tenant_id, entries=deleted)
        return deleted


def build_analysis_store() -> AnalysisStore:
    """Redis when REDIS_URL is configured, otherwise in-process memory."""
    settings = get_settings()
    if settings.REDIS_URL:
        return RedisAnalysisStore(settings.REDIS_URL)
    logger.info("analysis_cache_in_memory")
    return InMemoryAnalysisStore()
