"""
Explicit provider -> CostDataSource lookup passed to services by constructor.
"""

from typing import Dict, Iterable, Optional, Union

import structlog

from cloudoptimizer.core.exceptions import UnknownProviderError
from cloudoptimizer.models.cloud import CloudProvider
from cloudoptimizer.services.adapters.base import CostDataSource

logger = structlog.get_logger()


class DataSourceRegistry:
    def __init__(self, sources: Optional[Iterable[CostDataSource]] = None):
        self._sources: Dict[CloudProvider, CostDataSource] = {}
        for source in sources or []:
            self.register(source)

    def register(self, source: CostDataSource, provider: Optional[CloudProvider] = None) -> None:
        key = provider or source.provider
        self._sources[key] = source
        logger.info("cost_data_source_registered", provider=key.value, source=type(source).__name__)

    def get(self, provider: Union[CloudProvider, str]) -> CostDataSource:
        """Resolve the source for a provider or raise UnknownProviderError."""
        try:
            key = CloudProvider.from_string(provider)
        except ValueError:
            raise UnknownProviderError(str(provider))
        source = self._sources.get(key)
        if source is None:
            raise UnknownProviderError(key.value)
        return source

    def find(self, provider: Union[CloudProvider, str]) -> Optional[CostDataSource]:
        try:
            return self.get(provider)
        except UnknownProviderError:
            return None

    def providers(self) -> list[CloudProvider]:
        return list(self._sources)

    def __contains__(self, provider: object) -> bool:
        return provider in self._sources
