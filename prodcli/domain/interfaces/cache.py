"""Interfaces for the two caches.

The query cache stores API responses keyed by (endpoint, params, tenant); the
resolve cache stores resolver answers keyed by (tenant, type, query, scope). Both must
degrade to a miss or no-op on storage failure rather than raise.
"""

import abc
from typing import Any, Optional

from prodcli.domain.models.common import CacheStats, QueryParams
from prodcli.domain.models.resolve import ResolveResult
from prodcli.domain.models.resources import ResourceType


class QueryCacheService(abc.ABC):
    """Abstract Base Class for the TTL response cache."""

    @abc.abstractmethod
    async def get(self, endpoint: str, params: QueryParams, tenant: str) -> Optional[Any]:
        """Returns cached data, or None on miss/expiry/storage failure."""
        pass

    @abc.abstractmethod
    async def set(
        self,
        endpoint: str,
        params: QueryParams,
        tenant: str,
        data: Any,
        ttl: Optional[int] = None,
    ) -> None:
        """Stores ``data``; ``ttl`` (seconds) defaults from the endpoint table."""
        pass

    @abc.abstractmethod
    async def delete(self, endpoint: str, params: QueryParams, tenant: str) -> bool:
        """Deletes one entry; returns whether a record was removed."""
        pass

    @abc.abstractmethod
    async def invalidate(self, pattern: Optional[str] = None) -> int:
        """Deletes all entries, or those whose endpoint contains ``pattern``.

        Returns:
            The number of records removed.
        """
        pass

    @abc.abstractmethod
    async def stats(self) -> CacheStats:
        pass


class ResolveCacheStore(abc.ABC):
    """Abstract Base Class for the resolver's answer cache."""

    @abc.abstractmethod
    def get(
        self, tenant: str, resource_type: ResourceType, query: str, scope_id: Optional[str] = None
    ) -> Optional[ResolveResult]:
        pass

    @abc.abstractmethod
    def set(self, tenant: str, result: ResolveResult, scope_id: Optional[str] = None) -> None:
        """Caches a single-candidate answer (TTL depends on ``result.exact``).

        ``scope_id`` keeps answers that depend on a project scope apart.
        """
        pass

    @abc.abstractmethod
    def invalidate(self) -> int:
        pass

    @abc.abstractmethod
    def stats(self) -> CacheStats:
        pass
