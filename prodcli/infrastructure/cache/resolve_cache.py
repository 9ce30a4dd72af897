"""Disk-backed cache for resolver answers.

Uses ``diskcache`` under ``<cache root>/resolve``. Each entry is stored in the
same record shape as the query cache so both stores can be inspected alike.
Exact answers live for 24 hours, fuzzy answers for one hour. Service answers
are keyed by the project scope they were resolved in.
"""

import hashlib
import logging
import time
from pathlib import Path
from typing import Callable, Optional

import diskcache as dc

from prodcli.domain.interfaces.cache import ResolveCacheStore
from prodcli.domain.models.common import CacheKey, CacheRecord, CacheStats, QueryParams
from prodcli.domain.models.resolve import ResolveResult
from prodcli.domain.models.resources import ResourceType

logger = logging.getLogger(__name__)

EXACT_TTL_SECONDS = 24 * 60 * 60
FUZZY_TTL_SECONDS = 60 * 60
RESOLVE_ENDPOINT = "/resolve"


def make_resolve_key(
    tenant: str, resource_type: ResourceType, query: str, scope_id: Optional[str] = None
) -> CacheKey:
    normalized = f"resolve:{tenant}:{ResourceType.parse(resource_type).value}:{query.strip().lower()}"
    if scope_id:
        normalized = f"{normalized}@{scope_id}"
    return CacheKey(hashlib.sha256(normalized.encode("utf-8")).hexdigest()[:16])


class DiskResolveCache(ResolveCacheStore):
    """Resolver answer cache on top of ``diskcache.Cache``."""

    def __init__(
        self,
        cache_dir: Path,
        enabled: bool = True,
        clock: Callable[[], float] = time.time,
    ):
        self.cache_dir = Path(cache_dir)
        self.enabled = enabled
        self._clock = clock
        self.disk_cache: Optional[dc.Cache] = None
        if enabled:
            try:
                self.disk_cache = dc.Cache(str(self.cache_dir), timeout=1)
                logger.debug(f"Initialized resolve cache at: {self.disk_cache.directory}")
            except Exception as e:
                logger.warning(f"Resolve cache disabled, cannot open {self.cache_dir}: {e}")

    def get(
        self, tenant: str, resource_type: ResourceType, query: str, scope_id: Optional[str] = None
    ) -> Optional[ResolveResult]:
        if self.disk_cache is None:
            return None
        key = make_resolve_key(tenant, resource_type, query, scope_id)
        try:
            record: Optional[CacheRecord] = self.disk_cache.get(key, default=None)
            if record is None:
                return None
            if self._clock() - float(record["timestamp"]) > float(record["ttl"]):
                self.disk_cache.delete(key)
                return None
            result = ResolveResult.from_dict(record["data"])
        except Exception as e:
            logger.debug(f"Unreadable resolve cache entry {key}: {e}. Removing.")
            self._discard(key)
            return None
        logger.debug(f"Resolve cache HIT for {resource_type}:{query}")
        return result

    def set(self, tenant: str, result: ResolveResult, scope_id: Optional[str] = None) -> None:
        if self.disk_cache is None:
            return
        ttl = EXACT_TTL_SECONDS if result.exact else FUZZY_TTL_SECONDS
        params: QueryParams = {"type": result.type.value, "query": result.query.lower()}
        if scope_id:
            params["scope"] = scope_id
        record: CacheRecord = {
            "data": result.to_dict(),
            "timestamp": self._clock(),
            "ttl": ttl,
            "endpoint": RESOLVE_ENDPOINT,
            "params": params,
        }
        key = make_resolve_key(tenant, result.type, result.query, scope_id)
        try:
            self.disk_cache.set(key, record, expire=ttl)
            logger.debug(f"Resolve cache PUT {result.type.value}:{result.query} TTL: {ttl}s")
        except Exception as e:
            logger.warning(f"Failed to write resolve cache entry: {e}")

    def _discard(self, key: CacheKey) -> None:
        try:
            self.disk_cache.delete(key)
        except Exception as e:
            logger.debug(f"Failed to delete resolve cache entry {key}: {e}")

    def invalidate(self) -> int:
        if self.disk_cache is None:
            return 0
        try:
            count = self.disk_cache.clear()
            logger.info(f"Cleared resolve cache. Removed {count} items.")
            return count
        except Exception as e:
            logger.warning(f"Failed to clear resolve cache: {e}")
            return 0

    def stats(self) -> CacheStats:
        if self.disk_cache is None:
            return {"entries": 0, "size_bytes": 0, "oldest_age_seconds": 0}
        try:
            now = self._clock()
            oldest = now
            entries = 0
            for key in self.disk_cache.iterkeys():
                record = self.disk_cache.get(key, default=None)
                if record is None:
                    continue
                entries += 1
                oldest = min(oldest, float(record["timestamp"]))
            return {
                "entries": entries,
                "size_bytes": int(self.disk_cache.volume()),
                "oldest_age_seconds": int(round(now - oldest)),
            }
        except Exception as e:
            logger.warning(f"Resolve cache stats unavailable: {e}")
            return {"entries": 0, "size_bytes": 0, "oldest_age_seconds": 0}

    def close(self) -> None:
        if self.disk_cache is not None:
            self.disk_cache.close()
