"""File-based TTL cache for API responses.

One JSON record per key, ``{data, timestamp, ttl, endpoint, params}``, stored
under ``<cache root>/queries``. Entries expire lazily on read; after every write
a background sweep removes expired and unreadable records and then evicts the
oldest entries until the size and count ceilings hold. Storage failures never
reach the caller: they degrade to a miss or a no-op.
"""

import asyncio
import hashlib
import json
import logging
import time
import uuid
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

import aiofiles
import aiofiles.os

from prodcli.domain.errors import CacheIOError
from prodcli.domain.interfaces.cache import QueryCacheService
from prodcli.domain.models.common import CacheKey, CacheRecord, CacheStats, QueryParams

logger = logging.getLogger(__name__)

# Default TTLs by endpoint prefix (seconds); the longest matching prefix wins
DEFAULT_TTLS: Dict[str, int] = {
    "/projects": 3600,
    "/people": 3600,
    "/services": 3600,
    "/companies": 3600,
    "/time_entries": 300,
    "/tasks": 900,
    "/budgets": 900,
}
DEFAULT_TTL_SECONDS = 300

MAX_CACHE_SIZE_BYTES = 50 * 1024 * 1024
MAX_CACHE_ENTRIES = 1000
RECORD_SUFFIX = ".json"


def make_cache_key(endpoint: str, params: QueryParams, tenant: str) -> CacheKey:
    """First 16 hex chars of sha256 over the normalized (endpoint, tenant, params)."""
    sorted_params = {k: params[k] for k in sorted(params)}
    normalized = json.dumps(
        {"endpoint": endpoint, "tenant": tenant, "params": sorted_params},
        separators=(",", ":"),
        default=str,
    )
    return CacheKey(hashlib.sha256(normalized.encode("utf-8")).hexdigest()[:16])


def default_ttl_for(endpoint: str, ttl_table: Optional[Dict[str, int]] = None) -> int:
    table = DEFAULT_TTLS if ttl_table is None else ttl_table
    matches = [prefix for prefix in table if endpoint.startswith(prefix)]
    if not matches:
        return DEFAULT_TTL_SECONDS
    return table[max(matches, key=len)]


def is_expired(record: CacheRecord, now: float) -> bool:
    return now - float(record["timestamp"]) > float(record["ttl"])


def _is_well_formed(record: Any) -> bool:
    if not isinstance(record, dict) or not {"data", "timestamp", "ttl", "endpoint"} <= record.keys():
        return False
    return all(isinstance(record[k], (int, float)) for k in ("timestamp", "ttl"))


class FileQueryCache(QueryCacheService):
    """TTL response cache persisted as one JSON file per key."""

    def __init__(
        self,
        cache_dir: Path,
        enabled: bool = True,
        max_size_bytes: int = MAX_CACHE_SIZE_BYTES,
        max_entries: int = MAX_CACHE_ENTRIES,
        ttl_table: Optional[Dict[str, int]] = None,
        clock: Callable[[], float] = time.time,
    ):
        """Initializes the query cache.

        Args:
            cache_dir: Directory holding the records (created on demand).
            enabled: When False every operation is a no-op / miss.
            max_size_bytes: Total size ceiling enforced by the sweep.
            max_entries: Entry count ceiling enforced by the sweep.
            ttl_table: Endpoint-prefix TTL overrides.
            clock: Wall clock in seconds (injectable for tests).
        """
        self.cache_dir = Path(cache_dir)
        self.enabled = enabled
        self.max_size_bytes = max_size_bytes
        self.max_entries = max_entries
        self.ttl_table = dict(DEFAULT_TTLS if ttl_table is None else ttl_table)
        self._clock = clock
        self._sweep_tasks: Set["asyncio.Task[None]"] = set()
        logger.debug(f"FileQueryCache initialized at {self.cache_dir} (enabled={enabled})")

    def _record_path(self, key: CacheKey) -> Path:
        return self.cache_dir / f"{key}{RECORD_SUFFIX}"

    def _ensure_dir(self) -> None:
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise CacheIOError(f"Cannot create cache directory {self.cache_dir}: {e}") from e

    async def _read_record(self, path: Path) -> Optional[CacheRecord]:
        """Reads one record; None when absent. Raises CacheIOError when unreadable."""
        try:
            async with aiofiles.open(path, "r", encoding="utf-8") as f:
                content = await f.read()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise CacheIOError(f"Cannot read {path}: {e}") from e
        try:
            record = json.loads(content)
        except ValueError as e:
            raise CacheIOError(f"Malformed cache record {path}: {e}") from e
        if not _is_well_formed(record):
            raise CacheIOError(f"Malformed cache record {path}: missing fields")
        return record

    async def _remove(self, path: Path) -> bool:
        try:
            await aiofiles.os.remove(path)
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.debug(f"Failed to delete cache file {path}: {e}")
            return False

    def _list_records(self) -> List[Path]:
        try:
            return [p for p in self.cache_dir.iterdir() if p.name.endswith(RECORD_SUFFIX)]
        except FileNotFoundError:
            return []
        except OSError as e:
            raise CacheIOError(f"Cannot list {self.cache_dir}: {e}") from e

    # --- QueryCacheService Interface Implementation ---

    async def get(self, endpoint: str, params: QueryParams, tenant: str) -> Optional[Any]:
        if not self.enabled:
            return None
        path = self._record_path(make_cache_key(endpoint, params, tenant))
        try:
            record = await self._read_record(path)
        except CacheIOError as e:
            logger.debug(f"{e}. Removing.")
            await self._remove(path)
            return None

        if record is None:
            logger.debug(f"Cache MISS for {endpoint}")
            return None
        if is_expired(record, self._clock()):
            logger.debug(f"Cache EXPIRED for {endpoint}. Removing record.")
            await self._remove(path)
            return None
        logger.debug(f"Cache HIT for {endpoint}")
        return record["data"]

    async def set(
        self,
        endpoint: str,
        params: QueryParams,
        tenant: str,
        data: Any,
        ttl: Optional[int] = None,
    ) -> None:
        if not self.enabled:
            return
        effective_ttl = ttl if ttl is not None else default_ttl_for(endpoint, self.ttl_table)
        record: CacheRecord = {
            "data": data,
            "timestamp": self._clock(),
            "ttl": effective_ttl,
            "endpoint": endpoint,
            "params": params,
        }
        path = self._record_path(make_cache_key(endpoint, params, tenant))
        temp_path = path.with_name(f"{path.name}.{uuid.uuid4().hex}.tmp")
        try:
            self._ensure_dir()
            payload = json.dumps(record)
            async with aiofiles.open(temp_path, "w", encoding="utf-8") as f:
                await f.write(payload)
            await aiofiles.os.replace(temp_path, path)
            logger.debug(f"Cache PUT {endpoint} TTL: {effective_ttl}s")
        except (CacheIOError, OSError, TypeError, ValueError) as e:
            logger.warning(f"Failed to write cache record for {endpoint}: {e}")
            await self._remove(temp_path)
            return
        self._schedule_sweep()

    async def delete(self, endpoint: str, params: QueryParams, tenant: str) -> bool:
        if not self.enabled:
            return False
        return await self._remove(self._record_path(make_cache_key(endpoint, params, tenant)))

    async def invalidate(self, pattern: Optional[str] = None) -> int:
        if not self.enabled:
            return 0
        removed = 0
        try:
            paths = self._list_records()
        except CacheIOError as e:
            logger.warning(f"Cache invalidation skipped: {e}")
            return 0

        for path in paths:
            if pattern is not None:
                # Unreadable records are dropped whatever the pattern
                try:
                    record = await self._read_record(path)
                except CacheIOError:
                    record = None
                else:
                    if record is None or pattern not in str(record["endpoint"]):
                        continue
            if await self._remove(path):
                removed += 1
        logger.info(f"Invalidated {removed} cache record(s) (pattern={pattern!r})")
        return removed

    async def clear(self) -> int:
        return await self.invalidate()

    async def stats(self) -> CacheStats:
        empty: CacheStats = {"entries": 0, "size_bytes": 0, "oldest_age_seconds": 0}
        if not self.enabled:
            return empty
        try:
            paths = self._list_records()
        except CacheIOError as e:
            logger.warning(f"Cache stats unavailable: {e}")
            return empty

        now = self._clock()
        entries = 0
        total_size = 0
        oldest = now
        # Only records a get() would return count towards the figures
        for path in paths:
            try:
                size = (await aiofiles.os.stat(path)).st_size
                record = await self._read_record(path)
            except (OSError, CacheIOError):
                continue
            if record is None or is_expired(record, now):
                continue
            entries += 1
            total_size += size
            oldest = min(oldest, float(record["timestamp"]))
        return {
            "entries": entries,
            "size_bytes": total_size,
            "oldest_age_seconds": int(round(now - oldest)),
        }

    # --- Eviction ---

    def _schedule_sweep(self) -> None:
        """Runs a sweep in the background so the writer does not wait for it."""
        try:
            task = asyncio.get_running_loop().create_task(self.sweep())
        except RuntimeError:
            return
        self._sweep_tasks.add(task)
        task.add_done_callback(self._sweep_tasks.discard)

    async def wait_for_sweeps(self) -> None:
        """Waits for all scheduled sweeps to finish."""
        while self._sweep_tasks:
            await asyncio.gather(*list(self._sweep_tasks), return_exceptions=True)

    async def sweep(self) -> int:
        """Deletes expired/unreadable records, then evicts oldest-first past the ceilings.

        Returns:
            The number of records removed.
        """
        try:
            paths = self._list_records()
        except CacheIOError as e:
            logger.debug(f"Cache sweep skipped: {e}")
            return 0

        now = self._clock()
        removed = 0
        total_size = 0
        live: List[Tuple[float, int, Path]] = []
        for path in paths:
            try:
                size = (await aiofiles.os.stat(path)).st_size
                record = await self._read_record(path)
            except FileNotFoundError:
                continue
            except (OSError, CacheIOError):
                removed += int(await self._remove(path))
                continue
            if record is None:
                continue
            if is_expired(record, now):
                removed += int(await self._remove(path))
                continue
            total_size += size
            live.append((float(record["timestamp"]), size, path))

        if total_size > self.max_size_bytes or len(live) > self.max_entries:
            live.sort(key=lambda item: item[0])
            while live and (total_size > self.max_size_bytes or len(live) > self.max_entries):
                _, size, path = live.pop(0)
                await self._remove(path)
                # Counted as gone even if another task removed it first
                total_size -= size
                removed += 1

        if removed:
            logger.debug(f"Cache sweep removed {removed} record(s); {len(live)} remain ({total_size} bytes)")
        return removed
