"""Defines common Value Objects used across different domain contexts.

These objects represent cache keys, query parameters and the cache record shapes,
ensuring consistency and type safety.
"""

from typing import Any, Dict, NewType, TypedDict

# === Caching Context ===
CacheKey = NewType("CacheKey", str)  # Hashed key of a cache record

QueryParams = Dict[str, Any]


class CacheRecord(TypedDict):
    """On-disk shape of a single cache record."""
    data: Any
    timestamp: float  # Unix time (seconds) the record was written
    ttl: int          # Seconds
    endpoint: str
    params: QueryParams


class CacheStats(TypedDict):
    """Summary of a cache's current footprint."""
    entries: int
    size_bytes: int
    oldest_age_seconds: int


class ResolvedFilterMetadata(TypedDict):
    """What a single filter value was resolved to."""
    input: str
    id: str
    label: str
    reusable: bool
