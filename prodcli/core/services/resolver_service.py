"""Resolves human-friendly identifiers to canonical resource ids.

Users may reference resources by email, project/deal number or name instead of
numeric ids. Each resource type has a strategy (detection pattern, exact lookup,
fuzzy lookup) in a table selected once per call; answers with a single candidate
are cached per tenant.

Example:
    resolver = ResourceResolver(api, cache=resolve_cache, tenant_id="42")
    await resolver.resolve("user@example.com")
    # [ResolveResult(id='500521', type=ResourceType.PERSON, label='John Doe', ...)]
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import (
    Awaitable,
    Callable,
    Dict,
    List,
    Mapping,
    NamedTuple,
    Optional,
    Pattern,
    Sequence,
    Union,
)

from prodcli.domain.errors import (
    RateLimitExceeded,
    ResolveAmbiguous,
    ResolveNotFound,
    ResolveTypeUnknown,
)
from prodcli.domain.interfaces.cache import ResolveCacheStore
from prodcli.domain.interfaces.lookup_api import ResourceLookupApi
from prodcli.domain.models.common import ResolvedFilterMetadata
from prodcli.domain.models.resolve import DetectionResult, ResolveQuery, ResolveResult
from prodcli.domain.models.resources import Resource, ResourceType

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"[^\s@]+@[^\s@]+\.[^\s@]+")
PROJECT_NUMBER_PATTERN = re.compile(r"(PRJ|P)-[0-9]+", re.IGNORECASE)
DEAL_NUMBER_PATTERN = re.compile(r"(D|DEAL)-[0-9]+", re.IGNORECASE)
NUMERIC_ID_PATTERN = re.compile(r"[0-9]+")

NAME_SEARCH_LIMIT = 10
SERVICE_SCAN_LIMIT = 200

# Numeric ids carry no type information; results default to this type
DEFAULT_PASSTHROUGH_TYPE = ResourceType.PROJECT

TypeLike = Union[ResourceType, str]


def is_numeric_id(value: str) -> bool:
    """Check if a value is a numeric id (no resolution needed)."""
    return bool(NUMERIC_ID_PATTERN.fullmatch(value))


def needs_resolution(value: str) -> bool:
    return not is_numeric_id(value)


def detect_type(query: str) -> Optional[DetectionResult]:
    """Detect resource type from the query's shape.

    Numeric ids are pass-through and never detected. Anything that is not an
    email, project number or deal number needs an explicit type.
    """
    if is_numeric_id(query):
        return None
    if EMAIL_PATTERN.fullmatch(query):
        return DetectionResult(ResourceType.PERSON, "high", "email")
    if PROJECT_NUMBER_PATTERN.fullmatch(query):
        return DetectionResult(ResourceType.PROJECT, "high", "project_number")
    if DEAL_NUMBER_PATTERN.fullmatch(query):
        return DetectionResult(ResourceType.DEAL, "high", "deal_number")
    return None


def normalize_project_number(value: str) -> str:
    """'p-12' -> 'PRJ-12'."""
    return re.sub(r"^P-", "PRJ-", value.upper())


def normalize_deal_number(value: str) -> str:
    """'deal-7' -> 'D-7'."""
    return re.sub(r"^DEAL-", "D-", value.upper())


ExactLookup = Callable[[str], Awaitable[Optional[ResolveResult]]]
FuzzyLookup = Callable[[str, ResolveQuery], Awaitable[List[ResolveResult]]]


@dataclass(frozen=True)
class ResolveStrategy:
    """How one resource type is resolved.

    ``exact_lookup`` is used when ``detect_pattern`` matches the query,
    ``fuzzy_lookup`` otherwise.
    """
    resource_type: ResourceType
    fuzzy_lookup: FuzzyLookup
    detect_pattern: Optional[Pattern[str]] = None
    exact_lookup: Optional[ExactLookup] = None


class ResolvedFilters(NamedTuple):
    resolved: Dict[str, str]
    metadata: Dict[str, ResolvedFilterMetadata]


def _to_result(resource: Resource, query: str, exact: bool, fallback_label: str = "") -> ResolveResult:
    return ResolveResult(
        id=resource.id,
        type=resource.resource_type,
        label=resource.label or fallback_label,
        query=query,
        exact=exact,
    )


class ResourceResolver:
    """Turns free-form queries into ResolveResults using the lookup API."""

    # Exposed here so handlers only need the resolver
    detect_type = staticmethod(detect_type)
    is_numeric_id = staticmethod(is_numeric_id)

    def __init__(
        self,
        api: ResourceLookupApi,
        cache: Optional[ResolveCacheStore] = None,
        tenant_id: Optional[str] = None,
    ):
        """Initializes the resolver.

        Args:
            api: Lookup API (the only source of network calls).
            cache: Answer cache; consulted only when ``tenant_id`` is set.
            tenant_id: Organization scoping cache keys.
        """
        self.api = api
        self.cache = cache
        self.tenant_id = tenant_id
        self.strategies: Dict[ResourceType, ResolveStrategy] = {
            ResourceType.PERSON: ResolveStrategy(
                ResourceType.PERSON, self._people_by_name, EMAIL_PATTERN, self._person_by_email
            ),
            ResourceType.PROJECT: ResolveStrategy(
                ResourceType.PROJECT, self._projects_by_name, PROJECT_NUMBER_PATTERN, self._project_by_number
            ),
            ResourceType.DEAL: ResolveStrategy(
                ResourceType.DEAL, self._deals_by_name, DEAL_NUMBER_PATTERN, self._deal_by_number
            ),
            ResourceType.COMPANY: ResolveStrategy(ResourceType.COMPANY, self._companies_by_name),
            ResourceType.SERVICE: ResolveStrategy(ResourceType.SERVICE, self._services_in_scope),
        }

    # --- Exact lookups ---

    async def _person_by_email(self, email: str) -> Optional[ResolveResult]:
        people = await self.api.search_people_by_email(email)
        if not people:
            return None
        return _to_result(people[0], email, exact=True, fallback_label=email)

    async def _project_by_number(self, number: str) -> Optional[ResolveResult]:
        normalized = normalize_project_number(number)
        projects = await self.api.search_projects_by_number(normalized)
        if not projects and normalized != number:
            projects = await self.api.search_projects_by_number(number)
        if not projects:
            return None
        return _to_result(projects[0], number, exact=True, fallback_label=number)

    async def _deal_by_number(self, number: str) -> Optional[ResolveResult]:
        normalized = normalize_deal_number(number)
        deals = await self.api.search_deals_by_number(normalized)
        if not deals and normalized != number:
            deals = await self.api.search_deals_by_number(number)
        if not deals:
            return None
        return _to_result(deals[0], number, exact=True, fallback_label=number)

    # --- Fuzzy lookups ---

    async def _people_by_name(self, name: str, request: ResolveQuery) -> List[ResolveResult]:
        people = await self.api.search_people_by_name(name, limit=NAME_SEARCH_LIMIT)
        return [_to_result(p, name, exact=False) for p in people]

    async def _projects_by_name(self, name: str, request: ResolveQuery) -> List[ResolveResult]:
        projects = await self.api.search_projects_by_name(name, limit=NAME_SEARCH_LIMIT)
        return [_to_result(p, name, exact=False) for p in projects]

    async def _deals_by_name(self, name: str, request: ResolveQuery) -> List[ResolveResult]:
        deals = await self.api.search_deals_by_name(name, limit=NAME_SEARCH_LIMIT)
        return [_to_result(d, name, exact=False) for d in deals]

    async def _companies_by_name(self, name: str, request: ResolveQuery) -> List[ResolveResult]:
        companies = await self.api.search_companies_by_name(name, limit=NAME_SEARCH_LIMIT)
        return [_to_result(c, name, exact=False) for c in companies]

    async def _services_in_scope(self, name: str, request: ResolveQuery) -> List[ResolveResult]:
        # No text filter upstream: scan the scope and match client-side
        services = await self.api.list_services(request.scope_id, limit=SERVICE_SCAN_LIMIT)
        needle = name.lower()
        return [
            _to_result(s, name, exact=s.label.lower() == needle)
            for s in services
            if needle in s.label.lower()
        ]

    # --- Cache ---

    @staticmethod
    def _cache_scope(resource_type: ResourceType, request: ResolveQuery) -> Optional[str]:
        # Only service lookups depend on the scope
        return request.scope_id if resource_type is ResourceType.SERVICE else None

    def _cached(
        self, resource_type: ResourceType, query: str, scope_id: Optional[str] = None
    ) -> Optional[ResolveResult]:
        if self.cache is None or not self.tenant_id:
            return None
        return self.cache.get(self.tenant_id, resource_type, query, scope_id=scope_id)

    def _remember(self, result: ResolveResult, scope_id: Optional[str] = None) -> None:
        if self.cache is not None and self.tenant_id:
            self.cache.set(self.tenant_id, result, scope_id=scope_id)

    # --- Public API ---

    async def resolve(
        self,
        query: str,
        resource_type: Optional[TypeLike] = None,
        scope_id: Optional[str] = None,
        want_first: bool = False,
        want_exact_only: bool = False,
        require_unique: bool = False,
    ) -> List[ResolveResult]:
        """Resolves ``query`` to one or more candidates.

        Args:
            query: Email, project/deal number, name, or numeric id.
            resource_type: Explicit type; detected from the query when omitted.
            scope_id: Project id scoping service lookups.
            want_first: Return only the top candidate when several match.
            want_exact_only: Keep only exact candidates.
            require_unique: Raise ResolveAmbiguous when several match and
                ``want_first`` is not set.

        Returns:
            All candidates (or the first one with ``want_first``).

        Raises:
            ResolveTypeUnknown: No type given and none detectable.
            ResolveNotFound: Zero candidates (after the exact-only filter).
            ResolveAmbiguous: Several candidates with ``require_unique``.
        """
        request = ResolveQuery(
            raw=query,
            explicit_type=ResourceType.parse(resource_type) if resource_type else None,
            scope_id=scope_id,
            want_first=want_first,
            want_exact_only=want_exact_only,
            require_unique=require_unique,
        )
        return await self.resolve_query(request)

    async def resolve_query(self, request: ResolveQuery) -> List[ResolveResult]:
        query = request.raw
        if not query:
            raise ValueError("Query must not be empty")

        if is_numeric_id(query):
            return [
                ResolveResult(
                    id=query,
                    type=request.explicit_type or DEFAULT_PASSTHROUGH_TYPE,
                    label=query,
                    query=query,
                    exact=True,
                )
            ]

        detection = detect_type(query)
        resource_type = request.explicit_type or (detection.type if detection else None)
        if resource_type is None:
            raise ResolveTypeUnknown(
                f'Cannot determine resource type for "{query}". Use --type to specify.', query
            )

        cache_scope = self._cache_scope(resource_type, request)
        cached = self._cached(resource_type, query, cache_scope)
        if cached is not None:
            logger.debug(f"Resolved '{query}' from cache")
            return self._select(request, [cached], resource_type)

        strategy = self.strategies[resource_type]
        if strategy.exact_lookup is not None and strategy.detect_pattern.fullmatch(query):
            match = await strategy.exact_lookup(query)
            results = [match] if match else []
        else:
            results = await strategy.fuzzy_lookup(query, request)

        if not results:
            raise ResolveNotFound(f'No {resource_type.value} found matching "{query}"', query, resource_type)

        # Several candidates depend on context, so only single answers are cached
        if len(results) == 1:
            self._remember(results[0], cache_scope)

        logger.debug(f"Resolved '{query}' as {resource_type.value}: {len(results)} candidate(s)")
        return self._select(request, results, resource_type)

    def _select(
        self,
        request: ResolveQuery,
        results: List[ResolveResult],
        resource_type: ResourceType,
    ) -> List[ResolveResult]:
        if request.want_exact_only:
            exact = [r for r in results if r.exact]
            if not exact:
                raise ResolveNotFound(
                    f'No exact {resource_type.value} match for "{request.raw}"',
                    request.raw,
                    resource_type,
                    suggestions=results,
                )
            results = exact

        if len(results) > 1:
            if request.want_first:
                return [results[0]]
            if request.require_unique:
                raise ResolveAmbiguous(
                    f'{len(results)} {resource_type.value} matches for "{request.raw}". '
                    "Use --first or a more specific query.",
                    request.raw,
                    resource_type,
                    suggestions=results,
                )
        return results

    async def resolve_filter_value(
        self,
        value: str,
        resource_type: TypeLike,
        scope_id: Optional[str] = None,
    ) -> str:
        """Returns ``value`` if numeric, otherwise the id of its first match.

        Raises:
            ResolveError: If nothing matches.
        """
        if is_numeric_id(value):
            return value
        results = await self.resolve(value, resource_type=resource_type, scope_id=scope_id, want_first=True)
        return results[0].id

    async def resolve_filter_ids(
        self,
        filters: Mapping[str, str],
        type_mapping: Mapping[str, TypeLike],
        scope_id: Optional[str] = None,
    ) -> ResolvedFilters:
        """Resolves every mapped filter value.

        A filter that fails to resolve, transport errors included, keeps its
        original value. Throttling and cancellation still propagate.

        Returns:
            The rewritten filters and, per resolved key, what it resolved to.
        """
        resolved: Dict[str, str] = {}
        metadata: Dict[str, ResolvedFilterMetadata] = {}

        for key, value in filters.items():
            mapped_type = type_mapping.get(key)
            if mapped_type is None or is_numeric_id(value):
                resolved[key] = value
                continue
            try:
                result = (await self.resolve(value, resource_type=mapped_type, scope_id=scope_id, want_first=True))[0]
            except (RateLimitExceeded, asyncio.CancelledError):
                raise
            except Exception as e:
                logger.info(f"Keeping filter {key}={value!r} unresolved: {e}")
                resolved[key] = value
                continue
            resolved[key] = result.id
            metadata[key] = {
                "input": value,
                "id": result.id,
                "label": result.label,
                "reusable": result.exact,
            }
        return ResolvedFilters(resolved, metadata)


def format_suggestions(suggestions: Sequence[ResolveResult], limit: int = 5) -> List[str]:
    """Human-readable near-miss lines for error output."""
    return [f"{s.label or s.query} ({s.type.value} {s.id})" for s in suggestions[:limit]]
