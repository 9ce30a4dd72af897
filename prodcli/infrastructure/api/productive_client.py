"""HTTP client for the Productive.io REST API.

Reads go through the TTL query cache; cache misses are admitted by the rate
limiter and retried on throttling by the ApiRetryService. Wire records are
mapped to tagged resource variants here so nothing upstream of this module
touches raw ``attributes`` bags.
"""

import logging
from typing import Any, Dict, List, Optional, Type, TypeVar

import httpx

from prodcli.domain.errors import ApiError
from prodcli.domain.interfaces.cache import QueryCacheService
from prodcli.domain.interfaces.lookup_api import ResourceLookupApi
from prodcli.domain.models.common import QueryParams
from prodcli.domain.models.resources import Company, Deal, Person, Project, Service
from prodcli.infrastructure.config.settings import DEFAULT_BASE_URL
from prodcli.infrastructure.resilience.api_retry import ApiRetryService

logger = logging.getLogger(__name__)

JSON_API_CONTENT_TYPE = "application/vnd.api+json"
DEFAULT_TIMEOUT_SECONDS = 30.0

R = TypeVar("R", Person, Project, Company, Deal, Service)


def limiter_class_for(endpoint: str) -> str:
    """Reports have their own, much lower, upstream quota."""
    return "reports" if endpoint.lstrip("/").startswith("reports") else "regular"


def resource_root(endpoint: str) -> str:
    """'/time_entries/12' -> '/time_entries'."""
    parts = [p for p in endpoint.split("/") if p]
    return f"/{parts[0]}" if parts else "/"


def build_query_params(
    filters: Optional[Dict[str, Any]] = None,
    per_page: Optional[int] = None,
    page: Optional[int] = None,
    **extra: Any,
) -> QueryParams:
    """Flattens filters and paging into JSON:API query parameters."""
    params: QueryParams = {}
    for name, value in (filters or {}).items():
        params[f"filter[{name}]"] = value
    if per_page is not None:
        params["page[size]"] = per_page
    if page is not None:
        params["page[number]"] = page
    params.update({k: v for k, v in extra.items() if v is not None})
    return params


class ProductiveApiClient(ResourceLookupApi):
    """Async API client with caching, rate limiting and throttling retries."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        retry_service: ApiRetryService,
        api_token: str,
        org_id: str,
        query_cache: Optional[QueryCacheService] = None,
        base_url: str = DEFAULT_BASE_URL,
        use_cache: bool = True,
        refresh: bool = False,
    ):
        """Initializes the client.

        Args:
            http_client: Shared httpx client (owned by the caller).
            retry_service: Admission + 429 retry wrapper.
            api_token: API token sent as X-Auth-Token.
            org_id: Tenant id sent as X-Organization-Id; also scopes cache keys.
            query_cache: TTL cache for reads; None disables caching.
            base_url: API root.
            use_cache: False bypasses the cache entirely (--no-cache).
            refresh: True skips cache reads but still writes through (--refresh).
        """
        self.http_client = http_client
        self.retry_service = retry_service
        self.api_token = api_token
        self.org_id = org_id
        self.query_cache = query_cache
        self.base_url = base_url.rstrip("/")
        self.use_cache = use_cache
        self.refresh = refresh

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "X-Auth-Token": self.api_token,
            "X-Organization-Id": self.org_id,
            "Content-Type": JSON_API_CONTENT_TYPE,
            "Accept": JSON_API_CONTENT_TYPE,
        }

    async def _send(
        self,
        method: str,
        endpoint: str,
        params: Optional[QueryParams] = None,
        body: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        response = await self.http_client.request(
            method,
            f"{self.base_url}{endpoint}",
            params=params,
            json=body,
            headers=self.headers,
        )
        if response.status_code == 429:
            # Surfaces as HTTPStatusError for the retry service
            response.raise_for_status()
        if response.is_error:
            raise ApiError(response.status_code, endpoint, _error_detail(response))
        if response.status_code == 204 or not response.content:
            return {}
        return response.json()

    async def request(
        self,
        method: str,
        endpoint: str,
        params: Optional[QueryParams] = None,
        body: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Sends one request through the rate limiter and retry loop (no cache)."""
        return await self.retry_service.execute_with_retry(
            self._send,
            method,
            endpoint,
            params,
            body,
            limiter_class=limiter_class_for(endpoint),
            endpoint_name=f"{method} {endpoint}",
        )

    async def get(
        self,
        endpoint: str,
        params: Optional[QueryParams] = None,
        use_cache: Optional[bool] = None,
        refresh: Optional[bool] = None,
        ttl: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Cached GET.

        Args:
            endpoint: API path such as '/projects'.
            params: Query parameters.
            use_cache: Per-call override of the client's --no-cache setting.
            refresh: Per-call override of the client's --refresh setting.
            ttl: Cache TTL override in seconds.
        """
        params = params or {}
        caching = self.query_cache is not None and (self.use_cache if use_cache is None else use_cache)
        forced = self.refresh if refresh is None else refresh

        if caching and not forced:
            cached = await self.query_cache.get(endpoint, params, self.org_id)
            if cached is not None:
                return cached

        payload = await self.request("GET", endpoint, params=params)

        if caching:
            await self.query_cache.set(endpoint, params, self.org_id, payload, ttl=ttl)
        return payload

    async def write(self, method: str, endpoint: str, body: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Non-GET request; invalidates cached reads of the affected resource."""
        payload = await self.request(method.upper(), endpoint, body=body)
        if self.query_cache is not None:
            await self.query_cache.invalidate(resource_root(endpoint))
        return payload

    async def _list(self, endpoint: str, model: Type[R], params: QueryParams) -> List[R]:
        payload = await self.get(endpoint, params)
        records = payload.get("data") or []
        return [model.from_wire(record) for record in records]

    # --- ResourceLookupApi Interface Implementation ---

    async def search_people_by_email(self, email: str) -> List[Person]:
        return await self._list("/people", Person, build_query_params({"email": email}, per_page=1))

    async def search_people_by_name(self, name: str, limit: int = 10) -> List[Person]:
        return await self._list("/people", Person, build_query_params({"query": name}, per_page=limit))

    async def search_projects_by_number(self, project_number: str) -> List[Project]:
        return await self._list(
            "/projects", Project, build_query_params({"project_number": project_number}, per_page=1)
        )

    async def search_projects_by_name(self, name: str, limit: int = 10) -> List[Project]:
        return await self._list("/projects", Project, build_query_params({"query": name}, per_page=limit))

    async def search_companies_by_name(self, name: str, limit: int = 10) -> List[Company]:
        return await self._list("/companies", Company, build_query_params({"query": name}, per_page=limit))

    async def search_deals_by_number(self, deal_number: str) -> List[Deal]:
        return await self._list("/deals", Deal, build_query_params({"deal_number": deal_number}, per_page=1))

    async def search_deals_by_name(self, name: str, limit: int = 10) -> List[Deal]:
        return await self._list("/deals", Deal, build_query_params({"query": name}, per_page=limit))

    async def list_services(self, scope_id: Optional[str] = None, limit: int = 200) -> List[Service]:
        filters = {"project_id": scope_id} if scope_id else {}
        return await self._list("/services", Service, build_query_params(filters, per_page=limit))


def _error_detail(response: httpx.Response) -> str:
    """Best-effort extraction of the JSON:API error title/detail."""
    try:
        errors = response.json().get("errors") or []
    except (ValueError, AttributeError):
        return response.reason_phrase
    if errors and isinstance(errors[0], dict):
        first = errors[0]
        return str(first.get("detail") or first.get("title") or response.reason_phrase)
    return response.reason_phrase
