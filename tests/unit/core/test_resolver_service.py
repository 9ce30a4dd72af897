import asyncio

import httpx
import pytest

from prodcli.core.services.resolver_service import (
    ResourceResolver,
    detect_type,
    format_suggestions,
    is_numeric_id,
    needs_resolution,
    normalize_deal_number,
    normalize_project_number,
)
from prodcli.domain.errors import (
    ApiError,
    RateLimitExceeded,
    ResolveAmbiguous,
    ResolveNotFound,
    ResolveTypeUnknown,
)
from prodcli.domain.models.resolve import ResolveResult
from prodcli.domain.models.resources import Company, Deal, Person, Project, ResourceType, Service
from prodcli.infrastructure.cache.resolve_cache import DiskResolveCache

JOHN = Person(id="500521", first_name="John", last_name="Doe", email="user@example.com")


@pytest.fixture
def resolve_cache(cache_dir, fake_clock):
    cache = DiskResolveCache(cache_dir / "resolve", clock=fake_clock)
    yield cache
    cache.close()


@pytest.fixture
def resolver(fake_api, resolve_cache):
    return ResourceResolver(api=fake_api, cache=resolve_cache, tenant_id="42")


# --- Detection ---

def test_is_numeric_id():
    assert is_numeric_id("12345") is True
    assert is_numeric_id("PRJ-12") is False
    assert is_numeric_id("") is False
    assert needs_resolution("Acme") is True
    assert needs_resolution("12") is False


@pytest.mark.parametrize(
    "query, expected_type, pattern",
    [
        ("a@b.co", ResourceType.PERSON, "email"),
        ("PRJ-42", ResourceType.PROJECT, "project_number"),
        ("P-42", ResourceType.PROJECT, "project_number"),
        ("prj-7", ResourceType.PROJECT, "project_number"),
        ("D-9", ResourceType.DEAL, "deal_number"),
        ("deal-9", ResourceType.DEAL, "deal_number"),
    ],
)
def test_detect_type(query, expected_type, pattern):
    detection = detect_type(query)
    assert detection.type == expected_type
    assert detection.pattern == pattern
    assert detection.confidence == "high"


@pytest.mark.parametrize("query", ["42", "Acme", "PRJ-", "not an@email", "X-12"])
def test_detect_type_none(query):
    assert detect_type(query) is None


def test_normalization():
    assert normalize_project_number("p-12") == "PRJ-12"
    assert normalize_project_number("prj-12") == "PRJ-12"
    assert normalize_deal_number("deal-5") == "D-5"
    assert normalize_deal_number("d-5") == "D-5"


# --- Numeric pass-through ---

@pytest.mark.asyncio
@pytest.mark.parametrize("resource_type", [None, "person", ResourceType.SERVICE])
async def test_numeric_query_passes_through(resolver, fake_api, resource_type):
    results = await resolver.resolve("12345", resource_type=resource_type)
    assert len(results) == 1
    assert results[0].id == "12345"
    assert results[0].exact is True
    assert fake_api.calls == []


# --- Exact lookups ---

@pytest.mark.asyncio
async def test_email_resolves_and_is_cached(resolver, fake_api):
    fake_api.people_by_email["user@example.com"] = [JOHN]

    results = await resolver.resolve("user@example.com")
    assert [r.to_dict() for r in results] == [
        {"id": "500521", "type": "person", "label": "John Doe", "query": "user@example.com", "exact": True}
    ]

    again = await resolver.resolve("user@example.com")
    assert again == results
    assert fake_api.calls == [("people_by_email", "user@example.com")]


@pytest.mark.asyncio
async def test_cache_is_scoped_by_tenant(fake_api, resolve_cache):
    fake_api.people_by_email["user@example.com"] = [JOHN]
    await ResourceResolver(fake_api, resolve_cache, tenant_id="1").resolve("user@example.com")
    await ResourceResolver(fake_api, resolve_cache, tenant_id="2").resolve("user@example.com")
    assert len(fake_api.calls) == 2


@pytest.mark.asyncio
async def test_resolver_without_tenant_does_not_cache(fake_api, resolve_cache):
    fake_api.people_by_email["user@example.com"] = [JOHN]
    resolver = ResourceResolver(fake_api, resolve_cache)
    await resolver.resolve("user@example.com")
    await resolver.resolve("user@example.com")
    assert len(fake_api.calls) == 2
    assert resolve_cache.stats()["entries"] == 0


@pytest.mark.asyncio
async def test_project_number_is_normalized(resolver, fake_api):
    fake_api.projects_by_number["PRJ-42"] = [Project(id="77", name="Website", project_number="PRJ-42")]
    results = await resolver.resolve("p-42")
    assert results == [ResolveResult("77", ResourceType.PROJECT, "Website", "p-42", True)]
    assert fake_api.calls == [("projects_by_number", "PRJ-42")]


@pytest.mark.asyncio
async def test_project_number_retries_raw_form(resolver, fake_api):
    fake_api.projects_by_number["P-42"] = [Project(id="77", name="Legacy", project_number="P-42")]
    results = await resolver.resolve("P-42")
    assert results[0].id == "77"
    assert fake_api.calls == [("projects_by_number", "PRJ-42"), ("projects_by_number", "P-42")]


@pytest.mark.asyncio
async def test_canonical_number_is_not_queried_twice(resolver, fake_api):
    with pytest.raises(ResolveNotFound):
        await resolver.resolve("PRJ-404")
    assert fake_api.calls == [("projects_by_number", "PRJ-404")]


@pytest.mark.asyncio
async def test_deal_number(resolver, fake_api):
    fake_api.deals_by_number["D-5"] = [Deal(id="9", name="Retainer", deal_number="D-5")]
    results = await resolver.resolve("DEAL-5")
    assert results[0].id == "9"
    assert results[0].exact is True


@pytest.mark.asyncio
async def test_explicit_type_with_non_matching_pattern_uses_fuzzy_lookup(resolver, fake_api):
    fake_api.projects_by_name["Website"] = [Project(id="77", name="Website")]
    results = await resolver.resolve("Website", resource_type="project")
    assert results[0].exact is False
    assert fake_api.calls == [("projects_by_name", "Website")]


# --- Fuzzy lookups ---

@pytest.mark.asyncio
async def test_unknown_type_raises(resolver, fake_api):
    with pytest.raises(ResolveTypeUnknown) as excinfo:
        await resolver.resolve("Acme")
    assert "--type" in str(excinfo.value)
    assert fake_api.calls == []


@pytest.mark.asyncio
async def test_empty_query_raises(resolver):
    with pytest.raises(ValueError):
        await resolver.resolve("")


@pytest.mark.asyncio
async def test_not_found_names_query_and_type(resolver):
    with pytest.raises(ResolveNotFound) as excinfo:
        await resolver.resolve("Nobody", resource_type="person")
    assert excinfo.value.query == "Nobody"
    assert excinfo.value.resource_type == ResourceType.PERSON
    assert "Nobody" in str(excinfo.value)


@pytest.mark.asyncio
async def test_multiple_matches_are_returned_and_not_cached(resolver, fake_api, resolve_cache):
    fake_api.companies_by_name["Acme"] = [Company("1", "Acme Inc"), Company("2", "Acme Labs")]
    results = await resolver.resolve("Acme", resource_type="company")
    assert [r.id for r in results] == ["1", "2"]
    assert all(not r.exact for r in results)
    assert resolve_cache.stats()["entries"] == 0


@pytest.mark.asyncio
async def test_want_first(resolver, fake_api):
    fake_api.companies_by_name["Acme"] = [Company("1", "Acme Inc"), Company("2", "Acme Labs")]
    results = await resolver.resolve("Acme", resource_type="company", want_first=True)
    assert [r.id for r in results] == ["1"]


@pytest.mark.asyncio
async def test_require_unique_raises_ambiguous_with_suggestions(resolver, fake_api):
    fake_api.companies_by_name["Acme"] = [Company("1", "Acme Inc"), Company("2", "Acme Labs")]
    with pytest.raises(ResolveAmbiguous) as excinfo:
        await resolver.resolve("Acme", resource_type="company", require_unique=True)
    assert [s.id for s in excinfo.value.suggestions] == ["1", "2"]


@pytest.mark.asyncio
async def test_single_fuzzy_match_is_cached(resolver, fake_api):
    fake_api.people_by_name["Jane"] = [Person("3", "Jane", "Roe")]
    await resolver.resolve("Jane", resource_type="person")
    await resolver.resolve("jane", resource_type="person")
    assert fake_api.calls == [("people_by_name", "Jane")]


@pytest.mark.asyncio
async def test_want_exact_only_rejects_fuzzy_matches(resolver, fake_api):
    fake_api.people_by_name["Jane"] = [Person("3", "Jane", "Roe")]
    with pytest.raises(ResolveNotFound) as excinfo:
        await resolver.resolve("Jane", resource_type="person", want_exact_only=True)
    assert [s.id for s in excinfo.value.suggestions] == ["3"]


@pytest.mark.asyncio
async def test_services_are_matched_within_scope(resolver, fake_api):
    fake_api.services = [
        Service("10", "Design", project_id="77"),
        Service("11", "Design Review", project_id="77"),
        Service("12", "Design", project_id="88"),
    ]
    results = await resolver.resolve("design", resource_type="service", scope_id="77")
    assert [(r.id, r.exact) for r in results] == [("10", True), ("11", False)]
    assert fake_api.calls == [("list_services", "77")]

    exact = await resolver.resolve("design", resource_type="service", scope_id="77", want_exact_only=True)
    assert [r.id for r in exact] == ["10"]


@pytest.mark.asyncio
async def test_service_answers_are_cached_per_scope(resolver, fake_api):
    fake_api.services = [
        Service("1", "Design", project_id="100"),
        Service("2", "Design", project_id="200"),
    ]
    first = await resolver.resolve("Design", resource_type="service", scope_id="100")
    second = await resolver.resolve("Design", resource_type="service", scope_id="200")
    assert [r.id for r in first] == ["1"]
    assert [r.id for r in second] == ["2"]

    again = await resolver.resolve("Design", resource_type="service", scope_id="100")
    assert [r.id for r in again] == ["1"]
    assert fake_api.calls == [("list_services", "100"), ("list_services", "200")]


@pytest.mark.asyncio
async def test_api_errors_propagate(resolver, fake_api):
    fake_api.error = RateLimitExceeded(attempts=6)
    with pytest.raises(RateLimitExceeded):
        await resolver.resolve("user@example.com")


# --- Filter helpers ---

@pytest.mark.asyncio
async def test_resolve_filter_value(resolver, fake_api):
    fake_api.people_by_email["user@example.com"] = [JOHN]
    assert await resolver.resolve_filter_value("123", "person") == "123"
    assert await resolver.resolve_filter_value("user@example.com", "person") == "500521"


@pytest.mark.asyncio
async def test_resolve_filter_ids(resolver, fake_api):
    fake_api.people_by_email["user@example.com"] = [JOHN]
    fake_api.projects_by_name["Website"] = [Project("77", "Website"), Project("78", "Website v2")]

    resolved, metadata = await resolver.resolve_filter_ids(
        {"person_id": "user@example.com", "project_id": "Website", "company_id": "Unknown Co", "status": "open", "service_id": "5"},
        {"person_id": "person", "project_id": "project", "company_id": "company", "service_id": "service"},
    )

    assert resolved == {
        "person_id": "500521",
        "project_id": "77",
        "company_id": "Unknown Co",
        "status": "open",
        "service_id": "5",
    }
    assert metadata["person_id"] == {"input": "user@example.com", "id": "500521", "label": "John Doe", "reusable": True}
    assert metadata["project_id"]["reusable"] is False
    assert "company_id" not in metadata


@pytest.mark.asyncio
async def test_resolve_filter_ids_keeps_value_on_api_error(resolver, fake_api):
    fake_api.error = ApiError(500, "/people")
    resolved, metadata = await resolver.resolve_filter_ids({"person_id": "a@b.co"}, {"person_id": "person"})
    assert resolved == {"person_id": "a@b.co"}
    assert metadata == {}


@pytest.mark.asyncio
async def test_resolve_filter_ids_keeps_value_on_transport_error(resolver, fake_api):
    fake_api.error = httpx.ConnectError("connection refused")
    filters = {"project_id": "Acme", "x": "1"}
    resolved, metadata = await resolver.resolve_filter_ids(filters, {"project_id": "project"})
    assert resolved == filters
    assert metadata == {}


@pytest.mark.asyncio
async def test_resolve_filter_ids_propagates_cancellation(resolver, fake_api):
    fake_api.error = asyncio.CancelledError()
    with pytest.raises(asyncio.CancelledError):
        await resolver.resolve_filter_ids({"project_id": "Acme"}, {"project_id": "project"})


@pytest.mark.asyncio
async def test_resolve_filter_ids_propagates_throttling(resolver, fake_api):
    fake_api.error = RateLimitExceeded(attempts=6)
    with pytest.raises(RateLimitExceeded):
        await resolver.resolve_filter_ids({"person_id": "a@b.co"}, {"person_id": "person"})


def test_format_suggestions():
    suggestions = [ResolveResult(str(i), ResourceType.COMPANY, f"Acme {i}", "Acme", False) for i in range(7)]
    lines = format_suggestions(suggestions)
    assert len(lines) == 5
    assert lines[0] == "Acme 0 (company 0)"
