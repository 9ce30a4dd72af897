import pytest

from prodcli.domain.models.resolve import ResolveResult
from prodcli.domain.models.resources import ResourceType
from prodcli.infrastructure.cache.resolve_cache import (
    EXACT_TTL_SECONDS,
    FUZZY_TTL_SECONDS,
    DiskResolveCache,
    make_resolve_key,
)


@pytest.fixture
def resolve_cache(cache_dir, fake_clock):
    cache = DiskResolveCache(cache_dir / "resolve", clock=fake_clock)
    yield cache
    cache.close()


def person(exact=True, query="john@example.com"):
    return ResolveResult(id="500521", type=ResourceType.PERSON, label="John Doe", query=query, exact=exact)


def test_key_is_case_insensitive_on_query():
    assert make_resolve_key("42", ResourceType.PERSON, "John@Example.com ") == make_resolve_key(
        "42", ResourceType.PERSON, "john@example.com"
    )


def test_key_separates_tenants_and_types():
    assert make_resolve_key("1", ResourceType.PERSON, "x") != make_resolve_key("2", ResourceType.PERSON, "x")
    assert make_resolve_key("1", ResourceType.PERSON, "x") != make_resolve_key("1", ResourceType.COMPANY, "x")


def test_set_then_get(resolve_cache):
    resolve_cache.set("42", person())
    assert resolve_cache.get("42", ResourceType.PERSON, "JOHN@example.com") == person()
    assert resolve_cache.get("43", ResourceType.PERSON, "john@example.com") is None


def test_scoped_entries_are_kept_apart(resolve_cache):
    design = ResolveResult(id="1", type=ResourceType.SERVICE, label="Design", query="Design", exact=True)
    resolve_cache.set("42", design, scope_id="100")
    assert resolve_cache.get("42", ResourceType.SERVICE, "design", scope_id="100") == design
    assert resolve_cache.get("42", ResourceType.SERVICE, "design", scope_id="200") is None
    assert resolve_cache.get("42", ResourceType.SERVICE, "design") is None


def test_exact_entries_live_for_a_day(resolve_cache, fake_clock):
    resolve_cache.set("42", person(exact=True))
    fake_clock.advance(EXACT_TTL_SECONDS)
    assert resolve_cache.get("42", ResourceType.PERSON, "john@example.com") is not None
    fake_clock.advance(1)
    assert resolve_cache.get("42", ResourceType.PERSON, "john@example.com") is None


def test_fuzzy_entries_live_for_an_hour(resolve_cache, fake_clock):
    resolve_cache.set("42", person(exact=False, query="john"))
    fake_clock.advance(FUZZY_TTL_SECONDS + 1)
    assert resolve_cache.get("42", ResourceType.PERSON, "john") is None


def test_unreadable_entry_is_a_miss(resolve_cache):
    key = make_resolve_key("42", ResourceType.PERSON, "broken")
    resolve_cache.disk_cache.set(key, {"unexpected": True})
    assert resolve_cache.get("42", ResourceType.PERSON, "broken") is None
    assert key not in resolve_cache.disk_cache


def test_invalidate_and_stats(resolve_cache, fake_clock):
    resolve_cache.set("42", person())
    fake_clock.advance(5)
    resolve_cache.set("42", person(query="jane@example.com"))
    stats = resolve_cache.stats()
    assert stats["entries"] == 2
    assert stats["oldest_age_seconds"] == 5
    assert resolve_cache.invalidate() == 2
    assert resolve_cache.stats()["entries"] == 0


def test_disabled_cache(cache_dir):
    cache = DiskResolveCache(cache_dir / "resolve", enabled=False)
    cache.set("42", person())
    assert cache.get("42", ResourceType.PERSON, "john@example.com") is None
    assert cache.invalidate() == 0
    assert cache.stats()["entries"] == 0
