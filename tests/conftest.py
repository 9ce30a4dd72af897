import pytest
from typer.testing import CliRunner
from pathlib import Path
from typing import Dict, List, Optional

from prodcli.domain.interfaces.lookup_api import ResourceLookupApi
from prodcli.domain.models.resources import Company, Deal, Person, Project, Service
from prodcli.infrastructure.config.settings import clear_test_config, reset_configuration


class FakeClock:
    """Manual clock with a sleep coroutine that advances it instead of waiting."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeLookupApi(ResourceLookupApi):
    """In-memory lookup API that records every call."""

    def __init__(self):
        self.calls: List[tuple] = []
        self.people_by_email: Dict[str, List[Person]] = {}
        self.people_by_name: Dict[str, List[Person]] = {}
        self.projects_by_number: Dict[str, List[Project]] = {}
        self.projects_by_name: Dict[str, List[Project]] = {}
        self.companies_by_name: Dict[str, List[Company]] = {}
        self.deals_by_number: Dict[str, List[Deal]] = {}
        self.deals_by_name: Dict[str, List[Deal]] = {}
        self.services: List[Service] = []
        self.error: Optional[Exception] = None

    def _record(self, *call):
        self.calls.append(call)
        if self.error is not None:
            raise self.error

    async def search_people_by_email(self, email):
        self._record("people_by_email", email)
        return self.people_by_email.get(email, [])

    async def search_people_by_name(self, name, limit=10):
        self._record("people_by_name", name)
        return self.people_by_name.get(name, [])[:limit]

    async def search_projects_by_number(self, project_number):
        self._record("projects_by_number", project_number)
        return self.projects_by_number.get(project_number, [])

    async def search_projects_by_name(self, name, limit=10):
        self._record("projects_by_name", name)
        return self.projects_by_name.get(name, [])[:limit]

    async def search_companies_by_name(self, name, limit=10):
        self._record("companies_by_name", name)
        return self.companies_by_name.get(name, [])[:limit]

    async def search_deals_by_number(self, deal_number):
        self._record("deals_by_number", deal_number)
        return self.deals_by_number.get(deal_number, [])

    async def search_deals_by_name(self, name, limit=10):
        self._record("deals_by_name", name)
        return self.deals_by_name.get(name, [])[:limit]

    async def list_services(self, scope_id=None, limit=200):
        self._record("list_services", scope_id)
        services = [s for s in self.services if scope_id is None or s.project_id == scope_id]
        return services[:limit]


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def fake_api():
    return FakeLookupApi()


@pytest.fixture
def cache_dir(tmp_path: Path) -> Path:
    return tmp_path / "cache"


@pytest.fixture(scope="session")
def runner():
    """Provides a Typer CliRunner instance."""
    return CliRunner()


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch, tmp_path):
    """Keeps user config, env files and caches out of every test."""
    for name in ("PRODUCTIVE_API_TOKEN", "PRODUCTIVE_ORG_ID", "PRODUCTIVE_BASE_URL", "PRODUCTIVE_CACHE_DIR"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "xdg"))
    reset_configuration()
    yield
    clear_test_config()
    reset_configuration()
