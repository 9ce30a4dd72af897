"""Interface for the upstream lookups the resolver depends on.

Each method performs one search against the project-management API and returns
already-mapped resource variants.
"""

import abc
from typing import List, Optional

from prodcli.domain.models.resources import Company, Deal, Person, Project, Service


class ResourceLookupApi(abc.ABC):
    """Abstract Base Class for resolver lookups."""

    @abc.abstractmethod
    async def search_people_by_email(self, email: str) -> List[Person]:
        """Returns at most one person whose email equals ``email``."""
        pass

    @abc.abstractmethod
    async def search_people_by_name(self, name: str, limit: int = 10) -> List[Person]:
        """Free-text person search, capped at ``limit`` hits."""
        pass

    @abc.abstractmethod
    async def search_projects_by_number(self, project_number: str) -> List[Project]:
        """Returns at most one project carrying ``project_number``."""
        pass

    @abc.abstractmethod
    async def search_projects_by_name(self, name: str, limit: int = 10) -> List[Project]:
        pass

    @abc.abstractmethod
    async def search_companies_by_name(self, name: str, limit: int = 10) -> List[Company]:
        pass

    @abc.abstractmethod
    async def search_deals_by_number(self, deal_number: str) -> List[Deal]:
        """Returns at most one deal carrying ``deal_number``."""
        pass

    @abc.abstractmethod
    async def search_deals_by_name(self, name: str, limit: int = 10) -> List[Deal]:
        pass

    @abc.abstractmethod
    async def list_services(self, scope_id: Optional[str] = None, limit: int = 200) -> List[Service]:
        """Lists services, optionally scoped to a project.

        The upstream API has no text filter for services; callers filter client-side.
        """
        pass
