"""Tagged resource variants returned by the lookup API.

Wire records (JSON:API ``{id, attributes}``) are mapped into these classes at the
API boundary so the resolver never inspects raw attribute bags.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Union


class ResourceType(str, Enum):
    """Resource types the resolver knows how to resolve."""
    PERSON = "person"
    PROJECT = "project"
    COMPANY = "company"
    DEAL = "deal"
    SERVICE = "service"

    @classmethod
    def parse(cls, value: Union[str, "ResourceType"]) -> "ResourceType":
        """Parses a user-supplied type name (case-insensitive)."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            valid = ", ".join(t.value for t in cls)
            raise ValueError(f"Unknown resource type '{value}'. Expected one of: {valid}") from None


def _attr(attributes: Mapping[str, Any], name: str) -> str:
    value = attributes.get(name)
    return str(value) if value is not None else ""


@dataclass(frozen=True)
class Person:
    id: str
    first_name: str = ""
    last_name: str = ""
    email: str = ""

    resource_type = ResourceType.PERSON

    @property
    def label(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @classmethod
    def from_wire(cls, record: Mapping[str, Any]) -> "Person":
        attributes = record.get("attributes") or {}
        return cls(
            id=str(record["id"]),
            first_name=_attr(attributes, "first_name"),
            last_name=_attr(attributes, "last_name"),
            email=_attr(attributes, "email"),
        )


@dataclass(frozen=True)
class Project:
    id: str
    name: str = ""
    project_number: str = ""

    resource_type = ResourceType.PROJECT

    @property
    def label(self) -> str:
        return self.name

    @classmethod
    def from_wire(cls, record: Mapping[str, Any]) -> "Project":
        attributes = record.get("attributes") or {}
        return cls(
            id=str(record["id"]),
            name=_attr(attributes, "name"),
            project_number=_attr(attributes, "project_number"),
        )


@dataclass(frozen=True)
class Company:
    id: str
    name: str = ""

    resource_type = ResourceType.COMPANY

    @property
    def label(self) -> str:
        return self.name

    @classmethod
    def from_wire(cls, record: Mapping[str, Any]) -> "Company":
        attributes = record.get("attributes") or {}
        return cls(id=str(record["id"]), name=_attr(attributes, "name"))


@dataclass(frozen=True)
class Deal:
    id: str
    name: str = ""
    deal_number: str = ""

    resource_type = ResourceType.DEAL

    @property
    def label(self) -> str:
        return self.name

    @classmethod
    def from_wire(cls, record: Mapping[str, Any]) -> "Deal":
        attributes = record.get("attributes") or {}
        return cls(
            id=str(record["id"]),
            name=_attr(attributes, "name"),
            deal_number=_attr(attributes, "deal_number"),
        )


@dataclass(frozen=True)
class Service:
    id: str
    name: str = ""
    project_id: Optional[str] = None

    resource_type = ResourceType.SERVICE

    @property
    def label(self) -> str:
        return self.name

    @classmethod
    def from_wire(cls, record: Mapping[str, Any]) -> "Service":
        attributes = record.get("attributes") or {}
        project_id = None
        relationships: Dict[str, Any] = record.get("relationships") or {}
        # Services hang off deals/budgets; the project link is optional on the wire
        project_ref = (relationships.get("project") or {}).get("data")
        if isinstance(project_ref, Mapping) and project_ref.get("id") is not None:
            project_id = str(project_ref["id"])
        return cls(id=str(record["id"]), name=_attr(attributes, "name"), project_id=project_id)


Resource = Union[Person, Project, Company, Deal, Service]
