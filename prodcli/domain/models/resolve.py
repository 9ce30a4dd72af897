"""Value objects for identifier resolution.

A ``ResolveQuery`` describes what the caller typed and how strict it wants the
answer to be; a ``ResolveResult`` is one candidate resource.
"""

from dataclasses import asdict, dataclass
from typing import Any, Dict, Mapping, Optional

from prodcli.domain.models.resources import ResourceType


@dataclass(frozen=True)
class DetectionResult:
    """Outcome of pattern-based type detection."""
    type: ResourceType
    confidence: str  # 'high' | 'medium' | 'low'
    pattern: str     # 'email' | 'project_number' | 'deal_number'


@dataclass(frozen=True)
class ResolveQuery:
    """A single resolution request.

    Attributes:
        raw: The text the user supplied (email, number, name, or numeric id).
        explicit_type: Resource type forced by the caller; detected when None.
        scope_id: Project id scoping service lookups.
        want_first: Collapse multiple candidates to the top one.
        want_exact_only: Discard fuzzy candidates.
        require_unique: Treat more than one candidate as an error.
    """
    raw: str
    explicit_type: Optional[ResourceType] = None
    scope_id: Optional[str] = None
    want_first: bool = False
    want_exact_only: bool = False
    require_unique: bool = False


@dataclass(frozen=True)
class ResolveResult:
    """A resolved candidate.

    ``exact`` is only true when the lookup method guarantees uniqueness.
    """
    id: str
    type: ResourceType
    label: str
    query: str
    exact: bool

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["type"] = self.type.value
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ResolveResult":
        return cls(
            id=str(data["id"]),
            type=ResourceType.parse(data["type"]),
            label=str(data.get("label", "")),
            query=str(data["query"]),
            exact=bool(data.get("exact", False)),
        )
