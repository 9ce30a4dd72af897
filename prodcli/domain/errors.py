"""Error taxonomy shared by the resolver, the resilience layer and the caches."""

from typing import Any, Dict, List, Optional, Sequence

from prodcli.domain.models.resolve import ResolveResult
from prodcli.domain.models.resources import ResourceType


class ProdCliError(Exception):
    """Base class for all errors raised by prodcli."""


class RateLimitExceeded(ProdCliError):
    """Raised when a throttled call is still throttled after the retry budget."""

    def __init__(self, attempts: int, retry_after: Optional[float] = None, endpoint: Optional[str] = None):
        self.attempts = attempts
        self.retry_after = retry_after
        self.endpoint = endpoint
        target = f" for {endpoint}" if endpoint else ""
        hint = f" Server asked to wait {retry_after:.0f}s." if retry_after is not None else ""
        super().__init__(
            f"Rate limit exceeded{target} after {attempts} attempt(s).{hint} Retrying later may succeed."
        )


class ApiError(ProdCliError):
    """Raised for non-throttling HTTP failures from the upstream API."""

    def __init__(self, status_code: int, endpoint: str, detail: str = ""):
        self.status_code = status_code
        self.endpoint = endpoint
        self.detail = detail
        message = f"API request to {endpoint} failed with status {status_code}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class ResolveError(ProdCliError):
    """Base class for resolution failures; carries the query and near misses."""

    def __init__(
        self,
        message: str,
        query: str,
        resource_type: Optional[ResourceType] = None,
        suggestions: Optional[Sequence[ResolveResult]] = None,
    ):
        super().__init__(message)
        self.query = query
        self.resource_type = resource_type
        self.suggestions: List[ResolveResult] = list(suggestions or [])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": type(self).__name__,
            "message": str(self),
            "query": self.query,
            "type": self.resource_type.value if self.resource_type else None,
            "suggestions": [s.to_dict() for s in self.suggestions],
        }


class ResolveNotFound(ResolveError):
    """No candidate matched the query."""


class ResolveTypeUnknown(ResolveError):
    """The query matches no known pattern and no explicit type was given."""


class ResolveAmbiguous(ResolveError):
    """More than one candidate matched where a unique answer was required."""


class CacheIOError(ProdCliError):
    """Cache storage failure. Never escapes a cache's public methods."""


class BatchValidationError(ProdCliError):
    """Raised when a batch request is malformed."""

    def __init__(self, message: str, problems: Optional[Sequence[str]] = None):
        super().__init__(message)
        self.problems = list(problems or [])
