"""Interface for presenting results to the user.

Allows different UI implementations (rich console, plain JSON) behind the
command handler.
"""

import abc
from typing import Any, Dict, List, Optional, Sequence

from prodcli.domain.models.common import CacheStats
from prodcli.domain.models.resolve import DetectionResult, ResolveResult


class UserInterface(abc.ABC):
    """Abstract Base Class for user interaction."""

    @abc.abstractmethod
    def display_error(self, error_message: str, **kwargs: Any) -> None:
        """Displays an error message to the user.

        Args:
            error_message: The error message string.
            **kwargs: Additional arguments, e.g. ``suggestions`` or ``payload``.
        """
        pass

    @abc.abstractmethod
    def display_warning(self, warning_message: str, **kwargs: Any) -> None:
        pass

    @abc.abstractmethod
    def display_info(self, info_message: str, **kwargs: Any) -> None:
        pass

    @abc.abstractmethod
    def display_resolve_results(self, results: Sequence[ResolveResult], **kwargs: Any) -> None:
        """Displays resolver candidates for one query."""
        pass

    @abc.abstractmethod
    def display_ids(self, ids: List[str]) -> None:
        """Prints bare ids, one per line (quiet mode)."""
        pass

    @abc.abstractmethod
    def display_detection(self, query: str, detection: Optional[DetectionResult]) -> None:
        """Displays the outcome of type detection (None when no pattern matched)."""
        pass

    @abc.abstractmethod
    def display_cache_stats(self, stats: Dict[str, CacheStats], **kwargs: Any) -> None:
        pass

    @abc.abstractmethod
    def display_json(self, payload: Any) -> None:
        pass
