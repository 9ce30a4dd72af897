"""Rich-based console rendering for prodcli commands.

Results go to stdout; errors, warnings and info panels go to stderr so that
``-q`` and ``--format json`` output stays pipeable.
"""

import json
import logging
from typing import Any, Dict, List, Optional, Sequence

from rich.box import HEAVY, ROUNDED
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from prodcli.domain.interfaces.user_interface import UserInterface
from prodcli.domain.models.common import CacheStats
from prodcli.domain.models.resolve import DetectionResult, ResolveResult

logger = logging.getLogger(__name__)


def format_bytes(size: int) -> str:
    if size <= 0:
        return "0 B"
    value = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1024 or unit == "GB":
            return f"{value:.1f} {unit}".replace(".0 ", " ")
        value /= 1024
    return f"{size} B"


def format_duration(seconds: int) -> str:
    if seconds < 60:
        return f"{seconds}s"
    if seconds < 3600:
        return f"{seconds // 60}m"
    if seconds < 86400:
        return f"{seconds // 3600}h"
    return f"{seconds // 86400}d"


class ConsoleDisplay(UserInterface):
    """Concrete implementation of UserInterface using the rich library for console output."""

    def __init__(
        self,
        output_format: str = "human",
        console: Optional[Console] = None,
        err_console: Optional[Console] = None,
        no_color: bool = False,
    ):
        """Initializes the rich consoles.

        Args:
            output_format: 'human' for tables, 'json' for machine-readable output.
            console: Console for results (stdout).
            err_console: Console for diagnostics (stderr).
            no_color: Disable styling.
        """
        self.output_format = output_format
        self._console = console or Console(no_color=no_color, highlight=False)
        self._err_console = err_console or Console(stderr=True, no_color=no_color, highlight=False)

    @property
    def console(self) -> Console:
        return self._console

    @property
    def wants_json(self) -> bool:
        return self.output_format == "json"

    def display_error(self, error_message: str, **kwargs: Any) -> None:
        """Displays an error message in a distinct style.

        Args:
            error_message: The error message to display.
            **kwargs: ``suggestions`` (list of strings) and ``payload`` (dict
                printed instead in JSON mode).
        """
        if self.wants_json:
            payload = kwargs.get("payload") or {"error": error_message}
            self.display_json(payload)
            return
        body = Text(error_message, style="white")
        suggestions: List[str] = kwargs.get("suggestions") or []
        if suggestions:
            body.append("\n\nDid you mean:", style="bold")
            for line in suggestions:
                body.append(f"\n  • {line}")
        self._err_console.print(
            Panel(body, title="[bold red]Error[/bold red]", border_style="red", box=HEAVY, padding=(0, 1))
        )

    def display_warning(self, warning_message: str, **kwargs: Any) -> None:
        self._err_console.print(f"[bold yellow]Warning:[/bold yellow] {escape(warning_message)}")

    def display_info(self, info_message: str, **kwargs: Any) -> None:
        if self.wants_json:
            return
        self._err_console.print(f"[cyan]{escape(info_message)}[/cyan]")

    def display_resolve_results(self, results: Sequence[ResolveResult], **kwargs: Any) -> None:
        if self.wants_json:
            self.display_json([r.to_dict() for r in results])
            return
        title = kwargs.get("title")
        table = Table(title=title, box=ROUNDED, border_style="cyan", show_header=True)
        table.add_column("ID", style="bold")
        table.add_column("Type")
        table.add_column("Label")
        table.add_column("Match")
        for result in results:
            table.add_row(
                result.id,
                result.type.value,
                escape(result.label),
                "[green]exact[/green]" if result.exact else "[yellow]fuzzy[/yellow]",
            )
        self.console.print(table)

    def display_ids(self, ids: List[str]) -> None:
        for resource_id in ids:
            self.console.print(resource_id, markup=False, highlight=False, soft_wrap=True)

    def display_detection(self, query: str, detection: Optional[DetectionResult]) -> None:
        if self.wants_json:
            self.display_json({
                "query": query,
                "detected": detection is not None,
                "type": detection.type.value if detection else None,
                "confidence": detection.confidence if detection else None,
                "pattern": detection.pattern if detection else None,
            })
            return
        if detection is None:
            self.console.print(f"[bold]{escape(query)}[/bold]: no pattern detected (numeric ids pass through; otherwise use --type)")
        else:
            self.console.print(
                f"[bold]{escape(query)}[/bold]: {detection.type.value} "
                f"(pattern: {detection.pattern}, confidence: {detection.confidence})"
            )

    def display_cache_stats(self, stats: Dict[str, CacheStats], **kwargs: Any) -> None:
        if self.wants_json:
            self.display_json({
                name: {
                    **values,
                    "size_human": format_bytes(values["size_bytes"]),
                    "oldest_age_human": format_duration(values["oldest_age_seconds"]),
                }
                for name, values in stats.items()
            })
            return
        table = Table(title="Cache Statistics", box=ROUNDED, border_style="cyan")
        table.add_column("Cache")
        table.add_column("Entries", justify="right")
        table.add_column("Size", justify="right")
        table.add_column("Oldest entry", justify="right")
        for name, values in stats.items():
            oldest = format_duration(values["oldest_age_seconds"]) + " ago" if values["entries"] else "-"
            table.add_row(name, str(values["entries"]), format_bytes(values["size_bytes"]), oldest)
        self.console.print(table)
        location = kwargs.get("location")
        if location:
            self.console.print(f"[dim]Location: {location}[/dim]")

    def display_json(self, payload: Any) -> None:
        # Plain print: rich markup must not touch JSON
        self.console.print(json.dumps(payload, indent=2, default=str), markup=False, emoji=False, highlight=False, soft_wrap=True)
