"""Command Handler: Orchestrates CLI command execution.

Receives commands from the main entry point (main.py) and delegates the work
to the ResourceResolver, the BatchService and the caches. Every handler
returns a process exit code; domain errors are rendered, not raised.
"""

import logging
from typing import List, Optional

from prodcli.core.services.batch_service import MAX_BATCH_SIZE, BatchOperation, BatchService
from prodcli.core.services.resolver_service import ResourceResolver, detect_type, format_suggestions
from prodcli.domain.errors import BatchValidationError, ProdCliError, ResolveError
from prodcli.domain.interfaces.cache import QueryCacheService, ResolveCacheStore
from prodcli.domain.interfaces.user_interface import UserInterface
from prodcli.domain.models.resolve import ResolveResult

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2


class CommandHandler:
    """Handles incoming commands and delegates to appropriate services."""

    def __init__(
        self,
        resolver: Optional[ResourceResolver],
        batch_service: BatchService,
        query_cache: QueryCacheService,
        resolve_cache: Optional[ResolveCacheStore],
        ui: UserInterface,
        cache_location: Optional[str] = None,
    ):
        """Initializes the CommandHandler.

        Args:
            resolver: Resolver bound to the current tenant; None when no
                credentials are configured (only offline commands work then).
            batch_service: Runs multi-query resolution concurrently.
            query_cache: TTL response cache (for status/clear).
            resolve_cache: Resolver answer cache (for status/clear).
            ui: Output renderer.
            cache_location: Cache root shown by 'cache status'.
        """
        self.resolver = resolver
        self.batch_service = batch_service
        self.query_cache = query_cache
        self.resolve_cache = resolve_cache
        self.ui = ui
        self.cache_location = cache_location

    def _report_error(self, error: BaseException) -> None:
        if isinstance(error, ResolveError):
            self.ui.display_error(
                str(error),
                suggestions=format_suggestions(error.suggestions),
                payload=error.to_dict(),
            )
        else:
            if not isinstance(error, ProdCliError):
                logger.error(f"Unexpected error during command: {error}", exc_info=error)
            self.ui.display_error(str(error), payload={"error": type(error).__name__, "message": str(error)})

    async def handle_resolve(
        self,
        queries: List[str],
        resource_type: Optional[str] = None,
        project_id: Optional[str] = None,
        first: bool = False,
        quiet: bool = False,
        exact: bool = False,
    ) -> int:
        """Handles the 'resolve' command.

        In quiet mode each query must yield exactly one id (``--first`` picks the
        top candidate); ids are printed one per line in query order.
        """
        if not queries:
            self.ui.display_error("Query argument is required")
            return EXIT_USAGE
        if self.resolver is None:
            self.ui.display_error("No API credentials configured. Set PRODUCTIVE_API_TOKEN and PRODUCTIVE_ORG_ID.")
            return EXIT_USAGE
        logger.info(f"Handling 'resolve' for {len(queries)} query(ies), type={resource_type or 'auto'}")

        def make_operation(query: str) -> BatchOperation:
            async def run() -> List[ResolveResult]:
                return await self.resolver.resolve(
                    query,
                    resource_type=resource_type,
                    scope_id=project_id,
                    want_first=first,
                    want_exact_only=exact,
                    require_unique=quiet,
                )
            return BatchOperation(name=query, run=run)

        exit_code = EXIT_OK
        quiet_ids: List[str] = []
        try:
            for start in range(0, len(queries), MAX_BATCH_SIZE):
                chunk = queries[start:start + MAX_BATCH_SIZE]
                report = await self.batch_service.run([make_operation(q) for q in chunk])
                for outcome in report.results:
                    if not outcome.ok:
                        exit_code = EXIT_FAILURE
                        self._report_error(outcome.exception or ProdCliError(outcome.error))
                    elif quiet:
                        quiet_ids.extend(r.id for r in outcome.data)
                    else:
                        self.ui.display_resolve_results(
                            outcome.data, title=outcome.name if len(queries) > 1 else None
                        )
        except BatchValidationError as e:
            self.ui.display_error(str(e), suggestions=e.problems)
            return EXIT_USAGE

        if quiet_ids:
            self.ui.display_ids(quiet_ids)
        return exit_code

    def handle_detect(self, query: str) -> int:
        """Handles 'resolve-detect': pattern detection only, no network."""
        self.ui.display_detection(query, detect_type(query))
        return EXIT_OK

    async def handle_cache_status(self) -> int:
        stats = {"queries": await self.query_cache.stats()}
        if self.resolve_cache is not None:
            stats["resolve"] = self.resolve_cache.stats()
        self.ui.display_cache_stats(stats, location=self.cache_location)
        return EXIT_OK

    async def handle_cache_clear(self, pattern: Optional[str] = None, include_resolve: bool = False) -> int:
        """Handles 'cache clear [pattern]'."""
        logger.info(f"Handling 'cache clear' (pattern={pattern!r}, resolve={include_resolve})")
        removed = await self.query_cache.invalidate(pattern)
        if pattern:
            self.ui.display_info(f"Cache cleared for pattern: {pattern} ({removed} entries)")
        else:
            self.ui.display_info(f"Cache cleared ({removed} entries)")
        if include_resolve:
            if self.resolve_cache is None:
                self.ui.display_warning("Resolve cache is not available; nothing else cleared.")
            else:
                count = self.resolve_cache.invalidate()
                self.ui.display_info(f"Resolve cache cleared ({count} entries)")
        return EXIT_OK
