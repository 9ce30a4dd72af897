"""Main entry point for the prodcli application.

Sets up the Typer CLI application, performs dependency injection (Composition Root),
defines CLI commands, and delegates execution to the CommandHandler.
"""

import asyncio
import logging
import sys
from typing import Any, Coroutine, Dict, List, Optional

import httpx
import typer
from typing_extensions import Annotated

from prodcli import __version__
from prodcli.core.command_handler import CommandHandler
from prodcli.core.services.batch_service import BatchService
from prodcli.core.services.resolver_service import ResourceResolver
from prodcli.domain.models.resources import ResourceType
from prodcli.infrastructure.api.productive_client import DEFAULT_TIMEOUT_SECONDS, ProductiveApiClient
from prodcli.infrastructure.cache.caching_service import FileQueryCache
from prodcli.infrastructure.cache.resolve_cache import DiskResolveCache
from prodcli.infrastructure.cli.display import ConsoleDisplay
from prodcli.infrastructure.config.settings import (
    get_api_token,
    get_base_url,
    get_cache_root,
    get_config,
    get_org_id,
    get_rate_limit_settings,
    load_configuration,
)
from prodcli.infrastructure.monitoring.logger_setup import configure_logging
from prodcli.infrastructure.resilience.api_retry import ApiRetryService
from prodcli.infrastructure.resilience.rate_limiter import RateLimiter, configs_from_settings

logger = logging.getLogger(__name__)

OUTPUT_FORMATS = ("human", "json")


def create_dependencies(
    no_cache: bool = False,
    refresh: bool = False,
    verbose: bool = False,
) -> Dict[str, Any]:
    """Creates and wires up all dependencies for the application.

    This acts as the Composition Root. The resolver (and the HTTP client behind
    it) is only built when API credentials are configured; cache and detect
    commands work without them. ``--no-cache`` only bypasses the caches for
    lookups; the cache commands still manage the stores.
    """
    load_configuration()
    configure_logging(verbose=verbose)
    logger.info("Initializing application dependencies...")

    dependencies: Dict[str, Any] = {}
    dependencies["ui"] = ConsoleDisplay(no_color=bool(get_config("no_color", False)))

    cache_root = get_cache_root()
    dependencies["query_cache"] = FileQueryCache(cache_root / "queries")
    dependencies["resolve_cache"] = DiskResolveCache(cache_root / "resolve")

    rate_limiter = RateLimiter(configs_from_settings(get_rate_limit_settings()).values())
    dependencies["rate_limiter"] = rate_limiter
    dependencies["api_retry_service"] = ApiRetryService(rate_limiter=rate_limiter)
    dependencies["batch_service"] = BatchService()

    api_token = get_api_token()
    org_id = get_org_id()
    if api_token and org_id:
        http_client = httpx.AsyncClient(timeout=DEFAULT_TIMEOUT_SECONDS)
        dependencies["http_client"] = http_client
        dependencies["api_client"] = ProductiveApiClient(
            http_client=http_client,
            retry_service=dependencies["api_retry_service"],
            api_token=str(api_token),
            org_id=str(org_id),
            query_cache=dependencies["query_cache"],
            base_url=get_base_url(),
            use_cache=not no_cache,
            refresh=refresh,
        )
        dependencies["resolver"] = ResourceResolver(
            api=dependencies["api_client"],
            cache=None if no_cache else dependencies["resolve_cache"],
            tenant_id=str(org_id),
        )
    else:
        logger.info("API token or organization id not configured; resolver disabled.")
        dependencies["http_client"] = None
        dependencies["resolver"] = None

    dependencies["command_handler"] = CommandHandler(
        resolver=dependencies["resolver"],
        batch_service=dependencies["batch_service"],
        query_cache=dependencies["query_cache"],
        resolve_cache=dependencies["resolve_cache"],
        ui=dependencies["ui"],
        cache_location=str(cache_root),
    )
    logger.info("All dependencies initialized successfully.")
    return dependencies


async def _shutdown(dependencies: Dict[str, Any]) -> None:
    await dependencies["query_cache"].wait_for_sweeps()
    http_client = dependencies.get("http_client")
    if http_client is not None:
        await http_client.aclose()


def run_async(dependencies: Dict[str, Any], coro: Coroutine[Any, Any, int]) -> int:
    """Runs a handler coroutine and releases async resources in the same loop."""

    async def runner() -> int:
        try:
            return await coro
        finally:
            await _shutdown(dependencies)

    try:
        return asyncio.run(runner())
    except Exception as e:
        logger.error(f"Error executing async command: {e}", exc_info=True)
        dependencies["ui"].display_error(f"Command execution failed: {e}")
        return 1
    finally:
        dependencies["resolve_cache"].close()


def _handler(ctx: typer.Context, output_format: Optional[str] = None) -> CommandHandler:
    dependencies = ctx.obj
    if output_format is not None:
        if output_format not in OUTPUT_FORMATS:
            raise typer.BadParameter(f"must be one of: {', '.join(OUTPUT_FORMATS)}", param_hint="--format")
        dependencies["ui"].output_format = output_format
    return dependencies["command_handler"]


app = typer.Typer(
    name="prodcli",
    help="prodcli: Productive.io command line client with rate limiting, caching and id resolution.",
    add_completion=False,
    no_args_is_help=True,
)
cache_app = typer.Typer(help="Inspect and clear the local response cache.", no_args_is_help=True)
app.add_typer(cache_app, name="cache")

FormatOption = Annotated[str, typer.Option("--format", "-f", help="Output format: human or json.")]


@app.callback()
def main_callback(
    ctx: typer.Context,
    no_cache: Annotated[bool, typer.Option("--no-cache", help="Bypass the local cache for this invocation.")] = False,
    refresh: Annotated[bool, typer.Option("--refresh", help="Ignore cached reads but store fresh responses.")] = False,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable debug logging on stderr.")] = False,
):
    """Productive.io CLI."""
    if ctx.obj is None:
        ctx.obj = create_dependencies(no_cache=no_cache, refresh=refresh, verbose=verbose)


@app.command()
def resolve(
    ctx: typer.Context,
    queries: Annotated[List[str], typer.Argument(help="Emails, project/deal numbers, names or numeric ids.")],
    resource_type: Annotated[
        Optional[str],
        typer.Option("--type", "-t", help="Resource type: person, project, company, deal, service."),
    ] = None,
    project: Annotated[Optional[str], typer.Option("--project", help="Project id that scopes service lookups.")] = None,
    first: Annotated[bool, typer.Option("--first", help="Return only the first match.")] = False,
    quiet: Annotated[bool, typer.Option("--quiet", "-q", help="Print ids only, one per line.")] = False,
    exact: Annotated[bool, typer.Option("--exact", help="Reject fuzzy matches.")] = False,
    output_format: FormatOption = "human",
):
    """Resolve human-friendly identifiers to Productive ids."""
    if resource_type is not None:
        try:
            ResourceType.parse(resource_type)
        except ValueError as e:
            raise typer.BadParameter(str(e), param_hint="--type")
    handler = _handler(ctx, output_format)
    code = run_async(
        ctx.obj,
        handler.handle_resolve(
            queries, resource_type=resource_type, project_id=project, first=first, quiet=quiet, exact=exact
        ),
    )
    raise typer.Exit(code)


@app.command(name="resolve-detect")
def resolve_detect(
    ctx: typer.Context,
    query: Annotated[str, typer.Argument(help="Value to classify.")],
    output_format: FormatOption = "human",
):
    """Show which resource type a value looks like, without calling the API."""
    handler = _handler(ctx, output_format)
    raise typer.Exit(handler.handle_detect(query))


@cache_app.command("status")
def cache_status(ctx: typer.Context, output_format: FormatOption = "human"):
    """Show cache entry counts, size and age."""
    handler = _handler(ctx, output_format)
    raise typer.Exit(run_async(ctx.obj, handler.handle_cache_status()))


@cache_app.command("clear")
def cache_clear(
    ctx: typer.Context,
    pattern: Annotated[Optional[str], typer.Argument(help="Only drop entries whose endpoint contains this.")] = None,
    include_resolve: Annotated[bool, typer.Option("--resolve", help="Also clear resolved identifiers.")] = False,
):
    """Clear cached responses."""
    handler = _handler(ctx)
    raise typer.Exit(run_async(ctx.obj, handler.handle_cache_clear(pattern, include_resolve)))


@app.command()
def version():
    """Print the prodcli version."""
    typer.echo(__version__)


def cli_entry_point():
    """Function to be called by the script entry point in pyproject.toml."""
    try:
        app()
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == "__main__":
    cli_entry_point()
