# ABOUTME: The `bibliomerge lookup` command: aggregate and reconcile metadata for one work.
# ABOUTME: Queries Open Library and any EPUBs given, then prints consensus, preview and conflicts.

import asyncio
import logging
from pathlib import Path

import click
from rich.console import Console

from bibliomerge.cli.options import epub_option, min_providers_option, offline_option, timeout_option
from bibliomerge.cli.report import render_lookup
from bibliomerge.core.lookup import LookupResult, LookupService, build_providers
from bibliomerge.formats.epub import EpubReadError, read_epub_metadata
from bibliomerge.metadata.aggregator import AggregatorOptions, InsufficientProvidersError
from bibliomerge.metadata.cleanup import query_from_record
from bibliomerge.metadata.http import BibliomergeHttpClient
from bibliomerge.metadata.provider import MultiCriteriaQuery

logger = logging.getLogger(__name__)

console = Console()


def _create_http_client() -> BibliomergeHttpClient:
    """Create the HTTP client used by online providers."""
    return BibliomergeHttpClient()


async def _run_lookup(
    query: str | MultiCriteriaQuery,
    epub_paths: tuple[Path, ...],
    offline: bool,
    options: AggregatorOptions,
) -> LookupResult:
    if offline:
        service = LookupService(build_providers(epub_paths=epub_paths), options=options)
        return await service.lookup(query)

    async with _create_http_client() as http_client:
        providers = build_providers(http_client=http_client, epub_paths=epub_paths)
        service = LookupService(providers, options=options)
        return await service.lookup(query)


def _query_from_epub(path: Path) -> MultiCriteriaQuery:
    record = read_epub_metadata(path)
    query = query_from_record(record)
    logger.info("Built query from %s: %s", path.name, query)
    return query


@click.command()
@click.argument("query", required=False)
@epub_option
@offline_option
@timeout_option
@min_providers_option
@click.option(
    "--providers/--no-providers",
    "show_providers",
    default=False,
    help="Show per-provider status and timing.",
)
@click.option(
    "--conflicts/--no-conflicts",
    "show_conflicts",
    default=True,
    help="Show the conflict report.",
)
def lookup(
    query: str | None,
    epub_paths: tuple[Path, ...],
    offline: bool,
    timeout: float,
    min_providers: int,
    show_providers: bool,
    show_conflicts: bool,
) -> None:
    """Look up a work by ISBN or title and reconcile what every source reports.

    Without QUERY, the first --epub file's own metadata is used as the query.
    """
    if offline and not epub_paths:
        raise click.UsageError("--offline needs at least one --epub file.")

    lookup_query: str | MultiCriteriaQuery
    if query:
        lookup_query = query
    elif epub_paths:
        try:
            lookup_query = _query_from_epub(epub_paths[0])
        except EpubReadError as exc:
            console.print(f"[red]Error:[/red] {exc}")
            raise SystemExit(1) from exc
    else:
        raise click.UsageError("Give a QUERY or at least one --epub file.")

    options = AggregatorOptions(timeout=timeout, min_providers=min_providers)
    try:
        result = asyncio.run(_run_lookup(lookup_query, epub_paths, offline, options))
    except InsufficientProvidersError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        for name, error in exc.errors.items():
            console.print(f"  [dim]{name}: {error}[/dim]")
        raise SystemExit(1) from exc

    if not result.aggregated.results:
        console.print("[yellow]No results found.[/yellow]")
        return

    render_lookup(console, result, show_providers=show_providers, show_conflicts=show_conflicts)
