# ABOUTME: The `bibliomerge inspect` command for viewing embedded EPUB metadata.
# ABOUTME: Shows the record an EPUB contributes to a lookup and the query built from it.

from pathlib import Path

import click
from rich.console import Console

from bibliomerge.cli.report import render_record
from bibliomerge.formats.epub import EpubReadError, read_epub_metadata
from bibliomerge.metadata.cleanup import clean_record, query_from_record

console = Console()


@click.command()
@click.argument("path", type=click.Path(exists=True, path_type=Path))
def inspect(path: Path) -> None:
    """Show metadata extracted from an EPUB file."""
    try:
        record = read_epub_metadata(path)
    except EpubReadError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise SystemExit(1) from exc

    render_record(console, record, title=path.name)

    cleanup = clean_record(record)
    if cleanup.was_modified:
        console.print(
            f"[yellow]Cleaned:[/yellow] {cleanup.cleaned.title!r}"
            f" by {cleanup.cleaned.author or 'unknown'}"
        )

    query = query_from_record(record)
    if query.isbn:
        console.print(f"[dim]Lookup query: isbn {query.isbn}[/dim]")
    else:
        console.print(f"[dim]Lookup query: title {query.title!r}[/dim]")
