# ABOUTME: Rich rendering of records, consensus, conflicts and previews for the CLI.
# ABOUTME: Pure presentation: takes the core's structured results and prints tables.

from typing import Any

from rich.console import Console
from rich.table import Table

from bibliomerge.core.lookup import LookupResult
from bibliomerge.metadata.aggregator import AggregatedResult
from bibliomerge.metadata.conflicts import ConflictSeverity, ConflictSummary
from bibliomerge.metadata.dates import PublicationDate
from bibliomerge.metadata.preview import MetadataPreview
from bibliomerge.metadata.reconciliation.types import Identifier, Publisher, Series, Subject
from bibliomerge.metadata.types import CoverImage, MetadataRecord, PhysicalDimensions, SeriesInfo

_SEVERITY_STYLE = {
    ConflictSeverity.CRITICAL: "bold red",
    ConflictSeverity.MAJOR: "red",
    ConflictSeverity.MINOR: "yellow",
    ConflictSeverity.INFORMATIONAL: "dim",
}


def _series_text(name: str, volume: float | None) -> str:
    if volume is None:
        return name
    return f"{name} #{volume:g}"


def format_value(value: Any) -> str:
    """Render any record or reconciled value as a short display string."""
    if value is None or value == () or value == "":
        return "[dim]none[/dim]"
    if isinstance(value, tuple | list):
        return ", ".join(format_value(v) for v in value)
    if isinstance(value, PublicationDate):
        if value.raw:
            return value.raw
        return str(value.year) if value.year is not None else "[dim]none[/dim]"
    if isinstance(value, Publisher):
        return value.canonical or value.name
    if isinstance(value, Series | SeriesInfo):
        return _series_text(value.name, value.volume)
    if isinstance(value, Identifier):
        return f"{value.type}={value.normalized or value.value}"
    if isinstance(value, Subject):
        return value.name
    if isinstance(value, CoverImage):
        return value.url
    if isinstance(value, PhysicalDimensions):
        if value.raw:
            return value.raw
        sides = [f"{side:g}" for side in (value.width, value.height, value.depth) if side is not None]
        return f"{' x '.join(sides)} {value.unit}"
    if isinstance(value, float):
        return f"{value:g}"
    return str(value)


def render_record(console: Console, record: MetadataRecord, title: str | None = None) -> None:
    table = Table(title=title or record.id, show_header=False, pad_edge=False)
    table.add_column("Field", style="bold")
    table.add_column("Value")

    table.add_row("Title", record.title or "[dim]unknown[/dim]")
    table.add_row("Authors", format_value(record.authors) if record.authors else "[dim]unknown[/dim]")
    table.add_row("ISBN", format_value(record.isbn))
    table.add_row("Publisher", record.publisher or "[dim]unknown[/dim]")
    table.add_row("Published", record.publication_date or "[dim]unknown[/dim]")
    table.add_row("Language", record.language or "[dim]unknown[/dim]")
    table.add_row("Series", format_value(record.series))
    if record.publication_place:
        table.add_row("Place", record.publication_place)
    if record.page_count is not None:
        table.add_row("Pages", str(record.page_count))
    if record.subjects:
        table.add_row("Subjects", format_value(record.subjects))
    table.add_row("Source", record.provider or record.source)
    table.add_row("Confidence", f"{record.confidence:.2f}")

    console.print(table)


def render_results(console: Console, aggregated: AggregatedResult) -> None:
    table = Table(title="Results")
    table.add_column("#", style="dim", width=3)
    table.add_column("Title", style="bold")
    table.add_column("Author")
    table.add_column("ISBN")
    table.add_column("Sources")
    table.add_column("Conf.", justify="right")

    for index, record in enumerate(aggregated.results, start=1):
        table.add_row(
            str(index),
            record.title or "[dim]unknown[/dim]",
            record.author or "[dim]unknown[/dim]",
            record.isbn[0] if record.isbn else "",
            record.provider or record.source,
            f"{record.confidence:.2f}",
        )
    console.print(table)


def render_providers(console: Console, aggregated: AggregatedResult) -> None:
    table = Table(title="Providers")
    table.add_column("Provider", style="bold")
    table.add_column("Status")
    table.add_column("Records", justify="right")
    table.add_column("Time", justify="right")

    names = [*aggregated.provider_results, *aggregated.errors, *aggregated.timed_out]
    for name in names:
        if name in aggregated.provider_results:
            status = "[green]ok[/green]"
            count = str(len(aggregated.provider_results[name]))
        elif name in aggregated.errors:
            status = f"[red]error:[/red] {aggregated.errors[name]}"
            count = "-"
        else:
            status = "[yellow]timed out[/yellow]"
            count = "-"
        elapsed = aggregated.timing.get(name)
        table.add_row(name, status, count, f"{elapsed:.2f}s" if elapsed is not None else "-")
    console.print(table)


def render_consensus(console: Console, aggregated: AggregatedResult) -> None:
    consensus = aggregated.consensus
    if consensus is None:
        return
    factors = consensus.factors
    console.print(
        f"Consensus: [bold]{consensus.confidence:.3f}[/bold] ({factors.tier}), "
        f"agreement {consensus.agreement_score:.2f}"
    )
    if factors.penalties:
        console.print(f"[dim]Penalties: {', '.join(factors.penalties)}[/dim]")


def render_preview(console: Console, preview: MetadataPreview) -> None:
    table = Table(title=f"Reconciled metadata (confidence {preview.overall_confidence:.2f})")
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_column("Conf.", justify="right")
    table.add_column("Quality")
    table.add_column("Sources")

    for name, field in preview.fields.items():
        marker = " [yellow]![/yellow]" if field.has_conflicts else ""
        table.add_row(
            name + marker,
            format_value(field.value),
            f"{field.confidence:.2f}",
            field.quality.level,
            ", ".join(a.source.name for a in field.sources) or "[dim]-[/dim]",
        )
    console.print(table)

    summary = preview.summary
    console.print(
        f"[dim]{summary.fields_with_data}/{summary.total_fields} fields, "
        f"quality {summary.overall_quality.level}[/dim]"
    )
    for strength in summary.strengths:
        console.print(f"  [green]+[/green] {strength}")
    for weakness in summary.weaknesses:
        console.print(f"  [yellow]-[/yellow] {weakness}")


def render_conflicts(console: Console, summary: ConflictSummary) -> None:
    if not summary.total_conflicts:
        console.print("[green]No conflicts between sources.[/green]")
        return

    table = Table(title=f"Conflicts ({summary.total_conflicts})")
    table.add_column("Field", style="bold")
    table.add_column("Severity")
    table.add_column("Type")
    table.add_column("Explanation")
    table.add_column("Auto", justify="center")

    for conflicts in summary.by_field.values():
        for conflict in conflicts:
            style = _SEVERITY_STYLE[conflict.severity]
            table.add_row(
                conflict.field,
                f"[{style}]{conflict.severity}[/{style}]",
                str(conflict.type),
                conflict.explanation,
                "yes" if conflict.auto_resolvable else "no",
            )
    console.print(table)
    for recommendation in summary.recommendations:
        console.print(f"  [cyan]>[/cyan] {recommendation}")


def render_lookup(
    console: Console,
    result: LookupResult,
    *,
    show_providers: bool = False,
    show_conflicts: bool = True,
) -> None:
    """Print a full lookup report."""
    if show_providers:
        render_providers(console, result.aggregated)
    render_results(console, result.aggregated)
    render_consensus(console, result.aggregated)
    if result.preview is not None:
        render_preview(console, result.preview)
    if show_conflicts and result.conflicts is not None:
        render_conflicts(console, result.conflicts)
