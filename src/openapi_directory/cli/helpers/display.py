"""
Display helper functions for CLI commands.
"""

from typing import Any, Dict, List

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from openapi_directory.core.models import CustomSpecEntry, PaginatedResults, SecurityScanResult, Severity

console = Console()

SEVERITY_STYLES = {
    Severity.CRITICAL: "bold red",
    Severity.HIGH: "red",
    Severity.MEDIUM: "yellow",
    Severity.LOW: "dim",
}


def format_size(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size / (1024 * 1024):.1f} MB"


def show_spec_table(rows: List[Dict[str, Any]]) -> None:
    """Render ImportManager.list_specs() rows."""
    table = Table(
        title=f"Custom Specs ({len(rows)} total)",
        show_header=True,
        header_style="bold cyan",
        title_style="bold cyan",
    )
    table.add_column("ID", style="green", no_wrap=True)
    table.add_column("Title", style="white")
    table.add_column("Format", style="blue")
    table.add_column("Size", style="dim", justify="right")
    table.add_column("Issues", justify="right")
    table.add_column("Imported", style="dim")

    for row in rows:
        issues = row["security_issues"]
        table.add_row(
            row["id"],
            row["title"],
            row["format"],
            format_size(row["file_size"]),
            f"[yellow]{issues}[/yellow]" if issues else "0",
            row["imported"][:10],
        )

    console.print("")
    console.print(table)
    console.print("")


def show_spec_details(spec: CustomSpecEntry) -> None:
    lines = [
        f"[bold cyan]ID:[/bold cyan] {spec.id}",
        f"[bold cyan]Title:[/bold cyan] {spec.title}",
        f"[bold cyan]Version:[/bold cyan] {spec.version}",
        f"[bold cyan]Format:[/bold cyan] {spec.original_format.value}",
        f"[bold cyan]Source:[/bold cyan] {spec.source_type.value} {spec.source_path}",
        f"[bold cyan]Imported:[/bold cyan] {spec.imported}",
        f"[bold cyan]Last modified:[/bold cyan] {spec.last_modified}",
        f"[bold cyan]Size:[/bold cyan] {format_size(spec.file_size)}",
    ]
    if spec.description:
        lines.append(f"\n{spec.description}")
    console.print(Panel("\n".join(lines), title=spec.name, border_style="cyan"))

    if spec.security_scan is not None:
        show_scan_summary(spec.security_scan)


def show_scan_summary(scan: SecurityScanResult) -> None:
    """One line per severity plus the issue list."""
    if not scan.issues:
        console.print("[green]No security issues found[/green]")
        return

    table = Table(title="Security Issues", show_header=True, header_style="bold cyan")
    table.add_column("Severity")
    table.add_column("Rule", style="blue")
    table.add_column("Location", style="dim")
    table.add_column("Message")

    for issue in scan.issues:
        style = SEVERITY_STYLES[issue.severity]
        table.add_row(
            f"[{style}]{issue.severity.value}[/{style}]",
            issue.rule_id,
            issue.location,
            issue.message,
        )
    console.print(table)

    summary = scan.summary
    console.print(
        f"[dim]critical: {summary.critical}  high: {summary.high}  "
        f"medium: {summary.medium}  low: {summary.low}[/dim]"
    )


def show_results_page(results: PaginatedResults, title: str) -> None:
    """Render a page of summary rows with its pagination footer."""
    page = results.pagination
    if not results.results:
        console.print("[yellow]No APIs found[/yellow]")
        return

    table = Table(
        title=f"{title} ({page.total_results} total)",
        show_header=True,
        header_style="bold cyan",
        title_style="bold cyan",
    )
    table.add_column("ID", style="green", no_wrap=True)
    table.add_column("Title", style="white")
    table.add_column("Provider", style="blue")
    table.add_column("Version", style="dim")

    for row in results.results:
        table.add_row(row.id, row.title, row.provider, row.preferred)

    console.print(table)
    console.print(f"[dim]Page {page.page} of {max(page.total_pages, 1)}[/dim]")


def show_mapping(data: Dict[str, Any], title: str) -> None:
    table = Table(title=title, show_header=False)
    table.add_column("Key", style="bold cyan")
    table.add_column("Value")
    for key, value in data.items():
        table.add_row(str(key), str(value))
    console.print(table)
