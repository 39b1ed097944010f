"""
Custom spec management commands for the OpenAPI directory CLI.
"""

import asyncio
import json
from typing import Optional

import click
from rich.console import Console

from openapi_directory.cli.helpers import (
    format_size,
    handle_errors,
    show_mapping,
    show_scan_summary,
    show_spec_details,
    show_spec_table,
)

console = Console()


def specs_commands(cli_context):
    """Add custom spec commands to the CLI."""

    @click.command("import")
    @click.argument("source")
    @click.option("--name", "-n", help="Spec name (derived from the source by default)")
    @click.option("--version", "spec_version", help="Spec version (info.version by default)")
    @click.option("--skip-security", is_flag=True, help="Skip the security scan")
    @click.option("--strict", is_flag=True, help="Also block medium and high severity issues")
    @handle_errors
    def import_cmd(source: str, name: Optional[str], spec_version: Optional[str],
                   skip_security: bool, strict: bool):
        """Import an OpenAPI spec from a file path or URL."""
        importer = cli_context.get_importer()

        result = asyncio.run(importer.import_spec(
            source,
            name=name,
            version=spec_version,
            skip_security=skip_security,
            strict_security=strict,
        ))

        console.print(f"[green]✅ {result.message}[/green]")
        console.print(f"[dim]ID: {result.spec_id}[/dim]")
        for warning in result.warnings:
            console.print(f"[yellow]⚠ {warning}[/yellow]")
        if result.security_scan is not None and result.security_scan.issues:
            show_scan_summary(result.security_scan)

    @click.command("list")
    @click.option(
        "--output-format", "-o",
        type=click.Choice(["table", "json"], case_sensitive=False),
        default="table",
        help="Output format"
    )
    @handle_errors
    def list_cmd(output_format: str):
        """List imported custom specs."""
        rows = cli_context.get_importer().list_specs()

        if output_format == "json":
            click.echo(json.dumps(rows, indent=2))
            return

        if not rows:
            console.print("[yellow]No custom specs imported[/yellow]")
            console.print("[dim]💡 Import one with:[/dim]")
            console.print("[dim]   [cyan]openapi-directory import ./openapi.yaml[/cyan][/dim]")
            return

        show_spec_table(rows)

    @click.command("show")
    @click.argument("spec_id")
    @handle_errors
    def show(spec_id: str):
        """Show details of a custom spec (custom:name:version or name:version)."""
        spec = cli_context.get_importer().get_spec_details(spec_id)
        if spec is None:
            console.print(f"[red]Spec '{spec_id}' not found[/red]")
            raise SystemExit(1)
        show_spec_details(spec)

    @click.command("remove")
    @click.argument("spec_id")
    @click.option("--version", "spec_version", help="Version, when SPEC_ID is a bare name")
    @handle_errors
    def remove(spec_id: str, spec_version: Optional[str]):
        """Remove a custom spec and its stored file."""
        removed = asyncio.run(cli_context.get_importer().remove_spec(spec_id, spec_version))
        console.print(f"[green]✅ Successfully removed {removed}[/green]")

    @click.command("validate")
    @click.argument("source")
    @handle_errors
    def validate(source: str):
        """Check that a spec parses and validates without importing it."""
        result = asyncio.run(cli_context.get_importer().quick_validate(source))

        for warning in result.warnings:
            console.print(f"[yellow]⚠ {warning}[/yellow]")

        if not result.valid:
            for error in result.errors:
                console.print(f"[red]✗ {error}[/red]")
            raise SystemExit(1)

        console.print(f"[green]✅ Valid OpenAPI {result.version} specification[/green]")

    @click.command("scan")
    @click.argument("spec_id")
    @handle_errors
    def scan(spec_id: str):
        """Re-run the security scan on an imported spec."""
        importer = cli_context.get_importer()
        result = asyncio.run(importer.rescan_security(spec_id))
        console.print(importer.processor.scanner.generate_report(result))

    @click.command("integrity")
    @click.option("--repair", is_flag=True, help="Remove broken entries and fix sizes")
    @handle_errors
    def integrity(repair: bool):
        """Check the manifest against the stored spec files."""
        importer = cli_context.get_importer()
        report = importer.validate_integrity()

        if report["valid"]:
            console.print("[green]✅ Manifest is consistent[/green]")
            return

        for issue in report["issues"]:
            console.print(f"[yellow]⚠ {issue}[/yellow]")

        if not repair:
            console.print("[dim]Run with --repair to fix these issues[/dim]")
            raise SystemExit(1)

        outcome = importer.repair_integrity()
        for line in outcome["repaired"]:
            console.print(f"[green]✓ {line}[/green]")
        for line in outcome["failed"]:
            console.print(f"[red]✗ {line}[/red]")
        if outcome["failed"]:
            raise SystemExit(1)

    @click.command("stats")
    @handle_errors
    def stats():
        """Show custom spec storage statistics."""
        data = cli_context.get_importer().get_stats()
        show_mapping({
            "Total specs": data["total_specs"],
            "Total size": format_size(data["total_size"]),
            "JSON / YAML": f"{data['by_format']['json']} / {data['by_format']['yaml']}",
            "File / URL": f"{data['by_source']['file']} / {data['by_source']['url']}",
            "Last updated": data["last_updated"],
        }, "Custom Spec Storage")

    return [import_cmd, list_cmd, show, remove, validate, scan, integrity, stats]
