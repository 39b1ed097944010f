"""
Cache maintenance commands for the OpenAPI directory CLI.
"""

import click
from rich.console import Console

from openapi_directory.cli.helpers import format_size, handle_errors, show_mapping

console = Console()


def cache_commands(cli_context):
    """Add cache maintenance commands to the CLI."""

    @click.group()
    def cache():
        """Inspect and clear the persistent cache."""

    @cache.command()
    @handle_errors
    def clear():
        """Remove every cached entry and the cache file."""
        cli_context.get_cache().clear()
        console.print("[green]✅ Cache cleared[/green]")

    @cache.command()
    @handle_errors
    def invalidate():
        """Signal a running server to drop its in-memory cache."""
        if not cli_context.get_cache().create_invalidation_flag():
            console.print("[red]Failed to create the invalidation flag[/red]")
            raise SystemExit(1)
        console.print("[green]✅ Invalidation flag created[/green]")

    @cache.command()
    @handle_errors
    def stats():
        """Show cache statistics."""
        data = cli_context.get_cache().get_stats()
        show_mapping({
            "Enabled": data["enabled"],
            "Keys": data["keys"],
            "Hits": data["hits"],
            "Misses": data["misses"],
            "Key size": format_size(data["ksize"]),
            "Value size": format_size(data["vsize"]),
            "Default TTL": f"{data['ttl_seconds']}s",
            "File": data["cache_file"],
        }, "Cache")

    return [cache]
