"""
Directory query commands for the OpenAPI directory CLI.
"""

import asyncio
import json
from typing import Optional

import click
from rich.console import Console

from openapi_directory.cli.helpers import handle_errors, show_mapping, show_results_page

console = Console()


def directory_commands(cli_context):
    """Add merged directory query commands to the CLI."""

    def run(query):
        """Run an aggregator query and flush the cache afterwards."""
        aggregator = cli_context.get_aggregator()

        async def runner():
            try:
                return await query(aggregator)
            finally:
                await aggregator.cache.close()

        return asyncio.run(runner())

    @click.command()
    @click.argument("query")
    @click.option("--provider", "-p", help="Only APIs whose id contains this provider")
    @click.option("--page", type=int, default=1, help="Page number")
    @click.option("--limit", "-l", type=int, default=20, help="Results per page (max 50)")
    @handle_errors
    def search(query: str, provider: Optional[str], page: int, limit: int):
        """Search APIs across all sources."""
        results = run(lambda agg: agg.search_apis(query, provider, page, limit))
        show_results_page(results, f"Search results for '{query}'")

    @click.command("apis")
    @click.option("--page", type=int, default=1, help="Page number")
    @click.option("--limit", "-l", type=int, default=50, help="Results per page")
    @handle_errors
    def apis(page: int, limit: int):
        """List APIs from all sources, one page at a time."""
        results = run(lambda agg: agg.get_paginated_apis(page, limit))
        show_results_page(results, "APIs")

    @click.command()
    @handle_errors
    def providers():
        """List all API providers."""
        data = run(lambda agg: agg.get_providers())
        names = data["data"]
        if not names:
            console.print("[yellow]No providers found[/yellow]")
            return
        for name in names:
            console.print(name)
        console.print(f"[dim]{len(names)} providers[/dim]")

    @click.command()
    @click.option("--json", "as_json", is_flag=True, help="Print raw JSON")
    @handle_errors
    def metrics(as_json: bool):
        """Show directory metrics (endpoint count is an estimate)."""
        data = run(lambda agg: agg.get_metrics()).model_dump(by_alias=True)
        if as_json:
            click.echo(json.dumps(data, indent=2))
            return
        show_mapping(data, "Directory Metrics")

    @click.command()
    @handle_errors
    def summary():
        """Show totals, popular APIs and recent updates."""
        data = run(lambda agg: agg.get_api_summary())
        show_mapping({
            "Total APIs": data.total_apis,
            "Total providers": data.total_providers,
            "Categories": ", ".join(data.categories) or "-",
        }, "Directory Summary")

        if data.popular_apis:
            console.print("\n[bold cyan]Popular APIs[/bold cyan]")
            for api in data.popular_apis:
                console.print(f"  • [green]{api.id}[/green] {api.title}")
        if data.recent_updates:
            console.print("\n[bold cyan]Recently updated[/bold cyan]")
            for api in data.recent_updates:
                console.print(f"  • [green]{api.id}[/green] {api.updated}")

    @click.command("provider-stats")
    @click.argument("provider")
    @handle_errors
    def provider_stats(provider: str):
        """Show version statistics for one provider."""
        stats = run(lambda agg: agg.get_provider_stats(provider))
        show_mapping({
            "APIs": stats.total_apis,
            "Versions": stats.total_versions,
            "Latest update": stats.latest_update,
            "Oldest API": stats.oldest_api or "-",
            "Newest API": stats.newest_api or "-",
        }, f"Provider {provider}")

    return [search, apis, providers, metrics, summary, provider_stats]
