"""
Main CLI interface for the OpenAPI directory.

Manages custom OpenAPI specs and queries the merged directory from the
command line using Click with rich output.
"""

from pathlib import Path
from typing import Optional, Tuple

import click
from rich.console import Console

from openapi_directory import __version__
from openapi_directory.cli.commands.cache import cache_commands
from openapi_directory.cli.commands.directory import directory_commands
from openapi_directory.cli.commands.specs import specs_commands
from openapi_directory.core.cache.store import PersistentCache
from openapi_directory.core.custom_specs.importer import ImportManager
from openapi_directory.core.custom_specs.manifest import ManifestStore
from openapi_directory.core.custom_specs.processor import SpecProcessor
from openapi_directory.core.directory.aggregator import DirectoryAggregator
from openapi_directory.utils.config import Config, reload_config
from openapi_directory.utils.logging import get_logger, setup_logging

console = Console()
logger = get_logger(__name__)


class CLIContext:
    """CLI context for passing state between commands."""

    def __init__(self):
        self.config: Optional[Config] = None
        self.cache: Optional[PersistentCache] = None
        self.manifest: Optional[ManifestStore] = None
        self.importer: Optional[ImportManager] = None
        self.aggregator: Optional[DirectoryAggregator] = None

    def configure(self, config_files: Tuple[str, ...] = (), **overrides) -> Config:
        """Load configuration and drop any components built from an older one."""
        files = list(config_files) if config_files else None
        self.config = reload_config(config_files=files, **overrides)
        self.cache = None
        self.manifest = None
        self.importer = None
        self.aggregator = None
        return self.config

    def get_config(self) -> Config:
        if self.config is None:
            return self.configure()
        return self.config

    def get_cache(self) -> PersistentCache:
        if self.cache is None:
            self.cache = PersistentCache.from_config(self.get_config())
        return self.cache

    def get_manifest(self) -> ManifestStore:
        if self.manifest is None:
            self.manifest = ManifestStore.at(self.get_config().get_cache_dir())
        return self.manifest

    def get_importer(self) -> ImportManager:
        if self.importer is None:
            self.importer = ImportManager(
                self.get_manifest(),
                SpecProcessor.from_config(self.get_config()),
                on_change=self.on_specs_changed,
            )
        return self.importer

    def get_aggregator(self) -> DirectoryAggregator:
        if self.aggregator is None:
            self.aggregator = DirectoryAggregator.from_config(
                self.get_config(), self.get_cache(), self.get_manifest()
            )
        return self.aggregator

    async def on_specs_changed(self) -> None:
        """Drop local results and tell a running server to drop its cache."""
        self.get_aggregator().invalidate_custom_spec_caches()
        self.get_cache().create_invalidation_flag()


# Global CLI context
cli_context = CLIContext()


@click.group()
@click.option(
    "--debug", "-d",
    is_flag=True,
    help="Enable debug logging"
)
@click.option(
    "--verbose", "-v",
    is_flag=True,
    help="Enable verbose output"
)
@click.option(
    "--cache-dir",
    type=click.Path(file_okay=False, dir_okay=True),
    help="Directory holding the cache and custom specs"
)
@click.option(
    "--config", "config_files",
    multiple=True,
    type=click.Path(exists=True, dir_okay=False),
    help="TOML configuration file (repeatable)"
)
@click.version_option(version=__version__, prog_name="OpenAPI Directory")
def cli(debug: bool, verbose: bool, cache_dir: Optional[str], config_files: Tuple[str, ...]):
    """
    Manage custom OpenAPI specs and query the merged API directory.

    Custom specs are imported from files or URLs, scanned for unsafe
    content and merged with the public registries.
    """
    overrides = {"cache_dir": str(Path(cache_dir).expanduser())} if cache_dir else {}
    if debug:
        overrides["debug"] = True
    config = cli_context.configure(config_files, **overrides)

    console_level = "DEBUG" if debug else "INFO" if verbose else config.logging.console_level
    setup_logging(
        enabled=config.logging.enabled,
        level=config.logging.level,
        console_level=console_level,
        log_file=config.get_log_file(),
        format_type=config.logging.format_type,
        enable_rich=config.logging.enable_rich,
        max_bytes=config.logging.max_bytes,
        backup_count=config.logging.backup_count,
        suppress_http=config.logging.suppress_http,
        force=True,
    )


def register_commands():
    """Register all command modules with the main CLI."""
    for cmd in specs_commands(cli_context):
        cli.add_command(cmd)

    for cmd in directory_commands(cli_context):
        cli.add_command(cmd)

    for cmd in cache_commands(cli_context):
        cli.add_command(cmd)


# Register all commands
register_commands()


def main():
    """Main CLI entry point."""
    cli()


if __name__ == "__main__":
    main()
