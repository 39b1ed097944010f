"""
Error handling utilities for CLI commands.
"""

import functools
import sys

from rich.console import Console
from rich.panel import Panel

from openapi_directory.core.exceptions import DirectoryError, SecurityBlockedError
from openapi_directory.utils.logging import get_logger

console = Console()
logger = get_logger(__name__)


def handle_errors(func):
    """Decorator to render directory errors and exit non-zero."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except KeyboardInterrupt:
            console.print("\n[yellow]Operation cancelled by user[/yellow]")
            sys.exit(1)
        except SecurityBlockedError as e:
            console.print(Panel(e.report, title="[red]Import blocked[/red]", border_style="red"))
            console.print(f"[red]Error: {e.message.splitlines()[0]}[/red]")
            sys.exit(1)
        except DirectoryError as e:
            logger.debug(f"{e} ({e.to_dict()})")
            console.print(f"[red]Error: {e.message}[/red]")
            if e.user_message and e.user_message != e.message:
                console.print(f"[dim]{e.user_message}[/dim]")
            sys.exit(1)
        except Exception as e:
            logger.debug("Unhandled CLI error", exc_info=True)
            console.print(f"[red]Error: {e}[/red]")
            console.print("[dim]Use --debug for more details[/dim]")
            sys.exit(1)

    return wrapper
