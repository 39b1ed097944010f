"""
Logging infrastructure for the OpenAPI directory.

Configures the root logger once with a Rich console handler and an
optional rotating log file. Every module obtains its logger through
``get_logger(__name__)``.
"""

import json
import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Optional, Union

from rich.console import Console
from rich.logging import RichHandler

# httpx logs every request at INFO
HTTP_LOGGERS = ("httpx", "httpcore", "h11")

TEXT_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
FILE_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(module)s:%(funcName)s:%(lineno)d | %(message)s"

_RESERVED_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime", "taskName"}

_configured = False


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        # Fields passed through ``extra=``, e.g. spec_id
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_entry[key] = value

        return json.dumps(log_entry, default=str)


def _to_level(level: Union[str, int]) -> int:
    return getattr(logging, level.upper()) if isinstance(level, str) else level


def _console_handler(format_type: str, enable_rich: bool) -> logging.Handler:
    # stderr keeps stdout clean for command output such as ``list -o json``
    if enable_rich:
        return RichHandler(
            console=Console(stderr=True),
            rich_tracebacks=True,
            markup=False,
            show_path=False,
        )
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if format_type == "json" else logging.Formatter(TEXT_FORMAT))
    return handler


def _file_handler(log_file: Path, format_type: str, max_bytes: int, backup_count: int) -> logging.Handler:
    log_file.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.handlers.RotatingFileHandler(
        log_file,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    handler.setFormatter(JSONFormatter() if format_type == "json" else logging.Formatter(FILE_FORMAT))
    return handler


def setup_logging(
    enabled: bool = True,
    level: Union[str, int] = logging.INFO,
    console_level: Union[str, int] = logging.WARNING,
    log_file: Optional[Path] = None,
    format_type: str = "text",
    enable_rich: bool = True,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
    suppress_http: bool = True,
    force: bool = False,
) -> None:
    """
    Configure the root logger.

    Args:
        enabled: When False the root logger is silenced
        level: File logging level
        console_level: Console logging level
        log_file: Rotating log file, or None for console only
        format_type: 'text' or 'json'
        enable_rich: Use Rich for console output
        max_bytes: Log file size before rotation
        backup_count: Rotated files to keep
        suppress_http: Raise HTTP client loggers to WARNING
        force: Reconfigure even if logging was already set up
    """
    global _configured
    if _configured and not force:
        return

    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    if not enabled:
        root_logger.setLevel(logging.CRITICAL)
        for name in HTTP_LOGGERS:
            logging.getLogger(name).setLevel(logging.CRITICAL)
        _configured = True
        return

    level = _to_level(level)
    console_level = _to_level(console_level)
    root_logger.setLevel(min(level, console_level))

    console = _console_handler(format_type, enable_rich)
    console.setLevel(console_level)
    root_logger.addHandler(console)

    if log_file:
        file_handler = _file_handler(Path(log_file), format_type, max_bytes, backup_count)
        file_handler.setLevel(level)
        root_logger.addHandler(file_handler)

    if suppress_http:
        for name in HTTP_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    _configured = True


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
