"""Utility modules for the OpenAPI directory."""

from openapi_directory.utils.logging import get_logger, setup_logging
from openapi_directory.utils.config import Config, ConfigManager, get_config, load_config

__all__ = [
    "get_logger",
    "setup_logging",
    "Config",
    "ConfigManager",
    "get_config",
    "load_config",
]
