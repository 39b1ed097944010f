"""
Configuration management for the OpenAPI directory.

Provides hierarchical configuration loading with validation using Pydantic.
TOML files are merged in order, then explicit overrides. Environment
variables prefixed with ``OPENAPI_DIRECTORY_`` fill in any setting
that neither a file nor an override provides.
"""

import os
from pathlib import Path
from typing import Any, List, Optional, Union

import toml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings

from openapi_directory.utils.logging import get_logger

logger = get_logger(__name__)


class LoggingConfig(BaseModel):
    """Logging configuration."""

    enabled: bool = Field(default=True, description="Enable logging completely")
    level: str = Field(default="INFO", description="File logging level")
    console_level: str = Field(default="WARNING", description="Console logging level")
    format_type: str = Field(default="text", description="Log format (text/json)")
    file: Optional[str] = Field(default=None, description="Log file path")
    enable_rich: bool = Field(default=True, description="Enable Rich console output")
    max_bytes: int = Field(default=10 * 1024 * 1024, description="Max log file size")
    backup_count: int = Field(default=5, description="Number of backup files")
    suppress_http: bool = Field(default=True, description="Suppress HTTP request logging")

    @field_validator("level", "console_level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate logging level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}")
        return v.upper()

    @field_validator("format_type")
    @classmethod
    def validate_format_type(cls, v: str) -> str:
        """Validate format type."""
        if v not in ["text", "json"]:
            raise ValueError(f"Invalid format type: {v}")
        return v


class CacheConfig(BaseModel):
    """Persistent cache configuration."""

    enabled: bool = Field(default=True, description="Enable the persistent cache")
    ttl_seconds: int = Field(default=86400, description="Default entry TTL in seconds")
    persist_interval_seconds: int = Field(
        default=300,
        description="Interval between background flushes to disk"
    )
    file_name: str = Field(default="cache.json", description="Cache file name")
    invalidation_flag: str = Field(
        default=".invalidate",
        description="Sentinel file that makes other processes drop their cache"
    )

    @field_validator("ttl_seconds")
    @classmethod
    def validate_ttl(cls, v: int) -> int:
        """Validate default TTL."""
        if v < 0:
            raise ValueError("Cache TTL cannot be negative")
        return v

    @field_validator("persist_interval_seconds")
    @classmethod
    def validate_interval(cls, v: int) -> int:
        """Validate persist interval."""
        if v <= 0:
            raise ValueError("Persist interval must be positive")
        return v


class SourcesConfig(BaseModel):
    """Remote registry configuration."""

    primary_url: str = Field(
        default="https://api.apis.guru/v2",
        description="Public registry base URL"
    )
    secondary_url: str = Field(
        default="https://api.openapidirectory.com",
        description="Community mirror base URL"
    )
    timeout_seconds: float = Field(default=30.0, description="HTTP timeout in seconds")


class ImportConfig(BaseModel):
    """Custom spec import configuration."""

    fetch_timeout_seconds: float = Field(default=30.0, description="URL fetch timeout")
    max_content_bytes: int = Field(
        default=10 * 1024 * 1024,
        description="Maximum size of a spec fetched from a URL"
    )
    user_agent: str = Field(
        default="openapi-directory/1.2.0",
        description="User-Agent sent when fetching specs"
    )


class ScannerConfig(BaseModel):
    """Security scanner thresholds."""

    base64_min_length: int = Field(
        default=20,
        description="Minimum run length for the base64 heuristic"
    )
    credential_min_length: int = Field(
        default=8,
        description="Minimum secret length for the credential heuristic"
    )
    disabled_rules: List[str] = Field(
        default_factory=list,
        description="Rule ids to skip"
    )

    @field_validator("base64_min_length", "credential_min_length")
    @classmethod
    def validate_min_length(cls, v: int) -> int:
        """Validate heuristic lengths."""
        if v < 1:
            raise ValueError("Heuristic lengths must be at least 1")
        return v


class Config(BaseSettings):
    """Main configuration class."""

    debug: bool = Field(default=False, description="Enable debug mode")
    cache_dir: str = Field(
        default="~/.cache/openapi-directory-mcp",
        description="Root directory for cache and custom specs"
    )

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    sources: SourcesConfig = Field(default_factory=SourcesConfig)
    importer: ImportConfig = Field(default_factory=ImportConfig)
    scanner: ScannerConfig = Field(default_factory=ScannerConfig)

    model_config = {
        "env_prefix": "OPENAPI_DIRECTORY_",
        "env_nested_delimiter": "__",
        "case_sensitive": False,
    }

    def get_cache_dir(self) -> Path:
        """Get cache directory path."""
        return Path(os.path.expanduser(self.cache_dir))

    def get_log_file(self) -> Optional[Path]:
        """Get log file path."""
        if self.logging.file:
            log_path = Path(os.path.expanduser(self.logging.file))
            if not log_path.is_absolute():
                log_path = self.get_cache_dir() / log_path
            return log_path
        return None


class ConfigManager:
    """Configuration manager with hierarchical loading."""

    def __init__(self):
        self._config: Optional[Config] = None

    def load_config(
        self,
        config_files: Optional[List[Union[str, Path]]] = None,
        **overrides: Any,
    ) -> Config:
        """
        Load configuration from multiple sources.

        Args:
            config_files: List of configuration files to load
            **overrides: Configuration overrides

        Returns:
            Loaded configuration
        """
        if self._config is not None:
            return self._config

        if config_files is None:
            config_files = [
                "/etc/openapi-directory/config.toml",
                "~/.config/openapi-directory/config.toml",
                "./.openapi-directory.toml",
            ]

        config_data = {}

        for config_file in config_files:
            file_path = Path(os.path.expanduser(str(config_file)))
            if file_path.exists():
                try:
                    file_data = toml.load(file_path)
                    config_data.update(file_data)
                    logger.debug(f"Loaded configuration from {file_path}")
                except (OSError, toml.TomlDecodeError) as e:
                    logger.warning(f"Failed to load config from {file_path}: {e}")

        config_data.update(overrides)

        self._config = Config(**config_data)

        return self._config

    def get_config(self) -> Config:
        """Get current configuration."""
        if self._config is None:
            return self.load_config()
        return self._config

    def reload_config(
        self,
        config_files: Optional[List[Union[str, Path]]] = None,
        **overrides: Any,
    ) -> Config:
        """Reload configuration."""
        self._config = None
        return self.load_config(config_files, **overrides)


_config_manager = ConfigManager()

load_config = _config_manager.load_config
get_config = _config_manager.get_config
reload_config = _config_manager.reload_config
