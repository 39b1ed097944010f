"""Core OpenAPI directory functionality."""

from openapi_directory.core.exceptions import DirectoryError, ManifestError, ValidationError
from openapi_directory.core.models import CustomSpecEntry, DirectoryEntry, SecurityScanResult

__all__ = [
    "DirectoryError",
    "ManifestError",
    "ValidationError",
    "CustomSpecEntry",
    "DirectoryEntry",
    "SecurityScanResult",
]
