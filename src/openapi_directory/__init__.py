"""
OpenAPI Directory - merged API directory with custom spec management.

Combines a public API registry, a community mirror and locally imported
OpenAPI specs into one cached, searchable directory.
"""

__version__ = "1.2.0"
__description__ = "Merged OpenAPI directory with custom spec management"

# Public API
from openapi_directory.core.exceptions import DirectoryError
from openapi_directory.core.models import CustomSpecEntry, DirectoryEntry

__all__ = [
    "__version__",
    "__description__",
    "DirectoryError",
    "CustomSpecEntry",
    "DirectoryEntry",
]
