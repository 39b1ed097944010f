"""
Data models for the OpenAPI directory.

Defines Pydantic models for custom spec manifest entries, security scan
results, directory entries produced by the spec processor, and the merged
result shapes returned by the aggregator. Field aliases keep the camelCase
wire format used by the registries and the on-disk manifest.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, NamedTuple, Optional

from pydantic import BaseModel, Field, model_validator


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class Severity(str, Enum):
    """Security issue severity, most severe first."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    def downgrade(self) -> "Severity":
        """One level less severe; LOW stays LOW."""
        order = list(Severity)
        index = order.index(self)
        return order[min(index + 1, len(order) - 1)]


class IssueType(str, Enum):
    """Security issue family."""

    PROMPT_INJECTION = "prompt_injection"
    SCRIPT_INJECTION = "script_injection"
    SUSPICIOUS_CONTENT = "suspicious_content"
    EVAL_USAGE = "eval_usage"


class ScanContext(str, Enum):
    """Structural location of a scanned string."""

    EXAMPLE = "example"
    DESCRIPTION = "description"
    PARAMETER = "parameter"
    SCHEMA = "schema"
    METADATA = "metadata"


class SpecFormat(str, Enum):
    """Original serialization of an imported spec."""

    JSON = "json"
    YAML = "yaml"


class SourceType(str, Enum):
    """Where an imported spec came from."""

    FILE = "file"
    URL = "url"


class SecurityIssue(BaseModel):
    """A single finding of the security scanner."""

    type: IssueType = Field(description="Issue family")
    severity: Severity = Field(description="Severity after any downgrade")
    location: str = Field(description="JSON path of the offending string")
    context: ScanContext = Field(description="Structural context of the string")
    pattern: str = Field(description="Matched text or detector description")
    message: str = Field(description="Human-readable description")
    rule_id: str = Field(alias="ruleId", description="Rule that triggered")
    suggestion: Optional[str] = Field(default=None, description="How to fix it")

    model_config = {"populate_by_name": True}


class ScanSummary(BaseModel):
    """Issue counts per severity."""

    critical: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0

    def total(self) -> int:
        return self.critical + self.high + self.medium + self.low


class SecurityScanResult(BaseModel):
    """Outcome of scanning one spec document."""

    scanned_at: str = Field(alias="scannedAt", description="ISO timestamp")
    issues: List[SecurityIssue] = Field(default_factory=list)
    summary: ScanSummary = Field(default_factory=ScanSummary)
    blocked: bool = Field(default=False, description="True when critical issues exist")

    model_config = {"populate_by_name": True}

    @model_validator(mode="after")
    def check_blocked(self) -> "SecurityScanResult":
        if self.blocked != (self.summary.critical > 0):
            raise ValueError("blocked must equal (summary.critical > 0)")
        return self


class CustomSpecEntry(BaseModel):
    """Manifest record of an imported custom spec."""

    id: str = Field(description="custom:<name>:<version>")
    name: str = Field(default="", description="Spec name")
    version: str = Field(default="", description="Spec version")
    title: str = Field(default="", description="Title from info.title")
    description: str = Field(default="", description="Description from info.description")
    original_format: SpecFormat = Field(alias="originalFormat", default=SpecFormat.JSON)
    source_type: SourceType = Field(alias="sourceType", default=SourceType.FILE)
    source_path: str = Field(alias="sourcePath", default="", description="Original path or URL")
    imported: str = Field(default="", description="ISO timestamp of the import")
    last_modified: str = Field(alias="lastModified", default="", description="ISO timestamp")
    file_size: int = Field(alias="fileSize", default=0, description="Stored file size in bytes")
    security_scan: Optional[SecurityScanResult] = Field(alias="securityScan", default=None)

    model_config = {"populate_by_name": True}


class SpecId(NamedTuple):
    """Decomposed custom spec id."""

    provider: str
    name: str
    version: str


class ApiVersion(BaseModel):
    """One version of a directory entry."""

    added: str
    updated: str
    swagger_url: str = Field(alias="swaggerUrl", default="")
    swagger_yaml_url: str = Field(alias="swaggerYamlUrl", default="")
    openapi_ver: str = Field(alias="openapiVer", default="")
    info: Dict[str, Any] = Field(default_factory=dict)
    link: str = ""
    external_docs: Optional[Dict[str, Any]] = Field(alias="externalDocs", default=None)

    model_config = {"populate_by_name": True, "extra": "allow"}


class DirectoryEntry(BaseModel):
    """One API across all of its versions."""

    added: str
    preferred: str
    versions: Dict[str, ApiVersion]

    @model_validator(mode="after")
    def check_preferred(self) -> "DirectoryEntry":
        if self.preferred not in self.versions:
            raise ValueError(f"preferred version {self.preferred!r} not in versions")
        return self

    def to_wire(self) -> Dict[str, Any]:
        """Registry wire shape (camelCase, no empty optionals)."""
        return self.model_dump(by_alias=True, exclude_none=True)


class SpecMetadata(BaseModel):
    title: str
    description: str = ""
    version: str
    file_size: int = Field(description="Byte length of the original content")


class ProcessingResult(BaseModel):
    """Result of running a raw spec through the processor."""

    entry: DirectoryEntry
    original_format: SpecFormat
    security_scan: SecurityScanResult
    metadata: SpecMetadata
    document: Dict[str, Any] = Field(default_factory=dict, description="Parsed spec")


class ValidationResult(BaseModel):
    """Structural validation outcome."""

    valid: bool
    version: Optional[str] = None
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class ImportResult(BaseModel):
    """Outcome of a successful import."""

    success: bool = True
    spec_id: str
    message: str
    security_scan: Optional[SecurityScanResult] = None
    warnings: List[str] = Field(default_factory=list)


class ApiSummary(BaseModel):
    """Compact row used in search and paginated listings."""

    id: str
    title: str = "Untitled API"
    description: str = ""
    provider: str = "Unknown"
    preferred: str = ""
    categories: List[str] = Field(default_factory=list)
    source: Optional[str] = None


class Pagination(BaseModel):
    page: int
    limit: int
    total_results: int
    total_pages: int
    has_next: bool
    has_previous: bool

    @classmethod
    def compute(cls, page: int, limit: int, total_results: int) -> "Pagination":
        """Build pagination metadata for a 1-based page."""
        total_pages = -(-total_results // limit) if limit > 0 else 0
        return cls(
            page=page,
            limit=limit,
            total_results=total_results,
            total_pages=total_pages,
            has_next=page < total_pages,
            has_previous=page > 1,
        )

    @classmethod
    def empty(cls) -> "Pagination":
        return cls(
            page=1,
            limit=0,
            total_results=0,
            total_pages=0,
            has_next=False,
            has_previous=False,
        )


class PaginatedResults(BaseModel):
    """A page of summary rows."""

    results: List[ApiSummary] = Field(default_factory=list)
    pagination: Pagination = Field(default_factory=Pagination.empty)

    @classmethod
    def single_page(cls, rows: List[ApiSummary]) -> "PaginatedResults":
        """Wrap an unpaged row list as one page holding everything."""
        count = len(rows)
        return cls(
            results=rows,
            pagination=Pagination(
                page=1,
                limit=count,
                total_results=count,
                total_pages=1,
                has_next=False,
                has_previous=False,
            ),
        )


class DirectoryMetrics(BaseModel):
    """Registry metrics; unknown registry fields are kept."""

    num_specs: int = Field(alias="numSpecs", default=0)
    num_apis: int = Field(alias="numAPIs", default=0)
    num_endpoints: int = Field(alias="numEndpoints", default=0)

    model_config = {"populate_by_name": True, "extra": "allow"}


class ConflictInfo(BaseModel):
    """Overlap diagnostics between two snapshots."""

    total_conflicts: int
    conflicting_apis: List[str] = Field(default_factory=list)
    primary_only_count: int
    secondary_only_count: int


class ProviderStats(BaseModel):
    total_apis: int = Field(alias="totalAPIs")
    total_versions: int = Field(alias="totalVersions")
    latest_update: str = Field(alias="latestUpdate")
    oldest_api: str = Field(alias="oldestAPI", default="")
    newest_api: str = Field(alias="newestAPI", default="")

    model_config = {"populate_by_name": True}


class PopularApi(BaseModel):
    id: str
    title: str
    provider: str


class RecentUpdate(BaseModel):
    id: str
    title: str
    updated: str


class DirectorySummary(BaseModel):
    """Directory-wide overview."""

    total_apis: int
    total_providers: int
    categories: List[str] = Field(default_factory=list)
    popular_apis: List[PopularApi] = Field(default_factory=list)
    recent_updates: List[RecentUpdate] = Field(default_factory=list)
