"""
Import manager for custom OpenAPI specs.

Coordinates the spec processor and the manifest store: derives names and
versions, rejects duplicates, stores the processed entry and records it in
the manifest. An import either completes fully or leaves nothing behind.
"""

import json
import re
from typing import Any, Awaitable, Callable, Dict, List, Optional
from urllib.parse import urlparse

from openapi_directory.core.custom_specs.manifest import (
    ManifestStore,
    generate_spec_id,
    parse_spec_id,
)
from openapi_directory.core.custom_specs.processor import SpecProcessor, is_url
from openapi_directory.core.exceptions import (
    DirectoryError,
    DuplicateSpecError,
    ErrorContext,
    ManifestError,
    NotFoundError,
    SecurityBlockedError,
    ValidationError,
)
from openapi_directory.core.models import (
    CustomSpecEntry,
    ImportResult,
    SecurityScanResult,
    Severity,
    SourceType,
    ValidationResult,
    utc_now_iso,
)
from openapi_directory.utils.logging import get_logger

logger = get_logger(__name__)

GENERIC_NAMES = {"api", "openapi", "swagger", "spec", "specification"}
STRICT_BLOCKING = {Severity.MEDIUM, Severity.HIGH, Severity.CRITICAL}

_NAME_RE = re.compile(r"^[a-zA-Z0-9_-]+$")
_VERSION_RE = re.compile(r"^[a-zA-Z0-9._-]+$")

ChangeCallback = Callable[[], Awaitable[None]]


def slugify(text: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")


def extract_name_from_source(source: str) -> str:
    """Derive a spec name from the last path segment of a file path or URL."""
    if not source:
        return "unnamed-api"

    path = urlparse(source).path if is_url(source) else source
    filename = path.rstrip("/").split("/")[-1] or "api"

    stem = re.sub(r"\.(json|ya?ml)$", "", filename, flags=re.IGNORECASE)
    stem = re.sub(r"[^a-zA-Z0-9_-]", "-", stem).strip("-").lower()
    return stem or "api"


def is_generic_name(name: str) -> bool:
    return name.lower() in GENERIC_NAMES


def validate_import_options(name: str, version: str) -> List[str]:
    """Return every problem with a name/version pair."""
    errors: List[str] = []

    if not name:
        errors.append("Name is required")
    elif name[0].isdigit():
        errors.append("Name cannot start with a number")
    elif " " in name:
        errors.append("Name cannot contain spaces")
    elif len(name) > 255:
        errors.append("Name is too long (max 255 characters)")
    elif not _NAME_RE.match(name):
        errors.append("Name can only contain letters, numbers, hyphens, and underscores")

    if not version:
        errors.append("Version is required")
    elif not _VERSION_RE.match(version) or version in (".", ".."):
        errors.append("Version can only contain letters, numbers, dots, hyphens, and underscores")

    return errors


class ImportManager:
    """Import, remove and maintain custom specs."""

    def __init__(
        self,
        manifest: ManifestStore,
        processor: SpecProcessor,
        on_change: Optional[ChangeCallback] = None,
    ):
        """
        Initialize the import manager.

        Args:
            manifest: Manifest store receiving imported specs
            processor: Spec processor used for ingestion
            on_change: Awaited after every successful import or removal
        """
        self.manifest = manifest
        self.processor = processor
        self.on_change = on_change

    async def import_spec(
        self,
        source: str,
        name: Optional[str] = None,
        version: Optional[str] = None,
        skip_security: bool = False,
        strict_security: bool = False,
    ) -> ImportResult:
        """
        Import a spec from a file or URL.

        Args:
            source: File path or http(s) URL
            name: Spec name; derived from the source when omitted
            version: Spec version; ``info.version`` (or 1.0.0) when omitted
            skip_security: Skip the security scan
            strict_security: Also reject medium and high severity issues

        Returns:
            ImportResult for the stored spec

        Raises:
            ValidationError: invalid options or invalid spec
            SpecParseError: unparsable content
            SecurityBlockedError: rejected by the security scan
            DuplicateSpecError: name and version already imported
            ManifestError: the spec could not be persisted
        """
        if not source:
            raise ValidationError("Source path or URL is required",
                                  ErrorContext(operation="import_spec"))

        logger.info(f"Importing OpenAPI spec from {source}")
        result = await self.processor.process_spec(source, skip_security)

        if not name:
            name = extract_name_from_source(source)
            if is_generic_name(name):
                name = slugify(result.metadata.title) or name

        entry = result.entry
        if version and version != entry.preferred:
            # The stored entry is keyed by the requested version
            api_version = entry.versions.pop(entry.preferred)
            entry.versions[version] = api_version
            entry.preferred = version
        version = entry.preferred

        errors = validate_import_options(name, version)
        if errors:
            raise ValidationError(
                f"Invalid import options: {', '.join(errors)}",
                ErrorContext(operation="import_spec", details={"errors": errors}),
            )

        spec_id = generate_spec_id(name, version)
        if self.manifest.has_spec(spec_id):
            raise DuplicateSpecError(
                f"Spec {name}:{version} already exists. "
                "Use a different version or remove the existing spec first.",
                spec_id=spec_id,
                context=ErrorContext(operation="import_spec", source="custom", api_id=spec_id),
            )

        scan = result.security_scan
        if strict_security:
            blocking = [issue for issue in scan.issues if issue.severity in STRICT_BLOCKING]
            if blocking:
                report = self.processor.scanner.generate_report(scan)
                raise SecurityBlockedError(
                    f"Import blocked by {len(blocking)} medium/high/critical security "
                    f"issues in strict mode:\n{report}",
                    scan_result=scan,
                    report=report,
                    context=ErrorContext(operation="import_spec", api_id=spec_id),
                )

        stored = entry.to_wire()
        stored["versions"][version]["spec"] = result.document
        content = self.processor.to_normalized_json(stored)

        source_path = self.manifest.store_spec_file(name, version, content)
        now = utc_now_iso()
        manifest_entry = CustomSpecEntry(
            id=spec_id,
            name=name,
            version=version,
            title=result.metadata.title,
            description=result.metadata.description,
            original_format=result.original_format,
            source_type=SourceType.URL if is_url(source) else SourceType.FILE,
            source_path=source,
            imported=now,
            last_modified=now,
            file_size=len(content.encode("utf-8")),
            security_scan=scan,
        )

        try:
            self.manifest.add_spec(manifest_entry)
        except ManifestError:
            self.manifest.delete_spec_file(name, version)
            raise

        logger.info(f"Imported custom spec {spec_id} ({source_path})")
        await self._notify_change("import")

        warnings: List[str] = []
        if scan.issues:
            warnings.append(f"{len(scan.issues)} security issue(s) found but import allowed")

        return ImportResult(
            spec_id=spec_id,
            message=f"Successfully imported {name}:{version}",
            security_scan=scan,
            warnings=warnings,
        )

    def resolve_spec_id(self, name_or_id: str, version: Optional[str] = None) -> str:
        """
        Normalize ``custom:n:v``, ``n:v`` or ``(n, v)`` to a spec id.

        Raises:
            ValidationError: the reference is malformed
        """
        if version:
            return generate_spec_id(name_or_id, version)

        if name_or_id.startswith("custom:"):
            if parse_spec_id(name_or_id) is None:
                raise ValidationError(f"Invalid spec ID format: {name_or_id}")
            return name_or_id

        if ":" in name_or_id:
            parts = name_or_id.split(":")
            if len(parts) != 2 or not all(parts):
                raise ValidationError(f"Invalid name:version format: {name_or_id}")
            return generate_spec_id(parts[0], parts[1])

        raise ValidationError("Version required when providing name only")

    async def remove_spec(self, name_or_id: str, version: Optional[str] = None) -> str:
        """
        Remove a custom spec and its stored file.

        Returns:
            The removed spec id

        Raises:
            ValidationError: malformed reference
            NotFoundError: no such spec
        """
        spec_id = self.resolve_spec_id(name_or_id, version)
        parsed = parse_spec_id(spec_id)

        if parsed is None or not self.manifest.remove_spec(spec_id):
            raise NotFoundError(
                f"Spec {spec_id} not found or already removed",
                ErrorContext(operation="remove_spec", source="custom", api_id=spec_id),
            )

        if not self.manifest.delete_spec_file(parsed.name, parsed.version):
            logger.warning(f"Spec file for {spec_id} was already missing")

        logger.info(f"Removed custom spec {spec_id}")
        await self._notify_change("remove")
        return spec_id

    def list_specs(self) -> List[Dict[str, Any]]:
        """Compact listing rows for every stored spec."""
        rows = []
        for spec in self.manifest.list_specs():
            description = spec.description
            if len(description) > 100:
                description = description[:100] + "..."
            rows.append({
                "id": spec.id,
                "name": spec.name,
                "version": spec.version,
                "title": spec.title,
                "description": description,
                "imported": spec.imported,
                "file_size": spec.file_size,
                "security_issues": spec.security_scan.summary.total() if spec.security_scan else 0,
                "format": spec.original_format.value,
                "source": spec.source_type.value,
            })
        return rows

    def get_spec_details(self, name_or_id: str, version: Optional[str] = None) -> Optional[CustomSpecEntry]:
        try:
            spec_id = self.resolve_spec_id(name_or_id, version)
        except ValidationError:
            return None
        return self.manifest.get_spec(spec_id)

    async def rescan_security(self, name_or_id: str, version: Optional[str] = None) -> SecurityScanResult:
        """
        Re-run the security scan on a stored spec and record the result.

        Raises:
            NotFoundError: unknown spec
            ValidationError: the stored file holds no spec document
        """
        spec = self.get_spec_details(name_or_id, version)
        if spec is None:
            raise NotFoundError(
                f"Spec {name_or_id} not found",
                ErrorContext(operation="rescan_security", source="custom", api_id=name_or_id),
            )

        parsed = parse_spec_id(spec.id)
        if parsed is None:
            raise ValidationError(f"Invalid spec ID format: {spec.id}")

        try:
            stored = json.loads(self.manifest.read_spec_file(parsed.name, parsed.version))
        except ValueError as e:
            raise ValidationError(f"Stored spec for {spec.id} is not valid JSON: {e}") from e

        preferred = stored.get("versions", {}).get(stored.get("preferred"), {})
        document = preferred.get("spec") if isinstance(preferred, dict) else None
        if not document:
            raise ValidationError(f"No spec data found for security scan of {spec.id}")

        scan = self.processor.scanner.scan_spec(document)
        self.manifest.update_spec(spec.id, {
            "security_scan": scan,
            "last_modified": utc_now_iso(),
        })
        logger.info(f"Security scan completed for {spec.id}: {scan.summary.total()} issue(s)")
        return scan

    def get_stats(self) -> Dict[str, Any]:
        return self.manifest.get_stats()

    def validate_integrity(self) -> Dict[str, Any]:
        return self.manifest.validate_integrity()

    def repair_integrity(self) -> Dict[str, List[str]]:
        return self.manifest.repair_integrity()

    async def quick_validate(self, source: str) -> ValidationResult:
        return await self.processor.quick_validate(source)

    async def _notify_change(self, action: str) -> None:
        if self.on_change is None:
            return
        try:
            await self.on_change()
        except DirectoryError as e:
            logger.warning(f"Cache invalidation failed after {action}: {e}")
