"""
OpenAPI spec processor for custom specs.

Reads a spec from a file or URL, detects and parses its format, validates
it, converts it to a directory entry and gates it behind the security
scanner.
"""

import json
import os
import re
from typing import Any, Callable, Dict, List, Optional

import httpx
import yaml
from openapi_spec_validator import validate as openapi_validate

from openapi_directory.core.custom_specs.scanner import SecurityScanner
from openapi_directory.core.exceptions import (
    DirectoryError,
    ErrorContext,
    ErrorFactory,
    NotFoundError,
    SecurityBlockedError,
    SpecParseError,
    ValidationError,
)
from openapi_directory.core.models import (
    ApiVersion,
    DirectoryEntry,
    ProcessingResult,
    SecurityScanResult,
    SpecFormat,
    SpecMetadata,
    ValidationResult,
    utc_now_iso,
)
from openapi_directory.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_VERSION = "1.0.0"
DEFAULT_FETCH_TIMEOUT = 30.0
DEFAULT_MAX_CONTENT_BYTES = 10 * 1024 * 1024
DEFAULT_USER_AGENT = "openapi-directory/1.2.0"

_YAML_KEY_LINE = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*:\s*$", re.MULTILINE)

Validator = Callable[[Dict[str, Any]], None]


class SpecLoader(yaml.SafeLoader):
    """Safe YAML loader that keeps timestamps as plain strings."""


SpecLoader.yaml_implicit_resolvers = {
    first: [
        (tag, regexp)
        for tag, regexp in resolvers
        if tag != "tag:yaml.org,2002:timestamp"
    ]
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}


def is_url(source: str) -> bool:
    return source.startswith("http://") or source.startswith("https://")


def detect_format(content: str) -> SpecFormat:
    """Guess whether text is JSON or YAML."""
    trimmed = content.strip()

    if trimmed.startswith("{") or trimmed.startswith("["):
        return SpecFormat.JSON

    if "openapi:" in trimmed or "swagger:" in trimmed or _YAML_KEY_LINE.search(trimmed):
        return SpecFormat.YAML

    try:
        json.loads(content)
        return SpecFormat.JSON
    except ValueError:
        return SpecFormat.YAML


def is_self_referencing(document: Any) -> bool:
    """True when a list or mapping contains itself, as YAML aliases allow."""
    active = set()
    finished = set()
    stack = [(document, False)]
    while stack:
        value, leaving = stack.pop()
        if leaving:
            active.discard(id(value))
            finished.add(id(value))
            continue
        if isinstance(value, dict):
            children = list(value.values())
        elif isinstance(value, list):
            children = value
        else:
            continue
        if id(value) in active:
            return True
        if id(value) in finished:
            continue
        active.add(id(value))
        stack.append((value, True))
        stack.extend((child, False) for child in children)
    return False


def parse_content(content: str, spec_format: SpecFormat) -> Any:
    """Parse text; raises SpecParseError on malformed or cyclic input."""
    context = ErrorContext(operation="parse_spec", source="custom")
    try:
        if spec_format == SpecFormat.JSON:
            return json.loads(content)
        document = yaml.load(content, Loader=SpecLoader)
    except (ValueError, yaml.YAMLError) as e:
        raise SpecParseError(f"Failed to parse {spec_format.value.upper()}: {e}", context) from e

    if is_self_referencing(document):
        raise SpecParseError(
            "Failed to parse YAML: self-referencing anchors are not supported", context
        )
    return document


def _spec_version(document: Dict[str, Any]) -> Optional[str]:
    version = document.get("openapi") or document.get("swagger")
    return str(version) if version else None


def external_validator_message(error: Exception) -> str:
    # jsonschema-style errors carry a short ``message``; str() dumps the instance
    return getattr(error, "message", None) or str(error) or error.__class__.__name__


class SpecProcessor:
    """Turns raw spec content into a validated, scanned directory entry."""

    def __init__(
        self,
        scanner: Optional[SecurityScanner] = None,
        validator: Optional[Validator] = openapi_validate,
        timeout: float = DEFAULT_FETCH_TIMEOUT,
        max_content_bytes: int = DEFAULT_MAX_CONTENT_BYTES,
        user_agent: str = DEFAULT_USER_AGENT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the processor.

        Args:
            scanner: Security scanner; a default one is built when omitted
            validator: Structural validator raising on invalid specs, or None to skip
            timeout: URL fetch timeout in seconds
            max_content_bytes: Largest accepted response body
            user_agent: User-Agent header for URL fetches
            transport: Optional httpx transport, used by tests
        """
        self.scanner = scanner or SecurityScanner()
        self.validator = validator
        self.timeout = timeout
        self.max_content_bytes = max_content_bytes
        self.user_agent = user_agent
        self._transport = transport

    @classmethod
    def from_config(cls, config: Any, **kwargs: Any) -> "SpecProcessor":
        return cls(
            scanner=kwargs.pop("scanner", None) or SecurityScanner.from_config(config.scanner),
            timeout=config.importer.fetch_timeout_seconds,
            max_content_bytes=config.importer.max_content_bytes,
            user_agent=config.importer.user_agent,
            **kwargs,
        )

    async def process_spec(self, source: str, skip_security: bool = False) -> ProcessingResult:
        """
        Run the full ingestion pipeline for one source.

        Args:
            source: File path (``~`` allowed) or http(s) URL
            skip_security: Skip the security scan

        Returns:
            The processing result

        Raises:
            SpecParseError: content is neither JSON nor YAML
            ValidationError: the spec is structurally invalid
            SecurityBlockedError: the scan found critical issues
        """
        content = await self.load_source(source)
        spec_format = detect_format(content)
        document = parse_content(content, spec_format)

        validation = self.validate_spec(document)
        if not validation.valid:
            raise ValidationError(
                f"Invalid OpenAPI specification: {', '.join(validation.errors)}",
                ErrorContext(operation="validate_spec", source="custom",
                             details={"errors": validation.errors}),
            )
        for warning in validation.warnings:
            logger.warning(f"{source}: {warning}")

        entry = self.convert_to_entry(document)

        if skip_security:
            scan = self.empty_scan()
        else:
            scan = self.scanner.scan_spec(document)

        if scan.blocked:
            report = self.scanner.generate_report(scan)
            raise SecurityBlockedError(
                f"Import blocked by critical security issues:\n{report}",
                scan_result=scan,
                report=report,
                context=ErrorContext(operation="security_scan", source="custom"),
            )

        metadata = self.extract_metadata(document, len(content.encode("utf-8")))

        return ProcessingResult(
            entry=entry,
            original_format=spec_format,
            security_scan=scan,
            metadata=metadata,
            document=document,
        )

    async def quick_validate(self, source: str) -> ValidationResult:
        """Fetch, parse and validate without scanning or storing anything."""
        try:
            content = await self.load_source(source)
            document = parse_content(content, detect_format(content))
        except DirectoryError as e:
            return ValidationResult(valid=False, errors=[e.message])
        return self.validate_spec(document)

    async def load_source(self, source: str) -> str:
        if is_url(source):
            return await self.fetch_from_url(source)
        return self.read_from_file(source)

    async def fetch_from_url(self, url: str) -> str:
        """GET a spec with the configured timeout and size cap."""
        headers = {
            "Accept": "application/json, application/yaml, text/yaml, text/plain",
            "User-Agent": self.user_agent,
        }
        context = ErrorContext(operation="fetch_spec", source="custom", details={"url": url})

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                transport=self._transport,
                follow_redirects=True,
            ) as client:
                async with client.stream("GET", url, headers=headers) as response:
                    response.raise_for_status()
                    body = bytearray()
                    async for chunk in response.aiter_bytes():
                        body.extend(chunk)
                        if len(body) > self.max_content_bytes:
                            raise ValidationError(
                                f"Spec at {url} exceeds the maximum size of "
                                f"{self.max_content_bytes} bytes",
                                context,
                            )
                    encoding = response.encoding or "utf-8"
        except httpx.HTTPError as e:
            mapped = ErrorFactory.from_http_error(e, context)
            raise type(mapped)(f"Failed to fetch spec from URL: {e}", context) from e

        try:
            return bytes(body).decode(encoding)
        except (LookupError, UnicodeDecodeError) as e:
            raise SpecParseError(f"Failed to decode spec from {url}: {e}", context) from e

    def read_from_file(self, file_path: str) -> str:
        path = os.path.expanduser(file_path)
        context = ErrorContext(operation="read_spec", source="custom", details={"path": path})
        try:
            with open(path, "r", encoding="utf-8") as f:
                return f.read()
        except FileNotFoundError as e:
            raise NotFoundError(f"Failed to read file: {e}", context) from e
        except UnicodeDecodeError as e:
            raise SpecParseError(f"Failed to read file: {e}", context) from e
        except OSError as e:
            raise ValidationError(f"Failed to read file: {e}", context) from e

    def validate_spec(self, document: Any) -> ValidationResult:
        """
        Directory checks first, then the external structural validator.

        A missing version short-circuits; everything else accumulates.
        """
        errors: List[str] = []
        warnings: List[str] = []

        if not isinstance(document, dict):
            return ValidationResult(valid=False, errors=["Spec must be a JSON or YAML object"])

        version = _spec_version(document)
        if not version:
            return ValidationResult(valid=False, errors=["Missing OpenAPI/Swagger version field"])

        info = document.get("info")
        if not info:
            errors.append('Missing required "info" section')
        elif not isinstance(info, dict):
            errors.append('"info" must be an object')
        else:
            if not info.get("title"):
                errors.append('Missing required "info.title" field')
            if not info.get("version"):
                warnings.append('Missing "info.version" field')

        if not document.get("paths") and not document.get("components"):
            warnings.append("No paths or components defined - this might be an incomplete spec")

        if self.validator is not None:
            try:
                self.validator(self.validator_view(document))
            except Exception as e:  # external validator raises library-specific types
                errors.append(external_validator_message(e))

        return ValidationResult(valid=not errors, version=version, errors=errors, warnings=warnings)

    @staticmethod
    def validator_view(document: Dict[str, Any]) -> Dict[str, Any]:
        """
        Copy of ``document`` as it will be stored, for the structural validator.

        A missing ``info.version`` and missing ``paths`` only warn here, so the
        copy carries the default version and an empty ``paths`` object.
        """
        view = dict(document)
        info = view.get("info")
        if isinstance(info, dict) and not info.get("version"):
            view["info"] = {**info, "version": DEFAULT_VERSION}
        if view.get("paths") is None:
            view["paths"] = {}
        return view

    def convert_to_entry(self, document: Dict[str, Any]) -> DirectoryEntry:
        """Build the canonical directory entry for a validated spec."""
        info = dict(document.get("info") or {})
        now = utc_now_iso()
        version = str(info.get("version") or DEFAULT_VERSION)

        info.setdefault("x-providerName", "custom")
        if not info.get("x-apisguru-categories"):
            info["x-apisguru-categories"] = ["custom"]

        contact = info.get("contact")
        link = contact.get("url", "") if isinstance(contact, dict) else ""

        api_version = ApiVersion(
            added=now,
            updated=now,
            info=info,
            swagger_url="custom/spec.json",
            swagger_yaml_url="custom/spec.yaml",
            openapi_ver=_spec_version(document) or "3.0.0",
            link=link or "",
            external_docs=document.get("externalDocs"),
        )

        return DirectoryEntry(added=now, preferred=version, versions={version: api_version})

    @staticmethod
    def extract_metadata(document: Dict[str, Any], file_size: int) -> SpecMetadata:
        info = document.get("info") or {}
        return SpecMetadata(
            title=info.get("title") or "Untitled API",
            description=info.get("description") or "",
            version=str(info.get("version") or DEFAULT_VERSION),
            file_size=file_size,
        )

    @staticmethod
    def empty_scan() -> SecurityScanResult:
        return SecurityScanResult(scanned_at=utc_now_iso())

    @staticmethod
    def to_normalized_json(document: Any) -> str:
        return json.dumps(document, indent=2, ensure_ascii=False)
