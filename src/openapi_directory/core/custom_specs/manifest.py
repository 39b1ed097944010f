"""
Manifest store for imported custom specs.

The manifest file is the source of truth for custom specs. The pure
``ManifestRepository`` holds the index in memory; a storage adapter
persists it together with one content file per ``(name, version)``.
``ManifestStore`` reloads from storage before every read so that specs
imported by another process are visible immediately.
"""

import json
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Union

from pydantic import ValidationError as PydanticValidationError

from openapi_directory.core.exceptions import ErrorContext, ManifestError, ValidationError
from openapi_directory.core.models import CustomSpecEntry, SpecId, utc_now_iso
from openapi_directory.utils.logging import get_logger

logger = get_logger(__name__)

MANIFEST_FORMAT_VERSION = "1.0.0"
CUSTOM_PROVIDER = "custom"

_SEGMENT_RE = re.compile(r"^[A-Za-z0-9._-]+$")


def validate_segment(value: str, label: str) -> str:
    """Reject name/version values that are unsafe as path segments."""
    if not value or not _SEGMENT_RE.match(value) or value in (".", ".."):
        raise ValidationError(
            f"Invalid {label} {value!r}: only letters, digits, '.', '_' and '-' are allowed",
            ErrorContext(operation="manifest", details={label: value}),
        )
    return value


def generate_spec_id(name: str, version: str) -> str:
    return f"{CUSTOM_PROVIDER}:{name}:{version}"


def parse_spec_id(spec_id: str) -> Optional[SpecId]:
    """Split ``custom:<name>:<version>``; None when the id is malformed."""
    parts = spec_id.split(":")
    if len(parts) != 3 or parts[0] != CUSTOM_PROVIDER:
        return None
    provider, name, version = parts
    if not _SEGMENT_RE.match(name) or not _SEGMENT_RE.match(version):
        return None
    if name in (".", "..") or version in (".", ".."):
        return None
    return SpecId(provider, name, version)


class ManifestRepository:
    """In-memory manifest index with no I/O."""

    def __init__(
        self,
        specs: Optional[Dict[str, CustomSpecEntry]] = None,
        version: str = MANIFEST_FORMAT_VERSION,
        last_updated: Optional[str] = None,
    ):
        self.specs: Dict[str, CustomSpecEntry] = dict(specs or {})
        self.version = version
        self.last_updated = last_updated or utc_now_iso()

    @classmethod
    def from_dict(cls, data: Any) -> "ManifestRepository":
        """Build a repository from the manifest JSON document."""
        if (
            not isinstance(data, dict)
            or not data.get("version")
            or not isinstance(data.get("specs"), dict)
            or not data.get("lastUpdated")
        ):
            logger.warning("Invalid manifest structure, starting with an empty manifest")
            return cls()

        specs: Dict[str, CustomSpecEntry] = {}
        for spec_id, raw in data["specs"].items():
            if not isinstance(raw, dict):
                logger.warning(f"Skipping malformed manifest entry {spec_id}")
                continue
            try:
                specs[spec_id] = CustomSpecEntry.model_validate({"id": spec_id, **raw})
            except PydanticValidationError as e:
                logger.warning(f"Skipping unreadable manifest entry {spec_id}: {e}")

        return cls(specs, version=data["version"], last_updated=data["lastUpdated"])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "specs": {
                spec_id: entry.model_dump(by_alias=True, mode="json", exclude_none=True)
                for spec_id, entry in self.specs.items()
            },
            "lastUpdated": self.last_updated,
        }

    def touch(self) -> None:
        self.last_updated = utc_now_iso()

    def add(self, entry: CustomSpecEntry) -> None:
        self.specs[entry.id] = entry

    def remove(self, spec_id: str) -> bool:
        return self.specs.pop(spec_id, None) is not None

    def update(self, spec_id: str, changes: Dict[str, Any]) -> bool:
        current = self.specs.get(spec_id)
        if current is None:
            return False
        merged = current.model_dump(by_alias=False)
        merged.update(changes)
        merged["id"] = spec_id
        self.specs[spec_id] = CustomSpecEntry.model_validate(merged)
        return True

    def get(self, spec_id: str) -> Optional[CustomSpecEntry]:
        return self.specs.get(spec_id)

    def has(self, spec_id: str) -> bool:
        return spec_id in self.specs

    def list(self) -> List[CustomSpecEntry]:
        return list(self.specs.values())


class ManifestStorage(Protocol):
    """Persistence adapter for the manifest and the spec content files."""

    def load(self) -> Optional[Dict[str, Any]]: ...

    def save(self, data: Dict[str, Any]) -> None: ...

    def write_spec(self, name: str, version: str, content: str) -> str: ...

    def read_spec(self, name: str, version: str) -> str: ...

    def delete_spec(self, name: str, version: str) -> bool: ...

    def spec_exists(self, name: str, version: str) -> bool: ...

    def spec_size(self, name: str, version: str) -> int: ...

    def spec_location(self, name: str, version: str) -> str: ...


class FileManifestStorage:
    """Stores the manifest and spec files under ``<base_dir>/custom-specs``."""

    def __init__(self, base_dir: Union[str, Path]):
        self.base_dir = Path(os.path.expanduser(str(base_dir))) / "custom-specs"
        self.manifest_file = self.base_dir / "manifest.json"
        self.specs_dir = self.base_dir / CUSTOM_PROVIDER

    def spec_path(self, name: str, version: str) -> Path:
        return self.specs_dir / name / f"{version}.json"

    def spec_location(self, name: str, version: str) -> str:
        return str(self.spec_path(name, version))

    def load(self) -> Optional[Dict[str, Any]]:
        if not self.manifest_file.exists():
            return None
        try:
            with open(self.manifest_file, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to load manifest {self.manifest_file}: {e}")
            return None

    def save(self, data: Dict[str, Any]) -> None:
        tmp_file = self.manifest_file.with_suffix(".json.tmp")
        try:
            self.specs_dir.mkdir(parents=True, exist_ok=True)
            with open(tmp_file, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_file, self.manifest_file)
        except OSError as e:
            raise ManifestError(
                f"Failed to save manifest: {e}",
                ErrorContext(operation="save_manifest", source="custom"),
            ) from e

    def write_spec(self, name: str, version: str, content: str) -> str:
        path = self.spec_path(name, version)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        except OSError as e:
            raise ManifestError(
                f"Failed to store spec file: {e}",
                ErrorContext(operation="store_spec_file", source="custom"),
            ) from e
        return str(path)

    def read_spec(self, name: str, version: str) -> str:
        path = self.spec_path(name, version)
        if not path.exists():
            raise ManifestError(
                f"Spec file not found: {path}",
                ErrorContext(operation="read_spec_file", source="custom"),
            )
        try:
            return path.read_text(encoding="utf-8")
        except OSError as e:
            raise ManifestError(
                f"Failed to read spec file: {e}",
                ErrorContext(operation="read_spec_file", source="custom"),
            ) from e

    def delete_spec(self, name: str, version: str) -> bool:
        path = self.spec_path(name, version)
        if not path.exists():
            return False
        try:
            path.unlink()
        except OSError as e:
            logger.warning(f"Failed to delete spec file {path}: {e}")
            return False

        try:
            if not any(path.parent.iterdir()):
                path.parent.rmdir()
        except OSError:
            pass
        return True

    def spec_exists(self, name: str, version: str) -> bool:
        return self.spec_path(name, version).is_file()

    def spec_size(self, name: str, version: str) -> int:
        try:
            return self.spec_path(name, version).stat().st_size
        except OSError:
            return 0


class InMemoryManifestStorage:
    """Dictionary-backed storage with the same contract as the file adapter."""

    def __init__(self):
        self.manifest: Optional[Dict[str, Any]] = None
        self.files: Dict[str, str] = {}

    def spec_location(self, name: str, version: str) -> str:
        return f"memory://{CUSTOM_PROVIDER}/{name}/{version}.json"

    def load(self) -> Optional[Dict[str, Any]]:
        return json.loads(json.dumps(self.manifest)) if self.manifest is not None else None

    def save(self, data: Dict[str, Any]) -> None:
        self.manifest = json.loads(json.dumps(data))

    def write_spec(self, name: str, version: str, content: str) -> str:
        location = self.spec_location(name, version)
        self.files[location] = content
        return location

    def read_spec(self, name: str, version: str) -> str:
        location = self.spec_location(name, version)
        if location not in self.files:
            raise ManifestError(f"Spec file not found: {location}")
        return self.files[location]

    def delete_spec(self, name: str, version: str) -> bool:
        return self.files.pop(self.spec_location(name, version), None) is not None

    def spec_exists(self, name: str, version: str) -> bool:
        return self.spec_location(name, version) in self.files

    def spec_size(self, name: str, version: str) -> int:
        content = self.files.get(self.spec_location(name, version))
        return len(content.encode("utf-8")) if content is not None else 0


class ManifestStore:
    """Manifest operations over a repository and a storage adapter."""

    def __init__(self, storage: ManifestStorage):
        self.storage = storage
        self.repository = self._load()

    @classmethod
    def at(cls, base_dir: Union[str, Path]) -> "ManifestStore":
        """File-backed store rooted at ``base_dir``."""
        return cls(FileManifestStorage(base_dir))

    def _load(self) -> ManifestRepository:
        data = self.storage.load()
        if data is None:
            return ManifestRepository()
        return ManifestRepository.from_dict(data)

    def reload(self) -> ManifestRepository:
        self.repository = self._load()
        return self.repository

    def _save(self) -> None:
        self.repository.touch()
        self.storage.save(self.repository.to_dict())

    def add_spec(self, entry: CustomSpecEntry) -> None:
        """Add or replace an entry; raises ManifestError if it cannot be saved."""
        self.reload().add(entry)
        self._save()
        logger.debug(f"Added {entry.id} to manifest")

    def remove_spec(self, spec_id: str) -> bool:
        if not self.reload().remove(spec_id):
            return False
        self._save()
        logger.debug(f"Removed {spec_id} from manifest")
        return True

    def update_spec(self, spec_id: str, changes: Dict[str, Any]) -> bool:
        """Merge field changes (python field names) into an entry."""
        if not self.reload().update(spec_id, changes):
            return False
        self._save()
        return True

    def get_spec(self, spec_id: str) -> Optional[CustomSpecEntry]:
        return self.reload().get(spec_id)

    def list_specs(self) -> List[CustomSpecEntry]:
        return self.reload().list()

    def has_spec(self, spec_id: str) -> bool:
        return self.reload().has(spec_id)

    def has_name_version(self, name: str, version: str) -> bool:
        return self.has_spec(generate_spec_id(name, version))

    generate_spec_id = staticmethod(generate_spec_id)
    parse_spec_id = staticmethod(parse_spec_id)

    def store_spec_file(self, name: str, version: str, content: str) -> str:
        """Write spec content; returns its location. Raises ManifestError on failure."""
        validate_segment(name, "name")
        validate_segment(version, "version")
        return self.storage.write_spec(name, version, content)

    def read_spec_file(self, name: str, version: str) -> str:
        validate_segment(name, "name")
        validate_segment(version, "version")
        return self.storage.read_spec(name, version)

    def delete_spec_file(self, name: str, version: str) -> bool:
        validate_segment(name, "name")
        validate_segment(version, "version")
        return self.storage.delete_spec(name, version)

    def get_spec_file_size(self, name: str, version: str) -> int:
        validate_segment(name, "name")
        validate_segment(version, "version")
        return self.storage.spec_size(name, version)

    def get_stats(self) -> Dict[str, Any]:
        """Counts and sizes of the stored specs."""
        specs = self.list_specs()
        return {
            "total_specs": len(specs),
            "total_size": sum(spec.file_size for spec in specs),
            "by_format": {
                "yaml": sum(1 for s in specs if s.original_format.value == "yaml"),
                "json": sum(1 for s in specs if s.original_format.value == "json"),
            },
            "by_source": {
                "file": sum(1 for s in specs if s.source_type.value == "file"),
                "url": sum(1 for s in specs if s.source_type.value == "url"),
            },
            "last_updated": self.repository.last_updated,
        }

    def validate_integrity(self) -> Dict[str, Any]:
        """
        Cross-check every manifest entry against storage.

        Returns:
            ``{"valid": bool, "issues": [str, ...]}``
        """
        issues: List[str] = []

        for spec in self.list_specs():
            parsed = parse_spec_id(spec.id)
            if parsed is None:
                issues.append(f"Invalid spec ID format: {spec.id}")
                continue

            if not self.storage.spec_exists(parsed.name, parsed.version):
                location = self.storage.spec_location(parsed.name, parsed.version)
                issues.append(f"Spec file missing for {spec.id}: {location}")

            if not spec.name or not spec.version or not spec.title:
                issues.append(f"Missing required fields for {spec.id}")

            actual_size = self.storage.spec_size(parsed.name, parsed.version)
            if actual_size > 0 and actual_size != spec.file_size:
                issues.append(
                    f"File size mismatch for {spec.id}: "
                    f"expected {spec.file_size}, found {actual_size}"
                )

        return {"valid": not issues, "issues": issues}

    def repair_integrity(self) -> Dict[str, List[str]]:
        """
        Remove entries with invalid ids or missing files and fix sizes.

        Returns:
            ``{"repaired": [...], "failed": [...]}``
        """
        repaired: List[str] = []
        failed: List[str] = []

        if self.validate_integrity()["valid"]:
            return {"repaired": repaired, "failed": failed}

        for spec in self.list_specs():
            try:
                parsed = parse_spec_id(spec.id)
                if parsed is None:
                    self.remove_spec(spec.id)
                    repaired.append(f"Removed spec with invalid ID: {spec.id}")
                    continue

                if not self.storage.spec_exists(parsed.name, parsed.version):
                    self.remove_spec(spec.id)
                    repaired.append(f"Removed spec with missing file: {spec.id}")
                    continue

                actual_size = self.storage.spec_size(parsed.name, parsed.version)
                if actual_size > 0 and actual_size != spec.file_size:
                    self.update_spec(spec.id, {"file_size": actual_size})
                    repaired.append(f"Updated file size for {spec.id}")
            except ManifestError as e:
                logger.error(f"Failed to repair {spec.id}: {e}")
                failed.append(f"{spec.id}: {e.message}")

        return {"repaired": repaired, "failed": failed}
