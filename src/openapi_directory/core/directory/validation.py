"""
Sanitizers for raw provider and metrics snapshots returned by the sources.

Remote registries are trusted for shape but not for content, so these
helpers coerce what they can, drop what they cannot and report both.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Generic, List, TypeVar

import nh3

from openapi_directory.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

METRIC_FIELDS = ("numSpecs", "numAPIs", "numEndpoints")

_NON_HTML_THREATS = re.compile(r"javascript:|data:text/html|vbscript:|\bon\w+\s*=", re.IGNORECASE)


@dataclass
class Sanitized(Generic[T]):
    """Sanitized data plus what was wrong with the input."""

    data: T
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors

    def log(self, source: str) -> None:
        if self.errors:
            logger.error(f"Validation errors in {source}: {self.errors}")
        if self.warnings:
            logger.warning(f"Validation warnings in {source}: {self.warnings}")


def contains_suspicious_content(text: str) -> bool:
    if _NON_HTML_THREATS.search(text):
        return True
    return "<" in text and nh3.clean(text) != text


def validate_providers(providers: Any) -> Sanitized[Dict[str, List[str]]]:
    """
    Normalize a ``{"data": [...]}`` provider response.

    Empty entries are dropped, numbers are stringified and unparseable
    values are skipped; suspicious names are kept but reported.
    """
    if not isinstance(providers, dict):
        return Sanitized({"data": []}, errors=["Providers response must be an object"])

    items = providers.get("data")
    if not isinstance(items, list):
        return Sanitized({"data": []}, errors=["Providers data must be an array"])

    result: Sanitized[Dict[str, List[str]]] = Sanitized({"data": []})
    sanitized = result.data["data"]

    for index, provider in enumerate(items):
        if provider is None or provider == "":
            result.warnings.append(f"Skipped null/empty provider at index {index}")
            continue

        if not isinstance(provider, str):
            if isinstance(provider, (dict, list)):
                result.warnings.append(f"Skipped unparseable object at index {index}")
                continue
            result.warnings.append(
                f"Converted non-string provider at index {index}: {type(provider).__name__}"
            )
            sanitized.append(str(provider))
            continue

        trimmed = provider.strip()
        if not trimmed:
            result.warnings.append(f"Skipped empty provider at index {index}")
            continue

        if "." not in trimmed or " " in trimmed:
            result.warnings.append(f'Suspicious provider format at index {index}: "{trimmed}"')
        if contains_suspicious_content(trimmed):
            result.warnings.append(f'Potentially malicious provider at index {index}: "{trimmed}"')

        sanitized.append(trimmed)

    return result


def _validate_number(value: Any, field_name: str, warnings: List[str]) -> int:
    if isinstance(value, bool):
        value = None
    if isinstance(value, (int, float)) and value >= 0:
        return int(value)

    if isinstance(value, str):
        match = re.match(r"^\s*(\d+)", value)
        if match:
            parsed = int(match.group(1))
            warnings.append(f'Converted string to number for {field_name}: "{value}" -> {parsed}')
            return parsed

    warnings.append(f"Invalid {field_name} value: {value}, using 0")
    return 0


def validate_metrics(metrics: Any) -> Sanitized[Dict[str, Any]]:
    """
    Coerce the three counters to non-negative integers.

    Other fields pass through unchanged; suspicious strings are reported.
    """
    if not isinstance(metrics, dict):
        return Sanitized(
            {name: 0 for name in METRIC_FIELDS},
            errors=["Metrics response must be an object"],
        )

    warnings: List[str] = []
    data: Dict[str, Any] = {name: _validate_number(metrics.get(name), name, warnings)
                            for name in METRIC_FIELDS}

    for key, value in metrics.items():
        if key in METRIC_FIELDS:
            continue
        if callable(value):
            warnings.append(f"Skipped callable property: {key}")
            continue
        if isinstance(value, str) and contains_suspicious_content(value):
            warnings.append(f'Potentially suspicious content in {key}: "{value}"')
        data[key] = value

    return Sanitized(data, warnings=warnings)
