"""
Context-aware security scanner for custom OpenAPI specs.

Walks a parsed spec, classifies every string by where it appears, runs the
rule set against it and reports issues. Strings inside examples are
treated more leniently for rules that allow it.
"""

from collections.abc import Mapping, Sequence
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional, Set, Tuple

from openapi_directory.core.custom_specs.rules import SecurityRule, build_default_rules
from openapi_directory.core.models import (
    ScanContext,
    ScanSummary,
    SecurityIssue,
    SecurityScanResult,
    Severity,
    utc_now_iso,
)
from openapi_directory.utils.logging import get_logger

logger = get_logger(__name__)


class NodeKind(str, Enum):
    """Kinds of node found in a parsed JSON/YAML document."""

    SCALAR = "scalar"
    SEQUENCE = "sequence"
    MAPPING = "mapping"


def node_kind(value: Any) -> Optional[NodeKind]:
    """Classify a value; None for values the scanner skips."""
    if value is None:
        return None
    if isinstance(value, (str, int, float, bool)):
        return NodeKind.SCALAR
    if isinstance(value, Mapping):
        return NodeKind.MAPPING
    if isinstance(value, Sequence) and not isinstance(value, (bytes, bytearray)):
        return NodeKind.SEQUENCE
    return None


def iter_strings(document: Any, path: str = "") -> Iterator[Tuple[str, str]]:
    """
    Yield ``(path, text)`` for every string leaf, depth first in document order.

    Each list or mapping is walked once, so YAML aliases that point back
    at an enclosing node terminate.
    """
    stack: List[Tuple[str, Any]] = [(path, document)]
    seen: Set[int] = set()
    while stack:
        current_path, value = stack.pop()
        kind = node_kind(value)
        if kind is None:
            continue
        if kind is not NodeKind.SCALAR:
            if id(value) in seen:
                continue
            seen.add(id(value))
        handler = _HANDLERS[kind]
        children, leaf = handler(current_path, value)
        if leaf is not None:
            yield leaf
        # Reverse so children are visited in their original order
        stack.extend(reversed(children))


def _visit_scalar(path: str, value: Any):
    if isinstance(value, str):
        return [], (path, value)
    return [], None


def _visit_sequence(path: str, value: Sequence):
    return [(f"{path}[{index}]", item) for index, item in enumerate(value)], None


def _visit_mapping(path: str, value: Mapping):
    children = []
    for key, item in value.items():
        children.append((f"{path}.{key}" if path else str(key), item))
    return children, None


_HANDLERS: Dict[NodeKind, Callable] = {
    NodeKind.SCALAR: _visit_scalar,
    NodeKind.SEQUENCE: _visit_sequence,
    NodeKind.MAPPING: _visit_mapping,
}


def determine_context(path: str) -> ScanContext:
    """Derive the structural context of a string from its JSON path."""
    lower = path.lower()

    if "example" in lower:
        return ScanContext.EXAMPLE
    if "description" in lower or "summary" in lower:
        return ScanContext.DESCRIPTION
    if any(token in lower for token in ("parameter", "headers", "query", "path")):
        return ScanContext.PARAMETER
    if any(token in lower for token in ("schema", "properties", "items", "additionalproperties")):
        return ScanContext.SCHEMA
    return ScanContext.METADATA


class SecurityScanner:
    """Rule-based content-safety analyzer for parsed specs."""

    def __init__(self, rules: Optional[List[SecurityRule]] = None):
        self.rules: List[SecurityRule] = list(rules) if rules is not None else build_default_rules()

    @classmethod
    def from_config(cls, scanner_config: Any) -> "SecurityScanner":
        """Build a scanner from a ``ScannerConfig`` section."""
        return cls(build_default_rules(
            base64_min_length=scanner_config.base64_min_length,
            credential_min_length=scanner_config.credential_min_length,
            disabled_rules=scanner_config.disabled_rules,
        ))

    def add_rule(self, rule: SecurityRule) -> None:
        self.rules.append(rule)

    def scan_spec(self, document: Any) -> SecurityScanResult:
        """
        Scan a parsed spec document.

        Args:
            document: Parsed JSON/YAML value of any shape

        Returns:
            Scan result; ``blocked`` is set when any critical issue remains
        """
        issues: List[SecurityIssue] = []
        for location, text in iter_strings(document):
            issues.extend(self.scan_string(text, location))

        summary = ScanSummary(
            critical=sum(1 for i in issues if i.severity == Severity.CRITICAL),
            high=sum(1 for i in issues if i.severity == Severity.HIGH),
            medium=sum(1 for i in issues if i.severity == Severity.MEDIUM),
            low=sum(1 for i in issues if i.severity == Severity.LOW),
        )

        result = SecurityScanResult(
            scanned_at=utc_now_iso(),
            issues=issues,
            summary=summary,
            blocked=summary.critical > 0,
        )
        if issues:
            logger.debug(
                f"Security scan found {len(issues)} issue(s), blocked={result.blocked}"
            )
        return result

    def scan_string(self, value: str, location: str) -> List[SecurityIssue]:
        """Apply every rule whose contexts include this string's context."""
        context = determine_context(location)
        found: List[SecurityIssue] = []

        for rule in self.rules:
            if not rule.applies_to(context):
                continue
            pattern_text = rule.match(value)
            if pattern_text is None:
                continue

            severity = rule.severity
            message = rule.message
            if context == ScanContext.EXAMPLE and rule.allow_in_examples:
                severity = severity.downgrade()
                message = f"{message} (in example context)"

            found.append(SecurityIssue(
                type=rule.type,
                severity=severity,
                location=location,
                context=context,
                pattern=pattern_text,
                message=message,
                rule_id=rule.id,
                suggestion=rule.suggestion,
            ))

        return found

    def generate_report(self, result: SecurityScanResult) -> str:
        """Render a scan result as a multi-line report grouped by severity."""
        lines = ["Security Scan Report", f"Scanned at: {result.scanned_at}", ""]

        if not result.issues:
            lines.append("No security issues found")
            return "\n".join(lines) + "\n"

        summary = result.summary
        lines.append("Summary:")
        if summary.critical:
            lines.append(f"  {summary.critical} critical issue(s)")
        if summary.high:
            lines.append(f"  {summary.high} high severity issue(s)")
        if summary.medium:
            lines.append(f"  {summary.medium} medium severity issue(s)")
        if summary.low:
            lines.append(f"  {summary.low} low severity issue(s)")

        if result.blocked:
            lines.append("")
            lines.append("Import blocked due to critical security issues")

        lines.append("")
        lines.append("Detailed Issues:")

        for severity in Severity:
            band = [issue for issue in result.issues if issue.severity == severity]
            if not band:
                continue
            lines.append("")
            lines.append(f"{severity.value.upper()} SEVERITY:")
            for index, issue in enumerate(band, 1):
                lines.append(f"  {index}. {issue.message}")
                lines.append(f"     Location: {issue.location}")
                lines.append(f"     Context: {issue.context.value}")
                lines.append(f'     Pattern: "{issue.pattern}"')
                if issue.suggestion:
                    lines.append(f"     Suggestion: {issue.suggestion}")

        return "\n".join(lines) + "\n"
