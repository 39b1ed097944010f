"""
Security rules applied by the custom spec scanner.

Each rule declares the contexts it applies to and either a regex or a
detector predicate. Length thresholds of the heuristic rules come from
configuration because their false-positive rate is not tuned.
"""

import re
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Tuple

import nh3

from openapi_directory.core.models import IssueType, ScanContext, Severity

D = ScanContext.DESCRIPTION
E = ScanContext.EXAMPLE
P = ScanContext.PARAMETER
S = ScanContext.SCHEMA


@dataclass
class SecurityRule:
    """A single content-safety rule."""

    id: str
    type: IssueType
    severity: Severity
    contexts: Tuple[ScanContext, ...]
    message: str
    description: str = ""
    suggestion: Optional[str] = None
    pattern: Optional["re.Pattern[str]"] = None
    detect: Optional[Callable[[str], bool]] = None
    detect_label: str = "Detected by custom function"
    allow_in_examples: bool = False

    def applies_to(self, context: ScanContext) -> bool:
        return context in self.contexts

    def match(self, value: str) -> Optional[str]:
        """
        Test a string against the rule.

        Returns:
            The matched text (or the detector label), None if no match
        """
        if self.detect is not None:
            return self.detect_label if self.detect(value) else None
        if self.pattern is not None:
            found = self.pattern.search(value)
            if found:
                return found.group(0) or value
        return None


def has_script_tag(content: str) -> bool:
    """True when the XSS sanitizer alters the text and it contains a script tag."""
    return "<script" in content.lower() and nh3.clean(content) != content


def build_default_rules(
    base64_min_length: int = 20,
    credential_min_length: int = 8,
    disabled_rules: Iterable[str] = (),
) -> List[SecurityRule]:
    """
    Build the default ordered rule set.

    Args:
        base64_min_length: Shortest run treated as a base64 payload
        credential_min_length: Shortest secret treated as a leaked credential
        disabled_rules: Rule ids to leave out

    Returns:
        Rules in evaluation order
    """
    rules = [
        SecurityRule(
            id="script-tag-injection",
            type=IssueType.SCRIPT_INJECTION,
            severity=Severity.HIGH,
            contexts=(D, E, P),
            detect=has_script_tag,
            detect_label="Script tags detected by XSS filter",
            allow_in_examples=True,
            message="Script tag detected - potential XSS vector",
            suggestion="Remove script tags or escape HTML content",
            description="Detects HTML script tags that could be used for XSS",
        ),
        SecurityRule(
            id="javascript-protocol",
            type=IssueType.SCRIPT_INJECTION,
            severity=Severity.HIGH,
            contexts=(D, E, P, S),
            pattern=re.compile(r"javascript:", re.IGNORECASE),
            message="JavaScript protocol detected",
            suggestion="Use HTTPS URLs instead of javascript: protocol",
            description="Detects javascript: protocol which can execute arbitrary code",
        ),
        SecurityRule(
            id="eval-function",
            type=IssueType.EVAL_USAGE,
            severity=Severity.MEDIUM,
            contexts=(D, E, P, S),
            pattern=re.compile(r"\beval\s*\(", re.IGNORECASE),
            allow_in_examples=True,
            message="eval() function detected",
            suggestion="Avoid eval() - use safer alternatives like JSON.parse()",
            description="Detects eval() function which can execute arbitrary code",
        ),
        SecurityRule(
            id="function-constructor",
            type=IssueType.EVAL_USAGE,
            severity=Severity.MEDIUM,
            contexts=(D, E, P, S),
            pattern=re.compile(r"new\s+Function\s*\(", re.IGNORECASE),
            allow_in_examples=True,
            message="Function constructor detected",
            suggestion="Avoid Function constructor - use safer alternatives",
            description="Detects Function constructor which can execute arbitrary code",
        ),
        SecurityRule(
            id="prompt-instruction-override",
            type=IssueType.PROMPT_INJECTION,
            severity=Severity.HIGH,
            contexts=(D, E, P),
            pattern=re.compile(
                r"ignore\s+(previous|above|all)\s+(instructions?|prompts?|rules?)",
                re.IGNORECASE,
            ),
            message="Prompt instruction override detected",
            suggestion="Remove or rephrase content that attempts to override system instructions",
            description="Detects attempts to override AI system instructions",
        ),
        SecurityRule(
            id="role-injection",
            type=IssueType.PROMPT_INJECTION,
            severity=Severity.MEDIUM,
            contexts=(D, E),
            pattern=re.compile(
                r"(act\s+as|you\s+are\s+now|forget\s+you\s+are|pretend\s+to\s+be)",
                re.IGNORECASE,
            ),
            message="Role injection pattern detected",
            suggestion="Rephrase to avoid role manipulation language",
            description="Detects attempts to manipulate AI role or behavior",
        ),
        SecurityRule(
            id="system-prompt-leak",
            type=IssueType.PROMPT_INJECTION,
            severity=Severity.MEDIUM,
            contexts=(D, E, P),
            pattern=re.compile(
                r"(show\s+me\s+your|what\s+are\s+your)\s+(system\s+)?(prompt|instructions|rules)",
                re.IGNORECASE,
            ),
            message="System prompt leak attempt detected",
            suggestion="Remove attempts to extract system prompts",
            description="Detects attempts to extract system prompts or instructions",
        ),
        SecurityRule(
            id="data-exfiltration",
            type=IssueType.SUSPICIOUS_CONTENT,
            severity=Severity.MEDIUM,
            contexts=(D, E),
            pattern=re.compile(
                r"(send\s+to|POST\s+to|transmit\s+to)\s+[a-zA-Z0-9\-.]+\.(com|net|org|io)",
                re.IGNORECASE,
            ),
            message="Potential data exfiltration pattern detected",
            suggestion="Review if external data transmission is intentional",
            description="Detects patterns that might indicate data exfiltration",
        ),
        SecurityRule(
            id="credential-exposure",
            type=IssueType.SUSPICIOUS_CONTENT,
            severity=Severity.CRITICAL,
            contexts=(E, P, S),
            pattern=re.compile(
                r"(password|secret|key|token)\s*[:=]\s*[\"']?[a-zA-Z0-9]{%d,}" % credential_min_length,
                re.IGNORECASE,
            ),
            message="Potential credential exposure detected",
            suggestion='Replace with placeholder values like "your_api_key_here"',
            description="Detects potential hardcoded credentials",
        ),
        SecurityRule(
            id="base64-encoded-script",
            type=IssueType.SUSPICIOUS_CONTENT,
            severity=Severity.LOW,
            contexts=(E, P),
            pattern=re.compile(r"[a-zA-Z0-9+/]{%d,}={0,2}" % base64_min_length),
            message="Potential Base64 encoded content detected",
            suggestion="Review Base64 content to ensure it's not malicious",
            description="Detects Base64 encoded content that might hide malicious payloads",
        ),
        SecurityRule(
            id="html-injection",
            type=IssueType.SCRIPT_INJECTION,
            severity=Severity.LOW,
            contexts=(D, E),
            pattern=re.compile(r"<[^>]+>"),
            message="HTML tags detected",
            suggestion="Escape HTML content or use plain text",
            description="Detects HTML tags that might be used for injection",
        ),
    ]

    disabled = set(disabled_rules)
    return [rule for rule in rules if rule.id not in disabled]
