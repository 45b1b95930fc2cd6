"""PII redaction applied to content before it reaches the knowledge store.

Rules run in a fixed order (email, phone, card number) and every replacement
token is free of digits and ``@``, so redacting already-redacted text is a
no-op. Pattern matching is advisory: it catches common formats, not all PII.
"""

import re
from dataclasses import dataclass, field


@dataclass(frozen=True)
class RedactionRule:
    name: str
    pattern: re.Pattern
    replacement: str


@dataclass
class ScanResult:
    has_pii: bool = False
    pii_found: list[str] = field(default_factory=list)


DEFAULT_RULES: tuple[RedactionRule, ...] = (
    RedactionRule(
        "email",
        re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}"),
        "[EMAIL_REDACTED]",
    ),
    RedactionRule(
        "phone",
        re.compile(r"(\+\d{1,2}\s?)?1?-?\.?\s?\(?\d{3}\)?[\s.-]?\d{3}[\s.-]?\d{4}"),
        "[PHONE_REDACTED]",
    ),
    RedactionRule(
        "credit_card",
        re.compile(r"\b(?:\d[ -]*?){13,16}\b"),
        "[CC_REDACTED]",
    ),
)


class Redactor:
    """Ordered regex redaction."""

    def __init__(self, rules: tuple[RedactionRule, ...] | None = None):
        self.rules = rules or DEFAULT_RULES

    def scan(self, content: str) -> ScanResult:
        result = ScanResult()
        if not content:
            return result
        for rule in self.rules:
            if rule.pattern.search(content):
                result.pii_found.append(rule.name)
                result.has_pii = True
        return result

    def redact(self, content: str) -> str:
        if not content:
            return content
        redacted = content
        for rule in self.rules:
            redacted = rule.pattern.sub(rule.replacement, redacted)
        return redacted


_default_redactor = Redactor()


def redact(content: str) -> str:
    return _default_redactor.redact(content)


def scan_content(content: str) -> ScanResult:
    return _default_redactor.scan(content)
