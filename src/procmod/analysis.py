"""Legacy-signature detection for catalog filtering and preview output.

Pure text operations: counts what the rewrite engine would act on, grouped
into the issue categories shown by ``preview``.
"""
from __future__ import annotations

import re
from dataclasses import dataclass

from procmod.rewrite.rules import LEGACY_RULES
from procmod.rewrite.scanner import count_trigger_keywords

ERROR_HANDLING = "RAISERROR syntax found"

# Preview labels per rule category, in report order.
_CATEGORY_LABELS: dict[str, str] = {
    "Data Types": "Deprecated data types found",
    "JOIN Syntax": "Old JOIN syntax found",
    "Settings": "Deprecated settings found",
    "Functions": "Deprecated functions found",
}

_PAREN_FORM_RE = re.compile(r"\bRAISERROR\s*\(", re.IGNORECASE)
_BARE_FORM_RE = re.compile(r"\bRAISERROR[ \t]+\d", re.IGNORECASE)


@dataclass(frozen=True, slots=True)
class DetectedIssue:
    """One kind of deprecated syntax found in a unit."""

    category: str
    issue: str
    found_count: int


def detect_issues(text: str) -> list[DetectedIssue]:
    """List every deprecated construct in *text* with its occurrence count."""
    issues: list[DetectedIssue] = []
    raiserrors = count_trigger_keywords(text)
    if raiserrors:
        issues.append(DetectedIssue("Error Handling", "RAISERROR usage detected", raiserrors))
    for rule in LEGACY_RULES:
        n = rule.count(text)
        if n:
            issues.append(DetectedIssue(rule.category, rule.issue, n))
    return issues


def issue_categories(text: str) -> list[str]:
    """Human-readable category labels, one per kind of problem present."""
    labels: list[str] = []
    for issue in detect_issues(text):
        if issue.category == "Error Handling":
            label = ERROR_HANDLING
        else:
            label = _CATEGORY_LABELS[issue.category]
        if label not in labels:
            labels.append(label)
    return labels


def has_legacy_signature(text: str) -> bool:
    if count_trigger_keywords(text):
        return True
    return any(rule.pattern.search(text) for rule in LEGACY_RULES)


def detect_raiserror_forms(text: str) -> list[str]:
    """Which RAISERROR shapes occur in *text*."""
    forms: list[str] = []
    if _BARE_FORM_RE.search(text):
        forms.append("RAISERROR with error number and variable")
    if _PAREN_FORM_RE.search(text):
        forms.append("RAISERROR with parentheses syntax")
    return forms
