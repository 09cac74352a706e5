"""Rewrite engine: legacy error statements first, then the rule set.

``rewrite(text)`` is idempotent: running it on its own output returns the
output unchanged. Text without any legacy signature comes back untouched.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass, field

from procmod.rewrite.classifier import classify, classify_bare
from procmod.rewrite.rules import DEFAULT_RULES, RewriteRule, apply_rules
from procmod.rewrite.scanner import locate_legacy_statement
from procmod.rewrite.types import (
    ClassifiedParams,
    ScanAmbiguous,
    ScanFound,
    StatementForm,
    StatementSpan,
)

log = logging.getLogger(__name__)

_STRING_LITERAL_RE = re.compile(r"'(?:[^']|'')*'")
_TRAILING_OPTIONS_RE = re.compile(r"[ \t]*WITH\s+(?:NOWAIT|LOG|SETERROR)\b", re.IGNORECASE)


@dataclass(frozen=True, slots=True)
class StatementRewrite:
    """One legacy statement replaced in the output."""

    position: int
    form: StatementForm
    original: str
    replacement: str
    code: int
    severity: str | None = None


@dataclass(slots=True)
class RewriteReport:
    original_text: str
    text: str
    statements: list[StatementRewrite] = field(default_factory=list)
    skipped: list[ScanAmbiguous] = field(default_factory=list)
    rule_hits: dict[str, int] = field(default_factory=dict)
    review_flags: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return self.text != self.original_text

    @property
    def needs_review(self) -> bool:
        return bool(self.review_flags)

    def to_dict(self) -> dict[str, object]:
        return {
            "changed": self.changed,
            "statements": [
                {
                    "position": s.position,
                    "form": s.form,
                    "original": s.original,
                    "replacement": s.replacement,
                    "code": s.code,
                    "severity_dropped": s.severity,
                }
                for s in self.statements
            ],
            "skipped": [
                {"position": s.position, "reason": s.reason} for s in self.skipped
            ],
            "rule_hits": dict(self.rule_hits),
            "review_flags": list(self.review_flags),
        }


def _literal_has_delimiter(param_text: str) -> bool:
    return any(
        any(ch in ",()" for ch in m.group(0)[1:-1])
        for m in _STRING_LITERAL_RE.finditer(param_text)
    )


def _review_flags(span: StatementSpan, params: ClassifiedParams, tail: str) -> list[str]:
    flags: list[str] = []
    if span.form == "parenthesized" and _literal_has_delimiter(span.param_text):
        flags.append(
            "string literal contains a comma or parenthesis; "
            "verify the argument split",
        )
    if params.dropped_args:
        flags.append(
            f"{len(params.dropped_args)} substitution argument(s) dropped: "
            + ", ".join(params.dropped_args),
        )
    if _TRAILING_OPTIONS_RE.match(tail):
        flags.append("WITH option follows the statement and has no THROW equivalent")
    return flags


class RewriteEngine:
    """Compose scanner, classifier and rule set into ``rewrite(text)``."""

    def __init__(self, rules: Sequence[RewriteRule] = DEFAULT_RULES) -> None:
        self._rules = tuple(rules)

    @property
    def rules(self) -> tuple[RewriteRule, ...]:
        return self._rules

    def rewrite(self, text: str) -> str:
        return self.rewrite_with_report(text).text

    def rewrite_with_report(self, text: str) -> RewriteReport:
        report = RewriteReport(original_text=text, text=text)
        current = self._rewrite_statements(text, report)
        current, hits = apply_rules(
            current, self._rules, changed=current != text,
        )
        report.text = current
        report.rule_hits = hits
        return report

    def _rewrite_statements(self, text: str, report: RewriteReport) -> str:
        offset = 0
        while True:
            result = locate_legacy_statement(text, offset)
            if isinstance(result, ScanAmbiguous):
                self._skip(report, result)
                offset = result.resume_at
                continue
            if not isinstance(result, ScanFound):
                return text

            span = result.span
            try:
                if span.form == "bare":
                    params = classify_bare(*span.tokens)
                else:
                    params = classify(span.param_text)
            except ValueError as exc:
                self._skip(report, ScanAmbiguous(
                    position=span.start, resume_at=span.end, reason=str(exc),
                ))
                offset = span.end
                continue

            replacement = params.render()
            report.statements.append(StatementRewrite(
                position=span.start,
                form=span.form,
                original=text[span.start:span.end],
                replacement=replacement,
                code=params.code,
                severity=params.severity,
            ))
            report.review_flags.extend(_review_flags(span, params, text[span.end:]))
            text = text[:span.start] + replacement + text[span.end:]
            offset = span.start + len(replacement)

    @staticmethod
    def _skip(report: RewriteReport, skipped: ScanAmbiguous) -> None:
        log.debug("Skipping RAISERROR at %d: %s", skipped.position, skipped.reason)
        report.skipped.append(skipped)
        report.review_flags.append(
            f"RAISERROR at offset {skipped.position} left unchanged: {skipped.reason}",
        )


_DEFAULT_ENGINE = RewriteEngine()


def rewrite(text: str) -> str:
    """Rewrite *text* with the default rule set."""
    return _DEFAULT_ENGINE.rewrite(text)
