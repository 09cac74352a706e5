"""Trigger-anchored scanner for legacy ``RAISERROR`` statements.

Two shapes are recognised:

* ``RAISERROR (args...)``: bounded by parenthesis depth matching.
* ``RAISERROR 50001 @msg``: bounded by the end of the line.

The scanner is not aware of string literals or comments. Anything it cannot
bound is reported as :class:`ScanAmbiguous` so the caller can skip it.
"""

from __future__ import annotations

import re

from procmod.rewrite.types import (
    SCAN_NOT_FOUND,
    ScanAmbiguous,
    ScanFound,
    ScanResult,
    StatementSpan,
)

TRIGGER_KEYWORD = "RAISERROR"

_TRIGGER_RE = re.compile(rf"\b{TRIGGER_KEYWORD}\b", re.IGNORECASE)
_PAREN_OPEN_RE = re.compile(r"\s*\(")
_BARE_LEAD_RE = re.compile(r"[ \t]+(?=\d)")
_WHITESPACE_RE = re.compile(r"\s+")


def line_end(text: str, offset: int) -> int:
    """Index of the first CR or LF at/after *offset*, else ``len(text)``."""
    ends = [pos for pos in (text.find("\r", offset), text.find("\n", offset)) if pos >= 0]
    return min(ends) if ends else len(text)


def match_close_paren(text: str, open_idx: int) -> int | None:
    """Return the index of the ``)`` closing the ``(`` at *open_idx*.

    Nested parentheses are counted; those inside string literals are not
    distinguished from real nesting.
    """
    depth = 0
    for idx in range(open_idx, len(text)):
        ch = text[idx]
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth == 0:
                return idx
    return None


def _scan_parenthesized(text: str, start: int, open_idx: int) -> ScanResult:
    close_idx = match_close_paren(text, open_idx)
    if close_idx is None:
        return ScanAmbiguous(
            position=start,
            resume_at=open_idx + 1,
            reason="no matching close parenthesis",
        )
    if _TRIGGER_RE.search(text, open_idx + 1, close_idx):
        return ScanAmbiguous(
            position=start,
            resume_at=close_idx + 1,
            reason="nested RAISERROR inside statement",
        )
    return ScanFound(StatementSpan(
        start=start,
        end=close_idx + 1,
        form="parenthesized",
        param_text=text[open_idx + 1:close_idx],
    ))


def _scan_bare(text: str, start: int, code_start: int) -> ScanResult:
    eol = line_end(text, code_start)
    region = text[code_start:eol].rstrip()
    sep = _WHITESPACE_RE.search(region)
    if sep is None:
        return ScanAmbiguous(
            position=start,
            resume_at=max(eol, code_start + 1),
            reason="no whitespace between error code and message",
        )

    code = region[:sep.start()]
    message = region[sep.end():]
    # A statement terminator stays after the rewritten statement.
    if message.endswith(";"):
        message = message[:-1].rstrip()
    if not message:
        return ScanAmbiguous(
            position=start,
            resume_at=max(eol, code_start + 1),
            reason="missing message expression",
        )

    end = code_start + sep.end() + len(message)
    if _TRIGGER_RE.search(message):
        return ScanAmbiguous(
            position=start,
            resume_at=end,
            reason="nested RAISERROR inside statement",
        )
    return ScanFound(StatementSpan(
        start=start,
        end=end,
        form="bare",
        param_text=text[code_start:end],
        tokens=(code, message),
    ))


def locate_legacy_statement(text: str, from_offset: int = 0) -> ScanResult:
    """Find the next legacy error statement at or after *from_offset*."""
    m = _TRIGGER_RE.search(text, from_offset)
    if m is None:
        return SCAN_NOT_FOUND
    start, keyword_end = m.start(), m.end()

    paren = _PAREN_OPEN_RE.match(text, keyword_end)
    if paren is not None:
        return _scan_parenthesized(text, start, paren.end() - 1)

    bare = _BARE_LEAD_RE.match(text, keyword_end)
    if bare is not None:
        return _scan_bare(text, start, bare.end())

    return ScanAmbiguous(
        position=start,
        resume_at=keyword_end,
        reason="unrecognized RAISERROR form",
    )


def count_trigger_keywords(text: str) -> int:
    return len(_TRIGGER_RE.findall(text))
