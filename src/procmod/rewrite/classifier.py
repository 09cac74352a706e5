"""Parameter classification for legacy error statements.

Decides the replacement shape ``;THROW code, message, state`` from the
legacy argument list. Severity has no slot in the modern statement and is
dropped; callers that filter on severity downstream must not rely on it
surviving the rewrite.
"""

from __future__ import annotations

import re

from procmod.rewrite.types import (
    DEFAULT_MESSAGE,
    DEFAULT_STATE,
    MIN_CUSTOM_ERROR_CODE,
    ClassifiedParams,
    CodeSource,
    LiteralCode,
    ParsedLegacyStatement,
    ReferenceCode,
)

_INT_RE = re.compile(r"[+-]?\d+")


def split_top_level(param_text: str) -> list[str]:
    """Split on commas that are not nested inside parentheses.

    Commas inside string literals are split on like any other; the result
    is stripped token text.
    """
    parts: list[str] = []
    depth = 0
    current: list[str] = []
    for ch in param_text:
        if ch == "(":
            depth += 1
        elif ch == ")" and depth > 0:
            depth -= 1
        elif ch == "," and depth == 0:
            parts.append("".join(current).strip())
            current = []
            continue
        current.append(ch)
    parts.append("".join(current).strip())
    return parts


def parse_int_literal(token: str) -> int | None:
    token = token.strip()
    if _INT_RE.fullmatch(token) is None:
        return None
    return int(token)


def classify_code(token: str) -> CodeSource:
    """Literal when *token* is a plain integer, otherwise a reference.

    Literal codes are raised to the custom-error floor.
    """
    if "@" in token or "(" in token or ")" in token:
        return ReferenceCode(token)
    value = parse_int_literal(token)
    if value is None:
        return ReferenceCode(token)
    return LiteralCode(max(value, MIN_CUSTOM_ERROR_CODE))


def _parse_state(token: str | None) -> int:
    if token is None:
        return DEFAULT_STATE
    value = parse_int_literal(token)
    return DEFAULT_STATE if value is None else value


def _at(tokens: list[str], idx: int) -> str | None:
    return tokens[idx] if idx < len(tokens) else None


def classify(param_text: str) -> ClassifiedParams:
    """Classify the argument list of a parenthesized legacy statement."""
    tokens = split_top_level(param_text)
    if not tokens[0]:
        raise ValueError("empty first parameter in legacy error statement")

    statement = ParsedLegacyStatement(
        raw_text=param_text,
        first_param=tokens[0],
        second_param=_at(tokens, 1),
        third_param=_at(tokens, 2),
        fourth_param=_at(tokens, 3),
    )
    code_source = classify_code(tokens[0])
    if isinstance(code_source, LiteralCode):
        message = statement.fourth_param or DEFAULT_MESSAGE
        dropped = tokens[4:]
    else:
        # The message is the first argument, so substitutions start at the fourth.
        message = code_source.expr
        dropped = tokens[3:]

    return ClassifiedParams(
        code_source=code_source,
        message=message,
        state=_parse_state(statement.third_param),
        statement=statement,
        severity=statement.second_param,
        dropped_args=tuple(dropped),
    )


def classify_bare(code_text: str, message_text: str) -> ClassifiedParams:
    """Classify the unparenthesized ``RAISERROR <code> <message>`` form.

    State is always 1; that form has no severity or state arguments.
    Raises ValueError when the code is not an integer literal.
    """
    value = parse_int_literal(code_text)
    if value is None:
        raise ValueError(f"non-numeric error code {code_text!r}")
    statement = ParsedLegacyStatement(
        raw_text=f"{code_text} {message_text}",
        first_param=code_text,
        second_param=None,
        third_param=None,
        fourth_param=message_text,
    )
    return ClassifiedParams(
        code_source=LiteralCode(max(value, MIN_CUSTOM_ERROR_CODE)),
        message=message_text,
        state=DEFAULT_STATE,
        statement=statement,
    )
