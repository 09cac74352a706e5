"""Ordered text substitutions for deprecated T-SQL syntax.

Every rule is a plain regex substitution: none of them know where string
literals or comments begin, so they can fire inside either. Unconditional
rules repeat until a pass changes nothing, so the set is idempotent.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import TypeAlias

Replacement: TypeAlias = str | Callable[[re.Match[str]], str]


@dataclass(frozen=True, slots=True)
class RewriteRule:
    """One named substitution.

    ``max_hits`` of 0 replaces every match. ``only_if_changed`` rules run
    only when an earlier step already modified the text.
    """

    name: str
    category: str
    issue: str
    pattern: re.Pattern[str]
    replacement: Replacement
    max_hits: int = 0
    only_if_changed: bool = False

    def apply(self, text: str) -> tuple[str, int]:
        """Return (new_text, number of matches whose text actually changed)."""
        hits = 0

        def _sub(m: re.Match[str]) -> str:
            nonlocal hits
            if callable(self.replacement):
                out = self.replacement(m)
            else:
                out = m.expand(self.replacement)
            if out != m.group(0):
                hits += 1
            return out

        return self.pattern.sub(_sub, text, count=self.max_hits), hits

    def count(self, text: str) -> int:
        return sum(1 for _ in self.pattern.finditer(text))


def _ci(pattern: str) -> re.Pattern[str]:
    return re.compile(pattern, re.IGNORECASE)


_DEFINITION_KINDS = ("PROCEDURE", "PROC", "FUNCTION", "TRIGGER", "VIEW")

_CREATE_DEFINITION_RE = _ci(
    r"\bCREATE\s+(" + "|".join(_DEFINITION_KINDS) + r")\b",
)


TEXT_TYPE = RewriteRule(
    name="text_type",
    category="Data Types",
    issue="TEXT data type usage",
    pattern=_ci(r"(?<=\s)TEXT(?=\s)"),
    replacement="NVARCHAR(MAX)",
)
NTEXT_TYPE = RewriteRule(
    name="ntext_type",
    category="Data Types",
    issue="NTEXT data type usage",
    pattern=_ci(r"(?<=\s)NTEXT(?=\s)"),
    replacement="NVARCHAR(MAX)",
)
IMAGE_TYPE = RewriteRule(
    name="image_type",
    category="Data Types",
    issue="IMAGE data type usage",
    pattern=_ci(r"(?<=\s)IMAGE(?=\s)"),
    replacement="VARBINARY(MAX)",
)
GETDATE_FUNCTION = RewriteRule(
    name="getdate_function",
    category="Functions",
    issue="GETDATE() function usage",
    pattern=_ci(r"\bGETDATE\s*\(\s*\)"),
    replacement="SYSDATETIME()",
)
# /*= and =*/ are comment delimiters, not join operators.
LEFT_OUTER_JOIN = RewriteRule(
    name="left_outer_join",
    category="JOIN Syntax",
    issue="Old-style JOIN syntax (*=)",
    pattern=re.compile(r"(?<![/*])\*=(?![*=])"),
    replacement="LEFT JOIN",
)
RIGHT_OUTER_JOIN = RewriteRule(
    name="right_outer_join",
    category="JOIN Syntax",
    issue="Old-style JOIN syntax (=*)",
    pattern=re.compile(r"(?<![=*<>!])=\*(?![*/])"),
    replacement="RIGHT JOIN",
)
ANSI_NULLS_SETTING = RewriteRule(
    name="ansi_nulls_off",
    category="Settings",
    issue="ANSI_NULLS OFF setting",
    pattern=_ci(r"\b(SET\s+ANSI_NULLS\s+)OFF\b"),
    replacement=r"\1ON",
)
QUOTED_IDENTIFIER_SETTING = RewriteRule(
    name="quoted_identifier_off",
    category="Settings",
    issue="QUOTED_IDENTIFIER OFF setting",
    pattern=_ci(r"\b(SET\s+QUOTED_IDENTIFIER\s+)OFF\b"),
    replacement=r"\1ON",
)
# Lets the rewritten text be redeployed over the existing unit.
DEFINITION_KEYWORD = RewriteRule(
    name="create_to_alter",
    category="Definition",
    issue="CREATE definition keyword",
    pattern=_CREATE_DEFINITION_RE,
    replacement=r"ALTER \1",
    max_hits=1,
    only_if_changed=True,
)

DEFAULT_RULES: tuple[RewriteRule, ...] = (
    TEXT_TYPE,
    NTEXT_TYPE,
    IMAGE_TYPE,
    GETDATE_FUNCTION,
    LEFT_OUTER_JOIN,
    RIGHT_OUTER_JOIN,
    ANSI_NULLS_SETTING,
    QUOTED_IDENTIFIER_SETTING,
    DEFINITION_KEYWORD,
)

# Rules whose matches mean the unit still carries deprecated syntax.
LEGACY_RULES: tuple[RewriteRule, ...] = tuple(
    rule for rule in DEFAULT_RULES if not rule.only_if_changed
)


# Bound on repeated passes; every default rule consumes the token it matches.
MAX_RULE_PASSES = 8


def apply_rules(
    text: str,
    rules: Sequence[RewriteRule] = DEFAULT_RULES,
    *,
    changed: bool = False,
) -> tuple[str, dict[str, int]]:
    """Apply *rules* in order until none of them fires.

    A substitution can expose a fresh match for an earlier rule (``*=*=``
    becomes ``*=LEFT JOIN``), so unconditional rules repeat until a pass
    changes nothing. ``only_if_changed`` rules then run once; *changed*
    tells them whether earlier processing (statement rewriting) already
    modified the text.

    Returns:
        (new_text, hits) where hits maps rule name to changed-match count
        for rules that fired.
    """
    original = text
    hits: dict[str, int] = {}
    repeating = [rule for rule in rules if not rule.only_if_changed]
    for _ in range(MAX_RULE_PASSES):
        fired = False
        for rule in repeating:
            text, n = rule.apply(text)
            if n:
                hits[rule.name] = hits.get(rule.name, 0) + n
                fired = True
        if not fired:
            break

    if changed or text != original:
        for rule in rules:
            if not rule.only_if_changed:
                continue
            text, n = rule.apply(text)
            if n:
                hits[rule.name] = hits.get(rule.name, 0) + n
    return text, hits
