"""Legacy error-statement and deprecated-syntax rewriting."""

from procmod.rewrite.classifier import classify, classify_bare, split_top_level
from procmod.rewrite.engine import (
    RewriteEngine,
    RewriteReport,
    StatementRewrite,
    rewrite,
)
from procmod.rewrite.rules import (
    DEFAULT_RULES,
    LEGACY_RULES,
    RewriteRule,
    apply_rules,
)
from procmod.rewrite.scanner import locate_legacy_statement
from procmod.rewrite.types import (
    MIN_CUSTOM_ERROR_CODE,
    ClassifiedParams,
    LiteralCode,
    ParsedLegacyStatement,
    ReferenceCode,
    ScanAmbiguous,
    ScanFound,
    ScanNotFound,
    ScanResult,
    StatementSpan,
)

__all__ = [
    "ClassifiedParams",
    "DEFAULT_RULES",
    "LEGACY_RULES",
    "LiteralCode",
    "MIN_CUSTOM_ERROR_CODE",
    "ParsedLegacyStatement",
    "ReferenceCode",
    "RewriteEngine",
    "RewriteReport",
    "RewriteRule",
    "ScanAmbiguous",
    "ScanFound",
    "ScanNotFound",
    "ScanResult",
    "StatementRewrite",
    "StatementSpan",
    "apply_rules",
    "classify",
    "classify_bare",
    "locate_legacy_statement",
    "rewrite",
    "split_top_level",
]
