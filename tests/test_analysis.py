"""Tests for procmod.analysis: legacy-signature detection."""
from __future__ import annotations

from procmod.analysis import (
    DetectedIssue,
    detect_issues,
    detect_raiserror_forms,
    has_legacy_signature,
    issue_categories,
)

MIXED = (
    "CREATE PROCEDURE dbo.p AS\n"
    "SET ANSI_NULLS OFF\n"
    "DECLARE @a TEXT , @b NTEXT \n"
    "RAISERROR (50001, 16, 1, 'x')\n"
    "RAISERROR 50002 @msg\n"
    "SELECT GETDATE() FROM a, b WHERE a.id *= b.id\n"
)


def test_detect_issues_counts() -> None:
    issues = {(i.category, i.issue): i.found_count for i in detect_issues(MIXED)}
    assert issues[("Error Handling", "RAISERROR usage detected")] == 2
    assert issues[("Data Types", "TEXT data type usage")] == 1
    assert issues[("Data Types", "NTEXT data type usage")] == 1
    assert issues[("Functions", "GETDATE() function usage")] == 1
    assert issues[("JOIN Syntax", "Old-style JOIN syntax (*=)")] == 1
    assert issues[("Settings", "ANSI_NULLS OFF setting")] == 1
    assert ("Settings", "QUOTED_IDENTIFIER OFF setting") not in issues


def test_detect_issues_ignores_definition_keyword() -> None:
    assert detect_issues("CREATE PROCEDURE dbo.p AS SELECT 1") == []


def test_issue_categories_deduplicated() -> None:
    assert issue_categories(MIXED) == [
        "RAISERROR syntax found",
        "Deprecated data types found",
        "Deprecated functions found",
        "Old JOIN syntax found",
        "Deprecated settings found",
    ]


def test_issue_categories_clean() -> None:
    assert issue_categories("SELECT 1") == []


def test_has_legacy_signature() -> None:
    assert has_legacy_signature(MIXED)
    assert has_legacy_signature("raiserror @x")
    assert has_legacy_signature("SET QUOTED_IDENTIFIER OFF")
    assert not has_legacy_signature("CREATE PROCEDURE dbo.p AS ;THROW 50001, 'x', 1")


def test_detect_raiserror_forms() -> None:
    assert detect_raiserror_forms(MIXED) == [
        "RAISERROR with error number and variable",
        "RAISERROR with parentheses syntax",
    ]
    assert detect_raiserror_forms("RAISERROR('x', 16, 1)") == [
        "RAISERROR with parentheses syntax",
    ]
    assert detect_raiserror_forms("SELECT 1") == []


def test_detected_issue_is_value_type() -> None:
    assert DetectedIssue("Functions", "x", 1) == DetectedIssue("Functions", "x", 1)
