"""Tests for procmod.rewrite.classifier: THROW shape selection."""
from __future__ import annotations

import pytest

from procmod.rewrite.classifier import (
    classify,
    classify_bare,
    classify_code,
    parse_int_literal,
    split_top_level,
)
from procmod.rewrite.types import (
    DEFAULT_MESSAGE,
    MIN_CUSTOM_ERROR_CODE,
    LiteralCode,
    ReferenceCode,
)


class TestSplitTopLevel:
    def test_simple(self) -> None:
        assert split_top_level("50002, 16, 1, @CustomError") == [
            "50002", "16", "1", "@CustomError",
        ]

    def test_nested_call_kept_whole(self) -> None:
        assert split_top_level("CONCAT('a', @b), 16, 1") == ["CONCAT('a', @b)", "16", "1"]

    def test_commas_in_literals_are_split(self) -> None:
        assert split_top_level("'a,b', 16") == ["'a", "b'", "16"]

    def test_single_token(self) -> None:
        assert split_top_level("  @msg ") == ["@msg"]


class TestClassifyCode:
    def test_literal(self) -> None:
        assert classify_code("50002") == LiteralCode(50002)

    def test_literal_below_floor(self) -> None:
        assert classify_code("100") == LiteralCode(MIN_CUSTOM_ERROR_CODE)
        assert classify_code("-5") == LiteralCode(MIN_CUSTOM_ERROR_CODE)

    def test_variable_is_reference(self) -> None:
        assert classify_code("@ErrorMessage") == ReferenceCode("@ErrorMessage")

    def test_quoted_text_is_reference(self) -> None:
        assert isinstance(classify_code("'Customer not found'"), ReferenceCode)

    def test_parse_int_literal(self) -> None:
        assert parse_int_literal(" 42 ") == 42
        assert parse_int_literal("4.2") is None
        assert parse_int_literal("@x") is None


class TestClassify:
    def test_literal_with_message(self) -> None:
        params = classify("50002, 16, 1, @CustomError")
        assert params.code == 50002
        assert params.message == "@CustomError"
        assert params.state == 1
        assert params.severity == "16"
        assert params.render() == ";THROW 50002, @CustomError, 1"

    def test_literal_without_message_uses_default(self) -> None:
        params = classify("50010, 16, 2")
        assert params.message == DEFAULT_MESSAGE
        assert params.state == 2
        assert params.render() == ";THROW 50010, 'An error occurred', 2"

    def test_literal_floor(self) -> None:
        params = classify("100, 16, 1, 'Too low'")
        assert params.code == MIN_CUSTOM_ERROR_CODE
        assert params.render() == ";THROW 50000, 'Too low', 1"

    def test_message_first_falls_back_to_floor_code(self) -> None:
        params = classify("'Customer not found', 16, 1")
        assert isinstance(params.code_source, ReferenceCode)
        assert params.code == MIN_CUSTOM_ERROR_CODE
        assert params.message == "'Customer not found'"
        assert params.render() == ";THROW 50000, 'Customer not found', 1"

    def test_variable_arguments(self) -> None:
        params = classify("@ErrorMessage, @ErrorSeverity, @ErrorState")
        assert params.message == "@ErrorMessage"
        assert params.severity == "@ErrorSeverity"
        # Non-literal state collapses to the default.
        assert params.state == 1

    def test_missing_state_defaults(self) -> None:
        params = classify("@msg")
        assert params.state == 1
        assert params.severity is None

    def test_extra_arguments_dropped(self) -> None:
        params = classify("50001, 16, 1, 'Bad value %s in %s', @name, @table")
        assert params.dropped_args == ("@name", "@table")
        assert params.render() == ";THROW 50001, 'Bad value %s in %s', 1"

    def test_message_first_drops_substitution_arguments(self) -> None:
        params = classify("'Order %d missing', 16, 1, @OrderId")
        assert params.dropped_args == ("@OrderId",)
        assert params.render() == ";THROW 50000, 'Order %d missing', 1"

    def test_statement_view(self) -> None:
        params = classify("50001, 16, 1")
        assert params.statement.first_param == "50001"
        assert params.statement.second_param == "16"
        assert params.statement.third_param == "1"
        assert params.statement.fourth_param is None

    def test_empty_first_parameter(self) -> None:
        with pytest.raises(ValueError):
            classify(", 16, 1")


class TestClassifyBare:
    def test_code_and_variable(self) -> None:
        params = classify_bare("50001", "@ErrorMsg")
        assert params.render() == ";THROW 50001, @ErrorMsg, 1"
        assert params.severity is None

    def test_floor_applies(self) -> None:
        assert classify_bare("10", "'x'").code == MIN_CUSTOM_ERROR_CODE

    def test_non_numeric_code(self) -> None:
        with pytest.raises(ValueError):
            classify_bare("abc", "@m")
