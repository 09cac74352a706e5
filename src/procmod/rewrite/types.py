"""Core types for legacy error-statement scanning and classification."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, TypeAlias


StatementForm: TypeAlias = Literal["parenthesized", "bare"]

MIN_CUSTOM_ERROR_CODE = 50000
DEFAULT_MESSAGE = "'An error occurred'"
DEFAULT_STATE = 1


@dataclass(frozen=True, slots=True)
class StatementSpan:
    """Located legacy statement: ``text[start:end]`` is the whole statement.

    ``param_text`` is the raw text between the outer parentheses for the
    parenthesized form. For the bare form ``tokens`` holds the
    (code, message) pair split by the scanner.
    """

    start: int
    end: int
    form: StatementForm
    param_text: str
    tokens: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.start < 0:
            raise ValueError(f"start must be >= 0, got {self.start}")
        if self.end <= self.start:
            raise ValueError(f"end must be > start, got {self.end} <= {self.start}")
        if self.form == "bare" and len(self.tokens) != 2:
            raise ValueError("bare statements carry exactly two tokens")


@dataclass(frozen=True, slots=True)
class ScanFound:
    span: StatementSpan


@dataclass(frozen=True, slots=True)
class ScanAmbiguous:
    """An occurrence that could not be bounded; scanning resumes after it."""

    position: int
    resume_at: int
    reason: str

    def __post_init__(self) -> None:
        if self.resume_at <= self.position:
            raise ValueError(
                f"resume_at must be > position, got {self.resume_at} <= {self.position}",
            )


@dataclass(frozen=True, slots=True)
class ScanNotFound:
    pass


ScanResult: TypeAlias = ScanFound | ScanAmbiguous | ScanNotFound

SCAN_NOT_FOUND = ScanNotFound()


@dataclass(frozen=True, slots=True)
class ParsedLegacyStatement:
    """Transient view of one legacy statement's arguments. Never persisted."""

    raw_text: str
    first_param: str
    second_param: str | None
    third_param: str | None
    fourth_param: str | None


@dataclass(frozen=True, slots=True)
class LiteralCode:
    value: int


@dataclass(frozen=True, slots=True)
class ReferenceCode:
    expr: str


CodeSource: TypeAlias = LiteralCode | ReferenceCode


@dataclass(frozen=True, slots=True)
class ClassifiedParams:
    """Replacement shape chosen for one legacy statement.

    ``severity`` is the legacy severity argument as written. The modern
    statement has no severity slot, so it is reported here and dropped
    from the emitted text.
    """

    code_source: CodeSource
    message: str
    state: int
    statement: ParsedLegacyStatement
    severity: str | None = None
    dropped_args: tuple[str, ...] = field(default_factory=tuple)

    @property
    def code(self) -> int:
        if isinstance(self.code_source, LiteralCode):
            return self.code_source.value
        return MIN_CUSTOM_ERROR_CODE

    def render(self) -> str:
        return f";THROW {self.code}, {self.message}, {self.state}"
