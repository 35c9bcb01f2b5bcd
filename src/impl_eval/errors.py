"""Structured error types for lexer/parser/evaluator separation."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, ClassVar

if TYPE_CHECKING:
    from .ast import OperandKind
    from .lexer import Token


class ErrorKind(str, Enum):
    EXPECTED = "expected"
    INVALID = "invalid"


class Subject(str, Enum):
    """What a diagnostic is about."""

    CHAR = "character"
    EXPR = "expression"
    OPERAND = "operand"
    OPERATION_ID = "operation"
    RATIONAL = "rational"
    STR_LIT = "string literal"
    SYMBOL = "symbol"
    TOKEN = "token"


class ImplError(Exception):
    """Base class for structured impl-eval errors.

    Every error knows the source range it refers to so that a front end can point at the
    offending input.
    """

    stage: ClassVar[str] = "backend"

    def __init__(self, message: str, start: int, end: int) -> None:
        super().__init__(message)
        self.message = message
        self.start = start
        self.end = end

    @property
    def range(self) -> tuple[int, int]:
        return (self.start, self.end)

    def __str__(self) -> str:
        return self.message


class DiagnosticError(ImplError):
    """An ``expected``/``invalid`` error about one subject."""

    def __init__(
        self,
        kind: ErrorKind,
        subject: Subject,
        start: int,
        end: int,
        token: "Token | None" = None,
    ) -> None:
        message = f"{kind.value} {subject.value}"
        if token is not None:
            message = f"{message} '{token}'"
        super().__init__(message, start, end)
        self.kind = kind
        self.subject = subject
        self.token = token

    @classmethod
    def expected(cls, subject: Subject, start: int, end: int, token: "Token | None" = None):
        return cls(ErrorKind.EXPECTED, subject, start, end, token)

    @classmethod
    def invalid(cls, subject: Subject, start: int, end: int, token: "Token | None" = None):
        return cls(ErrorKind.INVALID, subject, start, end, token)


class LexError(DiagnosticError):
    stage = "lexer"


class ParseError(DiagnosticError):
    stage = "parser"


class EvaluationError(ImplError):
    """Failure after a successful parse."""

    stage = "evaluator"


class UnknownOperationError(EvaluationError):
    def __init__(self, name: str, start: int, end: int) -> None:
        super().__init__(f"unknown operation '{name}'", start, end)
        self.name = name


class MissingOperandError(EvaluationError):
    def __init__(self, operation: str, index: int, expected: "OperandKind", start: int, end: int) -> None:
        super().__init__(f"missing operand {index} of '{operation}'; expected {expected.value}", start, end)
        self.operation = operation
        self.index = index
        self.expected = expected


class ExtraOperandError(EvaluationError):
    def __init__(self, operation: str, index: int, start: int, end: int) -> None:
        super().__init__(f"extra operand {index} of '{operation}'", start, end)
        self.operation = operation
        self.index = index


class UnexpectedOperandKindError(EvaluationError):
    def __init__(
        self,
        operation: str,
        index: int,
        expected: "OperandKind",
        found: "OperandKind",
        start: int,
        end: int,
    ) -> None:
        super().__init__(
            f"unexpected operand kind at {index} of '{operation}'; expected {expected.value}, found {found.value}",
            start,
            end,
        )
        self.operation = operation
        self.index = index
        self.expected = expected
        self.found = found


class OperationFailure(Exception):
    """Raised by an operation's execute function; carries no source range."""


class OperationError(EvaluationError):
    """Wraps an :class:`OperationFailure` with the range of the failing expression."""

    def __init__(self, operation: str, inner: OperationFailure, start: int, end: int) -> None:
        super().__init__(f"{operation}: {inner}", start, end)
        self.operation = operation
        self.inner = inner
