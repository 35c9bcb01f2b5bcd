"""impl-eval public API."""

from .ast import Expr, Operand, OperandKind, OperationId, Rational, StrLit, Symbol, kind_of
from .errors import (
    DiagnosticError,
    ErrorKind,
    EvaluationError,
    ExtraOperandError,
    ImplError,
    LexError,
    MissingOperandError,
    OperationError,
    OperationFailure,
    ParseError,
    Subject,
    UnexpectedOperandKindError,
    UnknownOperationError,
)
from .interpreter import Interpreter, Output, OutputKind, evaluate
from .lexer import Token, TokenizerRule, render_tokens, tokenize
from .operations import OPERATIONS, PRECISION, Operation
from .parser import parse, parse_batch, parse_program
from .span import Span

__version__ = "0.1.0"

__all__ = [
    "tokenize",
    "render_tokens",
    "parse",
    "parse_batch",
    "parse_program",
    "evaluate",
    "Interpreter",
    "Output",
    "OutputKind",
    "OPERATIONS",
    "PRECISION",
    "Operation",
    "Span",
    "Token",
    "TokenizerRule",
    "Expr",
    "Operand",
    "OperandKind",
    "OperationId",
    "Rational",
    "StrLit",
    "Symbol",
    "kind_of",
    "ImplError",
    "DiagnosticError",
    "ErrorKind",
    "Subject",
    "LexError",
    "ParseError",
    "EvaluationError",
    "UnknownOperationError",
    "MissingOperandError",
    "ExtraOperandError",
    "UnexpectedOperandKindError",
    "OperationError",
    "OperationFailure",
]
