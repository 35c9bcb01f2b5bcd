"""Recursive-descent parser for IMPL S-expressions."""

from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from functools import lru_cache
from typing import Final

from .ast import Expr, Operand, OperationId, Rational, StrLit, Symbol
from .errors import ParseError, Subject
from .lexer import LPAREN, MINUS, PLUS, RATIONAL, RPAREN, SLASH, STAR, STR_LIT, SYMBOL, Token, tokenize
from .span import Span

_OPERATOR_NAMES: Final[dict[str, str]] = {
    PLUS: "add",
    MINUS: "sub",
    STAR: "mul",
    SLASH: "div",
}
# Infix sugar at top level: left-associative, `*`/`/` bind tighter than `+`/`-`.
_INFIX_BINDING_POWER: Final[dict[str, int]] = {
    PLUS: 10,
    MINUS: 10,
    STAR: 20,
    SLASH: 20,
}
_LEAF_KINDS: Final = frozenset({RATIONAL, STR_LIT, SYMBOL})
_PROGRAM_CACHE_MAX: Final[int] = max(1, int(os.environ.get("IMPL_EVAL_PROGRAM_CACHE_MAX", "256")))


@dataclass
class _Parser:
    tokens: list[Span[Token]]
    source_len: int
    index: int = 0

    def at_end(self) -> bool:
        return self.index >= len(self.tokens)

    def _peek(self, offset: int = 0) -> Span[Token] | None:
        pos = self.index + offset
        if pos < len(self.tokens):
            return self.tokens[pos]
        return None

    def _peek_kind(self, offset: int = 0) -> str | None:
        tok = self._peek(offset)
        return None if tok is None else tok.value.kind

    def _advance(self) -> Span[Token]:
        tok = self.tokens[self.index]
        self.index += 1
        return tok

    def _eof_range(self) -> tuple[int, int]:
        return (self.source_len, self.source_len)

    def _expected(self, subject: Subject, token: Token | None = None) -> ParseError:
        tok = self._peek()
        start, end = tok.range if tok is not None else self._eof_range()
        return ParseError.expected(subject, start, end, token)

    def _expect(self, kind: str, text: str) -> Span[Token]:
        if self._peek_kind() != kind:
            raise self._expected(Subject.TOKEN, Token(kind, text))
        return self._advance()

    def parse_top_level(self) -> Span[Expr]:
        start = self._peek()
        try:
            if self._peek_kind() == LPAREN:
                expr = self._parse_expr(is_root=False)
                if self._peek_kind() in _INFIX_BINDING_POWER:
                    return self._parse_infix_tail(expr, 0)
                return expr
            if self._starts_infix(self.index):
                return self._parse_infix(0)
            return self._parse_expr(is_root=True)
        except RecursionError:
            end = self.tokens[-1].end if self.tokens else self.source_len
            raise ParseError.invalid(Subject.EXPR, start.start if start else 0, end) from None

    def _parse_expr(self, *, is_root: bool) -> Span[Expr]:
        # Outer parentheses may be omitted only at the top level.
        parenthesized = not is_root or self._peek_kind() == LPAREN
        if parenthesized:
            l_paren = self._expect(LPAREN, "(")

        operation = self._parse_operation()
        operands: list[Span[Operand]] = []
        while True:
            operand = self._parse_operand()
            if operand is None:
                break
            operands.append(operand)

        expr = Expr(operation=operation, operands=tuple(operands))
        if parenthesized:
            r_paren = self._expect(RPAREN, ")")
            return Span(expr, l_paren.start, r_paren.end)

        leftover = self._peek()
        if leftover is not None:
            raise ParseError.invalid(Subject.TOKEN, leftover.start, leftover.end, leftover.value)
        # The implicit wrapper was never typed, so it gets a zero-width range.
        return Span(expr, operation.start, operation.start)

    def _parse_operation(self) -> Span[OperationId]:
        tok = self._peek()
        if tok is None or tok.value.kind == RPAREN:
            raise self._expected(Subject.OPERATION_ID)
        self._advance()
        kind = tok.value.kind
        if kind == SYMBOL:
            return tok.replace(OperationId(tok.value.text))
        if kind in _OPERATOR_NAMES:
            return tok.replace(OperationId(_OPERATOR_NAMES[kind]))
        raise ParseError.invalid(Subject.OPERATION_ID, tok.start, tok.end, tok.value)

    def _parse_operand(self) -> Span[Operand] | None:
        """Parse one operand, or return ``None`` when the lookahead cannot start one."""
        tok = self._peek()
        if tok is None:
            return None
        kind = tok.value.kind
        if kind == LPAREN:
            return self._parse_expr(is_root=False)
        if kind == RATIONAL:
            self._advance()
            return tok.replace(_parse_rational(tok))
        if kind == STR_LIT:
            self._advance()
            return tok.replace(StrLit(tok.value.text))
        if kind == SYMBOL:
            self._advance()
            return tok.replace(Symbol(tok.value.text))
        return None

    def _parse_required_operand(self) -> Span[Operand]:
        operand = self._parse_operand()
        if operand is None:
            raise self._expected(Subject.OPERAND)
        return operand

    def _parse_infix(self, min_bp: int) -> Span[Operand]:
        return self._parse_infix_tail(self._parse_required_operand(), min_bp)

    def _parse_infix_tail(self, left: Span[Operand], min_bp: int) -> Span[Operand]:
        while True:
            tok = self._peek()
            if tok is None or tok.value.kind not in _INFIX_BINDING_POWER:
                return left
            bp = _INFIX_BINDING_POWER[tok.value.kind]
            if bp < min_bp:
                return left
            self._advance()
            right = self._parse_infix(bp + 1)
            operation = tok.replace(OperationId(_OPERATOR_NAMES[tok.value.kind]))
            left = Span.covering(Expr(operation=operation, operands=(left, right)), left, right)

    def skip_past(self, start_index: int) -> None:
        """Move beyond the top-level expression that started at ``start_index``."""
        furthest = max(self.index, start_index + 1)
        kind = self.tokens[start_index].value.kind
        if kind == LPAREN:
            depth = 0
            for pos in range(start_index, len(self.tokens)):
                pos_kind = self.tokens[pos].value.kind
                if pos_kind == LPAREN:
                    depth += 1
                elif pos_kind == RPAREN:
                    depth -= 1
                    if depth == 0:
                        self.index = max(furthest, pos + 1)
                        return
            self.index = len(self.tokens)
        elif kind == SYMBOL or kind in _OPERATOR_NAMES or self._starts_infix(start_index):
            # Without outer parentheses an expression runs to the end of the input.
            self.index = len(self.tokens)
        else:
            # A token that cannot start an expression is dropped on its own.
            self.index = start_index + 1

    def _starts_infix(self, pos: int) -> bool:
        return (
            self.tokens[pos].value.kind in _LEAF_KINDS
            and pos + 1 < len(self.tokens)
            and self.tokens[pos + 1].value.kind in _INFIX_BINDING_POWER
        )


def _parse_rational(tok: Span[Token]) -> Rational:
    try:
        value = Decimal(tok.value.text)
    except InvalidOperation:
        raise ParseError.invalid(Subject.RATIONAL, tok.start, tok.end, tok.value) from None
    if not value.is_finite():
        raise ParseError.invalid(Subject.RATIONAL, tok.start, tok.end, tok.value)
    return Rational(value)


def _source_len(tokens: list[Span[Token]], source_len: int | None) -> int:
    if source_len is not None:
        return source_len
    return tokens[-1].end if tokens else 0


def parse(tokens: list[Span[Token]], *, source_len: int | None = None) -> list[Span[Expr]]:
    """Parse a token sequence into its top-level expressions, stopping at the first error."""
    parser = _Parser(tokens=tokens, source_len=_source_len(tokens, source_len))
    program: list[Span[Expr]] = []
    while not parser.at_end():
        program.append(parser.parse_top_level())
    return program


def parse_batch(tokens: list[Span[Token]], *, source_len: int | None = None) -> list[Span[Expr] | ParseError]:
    """Parse every top-level expression independently.

    A failed expression contributes its :class:`ParseError` and parsing resumes after it, so one
    malformed expression does not hide the ones that follow.
    """
    parser = _Parser(tokens=tokens, source_len=_source_len(tokens, source_len))
    results: list[Span[Expr] | ParseError] = []
    while not parser.at_end():
        start_index = parser.index
        try:
            results.append(parser.parse_top_level())
        except ParseError as err:
            results.append(err)
            parser.skip_past(start_index)
    return results


@lru_cache(maxsize=_PROGRAM_CACHE_MAX)
def _parse_program_cached(source: str) -> tuple[Span[Expr], ...]:
    return tuple(parse(tokenize(source), source_len=len(source)))


def parse_program(source: str) -> list[Span[Expr]]:
    """Tokenize and parse IMPL source text."""
    return list(_parse_program_cached(source))
