"""Expression tree and operand values for IMPL."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Union

from .span import Span


def format_decimal(value: Decimal) -> str:
    """Render a decimal in plain notation without trailing fractional zeros."""
    if value.is_zero():
        return "0"
    if value == value.to_integral_value():
        return format(value.to_integral_value(), "f")
    return format(value.normalize(), "f")


@dataclass(frozen=True)
class OperationId:
    name: str

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class Rational:
    value: Decimal

    def __str__(self) -> str:
        return format_decimal(self.value)


@dataclass(frozen=True)
class StrLit:
    content: str

    def __str__(self) -> str:
        return f'"{self.content}"'


@dataclass(frozen=True)
class Symbol:
    name: str

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class Expr:
    operation: Span[OperationId]
    operands: tuple[Span["Operand"], ...] = ()

    def __str__(self) -> str:
        parts = [str(self.operation.value), *(str(operand.value) for operand in self.operands)]
        return f"({' '.join(parts)})"


Operand = Union[Expr, Rational, StrLit, Symbol]


class OperandKind(str, Enum):
    EXPR = "expression"
    RATIONAL = "rational"
    STR_LIT = "string literal"
    SYMBOL = "symbol"
    # Signature wildcard; no operand value has this kind.
    ANY = "any operand"


def kind_of(operand: Operand) -> OperandKind:
    if isinstance(operand, Rational):
        return OperandKind.RATIONAL
    if isinstance(operand, StrLit):
        return OperandKind.STR_LIT
    if isinstance(operand, Symbol):
        return OperandKind.SYMBOL
    if isinstance(operand, Expr):
        return OperandKind.EXPR
    raise TypeError(f"Not an IMPL operand: {type(operand).__name__}")
