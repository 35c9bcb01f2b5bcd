"""The operation registry: fixed-signature IMPL operations over exact decimals."""

from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Context, Decimal, DecimalException, DivisionByZero, InvalidOperation, Overflow, localcontext
from functools import lru_cache, wraps
from types import MappingProxyType
from typing import Callable, Final, Mapping, MutableMapping

from .ast import Operand, OperandKind, Rational, Symbol
from .errors import OperationFailure

PRECISION: Final[int] = max(1, int(os.environ.get("IMPL_EVAL_PRECISION", "28")))
_GUARD_DIGITS: Final[int] = 4
_MAX_ANGLE_DIGITS: Final[int] = 1000

_R: Final = OperandKind.RATIONAL


def _context(prec: int) -> Context:
    return Context(prec=prec, traps=[InvalidOperation, DivisionByZero, Overflow])


@dataclass(frozen=True)
class Operation:
    """An entry in the registry.

    ``execute`` receives exactly the operands matching ``signature``, already type-checked, and
    returns a fresh operand. A pseudo-operation (``binds_aliases``) additionally receives the alias
    environment as its first argument and its first operand is never dereferenced.
    """

    name: str
    signature: tuple[OperandKind, ...]
    execute: Callable[..., Operand]
    summary: str = ""
    binds_aliases: bool = False

    @property
    def arity(self) -> int:
        return len(self.signature)


def _exact(fn: Callable[..., Decimal]) -> Callable[..., Rational]:
    """Lift a decimal function to rationals, computing at ``PRECISION`` digits."""

    @wraps(fn)
    def run(*operands: Rational) -> Rational:
        try:
            with localcontext(_context(PRECISION)):
                result = +fn(*(operand.value for operand in operands))
        except DivisionByZero as exc:
            raise OperationFailure("division by zero") from exc
        except Overflow as exc:
            raise OperationFailure("result overflows the decimal range") from exc
        except DecimalException as exc:
            raise OperationFailure("undefined result") from exc
        if not result.is_finite():
            raise OperationFailure("result is not finite")
        return Rational(result)

    return run


def _guarded(fn: Callable[..., Decimal]) -> Callable[..., Decimal]:
    """Run a series evaluation with extra digits; the caller rounds back to ``PRECISION``."""

    @wraps(fn)
    def run(*args: Decimal) -> Decimal:
        with localcontext(_context(PRECISION + _GUARD_DIGITS)):
            return fn(*args)

    return run


@lru_cache(maxsize=32)
def _pi_at(prec: int) -> Decimal:
    with localcontext(_context(prec)):
        three = Decimal(3)
        lasts, t, s, n, na, d, da = Decimal(0), three, three, 1, 0, 0, 24
        while s != lasts:
            lasts = s
            n, na = n + na, na + 8
            d, da = d + da, da + 32
            t = (t * n) / d
            s += t
        return s


def _pi() -> Decimal:
    return _pi_at(PRECISION + _GUARD_DIGITS)


@lru_cache(maxsize=None)
@_guarded
def _e() -> Decimal:
    return Decimal(1).exp()


def _reduce_angle(x: Decimal) -> Decimal:
    """``x`` modulo 2π, rounded to the caller's context."""
    if x.adjusted() > _MAX_ANGLE_DIGITS:
        raise OperationFailure("angle is too large to reduce")
    # Each integer digit of x / 2π cancels a leading digit of π.
    prec = PRECISION + _GUARD_DIGITS + max(0, x.adjusted() + 1)
    with localcontext(_context(prec)):
        reduced = x.remainder_near(2 * _pi_at(prec))
    return +reduced


@_guarded
def _sin(x: Decimal) -> Decimal:
    x = _reduce_angle(x)
    i, lasts, s, fact, num, sign = 1, Decimal(0), x, 1, x, 1
    while s != lasts:
        lasts = s
        i += 2
        fact *= i * (i - 1)
        num *= x * x
        sign *= -1
        s += num / fact * sign
    return s


@_guarded
def _cos(x: Decimal) -> Decimal:
    x = _reduce_angle(x)
    i, lasts, s, fact, num, sign = 0, Decimal(0), Decimal(1), 1, Decimal(1), 1
    while s != lasts:
        lasts = s
        i += 2
        fact *= i * (i - 1)
        num *= x * x
        sign *= -1
        s += num / fact * sign
    return s


@_guarded
def _atan(x: Decimal) -> Decimal:
    if x.is_zero():
        return Decimal(0)
    # atan(x) = 2 atan(x / (1 + sqrt(1 + x^2))) shrinks the argument until the series converges fast.
    doublings = 0
    while abs(x) > Decimal("0.5"):
        x = x / (1 + (1 + x * x).sqrt())
        doublings += 1
    x2 = x * x
    lasts, s, power, n, sign = Decimal(0), x, x, 1, 1
    while s != lasts:
        lasts = s
        power *= x2
        n += 2
        sign = -sign
        s += sign * power / n
    return s * (2**doublings)


def _div(a: Decimal, b: Decimal) -> Decimal:
    return a / b


def _pow(a: Decimal, b: Decimal) -> Decimal:
    return a**b


def _sqrt(a: Decimal) -> Decimal:
    if a < 0:
        raise OperationFailure("square root of a negative number")
    return a.sqrt()


def _ln(a: Decimal) -> Decimal:
    if a <= 0:
        raise OperationFailure("logarithm of a non-positive number")
    return a.ln()


@_guarded
def _tan(a: Decimal) -> Decimal:
    cos = _cos(a)
    if abs(cos) < Decimal(10) ** -(PRECISION + 1):
        raise OperationFailure("tangent is undefined at this angle")
    return _sin(a) / cos


@_guarded
def _arcsin(a: Decimal) -> Decimal:
    if abs(a) > 1:
        raise OperationFailure("arcsin is only defined on [-1, 1]")
    if abs(a) == 1:
        return _pi() / 2 * a
    return _atan(a / (1 - a * a).sqrt())


@_guarded
def _arccos(a: Decimal) -> Decimal:
    if abs(a) > 1:
        raise OperationFailure("arccos is only defined on [-1, 1]")
    return _pi() / 2 - _arcsin(a)


@_guarded
def _deg(a: Decimal) -> Decimal:
    return a * 180 / _pi()


@_guarded
def _rad(a: Decimal) -> Decimal:
    return a * _pi() / 180


def _let(aliases: MutableMapping[str, Operand], alias: Symbol, value: Operand) -> Operand:
    aliases[alias.name] = value
    return value


def _nullary(name: str, fn: Callable[[], Decimal], summary: str) -> Operation:
    return Operation(name=name, signature=(), execute=_exact(fn), summary=summary)


def _unary(name: str, fn: Callable[[Decimal], Decimal], summary: str) -> Operation:
    return Operation(name=name, signature=(_R,), execute=_exact(fn), summary=summary)


def _binary(name: str, fn: Callable[[Decimal, Decimal], Decimal], summary: str) -> Operation:
    return Operation(name=name, signature=(_R, _R), execute=_exact(fn), summary=summary)


_OPERATION_LIST: Final[tuple[Operation, ...]] = (
    _nullary("pi", _pi, "The ratio of a circle's circumference to its diameter."),
    _nullary("e", _e, "Euler's number."),
    _binary("add", lambda a, b: a + b, "a + b"),
    _binary("sub", lambda a, b: a - b, "a - b"),
    _binary("mul", lambda a, b: a * b, "a * b"),
    _binary("div", _div, "a / b"),
    _binary("pow", _pow, "a raised to the power b"),
    _unary("sqrt", _sqrt, "Square root."),
    _unary("exp", lambda a: a.exp(), "e raised to the power a."),
    _unary("ln", _ln, "Natural logarithm."),
    _unary("sin", _sin, "Sine of an angle in radians."),
    _unary("cos", _cos, "Cosine of an angle in radians."),
    _unary("tan", _tan, "Tangent of an angle in radians."),
    _unary("arcsin", _arcsin, "Inverse sine, in radians."),
    _unary("arccos", _arccos, "Inverse cosine, in radians."),
    _unary("arctan", _atan, "Inverse tangent, in radians."),
    _unary("deg", _deg, "Radians to degrees."),
    _unary("rad", _rad, "Degrees to radians."),
    Operation(
        name="let",
        signature=(OperandKind.SYMBOL, OperandKind.ANY),
        execute=_let,
        summary="Bind a symbol to a value; returns the value.",
        binds_aliases=True,
    ),
)

OPERATIONS: Final[Mapping[str, Operation]] = MappingProxyType({op.name: op for op in _OPERATION_LIST})
