"""Evaluator for IMPL expression trees."""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum

from .ast import Expr, Operand, OperandKind, Symbol, kind_of
from .errors import (
    ExtraOperandError,
    ImplError,
    MissingOperandError,
    OperationError,
    OperationFailure,
    UnexpectedOperandKindError,
    UnknownOperationError,
)
from .lexer import tokenize
from .operations import OPERATIONS, Operation
from .parser import parse_batch, parse_program
from .span import Span

logger = logging.getLogger(__name__)


class OutputKind(str, Enum):
    TEXT = "text"
    # Reserved for plotted results; nothing produces it yet.
    GRAPHIC = "graphic"


@dataclass(frozen=True)
class Output:
    kind: OutputKind
    text: str | None = None
    value: Operand | None = None
    start: int = 0
    end: int = 0

    @classmethod
    def from_value(cls, value: Operand, span: Span[Expr]) -> "Output":
        return cls(kind=OutputKind.TEXT, text=str(value), value=value, start=span.start, end=span.end)


@dataclass
class _Frame:
    """An expression whose operands are being resolved left to right."""

    span: Span[Expr]
    operation: Operation | None
    resolved: list[Span[Operand]] = field(default_factory=list)


def _diagnostic_range(span: Span[Expr]) -> tuple[int, int]:
    # A zero-width (implicitly wrapped) expression is reported at its operation instead.
    if span.width:
        return span.range
    return span.value.operation.range


class Interpreter:
    """An evaluation session owning the alias environment.

    Aliases bound with ``let`` persist across :meth:`evaluate` and :meth:`run` calls on the same
    instance. An instance is not safe to share between threads.
    """

    def __init__(
        self,
        aliases: Mapping[str, Operand] | None = None,
        *,
        operations: Mapping[str, Operation] = OPERATIONS,
    ) -> None:
        self._aliases: dict[str, Operand] = {} if aliases is None else dict(aliases)
        self._operations = operations

    def aliases(self) -> Iterator[tuple[Symbol, Operand]]:
        for name, value in list(self._aliases.items()):
            yield Symbol(name), value

    def lookup(self, name: str) -> Operand | None:
        return self._aliases.get(name)

    @property
    def operations(self) -> Mapping[str, Operation]:
        return self._operations

    def evaluate(self, expr: Expr | Span[Expr]) -> Operand:
        """Evaluate one expression tree.

        Alias bindings made while evaluating are committed only if the whole expression succeeds.
        """
        span = expr if isinstance(expr, Span) else Span(expr, 0, 0)
        staged = dict(self._aliases)
        result = self._eval(span, staged)
        self._aliases = staged
        return result

    def run(self, source: str) -> list[Output | ImplError]:
        """Evaluate every top-level expression of ``source`` in order.

        Each entry is either the expression's :class:`Output` or the error that stopped it; a
        failing expression does not prevent later ones from running.
        """
        try:
            tokens = tokenize(source)
        except ImplError as err:
            logger.debug("lexing failed: %s", err)
            return [err]

        results: list[Output | ImplError] = []
        for parsed in parse_batch(tokens, source_len=len(source)):
            if isinstance(parsed, ImplError):
                logger.debug("parsing failed: %s", parsed)
                results.append(parsed)
                continue
            try:
                value = self.evaluate(parsed)
            except ImplError as err:
                logger.debug("evaluation of [%d, %d) failed: %s", parsed.start, parsed.end, err)
                results.append(err)
                continue
            results.append(Output.from_value(value, parsed))
        return results

    def __call__(self, source: str) -> Operand | None:
        return evaluate(source, self)

    def _eval(self, root: Span[Expr], aliases: dict[str, Operand]) -> Operand:
        # Post-order walk over an explicit stack, so nesting depth is not bound by the call stack.
        stack = [self._frame(root)]
        while True:
            frame = stack[-1]
            operands = frame.span.value.operands
            index = len(frame.resolved)
            if index < len(operands):
                operand = operands[index]
                if isinstance(operand.value, Expr):
                    stack.append(self._frame(operand))
                else:
                    frame.resolved.append(self._resolve(operand, index, frame.operation, aliases))
                continue

            value = self._dispatch(frame, aliases)
            stack.pop()
            if not stack:
                return value
            stack[-1].resolved.append(frame.span.replace(value))

    def _frame(self, span: Span[Expr]) -> _Frame:
        return _Frame(span=span, operation=self._operations.get(span.value.operation.value.name))

    def _dispatch(self, frame: _Frame, aliases: dict[str, Operand]) -> Operand:
        span, operation, operands = frame.span, frame.operation, frame.resolved
        name = span.value.operation.value.name
        if operation is None:
            op_span = span.value.operation
            raise UnknownOperationError(name, op_span.start, op_span.end)
        self._check_signature(operation, operands, span)

        values = [operand.value for operand in operands]
        logger.debug("dispatching %s with %d operand(s)", name, len(values))
        try:
            if operation.binds_aliases:
                result = operation.execute(aliases, *values)
                logger.debug("staged alias %s -> %s", values[0], result)
                return result
            return operation.execute(*values)
        except OperationFailure as exc:
            start, end = _diagnostic_range(span)
            raise OperationError(name, exc, start, end) from exc

    def _resolve(
        self,
        operand: Span[Operand],
        index: int,
        operation: Operation | None,
        aliases: dict[str, Operand],
    ) -> Span[Operand]:
        value = operand.value
        if isinstance(value, Symbol):
            # The name a pseudo-operation binds is taken literally.
            if operation is not None and operation.binds_aliases and index == 0:
                return operand
            bound = aliases.get(value.name)
            if bound is not None:
                return operand.replace(bound)
        return operand

    def _check_signature(self, operation: Operation, operands: list[Span[Operand]], span: Span[Expr]) -> None:
        signature = operation.signature
        for index, operand in enumerate(operands):
            if index >= len(signature):
                raise ExtraOperandError(operation.name, index, operand.start, operand.end)
            expected = signature[index]
            found = kind_of(operand.value)
            if expected is not OperandKind.ANY and found is not expected:
                raise UnexpectedOperandKindError(operation.name, index, expected, found, operand.start, operand.end)
        if len(operands) < len(signature):
            start, end = _diagnostic_range(span)
            raise MissingOperandError(operation.name, len(operands), signature[len(operands)], start, end)


def evaluate(source: str, interpreter: Interpreter | None = None) -> Operand | None:
    """Parse and evaluate IMPL source, returning the last top-level result.

    Raises the first :class:`~impl_eval.errors.ImplError` encountered. Top-level expressions run
    strictly in order, so a ``let`` is visible to everything after it.
    """
    session = Interpreter() if interpreter is None else interpreter
    result: Operand | None = None
    for expr in parse_program(source):
        result = session.evaluate(expr)
    return result
