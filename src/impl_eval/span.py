"""Source-range bookkeeping shared by every pipeline stage."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Generic, TypeVar

T = TypeVar("T")
U = TypeVar("U")


@dataclass(frozen=True)
class Span(Generic[T]):
    """A value paired with the half-open source range ``[start, end)`` it came from."""

    value: T
    start: int
    end: int

    def __post_init__(self) -> None:
        if self.start < 0 or self.start > self.end:
            raise ValueError(f"Invalid span range [{self.start}, {self.end})")

    @property
    def range(self) -> tuple[int, int]:
        return (self.start, self.end)

    @property
    def width(self) -> int:
        return self.end - self.start

    def map(self, fn: Callable[[T], U]) -> "Span[U]":
        return Span(fn(self.value), self.start, self.end)

    def replace(self, value: U) -> "Span[U]":
        return Span(value, self.start, self.end)

    @classmethod
    def covering(cls, value: T, first: "Span[object]", last: "Span[object]") -> "Span[T]":
        return cls(value, first.start, last.end)
