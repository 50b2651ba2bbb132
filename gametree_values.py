"""Score domain extended with -inf/+inf under a caller-supplied comparator."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum
from functools import cmp_to_key
import operator
from typing import Any, Callable, Optional


class Order(IntEnum):
    LT = -1
    EQ = 0
    GT = 1


class ValueKind(Enum):
    NEGATIVE_INFINITY = "-inf"
    NUMBER = "number"
    POSITIVE_INFINITY = "+inf"


@dataclass(frozen=True)
class ExtendedValue:
    kind: ValueKind
    number: Any = None

    @property
    def is_finite(self) -> bool:
        return self.kind is ValueKind.NUMBER

    def __repr__(self) -> str:
        if self.kind is ValueKind.NUMBER:
            return f"Number({self.number!r})"
        if self.kind is ValueKind.NEGATIVE_INFINITY:
            return "NegativeInfinity"
        return "PositiveInfinity"


NEGATIVE_INFINITY = ExtendedValue(ValueKind.NEGATIVE_INFINITY)
POSITIVE_INFINITY = ExtendedValue(ValueKind.POSITIVE_INFINITY)

_RANK = {
    ValueKind.NEGATIVE_INFINITY: 0,
    ValueKind.NUMBER: 1,
    ValueKind.POSITIVE_INFINITY: 2,
}


def number(value: Any) -> ExtendedValue:
    return ExtendedValue(ValueKind.NUMBER, value)


def natural_compare(a: Any, b: Any) -> Order:
    if a < b:
        return Order.LT
    if b < a:
        return Order.GT
    return Order.EQ


def _to_order(raw: int) -> Order:
    if raw < 0:
        return Order.LT
    if raw > 0:
        return Order.GT
    return Order.EQ


@dataclass(frozen=True)
class ValueDomain:
    """Total order over ExtendedValue for one scoring type.

    ``compare`` orders two finite scores and may return an ``Order`` or any
    int with the usual sign. ``negate_number`` must be an involution on the
    finite scores. ``zero`` is the neutral score used by ``sign``.
    """

    compare_numbers: Callable[[Any, Any], int] = natural_compare
    negate_number: Callable[[Any], Any] = operator.neg
    zero: Any = 0

    @property
    def positive_infinity(self) -> ExtendedValue:
        return POSITIVE_INFINITY

    @property
    def negative_infinity(self) -> ExtendedValue:
        return NEGATIVE_INFINITY

    def compare(self, a: ExtendedValue, b: ExtendedValue) -> Order:
        rank_a = _RANK[a.kind]
        rank_b = _RANK[b.kind]
        if rank_a != rank_b:
            return Order.LT if rank_a < rank_b else Order.GT
        if a.kind is not ValueKind.NUMBER:
            return Order.EQ
        return _to_order(self.compare_numbers(a.number, b.number))

    def max(self, a: ExtendedValue, b: ExtendedValue) -> ExtendedValue:
        # Ties keep the left operand so folds stay stable.
        return b if self.compare(b, a) == Order.GT else a

    def min(self, a: ExtendedValue, b: ExtendedValue) -> ExtendedValue:
        return b if self.compare(b, a) == Order.LT else a

    def negate(self, value: ExtendedValue) -> ExtendedValue:
        if value.kind is ValueKind.NEGATIVE_INFINITY:
            return POSITIVE_INFINITY
        if value.kind is ValueKind.POSITIVE_INFINITY:
            return NEGATIVE_INFINITY
        return number(self.negate_number(value.number))

    def at_least(self, a: ExtendedValue, b: ExtendedValue) -> bool:
        return self.compare(a, b) != Order.LT

    def sign(self, value: ExtendedValue) -> Order:
        return self.compare(value, number(self.zero))

    def sort_key(self) -> Callable[[ExtendedValue], Any]:
        return cmp_to_key(self.compare)


DEFAULT_DOMAIN = ValueDomain()


def coerce(value: Any) -> ExtendedValue:
    if isinstance(value, ExtendedValue):
        return value
    return number(value)


def format_value(value: Optional[ExtendedValue]) -> str:
    if value is None:
        return "-"
    if value.is_finite:
        return str(value.number)
    return "-inf" if value.kind is ValueKind.NEGATIVE_INFINITY else "+inf"
