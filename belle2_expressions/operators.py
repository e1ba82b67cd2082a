"""
Expression Operator Algebra
===========================

Closure builders behind the ``NamedExpression`` operators. Every builder takes
existing evaluators and returns a new evaluator whose function, at call time,
invokes the operand functions and combines their results. Nothing is parsed
or interpreted at evaluation time; the call recursion is exactly as deep as
the expression tree.

Shape resolution for binary operators:

    scalar (op) scalar -> scalar   op(a, b)
    scalar (op) vector -> vector   a broadcast against every element of b
    vector (op) scalar -> vector   b broadcast against every element of a
    vector (op) vector -> vector   element-wise over min(len(a), len(b))

Vector/vector operations silently truncate to the shorter operand. Set
``warn_on_truncation`` in the configuration to surface it as a
``TruncationWarning``.

Logical AND/OR get dedicated builders with short-circuit behaviour; see
``apply_logical_and`` and ``apply_logical_or``. When a scalar operand alone
decides the result against a vector operand, the vector is never evaluated
and the result is a ``BroadcastVector``: the deciding value at every index.
Every vector path below broadcasts it against the other operand like a
scalar, so it never truncates a concrete vector.
"""

from __future__ import annotations
import math
import operator
import warnings
from collections.abc import Sequence as SequenceABC
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence

from .config import get_config
from .exceptions import IndexOutOfRangeError, TruncationWarning

ScalarType = float
VectorType = List[float]
ScalarFunction = Callable[[Any], ScalarType]
VectorFunction = Callable[[Any], Sequence[ScalarType]]
UnaryOperator = Callable[[ScalarType], ScalarType]
BinaryOperator = Callable[[ScalarType, ScalarType], ScalarType]

# ==============================================================================
# EVALUATOR SUM TYPE
# ==============================================================================

class EvaluatorShape(Enum):
    """Return shape of a compiled evaluator."""
    SCALAR = auto()
    VECTOR = auto()


@dataclass(frozen=True)
class Evaluator:
    """Compiled evaluator: one callable tagged with its return shape."""
    shape: EvaluatorShape
    function: Callable[[Any], Any]

    def __post_init__(self):
        if not isinstance(self.shape, EvaluatorShape):
            raise TypeError(f"Invalid evaluator shape: {self.shape!r}")
        if not callable(self.function):
            raise TypeError(f"Evaluator function must be callable, got {type(self.function).__name__}")

    @classmethod
    def scalar(cls, function: ScalarFunction) -> Evaluator:
        return cls(EvaluatorShape.SCALAR, function)

    @classmethod
    def vector(cls, function: VectorFunction) -> Evaluator:
        return cls(EvaluatorShape.VECTOR, function)

    def is_scalar(self) -> bool:
        return self.shape is EvaluatorShape.SCALAR

    def is_vector(self) -> bool:
        return self.shape is EvaluatorShape.VECTOR

    def __call__(self, record: Any) -> Any:
        return self.function(record)


class BroadcastVector(SequenceABC):
    """
    Vector holding ``value`` at every index, with no length of its own.

    Stands in for a vector operand that was never evaluated. Combined with a
    concrete vector it takes that vector's length; iterated on its own (for
    example when materialized into a frame column) it yields ``value`` once.
    """

    __slots__ = ('value',)

    def __init__(self, value: ScalarType):
        self.value = value

    def __len__(self) -> int:
        return 1

    def __getitem__(self, index):
        if isinstance(index, slice):
            return self
        return self.value

    def __iter__(self) -> Iterator[ScalarType]:
        yield self.value

    def __eq__(self, other):
        if isinstance(other, BroadcastVector):
            return self.value == other.value
        return NotImplemented

    __hash__ = None

    def __repr__(self) -> str:
        return f"BroadcastVector({self.value!r})"


# ==============================================================================
# SCALAR OPERATORS
# ==============================================================================

def identity(x: ScalarType) -> ScalarType:
    return x


def logical_not(x: ScalarType) -> ScalarType:
    return 0.0 if x else 1.0


def logical_and(a: ScalarType, b: ScalarType) -> ScalarType:
    return 1.0 if (a and b) else 0.0


def logical_or(a: ScalarType, b: ScalarType) -> ScalarType:
    return 1.0 if (a or b) else 0.0


def divide(a: ScalarType, b: ScalarType) -> ScalarType:
    """IEEE-754 division: dividing by zero gives inf or nan instead of raising."""
    try:
        return a / b
    except ZeroDivisionError:
        if a != a or a == 0:
            return math.nan
        return math.copysign(math.inf, a) * math.copysign(1.0, b)


def remainder(a: ScalarType, b: ScalarType) -> ScalarType:
    """Floating remainder with the sign of the dividend (C ``fmod``)."""
    try:
        return math.fmod(a, b)
    except ValueError:
        # fmod(x, 0) and fmod(inf, y)
        return math.nan


def equal_to(a: ScalarType, b: ScalarType) -> ScalarType:
    return 1.0 if a == b else 0.0


def not_equal_to(a: ScalarType, b: ScalarType) -> ScalarType:
    return 1.0 if a != b else 0.0


def greater(a: ScalarType, b: ScalarType) -> ScalarType:
    return 1.0 if a > b else 0.0


def less(a: ScalarType, b: ScalarType) -> ScalarType:
    return 1.0 if a < b else 0.0


def greater_equal(a: ScalarType, b: ScalarType) -> ScalarType:
    return 1.0 if a >= b else 0.0


def less_equal(a: ScalarType, b: ScalarType) -> ScalarType:
    return 1.0 if a <= b else 0.0


UNARY_OPERATORS: Dict[str, UnaryOperator] = {
    '+': identity,
    '-': operator.neg,
    '!': logical_not,
}

BINARY_OPERATORS: Dict[str, BinaryOperator] = {
    '+': operator.add,
    '-': operator.sub,
    '*': operator.mul,
    '/': divide,
    '%': remainder,
    '==': equal_to,
    '!=': not_equal_to,
    '>': greater,
    '<': less,
    '>=': greater_equal,
    '<=': less_equal,
}

LOGICAL_OPERATORS = ('&&', '||')


# ==============================================================================
# UNARY APPLICATION
# ==============================================================================

def apply_unary(evaluator: Optional[Evaluator], op: UnaryOperator) -> Optional[Evaluator]:
    """
    Get an evaluator applying unary operator ``op`` to ``evaluator``.

    Scalar evaluators give ``r -> op(f(r))``; vector evaluators apply ``op``
    element-wise, preserving order and length. An absent evaluator stays
    absent.
    """
    if evaluator is None:
        return None
    f = evaluator.function

    if evaluator.is_scalar():
        def scalar_unary(record):
            return op(f(record))
        return Evaluator.scalar(scalar_unary)

    def vector_unary(record):
        values = f(record)
        if isinstance(values, BroadcastVector):
            return BroadcastVector(op(values.value))
        return [op(x) for x in values]
    return Evaluator.vector(vector_unary)


# ==============================================================================
# BINARY APPLICATION
# ==============================================================================

def _warn_truncation(len_a: int, len_b: int, name: Optional[str]) -> None:
    target = f" in {name}" if name else ""
    warnings.warn(
        f"Vector operands of length {len_a} and {len_b} truncated to "
        f"{min(len_a, len_b)}{target}",
        TruncationWarning,
        stacklevel=5,
    )


def _broadcast_left(op: BinaryOperator, a: ScalarType,
                    vb: Sequence[ScalarType]) -> Sequence[ScalarType]:
    if isinstance(vb, BroadcastVector):
        return BroadcastVector(op(a, vb.value))
    return [op(a, y) for y in vb]


def _broadcast_right(op: BinaryOperator, va: Sequence[ScalarType],
                     b: ScalarType) -> Sequence[ScalarType]:
    if isinstance(va, BroadcastVector):
        return BroadcastVector(op(va.value, b))
    return [op(x, b) for x in va]


def _elementwise(op: BinaryOperator, va: Sequence[ScalarType], vb: Sequence[ScalarType],
                 name: Optional[str]) -> Sequence[ScalarType]:
    """Combine two evaluated vectors; a ``BroadcastVector`` acts as a scalar."""
    if isinstance(va, BroadcastVector):
        return _broadcast_left(op, va.value, vb)
    if isinstance(vb, BroadcastVector):
        return _broadcast_right(op, va, vb.value)
    if len(va) != len(vb) and get_config().warn_on_truncation:
        _warn_truncation(len(va), len(vb), name)
    return [op(x, y) for x, y in zip(va, vb)]


def apply_binary(a: Evaluator, b: Evaluator, op: BinaryOperator,
                 name: Optional[str] = None) -> Evaluator:
    """
    Get an evaluator applying binary operator ``op`` between ``a`` and ``b``.

    Args:
        a: Left operand evaluator
        b: Right operand evaluator
        op: Scalar operator applied per value (or per element pair)
        name: Expression name, used only in diagnostics

    Returns:
        Scalar evaluator when both operands are scalar, vector evaluator
        otherwise.
    """
    fa = a.function
    fb = b.function

    if a.is_scalar() and b.is_scalar():
        def scalar_scalar(record):
            return op(fa(record), fb(record))
        return Evaluator.scalar(scalar_scalar)

    if a.is_scalar():
        def scalar_vector(record):
            sa = fa(record)
            return _broadcast_left(op, sa, fb(record))
        return Evaluator.vector(scalar_vector)

    if b.is_scalar():
        def vector_scalar(record):
            va = fa(record)
            sb = fb(record)
            return _broadcast_right(op, va, sb)
        return Evaluator.vector(vector_scalar)

    def vector_vector(record):
        va = fa(record)
        vb = fb(record)
        return _elementwise(op, va, vb, name)
    return Evaluator.vector(vector_vector)


# ==============================================================================
# SHORT-CIRCUIT LOGICAL OPERATORS
# ==============================================================================

def apply_logical_and(a: Evaluator, b: Evaluator,
                      name: Optional[str] = None) -> Evaluator:
    """
    Get an evaluator for ``a && b`` with short-circuit semantics.

    - scalar && scalar: both sides evaluated, boolean result.
    - scalar && vector: a falsy scalar never calls ``b`` and gives
      ``BroadcastVector(0.0)``; a truthy scalar gives exactly ``b``'s result.
    - vector && scalar: ``b`` is called at most once, at the first truthy
      element of ``a``, and reused for the remaining elements.
    - vector && vector: element-wise over the shorter length.
    """
    fa = a.function
    fb = b.function

    if a.is_scalar() and b.is_scalar():
        def scalar_scalar_and(record):
            sa = fa(record)
            sb = fb(record)
            return logical_and(sa, sb)
        return Evaluator.scalar(scalar_scalar_and)

    if a.is_scalar():
        def scalar_vector_and(record):
            if not fa(record):
                return BroadcastVector(0.0)
            return fb(record)
        return Evaluator.vector(scalar_vector_and)

    if b.is_scalar():
        def vector_scalar_and(record):
            va = fa(record)
            if isinstance(va, BroadcastVector):
                if not va.value:
                    return BroadcastVector(0.0)
                return BroadcastVector(logical_and(va.value, fb(record)))
            out = []
            evaluated = False
            sb = 0.0
            for x in va:
                if x and not evaluated:
                    evaluated = True
                    sb = fb(record)
                out.append(logical_and(x, sb))
            return out
        return Evaluator.vector(vector_scalar_and)

    def vector_vector_and(record):
        va = fa(record)
        vb = fb(record)
        return _elementwise(logical_and, va, vb, name)
    return Evaluator.vector(vector_vector_and)


def apply_logical_or(a: Evaluator, b: Evaluator,
                     name: Optional[str] = None) -> Evaluator:
    """
    Get an evaluator for ``a || b`` with short-circuit semantics.

    Mirror image of ``apply_logical_and``: a truthy scalar ``a`` never calls a
    vector ``b`` and gives ``BroadcastVector(1.0)``, and a scalar ``b`` next
    to a vector ``a`` is called at most once, at the first falsy element of
    ``a``.
    """
    fa = a.function
    fb = b.function

    if a.is_scalar() and b.is_scalar():
        def scalar_scalar_or(record):
            sa = fa(record)
            sb = fb(record)
            return logical_or(sa, sb)
        return Evaluator.scalar(scalar_scalar_or)

    if a.is_scalar():
        def scalar_vector_or(record):
            if fa(record):
                return BroadcastVector(1.0)
            return fb(record)
        return Evaluator.vector(scalar_vector_or)

    if b.is_scalar():
        def vector_scalar_or(record):
            va = fa(record)
            if isinstance(va, BroadcastVector):
                if va.value:
                    return BroadcastVector(1.0)
                return BroadcastVector(logical_or(va.value, fb(record)))
            out = []
            evaluated = False
            sb = 0.0
            for x in va:
                if not (evaluated or x):
                    evaluated = True
                    sb = fb(record)
                out.append(logical_or(x, sb))
            return out
        return Evaluator.vector(vector_scalar_or)

    def vector_vector_or(record):
        va = fa(record)
        vb = fb(record)
        return _elementwise(logical_or, va, vb, name)
    return Evaluator.vector(vector_vector_or)


def apply_operator(symbol: str, a: Evaluator, b: Evaluator,
                   name: Optional[str] = None) -> Evaluator:
    """Dispatch a binary operator symbol to its evaluator builder."""
    if symbol == '&&':
        return apply_logical_and(a, b, name=name)
    if symbol == '||':
        return apply_logical_or(a, b, name=name)
    try:
        op = BINARY_OPERATORS[symbol]
    except KeyError:
        raise ValueError(f"Unsupported binary operator: {symbol!r}") from None
    return apply_binary(a, b, op, name=name)


# ==============================================================================
# INDEXING
# ==============================================================================

def apply_index(vector: Evaluator, index: Evaluator, name: Optional[str] = None) -> Evaluator:
    """
    Get a scalar evaluator returning element ``index(r)`` of ``vector(r)``.

    Shapes are validated by the caller. The index is truncated toward zero;
    a non-finite or out-of-bounds index raises ``IndexOutOfRangeError`` when
    the evaluator is called. A ``BroadcastVector`` has no upper bound and
    returns its value for every non-negative index.
    """
    fv = vector.function
    fi = index.function

    def indexed(record):
        values = fv(record)
        position = fi(record)
        if not math.isfinite(position):
            raise IndexOutOfRangeError(
                f"Non-finite index {position} into vector of length {len(values)}",
                expression=name, index=position, length=len(values))
        i = int(position)
        if i >= 0 and isinstance(values, BroadcastVector):
            return values.value
        if i < 0 or i >= len(values):
            raise IndexOutOfRangeError(
                f"Index {i} out of range for vector of length {len(values)}",
                expression=name, index=position, length=len(values))
        return values[i]
    return Evaluator.scalar(indexed)


__all__ = [
    'ScalarType',
    'VectorType',
    'EvaluatorShape',
    'Evaluator',
    'BroadcastVector',
    'UNARY_OPERATORS',
    'BINARY_OPERATORS',
    'LOGICAL_OPERATORS',
    'apply_unary',
    'apply_binary',
    'apply_logical_and',
    'apply_logical_or',
    'apply_operator',
    'apply_index',
    'divide',
    'remainder',
    'logical_not',
    'logical_and',
    'logical_or',
]
