"""
NamedExpression - Compiled Event Expressions
============================================

A ``NamedExpression`` pairs the text of a "TTree::Draw"-like expression with
a compiled evaluator taking one event record and returning either a single
value (scalar) or one value per entry (vector).

Expressions behave much like Python numbers. Given expressions ``x`` and
``y``, ``x + y`` is a new expression whose evaluator calls the evaluators of
``x`` and ``y`` and adds their results each time it is called; the sum is
never computed at construction. This allows arbitrarily complicated
functions to be built from simple leaves by ordinary operators, which is
exactly how ``ExpressionCompiler`` turns text into an expression:

    >>> pt = NamedExpression.from_vector('jets_pt', lambda r: r.vector('jets_pt'))
    >>> cut = (pt > 30) & (NamedExpression.from_text('njets') >= 2)
    >>> cut.name
    '((jets_pt)>(30))&&((njets)>=(2))'

Supported operators and their expression spelling:

    +x  -x  ~x (!)            unary
    +  -  *  /  %             arithmetic (``%`` is the floating remainder)
    ==  !=  >  <  >=  <=      comparisons, results are 1.0 / 0.0
    &  |  (&&, ||)            short-circuit logical AND / OR
    +=  -=  *=  /=  %=        in-place composition
    v[i]                      indexing a vector with a scalar

Comparisons build expressions rather than booleans, so expressions are not
hashable and have no truth value.

Evaluation recurses once per operator along the deepest path of the
expression, so a chain built one term at a time (``total = total + x`` in a
loop) hits Python's recursion limit at roughly a thousand terms. Use
``combine_balanced`` for long sums or cut lists; it keeps the depth
logarithmic in the number of terms.
"""

from __future__ import annotations
import math
import numbers
import operator
import warnings
from typing import Any, Callable, Iterable, Optional, Sequence, Union

from .config import get_config
from .exceptions import ExpressionWarning, InvalidShapeError, ShapeMismatchError
from .operators import (
    Evaluator, EvaluatorShape, ScalarType, UNARY_OPERATORS,
    apply_index, apply_operator, apply_unary,
)

Operand = Union['NamedExpression', int, float]


def clean_name(name: str) -> str:
    """Strip all whitespace from an expression name."""
    if not isinstance(name, str):
        raise TypeError(f"Expression name must be a string, got {type(name).__name__}")
    return ''.join(name.split())


def format_constant(value: float) -> str:
    """Canonical literal text for a constant (``30.0 -> '30'``)."""
    if math.isfinite(value) and value.is_integer() and abs(value) < 1e16:
        return str(int(value))
    return repr(value)


def _as_expression(value: Any) -> Optional[NamedExpression]:
    if isinstance(value, NamedExpression):
        return value
    if isinstance(value, numbers.Real):
        return NamedExpression.from_constant(value)
    return None


class NamedExpression:
    """
    Expression text combined with a compiled scalar or vector evaluator.

    Exactly one evaluator is held at any time. Setting an evaluator of the
    other shape replaces the current one; setting ``None`` is ignored.
    """

    __slots__ = ('_name', '_evaluator')

    def __init__(self, name: str, evaluator: Evaluator):
        """
        Args:
            name: Text representation of the expression
            evaluator: Compiled scalar or vector evaluator
        """
        if not isinstance(evaluator, Evaluator):
            raise TypeError(
                f"NamedExpression requires an Evaluator, got {type(evaluator).__name__}")
        self._name = clean_name(name)
        self._evaluator = evaluator

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_scalar(cls, name: str, function: Callable[[Any], ScalarType]) -> NamedExpression:
        """Wrap a function taking a record and returning a single value."""
        return cls(name, Evaluator.scalar(function))

    @classmethod
    def from_vector(cls, name: str,
                    function: Callable[[Any], Sequence[ScalarType]]) -> NamedExpression:
        """Wrap a function taking a record and returning a sequence of values."""
        return cls(name, Evaluator.vector(function))

    @classmethod
    def from_constant(cls, value: float) -> NamedExpression:
        """Expression ignoring the record and always returning ``value``."""
        value = float(value)

        def constant(record):
            return value
        return cls(format_constant(value), Evaluator.scalar(constant))

    @classmethod
    def from_text(cls, text: str, compiler: Any = None) -> NamedExpression:
        """
        Compile expression text.

        Args:
            text: Expression with constants, branches, operators, parentheses
                and brackets
            compiler: Object with a ``compile(text)`` method; the default
                ``ExpressionCompiler`` when omitted

        Raises:
            ParseError: ``text`` is not a well-formed expression
        """
        if compiler is None:
            from .compiler import get_default_compiler
            compiler = get_default_compiler()
        return compiler.compile(text)

    def copy(self) -> NamedExpression:
        return NamedExpression(self._name, self._evaluator)

    __copy__ = copy

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    @property
    def name(self) -> str:
        return self._name

    @name.setter
    def name(self, name: str) -> None:
        self._name = clean_name(name)

    def set_name(self, name: str) -> NamedExpression:
        """Rename in place; evaluators are untouched. Returns ``self``."""
        self.name = name
        return self

    @property
    def evaluator(self) -> Evaluator:
        return self._evaluator

    @property
    def shape(self) -> EvaluatorShape:
        return self._evaluator.shape

    @property
    def scalar_function(self) -> Optional[Callable[[Any], ScalarType]]:
        """The scalar function, or ``None`` for a vector expression."""
        return self._evaluator.function if self._evaluator.is_scalar() else None

    @property
    def vector_function(self) -> Optional[Callable[[Any], Sequence[ScalarType]]]:
        """The vector function, or ``None`` for a scalar expression."""
        return self._evaluator.function if self._evaluator.is_vector() else None

    def is_scalar(self) -> bool:
        return self._evaluator.is_scalar()

    def is_vector(self) -> bool:
        return self._evaluator.is_vector()

    def set_evaluator(self, evaluator: Optional[Evaluator]) -> NamedExpression:
        """Replace the evaluator; ``None`` leaves the current one in place."""
        if evaluator is None:
            if get_config().warn_on_ignored_evaluator:
                warnings.warn(f"Ignoring empty evaluator for {self._name}",
                              ExpressionWarning, stacklevel=3)
            return self
        if not isinstance(evaluator, Evaluator):
            raise TypeError(f"Expected an Evaluator, got {type(evaluator).__name__}")
        self._evaluator = evaluator
        return self

    def set_scalar_evaluator(self, function: Optional[Callable[[Any], ScalarType]]) -> NamedExpression:
        """Use ``function`` as scalar evaluator, discarding any vector evaluator."""
        return self.set_evaluator(None if function is None else Evaluator.scalar(function))

    def set_vector_evaluator(self, function: Optional[Callable[[Any], Sequence[ScalarType]]]) -> NamedExpression:
        """Use ``function`` as vector evaluator, discarding any scalar evaluator."""
        return self.set_evaluator(None if function is None else Evaluator.vector(function))

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def evaluate_scalar(self, record: Any) -> ScalarType:
        if not self._evaluator.is_scalar():
            raise InvalidShapeError(
                f"Cannot evaluate vector expression {self._name} as a scalar",
                expression=self._name)
        return self._evaluator.function(record)

    def evaluate_vector(self, record: Any) -> Sequence[ScalarType]:
        if not self._evaluator.is_vector():
            raise InvalidShapeError(
                f"Cannot evaluate scalar expression {self._name} as a vector",
                expression=self._name)
        return self._evaluator.function(record)

    def evaluate(self, record: Any) -> Union[ScalarType, Sequence[ScalarType]]:
        """Evaluate with whichever evaluator is set."""
        return self._evaluator.function(record)

    __call__ = evaluate

    # ------------------------------------------------------------------
    # Python protocol
    # ------------------------------------------------------------------

    def __str__(self) -> str:
        return self._name

    def __repr__(self) -> str:
        return f"NamedExpression({self._name!r}, shape={self._evaluator.shape.name})"

    def __bool__(self):
        raise TypeError(
            f"The truth value of expression {self._name} is ambiguous; "
            "evaluate it on a record, or use & | ~ to combine expressions")

    def __iter__(self):
        raise TypeError(f"Expression {self._name} is not iterable; evaluate it on a record")

    # ------------------------------------------------------------------
    # Unary operators
    # ------------------------------------------------------------------

    def _create_unary_operation(self, symbol: str) -> NamedExpression:
        result = NamedExpression(f"{symbol}({self._name})", self._evaluator)
        if symbol != '+':
            result.set_evaluator(apply_unary(self._evaluator, UNARY_OPERATORS[symbol]))
        return result

    def __pos__(self) -> NamedExpression:
        return self._create_unary_operation('+')

    def __neg__(self) -> NamedExpression:
        return self._create_unary_operation('-')

    def __invert__(self) -> NamedExpression:
        return self._create_unary_operation('!')

    def logical_not(self) -> NamedExpression:
        return self._create_unary_operation('!')

    # ------------------------------------------------------------------
    # Binary operators
    # ------------------------------------------------------------------

    def _combine_in_place(self, other: NamedExpression, symbol: str) -> NamedExpression:
        name = f"({self._name}){symbol}({other._name})"
        evaluator = apply_operator(symbol, self._evaluator, other._evaluator, name=name)
        self._name, self._evaluator = name, evaluator
        return self

    def _create_binary_operation(self, other: Any, symbol: str,
                                 reflected: bool = False) -> NamedExpression:
        operand = _as_expression(other)
        if operand is None:
            return NotImplemented
        left, right = (operand, self) if reflected else (self, operand)
        return left.copy()._combine_in_place(right, symbol)

    def _update_in_place(self, other: Any, symbol: str) -> NamedExpression:
        operand = _as_expression(other)
        if operand is None:
            return NotImplemented
        return self._combine_in_place(operand, symbol)

    # Arithmetic operations
    def __add__(self, other: Operand) -> NamedExpression:
        return self._create_binary_operation(other, '+')

    def __radd__(self, other: Operand) -> NamedExpression:
        return self._create_binary_operation(other, '+', reflected=True)

    def __sub__(self, other: Operand) -> NamedExpression:
        return self._create_binary_operation(other, '-')

    def __rsub__(self, other: Operand) -> NamedExpression:
        return self._create_binary_operation(other, '-', reflected=True)

    def __mul__(self, other: Operand) -> NamedExpression:
        return self._create_binary_operation(other, '*')

    def __rmul__(self, other: Operand) -> NamedExpression:
        return self._create_binary_operation(other, '*', reflected=True)

    def __truediv__(self, other: Operand) -> NamedExpression:
        return self._create_binary_operation(other, '/')

    def __rtruediv__(self, other: Operand) -> NamedExpression:
        return self._create_binary_operation(other, '/', reflected=True)

    def __mod__(self, other: Operand) -> NamedExpression:
        return self._create_binary_operation(other, '%')

    def __rmod__(self, other: Operand) -> NamedExpression:
        return self._create_binary_operation(other, '%', reflected=True)

    # In-place composition
    def __iadd__(self, other: Operand) -> NamedExpression:
        return self._update_in_place(other, '+')

    def __isub__(self, other: Operand) -> NamedExpression:
        return self._update_in_place(other, '-')

    def __imul__(self, other: Operand) -> NamedExpression:
        return self._update_in_place(other, '*')

    def __itruediv__(self, other: Operand) -> NamedExpression:
        return self._update_in_place(other, '/')

    def __imod__(self, other: Operand) -> NamedExpression:
        return self._update_in_place(other, '%')

    # Comparison operations
    def __eq__(self, other: Operand) -> NamedExpression:
        return self._create_binary_operation(other, '==')

    def __ne__(self, other: Operand) -> NamedExpression:
        return self._create_binary_operation(other, '!=')

    def __gt__(self, other: Operand) -> NamedExpression:
        return self._create_binary_operation(other, '>')

    def __lt__(self, other: Operand) -> NamedExpression:
        return self._create_binary_operation(other, '<')

    def __ge__(self, other: Operand) -> NamedExpression:
        return self._create_binary_operation(other, '>=')

    def __le__(self, other: Operand) -> NamedExpression:
        return self._create_binary_operation(other, '<=')

    __hash__ = None

    # Logical operations
    def logical_and(self, other: Operand) -> NamedExpression:
        result = self._create_binary_operation(other, '&&')
        if result is NotImplemented:
            raise TypeError(f"Cannot combine expression with {type(other).__name__}")
        return result

    def logical_or(self, other: Operand) -> NamedExpression:
        result = self._create_binary_operation(other, '||')
        if result is NotImplemented:
            raise TypeError(f"Cannot combine expression with {type(other).__name__}")
        return result

    def __and__(self, other: Operand) -> NamedExpression:
        return self._create_binary_operation(other, '&&')

    def __rand__(self, other: Operand) -> NamedExpression:
        return self._create_binary_operation(other, '&&', reflected=True)

    def __or__(self, other: Operand) -> NamedExpression:
        return self._create_binary_operation(other, '||')

    def __ror__(self, other: Operand) -> NamedExpression:
        return self._create_binary_operation(other, '||', reflected=True)

    # ------------------------------------------------------------------
    # Indexing
    # ------------------------------------------------------------------

    def __getitem__(self, index: Operand) -> NamedExpression:
        """
        Scalar expression selecting one entry of this vector expression.

        Raises:
            ShapeMismatchError: this expression is scalar, or ``index`` is a
                vector expression
        """
        operand = _as_expression(index)
        if operand is None:
            raise TypeError(f"Expression index must be a number or expression, "
                            f"got {type(index).__name__}")
        if self.is_scalar():
            raise ShapeMismatchError(
                f"Cannot apply indexing operator to scalar expression {self._name}",
                expression=self._name)
        if operand.is_vector():
            raise ShapeMismatchError(
                f"Cannot use vector {operand._name} as index", expression=operand._name)
        name = f"({self._name})[{operand._name}]"
        return NamedExpression(name, apply_index(self._evaluator, operand._evaluator, name=name))


def combine_balanced(
        terms: Iterable[Operand],
        combine: Callable[[NamedExpression, NamedExpression], NamedExpression] = operator.add,
) -> NamedExpression:
    """
    Fold ``terms`` with ``combine`` as a balanced tree.

    Neighbouring terms are combined pairwise, level by level, so the result
    evaluates with recursion depth ``log2(len(terms))`` instead of
    ``len(terms)``. Names follow the tree shape, for example
    ``((a)+(b))+((c)+(d))``.

    Args:
        terms: Expressions or numbers, in order
        combine: Binary expression operator, e.g. ``operator.mul`` or
            ``NamedExpression.logical_and``

    Raises:
        ValueError: ``terms`` is empty
        TypeError: a term is neither an expression nor a number
    """
    level = []
    for term in terms:
        expression = _as_expression(term)
        if expression is None:
            raise TypeError(f"Cannot combine {type(term).__name__} into an expression")
        level.append(expression)
    if not level:
        raise ValueError("combine_balanced() needs at least one term")
    while len(level) > 1:
        paired = [combine(level[i], level[i + 1]) for i in range(0, len(level) - 1, 2)]
        if len(level) % 2:
            paired.append(level[-1])
        level = paired
    return level[0]


__all__ = [
    'NamedExpression',
    'combine_balanced',
    'clean_name',
    'format_constant',
]
