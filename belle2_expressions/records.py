"""
Event Records
=============

The record side of expression evaluation. Evaluators only ever call
``record.scalar(name)`` or ``record.vector(name)``, so any object offering
those two methods can be evaluated on; ``DictEventRecord`` is the concrete
record used for rows of a polars frame.

Branch shapes come from the frame schema: list and array columns are
per-entry vectors, numeric and boolean columns are per-event scalars.
"""

from __future__ import annotations
import math
from typing import (
    Any, Dict, Iterator, List, Mapping, Protocol, Sequence, Union, runtime_checkable
)

import numpy as np
import polars as pl

from .core import NamedExpression
from .exceptions import InvalidShapeError
from .operators import EvaluatorShape

_SEQUENCE_TYPES = (list, tuple, np.ndarray, pl.Series)


# ==============================================================================
# RECORD PROTOCOL
# ==============================================================================

@runtime_checkable
class EventRecord(Protocol):
    """Per-event data queried by evaluators."""

    def scalar(self, name: str) -> float:
        ...

    def vector(self, name: str) -> Sequence[float]:
        ...


def _to_float(value: Any) -> float:
    return math.nan if value is None else float(value)


class DictEventRecord:
    """
    Event record backed by a mapping of branch name to value.

    Null values read as NaN; a null list reads as an empty vector.
    """

    __slots__ = ('_values',)

    def __init__(self, values: Mapping[str, Any]):
        self._values = values

    def scalar(self, name: str) -> float:
        value = self._values[name]
        if isinstance(value, _SEQUENCE_TYPES):
            raise InvalidShapeError(f"Branch '{name}' is a vector, not a scalar",
                                    expression=name)
        return _to_float(value)

    def vector(self, name: str) -> List[float]:
        value = self._values[name]
        if value is None:
            return []
        if not isinstance(value, _SEQUENCE_TYPES):
            raise InvalidShapeError(f"Branch '{name}' is a scalar, not a vector",
                                    expression=name)
        return [_to_float(x) for x in value]

    def __contains__(self, name: str) -> bool:
        return name in self._values

    def keys(self):
        return self._values.keys()

    def __repr__(self) -> str:
        return f"DictEventRecord({sorted(self._values)})"


# ==============================================================================
# POLARS INTEGRATION
# ==============================================================================

FrameLike = Union[pl.DataFrame, pl.LazyFrame]


def _is_value_dtype(dtype: pl.DataType) -> bool:
    return dtype == pl.Boolean or dtype.is_numeric()


def shapes_from_schema(schema: Mapping[str, pl.DataType]) -> Dict[str, EvaluatorShape]:
    """
    Branch shapes from a polars schema.

    ``List``/``Array`` columns of numbers become vectors, numeric and boolean
    columns become scalars, anything else (strings, structs, ...) is skipped.
    """
    shapes: Dict[str, EvaluatorShape] = {}
    for name, dtype in schema.items():
        if isinstance(dtype, (pl.List, pl.Array)):
            if _is_value_dtype(dtype.inner):
                shapes[name] = EvaluatorShape.VECTOR
        elif _is_value_dtype(dtype):
            shapes[name] = EvaluatorShape.SCALAR
    return shapes


def shapes_from_frame(frame: FrameLike) -> Dict[str, EvaluatorShape]:
    """Branch shapes from a polars DataFrame or LazyFrame."""
    return shapes_from_schema(frame.collect_schema())


def iter_event_records(frame: FrameLike) -> Iterator[DictEventRecord]:
    """Yield one record per row of ``frame``."""
    if isinstance(frame, pl.LazyFrame):
        frame = frame.collect()
    for row in frame.iter_rows(named=True):
        yield DictEventRecord(row)


# ==============================================================================
# BRANCH LEAVES
# ==============================================================================

def scalar_branch(name: str) -> NamedExpression:
    """Leaf expression reading scalar branch ``name`` from the record."""
    return NamedExpression.from_scalar(name, lambda record: record.scalar(name))


def vector_branch(name: str) -> NamedExpression:
    """Leaf expression reading vector branch ``name`` from the record."""
    return NamedExpression.from_vector(name, lambda record: record.vector(name))


def branch(name: str, shape: EvaluatorShape) -> NamedExpression:
    if shape is EvaluatorShape.VECTOR:
        return vector_branch(name)
    return scalar_branch(name)


__all__ = [
    'EventRecord',
    'DictEventRecord',
    'shapes_from_schema',
    'shapes_from_frame',
    'iter_event_records',
    'scalar_branch',
    'vector_branch',
    'branch',
]
