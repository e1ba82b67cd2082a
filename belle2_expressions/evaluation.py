"""
Batch evaluation of expressions over polars frames.

Thin consumers for selection and histogram-filling code: each row of the
frame becomes one ``DictEventRecord`` and the expression is called once per
row.
"""

from __future__ import annotations
from typing import Union

import numpy as np
import polars as pl

from .aggregates import any_true
from .core import NamedExpression
from .records import FrameLike, iter_event_records

ExpressionLike = Union[NamedExpression, str]


def _as_expression(expression: ExpressionLike) -> NamedExpression:
    if isinstance(expression, str):
        return NamedExpression.from_text(expression)
    return expression


def evaluate_frame(expression: ExpressionLike, frame: FrameLike) -> pl.Series:
    """
    Evaluate ``expression`` on every row of ``frame``.

    Returns:
        ``Float64`` series for scalar expressions, ``List(Float64)`` series
        for vector expressions, named after the expression. A short-circuited
        row (``BroadcastVector``) is stored as its single value.
    """
    expression = _as_expression(expression)
    function = expression.evaluator.function
    values = [function(record) for record in iter_event_records(frame)]
    if expression.is_vector():
        return pl.Series(expression.name, [[float(x) for x in v] for v in values],
                         dtype=pl.List(pl.Float64))
    return pl.Series(expression.name, [float(v) for v in values], dtype=pl.Float64)


def selection_mask(cut: ExpressionLike, frame: FrameLike) -> np.ndarray:
    """
    Boolean mask of rows passing ``cut``.

    A scalar cut passes when truthy; a vector cut passes when any entry is
    truthy.
    """
    cut = _as_expression(cut)
    function = cut.evaluator.function
    if cut.is_vector():
        passed = [any_true(function(record)) for record in iter_event_records(frame)]
    else:
        passed = [bool(function(record)) for record in iter_event_records(frame)]
    return np.asarray(passed, dtype=bool)


def filter_frame(cut: ExpressionLike, frame: FrameLike) -> pl.DataFrame:
    """Rows of ``frame`` passing ``cut``."""
    if isinstance(frame, pl.LazyFrame):
        frame = frame.collect()
    return frame.filter(pl.Series(selection_mask(cut, frame)))


__all__ = ['evaluate_frame', 'selection_mask', 'filter_frame']
