"""
Per-entry aggregates over evaluated vector expressions.

Used by selection code to reduce per-object cut results to a per-event
decision. A ``BroadcastVector`` (a short-circuited logical result) counts as
its value at every index.
"""

from __future__ import annotations
from typing import Sequence

import numpy as np

from .operators import BroadcastVector


def any_true(values: Sequence[float]) -> bool:
    """Whether any element of an evaluated vector is truthy (nonzero or NaN)."""
    if isinstance(values, BroadcastVector):
        return bool(values.value)
    if len(values) == 0:
        return False
    return bool(np.any(np.asarray(values, dtype=np.float64) != 0.0))


def all_rows_any_true(vectors: Sequence[Sequence[float]]) -> bool:
    """
    Whether some index passes every vector.

    Given one evaluated vector per selection criterion for the same record,
    return ``True`` if there is an index inside the bounds of every vector at
    which all vectors are truthy. An empty list gives ``False``.

    Example:
        >>> all_rows_any_true([[1, 0, 1], [1, 1, 0]])
        True
        >>> all_rows_any_true([[0, 0], [1, 1]])
        False
    """
    if len(vectors) == 0:
        return False
    concrete = []
    for v in vectors:
        if isinstance(v, BroadcastVector):
            if not v.value:
                return False
        else:
            concrete.append(v)
    if not concrete:
        return True
    shared = min(len(v) for v in concrete)
    if shared == 0:
        return False
    rows = np.array([np.asarray(v[:shared], dtype=np.float64) for v in concrete])
    return bool(np.any(np.all(rows != 0.0, axis=0)))


__all__ = ['any_true', 'all_rows_any_true']
