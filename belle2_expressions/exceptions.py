"""
Expression Errors and Warnings
==============================

Error kinds raised while building or evaluating named expressions. Every
error derives from ``ExpressionError`` and from the closest builtin, so
callers may catch either ``ParseError`` or ``ValueError``.

None of these are retried or recovered from internally: an error is fatal to
the single evaluation call that raised it.
"""

from __future__ import annotations
from typing import Optional


# ==============================================================================
# EXCEPTIONS
# ==============================================================================

class ExpressionError(Exception):
    """Expression error with context."""

    def __init__(self, message: str, expression: Optional[str] = None):
        super().__init__(message)
        self.expression = expression


class ParseError(ExpressionError, ValueError):
    """Malformed expression text."""

    def __init__(self, message: str, text: Optional[str] = None,
                 position: Optional[int] = None):
        if text is not None and position is not None:
            message = f"{message} at position {position} in '{text}'"
        super().__init__(message, expression=text)
        self.text = text
        self.position = position


class InvalidShapeError(ExpressionError, TypeError):
    """Evaluator of the requested shape is not set."""


class ShapeMismatchError(ExpressionError, TypeError):
    """Operand shapes cannot be combined (indexing a scalar, vector index)."""


class IndexOutOfRangeError(ExpressionError, IndexError):
    """Computed index falls outside the vector for this record."""

    def __init__(self, message: str, expression: Optional[str] = None,
                 index: Optional[float] = None, length: Optional[int] = None):
        super().__init__(message, expression=expression)
        self.index = index
        self.length = length


# ==============================================================================
# WARNINGS
# ==============================================================================

class ExpressionWarning(UserWarning):
    """Non-fatal expression diagnostic."""


class TruncationWarning(ExpressionWarning):
    """Vector/vector operation dropped trailing elements of the longer operand."""


__all__ = [
    'ExpressionError',
    'ParseError',
    'InvalidShapeError',
    'ShapeMismatchError',
    'IndexOutOfRangeError',
    'ExpressionWarning',
    'TruncationWarning',
]
