# belle2_expressions/__init__.py
from __future__ import annotations
from .exceptions import (
    ExpressionError, ParseError, InvalidShapeError, ShapeMismatchError,
    IndexOutOfRangeError, ExpressionWarning, TruncationWarning,
)
from .config import ExpressionConfig, get_config, set_config, temporary_config
from .operators import BroadcastVector, Evaluator, EvaluatorShape
from .core import NamedExpression, combine_balanced
from .aggregates import any_true, all_rows_any_true
from .records import (
    EventRecord, DictEventRecord, iter_event_records,
    shapes_from_schema, shapes_from_frame,
    scalar_branch, vector_branch, branch,
)
from .compiler import (
    ExpressionCompiler, compile_expression,
    get_default_compiler, set_default_compiler,
)
from .evaluation import evaluate_frame, selection_mask, filter_frame

__all__ = [
    'NamedExpression',
    'combine_balanced',
    'Evaluator',
    'EvaluatorShape',
    'BroadcastVector',
    'any_true',
    'all_rows_any_true',
    'EventRecord',
    'DictEventRecord',
    'iter_event_records',
    'shapes_from_schema',
    'shapes_from_frame',
    'scalar_branch',
    'vector_branch',
    'branch',
    'ExpressionCompiler',
    'compile_expression',
    'get_default_compiler',
    'set_default_compiler',
    'evaluate_frame',
    'selection_mask',
    'filter_frame',
    'ExpressionConfig',
    'get_config',
    'set_config',
    'temporary_config',
    'ExpressionError',
    'ParseError',
    'InvalidShapeError',
    'ShapeMismatchError',
    'IndexOutOfRangeError',
    'ExpressionWarning',
    'TruncationWarning',
]

__version__ = '1.0.0'
__author__ = 'Belle II Analysis Framework Team'
