"""
Records and Batch Evaluation Test Suite
=======================================

Tests for event records, schema-derived branch shapes, per-entry aggregates
and expression evaluation over polars frames.
"""

import math

import numpy as np
import polars as pl
import pytest

from belle2_expressions import (
    DictEventRecord, EvaluatorShape, EventRecord, ExpressionCompiler,
    InvalidShapeError, all_rows_any_true, any_true, branch, evaluate_frame,
    filter_frame, iter_event_records, scalar_branch, selection_mask,
    shapes_from_frame, shapes_from_schema, vector_branch,
)

pytestmark = pytest.mark.records


# ============================================================================
# DictEventRecord
# ============================================================================

class TestDictEventRecord:

    def test_satisfies_protocol(self, record):
        assert isinstance(record, EventRecord)

    def test_scalar_values_are_floats(self, record):
        assert record.scalar('nTracks') == 3.0
        assert isinstance(record.scalar('nTracks'), float)
        assert record.scalar('isSignal') == 1.0

    def test_vector_values_are_floats(self, record):
        assert record.vector('track_charge') == [1.0, -1.0, 1.0]
        assert all(isinstance(x, float) for x in record.vector('track_charge'))
        assert record.vector('empty') == []

    def test_numpy_and_tuple_vectors(self):
        record = DictEventRecord({'a': np.array([1, 2]), 'b': (3.5,)})
        assert record.vector('a') == [1.0, 2.0]
        assert record.vector('b') == [3.5]

    def test_nulls(self):
        record = DictEventRecord({'s': None, 'v': None, 'w': [1.0, None]})
        assert math.isnan(record.scalar('s'))
        assert record.vector('v') == []
        values = record.vector('w')
        assert values[0] == 1.0
        assert math.isnan(values[1])

    def test_wrong_shape(self, record):
        with pytest.raises(InvalidShapeError, match="'track_p' is a vector"):
            record.scalar('track_p')
        with pytest.raises(InvalidShapeError, match="'M_bc' is a scalar"):
            record.vector('M_bc')

    def test_missing_branch(self, record):
        with pytest.raises(KeyError):
            record.scalar('missing')

    def test_mapping_helpers(self, record):
        assert 'M_bc' in record
        assert 'missing' not in record
        assert set(record.keys()) >= {'nTracks', 'track_p'}
        assert 'track_p' in repr(record)


# ============================================================================
# Branch leaves
# ============================================================================

class TestBranches:

    def test_scalar_branch(self, record):
        leaf = scalar_branch('M_bc')
        assert leaf.name == 'M_bc'
        assert leaf.is_scalar()
        assert leaf.evaluate_scalar(record) == 5.279

    def test_vector_branch(self, record):
        leaf = vector_branch('cluster_E')
        assert leaf.is_vector()
        assert leaf.evaluate_vector(record) == [0.8, 0.1]

    def test_branch_by_shape(self):
        assert branch('x', EvaluatorShape.SCALAR).is_scalar()
        assert branch('x', EvaluatorShape.VECTOR).is_vector()

    def test_leaf_reads_current_record(self):
        leaf = scalar_branch('x')
        assert leaf.evaluate_scalar(DictEventRecord({'x': 1})) == 1.0
        assert leaf.evaluate_scalar(DictEventRecord({'x': 2})) == 2.0


# ============================================================================
# Schema shapes
# ============================================================================

class TestSchemaShapes:

    def test_shapes_from_schema(self):
        schema = {
            'n': pl.Int32(),
            'p': pl.List(pl.Float32),
            'label': pl.String(),
            'flag': pl.Boolean(),
            'fixed': pl.Array(pl.Float64, 3),
            'names': pl.List(pl.String),
        }
        assert shapes_from_schema(schema) == {
            'n': EvaluatorShape.SCALAR,
            'p': EvaluatorShape.VECTOR,
            'flag': EvaluatorShape.SCALAR,
            'fixed': EvaluatorShape.VECTOR,
        }

    def test_shapes_from_frame(self, belle2_frame):
        shapes = shapes_from_frame(belle2_frame)
        assert shapes['track_p'] is EvaluatorShape.VECTOR
        assert shapes['M_bc'] is EvaluatorShape.SCALAR
        assert shapes['nTracks'] is EvaluatorShape.SCALAR
        assert 'label' not in shapes
        assert shapes_from_frame(belle2_frame.lazy()) == shapes


# ============================================================================
# Aggregates
# ============================================================================

class TestAggregates:

    @pytest.mark.parametrize('values, expected', [
        ([], False),
        ([0.0, 0.0], False),
        ([0.0, 2.0], True),
        ([-1.0], True),
        ([0.0, math.nan], True),
    ])
    def test_any_true(self, values, expected):
        assert any_true(values) is expected

    def test_any_true_numpy(self):
        assert any_true(np.zeros(3)) is False
        assert any_true(np.array([0.0, 1.0])) is True

    @pytest.mark.parametrize('vectors, expected', [
        ([[1, 0, 1], [1, 1, 0]], True),
        ([[0, 0], [1, 1]], False),
        ([], False),
        ([[1, 1, 1]], True),
        ([[1, 1, 1], []], False),
        ([[0, 1, 1], [1, 0]], False),
        ([[0, 1, 1], [1, 1]], True),
    ])
    def test_all_rows_any_true(self, vectors, expected):
        assert all_rows_any_true(vectors) is expected

    def test_all_rows_any_true_ignores_trailing_entries(self):
        # Only indices inside every vector count.
        assert all_rows_any_true([[0, 0, 1], [1, 1]]) is False


# ============================================================================
# Batch evaluation over polars frames
# ============================================================================

def _track_p_rows(frame):
    return frame['track_p'].to_list()


class TestIterEventRecords:

    def test_one_record_per_row(self, belle2_frame):
        records = list(iter_event_records(belle2_frame))
        assert len(records) == belle2_frame.height
        assert records[3].vector('track_p') == _track_p_rows(belle2_frame)[3]
        assert records[3].scalar('__event__') == 3.0

    def test_lazy_frame(self, belle2_frame):
        assert len(list(iter_event_records(belle2_frame.lazy()))) == belle2_frame.height


class TestEvaluateFrame:

    def test_scalar_expression(self, belle2_frame):
        result = evaluate_frame('M_bc', belle2_frame)
        assert result.name == 'M_bc'
        assert result.dtype == pl.Float64
        assert result.to_list() == belle2_frame['M_bc'].to_list()

    def test_integer_scalar_branch(self, belle2_frame):
        result = evaluate_frame('nTracks * 2', belle2_frame)
        assert result.dtype == pl.Float64
        assert result.to_list() == [2.0 * n for n in belle2_frame['nTracks'].to_list()]

    def test_vector_expression(self, belle2_frame):
        result = evaluate_frame(vector_branch('track_p') * 2, belle2_frame)
        assert result.name == '(track_p)*(2)'
        assert result.dtype == pl.List(pl.Float64)
        assert result.to_list() == [[2 * p for p in row] for row in _track_p_rows(belle2_frame)]

    def test_lazy_frame(self, belle2_frame):
        result = evaluate_frame('delta_E', belle2_frame.lazy())
        assert result.len() == belle2_frame.height

    def test_empty_frame(self, belle2_frame):
        result = evaluate_frame('M_bc', belle2_frame.head(0))
        assert result.len() == 0
        assert result.dtype == pl.Float64

    def test_wrong_default_shape_raises(self, belle2_frame):
        # The default compiler treats unknown identifiers as scalars.
        with pytest.raises(InvalidShapeError):
            evaluate_frame('track_p', belle2_frame)

    def test_frame_compiler(self, belle2_frame):
        compiler = ExpressionCompiler.from_frame(belle2_frame)
        result = evaluate_frame(compiler.compile('track_p[0]'), belle2_frame.filter(pl.col('nTracks') > 0))
        expected = [row[0] for row in _track_p_rows(belle2_frame) if row]
        assert result.to_list() == expected

    def test_short_circuited_rows(self, belle2_frame):
        compiler = ExpressionCompiler.from_frame(belle2_frame)
        result = evaluate_frame(compiler.compile('nTracks >= 2 && track_p > 1'), belle2_frame)
        for n, row, values in zip(belle2_frame['nTracks'].to_list(),
                                  _track_p_rows(belle2_frame), result.to_list()):
            if n >= 2:
                assert values == [1.0 if p > 1 else 0.0 for p in row]
            else:
                assert values == [0.0]


class TestSelection:

    def test_scalar_cut_mask(self, belle2_frame):
        mask = selection_mask('nTracks >= 2', belle2_frame)
        assert mask.dtype == np.bool_
        np.testing.assert_array_equal(mask, belle2_frame['nTracks'].to_numpy() >= 2)

    def test_vector_cut_mask(self, belle2_frame):
        mask = selection_mask(vector_branch('track_p') > 1, belle2_frame)
        expected = [any(p > 1 for p in row) for row in _track_p_rows(belle2_frame)]
        np.testing.assert_array_equal(mask, np.array(expected))

    def test_mixed_cut_mask(self, belle2_frame):
        compiler = ExpressionCompiler.from_frame(belle2_frame)
        mask = selection_mask(compiler.compile('nTracks >= 2 && track_p > 1'), belle2_frame)
        expected = [n >= 2 and any(p > 1 for p in row)
                    for n, row in zip(belle2_frame['nTracks'].to_list(), _track_p_rows(belle2_frame))]
        np.testing.assert_array_equal(mask, np.array(expected))

    def test_empty_frame_mask(self, belle2_frame):
        mask = selection_mask('M_bc > 0', belle2_frame.head(0))
        assert mask.shape == (0,)
        assert mask.dtype == np.bool_

    def test_filter_frame(self, belle2_frame):
        cut = vector_branch('track_p') > 1
        mask = selection_mask(cut, belle2_frame)
        filtered = filter_frame(cut, belle2_frame)
        assert filtered.height == int(mask.sum())
        assert filtered['__event__'].to_list() == [i for i, passed in enumerate(mask) if passed]
        assert filtered.columns == belle2_frame.columns

    def test_filter_lazy_frame(self, belle2_frame):
        filtered = filter_frame('nTracks == 0', belle2_frame.lazy())
        assert isinstance(filtered, pl.DataFrame)
        assert all(n == 0 for n in filtered['nTracks'].to_list())
