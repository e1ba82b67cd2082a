import pytest
import numpy as np
import polars as pl
from hypothesis import HealthCheck, settings

from belle2_expressions import (
    DictEventRecord, ExpressionConfig, NamedExpression, set_config,
)

# Configure hypothesis for CI and local runs; the autouse config reset below
# is function scoped and safe to share between generated examples
_SHARED_FIXTURES = [HealthCheck.function_scoped_fixture]
settings.register_profile("ci", max_examples=50, deadline=None,
                          suppress_health_check=_SHARED_FIXTURES)
settings.register_profile("dev", max_examples=10, deadline=None,
                          suppress_health_check=_SHARED_FIXTURES)
settings.load_profile("ci")


@pytest.fixture(autouse=True)
def default_expression_config():
    """Run every test with diagnostics off, whatever the environment says."""
    previous = set_config(ExpressionConfig())
    yield
    set_config(previous)


class CallCounter:
    """Evaluator wrapper counting how often it was called."""

    def __init__(self, result):
        self.result = result
        self.calls = 0

    def __call__(self, record):
        self.calls += 1
        return self.result


@pytest.fixture
def counter():
    """Factory for counting evaluators."""
    return CallCounter


@pytest.fixture
def record():
    """Single Belle II-like event with per-event scalars and per-track vectors."""
    return DictEventRecord({
        'nTracks': 3,
        'M_bc': 5.279,
        'delta_E': -0.02,
        'isSignal': True,
        'track_p': [1.5, 0.4, 2.2],
        'track_charge': [1, -1, 1],
        'cluster_E': [0.8, 0.1],
        'empty': [],
    })


@pytest.fixture
def scalar():
    """Factory for constant-valued scalar expressions with a chosen name."""
    def make(name, value):
        return NamedExpression.from_scalar(name, lambda r: value)
    return make


@pytest.fixture
def vector():
    """Factory for constant-valued vector expressions with a chosen name."""
    def make(name, values):
        return NamedExpression.from_vector(name, lambda r: list(values))
    return make


@pytest.fixture(scope="session")
def belle2_frame():
    """Small frame mimicking Belle II ntuples with per-track list columns."""
    rng = np.random.default_rng(42)
    n_events = 20
    n_tracks = rng.integers(0, 5, n_events)
    return pl.DataFrame({
        '__event__': np.arange(n_events),
        'M_bc': rng.normal(5.279, 0.003, n_events),
        'delta_E': rng.normal(0, 0.05, n_events),
        'nTracks': n_tracks,
        'track_p': pl.Series([rng.uniform(0.1, 4.0, n).round(3).tolist() for n in n_tracks],
                             dtype=pl.List(pl.Float64)),
        'label': ['evt'] * n_events,
    })
