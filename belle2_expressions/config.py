"""
Expression Configuration
========================

Process-wide switches for expression diagnostics. Defaults keep evaluation
silent; the environment can turn diagnostics on without touching code:

    BELLE2_DEBUG=1                   enables every diagnostic below
    BELLE2_EXPR_WARN_TRUNCATION=1    warn when vector/vector ops drop elements
    BELLE2_EXPR_WARN_IGNORED=1       warn when an empty evaluator is ignored
"""

from __future__ import annotations
import os
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, Iterator, Mapping, Optional

_TRUE_VALUES = {'1', 'true', 'yes', 'on'}


def _env_flag(environ: Mapping[str, str], key: str) -> bool:
    return environ.get(key, '').strip().lower() in _TRUE_VALUES


@dataclass
class ExpressionConfig:
    """
    Diagnostic configuration shared by all expressions.

    Closures read the active configuration at call time, so changes apply to
    expressions that were built before the change.
    """
    warn_on_truncation: bool = False
    warn_on_ignored_evaluator: bool = False

    _lock: threading.RLock = field(default_factory=threading.RLock, init=False,
                                   repr=False, compare=False)

    @classmethod
    def from_environment(cls, environ: Optional[Mapping[str, str]] = None) -> ExpressionConfig:
        """Build configuration from ``BELLE2_*`` environment variables."""
        environ = os.environ if environ is None else environ
        debug = _env_flag(environ, 'BELLE2_DEBUG')
        return cls(
            warn_on_truncation=debug or _env_flag(environ, 'BELLE2_EXPR_WARN_TRUNCATION'),
            warn_on_ignored_evaluator=debug or _env_flag(environ, 'BELLE2_EXPR_WARN_IGNORED'),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Thread-safe conversion to dictionary."""
        with self._lock:
            return {f.name: getattr(self, f.name) for f in fields(self) if f.init}

    def update(self, **overrides: Any) -> None:
        """Set options in place; unknown option names raise ``AttributeError``."""
        known = set(self.to_dict())
        with self._lock:
            for key, value in overrides.items():
                if key not in known:
                    raise AttributeError(f"Unknown expression option: {key}")
                setattr(self, key, bool(value))

    @contextmanager
    def temporary_variation(self, **overrides: Any) -> Iterator[ExpressionConfig]:
        """Context manager for temporary option changes."""
        with self._lock:
            old_values = self.to_dict()
            self.update(**overrides)
            try:
                yield self
            finally:
                self.update(**old_values)


_active_config = ExpressionConfig.from_environment()


def get_config() -> ExpressionConfig:
    """Return the active process-wide configuration."""
    return _active_config


def set_config(config: ExpressionConfig) -> ExpressionConfig:
    """Install ``config`` as the active configuration and return the previous one."""
    global _active_config
    previous = _active_config
    _active_config = replace(config)
    return previous


@contextmanager
def temporary_config(**overrides: Any) -> Iterator[ExpressionConfig]:
    """Shorthand for ``get_config().temporary_variation(**overrides)``."""
    with get_config().temporary_variation(**overrides) as config:
        yield config


__all__ = [
    'ExpressionConfig',
    'get_config',
    'set_config',
    'temporary_config',
]
