# Copyright (c) 2025.
# This file is part of TEB-JIT, released under the MIT License.
"""
Exceptions raised by cost-term evaluation.

Both failures below are programming or upstream-data errors, not runtime
conditions the optimizer can recover from, so they are raised eagerly and
never clamped. Degenerate geometry (a straight car-like segment) is *not* an
error; it has a defined zero cost.
"""

from __future__ import annotations

from typing import Any, Sequence


class KinematicsError(RuntimeError):
    """Base class for cost-term evaluation failures."""


class UnboundConfigError(KinematicsError):
    """A term was evaluated before a configuration was bound with ``set_config``."""

    def __init__(self, term: Any) -> None:
        self.term = term
        super().__init__(
            f"{type(term).__name__} (id={getattr(term, 'id', None)}) has no "
            "configuration; call set_config() before evaluating it"
        )


class NonFiniteResidualError(KinematicsError):
    """A residual component evaluated to NaN or infinity."""

    def __init__(self, term: Any, values: Sequence[float]) -> None:
        self.term = term
        self.values = tuple(float(v) for v in values)
        joined = ", ".join(f"error[{i}]={v}" for i, v in enumerate(self.values))
        super().__init__(
            f"{type(term).__name__}.compute_error() (id={getattr(term, 'id', None)}, "
            f"var_ids={getattr(term, 'var_ids', None)}) produced a non-finite "
            f"residual: {joined}"
        )
