# Copyright (c) 2025.
# This file is part of TEB-JIT, released under the MIT License.
"""
One-sided bound penalties.

Inequality constraints ``value >= lower_bound`` are turned into non-negative
least-squares residuals: zero inside the feasible region, growing linearly
with the shortfall outside of it. ``margin`` requires slack beyond the raw
bound; ``margin = 0`` enforces the bound exactly.

Both functions accept scalars or arrays and are safe under ``jax.jit``,
``jax.grad`` and ``jax.jacfwd``.
"""

from __future__ import annotations

from ..core.jax_init import jnp


def penalty_bound_from_below(value, lower_bound, margin=0.0):
    """
    Linear penalty for ``value`` falling below ``lower_bound + margin``.

        0                                  if value >= lower_bound + margin
        (lower_bound + margin) - value     otherwise
    """
    bound = lower_bound + margin
    return jnp.where(value >= bound, 0.0, bound - value)


def penalty_bound_from_below_derivative(value, lower_bound, margin=0.0):
    """Slope of :func:`penalty_bound_from_below` with respect to ``value`` (0 or -1)."""
    bound = lower_bound + margin
    return jnp.where(value >= bound, 0.0, -1.0)
