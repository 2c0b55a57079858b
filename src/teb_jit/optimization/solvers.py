# Copyright (c) 2025.
# This file is part of TEB-JIT, released under the MIT License.
"""
Reference Gauss-Newton driver for TEB-JIT.

The kinematics terms are meant to be plugged into an external least-squares
solver. This module is the smallest such solver that honours the same
contract, so the terms can be exercised end to end:

    1. evaluate r(x) (every term's residual, whitened)
    2. evaluate J(x) (every term's linearize_oplus, whitened)
    3. solve the damped normal equations  (J^T J + lambda I) dx = J^T r
    4. clamp the step and apply it per variable block:
         - "se2": additive update, heading wrapped into (-pi, pi]
         - "euclidean": additive update
         - "fixed": untouched

Columns of fixed blocks are zeroed before forming the normal equations, so
the free poses are solved as if the fixed ones were constants. The fixed
rows of H then get a unit diagonal so the system stays nonsingular even with
``damping=0``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict

from ..core.jax_init import jnp
from ..core.math2d import se2_retract

_logger = logging.getLogger(__name__)

ResidualFn = Callable[[jnp.ndarray], jnp.ndarray]


@dataclass
class GNConfig:
    max_iters: int = 20
    damping: float = 1e-3       # LM-style diagonal damping
    max_step_norm: float = 1.0  # clamp step size for stability
    tolerance: float = 1e-10    # stop once the step norm falls below this

    def __post_init__(self) -> None:
        if self.max_iters < 0:
            raise ValueError(f"max_iters must be >= 0, got {self.max_iters}")
        if self.damping < 0.0 or self.max_step_norm <= 0.0:
            raise ValueError("damping must be >= 0 and max_step_norm > 0")


def gauss_newton_manifold(
    residual_fn: ResidualFn,
    jacobian_fn: Callable[[jnp.ndarray], jnp.ndarray],
    x0: jnp.ndarray,
    block_slices: Dict,     # NodeId -> slice
    manifold_types: Dict,   # NodeId -> "se2" / "euclidean" / "fixed"
    cfg: GNConfig,
) -> jnp.ndarray:
    """
    Manifold-aware Gauss-Newton:

      - residual_fn: x -> r(x), with x in R^n, r in R^m
      - jacobian_fn: x -> J(x), shape (m, n)
      - block_slices: maps each NodeId to a slice in x
      - manifold_types: maps each NodeId to its update rule
    """
    x = jnp.asarray(x0)
    n = x.shape[0]

    free = jnp.ones(n)
    for nid, sl in block_slices.items():
        if manifold_types[nid] == "fixed":
            free = free.at[sl].set(0.0)

    for it in range(cfg.max_iters):
        r = residual_fn(x)               # (m,)
        J = jacobian_fn(x) * free[None]  # (m, n)

        H = J.T @ J                      # (n, n)
        g = J.T @ r                      # (n,)

        H_damped = H + cfg.damping * jnp.eye(n) + jnp.diag(1.0 - free)
        delta = jnp.linalg.solve(H_damped, g) * free

        # Step size clamp
        step_norm = float(jnp.linalg.norm(delta))
        scale = min(1.0, cfg.max_step_norm / (step_norm + 1e-9))
        delta_scaled = scale * delta

        _logger.debug("gn iter %d: cost=%.6e step=%.3e", it, float(r @ r), step_norm)

        x_new = x
        for nid, sl in block_slices.items():
            mtype = manifold_types[nid]
            if mtype == "fixed":
                continue
            if mtype == "se2":
                x_i_new = se2_retract(x[sl], -delta_scaled[sl])
            else:
                x_i_new = x[sl] - delta_scaled[sl]
            x_new = x_new.at[sl].set(x_i_new)

        x = x_new
        if step_norm < cfg.tolerance:
            break

    return x
