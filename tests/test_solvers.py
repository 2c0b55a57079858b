from __future__ import annotations

import jax.numpy as jnp
import pytest

from teb_jit.optimization.solvers import GNConfig, gauss_newton_manifold

_OFFSET = jnp.array([1.0, 2.0])
_JACOBIAN = jnp.array([
    [-1.0, 0.0, 1.0, 0.0],
    [0.0, -1.0, 0.0, 1.0],
])


def _residual(x):
    return x[2:4] - x[0:2] - _OFFSET


def _jacobian(x):
    return _JACOBIAN


def test_undamped_solve_with_fixed_block_stays_finite():
    """
    Block 0 is fixed at (0.5, 0.5); block 1 must end up at block 0 + (1, 2).
    With damping=0 the zeroed fixed columns leave H rank-deficient unless the
    fixed rows are regularized.
    """
    x0 = jnp.array([0.5, 0.5, 0.0, 0.0])
    block_slices = {0: slice(0, 2), 1: slice(2, 4)}
    manifold_types = {0: "fixed", 1: "euclidean"}

    x = gauss_newton_manifold(
        _residual,
        _jacobian,
        x0,
        block_slices,
        manifold_types,
        GNConfig(max_iters=5, damping=0.0, max_step_norm=10.0),
    )

    assert bool(jnp.all(jnp.isfinite(x)))
    assert float(x[0]) == pytest.approx(0.5)
    assert float(x[1]) == pytest.approx(0.5)
    assert float(x[2]) == pytest.approx(1.5)
    assert float(x[3]) == pytest.approx(2.5)


def test_step_is_clamped_to_max_step_norm():
    x0 = jnp.array([0.0, 0.0, 0.0, 0.0])
    block_slices = {0: slice(0, 2), 1: slice(2, 4)}
    manifold_types = {0: "fixed", 1: "euclidean"}

    x = gauss_newton_manifold(
        _residual,
        _jacobian,
        x0,
        block_slices,
        manifold_types,
        GNConfig(max_iters=1, damping=0.0, max_step_norm=0.5),
    )

    assert float(jnp.linalg.norm(x[2:4])) == pytest.approx(0.5, abs=1e-6)


def test_negative_damping_rejected():
    with pytest.raises(ValueError):
        GNConfig(damping=-1.0)
