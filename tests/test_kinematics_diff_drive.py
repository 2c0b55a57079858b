from __future__ import annotations

import io
import math

import jax.numpy as jnp
import numpy as np
import pytest

from teb_jit.config import TebConfig
from teb_jit.core.errors import NonFiniteResidualError, UnboundConfigError
from teb_jit.core.types import CostTerm, NodeId, Pose2
from teb_jit.kinematics.edges import DiffDriveKinematicsTerm, nonholonomic_signed


def _stack(p1: Pose2, p2: Pose2) -> jnp.ndarray:
    return jnp.concatenate([p1.as_array(), p2.as_array()])


def _term(**kwargs) -> DiffDriveKinematicsTerm:
    kwargs.setdefault("config", TebConfig())
    return DiffDriveKinematicsTerm(NodeId(0), NodeId(1), **kwargs)


def _central_difference(term, x, h=1e-6):
    cols = []
    for k in range(x.shape[0]):
        e = jnp.zeros_like(x).at[k].set(h)
        cols.append((term.compute_error(x + e) - term.compute_error(x - e)) / (2.0 * h))
    return jnp.stack(cols, axis=1)


def _random_pairs(n: int, seed: int = 0):
    """Random pose pairs away from the |.| and penalty kinks."""
    rng = np.random.default_rng(seed)
    pairs = []
    while len(pairs) < n:
        v = np.concatenate([
            rng.uniform(-2.0, 2.0, 2), rng.uniform(-math.pi, math.pi, 1),
            rng.uniform(-2.0, 2.0, 2), rng.uniform(-math.pi, math.pi, 1),
        ])
        x = jnp.asarray(v)
        proj = (v[3] - v[0]) * math.cos(v[2]) + (v[4] - v[1]) * math.sin(v[2])
        if abs(float(nonholonomic_signed(x))) < 1e-3 or abs(proj) < 1e-3:
            continue
        pairs.append(x)
    return pairs


def test_straight_forward_motion_has_zero_error():
    """
    theta1 = theta2 = 0, pose1 = (0, 0), pose2 = (1, 0):
        nh  = |(1 + 1) * 0 - (0 + 0) * 1| = 0
        fwd = bound_from_below(1, 0, 0) = 0
    """
    term = _term()
    err = term.compute_error(_stack(Pose2(0.0, 0.0, 0.0), Pose2(1.0, 0.0, 0.0)))
    assert err.shape == (2,)
    assert float(err[0]) == pytest.approx(0.0, abs=1e-12)
    assert float(err[1]) == 0.0


def test_backward_motion_is_penalized():
    term = _term()
    err = term.compute_error(_stack(Pose2(0.0, 0.0, 0.0), Pose2(-1.0, 0.0, 0.0)))
    assert float(err[0]) == pytest.approx(0.0, abs=1e-12)
    assert float(err[1]) == pytest.approx(1.0)


def test_lateral_slip_violates_nonholonomic_constraint():
    # sideways step: |(1 + 1) * 1 - 0| = 2, zero projection on heading
    term = _term()
    err = term.compute_error(_stack(Pose2(0.0, 0.0, 0.0), Pose2(0.0, 1.0, 0.0)))
    assert float(err[0]) == pytest.approx(2.0)
    assert float(err[1]) == 0.0


def test_compute_error_is_idempotent():
    term = _term()
    x = _stack(Pose2(0.2, -0.1, 0.3), Pose2(0.9, 0.4, 1.1))
    first = term.compute_error(x)
    for _ in range(3):
        assert jnp.array_equal(term.compute_error(x), first)


def test_unbound_config_is_rejected():
    term = DiffDriveKinematicsTerm(NodeId(0), NodeId(1))
    x = _stack(Pose2(0.0, 0.0, 0.0), Pose2(1.0, 0.0, 0.0))
    assert not term.configured
    with pytest.raises(UnboundConfigError):
        term.compute_error(x)
    with pytest.raises(UnboundConfigError):
        term.linearize_oplus(x)

    term.set_config(TebConfig())
    assert term.configured
    term.compute_error(x)


def test_non_finite_pose_is_fatal():
    term = _term()
    x = jnp.array([0.0, 0.0, 0.0, jnp.nan, 0.0, 0.0])
    with pytest.raises(NonFiniteResidualError) as exc_info:
        term.compute_error(x)
    assert any(math.isnan(v) for v in exc_info.value.values)
    assert exc_info.value.term is term


def test_chi2_uses_information():
    term = _term(information=jnp.diag(jnp.array([1000.0, 4.0])))
    term.compute_error(_stack(Pose2(0.0, 0.0, 0.0), Pose2(-1.0, 0.0, 0.0)))
    assert term.chi2() == pytest.approx(4.0)


def test_analytic_jacobian_matches_central_difference():
    term = _term(jacobian_mode="analytic")
    for x in _random_pairs(20):
        J_i, J_j = term.linearize_oplus(x)
        assert J_i.shape == (2, 3)
        assert J_j.shape == (2, 3)
        J_fd = _central_difference(term, x)
        assert jnp.allclose(jnp.concatenate([J_i, J_j], axis=1), J_fd, atol=1e-5)


@pytest.mark.parametrize("mode", ["autodiff", "numeric"])
def test_jacobian_strategies_agree_with_analytic(mode):
    analytic = _term(jacobian_mode="analytic")
    other = _term(jacobian_mode=mode)
    for x in _random_pairs(10, seed=1):
        for a, b in zip(analytic.linearize_oplus(x), other.linearize_oplus(x)):
            assert jnp.allclose(a, b, atol=1e-5)


def test_unknown_jacobian_mode_rejected():
    with pytest.raises(ValueError):
        _term(jacobian_mode="symbolic")


def test_information_shape_checked():
    with pytest.raises(ValueError):
        _term(information=jnp.eye(3))


def test_write_reports_information_and_errors():
    term = _term(information=jnp.diag(jnp.array([1000.0, 1.0])))
    term.compute_error(_stack(Pose2(0.0, 0.0, 0.0), Pose2(-1.0, 0.0, 0.0)))

    out = io.StringIO()
    term.write(out)
    text = out.getvalue()

    assert text.startswith("1000.0 ")
    assert "Error NH-Constraint: 0.0" in text
    assert "Error PosDriveDir: 1.0" in text


def test_read_consumes_measurement_then_information():
    term = _term(information=jnp.diag(jnp.array([1000.0, 3.0])))
    term.read(io.StringIO("0.5 42.0\n"))

    assert term.measurement == pytest.approx(0.5)
    assert float(term.information[0, 0]) == pytest.approx(42.0)
    assert float(term.information[1, 1]) == pytest.approx(3.0)


def test_read_rejects_truncated_input():
    term = _term()
    with pytest.raises(ValueError):
        term.read(io.StringIO("0.5\n"))


def test_read_accepts_values_on_separate_lines():
    term = _term()
    term.read(io.StringIO("0.5\n42.0\n"))

    assert term.measurement == pytest.approx(0.5)
    assert float(term.information[0, 0]) == pytest.approx(42.0)


def test_read_leaves_trailing_tokens_in_stream():
    """Two terms can be read back to back from one stream."""
    stream = io.StringIO("0.5 42.0 7.0 8.0")
    first, second = _term(), _term()
    first.read(stream)

    assert stream.getvalue()[stream.tell():].strip() == "7.0 8.0"

    second.read(stream)
    assert second.measurement == pytest.approx(7.0)
    assert float(second.information[0, 0]) == pytest.approx(8.0)
    assert float(first.information[0, 0]) == pytest.approx(42.0)


def test_analytic_flag_without_hook_fails_at_class_definition():
    with pytest.raises(TypeError):

        class _Incomplete(CostTerm):
            type = "incomplete"
            dimension = 1
            has_analytic_jacobian = True

            def residual(self, x):
                return jnp.zeros(1)


def test_analytic_hook_accepted_when_implemented():
    class _Complete(CostTerm):
        type = "complete"
        dimension = 1
        has_analytic_jacobian = True

        def residual(self, x):
            return x[:1]

        def analytic_jacobian(self, x):
            return (jnp.array([[1.0, 0.0, 0.0]]),)

    term = _Complete([NodeId(0)], config=object(), jacobian_mode="analytic")
    (J,) = term.linearize_oplus(jnp.zeros(3))
    assert np.allclose(np.asarray(J), [[1.0, 0.0, 0.0]])
