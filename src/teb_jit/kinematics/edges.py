# Copyright (c) 2025.
# This file is part of TEB-JIT, released under the MIT License.
"""
Kinematic-feasibility cost terms for wheeled mobile robots.

Both terms are binary: they connect two consecutive trajectory poses
``s_i = [x1, y1, theta1]`` and ``s_ip1 = [x2, y2, theta2]`` (stacked into
``x`` in that order) and produce a 2D residual.

Families
--------
1. Nonholonomic constraint (shared)
    A geometric interpretation of the no-lateral-slip constraint: both poses
    must lie on a common arc whose tangents are the two headings.

        e_nh = | (cos th1 + cos th2) * dy - (sin th1 + sin th2) * dx |

2. Differential drive: positive drive direction
    The displacement projected onto the starting heading must not be
    negative.

        e_fwd = penalty_bound_from_below(d . (cos th1, sin th1), 0, 0)

    The margin is 0; anything larger would push the first poses of a band
    away from the start.

3. Car-like: minimum turning radius
    The segment's implied radius ``|d| / |normalize(th2 - th1)|`` is bounded
    from below by ``config.robot.min_turning_radius``. A zero heading change
    is a straight segment with zero cost. No margin is applied; callers that
    need slack inflate the radius itself.

Weights
-------
The information matrix is diagonal. Choose a very large value for the
nonholonomic component (~1000); ~1 on the backward-drive component allows
backward driving but penalizes it slightly.

Assembly
--------
``add_kinematics_edges`` connects a chain of pose ids with the right term
type and information derived from a :class:`~teb_jit.config.TebConfig`.
"""

from __future__ import annotations

import logging
from typing import List, Literal, Optional, Sequence, Tuple

from ..config import TebConfig
from ..core.factor_graph import FactorGraph
from ..core.jax_init import jnp
from ..core.math2d import heading_vector, normalize_theta, sign
from ..core.types import CostTerm, FactorId, JacobianMode, NodeId
from .penalties import penalty_bound_from_below, penalty_bound_from_below_derivative

_logger = logging.getLogger(__name__)

RobotType = Literal["diff_drive", "carlike"]


def _split(x: jnp.ndarray) -> Tuple[jnp.ndarray, jnp.ndarray, jnp.ndarray, jnp.ndarray]:
    """[x1, y1, th1, x2, y2, th2] -> (p1, th1, p2, th2)"""
    return x[0:2], x[2], x[3:5], x[5]


def _safe_norm(v: jnp.ndarray) -> jnp.ndarray:
    # Finite derivative at v == 0 (coincident poses turning on the spot).
    sq = jnp.sum(v * v)
    safe_sq = jnp.where(sq > 0.0, sq, 1.0)
    return jnp.where(sq > 0.0, jnp.sqrt(safe_sq), 0.0)


def nonholonomic_signed(x: jnp.ndarray) -> jnp.ndarray:
    p1, th1, p2, th2 = _split(x)
    d = p2 - p1
    return (jnp.cos(th1) + jnp.cos(th2)) * d[1] - (jnp.sin(th1) + jnp.sin(th2)) * d[0]


def nonholonomic_error(x: jnp.ndarray) -> jnp.ndarray:
    return jnp.abs(nonholonomic_signed(x))


def forward_drive_error(x: jnp.ndarray) -> jnp.ndarray:
    p1, th1, p2, _ = _split(x)
    return penalty_bound_from_below(jnp.dot(p2 - p1, heading_vector(th1)), 0.0, 0.0)


def turning_radius_error(x: jnp.ndarray, min_turning_radius: float) -> jnp.ndarray:
    p1, th1, p2, th2 = _split(x)
    omega = normalize_theta(th2 - th1)
    straight = omega == 0.0
    # Keep the untaken branch finite so jacfwd does not see 0/0.
    safe_omega = jnp.where(straight, 1.0, jnp.abs(omega))
    radius = _safe_norm(p2 - p1) / safe_omega
    return jnp.where(
        straight, 0.0, penalty_bound_from_below(radius, min_turning_radius, 0.0)
    )


class DiffDriveKinematicsTerm(CostTerm):
    """
    Nonholonomic kinematics of a differential-drive robot.

    error[0]: nonholonomic constraint cost
    error[1]: backward-drive cost

    The only term here with an analytic Jacobian (``jacobian_mode="analytic"``).
    """

    type = "kinematics_diff_drive"
    dimension = 2
    has_analytic_jacobian = True
    error_labels = ("Error NH-Constraint", "Error PosDriveDir")

    def __init__(
        self,
        pose1: NodeId,
        pose2: NodeId,
        information=None,
        config: Optional[TebConfig] = None,
        jacobian_mode: JacobianMode = "autodiff",
    ) -> None:
        super().__init__((pose1, pose2), information, config, jacobian_mode)

    def residual(self, x: jnp.ndarray) -> jnp.ndarray:
        return jnp.stack([nonholonomic_error(x), forward_drive_error(x)])

    def analytic_jacobian(self, x: jnp.ndarray) -> Tuple[jnp.ndarray, jnp.ndarray]:
        p1, th1, p2, th2 = _split(x)
        dx, dy = p2 - p1

        cos1, sin1 = jnp.cos(th1), jnp.sin(th1)
        cos2, sin2 = jnp.cos(th2), jnp.sin(th2)
        aux1 = sin1 + sin2
        aux2 = cos1 + cos2

        proj_x = dx * cos1
        proj_y = dy * sin1
        fwd_dev = penalty_bound_from_below_derivative(proj_x + proj_y, 0.0, 0.0)
        nh_sign = sign(nonholonomic_signed(x))

        J_i = jnp.array([
            [aux1 * nh_sign, -aux2 * nh_sign, -(proj_y + proj_x) * nh_sign],
            [-cos1 * fwd_dev, -sin1 * fwd_dev, (-sin1 * dx + cos1 * dy) * fwd_dev],
        ])
        J_j = jnp.array([
            [-aux1 * nh_sign, aux2 * nh_sign, (-sin2 * dy - cos2 * dx) * nh_sign],
            [cos1 * fwd_dev, sin1 * fwd_dev, 0.0],
        ])
        return J_i, J_j


class CarlikeKinematicsTerm(CostTerm):
    """
    Nonholonomic kinematics of a car-like robot with a minimum turning radius.

    error[0]: nonholonomic constraint cost (same as the differential drive)
    error[1]: minimum turning radius cost

    Relies on autodiff or numeric differentiation.
    """

    type = "kinematics_carlike"
    dimension = 2
    error_labels = ("Error NH-Constraint", "Error TurningRadius")

    def __init__(
        self,
        pose1: NodeId,
        pose2: NodeId,
        information=None,
        config: Optional[TebConfig] = None,
        jacobian_mode: JacobianMode = "autodiff",
    ) -> None:
        super().__init__((pose1, pose2), information, config, jacobian_mode)

    def residual(self, x: jnp.ndarray) -> jnp.ndarray:
        return jnp.stack([
            nonholonomic_error(x),
            turning_radius_error(x, self.config.robot.min_turning_radius),
        ])

    def compute_error(self, x: jnp.ndarray) -> jnp.ndarray:
        err = super().compute_error(x)
        if _logger.isEnabledFor(logging.DEBUG):
            x = jnp.asarray(x)
            _logger.debug(
                "carlike term %s: omega_t=%f error=(%f, %f)",
                self.id, float(normalize_theta(x[5] - x[2])), float(err[0]), float(err[1]),
            )
        return err


def add_kinematics_edges(
    graph: FactorGraph,
    pose_ids: Sequence[NodeId],
    config: TebConfig,
    robot_type: Optional[RobotType] = None,
    jacobian_mode: JacobianMode = "autodiff",
) -> List[FactorId]:
    """
    Connect each pair of consecutive poses in ``pose_ids`` with a kinematics term.

    If ``robot_type`` is omitted, car-like terms are used when the config has a
    non-zero, non-zero-weighted minimum turning radius, differential-drive
    terms otherwise. Nothing is added when every weight of the selected term
    is zero.

    Returns the ids of the added terms in trajectory order.
    """
    if robot_type is None:
        robot_type = "carlike" if config.use_carlike_kinematics else "diff_drive"

    optim = config.optim
    if robot_type == "diff_drive":
        if optim.weight_kinematics_nh == 0 and optim.weight_kinematics_forward_drive == 0:
            return []
        term_cls, information = DiffDriveKinematicsTerm, config.information_diff_drive()
    elif robot_type == "carlike":
        if optim.weight_kinematics_nh == 0 and optim.weight_kinematics_turning_radius == 0:
            return []
        term_cls, information = CarlikeKinematicsTerm, config.information_carlike()
    else:
        raise ValueError(f"Unknown robot_type '{robot_type}'")

    factor_ids = []
    for i in range(len(pose_ids) - 1):
        term = term_cls(
            pose_ids[i],
            pose_ids[i + 1],
            information=information,
            config=config,
            jacobian_mode=jacobian_mode,
        )
        factor_ids.append(graph.add_factor(term))

    _logger.debug("added %d %s kinematics terms", len(factor_ids), robot_type)
    return factor_ids
