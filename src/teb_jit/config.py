# Copyright (c) 2025.
# This file is part of TEB-JIT, released under the MIT License.
"""
Read-only configuration for the kinematics cost terms.

The configuration is grouped the way a trajectory planner usually groups it:

RobotConfig
    Kinematic parameters of the vehicle. ``min_turning_radius`` is the only
    one the terms read; 0 describes a robot that can turn on the spot
    (differential drive).

OptimConfig
    Weights that become the diagonal information of each term:
    - weight_kinematics_nh: nonholonomic component (choose large, ~1000)
    - weight_kinematics_forward_drive: backward-motion component of the
      differential-drive term (~1 allows backward driving, but penalizes it)
    - weight_kinematics_turning_radius: turning-radius component of the
      car-like term

TebConfig
    Bundles both. Instances are frozen: terms hold a shared reference and
    never mutate it.

Loading these values from files is left to the caller.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields

from .core.jax_init import jnp


def _check_non_negative(obj) -> None:
    for f in fields(obj):
        value = getattr(obj, f.name)
        if value < 0.0:
            raise ValueError(f"{type(obj).__name__}.{f.name} must be >= 0, got {value}")


@dataclass(frozen=True)
class RobotConfig:
    min_turning_radius: float = 0.0

    def __post_init__(self) -> None:
        _check_non_negative(self)


@dataclass(frozen=True)
class OptimConfig:
    weight_kinematics_nh: float = 1000.0
    weight_kinematics_forward_drive: float = 1.0
    weight_kinematics_turning_radius: float = 1.0

    def __post_init__(self) -> None:
        _check_non_negative(self)


@dataclass(frozen=True)
class TebConfig:
    robot: RobotConfig = field(default_factory=RobotConfig)
    optim: OptimConfig = field(default_factory=OptimConfig)

    @property
    def use_carlike_kinematics(self) -> bool:
        """Car-like terms only make sense with a turning radius that is actually weighted."""
        return (
            self.robot.min_turning_radius != 0.0
            and self.optim.weight_kinematics_turning_radius != 0.0
        )

    def information_diff_drive(self) -> jnp.ndarray:
        return jnp.diag(jnp.array([
            self.optim.weight_kinematics_nh,
            self.optim.weight_kinematics_forward_drive,
        ]))

    def information_carlike(self) -> jnp.ndarray:
        return jnp.diag(jnp.array([
            self.optim.weight_kinematics_nh,
            self.optim.weight_kinematics_turning_radius,
        ]))
