from __future__ import annotations

import dataclasses

import jax.numpy as jnp
import pytest

from teb_jit.config import OptimConfig, RobotConfig, TebConfig


def test_defaults_describe_a_diff_drive_robot():
    cfg = TebConfig()
    assert cfg.robot.min_turning_radius == 0.0
    assert not cfg.use_carlike_kinematics


def test_carlike_requires_radius_and_weight():
    assert TebConfig(robot=RobotConfig(min_turning_radius=1.0)).use_carlike_kinematics
    cfg = TebConfig(
        robot=RobotConfig(min_turning_radius=1.0),
        optim=OptimConfig(weight_kinematics_turning_radius=0.0),
    )
    assert not cfg.use_carlike_kinematics


def test_information_from_weights():
    cfg = TebConfig(
        optim=OptimConfig(
            weight_kinematics_nh=500.0,
            weight_kinematics_forward_drive=2.0,
            weight_kinematics_turning_radius=3.0,
        )
    )
    assert jnp.allclose(cfg.information_diff_drive(), jnp.diag(jnp.array([500.0, 2.0])))
    assert jnp.allclose(cfg.information_carlike(), jnp.diag(jnp.array([500.0, 3.0])))


def test_negative_values_rejected():
    with pytest.raises(ValueError):
        RobotConfig(min_turning_radius=-0.1)
    with pytest.raises(ValueError):
        OptimConfig(weight_kinematics_nh=-1.0)


def test_config_is_read_only():
    cfg = TebConfig()
    with pytest.raises(dataclasses.FrozenInstanceError):
        cfg.robot.min_turning_radius = 2.0
