# Copyright (c) 2025.
# This file is part of TEB-JIT, released under the MIT License.
"""
TEB-JIT: JAX kinematic-feasibility cost terms for graph-based trajectory
optimization of wheeled mobile robots.
"""

from .config import OptimConfig, RobotConfig, TebConfig
from .core.errors import KinematicsError, NonFiniteResidualError, UnboundConfigError
from .core.factor_graph import FactorGraph
from .core.types import CostTerm, FactorId, NodeId, Pose2, Variable
from .kinematics.edges import (
    CarlikeKinematicsTerm,
    DiffDriveKinematicsTerm,
    add_kinematics_edges,
)
from .kinematics.penalties import (
    penalty_bound_from_below,
    penalty_bound_from_below_derivative,
)

__all__ = [
    "CarlikeKinematicsTerm",
    "CostTerm",
    "DiffDriveKinematicsTerm",
    "FactorGraph",
    "FactorId",
    "KinematicsError",
    "NodeId",
    "NonFiniteResidualError",
    "OptimConfig",
    "Pose2",
    "RobotConfig",
    "TebConfig",
    "UnboundConfigError",
    "Variable",
    "add_kinematics_edges",
    "penalty_bound_from_below",
    "penalty_bound_from_below_derivative",
]
