# Copyright (c) 2025.
# This file is part of TEB-JIT, released under the MIT License.

import math
import time

from teb_jit.config import RobotConfig, TebConfig
from teb_jit.core.factor_graph import FactorGraph
from teb_jit.core.types import Pose2
from teb_jit.kinematics.edges import add_kinematics_edges
from teb_jit.kinematics.manifold import build_manifold_metadata
from teb_jit.optimization.solvers import GNConfig, gauss_newton_manifold


def build_band(num_poses: int = 20, min_turning_radius: float = 0.0, jacobian_mode: str = "autodiff"):
    """
    Quarter-circle band with noisy intermediate poses:
        start (fixed) --kin--> pose1 --kin--> ... --kin--> goal (fixed)
    """
    fg = FactorGraph()
    cfg = TebConfig(robot=RobotConfig(min_turning_radius=min_turning_radius))
    radius = 3.0
    pose_ids = []

    for i in range(num_poses):
        phi = 0.5 * math.pi * i / (num_poses - 1)
        x = radius * math.sin(phi)
        y = radius * (1.0 - math.cos(phi))
        # perturb interior poses away from the arc
        if 0 < i < num_poses - 1:
            x += 0.05 * math.sin(1.3 * i)
            y += 0.05 * math.cos(0.7 * i)
        fixed = i in (0, num_poses - 1)
        pose_ids.append(fg.add_pose(Pose2(x, y, phi), fixed=fixed))

    add_kinematics_edges(fg, pose_ids, cfg, jacobian_mode=jacobian_mode)
    return fg, pose_ids


def run_benchmark(num_poses: int = 20, max_iters: int = 10, jacobian_mode: str = "autodiff"):
    print("=== Kinematics band Gauss-Newton benchmark ===")
    print(f"num_poses = {num_poses}, max_iters = {max_iters}, jacobian_mode = {jacobian_mode}")

    fg, pose_ids = build_band(num_poses, jacobian_mode=jacobian_mode)
    x0, index = fg.pack_state()
    block_slices, manifold_types = build_manifold_metadata(fg, index)
    cfg = GNConfig(max_iters=max_iters, damping=1e-3, max_step_norm=0.5)

    print(f"Initial cost: {fg.total_cost():.6e}")

    t0 = time.time()
    x_opt = gauss_newton_manifold(
        fg.build_checked_residual_function(),
        fg.build_jacobian_function(),
        x0,
        block_slices,
        manifold_types,
        cfg,
    )
    x_opt.block_until_ready()
    t1 = time.time()

    print(f"Elapsed time: {(t1 - t0) * 1000:.3f} ms")
    print(f"Final cost:   {fg.total_cost(x_opt):.6e}")


if __name__ == "__main__":
    for mode in ("analytic", "autodiff", "numeric"):
        run_benchmark(num_poses=20, max_iters=10, jacobian_mode=mode)
