# Copyright (c) 2025.
# This file is part of TEB-JIT, released under the MIT License.
"""
Planar (SE(2)) helpers for TEB-JIT.

A pose is stored as a flat vector ``[x, y, theta]``. All functions here are
written in JAX so they can be used inside residuals, under ``jax.jit`` and
under ``jax.jacfwd``.

Key Functions
-------------
normalize_theta(theta)
    Wraps an angle into (-pi, pi].

sign(v)
    -1, 0 or +1; zero maps to zero.

heading_vector(theta)
    Unit vector ``(cos theta, sin theta)``.

se2_retract(pose, delta)
    Additive update of a pose followed by heading normalization.
"""

from __future__ import annotations

import math

from .jax_init import jnp

TWO_PI = 2.0 * math.pi


def normalize_theta(theta):
    """Wrap an angle (scalar or array) into the half-open interval (-pi, pi]."""
    theta = jnp.asarray(theta)
    wrapped = jnp.mod(theta + math.pi, TWO_PI) - math.pi
    # jnp.mod lands exact odd multiples of pi on -pi; move them to +pi.
    wrapped = jnp.where(wrapped <= -math.pi, wrapped + TWO_PI, wrapped)
    in_range = (theta > -math.pi) & (theta <= math.pi)
    return jnp.where(in_range, theta, wrapped)


def sign(v):
    return jnp.sign(v)


def heading_vector(theta) -> jnp.ndarray:
    return jnp.stack([jnp.cos(theta), jnp.sin(theta)])


def split_pose(v: jnp.ndarray) -> tuple[jnp.ndarray, jnp.ndarray]:
    """
    Split a 3D pose vector into position and heading.
    v: [x, y, theta]
    """
    v = jnp.asarray(v)
    return v[0:2], v[2]


def se2_retract(pose: jnp.ndarray, delta: jnp.ndarray) -> jnp.ndarray:
    """
    Apply a tangent-space update to a planar pose.

    Translation is updated additively in the world frame (the trajectory
    vertices are world-frame knots, not body-frame transforms) and the heading
    is wrapped back into (-pi, pi].
    """
    out = jnp.asarray(pose) + jnp.asarray(delta)
    return out.at[2].set(normalize_theta(out[2]))
