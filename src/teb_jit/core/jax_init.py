# Copyright (c) 2025.
# This file is part of TEB-JIT, released under the MIT License.
"""
Common JAX initialization.

Importing JAX through this module guarantees 64-bit precision is enabled
before any array is created. The kinematics terms compare analytic, autodiff
and finite-difference Jacobians, which is meaningless in float32.

Usage:
    from teb_jit.core.jax_init import jax, jnp
"""

from __future__ import annotations

import jax
import jax.numpy as jnp

jax.config.update("jax_enable_x64", True)

__all__ = ["jax", "jnp"]
