# Copyright (c) 2025.
# This file is part of TEB-JIT, released under the MIT License.
"""
Manifold metadata for pose variables.

Maps each variable of a :class:`~teb_jit.core.factor_graph.FactorGraph` to
the update rule the solver must use for its block of the state vector:

    - "se2":       additive translation, heading wrapped into (-pi, pi]
    - "euclidean": plain addition
    - "fixed":     never updated (start / goal poses)
"""

from __future__ import annotations

from typing import Dict, Optional, Tuple

from ..core.factor_graph import FactorGraph, StateIndex
from ..core.types import NodeId

TYPE_TO_MANIFOLD: Dict[str, str] = {
    "pose_se2": "se2",
}


def get_manifold_for_var_type(var_type: str) -> str:
    return TYPE_TO_MANIFOLD.get(var_type, "euclidean")


def build_manifold_metadata(
    fg: FactorGraph,
    index: Optional[StateIndex] = None,
) -> Tuple[Dict[NodeId, slice], Dict[NodeId, str]]:
    """
    Build metadata for manifold-aware solvers:

      - block_slices: NodeId -> slice in the flat state vector
      - manifold_types: NodeId -> 'se2', 'euclidean' or 'fixed'
    """
    if index is None:
        _, index = fg.pack_state()

    block_slices: Dict[NodeId, slice] = {}
    manifold_types: Dict[NodeId, str] = {}

    for nid, var in fg.variables.items():
        start, length = index[nid]
        block_slices[nid] = slice(start, start + length)
        manifold_types[nid] = "fixed" if var.fixed else get_manifold_for_var_type(var.type)

    return block_slices, manifold_types
