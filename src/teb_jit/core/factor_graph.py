# Copyright (c) 2025.
# This file is part of TEB-JIT, released under the MIT License.
"""
Factor graph container for TEB-JIT.

The FactorGraph stores:
    - Variables (trajectory poses, optionally fixed)
    - Cost terms (edges between poses)
    - The relation table pose -> incident terms

Terms never own poses and never reference pose objects; they carry only
``NodeId`` handles. Removing a term goes through :meth:`FactorGraph.remove_factor`,
which erases it from the incident set of every pose it touches and then calls
the term's ``teardown`` hook. Poses survive term removal and
:meth:`clear_factors`: their lifetime belongs to whoever builds the
trajectory.

Primary Methods
---------------
pack_state()
    Concatenates all variable values into a single flat JAX array.

unpack_state(x)
    Splits a flat state vector back into per-variable blocks.

compute_errors(x)
    Checked evaluation of every term (raises on unbound config / non-finite).

build_residual_function()
    Returns a JIT-compiled ``r(x)``: all residuals stacked and whitened by
    sqrt(information). Pure; configuration is checked while building.

build_checked_residual_function()
    ``r(x)`` plus an eager non-finite check that names the failing term.

build_jacobian_function()
    Returns a JIT-compiled ``J(x)``: the dense ``(m, n)`` Jacobian of ``r`` assembled from
    each term's ``linearize_oplus`` blocks.

build_objective()
    Returns ``f(x) = sum_k e_k^T Omega_k e_k``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, FrozenSet, Optional, Set, Tuple

from .jax_init import jax, jnp
from .types import CostTerm, FactorId, NodeId, Pose2, Variable

_logger = logging.getLogger(__name__)

StateIndex = Dict[NodeId, Tuple[int, int]]


@dataclass
class FactorGraph:
    """
    Pose graph with explicit pose -> incident-term relation tables.

    - variables: NodeId -> Variable
    - factors: FactorId -> CostTerm
    - incident: NodeId -> set of FactorIds touching that pose
    """
    variables: Dict[NodeId, Variable] = field(default_factory=dict)
    factors: Dict[FactorId, CostTerm] = field(default_factory=dict)
    incident: Dict[NodeId, Set[FactorId]] = field(default_factory=dict)
    _next_factor_id: int = 0

    # --- Variables ---

    def add_variable(self, var: Variable) -> None:
        if var.id in self.variables:
            raise ValueError(f"Variable {var.id} already exists")
        var.value = jnp.asarray(var.value, dtype=jnp.float64)
        self.variables[var.id] = var
        self.incident[var.id] = set()

    def add_pose(self, pose: Pose2, fixed: bool = False) -> NodeId:
        """Append a pose variable and return its NodeId."""
        nid = NodeId(len(self.variables))
        while nid in self.variables:
            nid = NodeId(nid + 1)
        self.add_variable(Variable(id=nid, type="pose_se2", value=pose.as_array(), fixed=fixed))
        return nid

    def pose(self, nid: NodeId) -> Pose2:
        return Pose2.from_array(self.variables[nid].value)

    def set_pose(self, nid: NodeId, pose: Pose2) -> None:
        self.variables[nid].value = pose.as_array()

    # --- Factors ---

    def add_factor(self, term: CostTerm) -> FactorId:
        """Register ``term``, assign its id and record it at every pose it touches."""
        for nid in term.var_ids:
            if nid not in self.variables:
                raise KeyError(f"{type(term).__name__} references unknown variable {nid}")
        if term.id is not None:
            raise ValueError(f"Term already belongs to a graph (id={term.id})")

        fid = FactorId(self._next_factor_id)
        self._next_factor_id += 1
        term.id = fid
        self.factors[fid] = term
        for nid in term.var_ids:
            self.incident[nid].add(fid)
        return fid

    def remove_factor(self, fid: FactorId) -> CostTerm:
        """
        Detach a term: erase it from each referenced pose's incident set,
        then run its teardown hook. The poses themselves are left untouched.
        """
        term = self.factors.pop(fid)
        for nid in term.var_ids:
            self.incident[nid].discard(fid)
        term.teardown()
        _logger.debug("removed %s term %s", term.type, fid)
        return term

    def clear_factors(self) -> None:
        for fid in list(self.factors):
            self.remove_factor(fid)

    def incident_factors(self, nid: NodeId) -> FrozenSet[FactorId]:
        return frozenset(self.incident[nid])

    # --- State packing/unpacking ---

    def _build_state_index(self) -> StateIndex:
        """
        Returns a mapping: NodeId -> (start_index, dim)
        """
        index: StateIndex = {}
        offset = 0
        for node_id, var in sorted(self.variables.items(), key=lambda x: x[0]):
            dim = var.value.shape[0]
            index[node_id] = (offset, dim)
            offset += dim
        return index

    def pack_state(self) -> Tuple[jnp.ndarray, StateIndex]:
        index = self._build_state_index()
        chunks = [self.variables[nid].value for nid in sorted(self.variables.keys())]
        if not chunks:
            return jnp.zeros((0,)), index
        return jnp.concatenate(chunks), index

    def unpack_state(self, x: jnp.ndarray, index: StateIndex) -> Dict[NodeId, jnp.ndarray]:
        result: Dict[NodeId, jnp.ndarray] = {}
        for node_id, (start, dim) in index.items():
            result[node_id] = x[start:start+dim]
        return result

    def update_from_state(self, x: jnp.ndarray, index: StateIndex) -> None:
        """Write an optimized state vector back into the variables."""
        for nid, value in self.unpack_state(x, index).items():
            self.variables[nid].value = value

    def _stacked(self, term: CostTerm, var_values: Dict[NodeId, jnp.ndarray]) -> jnp.ndarray:
        return jnp.concatenate([var_values[nid] for nid in term.var_ids])

    def _resolve(self, x: Optional[jnp.ndarray]) -> Tuple[jnp.ndarray, StateIndex]:
        x_packed, index = self.pack_state()
        return (x_packed if x is None else jnp.asarray(x)), index

    # --- Evaluation ---

    def compute_errors(self, x: Optional[jnp.ndarray] = None) -> Dict[FactorId, jnp.ndarray]:
        """
        Evaluate every term at ``x`` (default: the current variable values).
        Raises if a term is unconfigured or produces a non-finite residual.
        """
        x, index = self._resolve(x)
        var_values = self.unpack_state(x, index)
        return {
            fid: term.compute_error(self._stacked(term, var_values))
            for fid, term in self.factors.items()
        }

    def _require_configured(self, factors: Tuple[CostTerm, ...]) -> None:
        # Traced functions cannot raise on an unbound term, so check while building.
        for term in factors:
            term._require_config()

    def build_residual_function(self) -> Callable[[jnp.ndarray], jnp.ndarray]:
        """
        Returns a JIT-compiled r(x): every term's residual scaled by
        sqrt(diag(information)), stacked in factor order, so that ||r(x)||^2
        is the total cost.

        The function is pure (it calls ``term.residual``), so it does not
        check for non-finite values; use :meth:`build_checked_residual_function`
        when a NaN must fail fast.
        """
        _, index = self.pack_state()
        factors = tuple(self.factors.values())
        self._require_configured(factors)

        def residual(x: jnp.ndarray) -> jnp.ndarray:
            var_values = self.unpack_state(x, index)
            res_list = []
            for term in factors:
                e = term.residual(self._stacked(term, var_values))
                res_list.append(jnp.sqrt(jnp.diag(term.information)) * e)

            if not res_list:
                return jnp.zeros((0,), dtype=x.dtype)
            return jnp.concatenate(res_list)

        return jax.jit(residual)

    def build_checked_residual_function(self) -> Callable[[jnp.ndarray], jnp.ndarray]:
        """
        Jitted r(x) plus an eager finiteness check on the concrete result.
        On failure every term is re-evaluated through ``compute_error`` so the
        raised NonFiniteResidualError names the offending term.
        """
        residual = self.build_residual_function()

        def checked(x: jnp.ndarray) -> jnp.ndarray:
            r = residual(x)
            if not bool(jnp.all(jnp.isfinite(r))):
                self.compute_errors(x)
            return r

        return checked

    def build_jacobian_function(self) -> Callable[[jnp.ndarray], jnp.ndarray]:
        """
        Returns a JIT-compiled J(x) = dr/dx with shape (m, n), filled
        block-wise from each term's linearize_oplus using the term's own
        Jacobian strategy.
        """
        _, index = self.pack_state()
        factors = tuple(self.factors.values())
        self._require_configured(factors)
        n = sum(dim for _, dim in index.values())
        m = sum(term.dimension for term in factors)

        def jacobian(x: jnp.ndarray) -> jnp.ndarray:
            var_values = self.unpack_state(x, index)
            J = jnp.zeros((m, n), dtype=x.dtype)
            row = 0
            for term in factors:
                blocks = term.linearize_oplus(self._stacked(term, var_values))
                sqrt_info = jnp.sqrt(jnp.diag(term.information))
                for nid, block in zip(term.var_ids, blocks):
                    start, dim = index[nid]
                    J = J.at[row:row + term.dimension, start:start + dim].set(
                        sqrt_info[:, None] * block
                    )
                row += term.dimension
            return J

        return jax.jit(jacobian)

    def build_objective(self) -> Callable[[jnp.ndarray], jnp.ndarray]:
        """
        Returns f(x) -> scalar loss = ||r(x)||^2 = sum of e^T Omega e
        (information assumed diagonal).
        """
        residual = self.build_residual_function()

        def objective(x: jnp.ndarray) -> jnp.ndarray:
            r = residual(x)
            return jnp.sum(r ** 2)

        return jax.jit(objective)

    def total_cost(self, x: Optional[jnp.ndarray] = None) -> float:
        self.compute_errors(x)
        return sum(term.chi2() for term in self.factors.values())
