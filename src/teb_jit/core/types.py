# Copyright (c) 2025.
# This file is part of TEB-JIT, released under the MIT License.
"""
Core typed data structures for TEB-JIT.

Classes
-------
Pose2
    Immutable planar pose ``(x, y, theta)`` with theta wrapped into (-pi, pi].

Variable
    A node of the factor graph: id, type tag, current value (a length-3 JAX
    array for ``"pose_se2"``) and a ``fixed`` flag for poses the solver must
    not move (trajectory start and goal).

CostTerm
    Capability interface implemented by every cost term (edge). A term knows
    how to evaluate its residual from the stacked values of the poses it
    connects, how to linearize it and how to serialize itself. It does *not*
    own or reference pose objects: it stores only their ``NodeId`` handles,
    and the graph container keeps the pose -> incident-term relation tables.

Notes
-----
``CostTerm.residual`` is pure and traceable; it is what JAX differentiates.
``CostTerm.compute_error`` is the checked, eager entry point: it enforces the
bound-configuration precondition and the finite-residual postcondition, and
keeps the last value for diagnostics.
"""

from __future__ import annotations

import abc
from dataclasses import dataclass
from typing import Any, Literal, NewType, Optional, Sequence, TextIO, Tuple

from .errors import NonFiniteResidualError, UnboundConfigError
from .jax_init import jax, jnp
from .math2d import normalize_theta

NodeId = NewType("NodeId", int)
FactorId = NewType("FactorId", int)

POSE_DIM = 3

JacobianMode = Literal["analytic", "autodiff", "numeric"]
JACOBIAN_MODES: Tuple[str, ...] = ("analytic", "autodiff", "numeric")

# Central-difference step for the "numeric" strategy (x64 is enabled).
NUMERIC_DELTA = 1e-6


@dataclass(frozen=True)
class Pose2:
    """Planar trajectory knot: position (x, y) and heading theta."""
    x: float
    y: float
    theta: float

    def __post_init__(self) -> None:
        object.__setattr__(self, "x", float(self.x))
        object.__setattr__(self, "y", float(self.y))
        object.__setattr__(self, "theta", float(normalize_theta(self.theta)))

    @property
    def position(self) -> jnp.ndarray:
        return jnp.array([self.x, self.y])

    def as_array(self) -> jnp.ndarray:
        return jnp.array([self.x, self.y, self.theta])

    @classmethod
    def from_array(cls, v: Any) -> "Pose2":
        v = jnp.asarray(v)
        return cls(float(v[0]), float(v[1]), float(v[2]))


@dataclass
class Variable:
    """Generic optimization variable node in the factor graph."""
    id: NodeId
    type: str          # e.g. "pose_se2"
    value: Any         # JAX array [x, y, theta]
    fixed: bool = False


class CostTerm(abc.ABC):
    """
    Least-squares cost term over one or more pose variables.

    Subclasses set ``type``, ``dimension`` and ``error_labels`` and implement
    :meth:`residual`. Terms that provide closed-form derivatives set
    ``has_analytic_jacobian`` and implement :meth:`analytic_jacobian`.

    The Jacobian strategy is chosen once at construction:

    - ``"analytic"``: closed form from :meth:`analytic_jacobian`
    - ``"autodiff"``: ``jax.jacfwd`` of :meth:`residual`
    - ``"numeric"``: central differences of :meth:`residual`
    """

    type: str = "cost_term"
    dimension: int = 0
    has_analytic_jacobian: bool = False
    error_labels: Tuple[str, ...] = ()

    def __init__(
        self,
        var_ids: Sequence[NodeId],
        information: Optional[Any] = None,
        config: Optional[Any] = None,
        jacobian_mode: JacobianMode = "autodiff",
    ) -> None:
        if jacobian_mode not in JACOBIAN_MODES:
            raise ValueError(
                f"Unknown jacobian_mode '{jacobian_mode}', expected one of {JACOBIAN_MODES}"
            )
        if jacobian_mode == "analytic" and not self.has_analytic_jacobian:
            raise ValueError(f"{type(self).__name__} does not provide an analytic Jacobian")

        self.id: Optional[FactorId] = None
        self.var_ids: Tuple[NodeId, ...] = tuple(var_ids)
        self.jacobian_mode = jacobian_mode
        self.config = config
        self.measurement = 0.0
        self.information = self._check_information(information)
        self.error = jnp.zeros(self.dimension)

    def _check_information(self, information: Optional[Any]) -> jnp.ndarray:
        if information is None:
            return jnp.eye(self.dimension)
        info = jnp.asarray(information, dtype=jnp.float64)
        if info.shape != (self.dimension, self.dimension):
            raise ValueError(
                f"{type(self).__name__} expects a {self.dimension}x{self.dimension} "
                f"information matrix, got shape {info.shape}"
            )
        return info

    # --- configuration ---

    def set_config(self, config: Any) -> None:
        """Bind the (read-only) configuration this term reads its parameters from."""
        self.config = config

    @property
    def configured(self) -> bool:
        return self.config is not None

    def _require_config(self) -> None:
        if self.config is None:
            raise UnboundConfigError(self)

    # --- evaluation ---

    @abc.abstractmethod
    def residual(self, x: jnp.ndarray) -> jnp.ndarray:
        """Pure residual of the stacked pose values ``x``; shape ``(dimension,)``."""

    def compute_error(self, x: jnp.ndarray) -> jnp.ndarray:
        self._require_config()
        err = self.residual(jnp.asarray(x))
        if not bool(jnp.all(jnp.isfinite(err))):
            raise NonFiniteResidualError(self, err)
        self.error = err
        return err

    def analytic_jacobian(self, x: jnp.ndarray) -> Tuple[jnp.ndarray, ...]:
        """
        Closed-form Jacobian blocks, same layout as :meth:`linearize_oplus`.

        Required hook for subclasses that set ``has_analytic_jacobian``; this
        is enforced when the subclass is defined.
        """
        raise NotImplementedError(f"{type(self).__name__} has no analytic Jacobian")

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        if cls.has_analytic_jacobian and cls.analytic_jacobian is CostTerm.analytic_jacobian:
            raise TypeError(
                f"{cls.__name__} sets has_analytic_jacobian but does not implement analytic_jacobian"
            )

    def linearize_oplus(self, x: jnp.ndarray) -> Tuple[jnp.ndarray, ...]:
        """
        Jacobian blocks of the residual, one ``(dimension, 3)`` block per pose
        in ``var_ids`` order.
        """
        self._require_config()
        x = jnp.asarray(x)

        if self.jacobian_mode == "analytic":
            return self.analytic_jacobian(x)

        if self.jacobian_mode == "autodiff":
            J = jax.jacfwd(self.residual)(x)
        else:
            J = self._central_difference(x)

        return tuple(
            J[:, k * POSE_DIM:(k + 1) * POSE_DIM] for k in range(len(self.var_ids))
        )

    def _central_difference(self, x: jnp.ndarray) -> jnp.ndarray:
        steps = NUMERIC_DELTA * jnp.eye(x.shape[0])
        columns = [
            (self.residual(x + h) - self.residual(x - h)) / (2.0 * NUMERIC_DELTA)
            for h in steps
        ]
        return jnp.stack(columns, axis=1)

    def chi2(self) -> float:
        """Weighted cost e^T * Omega * e of the last computed error."""
        e = self.error
        return float(e @ self.information @ e)

    # --- stream hooks ---

    def read(self, stream: TextIO) -> None:
        """
        Read ``measurement`` and ``information[0, 0]`` (in that order) as two
        whitespace-separated reals, across line breaks if needed. Anything
        after the second value is left in ``stream``.
        """
        tokens = [_read_token(stream), _read_token(stream)]
        if not all(tokens):
            raise ValueError(
                f"{type(self).__name__}.read expects two values, got {[t for t in tokens if t]!r}"
            )
        self.measurement = float(tokens[0])
        self.information = self.information.at[0, 0].set(float(tokens[1]))

    def write(self, stream: TextIO) -> None:
        parts = ", ".join(
            f"{label}: {float(v)}" for label, v in zip(self.error_labels, self.error)
        )
        stream.write(f"{float(self.information[0, 0])} {parts}")

    # --- lifecycle ---

    def teardown(self) -> None:
        """Called by the graph after it erased this term from its relation tables."""
        self.id = None
        self.var_ids = ()


def _read_token(stream: TextIO) -> str:
    """Next whitespace-delimited token of ``stream``; '' at end of stream."""
    ch = stream.read(1)
    while ch and ch.isspace():
        ch = stream.read(1)
    chars = []
    while ch and not ch.isspace():
        chars.append(ch)
        ch = stream.read(1)
    return "".join(chars)
