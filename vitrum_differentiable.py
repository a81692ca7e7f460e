# -*- coding: utf-8 -*-
"""
Vitrum: Differentiable glass physics for material calibration
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Module: vitrum_differentiable.py — Parameter gradients, Jacobians and checks.

A differentiable evaluation produces a ``ParameterGradients``: a 3 × P
block holding ∂R/∂θ, ∂T/∂θ and ∂A/∂θ for each of the P material
parameters θ of the evaluated model. ``Jacobian`` stacks such blocks for
many contexts. ``verify_gradients`` compares the analytical blocks with
central finite differences and is meant for tests and diagnostics only.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import (
    Any, Dict, Final, NamedTuple, Optional, Protocol, Sequence, Tuple,
    runtime_checkable,
)

import numpy as np

from vitrum_bsdf import BSDFResponse
from vitrum_geometry import BSDFContext
from vitrum_params import physical_interval

__all__ = [
    "ResponseGradient",
    "ParameterGradients",
    "DifferentiableBSDF",
    "Jacobian",
    "GradientCheck",
    "verify_gradients",
    "FD_EPSILON",
    "FD_TOLERANCE",
]

FD_EPSILON: Final[float] = 1e-5
FD_TOLERANCE: Final[float] = 1e-4

_ROW_R: Final[int] = 0
_ROW_T: Final[int] = 1
_ROW_A: Final[int] = 2


class ResponseGradient(NamedTuple):
    """Partial derivatives of (R, T, A) with respect to one parameter."""
    d_reflectance:   float
    d_transmittance: float
    d_absorption:    float


# ---------------------------------------------------------------------------
# 1. ParameterGradients
# ---------------------------------------------------------------------------
@dataclass(slots=True, frozen=True)
class ParameterGradients:
    """
    Analytical derivatives of one response.

    Attributes:
        names: Parameter names, one per column.
        matrix: (3, P) array; rows are ∂R, ∂T, ∂A.
    """
    names:  Tuple[str, ...]
    matrix: np.ndarray

    def __post_init__(self) -> None:
        m = np.array(self.matrix, dtype=np.float64, copy=True)
        if m.shape != (3, len(self.names)):
            raise ValueError(
                f"ParameterGradients: expected shape (3, {len(self.names)}), "
                f"got {m.shape}"
            )
        m.setflags(write=False)
        object.__setattr__(self, "names", tuple(self.names))
        object.__setattr__(self, "matrix", m)

    @classmethod
    def zeros(cls, names: Sequence[str]) -> ParameterGradients:
        return cls(tuple(names), np.zeros((3, len(names))))

    @classmethod
    def from_columns(cls, columns: Dict[str, Tuple[float, float, float]]) -> ParameterGradients:
        names = tuple(columns.keys())
        m = np.empty((3, len(names)), dtype=np.float64)
        for j, name in enumerate(names):
            m[:, j] = columns[name]
        return cls(names, m)

    @classmethod
    def concatenate(cls, parts: Sequence[ParameterGradients]) -> ParameterGradients:
        if not parts:
            return cls.zeros(())
        names: Tuple[str, ...] = ()
        for p in parts:
            names += p.names
        return cls(names, np.concatenate([p.matrix for p in parts], axis=1))

    # -- Access -------------------------------------------------------------

    def __getitem__(self, name: str) -> ResponseGradient:
        j = self._index(name)
        col = self.matrix[:, j]
        return ResponseGradient(float(col[0]), float(col[1]), float(col[2]))

    def __contains__(self, name: object) -> bool:
        return name in self.names

    def __len__(self) -> int:
        return len(self.names)

    def _index(self, name: str) -> int:
        try:
            return self.names.index(name)
        except ValueError:
            raise KeyError(f"No gradient for parameter '{name}'") from None

    @property
    def reflectance(self) -> np.ndarray:
        return self.matrix[_ROW_R]

    @property
    def transmittance(self) -> np.ndarray:
        return self.matrix[_ROW_T]

    @property
    def absorption(self) -> np.ndarray:
        return self.matrix[_ROW_A]

    def as_dict(self) -> Dict[str, ResponseGradient]:
        return {name: self[name] for name in self.names}

    def to_vector(self, component: str = "reflectance") -> np.ndarray:
        rows = {"reflectance": _ROW_R, "transmittance": _ROW_T, "absorption": _ROW_A}
        try:
            return self.matrix[rows[component]].copy()
        except KeyError:
            raise ValueError(f"Unknown response component '{component}'") from None

    # -- Algebra ------------------------------------------------------------

    def select(self, names: Sequence[str]) -> ParameterGradients:
        """Reorder/subset columns; every requested name must exist."""
        idx = [self._index(n) for n in names]
        return ParameterGradients(tuple(names), self.matrix[:, idx])

    def prefixed(self, prefix: str) -> ParameterGradients:
        return ParameterGradients(tuple(f"{prefix}{n}" for n in self.names), self.matrix)

    def add(self, other: ParameterGradients) -> ParameterGradients:
        if other.names != self.names:
            raise ValueError(f"Cannot add gradients over {self.names} and {other.names}")
        return ParameterGradients(self.names, self.matrix + other.matrix)

    def scale(self, factor: float) -> ParameterGradients:
        return ParameterGradients(self.names, self.matrix * factor)

    def norm(self) -> float:
        return float(np.linalg.norm(self.matrix))

    def clip(self, max_norm: float) -> ParameterGradients:
        n = self.norm()
        if n > max_norm > 0.0:
            return self.scale(max_norm / n)
        return self

    def energy_residual(self) -> np.ndarray:
        """∂(R + T + A)/∂θ per parameter; zero for an energy-conserving model."""
        return self.matrix.sum(axis=0)


@runtime_checkable
class DifferentiableBSDF(Protocol):
    """Capability implemented by every model in ``bsdf_models``."""
    def evaluate(self, context: BSDFContext) -> BSDFResponse: ...
    def eval_with_gradients(self, context: BSDFContext) -> Tuple[BSDFResponse, ParameterGradients]: ...
    def parameter_names(self) -> Tuple[str, ...]: ...
    def get_params(self) -> Dict[str, float]: ...
    def with_params(self, updates: Dict[str, float]) -> Any: ...


# ---------------------------------------------------------------------------
# 2. Jacobian
# ---------------------------------------------------------------------------
@dataclass(slots=True, frozen=True)
class Jacobian:
    """
    Stacked derivatives for N evaluations.

    Rows are ordered R₀, T₀, A₀, R₁, T₁, A₁, …; columns follow ``names``.
    """
    names:  Tuple[str, ...]
    matrix: np.ndarray

    @classmethod
    def from_gradients(cls, gradients: Sequence[ParameterGradients],
                       names: Optional[Sequence[str]] = None) -> Jacobian:
        if not gradients:
            raise ValueError("Jacobian requires at least one gradient block")
        cols = tuple(names) if names is not None else gradients[0].names
        blocks = [g.select(cols).matrix for g in gradients]
        return cls(cols, np.vstack(blocks))

    @classmethod
    def build(cls, bsdf: DifferentiableBSDF, contexts: Sequence[BSDFContext],
              names: Optional[Sequence[str]] = None) -> Jacobian:
        grads = [bsdf.eval_with_gradients(ctx)[1] for ctx in contexts]
        return cls.from_gradients(grads, names)

    @property
    def shape(self) -> Tuple[int, int]:
        return self.matrix.shape

    @property
    def n_observations(self) -> int:
        return self.matrix.shape[0] // 3

    def component_rows(self, component: int) -> np.ndarray:
        return self.matrix[component::3]

    def reflectance_rows(self) -> np.ndarray:
        return self.component_rows(_ROW_R)

    def jtj(self) -> np.ndarray:
        """Gauss-Newton approximation JᵀJ."""
        return self.matrix.T @ self.matrix

    def jt_residual(self, residual: np.ndarray) -> np.ndarray:
        r = np.asarray(residual, dtype=np.float64)
        if r.shape != (self.matrix.shape[0],):
            raise ValueError(
                f"residual must have shape ({self.matrix.shape[0]},), got {r.shape}"
            )
        return self.matrix.T @ r

    def frobenius_norm(self) -> float:
        return float(np.linalg.norm(self.matrix, "fro"))

    def condition_number(self) -> float:
        s = np.linalg.svd(self.matrix, compute_uv=False)
        if s.size == 0 or s[-1] <= 0.0:
            return float("inf")
        return float(s[0] / s[-1])

    def is_well_conditioned(self, threshold: float = 1e8) -> bool:
        return self.condition_number() < threshold

    def enforce_energy_conservation(self) -> Jacobian:
        """Replace every ∂A row by −(∂R + ∂T)."""
        m = self.matrix.copy()
        m[_ROW_A::3] = -(m[_ROW_R::3] + m[_ROW_T::3])
        return Jacobian(self.names, m)


# ---------------------------------------------------------------------------
# 3. Finite-difference verification
# ---------------------------------------------------------------------------
@dataclass(slots=True, frozen=True)
class GradientCheck:
    """Outcome of an analytical-versus-numerical gradient comparison."""
    names:      Tuple[str, ...]
    analytical: np.ndarray
    numerical:  np.ndarray
    tolerance:  float

    @property
    def errors(self) -> Dict[str, float]:
        diff = np.abs(self.analytical - self.numerical)
        return {name: float(diff[:, j].max()) for j, name in enumerate(self.names)}

    @property
    def max_error(self) -> float:
        if not self.names:
            return 0.0
        return float(np.abs(self.analytical - self.numerical).max())

    @property
    def passed(self) -> bool:
        return self.max_error < self.tolerance


def verify_gradients(bsdf: DifferentiableBSDF, context: BSDFContext,
                     names: Optional[Sequence[str]] = None,
                     epsilon: float = FD_EPSILON,
                     tolerance: float = FD_TOLERANCE) -> GradientCheck:
    """
    Compare analytical gradients against central finite differences.

    A one-sided difference is used where the central stencil would leave
    the parameter's physical interval. Parameters currently at an infinite
    value (e.g. a non-dispersive Abbe number) are skipped unless named.
    """
    params = bsdf.get_params()
    if names is not None:
        cols = tuple(names)
    else:
        cols = tuple(n for n in bsdf.parameter_names() if math.isfinite(params[n]))
    _, grads = bsdf.eval_with_gradients(context)
    analytical = grads.select(cols).matrix
    numerical = np.empty_like(analytical)

    for j, name in enumerate(cols):
        p = params[name]
        lo, hi = physical_interval(name)
        up = p + epsilon if p + epsilon <= hi else p
        down = p - epsilon if p - epsilon >= lo else p
        r_up = bsdf.with_params({name: up}).evaluate(context).as_array()
        r_down = bsdf.with_params({name: down}).evaluate(context).as_array()
        numerical[:, j] = (r_up - r_down) / (up - down)

    return GradientCheck(cols, analytical, numerical, tolerance)
