# -*- coding: utf-8 -*-
"""
Vitrum: Differentiable glass physics for material calibration
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Module: vitrum_bounds.py — Box constraints for the material optimizers.

Every optimizer step is followed by a projection back into the physical
box of each parameter. The projection method is selectable:

    CLAMP    hard clip onto [min, max]
    SIGMOID  out-of-box values are squashed smoothly into the open box
    REFLECT  out-of-box values are mirrored at the violated bound
    BARRIER  a log-barrier penalty is added to the loss; the step is still
             clipped so the iterate stays feasible

Half-open intervals (e.g. ior ∈ [1, ∞)) are supported; SIGMOID falls back to
CLAMP for them because the squashing map needs a finite range.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Final, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from vitrum_params import physical_interval

__all__ = [
    "ProjectionMethod",
    "ParameterBound",
    "BoundsConfig",
    "BoundsEnforcer",
    "ACTIVE_BOUND_EPS",
]

# Distance from a bound within which it is considered active.
ACTIVE_BOUND_EPS: Final[float] = 1e-8

# Floor on the barrier distance so the penalty stays finite on the boundary.
_BARRIER_FLOOR: Final[float] = 1e-10


class ProjectionMethod(Enum):
    CLAMP = "clamp"
    SIGMOID = "sigmoid"
    REFLECT = "reflect"
    BARRIER = "barrier"


# ═══════════════════════════════════════════════════════════════════════════════
# 1. Scalar bound
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(slots=True, frozen=True)
class ParameterBound:
    """Closed interval [min, max] for one named parameter."""
    min:  float
    max:  float
    name: str = ""

    def __post_init__(self) -> None:
        if math.isnan(self.min) or math.isnan(self.max) or self.min > self.max:
            raise ValueError(
                f"ParameterBound '{self.name}': invalid interval [{self.min}, {self.max}]"
            )

    @classmethod
    def physical(cls, name: str) -> ParameterBound:
        """Bound taken from the physical-domain registry."""
        lo, hi = physical_interval(name)
        return cls(lo, hi, name)

    @property
    def is_finite(self) -> bool:
        return math.isfinite(self.min) and math.isfinite(self.max)

    @property
    def range(self) -> float:
        return self.max - self.min

    @property
    def center(self) -> float:
        return 0.5 * (self.min + self.max)

    def contains(self, value: float) -> bool:
        return self.min <= value <= self.max

    def clamp(self, value: float) -> float:
        return min(max(value, self.min), self.max)

    def sigmoid_project(self, value: float, sharpness: float = 10.0) -> float:
        """Logistic map of the real line onto the open box."""
        if not self.is_finite or self.range <= 0.0:
            return self.clamp(value)
        z = (value - self.center) * sharpness / self.range
        # Split on sign so exp() never overflows
        if z >= 0.0:
            s = 1.0 / (1.0 + math.exp(-z))
        else:
            ez = math.exp(z)
            s = ez / (1.0 + ez)
        return self.min + s * self.range

    def reflect(self, value: float) -> float:
        """Mirror ``value`` at the bounds until it lands inside."""
        if self.contains(value):
            return value
        if not self.is_finite:
            if value < self.min:
                return self.clamp(2.0 * self.min - value)
            return self.clamp(2.0 * self.max - value)
        width = self.range
        if width <= 0.0:
            return self.min
        offset = value - self.min
        periods = math.floor(offset / width)
        folded = offset - periods * width
        if periods % 2 != 0:
            folded = width - folded
        return self.min + min(max(folded, 0.0), width)

    def barrier_penalty(self, value: float, strength: float) -> float:
        """−μ·(ln(x − min) + ln(max − x)); infinite sides contribute nothing."""
        penalty = 0.0
        if math.isfinite(self.min):
            penalty -= strength * math.log(max(value - self.min, _BARRIER_FLOOR))
        if math.isfinite(self.max):
            penalty -= strength * math.log(max(self.max - value, _BARRIER_FLOOR))
        return penalty

    def barrier_gradient(self, value: float, strength: float) -> float:
        """Derivative of ``barrier_penalty`` with respect to ``value``."""
        grad = 0.0
        if math.isfinite(self.min):
            grad -= strength / max(value - self.min, _BARRIER_FLOOR)
        if math.isfinite(self.max):
            grad += strength / max(self.max - value, _BARRIER_FLOOR)
        return grad

    def violation(self, value: float) -> float:
        if value < self.min:
            return self.min - value
        if value > self.max:
            return value - self.max
        return 0.0


# ═══════════════════════════════════════════════════════════════════════════════
# 2. Enforcer
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(slots=True)
class BoundsConfig:
    method:            ProjectionMethod = ProjectionMethod.CLAMP
    barrier_strength:  float = 1e-3
    sigmoid_sharpness: float = 10.0
    enabled:           bool = True

    def __post_init__(self) -> None:
        if isinstance(self.method, str):
            self.method = ProjectionMethod(self.method.lower())
        if self.barrier_strength < 0.0:
            raise ValueError(f"barrier_strength must be >= 0, got {self.barrier_strength}")
        if self.sigmoid_sharpness <= 0.0:
            raise ValueError(f"sigmoid_sharpness must be > 0, got {self.sigmoid_sharpness}")

    @classmethod
    def sigmoid(cls, sharpness: float = 10.0) -> BoundsConfig:
        return cls(method=ProjectionMethod.SIGMOID, sigmoid_sharpness=sharpness)

    @classmethod
    def reflect(cls) -> BoundsConfig:
        return cls(method=ProjectionMethod.REFLECT)

    @classmethod
    def barrier(cls, strength: float = 1e-3) -> BoundsConfig:
        return cls(method=ProjectionMethod.BARRIER, barrier_strength=strength)


@dataclass(slots=True)
class BoundsEnforcer:
    """
    Keeps a parameter vector inside its box.

    ``bounds[i]`` constrains entry i of every vector passed in; entries
    beyond ``len(bounds)`` are left alone.

    Examples:
        enforcer = BoundsEnforcer.for_parameters(("ior", "roughness"))
        x = enforcer.project(np.array([0.7, 1.3]))     # -> [1.0, 1.0]
    """
    bounds: List[ParameterBound]
    config: BoundsConfig = field(default_factory=BoundsConfig)

    @classmethod
    def for_parameters(
        cls,
        names: Sequence[str],
        overrides: Optional[Mapping[str, Tuple[float, float]]] = None,
        config: Optional[BoundsConfig] = None,
    ) -> BoundsEnforcer:
        """
        Bounds for ``names`` from the physical-domain registry.

        Args:
            names: Parameter names, possibly dotted (``layer0.ior``).
            overrides: Optional {name: (min, max)} search windows, each
                intersected with the physical interval of the parameter.
            config: Projection settings; CLAMP by default.
        """
        overrides = overrides or {}
        bounds = []
        for name in names:
            if name in overrides:
                lo, hi = overrides[name]
                p_lo, p_hi = physical_interval(name)
                bounds.append(ParameterBound(max(float(lo), p_lo), min(float(hi), p_hi), name))
            else:
                bounds.append(ParameterBound.physical(name))
        return cls(bounds, config or BoundsConfig())

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(b.name for b in self.bounds)

    @property
    def method(self) -> ProjectionMethod:
        return self.config.method

    def __len__(self) -> int:
        return len(self.bounds)

    def _pairs(self, params: np.ndarray):
        n = min(len(self.bounds), params.shape[0])
        for i in range(n):
            yield i, self.bounds[i], float(params[i])

    def project(self, params: np.ndarray) -> np.ndarray:
        """Return a copy of ``params`` moved into the box."""
        out = np.array(params, dtype=np.float64, copy=True)
        if not self.config.enabled:
            return out
        method = self.config.method
        for i, bound, x in self._pairs(out):
            if method is ProjectionMethod.SIGMOID:
                if not bound.contains(x):
                    out[i] = bound.sigmoid_project(x, self.config.sigmoid_sharpness)
            elif method is ProjectionMethod.REFLECT:
                out[i] = bound.reflect(x)
            else:
                out[i] = bound.clamp(x)
        return out

    def project_gradient(self, params: np.ndarray, gradient: np.ndarray) -> np.ndarray:
        """
        Zero gradient components whose descent step would leave the box.

        A descent step moves along −g, so at an active lower bound g > 0
        points outward and at an active upper bound g < 0 does.
        """
        x = np.asarray(params, dtype=np.float64)
        g = np.array(gradient, dtype=np.float64, copy=True)
        if not self.config.enabled:
            return g
        for i, bound, xi in self._pairs(x):
            if xi <= bound.min + ACTIVE_BOUND_EPS and g[i] > 0.0:
                g[i] = 0.0
            elif xi >= bound.max - ACTIVE_BOUND_EPS and g[i] < 0.0:
                g[i] = 0.0
        return g

    def barrier_penalty(self, params: np.ndarray) -> float:
        if not self.config.enabled or self.config.method is not ProjectionMethod.BARRIER:
            return 0.0
        mu = self.config.barrier_strength
        x = np.asarray(params, dtype=np.float64)
        return sum(bound.barrier_penalty(xi, mu) for _, bound, xi in self._pairs(x))

    def barrier_gradient(self, params: np.ndarray) -> np.ndarray:
        x = np.asarray(params, dtype=np.float64)
        grad = np.zeros_like(x)
        if not self.config.enabled or self.config.method is not ProjectionMethod.BARRIER:
            return grad
        mu = self.config.barrier_strength
        for i, bound, xi in self._pairs(x):
            grad[i] = bound.barrier_gradient(xi, mu)
        return grad

    def is_valid(self, params: np.ndarray) -> bool:
        x = np.asarray(params, dtype=np.float64)
        return all(bound.contains(xi) for _, bound, xi in self._pairs(x))

    def violations(self, params: np.ndarray) -> np.ndarray:
        x = np.asarray(params, dtype=np.float64)
        out = np.zeros_like(x)
        for i, bound, xi in self._pairs(x):
            out[i] = bound.violation(xi)
        return out

    def max_violation(self, params: np.ndarray) -> float:
        v = self.violations(params)
        return float(v.max()) if v.size else 0.0

    def as_dict(self) -> Dict[str, Tuple[float, float]]:
        return {b.name: (b.min, b.max) for b in self.bounds}
