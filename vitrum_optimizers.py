# -*- coding: utf-8 -*-
"""
Vitrum: Differentiable glass physics for material calibration
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Module: vitrum_optimizers.py — First- and quasi-second-order optimizers.

Both optimizers work on plain float64 vectors. ``step(params, gradient)``
returns the next iterate; the caller is responsible for projecting it back
into the feasible box (see ``vitrum_bounds``). Optimizer state lives on the
instance and is scoped to one solve; ``reset()`` clears it.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Final, List, Mapping, Optional, Protocol, Tuple

import numpy as np

__all__ = [
    "Optimizer",
    "OptimizerState",
    "AdamConfig",
    "AdamOptimizer",
    "LBFGSConfig",
    "LBFGSOptimizer",
    "CURVATURE_THRESHOLD",
]

logger = logging.getLogger(__name__)

# Curvature pairs with |yᵀs| at or below this are discarded.
CURVATURE_THRESHOLD: Final[float] = 1e-10


class Optimizer(Protocol):
    """Interface shared by the optimizers driven by the inverse solver."""
    learning_rate: float

    def step(self, params: np.ndarray, gradient: np.ndarray) -> np.ndarray: ...
    def reset(self) -> None: ...

    @property
    def iteration(self) -> int: ...


@dataclass(slots=True)
class OptimizerState:
    """Per-solve bookkeeping, appended to once per iteration."""
    iteration:             int = 0
    loss_history:          List[float] = field(default_factory=list)
    gradient_norm_history: List[float] = field(default_factory=list)

    def record(self, loss: float, gradient_norm: float) -> None:
        self.iteration += 1
        self.loss_history.append(float(loss))
        self.gradient_norm_history.append(float(gradient_norm))


def _from_mapping(cls: Any, mapping: Mapping[str, Any]) -> Any:
    unknown = set(mapping) - set(cls.__dataclass_fields__)
    if unknown:
        raise ValueError(f"{cls.__name__}: unknown fields {sorted(unknown)}")
    return cls(**mapping)


# ═══════════════════════════════════════════════════════════════════════════════
# 1. Adam
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(slots=True)
class AdamConfig:
    """
    Adam hyper-parameters.

    ``max_grad_norm`` clips the raw gradient to that Euclidean norm before
    the moment updates; ``None`` disables clipping. ``weight_decay`` adds an
    L2 term ``wd·θ`` to the clipped gradient.
    """
    learning_rate: float = 1e-3
    beta1:         float = 0.9
    beta2:         float = 0.999
    epsilon:       float = 1e-8
    weight_decay:  float = 0.0
    max_grad_norm: Optional[float] = 1.0

    def __post_init__(self) -> None:
        if self.learning_rate <= 0.0:
            raise ValueError(f"learning_rate must be > 0, got {self.learning_rate}")
        for name in ("beta1", "beta2"):
            b = getattr(self, name)
            if not 0.0 <= b < 1.0:
                raise ValueError(f"{name} must lie in [0, 1), got {b}")
        if self.epsilon <= 0.0:
            raise ValueError(f"epsilon must be > 0, got {self.epsilon}")
        if self.weight_decay < 0.0:
            raise ValueError(f"weight_decay must be >= 0, got {self.weight_decay}")
        if self.max_grad_norm is not None and self.max_grad_norm <= 0.0:
            raise ValueError(f"max_grad_norm must be > 0 or None, got {self.max_grad_norm}")

    @classmethod
    def from_dict(cls, mapping: Mapping[str, Any]) -> AdamConfig:
        return _from_mapping(cls, mapping)


class AdamOptimizer:
    """
    Adam with bias-corrected moments.

        m ← β₁m + (1−β₁)g,   v ← β₂v + (1−β₂)g²
        θ ← θ − lr·m̂ / (√v̂ + ε),   m̂ = m/(1−β₁ᵗ),  v̂ = v/(1−β₂ᵗ)

    The moment vectors are (re)allocated to the gradient length on the
    first step and whenever that length changes.
    """

    def __init__(self, config: Optional[AdamConfig] = None, n_params: int = 0):
        self.config = config or AdamConfig()
        self.m = np.zeros(n_params)
        self.v = np.zeros(n_params)
        self.t = 0

    @property
    def learning_rate(self) -> float:
        return self.config.learning_rate

    @learning_rate.setter
    def learning_rate(self, lr: float) -> None:
        if lr <= 0.0:
            raise ValueError(f"learning_rate must be > 0, got {lr}")
        self.config.learning_rate = lr

    @property
    def iteration(self) -> int:
        return self.t

    def _clip(self, gradient: np.ndarray) -> np.ndarray:
        max_norm = self.config.max_grad_norm
        if max_norm is None:
            return gradient
        norm = float(np.linalg.norm(gradient))
        if norm > max_norm:
            return gradient * (max_norm / norm)
        return gradient

    def compute_update(self, gradient: np.ndarray,
                       params: Optional[np.ndarray] = None) -> np.ndarray:
        """Advance the moments and return the parameter increment."""
        g = self._clip(np.asarray(gradient, dtype=np.float64))
        if self.config.weight_decay > 0.0 and params is not None:
            g = g + self.config.weight_decay * np.asarray(params, dtype=np.float64)

        if self.m.shape != g.shape:
            self.m = np.zeros_like(g)
            self.v = np.zeros_like(g)

        cfg = self.config
        self.t += 1
        self.m = cfg.beta1 * self.m + (1.0 - cfg.beta1) * g
        self.v = cfg.beta2 * self.v + (1.0 - cfg.beta2) * g * g
        m_hat = self.m / (1.0 - cfg.beta1 ** self.t)
        v_hat = self.v / (1.0 - cfg.beta2 ** self.t)
        return -cfg.learning_rate * m_hat / (np.sqrt(v_hat) + cfg.epsilon)

    def step(self, params: np.ndarray, gradient: np.ndarray) -> np.ndarray:
        x = np.asarray(params, dtype=np.float64)
        return x + self.compute_update(gradient, x)

    def reset(self) -> None:
        self.m = np.zeros_like(self.m)
        self.v = np.zeros_like(self.v)
        self.t = 0


# ═══════════════════════════════════════════════════════════════════════════════
# 2. L-BFGS
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(slots=True)
class LBFGSConfig:
    """
    L-BFGS settings.

    Attributes:
        history: Number of (s, y) pairs kept; oldest evicted first.
        learning_rate: Initial step length along the search direction.
        c1: Armijo sufficient-decrease constant used by the solver's
            backtracking line search.
        max_line_search_iter: Maximum number of step halvings.
        min_step: Step length below which the line search gives up.
        max_step: Cap on the Euclidean length of one step.
    """
    history:              int = 10
    learning_rate:        float = 1.0
    c1:                   float = 1e-4
    max_line_search_iter: int = 20
    min_step:             float = 1e-10
    max_step:             float = 10.0

    def __post_init__(self) -> None:
        if self.history < 1:
            raise ValueError(f"history must be >= 1, got {self.history}")
        if self.learning_rate <= 0.0:
            raise ValueError(f"learning_rate must be > 0, got {self.learning_rate}")
        if not 0.0 < self.c1 < 1.0:
            raise ValueError(f"c1 must lie in (0, 1), got {self.c1}")
        if self.max_line_search_iter < 0:
            raise ValueError(
                f"max_line_search_iter must be >= 0, got {self.max_line_search_iter}"
            )
        if self.max_step <= 0.0:
            raise ValueError(f"max_step must be > 0, got {self.max_step}")

    @classmethod
    def from_dict(cls, mapping: Mapping[str, Any]) -> LBFGSConfig:
        return _from_mapping(cls, mapping)


class LBFGSOptimizer:
    """
    Limited-memory BFGS with the two-loop recursion.

    ``update(params, gradient)`` records a curvature pair against the
    previous call; ``direction(gradient)`` applies the implicit inverse
    Hessian. With no stored pairs the direction is steepest descent.
    """

    def __init__(self, config: Optional[LBFGSConfig] = None):
        self.config = config or LBFGSConfig()
        self.pairs: Deque[Tuple[np.ndarray, np.ndarray, float]] = deque(
            maxlen=self.config.history
        )
        self.prev_params: Optional[np.ndarray] = None
        self.prev_gradient: Optional[np.ndarray] = None
        self.t = 0

    @property
    def learning_rate(self) -> float:
        return self.config.learning_rate

    @learning_rate.setter
    def learning_rate(self, lr: float) -> None:
        if lr <= 0.0:
            raise ValueError(f"learning_rate must be > 0, got {lr}")
        self.config.learning_rate = lr

    @property
    def iteration(self) -> int:
        return self.t

    @property
    def history_size(self) -> int:
        return len(self.pairs)

    def update(self, params: np.ndarray, gradient: np.ndarray) -> bool:
        """
        Store (s, y) from the previous point to this one.

        Returns:
            True if a pair was accepted.
        """
        x = np.array(params, dtype=np.float64, copy=True)
        g = np.array(gradient, dtype=np.float64, copy=True)
        accepted = False
        if self.prev_params is not None and self.prev_gradient is not None:
            s = x - self.prev_params
            y = g - self.prev_gradient
            ys = float(y @ s)
            if abs(ys) > CURVATURE_THRESHOLD:
                self.pairs.append((s, y, 1.0 / ys))
                accepted = True
            else:
                logger.debug("L-BFGS: rejected curvature pair with |yᵀs| = %.3e", abs(ys))
        self.prev_params = x
        self.prev_gradient = g
        return accepted

    def direction(self, gradient: np.ndarray) -> np.ndarray:
        """Quasi-Newton search direction −H·g."""
        q = np.array(gradient, dtype=np.float64, copy=True)
        if not self.pairs:
            return -q

        alphas: List[float] = []
        for s, y, rho in reversed(self.pairs):
            a = rho * float(s @ q)
            alphas.append(a)
            q -= a * y

        s_last, y_last, _ = self.pairs[-1]
        yy = float(y_last @ y_last)
        gamma = float(s_last @ y_last) / yy if yy > CURVATURE_THRESHOLD else 1.0
        r = gamma * q

        for (s, y, rho), a in zip(self.pairs, reversed(alphas)):
            b = rho * float(y @ r)
            r += (a - b) * s
        return -r

    def scaled_step(self, direction: np.ndarray) -> np.ndarray:
        """Learning-rate step along ``direction``, capped at ``max_step``."""
        step = self.config.learning_rate * direction
        norm = float(np.linalg.norm(step))
        if norm > self.config.max_step:
            step *= self.config.max_step / norm
        return step

    def step(self, params: np.ndarray, gradient: np.ndarray) -> np.ndarray:
        x = np.asarray(params, dtype=np.float64)
        self.update(x, gradient)
        self.t += 1
        return x + self.scaled_step(self.direction(gradient))

    def reset(self) -> None:
        self.pairs.clear()
        self.prev_params = None
        self.prev_gradient = None
        self.t = 0
