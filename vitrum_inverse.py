# -*- coding: utf-8 -*-
"""
Vitrum: Differentiable glass physics for material calibration
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Module: vitrum_inverse.py — Recover material parameters from observations.

Given reference observations (context, measured reflectance, optional
measured transmittance, weight) and a differentiable BSDF model, the
solver minimises the weighted mean loss

    L(θ) = Σᵢ wᵢ·[ℓ(Rᵢ(θ), R̂ᵢ) + ℓ(Tᵢ(θ), T̂ᵢ)] / Σᵢ wᵢ   (+ regularisation)

with Adam or L-BFGS, projecting every iterate into the physical box.

Termination:
    CONVERGED               loss < loss_tolerance, parameter stall, or
                            patience exhausted
    GRADIENT_VANISHED       projected-gradient norm < gradient_tolerance
                            (or no descent step could be found)
    MAX_ITERATIONS_REACHED  iteration cap; best iterate is returned
    DIVERGED                NaN/∞ in loss or gradient; last finite iterate
                            is returned
"""

from __future__ import annotations

import logging
import math
import warnings
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import (
    Any, Callable, Final, Iterable, Iterator, List, Mapping, Optional, Sequence,
    Tuple, Union,
)

import numpy as np

from bsdf_models.base import BSDF
from vitrum_bounds import BoundsConfig, BoundsEnforcer, ProjectionMethod
from vitrum_errors import EmptyReferenceError, InvalidWeightError, LengthMismatchError
from vitrum_geometry import BSDFContext, DEFAULT_WAVELENGTH
from vitrum_optimizers import (
    AdamConfig,
    AdamOptimizer,
    LBFGSConfig,
    LBFGSOptimizer,
    OptimizerState,
)
from vitrum_params import MaterialParams
from vitrum_perceptual import perceptual_loss_grad

__all__ = [
    "ConvergenceReason",
    "SolverState",
    "LossKind",
    "loss_and_gradient",
    "ReferenceObservation",
    "ReferenceData",
    "InverseSolverConfig",
    "InverseResult",
    "InverseMaterialSolver",
    "recover_ior_from_normal_reflectance",
    "recover_roughness_from_glossiness",
]

logger = logging.getLogger(__name__)

_LOG2: Final[float] = math.log(2.0)


class ConvergenceReason(Enum):
    CONVERGED = "converged"
    MAX_ITERATIONS_REACHED = "max_iterations_reached"
    GRADIENT_VANISHED = "gradient_vanished"
    DIVERGED = "diverged"


class SolverState(Enum):
    INITIALIZED = "initialized"
    RUNNING = "running"
    TERMINATED = "terminated"


# ═══════════════════════════════════════════════════════════════════════════════
# 1. Loss functions
# ═══════════════════════════════════════════════════════════════════════════════

class LossKind(Enum):
    MSE = "mse"
    MAE = "mae"
    HUBER = "huber"
    LOG_COSH = "log_cosh"
    PERCEPTUAL = "perceptual"


def loss_and_gradient(kind: LossKind, predicted: float, measured: float,
                      huber_delta: float = 0.01) -> Tuple[float, float]:
    """
    Per-observation loss ℓ and ∂ℓ/∂predicted.

    MSE is r² (so the weighted mean is the mean squared error), MAE is |r|,
    Huber switches from ½r² to δ(|r| − ½δ) at |r| = δ, log-cosh is
    ln cosh r, and PERCEPTUAL is ½·ΔE00² between the CIE L* of the two
    reflectances.
    """
    r = predicted - measured
    if kind is LossKind.MSE:
        return r * r, 2.0 * r
    if kind is LossKind.MAE:
        return abs(r), (math.copysign(1.0, r) if r != 0.0 else 0.0)
    if kind is LossKind.HUBER:
        if abs(r) <= huber_delta:
            return 0.5 * r * r, r
        return huber_delta * (abs(r) - 0.5 * huber_delta), math.copysign(huber_delta, r)
    if kind is LossKind.LOG_COSH:
        a = abs(r)
        # ln cosh r = |r| + ln(1 + e^{−2|r|}) − ln 2, stable for large |r|
        return a + math.log1p(math.exp(-2.0 * a)) - _LOG2, math.tanh(r)
    if kind is LossKind.PERCEPTUAL:
        loss, grad = perceptual_loss_grad(predicted, measured)
        return float(loss), float(grad)
    raise ValueError(f"Unknown loss kind {kind!r}")


# ═══════════════════════════════════════════════════════════════════════════════
# 2. Reference data
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(slots=True, frozen=True)
class ReferenceObservation:
    """One measurement. NaN measurements are accepted and make a solve diverge."""
    context:       BSDFContext
    reflectance:   float
    transmittance: Optional[float] = None
    weight:        float = 1.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "reflectance", float(self.reflectance))
        if self.transmittance is not None:
            object.__setattr__(self, "transmittance", float(self.transmittance))
        object.__setattr__(self, "weight", float(self.weight))


def _as_array(label: str, values: Iterable[float]) -> np.ndarray:
    arr = np.asarray(values, dtype=np.float64)
    if arr.ndim != 1:
        raise ValueError(f"{label} must be one-dimensional, got shape {arr.shape}")
    return arr


class ReferenceData:
    """
    Ordered observations; read-only once handed to a solver.

    Examples:
        ref = ReferenceData.from_reflectance([0, 30, 60], [0.040, 0.041, 0.089])
        ref = ReferenceData.synthesize(DielectricBSDF(ior=1.52), contexts)
    """

    def __init__(self, observations: Iterable[ReferenceObservation] = ()):
        self._observations: List[ReferenceObservation] = []
        for obs in observations:
            self.add(obs)

    def add(self, observation: ReferenceObservation) -> None:
        """
        Append an observation.

        Raises:
            InvalidWeightError: If the weight is negative or not finite.
        """
        index = len(self._observations)
        w = observation.weight
        if not math.isfinite(w) or w < 0.0:
            raise InvalidWeightError(index, w)
        if w == 0.0:
            warnings.warn(
                f"Observation {index} has zero weight and will not influence the fit",
                stacklevel=2,
            )
        self._observations.append(observation)

    # -- Constructors -------------------------------------------------------

    @classmethod
    def from_reflectance(
        cls,
        angles_deg: Sequence[float],
        reflectance: Sequence[float],
        wavelength: float = DEFAULT_WAVELENGTH,
        weights: Optional[Sequence[float]] = None,
    ) -> ReferenceData:
        """Reflectance measured at several incidence angles (degrees)."""
        angles = _as_array("angles_deg", angles_deg)
        refl = _as_array("reflectance", reflectance)
        w = np.ones_like(refl) if weights is None else _as_array("weights", weights)
        if not (angles.size == refl.size == w.size):
            raise LengthMismatchError(
                {"angles_deg": angles.size, "reflectance": refl.size, "weights": w.size},
                "ReferenceData.from_reflectance:",
            )
        return cls(
            ReferenceObservation(BSDFContext.from_angle(a, 0.0, wavelength), r, None, wi)
            for a, r, wi in zip(angles, refl, w)
        )

    @classmethod
    def from_spectrum(
        cls,
        wavelengths: Sequence[float],
        reflectance: Sequence[float],
        angle_deg: float = 0.0,
        weights: Optional[Sequence[float]] = None,
    ) -> ReferenceData:
        """Reflectance spectrum measured at a single incidence angle."""
        wls = _as_array("wavelengths", wavelengths)
        refl = _as_array("reflectance", reflectance)
        w = np.ones_like(refl) if weights is None else _as_array("weights", weights)
        if not (wls.size == refl.size == w.size):
            raise LengthMismatchError(
                {"wavelengths": wls.size, "reflectance": refl.size, "weights": w.size},
                "ReferenceData.from_spectrum:",
            )
        return cls(
            ReferenceObservation(BSDFContext.from_angle(angle_deg, 0.0, wl), r, None, wi)
            for wl, r, wi in zip(wls, refl, w)
        )

    @classmethod
    def synthesize(cls, bsdf: BSDF, contexts: Iterable[BSDFContext],
                   include_transmittance: bool = False) -> ReferenceData:
        """Ground-truth observations generated from a known model."""
        observations = []
        for ctx in contexts:
            resp = bsdf.evaluate(ctx)
            t = resp.transmittance if include_transmittance else None
            observations.append(ReferenceObservation(ctx, resp.reflectance, t))
        return cls(observations)

    # -- Access -------------------------------------------------------------

    @property
    def observations(self) -> Tuple[ReferenceObservation, ...]:
        return tuple(self._observations)

    @property
    def total_weight(self) -> float:
        return float(sum(o.weight for o in self._observations))

    def contexts(self) -> List[BSDFContext]:
        return [o.context for o in self._observations]

    def measured_reflectance(self) -> np.ndarray:
        return np.array([o.reflectance for o in self._observations], dtype=np.float64)

    def __len__(self) -> int:
        return len(self._observations)

    def __iter__(self) -> Iterator[ReferenceObservation]:
        return iter(self._observations)

    def __getitem__(self, index: int) -> ReferenceObservation:
        return self._observations[index]


# ═══════════════════════════════════════════════════════════════════════════════
# 3. Configuration and result
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(slots=True)
class InverseSolverConfig:
    """
    Solver settings.

    ``patience`` stops after that many iterations without a new best loss
    (None disables it). ``regularization`` adds λ·‖θ − θ₀‖² pulling toward
    the initial guess. With ``projected_gradient`` the gradient components
    pointing out of an active bound are dropped before the step and before
    the vanishing-gradient test.
    """
    max_iterations:     int = 200
    loss_tolerance:     float = 1e-6
    gradient_tolerance: float = 1e-6
    param_tolerance:    float = 1e-12
    patience:           Optional[int] = None
    optimizer:          str = "adam"
    adam:               AdamConfig = field(default_factory=lambda: AdamConfig(learning_rate=0.01))
    lbfgs:              LBFGSConfig = field(default_factory=LBFGSConfig)
    loss:               LossKind = LossKind.MSE
    huber_delta:        float = 0.01
    regularization:     float = 0.0
    projection:         ProjectionMethod = ProjectionMethod.CLAMP
    projected_gradient: bool = True

    def __post_init__(self) -> None:
        if isinstance(self.loss, str):
            self.loss = LossKind(self.loss.lower())
        if isinstance(self.projection, str):
            self.projection = ProjectionMethod(self.projection.lower())
        self.optimizer = self.optimizer.lower()
        if self.optimizer not in ("adam", "lbfgs"):
            raise ValueError(f"optimizer must be 'adam' or 'lbfgs', got {self.optimizer!r}")
        if self.max_iterations < 1:
            raise ValueError(f"max_iterations must be >= 1, got {self.max_iterations}")
        for name in ("loss_tolerance", "gradient_tolerance", "param_tolerance",
                     "regularization"):
            if getattr(self, name) < 0.0:
                raise ValueError(f"{name} must be >= 0, got {getattr(self, name)}")
        if self.huber_delta <= 0.0:
            raise ValueError(f"huber_delta must be > 0, got {self.huber_delta}")
        if self.patience is not None and self.patience < 1:
            raise ValueError(f"patience must be >= 1 or None, got {self.patience}")

    @classmethod
    def from_dict(cls, mapping: Mapping[str, Any]) -> InverseSolverConfig:
        """Build from a plain (e.g. JSON/TOML-loaded) mapping."""
        data = dict(mapping)
        unknown = set(data) - set(cls.__dataclass_fields__)
        if unknown:
            raise ValueError(f"InverseSolverConfig: unknown fields {sorted(unknown)}")
        if isinstance(data.get("adam"), Mapping):
            data["adam"] = AdamConfig.from_dict(data["adam"])
        if isinstance(data.get("lbfgs"), Mapping):
            data["lbfgs"] = LBFGSConfig.from_dict(data["lbfgs"])
        return cls(**data)


@dataclass(slots=True, frozen=True)
class InverseResult:
    """
    Outcome of one solve.

    Attributes:
        params: Estimated parameters (best, or last finite on divergence).
        loss: Loss at ``params``.
        iterations: Number of objective evaluations at accepted iterates.
        reason: Why the solve stopped.
        history: Loss per iteration.
        bsdf: The model evaluated at ``params``.
        gradient_norm: Projected-gradient norm at the last iteration.
    """
    params:        MaterialParams
    loss:          float
    iterations:    int
    reason:        ConvergenceReason
    history:       Tuple[float, ...]
    bsdf:          BSDF
    gradient_norm: float = 0.0

    @property
    def converged(self) -> bool:
        return self.reason in (ConvergenceReason.CONVERGED,
                               ConvergenceReason.GRADIENT_VANISHED)


# ═══════════════════════════════════════════════════════════════════════════════
# 4. Solver
# ═══════════════════════════════════════════════════════════════════════════════

def _finite_names(model: BSDF) -> Tuple[str, ...]:
    params = model.get_params()
    return tuple(n for n in model.parameter_names() if math.isfinite(params[n]))


class InverseMaterialSolver:
    """
    Gradient-based calibration of one BSDF model.

    Args:
        model: Template model; parameters not being solved keep its values.
        config: Solver settings.
        bounds: Box for the solved parameters. Defaults to the physical
            domains of the parameters, using ``config.projection``.

    Examples:
        solver = InverseMaterialSolver(DielectricBSDF(ior=1.3, fresnel="exact"))
        result = solver.solve(reference, MaterialParams.from_dict({"ior": 1.3}))
    """

    def __init__(self, model: BSDF, config: Optional[InverseSolverConfig] = None,
                 bounds: Optional[BoundsEnforcer] = None):
        self.model = model
        self.config = config or InverseSolverConfig()
        self.bounds = bounds
        self._active_bounds = bounds
        self.state = SolverState.INITIALIZED
        self.optimizer_state = OptimizerState()

    # -- Forward model ------------------------------------------------------

    def forward(self, params: Union[MaterialParams, Mapping[str, float]],
                reference: Union[ReferenceData, Sequence[BSDFContext]]) -> np.ndarray:
        """Predicted reflectance at every reference context."""
        contexts = reference.contexts() if isinstance(reference, ReferenceData) else reference
        bsdf = self.model.with_params(params)
        return np.array([bsdf.evaluate(ctx).reflectance for ctx in contexts],
                        dtype=np.float64)

    def loss_and_gradient(self, params: MaterialParams,
                          reference: ReferenceData,
                          anchor: Optional[np.ndarray] = None) -> Tuple[float, np.ndarray]:
        """
        Weighted mean loss and its gradient with respect to ``params``.

        ``anchor`` is the regularisation target; no penalty without it.
        """
        cfg = self.config
        names = params.names
        bsdf = self.model.with_params(params)
        total_weight = reference.total_weight

        loss = 0.0
        grad = np.zeros(len(names))
        for obs in reference:
            if obs.weight == 0.0:
                continue
            resp, grads = bsdf.eval_with_gradients(obs.context)
            g = grads.select(names)
            l_r, dl_r = loss_and_gradient(cfg.loss, resp.reflectance,
                                          obs.reflectance, cfg.huber_delta)
            loss += obs.weight * l_r
            grad += obs.weight * dl_r * g.reflectance
            if obs.transmittance is not None:
                l_t, dl_t = loss_and_gradient(cfg.loss, resp.transmittance,
                                              obs.transmittance, cfg.huber_delta)
                loss += obs.weight * l_t
                grad += obs.weight * dl_t * g.transmittance
        loss /= total_weight
        grad /= total_weight

        x = params.to_vector()
        if anchor is not None and cfg.regularization > 0.0:
            d = x - anchor
            loss += cfg.regularization * float(d @ d)
            grad += 2.0 * cfg.regularization * d
        bounds = self._active_bounds
        if bounds is not None and bounds.method is ProjectionMethod.BARRIER:
            loss += bounds.barrier_penalty(x)
            grad += bounds.barrier_gradient(x)
        return float(loss), grad

    # -- Solve --------------------------------------------------------------

    def _make_bounds(self, names: Tuple[str, ...]) -> BoundsEnforcer:
        if self.bounds is not None:
            if len(self.bounds) != len(names):
                raise LengthMismatchError(
                    {"bounds": len(self.bounds), "params": len(names)},
                    "InverseMaterialSolver:",
                )
            return self.bounds
        return BoundsEnforcer.for_parameters(
            names, config=BoundsConfig(method=self.config.projection)
        )

    def solve(self, reference: ReferenceData,
              initial: Optional[MaterialParams] = None) -> InverseResult:
        """
        Fit ``initial.names`` to ``reference``.

        Args:
            reference: Observations to match.
            initial: Starting point; defaults to every finite parameter of
                the template model.

        Raises:
            EmptyReferenceError: If there is nothing (or no weight) to fit.
        """
        if len(reference) == 0:
            raise EmptyReferenceError()
        if reference.total_weight <= 0.0:
            raise EmptyReferenceError("reference data carries no weight; every observation has weight 0")
        if initial is None:
            initial = self.model.material_params(_finite_names(self.model))

        cfg = self.config
        names = initial.names
        bounds = self._make_bounds(names)
        self._active_bounds = bounds
        anchor = initial.to_vector()
        x = bounds.project(anchor)

        if cfg.optimizer == "lbfgs":
            optimizer: Union[AdamOptimizer, LBFGSOptimizer] = LBFGSOptimizer(replace(cfg.lbfgs))
        else:
            optimizer = AdamOptimizer(replace(cfg.adam), len(names))
        self.optimizer_state = OptimizerState()
        self.state = SolverState.RUNNING
        logger.info("Inverse solve started: %d observations, parameters %s, optimizer %s",
                    len(reference), list(names), cfg.optimizer)

        def evaluate(vec: np.ndarray) -> Tuple[float, np.ndarray]:
            return self.loss_and_gradient(initial.with_vector(vec), reference, anchor)

        best_x, best_loss = x.copy(), math.inf
        good_x, good_loss = x.copy(), math.inf
        stagnant = 0
        gnorm = 0.0
        loss, grad = evaluate(x)

        for it in range(cfg.max_iterations):
            if not (math.isfinite(loss) and np.all(np.isfinite(grad))):
                logger.warning("Inverse solve diverged at iteration %d (loss=%r)", it, loss)
                return self._finish(initial, good_x, good_loss, it,
                                    ConvergenceReason.DIVERGED, gnorm)

            good_x, good_loss = x.copy(), loss
            if loss < best_loss:
                best_x, best_loss = x.copy(), loss
                stagnant = 0
            else:
                stagnant += 1

            g = bounds.project_gradient(x, grad) if cfg.projected_gradient else grad
            gnorm = float(np.linalg.norm(g))
            self.optimizer_state.record(loss, gnorm)
            logger.debug("iter %d: loss=%.6e |g|=%.3e params=%s", it, loss, gnorm, x)

            if loss < cfg.loss_tolerance:
                return self._finish(initial, x, loss, it + 1,
                                    ConvergenceReason.CONVERGED, gnorm)
            if gnorm < cfg.gradient_tolerance:
                return self._finish(initial, x, loss, it + 1,
                                    ConvergenceReason.GRADIENT_VANISHED, gnorm)
            if cfg.patience is not None and stagnant >= cfg.patience:
                return self._finish(initial, best_x, best_loss, it + 1,
                                    ConvergenceReason.CONVERGED, gnorm)

            if isinstance(optimizer, LBFGSOptimizer):
                step = self._line_search(optimizer, bounds, evaluate, x, loss, g)
                if step is None:
                    return self._finish(initial, best_x, best_loss, it + 1,
                                        ConvergenceReason.GRADIENT_VANISHED, gnorm)
                x_new, loss, grad = step
            else:
                x_new = bounds.project(optimizer.step(x, g))
                loss, grad = evaluate(x_new)

            if not (math.isfinite(loss) and np.all(np.isfinite(grad))):
                logger.warning("Inverse solve diverged at iteration %d (loss=%r)", it + 1, loss)
                return self._finish(initial, good_x, good_loss, it + 1,
                                    ConvergenceReason.DIVERGED, gnorm)

            moved = float(np.linalg.norm(x_new - x))
            x = x_new
            if moved < cfg.param_tolerance and math.isfinite(loss):
                return self._finish(initial, x, loss, it + 1,
                                    ConvergenceReason.CONVERGED, gnorm)

        if math.isfinite(loss) and loss < best_loss:
            best_x, best_loss = x, loss
        return self._finish(initial, best_x, best_loss, cfg.max_iterations,
                            ConvergenceReason.MAX_ITERATIONS_REACHED, gnorm)

    def _line_search(self, optimizer: LBFGSOptimizer, bounds: BoundsEnforcer,
                     evaluate: Callable[[np.ndarray], Tuple[float, np.ndarray]],
                     x: np.ndarray,
                     loss: float, g: np.ndarray
                     ) -> Optional[Tuple[np.ndarray, float, np.ndarray]]:
        """Backtracking Armijo search along the L-BFGS direction."""
        lcfg = optimizer.config
        optimizer.update(x, g)
        direction = optimizer.direction(g)
        if float(direction @ g) >= 0.0:
            logger.debug("L-BFGS: direction is not a descent direction; resetting history")
            optimizer.reset()
            optimizer.update(x, g)
            direction = -g

        step = optimizer.scaled_step(direction)
        for _ in range(lcfg.max_line_search_iter + 1):
            x_try = bounds.project(x + step)
            loss_try, grad_try = evaluate(x_try)
            if not (math.isfinite(loss_try) and np.all(np.isfinite(grad_try))):
                # solve() reports the divergence
                return x_try, loss_try, grad_try
            if loss_try <= loss + lcfg.c1 * float(g @ (x_try - x)):
                optimizer.t += 1
                return x_try, loss_try, grad_try
            step = 0.5 * step
            if float(np.linalg.norm(step)) < lcfg.min_step:
                break
        return None

    def _finish(self, initial: MaterialParams, x: np.ndarray, loss: float,
                iterations: int, reason: ConvergenceReason,
                gnorm: float) -> InverseResult:
        self.state = SolverState.TERMINATED
        params = initial.with_vector(x)
        logger.info("Inverse solve finished: %s after %d iterations (loss=%.6e)",
                    reason.value, iterations, loss)
        return InverseResult(
            params=params,
            loss=float(loss),
            iterations=iterations,
            reason=reason,
            history=tuple(self.optimizer_state.loss_history),
            bsdf=self.model.with_params(params),
            gradient_norm=gnorm,
        )


# ═══════════════════════════════════════════════════════════════════════════════
# 5. Initial-guess helpers
# ═══════════════════════════════════════════════════════════════════════════════

def recover_ior_from_normal_reflectance(reflectance: float) -> float:
    """Invert R₀ = ((n − 1)/(n + 1))² for n."""
    r = min(max(math.sqrt(max(reflectance, 0.0)), 0.0), 0.999)
    return (1.0 + r) / (1.0 - r)


def recover_roughness_from_glossiness(glossiness: float) -> float:
    """Roughness from a [0, 1] gloss reading, modelled as g = 1 − roughness²."""
    return math.sqrt(1.0 - min(max(glossiness, 0.0), 1.0))
