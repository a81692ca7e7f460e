# -*- coding: utf-8 -*-
"""
Vitrum: Differentiable glass physics for material calibration
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Module: vitrum_bsdf.py — The energy-partition response and its validation.

Every BSDF model returns a ``BSDFResponse`` that splits unit incident
energy into reflected, transmitted and absorbed parts. The response is
stored exactly as computed: a partition that does not sum to one is a
defect of the model that produced it and is reported by
``EnergyValidation``, it is never renormalized here.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import (
    Final, Iterable, Optional, Protocol, Sequence, Tuple, runtime_checkable,
)

import numpy as np

from vitrum_errors import EnergyConservationError
from vitrum_geometry import BSDFContext

__all__ = [
    "ENERGY_TOLERANCE",
    "RGB_WAVELENGTHS",
    "BSDFResponse",
    "EnergyValidation",
    "EvaluatesBSDF",
    "validate_energy_conservation",
    "evaluate_spectral",
    "evaluate_rgb",
]

ENERGY_TOLERANCE: Final[float] = 1e-6

# Representative R, G, B wavelengths in nm.
RGB_WAVELENGTHS: Final[Tuple[float, float, float]] = (650.0, 550.0, 450.0)

_SWEEP_ANGLES_DEG: Final[Tuple[float, ...]] = (0.0, 15.0, 30.0, 45.0, 60.0, 75.0, 85.0)
_SWEEP_WAVELENGTHS: Final[Tuple[float, ...]] = (400.0, 450.0, 500.0, 550.0, 600.0, 650.0, 700.0)


# ---------------------------------------------------------------------------
# 1. Response
# ---------------------------------------------------------------------------
@dataclass(slots=True, frozen=True)
class BSDFResponse:
    """Energy partition (R, T, A) of unit incident flux."""
    reflectance:   float
    transmittance: float
    absorption:    float

    @classmethod
    def pure_reflection(cls, reflectance: float) -> BSDFResponse:
        """Opaque surface: whatever is not reflected is absorbed."""
        return cls(reflectance, 0.0, 1.0 - reflectance)

    @classmethod
    def pure_transmission(cls, transmittance: float) -> BSDFResponse:
        """Non-reflecting medium: whatever is not transmitted is absorbed."""
        return cls(0.0, transmittance, 1.0 - transmittance)

    @property
    def total_energy(self) -> float:
        return self.reflectance + self.transmittance + self.absorption

    def is_energy_conserved(self, tolerance: float = ENERGY_TOLERANCE) -> bool:
        return self.validate(tolerance).conserved

    def validate(self, tolerance: float = ENERGY_TOLERANCE) -> EnergyValidation:
        """Check the partition sums to one and every component lies in [0, 1]."""
        error = abs(self.total_energy - 1.0)
        if not math.isfinite(error):
            return EnergyValidation.failed(math.inf, f"Non-finite response: {self}")
        if error > tolerance:
            return EnergyValidation.failed(
                error, f"Energy not conserved: R+T+A = {self.total_energy:.9f}"
            )
        for label, value in (("reflectance", self.reflectance),
                             ("transmittance", self.transmittance),
                             ("absorption", self.absorption)):
            if value < -tolerance or value > 1.0 + tolerance:
                return EnergyValidation.failed(
                    error, f"{label} = {value:.9f} outside [0, 1]"
                )
        return EnergyValidation.passed(error)

    def as_array(self) -> np.ndarray:
        return np.array([self.reflectance, self.transmittance, self.absorption],
                        dtype=np.float64)


# ---------------------------------------------------------------------------
# 2. Validation report
# ---------------------------------------------------------------------------
@dataclass(slots=True, frozen=True)
class EnergyValidation:
    """
    Boolean-plus-magnitude energy audit.

    Attributes:
        conserved: True when every audited response passed.
        error: Largest |R + T + A − 1| encountered.
        details: Human-readable summary (first failure when not conserved).
    """
    conserved: bool
    error:     float
    details:   str

    @classmethod
    def passed(cls, error: float) -> EnergyValidation:
        return cls(True, error, f"Energy conserved: error = {error:.2e}")

    @classmethod
    def failed(cls, error: float, reason: str) -> EnergyValidation:
        return cls(False, error, f"Energy violation: {reason}")

    def raise_if_failed(self, context: Optional[str] = None) -> None:
        if not self.conserved:
            raise EnergyConservationError(self.error, self.details, context)


@runtime_checkable
class EvaluatesBSDF(Protocol):
    """Anything with a forward ``evaluate(context) -> BSDFResponse``."""
    def evaluate(self, context: BSDFContext) -> BSDFResponse: ...


def validate_energy_conservation(
    bsdf: EvaluatesBSDF,
    angles_deg: Iterable[float] = _SWEEP_ANGLES_DEG,
    wavelengths: Iterable[float] = _SWEEP_WAVELENGTHS,
    tolerance: float = ENERGY_TOLERANCE,
) -> EnergyValidation:
    """
    Audit a BSDF over an angular and spectral sweep.

    Returns the first failure (with the angle and wavelength at which it
    occurred) or a pass carrying the worst error seen.
    """
    worst = 0.0
    wavelengths = tuple(wavelengths)
    for theta in angles_deg:
        for wl in wavelengths:
            ctx = BSDFContext.simple(math.cos(math.radians(theta)), wl)
            report = bsdf.evaluate(ctx).validate(tolerance)
            if not report.conserved:
                return EnergyValidation(
                    False, report.error,
                    f"{report.details} at θ = {theta:g}°, λ = {wl:g} nm",
                )
            worst = max(worst, report.error)
    return EnergyValidation.passed(worst)


# ---------------------------------------------------------------------------
# 3. Spectral helpers
# ---------------------------------------------------------------------------
def evaluate_spectral(bsdf: EvaluatesBSDF, context: BSDFContext,
                      wavelengths: Sequence[float]) -> np.ndarray:
    """
    Evaluate at discrete wavelengths.

    Returns:
        Array of shape (N, 3) with columns R, T, A.
    """
    out = np.empty((len(wavelengths), 3), dtype=np.float64)
    for i, wl in enumerate(wavelengths):
        out[i] = bsdf.evaluate(context.with_wavelength(float(wl))).as_array()
    return out


def evaluate_rgb(bsdf: EvaluatesBSDF, context: BSDFContext) -> np.ndarray:
    """Reflectance at the representative R, G, B wavelengths."""
    return evaluate_spectral(bsdf, context, RGB_WAVELENGTHS)[:, 0].copy()
