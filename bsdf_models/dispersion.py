# -*- coding: utf-8 -*-
"""
Vitrum: Differentiable glass physics for material calibration
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Module: dispersion.py — Cauchy dispersion parameterized by n_d and Abbe number.

A two-term Cauchy model n(λ) = A + B/λ² is pinned to the catalogue
description of a glass: n(λ_d) = n_d and (n_d − 1)/(n_F − n_C) = V_d.
An infinite Abbe number means no dispersion.
"""

import math
from dataclasses import dataclass
from typing import Dict, Final, Tuple

import numpy as np
from numba import njit

__all__ = [
    "DispersionModel",
    "cauchy_abbe_index",
    "cauchy_abbe_grad",
    "CROWN", "FLINT", "DIAMOND", "PRESETS",
    "LAMBDA_D", "LAMBDA_F", "LAMBDA_C",
]

# Fraunhofer lines in nm
LAMBDA_D: Final[float] = 587.56
LAMBDA_F: Final[float] = 486.13
LAMBDA_C: Final[float] = 656.27

# 1/λ_F² − 1/λ_C² in µm⁻²
_INV_SPAN_UM2: Final[float] = (1.0 / (LAMBDA_F * 1e-3) ** 2) - (1.0 / (LAMBDA_C * 1e-3) ** 2)
_INV_D_UM2: Final[float] = 1.0 / (LAMBDA_D * 1e-3) ** 2


@njit(cache=True)
def cauchy_abbe_grad(n_d: float, abbe: float,
                     wavelength_nm: float) -> Tuple[float, float, float]:
    """
    Compute n(λ) and its partial derivatives w.r.t. n_d and V_d.

        B = (n_d − 1) / (V_d · (1/λ_F² − 1/λ_C²))
        n(λ) = n_d + B·(1/λ² − 1/λ_d²)

    Far in the infrared a weakly refracting, strongly dispersive glass
    would fall below n = 1; the index is clamped there and its derivatives
    are zero.

    Args:
        n_d: Refractive index at the helium d-line.
        abbe: Abbe number V_d (may be +inf).
        wavelength_nm: Evaluation wavelength in nanometers.

    Returns:
        (n, dn_dn_d, dn_dabbe)
    """
    lam_um = wavelength_nm * 1e-3
    shape = 1.0 / (lam_um * lam_um) - _INV_D_UM2
    inv = 1.0 / (abbe * _INV_SPAN_UM2)
    B = (n_d - 1.0) * inv
    n = n_d + B * shape
    if n < 1.0:
        return 1.0, 0.0, 0.0
    dn_dnd = 1.0 + shape * inv
    dn_dv = -B * shape / abbe
    return n, dn_dnd, dn_dv


@njit(cache=True)
def cauchy_abbe_index(n_d: float, abbe: float, wavelength_nm: float) -> float:
    """Refractive index at ``wavelength_nm`` (see ``cauchy_abbe_grad``)."""
    return cauchy_abbe_grad(n_d, abbe, wavelength_nm)[0]


@dataclass(slots=True, frozen=True)
class DispersionModel:
    """Catalogue description (n_d, V_d) of a dispersive glass."""
    n_d:  float
    abbe: float = math.inf

    def __post_init__(self) -> None:
        if not self.n_d >= 1.0:
            raise ValueError(f"n_d must be >= 1, got {self.n_d}")
        if not self.abbe > 0.0:
            raise ValueError(f"Abbe number must be > 0, got {self.abbe}")

    @property
    def cauchy_coefficients(self) -> Tuple[float, float]:
        """(A, B) with B in µm²."""
        B = (self.n_d - 1.0) / (self.abbe * _INV_SPAN_UM2)
        return self.n_d - B * _INV_D_UM2, B

    def ior(self, wavelength_nm: float) -> float:
        return cauchy_abbe_index(self.n_d, self.abbe, wavelength_nm)

    def ior_array(self, wavelengths_nm: np.ndarray) -> np.ndarray:
        A, B = self.cauchy_coefficients
        lam_um = np.asarray(wavelengths_nm, dtype=np.float64) * 1e-3
        return np.maximum(A + B / (lam_um * lam_um), 1.0)


CROWN: Final[DispersionModel] = DispersionModel(1.52, 64.0)
FLINT: Final[DispersionModel] = DispersionModel(1.62, 36.0)
DIAMOND: Final[DispersionModel] = DispersionModel(2.42, 55.0)

PRESETS: Final[Dict[str, DispersionModel]] = {
    "crown":   CROWN,
    "flint":   FLINT,
    "diamond": DIAMOND,
}
