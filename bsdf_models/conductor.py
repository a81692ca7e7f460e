# -*- coding: utf-8 -*-
"""
Vitrum: Differentiable glass physics for material calibration
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Module: conductor.py — Opaque metals described by a complex index n + ik.

Conductors transmit nothing: R comes from the complex Fresnel equations
(optionally GGX-smoothed like the dielectric), A = 1 − R, T = 0.
"""

from typing import Dict, Final, NamedTuple, Optional, Tuple, Union

import numpy as np
from numba import njit

from vitrum_bsdf import BSDFResponse
from vitrum_differentiable import ParameterGradients
from vitrum_geometry import BSDFContext, DEFAULT_WAVELENGTH
from vitrum_optics import (
    fresnel_conductor_grad,
    hemisphere_quadrature,
    hemispherical_conductor_grad,
    rough_blend,
    smith_g1_grad,
)

from .base import BSDF

__all__ = ["ConductorBSDF", "MetalPreset", "METAL_PRESETS", "conductor_kernel"]


class MetalPreset(NamedTuple):
    """Complex index sampled at representative R, G, B wavelengths."""
    n_rgb: Tuple[float, float, float]
    k_rgb: Tuple[float, float, float]

    def at_wavelength(self, wavelength: float) -> Tuple[float, float]:
        """(n, k) of the colour band containing ``wavelength`` (nm)."""
        if wavelength < 500.0:
            ch = 2
        elif wavelength < 600.0:
            ch = 1
        else:
            ch = 0
        return self.n_rgb[ch], self.k_rgb[ch]


METAL_PRESETS: Final[Dict[str, MetalPreset]] = {
    "gold":     MetalPreset((0.18, 0.42, 1.47), (3.00, 2.35, 1.95)),
    "silver":   MetalPreset((0.15, 0.13, 0.14), (3.64, 3.04, 2.54)),
    "copper":   MetalPreset((0.27, 0.68, 1.13), (3.41, 2.63, 2.57)),
    "aluminum": MetalPreset((1.35, 0.96, 0.62), (7.47, 6.39, 5.31)),
    "iron":     MetalPreset((2.91, 2.95, 2.80), (3.08, 3.47, 3.00)),
    "chromium": MetalPreset((3.18, 3.14, 2.98), (3.19, 3.34, 3.36)),
}


@njit(cache=True)
def conductor_kernel(cos_i: float, n: float, k: float, roughness: float,
                     mu: np.ndarray,
                     weights: np.ndarray) -> Tuple[float, float, float, np.ndarray]:
    """
    Returns:
        (R, T, A, grad) with grad of shape (3, 3): rows ∂R, ∂T, ∂A and
        columns n, k, roughness.
    """
    F, dF_dn, dF_dk = fresnel_conductor_grad(cos_i, n, k)
    if roughness > 0.0:
        r3 = roughness * roughness * roughness
        G, dG_da2 = smith_g1_grad(cos_i, r3 * roughness)
        Fa, dFa_dn, dFa_dk = hemispherical_conductor_grad(n, k, mu, weights)
        R = rough_blend(F, Fa, G)
        dR_dn = G * dF_dn + (1.0 - G) * dFa_dn
        dR_dk = G * dF_dk + (1.0 - G) * dFa_dk
        dR_dr = (F - Fa) * dG_da2 * 4.0 * r3
    else:
        R = F
        dR_dn = dF_dn
        dR_dk = dF_dk
        dR_dr = 0.0

    grad = np.zeros((3, 3))
    grad[0, 0] = dR_dn
    grad[0, 1] = dR_dk
    grad[0, 2] = dR_dr
    grad[2, 0] = -dR_dn
    grad[2, 1] = -dR_dk
    grad[2, 2] = -dR_dr
    return R, 0.0, 1.0 - R, grad


class ConductorBSDF(BSDF):
    """
    Metal surface with complex refractive index n + ik.

    Parameters:
        n: Real part of the refractive index (>= 0).
        k: Extinction coefficient (>= 0).
        roughness: Perceptual roughness in [0, 1]; GGX α = roughness².

    Examples:
        gold = ConductorBSDF.from_metal("gold", wavelength=650.0)
        brushed = ConductorBSDF(n=1.35, k=7.47, roughness=0.4)
    """

    PARAMETERS = ("n", "k", "roughness")

    def __init__(
        self,
        n: Optional[float] = None,
        k: Optional[float] = None,
        params: Optional[Dict[str, Union[float, int]]] = None,
        **kwargs: Union[float, int]
    ):
        p = dict(params) if params else {}
        if n is not None:
            p['n'] = n
        if k is not None:
            p['k'] = k
        p.update(kwargs)
        super().__init__(params=p)
        self._validate_params(required=['n', 'k'], optional={'roughness': 0.0})

    @classmethod
    def from_metal(cls, name: str, wavelength: float = DEFAULT_WAVELENGTH,
                   roughness: float = 0.0) -> "ConductorBSDF":
        """
        Build a conductor from a named preset at a given wavelength band.

        Raises:
            KeyError: If the metal is unknown.
        """
        key = name.lower()
        if key not in METAL_PRESETS:
            raise KeyError(
                f"Unknown metal '{name}'; available: {sorted(METAL_PRESETS)}"
            )
        n, k = METAL_PRESETS[key].at_wavelength(wavelength)
        return cls(n=n, k=k, roughness=roughness)

    @property
    def n(self) -> float:
        return self.params['n']

    @property
    def k(self) -> float:
        return self.params['k']

    @property
    def roughness(self) -> float:
        return self.params['roughness']

    def eval_with_gradients(
        self, context: BSDFContext
    ) -> Tuple[BSDFResponse, ParameterGradients]:
        mu, w = hemisphere_quadrature()
        p = self.params
        R, T, A, grad = conductor_kernel(context.cos_theta_i, p['n'], p['k'],
                                         p['roughness'], mu, w)
        return BSDFResponse(R, T, A), ParameterGradients(self.PARAMETERS, grad)
