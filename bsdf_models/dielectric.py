# -*- coding: utf-8 -*-
"""
Vitrum: Differentiable glass physics for material calibration
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Module: dielectric.py — Smooth, rough and absorbing dielectric interfaces.

Energy partition for a dielectric slab seen from air:

    R = G1·F(cosθ) + (1 − G1)·F̄            (F̄: hemispherical average)
    T = (1 − R)·exp(−α·d / cosθt)
    A = (1 − R)·(1 − exp(−α·d / cosθt))

G1 is the GGX Smith masking term for α_g = roughness², so a smooth
surface (roughness 0) reduces to the plain Fresnel curve. The refractive
index may follow a Cauchy law fixed by (n_d, V_d).
"""

import math
from typing import Dict, Optional, Tuple, Union

import numpy as np
from numba import njit

from vitrum_bsdf import BSDFResponse
from vitrum_differentiable import ParameterGradients
from vitrum_geometry import BSDFContext
from vitrum_optics import (
    beer_lambert_grad,
    fresnel_full_grad,
    fresnel_schlick_grad,
    hemisphere_quadrature,
    hemispherical_dielectric_grad,
    rough_blend,
    smith_g1_grad,
)

from .base import BSDF
from .dispersion import DispersionModel, cauchy_abbe_grad

__all__ = ["DielectricBSDF", "dielectric_kernel", "FRESNEL_MODES"]

FRESNEL_MODES = ("schlick", "exact")


@njit(cache=True)
def dielectric_kernel(cos_i: float, wavelength: float, ior: float,
                      roughness: float, absorption: float, thickness: float,
                      abbe: float, exact: bool, mu: np.ndarray,
                      weights: np.ndarray) -> Tuple[float, float, float, np.ndarray]:
    """
    Evaluate a dielectric interface and its parameter derivatives.

    Returns:
        (R, T, A, grad) where grad has shape (3, 5): rows ∂R, ∂T, ∂A and
        columns ior, roughness, absorption, thickness, abbe.
    """
    c = min(max(cos_i, 0.0), 1.0)
    n, dn_dnd, dn_dv = cauchy_abbe_grad(ior, abbe, wavelength)

    # --- Reflectance -------------------------------------------------------
    if exact:
        F, dF = fresnel_full_grad(c, n)
    else:
        F, dF = fresnel_schlick_grad(c, n)

    if roughness > 0.0:
        r3 = roughness * roughness * roughness
        G, dG_da2 = smith_g1_grad(c, r3 * roughness)
        Fa, dFa = hemispherical_dielectric_grad(n, exact, mu, weights)
        R = rough_blend(F, Fa, G)
        dR_dn = G * dF + (1.0 - G) * dFa
        dR_dr = (F - Fa) * dG_da2 * 4.0 * r3
    else:
        R = F
        dR_dn = dF
        dR_dr = 0.0

    # --- Internal attenuation along the refracted path ---------------------
    s2 = 1.0 - c * c
    st2 = s2 / (n * n)
    if st2 < 1.0:
        ct = math.sqrt(1.0 - st2)
        L = thickness / ct
        dL_dn = -thickness * s2 / (n * n * n * ct * ct * ct)
        tau, dtau_dL, dtau_da = beer_lambert_grad(L, absorption)
        dtau_dn = dtau_dL * dL_dn
        dtau_dd = dtau_dL / ct
    else:
        # No refracted wave: nothing enters the medium.
        tau = 0.0
        dtau_dn = 0.0
        dtau_da = 0.0
        dtau_dd = 0.0

    one_m_R = 1.0 - R
    T = one_m_R * tau
    A = one_m_R * (1.0 - tau)

    grad = np.zeros((3, 5))
    # ior and abbe act through n(λ)
    dR = dR_dn
    dT = -dR * tau + one_m_R * dtau_dn
    dA = -dR * (1.0 - tau) - one_m_R * dtau_dn
    grad[0, 0] = dR * dn_dnd
    grad[1, 0] = dT * dn_dnd
    grad[2, 0] = dA * dn_dnd
    grad[0, 4] = dR * dn_dv
    grad[1, 4] = dT * dn_dv
    grad[2, 4] = dA * dn_dv
    # roughness only moves R
    grad[0, 1] = dR_dr
    grad[1, 1] = -dR_dr * tau
    grad[2, 1] = -dR_dr * (1.0 - tau)
    # absorption coefficient
    grad[1, 2] = one_m_R * dtau_da
    grad[2, 2] = -one_m_R * dtau_da
    # thickness
    grad[1, 3] = one_m_R * dtau_dd
    grad[2, 3] = -one_m_R * dtau_dd
    return R, T, A, grad


class DielectricBSDF(BSDF):
    """
    Dielectric interface with optional roughness, bulk absorption and dispersion.

    Parameters:
        ior: Refractive index n_d (>= 1).
        roughness: Perceptual roughness in [0, 1]; GGX α = roughness².
        absorption: Bulk absorption coefficient α (>= 0, per unit thickness).
        thickness: Slab thickness d along the normal (>= 0, same unit as 1/α).
        abbe: Abbe number V_d; +inf disables dispersion.
        fresnel: "schlick" (default) or "exact".

    Examples:
        glass = DielectricBSDF(ior=1.5)
        tinted = DielectricBSDF(ior=1.5, absorption=0.2, thickness=2.0)
        flint = DielectricBSDF.from_dispersion(DispersionModel(1.62, 36.0))
    """

    PARAMETERS = ("ior", "roughness", "absorption", "thickness", "abbe")

    def __init__(
        self,
        ior: Optional[float] = None,
        roughness: Optional[float] = None,
        params: Optional[Dict[str, Union[float, int]]] = None,
        fresnel: str = "schlick",
        **kwargs: Union[float, int]
    ):
        p = dict(params) if params else {}
        if ior is not None:
            p['ior'] = ior
        if roughness is not None:
            p['roughness'] = roughness
        p.update(kwargs)
        super().__init__(params=p)

        if fresnel not in FRESNEL_MODES:
            raise ValueError(f"fresnel must be one of {FRESNEL_MODES}, got {fresnel!r}")
        self.fresnel = fresnel

        self._validate_params(
            optional={'ior': 1.5, 'roughness': 0.0, 'absorption': 0.0,
                      'thickness': 1.0, 'abbe': math.inf}
        )

    # -- Presets ------------------------------------------------------------

    @classmethod
    def glass(cls) -> "DielectricBSDF":
        return cls(ior=1.52)

    @classmethod
    def water(cls) -> "DielectricBSDF":
        return cls(ior=1.33)

    @classmethod
    def diamond(cls) -> "DielectricBSDF":
        return cls(ior=2.42)

    @classmethod
    def frosted_glass(cls) -> "DielectricBSDF":
        return cls(ior=1.52, roughness=0.3)

    @classmethod
    def from_dispersion(cls, model: DispersionModel, roughness: float = 0.0,
                        **kwargs: Union[float, int]) -> "DielectricBSDF":
        return cls(ior=model.n_d, roughness=roughness, abbe=model.abbe, **kwargs)

    # -- Accessors ----------------------------------------------------------

    @property
    def ior(self) -> float:
        return self.params['ior']

    @property
    def roughness(self) -> float:
        return self.params['roughness']

    @property
    def absorption(self) -> float:
        return self.params['absorption']

    @property
    def thickness(self) -> float:
        return self.params['thickness']

    @property
    def abbe(self) -> float:
        return self.params['abbe']

    def ior_at(self, wavelength: float) -> float:
        """Refractive index at ``wavelength`` (nm) after dispersion."""
        return cauchy_abbe_grad(self.ior, self.abbe, wavelength)[0]

    # -- Evaluation ---------------------------------------------------------

    def eval_with_gradients(
        self, context: BSDFContext
    ) -> Tuple[BSDFResponse, ParameterGradients]:
        mu, w = hemisphere_quadrature()
        p = self.params
        R, T, A, grad = dielectric_kernel(
            context.cos_theta_i, context.wavelength, p['ior'], p['roughness'],
            p['absorption'], p['thickness'], p['abbe'],
            self.fresnel == "exact", mu, w,
        )
        return BSDFResponse(R, T, A), ParameterGradients(self.PARAMETERS, grad)
