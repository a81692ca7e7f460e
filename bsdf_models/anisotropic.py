# -*- coding: utf-8 -*-
"""
Vitrum: Differentiable glass physics for material calibration
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Module: anisotropic.py — Direction-dependent GGX roughness (brushed metal, fibres).

The energy model is the isotropic one with the Smith masking roughness
taken along the incident azimuth φ (measured from the tangent):

    α(φ)² = cos²φ·α_x² + sin²φ·α_y²,     α_x = roughness_x², α_y = roughness_y²

The base interface is either a dielectric (Schlick Fresnel, T = 1 − R) or
a conductor (complex Fresnel, T = 0).
"""

import math
from typing import Dict, Optional, Tuple, Union

import numpy as np
from numba import njit

from vitrum_bsdf import BSDFResponse
from vitrum_differentiable import ParameterGradients
from vitrum_geometry import BSDFContext, DEFAULT_WAVELENGTH
from vitrum_optics import (
    fresnel_conductor_grad,
    fresnel_schlick_grad,
    hemisphere_quadrature,
    hemispherical_conductor_grad,
    hemispherical_dielectric_grad,
    rough_blend,
    smith_g1_grad,
)

from .base import BSDF
from .conductor import METAL_PRESETS

__all__ = ["AnisotropicBSDF", "anisotropic_kernel", "SURFACE_KINDS"]

SURFACE_KINDS = ("dielectric", "conductor")


@njit(cache=True)
def anisotropic_kernel(cos_i: float, cos2_phi: float, rx: float, ry: float,
                       n: float, k: float, conductor: bool, mu: np.ndarray,
                       weights: np.ndarray) -> Tuple[float, float, float, float, float]:
    """
    Returns:
        (R, dR_dn, dR_dk, dR_drx, dR_dry); dR_dk is zero for dielectrics.
    """
    if conductor:
        F, dF_dn, dF_dk = fresnel_conductor_grad(cos_i, n, k)
    else:
        F, dF_dn = fresnel_schlick_grad(cos_i, n)
        dF_dk = 0.0

    sin2_phi = 1.0 - cos2_phi
    rx3 = rx * rx * rx
    ry3 = ry * ry * ry
    a2 = cos2_phi * rx3 * rx + sin2_phi * ry3 * ry
    if a2 > 0.0:
        G, dG_da2 = smith_g1_grad(cos_i, a2)
        if conductor:
            Fa, dFa_dn, dFa_dk = hemispherical_conductor_grad(n, k, mu, weights)
        else:
            Fa, dFa_dn = hemispherical_dielectric_grad(n, False, mu, weights)
            dFa_dk = 0.0
        R = rough_blend(F, Fa, G)
        dR_dn = G * dF_dn + (1.0 - G) * dFa_dn
        dR_dk = G * dF_dk + (1.0 - G) * dFa_dk
        dR_da2 = (F - Fa) * dG_da2
        dR_drx = dR_da2 * 4.0 * cos2_phi * rx3
        dR_dry = dR_da2 * 4.0 * sin2_phi * ry3
    else:
        R = F
        dR_dn = dF_dn
        dR_dk = dF_dk
        dR_drx = 0.0
        dR_dry = 0.0
    return R, dR_dn, dR_dk, dR_drx, dR_dry


class AnisotropicBSDF(BSDF):
    """
    Anisotropic GGX surface over a dielectric or conductor base.

    Parameters:
        roughness_x: Roughness along the tangent, in [0, 1].
        roughness_y: Roughness along the bitangent, in [0, 1].
        ior: Refractive index of a dielectric base (>= 1).
        n, k: Complex index of a conductor base.
        kind: "dielectric" (default) or "conductor".

    Examples:
        satin = AnisotropicBSDF(roughness_x=0.2, roughness_y=0.6, ior=1.5)
        brushed = AnisotropicBSDF.from_metal("aluminum", 0.15, 0.5)
    """

    DIELECTRIC_PARAMETERS = ("ior", "roughness_x", "roughness_y")
    CONDUCTOR_PARAMETERS = ("n", "k", "roughness_x", "roughness_y")
    PARAMETERS = DIELECTRIC_PARAMETERS

    def __init__(
        self,
        roughness_x: Optional[float] = None,
        roughness_y: Optional[float] = None,
        params: Optional[Dict[str, Union[float, int]]] = None,
        kind: str = "dielectric",
        **kwargs: Union[float, int]
    ):
        p = dict(params) if params else {}
        if roughness_x is not None:
            p['roughness_x'] = roughness_x
        if roughness_y is not None:
            p['roughness_y'] = roughness_y
        p.update(kwargs)
        super().__init__(params=p)

        if kind not in SURFACE_KINDS:
            raise ValueError(f"kind must be one of {SURFACE_KINDS}, got {kind!r}")
        self.kind = kind
        if kind == "conductor":
            self.PARAMETERS = self.CONDUCTOR_PARAMETERS
            self._validate_params(required=['n', 'k'],
                                  optional={'roughness_x': 0.1, 'roughness_y': 0.1})
        else:
            self.PARAMETERS = self.DIELECTRIC_PARAMETERS
            self._validate_params(optional={'ior': 1.5, 'roughness_x': 0.1,
                                            'roughness_y': 0.1})

    @classmethod
    def from_roughness_anisotropy(cls, roughness: float, anisotropy: float,
                                  ior: float = 1.5) -> "AnisotropicBSDF":
        """
        Split an overall roughness by an anisotropy in [−1, 1].

        Positive anisotropy stretches the highlight along the tangent.
        """
        roughness = min(max(roughness, 0.0), 1.0)
        anisotropy = min(max(anisotropy, -1.0), 1.0)
        aspect = math.sqrt(1.0 - 0.9 * anisotropy)
        return cls(roughness_x=min(roughness / aspect, 1.0),
                   roughness_y=min(roughness * aspect, 1.0), ior=ior)

    @classmethod
    def from_metal(cls, name: str, roughness_x: float, roughness_y: float,
                   wavelength: float = DEFAULT_WAVELENGTH) -> "AnisotropicBSDF":
        key = name.lower()
        if key not in METAL_PRESETS:
            raise KeyError(
                f"Unknown metal '{name}'; available: {sorted(METAL_PRESETS)}"
            )
        n, k = METAL_PRESETS[key].at_wavelength(wavelength)
        return cls(roughness_x=roughness_x, roughness_y=roughness_y,
                   kind="conductor", n=n, k=k)

    @property
    def is_conductor(self) -> bool:
        return self.kind == "conductor"

    @property
    def roughness_x(self) -> float:
        return self.params['roughness_x']

    @property
    def roughness_y(self) -> float:
        return self.params['roughness_y']

    def eval_with_gradients(
        self, context: BSDFContext
    ) -> Tuple[BSDFResponse, ParameterGradients]:
        mu, w = hemisphere_quadrature()
        p = self.params
        conductor = self.is_conductor
        n = p['n'] if conductor else p['ior']
        k = p['k'] if conductor else 0.0
        R, dR_dn, dR_dk, dR_drx, dR_dry = anisotropic_kernel(
            context.cos_theta_i, context.cos2_phi_i(), p['roughness_x'],
            p['roughness_y'], n, k, conductor, mu, w,
        )

        if conductor:
            # T = 0, A = 1 − R
            response = BSDFResponse.pure_reflection(R)
            grads = self._gradients({
                'n':           (dR_dn, 0.0, -dR_dn),
                'k':           (dR_dk, 0.0, -dR_dk),
                'roughness_x': (dR_drx, 0.0, -dR_drx),
                'roughness_y': (dR_dry, 0.0, -dR_dry),
            })
        else:
            response = BSDFResponse(R, 1.0 - R, 0.0)
            grads = self._gradients({
                'ior':         (dR_dn, -dR_dn, 0.0),
                'roughness_x': (dR_drx, -dR_drx, 0.0),
                'roughness_y': (dR_dry, -dR_dry, 0.0),
            })
        return response, grads
