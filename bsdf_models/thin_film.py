# -*- coding: utf-8 -*-
"""
Vitrum: Differentiable glass physics for material calibration
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Module: thin_film.py — Single non-absorbing film on a dielectric substrate.

Reflectance follows the Airy summation at the context wavelength; the
film and substrate are lossless so T = 1 − R and A = 0. A zero-thickness
film collapses to the bare substrate interface.
"""

from typing import Dict, Optional, Tuple, Union

from vitrum_bsdf import BSDFResponse
from vitrum_differentiable import ParameterGradients
from vitrum_geometry import BSDFContext
from vitrum_optics import thin_film_grad

from .base import BSDF

__all__ = ["ThinFilmBSDF"]


class ThinFilmBSDF(BSDF):
    """
    Thin-film interference coating (air | film | substrate).

    Parameters:
        film_ior: Refractive index of the film (>= 1).
        thickness: Physical film thickness in nanometers (>= 0).
        substrate_ior: Refractive index of the substrate (>= 1, default 1.5).

    Examples:
        bubble = ThinFilmBSDF.soap_bubble(thickness=350.0)
        coating = ThinFilmBSDF(film_ior=1.38, thickness=100.0, substrate_ior=1.52)
    """

    PARAMETERS = ("film_ior", "thickness", "substrate_ior")

    def __init__(
        self,
        film_ior: Optional[float] = None,
        thickness: Optional[float] = None,
        params: Optional[Dict[str, Union[float, int]]] = None,
        **kwargs: Union[float, int]
    ):
        p = dict(params) if params else {}
        if film_ior is not None:
            p['film_ior'] = film_ior
        if thickness is not None:
            p['thickness'] = thickness
        p.update(kwargs)
        super().__init__(params=p)
        self._validate_params(required=['film_ior', 'thickness'],
                              optional={'substrate_ior': 1.5})

    # -- Presets ------------------------------------------------------------

    @classmethod
    def soap_bubble(cls, thickness: float = 350.0) -> "ThinFilmBSDF":
        """Water film in air."""
        return cls(film_ior=1.33, thickness=thickness, substrate_ior=1.0)

    @classmethod
    def oil_on_water(cls, thickness: float = 300.0) -> "ThinFilmBSDF":
        return cls(film_ior=1.47, thickness=thickness, substrate_ior=1.33)

    @classmethod
    def anti_reflective(cls, thickness: float = 100.0) -> "ThinFilmBSDF":
        """MgF₂ on glass; quarter-wave at ~550 nm for the default thickness."""
        return cls(film_ior=1.38, thickness=thickness, substrate_ior=1.52)

    @classmethod
    def sio2_coating(cls, thickness: float = 100.0) -> "ThinFilmBSDF":
        return cls(film_ior=1.46, thickness=thickness, substrate_ior=1.5)

    # -- Accessors ----------------------------------------------------------

    @property
    def film_ior(self) -> float:
        return self.params['film_ior']

    @property
    def thickness(self) -> float:
        return self.params['thickness']

    @property
    def substrate_ior(self) -> float:
        return self.params['substrate_ior']

    def eval_with_gradients(
        self, context: BSDFContext
    ) -> Tuple[BSDFResponse, ParameterGradients]:
        p = self.params
        R, dR_dn, dR_dd, dR_ds = thin_film_grad(p['film_ior'], p['thickness'],
                                                context.cos_theta_i,
                                                context.wavelength,
                                                p['substrate_ior'])
        grads = self._gradients({
            'film_ior':      (dR_dn, -dR_dn, 0.0),
            'thickness':     (dR_dd, -dR_dd, 0.0),
            'substrate_ior': (dR_ds, -dR_ds, 0.0),
        })
        return BSDFResponse(R, 1.0 - R, 0.0), grads
