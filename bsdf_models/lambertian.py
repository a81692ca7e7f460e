# -*- coding: utf-8 -*-
"""
Vitrum: Differentiable glass physics for material calibration
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Module: lambertian.py — Ideal diffuse, opaque reflector.
"""

from typing import Dict, Optional, Tuple, Union

from vitrum_bsdf import BSDFResponse
from vitrum_differentiable import ParameterGradients
from vitrum_geometry import BSDFContext

from .base import BSDF

__all__ = ["LambertianBSDF"]


class LambertianBSDF(BSDF):
    """
    Opaque diffuse surface.

    The hemispherical reflectance equals the albedo for every incidence
    angle; the remainder is absorbed.

    Parameters:
        albedo: Diffuse reflectance in [0, 1].
    """

    PARAMETERS = ("albedo",)

    def __init__(
        self,
        albedo: Optional[float] = None,
        params: Optional[Dict[str, Union[float, int]]] = None,
        **kwargs: Union[float, int]
    ):
        p = dict(params) if params else {}
        if albedo is not None:
            p['albedo'] = albedo
        p.update(kwargs)
        super().__init__(params=p)
        self._validate_params(optional={'albedo': 0.8})

    @classmethod
    def white(cls) -> "LambertianBSDF":
        return cls(albedo=0.9)

    @classmethod
    def gray(cls) -> "LambertianBSDF":
        return cls(albedo=0.5)

    @classmethod
    def black(cls) -> "LambertianBSDF":
        return cls(albedo=0.05)

    @property
    def albedo(self) -> float:
        return self.params['albedo']

    def eval_with_gradients(
        self, context: BSDFContext
    ) -> Tuple[BSDFResponse, ParameterGradients]:
        a = self.params['albedo']
        return (BSDFResponse.pure_reflection(a),
                self._gradients({'albedo': (1.0, 0.0, -1.0)}))
