# -*- coding: utf-8 -*-
"""
Vitrum: Differentiable glass physics for material calibration
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

BSDF model variants. The set is closed: every model below derives from
``BSDF`` and implements both ``evaluate`` and ``eval_with_gradients``.
"""

from typing import Union

from .anisotropic import AnisotropicBSDF
from .base import BSDF
from .conductor import METAL_PRESETS, ConductorBSDF
from .dielectric import DielectricBSDF
from .dispersion import DispersionModel
from .lambertian import LambertianBSDF
from .layered import LayeredBSDF
from .thin_film import ThinFilmBSDF

BSDFVariant = Union[
    DielectricBSDF,
    ConductorBSDF,
    ThinFilmBSDF,
    LambertianBSDF,
    LayeredBSDF,
    AnisotropicBSDF,
]

__all__ = [
    "BSDF",
    "BSDFVariant",
    "DielectricBSDF",
    "ConductorBSDF",
    "ThinFilmBSDF",
    "LambertianBSDF",
    "LayeredBSDF",
    "AnisotropicBSDF",
    "DispersionModel",
    "METAL_PRESETS",
]
