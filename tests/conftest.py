# -*- coding: utf-8 -*-
"""Pytest configuration for Vitrum tests.

Shared fixtures: evaluation contexts spanning the usual angular and
spectral range, and one representative instance of every BSDF model.
"""

import numpy as np
import pytest

from bsdf_models import (
    AnisotropicBSDF,
    ConductorBSDF,
    DielectricBSDF,
    LambertianBSDF,
    LayeredBSDF,
    ThinFilmBSDF,
)
from bsdf_models.dispersion import CROWN
from vitrum_geometry import BSDFContext


@pytest.fixture
def normal_context():
    """Normal incidence at 550 nm."""
    return BSDFContext.simple(1.0, 550.0)


@pytest.fixture
def oblique_context():
    """45° incidence at 600 nm, azimuth 30° so anisotropic models see both axes."""
    return BSDFContext.from_angle(45.0, 30.0, 600.0)


@pytest.fixture
def calibration_contexts():
    """Sixteen contexts sweeping 400-700 nm and 0-60° together."""
    wavelengths = np.linspace(400.0, 700.0, 16)
    angles = np.linspace(0.0, 60.0, 16)
    return [BSDFContext.from_angle(a, 0.0, wl) for a, wl in zip(angles, wavelengths)]


@pytest.fixture
def glass():
    return DielectricBSDF(ior=1.52)


@pytest.fixture
def all_models():
    """One configured instance of every model, keyed by a readable label."""
    return {
        "dielectric": DielectricBSDF(ior=1.5, roughness=0.3, absorption=0.4,
                                     thickness=1.5),
        "dielectric_exact": DielectricBSDF(ior=1.6, roughness=0.2, fresnel="exact"),
        "dielectric_dispersive": DielectricBSDF.from_dispersion(CROWN, roughness=0.1),
        "conductor": ConductorBSDF(n=0.27, k=3.41, roughness=0.35),
        "thin_film": ThinFilmBSDF(film_ior=1.38, thickness=120.0, substrate_ior=1.52),
        "lambertian": LambertianBSDF(albedo=0.6),
        "anisotropic": AnisotropicBSDF(roughness_x=0.2, roughness_y=0.6, ior=1.5),
        "anisotropic_metal": AnisotropicBSDF(roughness_x=0.3, roughness_y=0.5,
                                             kind="conductor", n=1.35, k=7.47),
        "layered": LayeredBSDF([
            ThinFilmBSDF(film_ior=1.38, thickness=100.0, substrate_ior=1.52),
            DielectricBSDF(ior=1.52, absorption=0.5, thickness=1.0),
            LambertianBSDF(albedo=0.7),
        ]),
        "layered_multi": LayeredBSDF([
            DielectricBSDF(ior=1.45, roughness=0.2),
            DielectricBSDF(ior=1.7, absorption=0.3, thickness=2.0),
            ConductorBSDF(n=0.18, k=3.0, roughness=0.1),
        ], composition="multi_bounce"),
    }
