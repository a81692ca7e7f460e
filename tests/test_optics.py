# -*- coding: utf-8 -*-
"""Tests for the scalar optics kernels and their analytical derivatives."""

import math

import numpy as np
import pytest

from vitrum_optics import (
    beer_lambert,
    beer_lambert_grad,
    fresnel_conductor,
    fresnel_conductor_grad,
    fresnel_full,
    fresnel_full_grad,
    fresnel_schlick,
    fresnel_schlick_grad,
    hemisphere_quadrature,
    hemispherical_dielectric_grad,
    rough_blend,
    smith_g1,
    smith_g1_grad,
    thin_film_grad,
    thin_film_reflectance,
)

H = 1e-6


def central(f, x):
    return (f(x + H) - f(x - H)) / (2.0 * H)


class TestDielectricFresnel:
    """Tests for Schlick and exact dielectric Fresnel."""

    def test_schlick_normal_incidence(self):
        """Schlick at normal incidence is F0 = ((n−1)/(n+1))²."""
        assert fresnel_schlick(1.0, 1.5) == pytest.approx(0.04)

    def test_exact_normal_incidence(self):
        """The exact form agrees with F0 at normal incidence."""
        assert fresnel_full(1.0, 1.5) == pytest.approx(0.04)

    @pytest.mark.parametrize("fresnel", [fresnel_schlick, fresnel_full])
    def test_grazing_reflects_fully(self, fresnel):
        """Both forms reach R = 1 at grazing incidence."""
        assert fresnel(0.0, 1.5) == pytest.approx(1.0)

    def test_no_contrast_no_reflection(self):
        """An index of one produces no reflection."""
        assert fresnel_full(0.7, 1.0) == pytest.approx(0.0, abs=1e-15)

    def test_total_internal_reflection(self):
        """Beyond the critical angle of an n < 1 interface R = 1."""
        assert fresnel_full(0.1, 0.66) == 1.0

    def test_monotonic_in_angle(self):
        """The unpolarized reflectance grows toward grazing incidence."""
        values = [fresnel_full(c, 1.5) for c in np.linspace(1.0, 0.05, 20)]
        assert all(b >= a - 1e-12 for a, b in zip(values, values[1:]))

    @pytest.mark.parametrize("cos_theta", [1.0, 0.8, 0.4, 0.1])
    def test_schlick_derivative(self, cos_theta):
        """∂F/∂n of Schlick matches a central difference."""
        _, d = fresnel_schlick_grad(cos_theta, 1.6)
        assert d == pytest.approx(central(lambda n: fresnel_schlick(cos_theta, n), 1.6),
                                  rel=1e-6)

    @pytest.mark.parametrize("cos_theta", [1.0, 0.8, 0.4, 0.1])
    def test_exact_derivative(self, cos_theta):
        """∂F/∂n of the exact form matches a central difference."""
        _, d = fresnel_full_grad(cos_theta, 1.6)
        assert d == pytest.approx(central(lambda n: fresnel_full(cos_theta, n), 1.6),
                                  rel=1e-6)


class TestConductorFresnel:
    """Tests for complex-index Fresnel."""

    def test_zero_extinction_matches_dielectric(self):
        """With k = 0 the conductor form reduces to the dielectric one."""
        for c in (1.0, 0.7, 0.3):
            assert fresnel_conductor(c, 1.7, 0.0) == pytest.approx(fresnel_full(c, 1.7),
                                                                   abs=1e-12)

    @pytest.mark.parametrize("k", [math.inf, 1e9])
    def test_saturated_extinction_is_a_mirror(self, k):
        """Huge or infinite extinction saturates to R = 1 with zero gradient."""
        assert fresnel_conductor_grad(0.5, 1.0, k) == (1.0, 0.0, 0.0)

    def test_gold_is_reflective(self):
        """A typical metal reflects most of the light at normal incidence."""
        R = fresnel_conductor(1.0, 0.18, 3.0)
        assert 0.8 < R <= 1.0

    @pytest.mark.parametrize("cos_theta", [1.0, 0.6, 0.2])
    def test_derivatives(self, cos_theta):
        """∂R/∂n and ∂R/∂k match central differences."""
        n, k = 0.27, 3.41
        _, dn, dk = fresnel_conductor_grad(cos_theta, n, k)
        assert dn == pytest.approx(central(lambda x: fresnel_conductor(cos_theta, x, k), n),
                                   rel=1e-5, abs=1e-9)
        assert dk == pytest.approx(central(lambda x: fresnel_conductor(cos_theta, n, x), k),
                                   rel=1e-5, abs=1e-9)


class TestBeerLambert:
    """Tests for internal attenuation."""

    def test_identities(self):
        """Zero thickness or zero absorption transmits everything."""
        assert beer_lambert(0.0, 3.0) == 1.0
        assert beer_lambert(2.0, 0.0) == 1.0
        assert beer_lambert(2.0, 0.5) == pytest.approx(math.exp(-1.0))

    def test_derivatives(self):
        """∂T/∂d = −αT and ∂T/∂α = −dT."""
        T, dd, da = beer_lambert_grad(2.0, 0.5)
        assert dd == pytest.approx(-0.5 * T)
        assert da == pytest.approx(-2.0 * T)


class TestThinFilm:
    """Tests for Airy thin-film reflectance."""

    @pytest.mark.parametrize("cos_theta", [1.0, 0.8, 0.5])
    def test_zero_thickness_is_bare_substrate(self, cos_theta):
        """A film of zero thickness is invisible."""
        R = thin_film_reflectance(1.38, 0.0, cos_theta, 550.0, 1.52)
        assert R == pytest.approx(fresnel_full(cos_theta, 1.52), abs=1e-12)

    def test_quarter_wave_antireflection(self):
        """A quarter-wave MgF₂ layer reduces the reflectance of glass."""
        d = 550.0 / (4.0 * 1.38)
        assert thin_film_reflectance(1.38, d, 1.0, 550.0, 1.52) < fresnel_full(1.0, 1.52)

    def test_continuous_in_wavelength(self):
        """Neighbouring wavelengths give neighbouring reflectances."""
        wl = np.linspace(400.0, 700.0, 301)
        R = np.array([thin_film_reflectance(1.33, 350.0, 0.9, w, 1.0) for w in wl])
        assert np.all((R >= 0.0) & (R <= 1.0))
        assert np.max(np.abs(np.diff(R))) < 0.02

    def test_derivatives(self):
        """All three analytical partials match central differences."""
        n, d, c, wl, ns = 1.38, 120.0, 0.8, 550.0, 1.52
        _, dn, dd, ds = thin_film_grad(n, d, c, wl, ns)
        assert dn == pytest.approx(
            central(lambda x: thin_film_reflectance(x, d, c, wl, ns), n), rel=1e-5, abs=1e-9)
        assert dd == pytest.approx(
            central(lambda x: thin_film_reflectance(n, x, c, wl, ns), d), rel=1e-5, abs=1e-9)
        assert ds == pytest.approx(
            central(lambda x: thin_film_reflectance(n, d, c, wl, x), ns), rel=1e-5, abs=1e-9)


class TestMicrofacet:
    """Tests for Smith masking, hemispherical averages and the rough blend."""

    def test_smooth_surface_is_unmasked(self):
        """α² = 0 never masks."""
        assert smith_g1(0.3, 0.0) == pytest.approx(1.0)

    def test_normal_incidence_is_unmasked(self):
        """At normal incidence Λ = cosθ and G1 = 1."""
        assert smith_g1(1.0, 0.5) == pytest.approx(1.0)

    def test_masking_grows_with_roughness(self):
        """Rougher surfaces mask more at oblique incidence."""
        assert smith_g1(0.3, 0.5) < smith_g1(0.3, 0.1) < 1.0

    def test_smith_derivative(self):
        """∂G1/∂α² matches a central difference."""
        _, d = smith_g1_grad(0.4, 0.2)
        assert d == pytest.approx(central(lambda a: smith_g1(0.4, a), 0.2), rel=1e-6)

    def test_quadrature_weights(self):
        """The cosine-weighted weights integrate a constant to one."""
        mu, w = hemisphere_quadrature()
        assert w.sum() == pytest.approx(1.0)
        assert np.all((mu > 0.0) & (mu < 1.0))
        assert not w.flags.writeable

    def test_quadrature_is_cached(self):
        """The same arrays are returned for the same order."""
        assert hemisphere_quadrature(16)[0] is hemisphere_quadrature(16)[0]

    def test_invalid_order(self):
        with pytest.raises(ValueError):
            hemisphere_quadrature(1)

    def test_hemispherical_average_bounds(self):
        """The average lies between normal-incidence and grazing reflectance."""
        mu, w = hemisphere_quadrature()
        F, dF = hemispherical_dielectric_grad(1.5, True, mu, w)
        assert fresnel_full(1.0, 1.5) < F < 1.0
        assert dF > 0.0

    def test_rough_blend(self):
        """The blend interpolates between specular and average reflectance."""
        assert rough_blend(0.04, 0.1, 1.0) == pytest.approx(0.04)
        assert rough_blend(0.04, 0.1, 0.0) == pytest.approx(0.1)
        assert rough_blend(0.04, 0.1, 0.5) == pytest.approx(0.07)
