# -*- coding: utf-8 -*-
"""Tests for the BSDF model variants and the energy audit."""

import math

import numpy as np
import pytest

from bsdf_models import (
    AnisotropicBSDF,
    ConductorBSDF,
    DielectricBSDF,
    LambertianBSDF,
    ThinFilmBSDF,
)
from bsdf_models.dispersion import (
    CROWN,
    FLINT,
    LAMBDA_C,
    LAMBDA_D,
    LAMBDA_F,
    DispersionModel,
    cauchy_abbe_grad,
)
from vitrum_bsdf import (
    BSDFResponse,
    EnergyValidation,
    evaluate_rgb,
    evaluate_spectral,
    validate_energy_conservation,
)
from vitrum_errors import EnergyConservationError, ParameterDomainError
from vitrum_geometry import BSDFContext
from vitrum_optics import fresnel_full

MODEL_LABELS = [
    "dielectric", "dielectric_exact", "dielectric_dispersive", "conductor",
    "thin_film", "lambertian", "anisotropic", "anisotropic_metal",
    "layered", "layered_multi",
]


class TestBSDFResponse:
    """Tests for the energy partition value type."""

    def test_pure_reflection(self):
        r = BSDFResponse.pure_reflection(0.3)
        assert (r.reflectance, r.transmittance, r.absorption) == (0.3, 0.0, 0.7)

    def test_pure_transmission(self):
        r = BSDFResponse.pure_transmission(1.0)
        assert (r.reflectance, r.transmittance, r.absorption) == (0.0, 1.0, 0.0)

    def test_validate_passes(self):
        report = BSDFResponse(0.2, 0.5, 0.3).validate()
        assert report.conserved
        assert report.error == pytest.approx(0.0, abs=1e-15)

    def test_validate_detects_excess_energy(self):
        report = BSDFResponse(0.5, 0.6, 0.0).validate()
        assert not report.conserved
        assert report.error == pytest.approx(0.1)
        with pytest.raises(EnergyConservationError):
            report.raise_if_failed("unit test")

    def test_validate_detects_negative_component(self):
        """Summing to one is not enough; each component must lie in [0, 1]."""
        report = BSDFResponse(1.2, 0.0, -0.2).validate()
        assert not report.conserved
        assert "outside [0, 1]" in report.details

    def test_non_finite_response_fails(self):
        assert not BSDFResponse(math.nan, 0.0, 0.0).is_energy_conserved()

    def test_passed_report_does_not_raise(self):
        EnergyValidation.passed(1e-9).raise_if_failed()


class TestEnergyConservation:
    """Every model conserves energy over the standard sweep."""

    @pytest.mark.parametrize("label", MODEL_LABELS)
    def test_sweep(self, all_models, label):
        """R + T + A = 1 within 1e-6 for all angles and wavelengths."""
        report = validate_energy_conservation(all_models[label])
        assert report.conserved, report.details
        assert report.error < 1e-6

    @pytest.mark.parametrize("label", MODEL_LABELS)
    def test_components_in_unit_interval(self, all_models, label):
        bsdf = all_models[label]
        for theta in (0.0, 40.0, 80.0, 89.0):
            resp = bsdf.evaluate(BSDFContext.from_angle(theta, 20.0, 500.0))
            for value in resp.as_array():
                assert -1e-12 <= value <= 1.0 + 1e-12

    def test_sweep_reports_location(self):
        """A failing model is reported with the angle and wavelength."""

        class Broken:
            def evaluate(self, context):
                return BSDFResponse(0.7, 0.7, 0.0)

        report = validate_energy_conservation(Broken(), angles_deg=[10.0], wavelengths=[500.0])
        assert not report.conserved
        assert "10" in report.details and "500" in report.details


class TestDeterminism:
    """Repeated evaluation gives bit-identical results."""

    @pytest.mark.parametrize("label", MODEL_LABELS)
    def test_repeated_evaluate(self, all_models, label, oblique_context):
        bsdf = all_models[label]
        first = bsdf.evaluate(oblique_context)
        for _ in range(3):
            assert bsdf.evaluate(oblique_context) == first

    @pytest.mark.parametrize("label", MODEL_LABELS)
    def test_repeated_gradients(self, all_models, label, oblique_context):
        bsdf = all_models[label]
        resp_a, grads_a = bsdf.eval_with_gradients(oblique_context)
        resp_b, grads_b = bsdf.eval_with_gradients(oblique_context)
        assert resp_a == resp_b
        assert grads_a.names == grads_b.names
        np.testing.assert_array_equal(grads_a.matrix, grads_b.matrix)

    def test_copy_evaluates_identically(self, all_models, oblique_context):
        """An unchanged ``with_params`` copy reproduces the original exactly."""
        bsdf = all_models["layered"]
        assert bsdf.with_params({}).evaluate(oblique_context) == bsdf.evaluate(oblique_context)


class TestDielectricBSDF:
    """Tests for the dielectric interface."""

    def test_defaults(self):
        d = DielectricBSDF()
        assert d.get_params() == {"ior": 1.5, "roughness": 0.0, "absorption": 0.0,
                                  "thickness": 1.0, "abbe": math.inf}

    def test_normal_incidence_schlick(self, normal_context):
        """Schlick F0 for n = 1.5 is 0.04; lossless glass transmits the rest."""
        resp = DielectricBSDF(ior=1.5).evaluate(normal_context)
        assert resp.reflectance == pytest.approx(0.04)
        assert resp.transmittance == pytest.approx(0.96)
        assert resp.absorption == pytest.approx(0.0, abs=1e-15)

    def test_exact_fresnel(self, oblique_context):
        resp = DielectricBSDF(ior=1.5, fresnel="exact").evaluate(oblique_context)
        assert resp.reflectance == pytest.approx(fresnel_full(oblique_context.cos_theta_i, 1.5))

    def test_absorption_follows_beer_lambert(self, normal_context):
        resp = DielectricBSDF(ior=1.5, absorption=0.5, thickness=2.0).evaluate(normal_context)
        assert resp.transmittance == pytest.approx(0.96 * math.exp(-1.0))
        assert resp.absorption == pytest.approx(0.96 * (1.0 - math.exp(-1.0)))

    def test_roughness_invisible_at_normal_incidence(self, normal_context):
        """At normal incidence nothing is masked, so roughness has no effect there."""
        smooth = DielectricBSDF(ior=1.5).evaluate(normal_context)
        rough = DielectricBSDF(ior=1.5, roughness=0.5).evaluate(normal_context)
        assert rough.reflectance == pytest.approx(smooth.reflectance)

    def test_roughness_changes_oblique_reflectance(self):
        ctx = BSDFContext.from_angle(70.0)
        smooth = DielectricBSDF(ior=1.5).evaluate(ctx)
        rough = DielectricBSDF(ior=1.5, roughness=0.8).evaluate(ctx)
        assert rough.reflectance != pytest.approx(smooth.reflectance)

    def test_presets(self):
        assert DielectricBSDF.glass().ior == 1.52
        assert DielectricBSDF.water().ior == 1.33
        assert DielectricBSDF.diamond().ior == 2.42
        assert DielectricBSDF.frosted_glass().roughness == 0.3

    def test_dispersion(self):
        """A dispersive glass reflects more in the blue than in the red."""
        flint = DielectricBSDF.from_dispersion(FLINT, fresnel="exact")
        rgb = evaluate_rgb(flint, BSDFContext.simple(1.0))
        assert rgb[2] > rgb[1] > rgb[0]
        assert flint.ior_at(LAMBDA_D) == pytest.approx(1.62)

    def test_non_dispersive_is_flat(self):
        glass = DielectricBSDF(ior=1.52)
        spec = evaluate_spectral(glass, BSDFContext.simple(1.0), [400.0, 550.0, 700.0])
        assert spec.shape == (3, 3)
        assert np.ptp(spec[:, 0]) == 0.0

    def test_invalid_ior(self):
        with pytest.raises(ParameterDomainError) as info:
            DielectricBSDF(ior=0.5)
        assert info.value.param == "ior"

    def test_invalid_fresnel_mode(self):
        with pytest.raises(ValueError):
            DielectricBSDF(fresnel="fast")

    def test_unknown_parameter(self):
        with pytest.raises(ValueError):
            DielectricBSDF(ior=1.5, colour=3.0)

    def test_non_numeric_parameter(self):
        with pytest.raises(TypeError):
            DielectricBSDF(ior="1.5")

    def test_hybrid_params(self):
        """Keyword arguments override the params dict."""
        d = DielectricBSDF(params={"ior": 1.4, "roughness": 0.2}, ior=1.6)
        assert d.ior == 1.6
        assert d.roughness == 0.2


class TestParameterAPI:
    """Tests for the shared get/set/with parameter interface."""

    def test_set_param(self):
        d = DielectricBSDF(ior=1.5)
        d.set_param("roughness", 0.4)
        assert d.roughness == 0.4

    def test_set_param_unknown(self):
        with pytest.raises(KeyError):
            DielectricBSDF().set_param("k", 1.0)

    def test_set_param_out_of_domain(self):
        with pytest.raises(ParameterDomainError):
            DielectricBSDF().set_param("roughness", 2.0)

    def test_with_params_does_not_mutate(self):
        d = DielectricBSDF(ior=1.5)
        e = d.with_params({"ior": 1.7})
        assert d.ior == 1.5
        assert e.ior == 1.7
        assert e.fresnel == d.fresnel

    def test_get_params_is_a_copy(self):
        d = DielectricBSDF(ior=1.5)
        d.get_params()["ior"] = 9.0
        assert d.ior == 1.5

    def test_material_params(self):
        p = DielectricBSDF(ior=1.5, roughness=0.2).material_params(("ior", "roughness"))
        assert p.as_dict() == {"ior": 1.5, "roughness": 0.2}

    def test_repr(self):
        assert repr(LambertianBSDF(albedo=0.5)) == "LambertianBSDF(albedo=0.5)"


class TestDispersionModel:
    """Tests for the Cauchy model built from (n_d, V_d)."""

    def test_index_at_d_line(self):
        assert CROWN.ior(LAMBDA_D) == pytest.approx(1.52)

    def test_abbe_number_is_reproduced(self):
        """V_d = (n_d − 1) / (n_F − n_C)."""
        model = DispersionModel(1.6, 40.0)
        v = (model.ior(LAMBDA_D) - 1.0) / (model.ior(LAMBDA_F) - model.ior(LAMBDA_C))
        assert v == pytest.approx(40.0)

    def test_array_matches_scalar(self):
        wl = np.array([420.0, 550.0, 680.0])
        np.testing.assert_allclose(FLINT.ior_array(wl), [FLINT.ior(w) for w in wl], rtol=1e-12)

    def test_infinite_abbe(self):
        assert DispersionModel(1.5).ior(400.0) == pytest.approx(1.5)

    def test_index_never_drops_below_vacuum(self):
        """A weak, strongly dispersive glass is clamped at n = 1 in the infrared."""
        model = DispersionModel(1.01, 1.0)
        assert model.ior(2000.0) == 1.0
        np.testing.assert_array_equal(model.ior_array(np.array([2000.0])), [1.0])
        assert cauchy_abbe_grad(1.01, 1.0, 2000.0) == (1.0, 0.0, 0.0)
        glass = DielectricBSDF(ior=1.01, abbe=1.0, fresnel="exact")
        resp = glass.evaluate(BSDFContext.simple(1.0, 2000.0))
        assert resp.reflectance == 0.0
        assert resp.is_energy_conserved()

    @pytest.mark.parametrize("n_d,abbe", [(0.9, 50.0), (1.5, 0.0)])
    def test_invalid(self, n_d, abbe):
        with pytest.raises(ValueError):
            DispersionModel(n_d, abbe)


class TestConductorBSDF:
    """Tests for the metal model."""

    def test_opaque(self, oblique_context):
        resp = ConductorBSDF(n=0.18, k=3.0).evaluate(oblique_context)
        assert resp.transmittance == 0.0
        assert resp.absorption == pytest.approx(1.0 - resp.reflectance)

    def test_requires_k(self):
        with pytest.raises(ValueError):
            ConductorBSDF(n=0.2)

    def test_from_metal(self):
        gold = ConductorBSDF.from_metal("Gold", wavelength=650.0)
        assert (gold.n, gold.k) == (0.18, 3.00)

    def test_unknown_metal(self):
        with pytest.raises(KeyError):
            ConductorBSDF.from_metal("unobtainium")

    def test_infinite_extinction_is_a_mirror(self, normal_context):
        resp = ConductorBSDF(n=1.0, k=1e12).evaluate(normal_context)
        assert resp.reflectance == 1.0


class TestThinFilmBSDF:
    """Tests for the interference coating."""

    @pytest.mark.parametrize("theta", [0.0, 30.0, 60.0])
    def test_zero_thickness_is_bare_substrate(self, theta):
        ctx = BSDFContext.from_angle(theta)
        resp = ThinFilmBSDF(film_ior=1.38, thickness=0.0, substrate_ior=1.52).evaluate(ctx)
        assert resp.reflectance == pytest.approx(fresnel_full(ctx.cos_theta_i, 1.52), abs=1e-12)

    def test_lossless(self, oblique_context):
        resp = ThinFilmBSDF.soap_bubble().evaluate(oblique_context)
        assert resp.absorption == 0.0
        assert resp.transmittance == pytest.approx(1.0 - resp.reflectance)

    def test_anti_reflective(self, normal_context):
        coated = ThinFilmBSDF.anti_reflective().evaluate(normal_context)
        bare = DielectricBSDF(ior=1.52, fresnel="exact").evaluate(normal_context)
        assert coated.reflectance < bare.reflectance

    def test_iridescence(self):
        """A soap film's reflectance varies across the visible spectrum."""
        spec = evaluate_spectral(ThinFilmBSDF.soap_bubble(), BSDFContext.simple(1.0),
                                 np.linspace(400.0, 700.0, 31))
        assert np.ptp(spec[:, 0]) > 0.01

    def test_requires_thickness(self):
        with pytest.raises(ValueError):
            ThinFilmBSDF(film_ior=1.38)


class TestLambertianBSDF:
    """Tests for the diffuse model."""

    @pytest.mark.parametrize("theta", [0.0, 45.0, 85.0])
    def test_albedo_is_reflectance(self, theta):
        resp = LambertianBSDF(albedo=0.6).evaluate(BSDFContext.from_angle(theta))
        assert resp.reflectance == 0.6
        assert resp.transmittance == 0.0
        assert resp.absorption == pytest.approx(0.4)

    def test_presets(self):
        assert LambertianBSDF.white().albedo == 0.9
        assert LambertianBSDF.gray().albedo == 0.5
        assert LambertianBSDF.black().albedo == 0.05

    def test_albedo_domain(self):
        with pytest.raises(ParameterDomainError):
            LambertianBSDF(albedo=1.5)


class TestAnisotropicBSDF:
    """Tests for the anisotropic microfacet model."""

    def test_isotropic_limit_matches_dielectric(self):
        """Equal roughnesses reproduce the isotropic dielectric."""
        ctx = BSDFContext.from_angle(60.0, 35.0)
        aniso = AnisotropicBSDF(roughness_x=0.4, roughness_y=0.4, ior=1.5).evaluate(ctx)
        iso = DielectricBSDF(ior=1.5, roughness=0.4).evaluate(ctx)
        assert aniso.reflectance == pytest.approx(iso.reflectance, rel=1e-12)
        assert aniso.transmittance == pytest.approx(iso.transmittance, rel=1e-12)

    def test_isotropic_limit_matches_conductor(self):
        ctx = BSDFContext.from_angle(50.0, 70.0)
        aniso = AnisotropicBSDF(roughness_x=0.3, roughness_y=0.3, kind="conductor",
                                n=0.27, k=3.41).evaluate(ctx)
        iso = ConductorBSDF(n=0.27, k=3.41, roughness=0.3).evaluate(ctx)
        assert aniso.reflectance == pytest.approx(iso.reflectance, rel=1e-12)

    def test_response_depends_on_azimuth(self):
        bsdf = AnisotropicBSDF(roughness_x=0.1, roughness_y=0.8, ior=1.5)
        along = bsdf.evaluate(BSDFContext.from_angle(70.0, 0.0))
        across = bsdf.evaluate(BSDFContext.from_angle(70.0, 90.0))
        assert along.reflectance != pytest.approx(across.reflectance)

    def test_parameter_sets(self):
        assert AnisotropicBSDF().parameter_names() == ("ior", "roughness_x", "roughness_y")
        metal = AnisotropicBSDF.from_metal("aluminum", 0.2, 0.5)
        assert metal.is_conductor
        assert metal.parameter_names() == ("n", "k", "roughness_x", "roughness_y")
        assert metal.evaluate(BSDFContext.simple(0.8)).transmittance == 0.0

    def test_from_roughness_anisotropy(self):
        iso = AnisotropicBSDF.from_roughness_anisotropy(0.5, 0.0)
        assert iso.roughness_x == pytest.approx(0.5)
        assert iso.roughness_y == pytest.approx(0.5)
        stretched = AnisotropicBSDF.from_roughness_anisotropy(0.5, 0.5)
        assert stretched.roughness_x > stretched.roughness_y

    def test_invalid_kind(self):
        with pytest.raises(ValueError):
            AnisotropicBSDF(kind="plastic")

    def test_conductor_requires_index(self):
        with pytest.raises(ValueError):
            AnisotropicBSDF(kind="conductor", n=1.0)
