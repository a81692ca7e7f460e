# -*- coding: utf-8 -*-
"""Tests for structure-of-arrays batch evaluation."""

import math

import numpy as np
import pytest

from bsdf_models import DielectricBSDF
from bsdf_models.dispersion import CROWN, FLINT
from vitrum_batch import BatchMaterialInput, BatchResponse, evaluate_batch
from vitrum_errors import LengthMismatchError, ParameterDomainError
from vitrum_geometry import BSDFContext


@pytest.fixture
def materials():
    return BatchMaterialInput(
        ior=np.array([1.33, 1.52, 1.9, 2.4]),
        roughness=np.array([0.0, 0.1, 0.5, 1.0]),
        thickness=np.array([1.0, 2.0, 0.5, 10.0]),
        absorption=np.array([0.0, 0.2, 1.0, 0.05]),
    )


def _models(batch):
    return [DielectricBSDF(ior=n, roughness=r, thickness=d, absorption=a)
            for n, r, d, a in zip(batch.ior, batch.roughness, batch.thickness, batch.absorption)]


class TestBatchMaterialInput:
    """Tests for SOA construction and validation."""

    def test_length(self, materials):
        assert len(materials) == 4

    def test_arrays_are_read_only(self, materials):
        with pytest.raises(ValueError):
            materials.ior[0] = 1.7

    def test_input_is_copied(self):
        ior = np.array([1.5, 1.6])
        batch = BatchMaterialInput(ior, np.zeros(2), np.ones(2), np.zeros(2))
        ior[0] = 3.0
        assert batch.ior[0] == 1.5

    def test_length_mismatch(self):
        with pytest.raises(LengthMismatchError) as info:
            BatchMaterialInput(np.ones(3) * 1.5, np.zeros(2), np.ones(3), np.zeros(3))
        assert info.value.lengths["roughness"] == 2

    def test_domain_violation_names_the_entry(self):
        with pytest.raises(ParameterDomainError) as info:
            BatchMaterialInput(np.array([1.5, 1.5, 1.5]), np.array([0.0, 0.2, 1.4]),
                               np.ones(3), np.zeros(3))
        assert info.value.param == "roughness[2]"
        assert info.value.value == 1.4

    def test_nan_rejected(self):
        with pytest.raises(ParameterDomainError):
            BatchMaterialInput(np.array([math.nan]), np.zeros(1), np.ones(1), np.zeros(1))

    def test_must_be_one_dimensional(self):
        with pytest.raises(ValueError):
            BatchMaterialInput(np.ones((2, 2)) * 1.5, np.zeros(4), np.ones(4), np.zeros(4))

    def test_from_materials(self):
        batch = BatchMaterialInput.from_materials(
            [DielectricBSDF(ior=1.4), DielectricBSDF(ior=1.7, absorption=0.3)])
        np.testing.assert_array_equal(batch.ior, [1.4, 1.7])
        np.testing.assert_array_equal(batch.absorption, [0.0, 0.3])
        np.testing.assert_array_equal(batch.abbe, [math.inf, math.inf])

    def test_from_materials_keeps_dispersion(self):
        batch = BatchMaterialInput.from_materials(
            [DielectricBSDF.from_dispersion(FLINT), DielectricBSDF(ior=1.5)])
        np.testing.assert_array_equal(batch.abbe, [36.0, math.inf])

    def test_from_materials_rejects_mixed_fresnel(self):
        with pytest.raises(ValueError):
            BatchMaterialInput.from_materials(
                [DielectricBSDF(ior=1.5), DielectricBSDF(ior=1.5, fresnel="exact")])

    def test_abbe_domain(self):
        with pytest.raises(ParameterDomainError) as info:
            BatchMaterialInput(np.array([1.5, 1.5]), np.zeros(2), np.ones(2), np.zeros(2),
                               abbe=np.array([40.0, 0.5]))
        assert info.value.param == "abbe[1]"


class TestEvaluateBatch:
    """Tests for the vectorized dielectric evaluation."""

    @pytest.mark.parametrize("fresnel", ["schlick", "exact"])
    def test_matches_scalar_models(self, materials, fresnel):
        angles = np.array([0.0, 25.0, 50.0, 75.0])
        wavelengths = np.array([420.0, 550.0, 610.0, 700.0])
        contexts = [BSDFContext.from_angle(t, 0.0, wl) for t, wl in zip(angles, wavelengths)]
        cos = np.array([ctx.cos_theta_i for ctx in contexts])
        out = evaluate_batch(materials, cos, wavelengths, fresnel=fresnel)
        for i, model in enumerate(_models(materials)):
            model.fresnel = fresnel
            ref = model.evaluate(contexts[i])
            assert out.reflectance[i] == pytest.approx(ref.reflectance, rel=1e-12, abs=1e-15)
            assert out.transmittance[i] == pytest.approx(ref.transmittance, rel=1e-12, abs=1e-15)
            assert out.absorption[i] == pytest.approx(ref.absorption, rel=1e-12, abs=1e-15)

    def test_deterministic(self, materials):
        a = evaluate_batch(materials, 0.7)
        b = evaluate_batch(materials, 0.7)
        np.testing.assert_array_equal(a.reflectance, b.reflectance)
        np.testing.assert_array_equal(a.transmittance, b.transmittance)
        np.testing.assert_array_equal(a.absorption, b.absorption)

    def test_scalar_broadcast(self, materials):
        scalar = evaluate_batch(materials, 0.5, 600.0)
        arrays = evaluate_batch(materials, np.full(4, 0.5), np.full(4, 600.0))
        np.testing.assert_array_equal(scalar.reflectance, arrays.reflectance)

    def test_conserves_energy(self, materials):
        for cos in (0.0, 0.3, 1.0):
            out = evaluate_batch(materials, cos)
            assert np.all(out.energy_error() < 1e-6)
            assert np.all(out.reflectance >= 0.0)

    def test_length_mismatch(self, materials):
        with pytest.raises(LengthMismatchError):
            evaluate_batch(materials, np.array([1.0, 0.5]))

    @pytest.mark.parametrize("fresnel", ["schlick", "exact"])
    def test_dispersive_glass_matches_scalar_model(self, fresnel):
        """Finite Abbe numbers flow through the batch exactly as through the model."""
        models = [DielectricBSDF.from_dispersion(FLINT, fresnel=fresnel),
                  DielectricBSDF.from_dispersion(CROWN, roughness=0.2, fresnel=fresnel)]
        batch = BatchMaterialInput.from_materials(models)
        ctx = BSDFContext.simple(1.0, 450.0)
        out = evaluate_batch(batch, ctx.cos_theta_i, ctx.wavelength, fresnel=fresnel)
        for i, model in enumerate(models):
            ref = model.evaluate(ctx)
            assert out.reflectance[i] == pytest.approx(ref.reflectance, rel=1e-12, abs=1e-15)
            assert out.transmittance[i] == pytest.approx(ref.transmittance, rel=1e-12, abs=1e-15)

    @pytest.mark.parametrize("wavelength", [0.0, -550.0, math.inf, math.nan])
    def test_invalid_wavelength(self, materials, wavelength):
        with pytest.raises(ValueError):
            evaluate_batch(materials, 1.0, wavelength)

    def test_invalid_wavelength_names_the_entry(self, materials):
        with pytest.raises(ValueError, match=r"wavelength\[2\]"):
            evaluate_batch(materials, 1.0, np.array([500.0, 550.0, 0.0, 600.0]))

    def test_invalid_fresnel(self, materials):
        with pytest.raises(ValueError):
            evaluate_batch(materials, fresnel="fast")

    def test_empty_batch(self):
        empty = BatchMaterialInput(np.empty(0), np.empty(0), np.empty(0), np.empty(0))
        assert len(evaluate_batch(empty)) == 0


class TestBatchResponse:
    def test_to_responses(self, materials):
        out = evaluate_batch(materials, 0.8)
        responses = out.to_responses()
        assert len(responses) == 4
        assert responses[2].reflectance == out.reflectance[2]

    def test_energy_error(self):
        resp = BatchResponse(np.array([0.1, 0.5]), np.array([0.9, 0.4]), np.array([0.0, 0.0]))
        np.testing.assert_allclose(resp.energy_error(), [0.0, 0.1], atol=1e-15)
