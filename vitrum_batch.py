# -*- coding: utf-8 -*-
"""
Vitrum: Differentiable glass physics for material calibration
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Module: vitrum_batch.py — Structure-of-arrays evaluation of many dielectrics.

``BatchMaterialInput`` holds one contiguous float64 array per material
field, the layout accelerator back-ends consume. ``evaluate_batch`` runs the
same kernel as ``DielectricBSDF`` over every entry in parallel, so entry i
of the result is bit-identical to evaluating the i-th material on its own
with the same Fresnel mode.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Union

import numpy as np
from numba import njit, prange

from bsdf_models.dielectric import DielectricBSDF, FRESNEL_MODES, dielectric_kernel
from vitrum_bsdf import BSDFResponse
from vitrum_errors import LengthMismatchError, ParameterDomainError
from vitrum_optics import hemisphere_quadrature
from vitrum_params import UNBOUNDED_PARAMETERS, physical_interval

__all__ = ["BatchMaterialInput", "BatchResponse", "evaluate_batch"]

ArrayLike = Union[float, Sequence[float], np.ndarray]

_FIELDS = ("ior", "roughness", "thickness", "absorption", "abbe")


def _frozen(arr: np.ndarray) -> np.ndarray:
    out = np.ascontiguousarray(arr, dtype=np.float64).copy()
    out.setflags(write=False)
    return out


@dataclass(slots=True, frozen=True)
class BatchMaterialInput:
    """
    SOA block of N dielectric materials.

    ``abbe`` defaults to +inf (no dispersion) for every entry.

    Raises:
        LengthMismatchError: If the fields differ in length.
        ParameterDomainError: If any entry is outside its physical interval.
    """
    ior:        np.ndarray
    roughness:  np.ndarray
    thickness:  np.ndarray
    absorption: np.ndarray
    abbe:       Optional[np.ndarray] = None

    def __post_init__(self) -> None:
        if self.abbe is None:
            object.__setattr__(self, "abbe",
                               np.full(np.asarray(self.ior).shape, math.inf))
        arrays: Dict[str, np.ndarray] = {}
        for name in _FIELDS:
            arr = np.asarray(getattr(self, name), dtype=np.float64)
            if arr.ndim != 1:
                raise ValueError(f"BatchMaterialInput.{name} must be 1-D, got shape {arr.shape}")
            arrays[name] = arr
        lengths = {name: arr.size for name, arr in arrays.items()}
        if len(set(lengths.values())) > 1:
            raise LengthMismatchError(lengths, "BatchMaterialInput:")

        for name, arr in arrays.items():
            lo, hi = physical_interval(name)
            allowed = np.isfinite(arr)
            if name in UNBOUNDED_PARAMETERS:
                allowed |= arr == math.inf
            bad = ~((arr >= lo) & (arr <= hi) & allowed)
            if bad.any():
                i = int(np.argmax(bad))
                raise ParameterDomainError(f"{name}[{i}]", float(arr[i]), (lo, hi),
                                           "BatchMaterialInput")
            object.__setattr__(self, name, _frozen(arr))

    @classmethod
    def from_materials(cls, materials: Sequence[DielectricBSDF]) -> BatchMaterialInput:
        """
        Gather the SOA fields from individual models.

        The Fresnel mode is not part of the block; pass it to
        ``evaluate_batch``. Mixing modes in one batch is rejected.

        Raises:
            ValueError: If the materials use different Fresnel modes.
        """
        modes = {m.fresnel for m in materials}
        if len(modes) > 1:
            raise ValueError(
                f"BatchMaterialInput.from_materials: mixed Fresnel modes {sorted(modes)}"
            )
        return cls(
            ior=np.array([m.ior for m in materials]),
            roughness=np.array([m.roughness for m in materials]),
            thickness=np.array([m.thickness for m in materials]),
            absorption=np.array([m.absorption for m in materials]),
            abbe=np.array([m.abbe for m in materials]),
        )

    def __len__(self) -> int:
        return int(self.ior.size)


@dataclass(slots=True, frozen=True)
class BatchResponse:
    """SOA energy partition, one entry per material."""
    reflectance:   np.ndarray
    transmittance: np.ndarray
    absorption:    np.ndarray

    def __len__(self) -> int:
        return int(self.reflectance.size)

    def to_responses(self) -> List[BSDFResponse]:
        return [BSDFResponse(float(r), float(t), float(a))
                for r, t, a in zip(self.reflectance, self.transmittance, self.absorption)]

    def energy_error(self) -> np.ndarray:
        """|R + T + A − 1| per entry."""
        return np.abs(self.reflectance + self.transmittance + self.absorption - 1.0)


@njit(cache=True, parallel=True)
def _batch_dielectric(cos_i: np.ndarray, wavelength: np.ndarray, ior: np.ndarray,
                      roughness: np.ndarray, absorption: np.ndarray,
                      thickness: np.ndarray, abbe: np.ndarray, exact: bool,
                      mu: np.ndarray, weights: np.ndarray) -> np.ndarray:
    n = ior.shape[0]
    out = np.empty((3, n), dtype=np.float64)
    for i in prange(n):
        R, T, A, _ = dielectric_kernel(cos_i[i], wavelength[i], ior[i], roughness[i],
                                       absorption[i], thickness[i], abbe[i], exact,
                                       mu, weights)
        out[0, i] = R
        out[1, i] = T
        out[2, i] = A
    return out


def _broadcast(name: str, value: ArrayLike, n: int) -> np.ndarray:
    arr = np.asarray(value, dtype=np.float64)
    if arr.ndim == 0:
        return np.full(n, float(arr))
    if arr.shape != (n,):
        raise LengthMismatchError({"materials": n, name: int(arr.size)}, "evaluate_batch:")
    return np.ascontiguousarray(arr)


def evaluate_batch(materials: BatchMaterialInput, cos_theta: ArrayLike = 1.0,
                   wavelength: ArrayLike = 550.0,
                   fresnel: str = "schlick") -> BatchResponse:
    """
    Evaluate every material of the batch.

    Args:
        materials: SOA material block of length N.
        cos_theta: Incidence cosine, scalar or length-N array.
        wavelength: Wavelength in nm, scalar or length-N array.
        fresnel: "schlick" or "exact", as for ``DielectricBSDF``.

    Raises:
        LengthMismatchError: If an array argument is not length N.
        ValueError: If a wavelength is not positive and finite.
    """
    if fresnel not in FRESNEL_MODES:
        raise ValueError(f"fresnel must be one of {FRESNEL_MODES}, got {fresnel!r}")
    n = len(materials)
    cos_i = np.clip(_broadcast("cos_theta", cos_theta, n), 0.0, 1.0)
    wl = _broadcast("wavelength", wavelength, n)
    bad = ~((wl > 0.0) & np.isfinite(wl))
    if bad.any():
        i = int(np.argmax(bad))
        raise ValueError(
            f"wavelength[{i}] must be a positive finite number (nm), got {float(wl[i])!r}"
        )
    mu, w = hemisphere_quadrature()
    out = _batch_dielectric(cos_i, wl, materials.ior, materials.roughness,
                            materials.absorption, materials.thickness, materials.abbe,
                            fresnel == "exact", mu, w)
    return BatchResponse(out[0].copy(), out[1].copy(), out[2].copy())
