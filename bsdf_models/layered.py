# -*- coding: utf-8 -*-
"""
Vitrum: Differentiable glass physics for material calibration
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Module: layered.py — Stacks of BSDFs evaluated top-down.

Two composition policies are available:

``single_pass`` (default)
    Light crosses each layer at most once. With Pᵢ = Π_{j<i} tⱼ the
    fraction reaching layer i,

        R = Σ Pᵢ·rᵢ,   A = Σ Pᵢ·aᵢ,   T = P_N

    which telescopes to R + T + A = 1 whenever every layer conserves energy.

``multi_bounce``
    Incoherent inter-layer reflections are summed to all orders with the
    real-valued Redheffer star product. Layers are reciprocal, so each one
    enters the product as (r, t, t, r). A = 1 − R − T.

Parameters of nested layers are exposed as ``layer{i}.{name}`` and their
derivatives follow the chain rule through the chosen policy.
"""

from __future__ import annotations

from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
from numba import njit

from vitrum_bsdf import BSDFResponse
from vitrum_differentiable import ParameterGradients
from vitrum_geometry import BSDFContext
from vitrum_params import MaterialParams

from .base import BSDF, Number

__all__ = ["LayeredBSDF", "COMPOSITIONS", "redheffer_star", "redheffer_star_tangent"]

COMPOSITIONS = ("single_pass", "multi_bounce")

DBL_EPSILON = np.finfo(np.float64).eps


# ═══════════════════════════════════════════════════════════════════════════════
# 1. Intensity star product
# ═══════════════════════════════════════════════════════════════════════════════
# Scattering blocks are ordered (R_front, T_backward, T_forward, R_back).

@njit(cache=True, inline='always')
def _inv_denominator(ra_Rb: float, rb_Rf: float) -> float:
    denom = 1.0 - ra_Rb * rb_Rf
    if np.abs(denom) < DBL_EPSILON:
        return 0.0
    return 1.0 / denom


@njit(cache=True)
def redheffer_star(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """
    Real-valued intensity Redheffer star product a ⋆ b (a on top).

    Sums the geometric series of reflections bouncing between the two
    sub-stacks.
    """
    ra_Rf, ra_Tb, ra_Tf, ra_Rb = a[0], a[1], a[2], a[3]
    rb_Rf, rb_Tb, rb_Tf, rb_Rb = b[0], b[1], b[2], b[3]
    inv_denom = _inv_denominator(ra_Rb, rb_Rf)

    out = np.empty(4)
    out[0] = ra_Rf + ra_Tb * rb_Rf * ra_Tf * inv_denom
    out[1] = ra_Tb * rb_Tb * inv_denom
    out[2] = rb_Tf * ra_Tf * inv_denom
    out[3] = rb_Rb + rb_Tf * ra_Rb * rb_Tb * inv_denom
    return out


@njit(cache=True)
def redheffer_star_tangent(a: np.ndarray, da: np.ndarray,
                           b: np.ndarray, db: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    Star product together with its forward-mode derivative.

    Args:
        a, b: (4,) scattering blocks.
        da, db: (4, P) tangents of ``a`` and ``b`` along P directions.

    Returns:
        (a ⋆ b, d(a ⋆ b)) with shapes (4,) and (4, P).
    """
    ra_Rf, ra_Tb, ra_Tf, ra_Rb = a[0], a[1], a[2], a[3]
    rb_Rf, rb_Tb, rb_Tf, rb_Rb = b[0], b[1], b[2], b[3]
    inv = _inv_denominator(ra_Rb, rb_Rf)

    out = np.empty(4)
    out[0] = ra_Rf + ra_Tb * rb_Rf * ra_Tf * inv
    out[1] = ra_Tb * rb_Tb * inv
    out[2] = rb_Tf * ra_Tf * inv
    out[3] = rb_Rb + rb_Tf * ra_Rb * rb_Tb * inv

    n_dir = da.shape[1]
    d_out = np.empty((4, n_dir))
    for j in range(n_dir):
        d_ra_Rf, d_ra_Tb, d_ra_Tf, d_ra_Rb = da[0, j], da[1, j], da[2, j], da[3, j]
        d_rb_Rf, d_rb_Tb, d_rb_Tf, d_rb_Rb = db[0, j], db[1, j], db[2, j], db[3, j]
        # d(1/D) = −(1/D)²·dD with D = 1 − ra_Rb·rb_Rf
        d_inv = inv * inv * (d_ra_Rb * rb_Rf + ra_Rb * d_rb_Rf)

        d_out[0, j] = (d_ra_Rf
                       + (d_ra_Tb * rb_Rf * ra_Tf + ra_Tb * d_rb_Rf * ra_Tf
                          + ra_Tb * rb_Rf * d_ra_Tf) * inv
                       + ra_Tb * rb_Rf * ra_Tf * d_inv)
        d_out[1, j] = ((d_ra_Tb * rb_Tb + ra_Tb * d_rb_Tb) * inv
                       + ra_Tb * rb_Tb * d_inv)
        d_out[2, j] = ((d_rb_Tf * ra_Tf + rb_Tf * d_ra_Tf) * inv
                       + rb_Tf * ra_Tf * d_inv)
        d_out[3, j] = (d_rb_Rb
                       + (d_rb_Tf * ra_Rb * rb_Tb + rb_Tf * d_ra_Rb * rb_Tb
                          + rb_Tf * ra_Rb * d_rb_Tb) * inv
                       + rb_Tf * ra_Rb * rb_Tb * d_inv)
    return out, d_out


def _block(response: BSDFResponse) -> np.ndarray:
    r, t = response.reflectance, response.transmittance
    return np.array([r, t, t, r])


def _block_tangent(grads: ParameterGradients) -> np.ndarray:
    dr = grads.reflectance
    dt = grads.transmittance
    return np.vstack([dr, dt, dt, dr])


# ═══════════════════════════════════════════════════════════════════════════════
# 2. LayeredBSDF
# ═══════════════════════════════════════════════════════════════════════════════

class LayeredBSDF(BSDF):
    """
    Ordered stack of BSDFs, top layer first.

    The stack owns copies of the layers it is given, so later changes to
    the originals do not leak into it.

    Examples:
        coated = LayeredBSDF([ThinFilmBSDF.anti_reflective(), DielectricBSDF.glass()])
        coated.set_param("layer0.thickness", 110.0)
    """

    def __init__(self, layers: Sequence[BSDF] = (),
                 composition: str = "single_pass"):
        if composition not in COMPOSITIONS:
            raise ValueError(
                f"composition must be one of {COMPOSITIONS}, got {composition!r}"
            )
        for i, layer in enumerate(layers):
            if not isinstance(layer, BSDF):
                raise TypeError(
                    f"Layer {i} must be a BSDF, got {type(layer).__name__}"
                )
        self.layers: Tuple[BSDF, ...] = tuple(layer.with_params({}) for layer in layers)
        self.composition = composition

    # -- Parameter routing --------------------------------------------------

    @property
    def params(self) -> Dict[str, float]:
        return self.get_params()

    def _route(self, name: str) -> Tuple[int, str]:
        head, sep, rest = name.partition(".")
        if not sep or not head.startswith("layer") or not head[5:].isdigit():
            raise KeyError(f"LayeredBSDF has no parameter '{name}'")
        idx = int(head[5:])
        if idx >= len(self.layers):
            raise KeyError(
                f"'{name}' addresses layer {idx} of a {len(self.layers)}-layer stack"
            )
        return idx, rest

    def parameter_names(self) -> Tuple[str, ...]:
        names: List[str] = []
        for i, layer in enumerate(self.layers):
            names.extend(f"layer{i}.{n}" for n in layer.parameter_names())
        return tuple(names)

    def get_params(self) -> Dict[str, float]:
        merged: Dict[str, float] = {}
        for i, layer in enumerate(self.layers):
            for n, v in layer.get_params().items():
                merged[f"layer{i}.{n}"] = v
        return merged

    def set_param(self, param_name: str, value: Number) -> None:
        idx, sub = self._route(param_name)
        self.layers[idx].set_param(sub, value)

    def with_params(self, updates: Union[Mapping[str, Number], MaterialParams]) -> LayeredBSDF:
        items = updates.as_dict() if isinstance(updates, MaterialParams) else updates
        per_layer: Dict[int, Dict[str, Number]] = {}
        for name, value in items.items():
            idx, sub = self._route(name)
            per_layer.setdefault(idx, {})[sub] = value
        layers = [layer.with_params(per_layer.get(i, {}))
                  for i, layer in enumerate(self.layers)]
        return LayeredBSDF(layers, self.composition)

    def add_layer(self, layer: BSDF) -> LayeredBSDF:
        """Return a new stack with ``layer`` appended at the bottom."""
        return LayeredBSDF(list(self.layers) + [layer], self.composition)

    def __len__(self) -> int:
        return len(self.layers)

    # -- Evaluation ---------------------------------------------------------

    def eval_with_gradients(
        self, context: BSDFContext
    ) -> Tuple[BSDFResponse, ParameterGradients]:
        n_layers = len(self.layers)
        if n_layers == 0:
            return BSDFResponse.pure_transmission(1.0), ParameterGradients.zeros(())

        evaluated = [layer.eval_with_gradients(context) for layer in self.layers]
        if n_layers == 1:
            response, grads = evaluated[0]
            return response, grads.prefixed("layer0.")

        if self.composition == "multi_bounce":
            return self._multi_bounce(evaluated)
        return self._single_pass(evaluated)

    def _single_pass(
        self, evaluated: List[Tuple[BSDFResponse, ParameterGradients]]
    ) -> Tuple[BSDFResponse, ParameterGradients]:
        n_layers = len(evaluated)

        # Fraction of light reaching each layer
        reach = np.empty(n_layers + 1)
        reach[0] = 1.0
        R = 0.0
        A = 0.0
        for i, (resp, _) in enumerate(evaluated):
            R += reach[i] * resp.reflectance
            A += reach[i] * resp.absorption
            reach[i + 1] = reach[i] * resp.transmittance
        T = reach[n_layers]

        # Response of the stack strictly below layer k, seen from above it
        r_below = np.zeros(n_layers)
        a_below = np.zeros(n_layers)
        t_below = np.ones(n_layers)
        for k in range(n_layers - 1, 0, -1):
            resp = evaluated[k][0]
            r_below[k - 1] = resp.reflectance + resp.transmittance * r_below[k]
            a_below[k - 1] = resp.absorption + resp.transmittance * a_below[k]
            t_below[k - 1] = resp.transmittance * t_below[k]

        parts = []
        for k, (_, grads) in enumerate(evaluated):
            dr, dt, da = grads.matrix
            m = np.vstack([
                reach[k] * (dr + dt * r_below[k]),
                reach[k] * dt * t_below[k],
                reach[k] * (da + dt * a_below[k]),
            ])
            parts.append(ParameterGradients(grads.names, m).prefixed(f"layer{k}."))

        return BSDFResponse(R, T, A), ParameterGradients.concatenate(parts)

    def _multi_bounce(
        self, evaluated: List[Tuple[BSDFResponse, ParameterGradients]]
    ) -> Tuple[BSDFResponse, ParameterGradients]:
        n_layers = len(evaluated)
        blocks = [_block(resp) for resp, _ in evaluated]

        # prefix[k] = L₀ ⋆ … ⋆ L_{k−1};  suffix[k] = L_{k+1} ⋆ … ⋆ L_{N−1}
        prefix: List[Optional[np.ndarray]] = [None] * (n_layers + 1)
        prefix[1] = blocks[0]
        for k in range(1, n_layers):
            prefix[k + 1] = redheffer_star(prefix[k], blocks[k])
        suffix: List[Optional[np.ndarray]] = [None] * n_layers
        suffix[n_layers - 2] = blocks[n_layers - 1]
        for k in range(n_layers - 2, 0, -1):
            suffix[k - 1] = redheffer_star(blocks[k], suffix[k])

        total = prefix[n_layers]
        R = float(total[0])
        T = float(total[2])

        parts = []
        for k, (_, grads) in enumerate(evaluated):
            d_layer = _block_tangent(grads)
            zeros = np.zeros_like(d_layer)
            if suffix[k] is not None:
                sub, d_sub = redheffer_star_tangent(blocks[k], d_layer, suffix[k], zeros)
            else:
                sub, d_sub = blocks[k], d_layer
            if prefix[k] is not None:
                _, d_total = redheffer_star_tangent(prefix[k], zeros, sub, d_sub)
            else:
                d_total = d_sub
            dR = d_total[0]
            dT = d_total[2]
            m = np.vstack([dR, dT, -dR - dT])
            parts.append(ParameterGradients(grads.names, m).prefixed(f"layer{k}."))

        return BSDFResponse(R, T, 1.0 - R - T), ParameterGradients.concatenate(parts)

    def __repr__(self) -> str:
        inner = ", ".join(repr(layer) for layer in self.layers)
        return f"LayeredBSDF([{inner}], composition={self.composition!r})"
