# -*- coding: utf-8 -*-
"""
Vitrum: Differentiable glass physics for material calibration
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Module: vitrum_perceptual.py — CIEDE2000 and a perceptual reflectance loss.

Reflectances are mapped to CIE 1976 lightness L* (relative to a perfect
white, Y_n = 1) and compared with the CIEDE2000 colour difference. The loss
value is ΔE00 itself; for achromatic samples (a* = b* = 0) ΔE00 reduces to
|ΔL*| / S_L, which gives the loss a closed-form derivative.

The kernels run without fastmath so results are bit-reproducible.
"""

from __future__ import annotations

import math
from typing import Final, Tuple

from numba import njit

__all__ = [
    "LAB_EPSILON",
    "LAB_KAPPA",
    "delta_e_2000",
    "lightness",
    "lightness_grad",
    "perceptual_loss_grad",
]

# CIE 1976 constants; δ = 6/29 separates the cubic and linear branches.
_LAB_DELTA: Final[float] = 6.0 / 29.0
LAB_EPSILON: Final[float] = _LAB_DELTA * _LAB_DELTA * _LAB_DELTA  # ~0.008856
LAB_KAPPA: Final[float]   = (116.0 * 29.0 * 29.0) / (3.0 * 6.0 * 6.0) # ~903.296

_POW25_7: Final[float] = 25.0 ** 7

# Below this product of primed chromas a hue angle is meaningless.
_ACHROMATIC_EPS: Final[float] = 1e-12


# ═══════════════════════════════════════════════════════════════════════════════
# 1. CIEDE2000
# ═══════════════════════════════════════════════════════════════════════════════

@njit(cache=True, inline='always')
def _chroma_weight(c: float) -> float:
    """√(c⁷ / (c⁷ + 25⁷)), shared by the a* rescaling and R_C."""
    c7 = c ** 7
    return math.sqrt(c7 / (c7 + _POW25_7))


@njit(cache=True, inline='always')
def _primed(a: float, b: float, scale: float) -> Tuple[float, float]:
    """Chroma C' and hue h' in degrees [0, 360) after rescaling a*."""
    ap = scale * a
    h = math.degrees(math.atan2(b, ap))
    if h < 0.0:
        h += 360.0
    return math.hypot(ap, b), h


@njit(cache=True, inline='always')
def _hue_step(h1: float, h2: float) -> float:
    """Signed hue difference h2 − h1 wrapped into [−180, 180]."""
    d = h2 - h1
    if d > 180.0:
        return d - 360.0
    if d < -180.0:
        return d + 360.0
    return d


@njit(cache=True, inline='always')
def _hue_mean(h1: float, h2: float) -> float:
    s = h1 + h2
    if abs(h1 - h2) <= 180.0:
        return 0.5 * s
    if s < 360.0:
        return 0.5 * (s + 360.0)
    return 0.5 * (s - 360.0)


@njit(cache=True, inline='always')
def _hue_dependence(h: float) -> float:
    """T(h̄') of the S_H weighting."""
    r = math.radians(h)
    return (1.0
            - 0.17 * math.cos(r - math.radians(30.0))
            + 0.24 * math.cos(2.0 * r)
            + 0.32 * math.cos(3.0 * r + math.radians(6.0))
            - 0.20 * math.cos(4.0 * r - math.radians(63.0)))


@njit(cache=True, inline='always')
def _lightness_weight(L_mean: float) -> float:
    """S_L; also used by the achromatic loss derivative."""
    u2 = (L_mean - 50.0) ** 2
    return 1.0 + 0.015 * u2 / math.sqrt(20.0 + u2)


@njit(cache=True)
def delta_e_2000(L1: float, a1: float, b1: float, L2: float, a2: float, b2: float,
                 k_L: float = 1.0, k_C: float = 1.0, k_H: float = 1.0) -> float:
    """
    CIEDE2000 colour difference between (L1, a1, b1) and (L2, a2, b2).

    Follows Sharma, Wu and Dalal (2005), including their conventions for
    achromatic samples: a zero primed chroma gives Δh' = 0 and the mean
    hue is the plain sum of the two hue angles.
    """
    scale = 1.5 - 0.5 * _chroma_weight(0.5 * (math.hypot(a1, b1) + math.hypot(a2, b2)))
    C1, h1 = _primed(a1, b1, scale)
    C2, h2 = _primed(a2, b2, scale)

    chromatic = C1 * C2 > _ACHROMATIC_EPS
    if chromatic:
        dh = _hue_step(h1, h2)
        h_mean = _hue_mean(h1, h2)
    else:
        dh = 0.0
        h_mean = h1 + h2
    C_mean = 0.5 * (C1 + C2)

    dL = (L2 - L1) / (k_L * _lightness_weight(0.5 * (L1 + L2)))
    dC = (C2 - C1) / (k_C * (1.0 + 0.045 * C_mean))
    dH = (2.0 * math.sqrt(C1 * C2) * math.sin(0.5 * math.radians(dh))
          / (k_H * (1.0 + 0.015 * C_mean * _hue_dependence(h_mean))))

    rotation = math.exp(-((h_mean - 275.0) / 25.0) ** 2) * 30.0
    R_T = -2.0 * _chroma_weight(C_mean) * math.sin(math.radians(2.0 * rotation))
    return math.sqrt(dL * dL + dC * dC + dH * dH + R_T * dC * dH)


# ═══════════════════════════════════════════════════════════════════════════════
# 2. Lightness and the perceptual loss
# ═══════════════════════════════════════════════════════════════════════════════

@njit(cache=True)
def lightness_grad(Y: float) -> Tuple[float, float]:
    """
    CIE L* of a relative luminance ``Y`` (white = 1) and dL*/dY.

    The linear branch below LAB_EPSILON is extended to negative inputs so
    noisy measurements stay finite.
    """
    if Y > LAB_EPSILON:
        f = Y ** (1.0 / 3.0)
        return 116.0 * f - 16.0, 116.0 / (3.0 * f * f)
    return LAB_KAPPA * Y, LAB_KAPPA


@njit(cache=True)
def lightness(Y: float) -> float:
    return lightness_grad(Y)[0]


@njit(cache=True)
def perceptual_loss_grad(predicted: float, measured: float) -> Tuple[float, float]:
    """
    Achromatic perceptual loss 0.5·ΔE00² and its derivative in ``predicted``.

    The value comes from ``delta_e_2000`` on the two grey colours. On the
    grey axis ΔE00 = |q| with q = ΔL*/S_L, so with u = L̄* − 50:

        dS_L/du = 0.015·u·(40 + u²) / (20 + u²)^1.5
        ∂ℓ/∂L*_p = q·(1/S_L − q·½·dS_L/du / S_L)
    """
    L_m, _ = lightness_grad(measured)
    L_p, dLp_dY = lightness_grad(predicted)
    de = delta_e_2000(L_m, 0.0, 0.0, L_p, 0.0, 0.0)

    u = 0.5 * (L_p + L_m) - 50.0
    w = 20.0 + u * u
    S = _lightness_weight(0.5 * (L_p + L_m))
    dS_du = 0.015 * u * (40.0 + u * u) / (w * math.sqrt(w))
    q = (L_p - L_m) / S
    # ∂u/∂L_p = 1/2
    dq_dLp = (1.0 - q * 0.5 * dS_du) / S
    return 0.5 * de * de, q * dq_dLp * dLp_dY
