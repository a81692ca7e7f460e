# -*- coding: utf-8 -*-
"""
Vitrum: Differentiable glass physics for material calibration
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Module: vitrum_optics.py — Closed-form scalar optics and their derivatives.

Every kernel is a pure numba function of scalars. For each forward quantity
there is a ``*_grad`` companion that returns the value together with its
exact analytical partial derivatives; the BSDF models only ever call the
companions so forward and backward passes cannot drift apart.

Conventions:
  - The incident medium is vacuum/air (n = 1).
  - ``cos_theta`` is clamped to [0, 1]; grazing incidence reflects fully.
  - Thicknesses and wavelengths share a length unit (nm) in the thin-film
    kernels.
"""

from __future__ import annotations

import cmath
import math
from functools import lru_cache
from typing import Final, Tuple

import numpy as np
from numba import njit
from scipy.special import roots_legendre

__all__ = [
    "fresnel_schlick", "fresnel_schlick_grad",
    "fresnel_full", "fresnel_full_grad",
    "fresnel_conductor", "fresnel_conductor_grad",
    "beer_lambert", "beer_lambert_grad",
    "thin_film_reflectance", "thin_film_grad",
    "smith_g1", "smith_g1_grad",
    "hemisphere_quadrature",
    "hemispherical_dielectric_grad", "hemispherical_conductor_grad",
    "rough_blend",
]

# Extinction coefficients above this are treated as a perfect mirror.
K_SATURATION: Final[float] = 1e8

FOUR_PI: Final[float] = 4.0 * math.pi


@njit(cache=True, inline='always')
def _clamp01(x: float) -> float:
    return min(max(x, 0.0), 1.0)


# ═══════════════════════════════════════════════════════════════════════════════
# 1. Dielectric Fresnel
# ═══════════════════════════════════════════════════════════════════════════════

@njit(cache=True)
def fresnel_schlick(cos_theta: float, ior: float) -> float:
    """
    Schlick approximation of dielectric Fresnel reflectance.

        F0 = ((n − 1)/(n + 1))²
        F  = F0 + (1 − F0)·(1 − cosθ)⁵
    """
    c = _clamp01(cos_theta)
    r = (ior - 1.0) / (ior + 1.0)
    f0 = r * r
    m = 1.0 - c
    m5 = m * m * m * m * m
    return f0 + (1.0 - f0) * m5


@njit(cache=True)
def fresnel_schlick_grad(cos_theta: float, ior: float) -> Tuple[float, float]:
    """
    Schlick reflectance and ∂F/∂n.

        ∂F/∂n = 4(n − 1)/(n + 1)³ · (1 − (1 − cosθ)⁵)

    Returns:
        (F, dF_dior)
    """
    c = _clamp01(cos_theta)
    r = (ior - 1.0) / (ior + 1.0)
    f0 = r * r
    m = 1.0 - c
    m5 = m * m * m * m * m
    ip1 = ior + 1.0
    df0 = 4.0 * (ior - 1.0) / (ip1 * ip1 * ip1)
    return f0 + (1.0 - f0) * m5, df0 * (1.0 - m5)


@njit(cache=True)
def fresnel_full(cos_theta: float, ior: float) -> float:
    """Exact unpolarized dielectric Fresnel reflectance (see ``fresnel_full_grad``)."""
    return fresnel_full_grad(cos_theta, ior)[0]


@njit(cache=True)
def fresnel_full_grad(cos_theta: float, ior: float) -> Tuple[float, float]:
    """
    Exact unpolarized dielectric Fresnel reflectance from Snell's law.

        sinθt = sinθi / n
        rs = (cosθi − n·cosθt) / (cosθi + n·cosθt)
        rp = (n·cosθi − cosθt) / (n·cosθi + cosθt)
        R  = (rs² + rp²) / 2

    Total internal reflection (n < 1 beyond the critical angle) returns 1.

    Returns:
        (R, dR_dior)
    """
    c = _clamp01(cos_theta)
    if c <= 0.0:
        return 1.0, 0.0
    s2 = 1.0 - c * c
    n = ior
    st2 = s2 / (n * n)
    if st2 >= 1.0:
        return 1.0, 0.0
    ct = math.sqrt(1.0 - st2)
    dct = s2 / (n * n * n * ct)

    u = n * ct
    du = ct + n * dct
    den_s = c + u
    rs = (c - u) / den_s
    drs = -2.0 * c * du / (den_s * den_s)

    a = n * c
    den_p = a + ct
    rp = (a - ct) / den_p
    drp = 2.0 * (c * ct - a * dct) / (den_p * den_p)

    R = 0.5 * (rs * rs + rp * rp)
    return R, rs * drs + rp * drp


# ═══════════════════════════════════════════════════════════════════════════════
# 2. Conductor Fresnel (complex index n + ik)
# ═══════════════════════════════════════════════════════════════════════════════

@njit(cache=True)
def fresnel_conductor(cos_theta: float, n: float, k: float) -> float:
    """Unpolarized Fresnel reflectance of an absorbing medium (see ``fresnel_conductor_grad``)."""
    return fresnel_conductor_grad(cos_theta, n, k)[0]


@njit(cache=True)
def fresnel_conductor_grad(cos_theta: float, n: float,
                           k: float) -> Tuple[float, float, float]:
    """
    Unpolarized Fresnel reflectance for a complex index η = n + ik.

    With w = η·cosθt = √(η² − sin²θi) the amplitudes are

        rs = (cosθi − w) / (cosθi + w)
        rp = (η²·cosθi − w) / (η²·cosθi + w)

    R = (|rs|² + |rp|²)/2. Because rs and rp are holomorphic in η,

        ∂R/∂n =  Re(r̄s·rs' + r̄p·rp')
        ∂R/∂k = −Im(r̄s·rs' + r̄p·rp')

    Extinction above ``K_SATURATION`` (or infinite) saturates to R = 1.

    Returns:
        (R, dR_dn, dR_dk)
    """
    if math.isinf(k) or k > K_SATURATION:
        return 1.0, 0.0, 0.0
    c = _clamp01(cos_theta)
    if c <= 0.0:
        return 1.0, 0.0, 0.0

    eta = complex(n, k)
    eta2 = eta * eta
    s2 = 1.0 - c * c
    w = cmath.sqrt(eta2 - s2)
    # Branch with Im(w) >= 0 keeps the transmitted wave decaying.
    if w.imag < 0.0:
        w = -w
    if abs(w) < 1e-300:
        return 1.0, 0.0, 0.0
    dw = eta / w

    den_s = c + w
    rs = (c - w) / den_s
    drs = -2.0 * c * dw / (den_s * den_s)

    A = eta2 * c
    dA = 2.0 * eta * c
    den_p = A + w
    rp = (A - w) / den_p
    drp = 2.0 * (dA * w - A * dw) / (den_p * den_p)

    R = 0.5 * (abs(rs) ** 2 + abs(rp) ** 2)
    g = rs.conjugate() * drs + rp.conjugate() * drp
    if R > 1.0:
        R = 1.0
    return R, g.real, -g.imag


# ═══════════════════════════════════════════════════════════════════════════════
# 3. Beer-Lambert attenuation
# ═══════════════════════════════════════════════════════════════════════════════

@njit(cache=True)
def beer_lambert(thickness: float, alpha: float) -> float:
    """Internal transmittance T = exp(−α·d)."""
    return math.exp(-alpha * thickness)


@njit(cache=True)
def beer_lambert_grad(thickness: float, alpha: float) -> Tuple[float, float, float]:
    """
    Returns:
        (T, dT_dthickness, dT_dalpha) with ∂T/∂d = −αT and ∂T/∂α = −dT.
    """
    T = math.exp(-alpha * thickness)
    return T, -alpha * T, -thickness * T


# ═══════════════════════════════════════════════════════════════════════════════
# 4. Thin-film (Airy) interference
# ═══════════════════════════════════════════════════════════════════════════════

@njit(cache=True, inline='always')
def _airy_intensity(r01: float, r12: float,
                    delta: float) -> Tuple[float, float, float, float]:
    """
    Airy summation of a single film for real interface amplitudes.

        R = (r01² + r12² + 2·r01·r12·cosδ) / (1 + r01²·r12² + 2·r01·r12·cosδ)

    Returns:
        (R, dR_dr01, dR_dr12, dR_ddelta)
    """
    cd = math.cos(delta)
    sd = math.sin(delta)
    B = 2.0 * r01 * r12
    num = r01 * r01 + r12 * r12 + B * cd
    den = 1.0 + r01 * r01 * r12 * r12 + B * cd
    R = num / den
    dR_dr01 = ((2.0 * r01 + 2.0 * r12 * cd)
               - R * (2.0 * r01 * r12 * r12 + 2.0 * r12 * cd)) / den
    dR_dr12 = ((2.0 * r12 + 2.0 * r01 * cd)
               - R * (2.0 * r12 * r01 * r01 + 2.0 * r01 * cd)) / den
    dR_ddelta = -B * sd * (1.0 - R) / den
    return R, dR_dr01, dR_dr12, dR_ddelta


@njit(cache=True, inline='always')
def _amplitude_ratio(P: float, Q: float, dP: float,
                     dQ: float) -> Tuple[float, float]:
    """r = (P − Q)/(P + Q) and its derivative."""
    den = P + Q
    return (P - Q) / den, 2.0 * (dP * Q - P * dQ) / (den * den)


@njit(cache=True)
def thin_film_reflectance(n_film: float, thickness: float, cos_theta: float,
                          wavelength: float, n_substrate: float) -> float:
    """Unpolarized Airy reflectance of a film on a substrate (see ``thin_film_grad``)."""
    return thin_film_grad(n_film, thickness, cos_theta, wavelength, n_substrate)[0]


@njit(cache=True)
def thin_film_grad(n_film: float, thickness: float, cos_theta: float,
                   wavelength: float,
                   n_substrate: float) -> Tuple[float, float, float, float]:
    """
    Unpolarized reflectance of a non-absorbing film (air | film | substrate).

    Tangential admittances Yⱼ = √(nⱼ² − sin²θ) give the s amplitudes
    r = (Yᵢ − Yⱼ)/(Yᵢ + Yⱼ); the p amplitudes use nⱼ²/Yⱼ. The round-trip
    phase is δ = 4π·d·Y₁/λ = 4π·n₁·d·cosθ₁/λ. s and p are summed with the
    Airy formula separately and averaged, so the result is continuous in
    both thickness and wavelength.

    Returns:
        (R, dR_dn_film, dR_dthickness, dR_dn_substrate)
    """
    c0 = _clamp01(cos_theta)
    if c0 <= 0.0:
        return 1.0, 0.0, 0.0, 0.0
    s2 = 1.0 - c0 * c0
    n1 = n_film
    n2 = n_substrate

    Y0 = c0
    Y1 = math.sqrt(max(n1 * n1 - s2, 0.0))
    Y2 = math.sqrt(max(n2 * n2 - s2, 0.0))
    dY1 = n1 / Y1 if Y1 > 0.0 else 0.0
    dY2 = n2 / Y2 if Y2 > 0.0 else 0.0

    # s polarization
    r01s, dr01s = _amplitude_ratio(Y0, Y1, 0.0, dY1)
    r12s, dr12s = _amplitude_ratio(Y1, Y2, dY1, 0.0)
    # p polarization
    r01p, dr01p = _amplitude_ratio(Y1, n1 * n1 * c0, dY1, 2.0 * n1 * c0)
    r12p, dr12p = _amplitude_ratio(n1 * n1 * Y2, n2 * n2 * Y1,
                                   2.0 * n1 * Y2, n2 * n2 * dY1)
    # substrate index only enters r12
    dr12s_sub = _amplitude_ratio(Y1, Y2, 0.0, dY2)[1]
    dr12p_sub = _amplitude_ratio(n1 * n1 * Y2, n2 * n2 * Y1,
                                 n1 * n1 * dY2, 2.0 * n2 * Y1)[1]

    k0 = FOUR_PI / wavelength
    delta = k0 * thickness * Y1
    ddelta_dd = k0 * Y1
    ddelta_dn = k0 * thickness * dY1

    Rs, a_s, b_s, e_s = _airy_intensity(r01s, r12s, delta)
    Rp, a_p, b_p, e_p = _airy_intensity(r01p, r12p, delta)

    R = 0.5 * (Rs + Rp)
    dR_dn = 0.5 * (a_s * dr01s + b_s * dr12s + e_s * ddelta_dn
                   + a_p * dr01p + b_p * dr12p + e_p * ddelta_dn)
    dR_dd = 0.5 * (e_s + e_p) * ddelta_dd
    dR_dsub = 0.5 * (b_s * dr12s_sub + b_p * dr12p_sub)
    return R, dR_dn, dR_dd, dR_dsub


# ═══════════════════════════════════════════════════════════════════════════════
# 5. GGX Smith masking
# ═══════════════════════════════════════════════════════════════════════════════

@njit(cache=True)
def smith_g1(cos_theta: float, alpha2: float) -> float:
    """Smith G1 masking for the GGX distribution (see ``smith_g1_grad``)."""
    return smith_g1_grad(cos_theta, alpha2)[0]


@njit(cache=True)
def smith_g1_grad(cos_theta: float, alpha2: float) -> Tuple[float, float]:
    """
    GGX Smith masking term in terms of α².

        Λ  = √(α² + (1 − α²)·cos²θ)
        G1 = 2·cosθ / (cosθ + Λ)

    A smooth surface (α² = 0) is never masked.

    Returns:
        (G1, dG1_dalpha2)
    """
    c = _clamp01(cos_theta)
    if c <= 0.0:
        if alpha2 <= 0.0:
            return 1.0, 0.0
        return 0.0, 0.0
    lam = math.sqrt(alpha2 + (1.0 - alpha2) * c * c)
    den = c + lam
    G = 2.0 * c / den
    dlam = (1.0 - c * c) / (2.0 * lam)
    return G, -2.0 * c * dlam / (den * den)


# ═══════════════════════════════════════════════════════════════════════════════
# 6. Hemispherical averages and roughness blending
# ═══════════════════════════════════════════════════════════════════════════════

@lru_cache(maxsize=None)
def hemisphere_quadrature(order: int = 32) -> Tuple[np.ndarray, np.ndarray]:
    """
    Gauss-Legendre nodes for cosine-weighted hemispherical averages.

    Returns (μ, w) such that Σ wᵢ·f(μᵢ) ≈ 2∫₀¹ f(μ)·μ dμ. The arrays are
    built once per order, cached for the process lifetime and marked
    read-only.
    """
    if order < 2:
        raise ValueError(f"quadrature order must be >= 2, got {order}")
    x, w = roots_legendre(order)
    mu = 0.5 * (x + 1.0)
    weights = w * mu
    mu.setflags(write=False)
    weights.setflags(write=False)
    return mu, weights


@njit(cache=True)
def hemispherical_dielectric_grad(ior: float, exact: bool, mu: np.ndarray,
                                  weights: np.ndarray) -> Tuple[float, float]:
    """
    Cosine-weighted hemispherical average of dielectric Fresnel.

    Returns:
        (F_avg, dF_avg_dior)
    """
    F = 0.0
    dF = 0.0
    for i in range(mu.shape[0]):
        if exact:
            f, df = fresnel_full_grad(mu[i], ior)
        else:
            f, df = fresnel_schlick_grad(mu[i], ior)
        F += weights[i] * f
        dF += weights[i] * df
    return F, dF


@njit(cache=True)
def hemispherical_conductor_grad(n: float, k: float, mu: np.ndarray,
                                 weights: np.ndarray) -> Tuple[float, float, float]:
    """
    Cosine-weighted hemispherical average of conductor Fresnel.

    Returns:
        (F_avg, dF_avg_dn, dF_avg_dk)
    """
    F = 0.0
    dn = 0.0
    dk = 0.0
    for i in range(mu.shape[0]):
        f, fn, fk = fresnel_conductor_grad(mu[i], n, k)
        F += weights[i] * f
        dn += weights[i] * fn
        dk += weights[i] * fk
    return F, dn, dk


@njit(cache=True, inline='always')
def rough_blend(F_spec: float, F_avg: float, G1: float) -> float:
    """
    Microfacet-smoothed reflectance.

    The unmasked fraction G1 of the incident energy sees the specular
    Fresnel term; the masked remainder is redistributed over the
    hemisphere and sees the hemispherical average. Both terms lie in
    [0, 1], hence so does the blend.
    """
    return G1 * F_spec + (1.0 - G1) * F_avg
