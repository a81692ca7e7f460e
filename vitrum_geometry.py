# -*- coding: utf-8 -*-
"""
Vitrum: Differentiable glass physics for material calibration
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Module: vitrum_geometry.py — Direction vectors and the local shading frame.

Directions follow the usual BSDF convention: both ``wi`` (towards the
light) and ``wo`` (towards the viewer) point away from the surface, so a
mirror configuration satisfies ``wo = reflect(-wi, n)`` and its half
vector coincides with the normal.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from typing import Final, Tuple

__all__ = ["Vector3", "BSDFContext", "DEFAULT_WAVELENGTH"]

DEFAULT_WAVELENGTH: Final[float] = 550.0

# Below this length a vector is treated as degenerate.
_DEGENERATE_LENGTH: Final[float] = 1e-10


@dataclass(slots=True, frozen=True)
class Vector3:
    """Immutable 3-component vector."""
    x: float
    y: float
    z: float

    @classmethod
    def unit_x(cls) -> Vector3:
        return cls(1.0, 0.0, 0.0)

    @classmethod
    def unit_y(cls) -> Vector3:
        return cls(0.0, 1.0, 0.0)

    @classmethod
    def unit_z(cls) -> Vector3:
        return cls(0.0, 0.0, 1.0)

    def dot(self, other: Vector3) -> float:
        return self.x * other.x + self.y * other.y + self.z * other.z

    def cross(self, other: Vector3) -> Vector3:
        return Vector3(
            self.y * other.z - self.z * other.y,
            self.z * other.x - self.x * other.z,
            self.x * other.y - self.y * other.x,
        )

    def length(self) -> float:
        return math.sqrt(self.dot(self))

    def normalize(self) -> Vector3:
        """
        Return the unit vector along ``self``.

        A degenerate (near-zero) vector normalizes to +z so that downstream
        cosines stay finite.
        """
        length = self.length()
        if length <= _DEGENERATE_LENGTH:
            return Vector3.unit_z()
        inv = 1.0 / length
        return Vector3(self.x * inv, self.y * inv, self.z * inv)

    def reflect(self, normal: Vector3) -> Vector3:
        """Mirror about the plane with the given normal: v − 2(v·n)n."""
        d = 2.0 * self.dot(normal)
        return Vector3(self.x - d * normal.x,
                       self.y - d * normal.y,
                       self.z - d * normal.z)

    def as_tuple(self) -> Tuple[float, float, float]:
        return (self.x, self.y, self.z)

    def __add__(self, other: Vector3) -> Vector3:
        return Vector3(self.x + other.x, self.y + other.y, self.z + other.z)

    def __sub__(self, other: Vector3) -> Vector3:
        return Vector3(self.x - other.x, self.y - other.y, self.z - other.z)

    def __mul__(self, scalar: float) -> Vector3:
        return Vector3(self.x * scalar, self.y * scalar, self.z * scalar)

    __rmul__ = __mul__

    def __neg__(self) -> Vector3:
        return Vector3(-self.x, -self.y, -self.z)


@dataclass(slots=True, frozen=True)
class BSDFContext:
    """
    Evaluation context for a single BSDF query.

    All direction vectors are normalized on construction and the
    bitangent is derived as ``normalize(normal × tangent)``; it is never
    passed in by the caller.

    Attributes:
        wi: Incident direction (towards the light).
        wo: Outgoing direction (towards the viewer).
        normal: Macro-surface normal.
        tangent: Surface tangent, defines φ = 0 for anisotropic models.
        wavelength: Evaluation wavelength in nanometers.
    """
    wi: Vector3
    wo: Vector3
    normal: Vector3 = field(default_factory=Vector3.unit_z)
    tangent: Vector3 = field(default_factory=Vector3.unit_x)
    wavelength: float = DEFAULT_WAVELENGTH
    bitangent: Vector3 = field(init=False)

    def __post_init__(self) -> None:
        if not (self.wavelength > 0.0 and math.isfinite(self.wavelength)):
            raise ValueError(
                f"wavelength must be a positive finite number (nm), got {self.wavelength!r}"
            )
        normal = self.normal.normalize()
        object.__setattr__(self, "wi", self.wi.normalize())
        object.__setattr__(self, "wo", self.wo.normalize())
        object.__setattr__(self, "normal", normal)
        object.__setattr__(self, "tangent", self.tangent.normalize())
        object.__setattr__(self, "wavelength", float(self.wavelength))
        object.__setattr__(self, "bitangent",
                           normal.cross(self.tangent).normalize())

    # -- Constructors -------------------------------------------------------

    @classmethod
    def simple(cls, cos_theta: float,
               wavelength: float = DEFAULT_WAVELENGTH) -> BSDFContext:
        """
        Mirror configuration in the xz-plane at the given incidence cosine.

        ``wi = (sinθ, 0, cosθ)``, ``wo = (−sinθ, 0, cosθ)``, normal +z,
        tangent +x.
        """
        c = min(max(float(cos_theta), 0.0), 1.0)
        s = math.sqrt(max(0.0, 1.0 - c * c))
        return cls(wi=Vector3(s, 0.0, c), wo=Vector3(-s, 0.0, c),
                   wavelength=wavelength)

    @classmethod
    def reflection(cls, cos_theta: float,
                   wavelength: float = DEFAULT_WAVELENGTH) -> BSDFContext:
        """Specular context whose ``wo`` is ``wi`` reflected about the normal."""
        c = min(max(float(cos_theta), 0.0), 1.0)
        s = math.sqrt(max(0.0, 1.0 - c * c))
        wi = Vector3(s, 0.0, c)
        normal = Vector3.unit_z()
        wo = (-wi).reflect(normal)
        return cls(wi=wi, wo=wo, normal=normal, wavelength=wavelength)

    @classmethod
    def from_angle(cls, theta_deg: float, phi_deg: float = 0.0,
                   wavelength: float = DEFAULT_WAVELENGTH) -> BSDFContext:
        """Mirror configuration at polar angle θ and azimuth φ (degrees)."""
        theta = math.radians(theta_deg)
        phi = math.radians(phi_deg)
        s, c = math.sin(theta), math.cos(theta)
        wi = Vector3(s * math.cos(phi), s * math.sin(phi), c)
        wo = Vector3(-wi.x, -wi.y, wi.z)
        return cls(wi=wi, wo=wo, wavelength=wavelength)

    def with_wavelength(self, wavelength: float) -> BSDFContext:
        return replace(self, wavelength=wavelength)

    # -- Derived quantities -------------------------------------------------

    @property
    def cos_theta_i(self) -> float:
        return abs(self.wi.dot(self.normal))

    @property
    def cos_theta_o(self) -> float:
        return abs(self.wo.dot(self.normal))

    @property
    def half_vector(self) -> Vector3:
        return (self.wi + self.wo).normalize()

    def cos2_phi_i(self) -> float:
        """
        Squared cosine of the azimuth of ``wi`` in the tangent frame.

        Returns 1.0 at normal incidence where the azimuth is undefined.
        """
        x = self.wi.dot(self.tangent)
        y = self.wi.dot(self.bitangent)
        r2 = x * x + y * y
        if r2 <= _DEGENERATE_LENGTH * _DEGENERATE_LENGTH:
            return 1.0
        return x * x / r2
