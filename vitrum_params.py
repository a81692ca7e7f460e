# -*- coding: utf-8 -*-
"""
Vitrum: Differentiable glass physics for material calibration
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Module: vitrum_params.py — Physical parameter domains and MaterialParams.

The domain registry is the single place where the valid interval of each
named material quantity is declared. BSDF constructors validate against it
and the optimizer bounds default to it, so the two can never disagree.

Parameters of nested layers are addressed with dotted names
(``layer1.ior``); the registry is keyed by the last path component.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, Final, Iterator, Mapping, Tuple, TypeAlias, Union

import numpy as np

from vitrum_errors import ParameterDomainError

__all__ = [
    "Interval",
    "PHYSICAL_DOMAINS",
    "base_name",
    "physical_interval",
    "check_domain",
    "MaterialParams",
]

Interval: TypeAlias = Tuple[float, float]

_INF: Final[float] = math.inf

# ---------------------------------------------------------------------------
# Closed physical intervals per parameter name
# ---------------------------------------------------------------------------
PHYSICAL_DOMAINS: Final[Dict[str, Interval]] = {
    "ior":           (1.0, _INF),
    "film_ior":      (1.0, _INF),
    "substrate_ior": (1.0, _INF),
    "abbe":          (1.0, _INF),
    "n":             (0.0, _INF),
    "k":             (0.0, _INF),
    "roughness":     (0.0, 1.0),
    "roughness_x":   (0.0, 1.0),
    "roughness_y":   (0.0, 1.0),
    "absorption":    (0.0, _INF),
    "thickness":     (0.0, _INF),
    "albedo":        (0.0, 1.0),
}

# Parameters for which +inf is a meaningful value (no dispersion).
UNBOUNDED_PARAMETERS: Final[frozenset] = frozenset({"abbe"})


def base_name(name: str) -> str:
    """``'layer0.layer2.ior'`` → ``'ior'``."""
    return name.rsplit(".", 1)[-1]


def physical_interval(name: str) -> Interval:
    """
    Look up the physical interval of a (possibly dotted) parameter name.

    Raises:
        KeyError: If the parameter is not registered.
    """
    key = base_name(name)
    try:
        return PHYSICAL_DOMAINS[key]
    except KeyError:
        raise KeyError(f"No physical domain registered for parameter '{name}'") from None


def check_domain(name: str, value: float, owner: str = "") -> float:
    """
    Validate a value against its physical interval.

    NaN is always rejected and infinity only for parameters listed in
    ``UNBOUNDED_PARAMETERS``. Returns the value as float.
    """
    lo, hi = physical_interval(name)
    v = float(value)
    if math.isinf(v) and base_name(name) not in UNBOUNDED_PARAMETERS:
        raise ParameterDomainError(name, v, (lo, hi), owner)
    if math.isnan(v) or v < lo or v > hi:
        raise ParameterDomainError(name, v, (lo, hi), owner)
    return v


# ---------------------------------------------------------------------------
# MaterialParams
# ---------------------------------------------------------------------------
Number = Union[int, float, np.number]


@dataclass(slots=True, frozen=True)
class MaterialParams:
    """
    Immutable, ordered set of named material quantities.

    This is the value the inverse solver estimates. The order of ``names``
    defines the layout of the optimizer's parameter vector.
    """
    names:  Tuple[str, ...]
    values: Tuple[float, ...]

    def __post_init__(self) -> None:
        names = tuple(str(n) for n in self.names)
        values = tuple(float(v) for v in self.values)
        if len(names) != len(values):
            raise ValueError(
                f"MaterialParams: {len(names)} names but {len(values)} values"
            )
        if len(set(names)) != len(names):
            raise ValueError(f"MaterialParams: duplicate names in {names}")
        object.__setattr__(self, "names", names)
        object.__setattr__(self, "values", values)

    @classmethod
    def from_dict(cls, mapping: Mapping[str, Number]) -> MaterialParams:
        return cls(tuple(mapping.keys()), tuple(float(v) for v in mapping.values()))

    @classmethod
    def from_vector(cls, names: Tuple[str, ...], vector: np.ndarray) -> MaterialParams:
        return cls(tuple(names), tuple(float(v) for v in np.asarray(vector).ravel()))

    def __getitem__(self, name: str) -> float:
        try:
            return self.values[self.names.index(name)]
        except ValueError:
            raise KeyError(name) from None

    def __contains__(self, name: object) -> bool:
        return name in self.names

    def __len__(self) -> int:
        return len(self.names)

    def __iter__(self) -> Iterator[str]:
        return iter(self.names)

    def as_dict(self) -> Dict[str, float]:
        return dict(zip(self.names, self.values))

    def to_vector(self) -> np.ndarray:
        return np.array(self.values, dtype=np.float64)

    def with_vector(self, vector: np.ndarray) -> MaterialParams:
        return MaterialParams.from_vector(self.names, vector)

    def replace(self, **changes: Number) -> MaterialParams:
        unknown = set(changes) - set(self.names)
        if unknown:
            raise KeyError(f"Unknown parameters: {sorted(unknown)}")
        d = self.as_dict()
        d.update({k: float(v) for k, v in changes.items()})
        return MaterialParams.from_dict(d)

    def relative_error(self, reference: MaterialParams) -> Dict[str, float]:
        """Per-parameter |self − ref| / |ref| (absolute error where ref is 0)."""
        out: Dict[str, float] = {}
        for name in self.names:
            ref = reference[name]
            diff = abs(self[name] - ref)
            out[name] = diff / abs(ref) if ref != 0.0 else diff
        return out
