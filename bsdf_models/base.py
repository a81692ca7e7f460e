# -*- coding: utf-8 -*-
"""
Vitrum: Differentiable glass physics for material calibration
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Module: base.py — Base class for BSDF models.

Parameter handling:
  - Hybrid parameter API: supports both dict-based and keyword parameters
  - Single source of truth: self.params is the only place parameters are stored
  - Every write goes through set_param(), which re-validates the physical domain
  - with_params() returns a modified copy, leaving the original untouched
"""

from __future__ import annotations

import copy
from typing import Dict, List, Mapping, Optional, Tuple, Union

import numpy as np

from vitrum_bsdf import BSDFResponse, EnergyValidation, ENERGY_TOLERANCE
from vitrum_differentiable import ParameterGradients
from vitrum_geometry import BSDFContext
from vitrum_params import MaterialParams, check_domain

__all__ = ["BSDF"]

Number = Union[float, int, np.number]


class BSDF:
    """
    Base class for all BSDF models.

    Subclasses declare their parameter names in ``PARAMETERS`` and
    implement ``eval_with_gradients()``. ``evaluate()`` is derived from it
    by default, so the forward response and its derivatives always come
    from the same kernel call.

    Attributes:
        params : Dict[str, float]
            Dictionary of model parameters (single source of truth).
    """

    PARAMETERS: Tuple[str, ...] = ()

    def __init__(
        self,
        params: Optional[Mapping[str, Number]] = None,
        **kwargs: Number
    ):
        """
        Initialize model with parameters.

        Args:
            params: Dictionary of model parameters.
            **kwargs: Individual parameters (override params dict).

        Examples:
            # Dict-based (good for config files)
            DielectricBSDF(params={'ior': 1.5, 'roughness': 0.1})

            # Keyword-based (good for interactive use)
            DielectricBSDF(ior=1.5, roughness=0.1)

            # Hybrid (kwargs override params)
            DielectricBSDF(params={'ior': 1.5}, ior=1.6)
        """
        merged = {**(params or {}), **kwargs}
        self.params: Dict[str, float] = {}
        for k, v in merged.items():
            if v is None:
                continue
            if not isinstance(v, (int, float, np.number)):
                raise TypeError(
                    f"Parameter '{k}' must be numeric, got {type(v).__name__}"
                )
            self.params[k] = float(v)

    def _validate_params(
        self,
        required: Optional[List[str]] = None,
        optional: Optional[Dict[str, float]] = None
    ) -> None:
        """
        Validate presence, apply defaults and check physical domains.

        Args:
            required: List of required parameter names.
            optional: Dict of {param_name: default_value} for optional params.

        Raises:
            ValueError: If a required parameter is missing or an unknown
                parameter was supplied.
            ParameterDomainError: If a value lies outside its interval.
        """
        if required:
            for param in required:
                if param not in self.params:
                    raise ValueError(
                        f"Parameter '{param}' is required for {self.__class__.__name__}."
                    )

        if optional:
            for param, default in optional.items():
                self.params.setdefault(param, float(default))

        unknown = set(self.params) - set(self.PARAMETERS)
        if unknown:
            raise ValueError(
                f"{self.__class__.__name__} got unknown parameters {sorted(unknown)}; "
                f"expected a subset of {list(self.PARAMETERS)}"
            )
        for name in self.PARAMETERS:
            check_domain(name, self.params[name], self.__class__.__name__)

    # -- Parameter access ---------------------------------------------------

    def parameter_names(self) -> Tuple[str, ...]:
        return tuple(self.PARAMETERS)

    def get_params(self) -> Dict[str, float]:
        """Return a copy of the model parameters."""
        return self.params.copy()

    def material_params(self, names: Optional[Tuple[str, ...]] = None) -> MaterialParams:
        """Snapshot (a subset of) the parameters as an immutable MaterialParams."""
        current = self.get_params()
        keys = names if names is not None else self.parameter_names()
        return MaterialParams(tuple(keys), tuple(current[k] for k in keys))

    def set_param(self, param_name: str, value: Number) -> None:
        """
        Set a parameter by name.

        Raises:
            KeyError: If the model has no such parameter.
            TypeError: If value is not numeric.
            ParameterDomainError: If value is outside the physical interval.
        """
        if param_name not in self.PARAMETERS:
            raise KeyError(
                f"{self.__class__.__name__} has no parameter '{param_name}'"
            )
        if not isinstance(value, (int, float, np.number)):
            raise TypeError(
                f"Parameter '{param_name}' must be numeric, got {type(value).__name__}"
            )
        self.params[param_name] = check_domain(param_name, value,
                                               self.__class__.__name__)

    def with_params(self, updates: Union[Mapping[str, Number], MaterialParams]) -> BSDF:
        """Return a copy of this model with some parameters replaced."""
        items = updates.as_dict() if isinstance(updates, MaterialParams) else updates
        clone = copy.copy(self)
        clone.params = self.params.copy()
        for name, value in items.items():
            clone.set_param(name, value)
        return clone

    # -- Evaluation ---------------------------------------------------------

    def evaluate(self, context: BSDFContext) -> BSDFResponse:
        """Energy partition at ``context``."""
        return self.eval_with_gradients(context)[0]

    def eval_with_gradients(
        self, context: BSDFContext
    ) -> Tuple[BSDFResponse, ParameterGradients]:
        """Override in subclass: response plus ∂(R, T, A)/∂θ per parameter."""
        raise NotImplementedError(
            f"{self.__class__.__name__} must implement eval_with_gradients()"
        )

    def validate_energy(self, context: BSDFContext,
                        tolerance: float = ENERGY_TOLERANCE) -> EnergyValidation:
        return self.evaluate(context).validate(tolerance)

    def _gradients(self, columns: Dict[str, Tuple[float, float, float]]) -> ParameterGradients:
        """Assemble gradients in declared parameter order."""
        return ParameterGradients.from_columns(
            {name: columns[name] for name in self.parameter_names()}
        )

    def __repr__(self) -> str:
        body = ", ".join(f"{k}={v:g}" for k, v in self.params.items())
        return f"{self.__class__.__name__}({body})"
