# -*- coding: utf-8 -*-
"""
Vitrum: Differentiable glass physics for material calibration
Copyright (c) 2026 opticsWolf

SPDX-License-Identifier: LGPL-3.0-or-later

Module: vitrum_errors.py — Exception types carrying structured diagnostics.

All errors derive from the builtin ValueError so callers that only guard
against bad input keep working; the subclasses expose the offending field,
index and magnitude as attributes.
"""

from __future__ import annotations

from typing import Dict, Optional, Tuple

__all__ = [
    "ParameterDomainError",
    "LengthMismatchError",
    "EmptyReferenceError",
    "InvalidWeightError",
    "EnergyConservationError",
]


class ParameterDomainError(ValueError):
    """A material parameter lies outside its physical interval."""

    def __init__(self, param: str, value: float,
                 interval: Tuple[float, float], owner: str = "") -> None:
        self.param = param
        self.value = value
        self.interval = interval
        self.owner = owner
        lo, hi = interval
        prefix = f"{owner}: " if owner else ""
        super().__init__(
            f"{prefix}parameter '{param}' = {value!r} is outside its "
            f"physical interval [{lo}, {hi}]"
        )


class LengthMismatchError(ValueError):
    """Structure-of-arrays fields do not share a common length."""

    def __init__(self, lengths: Dict[str, int], label: str = "") -> None:
        self.lengths = dict(lengths)
        detail = ", ".join(f"{k}={v}" for k, v in self.lengths.items())
        prefix = f"{label} " if label else ""
        super().__init__(f"{prefix}length mismatch: {detail}")


class EmptyReferenceError(ValueError):
    """Reference data holds no observations."""

    def __init__(self, message: str = "reference data must contain at least one observation") -> None:
        super().__init__(message)


class InvalidWeightError(ValueError):
    """An observation weight is negative or not finite."""

    def __init__(self, index: int, weight: float) -> None:
        self.index = index
        self.weight = weight
        super().__init__(
            f"observation {index}: weight must be finite and >= 0, got {weight!r}"
        )


class EnergyConservationError(AssertionError):
    """R + T + A deviates from unity beyond the validation tolerance."""

    def __init__(self, error: float, details: str,
                 context: Optional[str] = None) -> None:
        self.error = error
        self.details = details
        self.context = context
        suffix = f" ({context})" if context else ""
        super().__init__(f"{details}{suffix}")
