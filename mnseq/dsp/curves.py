"""Envelope segment curves.

Each curve maps normalised segment time ``t`` in [0, 1] to a level in
[0, 1].  Inputs outside the unit interval are clamped first, so every
curve satisfies ``apply(0) == 0`` and ``apply(1) == 1`` and is monotonic.
"""

from __future__ import annotations

import math
from enum import Enum

import numpy as np


class EnvelopeCurve(Enum):
    """Shaping function for one envelope segment."""

    LINEAR = "Linear"
    EXPONENTIAL = "Exponential"      # fast start, slow end
    LOGARITHMIC = "Logarithmic"      # slow start, fast end
    S_CURVE = "S-Curve"              # smoothstep

    def apply(self, t: float) -> float:
        t = max(0.0, min(1.0, float(t)))
        if self is EnvelopeCurve.LINEAR:
            return t
        if self is EnvelopeCurve.EXPONENTIAL:
            return t * t
        if self is EnvelopeCurve.LOGARITHMIC:
            return math.sqrt(t)
        return t * t * (3.0 - 2.0 * t)

    def inverse(self, y: float) -> float:
        """Return the segment time at which the curve reaches *y*."""
        y = max(0.0, min(1.0, float(y)))
        if self is EnvelopeCurve.LINEAR:
            return y
        if self is EnvelopeCurve.EXPONENTIAL:
            return math.sqrt(y)
        if self is EnvelopeCurve.LOGARITHMIC:
            return y * y
        # closed-form inverse of smoothstep
        return 0.5 - math.sin(math.asin(1.0 - 2.0 * y) / 3.0)

    def apply_array(self, t: np.ndarray) -> np.ndarray:
        """Vectorised :meth:`apply` for block rendering."""
        t = np.clip(np.asarray(t, dtype=np.float64), 0.0, 1.0)
        if self is EnvelopeCurve.LINEAR:
            return t
        if self is EnvelopeCurve.EXPONENTIAL:
            return t * t
        if self is EnvelopeCurve.LOGARITHMIC:
            return np.sqrt(t)
        return t * t * (3.0 - 2.0 * t)

    @property
    def description(self) -> str:
        return _DESCRIPTIONS[self]

    @classmethod
    def from_name(cls, name: str) -> "EnvelopeCurve":
        """Parse a curve name typed by the user ('exp', 's-curve', ...)."""
        key = name.strip().lower().replace('-', '').replace('_', '').replace(' ', '')
        curve = _ALIASES.get(key)
        if curve is None:
            raise ValueError(
                f"Unknown curve: {name!r}. "
                f"Available: {', '.join(c.name.lower() for c in cls)}"
            )
        return curve


_DESCRIPTIONS = {
    EnvelopeCurve.LINEAR: "Straight line",
    EnvelopeCurve.EXPONENTIAL: "Faster start, slower end",
    EnvelopeCurve.LOGARITHMIC: "Slower start, faster end",
    EnvelopeCurve.S_CURVE: "Smooth ease in-out",
}

_ALIASES = {
    'linear': EnvelopeCurve.LINEAR,
    'lin': EnvelopeCurve.LINEAR,
    'exponential': EnvelopeCurve.EXPONENTIAL,
    'exp': EnvelopeCurve.EXPONENTIAL,
    'logarithmic': EnvelopeCurve.LOGARITHMIC,
    'log': EnvelopeCurve.LOGARITHMIC,
    'scurve': EnvelopeCurve.S_CURVE,
    's': EnvelopeCurve.S_CURVE,
    'smooth': EnvelopeCurve.S_CURVE,
}
