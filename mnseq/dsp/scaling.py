"""MNSEQ parameter clamping and scaling.

Everything that feeds the always-on control signal is clamped, never
rejected.  This module holds the ranges and the small helpers used by
the envelope, routing and output layers.

SCALING RULES:
--------------
1. Levels (sustain, peak, velocity sensitivity, velocity) live in 0-1
   internally.  The command layer accepts them on the 0-100 scale.
2. Times are real milliseconds, 0-10000.  Editing floors them at 1 ms;
   the engine itself tolerates 0 ms (instantaneous phase).
3. Modulation amount is bipolar, -1 to +1 (-100 to +100 on the CLI).
4. Anything non-finite collapses to the range floor (or 0 for bipolar).

BUILD ID: scaling_v2_cv
"""

from __future__ import annotations

import math
from typing import Union

# ============================================================================
# RANGES
# ============================================================================

TIME_MIN_MS = 0.0
TIME_EDIT_MIN_MS = 1.0
TIME_MAX_MS = 10_000.0

LEVEL_MIN = 0.0
LEVEL_MAX = 1.0

AMOUNT_MIN = -1.0
AMOUNT_MAX = 1.0

MIDI_VELOCITY_MAX = 127


# ============================================================================
# PRESET VALUES (for named levels on the command line)
# ============================================================================

LEVEL_PRESETS = {
    'off': 0,
    'zero': 0,
    'none': 0,
    'low': 25,
    'quarter': 25,
    'half': 50,
    'medium': 50,
    'default': 50,
    'high': 75,
    'full': 100,
    'max': 100,
}


# ============================================================================
# CORE CLAMPS
# ============================================================================

def clamp(value: float, lo: float, hi: float) -> float:
    """Clamp *value* into ``[lo, hi]``; NaN maps to *lo*."""
    value = float(value)
    if math.isnan(value):
        return lo
    return max(lo, min(hi, value))


def clamp_unit(value: float) -> float:
    """Clamp a level to 0-1."""
    return clamp(value, LEVEL_MIN, LEVEL_MAX)


def clamp_amount(value: float) -> float:
    """Clamp a bipolar modulation amount to -1..+1 (NaN -> 0)."""
    value = float(value)
    if math.isnan(value):
        return 0.0
    return max(AMOUNT_MIN, min(AMOUNT_MAX, value))


def clamp_time_ms(value: float, editing: bool = False) -> float:
    """Clamp an envelope time in milliseconds.

    Parameters
    ----------
    value : float
        Requested time in ms
    editing : bool
        If True, apply the 1 ms edit floor used by the UI and the
        command layer.  The engine itself accepts 0 ms.
    """
    lo = TIME_EDIT_MIN_MS if editing else TIME_MIN_MS
    return clamp(value, lo, TIME_MAX_MS)


def clamp_int(value: int, lo: int, hi: int) -> int:
    """Clamp an integer field (MIDI note, step length, ...)."""
    return max(lo, min(hi, int(value)))


def midi_velocity_to_unit(velocity: int) -> float:
    """MIDI velocity 0-127 -> 0-1."""
    return clamp_unit(velocity / MIDI_VELOCITY_MAX)


# ============================================================================
# COMMAND-LINE PARSING
# ============================================================================

def parse_amount(value: Union[str, int, float], default: float = 50.0) -> float:
    """Parse a 0-100 amount typed by the user.

    Accepts numbers, numeric strings (with an optional trailing ``%``)
    and the names in ``LEVEL_PRESETS``.  Returns the value clamped to
    0-100, or *default* if nothing parses.

    Examples
    --------
    >>> parse_amount("half")
    50.0
    >>> parse_amount("140")
    100.0
    >>> parse_amount("garbage")
    50.0
    """
    if isinstance(value, (int, float)):
        return clamp(float(value), 0.0, 100.0)

    if isinstance(value, str):
        text = value.lower().strip().rstrip('%')
        if text in LEVEL_PRESETS:
            return float(LEVEL_PRESETS[text])
        try:
            return clamp(float(text), 0.0, 100.0)
        except ValueError:
            pass

    return default


def parse_level(value: Union[str, int, float], default: float = 0.5) -> float:
    """Parse a 0-100 amount and return it as a 0-1 level."""
    return parse_amount(value, default * 100.0) / 100.0


def parse_bipolar(value: Union[str, int, float], default: float = 1.0) -> float:
    """Parse a -100..+100 modulation amount and return it as -1..+1."""
    try:
        return clamp_amount(float(str(value).strip().rstrip('%')) / 100.0)
    except ValueError:
        return default
