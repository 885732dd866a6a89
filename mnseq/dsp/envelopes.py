"""ADSR envelope generation for CV output.

This module defines the :class:`Envelope` value type and the pure
evaluator that turns elapsed time, gate state and velocity into an
instantaneous control level.  The evaluator holds no clock and no
mutable state: callers own the time reference (see ``dsp/voice.py``)
and the same inputs always give the same level.

Times are milliseconds, levels are 0-1.  Envelopes are frozen
dataclasses; edits go through :meth:`Envelope.with_changes`, which
returns a new record and re-applies all clamps.

BUILD ID: envelopes_v2_cv
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List

import numpy as np  # type: ignore

from .curves import EnvelopeCurve
from .scaling import clamp_time_ms, clamp_unit

# Share of the total A+D+R time shown as a held sustain in visualisations
VISUAL_SUSTAIN_SHARE = 0.3


class RetriggerMode(Enum):
    """How a voice treats a new trigger while the envelope is still running."""

    RESET = "Reset"      # jump back to attack start
    LEGATO = "Legato"    # continue from the current level
    NONE = "None"        # ignore new triggers until release has finished

    @property
    def description(self) -> str:
        return {
            RetriggerMode.RESET: "Restart envelope from zero",
            RetriggerMode.LEGATO: "Continue from current level",
            RetriggerMode.NONE: "Ignore new triggers",
        }[self]


class LoopPoint(Enum):
    """Which part of the envelope repeats while the gate is held."""

    SUSTAIN = "Sustain"  # attack -> decay -> attack ...
    RELEASE = "Release"  # attack -> decay -> release -> attack ...
    DECAY = "Decay"      # attack ramp only, restarting at decay start

    @property
    def description(self) -> str:
        return {
            LoopPoint.SUSTAIN: "Loop Attack -> Decay -> Attack",
            LoopPoint.RELEASE: "Loop full envelope",
            LoopPoint.DECAY: "Loop Attack -> Decay start",
        }[self]

    @classmethod
    def _missing_(cls, value):
        # older presets store the full-envelope loop as "End"
        if isinstance(value, str) and value.strip().lower() == 'end':
            return cls.RELEASE
        return None


def _new_id() -> str:
    return str(uuid.uuid4())


def _enum_from(enum_cls, raw):
    """Accept an enum member, its value, or its name."""
    if isinstance(raw, enum_cls):
        return raw
    try:
        return enum_cls(raw)
    except ValueError:
        pass
    try:
        return enum_cls[str(raw).upper().replace('-', '_')]
    except KeyError:
        raise ValueError(f"Unknown {enum_cls.__name__}: {raw!r}") from None


@dataclass(frozen=True)
class Envelope:
    """Attack-Decay-Sustain-Release envelope for one CV track.

    Attributes:
        attack: Attack time in ms (0-10000).
        decay: Decay time in ms (0-10000).
        sustain: Sustain level (0-1).
        release: Release time in ms (0-10000).
        attack_curve: Curve for the attack segment.
        decay_curve: Curve for the decay segment.
        release_curve: Curve for the release segment.
        peak_level: Maximum output level (0-1).
        velocity_sensitivity: How much velocity scales the peak (0-1).
        retrigger_mode: Voice behaviour on a new trigger.
        loop_enabled: Repeat part of the envelope while the gate is held.
        loop_point: Which part repeats.
    """

    id: str = field(default_factory=_new_id)
    name: str = "ENV"
    attack: float = 10.0
    decay: float = 100.0
    sustain: float = 0.7
    release: float = 200.0
    attack_curve: EnvelopeCurve = EnvelopeCurve.LINEAR
    decay_curve: EnvelopeCurve = EnvelopeCurve.EXPONENTIAL
    release_curve: EnvelopeCurve = EnvelopeCurve.EXPONENTIAL
    peak_level: float = 1.0
    velocity_sensitivity: float = 0.5
    retrigger_mode: RetriggerMode = RetriggerMode.RESET
    loop_enabled: bool = False
    loop_point: LoopPoint = LoopPoint.SUSTAIN

    def __post_init__(self) -> None:
        # Frozen: clamps are applied through object.__setattr__
        set_ = object.__setattr__
        set_(self, 'attack', clamp_time_ms(self.attack))
        set_(self, 'decay', clamp_time_ms(self.decay))
        set_(self, 'release', clamp_time_ms(self.release))
        set_(self, 'sustain', clamp_unit(self.sustain))
        set_(self, 'peak_level', clamp_unit(self.peak_level))
        set_(self, 'velocity_sensitivity', clamp_unit(self.velocity_sensitivity))
        set_(self, 'loop_enabled', bool(self.loop_enabled))

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    @property
    def total_time(self) -> float:
        """Attack + decay + release in ms (sustain hold excluded)."""
        return self.attack + self.decay + self.release

    def peak_for(self, velocity: float = 1.0) -> float:
        """Velocity-scaled peak level."""
        vs = self.velocity_sensitivity
        return self.peak_level * ((1.0 - vs) + vs * clamp_unit(velocity))

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def value(self, t: float, gate_on: bool, velocity: float = 1.0) -> float:
        """Envelope level at time *t* (ms).

        While the gate is on, *t* is measured from gate-on; once the gate
        is off, *t* is measured from the instant the gate went false.
        Negative (or NaN) times are treated as 0.
        """
        peak = self.peak_for(velocity)
        t = float(t)
        if not t > 0.0:
            t = 0.0
        if gate_on:
            return self._gated(t, peak)
        return self._released(t, peak)

    def _gated(self, t: float, peak: float) -> float:
        a, d, s = self.attack, self.decay, self.sustain
        # t >= 0, so a zero-length attack or decay never reaches its
        # division and falls through to the segment's end value.
        if a > 0.0 and t < a:
            return peak * self.attack_curve.apply(t / a)
        if d > 0.0 and t < a + d:
            decay_amount = (1.0 - s) * self.decay_curve.apply((t - a) / d)
            return peak * (1.0 - decay_amount)
        return peak * s

    def _released(self, t: float, peak: float) -> float:
        r = self.release
        if r > 0.0 and t < r:
            return peak * self.sustain * (1.0 - self.release_curve.apply(t / r))
        return 0.0

    def loop_cycle(self) -> float:
        """Length in ms of the looping region for ``loop_point``."""
        if self.loop_point is LoopPoint.SUSTAIN:
            return self.attack + self.decay
        if self.loop_point is LoopPoint.DECAY:
            return self.attack
        return self.attack + self.decay + self.release

    def looped_value(self, t: float, velocity: float = 1.0) -> float:
        """Gate-held level with the loop region wrapped.

        SUSTAIN wraps ``t %= A + D`` once ``t`` reaches the sustain
        point.  DECAY wraps ``t %= A`` so only the attack ramp repeats.
        RELEASE runs attack, decay and then the release segment before
        starting over, with period ``A + D + R``.  A zero-length cycle
        behaves like the plain gated envelope.
        """
        t = float(t)
        if not t > 0.0:
            t = 0.0
        cycle = self.loop_cycle()
        if cycle <= 0.0:
            return self.value(t, True, velocity)
        if t >= cycle:
            t %= cycle
        if self.loop_point is LoopPoint.RELEASE:
            gated_span = self.attack + self.decay
            if t < gated_span:
                return self.value(t, True, velocity)
            return self.value(t - gated_span, False, velocity)
        return self.value(t, True, velocity)

    def render(self, times: np.ndarray, gate_on: bool,
               velocity: float = 1.0) -> np.ndarray:
        """Vectorised :meth:`value` over an array of times (ms)."""
        t = np.asarray(times, dtype=np.float64)
        t = np.where(t > 0.0, t, 0.0)
        peak = self.peak_for(velocity)
        a, d, s, r = self.attack, self.decay, self.sustain, self.release
        with np.errstate(divide='ignore', invalid='ignore'):
            if gate_on:
                out = np.full(t.shape, peak * s)
                if d > 0.0:
                    in_decay = (t >= a) & (t < a + d)
                    decay_amount = (1.0 - s) * self.decay_curve.apply_array((t - a) / d)
                    out = np.where(in_decay, peak * (1.0 - decay_amount), out)
                if a > 0.0:
                    out = np.where(t < a, peak * self.attack_curve.apply_array(t / a), out)
                return out
            if r <= 0.0:
                return np.zeros(t.shape)
            rel = peak * s * (1.0 - self.release_curve.apply_array(t / r))
            return np.where(t < r, rel, 0.0)

    def generate_points(self, resolution: int = 100,
                        velocity: float = 1.0) -> np.ndarray:
        """Sample the envelope for display.

        Returns an ``(resolution + 1, 2)`` array of ``(x, level)`` rows
        where x is normalised to 0-1 over a synthetic timeline of
        ``A + D + 0.3 * (A + D + R) + R``.  Levels come from
        :meth:`render`, so the drawn curve is the engine output.
        """
        resolution = max(1, int(resolution))
        sustain_span = self.total_time * VISUAL_SUSTAIN_SHARE
        gated_span = self.attack + self.decay + sustain_span
        full = gated_span + self.release

        x = np.linspace(0.0, 1.0, resolution + 1)
        time = x * full
        gated = time < gated_span
        levels = np.where(gated,
                          self.render(time, True, velocity),
                          self.render(time - gated_span, False, velocity))
        return np.column_stack((x, levels))

    # ------------------------------------------------------------------
    # Editing and serialisation
    # ------------------------------------------------------------------

    def with_changes(self, **changes: Any) -> "Envelope":
        """Return a copy with *changes* applied (clamps re-applied)."""
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'attack': self.attack,
            'decay': self.decay,
            'sustain': self.sustain,
            'release': self.release,
            'attack_curve': self.attack_curve.value,
            'decay_curve': self.decay_curve.value,
            'release_curve': self.release_curve.value,
            'peak_level': self.peak_level,
            'velocity_sensitivity': self.velocity_sensitivity,
            'retrigger_mode': self.retrigger_mode.value,
            'loop_enabled': self.loop_enabled,
            'loop_point': self.loop_point.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Envelope":
        """Rebuild an envelope from :meth:`to_dict` output.

        Missing keys take the dataclass defaults.  Unknown enum values
        raise ``ValueError``.
        """
        kwargs: Dict[str, Any] = {}
        for key in ('id', 'name', 'attack', 'decay', 'sustain', 'release',
                    'peak_level', 'velocity_sensitivity', 'loop_enabled'):
            if key in data:
                kwargs[key] = data[key]
        for key in ('attack_curve', 'decay_curve', 'release_curve'):
            if key in data:
                kwargs[key] = _enum_from(EnvelopeCurve, data[key])
        if 'retrigger_mode' in data:
            kwargs['retrigger_mode'] = _enum_from(RetriggerMode, data['retrigger_mode'])
        if 'loop_point' in data:
            kwargs['loop_point'] = _enum_from(LoopPoint, data['loop_point'])
        return cls(**kwargs)


# ======================================================================
# Preset envelopes
# ======================================================================

PERCUSSION = Envelope(
    id="preset-perc", name="PERC", attack=1, decay=150, sustain=0,
    release=100, attack_curve=EnvelopeCurve.LINEAR,
    decay_curve=EnvelopeCurve.EXPONENTIAL,
)

PLUCK = Envelope(
    id="preset-pluck", name="PLUCK", attack=5, decay=300, sustain=0.2,
    release=200, attack_curve=EnvelopeCurve.LINEAR,
    decay_curve=EnvelopeCurve.EXPONENTIAL,
)

PAD = Envelope(
    id="preset-pad", name="PAD", attack=500, decay=1000, sustain=0.8,
    release=1500, attack_curve=EnvelopeCurve.LOGARITHMIC,
    decay_curve=EnvelopeCurve.EXPONENTIAL,
)

ORGAN = Envelope(
    id="preset-organ", name="ORGAN", attack=5, decay=10, sustain=1.0,
    release=50, attack_curve=EnvelopeCurve.LINEAR,
    decay_curve=EnvelopeCurve.LINEAR,
)

SWELL = Envelope(
    id="preset-swell", name="SWELL", attack=2000, decay=500, sustain=0.7,
    release=1000, attack_curve=EnvelopeCurve.S_CURVE,
    decay_curve=EnvelopeCurve.EXPONENTIAL,
)

SNARE = Envelope(
    id="preset-snare", name="SNARE", attack=0.5, decay=80, sustain=0,
    release=80, attack_curve=EnvelopeCurve.LINEAR,
    decay_curve=EnvelopeCurve.EXPONENTIAL,
)

KICK = Envelope(
    id="preset-kick", name="KICK", attack=0.5, decay=200, sustain=0,
    release=50, attack_curve=EnvelopeCurve.LINEAR,
    decay_curve=EnvelopeCurve.EXPONENTIAL,
)

# AR envelope (no sustain stage to speak of, for triggers)
AR = Envelope(
    id="preset-ar", name="A/R", attack=10, decay=1, sustain=1.0,
    release=200, attack_curve=EnvelopeCurve.LINEAR,
    decay_curve=EnvelopeCurve.LINEAR, release_curve=EnvelopeCurve.EXPONENTIAL,
)

PRESETS: Dict[str, Envelope] = {
    env.name.lower(): env
    for env in (PERCUSSION, PLUCK, PAD, ORGAN, SWELL, SNARE, KICK, AR)
}
PRESETS['ar'] = AR


def get_preset(name: str) -> Envelope:
    """Look up a preset envelope by name (case-insensitive)."""
    env = PRESETS.get(name.strip().lower())
    if env is None:
        raise ValueError(f"Unknown envelope preset: {name!r}. "
                         f"Available: {', '.join(list_presets())}")
    return env


def list_presets() -> List[str]:
    return sorted(k for k in PRESETS if k != 'a/r')
