"""Per-voice retrigger bookkeeping for the envelope evaluator.

:class:`~mnseq.dsp.envelopes.Envelope` is a pure function of elapsed
time.  Everything stateful about playing it (when the current segment
started, whether the gate is held, what level was last produced) lives
here, in a small object owned by the sequencer-clock layer.  One voice
per CV track.

Retrigger rules while the envelope is still sounding:

- RESET: the time reference restarts at 0.
- LEGATO: the new segment is seeded so its level at t=0 equals the level
  the instant before the trigger (attack curve inverted; decay curve when
  the attack is zero).  The voice keeps the velocity it started with.
- NONE: the trigger is ignored until the release has run out.

An idle voice always starts from 0.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .envelopes import Envelope, RetriggerMode
from .scaling import clamp_unit


@dataclass
class EnvelopeVoice:
    """Time reference and gate state for one envelope.

    Attributes:
        envelope: The envelope being played (replaced wholesale on edit).
        gate_on: Whether the gate is currently held.
        velocity: Velocity of the trigger that started the segment (0-1).
        phase_start_time: Clock time (ms) the current segment started,
            or None if the voice has never been triggered.
        last_known_value: Level returned by the most recent :meth:`value`.
    """

    envelope: Envelope
    gate_on: bool = False
    velocity: float = 1.0
    phase_start_time: Optional[float] = None
    last_known_value: float = 0.0

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def elapsed(self, now: float) -> float:
        if self.phase_start_time is None:
            return 0.0
        return max(0.0, now - self.phase_start_time)

    def is_sounding(self, now: float) -> bool:
        """True while the gate is held or the release has not finished."""
        if self.phase_start_time is None:
            return False
        if self.gate_on:
            return True
        return self.elapsed(now) < self.envelope.release

    def level_at(self, now: float) -> float:
        """Envelope level at clock time *now* without touching state."""
        if self.phase_start_time is None:
            return 0.0
        env = self.envelope
        t = self.elapsed(now)
        if self.gate_on:
            if env.loop_enabled:
                return env.looped_value(t, self.velocity)
            return env.value(t, True, self.velocity)
        return env.value(t, False, self.velocity)

    def value(self, now: float) -> float:
        """Envelope level at *now*; remembered as ``last_known_value``."""
        level = self.level_at(now)
        self.last_known_value = level
        return level

    # ------------------------------------------------------------------
    # Gate handling
    # ------------------------------------------------------------------

    def gate(self, now: float, velocity: float = 1.0) -> bool:
        """Handle a gate-on at clock time *now*.

        Returns False if the trigger was ignored (``RetriggerMode.NONE``
        while sounding), True otherwise.
        """
        velocity = clamp_unit(velocity)
        mode = self.envelope.retrigger_mode
        if mode is RetriggerMode.RESET or not self.is_sounding(now):
            self._start(now, velocity, 0.0)
            return True
        if mode is RetriggerMode.NONE:
            return False
        # running velocity, not the new one
        current = self.level_at(now)
        self._start(now, self.velocity, self._legato_offset(current, self.velocity))
        return True

    def release(self, now: float) -> None:
        """Handle a gate-off at clock time *now*."""
        if not self.gate_on:
            return
        self.last_known_value = self.level_at(now)
        self.gate_on = False
        self.phase_start_time = now

    def set_envelope(self, envelope: Envelope) -> None:
        """Swap in an edited envelope, keeping the current timing."""
        self.envelope = envelope

    def reset(self) -> None:
        self.gate_on = False
        self.phase_start_time = None
        self.last_known_value = 0.0

    def _start(self, now: float, velocity: float, offset: float) -> None:
        self.gate_on = True
        self.velocity = velocity
        self.phase_start_time = now - offset

    def _legato_offset(self, level: float, velocity: float) -> float:
        """Segment time at which the gated envelope reproduces *level*."""
        env = self.envelope
        peak = env.peak_for(velocity)
        if peak <= 0.0:
            return 0.0
        ratio = level / peak
        if env.attack > 0.0:
            if ratio >= 1.0:
                return env.attack
            return env.attack * env.attack_curve.inverse(ratio)
        if env.decay > 0.0 and env.sustain < 1.0:
            # peak * (1 - (1 - S) * c) == level
            c = (1.0 - ratio) / (1.0 - env.sustain)
            if c <= 0.0:
                return 0.0
            if c >= 1.0:
                return env.decay
            return env.decay * env.decay_curve.inverse(c)
        return 0.0
