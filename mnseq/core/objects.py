"""MNSEQ data records.

Defines the plain records that flow through the CV core: CV tracks,
trigger events, and the step/track model that produces those triggers.

All records are frozen dataclasses.  Nothing is edited in place: every
``set_*`` method returns a new record with the one field replaced, so a
snapshot handed to the control-rate path can never change underneath
it.

BUILD ID: objects_v2_cv
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..dsp import euclidean
from ..dsp.envelopes import Envelope, PERCUSSION
from ..dsp.scaling import clamp_amount, clamp_int, clamp_unit, midi_velocity_to_unit


# ============================================================================
# HELPERS
# ============================================================================

def _new_id() -> str:
    """Generate a new UUID string for record identity."""
    return str(uuid.uuid4())


# ============================================================================
# MODULATION ROUTING
# ============================================================================

class ModulationDestination(Enum):
    VCA = "VCA"
    VCF = "VCF"
    VCO = "VCO"
    PWM = "PWM"
    PAN = "PAN"
    CUSTOM = "Custom"

    @property
    def description(self) -> str:
        return {
            ModulationDestination.VCA: "Amplitude/Volume",
            ModulationDestination.VCF: "Filter Cutoff",
            ModulationDestination.VCO: "Oscillator Pitch",
            ModulationDestination.PWM: "Pulse Width",
            ModulationDestination.PAN: "Stereo Panning",
            ModulationDestination.CUSTOM: "Custom Destination",
        }[self]

    @classmethod
    def from_name(cls, name: str) -> "ModulationDestination":
        key = name.strip().upper()
        for member in cls:
            if member.name == key or member.value.upper() == key:
                return member
        raise ValueError(f"Unknown destination: {name!r}. "
                         f"Available: {', '.join(m.value for m in cls)}")


@dataclass(frozen=True)
class CVTrack:
    """Binds a trigger source, an envelope and a modulation destination.

    Attributes:
        id: Stable identity.
        name: Display name, e.g. ``ENV 1``.
        output_channel: 1-based output number (drives output index
            ``output_channel - 1``).
        envelope: The track's own envelope (a value, never shared).
        source_track_id: ID of the sequencer track whose gates trigger
            this envelope.  A reference only; None means unpatched.
        is_enabled: Soft-disable: a disabled track stays configured but
            contributes no output.
        modulation_destination: What the CV is patched to.
        modulation_amount: Bipolar depth, -1 to 1.
    """

    id: str = field(default_factory=_new_id)
    name: str = "CV 1"
    output_channel: int = 1
    envelope: Envelope = field(default_factory=Envelope)
    source_track_id: Optional[str] = None
    is_enabled: bool = True
    modulation_destination: ModulationDestination = ModulationDestination.VCA
    modulation_amount: float = 1.0

    def __post_init__(self) -> None:
        object.__setattr__(self, 'output_channel', max(1, int(self.output_channel)))
        object.__setattr__(self, 'modulation_amount', clamp_amount(self.modulation_amount))
        object.__setattr__(self, 'is_enabled', bool(self.is_enabled))

    @property
    def output_index(self) -> int:
        """0-based hardware output index."""
        return self.output_channel - 1

    # ---- Field replacement ------------------------------------------------

    def set_source_track(self, source_track_id: Optional[str]) -> "CVTrack":
        return replace(self, source_track_id=source_track_id)

    def set_destination(self, destination: ModulationDestination) -> "CVTrack":
        return replace(self, modulation_destination=destination)

    def set_envelope(self, envelope: Envelope) -> "CVTrack":
        return replace(self, envelope=envelope)

    def set_modulation_amount(self, amount: float) -> "CVTrack":
        return replace(self, modulation_amount=amount)

    def set_enabled(self, enabled: bool) -> "CVTrack":
        return replace(self, is_enabled=enabled)

    def toggle_enabled(self) -> "CVTrack":
        return replace(self, is_enabled=not self.is_enabled)

    def set_output_channel(self, channel: int) -> "CVTrack":
        return replace(self, output_channel=channel)

    def rename(self, name: str) -> "CVTrack":
        return replace(self, name=name)

    # ---- Serialisation ----------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'output_channel': self.output_channel,
            'envelope': self.envelope.to_dict(),
            'source_track_id': self.source_track_id,
            'is_enabled': self.is_enabled,
            'modulation_destination': self.modulation_destination.value,
            'modulation_amount': self.modulation_amount,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CVTrack":
        kwargs: Dict[str, Any] = {}
        for key in ('id', 'name', 'output_channel', 'source_track_id',
                    'is_enabled', 'modulation_amount'):
            if key in data:
                kwargs[key] = data[key]
        if 'envelope' in data:
            kwargs['envelope'] = Envelope.from_dict(data['envelope'])
        if 'modulation_destination' in data:
            kwargs['modulation_destination'] = ModulationDestination.from_name(
                data['modulation_destination'])
        return cls(**kwargs)

    def summary(self) -> str:
        state = "on" if self.is_enabled else "off"
        return (f"{self.name} ch{self.output_channel} {self.envelope.name} -> "
                f"{self.modulation_destination.value} "
                f"{self.modulation_amount:+.2f} [{state}]")


# ============================================================================
# TRIGGER EVENTS
# ============================================================================

@dataclass(frozen=True)
class TriggerEvent:
    """One gate edge from the transport.

    Produced per transport tick and consumed immediately; never stored.

    Attributes:
        track_id: Sequencer track that fired.
        gate_on: True for gate-on, False for gate-off.
        velocity: 0-1 (clamped).
        timestamp: Clock time in ms.
        note: MIDI note for pitch-implying sources, else None.
    """

    track_id: str
    gate_on: bool
    velocity: float = 1.0
    timestamp: float = 0.0
    note: Optional[int] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, 'velocity', clamp_unit(self.velocity))


# ============================================================================
# STEP SEQUENCER MODEL
# ============================================================================

@dataclass(frozen=True)
class Step:
    """A single step on a sequencer track.

    Attributes:
        index: Position in the track.
        is_on: Whether the step fires.
        note: MIDI note 0-127.
        velocity: MIDI velocity 1-127.
        length: Gate length in ticks, 1-96.
        timing: Microtiming offset in ticks, -48 to +48.
        probability: Chance to fire, 0-100 (%).
        repeats: Ratchets, 0-8.
    """

    index: int
    is_on: bool = False
    note: int = 60
    velocity: int = 100
    length: int = 24
    timing: int = 0
    probability: int = 100
    repeats: int = 0

    def __post_init__(self) -> None:
        set_ = object.__setattr__
        set_(self, 'note', clamp_int(self.note, 0, 127))
        set_(self, 'velocity', clamp_int(self.velocity, 1, 127))
        set_(self, 'length', clamp_int(self.length, 1, 96))
        set_(self, 'timing', clamp_int(self.timing, -48, 48))
        set_(self, 'probability', clamp_int(self.probability, 0, 100))
        set_(self, 'repeats', clamp_int(self.repeats, 0, 8))


MAX_TRACK_LENGTH = 64


@dataclass(frozen=True)
class SequencerTrack:
    """A gate/pitch lane of the step sequencer; the usual CV trigger source.

    Attributes:
        id: Stable identity (referenced by ``CVTrack.source_track_id``).
        name: Display name.
        midi_channel: 1-16.
        length: Pattern length in steps, 1-64.
        steps: Exactly ``length`` steps.
    """

    id: str = field(default_factory=_new_id)
    name: str = "TRACK"
    midi_channel: int = 1
    length: int = 16
    steps: Tuple[Step, ...] = ()

    def __post_init__(self) -> None:
        set_ = object.__setattr__
        set_(self, 'midi_channel', clamp_int(self.midi_channel, 1, 16))
        length = clamp_int(self.length, 1, MAX_TRACK_LENGTH)
        set_(self, 'length', length)
        steps = list(self.steps)[:length]
        steps += [Step(index=i) for i in range(len(steps), length)]
        set_(self, 'steps', tuple(replace(s, index=i) for i, s in enumerate(steps)))

    @property
    def pattern(self) -> List[bool]:
        return [s.is_on for s in self.steps]

    def with_steps(self, steps: Sequence[Step]) -> "SequencerTrack":
        return replace(self, steps=tuple(steps))

    def set_step(self, index: int, **changes: Any) -> "SequencerTrack":
        """Replace one step's fields; out-of-range indices wrap."""
        index %= self.length
        steps = list(self.steps)
        steps[index] = replace(steps[index], **changes)
        return self.with_steps(steps)

    def apply_pattern(self, pattern: Sequence[bool]) -> "SequencerTrack":
        """Write an on/off pattern over the steps, tiling it if shorter."""
        if not pattern:
            return self
        steps = [replace(s, is_on=bool(pattern[i % len(pattern)]))
                 for i, s in enumerate(self.steps)]
        return self.with_steps(steps)

    def apply_euclidean(self, steps: int, pulses: int,
                        rotation: int = 0) -> "SequencerTrack":
        """Resize to *steps* and fill with E(pulses, steps)."""
        resized = replace(self, length=steps)
        return resized.apply_pattern(euclidean.generate(resized.length, pulses, rotation))

    def apply_euclidean_with_velocity(self, steps: int, pulses: int,
                                      rotation: int = 0,
                                      accent_every: int = 4) -> "SequencerTrack":
        """Like :meth:`apply_euclidean` but also writes accent velocities."""
        resized = replace(self, length=steps)
        velocities = euclidean.generate_with_velocity(
            resized.length, pulses, rotation, accent_every=accent_every)
        new_steps = []
        for step, vel in zip(resized.steps, velocities):
            if vel is None:
                new_steps.append(replace(step, is_on=False))
            else:
                new_steps.append(replace(step, is_on=True, velocity=vel))
        return resized.with_steps(new_steps)

    def events_at(self, step_index: int, timestamp: float) -> List[TriggerEvent]:
        """Gate-on events for the step under the playhead (wraps)."""
        step = self.steps[step_index % self.length]
        if not step.is_on:
            return []
        return [TriggerEvent(
            track_id=self.id,
            gate_on=True,
            velocity=midi_velocity_to_unit(step.velocity),
            timestamp=timestamp,
            note=step.note,
        )]

    def release_event(self, timestamp: float) -> TriggerEvent:
        return TriggerEvent(track_id=self.id, gate_on=False, velocity=0.0,
                            timestamp=timestamp)


def new_cv_track(channel: int, source_track_id: Optional[str] = None,
                 envelope: Envelope = PERCUSSION, number: Optional[int] = None,
                 **kwargs: Any) -> CVTrack:
    """Build a CV track the way the "add CV track" action names them."""
    number = channel if number is None else number
    return CVTrack(name=f"ENV {number}", output_channel=channel,
                   envelope=envelope, source_track_id=source_track_id, **kwargs)
