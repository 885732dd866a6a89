"""Per-channel voltage scaling, offset and slew limiting.

A :class:`CVOutputChannel` maps an abstract signal value onto the
selected interface's voltage range::

    volts = clamp(raw * voltage_scale + voltage_offset, v_min, v_max)

Channel numbers are validated against the interface when the channel is
configured (:meth:`CVOutputChannel.validated`), never per sample.  The
per-sample path clamps and cannot raise.

Slew limiting is a one-pole exponential approach whose per-sample step
is additionally capped, so an output can never overshoot its target.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, Optional

import numpy as np  # type: ignore

from .interfaces import AudioInterfaceModel
from ..dsp.scaling import clamp

DEFAULT_CONTROL_RATE_HZ = 1000.0


class CVOutputType(Enum):
    PITCH = "Pitch (1V/Oct)"
    GATE = "Gate"
    VELOCITY = "Velocity"
    MODULATION = "Modulation"
    CLOCK = "Clock"
    TRIGGER = "Trigger"
    ENVELOPE = "Envelope"
    LFO = "LFO"

    @classmethod
    def from_name(cls, name: str) -> "CVOutputType":
        key = name.strip().upper()
        for member in cls:
            if member.name == key or member.value.upper() == key:
                return member
        raise ValueError(f"Unknown output type: {name!r}. "
                         f"Available: {', '.join(m.name.lower() for m in cls)}")

    @property
    def follows_cv_tracks(self) -> bool:
        """Output carries the summed envelope signal of its CV tracks."""
        return self in (CVOutputType.ENVELOPE, CVOutputType.MODULATION,
                        CVOutputType.LFO)

    def default_scale(self, interface: AudioInterfaceModel) -> float:
        """Volts per unit for a freshly configured output of this type.

        Pitch is 1 V/oct (the raw signal is already in volts); gates,
        triggers, clocks and velocity swing 0-5 V; envelope-style outputs
        use the interface's full positive range.
        """
        if self is CVOutputType.PITCH:
            return 1.0
        if self.follows_cv_tracks:
            return interface.voltage_range.max_voltage
        return 5.0


@dataclass(frozen=True)
class CVOutputChannel:
    """Voltage configuration for one hardware output.

    Attributes:
        output_channel: 0-based output index (< interface output count).
        output_type: What the output carries.
        track_id: Sequencer track feeding pitch/gate/velocity/trigger/clock
            outputs; unused for envelope-style outputs.
        voltage_scale: Volts per unit of raw signal.
        voltage_offset: Volts added after scaling.
        slew: Slew time constant in ms (0 = instantaneous).
    """

    output_channel: int = 0
    output_type: CVOutputType = CVOutputType.ENVELOPE
    track_id: Optional[str] = None
    voltage_scale: float = 1.0
    voltage_offset: float = 0.0
    slew: float = 0.0

    def __post_init__(self) -> None:
        object.__setattr__(self, 'output_channel', int(self.output_channel))
        # NaN scale or offset collapses to 0
        for name in ('voltage_scale', 'voltage_offset'):
            value = float(getattr(self, name))
            object.__setattr__(self, name, 0.0 if math.isnan(value) else value)
        slew = float(self.slew)
        object.__setattr__(self, 'slew', slew if slew > 0.0 else 0.0)

    def final_voltage(self, raw: float, interface: AudioInterfaceModel) -> float:
        """Scale, offset and clamp *raw* into the interface's range."""
        v_min, v_max = interface.voltage_bounds
        raw = float(raw)
        if not math.isfinite(raw):
            raw = 0.0
        volts = raw * self.voltage_scale + self.voltage_offset
        if math.isnan(volts):
            volts = self.voltage_offset
        return clamp(volts, v_min, v_max)

    def final_voltages(self, raw: np.ndarray, interface: AudioInterfaceModel) -> np.ndarray:
        """Vectorised :meth:`final_voltage`."""
        v_min, v_max = interface.voltage_bounds
        raw = np.nan_to_num(np.asarray(raw, dtype=np.float64),
                            nan=0.0, posinf=0.0, neginf=0.0)
        with np.errstate(invalid='ignore'):
            volts = raw * self.voltage_scale + self.voltage_offset
        volts = np.where(np.isnan(volts), self.voltage_offset, volts)
        return np.clip(volts, v_min, v_max)

    def validated(self, interface: AudioInterfaceModel) -> "CVOutputChannel":
        """Check the channel against *interface* at configuration time.

        Raises ``ValueError`` if the output index does not exist on the
        interface.  Returns a copy with the offset clamped into the
        interface's voltage range.
        """
        if not interface.has_output(self.output_channel):
            raise ValueError(
                f"Output {self.output_channel} does not exist on {interface.name} "
                f"({interface.output_count} outputs, indices 0-{interface.output_count - 1})"
            )
        v_min, v_max = interface.voltage_bounds
        return replace(self, voltage_offset=clamp(self.voltage_offset, v_min, v_max))

    def with_changes(self, **changes: Any) -> "CVOutputChannel":
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'output_channel': self.output_channel,
            'output_type': self.output_type.name.lower(),
            'track_id': self.track_id,
            'voltage_scale': self.voltage_scale,
            'voltage_offset': self.voltage_offset,
            'slew': self.slew,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CVOutputChannel":
        kwargs = {k: data[k] for k in ('output_channel', 'track_id', 'voltage_scale',
                                       'voltage_offset', 'slew') if k in data}
        if 'output_type' in data:
            kwargs['output_type'] = CVOutputType.from_name(data['output_type'])
        return cls(**kwargs)


class SlewLimiter:
    """Rate limiter between consecutive output samples.

    Each sample moves ``alpha`` of the remaining distance toward the
    target (``alpha = 1 - exp(-1 / (rate * slew_s))``), and never more
    than ``span / (rate * slew_s)`` volts, i.e. a full-range swing takes
    at least *slew_ms*.  Both bounds are fractions of the remaining
    distance or less, so the output approaches monotonically and never
    passes the target.  ``slew_ms == 0`` passes samples through.
    """

    __slots__ = ("slew_ms", "control_rate_hz", "span", "alpha", "max_step", "current")

    def __init__(self, slew_ms: float, control_rate_hz: float = DEFAULT_CONTROL_RATE_HZ,
                 span: float = 20.0, initial: Optional[float] = None) -> None:
        self.slew_ms = max(0.0, float(slew_ms))
        self.control_rate_hz = max(1e-9, float(control_rate_hz))
        self.span = abs(float(span))
        samples = self.control_rate_hz * self.slew_ms / 1000.0
        if samples > 0.0:
            self.alpha = 1.0 - math.exp(-1.0 / samples)
            self.max_step = self.span / samples
        else:
            self.alpha = 1.0
            self.max_step = math.inf
        self.current = initial

    @property
    def is_instant(self) -> bool:
        return self.slew_ms == 0.0

    def reset(self, value: Optional[float] = None) -> None:
        self.current = value

    def process(self, target: float) -> float:
        target = float(target)
        if self.is_instant or self.current is None:
            self.current = target
            return target
        diff = target - self.current
        step = diff * self.alpha
        if abs(step) > self.max_step:
            step = math.copysign(self.max_step, diff)
        self.current += step
        return self.current

    def process_block(self, targets: np.ndarray) -> np.ndarray:
        """Run :meth:`process` over a block of targets."""
        targets = np.asarray(targets, dtype=np.float64)
        out = np.empty_like(targets)
        for i, target in enumerate(targets):
            out[i] = self.process(target)
        return out


def default_channel(output_channel: int, output_type: CVOutputType,
                    interface: AudioInterfaceModel,
                    track_id: Optional[str] = None) -> CVOutputChannel:
    """A channel of *output_type* with the type's default scaling."""
    return CVOutputChannel(
        output_channel=output_channel,
        output_type=output_type,
        track_id=track_id,
        voltage_scale=output_type.default_scale(interface),
    )
