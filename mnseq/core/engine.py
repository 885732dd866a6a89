"""Control-rate CV engine.

Ties the pieces together once per control tick:

    TriggerEvent -> voices of the CV tracks patched to that source
    tick(now)    -> envelope level * modulation amount, summed per output
                 -> CVOutputChannel scale / offset / clamp -> slew -> volts

Outputs configured as pitch, gate, velocity, trigger or clock read the
state of their sequencer track directly instead of an envelope.

The engine is owned by the sequencer-clock thread.  It reads one
immutable snapshot of the CV track registry per tick; configuration
(channels, interface) is validated when it is set, and nothing on the
tick path raises.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

import numpy as np  # type: ignore

from .cv_output import (CVOutputChannel, CVOutputType, DEFAULT_CONTROL_RATE_HZ,
                        SlewLimiter, default_channel)
from .interfaces import AudioInterfaceModel
from .objects import CVTrack, TriggerEvent
from .registry import CVTrackRegistry, RegistryEvent, RegistryEventType
from ..dsp.music_theory import ScaleQuantizer, note_to_volts
from ..dsp.voice import EnvelopeVoice

logger = logging.getLogger(__name__)

# Width of trigger/clock pulses
TRIGGER_PULSE_MS = 10.0


@dataclass
class SourceState:
    """Last known gate state of one sequencer track."""
    gate_on: bool = False
    velocity: float = 0.0
    note: Optional[int] = None
    last_gate_on: Optional[float] = None


class CVEngine:
    """Turns trigger events into per-output voltages."""

    def __init__(self, registry: CVTrackRegistry, interface: AudioInterfaceModel,
                 control_rate_hz: float = DEFAULT_CONTROL_RATE_HZ,
                 quantizer: Optional[ScaleQuantizer] = None,
                 quantize_root: int = 60) -> None:
        self.registry = registry
        self.interface = interface
        self.control_rate_hz = float(control_rate_hz)
        self.quantizer = quantizer
        self.quantize_root = quantize_root
        self._channels: Dict[int, CVOutputChannel] = {}
        self._slews: Dict[int, SlewLimiter] = {}
        self._voices: Dict[str, EnvelopeVoice] = {}
        self._sources: Dict[str, SourceState] = {}
        registry.subscribe(self._on_registry_event)

    # ---- Configuration ------------------------------------------------------

    def configure_channel(self, channel: CVOutputChannel) -> CVOutputChannel:
        """Validate and store an output configuration.

        Raises ``ValueError`` when the output does not exist on the
        current interface.
        """
        try:
            channel = channel.validated(self.interface)
        except ValueError:
            logger.warning("Rejected output %d on %s", channel.output_channel,
                           self.interface.name)
            raise
        self._channels[channel.output_channel] = channel
        self._slews.pop(channel.output_channel, None)
        logger.info("Output %d configured: %s x%.3f %+.3fV slew %.1fms",
                    channel.output_channel, channel.output_type.name.lower(),
                    channel.voltage_scale, channel.voltage_offset, channel.slew)
        return channel

    def remove_channel(self, output_channel: int) -> bool:
        self._slews.pop(output_channel, None)
        return self._channels.pop(output_channel, None) is not None

    def channel(self, output_channel: int) -> CVOutputChannel:
        """Configured channel, or the default envelope channel."""
        configured = self._channels.get(output_channel)
        if configured is not None:
            return configured
        return default_channel(output_channel, CVOutputType.ENVELOPE, self.interface)

    def channels(self) -> List[CVOutputChannel]:
        return [self._channels[k] for k in sorted(self._channels)]

    def set_interface(self, interface: AudioInterfaceModel) -> List[int]:
        """Switch device; drops outputs it lacks and re-clamps offsets.

        Returns the output indices that were dropped.
        """
        self.interface = interface
        dropped = [idx for idx in self._channels if not interface.has_output(idx)]
        for idx in dropped:
            del self._channels[idx]
        for idx, ch in list(self._channels.items()):
            self._channels[idx] = ch.validated(interface)
        self._slews.clear()
        if dropped:
            logger.warning("Interface %s dropped outputs %s", interface.name, dropped)
        return dropped

    def set_quantizer(self, quantizer: Optional[ScaleQuantizer], root: int = 60) -> None:
        self.quantizer = quantizer
        self.quantize_root = root

    def reset(self) -> None:
        """Silence all voices and forget source state."""
        for voice in self._voices.values():
            voice.reset()
        self._sources.clear()
        for slew in self._slews.values():
            slew.reset()

    # ---- Events -------------------------------------------------------------

    def voice_for(self, track: CVTrack) -> EnvelopeVoice:
        voice = self._voices.get(track.id)
        if voice is None:
            voice = EnvelopeVoice(track.envelope)
            self._voices[track.id] = voice
        elif voice.envelope is not track.envelope:
            voice.set_envelope(track.envelope)
        return voice

    def handle_trigger(self, event: TriggerEvent) -> int:
        """Route one gate edge.  Returns how many voices it reached."""
        state = self._sources.setdefault(event.track_id, SourceState())
        state.gate_on = event.gate_on
        if event.gate_on:
            state.velocity = event.velocity
            state.last_gate_on = event.timestamp
            if event.note is not None:
                state.note = event.note

        reached = 0
        for track in self.registry.tracks_for_source(event.track_id):
            if not track.is_enabled:
                continue
            voice = self.voice_for(track)
            if event.gate_on:
                voice.gate(event.timestamp, event.velocity)
            else:
                voice.release(event.timestamp)
            reached += 1
        return reached

    def _on_registry_event(self, event: RegistryEvent) -> None:
        if event.event_type == RegistryEventType.TRACK_DELETED:
            self._voices.pop(event.track_id, None)
        elif event.event_type == RegistryEventType.TRACKS_RESET:
            self._voices.clear()
        elif event.event_type == RegistryEventType.TRACK_UPDATED and event.track is not None:
            voice = self._voices.get(event.track_id)
            if voice is not None and not event.track.is_enabled:
                voice.reset()

    # ---- Tick ---------------------------------------------------------------

    def raw_signals(self, now: float) -> Dict[int, float]:
        """Unscaled signal per output index at clock time *now* (ms)."""
        raw: Dict[int, float] = {}
        for track in self.registry.snapshot():
            if not track.is_enabled:
                continue
            idx = track.output_index
            if not self.interface.has_output(idx):
                continue
            level = self.voice_for(track).value(now) * track.modulation_amount
            raw[idx] = raw.get(idx, 0.0) + level

        for idx, ch in self._channels.items():
            if ch.output_type.follows_cv_tracks:
                continue
            raw[idx] = self._source_signal(ch, now)
        return raw

    def _source_signal(self, ch: CVOutputChannel, now: float) -> float:
        state = self._sources.get(ch.track_id) if ch.track_id else None
        if state is None:
            return 0.0
        kind = ch.output_type
        if kind is CVOutputType.PITCH:
            if state.note is None:
                return 0.0
            note = state.note
            if self.quantizer is not None:
                note = self.quantizer.quantize(note, self.quantize_root)
            return note_to_volts(note)
        if kind is CVOutputType.GATE:
            return 1.0 if state.gate_on else 0.0
        if kind is CVOutputType.VELOCITY:
            return state.velocity
        # trigger / clock: fixed-width pulse from each gate-on
        if state.last_gate_on is None:
            return 0.0
        since = now - state.last_gate_on
        return 1.0 if 0.0 <= since < TRIGGER_PULSE_MS else 0.0

    def tick(self, now: float) -> Dict[int, float]:
        """Output voltages at clock time *now*, keyed by output index."""
        volts: Dict[int, float] = {}
        for idx, value in self.raw_signals(now).items():
            ch = self.channel(idx)
            target = ch.final_voltage(value, self.interface)
            volts[idx] = self._slew_for(ch).process(target)
        return volts

    def render(self, start: float, samples: int) -> Dict[int, np.ndarray]:
        """Run *samples* ticks from *start* (ms) at the control rate.

        Raw signals are gathered first, then each output is scaled and
        slewed as one block.  Samples where an output is silent stay at
        0 V and do not advance its slew.
        """
        samples = max(0, int(samples))
        period = 1000.0 / self.control_rate_hz
        raw_blocks: Dict[int, np.ndarray] = {}
        active: Dict[int, np.ndarray] = {}
        for i in range(samples):
            for idx, value in self.raw_signals(start + i * period).items():
                if idx not in raw_blocks:
                    raw_blocks[idx] = np.zeros(samples, dtype=np.float64)
                    active[idx] = np.zeros(samples, dtype=bool)
                raw_blocks[idx][i] = value
                active[idx][i] = True

        blocks: Dict[int, np.ndarray] = {}
        for idx, raw in raw_blocks.items():
            ch = self.channel(idx)
            mask = active[idx]
            targets = ch.final_voltages(raw[mask], self.interface)
            block = np.zeros(samples, dtype=np.float64)
            block[mask] = self._slew_for(ch).process_block(targets)
            blocks[idx] = block
        return blocks

    def _slew_for(self, ch: CVOutputChannel) -> SlewLimiter:
        slew = self._slews.get(ch.output_channel)
        if slew is None:
            slew = SlewLimiter(ch.slew, self.control_rate_hz,
                               span=self.interface.voltage_range.span)
            self._slews[ch.output_channel] = slew
        return slew
