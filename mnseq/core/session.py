"""Session state for the MNSEQ REPL.

The Session owns everything one running sequencer needs:

- the selected audio interface
- the CV track registry and the control-rate engine reading it
- the sequencer tracks that act as trigger sources
- the pitch quantiser
- user preferences

It also drives a simple step clock (``advance_step`` / ``run``) so the
command layer can audition routings without any hardware attached.

TIMING:
-------
All times are milliseconds of sequencer clock.  One step is a
sixteenth note; a step's gate stays high for ``length / 24`` of the
step (24 ticks per sixteenth at 96 PPQN).

BUILD ID: session_v2_cv
"""

from __future__ import annotations

import logging
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np  # type: ignore

from .engine import CVEngine
from .interfaces import AudioInterfaceModel, DEFAULT_INTERFACE_ID, get_interface
from .objects import CVTrack, SequencerTrack, TriggerEvent
from .registry import CVTrackRegistry
from .user_data import DEFAULT_PREFERENCES, cv_set_path, load_preferences
from ..dsp.envelopes import Envelope, PERCUSSION, get_preset
from ..dsp.music_theory import ScaleQuantizer

logger = logging.getLogger(__name__)

TICKS_PER_STEP = 24


def _default_tracks() -> List[SequencerTrack]:
    kick = SequencerTrack(name="KICK", midi_channel=10).apply_euclidean(16, 4)
    snare = SequencerTrack(name="SNARE", midi_channel=10).apply_pattern(
        [i in (4, 12) for i in range(16)])
    hat = SequencerTrack(name="HAT", midi_channel=10).apply_euclidean_with_velocity(16, 8)
    bass = SequencerTrack(name="BASS", midi_channel=2).apply_euclidean(16, 5)
    bass = bass.with_steps([replace(s, note=36) for s in bass.steps])
    return [kick, snare, hat, bass]


class Session:
    """Maintain state for the MNSEQ REPL."""

    def __init__(self, prefs: Optional[Dict[str, Any]] = None,
                 interface: Optional[AudioInterfaceModel] = None) -> None:
        if prefs is None:
            prefs = load_preferences()
        self.prefs: Dict[str, Any] = {**DEFAULT_PREFERENCES, **prefs}

        self.interface = interface or self._interface_from_prefs()
        self.bpm: float = float(self.prefs['bpm'])
        self.default_envelope: Envelope = self._envelope_from_prefs()

        self.quantize_root: int = int(self.prefs['quant_root'])
        self.quantizer: Optional[ScaleQuantizer] = None
        scale = self.prefs.get('quant_scale')
        if scale and scale != 'chromatic':
            try:
                self.quantizer = ScaleQuantizer(scale)
            except ValueError:
                logger.warning("Unknown quantizer scale in preferences: %r", scale)

        self.registry = CVTrackRegistry()
        self.engine = CVEngine(self.registry, self.interface,
                               control_rate_hz=float(self.prefs['control_rate_hz']),
                               quantizer=self.quantizer,
                               quantize_root=self.quantize_root)

        self.tracks: List[SequencerTrack] = _default_tracks()
        self.registry.setup_defaults(self.interface, [t.id for t in self.tracks])

        # Transport
        self.clock_ms: float = 0.0
        self.playhead: int = 0
        self._next_step_ms: float = 0.0
        self._pending_releases: List[TriggerEvent] = []

    # ---- Preferences --------------------------------------------------------

    def _interface_from_prefs(self) -> AudioInterfaceModel:
        try:
            return get_interface(str(self.prefs['interface_id']))
        except ValueError:
            logger.warning("Unknown interface in preferences: %r; using %s",
                           self.prefs['interface_id'], DEFAULT_INTERFACE_ID)
            return get_interface(DEFAULT_INTERFACE_ID)

    def _envelope_from_prefs(self) -> Envelope:
        try:
            return get_preset(str(self.prefs['default_envelope']))
        except ValueError:
            logger.warning("Unknown default envelope in preferences: %r",
                           self.prefs['default_envelope'])
            return PERCUSSION

    @property
    def step_ms(self) -> float:
        """Length of one sixteenth-note step."""
        return 60000.0 / max(1.0, self.bpm) / 4.0

    # ---- Sequencer tracks ---------------------------------------------------

    def track(self, ref: str) -> SequencerTrack:
        """Find a sequencer track by name, 1-based number or ID.

        Raises ``ValueError`` if nothing matches.
        """
        key = ref.strip()
        if key.isdigit():
            pos = int(key) - 1
            if 0 <= pos < len(self.tracks):
                return self.tracks[pos]
        for t in self.tracks:
            if t.name.lower() == key.lower() or t.id == key:
                return t
        raise ValueError(f"Unknown sequencer track: {ref!r}. "
                         f"Available: {', '.join(t.name for t in self.tracks)}")

    def track_name(self, track_id: Optional[str]) -> str:
        for t in self.tracks:
            if t.id == track_id:
                return t.name
        return "-"

    def replace_track(self, track: SequencerTrack) -> SequencerTrack:
        for i, t in enumerate(self.tracks):
            if t.id == track.id:
                self.tracks[i] = track
                return track
        raise ValueError(f"Sequencer track {track.id!r} is not in this session")

    # ---- CV routing ---------------------------------------------------------

    def add_cv_track(self, source_ref: Optional[str] = None,
                     envelope: Optional[Envelope] = None) -> Optional[CVTrack]:
        """Add a CV track; unless told otherwise it follows the first track."""
        if source_ref:
            source_id = self.track(source_ref).id
        else:
            source_id = self.tracks[0].id if self.tracks else None
        return self.registry.add_cv_track(self.interface, source_id,
                                          envelope or self.default_envelope)

    def cv_track(self, ref: str) -> CVTrack:
        """Resolve a CV track reference or raise ``ValueError``."""
        track = self.registry.resolve(ref)
        if track is None:
            raise ValueError(f"Unknown CV track: {ref!r}")
        return track

    def set_interface(self, interface: AudioInterfaceModel) -> List[int]:
        """Switch interface.  Returns dropped output indices."""
        self.interface = interface
        dropped = self.engine.set_interface(interface)
        logger.info("Interface set to %s", interface.name)
        return dropped

    def set_quantizer(self, scale: Optional[str], root: Optional[int] = None) -> None:
        if root is not None:
            self.quantize_root = int(root)
        self.quantizer = ScaleQuantizer(scale) if scale else None
        self.engine.set_quantizer(self.quantizer, self.quantize_root)

    def save_cv_set(self, name: str) -> Path:
        return self.registry.export(cv_set_path(name))

    def load_cv_set(self, name: str) -> int:
        """Replace the CV tracks with a saved set.

        Raises ``FileNotFoundError`` if no set has that name.
        """
        path = cv_set_path(name)
        if not path.exists():
            raise FileNotFoundError(f"No CV set named '{name}'")
        return self.registry.import_file(path)

    # ---- Transport ----------------------------------------------------------

    def reset_transport(self) -> None:
        self.clock_ms = 0.0
        self.playhead = 0
        self._next_step_ms = 0.0
        self._pending_releases.clear()
        self.engine.reset()

    def advance_step(self) -> List[TriggerEvent]:
        """Fire the step under the playhead at the current clock time."""
        now = self.clock_ms
        fired: List[TriggerEvent] = []
        for track in self.tracks:
            idx = self.playhead % track.length
            step = track.steps[idx]
            for event in track.events_at(idx, now):
                fired.append(event)
                gate_ms = self.step_ms * min(step.length, TICKS_PER_STEP) / TICKS_PER_STEP
                self._pending_releases.append(track.release_event(now + gate_ms))
        for event in fired:
            self.engine.handle_trigger(event)
        self.playhead += 1
        return fired

    def _flush_releases(self, now: float) -> None:
        due = [e for e in self._pending_releases if e.timestamp <= now]
        if not due:
            return
        self._pending_releases = [e for e in self._pending_releases if e.timestamp > now]
        for event in sorted(due, key=lambda e: e.timestamp):
            self.engine.handle_trigger(event)

    def run(self, duration_ms: float) -> Dict[int, np.ndarray]:
        """Play the sequencer for *duration_ms* and capture every output.

        Returns one array of volts per active output index, sampled at
        the engine's control rate.
        """
        period = 1000.0 / self.engine.control_rate_hz
        samples = max(0, int(round(duration_ms / period)))
        blocks: Dict[int, np.ndarray] = {}
        for i in range(samples):
            now = self.clock_ms
            # releases first so a gate-off and the next gate-on can share a tick
            self._flush_releases(now)
            while now >= self._next_step_ms:
                self.advance_step()
                self._next_step_ms += self.step_ms
            for idx, volts in self.engine.tick(now).items():
                block = blocks.get(idx)
                if block is None:
                    block = np.zeros(samples, dtype=np.float64)
                    blocks[idx] = block
                block[i] = volts
            self.clock_ms += period
        return blocks
