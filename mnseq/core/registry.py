"""CV track registry.

The single authoritative store for CV tracks.  The command layer and
any view write through it; the control-rate path reads immutable
snapshots from it.

Every edit replaces a whole :class:`~mnseq.core.objects.CVTrack` record.
Nothing handed out by the registry is ever mutated afterwards, so a
snapshot taken for one tick stays valid for that tick no matter what
the editor does meanwhile.

The registry provides:
- Add / remove / replace of CV tracks, with the "next free channel" rule
- Field-replacement shortcuts (source, destination, envelope, amount)
- Selection tracking
- Event subscriptions so views (and the engine) update automatically
- JSON serialisation for presets and session persistence

BUILD ID: registry_v2_cv
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Tuple, Union

from .interfaces import AudioInterfaceModel
from .objects import CVTrack, ModulationDestination, new_cv_track
from ..dsp.envelopes import Envelope, KICK, PERCUSSION, SNARE

logger = logging.getLogger(__name__)

# How many CV tracks setup_defaults creates at most
DEFAULT_TRACK_COUNT = 4


# ============================================================================
# REGISTRY EVENTS
# ============================================================================

class RegistryEventType:
    """Event type constants for registry subscriptions."""
    TRACK_CREATED = "track_created"
    TRACK_UPDATED = "track_updated"
    TRACK_DELETED = "track_deleted"
    TRACKS_RESET = "tracks_reset"


class RegistryEvent:
    """Payload for a registry change event.

    Attributes:
        event_type: One of the RegistryEventType constants.
        track_id: ID of the affected track ("" for resets).
        track: The new record (None on delete/reset).
    """

    __slots__ = ("event_type", "track_id", "track")

    def __init__(self, event_type: str, track_id: str = "",
                 track: Optional[CVTrack] = None) -> None:
        self.event_type = event_type
        self.track_id = track_id
        self.track = track


# ============================================================================
# CV TRACK REGISTRY
# ============================================================================

class CVTrackRegistry:
    """Ordered store of CV tracks for one session."""

    def __init__(self) -> None:
        self._tracks: Dict[str, CVTrack] = {}
        self._subscribers: Dict[str, List[Callable[[RegistryEvent], None]]] = {}
        self.selected_id: Optional[str] = None

    def __len__(self) -> int:
        return len(self._tracks)

    def __iter__(self):
        return iter(self.snapshot())

    # ---- Core CRUD ----------------------------------------------------------

    def add(self, track: CVTrack) -> CVTrack:
        """Insert a fully built track and select it."""
        self._tracks[track.id] = track
        self.selected_id = track.id
        self._fire(RegistryEvent(RegistryEventType.TRACK_CREATED, track.id, track))
        logger.info("Added CV track %s on channel %d", track.name, track.output_channel)
        return track

    def add_cv_track(self, interface: AudioInterfaceModel,
                     source_track_id: Optional[str] = None,
                     envelope: Envelope = PERCUSSION) -> Optional[CVTrack]:
        """Add a CV track on the next free channel.

        The new track takes the channel after the highest one in use and
        is named after its position.  Returns None, without changing
        anything, when that channel would not exist on *interface*.
        """
        next_channel = max((t.output_channel for t in self._tracks.values()), default=0) + 1
        if next_channel > interface.output_count:
            logger.warning("No free output for a new CV track on %s (%d outputs)",
                           interface.name, interface.output_count)
            return None
        track = new_cv_track(next_channel, source_track_id, envelope,
                             number=len(self._tracks) + 1)
        return self.add(track)

    def get(self, track_id: str) -> Optional[CVTrack]:
        return self._tracks.get(track_id)

    def get_by_name(self, name: str) -> Optional[CVTrack]:
        key = name.strip().lower()
        for track in self._tracks.values():
            if track.name.lower() == key:
                return track
        return None

    def resolve(self, ref: str) -> Optional[CVTrack]:
        """Find a track by ID, ID prefix, name, or 1-based list position."""
        track = self.get(ref) or self.get_by_name(ref)
        if track is not None:
            return track
        if ref.isdigit():
            tracks = self.list_tracks()
            pos = int(ref) - 1
            if 0 <= pos < len(tracks):
                return tracks[pos]
            return None
        matches = [t for tid, t in self._tracks.items() if tid.startswith(ref)]
        return matches[0] if len(matches) == 1 else None

    def list_tracks(self) -> List[CVTrack]:
        return list(self._tracks.values())

    def snapshot(self) -> Tuple[CVTrack, ...]:
        """Immutable view of all tracks for the control-rate path."""
        return tuple(self._tracks.values())

    def tracks_for_source(self, source_track_id: str) -> List[CVTrack]:
        return [t for t in self._tracks.values() if t.source_track_id == source_track_id]

    def update(self, track: CVTrack) -> Optional[CVTrack]:
        """Replace the stored record that has ``track.id``.

        Returns the stored track, or None if no such track exists.
        """
        if track.id not in self._tracks:
            return None
        self._tracks[track.id] = track
        self._fire(RegistryEvent(RegistryEventType.TRACK_UPDATED, track.id, track))
        return track

    def remove(self, track_id: str) -> bool:
        """Delete a track.  Returns True if it existed."""
        track = self._tracks.pop(track_id, None)
        if track is None:
            return False
        if self.selected_id == track_id:
            self.selected_id = next(iter(self._tracks), None)
        self._fire(RegistryEvent(RegistryEventType.TRACK_DELETED, track_id))
        logger.info("Removed CV track %s", track.name)
        return True

    def clear(self) -> None:
        self._tracks.clear()
        self.selected_id = None
        self._fire(RegistryEvent(RegistryEventType.TRACKS_RESET))

    # ---- Selection ----------------------------------------------------------

    def select(self, track_id: str) -> bool:
        if track_id not in self._tracks:
            return False
        self.selected_id = track_id
        return True

    @property
    def selected(self) -> Optional[CVTrack]:
        if self.selected_id is None:
            return None
        return self._tracks.get(self.selected_id)

    # ---- Field replacement --------------------------------------------------

    def _replace(self, track_id: str, change: Callable[[CVTrack], CVTrack]) -> Optional[CVTrack]:
        track = self._tracks.get(track_id)
        if track is None:
            return None
        return self.update(change(track))

    def update_envelope(self, track_id: str, envelope: Envelope) -> Optional[CVTrack]:
        return self._replace(track_id, lambda t: t.set_envelope(envelope))

    def set_source(self, track_id: str, source_track_id: Optional[str]) -> Optional[CVTrack]:
        return self._replace(track_id, lambda t: t.set_source_track(source_track_id))

    def set_destination(self, track_id: str,
                        destination: ModulationDestination) -> Optional[CVTrack]:
        return self._replace(track_id, lambda t: t.set_destination(destination))

    def set_modulation_amount(self, track_id: str, amount: float) -> Optional[CVTrack]:
        return self._replace(track_id, lambda t: t.set_modulation_amount(amount))

    def toggle_enabled(self, track_id: str) -> Optional[CVTrack]:
        return self._replace(track_id, lambda t: t.toggle_enabled())

    def rename(self, track_id: str, new_name: str) -> Optional[CVTrack]:
        """Rename a track. Returns the new record, or None if not found."""
        if track_id not in self._tracks:
            return None
        clash = self.get_by_name(new_name)
        if clash is not None and clash.id != track_id:
            raise ValueError(f"Name '{new_name}' already in use")
        return self._replace(track_id, lambda t: t.rename(new_name))

    # ---- Defaults -----------------------------------------------------------

    def setup_defaults(self, interface: AudioInterfaceModel,
                       source_track_ids: Iterable[str]) -> List[CVTrack]:
        """Rebuild the default CV tracks for *interface*.

        One VCA envelope per source track (kick, snare, then percussion
        envelopes), at most four and never beyond the interface's
        outputs.  AC-coupled interfaces get no CV tracks.
        """
        self._tracks.clear()
        self.selected_id = None
        created: List[CVTrack] = []
        if interface.is_dc_coupled:
            for index, source_id in enumerate(list(source_track_ids)[:DEFAULT_TRACK_COUNT]):
                channel = index + 1
                if channel > interface.output_count:
                    break
                envelope = KICK if index == 0 else (SNARE if index == 1 else PERCUSSION)
                created.append(new_cv_track(channel, source_id, envelope,
                                            modulation_destination=ModulationDestination.VCA))
        for track in created:
            self._tracks[track.id] = track
        self.selected_id = created[0].id if created else None
        self._fire(RegistryEvent(RegistryEventType.TRACKS_RESET))
        logger.info("Default CV tracks for %s: %d", interface.name, len(created))
        return created

    # ---- Event system -------------------------------------------------------

    def subscribe(self, callback: Callable[[RegistryEvent], None],
                  event_type: Optional[str] = None) -> None:
        """Subscribe to registry events.

        If ``event_type`` is None, the callback receives all events.
        """
        key = event_type or "__all__"
        self._subscribers.setdefault(key, []).append(callback)

    def unsubscribe(self, callback: Callable[[RegistryEvent], None],
                    event_type: Optional[str] = None) -> None:
        key = event_type or "__all__"
        listeners = self._subscribers.get(key, [])
        if callback in listeners:
            listeners.remove(callback)

    def _fire(self, event: RegistryEvent) -> None:
        """Dispatch an event to all matching subscribers."""
        for cb in self._subscribers.get(event.event_type, []):
            try:
                cb(event)
            except Exception:
                logger.exception("Error in registry subscriber for %s", event.event_type)
        for cb in self._subscribers.get("__all__", []):
            try:
                cb(event)
            except Exception:
                logger.exception("Error in registry subscriber (__all__)")

    # ---- Persistence (JSON) -------------------------------------------------

    def to_dict(self) -> dict:
        return {
            'selected_id': self.selected_id,
            'tracks': [t.to_dict() for t in self._tracks.values()],
        }

    def from_dict(self, data: dict) -> None:
        """Replace the registry contents with serialised tracks."""
        self._tracks.clear()
        for entry in data.get('tracks', []):
            track = CVTrack.from_dict(entry)
            self._tracks[track.id] = track
        selected = data.get('selected_id')
        self.selected_id = selected if selected in self._tracks else next(iter(self._tracks), None)
        self._fire(RegistryEvent(RegistryEventType.TRACKS_RESET))
        logger.info("Restored %d CV tracks", len(self._tracks))

    def export(self, path: Union[str, Path]) -> Path:
        """Write all tracks to a JSON file and return its path."""
        path = Path(path)
        if path.suffix != '.json':
            path = path.with_suffix('.json')
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(self.to_dict(), f, indent=2)
        logger.info("Exported %d CV tracks to %s", len(self._tracks), path)
        return path

    def import_file(self, path: Union[str, Path]) -> int:
        """Load tracks from a JSON file written by :meth:`export`.

        Returns the number of tracks loaded.  Raises ``FileNotFoundError``
        or ``json.JSONDecodeError`` on a missing or corrupt file.
        """
        path = Path(path)
        if path.suffix != '.json':
            path = path.with_suffix('.json')
        with open(path, 'r', encoding='utf-8') as f:
            self.from_dict(json.load(f))
        return len(self._tracks)
