"""Scale tables and pitch quantisation for pitch-implying trigger sources.

All pitch representations are MIDI note numbers; scale tables are
**semitone offsets** from the root (0 = root).  Pitch CV follows the
1 V/octave convention with C4 (MIDI 60) at 0 V.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Sequence, Tuple, Union

# ======================================================================
# Scales — every entry is a tuple of semitone offsets from root
# ======================================================================

SCALES: Dict[str, Tuple[int, ...]] = {
    # Diatonic modes
    'major':            (0, 2, 4, 5, 7, 9, 11),
    'ionian':           (0, 2, 4, 5, 7, 9, 11),
    'dorian':           (0, 2, 3, 5, 7, 9, 10),
    'phrygian':         (0, 1, 3, 5, 7, 8, 10),
    'lydian':           (0, 2, 4, 6, 7, 9, 11),
    'mixolydian':       (0, 2, 4, 5, 7, 9, 10),
    'minor':            (0, 2, 3, 5, 7, 8, 10),
    'aeolian':          (0, 2, 3, 5, 7, 8, 10),
    'locrian':          (0, 1, 3, 5, 6, 8, 10),
    # Melodic / harmonic minor
    'harmonic_minor':   (0, 2, 3, 5, 7, 8, 11),
    'melodic_minor':    (0, 2, 3, 5, 7, 9, 11),
    # Pentatonic
    'pentatonic_major': (0, 2, 4, 7, 9),
    'pentatonic_minor': (0, 3, 5, 7, 10),
    # Blues
    'blues':            (0, 3, 5, 6, 7, 10),
    # Other
    'whole_tone':       (0, 2, 4, 6, 8, 10),
    'diminished':       (0, 2, 3, 5, 6, 8, 9, 11),
    'chromatic':        tuple(range(12)),
    'japanese':         (0, 1, 5, 7, 8),
    'hungarian_minor':  (0, 2, 3, 6, 7, 8, 11),
}

# ======================================================================
# Note name ↔ MIDI helpers
# ======================================================================

NOTE_NAMES = ['C', 'C#', 'D', 'D#', 'E', 'F',
              'F#', 'G', 'G#', 'A', 'A#', 'B']

_NOTE_MAP = {
    'C': 0, 'D': 2, 'E': 4, 'F': 5, 'G': 7, 'A': 9, 'B': 11,
    'C#': 1, 'D#': 3, 'F#': 6, 'G#': 8, 'A#': 10,
    'Cb': 11, 'Db': 1, 'Eb': 3, 'Fb': 4, 'Gb': 6, 'Ab': 8, 'Bb': 10,
}

# MIDI note that sits at 0 V on a 1 V/oct pitch output
PITCH_REFERENCE_NOTE = 60


def note_name_to_midi(name: str) -> int:
    """Convert e.g. 'C4', 'A#3', 'Bb5' to MIDI note number."""
    name = name.strip()
    if len(name) < 2:
        raise ValueError(f"Invalid note: {name!r}")
    name = name[0].upper() + name[1:]
    if name[1] in ('#', 'b') and len(name) > 2:
        letter_part = name[:2]
        octave = int(name[2:])
    else:
        letter_part = name[0]
        octave = int(name[1:])
    base = _NOTE_MAP.get(letter_part)
    if base is None:
        raise ValueError(f"Unknown note letter: {letter_part!r}")
    return base + (octave + 1) * 12


def midi_to_note_name(midi: int) -> str:
    """Convert MIDI note number to name, e.g. 60 → 'C4'."""
    octave = (midi // 12) - 1
    return f"{NOTE_NAMES[midi % 12]}{octave}"


def parse_root(text: str) -> int:
    """Parse a root given as a MIDI number, 'C4' or a bare pitch class 'D#'."""
    text = text.strip()
    if text.lstrip('-').isdigit():
        return int(text)
    letter = text[0].upper() + text[1:]
    if letter in _NOTE_MAP:
        return PITCH_REFERENCE_NOTE + _NOTE_MAP[letter]
    return note_name_to_midi(text)


def note_to_volts(note: float, reference: int = PITCH_REFERENCE_NOTE) -> float:
    """MIDI note → pitch CV in volts (1 V/oct, *reference* at 0 V)."""
    return (note - reference) / 12.0


def get_scale(root_midi: int, scale_name: str,
              octaves: int = 1) -> List[int]:
    """Return MIDI notes for *scale_name* starting at *root_midi*.

    >>> get_scale(60, 'major')
    [60, 62, 64, 65, 67, 69, 71]
    """
    intervals = _lookup_scale(scale_name)
    notes = []
    for octave in range(octaves):
        for iv in intervals:
            notes.append(root_midi + iv + octave * 12)
    return notes


def _lookup_scale(scale_name: str) -> Tuple[int, ...]:
    intervals = SCALES.get(scale_name.lower())
    if intervals is None:
        raise ValueError(f"Unknown scale: {scale_name!r}. "
                         f"Available: {', '.join(sorted(SCALES))}")
    return intervals


# ======================================================================
# Quantisation
# ======================================================================

class ScaleQuantizer:
    """Snap notes to the nearest member of a scale.

    The interval set is scanned in ascending order and the interval with
    the smallest semitone distance wins, where distance is the smaller of
    the direct gap and the gap wrapping around the octave.  On an exact
    tie the first interval in ascending order wins, i.e. the lower scale
    degree.  A gap of exactly 6 semitones is resolved directly (no
    octave wrap).
    """

    __slots__ = ("name", "intervals")

    def __init__(self, scale: Union[str, Iterable[int]] = 'chromatic') -> None:
        if isinstance(scale, str):
            self.name = scale.lower()
            intervals: Iterable[int] = _lookup_scale(scale)
        else:
            self.name = 'custom'
            intervals = scale
        self.intervals: Tuple[int, ...] = tuple(sorted({int(iv) % 12 for iv in intervals}))

    def quantize(self, note: int, root: int) -> int:
        """Return the scale note nearest to *note* for the given *root*."""
        if not self.intervals:
            return note
        offset = note - root
        pc = offset % 12
        octave = offset // 12

        best_iv = self.intervals[0]
        best_dist = 13
        best_shift = 0
        for iv in self.intervals:
            direct = iv - pc
            dist = abs(direct)
            shift = 0
            if 12 - dist < dist:
                dist = 12 - dist
                shift = -12 if direct > 0 else 12
            if dist < best_dist:
                best_iv, best_dist, best_shift = iv, dist, shift
        return root + octave * 12 + best_iv + best_shift

    def quantize_many(self, notes: Sequence[int], root: int) -> List[int]:
        return [self.quantize(n, root) for n in notes]

    def __repr__(self) -> str:
        return f"ScaleQuantizer({self.name!r}, {self.intervals})"


def list_scales() -> List[str]:
    return sorted(SCALES.keys())


def quantize_notes(notes: Sequence[int], root_midi: int, scale_name: str) -> List[int]:
    """Snap every note in *notes* to *scale_name*."""
    return ScaleQuantizer(scale_name).quantize_many(notes, root_midi)
