"""Euclidean rhythm generation (Bjorklund's algorithm).

Distributes ``pulses`` onsets as evenly as possible over ``steps``
positions.  Everything here is pure and deterministic: the same inputs
always produce the same list, and transforms never modify the list they
are given.

Common patterns::

    E(3,8)  = x . . x . . x .           Cuban tresillo
    E(5,8)  = x . x x . x x .           Cuban cinquillo
    E(4,12) = x . . x . . x . . x . .   West African bell
    E(4,16) = x . . . x . . . x . . .   four on the floor
"""

from __future__ import annotations

from typing import List, Optional, Sequence, Tuple

Pattern = List[bool]


# ======================================================================
# Generation
# ======================================================================

def generate(steps: int, pulses: int, rotation: int = 0) -> Pattern:
    """Generate a Euclidean rhythm.

    Parameters
    ----------
    steps : int
        Pattern length.  ``steps <= 0`` gives an empty pattern.
    pulses : int
        Active steps.  ``<= 0`` gives all rests, ``>= steps`` all hits.
    rotation : int
        Circular left shift applied after generation; any integer,
        taken modulo ``steps``.

    Returns
    -------
    list of bool
        ``True`` marks a pulse.  Unrotated patterns start on a pulse.

    Examples
    --------
    >>> generate(8, 3)
    [True, False, False, True, False, False, True, False]
    """
    steps = int(steps)
    pulses = int(pulses)
    if steps <= 0:
        return []
    if pulses <= 0:
        return [False] * steps
    if pulses >= steps:
        return [True] * steps

    pattern = _bjorklund(steps, pulses)
    # The recursion emits the rests of the first group before its pulse;
    # start the canonical pattern on its first onset.
    first = pattern.index(True)
    pattern = pattern[first:] + pattern[:first]
    return shift_left(pattern, rotation)


def _bjorklund(steps: int, pulses: int) -> Pattern:
    counts: List[int] = []
    remainders: List[int] = [pulses]
    divisor = steps - pulses
    level = 0
    while remainders[level] > 1:
        counts.append(divisor // remainders[level])
        remainders.append(divisor % remainders[level])
        divisor = remainders[level]
        level += 1
    counts.append(divisor)

    pattern: Pattern = []

    def build(lvl: int) -> None:
        if lvl == -1:
            pattern.append(False)
        elif lvl == -2:
            pattern.append(True)
        else:
            for _ in range(counts[lvl]):
                build(lvl - 1)
            if remainders[lvl] != 0:
                build(lvl - 2)

    build(level)
    return pattern


def generate_with_velocity(steps: int, pulses: int, rotation: int = 0,
                           accent_every: int = 4, base_velocity: int = 80,
                           accent_velocity: int = 120) -> List[Optional[int]]:
    """Euclidean pattern with accents.

    Rests are ``None``.  Pulses are counted as they are emitted (not by
    step index); pulse 1, 1 + N, 1 + 2N, ... get *accent_velocity*, the
    rest *base_velocity*.  ``accent_every <= 0`` disables accents.
    """
    pattern = generate(steps, pulses, rotation)
    out: List[Optional[int]] = []
    pulse_count = 0
    for is_on in pattern:
        if not is_on:
            out.append(None)
            continue
        accented = accent_every > 0 and pulse_count % accent_every == 0
        out.append(accent_velocity if accented else base_velocity)
        pulse_count += 1
    return out


def pattern_string(steps: int, pulses: int, rotation: int = 0) -> str:
    """Text rendering, e.g. ``'x . . x . . x .'``."""
    return to_string(generate(steps, pulses, rotation))


def to_string(pattern: Sequence[bool]) -> str:
    return ' '.join('x' if on else '.' for on in pattern)


def complementary(steps: int, pulses: int) -> Tuple[int, int]:
    """Parameters of the pattern that fills the rests of E(pulses, steps)."""
    return steps, steps - pulses


# ======================================================================
# Transforms
# ======================================================================

def reverse(pattern: Sequence[bool]) -> Pattern:
    return list(pattern)[::-1]


def invert(pattern: Sequence[bool]) -> Pattern:
    """Swap hits and rests."""
    return [not on for on in pattern]


def double(pattern: Sequence[bool]) -> Pattern:
    """Repeat the pattern once (twice the length)."""
    return list(pattern) + list(pattern)


def halve(pattern: Sequence[bool]) -> Pattern:
    """Keep every other step."""
    return list(pattern)[::2]


def shift_left(pattern: Sequence[bool], amount: int = 1) -> Pattern:
    pattern = list(pattern)
    if not pattern:
        return pattern
    shift = amount % len(pattern)
    return pattern[shift:] + pattern[:shift]


def shift_right(pattern: Sequence[bool], amount: int = 1) -> Pattern:
    pattern = list(pattern)
    if not pattern:
        return pattern
    shift = amount % len(pattern)
    return pattern[len(pattern) - shift:] + pattern[:len(pattern) - shift]


TRANSFORMS = {
    'reverse': reverse,
    'invert': invert,
    'double': double,
    'halve': halve,
    'left': shift_left,
    'right': shift_right,
}


# ======================================================================
# Presets — (name, steps, pulses, rotation)
# ======================================================================

PRESETS: List[Tuple[str, int, int, int]] = [
    ("tresillo", 8, 3, 0),
    ("cinquillo", 8, 5, 0),
    ("son_clave", 16, 5, 0),
    ("rumba_clave", 16, 5, 2),
    ("samba", 16, 7, 0),
    ("bossa_nova", 16, 5, 3),
    ("west_african", 12, 4, 0),
    ("aksak", 5, 2, 0),
    ("sparse", 16, 3, 0),
    ("dense", 16, 13, 0),
    ("quarter_notes", 16, 4, 0),
    ("eighth_notes", 16, 8, 0),
]


def get_preset(name: str) -> Tuple[int, int, int]:
    """Return ``(steps, pulses, rotation)`` for a named preset."""
    key = name.strip().lower().replace(' ', '_').replace('-', '_')
    for preset_name, steps, pulses, rotation in PRESETS:
        if preset_name == key:
            return steps, pulses, rotation
    raise ValueError(f"Unknown rhythm preset: {name!r}. "
                     f"Available: {', '.join(p[0] for p in PRESETS)}")


def list_presets() -> List[str]:
    return [p[0] for p in PRESETS]
