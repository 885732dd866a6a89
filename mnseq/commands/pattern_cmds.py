"""Pattern Commands for MNSEQ.

Commands for the trigger side of the CV core:
- Euclidean fills with optional accents and named rhythm presets
- Pattern display, manual step entry and pattern transforms
- Pitch quantiser selection for pitch outputs

PATTERN NOTATION:
----------------
x = hit, . = rest.  "x..x..x." is E(3,8).

BUILD ID: pattern_cmds_v2_euclid
"""

from __future__ import annotations

from typing import List

from ..core.session import Session
from ..dsp import euclidean
from ..dsp.music_theory import (ScaleQuantizer, list_scales, midi_to_note_name,
                                parse_root, quantize_notes)


def _show_tracks(session: Session) -> str:
    lines = [f"PATTERNS — step {session.playhead}\n"]
    for pos, track in enumerate(session.tracks, 1):
        lines.append(f"  {pos}. {track.name:6s} {track.length:2d} "
                     f"{euclidean.to_string(track.pattern)}")
    return '\n'.join(lines)


# ============================================================================
# /euc
# ============================================================================

def cmd_euc(session: Session, args: List[str]) -> str:
    """Fill a sequencer track with a Euclidean rhythm.

    /euc <track> <steps> <pulses> [rotation] [acc N]
    /euc <track> preset <name>
    /euc presets                   — list rhythm presets
    /euc show <steps> <pulses> [rotation]
    """
    if not args:
        return ("Usage: /euc <track> <steps> <pulses> [rotation] [acc N]\n"
                "       /euc <track> preset <name>\n"
                "       /euc presets | show <steps> <pulses> [rotation]")

    sub = args[0].lower()
    try:
        if sub == 'presets':
            lines = ["RHYTHM PRESETS\n"]
            for name, steps, pulses, rotation in euclidean.PRESETS:
                lines.append(f"  {name:14s} E({pulses},{steps}) r{rotation}  "
                             f"{euclidean.pattern_string(steps, pulses, rotation)}")
            return '\n'.join(lines)

        if sub == 'show':
            if len(args) < 3:
                return "Usage: /euc show <steps> <pulses> [rotation]"
            steps, pulses = int(args[1]), int(args[2])
            rotation = int(args[3]) if len(args) > 3 else 0
            return f"E({pulses},{steps}) r{rotation}: " \
                   f"{euclidean.pattern_string(steps, pulses, rotation)}"

        track = session.track(args[0])
        if len(args) >= 3 and args[1].lower() == 'preset':
            steps, pulses, rotation = euclidean.get_preset(args[2])
            updated = session.replace_track(track.apply_euclidean(steps, pulses, rotation))
            return f"OK: {updated.name} {args[2]}  {euclidean.to_string(updated.pattern)}"

        if len(args) < 3:
            return "Usage: /euc <track> <steps> <pulses> [rotation] [acc N]"
        steps, pulses = int(args[1]), int(args[2])
        rest = args[3:]
        rotation = 0
        accent = None
        i = 0
        while i < len(rest):
            token = rest[i].lower()
            if token in ('acc', 'accent') and i + 1 < len(rest):
                accent = int(rest[i + 1])
                i += 2
                continue
            rotation = int(token)
            i += 1
    except ValueError as e:
        return f"ERROR: {e}"

    if accent is None:
        updated = track.apply_euclidean(steps, pulses, rotation)
    else:
        updated = track.apply_euclidean_with_velocity(steps, pulses, rotation,
                                                      accent_every=accent)
    session.replace_track(updated)
    return (f"OK: {updated.name} E({pulses},{updated.length}) r{rotation}  "
            f"{euclidean.to_string(updated.pattern)}")


# ============================================================================
# /pat
# ============================================================================

def cmd_pat(session: Session, args: List[str]) -> str:
    """Show and edit step patterns.

    /pat                            — show all tracks
    /pat <track> set <x..x...>      — write steps
    /pat <track> clear
    /pat <track> <reverse|invert|double|halve|left|right> [n]
    /pat <track> comp               — complementary Euclidean fill
    """
    if not args:
        return _show_tracks(session)
    try:
        track = session.track(args[0])
        if len(args) < 2:
            return f"{track.name}: {euclidean.to_string(track.pattern)}"
        sub = args[1].lower()

        if sub == 'set':
            text = ''.join(args[2:])
            if not text:
                return "Usage: /pat <track> set <x..x...>"
            pattern = [c in 'xX1' for c in text if c not in ' |']
            track = track.apply_pattern(pattern) if len(pattern) == track.length else \
                track.apply_euclidean(len(pattern), 0).apply_pattern(pattern)
        elif sub == 'clear':
            track = track.apply_pattern([False])
        elif sub in ('comp', 'complement'):
            steps, pulses = euclidean.complementary(track.length, sum(track.pattern))
            track = track.apply_euclidean(steps, pulses)
        elif sub in euclidean.TRANSFORMS:
            fn = euclidean.TRANSFORMS[sub]
            if sub in ('left', 'right'):
                amount = int(args[2]) if len(args) > 2 else 1
                pattern = fn(track.pattern, amount)
            else:
                pattern = fn(track.pattern)
            if not pattern:
                return f"ERROR: {sub} would leave {track.name} empty"
            track = track.apply_euclidean(len(pattern), 0).apply_pattern(pattern)
        else:
            return f"ERROR: unknown subcommand '{sub}'. Use /pat for help."
        session.replace_track(track)
    except ValueError as e:
        return f"ERROR: {e}"
    return f"OK: {track.name} {euclidean.to_string(track.pattern)}"


# ============================================================================
# /quant
# ============================================================================

def cmd_quant(session: Session, args: List[str]) -> str:
    """Pitch quantiser for pitch outputs.

    /quant                      — show current scale and root
    /quant <scale> [root]       — e.g. /quant minor A3
    /quant off
    /quant scales               — list scales
    /quant test <note...>       — show what notes snap to
    /quant snap <scale> <note...> — same, against another scale
    """
    if not args:
        if session.quantizer is None:
            return "QUANT: off"
        return (f"QUANT: {session.quantizer.name} root "
                f"{midi_to_note_name(session.quantize_root)}")

    sub = args[0].lower()
    if sub == 'scales':
        return "SCALES: " + ', '.join(list_scales())
    if sub == 'off':
        session.set_quantizer(None)
        return "OK: quantiser off"
    try:
        if sub == 'test':
            quantizer = session.quantizer or ScaleQuantizer('chromatic')
            notes = [parse_root(n) for n in args[1:]]
            if not notes:
                return "Usage: /quant test <note...>"
            snapped = quantizer.quantize_many(notes, session.quantize_root)
            return '  '.join(f"{midi_to_note_name(a)}->{midi_to_note_name(b)}"
                             for a, b in zip(notes, snapped))
        if sub == 'snap':
            notes = [parse_root(n) for n in args[2:]]
            if not notes:
                return "Usage: /quant snap <scale> <note...>"
            snapped = quantize_notes(notes, session.quantize_root, args[1].lower())
            return '  '.join(f"{midi_to_note_name(a)}->{midi_to_note_name(b)}"
                             for a, b in zip(notes, snapped))
        root = parse_root(args[1]) if len(args) > 1 else None
        session.set_quantizer(sub, root)
    except ValueError as e:
        return f"ERROR: {e}"
    return (f"OK: quantiser {session.quantizer.name} root "
            f"{midi_to_note_name(session.quantize_root)}")


def get_pattern_commands() -> dict:
    """Return pattern commands for registration."""
    return {
        'euc': cmd_euc,
        'pat': cmd_pat,
        'quant': cmd_quant,
    }
