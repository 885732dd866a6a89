"""CV routing commands.

Commands:
  /cv      — CV tracks: list, add, remove, patch source/destination/amount
  /env     — edit the selected CV track's envelope, presets
  /out     — per-output type, scale, offset and slew
  /iface   — list / select the audio interface
  /tick    — evaluate outputs, step or run the sequencer clock

Output numbers typed at the prompt are 1-based, like CV track channels.

BUILD ID: cv_cmds_v1
"""

from __future__ import annotations

import logging
from typing import List

import numpy as np  # type: ignore

from ..core import user_data
from ..core.cv_output import CVOutputType, default_channel
from ..core.interfaces import ALL_PRESETS, dc_coupled_presets, get_interface
from ..core.objects import ModulationDestination
from ..core.session import Session
from ..dsp.curves import EnvelopeCurve
from ..dsp.envelopes import (Envelope, LoopPoint, RetriggerMode, get_preset,
                             list_presets)
from ..dsp.scaling import (clamp_time_ms, parse_amount, parse_bipolar,
                           parse_level)

logger = logging.getLogger(__name__)


# ============================================================================
# HELPERS
# ============================================================================

def _parse_output(text: str) -> int:
    """1-based output number → 0-based index."""
    try:
        number = int(text)
    except ValueError:
        raise ValueError(f"Output must be a number, got {text!r}") from None
    return number - 1


def _format_track(session: Session, pos: int, track) -> str:
    marker = '*' if track.id == session.registry.selected_id else ' '
    state = 'on ' if track.is_enabled else 'off'
    return (f" {marker}{pos:2d}. {track.name:8s} ch{track.output_channel:<3d}"
            f" {track.envelope.name:8s} <- {session.track_name(track.source_track_id):8s}"
            f" -> {track.modulation_destination.value:6s}"
            f" {track.modulation_amount:+.2f} [{state}]")


def _format_envelope(env: Envelope) -> str:
    return '\n'.join([
        f"ENVELOPE {env.name}",
        f"  A {env.attack:7.1f} ms  {env.attack_curve.value}",
        f"  D {env.decay:7.1f} ms  {env.decay_curve.value}",
        f"  S {env.sustain:7.2f}",
        f"  R {env.release:7.1f} ms  {env.release_curve.value}",
        f"  peak {env.peak_level:.2f}  vel-sens {env.velocity_sensitivity:.2f}",
        f"  retrigger {env.retrigger_mode.value}  "
        f"loop {'on' if env.loop_enabled else 'off'} ({env.loop_point.value})",
    ])


_SHADES = " .:-=+*#"


def _sparkline(env: Envelope, width: int = 48) -> str:
    """One-line text preview of the envelope shape."""
    points = env.generate_points(resolution=width * 4)
    cols = np.interp(np.linspace(0.0, 1.0, width), points[:, 0], points[:, 1])
    peak = env.peak_level or 1.0
    idx = np.clip((cols / peak) * (len(_SHADES) - 1), 0, len(_SHADES) - 1)
    return '|' + ''.join(_SHADES[int(round(i))] for i in idx) + '|'


# ============================================================================
# /cv
# ============================================================================

def cmd_cv(session: Session, args: List[str]) -> str:
    """Manage CV tracks.

    /cv                          — list CV tracks (* = selected)
    /cv add [source]             — add on the next free output
    /cv rm <cv>                  — remove
    /cv sel <cv>                 — select for /env
    /cv src <cv> <track|none>    — patch trigger source
    /cv dest <cv> <VCA|VCF|...>  — modulation destination
    /cv amt <cv> <-100..100>     — modulation depth
    /cv toggle <cv>              — enable / disable
    /cv env <cv> <preset>        — load a preset envelope
    /cv rename <cv> <name>
    /cv defaults                 — rebuild the default tracks
    /cv save <name> | load <name> | sets
    """
    reg = session.registry

    if not args:
        tracks = reg.list_tracks()
        if not tracks:
            return ("CV TRACKS — none\n"
                    "  Use /cv add [source] to create one.")
        lines = [f"CV TRACKS — {len(tracks)} on {session.interface.name}\n"]
        for pos, track in enumerate(tracks, 1):
            lines.append(_format_track(session, pos, track))
        return '\n'.join(lines)

    sub = args[0].lower()
    try:
        if sub == 'add':
            source = args[1] if len(args) > 1 else None
            track = session.add_cv_track(source)
            if track is None:
                return (f"ERROR: no free output on {session.interface.name} "
                        f"({session.interface.output_count} outputs)")
            return f"OK: added {track.name} on channel {track.output_channel}"

        if sub == 'defaults':
            created = reg.setup_defaults(session.interface, [t.id for t in session.tracks])
            return f"OK: {len(created)} default CV track(s)"

        if sub == 'sets':
            names = user_data.list_cv_sets()
            return "CV SETS: " + (', '.join(names) if names else "(none)")

        if sub == 'save':
            if len(args) < 2:
                return "Usage: /cv save <name>"
            path = session.save_cv_set(args[1])
            return f"OK: saved {len(reg)} CV track(s) to {path}"

        if sub == 'load':
            if len(args) < 2:
                return "Usage: /cv load <name>"
            count = session.load_cv_set(args[1])
            logger.info("Loaded CV set %s (%d tracks)", args[1], count)
            return f"OK: loaded {count} CV track(s) from '{args[1]}'"

        if len(args) < 2:
            return f"Usage: /cv {sub} <cv> ..."
        track = session.cv_track(args[1])

        if sub in ('rm', 'remove', 'delete'):
            reg.remove(track.id)
            return f"OK: removed {track.name}"

        if sub in ('sel', 'select'):
            reg.select(track.id)
            return f"OK: selected {track.name}"

        if sub == 'toggle':
            updated = reg.toggle_enabled(track.id)
            return f"OK: {updated.name} {'enabled' if updated.is_enabled else 'disabled'}"

        if len(args) < 3:
            return f"Usage: /cv {sub} <cv> <value>"
        value = args[2]

        if sub in ('src', 'source'):
            source_id = None if value.lower() == 'none' else session.track(value).id
            updated = reg.set_source(track.id, source_id)
            return f"OK: {updated.name} <- {session.track_name(source_id)}"

        if sub in ('dest', 'destination'):
            updated = reg.set_destination(track.id, ModulationDestination.from_name(value))
            return f"OK: {updated.name} -> {updated.modulation_destination.value}"

        if sub in ('amt', 'amount'):
            updated = reg.set_modulation_amount(track.id, parse_bipolar(value))
            return f"OK: {updated.name} amount {updated.modulation_amount:+.2f}"

        if sub == 'env':
            updated = reg.update_envelope(track.id, _find_envelope(value))
            return f"OK: {updated.name} envelope {updated.envelope.name}"

        if sub == 'rename':
            updated = reg.rename(track.id, value)
            return f"OK: renamed '{track.name}' -> '{updated.name}'"

    except (ValueError, OSError) as e:
        return f"ERROR: {e}"

    return f"ERROR: unknown subcommand '{sub}'. Use /cv for help."


def _find_envelope(name: str) -> Envelope:
    """User preset first, then factory preset."""
    user = user_data.load_envelope(name)
    if user is not None:
        return user
    return get_preset(name)


# ============================================================================
# /env
# ============================================================================

_TIME_FIELDS = {'a': 'attack', 'attack': 'attack', 'd': 'decay', 'decay': 'decay',
                'r': 'release', 'release': 'release'}
_CURVE_FIELDS = {'a': 'attack_curve', 'attack': 'attack_curve',
                 'd': 'decay_curve', 'decay': 'decay_curve',
                 'r': 'release_curve', 'release': 'release_curve'}


def cmd_env(session: Session, args: List[str]) -> str:
    """Edit the selected CV track's envelope.

    /env                         — show envelope and shape preview
    /env a|d|r <ms>              — stage times (1-10000 ms)
    /env s <level>               — sustain (0-100, or preset word)
    /env peak <level> | vel <amount>
    /env curve <a|d|r> <lin|exp|log|s>
    /env retrig <reset|legato|none>
    /env loop <off|on|sustain|release|decay>
    /env preset <name>           — factory or user preset
    /env presets                 — list presets
    /env save <name> | del <name>
    """
    reg = session.registry
    track = reg.selected
    if track is None:
        return "ERROR: no CV track selected. Use /cv sel <cv>."
    env = track.envelope

    if not args:
        return f"{track.name}\n{_format_envelope(env)}\n  {_sparkline(env)}"

    sub = args[0].lower()
    try:
        if sub == 'presets':
            user = user_data.list_envelopes()
            return ("FACTORY: " + ', '.join(list_presets()) +
                    "\nUSER:    " + (', '.join(user) if user else "(none)"))

        if sub == 'save':
            if len(args) < 2:
                return "Usage: /env save <name>"
            path = user_data.save_envelope(args[1], env)
            return f"OK: saved envelope to {path}"

        if sub in ('del', 'delete'):
            if len(args) < 2:
                return "Usage: /env del <name>"
            ok, msg = user_data.delete_envelope(args[1])
            return f"OK: {msg}" if ok else f"ERROR: {msg}"

        if len(args) < 2:
            return f"Usage: /env {sub} <value>"
        value = args[1]

        if sub in _TIME_FIELDS:
            ms = clamp_time_ms(float(value), editing=True)
            new_env = env.with_changes(**{_TIME_FIELDS[sub]: ms})
        elif sub in ('s', 'sustain'):
            new_env = env.with_changes(sustain=parse_level(value))
        elif sub == 'peak':
            new_env = env.with_changes(peak_level=parse_level(value))
        elif sub in ('vel', 'velocity'):
            new_env = env.with_changes(velocity_sensitivity=parse_amount(value) / 100.0)
        elif sub == 'curve':
            if len(args) < 3 or value.lower() not in _CURVE_FIELDS:
                return "Usage: /env curve <a|d|r> <lin|exp|log|s>"
            new_env = env.with_changes(**{_CURVE_FIELDS[value.lower()]:
                                          EnvelopeCurve.from_name(args[2])})
        elif sub in ('retrig', 'retrigger'):
            new_env = env.with_changes(retrigger_mode=_member(RetriggerMode, value))
        elif sub == 'loop':
            word = value.lower()
            if word in ('off', 'on'):
                new_env = env.with_changes(loop_enabled=(word == 'on'))
            else:
                new_env = env.with_changes(loop_enabled=True,
                                           loop_point=_member(LoopPoint, value))
        elif sub == 'preset':
            preset = _find_envelope(value)
            # keep the track's own envelope identity
            new_env = preset.with_changes(id=env.id)
        else:
            return f"ERROR: unknown subcommand '{sub}'. Use /env for help."
    except (ValueError, OSError) as e:
        return f"ERROR: {e}"

    reg.update_envelope(track.id, new_env)
    return f"OK: {track.name}\n{_format_envelope(new_env)}"


def _member(enum_cls, text: str):
    key = text.strip().lower()
    for member in enum_cls:
        if member.name.lower() == key or member.value.lower() == key:
            return member
    raise ValueError(f"Unknown {enum_cls.__name__}: {text!r}. "
                     f"Available: {', '.join(m.value.lower() for m in enum_cls)}")


# ============================================================================
# /out
# ============================================================================

def cmd_out(session: Session, args: List[str]) -> str:
    """Configure hardware outputs.

    /out                              — list configured outputs
    /out <n> <type> [track]           — pitch|gate|velocity|trigger|clock|
                                        envelope|modulation|lfo
    /out <n> scale <volts-per-unit>
    /out <n> offset <volts>
    /out <n> slew <ms>
    /out <n> rm                       — back to the default envelope output
    """
    engine = session.engine
    if not args:
        channels = engine.channels()
        lo, hi = session.interface.voltage_bounds
        lines = [f"OUTPUTS — {session.interface.name} ({lo:+.0f}V..{hi:+.0f}V)\n"]
        if not channels:
            lines.append("  (all outputs follow their CV tracks)")
        for ch in channels:
            lines.append(f"  {ch.output_channel + 1:2d}. {ch.output_type.name.lower():10s}"
                         f" {session.track_name(ch.track_id):8s}"
                         f" x{ch.voltage_scale:<6.2f} {ch.voltage_offset:+.2f}V"
                         f" slew {ch.slew:.0f}ms")
        return '\n'.join(lines)

    if len(args) < 2:
        return "Usage: /out <n> <type|scale|offset|slew|rm> [value]"
    try:
        index = _parse_output(args[0])
        sub = args[1].lower()

        if sub in ('rm', 'remove', 'reset'):
            removed = engine.remove_channel(index)
            return f"OK: output {index + 1} reset" if removed else \
                f"ERROR: output {index + 1} is not configured"

        if not session.interface.has_output(index):
            return (f"ERROR: output {index + 1} does not exist on {session.interface.name} "
                    f"(outputs 1-{session.interface.output_count})")
        current = engine.channel(index)
        if sub in ('scale', 'offset', 'slew'):
            if len(args) < 3:
                return f"Usage: /out <n> {sub} <value>"
            field = {'scale': 'voltage_scale', 'offset': 'voltage_offset',
                     'slew': 'slew'}[sub]
            channel = current.with_changes(**{field: float(args[2])})
        else:
            kind = CVOutputType.from_name(sub)
            track_id = session.track(args[2]).id if len(args) > 2 else None
            if not kind.follows_cv_tracks and track_id is None:
                return f"Usage: /out <n> {sub} <track>"
            channel = default_channel(index, kind, session.interface, track_id)

        channel = engine.configure_channel(channel)
    except ValueError as e:
        return f"ERROR: {e}"

    return (f"OK: output {channel.output_channel + 1} {channel.output_type.name.lower()}"
            f" x{channel.voltage_scale:.2f} {channel.voltage_offset:+.2f}V"
            f" slew {channel.slew:.0f}ms")


# ============================================================================
# /iface
# ============================================================================

def cmd_iface(session: Session, args: List[str]) -> str:
    """Select the audio interface.

    /iface              — show current interface
    /iface list [dc]    — list presets (dc: DC-coupled only)
    /iface <id|name>    — switch (drops outputs the new device lacks)
    """
    if not args:
        return f"INTERFACE: {session.interface.summary()}"
    sub = args[0].lower()
    if sub == 'list':
        dc_only = len(args) > 1 and args[1].lower() == 'dc'
        lines = ["INTERFACES (DC-coupled)\n" if dc_only else "INTERFACES\n"]
        for iface in dc_coupled_presets() if dc_only else ALL_PRESETS:
            marker = '*' if iface.id == session.interface.id else ' '
            lines.append(f" {marker} {iface.id:24s} {iface.summary()}")
        return '\n'.join(lines)
    try:
        iface = get_interface(' '.join(args))
    except ValueError as e:
        return f"ERROR: {e}"
    dropped = session.set_interface(iface)
    msg = f"OK: interface {iface.summary()}"
    if not iface.is_dc_coupled:
        msg += "\n  WARNING: AC-coupled outputs cannot hold CV levels"
    if dropped:
        msg += f"\n  dropped outputs: {', '.join(str(i + 1) for i in dropped)}"
    return msg


# ============================================================================
# /tick
# ============================================================================

def cmd_tick(session: Session, args: List[str]) -> str:
    """Evaluate outputs.

    /tick               — voltages at the current clock time
    /tick step          — fire the step under the playhead
    /tick run <ms>      — run the clock, report per-output min/max
    /tick reset         — rewind and silence
    """
    sub = args[0].lower() if args else ''
    try:
        if sub == 'reset':
            session.reset_transport()
            return "OK: transport reset"

        if sub == 'step':
            events = session.advance_step()
            names = ', '.join(f"{session.track_name(e.track_id)}({e.velocity:.2f})"
                              for e in events)
            return f"STEP {session.playhead}: {names or '(rest)'}"

        if sub == 'run':
            duration = float(args[1]) if len(args) > 1 else 1000.0
            blocks = session.run(duration)
            if not blocks:
                return f"RAN {duration:.0f} ms: no active outputs"
            lines = [f"RAN {duration:.0f} ms (clock {session.clock_ms:.0f} ms)\n"]
            for idx in sorted(blocks):
                block = blocks[idx]
                lines.append(f"  out {idx + 1:2d}: min {block.min():+.3f}V"
                             f"  max {block.max():+.3f}V  last {block[-1]:+.3f}V")
            return '\n'.join(lines)

        if sub:
            return f"ERROR: unknown subcommand '{sub}'. Use /tick for help."
    except ValueError as e:
        return f"ERROR: {e}"

    volts = session.engine.tick(session.clock_ms)
    if not volts:
        return f"T={session.clock_ms:.0f} ms: no active outputs"
    parts = [f"{idx + 1}:{v:+.3f}V" for idx, v in sorted(volts.items())]
    return f"T={session.clock_ms:.0f} ms  " + '  '.join(parts)


def get_cv_commands() -> dict:
    """Return CV commands for registration."""
    return {
        'cv': cmd_cv,
        'env': cmd_env,
        'out': cmd_out,
        'iface': cmd_iface,
        'tick': cmd_tick,
    }
