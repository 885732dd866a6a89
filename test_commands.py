#!/usr/bin/env python
"""Command layer and session transport tests."""

import os
import sys

import numpy as np
import pytest

HERE = os.path.dirname(os.path.abspath(__file__))
sys.path.insert(0, HERE)

from mnseq.commands.cv_cmds import cmd_cv, cmd_env, cmd_iface, cmd_out, cmd_tick
from mnseq.commands.pattern_cmds import cmd_euc, cmd_pat, cmd_quant
from mnseq.core import user_data
from mnseq.core.cv_output import CVOutputType
from mnseq.core.interfaces import ES8, GENERIC_AC
from mnseq.core.session import Session
from mnseq.dsp.curves import EnvelopeCurve
from mnseq.dsp.envelopes import LoopPoint, RetriggerMode


@pytest.fixture
def session(tmp_path, monkeypatch):
    monkeypatch.setenv(user_data.HOME_ENV_VAR, str(tmp_path))
    return Session(prefs={})


def run(session, func, line=""):
    return func(session, line.split())


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------

def test_session_defaults(session):
    assert session.interface is ES8
    assert [t.name for t in session.tracks] == ["KICK", "SNARE", "HAT", "BASS"]
    assert len(session.registry) == 4
    assert session.quantizer is None
    assert session.step_ms == pytest.approx(125.0)


def test_session_falls_back_on_bad_prefs(tmp_path, monkeypatch):
    monkeypatch.setenv(user_data.HOME_ENV_VAR, str(tmp_path))
    s = Session(prefs={'interface_id': 'nope', 'default_envelope': 'nope',
                       'quant_scale': 'nope'})
    assert s.interface is ES8
    assert s.default_envelope.name == "PERC"
    assert s.quantizer is None


def test_session_on_ac_interface_has_no_cv_tracks(tmp_path, monkeypatch):
    monkeypatch.setenv(user_data.HOME_ENV_VAR, str(tmp_path))
    assert len(Session(prefs={}, interface=GENERIC_AC).registry) == 0


def test_track_lookup(session):
    assert session.track("1").name == "KICK"
    assert session.track("hat").name == "HAT"
    with pytest.raises(ValueError):
        session.track("tuba")
    assert session.track_name("nope") == "-"


def test_run_produces_envelope_output(session):
    blocks = session.run(500)
    assert 0 in blocks
    assert blocks[0].shape == (500,)
    assert blocks[0].max() > 0.0
    assert session.playhead == 4
    assert session.clock_ms == pytest.approx(500.0)


def test_reset_transport(session):
    session.run(300)
    session.reset_transport()
    assert session.playhead == 0
    assert session.clock_ms == 0.0


def test_cv_sets(session):
    session.save_cv_set("live")
    session.registry.clear()
    assert session.load_cv_set("live") == 4
    with pytest.raises(FileNotFoundError):
        session.load_cv_set("missing")


# ---------------------------------------------------------------------------
# /cv
# ---------------------------------------------------------------------------

def test_cv_list(session):
    out = run(session, cmd_cv)
    assert out.startswith("CV TRACKS")
    assert "ENV 1" in out and "KICK" in out


def test_cv_add_until_full(session):
    names = []
    for _ in range(4):
        out = run(session, cmd_cv, "add hat")
        assert out.startswith("OK: added")
        names.append(out.split()[2] + " " + out.split()[3])
    assert names == ["ENV 5", "ENV 6", "ENV 7", "ENV 8"]
    assert run(session, cmd_cv, "add").startswith("ERROR: no free output")
    assert len(session.registry) == 8


def test_cv_add_follows_first_track(session):
    session.registry.remove(session.registry.list_tracks()[-1].id)
    assert run(session, cmd_cv, "add").startswith("OK: added")
    added = session.registry.get(session.registry.selected_id)
    assert added.source_track_id == session.tracks[0].id
    assert session.track_name(added.source_track_id) == "KICK"


def test_cv_edits(session):
    assert run(session, cmd_cv, "amt 1 -50") == "OK: ENV 1 amount -0.50"
    assert run(session, cmd_cv, "dest 1 vcf") == "OK: ENV 1 -> VCF"
    assert run(session, cmd_cv, "src 1 hat") == "OK: ENV 1 <- HAT"
    assert run(session, cmd_cv, "src 1 none") == "OK: ENV 1 <- -"
    assert run(session, cmd_cv, "toggle 1") == "OK: ENV 1 disabled"
    assert run(session, cmd_cv, "env 1 pad") == "OK: ENV 1 envelope PAD"
    track = session.cv_track("1")
    assert track.modulation_amount == -0.5
    assert track.source_track_id is None
    assert track.is_enabled is False


def test_cv_errors(session):
    assert run(session, cmd_cv, "amt 9 10").startswith("ERROR: Unknown CV track")
    assert run(session, cmd_cv, "dest 1 moon").startswith("ERROR")
    assert run(session, cmd_cv, "src 1 tuba").startswith("ERROR")
    assert run(session, cmd_cv, "env 1 bagpipe").startswith("ERROR")
    assert run(session, cmd_cv, "frob 1 2").startswith("ERROR: unknown subcommand")
    assert run(session, cmd_cv, "load missing").startswith("ERROR")


def test_cv_rename(session):
    assert run(session, cmd_cv, "rename 2 SNAREENV").startswith("OK: renamed")
    assert run(session, cmd_cv, "rename 1 snareenv").startswith("ERROR")
    assert session.cv_track("snareenv").output_channel == 2


def test_cv_remove_and_select(session):
    assert run(session, cmd_cv, "sel 3") == "OK: selected ENV 3"
    assert session.registry.selected.name == "ENV 3"
    assert run(session, cmd_cv, "rm 3") == "OK: removed ENV 3"
    assert len(session.registry) == 3


def test_cv_save_and_load(session):
    assert run(session, cmd_cv, "save live").startswith("OK: saved 4")
    assert run(session, cmd_cv, "sets") == "CV SETS: live"
    run(session, cmd_cv, "rm 1")
    assert run(session, cmd_cv, "load live") == "OK: loaded 4 CV track(s) from 'live'"
    assert len(session.registry) == 4


# ---------------------------------------------------------------------------
# /env
# ---------------------------------------------------------------------------

def test_env_show(session):
    out = run(session, cmd_env)
    assert out.startswith("ENV 1")
    assert "ENVELOPE KICK" in out
    assert "|" in out


def test_env_edits(session):
    assert run(session, cmd_env, "a 0").startswith("OK")
    env = session.registry.selected.envelope
    assert env.attack == 1.0
    run(session, cmd_env, "d 20000")
    run(session, cmd_env, "s 50")
    run(session, cmd_env, "curve a exp")
    run(session, cmd_env, "retrig legato")
    run(session, cmd_env, "loop release")
    env = session.registry.selected.envelope
    assert env.decay == 10000.0
    assert env.sustain == 0.5
    assert env.attack_curve is EnvelopeCurve.EXPONENTIAL
    assert env.retrigger_mode is RetriggerMode.LEGATO
    assert env.loop_enabled is True
    assert env.loop_point is LoopPoint.RELEASE
    run(session, cmd_env, "loop off")
    assert session.registry.selected.envelope.loop_enabled is False


def test_env_errors(session):
    assert run(session, cmd_env, "a soon").startswith("ERROR")
    assert run(session, cmd_env, "curve x exp").startswith("Usage")
    assert run(session, cmd_env, "retrig sometimes").startswith("ERROR")
    assert run(session, cmd_env, "wobble 3").startswith("ERROR: unknown subcommand")


def test_env_preset_keeps_identity(session):
    before = session.registry.selected.envelope
    run(session, cmd_env, "preset pad")
    env = session.registry.selected.envelope
    assert env.attack == 500.0
    assert env.id == before.id


def test_env_user_presets(session):
    run(session, cmd_env, "s 33")
    assert run(session, cmd_env, "save mine").startswith("OK: saved")
    assert "mine" in run(session, cmd_env, "presets")
    assert run(session, cmd_cv, "env 2 mine") == "OK: ENV 2 envelope mine"
    assert session.cv_track("2").envelope.sustain == pytest.approx(0.33)
    assert run(session, cmd_env, "del mine").startswith("OK")
    assert run(session, cmd_env, "del mine").startswith("ERROR")


def test_env_without_selection(session):
    session.registry.clear()
    assert run(session, cmd_env).startswith("ERROR: no CV track selected")


# ---------------------------------------------------------------------------
# /out and /iface
# ---------------------------------------------------------------------------

def test_out_configure(session):
    assert run(session, cmd_out, "1 gate kick") == "OK: output 1 gate x5.00 +0.00V slew 0ms"
    ch = session.engine.channel(0)
    assert ch.output_type is CVOutputType.GATE
    assert ch.track_id == session.track("kick").id
    assert run(session, cmd_out, "2 slew 20").endswith("slew 20ms")
    assert run(session, cmd_out, "3 offset 99").startswith("OK: output 3 envelope x10.00 +10.00V")
    assert "gate" in run(session, cmd_out)
    assert run(session, cmd_out, "1 rm") == "OK: output 1 reset"
    assert run(session, cmd_out, "1 rm").startswith("ERROR")


def test_out_errors(session):
    assert run(session, cmd_out, "9 gate kick").startswith("ERROR: output 9 does not exist")
    assert run(session, cmd_out, "x gate").startswith("ERROR")
    assert run(session, cmd_out, "1 gate").startswith("Usage")
    assert run(session, cmd_out, "1 banjo").startswith("ERROR")


def test_out_nan_scale_keeps_output_in_range(session):
    assert run(session, cmd_out, "1 scale nan") == "OK: output 1 envelope x0.00 +0.00V slew 0ms"
    lo, hi = session.interface.voltage_bounds
    for block in session.run(200).values():
        assert np.all((block >= lo) & (block <= hi))


def test_iface_switch_drops_outputs(session):
    run(session, cmd_out, "1 gate kick")
    run(session, cmd_out, "3 scale 2")
    out = run(session, cmd_iface, "generic-ac")
    assert out.startswith("OK: interface")
    assert "WARNING" in out
    assert "dropped outputs: 3" in out
    assert session.interface is GENERIC_AC
    assert "generic-ac" in run(session, cmd_iface, "list")
    dc_list = run(session, cmd_iface, "list dc")
    assert dc_list.startswith("INTERFACES (DC-coupled)")
    assert "generic-ac" not in dc_list and ES8.id in dc_list
    assert run(session, cmd_iface, "theremin").startswith("ERROR")


# ---------------------------------------------------------------------------
# /tick
# ---------------------------------------------------------------------------

def test_tick_step_and_run(session):
    out = run(session, cmd_tick, "step")
    assert out.startswith("STEP 1:")
    assert "KICK" in out
    assert run(session, cmd_tick, "run 200").startswith("RAN 200 ms")
    assert run(session, cmd_tick).startswith("T=")
    assert run(session, cmd_tick, "reset") == "OK: transport reset"
    assert run(session, cmd_tick, "bogus").startswith("ERROR")


# ---------------------------------------------------------------------------
# /euc /pat /quant
# ---------------------------------------------------------------------------

def test_euc(session):
    assert run(session, cmd_euc, "kick 8 3") == "OK: KICK E(3,8) r0  x . . x . . x ."
    run(session, cmd_euc, "kick 8 3 acc 2")
    kick = session.track("kick")
    assert [s.velocity for s in kick.steps if s.is_on] == [120, 80, 120]
    assert run(session, cmd_euc, "snare preset tresillo").startswith("OK: SNARE")
    assert "tresillo" in run(session, cmd_euc, "presets")
    assert run(session, cmd_euc, "show 8 3") == "E(3,8) r0: x . . x . . x ."
    assert run(session, cmd_euc, "tuba 8 3").startswith("ERROR")


def test_pat(session):
    assert run(session, cmd_pat).startswith("PATTERNS")
    run(session, cmd_pat, "kick set x.x.")
    assert session.track("kick").pattern == [True, False, True, False]
    run(session, cmd_pat, "kick invert")
    assert session.track("kick").pattern == [False, True, False, True]
    run(session, cmd_pat, "kick left 1")
    assert session.track("kick").pattern == [True, False, True, False]
    run(session, cmd_pat, "kick double")
    assert session.track("kick").length == 8
    run(session, cmd_pat, "kick clear")
    assert not any(session.track("kick").pattern)
    assert run(session, cmd_pat, "kick").startswith("KICK:")
    assert run(session, cmd_pat, "kick jumble").startswith("ERROR")


def test_quant(session):
    assert run(session, cmd_quant) == "QUANT: off"
    assert run(session, cmd_quant, "minor A3") == "OK: quantiser minor root A3"
    assert session.quantize_root == 57
    assert session.engine.quantizer is session.quantizer
    assert run(session, cmd_quant, "test C4 C#4") == "C4->C4  C#4->C4"
    assert run(session, cmd_quant, "bogus").startswith("ERROR")
    assert run(session, cmd_quant, "off") == "OK: quantiser off"
    assert session.engine.quantizer is None


def test_quant_snap_leaves_quantiser_alone(session):
    assert run(session, cmd_quant, "major C4") == "OK: quantiser major root C4"
    assert run(session, cmd_quant, "snap minor E4 A4") == "E4->D#4  A4->G#4"
    assert session.quantizer.name == "major"
    assert run(session, cmd_quant, "snap minor").startswith("Usage")
    assert run(session, cmd_quant, "snap bogus C4").startswith("ERROR")


# ---------------------------------------------------------------------------
# REPL dispatch
# ---------------------------------------------------------------------------

def test_repl_dispatch(session):
    import mnseq_repl

    commands = mnseq_repl.build_command_table()
    for name in ("cv", "env", "out", "iface", "tick", "euc", "pat", "quant", "help", "prefs"):
        assert name in commands
    assert mnseq_repl.execute_command(session, commands, "/q") == "EXIT"
    assert mnseq_repl.execute_command(session, commands, "cv") == \
        "ERROR: Commands must start with /"
    assert mnseq_repl.execute_command(session, commands, "/zzz").startswith(
        "ERROR: Unknown command /zzz")
    assert mnseq_repl.execute_command(session, commands, "/CV").startswith("CV TRACKS")
    assert "/cv" in mnseq_repl.execute_command(session, commands, "/help")


def test_repl_prefs(session):
    import mnseq_repl

    assert mnseq_repl.cmd_prefs(session, ["bpm", "90"]) == \
        "OK: bpm = 90.0 (applies next session)"
    assert user_data.load_preferences()['bpm'] == 90.0
    assert mnseq_repl.cmd_prefs(session, ["colour", "red"]).startswith("ERROR")
    assert "MNSEQ USER DATA" in mnseq_repl.cmd_prefs(session, ["info"])
