#!/usr/bin/env python
"""Control-rate CV engine tests."""

import os
import sys

import numpy as np
import pytest

HERE = os.path.dirname(os.path.abspath(__file__))
sys.path.insert(0, HERE)

from mnseq.core.cv_output import CVOutputChannel, CVOutputType, default_channel
from mnseq.core.engine import TRIGGER_PULSE_MS, CVEngine
from mnseq.core.interfaces import ES8, ES9
from mnseq.core.objects import CVTrack, TriggerEvent
from mnseq.core.registry import CVTrackRegistry
from mnseq.dsp.curves import EnvelopeCurve
from mnseq.dsp.envelopes import Envelope
from mnseq.dsp.music_theory import ScaleQuantizer

LIN = EnvelopeCurve.LINEAR
ENV = Envelope(attack=10, decay=10, sustain=0.5, release=100,
               attack_curve=LIN, decay_curve=LIN, release_curve=LIN,
               velocity_sensitivity=0.0)


def _on(source, t, velocity=1.0, note=None):
    return TriggerEvent(source, True, velocity=velocity, timestamp=t, note=note)


def _off(source, t):
    return TriggerEvent(source, False, velocity=0.0, timestamp=t)


@pytest.fixture
def rig():
    registry = CVTrackRegistry()
    engine = CVEngine(registry, ES8)
    track = registry.add(CVTrack(name="ENV 1", output_channel=1, envelope=ENV,
                                 source_track_id="kick"))
    return registry, engine, track


def test_idle_output_is_zero(rig):
    _, engine, _ = rig
    assert engine.tick(0) == {0: 0.0}


def test_envelope_to_volts(rig):
    _, engine, _ = rig
    assert engine.handle_trigger(_on("kick", 0)) == 1
    assert engine.tick(10)[0] == pytest.approx(10.0)
    assert engine.tick(20)[0] == pytest.approx(5.0)
    engine.handle_trigger(_off("kick", 50))
    assert engine.tick(100)[0] == pytest.approx(2.5)
    assert engine.tick(150)[0] == 0.0


def test_unpatched_source_reaches_nothing(rig):
    _, engine, _ = rig
    assert engine.handle_trigger(_on("snare", 0)) == 0
    assert engine.tick(10)[0] == 0.0


def test_modulation_amount(rig):
    registry, engine, track = rig
    registry.set_modulation_amount(track.id, -0.5)
    engine.handle_trigger(_on("kick", 0))
    assert engine.tick(10)[0] == pytest.approx(-5.0)


def test_disabled_track_is_silent(rig):
    registry, engine, track = rig
    engine.handle_trigger(_on("kick", 0))
    registry.toggle_enabled(track.id)
    assert 0 not in engine.tick(10)
    assert engine.handle_trigger(_on("kick", 20)) == 0
    registry.toggle_enabled(track.id)
    # the voice was reset when the track was disabled
    assert engine.tick(30)[0] == 0.0


def test_tracks_on_one_output_sum_and_clamp(rig):
    registry, engine, _ = rig
    registry.add(CVTrack(name="ENV 2", output_channel=1, envelope=ENV,
                         source_track_id="kick"))
    assert engine.handle_trigger(_on("kick", 0)) == 2
    assert engine.tick(10)[0] == 10.0
    assert engine.raw_signals(10)[0] == pytest.approx(2.0)


def test_track_beyond_interface_is_skipped(rig):
    registry, engine, _ = rig
    registry.add(CVTrack(name="FAR", output_channel=9, envelope=ENV,
                         source_track_id="kick"))
    engine.handle_trigger(_on("kick", 0))
    assert set(engine.tick(10)) == {0}


def test_configure_channel_validates(rig):
    _, engine, _ = rig
    with pytest.raises(ValueError):
        engine.configure_channel(CVOutputChannel(8))
    ch = engine.configure_channel(CVOutputChannel(0, voltage_scale=2.0, voltage_offset=40.0))
    assert ch.voltage_offset == 10.0
    assert engine.channel(0) is ch
    assert engine.channel(5).output_type is CVOutputType.ENVELOPE
    assert engine.remove_channel(0) is True
    assert engine.remove_channel(0) is False


def test_set_interface_drops_missing_outputs():
    registry = CVTrackRegistry()
    engine = CVEngine(registry, ES9)
    engine.configure_channel(default_channel(12, CVOutputType.GATE, ES9, "kick"))
    engine.configure_channel(default_channel(2, CVOutputType.GATE, ES9, "kick"))
    assert engine.set_interface(ES8) == [12]
    assert [c.output_channel for c in engine.channels()] == [2]
    assert engine.interface is ES8


def test_gate_output(rig):
    _, engine, _ = rig
    engine.configure_channel(default_channel(1, CVOutputType.GATE, ES8, "kick"))
    assert engine.tick(0)[1] == 0.0
    engine.handle_trigger(_on("kick", 0))
    assert engine.tick(5)[1] == 5.0
    engine.handle_trigger(_off("kick", 50))
    assert engine.tick(51)[1] == 0.0


def test_pitch_output(rig):
    _, engine, _ = rig
    engine.configure_channel(default_channel(2, CVOutputType.PITCH, ES8, "bass"))
    engine.handle_trigger(_on("bass", 0, note=72))
    assert engine.tick(1)[2] == pytest.approx(1.0)
    # note is held after gate-off
    engine.handle_trigger(_off("bass", 10))
    assert engine.tick(11)[2] == pytest.approx(1.0)


def test_pitch_output_quantized(rig):
    _, engine, _ = rig
    engine.set_quantizer(ScaleQuantizer("major"), 60)
    engine.configure_channel(default_channel(2, CVOutputType.PITCH, ES8, "bass"))
    engine.handle_trigger(_on("bass", 0, note=61))
    assert engine.tick(1)[2] == pytest.approx(0.0)
    engine.handle_trigger(_on("bass", 5, note=66))
    assert engine.tick(6)[2] == pytest.approx(5 / 12)


def test_velocity_output(rig):
    _, engine, _ = rig
    engine.configure_channel(default_channel(3, CVOutputType.VELOCITY, ES8, "kick"))
    engine.handle_trigger(_on("kick", 0, velocity=0.5))
    assert engine.tick(1)[3] == pytest.approx(2.5)


@pytest.mark.parametrize("kind", [CVOutputType.TRIGGER, CVOutputType.CLOCK])
def test_trigger_pulse(rig, kind):
    _, engine, _ = rig
    engine.configure_channel(default_channel(4, kind, ES8, "kick"))
    engine.handle_trigger(_on("kick", 100))
    assert engine.tick(99)[4] == 0.0
    assert engine.tick(100)[4] == 5.0
    assert engine.tick(100 + TRIGGER_PULSE_MS - 1)[4] == 5.0
    assert engine.tick(100 + TRIGGER_PULSE_MS)[4] == 0.0


def test_source_output_without_track_is_zero(rig):
    _, engine, _ = rig
    engine.configure_channel(default_channel(5, CVOutputType.GATE, ES8))
    engine.handle_trigger(_on("kick", 0))
    assert engine.tick(1)[5] == 0.0


def test_slew_smooths_output(rig):
    _, engine, _ = rig
    engine.configure_channel(CVOutputChannel(0, CVOutputType.ENVELOPE,
                                             voltage_scale=10.0, slew=10.0))
    assert engine.tick(0)[0] == 0.0
    engine.handle_trigger(_on("kick", 0))
    value = engine.tick(10)[0]
    assert 0.0 < value < 10.0


def test_render(rig):
    _, engine, _ = rig
    engine.handle_trigger(_on("kick", 0))
    blocks = engine.render(0, 50)
    assert set(blocks) == {0}
    assert blocks[0].shape == (50,)
    assert blocks[0][10] == pytest.approx(10.0)
    assert np.all(np.abs(blocks[0]) <= 10.0)


def test_render_matches_ticking(rig):
    registry, engine, _ = rig
    other = CVEngine(registry, ES8)
    for eng in (engine, other):
        eng.configure_channel(CVOutputChannel(0, voltage_scale=10.0, slew=5.0))
        eng.configure_channel(default_channel(1, CVOutputType.GATE, ES8, track_id="kick"))
        eng.handle_trigger(_on("kick", 0))
    blocks = engine.render(0, 60)
    ticked = [other.tick(float(t)) for t in range(60)]
    assert set(blocks) == {0, 1}
    for idx in (0, 1):
        assert np.allclose(blocks[idx], [tick[idx] for tick in ticked])


def test_removed_track_stops_output(rig):
    registry, engine, track = rig
    engine.handle_trigger(_on("kick", 0))
    registry.remove(track.id)
    assert engine.tick(10) == {}


def test_envelope_edit_reaches_running_voice(rig):
    registry, engine, track = rig
    engine.handle_trigger(_on("kick", 0))
    assert engine.tick(500)[0] == pytest.approx(5.0)
    registry.update_envelope(track.id, ENV.with_changes(sustain=0.2))
    assert engine.tick(600)[0] == pytest.approx(2.0)


def test_reset_silences(rig):
    _, engine, _ = rig
    engine.configure_channel(default_channel(1, CVOutputType.GATE, ES8, "kick"))
    engine.handle_trigger(_on("kick", 0))
    engine.reset()
    volts = engine.tick(5)
    assert volts[0] == 0.0
    assert volts[1] == 0.0
