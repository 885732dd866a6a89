#!/usr/bin/env python
"""Envelope voice retrigger tests."""

import os
import sys

import pytest

HERE = os.path.dirname(os.path.abspath(__file__))
sys.path.insert(0, HERE)

from mnseq.dsp.curves import EnvelopeCurve
from mnseq.dsp.envelopes import Envelope, LoopPoint, RetriggerMode
from mnseq.dsp.voice import EnvelopeVoice

LIN = EnvelopeCurve.LINEAR


def _linear(**kw):
    base = dict(attack=10, decay=10, sustain=0.5, release=100,
                attack_curve=LIN, decay_curve=LIN, release_curve=LIN,
                velocity_sensitivity=0.0)
    base.update(kw)
    return Envelope(**base)


def test_idle_voice_is_silent():
    voice = EnvelopeVoice(_linear())
    assert voice.value(100) == 0.0
    assert voice.is_sounding(100) is False
    voice.release(120)
    assert voice.value(150) == 0.0


def test_reset_restarts_from_zero():
    voice = EnvelopeVoice(_linear())
    assert voice.gate(0) is True
    assert voice.value(5) == pytest.approx(0.5)
    assert voice.value(60) == pytest.approx(0.5)
    voice.gate(60)
    assert voice.value(60) == 0.0


def test_release_runs_from_gate_off():
    voice = EnvelopeVoice(_linear())
    voice.gate(0)
    voice.release(100)
    assert voice.last_known_value == pytest.approx(0.5)
    assert voice.value(150) == pytest.approx(0.25)
    assert voice.value(200) == 0.0
    assert voice.is_sounding(199) is True
    assert voice.is_sounding(200) is False


def test_release_without_gate_is_ignored():
    voice = EnvelopeVoice(_linear())
    voice.gate(0)
    voice.release(50)
    voice.release(80)
    assert voice.phase_start_time == 50


def test_legato_continues_during_attack():
    env = _linear(attack=100, decay=100, decay_curve=EnvelopeCurve.EXPONENTIAL,
                  retrigger_mode=RetriggerMode.LEGATO)
    voice = EnvelopeVoice(env)
    voice.gate(0)
    before = voice.value(50)
    voice.gate(50)
    assert before == pytest.approx(0.5)
    assert voice.value(50) == pytest.approx(before)
    assert voice.value(100) == pytest.approx(1.0)


def test_legato_continues_during_decay():
    env = _linear(attack=100, decay=100, decay_curve=EnvelopeCurve.EXPONENTIAL,
                  retrigger_mode=RetriggerMode.LEGATO)
    voice = EnvelopeVoice(env)
    voice.gate(0)
    before = voice.value(150)
    assert before == pytest.approx(0.875)
    voice.gate(150)
    assert voice.value(150) == pytest.approx(before)
    # re-climbs the rest of the attack before decaying again
    assert voice.value(162.5) == pytest.approx(1.0)


@pytest.mark.parametrize("t, new_velocity", [(5, 0.5), (15, 0.2), (50, 0.5), (50, 1.0)])
def test_legato_is_continuous_across_velocity_changes(t, new_velocity):
    env = _linear(sustain=0.7, velocity_sensitivity=1.0,
                  retrigger_mode=RetriggerMode.LEGATO)
    voice = EnvelopeVoice(env)
    voice.gate(0, velocity=0.8)
    before = voice.level_at(t)
    voice.gate(t, velocity=new_velocity)
    assert voice.level_at(t) == pytest.approx(before)
    assert voice.velocity == 0.8


def test_legato_with_zero_attack_seeds_decay():
    env = _linear(attack=0, decay=100, retrigger_mode=RetriggerMode.LEGATO)
    voice = EnvelopeVoice(env)
    voice.gate(0)
    assert voice.value(50) == pytest.approx(0.75)
    voice.gate(50)
    assert voice.value(50) == pytest.approx(0.75)
    assert voice.value(100) == pytest.approx(0.5)


def test_legato_after_release_finished_starts_fresh():
    voice = EnvelopeVoice(_linear(retrigger_mode=RetriggerMode.LEGATO))
    voice.gate(0)
    voice.release(20)
    voice.gate(500)
    assert voice.value(500) == 0.0


def test_none_mode_ignores_triggers_while_sounding():
    voice = EnvelopeVoice(_linear(retrigger_mode=RetriggerMode.NONE))
    assert voice.gate(0) is True
    assert voice.gate(5) is False
    assert voice.phase_start_time == 0
    voice.release(10)
    assert voice.gate(50) is False
    assert voice.gate(200) is True
    assert voice.phase_start_time == 200


def test_velocity_scales_level():
    voice = EnvelopeVoice(_linear(velocity_sensitivity=1.0))
    voice.gate(0, velocity=0.5)
    assert voice.value(1000) == pytest.approx(0.25)
    voice.gate(2000, velocity=3.0)
    assert voice.velocity == 1.0


def test_loop_while_gate_held():
    env = Envelope(attack=10, decay=20, loop_enabled=True, loop_point=LoopPoint.SUSTAIN)
    voice = EnvelopeVoice(env)
    voice.gate(0)
    assert voice.value(35) == pytest.approx(env.value(5, True))
    voice.release(40)
    assert voice.value(40) == pytest.approx(env.value(0, False))


def test_set_envelope_keeps_timing():
    voice = EnvelopeVoice(_linear())
    voice.gate(0)
    voice.set_envelope(_linear(sustain=0.2))
    assert voice.phase_start_time == 0
    assert voice.value(500) == pytest.approx(0.2)


def test_reset_silences():
    voice = EnvelopeVoice(_linear())
    voice.gate(0)
    voice.value(5)
    voice.reset()
    assert voice.is_sounding(5) is False
    assert voice.last_known_value == 0.0
    assert voice.value(5) == 0.0
