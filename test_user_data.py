#!/usr/bin/env python
"""Preferences and user preset storage tests."""

import json
import os
import sys

import pytest

HERE = os.path.dirname(os.path.abspath(__file__))
sys.path.insert(0, HERE)

from mnseq.core import user_data
from mnseq.dsp.curves import EnvelopeCurve
from mnseq.dsp.envelopes import Envelope


@pytest.fixture(autouse=True)
def home(tmp_path, monkeypatch):
    monkeypatch.setenv(user_data.HOME_ENV_VAR, str(tmp_path))
    return tmp_path


def test_root_follows_environment(home):
    assert user_data.get_mnseq_root() == home
    assert user_data.get_envelopes_dir().is_dir()
    assert user_data.get_cv_sets_dir().parent == home


def test_preferences_default():
    assert user_data.load_preferences() == user_data.DEFAULT_PREFERENCES


def test_preferences_merge_saved_values():
    assert user_data.save_preferences({'bpm': 90.0})
    prefs = user_data.load_preferences()
    assert prefs['bpm'] == 90.0
    assert prefs['interface_id'] == user_data.DEFAULT_PREFERENCES['interface_id']


def test_corrupt_preferences_fall_back(home):
    (home / 'preferences.json').write_text("{not json", encoding='utf-8')
    assert user_data.load_preferences() == user_data.DEFAULT_PREFERENCES
    (home / 'preferences.json').write_text("[1, 2]", encoding='utf-8')
    assert user_data.load_preferences() == user_data.DEFAULT_PREFERENCES


def test_set_preference():
    prefs = user_data.set_preference('quant_scale', 'minor')
    assert prefs['quant_scale'] == 'minor'
    assert user_data.load_preferences()['quant_scale'] == 'minor'
    with pytest.raises(ValueError):
        user_data.set_preference('colour', 'blue')


def test_envelope_presets():
    env = Envelope(attack=33, sustain=0.25, decay_curve=EnvelopeCurve.S_CURVE)
    path = user_data.save_envelope("My Env", env)
    assert path.name == "my_env.json"
    loaded = user_data.load_envelope("My Env")
    assert loaded.name == "My Env"
    assert loaded.attack == 33.0
    assert loaded.decay_curve is EnvelopeCurve.S_CURVE
    assert user_data.list_envelopes() == ["my_env"]

    ok, _ = user_data.delete_envelope("my env")
    assert ok is True
    ok, msg = user_data.delete_envelope("my env")
    assert ok is False and "not found" in msg
    assert user_data.list_envelopes() == []


def test_missing_or_bad_envelope_loads_none():
    assert user_data.load_envelope("ghost") is None
    bad_dir = user_data.get_envelopes_dir()
    (bad_dir / "junk.json").write_text("{", encoding='utf-8')
    assert user_data.load_envelope("junk") is None
    (bad_dir / "odd.json").write_text(json.dumps({'attack_curve': 'Wobbly'}),
                                      encoding='utf-8')
    assert user_data.load_envelope("odd") is None


def test_empty_name_rejected():
    with pytest.raises(ValueError):
        user_data.save_envelope("   ", Envelope())


def test_cv_set_paths():
    assert user_data.cv_set_path("Live Set").name == "live_set.json"
    user_data.cv_set_path("a").write_text("{}", encoding='utf-8')
    assert user_data.list_cv_sets() == ["a"]


def test_info_mentions_root(home):
    info = user_data.get_user_data_info()
    assert str(home) in info
    assert "Envelope presets: 0" in info
