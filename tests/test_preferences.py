from __future__ import annotations

import pytest
from PySide6 import QtCore

from models import LyricsDisplayMode, RepeatMode
from preferences import (
    KEY_LYRICS_DISPLAY,
    KEY_MUTED,
    KEY_REPEAT,
    KEY_SHOW_EQUALIZER,
    KEY_SHUFFLE,
    KEY_VOLUME,
    Preferences,
    PreferenceStore,
)


def test_defaults_when_nothing_saved(store):
    assert store.load() == Preferences()


def test_values_round_trip(store):
    store.save(KEY_VOLUME, 0.35)
    store.save(KEY_MUTED, True)
    store.save(KEY_SHUFFLE, True)
    store.save(KEY_REPEAT, RepeatMode.ALL)
    store.save(KEY_LYRICS_DISPLAY, LyricsDisplayMode.INTEGRATED)
    store.save(KEY_SHOW_EQUALIZER, True)

    prefs = store.load()
    assert prefs.volume == pytest.approx(0.35)
    assert prefs.muted is True
    assert prefs.shuffle is True
    assert prefs.repeat == RepeatMode.ALL
    assert prefs.lyrics_display == LyricsDisplayMode.INTEGRATED
    assert prefs.show_equalizer is True


def test_values_survive_a_new_store(settings, tmp_path):
    PreferenceStore(settings).save(KEY_REPEAT, RepeatMode.ONE)
    reopened = QtCore.QSettings(str(tmp_path / "prefs.ini"), QtCore.QSettings.Format.IniFormat)
    assert PreferenceStore(reopened).load().repeat == RepeatMode.ONE


def test_volume_is_clamped_on_save(store):
    store.save(KEY_VOLUME, 7.0)
    assert store.load().volume == 1.0


def test_garbage_values_fall_back(settings):
    settings.setValue(KEY_VOLUME, "loud")
    settings.setValue(KEY_MUTED, "maybe")
    settings.setValue(KEY_REPEAT, "sometimes")
    settings.setValue(KEY_LYRICS_DISPLAY, "sideways")
    prefs = PreferenceStore(settings).load()
    assert prefs == Preferences()


def test_unknown_key_is_rejected(store):
    with pytest.raises(KeyError):
        store.save("ui/theme", "dark")
