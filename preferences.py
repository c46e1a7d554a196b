from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from PySide6 import QtCore

from config import DEFAULT_VOLUME, SETTINGS_APP, SETTINGS_ORG
from models import LyricsDisplayMode, RepeatMode
from utils import clamp, safe_float

logger = logging.getLogger(__name__)

KEY_VOLUME = "audio/volume"
KEY_MUTED = "audio/muted"
KEY_SHUFFLE = "playback/shuffle"
KEY_REPEAT = "playback/repeat"
KEY_LYRICS_DISPLAY = "lyrics/display_mode"
KEY_SHOW_EQUALIZER = "ui/show_equalizer"

KNOWN_KEYS = (
    KEY_VOLUME,
    KEY_MUTED,
    KEY_SHUFFLE,
    KEY_REPEAT,
    KEY_LYRICS_DISPLAY,
    KEY_SHOW_EQUALIZER,
)


@dataclass(frozen=True)
class Preferences:
    volume: float = DEFAULT_VOLUME
    muted: bool = False
    shuffle: bool = False
    repeat: RepeatMode = RepeatMode.OFF
    lyrics_display: LyricsDisplayMode = LyricsDisplayMode.PANEL
    show_equalizer: bool = False


def _to_bool(value: object, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "1", "yes", "on"):
            return True
        if lowered in ("false", "0", "no", "off"):
            return False
    return default


class PreferenceStore:
    """
    Durable scalar user preferences on top of QSettings.

    Every key is optional on load; a missing or unreadable value falls back
    to the default in ``Preferences``. Writes are flushed immediately.
    """

    def __init__(self, settings: Optional[QtCore.QSettings] = None):
        self.settings = settings or QtCore.QSettings(SETTINGS_ORG, SETTINGS_APP)

    def load(self) -> Preferences:
        defaults = Preferences()
        s = self.settings

        volume = defaults.volume
        if s.contains(KEY_VOLUME):
            volume = clamp(safe_float(s.value(KEY_VOLUME), defaults.volume), 0.0, 1.0)

        prefs = Preferences(
            volume=volume,
            muted=_to_bool(s.value(KEY_MUTED, defaults.muted), defaults.muted),
            shuffle=_to_bool(s.value(KEY_SHUFFLE, defaults.shuffle), defaults.shuffle),
            repeat=RepeatMode.from_setting(s.value(KEY_REPEAT, defaults.repeat.value)),
            lyrics_display=LyricsDisplayMode.from_setting(
                s.value(KEY_LYRICS_DISPLAY, defaults.lyrics_display.value),
                defaults.lyrics_display,
            ),
            show_equalizer=_to_bool(s.value(KEY_SHOW_EQUALIZER, defaults.show_equalizer), defaults.show_equalizer),
        )
        logger.debug("Loaded preferences: %s", prefs)
        return prefs

    def save(self, key: str, value: object) -> None:
        if key not in KNOWN_KEYS:
            raise KeyError(key)
        if isinstance(value, Enum):
            value = value.value
        elif key == KEY_VOLUME:
            value = float(clamp(safe_float(value, DEFAULT_VOLUME), 0.0, 1.0))
        self.settings.setValue(key, value)
        self.settings.sync()
