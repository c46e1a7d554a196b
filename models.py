from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Optional

import numpy as np


class PlayerState(Enum):
    STOPPED = auto()
    LOADING = auto()
    PAUSED = auto()
    PLAYING = auto()


class RepeatMode(Enum):
    OFF = "off"
    ALL = "all"
    ONE = "one"

    @classmethod
    def from_setting(cls, value: object) -> "RepeatMode":
        for mode in cls:
            if mode.value == value:
                return mode
        return cls.OFF

    def next(self) -> "RepeatMode":
        order = (RepeatMode.OFF, RepeatMode.ALL, RepeatMode.ONE)
        return order[(order.index(self) + 1) % len(order)]


class Rendition(Enum):
    VOCAL = "vocal"
    INSTRUMENTAL = "instrumental"

    def other(self) -> "Rendition":
        return Rendition.INSTRUMENTAL if self is Rendition.VOCAL else Rendition.VOCAL


class LyricsDisplayMode(Enum):
    HIDDEN = "hidden"
    PANEL = "panel"
    INTEGRATED = "integrated"

    @classmethod
    def from_setting(cls, value: object, default: Optional["LyricsDisplayMode"] = None) -> "LyricsDisplayMode":
        for mode in cls:
            if mode.value == value:
                return mode
        return default if default is not None else cls.PANEL

    def next(self) -> "LyricsDisplayMode":
        order = (LyricsDisplayMode.HIDDEN, LyricsDisplayMode.PANEL, LyricsDisplayMode.INTEGRATED)
        return order[(order.index(self) + 1) % len(order)]


@dataclass(frozen=True)
class Track:
    id: int
    title: str
    duration_sec: float
    vocal_path: str
    instrumental_path: str
    lyrics_path: Optional[str] = None
    has_vocals: bool = False

    def source_for(self, rendition: Rendition) -> str:
        if rendition is Rendition.VOCAL and self.has_vocals and self.vocal_path:
            return self.vocal_path
        return self.instrumental_path


@dataclass(frozen=True)
class Album:
    title: str
    artist: str
    tracks: tuple[Track, ...]
    release_year: Optional[int] = None
    artwork_path: Optional[str] = None


@dataclass(frozen=True)
class TransportSnapshot:
    current_track_id: Optional[int] = None
    state: PlayerState = PlayerState.STOPPED
    current_time: float = 0.0
    duration: float = 0.0
    rendition: Rendition = Rendition.INSTRUMENTAL
    volume: float = 0.8
    muted: bool = False
    shuffled: bool = False
    repeat_mode: RepeatMode = RepeatMode.OFF
    error: Optional[str] = None

    @property
    def is_playing(self) -> bool:
        return self.state == PlayerState.PLAYING


@dataclass(frozen=True)
class LyricLine:
    time_sec: float
    text: str


@dataclass(frozen=True)
class LyricDocument:
    lines: tuple[LyricLine, ...]
    metadata: dict[str, object] = field(default_factory=dict)
    source: str = ""

    @property
    def is_empty(self) -> bool:
        return not self.lines

    def has_timestamps(self) -> bool:
        if not self.lines:
            return False
        non_zero = sum(1 for line in self.lines if line.time_sec > 0)
        return non_zero / len(self.lines) >= 0.5


@dataclass(frozen=True)
class WaveformProfile:
    track_id: int
    rendition: Rendition
    amplitudes: np.ndarray

    def __len__(self) -> int:
        return int(self.amplitudes.shape[0])


def format_track_title(track: Track, index: Optional[int] = None) -> str:
    title = track.title or os.path.basename(track.instrumental_path)
    if index is not None:
        return f"{index + 1:02d}. {title}"
    return title
