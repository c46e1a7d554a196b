from __future__ import annotations

import random

import pytest
from PySide6 import QtCore

from audio.engine import OutputBase
from audio.player import PlaybackEngine
from errors import PlaybackRejected
from library import AlbumCatalog
from models import Track
from preferences import PreferenceStore


@pytest.fixture(scope="session", autouse=True)
def qapp():
    app = QtCore.QCoreApplication.instance() or QtCore.QCoreApplication([])
    yield app


class FakeOutput(OutputBase):
    """In-memory output: records calls, lifecycle events are emitted by the test."""

    def __init__(self, parent=None):
        super().__init__(parent)
        self.source = None
        self.load_calls = 0
        self.resume_calls = 0
        self.play_calls = 0
        self.pause_calls = 0
        self.volume = None
        self.analyzer = None
        self.reject_resume = False
        self.reject_play = False
        self.closed = False
        self.paused = True
        self._position = 0.0
        self._duration = 0.0

    def set_source(self, locator):
        self.source = locator

    def load(self):
        self.load_calls += 1
        self._position = 0.0
        self._duration = 0.0
        self.paused = True

    def resume(self):
        self.resume_calls += 1
        if self.reject_resume:
            raise PlaybackRejected("output stream refused to start")

    def play(self):
        if self.reject_play:
            raise PlaybackRejected("play() rejected")
        self.play_calls += 1
        self.paused = False

    def pause(self):
        self.pause_calls += 1
        self.paused = True

    @property
    def position(self):
        return self._position

    @position.setter
    def position(self, value):
        self._position = float(value)

    @property
    def duration(self):
        return self._duration

    def set_volume(self, volume):
        self.volume = volume

    def attach_analyzer(self, sink):
        if self.analyzer is not None:
            raise RuntimeError("already attached")
        self.analyzer = sink

    def close(self):
        self.closed = True

    # test helpers

    def ready(self, duration=200.0):
        self._duration = duration
        self.metadataReady.emit(duration)
        self.canPlay.emit()

    def finish(self):
        self._position = self._duration
        self.paused = True
        self.ended.emit()


def make_track(track_id, has_vocals=True, lyrics=None, duration=200.0):
    return Track(
        id=track_id,
        title=f"Song {track_id}",
        duration_sec=duration,
        vocal_path=f"/music/vocal/{track_id:02d}.mp3" if has_vocals else "",
        instrumental_path=f"/music/instrumental/{track_id:02d}.mp3",
        lyrics_path=lyrics,
        has_vocals=has_vocals,
    )


@pytest.fixture
def settings(tmp_path):
    return QtCore.QSettings(str(tmp_path / "prefs.ini"), QtCore.QSettings.Format.IniFormat)


@pytest.fixture
def store(settings):
    return PreferenceStore(settings)


@pytest.fixture
def catalog():
    tracks = [make_track(i, has_vocals=(i != 3)) for i in range(1, 6)]
    return AlbumCatalog.from_tracks(tracks, title="Test Album", artist="Test Artist")


@pytest.fixture
def output():
    return FakeOutput()


@pytest.fixture
def make_engine(output, store):
    engines = []

    def build(catalog, **kwargs):
        kwargs.setdefault("auto_play_delay_ms", 0)
        kwargs.setdefault("rng", random.Random(7))
        engine = PlaybackEngine(catalog, output, store, **kwargs)
        engines.append(engine)
        return engine

    yield build
    for engine in engines:
        engine.close()


@pytest.fixture
def engine(make_engine, catalog):
    return make_engine(catalog)
