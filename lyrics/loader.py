from __future__ import annotations

import logging
from typing import Optional

from PySide6 import QtCore

from lyrics.lrc import load_lyrics
from models import LyricDocument
from workers import LatestOnlyRunner

logger = logging.getLogger(__name__)


class LyricsLoader(QtCore.QObject):
    """
    Loads the lyric document for the current track in the background.

    Requests are keyed by track id; a result for a track that is no longer
    current is dropped.
    """

    documentReady = QtCore.Signal(int, object)
    loadFailed = QtCore.Signal(int, str)
    cleared = QtCore.Signal()

    def __init__(self, parent=None):
        super().__init__(parent)
        self._runner = LatestOnlyRunner(self)
        self._runner.resultReady.connect(self._on_result)
        self._runner.failed.connect(self._on_failed)
        self._pending: Optional[tuple[int, int]] = None
        self._loading = False

    @property
    def loading(self) -> bool:
        return self._loading

    def request(self, track_id: int, locator: Optional[str]) -> Optional[int]:
        if not locator:
            self.clear()
            return None
        token = self._runner.submit(lambda: load_lyrics(locator))
        self._pending = (token, track_id)
        self._loading = True
        logger.debug("Loading lyrics for track %s from %s", track_id, locator)
        return token

    def clear(self) -> None:
        self._runner.cancel()
        self._pending = None
        self._loading = False
        self.cleared.emit()

    def close(self) -> None:
        self._pending = None
        self._loading = False
        self._runner.shutdown()

    def commit(self, token: int, document: LyricDocument) -> bool:
        track_id = self._take(token)
        if track_id is None:
            return False
        self.documentReady.emit(track_id, document)
        return True

    def fail(self, token: int, message: str) -> bool:
        track_id = self._take(token)
        if track_id is None:
            return False
        logger.warning("Failed to load lyrics for track %s: %s", track_id, message)
        self.loadFailed.emit(track_id, "Failed to load lyrics")
        return True

    def _take(self, token: int) -> Optional[int]:
        pending = self._pending
        if pending is None or pending[0] != token:
            return None
        self._pending = None
        self._loading = False
        return pending[1]

    def _on_result(self, token: int, document: object) -> None:
        self.commit(token, document)

    def _on_failed(self, token: int, message: str) -> None:
        self.fail(token, message)
