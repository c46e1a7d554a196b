from __future__ import annotations

import logging
from typing import Sequence, Tuple

from PySide6 import QtCore

from config import LYRICS_REARM_MS
from lyrics.lrc import resolve_current_line, resolve_upcoming_line
from models import LyricLine

logger = logging.getLogger(__name__)


def center_scroll_offset(line_top: float, line_height: float, viewport_height: float, content_height: float) -> int:
    """Scroll value that puts the middle of a line at the middle of the viewport."""
    target = line_top + line_height / 2.0 - viewport_height / 2.0
    upper = max(0.0, content_height - viewport_height)
    return int(round(min(max(target, 0.0), upper)))


class LyricSyncEngine(QtCore.QObject):
    """
    Current-line tracking plus the auto-scroll state machine.

    Auto-scroll starts enabled. A user scroll turns it off and arms a
    single-shot re-arm timer; each new scroll restarts that timer. A line
    change turns it back on at once and cancels the timer.
    """

    lineChanged = QtCore.Signal(int, int)
    autoScrollChanged = QtCore.Signal(bool)
    scrollRequested = QtCore.Signal(int)

    def __init__(self, rearm_ms: int = LYRICS_REARM_MS, parent=None):
        super().__init__(parent)
        self._lines: Tuple[LyricLine, ...] = ()
        self._current = -1
        self._upcoming = -1
        self._auto_scroll = True
        self._rearm_timer = QtCore.QTimer(self)
        self._rearm_timer.setSingleShot(True)
        self._rearm_timer.setInterval(max(0, int(rearm_ms)))
        self._rearm_timer.timeout.connect(self._on_rearm)

    @property
    def lines(self) -> Tuple[LyricLine, ...]:
        return self._lines

    @property
    def current_index(self) -> int:
        return self._current

    @property
    def upcoming_index(self) -> int:
        return self._upcoming

    @property
    def auto_scroll_enabled(self) -> bool:
        return self._auto_scroll

    @property
    def rearm_pending(self) -> bool:
        return self._rearm_timer.isActive()

    def set_lines(self, lines: Sequence[LyricLine]) -> None:
        self._lines = tuple(lines)
        self._current = -1
        self._upcoming = -1
        self._cancel_rearm()
        self._set_auto_scroll(True)

    def update(self, time_sec: float) -> None:
        current = resolve_current_line(self._lines, time_sec)
        upcoming = resolve_upcoming_line(self._lines, time_sec)
        if current == self._current and upcoming == self._upcoming:
            return
        line_moved = current != self._current
        self._current = current
        self._upcoming = upcoming
        if line_moved:
            self._cancel_rearm()
            self._set_auto_scroll(True)
        self.lineChanged.emit(current, upcoming)

    def user_scrolled(self) -> None:
        self._set_auto_scroll(False)
        self._rearm_timer.start()

    def set_auto_scroll_enabled(self, enabled: bool) -> None:
        self._cancel_rearm()
        self._set_auto_scroll(bool(enabled))

    def close(self) -> None:
        self._cancel_rearm()

    def _set_auto_scroll(self, enabled: bool) -> None:
        if enabled == self._auto_scroll:
            return
        self._auto_scroll = enabled
        self.autoScrollChanged.emit(enabled)

    def _cancel_rearm(self) -> None:
        if self._rearm_timer.isActive():
            self._rearm_timer.stop()

    def _on_rearm(self) -> None:
        logger.debug("Lyric auto-scroll re-armed")
        self._set_auto_scroll(True)
        if self._current >= 0:
            self.scrollRequested.emit(self._current)
