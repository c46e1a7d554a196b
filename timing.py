from __future__ import annotations

import math
from typing import Callable, Optional

from PySide6 import QtCore

from config import FRAME_INTERVAL_MS


class RenderLoop(QtCore.QObject):
    """
    Start/stop-able per-frame callback driven by a QTimer.

    Each consumer owns its own loop so mount/unmount and play/pause can
    start and cancel it independently.
    """

    def __init__(self, callback: Callable[[], None], interval_ms: int = FRAME_INTERVAL_MS, parent=None):
        super().__init__(parent)
        self._callback = callback
        self._timer = QtCore.QTimer(self)
        self._timer.setInterval(max(1, int(interval_ms)))
        self._timer.timeout.connect(self._on_frame)

    @property
    def active(self) -> bool:
        return self._timer.isActive()

    def start(self) -> None:
        if not self._timer.isActive():
            self._timer.start()

    def stop(self) -> None:
        if self._timer.isActive():
            self._timer.stop()

    def _on_frame(self) -> None:
        self._callback()


class TimeTracker(QtCore.QObject):
    """Polls the playback position every frame while running."""

    positionChanged = QtCore.Signal(float)

    def __init__(
        self,
        position_provider: Callable[[], float],
        interval_ms: int = FRAME_INTERVAL_MS,
        parent=None,
    ):
        super().__init__(parent)
        self._provider = position_provider
        self._loop = RenderLoop(self.poll_once, interval_ms, parent=self)
        self._last: Optional[float] = None

    @property
    def active(self) -> bool:
        return self._loop.active

    def start(self) -> None:
        self._loop.start()

    def stop(self) -> None:
        self._loop.stop()
        self._last = None

    def poll_once(self) -> None:
        pos = float(self._provider())
        if not math.isfinite(pos):
            return
        if pos != self._last:
            self._last = pos
            self.positionChanged.emit(pos)
