from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Tuple

from PySide6 import QtCore

logger = logging.getLogger(__name__)


class CallableWorker(QtCore.QObject):
    finished = QtCore.Signal(int, object)
    failed = QtCore.Signal(int, str)

    def __init__(self, token: int, fn: Callable[[], Any], parent=None):
        super().__init__(parent)
        self._token = token
        self._fn = fn

    @QtCore.Slot()
    def run(self) -> None:
        try:
            result = self._fn()
        except Exception as e:
            logger.debug("Background job %d failed", self._token, exc_info=True)
            self.failed.emit(self._token, str(e) or e.__class__.__name__)
            return
        self.finished.emit(self._token, result)


class LatestOnlyRunner(QtCore.QObject):
    """
    Runs one callable per request on its own QThread and only lets the most
    recent request's result through.

    Every ``submit`` takes a new generation token; results and failures
    carrying an older token are dropped. ``cancel`` bumps the token without
    starting anything so in-flight work is discarded on arrival.
    """

    resultReady = QtCore.Signal(int, object)
    failed = QtCore.Signal(int, str)

    def __init__(self, parent=None):
        super().__init__(parent)
        self._generation = 0
        self._jobs: Dict[int, Tuple[QtCore.QThread, CallableWorker]] = {}

    @property
    def generation(self) -> int:
        return self._generation

    def is_current(self, token: int) -> bool:
        return token == self._generation

    def submit(self, fn: Callable[[], Any]) -> int:
        self._generation += 1
        token = self._generation
        worker = CallableWorker(token, fn)
        thread = QtCore.QThread(self)
        worker.moveToThread(thread)
        thread.started.connect(worker.run)
        worker.finished.connect(self._on_finished, QtCore.Qt.ConnectionType.QueuedConnection)
        worker.failed.connect(self._on_failed, QtCore.Qt.ConnectionType.QueuedConnection)
        self._jobs[token] = (thread, worker)
        thread.start()
        return token

    def cancel(self) -> None:
        self._generation += 1

    def shutdown(self) -> None:
        self.cancel()
        for token in list(self._jobs):
            self._reap(token)

    def _on_finished(self, token: int, result: object) -> None:
        self._reap(token)
        if not self.is_current(token):
            logger.debug("Dropping stale result for request %d", token)
            return
        self.resultReady.emit(token, result)

    def _on_failed(self, token: int, message: str) -> None:
        self._reap(token)
        if not self.is_current(token):
            return
        self.failed.emit(token, message)

    def _reap(self, token: int) -> None:
        job = self._jobs.pop(token, None)
        if job is None:
            return
        thread, worker = job
        thread.quit()
        thread.wait()
        thread.deleteLater()
        worker.deleteLater()
