from __future__ import annotations

import logging
from typing import Optional, Tuple

import numpy as np
from PySide6 import QtCore

from buffers import RecentFramesBuffer
from config import (
    ANALYZER_FFT_SIZE,
    ANALYZER_MAX_DB,
    ANALYZER_MIN_DB,
    ANALYZER_SMOOTHING,
    CHANNELS,
    FRAME_INTERVAL_MS,
)
from models import PlayerState, TransportSnapshot
from timing import RenderLoop

logger = logging.getLogger(__name__)


def blackman_window(size: int) -> np.ndarray:
    n = np.arange(size, dtype=np.float64)
    a = 0.16
    a0 = (1.0 - a) / 2.0
    a1 = 0.5
    a2 = a / 2.0
    return (a0 - a1 * np.cos(2.0 * np.pi * n / size) + a2 * np.cos(4.0 * np.pi * n / size)).astype(np.float32)


def byte_frequency_data(
    frames: np.ndarray,
    window: np.ndarray,
    previous: Optional[np.ndarray],
    smoothing: float = ANALYZER_SMOOTHING,
    min_db: float = ANALYZER_MIN_DB,
    max_db: float = ANALYZER_MAX_DB,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Windowed magnitude spectrum mapped to bytes.

    ``frames`` is mono, zero-padded at the front up to the window length.
    Magnitudes are smoothed against ``previous`` before the dB conversion;
    ``[min_db, max_db]`` maps linearly onto ``[0, 255]``.

    Returns (bytes, smoothed magnitudes).
    """
    size = window.shape[0]
    x = np.zeros(size, dtype=np.float32)
    data = np.asarray(frames, dtype=np.float32).reshape(-1)[-size:]
    if data.size:
        x[size - data.size :] = data
    x = np.nan_to_num(x, nan=0.0, posinf=0.0, neginf=0.0)

    spectrum = np.fft.rfft(x * window)[: size // 2]
    magnitude = np.abs(spectrum) / size
    if previous is not None and previous.shape == magnitude.shape:
        smoothed = smoothing * previous + (1.0 - smoothing) * magnitude
    else:
        smoothed = (1.0 - smoothing) * magnitude

    with np.errstate(divide="ignore"):
        db = 20.0 * np.log10(smoothed)
    scaled = (db - min_db) * (255.0 / (max_db - min_db))
    out = np.clip(np.nan_to_num(scaled, nan=0.0, neginf=0.0), 0.0, 255.0)
    return out.astype(np.uint8), smoothed


class FrequencyAnalyzer(QtCore.QObject):
    """
    Session-wide spectrum analyzer.

    The output callback pushes every played block; consumers either pull
    ``snapshot()`` or listen to ``snapshotReady``, which fires once per frame
    while the engine is playing.
    """

    snapshotReady = QtCore.Signal(object)

    def __init__(
        self,
        fft_size: int = ANALYZER_FFT_SIZE,
        smoothing: float = ANALYZER_SMOOTHING,
        min_db: float = ANALYZER_MIN_DB,
        max_db: float = ANALYZER_MAX_DB,
        channels: int = CHANNELS,
        interval_ms: int = FRAME_INTERVAL_MS,
        parent=None,
    ):
        super().__init__(parent)
        fft_size = int(fft_size)
        if fft_size < 32 or fft_size & (fft_size - 1):
            raise ValueError(f"fft_size must be a power of two >= 32, got {fft_size}")
        if not 0.0 <= smoothing < 1.0:
            raise ValueError(f"smoothing must be in [0, 1), got {smoothing}")
        if min_db >= max_db:
            raise ValueError("min_db must be below max_db")
        self.fft_size = fft_size
        self.smoothing = float(smoothing)
        self.min_db = float(min_db)
        self.max_db = float(max_db)
        self._window = blackman_window(fft_size)
        self._frames = RecentFramesBuffer(fft_size, channels)
        self._smoothed: Optional[np.ndarray] = None
        self._latest = np.zeros(self.bin_count, dtype=np.uint8)
        self._loop = RenderLoop(self._on_frame, interval_ms, parent=self)

    @property
    def bin_count(self) -> int:
        return self.fft_size // 2

    @property
    def running(self) -> bool:
        return self._loop.active

    @property
    def latest(self) -> np.ndarray:
        return self._latest

    def push(self, frames: np.ndarray) -> None:
        self._frames.push(frames)

    def snapshot(self) -> np.ndarray:
        frames = self._frames.latest_mono(self.fft_size)
        data, self._smoothed = byte_frequency_data(
            frames,
            self._window,
            self._smoothed,
            self.smoothing,
            self.min_db,
            self.max_db,
        )
        self._latest = data
        return data

    def on_snapshot(self, snapshot: TransportSnapshot) -> None:
        if snapshot.state == PlayerState.PLAYING:
            if not self._loop.active:
                logger.debug("Frequency loop started")
            self._loop.start()
        elif self._loop.active:
            self._loop.stop()
            logger.debug("Frequency loop stopped")

    def close(self) -> None:
        self._loop.stop()
        self._frames.clear()

    def _on_frame(self) -> None:
        self.snapshotReady.emit(self.snapshot())
