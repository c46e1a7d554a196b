"""
Waveform profile extraction for the seek bar.

The whole source is decoded once to mono PCM, split into equal blocks and
reduced to one normalized amplitude per bar. Failures never reach the
caller: a flat profile is returned instead so the bar always has something
to draw.
"""

from __future__ import annotations

import logging
import subprocess
import threading
from typing import Optional

import numpy as np
from PySide6 import QtCore

from config import WAVEFORM_FALLBACK_LEVEL, WAVEFORM_SAMPLE_RATE, WAVEFORM_SAMPLES
from errors import WaveformDecodeError
from models import Rendition, WaveformProfile
from utils import have_exe
from workers import LatestOnlyRunner

logger = logging.getLogger(__name__)

READ_CHUNK_BYTES = 1 << 16


def flat_profile(sample_count: int, level: float = WAVEFORM_FALLBACK_LEVEL) -> np.ndarray:
    return np.full(max(0, int(sample_count)), level, dtype=np.float32)


def compute_profile(samples: np.ndarray, sample_count: int = WAVEFORM_SAMPLES) -> np.ndarray:
    """
    Mean absolute amplitude per block, scaled so the loudest block is 1.0.

    The trailing ``len(samples) % sample_count`` samples are dropped. Input
    too short to fill one sample per block, silent input or input with
    non-finite values gives the flat fallback profile.
    """
    sample_count = int(sample_count)
    if sample_count <= 0:
        return np.zeros(0, dtype=np.float32)
    x = np.asarray(samples, dtype=np.float32)
    if x.ndim > 1:
        x = x[:, 0] if x.shape[1] else x.reshape(-1)
    block = x.shape[0] // sample_count
    if block <= 0 or not np.all(np.isfinite(x)):
        return flat_profile(sample_count)

    blocks = np.abs(x[: block * sample_count]).reshape(sample_count, block)
    profile = blocks.mean(axis=1)
    peak = float(profile.max())
    if peak <= 0.0:
        return flat_profile(sample_count)
    return np.clip(profile / peak, 0.0, 1.0).astype(np.float32)


def decode_mono(
    locator: str,
    sample_rate: int = WAVEFORM_SAMPLE_RATE,
    stop_event: Optional[threading.Event] = None,
) -> np.ndarray:
    """
    Decode ``locator`` to mono float32 PCM through an ffmpeg pipe.

    Setting ``stop_event`` terminates ffmpeg and raises WaveformDecodeError.
    """
    if not have_exe("ffmpeg"):
        raise WaveformDecodeError("ffmpeg not found in PATH.")
    cmd = [
        "ffmpeg", "-hide_banner", "-loglevel", "error",
        "-i", locator,
        "-vn",
        "-map", "0:a:0",
        "-ac", "1",
        "-ar", str(int(sample_rate)),
        "-f", "f32le",
        "pipe:1",
    ]
    try:
        proc = subprocess.Popen(cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE)
    except OSError as e:
        raise WaveformDecodeError(f"Failed to start ffmpeg: {e}") from e

    data = bytearray()
    with proc:
        while True:
            if stop_event is not None and stop_event.is_set():
                if proc.poll() is None:
                    proc.terminate()
                raise WaveformDecodeError("Waveform decode cancelled")
            chunk = proc.stdout.read(READ_CHUNK_BYTES)
            if not chunk:
                break
            data.extend(chunk)
        stderr = proc.stderr.read() or b""
        returncode = proc.wait()
    if returncode != 0:
        detail = stderr.decode("utf-8", "replace").strip().splitlines()
        raise WaveformDecodeError(detail[-1] if detail else f"ffmpeg exited with {returncode}")
    usable = len(data) - (len(data) % 4)
    return np.frombuffer(bytes(data[:usable]), dtype=np.float32)


def extract(
    locator: str,
    sample_count: int = WAVEFORM_SAMPLES,
    stop_event: Optional[threading.Event] = None,
) -> np.ndarray:
    try:
        samples = decode_mono(locator, stop_event=stop_event)
    except WaveformDecodeError as e:
        if stop_event is not None and stop_event.is_set():
            logger.debug("Waveform decode for %s stopped", locator)
        else:
            logger.warning("Waveform decode failed for %s: %s", locator, e)
        return flat_profile(sample_count)
    return compute_profile(samples, sample_count)


class WaveformLoader(QtCore.QObject):
    """Background extraction keyed by (track id, rendition); only the latest request commits."""

    profileReady = QtCore.Signal(object)

    def __init__(self, sample_count: int = WAVEFORM_SAMPLES, parent=None):
        super().__init__(parent)
        self.sample_count = sample_count
        self._runner = LatestOnlyRunner(self)
        self._runner.resultReady.connect(self._on_result)
        self._runner.failed.connect(self._on_failed)
        self._pending: Optional[tuple[int, int, Rendition]] = None
        self._profile: Optional[WaveformProfile] = None
        self._stop: Optional[threading.Event] = None

    @property
    def profile(self) -> Optional[WaveformProfile]:
        return self._profile

    def request(self, track_id: int, rendition: Rendition, locator: str) -> int:
        key = (track_id, rendition)
        if self._profile is not None and (self._profile.track_id, self._profile.rendition) == key and self._pending is None:
            self.profileReady.emit(self._profile)
            return self._runner.generation
        self._abort_running()
        sample_count = self.sample_count
        stop = threading.Event()
        self._stop = stop
        token = self._runner.submit(lambda: extract(locator, sample_count, stop))
        self._pending = (token, track_id, rendition)
        return token

    def cancel(self) -> None:
        self._pending = None
        self._abort_running()
        self._runner.cancel()

    def close(self) -> None:
        self._pending = None
        self._abort_running()
        self._runner.shutdown()

    def commit(self, token: int, amplitudes: np.ndarray) -> bool:
        """Publish ``amplitudes`` if ``token`` still names the latest request."""
        pending = self._pending
        if pending is None or pending[0] != token:
            logger.debug("Discarding superseded waveform for request %d", token)
            return False
        _, track_id, rendition = pending
        self._pending = None
        self._profile = WaveformProfile(track_id=track_id, rendition=rendition, amplitudes=amplitudes)
        self.profileReady.emit(self._profile)
        return True

    def _abort_running(self) -> None:
        if self._stop is not None:
            self._stop.set()
            self._stop = None

    def _on_result(self, token: int, amplitudes: object) -> None:
        self.commit(token, np.asarray(amplitudes, dtype=np.float32))

    def _on_failed(self, token: int, message: str) -> None:
        logger.warning("Waveform extraction failed: %s", message)
        self.commit(token, flat_profile(self.sample_count))
