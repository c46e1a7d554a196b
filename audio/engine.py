from __future__ import annotations

import json
import logging
import os
import subprocess
import threading
from typing import Callable, List, Optional

import numpy as np
from PySide6 import QtCore

try:
    import sounddevice as sd
    _sounddevice_import_error = None
except Exception as e:
    sd = None
    _sounddevice_import_error = e

from buffers import AudioRingBuffer
from config import (
    BLOCKSIZE_FRAMES,
    CHANNELS,
    OUTPUT_LATENCY,
    PREBUFFER_SEC,
    RING_MAX_SECONDS,
    SAMPLE_RATE,
)
from errors import PlaybackRejected
from utils import clamp, have_exe, is_url, safe_float

logger = logging.getLogger(__name__)


def make_ffmpeg_cmd(locator: str, start_sec: float, sample_rate: int, channels: int) -> List[str]:
    return [
        "ffmpeg", "-hide_banner", "-loglevel", "error",
        "-ss", f"{max(0.0, start_sec):.3f}",
        "-i", locator,
        "-vn",
        "-ac", str(channels),
        "-ar", str(sample_rate),
        "-f", "f32le",
        "pipe:1",
    ]


def probe_duration(locator: str) -> float:
    """
    Decoded duration in seconds via ffprobe.

    Raises OSError when the resource is missing or ffprobe rejects it.
    Returns 0.0 when ffprobe is unavailable.
    """
    if not is_url(locator) and not os.path.exists(locator):
        raise FileNotFoundError(f"File not found: {locator}")
    if not have_exe("ffprobe"):
        logger.warning("ffprobe not found in PATH; duration unknown for %s", locator)
        return 0.0
    p = subprocess.run(
        [
            "ffprobe", "-v", "error",
            "-print_format", "json",
            "-show_entries", "format=duration",
            locator,
        ],
        capture_output=True,
        text=True,
        check=False,
    )
    if p.returncode != 0:
        detail = (p.stderr or "").strip().splitlines()
        raise OSError(detail[-1] if detail else f"ffprobe failed for {locator}")
    data = json.loads(p.stdout or "{}")
    fmt = data.get("format", {}) or {}
    return max(0.0, safe_float(fmt.get("duration", 0.0), 0.0))


# -----------------------------
# Decoder thread
# -----------------------------

class DecoderThread(threading.Thread):
    """
    Reads float32 PCM from ffmpeg and pushes it into the ring buffer.

    Reports "ready" once prebuffered, "eof" when the stream is exhausted and
    "error" when ffmpeg cannot be started or produced no audio.
    """

    def __init__(
        self,
        locator: str,
        start_sec: float,
        sample_rate: int,
        channels: int,
        ring: AudioRingBuffer,
        state_cb: Callable[[str, Optional[str]], None],
        generation: int = 0,
    ):
        super().__init__(daemon=True)
        self.locator = locator
        self.start_sec = float(start_sec)
        self.sample_rate = sample_rate
        self.channels = channels
        self.ring = ring
        self._state_cb = state_cb
        self.generation = generation
        self.eof_reached = False
        self._stop = threading.Event()
        self._proc: Optional[subprocess.Popen] = None
        self._frame_bytes = channels * 4
        self._read_bytes = BLOCKSIZE_FRAMES * 2 * self._frame_bytes

    def stop(self) -> None:
        self._stop.set()
        try:
            if self._proc and self._proc.poll() is None:
                self._proc.terminate()
        except OSError:
            logger.debug("ffmpeg already gone for %s", self.locator, exc_info=True)

    def run(self) -> None:
        cmd = make_ffmpeg_cmd(self.locator, self.start_sec, self.sample_rate, self.channels)
        try:
            self._proc = subprocess.Popen(cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE)
        except OSError as e:
            self._state_cb("error", f"Failed to start ffmpeg: {e}")
            return

        stdout = self._proc.stdout
        pending = bytearray()
        total_frames = 0
        ready_sent = False
        prebuffer_frames = int(PREBUFFER_SEC * self.sample_rate)
        try:
            while not self._stop.is_set():
                chunk = stdout.read(self._read_bytes)
                if not chunk:
                    break
                pending.extend(chunk)
                usable = (len(pending) // self._frame_bytes) * self._frame_bytes
                if usable == 0:
                    continue
                x = np.frombuffer(bytes(pending[:usable]), dtype=np.float32).reshape((-1, self.channels))
                del pending[:usable]
                self.ring.push_blocking(x, stop_event=self._stop)
                total_frames += x.shape[0]
                if not ready_sent and total_frames >= prebuffer_frames:
                    ready_sent = True
                    self._state_cb("ready", None)
        except (OSError, ValueError) as e:
            if not self._stop.is_set():
                self._state_cb("error", f"Decoder error: {e}")
            return
        finally:
            if self._proc and self._proc.poll() is None:
                self._proc.terminate()

        if self._stop.is_set():
            return
        self._proc.wait()
        if total_frames == 0:
            stderr = b""
            if self._proc.stderr is not None:
                stderr = self._proc.stderr.read() or b""
            detail = stderr.decode("utf-8", "replace").strip().splitlines()
            self._state_cb("error", detail[-1] if detail else "Failed to decode audio")
            return
        if not ready_sent:
            self._state_cb("ready", None)
        self.eof_reached = True
        self._state_cb("eof", None)


class OutputBase(QtCore.QObject):
    """
    Control surface of the audio resource the playback engine drives.

    Lifecycle signals mirror a media element: metadata-ready (duration),
    can-play, playback-ended and decode/load error.
    """

    metadataReady = QtCore.Signal(float)
    canPlay = QtCore.Signal()
    ended = QtCore.Signal()
    errorOccurred = QtCore.Signal(str)

    def set_source(self, locator: str) -> None:
        raise NotImplementedError

    def load(self) -> None:
        raise NotImplementedError

    def resume(self) -> None:
        raise NotImplementedError

    def play(self) -> None:
        raise NotImplementedError

    def pause(self) -> None:
        raise NotImplementedError

    @property
    def position(self) -> float:
        raise NotImplementedError

    @position.setter
    def position(self, value: float) -> None:
        raise NotImplementedError

    @property
    def duration(self) -> float:
        raise NotImplementedError

    def set_volume(self, volume: float) -> None:
        raise NotImplementedError

    def attach_analyzer(self, sink) -> None:
        raise NotImplementedError

    def close(self) -> None:
        pass


class AudioOutput(OutputBase):
    """
    ffmpeg decoder thread -> ring buffer -> sounddevice callback.

    The output stream starts "suspended" and is started by ``resume()``; a
    failure to start it is the desktop equivalent of an autoplay rejection.
    """

    _probeFinished = QtCore.Signal(int, float, str)
    _decoderEvent = QtCore.Signal(int, str, str)
    _drained = QtCore.Signal(int)

    def __init__(self, sample_rate: int = SAMPLE_RATE, channels: int = CHANNELS, parent=None):
        super().__init__(parent)
        self.sample_rate = sample_rate
        self.channels = channels
        self._ring = AudioRingBuffer(channels, max_seconds=RING_MAX_SECONDS, sample_rate=sample_rate)
        self._stream = None
        self._decoder: Optional[DecoderThread] = None
        self._analyzer_sink = None

        self._source: Optional[str] = None
        self._generation = 0
        self._duration = 0.0
        self._start_offset = 0.0
        self._frames_played = 0
        self._playing = False
        self._paused = False
        self._ended = False
        self._volume = 1.0

        self._probeFinished.connect(self._on_probe_finished)
        self._decoderEvent.connect(self._on_decoder_event)
        self._drained.connect(self._on_drained)

    # Source lifecycle

    def set_source(self, locator: str) -> None:
        self._source = locator

    def load(self) -> None:
        self._stop_decoder()
        self._generation += 1
        self._duration = 0.0
        self._start_offset = 0.0
        self._frames_played = 0
        self._playing = False
        self._paused = False
        self._ended = False
        if not self._source:
            return
        generation = self._generation
        locator = self._source

        def probe():
            try:
                duration = probe_duration(locator)
            except (OSError, ValueError) as e:
                self._probeFinished.emit(generation, 0.0, str(e) or "Failed to load audio file")
                return
            self._probeFinished.emit(generation, duration, "")

        threading.Thread(target=probe, daemon=True).start()
        logger.debug("Loading %s (generation %d)", locator, generation)

    def _on_probe_finished(self, generation: int, duration: float, error: str) -> None:
        if generation != self._generation:
            return
        if error:
            logger.warning("Failed to load %s: %s", self._source, error)
            self.errorOccurred.emit(error)
            return
        self._duration = duration
        self.metadataReady.emit(duration)
        self.canPlay.emit()

    # Transport

    @property
    def suspended(self) -> bool:
        return self._stream is None or not self._stream.active

    def resume(self) -> None:
        if sd is None:
            raise PlaybackRejected(f"sounddevice not available: {_sounddevice_import_error}")
        if self._stream is not None:
            try:
                if not self._stream.active:
                    self._stream.start()
            except sd.PortAudioError as e:
                self._close_stream()
                raise PlaybackRejected(f"Audio output error: {e}") from e
            return
        try:
            self._stream = sd.OutputStream(
                samplerate=self.sample_rate,
                channels=self.channels,
                dtype="float32",
                blocksize=BLOCKSIZE_FRAMES,
                latency=OUTPUT_LATENCY,
                callback=self._callback,
            )
            self._stream.start()
        except sd.PortAudioError as e:
            self._stream = None
            raise PlaybackRejected(f"Audio output error: {e}") from e

    def play(self) -> None:
        if not self._source:
            raise PlaybackRejected("No audio source loaded")
        if not have_exe("ffmpeg"):
            raise PlaybackRejected("ffmpeg not found in PATH.")
        if self._playing and self._decoder is not None:
            self._paused = False
            return
        start = 0.0 if self._ended else self.position
        self._start_decoder(start)
        self._paused = False

    def pause(self) -> None:
        if self._playing:
            self._paused = True

    @property
    def is_paused(self) -> bool:
        return not self._playing or self._paused

    @property
    def position(self) -> float:
        pos = self._start_offset + self._frames_played / float(self.sample_rate)
        if self._duration > 0:
            pos = min(pos, self._duration)
        return pos

    @position.setter
    def position(self, value: float) -> None:
        target = max(0.0, float(value))
        if self._duration > 0:
            target = clamp(target, 0.0, self._duration)
        self._ended = False
        if self._playing:
            paused = self._paused
            self._start_decoder(target)
            self._paused = paused
        else:
            self._start_offset = target
            self._frames_played = 0

    @property
    def duration(self) -> float:
        return self._duration

    def set_volume(self, volume: float) -> None:
        self._volume = clamp(float(volume), 0.0, 1.0)

    def attach_analyzer(self, sink) -> None:
        if self._analyzer_sink is not None:
            raise RuntimeError("A frequency analyzer is already attached")
        self._analyzer_sink = sink

    def close(self) -> None:
        self._stop_decoder()
        self._close_stream()

    # Internals

    def _start_decoder(self, start_sec: float) -> None:
        self._stop_decoder()
        self._generation += 1
        generation = self._generation
        self._start_offset = start_sec
        self._frames_played = 0
        self._ended = False
        self._playing = True

        def state_cb(kind: str, msg: Optional[str]) -> None:
            self._decoderEvent.emit(generation, kind, msg or "")

        self._decoder = DecoderThread(
            locator=self._source,
            start_sec=start_sec,
            sample_rate=self.sample_rate,
            channels=self.channels,
            ring=self._ring,
            state_cb=state_cb,
            generation=generation,
        )
        self._decoder.start()

    def _stop_decoder(self) -> None:
        if self._decoder is not None:
            self._decoder.stop()
            self._decoder = None
        self._playing = False
        self._ring.clear()

    def _close_stream(self) -> None:
        if self._stream is not None:
            try:
                self._stream.stop()
                self._stream.close()
            except sd.PortAudioError:
                logger.debug("Ignoring error while closing output stream", exc_info=True)
            self._stream = None

    def _on_decoder_event(self, generation: int, kind: str, msg: str) -> None:
        if generation != self._generation:
            return
        if kind == "error":
            logger.warning("Decoder failed for %s: %s", self._source, msg)
            self._stop_decoder()
            self.errorOccurred.emit(msg)
        elif kind == "ready":
            logger.debug("Decoder prebuffered %s", self._source)

    def _on_drained(self, generation: int) -> None:
        if generation != self._generation or self._ended:
            return
        self._ended = True
        self._start_offset = self.position
        self._frames_played = 0
        self._stop_decoder()
        self.ended.emit()

    def _callback(self, outdata, frames, time_info, status) -> None:
        if not self._playing or self._paused:
            outdata.fill(0)
            return
        filled = self._ring.pop_into(outdata)
        self._frames_played += filled
        vol = self._volume
        if vol == 0.0:
            outdata.fill(0)
        elif vol != 1.0:
            outdata *= vol
        sink = self._analyzer_sink
        if sink is not None and filled:
            sink.push(outdata[:filled])
        decoder = self._decoder
        if (
            filled < frames
            and decoder is not None
            and decoder.eof_reached
            and decoder.generation == self._generation
            and not self._ended
        ):
            self._drained.emit(decoder.generation)
