from __future__ import annotations

import threading
from typing import Optional

import numpy as np


class AudioRingBuffer:
    """
    Bounded FIFO of float32 frames between the decoder thread and the
    output callback, backed by one preallocated (capacity, channels) array.

    The writer blocks while the buffer is full; the reader never blocks and
    pads its block with silence on underrun.
    """

    def __init__(self, channels: int, max_seconds: float, sample_rate: int):
        self.channels = channels
        self.sample_rate = sample_rate
        self.capacity = max(1, int(max_seconds * sample_rate))
        self._data = np.zeros((self.capacity, channels), dtype=np.float32)
        self._read = 0
        self._count = 0
        self._cond = threading.Condition()

    def clear(self) -> None:
        with self._cond:
            self._read = 0
            self._count = 0
            self._cond.notify_all()

    def frames_available(self) -> int:
        with self._cond:
            return self._count

    def _validate(self, block: np.ndarray, name: str) -> None:
        if block.ndim != 2 or block.shape[1] != self.channels:
            raise ValueError(f"{name}: expected (n, {self.channels}) frames, got shape {block.shape}")

    def _write(self, block: np.ndarray) -> None:
        # lock held, block fits
        n = block.shape[0]
        start = (self._read + self._count) % self.capacity
        head = min(n, self.capacity - start)
        self._data[start : start + head] = block[:head]
        if head < n:
            self._data[: n - head] = block[head:]
        self._count += n

    def push_blocking(self, frames: np.ndarray, stop_event: Optional[threading.Event] = None) -> None:
        block = np.asarray(frames, dtype=np.float32)
        if block.size == 0:
            return
        self._validate(block, "push")
        written = 0
        with self._cond:
            while written < block.shape[0]:
                if stop_event is not None and stop_event.is_set():
                    return
                free = self.capacity - self._count
                if free == 0:
                    self._cond.wait(0.05)
                    continue
                n = min(free, block.shape[0] - written)
                self._write(block[written : written + n])
                written += n

    def pop_into(self, out: np.ndarray) -> int:
        """Fill ``out`` from the front of the queue; returns the number of real frames."""
        self._validate(out, "pop")
        wanted = out.shape[0]
        with self._cond:
            n = min(wanted, self._count)
            head = min(n, self.capacity - self._read)
            out[:head] = self._data[self._read : self._read + head]
            if head < n:
                out[head:n] = self._data[: n - head]
            self._read = (self._read + n) % self.capacity
            self._count -= n
            if n:
                self._cond.notify_all()
        if n < wanted:
            out[n:] = 0.0
        return n


class RecentFramesBuffer:
    """
    Sliding window over the most recently played audio, kept as mono.

    The output callback writes blocks; the analyzer reads the newest samples
    oldest-first. Nothing older than ``max_frames`` is retained.
    """

    def __init__(self, max_frames: int, channels: int):
        self.channels = channels
        self.size = max(1, int(max_frames))
        self._mono = np.zeros(self.size, dtype=np.float32)
        self._pos = 0
        self._count = 0
        self._lock = threading.Lock()

    def clear(self) -> None:
        with self._lock:
            self._pos = 0
            self._count = 0

    def push(self, frames: np.ndarray) -> None:
        block = np.asarray(frames, dtype=np.float32)
        if block.size == 0:
            return
        mono = block.mean(axis=1) if block.ndim == 2 else block.reshape(-1)
        mono = mono[-self.size :]
        n = mono.shape[0]
        with self._lock:
            slots = (self._pos + np.arange(n)) % self.size
            self._mono[slots] = mono
            self._pos = (self._pos + n) % self.size
            self._count = min(self.size, self._count + n)

    def latest_mono(self, frames: int) -> np.ndarray:
        with self._lock:
            n = min(int(frames), self._count)
            if n <= 0:
                return np.zeros(0, dtype=np.float32)
            slots = (self._pos - n + np.arange(n)) % self.size
            return self._mono[slots]
