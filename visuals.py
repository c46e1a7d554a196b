from __future__ import annotations

import math

import numpy as np

from config import EQUALIZER_FLOOR, EQUALIZER_FREQUENCY_WEIGHT
from utils import clamp


def equalizer_levels(
    snapshot: np.ndarray,
    bar_count: int,
    weight: float = EQUALIZER_FREQUENCY_WEIGHT,
    floor: float = EQUALIZER_FLOOR,
) -> np.ndarray:
    """
    Bar heights in [0, 1] from a byte spectrum.

    Only the lowest ``weight`` share of the bins is sampled so bass and mids
    get most of the bars. Every bar keeps at least ``floor`` of the height.
    """
    bar_count = int(bar_count)
    data = np.asarray(snapshot)
    if bar_count <= 0 or data.size == 0:
        return np.zeros(max(0, bar_count), dtype=np.float32)
    idx = np.floor(np.arange(bar_count) / bar_count * data.size * weight).astype(np.int64)
    idx = np.clip(idx, 0, data.size - 1)
    amp = data[idx].astype(np.float32) / 255.0
    return (floor + amp * (1.0 - floor)).astype(np.float32)


def played_mask(bar_count: int, progress: float) -> np.ndarray:
    if bar_count <= 0:
        return np.zeros(0, dtype=bool)
    return (np.arange(bar_count) / bar_count) <= progress


def progress_fraction(time_sec: float, duration: float) -> float:
    if duration <= 0 or not math.isfinite(duration) or not math.isfinite(time_sec):
        return 0.0
    return clamp(time_sec / duration, 0.0, 1.0)


def position_to_time(x: float, width: float, duration: float) -> float:
    if width <= 0 or duration <= 0:
        return 0.0
    return clamp(x / width, 0.0, 1.0) * duration
