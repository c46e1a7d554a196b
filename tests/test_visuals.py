from __future__ import annotations

import math

import numpy as np
import pytest

from utils import format_time
from visuals import equalizer_levels, played_mask, position_to_time, progress_fraction


def test_equalizer_levels_use_low_bins_with_floor():
    snap = np.zeros(256, dtype=np.uint8)
    snap[0] = 255
    levels = equalizer_levels(snap, bar_count=4, weight=0.5, floor=0.2)
    assert levels.shape == (4,)
    assert levels[0] == pytest.approx(1.0)
    assert levels[1:] == pytest.approx([0.2, 0.2, 0.2])


def test_equalizer_levels_never_read_past_weighted_range():
    snap = np.zeros(100, dtype=np.uint8)
    snap[60:] = 255
    levels = equalizer_levels(snap, bar_count=10, weight=0.6, floor=0.0)
    assert not levels.any()


def test_equalizer_levels_empty_input():
    assert equalizer_levels(np.zeros(0, dtype=np.uint8), 8) == pytest.approx([0.0] * 8)
    assert equalizer_levels(np.zeros(10, dtype=np.uint8), 0).shape == (0,)


def test_played_mask():
    mask = played_mask(4, 0.5)
    assert mask.tolist() == [True, True, True, False]
    assert not played_mask(4, -1.0).any()
    assert played_mask(4, 1.0).all()


def test_progress_fraction():
    assert progress_fraction(50, 200) == 0.25
    assert progress_fraction(500, 200) == 1.0
    assert progress_fraction(10, 0) == 0.0
    assert progress_fraction(math.nan, 100) == 0.0


def test_position_to_time():
    assert position_to_time(50, 200, 100.0) == 25.0
    assert position_to_time(-5, 200, 100.0) == 0.0
    assert position_to_time(500, 200, 100.0) == 100.0
    assert position_to_time(10, 0, 100.0) == 0.0


def test_format_time():
    assert format_time(0) == "0:00"
    assert format_time(125.7) == "2:05"
    assert format_time(3725) == "1:02:05"
    assert format_time(math.nan) == "0:00"
