from __future__ import annotations

import numpy as np
import pytest

from analyzer import FrequencyAnalyzer, blackman_window, byte_frequency_data
from models import PlayerState, TransportSnapshot


def sine(bin_index, size=512, amplitude=1.0, channels=2):
    k = np.arange(size)
    mono = (amplitude * np.sin(2.0 * np.pi * bin_index * k / size)).astype(np.float32)
    return np.repeat(mono[:, None], channels, axis=1)


@pytest.fixture
def analyzer():
    a = FrequencyAnalyzer(fft_size=512)
    yield a
    a.close()


def test_blackman_window_shape_and_ends():
    w = blackman_window(512)
    assert w.shape == (512,)
    assert w[0] == pytest.approx(0.0, abs=1e-6)
    assert w.max() <= 1.0


def test_silence_maps_to_zero(analyzer):
    analyzer.push(np.zeros((512, 2), dtype=np.float32))
    data = analyzer.snapshot()
    assert data.shape == (256,)
    assert data.dtype == np.uint8
    assert not data.any()


def test_snapshot_before_any_audio_is_zero(analyzer):
    assert not analyzer.snapshot().any()
    assert analyzer.bin_count == 256


def test_sine_peaks_at_its_bin(analyzer):
    analyzer.push(sine(32))
    data = analyzer.snapshot()
    assert int(np.argmax(data)) == 32
    assert data[32] > data[100]


def test_smoothing_accumulates_over_frames(analyzer):
    analyzer.push(sine(40, amplitude=0.01))
    first = int(analyzer.snapshot()[40])
    second = int(analyzer.snapshot()[40])
    assert 0 < first < second < 255


def test_byte_frequency_data_without_smoothing():
    window = blackman_window(64)
    frames = np.zeros(64, dtype=np.float32)
    data, smoothed = byte_frequency_data(frames, window, None, smoothing=0.0)
    assert data.shape == (32,)
    assert smoothed.shape == (32,)
    assert not data.any()


def test_short_input_is_zero_padded():
    window = blackman_window(64)
    data, _ = byte_frequency_data(np.ones(10, dtype=np.float32), window, None)
    assert data.shape == (32,)


def test_loop_follows_playing_state(analyzer):
    analyzer.on_snapshot(TransportSnapshot(state=PlayerState.PLAYING))
    assert analyzer.running
    analyzer.on_snapshot(TransportSnapshot(state=PlayerState.PAUSED))
    assert not analyzer.running
    analyzer.on_snapshot(TransportSnapshot(state=PlayerState.LOADING))
    assert not analyzer.running


def test_frame_emits_snapshot(analyzer):
    received = []
    analyzer.snapshotReady.connect(received.append)
    analyzer.push(sine(32))
    analyzer._on_frame()
    assert len(received) == 1
    assert received[0] is analyzer.latest


def test_close_stops_loop(analyzer):
    analyzer.on_snapshot(TransportSnapshot(state=PlayerState.PLAYING))
    analyzer.close()
    assert not analyzer.running


@pytest.mark.parametrize(
    "kwargs",
    [
        {"fft_size": 500},
        {"fft_size": 16},
        {"smoothing": 1.0},
        {"smoothing": -0.1},
        {"min_db": -30.0, "max_db": -100.0},
    ],
)
def test_invalid_configuration_is_rejected(kwargs):
    with pytest.raises(ValueError):
        FrequencyAnalyzer(**kwargs)
