from __future__ import annotations

from utils import env_flag

SETTINGS_ORG = "RenditionPlayer"
SETTINGS_APP = "RenditionAlbumPlayer"

ALBUM_ENV = "RENDITION_ALBUM"
DEBUG_ENV = "RENDITION_DEBUG"
DEBUG_ENABLED = env_flag(DEBUG_ENV)

# Audio output
SAMPLE_RATE = 44100
CHANNELS = 2
BLOCKSIZE_FRAMES = 1024
OUTPUT_LATENCY = "high"
RING_MAX_SECONDS = 2.0
PREBUFFER_SEC = 0.4

# Transport
DEFAULT_VOLUME = 0.8
RESTART_THRESHOLD_SEC = 3.0
AUTO_PLAY_DELAY_MS = 100
SEEK_STEP_SEC = 10.0
VOLUME_STEP = 0.05

# Per-frame polling (~60 Hz)
FRAME_INTERVAL_MS = 16

# Lyrics
LYRICS_REARM_MS = 3000
LYRICS_FETCH_TIMEOUT_SEC = 10.0

# Waveform
WAVEFORM_SAMPLES = 100
WAVEFORM_SAMPLE_RATE = 22050
WAVEFORM_FALLBACK_LEVEL = 0.5

# Frequency analysis
ANALYZER_FFT_SIZE = 512
ANALYZER_SMOOTHING = 0.8
ANALYZER_MIN_DB = -100.0
ANALYZER_MAX_DB = -30.0

# Equalizer rendering
EQUALIZER_BAR_COUNT = 144
EQUALIZER_FREQUENCY_WEIGHT = 0.6
EQUALIZER_FLOOR = 0.15
