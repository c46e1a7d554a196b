from __future__ import annotations


class PlayerError(RuntimeError):
    """Base class for recoverable player failures."""


class PlaybackRejected(PlayerError):
    """The output refused to start playback (stream failure, missing decoder, no source)."""


class CatalogError(PlayerError):
    pass


class LyricsLoadError(PlayerError):
    pass


class WaveformDecodeError(PlayerError):
    pass
