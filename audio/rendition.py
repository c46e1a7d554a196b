from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable, Optional

from models import PlayerState

if TYPE_CHECKING:
    from audio.player import PlaybackEngine

logger = logging.getLogger(__name__)


class RenditionSwitcher:
    """
    Swaps between the vocal and instrumental source of the current track.

    Position and play intent are captured before the swap and restored when
    the new source reports its metadata. The restore listener is connected
    just before the load and disconnects itself the first time it fires; a
    load that happened after the swap makes it a no-op.
    """

    def __init__(self, engine: "PlaybackEngine"):
        self._engine = engine
        self._listener: Optional[Callable[[float], None]] = None
        self._resume = False

    @property
    def pending(self) -> bool:
        return self._listener is not None

    @property
    def resumes_playback(self) -> bool:
        """A restore is waiting and will start playback when it fires."""
        return self._listener is not None and self._resume

    def toggle_version(self) -> None:
        engine = self._engine
        track = engine.current_track
        if track is None:
            return

        snap = engine.snapshot
        was_playing = engine.play_intended
        if snap.state == PlayerState.PLAYING:
            saved_time = engine.output.position
        else:
            saved_time = snap.current_time
        target = snap.rendition.other()
        if not track.has_vocals:
            logger.debug("Track %s has no vocal rendition; staying on instrumental", track.id)

        self.cancel()
        engine.set_rendition(target)

        expected = engine.load_generation + 1

        def restore(_duration: float) -> None:
            resume = self._resume
            self._disconnect(restore)
            if engine.load_generation != expected:
                return
            engine.seek(saved_time)
            if resume:
                engine.play()

        self._listener = restore
        self._resume = was_playing
        engine.output.metadataReady.connect(restore)
        engine.load_track(track.id)

    def hold(self) -> None:
        """Keep the pending restore but do not resume playback after it."""
        self._resume = False

    def cancel(self) -> None:
        if self._listener is not None:
            self._disconnect(self._listener)

    def _disconnect(self, listener: Callable[[float], None]) -> None:
        if self._listener is not listener:
            return
        self._listener = None
        self._resume = False
        self._engine.output.metadataReady.disconnect(listener)
