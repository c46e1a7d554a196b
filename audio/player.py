from __future__ import annotations

import logging
import math
import random
from dataclasses import replace
from typing import Optional

from PySide6 import QtCore

from audio.engine import OutputBase
from audio.rendition import RenditionSwitcher
from audio.shuffle import ShuffleQueue
from config import AUTO_PLAY_DELAY_MS, DEFAULT_VOLUME, RESTART_THRESHOLD_SEC
from errors import PlaybackRejected
from library import AlbumCatalog
from models import PlayerState, Rendition, RepeatMode, Track, TransportSnapshot
from preferences import (
    KEY_MUTED,
    KEY_REPEAT,
    KEY_SHUFFLE,
    KEY_VOLUME,
    PreferenceStore,
)
from timing import TimeTracker
from utils import clamp

logger = logging.getLogger(__name__)

PLAY_FAILED_MESSAGE = "Failed to play audio. Please try again."


class PlaybackEngine(QtCore.QObject):
    """
    Transport state machine for one album.

    The engine is the only writer of the ``TransportSnapshot`` and the only
    caller of the output's mutating methods. Everything else observes the
    snapshot through ``snapshotChanged``.
    """

    snapshotChanged = QtCore.Signal(object)
    trackChanged = QtCore.Signal(object)
    renditionChanged = QtCore.Signal(object)
    errorOccurred = QtCore.Signal(str)
    positionChanged = QtCore.Signal(float)

    def __init__(
        self,
        catalog: AlbumCatalog,
        output: OutputBase,
        preferences: PreferenceStore,
        time_tracker: Optional[TimeTracker] = None,
        auto_play_delay_ms: int = AUTO_PLAY_DELAY_MS,
        restart_threshold_sec: float = RESTART_THRESHOLD_SEC,
        rng: Optional[random.Random] = None,
        parent=None,
    ):
        super().__init__(parent)
        self.catalog = catalog
        self.output = output
        self.preferences = preferences
        self.restart_threshold_sec = float(restart_threshold_sec)
        self._rng = rng or random.Random()

        prefs = preferences.load()
        self._snapshot = TransportSnapshot(
            volume=prefs.volume,
            muted=prefs.muted,
            shuffled=prefs.shuffle,
            repeat_mode=prefs.repeat,
        )
        self._restore_volume = prefs.volume if prefs.volume > 0 else DEFAULT_VOLUME
        self._shuffle_queue: Optional[ShuffleQueue] = None
        self._load_generation = 0

        self._time_tracker = time_tracker or TimeTracker(lambda: self.output.position, parent=self)
        self._time_tracker.positionChanged.connect(self._on_position_tick)

        self._auto_play_delay_ms = max(0, int(auto_play_delay_ms))
        self._resume_timer = QtCore.QTimer(self)
        self._resume_timer.setSingleShot(True)
        self._resume_timer.setInterval(self._auto_play_delay_ms)
        self._resume_timer.timeout.connect(self._resume_after_move)

        self.output.metadataReady.connect(self._on_metadata_ready)
        self.output.canPlay.connect(self._on_can_play)
        self.output.ended.connect(self._on_ended)
        self.output.errorOccurred.connect(self._on_output_error)

        self.rendition_switcher = RenditionSwitcher(self)
        self._apply_volume()

    # -------------------------------------------------------------------------
    # Read side
    # -------------------------------------------------------------------------

    @property
    def snapshot(self) -> TransportSnapshot:
        return self._snapshot

    @property
    def current_track(self) -> Optional[Track]:
        return self.catalog.get_track(self._snapshot.current_track_id)

    @property
    def load_generation(self) -> int:
        """Incremented every time a source is loaded into the output."""
        return self._load_generation

    @property
    def shuffle_queue(self) -> Optional[ShuffleQueue]:
        return self._shuffle_queue

    @property
    def time_tracker(self) -> TimeTracker:
        return self._time_tracker

    @property
    def resume_pending(self) -> bool:
        return self._resume_timer.isActive()

    @property
    def play_intended(self) -> bool:
        """
        True while playback is running or about to run again: the state is
        PLAYING, a delayed resume is queued, or a rendition restore will
        resume once the new source is ready.
        """
        return (
            self._snapshot.state == PlayerState.PLAYING
            or self.resume_pending
            or self.rendition_switcher.resumes_playback
        )

    def _update(self, **changes) -> None:
        self._snapshot = replace(self._snapshot, **changes)
        self.snapshotChanged.emit(self._snapshot)

    def _set_state(self, state: PlayerState, **changes) -> None:
        self._update(state=state, **changes)
        if state == PlayerState.PLAYING:
            self._time_tracker.start()
        else:
            self._time_tracker.stop()

    def _fail(self, message: str, state: Optional[PlayerState] = None) -> None:
        if state is None:
            self._update(error=message)
        else:
            self._set_state(state, error=message)
        self.errorOccurred.emit(message)

    # -------------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------------

    def load_track(self, track_id: int) -> None:
        """Point the output at ``track_id`` for the current rendition. Never starts playback."""
        track = self.catalog.get_track(track_id)
        if track is None:
            logger.warning("Track %s not found", track_id)
            self._fail(f"Track {track_id} not found")
            return

        self._cancel_pending_resume()
        previous_id = self._snapshot.current_track_id
        locator = track.source_for(self._snapshot.rendition)
        self._load_generation += 1
        self._set_state(
            PlayerState.LOADING,
            current_track_id=track.id,
            error=None,
            current_time=0.0,
            duration=track.duration_sec,
        )
        if self._shuffle_queue is not None and self._shuffle_queue.current != track.id:
            self._shuffle_queue = ShuffleQueue(self.catalog.track_ids(), current=track.id, rng=self._rng)
        logger.debug("Loading track %s (%s): %s", track.id, self._snapshot.rendition.value, locator)
        if previous_id != track.id:
            self.trackChanged.emit(track)
        self.output.set_source(locator)
        self.output.load()

    def play(self) -> None:
        if self._snapshot.current_track_id is None:
            return
        self._cancel_pending_resume()
        try:
            self.output.resume()
            self.output.play()
        except PlaybackRejected as e:
            logger.warning("Playback rejected: %s", e)
            self._fail(PLAY_FAILED_MESSAGE, PlayerState.PAUSED)
            return
        self._set_state(PlayerState.PLAYING, error=None)

    def pause(self) -> None:
        self._cancel_pending_resume()
        self.rendition_switcher.hold()
        if self._snapshot.current_track_id is None:
            return
        self.output.pause()
        if self._snapshot.state != PlayerState.STOPPED:
            self._set_state(PlayerState.PAUSED, current_time=self.output.position)

    def toggle_play_pause(self) -> None:
        if self._snapshot.state == PlayerState.PLAYING:
            self.pause()
        else:
            self.play()

    def stop(self) -> None:
        self._cancel_pending_resume()
        self.rendition_switcher.hold()
        if self._snapshot.current_track_id is None:
            return
        self.output.pause()
        self.output.position = 0.0
        self._set_state(PlayerState.STOPPED, current_time=0.0)

    def seek(self, time_sec: float) -> None:
        try:
            t = float(time_sec)
        except (TypeError, ValueError):
            return
        if not math.isfinite(t) or self._snapshot.current_track_id is None:
            return
        duration = self._snapshot.duration
        t = clamp(t, 0.0, duration) if duration > 0 else max(0.0, t)
        self.output.position = t
        self._update(current_time=t)
        self.positionChanged.emit(t)

    def seek_relative(self, delta_sec: float) -> None:
        self.seek(self.output.position + delta_sec)

    def next(self) -> None:
        current = self._snapshot.current_track_id
        was_playing = self.play_intended
        if current is None:
            target = self.catalog.first_id()
        elif self._snapshot.shuffled:
            target = self._ensure_shuffle_queue().advance()
        else:
            target = self.catalog.next_id(current)
        self.load_track(target)
        if was_playing:
            self._schedule_resume()

    def prev(self) -> None:
        current = self._snapshot.current_track_id
        if current is None:
            return
        was_playing = self.play_intended
        if self.output.position > self.restart_threshold_sec:
            self.seek(0.0)
            return
        if self._snapshot.shuffled:
            target = self._ensure_shuffle_queue().retreat()
        else:
            target = self.catalog.previous_id(current)
        self.load_track(target)
        if was_playing:
            self._schedule_resume()

    def select_track(self, track_id: int) -> None:
        """Tracklist activation: the current track toggles, any other loads and plays."""
        if track_id == self._snapshot.current_track_id and self._snapshot.error is None:
            self.toggle_play_pause()
            return
        self.load_track(track_id)
        if self._snapshot.current_track_id == track_id:
            self.play()

    def toggle_shuffle(self) -> None:
        shuffled = not self._snapshot.shuffled
        if shuffled:
            self._shuffle_queue = ShuffleQueue(
                self.catalog.track_ids(),
                current=self._snapshot.current_track_id,
                rng=self._rng,
            )
        else:
            self._shuffle_queue = None
        self._update(shuffled=shuffled)
        self.preferences.save(KEY_SHUFFLE, shuffled)

    def toggle_repeat(self) -> None:
        mode = self._snapshot.repeat_mode.next()
        self._update(repeat_mode=mode)
        self.preferences.save(KEY_REPEAT, mode)

    def set_volume(self, volume: float) -> None:
        try:
            v = float(volume)
        except (TypeError, ValueError):
            return
        if not math.isfinite(v):
            return
        v = clamp(v, 0.0, 1.0)
        if v > 0:
            self._restore_volume = v
        self._update(volume=v, muted=(v == 0.0))
        self._apply_volume()
        self.preferences.save(KEY_VOLUME, v)
        self.preferences.save(KEY_MUTED, self._snapshot.muted)

    def nudge_volume(self, delta: float) -> None:
        base = 0.0 if self._snapshot.muted else self._snapshot.volume
        self.set_volume(base + delta)

    def toggle_mute(self) -> None:
        muted = not self._snapshot.muted
        volume = self._snapshot.volume
        if not muted and volume <= 0.0:
            volume = self._restore_volume
            self.preferences.save(KEY_VOLUME, volume)
        self._update(muted=muted, volume=volume)
        self._apply_volume()
        self.preferences.save(KEY_MUTED, muted)

    def toggle_version(self) -> None:
        self.rendition_switcher.toggle_version()

    def set_rendition(self, rendition: Rendition) -> None:
        """Flip the rendition flag only; the switcher decides when to reload."""
        if rendition == self._snapshot.rendition:
            return
        self._update(rendition=rendition)
        self.renditionChanged.emit(rendition)

    def close(self) -> None:
        self._cancel_pending_resume()
        self._time_tracker.stop()
        self.rendition_switcher.cancel()
        self.output.close()

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _apply_volume(self) -> None:
        self.output.set_volume(0.0 if self._snapshot.muted else self._snapshot.volume)

    def _ensure_shuffle_queue(self) -> ShuffleQueue:
        current = self._snapshot.current_track_id
        if self._shuffle_queue is None or (current is not None and self._shuffle_queue.current != current):
            self._shuffle_queue = ShuffleQueue(self.catalog.track_ids(), current=current, rng=self._rng)
        return self._shuffle_queue

    def _schedule_resume(self) -> None:
        if self._snapshot.error is not None:
            return
        if self._auto_play_delay_ms == 0:
            self.play()
        else:
            self._resume_timer.start()

    def _cancel_pending_resume(self) -> None:
        if self._resume_timer.isActive():
            self._resume_timer.stop()

    def _resume_after_move(self) -> None:
        if self._snapshot.error is None and self._snapshot.state != PlayerState.STOPPED:
            self.play()

    # Output events

    def _on_metadata_ready(self, duration: float) -> None:
        if duration > 0 and math.isfinite(duration):
            self._update(duration=float(duration))
        if self._snapshot.state == PlayerState.LOADING:
            self._set_state(PlayerState.PAUSED)

    def _on_can_play(self) -> None:
        if self._snapshot.state == PlayerState.LOADING:
            self._set_state(PlayerState.PAUSED)

    def _on_output_error(self, message: str) -> None:
        logger.warning("Audio error on track %s: %s", self._snapshot.current_track_id, message)
        self._cancel_pending_resume()
        self._fail(message or "Failed to load audio file", PlayerState.STOPPED)

    def _on_position_tick(self, position: float) -> None:
        self._snapshot = replace(self._snapshot, current_time=position)
        self.positionChanged.emit(position)

    def _on_ended(self) -> None:
        current = self._snapshot.current_track_id
        if current is None:
            return
        mode = self._snapshot.repeat_mode
        logger.debug("Track %s ended (repeat=%s, shuffled=%s)", current, mode.value, self._snapshot.shuffled)

        if mode == RepeatMode.ONE:
            self.seek(0.0)
            self.play()
            return
        if mode == RepeatMode.OFF:
            if self._snapshot.shuffled:
                finished = self._ensure_shuffle_queue().at_end
            else:
                finished = self.catalog.is_last(current)
            if finished:
                self.output.position = 0.0
                self._set_state(PlayerState.STOPPED, current_time=0.0)
                self.positionChanged.emit(0.0)
                return
        # the output has stopped; next() must still treat the track as playing
        if self._snapshot.state != PlayerState.PLAYING:
            self._update(state=PlayerState.PLAYING)
        self.next()
