from __future__ import annotations

import math

from audio.player import PLAY_FAILED_MESSAGE
from conftest import make_track
from library import AlbumCatalog
from models import PlayerState, Rendition, RepeatMode
from preferences import PreferenceStore


def start_playing(engine, output, track_id=1, duration=200.0):
    engine.load_track(track_id)
    output.ready(duration)
    engine.play()
    assert engine.snapshot.state == PlayerState.PLAYING


def test_load_track_enters_loading_without_playing(engine, output):
    engine.load_track(2)
    snap = engine.snapshot
    assert snap.state == PlayerState.LOADING
    assert snap.current_track_id == 2
    assert snap.current_time == 0.0
    assert snap.error is None
    assert output.source == "/music/instrumental/02.mp3"
    assert output.load_calls == 1
    assert output.play_calls == 0


def test_metadata_ready_sets_duration_and_pauses(engine, output):
    engine.load_track(1)
    output.ready(187.5)
    assert engine.snapshot.state == PlayerState.PAUSED
    assert engine.snapshot.duration == 187.5


def test_load_unknown_track_sets_error_and_keeps_state(engine, output):
    engine.load_track(1)
    output.ready()
    engine.load_track(99)
    snap = engine.snapshot
    assert snap.error == "Track 99 not found"
    assert snap.state == PlayerState.PAUSED
    assert snap.current_track_id == 1


def test_play_resumes_output_before_starting(engine, output):
    start_playing(engine, output)
    assert output.resume_calls == 1
    assert output.play_calls == 1
    assert engine.time_tracker.active


def test_play_without_track_is_noop(engine, output):
    engine.play()
    assert output.resume_calls == 0
    assert engine.snapshot.state == PlayerState.STOPPED


def test_rejected_play_reverts_to_paused_with_error(engine, output):
    errors = []
    engine.errorOccurred.connect(errors.append)
    engine.load_track(1)
    output.ready()
    output.reject_resume = True
    engine.play()
    assert engine.snapshot.state == PlayerState.PAUSED
    assert engine.snapshot.error == PLAY_FAILED_MESSAGE
    assert errors == [PLAY_FAILED_MESSAGE]
    assert not engine.time_tracker.active

    output.reject_resume = False
    engine.play()
    assert engine.snapshot.state == PlayerState.PLAYING
    assert engine.snapshot.error is None


def test_load_then_play_never_stays_loading(engine, output):
    for track_id in engine.catalog.track_ids():
        engine.load_track(track_id)
        engine.play()
        assert engine.snapshot.state in (PlayerState.PLAYING, PlayerState.PAUSED)


def test_play_during_loading_survives_metadata(engine, output):
    engine.load_track(1)
    engine.play()
    output.ready()
    assert engine.snapshot.state == PlayerState.PLAYING


def test_pause_and_toggle(engine, output):
    start_playing(engine, output)
    engine.toggle_play_pause()
    assert engine.snapshot.state == PlayerState.PAUSED
    assert output.paused
    assert not engine.time_tracker.active
    engine.toggle_play_pause()
    assert engine.snapshot.state == PlayerState.PLAYING


def test_stop_rewinds(engine, output):
    start_playing(engine, output)
    output.position = 50.0
    engine.stop()
    assert engine.snapshot.state == PlayerState.STOPPED
    assert engine.snapshot.current_time == 0.0
    assert output.position == 0.0


def test_seek_clamps_and_ignores_non_finite(engine, output):
    engine.load_track(1)
    output.ready(120.0)
    engine.seek(500.0)
    assert output.position == 120.0
    engine.seek(-3.0)
    assert output.position == 0.0
    engine.seek(42.0)
    engine.seek(math.nan)
    engine.seek(math.inf)
    assert output.position == 42.0
    assert engine.snapshot.current_time == 42.0


def test_seek_relative(engine, output):
    engine.load_track(1)
    output.ready(120.0)
    output.position = 30.0
    engine.seek_relative(-10.0)
    assert output.position == 20.0


def test_next_wraps_and_resumes_only_if_playing(engine, output):
    engine.load_track(5)
    output.ready()
    engine.next()
    assert engine.snapshot.current_track_id == 1
    assert engine.snapshot.state == PlayerState.LOADING
    assert output.play_calls == 0

    output.ready()
    engine.play()
    engine.next()
    assert engine.snapshot.current_track_id == 2
    assert engine.snapshot.state == PlayerState.PLAYING
    assert output.play_calls == 2


def test_prev_restarts_after_threshold(engine, output):
    start_playing(engine, output, track_id=3)
    output.position = 3.5
    loads = output.load_calls
    engine.prev()
    assert engine.snapshot.current_track_id == 3
    assert output.position == 0.0
    assert output.load_calls == loads


def test_prev_moves_back_within_threshold(engine, output):
    start_playing(engine, output, track_id=1)
    output.position = 2.0
    engine.prev()
    assert engine.snapshot.current_track_id == 5
    assert engine.snapshot.state == PlayerState.PLAYING


def test_delayed_resume_is_cancelled_by_later_track_change(make_engine, catalog, output):
    engine = make_engine(catalog, auto_play_delay_ms=100)
    start_playing(engine, output)
    engine.next()
    assert engine.resume_pending
    assert output.play_calls == 1
    engine.load_track(4)
    assert not engine.resume_pending


def test_repeat_one_restarts_same_track(engine, output):
    start_playing(engine, output, track_id=2)
    engine.toggle_repeat()
    engine.toggle_repeat()
    assert engine.snapshot.repeat_mode == RepeatMode.ONE
    output.finish()
    snap = engine.snapshot
    assert snap.current_track_id == 2
    assert snap.current_time == 0.0
    assert output.position == 0.0
    assert snap.state == PlayerState.PLAYING
    assert output.play_calls == 2


def test_repeat_off_stops_after_last_track(engine, output):
    start_playing(engine, output, track_id=5)
    loads = output.load_calls
    output.finish()
    assert engine.snapshot.state == PlayerState.STOPPED
    assert engine.snapshot.current_track_id == 5
    assert engine.snapshot.current_time == 0.0
    assert output.load_calls == loads


def test_repeat_off_advances_mid_album(engine, output):
    start_playing(engine, output, track_id=2)
    output.finish()
    assert engine.snapshot.current_track_id == 3
    assert engine.snapshot.state == PlayerState.PLAYING


def test_repeat_all_wraps_at_album_end(engine, output):
    engine.toggle_repeat()
    start_playing(engine, output, track_id=5)
    output.finish()
    assert engine.snapshot.current_track_id == 1
    assert engine.snapshot.state == PlayerState.PLAYING


def test_repeat_all_single_track_reloads_itself(make_engine, output):
    engine = make_engine(AlbumCatalog.from_tracks([make_track(1)]))
    engine.toggle_repeat()
    start_playing(engine, output, track_id=1, duration=200.0)
    loads = output.load_calls
    output.finish()
    assert engine.snapshot.current_track_id == 1
    assert output.load_calls == loads + 1
    assert engine.snapshot.state == PlayerState.PLAYING


def test_shuffle_visits_every_track_once(engine, output):
    start_playing(engine, output, track_id=3)
    engine.toggle_shuffle()
    seen = [engine.snapshot.current_track_id]
    for _ in range(len(engine.catalog) - 1):
        engine.next()
        seen.append(engine.snapshot.current_track_id)
    assert sorted(seen) == engine.catalog.track_ids()
    assert seen[0] == 3


def test_shuffle_prev_retreats_and_stays_at_start(engine, output):
    start_playing(engine, output, track_id=1)
    engine.toggle_shuffle()
    engine.next()
    second = engine.snapshot.current_track_id
    engine.prev()
    assert engine.snapshot.current_track_id == 1
    engine.prev()
    assert engine.snapshot.current_track_id == 1
    assert second != 1


def test_shuffle_repeat_off_stops_at_end_of_pass(engine, output):
    start_playing(engine, output, track_id=1)
    engine.toggle_shuffle()
    for _ in range(len(engine.catalog) - 1):
        engine.next()
    last = engine.snapshot.current_track_id
    output.ready()
    engine.play()
    output.finish()
    assert engine.snapshot.state == PlayerState.STOPPED
    assert engine.snapshot.current_track_id == last


def test_disabling_shuffle_discards_queue(engine, output):
    engine.load_track(1)
    engine.toggle_shuffle()
    assert engine.shuffle_queue is not None
    engine.toggle_shuffle()
    assert engine.shuffle_queue is None
    engine.next()
    assert engine.snapshot.current_track_id == 2


def test_output_error_stops_with_message(engine, output):
    start_playing(engine, output)
    output.errorOccurred.emit("Failed to decode audio")
    snap = engine.snapshot
    assert snap.state == PlayerState.STOPPED
    assert snap.error == "Failed to decode audio"
    assert not engine.time_tracker.active

    engine.select_track(1)
    assert engine.snapshot.error is None
    assert engine.snapshot.state == PlayerState.PLAYING


def test_select_track_toggles_current_and_plays_other(engine, output):
    start_playing(engine, output, track_id=1)
    engine.select_track(1)
    assert engine.snapshot.state == PlayerState.PAUSED
    engine.select_track(4)
    assert engine.snapshot.current_track_id == 4
    assert engine.snapshot.state == PlayerState.PLAYING


def test_volume_zero_then_unmute_restores_last_nonzero(engine, output):
    engine.set_volume(0.6)
    engine.set_volume(0.0)
    assert engine.snapshot.muted
    assert output.volume == 0.0
    engine.toggle_mute()
    assert not engine.snapshot.muted
    assert engine.snapshot.volume == 0.6
    assert output.volume == 0.6


def test_mute_keeps_volume_level(engine, output):
    engine.set_volume(0.4)
    engine.toggle_mute()
    assert output.volume == 0.0
    assert engine.snapshot.volume == 0.4
    engine.toggle_mute()
    assert output.volume == 0.4


def test_volume_is_clamped_and_nudged(engine, output):
    engine.set_volume(3.0)
    assert engine.snapshot.volume == 1.0
    engine.nudge_volume(-0.05)
    assert abs(engine.snapshot.volume - 0.95) < 1e-9
    engine.set_volume(float("nan"))
    assert abs(engine.snapshot.volume - 0.95) < 1e-9


def test_preferences_are_persisted(engine, settings):
    engine.toggle_shuffle()
    engine.toggle_repeat()
    engine.set_volume(0.3)
    engine.toggle_mute()
    prefs = PreferenceStore(settings).load()
    assert prefs.shuffle is True
    assert prefs.repeat == RepeatMode.ALL
    assert prefs.volume == 0.3
    assert prefs.muted is True


def test_engine_starts_from_saved_preferences(make_engine, catalog, store, output):
    store.save("audio/volume", 0.25)
    store.save("playback/repeat", RepeatMode.ONE)
    engine = make_engine(catalog)
    assert engine.snapshot.volume == 0.25
    assert engine.snapshot.repeat_mode == RepeatMode.ONE
    assert output.volume == 0.25


def test_time_tracker_ticks_update_current_time(engine, output):
    start_playing(engine, output)
    positions = []
    engine.positionChanged.connect(positions.append)
    output.position = 12.5
    engine.time_tracker.poll_once()
    assert engine.snapshot.current_time == 12.5
    assert positions == [12.5]


def test_rendition_starts_instrumental(engine):
    assert engine.snapshot.rendition == Rendition.INSTRUMENTAL


def test_close_tears_down(engine, output):
    start_playing(engine, output)
    engine.close()
    assert output.closed
    assert not engine.time_tracker.active
