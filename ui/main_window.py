from __future__ import annotations

import logging
from typing import Callable, Optional

from PySide6 import QtCore, QtGui, QtWidgets

from analyzer import FrequencyAnalyzer
from audio.engine import AudioOutput, OutputBase, sd, _sounddevice_import_error
from audio.player import PlaybackEngine
from config import SEEK_STEP_SEC, VOLUME_STEP
from library import AlbumCatalog
from lyrics.loader import LyricsLoader
from lyrics.sync import LyricSyncEngine
from models import LyricDocument, LyricsDisplayMode, PlayerState, Rendition, Track, TransportSnapshot, WaveformProfile
from preferences import KEY_LYRICS_DISPLAY, KEY_SHOW_EQUALIZER, PreferenceStore
from utils import have_exe
from ui.widgets import EqualizerWidget, LyricsView, TracklistWidget, TransportWidget, WaveformBar
from waveform import WaveformLoader

logger = logging.getLogger(__name__)

_TEXT_INPUTS = (
    QtWidgets.QLineEdit,
    QtWidgets.QTextEdit,
    QtWidgets.QPlainTextEdit,
    QtWidgets.QAbstractSpinBox,
)

_STATE_TEXT = {
    PlayerState.STOPPED: "Stopped",
    PlayerState.LOADING: "Loading…",
    PlayerState.PAUSED: "Paused",
    PlayerState.PLAYING: "Playing",
}


# -----------------------------
# Main Window
# -----------------------------

class MainWindow(QtWidgets.QMainWindow):
    def __init__(
        self,
        catalog: AlbumCatalog,
        output: Optional[OutputBase] = None,
        preferences: Optional[PreferenceStore] = None,
    ):
        super().__init__()
        album = catalog.album
        self.setWindowTitle(album.title or "Album Player")
        self.resize(1180, 720)

        self.catalog = catalog
        self.preferences = preferences or PreferenceStore()
        prefs = self.preferences.load()
        self._lyrics_mode = prefs.lyrics_display
        self._show_equalizer = prefs.show_equalizer

        self.output = output or AudioOutput(parent=self)
        self.analyzer = FrequencyAnalyzer(parent=self)
        self.output.attach_analyzer(self.analyzer)
        self.engine = PlaybackEngine(catalog, self.output, self.preferences, parent=self)
        self.waveform_loader = WaveformLoader(parent=self)
        self.lyrics_loader = LyricsLoader(parent=self)
        self.lyric_sync = LyricSyncEngine(parent=self)

        self.album_title = QtWidgets.QLabel(album.title or "Untitled Album")
        self.album_title.setObjectName("album_title")
        title_font = self.album_title.font()
        title_font.setPointSize(title_font.pointSize() + 4)
        title_font.setBold(True)
        self.album_title.setFont(title_font)
        artist = album.artist or "Unknown Artist"
        if album.release_year:
            artist = f"{artist} • {album.release_year}"
        self.album_artist = QtWidgets.QLabel(artist)
        self.album_artist.setObjectName("album_artist")

        self.track_title = QtWidgets.QLabel("No track loaded")
        self.track_title.setObjectName("track_title")
        self.track_title.setWordWrap(True)
        track_font = self.track_title.font()
        track_font.setPointSize(track_font.pointSize() + 2)
        self.track_title.setFont(track_font)

        self.equalizer = EqualizerWidget()
        self.equalizer.set_artwork(album.artwork_path)
        self.equalizer.set_bars_visible(self._show_equalizer)
        self.waveform = WaveformBar()
        self.transport = TransportWidget()
        self.tracklist = TracklistWidget()
        self.tracklist.set_tracks(list(catalog.tracks))
        self.lyrics_view = LyricsView()

        player_col = QtWidgets.QWidget()
        player_layout = QtWidgets.QVBoxLayout(player_col)
        player_layout.addWidget(self.album_title)
        player_layout.addWidget(self.album_artist)
        player_layout.addWidget(self.equalizer, 3)
        player_layout.addWidget(self.track_title)
        self.integrated_slot = QtWidgets.QVBoxLayout()
        player_layout.addLayout(self.integrated_slot, 2)
        player_layout.addWidget(self.waveform)
        player_layout.addWidget(self.transport)

        side_col = QtWidgets.QWidget()
        self.side_layout = QtWidgets.QVBoxLayout(side_col)
        self.side_layout.setContentsMargins(0, 0, 0, 0)
        self.side_layout.addWidget(self.tracklist, 1)

        splitter = QtWidgets.QSplitter(QtCore.Qt.Orientation.Horizontal)
        splitter.addWidget(player_col)
        splitter.addWidget(side_col)
        splitter.setStretchFactor(0, 3)
        splitter.setStretchFactor(1, 2)
        self.setCentralWidget(splitter)

        self.status = QtWidgets.QLabel("Ready.")
        self.status.setObjectName("status_label")
        self.mode_status = QtWidgets.QLabel("")
        status_bar = self.statusBar()
        status_bar.addWidget(self.status, 1)
        status_bar.addPermanentWidget(self.mode_status)

        self._build_menu()
        self._connect()
        self._install_shortcuts()
        self._apply_lyrics_mode()
        self._initial_warnings()

        self.engine.load_track(catalog.first_id())

    # -------------------------------------------------------------------------
    # Setup
    # -------------------------------------------------------------------------

    def _build_menu(self) -> None:
        quit_act = QtGui.QAction("Quit", self)
        quit_act.triggered.connect(self.close)
        file_menu = self.menuBar().addMenu("&File")
        file_menu.addAction(quit_act)

        self.equalizer_act = QtGui.QAction("Show Equalizer", self, checkable=True)
        self.equalizer_act.setChecked(self._show_equalizer)
        self.equalizer_act.triggered.connect(lambda _checked: self._toggle_equalizer())
        lyrics_act = QtGui.QAction("Cycle Lyrics Display", self)
        lyrics_act.triggered.connect(self._cycle_lyrics_mode)
        view_menu = self.menuBar().addMenu("&View")
        view_menu.addAction(self.equalizer_act)
        view_menu.addAction(lyrics_act)

        shortcuts_act = QtGui.QAction("Keyboard Shortcuts", self)
        shortcuts_act.triggered.connect(self._show_shortcuts)
        help_menu = self.menuBar().addMenu("&Help")
        help_menu.addAction(shortcuts_act)

    def _connect(self) -> None:
        engine = self.engine
        engine.snapshotChanged.connect(self._on_snapshot)
        engine.positionChanged.connect(self._on_position)
        engine.trackChanged.connect(self._on_track_changed)
        engine.renditionChanged.connect(self._on_rendition_changed)
        engine.errorOccurred.connect(self._on_error)
        engine.snapshotChanged.connect(self.analyzer.on_snapshot)

        self.analyzer.snapshotReady.connect(self.equalizer.set_snapshot)
        self.waveform_loader.profileReady.connect(self._on_waveform_ready)
        self.waveform.seekRequested.connect(engine.seek)

        self.lyrics_loader.documentReady.connect(self._on_lyrics_ready)
        self.lyrics_loader.loadFailed.connect(self._on_lyrics_failed)
        self.lyrics_loader.cleared.connect(self._on_lyrics_cleared)
        self.lyric_sync.lineChanged.connect(self._on_line_changed)
        self.lyric_sync.scrollRequested.connect(self.lyrics_view.scroll_to_line)
        self.lyrics_view.userScrolled.connect(self.lyric_sync.user_scrolled)
        self.lyrics_view.lineActivated.connect(engine.seek)

        self.transport.playPauseClicked.connect(engine.toggle_play_pause)
        self.transport.prevClicked.connect(engine.prev)
        self.transport.nextClicked.connect(engine.next)
        self.transport.shuffleClicked.connect(engine.toggle_shuffle)
        self.transport.repeatClicked.connect(engine.toggle_repeat)
        self.transport.versionClicked.connect(engine.toggle_version)
        self.transport.volumeChanged.connect(engine.set_volume)
        self.transport.muteClicked.connect(engine.toggle_mute)
        self.tracklist.trackActivated.connect(engine.select_track)

    def _install_shortcuts(self) -> None:
        engine = self.engine
        bindings: list[tuple[str, Callable[[], None]]] = [
            ("Space", engine.toggle_play_pause),
            ("Left", lambda: engine.seek_relative(-SEEK_STEP_SEC)),
            ("Right", lambda: engine.seek_relative(SEEK_STEP_SEC)),
            ("Up", lambda: engine.nudge_volume(VOLUME_STEP)),
            ("Down", lambda: engine.nudge_volume(-VOLUME_STEP)),
            ("N", engine.next),
            ("P", engine.prev),
            ("M", engine.toggle_mute),
            ("S", engine.toggle_shuffle),
            ("R", engine.toggle_repeat),
            ("V", engine.toggle_version),
            ("L", self._cycle_lyrics_mode),
            ("E", self._toggle_equalizer),
        ]
        for key, handler in bindings:
            shortcut = QtGui.QShortcut(QtGui.QKeySequence(key), self)
            shortcut.setContext(QtCore.Qt.ShortcutContext.ApplicationShortcut)
            shortcut.activated.connect(self._guarded(handler))

    def _guarded(self, handler: Callable[[], None]) -> Callable[[], None]:
        def run() -> None:
            if isinstance(QtWidgets.QApplication.focusWidget(), _TEXT_INPUTS):
                return
            handler()
        return run

    def _initial_warnings(self) -> None:
        warnings = []
        if sd is None:
            warnings.append(f"sounddevice missing ({_sounddevice_import_error})")
        if not have_exe("ffmpeg"):
            warnings.append("ffmpeg not found in PATH")
        if not have_exe("ffprobe"):
            warnings.append("ffprobe not found in PATH (duration may be unknown)")
        for w in warnings:
            logger.warning(w)
        self.status.setText(("⚠ " + " | ".join(warnings)) if warnings else "Ready.")

    def _show_shortcuts(self) -> None:
        QtWidgets.QMessageBox.information(
            self,
            "Keyboard Shortcuts",
            "Space  Play/Pause\n"
            "← / →  Seek 10 s\n"
            "↑ / ↓  Volume ±5%\n"
            "N / P  Next / Previous\n"
            "M  Mute\n"
            "S  Shuffle\n"
            "R  Repeat mode\n"
            "V  Vocal / Instrumental\n"
            "L  Lyrics display\n"
            "E  Equalizer",
        )

    # -------------------------------------------------------------------------
    # View toggles
    # -------------------------------------------------------------------------

    def _toggle_equalizer(self) -> None:
        self._show_equalizer = not self._show_equalizer
        self.equalizer.set_bars_visible(self._show_equalizer)
        self.equalizer_act.setChecked(self._show_equalizer)
        self.preferences.save(KEY_SHOW_EQUALIZER, self._show_equalizer)

    def _cycle_lyrics_mode(self) -> None:
        self._lyrics_mode = self._lyrics_mode.next()
        self.preferences.save(KEY_LYRICS_DISPLAY, self._lyrics_mode)
        self._apply_lyrics_mode()

    def _apply_lyrics_mode(self) -> None:
        mode = self._lyrics_mode
        if mode == LyricsDisplayMode.HIDDEN:
            self.lyrics_view.setVisible(False)
        else:
            target = self.side_layout if mode == LyricsDisplayMode.PANEL else self.integrated_slot
            target.addWidget(self.lyrics_view, 1)
            self.lyrics_view.setVisible(True)
            current = self.lyric_sync.current_index
            if current >= 0:
                QtCore.QTimer.singleShot(0, lambda: self.lyrics_view.scroll_to_line(current))
        self.mode_status.setText(f"Lyrics: {mode.value}")

    # -------------------------------------------------------------------------
    # Engine signals
    # -------------------------------------------------------------------------

    def _on_snapshot(self, snap: TransportSnapshot) -> None:
        track = self.engine.current_track
        self.transport.apply_snapshot(snap, track)
        self.transport.set_time(snap.current_time, snap.duration)
        self.waveform.set_position(snap.current_time, snap.duration)
        self.tracklist.set_current(snap.current_track_id, snap.is_playing)
        self.equalizer.set_playing(snap.is_playing)
        if snap.error:
            self.status.setText(f"❌ {snap.error}")
        elif track is not None:
            text = f"{_STATE_TEXT[snap.state]} | {track.title}"
            if snap.rendition == Rendition.VOCAL and not track.has_vocals:
                text += " | instrumental only"
            self.status.setText(text)

    def _on_position(self, pos: float) -> None:
        dur = self.engine.snapshot.duration
        self.transport.set_time(pos, dur)
        self.waveform.set_position(pos, dur)
        self.lyric_sync.update(pos)

    def _on_track_changed(self, track: Track) -> None:
        idx = self.catalog.index_of(track.id)
        self.track_title.setText(f"{idx + 1:02d}. {track.title}" if idx >= 0 else track.title)
        self.lyric_sync.set_lines(())
        self.lyrics_view.show_message("Loading lyrics…" if track.lyrics_path else "No lyrics available")
        self.lyrics_loader.request(track.id, track.lyrics_path)
        self._request_waveform(track)

    def _on_rendition_changed(self, _rendition: Rendition) -> None:
        track = self.engine.current_track
        if track is not None:
            self._request_waveform(track)

    def _request_waveform(self, track: Track) -> None:
        rendition = self.engine.snapshot.rendition
        self.waveform.set_loading(True)
        self.waveform_loader.request(track.id, rendition, track.source_for(rendition))

    def _on_waveform_ready(self, profile: WaveformProfile) -> None:
        snap = self.engine.snapshot
        if profile.track_id != snap.current_track_id or profile.rendition != snap.rendition:
            return
        self.waveform.set_profile(profile.amplitudes)

    def _on_lyrics_ready(self, track_id: int, document: LyricDocument) -> None:
        if track_id != self.engine.snapshot.current_track_id:
            return
        self.lyrics_view.set_document(document)
        self.lyric_sync.set_lines(document.lines)
        self.lyric_sync.update(self.engine.snapshot.current_time)

    def _on_lyrics_failed(self, track_id: int, message: str) -> None:
        if track_id != self.engine.snapshot.current_track_id:
            return
        self.lyric_sync.set_lines(())
        self.lyrics_view.show_message(message)

    def _on_lyrics_cleared(self) -> None:
        self.lyric_sync.set_lines(())
        self.lyrics_view.show_message("No lyrics available")

    def _on_line_changed(self, current: int, upcoming: int) -> None:
        self.lyrics_view.set_active_lines(current, upcoming)
        if self.lyric_sync.auto_scroll_enabled and self.lyrics_view.isVisible():
            self.lyrics_view.scroll_to_line(current)

    def _on_error(self, msg: str) -> None:
        self.status.setText(f"❌ {msg}")

    def closeEvent(self, e: QtGui.QCloseEvent) -> None:
        self.lyric_sync.close()
        self.analyzer.close()
        self.waveform_loader.close()
        self.lyrics_loader.close()
        self.engine.close()
        super().closeEvent(e)
