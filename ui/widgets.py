from __future__ import annotations

import math
from typing import List, Optional

import numpy as np
from PySide6 import QtCore, QtGui, QtWidgets

from config import EQUALIZER_BAR_COUNT, WAVEFORM_SAMPLES
from lyrics.lrc import format_lyric_timestamp
from lyrics.sync import center_scroll_offset
from models import (
    LyricDocument,
    Rendition,
    RepeatMode,
    Track,
    TransportSnapshot,
    format_track_title,
)
from utils import format_time
from visuals import equalizer_levels, played_mask, position_to_time, progress_fraction
from waveform import flat_profile

# -----------------------------
# UI Widgets
# -----------------------------


class WaveformBar(QtWidgets.QWidget):
    """Amplitude profile used as the seek bar; bars left of the playhead are drawn as played."""

    seekRequested = QtCore.Signal(float)

    def __init__(self, parent=None):
        super().__init__(parent)
        self._amplitudes = flat_profile(WAVEFORM_SAMPLES)
        self._time = 0.0
        self._duration = 0.0
        self._hover: Optional[float] = None
        self._drag_fraction: Optional[float] = None
        self._loading = False
        self.setMouseTracking(True)
        self.setMinimumHeight(56)
        self.setSizePolicy(QtWidgets.QSizePolicy.Policy.Expanding, QtWidgets.QSizePolicy.Policy.Fixed)
        self.setCursor(QtCore.Qt.CursorShape.PointingHandCursor)
        self.setToolTip("Seek position.")
        self.setAccessibleName("Seek slider")

    @property
    def dragging(self) -> bool:
        return self._drag_fraction is not None

    def set_profile(self, amplitudes: np.ndarray) -> None:
        self._amplitudes = np.asarray(amplitudes, dtype=np.float32)
        self._loading = False
        self.update()

    def set_loading(self, loading: bool) -> None:
        self._loading = loading
        self.update()

    def set_position(self, time_sec: float, duration: float) -> None:
        self._time = time_sec
        self._duration = duration
        if not self.dragging:
            self.update()

    def _fraction_at(self, x: float) -> float:
        return position_to_time(x, self.width(), 1.0)

    def mousePressEvent(self, e: QtGui.QMouseEvent) -> None:
        if e.button() != QtCore.Qt.MouseButton.LeftButton or self._duration <= 0:
            super().mousePressEvent(e)
            return
        x = e.position().x()
        self._drag_fraction = self._fraction_at(x)
        self.seekRequested.emit(position_to_time(x, self.width(), self._duration))
        self.update()

    def mouseMoveEvent(self, e: QtGui.QMouseEvent) -> None:
        frac = self._fraction_at(e.position().x())
        if self.dragging:
            self._drag_fraction = frac
        else:
            self._hover = frac
        self.update()

    def mouseReleaseEvent(self, e: QtGui.QMouseEvent) -> None:
        if not self.dragging:
            super().mouseReleaseEvent(e)
            return
        x = e.position().x()
        self._drag_fraction = None
        self.seekRequested.emit(position_to_time(x, self.width(), self._duration))
        self.update()

    def leaveEvent(self, e: QtCore.QEvent) -> None:
        self._hover = None
        self.update()
        super().leaveEvent(e)

    def paintEvent(self, event: QtGui.QPaintEvent) -> None:
        painter = QtGui.QPainter(self)
        palette = self.palette()
        painter.fillRect(self.rect(), palette.color(QtGui.QPalette.ColorRole.Base))
        played_color = palette.color(QtGui.QPalette.ColorRole.Highlight)
        unplayed_color = palette.color(QtGui.QPalette.ColorRole.Mid)
        if self._loading:
            unplayed_color = unplayed_color.lighter(120)

        amps = self._amplitudes
        count = int(amps.shape[0])
        w = float(self.width())
        h = float(self.height())
        if count == 0 or w <= 0:
            return

        if self._drag_fraction is not None:
            progress = self._drag_fraction
        else:
            progress = progress_fraction(self._time, self._duration)
        mask = played_mask(count, progress)

        bar_width = w / count
        inner = bar_width * 0.8
        center_y = h / 2.0
        max_height = h * 0.8
        painter.setPen(QtCore.Qt.PenStyle.NoPen)
        for i in range(count):
            bar_height = float(amps[i]) * max_height
            painter.setBrush(played_color if mask[i] else unplayed_color)
            painter.drawRect(QtCore.QRectF(i * bar_width, center_y - bar_height / 2.0, inner, bar_height))

        if self._hover is not None and not self.dragging:
            painter.setPen(QtGui.QPen(played_color, 2))
            hx = self._hover * w
            painter.drawLine(QtCore.QPointF(hx, 0.0), QtCore.QPointF(hx, h))


class EqualizerWidget(QtWidgets.QWidget):
    """
    Radial spectrum drawn around the album artwork.

    Bars start at an outer ring and extend inward; bass sits at the top and
    the spectrum runs clockwise.
    """

    def __init__(self, bar_count: int = EQUALIZER_BAR_COUNT, parent=None):
        super().__init__(parent)
        self.bar_count = bar_count
        self._levels = np.zeros(0, dtype=np.float32)
        self._playing = False
        self._show_bars = True
        self._artwork = QtGui.QPixmap()
        self.setMinimumSize(220, 220)
        self.setSizePolicy(QtWidgets.QSizePolicy.Policy.Expanding, QtWidgets.QSizePolicy.Policy.Expanding)

    def set_artwork(self, path: Optional[str]) -> None:
        self._artwork = QtGui.QPixmap(path) if path else QtGui.QPixmap()
        self.update()

    def set_bars_visible(self, visible: bool) -> None:
        self._show_bars = visible
        if not visible:
            self._levels = np.zeros(0, dtype=np.float32)
        self.update()

    def set_playing(self, playing: bool) -> None:
        self._playing = playing
        if not playing:
            self._levels = np.zeros(0, dtype=np.float32)
            self.update()

    def set_snapshot(self, snapshot: np.ndarray) -> None:
        if not (self._playing and self._show_bars):
            return
        self._levels = equalizer_levels(snapshot, self.bar_count)
        self.update()

    def paintEvent(self, event: QtGui.QPaintEvent) -> None:
        painter = QtGui.QPainter(self)
        painter.setRenderHint(QtGui.QPainter.RenderHint.Antialiasing, True)
        palette = self.palette()
        painter.fillRect(self.rect(), palette.color(QtGui.QPalette.ColorRole.Window))

        w = float(self.width())
        h = float(self.height())
        cx, cy = w / 2.0, h / 2.0
        side = min(w, h)

        art_side = side * 0.5
        art_rect = QtCore.QRectF(cx - art_side / 2.0, cy - art_side / 2.0, art_side, art_side)
        if not self._artwork.isNull():
            painter.drawPixmap(art_rect.toRect(), self._artwork)
        else:
            painter.setPen(palette.color(QtGui.QPalette.ColorRole.Mid))
            painter.drawRect(art_rect)
            painter.drawText(art_rect, QtCore.Qt.AlignmentFlag.AlignCenter, "No Artwork")

        levels = self._levels
        if not (self._playing and self._show_bars) or levels.size == 0:
            return

        outer = side * 0.48
        max_len = side * 0.22
        color = QtGui.QColor(palette.color(QtGui.QPalette.ColorRole.Highlight))
        faded = QtGui.QColor(color)
        faded.setAlpha(128)
        pen_width = max(2.5, (2.0 * math.pi * outer) / levels.size * 0.65)
        count = levels.size
        for i in range(count):
            angle = -math.pi / 2.0 + (i / count) * 2.0 * math.pi
            length = float(levels[i]) * max_len
            cos_a, sin_a = math.cos(angle), math.sin(angle)
            start = QtCore.QPointF(cx + cos_a * outer, cy + sin_a * outer)
            end = QtCore.QPointF(cx + cos_a * (outer - length), cy + sin_a * (outer - length))
            gradient = QtGui.QLinearGradient(start, end)
            gradient.setColorAt(0.0, faded)
            gradient.setColorAt(1.0, color)
            pen = QtGui.QPen(QtGui.QBrush(gradient), pen_width)
            pen.setCapStyle(QtCore.Qt.PenCapStyle.RoundCap)
            painter.setPen(pen)
            painter.drawLine(start, end)


class LyricsView(QtWidgets.QWidget):
    """Scrollable lyric list. Only its own scroll bar is ever moved."""

    userScrolled = QtCore.Signal()
    lineActivated = QtCore.Signal(float)

    def __init__(self, parent=None):
        super().__init__(parent)
        self.header = QtWidgets.QLabel("Lyrics")
        self.header.setObjectName("lyrics_header")

        self.list = QtWidgets.QListWidget()
        self.list.setSelectionMode(QtWidgets.QAbstractItemView.SelectionMode.NoSelection)
        self.list.setVerticalScrollMode(QtWidgets.QAbstractItemView.ScrollMode.ScrollPerPixel)
        self.list.setWordWrap(True)
        self.list.setFocusPolicy(QtCore.Qt.FocusPolicy.NoFocus)

        self.placeholder = QtWidgets.QLabel("No lyrics available")
        self.placeholder.setAlignment(QtCore.Qt.AlignmentFlag.AlignCenter)
        self.placeholder.setWordWrap(True)

        self.stack = QtWidgets.QStackedWidget()
        self.stack.addWidget(self.placeholder)
        self.stack.addWidget(self.list)

        layout = QtWidgets.QVBoxLayout(self)
        layout.setContentsMargins(8, 8, 8, 8)
        layout.setSpacing(6)
        layout.addWidget(self.header)
        layout.addWidget(self.stack, 1)

        self._document: Optional[LyricDocument] = None
        self._current = -1
        self._upcoming = -1

        self.list.verticalScrollBar().actionTriggered.connect(self._on_scroll_action)
        self.list.itemClicked.connect(self._on_item_clicked)

    @property
    def document(self) -> Optional[LyricDocument]:
        return self._document

    def show_message(self, text: str) -> None:
        self._document = None
        self.list.clear()
        self.placeholder.setText(text)
        self.stack.setCurrentWidget(self.placeholder)

    def set_document(self, document: Optional[LyricDocument]) -> None:
        self._current = -1
        self._upcoming = -1
        if document is None or document.is_empty:
            self.show_message("No lyrics available")
            return
        self._document = document
        self.list.clear()
        timed = document.has_timestamps()
        for line in document.lines:
            item = QtWidgets.QListWidgetItem(line.text or "♪")
            item.setData(QtCore.Qt.ItemDataRole.UserRole, line.time_sec)
            if timed:
                item.setToolTip(format_lyric_timestamp(line.time_sec))
            item.setTextAlignment(QtCore.Qt.AlignmentFlag.AlignCenter)
            self.list.addItem(item)
        self.list.verticalScrollBar().setValue(0)
        self.stack.setCurrentWidget(self.list)

    def set_active_lines(self, current: int, upcoming: int) -> None:
        for idx in (self._current, self._upcoming):
            self._style_item(idx, emphasis=0)
        self._current = current
        self._upcoming = upcoming
        self._style_item(upcoming, emphasis=1)
        self._style_item(current, emphasis=2)

    def _style_item(self, idx: int, emphasis: int) -> None:
        item = self.list.item(idx) if idx >= 0 else None
        if item is None:
            return
        font = self.list.font()
        palette = self.list.palette()
        if emphasis == 2:
            font.setBold(True)
            font.setPointSize(font.pointSize() + 2)
            item.setForeground(palette.color(QtGui.QPalette.ColorRole.Highlight))
        elif emphasis == 1:
            item.setForeground(palette.color(QtGui.QPalette.ColorRole.Text))
        else:
            item.setForeground(palette.color(QtGui.QPalette.ColorRole.PlaceholderText))
        item.setFont(font)

    def scroll_to_line(self, idx: int) -> None:
        item = self.list.item(idx) if idx >= 0 else None
        if item is None:
            return
        rect = self.list.visualItemRect(item)
        bar = self.list.verticalScrollBar()
        viewport_height = self.list.viewport().height()
        line_top = rect.top() + bar.value()
        content_height = bar.maximum() + viewport_height
        bar.setValue(center_scroll_offset(line_top, rect.height(), viewport_height, content_height))

    def _on_scroll_action(self, _action: int) -> None:
        self.userScrolled.emit()

    def _on_item_clicked(self, item: QtWidgets.QListWidgetItem) -> None:
        time_sec = item.data(QtCore.Qt.ItemDataRole.UserRole)
        if time_sec is not None:
            self.lineActivated.emit(float(time_sec))


class TransportWidget(QtWidgets.QWidget):
    playPauseClicked = QtCore.Signal()
    prevClicked = QtCore.Signal()
    nextClicked = QtCore.Signal()
    shuffleClicked = QtCore.Signal()
    repeatClicked = QtCore.Signal()
    versionClicked = QtCore.Signal()
    volumeChanged = QtCore.Signal(float)
    muteClicked = QtCore.Signal()

    _REPEAT_TEXT = {
        RepeatMode.OFF: "Repeat: Off",
        RepeatMode.ALL: "Repeat: All",
        RepeatMode.ONE: "Repeat: One",
    }

    def __init__(self, parent=None):
        super().__init__(parent)

        self.prev_btn = QtWidgets.QToolButton(text="⏮")
        self.play_pause_btn = QtWidgets.QToolButton(text="▶")
        self.next_btn = QtWidgets.QToolButton(text="⏭")
        for button in (self.prev_btn, self.play_pause_btn, self.next_btn):
            button.setMinimumSize(36, 36)
            button.setSizePolicy(QtWidgets.QSizePolicy.Policy.Fixed, QtWidgets.QSizePolicy.Policy.Fixed)
        self.prev_btn.setToolTip("Previous track (P).")
        self.prev_btn.setAccessibleName("Previous track")
        self.play_pause_btn.setToolTip("Play/Pause (Space).")
        self.play_pause_btn.setAccessibleName("Play/Pause")
        self.next_btn.setToolTip("Next track (N).")
        self.next_btn.setAccessibleName("Next track")

        self.shuffle_btn = QtWidgets.QToolButton(text="Shuffle")
        self.shuffle_btn.setCheckable(True)
        self.shuffle_btn.setToolTip("Shuffle (S).")
        self.repeat_btn = QtWidgets.QToolButton(text=self._REPEAT_TEXT[RepeatMode.OFF])
        self.repeat_btn.setToolTip("Cycle repeat mode (R).")
        self.version_btn = QtWidgets.QToolButton(text="Instrumental")
        self.version_btn.setToolTip("Switch between vocal and instrumental (V).")

        self.time_label = QtWidgets.QLabel("0:00 / 0:00")
        self.time_label.setAlignment(QtCore.Qt.AlignmentFlag.AlignRight | QtCore.Qt.AlignmentFlag.AlignVCenter)

        self.volume_slider = QtWidgets.QSlider(QtCore.Qt.Orientation.Horizontal)
        self.volume_slider.setRange(0, 100)
        self.volume_slider.setValue(80)
        self.volume_slider.setFixedWidth(120)
        self.volume_slider.setToolTip("Adjust volume (Up/Down).")
        self.volume_slider.setAccessibleName("Volume")

        self.mute_btn = QtWidgets.QToolButton(text="🔈")
        self.mute_btn.setToolTip("Mute audio (M).")
        self.mute_btn.setAccessibleName("Mute")

        row = QtWidgets.QHBoxLayout(self)
        for b in (self.prev_btn, self.play_pause_btn, self.next_btn):
            row.addWidget(b)
        row.addSpacing(8)
        row.addWidget(self.shuffle_btn)
        row.addWidget(self.repeat_btn)
        row.addWidget(self.version_btn)
        row.addStretch(1)
        row.addWidget(self.time_label)
        row.addSpacing(8)
        row.addWidget(self.mute_btn)
        row.addWidget(self.volume_slider)

        self.prev_btn.clicked.connect(self.prevClicked)
        self.play_pause_btn.clicked.connect(self.playPauseClicked)
        self.next_btn.clicked.connect(self.nextClicked)
        self.shuffle_btn.clicked.connect(self.shuffleClicked)
        self.repeat_btn.clicked.connect(self.repeatClicked)
        self.version_btn.clicked.connect(self.versionClicked)
        self.mute_btn.clicked.connect(self.muteClicked)
        self.volume_slider.valueChanged.connect(lambda v: self.volumeChanged.emit(v / 100.0))

    def apply_snapshot(self, snap: TransportSnapshot, track: Optional[Track]) -> None:
        has_track = track is not None
        for control in (self.prev_btn, self.play_pause_btn, self.next_btn, self.version_btn):
            control.setEnabled(has_track)

        self.play_pause_btn.setText("⏸" if snap.is_playing else "▶")

        self.shuffle_btn.setChecked(snap.shuffled)
        self.repeat_btn.setText(self._REPEAT_TEXT[snap.repeat_mode])

        vocal = snap.rendition == Rendition.VOCAL
        self.version_btn.setText("Vocal" if vocal else "Instrumental")
        if track is not None and vocal and not track.has_vocals:
            self.version_btn.setToolTip("No vocal version for this track; playing instrumental.")
        else:
            self.version_btn.setToolTip("Switch between vocal and instrumental (V).")

        shown = 0 if snap.muted else int(round(snap.volume * 100))
        if self.volume_slider.value() != shown:
            self.volume_slider.blockSignals(True)
            self.volume_slider.setValue(shown)
            self.volume_slider.blockSignals(False)
        self.mute_btn.setText("🔇" if snap.muted or snap.volume == 0 else "🔈")

    def set_time(self, pos_sec: float, dur_sec: float) -> None:
        self.time_label.setText(f"{format_time(pos_sec)} / {format_time(dur_sec)}")


class TracklistWidget(QtWidgets.QWidget):
    trackActivated = QtCore.Signal(int)

    def __init__(self, parent=None):
        super().__init__(parent)
        header = QtWidgets.QLabel("Tracklist")
        header.setObjectName("tracklist_header")

        self.list = QtWidgets.QListWidget()
        self.list.setSelectionMode(QtWidgets.QAbstractItemView.SelectionMode.SingleSelection)
        self.list.setUniformItemSizes(True)
        self.list.setSpacing(2)

        layout = QtWidgets.QVBoxLayout(self)
        layout.setContentsMargins(8, 8, 8, 8)
        layout.setSpacing(6)
        layout.addWidget(header)
        layout.addWidget(self.list, 1)

        self._rows: dict[int, int] = {}
        self._titles: dict[int, str] = {}
        self._playing_id: Optional[int] = None

        self.list.itemClicked.connect(self._on_activated)

    def set_tracks(self, tracks: List[Track]) -> None:
        self.list.clear()
        self._rows.clear()
        self._titles.clear()
        for row, t in enumerate(tracks):
            duration = format_time(t.duration_sec) if t.duration_sec > 0 else "--:--"
            label = f"{format_track_title(t, row)}    {duration}"
            if t.has_vocals:
                label += "    [vocal]"
            it = QtWidgets.QListWidgetItem(label)
            it.setData(QtCore.Qt.ItemDataRole.UserRole, t.id)
            self.list.addItem(it)
            self._rows[t.id] = row
            self._titles[t.id] = label

    def count(self) -> int:
        return self.list.count()

    def set_current(self, track_id: Optional[int], playing: bool) -> None:
        if self._playing_id is not None and self._playing_id in self._rows:
            item = self.list.item(self._rows[self._playing_id])
            item.setText(self._titles[self._playing_id])
            font = item.font()
            font.setBold(False)
            item.setFont(font)
        self._playing_id = track_id
        if track_id is None or track_id not in self._rows:
            return
        row = self._rows[track_id]
        item = self.list.item(row)
        marker = "▶ " if playing else "❚❚ "
        item.setText(marker + self._titles[track_id])
        font = item.font()
        font.setBold(True)
        item.setFont(font)
        self.list.setCurrentRow(row)

    def _on_activated(self, item: QtWidgets.QListWidgetItem) -> None:
        track_id = item.data(QtCore.Qt.ItemDataRole.UserRole)
        if track_id is not None:
            self.trackActivated.emit(int(track_id))
