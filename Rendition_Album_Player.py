"""
PySide6 album player with switchable vocal/instrumental renditions.

Backend pipeline:
- Decode: ffmpeg -> float32 PCM (stereo) at a fixed sample rate
- Output: sounddevice (PortAudio) callback pulling from a thread-safe ring buffer
- Visuals: numpy FFT of the played blocks, waveform profiles decoded once per rendition

Requirements:
  pip install PySide6 numpy sounddevice
  ffmpeg + ffprobe installed and on PATH

Usage:
  python Rendition_Album_Player.py <album.json | album folder>

Env vars:
- RENDITION_ALBUM = album manifest or folder used when no argument is given
- RENDITION_DEBUG = 1 for debug logging
"""

from __future__ import annotations

import logging
import os
import sys

from PySide6 import QtWidgets

from config import ALBUM_ENV, DEBUG_ENABLED
from errors import CatalogError
from library import AlbumCatalog
from ui.main_window import MainWindow

logger = logging.getLogger(__name__)


def main():
    logging.basicConfig(
        level=logging.DEBUG if DEBUG_ENABLED else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app = QtWidgets.QApplication(sys.argv)

    location = sys.argv[1] if len(sys.argv) > 1 else os.environ.get(ALBUM_ENV, "")
    if not location:
        location, _ = QtWidgets.QFileDialog.getOpenFileName(
            None, "Open Album Manifest", "", "Album manifest (*.json)"
        )
        if not location:
            sys.exit(1)
    try:
        catalog = AlbumCatalog.load(location)
    except CatalogError as e:
        logger.error("Cannot open album %s: %s", location, e)
        QtWidgets.QMessageBox.critical(None, "Cannot open album", str(e))
        sys.exit(1)

    w = MainWindow(catalog)
    w.show()
    sys.exit(app.exec())


if __name__ == "__main__":
    main()
