"""
Album catalog: the static track list the player works through.

Albums come from a JSON manifest or from a folder laid out as
``instrumental/``, ``vocal/`` and ``lyrics/`` subfolders whose files are
matched by stem.
"""

from __future__ import annotations

import json
import logging
import os
import re
from typing import Iterable, List, Optional, Set

from errors import CatalogError
from models import Album, Track
from utils import is_url, safe_float

logger = logging.getLogger(__name__)

# Supported audio file extensions
MEDIA_EXTENSIONS: Set[str] = {
    ".mp3",
    ".wav",
    ".flac",
    ".ogg",
    ".m4a",
    ".aac",
    ".opus",
    ".aiff",
}

_INSTRUMENTAL_SUFFIX_RE = re.compile(r"[-_ ]instrumental$", re.IGNORECASE)


def _is_media_file(path: str) -> bool:
    """Check if a file path is a supported media file."""
    ext = os.path.splitext(path)[1].lower()
    return ext in MEDIA_EXTENSIONS


def _resolve(locator: Optional[str], base_dir: str) -> Optional[str]:
    if not locator:
        return None
    if is_url(locator) or os.path.isabs(locator):
        return locator
    return os.path.normpath(os.path.join(base_dir, locator.lstrip("/\\")))


def _track_key(filename: str) -> str:
    stem = os.path.splitext(os.path.basename(filename))[0]
    return _INSTRUMENTAL_SUFFIX_RE.sub("", stem).lower()


def _title_from_key(key: str) -> str:
    title = re.sub(r"^\d+[-_. ]*", "", key)
    return title.replace("-", " ").replace("_", " ").strip().upper() or key


class AlbumCatalog:
    """
    Read-only view over an album's tracks in album order.

    Navigation helpers wrap around at both ends; callers decide whether a
    wrap is allowed.
    """

    def __init__(self, album: Album):
        if not album.tracks:
            raise CatalogError("Album has no tracks")
        ids = [t.id for t in album.tracks]
        if len(set(ids)) != len(ids):
            raise CatalogError("Album track ids must be unique")
        self._album = album
        self._by_id = {t.id: t for t in album.tracks}
        self._order = ids

    @property
    def album(self) -> Album:
        return self._album

    @property
    def tracks(self) -> tuple[Track, ...]:
        return self._album.tracks

    def __len__(self) -> int:
        return len(self._order)

    def track_ids(self) -> List[int]:
        return list(self._order)

    def get_track(self, track_id: Optional[int]) -> Optional[Track]:
        if track_id is None:
            return None
        return self._by_id.get(track_id)

    def index_of(self, track_id: int) -> int:
        try:
            return self._order.index(track_id)
        except ValueError:
            return -1

    def first_id(self) -> int:
        return self._order[0]

    def last_id(self) -> int:
        return self._order[-1]

    def is_last(self, track_id: int) -> bool:
        return track_id == self.last_id()

    def next_id(self, track_id: int) -> int:
        idx = self.index_of(track_id)
        if idx < 0 or idx == len(self._order) - 1:
            return self._order[0]
        return self._order[idx + 1]

    def previous_id(self, track_id: int) -> int:
        idx = self.index_of(track_id)
        if idx <= 0:
            return self._order[-1]
        return self._order[idx - 1]

    # -------------------------------------------------------------------------
    # Construction
    # -------------------------------------------------------------------------

    @classmethod
    def from_tracks(cls, tracks: Iterable[Track], title: str = "", artist: str = "") -> "AlbumCatalog":
        return cls(Album(title=title, artist=artist, tracks=tuple(tracks)))

    @classmethod
    def from_manifest(cls, path: str) -> "AlbumCatalog":
        """
        Load an album from a JSON manifest.

        Relative locators resolve against the manifest's directory; URLs are
        kept as-is.
        """
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except OSError as e:
            raise CatalogError(f"Cannot read album manifest {path}: {e}") from e
        except json.JSONDecodeError as e:
            raise CatalogError(f"Invalid album manifest {path}: {e}") from e

        if not isinstance(data, dict):
            raise CatalogError("Album manifest must be a JSON object")
        raw_tracks = data.get("tracks")
        if not isinstance(raw_tracks, list) or not raw_tracks:
            raise CatalogError("Album manifest has no tracks")

        base_dir = os.path.dirname(os.path.abspath(path))
        tracks: List[Track] = []
        for position, raw in enumerate(raw_tracks, start=1):
            if not isinstance(raw, dict):
                raise CatalogError(f"Track entry {position} is not an object")
            instrumental = _resolve(raw.get("instrumental"), base_dir)
            if not instrumental:
                raise CatalogError(f"Track entry {position} has no instrumental file")
            vocal = _resolve(raw.get("vocal"), base_dir) or ""
            try:
                track_id = int(raw.get("id", position))
            except (TypeError, ValueError) as e:
                raise CatalogError(f"Track entry {position} has an invalid id") from e
            tracks.append(
                Track(
                    id=track_id,
                    title=str(raw.get("title") or f"Track {position}"),
                    duration_sec=max(0.0, safe_float(raw.get("duration", 0.0))),
                    vocal_path=vocal,
                    instrumental_path=instrumental,
                    lyrics_path=_resolve(raw.get("lyrics"), base_dir),
                    has_vocals=bool(raw.get("has_vocals", bool(vocal))) and bool(vocal),
                )
            )

        year = data.get("release_year")
        album = Album(
            title=str(data.get("title") or ""),
            artist=str(data.get("artist") or ""),
            tracks=tuple(tracks),
            release_year=int(year) if isinstance(year, int) else None,
            artwork_path=_resolve(data.get("artwork"), base_dir),
        )
        logger.debug("Loaded album %r with %d tracks", album.title, len(tracks))
        return cls(album)

    @classmethod
    def from_folder(cls, folder: str) -> "AlbumCatalog":
        """
        Build an album from ``instrumental/``, ``vocal/`` and ``lyrics/``
        subfolders. Instrumental files define the track list and order.
        """
        instrumental_dir = os.path.join(folder, "instrumental")
        if not os.path.isdir(instrumental_dir):
            raise CatalogError(f"No instrumental folder in {folder}")

        def index_dir(name: str, keep) -> dict[str, str]:
            directory = os.path.join(folder, name)
            if not os.path.isdir(directory):
                return {}
            found = {}
            for entry in sorted(os.listdir(directory)):
                full = os.path.join(directory, entry)
                if os.path.isfile(full) and keep(full):
                    found[_track_key(entry)] = full
            return found

        instrumentals = index_dir("instrumental", _is_media_file)
        vocals = index_dir("vocal", _is_media_file)
        lyrics = index_dir("lyrics", lambda p: p.lower().endswith(".lrc"))

        tracks = []
        for track_id, (key, path) in enumerate(sorted(instrumentals.items()), start=1):
            vocal = vocals.get(key, "")
            tracks.append(
                Track(
                    id=track_id,
                    title=_title_from_key(key),
                    duration_sec=0.0,
                    vocal_path=vocal,
                    instrumental_path=path,
                    lyrics_path=lyrics.get(key),
                    has_vocals=bool(vocal),
                )
            )
        if not tracks:
            raise CatalogError(f"No audio files in {instrumental_dir}")
        title = os.path.basename(os.path.normpath(folder))
        return cls(Album(title=title, artist="", tracks=tuple(tracks)))

    @classmethod
    def load(cls, location: str) -> "AlbumCatalog":
        if os.path.isdir(location):
            manifest = os.path.join(location, "album.json")
            if os.path.isfile(manifest):
                return cls.from_manifest(manifest)
            return cls.from_folder(location)
        return cls.from_manifest(location)
