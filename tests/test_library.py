from __future__ import annotations

import json
import os

import pytest

from errors import CatalogError
from library import AlbumCatalog
from models import Rendition


def write_manifest(tmp_path, data):
    path = tmp_path / "album.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    return str(path)


def test_manifest_resolves_relative_locators(tmp_path):
    path = write_manifest(
        tmp_path,
        {
            "title": "Night Drive",
            "artist": "Someone",
            "release_year": 2021,
            "artwork": "cover.jpg",
            "tracks": [
                {
                    "id": 1,
                    "title": "Intro",
                    "duration": 61.5,
                    "instrumental": "inst/01.mp3",
                    "vocal": "vox/01.mp3",
                    "lyrics": "lyrics/01.lrc",
                },
                {
                    "id": 2,
                    "title": "Remote",
                    "instrumental": "https://cdn.example.com/02.mp3",
                },
            ],
        },
    )
    catalog = AlbumCatalog.from_manifest(path)
    assert catalog.album.title == "Night Drive"
    assert catalog.album.release_year == 2021
    assert catalog.album.artwork_path == os.path.join(str(tmp_path), "cover.jpg")

    first = catalog.get_track(1)
    assert first.duration_sec == 61.5
    assert first.has_vocals
    assert first.source_for(Rendition.VOCAL) == os.path.join(str(tmp_path), "vox", "01.mp3")
    assert first.lyrics_path == os.path.join(str(tmp_path), "lyrics", "01.lrc")

    second = catalog.get_track(2)
    assert not second.has_vocals
    assert second.source_for(Rendition.VOCAL) == "https://cdn.example.com/02.mp3"
    assert second.lyrics_path is None


@pytest.mark.parametrize(
    "data",
    [
        [],
        {"tracks": []},
        {"tracks": [{"id": 1}]},
        {"tracks": [{"id": 1, "instrumental": "a.mp3"}, {"id": 1, "instrumental": "b.mp3"}]},
        {"tracks": [{"id": "x", "instrumental": "a.mp3"}]},
    ],
)
def test_bad_manifests_raise(tmp_path, data):
    with pytest.raises(CatalogError):
        AlbumCatalog.from_manifest(write_manifest(tmp_path, data))


def test_unreadable_manifest_raises(tmp_path):
    bad = tmp_path / "album.json"
    bad.write_text("{not json", encoding="utf-8")
    with pytest.raises(CatalogError):
        AlbumCatalog.from_manifest(str(bad))
    with pytest.raises(CatalogError):
        AlbumCatalog.from_manifest(str(tmp_path / "missing.json"))


def test_folder_layout_matches_by_stem(tmp_path):
    for rel in (
        "instrumental/01-first-song.mp3",
        "instrumental/02-second_song-instrumental.flac",
        "instrumental/notes.txt",
        "vocal/01-first-song.mp3",
        "lyrics/01-first-song.lrc",
        "lyrics/02-second_song.lrc",
    ):
        target = tmp_path / rel
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(b"")

    catalog = AlbumCatalog.load(str(tmp_path))
    assert catalog.track_ids() == [1, 2]
    first, second = catalog.tracks
    assert first.title == "FIRST SONG"
    assert first.has_vocals
    assert first.lyrics_path.endswith("01-first-song.lrc")
    assert second.title == "SECOND SONG"
    assert not second.has_vocals
    assert second.lyrics_path.endswith("02-second_song.lrc")


def test_folder_without_instrumentals_raises(tmp_path):
    with pytest.raises(CatalogError):
        AlbumCatalog.from_folder(str(tmp_path))


def test_navigation_wraps(catalog):
    assert catalog.next_id(5) == 1
    assert catalog.previous_id(1) == 5
    assert catalog.next_id(2) == 3
    assert catalog.last_id() == 5
    assert catalog.is_last(5)
    assert not catalog.is_last(4)
    assert catalog.index_of(42) == -1
    assert catalog.get_track(None) is None
