from __future__ import annotations

import logging
import math
import os
import re
import urllib.error
import urllib.request
from bisect import bisect_right
from typing import Dict, List, Mapping, Sequence

from config import LYRICS_FETCH_TIMEOUT_SEC
from errors import LyricsLoadError
from models import LyricDocument, LyricLine
from utils import is_url

logger = logging.getLogger(__name__)

_TS_RE = re.compile(r"\[(\d{2,}):(\d{2})\.(\d{2,3})\]")
_TAG_RE = re.compile(r"\[(\w+):([^\]]+)\]")
_SRT_TIME_RE = re.compile(
    r"(\d{2}):(\d{2}):(\d{2}),(\d{3})\s*-->\s*(\d{2}):(\d{2}):(\d{2}),(\d{3})"
)

# LRC tag -> metadata key
_TAGS = {
    "ar": "artist",
    "ti": "title",
    "al": "album",
    "au": "author",
    "length": "length",
    "by": "by",
    "offset": "offset",
}


def _ts_to_sec(mm: str, ss: str, frac: str) -> float:
    return int(mm) * 60 + int(ss) + int(frac) / (10 ** len(frac))


def parse_lrc(text: str, source: str = "") -> LyricDocument:
    """
    Parse ``[mm:ss.xx]text`` lines into a time-sorted document.

    A line may carry several timestamps and yields one entry per timestamp.
    Empty text after a timestamp is kept as a held line. Lines with neither
    a timestamp nor a known tag are skipped. ``[offset:ms]`` shifts every
    timestamp by that many milliseconds.
    """
    lines: List[LyricLine] = []
    metadata: Dict[str, object] = {}
    if not text:
        return LyricDocument(lines=(), metadata=metadata, source=source)

    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line:
            continue

        matches = list(_TS_RE.finditer(line))
        if not matches:
            tag = _TAG_RE.search(line)
            if tag:
                key = _TAGS.get(tag.group(1).lower())
                value = tag.group(2).strip()
                if key == "offset":
                    try:
                        metadata[key] = int(value)
                    except ValueError:
                        logger.debug("Ignoring malformed LRC offset %r", value)
                elif key:
                    metadata[key] = value
            continue

        lyric = _TS_RE.sub("", line).strip()
        for m in matches:
            lines.append(LyricLine(_ts_to_sec(m.group(1), m.group(2), m.group(3)), lyric))

    lines.sort(key=lambda ln: ln.time_sec)

    offset = metadata.get("offset")
    if offset:
        shift = int(offset) / 1000.0
        lines = [LyricLine(ln.time_sec + shift, ln.text) for ln in lines]

    return LyricDocument(lines=tuple(lines), metadata=metadata, source=source)


def resolve_current_line(lines: Sequence[LyricLine], time_sec: float) -> int:
    """Index of the last line starting at or before ``time_sec``, -1 before the first line."""
    if not lines or not math.isfinite(time_sec):
        return -1
    times = [ln.time_sec for ln in lines]
    return bisect_right(times, time_sec) - 1


def resolve_upcoming_line(lines: Sequence[LyricLine], time_sec: float) -> int:
    if not lines or not math.isfinite(time_sec):
        return -1
    times = [ln.time_sec for ln in lines]
    idx = bisect_right(times, time_sec)
    return idx if idx < len(lines) else -1


def format_lyric_timestamp(seconds: float) -> str:
    if not math.isfinite(seconds) or seconds < 0:
        seconds = 0.0
    mins, secs = divmod(int(seconds), 60)
    return f"{mins}:{secs:02d}"


def srt_to_lrc(text: str) -> str:
    """Convert SubRip subtitles to LRC, keeping only each block's start time."""
    out: List[str] = []
    for block in re.split(r"\n\s*\n", text.replace("\r\n", "\n")):
        block_lines = block.strip().split("\n")
        if len(block_lines) < 3:
            continue
        m = _SRT_TIME_RE.search(block_lines[1])
        if not m:
            continue
        hours, minutes, seconds, millis = m.group(1), m.group(2), m.group(3), m.group(4)
        total_minutes = int(hours) * 60 + int(minutes)
        lyric = " ".join(block_lines[2:]).strip()
        out.append(f"[{total_minutes:02d}:{seconds}.{millis[:2]}]{lyric}")
    return "\n".join(out)


def batch_convert_srt(files: Mapping[str, str]) -> Dict[str, str]:
    """Map ``name.srt`` -> ``name.lrc`` for every convertible entry."""
    converted: Dict[str, str] = {}
    for filename, content in files.items():
        name = re.sub(r"\.srt$", ".lrc", filename, flags=re.IGNORECASE)
        converted[name] = srt_to_lrc(content)
    return converted


def read_lyrics_text(locator: str, timeout: float = LYRICS_FETCH_TIMEOUT_SEC) -> str:
    if is_url(locator):
        try:
            with urllib.request.urlopen(locator, timeout=timeout) as resp:
                charset = resp.headers.get_content_charset() or "utf-8"
                return resp.read().decode(charset, "replace")
        except urllib.error.HTTPError as e:
            raise LyricsLoadError(f"Failed to load LRC file: {e.reason}") from e
        except (urllib.error.URLError, OSError) as e:
            raise LyricsLoadError(f"Failed to load LRC file: {e}") from e

    if not os.path.isfile(locator):
        raise LyricsLoadError(f"Lyrics file not found: {locator}")
    try:
        with open(locator, "r", encoding="utf-8-sig", errors="replace") as f:
            return f.read()
    except OSError as e:
        raise LyricsLoadError(f"Failed to read {locator}: {e}") from e


def load_lyrics(locator: str) -> LyricDocument:
    """Fetch and parse a lyric file; SubRip files are converted on the fly."""
    text = read_lyrics_text(locator)
    if locator.lower().endswith(".srt"):
        text = srt_to_lrc(text)
    return parse_lrc(text, source=locator)
