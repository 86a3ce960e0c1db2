from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from .entities import ArtistRecord, MemberSince, TopTrack, TrackRecord


IMAGE_FALLBACK_ORDER = ("large", "medium", "small")
TAGS_PER_ARTIST = 5
MONTH_NAMES = (
    "january", "february", "march", "april", "may", "june",
    "july", "august", "september", "october", "november", "december",
)


def _text(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return ""


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _to_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def parse_playcount(value: Any) -> int:
    """Parse a display play count; absent or unparseable counts are 0."""
    number = _to_number(value)
    if number is None or number < 0:
        return 0
    return int(number)


def parse_weight(value: Any) -> float:
    """Parse a tag count or artist weight, never returning less than a minimal 1."""
    number = _to_number(value)
    if not number or number < 0:
        return 1.0
    return number


def text_field(value: Any) -> str:
    """Read a flattened upstream text node: {"#text": ...} or a bare string."""
    if isinstance(value, dict):
        return _text(value.get("#text"))
    return _text(value)


def artist_name(value: Any) -> str:
    """Artist display name: nested "name", else flattened "#text", else empty."""
    if isinstance(value, dict):
        return _text(value.get("name")) or _text(value.get("#text"))
    return _text(value)


def image_of_size(images: Any, size: str) -> str:
    """Content of the first variant tagged with exactly this size."""
    if not isinstance(images, list):
        return ""
    for image in images:
        if isinstance(image, dict) and image.get("size") == size:
            return _text(image.get("#text"))
    return ""


def pick_image(images: Any, preferred: str = "extralarge") -> str:
    """Best available image: preferred size, then large, medium, small."""
    if not isinstance(images, list):
        return ""
    order = (preferred,) + tuple(size for size in IMAGE_FALLBACK_ORDER if size != preferred)
    for size in order:
        for image in images:
            if isinstance(image, dict) and image.get("size") == size:
                content = _text(image.get("#text"))
                if content:
                    return content
    return ""


def is_now_playing(entry: Any) -> bool:
    attr = _as_dict(_as_dict(entry).get("@attr"))
    return attr.get("nowplaying") == "true"


def _member_since_from_text(text: str) -> Optional[MemberSince]:
    date_part = text.split(" ", 1)[0]
    parts = date_part.split("-")
    if len(parts) < 2:
        return None
    try:
        year = int(parts[0])
    except ValueError:
        return None
    try:
        month_index = int(parts[1]) - 1
    except ValueError:
        month_index = -1
    month = MONTH_NAMES[month_index] if 0 <= month_index < len(MONTH_NAMES) else ""
    return MemberSince(month=month, year=year)


def _member_since_from_unixtime(value: Any) -> Optional[MemberSince]:
    seconds = _to_number(value)
    if seconds is None or seconds <= 0:
        return None
    moment = datetime.fromtimestamp(int(seconds), tz=timezone.utc)
    return MemberSince(month=MONTH_NAMES[moment.month - 1], year=moment.year)


def member_since(registered: Any) -> Optional[MemberSince]:
    """Decompose a registration date ("YYYY-MM-DD HH:MM") into month name and year.

    Falls back to the "unixtime" attribute when the profile carries no date text.
    """
    if not registered:
        return None
    if isinstance(registered, str):
        return _member_since_from_text(registered)
    if not isinstance(registered, dict):
        return None
    text = registered.get("#text")
    if isinstance(text, str) and text.strip():
        return _member_since_from_text(text)
    return _member_since_from_unixtime(registered.get("unixtime") or text)


def _entries(payload: Any, root: str, key: str) -> List[Dict[str, Any]]:
    container = _as_dict(_as_dict(payload).get(root))
    entries = container.get(key)
    # A single result comes back as an object instead of a one-element list
    if isinstance(entries, dict):
        entries = [entries]
    if not isinstance(entries, list):
        return []
    return [entry for entry in entries if isinstance(entry, dict)]


def recent_track_entries(payload: Any) -> List[Dict[str, Any]]:
    return _entries(payload, "recenttracks", "track")


def top_track_entries(payload: Any) -> List[Dict[str, Any]]:
    return _entries(payload, "toptracks", "track")


def top_artist_entries(payload: Any) -> List[Dict[str, Any]]:
    return _entries(payload, "topartists", "artist")


def tag_entries(payload: Any) -> List[Dict[str, Any]]:
    return _entries(payload, "toptags", "tag")


def artist_total(payload: Any) -> int:
    """Upstream-reported number of distinct artists behind a top-artists page."""
    attr = _as_dict(_as_dict(_as_dict(payload).get("topartists")).get("@attr"))
    return parse_playcount(attr.get("total"))


def user_profile(payload: Any) -> Dict[str, Any]:
    return _as_dict(_as_dict(payload).get("user"))


def user_playcount(payload: Any) -> int:
    return parse_playcount(user_profile(payload).get("playcount"))


def normalize_recent_track(entry: Any) -> TrackRecord:
    entry = _as_dict(entry)
    timestamp = None
    uts = _to_number(_as_dict(entry.get("date")).get("uts"))
    if uts is not None:
        timestamp = int(uts)
    return TrackRecord(
        artist=artist_name(entry.get("artist")),
        title=_text(entry.get("name")),
        album=text_field(entry.get("album")),
        url=_text(entry.get("url")),
        image=image_of_size(entry.get("image"), "medium"),
        is_now_playing=is_now_playing(entry),
        timestamp=timestamp,
    )


def normalize_top_track(entry: Any) -> TopTrack:
    entry = _as_dict(entry)
    return TopTrack(
        name=_text(entry.get("name")),
        artist=artist_name(entry.get("artist")),
        playcount=parse_playcount(entry.get("playcount")),
        image=pick_image(entry.get("image")),
    )


def normalize_artist(entry: Any) -> ArtistRecord:
    entry = _as_dict(entry)
    return ArtistRecord(
        name=_text(entry.get("name")),
        playcount=parse_playcount(entry.get("playcount")),
        image=pick_image(entry.get("image")),
    )


def normalize_tags(payload: Any, limit: int = TAGS_PER_ARTIST) -> List[Tuple[str, float]]:
    """Top tags of one artist as (lower-cased name, count) pairs; nameless tags dropped."""
    tags = []
    for entry in tag_entries(payload)[:limit]:
        name = _text(entry.get("name")).lower()
        if not name:
            continue
        tags.append((name, parse_weight(entry.get("count"))))
    return tags
