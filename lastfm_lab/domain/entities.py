from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class TrackRecord:
    """One play from the user's recent listening history."""

    artist: str = ""
    title: str = ""
    album: str = ""
    url: str = ""
    image: str = ""
    is_now_playing: bool = False
    timestamp: Optional[int] = None

    def to_json(self) -> Dict[str, Any]:
        return {
            "artist": self.artist,
            "title": self.title,
            "album": self.album,
            "url": self.url,
            "image": self.image,
            "nowPlaying": self.is_now_playing,
            "date": self.timestamp,
        }


@dataclass(frozen=True)
class TopTrack:
    """A ranked track from the user's top tracks for a period."""

    name: str = ""
    artist: str = ""
    playcount: int = 0
    image: str = ""

    def to_json(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "artist": self.artist,
            "playcount": self.playcount,
            "image": self.image,
        }


@dataclass(frozen=True)
class ArtistRecord:
    """A ranked artist; playcount doubles as the artist's weight for genre scoring."""

    name: str = ""
    playcount: int = 0
    image: str = ""

    def to_json(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "playcount": self.playcount,
            "image": self.image,
        }


@dataclass(frozen=True)
class GenreWeight:
    """Share of a tag in a user's normalized genre distribution."""

    name: str
    weight: float

    def to_json(self) -> Dict[str, Any]:
        return {"name": self.name, "weight": self.weight}


@dataclass(frozen=True)
class MemberSince:
    """Month and year the user registered upstream."""

    month: str
    year: int

    def to_json(self) -> Dict[str, Any]:
        return {"month": self.month, "year": self.year}
