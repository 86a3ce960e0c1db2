from __future__ import annotations

from typing import Callable, Dict, Mapping, Protocol

from .periods import ReportPeriod
from .results import FetchResult


class ScrobbleSource(Protocol):
    """Port defining the read-only contract of the upstream music-data API.

    Implementations never raise for the failure of an individual call; they
    return a failed FetchResult instead so callers have a single "absent" case.
    """

    def get_recent_tracks(self, username: str, limit: int = 20) -> FetchResult:
        """Return the user's most recent plays, newest first."""

    def get_top_tracks(self, username: str, period: ReportPeriod, limit: int = 50) -> FetchResult:
        """Return the user's top tracks for the period."""

    def get_top_artists(self, username: str, period: ReportPeriod, limit: int = 50) -> FetchResult:
        """Return the user's top artists for the period."""

    def get_user_info(self, username: str) -> FetchResult:
        """Return the user's profile."""

    def get_artist_top_tags(self, artist: str) -> FetchResult:
        """Return the most popular tags for the artist."""

    def gather(self, calls: Mapping[str, Callable[[], FetchResult]]) -> Dict[str, FetchResult]:
        """Run independent calls concurrently and return their results by key."""
