from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, TypeVar
import logging

from lastfm_lab.application.genres import (
    CLOUD_ARTIST_LIMIT, CLOUD_TOP_N, WRAPPED_ARTIST_LIMIT, WRAPPED_TOP_N, GenreAggregator,
)
from lastfm_lab.domain.entities import ArtistRecord, GenreWeight, MemberSince, TopTrack, TrackRecord
from lastfm_lab.domain.errors import AggregationFailure, MissingInput
from lastfm_lab.domain.normalization import (
    artist_total, member_since, normalize_artist, normalize_recent_track, normalize_top_track,
    recent_track_entries, top_artist_entries, top_track_entries, user_playcount, user_profile,
)
from lastfm_lab.domain.periods import ReportPeriod, normalize_period
from lastfm_lab.domain.ports import ScrobbleSource


logger = logging.getLogger(__name__)

RECENT_TRACKS_LIMIT = 20
TOP_ITEMS_FETCH_LIMIT = 50
TOP_TRACKS_CAP = 10
TOP_ARTISTS_CAP = 5

T = TypeVar('T')


@dataclass
class RecentTracksReport:
    """Most recent plays of one user."""

    username: str
    tracks: List[TrackRecord] = field(default_factory=list)

    def to_json(self) -> Dict[str, Any]:
        return {
            "username": self.username,
            "tracks": [t.to_json() for t in self.tracks],
        }


@dataclass
class GenreCloudReport:
    """Normalized top genres for a set of artists."""

    top_genres: List[GenreWeight] = field(default_factory=list)

    def to_json(self) -> Dict[str, Any]:
        return {"topGenres": [g.to_json() for g in self.top_genres]}


@dataclass
class WrappedReport:
    """Consolidated listening summary for one user over a period."""

    username: str
    period: ReportPeriod
    period_label: str
    since: Optional[MemberSince] = None
    total_scrobbles: int = 0
    total_artist_count: int = 0
    top_track: Optional[TopTrack] = None
    top_artist: Optional[ArtistRecord] = None
    top_genres: List[GenreWeight] = field(default_factory=list)
    top_tracks: List[TopTrack] = field(default_factory=list)
    top_artists: List[ArtistRecord] = field(default_factory=list)

    def to_json(self) -> Dict[str, Any]:
        return {
            "username": self.username,
            "period": self.period.value,
            "periodLabel": self.period_label,
            "since": self.since.to_json() if self.since else None,
            "totalScrobbles": self.total_scrobbles,
            "totalArtistCount": self.total_artist_count,
            "topTrack": self.top_track.to_json() if self.top_track else None,
            "topArtist": self.top_artist.to_json() if self.top_artist else None,
            "topGenres": [g.to_json() for g in self.top_genres],
            "topTracks": [t.to_json() for t in self.top_tracks],
            "topArtists": [a.to_json() for a in self.top_artists],
        }


def require_username(username: Optional[str]) -> str:
    if not isinstance(username, str) or not username.strip():
        raise MissingInput("username")
    return username.strip()


class ReportAssembler:
    """Builds the three report shapes from upstream data.

    Each report is a single stateless pass. Individual upstream failures show
    up as empty data; only unexpected errors abort a report, as AggregationFailure.
    """

    def __init__(self, source: ScrobbleSource, genre_aggregator: Optional[GenreAggregator] = None):
        self.source = source
        self.genres = genre_aggregator or GenreAggregator(source)

    def _assemble(self, report: str, build: Callable[[], T]) -> T:
        try:
            return build()
        except (MissingInput, AggregationFailure):
            raise
        except Exception as e:
            logger.error(f"Failed to assemble {report} report: {e}")
            raise AggregationFailure(report, f"Failed to assemble {report} report: {e}") from e

    def recent_tracks(self, username: str) -> RecentTracksReport:
        """Up to 20 most recent plays with a medium thumbnail and now-playing flag."""
        username = require_username(username)

        def build() -> RecentTracksReport:
            payload = self.source.get_recent_tracks(username, limit=RECENT_TRACKS_LIMIT).or_empty()
            entries = recent_track_entries(payload)[:RECENT_TRACKS_LIMIT]
            return RecentTracksReport(
                username=username,
                tracks=[normalize_recent_track(entry) for entry in entries],
            )

        return self._assemble('recent', build)

    def genre_cloud(self, artists: List[ArtistRecord]) -> GenreCloudReport:
        """Top 8 genres across the 5 leading artists."""
        def build() -> GenreCloudReport:
            logger.debug(f"Genre cloud for artists: {[a.name for a in artists[:CLOUD_ARTIST_LIMIT]]}")
            genres = self.genres.aggregate(list(artists), artist_limit=CLOUD_ARTIST_LIMIT,
                                           top_n=CLOUD_TOP_N)
            return GenreCloudReport(top_genres=genres)

        return self._assemble('genres', build)

    def genre_cloud_for_user(self, username: str, period: Optional[str] = None) -> GenreCloudReport:
        """Genre cloud over the user's top artists for a period."""
        username = require_username(username)
        safe_period = normalize_period(period)

        def build() -> List[ArtistRecord]:
            payload = self.source.get_top_artists(
                username, safe_period, limit=CLOUD_ARTIST_LIMIT
            ).or_empty()
            return [normalize_artist(entry) for entry in top_artist_entries(payload)]

        return self.genre_cloud(self._assemble('genres', build))

    def wrapped(self, username: str, period: Optional[str] = None) -> WrappedReport:
        """Wrapped summary: totals, top track/artist, capped lists and top 5 genres."""
        username = require_username(username)
        safe_period = normalize_period(period)
        return self._assemble('wrapped', lambda: self._build_wrapped(username, safe_period))

    def _build_wrapped(self, username: str, period: ReportPeriod) -> WrappedReport:
        results = self.source.gather({
            'tracks': lambda: self.source.get_top_tracks(username, period, limit=TOP_ITEMS_FETCH_LIMIT),
            'artists': lambda: self.source.get_top_artists(username, period, limit=TOP_ITEMS_FETCH_LIMIT),
            'user': lambda: self.source.get_user_info(username),
        })
        tracks_json = results['tracks'].or_empty()
        artists_json = results['artists'].or_empty()
        user_json = results['user'].or_empty()

        top_tracks = [normalize_top_track(entry) for entry in top_track_entries(tracks_json)]
        top_artists = [normalize_artist(entry) for entry in top_artist_entries(artists_json)]

        # Summing a bounded sample of tracks undercounts; it is the only per-period figure
        total_from_tracks = sum(track.playcount for track in top_tracks)
        if period.is_all_time:
            total_scrobbles = user_playcount(user_json) or total_from_tracks
        else:
            total_scrobbles = total_from_tracks

        total_artist_count = artist_total(artists_json) or len(top_artists)

        since = None
        if period.is_all_time:
            since = member_since(user_profile(user_json).get('registered'))

        top_genres = self.genres.aggregate(
            top_artists, artist_limit=WRAPPED_ARTIST_LIMIT, top_n=WRAPPED_TOP_N
        )

        return WrappedReport(
            username=username,
            period=period,
            period_label=period.label,
            since=since,
            total_scrobbles=total_scrobbles,
            total_artist_count=total_artist_count,
            top_track=top_tracks[0] if top_tracks else None,
            top_artist=top_artists[0] if top_artists else None,
            top_genres=top_genres,
            top_tracks=top_tracks[:TOP_TRACKS_CAP],
            top_artists=top_artists[:TOP_ARTISTS_CAP],
        )
