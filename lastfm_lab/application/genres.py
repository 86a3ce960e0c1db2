from typing import Dict, Iterable, List, Optional
import logging

from lastfm_lab.domain.entities import ArtistRecord, GenreWeight
from lastfm_lab.domain.normalization import TAGS_PER_ARTIST, normalize_tags
from lastfm_lab.domain.ports import ScrobbleSource
from lastfm_lab.domain.results import FetchFailure, FetchResult


logger = logging.getLogger(__name__)

# Artist sample / result caps used by the two genre-bearing reports
CLOUD_ARTIST_LIMIT = 5
CLOUD_TOP_N = 8
WRAPPED_ARTIST_LIMIT = 8
WRAPPED_TOP_N = 5


def accumulate_tag_scores(scores: Dict[str, float], tags: Iterable, artist_weight: float) -> None:
    """Add `count * artist_weight` for each (tag, count) pair into the running map."""
    for name, count in tags:
        scores[name] = scores.get(name, 0) + count * artist_weight


def rank_genres(scores: Dict[str, float], top_n: int) -> List[GenreWeight]:
    """Keep the top_n tags by score and normalize them to sum to 1.

    Normalization divides by the sum of the kept scores only. Equal scores keep
    the map's insertion order (the sort is stable).
    """
    entries = sorted(scores.items(), key=lambda item: item[1], reverse=True)[:max(0, top_n)]
    total = sum(score for _, score in entries) or 1
    return [GenreWeight(name=name, weight=score / total) for name, score in entries]


class GenreAggregator:
    """Combines per-artist top tags into one weighted genre distribution."""

    def __init__(self, source: ScrobbleSource, tags_per_artist: int = TAGS_PER_ARTIST):
        self.source = source
        self.tags_per_artist = tags_per_artist

    def _fetch_tags(self, artist: str) -> FetchResult:
        # A raised error here must not cancel the other artists' fetches
        try:
            return self.source.get_artist_top_tags(artist)
        except Exception as e:
            logger.warning(f"Tag fetch for artist '{artist}' raised: {e}")
            return FetchResult.failed('artist.getTopTags', FetchFailure.TRANSPORT, str(e))

    def score_tags(self, artists: List[ArtistRecord], artist_limit: int) -> Dict[str, float]:
        """Fetch tags for the first `artist_limit` artists and accumulate weighted scores."""
        sample = [a for a in artists[:max(0, artist_limit)] if a.name]
        if not sample:
            return {}

        calls = {
            str(index): (lambda name=artist.name: self._fetch_tags(name))
            for index, artist in enumerate(sample)
        }
        results = self.source.gather(calls)

        scores: Dict[str, float] = {}
        # Accumulate in artist order so ties resolve the same way on every run
        for index, artist in enumerate(sample):
            result: Optional[FetchResult] = results.get(str(index))
            if result is None or not result.ok:
                logger.debug(f"No tags for artist '{artist.name}', skipping its contribution")
                continue
            tags = normalize_tags(result.or_empty(), limit=self.tags_per_artist)
            accumulate_tag_scores(scores, tags, artist.playcount or 1)
        return scores

    def aggregate(self, artists: List[ArtistRecord], artist_limit: int = CLOUD_ARTIST_LIMIT,
                  top_n: int = CLOUD_TOP_N) -> List[GenreWeight]:
        """Ranked, normalized genre distribution for the given artists.

        Args:
            artists: Artists ordered by relevance; playcount is the artist's weight
            artist_limit: How many leading artists to sample
            top_n: Maximum number of genres returned

        Returns:
            Up to top_n GenreWeight values summing to 1, or an empty list when no tag resolves
        """
        scores = self.score_tags(artists, artist_limit)
        genres = rank_genres(scores, top_n)
        logger.debug(f"Aggregated {len(scores)} tags into {len(genres)} genres")
        return genres
