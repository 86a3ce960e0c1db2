import contextvars
import json
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, Mapping, Optional

import requests

from lastfm_lab.crosscutting.config import DEFAULT_API_URL, DEFAULT_MAX_WORKERS
from lastfm_lab.crosscutting.logging import log_upstream_failure
from lastfm_lab.crosscutting.metrics import UpstreamMetrics
from lastfm_lab.domain.errors import UpstreamUnavailable
from lastfm_lab.domain.periods import ReportPeriod, normalize_period
from lastfm_lab.domain.ports import ScrobbleSource
from lastfm_lab.domain.results import FetchFailure, FetchResult

logger = logging.getLogger(__name__)

RECENT_TRACKS_LIMIT = 20
TOP_ITEMS_LIMIT = 50


class LastFmClient(ScrobbleSource):
    """Read-only Last.fm web API client implementing the ScrobbleSource port.

    Every call degrades to a failed FetchResult instead of raising when the
    transport fails, the body is empty or not a JSON object, or Last.fm reports
    a logical error in the body. Nothing is retried.
    """

    def __init__(self,
                 api_key: str,
                 api_url: str = DEFAULT_API_URL,
                 timeout: Optional[float] = None,
                 max_workers: int = DEFAULT_MAX_WORKERS,
                 session: Optional[requests.Session] = None,
                 metrics: Optional[UpstreamMetrics] = None):
        """Initialize the client.

        Args:
            api_key: Last.fm API key
            api_url: API root URL
            timeout: Per-request timeout in seconds, None for the transport default
            max_workers: Upper bound on concurrent upstream calls
            session: Optional pre-configured requests session
            metrics: Optional collector for per-call metrics
        """
        if not api_key:
            raise ValueError("Last.fm API key cannot be empty")
        self.api_key = api_key
        self.api_url = api_url
        self.timeout = timeout
        self.max_workers = max(1, max_workers)
        self.metrics = metrics or UpstreamMetrics()
        self._session = session or requests.Session()
        self._session.headers.update({
            'Accept': 'application/json',
            'User-Agent': 'lastfm-lab/0.1.0',
        })

    @classmethod
    def from_config(cls, config, metrics: Optional[UpstreamMetrics] = None) -> "LastFmClient":
        """Create a client from an AppConfig."""
        return cls(
            api_key=config.require_api_key(),
            api_url=config.api_url,
            timeout=config.request_timeout,
            max_workers=config.max_workers,
            metrics=metrics,
        )

    def _request(self, method: str, params: Dict[str, Any]) -> Dict[str, Any]:
        """Perform one API call and return the parsed body.

        Raises:
            UpstreamUnavailable: with the FetchFailure value as reason
        """
        query = {'method': method, **params, 'api_key': self.api_key, 'format': 'json'}
        try:
            response = self._session.get(self.api_url, params=query, timeout=self.timeout)
            body = response.text
        except requests.RequestException as e:
            raise UpstreamUnavailable(FetchFailure.TRANSPORT.value, str(e))

        if not body or not body.strip():
            raise UpstreamUnavailable(
                FetchFailure.EMPTY_BODY.value, f"Empty body (HTTP {response.status_code})"
            )

        try:
            data = json.loads(body)
        except ValueError as e:
            raise UpstreamUnavailable(
                FetchFailure.MALFORMED_JSON.value,
                f"Invalid JSON (HTTP {response.status_code}): {e}; body starts {body[:200]!r}",
            )
        if not isinstance(data, dict):
            raise UpstreamUnavailable(
                FetchFailure.MALFORMED_JSON.value, f"Expected a JSON object, got {type(data).__name__}"
            )

        # Last.fm may report errors as { error, message } even with a 200 status
        if data.get('error'):
            raise UpstreamUnavailable(
                FetchFailure.UPSTREAM_ERROR.value,
                f"Last.fm error {data.get('error')}: {data.get('message', '')}",
            )
        return data

    def call(self, method: str, **params: Any) -> FetchResult:
        """Call an API method, collapsing every failure into a failed FetchResult."""
        with self.metrics.call_context(method) as outcome:
            try:
                payload = self._request(method, params)
            except UpstreamUnavailable as e:
                outcome['failure'] = e.reason
                log_upstream_failure(logger, method, e.reason, str(e))
                return FetchResult.failed(method, FetchFailure(e.reason), str(e))
            logger.debug(f"Upstream call {method} succeeded")
            return FetchResult.success(method, payload)

    def get_recent_tracks(self, username: str, limit: int = RECENT_TRACKS_LIMIT) -> FetchResult:
        return self.call('user.getrecenttracks', user=username, limit=limit, extended=1)

    def get_top_tracks(self, username: str, period: ReportPeriod,
                       limit: int = TOP_ITEMS_LIMIT) -> FetchResult:
        return self.call('user.getTopTracks', user=username,
                         period=normalize_period(period).value, limit=limit)

    def get_top_artists(self, username: str, period: ReportPeriod,
                        limit: int = TOP_ITEMS_LIMIT) -> FetchResult:
        return self.call('user.getTopArtists', user=username,
                         period=normalize_period(period).value, limit=limit)

    def get_user_info(self, username: str) -> FetchResult:
        return self.call('user.getInfo', user=username)

    def get_artist_top_tags(self, artist: str) -> FetchResult:
        return self.call('artist.getTopTags', artist=artist)

    def gather(self, calls: Mapping[str, Callable[[], FetchResult]]) -> Dict[str, FetchResult]:
        """Run independent calls concurrently and wait for all of them.

        Results keep the key order of `calls`. An exception escaping a call
        (not a degraded FetchResult) propagates to the caller.
        """
        if not calls:
            return {}
        workers = min(self.max_workers, len(calls))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix='lastfm') as executor:
            # Each worker runs in a copy of the caller's context so log correlation survives
            futures = {key: executor.submit(contextvars.copy_context().run, call)
                       for key, call in calls.items()}
            return {key: future.result() for key, future in futures.items()}

    def close(self) -> None:
        self._session.close()

    def __enter__(self) -> "LastFmClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


def close_source(source: Any) -> None:
    """Release a source's connections when it holds any."""
    close = getattr(source, 'close', None)
    if callable(close):
        close()
