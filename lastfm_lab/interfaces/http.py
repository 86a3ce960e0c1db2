import os
import time
import uuid
import logging
from typing import Any, Callable, Optional, Sequence
from datetime import datetime
from flask import Flask, Response, g, request, jsonify, make_response

from lastfm_lab.application.reports import ReportAssembler, require_username
from lastfm_lab.crosscutting.config import AppConfig, ConfigError, get_config
from lastfm_lab.crosscutting.logging import (
    CorrelationContext, log_error, log_report_complete, log_report_start, log_with_fields,
    setup_logging,
)
from lastfm_lab.crosscutting.metrics import UpstreamMetrics
from lastfm_lab.domain.errors import AggregationFailure, MissingInput
from lastfm_lab.domain.normalization import normalize_artist
from lastfm_lab.domain.ports import ScrobbleSource
from lastfm_lab.infrastructure.providers.lastfm import LastFmClient, close_source


SourceFactory = Callable[[AppConfig, UpstreamMetrics], ScrobbleSource]

# Routes accept every common method so unsupported ones get a CORS-decorated 405
ROUTED_METHODS = ['GET', 'POST', 'PUT', 'PATCH', 'DELETE', 'OPTIONS']


class InvalidBody(Exception):
    """Request body is not valid JSON."""


def default_source_factory(config: AppConfig, metrics: UpstreamMetrics) -> ScrobbleSource:
    return LastFmClient.from_config(config, metrics=metrics)


class HTTPServer:
    """Thin HTTP layer over the report assembler: CORS, preflight, method checks, caching."""

    def __init__(self, host: str = 'localhost', port: int = 3000, debug: bool = False,
                 config: Optional[AppConfig] = None,
                 source_factory: Optional[SourceFactory] = None):
        """Initialize HTTP server."""
        self.host = host
        self.port = port
        self.debug = debug
        self.config = config or get_config()
        self.source_factory = source_factory or default_source_factory
        self.app = Flask(__name__)
        self.app.json.sort_keys = False
        self.logger = logging.getLogger(__name__)

        # Version info
        self.version = "0.1.0"
        self.commit = os.getenv('GIT_COMMIT', 'unknown')

        self._setup_routes()

    def _apply_cors(self, response: Response, methods: Sequence[str]) -> Response:
        """Echo the origin only when allow-listed; always advertise methods and headers."""
        origin = request.headers.get('Origin', '')
        if self.config.is_origin_allowed(origin):
            response.headers['Access-Control-Allow-Origin'] = origin
            response.headers['Vary'] = 'Origin'
        response.headers['Access-Control-Allow-Methods'] = ', '.join(list(methods) + ['OPTIONS'])
        response.headers['Access-Control-Allow-Headers'] = 'Content-Type'
        return response

    def _error(self, status: int, error: str, methods: Sequence[str]) -> Response:
        response = make_response(jsonify({'error': error}), status)
        return self._apply_cors(response, methods)

    def _create_source(self, metrics: UpstreamMetrics) -> ScrobbleSource:
        self.config.require_api_key()
        source = self.source_factory(self.config, metrics)
        g.setdefault('sources', []).append(source)
        return source

    def _close_sources(self) -> None:
        for source in g.pop('sources', []):
            close_source(source)

    def _handle(self, report: str, methods: Sequence[str],
                produce: Callable[[UpstreamMetrics], Any]) -> Response:
        """Run one report request through the shared validation and error mapping."""
        if request.method == 'OPTIONS':
            return self._apply_cors(make_response('', 200), methods)
        if request.method not in methods:
            return self._error(405, 'method_not_allowed', methods)

        metrics = UpstreamMetrics()
        username = request.args.get('username', '')
        start = time.monotonic()
        with CorrelationContext(request_id=uuid.uuid4().hex[:12], report=report):
            try:
                log_report_start(self.logger, report, username, method=request.method)
                result = produce(metrics)
            except MissingInput:
                return self._error(400, 'missing_username', methods)
            except InvalidBody:
                return self._error(400, 'invalid_body', methods)
            except ConfigError:
                self.logger.error(f"{report}: LASTFM_API_KEY missing")
                return self._error(500, 'missing_api_key', methods)
            except AggregationFailure as e:
                log_error(self.logger, f"{report} failed", e)
                return self._error(502, f'{report}_failed', methods)
            except Exception as e:
                log_error(self.logger, f"{report} error", e)
                return self._error(500, f'{report}_failed', methods)
            finally:
                self._close_sources()

            snapshot = metrics.get_metrics()
            if snapshot.total_calls and snapshot.failed_calls == snapshot.total_calls:
                self.logger.warning(f"{report}: all {snapshot.total_calls} upstream calls failed")
            log_report_complete(self.logger, report, username,
                                int((time.monotonic() - start) * 1000),
                                upstream=metrics.to_dict())

        response = make_response(jsonify(result.to_json()), 200)
        response.headers['Cache-Control'] = f's-maxage={self.config.cache_max_age}'
        return self._apply_cors(response, methods)

    def _read_artists(self) -> list:
        """Artists posted as {"artists": [{name, playcount}, ...]}; an empty body means none."""
        raw = request.get_data(cache=True)
        if not raw or not raw.strip():
            return []
        body = request.get_json(force=True, silent=True)
        if body is None:
            raise InvalidBody()
        artists = body.get('artists') if isinstance(body, dict) else None
        if not isinstance(artists, list):
            return []
        return [normalize_artist(entry) for entry in artists if isinstance(entry, dict)]

    def _setup_routes(self) -> None:
        """Setup Flask routes."""

        @self.app.route('/api/lastfm', methods=ROUTED_METHODS)
        def recent_tracks():
            """Most recent plays of a user."""
            def produce(metrics: UpstreamMetrics):
                username = require_username(request.args.get('username'))
                assembler = ReportAssembler(self._create_source(metrics))
                return assembler.recent_tracks(username)

            return self._handle('lastfm', ['GET'], produce)

        @self.app.route('/api/wgenres', methods=ROUTED_METHODS)
        def genre_cloud():
            """Genre cloud from posted artists, or from a user's top artists."""
            def produce(metrics: UpstreamMetrics):
                if request.method == 'POST':
                    self.config.require_api_key()
                    artists = self._read_artists()
                    self.logger.info(f"wgenres: received artists {[a.name for a in artists]}")
                    return ReportAssembler(self._create_source(metrics)).genre_cloud(artists)
                username = require_username(request.args.get('username'))
                assembler = ReportAssembler(self._create_source(metrics))
                return assembler.genre_cloud_for_user(username, request.args.get('period'))

            return self._handle('wgenres', ['GET', 'POST'], produce)

        @self.app.route('/api/wrapped', methods=ROUTED_METHODS)
        def wrapped():
            """Wrapped summary for a user and period."""
            def produce(metrics: UpstreamMetrics):
                username = require_username(request.args.get('username'))
                assembler = ReportAssembler(self._create_source(metrics))
                return assembler.wrapped(username, request.args.get('period'))

            return self._handle('wrapped', ['GET'], produce)

        @self.app.route('/health', methods=['GET'])
        def health_check():
            """Health check endpoint."""
            return jsonify({
                'status': 'healthy',
                'version': self.version,
                'commit': self.commit,
                'has_api_key': self.config.has_api_key,
                'timestamp': datetime.now().isoformat()
            }), 200

        @self.app.route('/', methods=['GET'])
        def root():
            """Root endpoint with basic info."""
            return jsonify({
                'service': 'lastfm-lab HTTP Interface',
                'version': self.version,
                'endpoints': {
                    'health': '/health',
                    'recent_tracks': '/api/lastfm',
                    'genres': '/api/wgenres',
                    'wrapped': '/api/wrapped'
                }
            }), 200

        @self.app.errorhandler(404)
        def not_found(_error):
            return jsonify({'error': 'not_found'}), 404

        @self.app.errorhandler(405)
        def method_not_allowed(_error):
            return jsonify({'error': 'method_not_allowed'}), 405

    def run(self) -> None:
        """Run the HTTP server."""
        setup_logging(self.config.log_level)
        self.logger.info(f"Starting lastfm-lab HTTP server on {self.host}:{self.port}")
        log_with_fields(self.logger, 'INFO', 'Configuration loaded', self.config.summary())
        self.app.run(
            host=self.host,
            port=self.port,
            debug=self.debug
        )


def create_app(config: Optional[AppConfig] = None,
               source_factory: Optional[SourceFactory] = None) -> Flask:
    """Create Flask app (WSGI entry point and test fixture)."""
    server = HTTPServer(config=config, source_factory=source_factory)
    return server.app


if __name__ == '__main__':
    server = HTTPServer()
    server.run()
