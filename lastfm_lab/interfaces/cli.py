import argparse
import json
import sys
import logging
import time
from typing import Optional

from lastfm_lab.application.reports import ReportAssembler
from lastfm_lab.crosscutting.config import AppConfig, ConfigError, setup_config
from lastfm_lab.crosscutting.logging import CorrelationContext, log_with_fields, setup_logging
from lastfm_lab.crosscutting.metrics import UpstreamMetrics
from lastfm_lab.domain.errors import AggregationFailure, MissingInput
from lastfm_lab.domain.periods import ReportPeriod
from lastfm_lab.infrastructure.providers.lastfm import LastFmClient, close_source


EXIT_FAILURE = 1
EXIT_MISSING_INPUT = 2


class CLI:
    """Command Line Interface for lastfm-lab."""

    def __init__(self):
        """Initialize CLI."""
        self.parser = self._create_parser()
        self._start_time = None

    def _add_common_arguments(self, parser: argparse.ArgumentParser) -> None:
        parser.add_argument(
            '--log-level',
            choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
            default=None,
            help='Set logging level (default from LASTFM_LOG_LEVEL or INFO)'
        )
        parser.add_argument(
            '--env-file',
            default=None,
            help='Path to a .env file with LASTFM_* settings'
        )

    def _create_parser(self) -> argparse.ArgumentParser:
        """Create argument parser."""
        parser = argparse.ArgumentParser(
            prog='lastfm-lab',
            description='Summarize Last.fm listening history'
        )
        subparsers = parser.add_subparsers(dest='command', help='Available commands')
        periods = [p.value for p in ReportPeriod]

        recent_parser = subparsers.add_parser('recent', help='Show recent tracks')
        recent_parser.add_argument('--user', required=True, help='Last.fm username')
        self._add_common_arguments(recent_parser)

        genres_parser = subparsers.add_parser('genres', help="Show the user's top genres")
        genres_parser.add_argument('--user', required=True, help='Last.fm username')
        genres_parser.add_argument(
            '--period',
            choices=periods,
            default=None,
            help='Period for top artists (default: 3month)'
        )
        self._add_common_arguments(genres_parser)

        wrapped_parser = subparsers.add_parser('wrapped', help='Show the wrapped summary')
        wrapped_parser.add_argument('--user', required=True, help='Last.fm username')
        wrapped_parser.add_argument(
            '--period',
            choices=periods,
            default=None,
            help='Report period (default: 3month)'
        )
        self._add_common_arguments(wrapped_parser)

        serve_parser = subparsers.add_parser('serve', help='Run the HTTP server')
        serve_parser.add_argument('--host', default='localhost', help='Bind address')
        serve_parser.add_argument('--port', type=int, default=3000, help='Port (default: 3000)')
        serve_parser.add_argument('--debug', action='store_true', help='Enable Flask debug mode')
        self._add_common_arguments(serve_parser)

        return parser

    def _load_config(self, args: argparse.Namespace) -> AppConfig:
        return setup_config(getattr(args, 'env_file', None))

    def _create_assembler(self, config: AppConfig, metrics: UpstreamMetrics) -> ReportAssembler:
        """Create the report assembler over a live Last.fm client."""
        return ReportAssembler(LastFmClient.from_config(config, metrics=metrics))

    def _run_report(self, args: argparse.Namespace, config: AppConfig) -> int:
        """Assemble one report and print it as JSON."""
        logger = logging.getLogger(__name__)
        metrics = UpstreamMetrics()
        assembler = self._create_assembler(config, metrics)

        try:
            with CorrelationContext(username=args.user, report=args.command):
                if args.command == 'recent':
                    report = assembler.recent_tracks(args.user)
                elif args.command == 'genres':
                    report = assembler.genre_cloud_for_user(args.user, args.period)
                else:
                    report = assembler.wrapped(args.user, args.period)
                log_with_fields(logger, 'INFO', 'Report completed', upstream=metrics.to_dict())
        finally:
            close_source(assembler.source)

        print(json.dumps(report.to_json(), indent=2, ensure_ascii=False))
        return 0

    def _serve(self, args: argparse.Namespace, config: AppConfig) -> int:
        from lastfm_lab.interfaces.http import HTTPServer

        server = HTTPServer(host=args.host, port=args.port, debug=args.debug, config=config)
        server.run()
        return 0

    def run(self, argv: Optional[list] = None) -> int:
        """Run the CLI and return the process exit code."""
        self._start_time = time.time()
        logger = logging.getLogger(__name__)

        args = self.parser.parse_args(argv)
        if not args.command:
            self.parser.print_help()
            return EXIT_FAILURE

        try:
            config = self._load_config(args)
            setup_logging(args.log_level or config.log_level)
            log_with_fields(logger, 'DEBUG', 'Configuration loaded', config.summary())

            if args.command == 'serve':
                return self._serve(args, config)
            return self._run_report(args, config)

        except MissingInput as e:
            logger.error(f"Invalid input: {e}")
            return EXIT_MISSING_INPUT
        except ConfigError as e:
            logger.error(f"Configuration error: {e}")
            return EXIT_FAILURE
        except AggregationFailure as e:
            logger.error(f"Report failed: {e}")
            return EXIT_FAILURE
        except KeyboardInterrupt:
            logger.warning("Operation cancelled by user")
            return 130
        finally:
            duration = time.time() - self._start_time
            logger.debug(f"CLI execution time: {duration:.2f}s")


def main():
    """Main entry point."""
    cli = CLI()
    sys.exit(cli.run())


if __name__ == '__main__':
    main()
