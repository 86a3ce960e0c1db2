import json
from unittest.mock import Mock, patch

import pytest

from lastfm_lab.application.reports import ReportAssembler
from lastfm_lab.domain.errors import AggregationFailure
from lastfm_lab.interfaces.cli import CLI, EXIT_FAILURE, EXIT_MISSING_INPUT, main
from lastfm_lab.tests.fakes import (
    FakeScrobbleSource, tags_payload, top_artists_payload, top_tracks_payload, user_payload,
)


class TestCLI:
    """Tests for CLI functionality."""

    def setup_method(self):
        """Set up test fixtures."""
        self.cli = CLI()
        self.source = FakeScrobbleSource(
            recent={"recenttracks": {"track": [{"name": "Xtal", "artist": {"name": "Aphex Twin"}}]}},
            top_tracks=top_tracks_payload(("Xtal", "Aphex Twin", 10), ("Ageispolis", "Aphex Twin", 5)),
            top_artists=top_artists_payload(("Aphex Twin", 15)),
            user=user_payload(playcount=900, registered={"#text": "2010-04-01 12:00"}),
            tags={"Aphex Twin": tags_payload(("IDM", 10), ("electronic", 5))},
        )
        self.logging_patch = patch('lastfm_lab.interfaces.cli.setup_logging')
        self.mock_setup_logging = self.logging_patch.start()

    def teardown_method(self):
        """Clean up test fixtures."""
        self.logging_patch.stop()

    def _with_fake_source(self):
        return patch.object(CLI, '_create_assembler',
                            side_effect=lambda config, metrics: ReportAssembler(self.source))

    def test_parser_commands(self):
        args = self.cli.parser.parse_args(['wrapped', '--user', 'alice', '--period', 'overall'])
        assert args.command == 'wrapped'
        assert args.user == 'alice'
        assert args.period == 'overall'

        args = self.cli.parser.parse_args(['serve', '--port', '8080'])
        assert args.host == 'localhost'
        assert args.port == 8080

    def test_invalid_period_rejected(self):
        with pytest.raises(SystemExit) as exc_info:
            self.cli.parser.parse_args(['wrapped', '--user', 'alice', '--period', 'decade'])
        assert exc_info.value.code == 2

    def test_no_command(self, capsys):
        assert self.cli.run([]) == EXIT_FAILURE
        assert 'usage' in capsys.readouterr().out

    def test_recent(self, capsys):
        with self._with_fake_source():
            exit_code = self.cli.run(['recent', '--user', 'alice'])

        assert exit_code == 0
        data = json.loads(capsys.readouterr().out)
        assert data['username'] == 'alice'
        assert data['tracks'][0]['artist'] == 'Aphex Twin'

    def test_genres(self, capsys):
        with self._with_fake_source():
            exit_code = self.cli.run(['genres', '--user', 'alice', '--period', '6month'])

        assert exit_code == 0
        data = json.loads(capsys.readouterr().out)
        assert [g['name'] for g in data['topGenres']] == ['idm', 'electronic']

    def test_wrapped(self, capsys):
        with self._with_fake_source():
            exit_code = self.cli.run(['wrapped', '--user', 'alice', '--period', 'overall'])

        assert exit_code == 0
        data = json.loads(capsys.readouterr().out)
        assert data['totalScrobbles'] == 900
        assert data['since'] == {'month': 'april', 'year': 2010}

    def test_source_closed_after_report(self, capsys):
        self.source.close = Mock()

        with self._with_fake_source():
            assert self.cli.run(['recent', '--user', 'alice']) == 0

        self.source.close.assert_called_once()

    def test_source_closed_when_report_fails(self):
        assembler = Mock()
        assembler.recent_tracks.side_effect = AggregationFailure('recent', 'boom')

        with patch.object(CLI, '_create_assembler', return_value=assembler):
            assert self.cli.run(['recent', '--user', 'alice']) == EXIT_FAILURE

        assembler.source.close.assert_called_once()

    def test_log_level_from_flag(self):
        with self._with_fake_source():
            self.cli.run(['recent', '--user', 'alice', '--log-level', 'DEBUG'])

        self.mock_setup_logging.assert_called_once_with('DEBUG')

    def test_blank_user_is_missing_input(self):
        with self._with_fake_source():
            assert self.cli.run(['wrapped', '--user', '  ']) == EXIT_MISSING_INPUT

    def test_missing_api_key(self):
        assert self.cli.run(['recent', '--user', 'alice']) == EXIT_FAILURE

    def test_missing_env_file(self, tmp_path):
        argv = ['recent', '--user', 'alice', '--env-file', str(tmp_path / 'absent.env')]
        assert self.cli.run(argv) == EXIT_FAILURE

    def test_env_file_supplies_api_key(self, tmp_path, capsys):
        env_file = tmp_path / '.env'
        env_file.write_text("LASTFM_API_KEY=from_file\n")

        with patch.object(CLI, '_create_assembler') as mock_create:
            mock_create.side_effect = lambda config, metrics: ReportAssembler(self.source)
            exit_code = self.cli.run(['recent', '--user', 'alice', '--env-file', str(env_file)])

        assert exit_code == 0
        config = mock_create.call_args[0][0]
        assert config.api_key == 'from_file'

    def test_aggregation_failure(self):
        assembler = Mock()
        assembler.wrapped.side_effect = AggregationFailure('wrapped', 'boom')

        with patch.object(CLI, '_create_assembler', return_value=assembler):
            assert self.cli.run(['wrapped', '--user', 'alice']) == EXIT_FAILURE

    def test_serve(self, monkeypatch):
        monkeypatch.setenv('LASTFM_API_KEY', 'k')
        with patch('lastfm_lab.interfaces.http.HTTPServer') as mock_server:
            exit_code = self.cli.run(['serve', '--host', '0.0.0.0', '--port', '9000'])

        assert exit_code == 0
        _, kwargs = mock_server.call_args
        assert kwargs['host'] == '0.0.0.0'
        assert kwargs['port'] == 9000
        mock_server.return_value.run.assert_called_once()

    def test_main_exits_with_code(self):
        with patch('sys.argv', ['lastfm-lab']):
            with pytest.raises(SystemExit) as exc_info:
                main()
        assert exc_info.value.code == EXIT_FAILURE
