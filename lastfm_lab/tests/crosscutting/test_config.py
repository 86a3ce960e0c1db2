import os

import pytest

from lastfm_lab.crosscutting.config import (
    DEFAULT_ALLOWED_ORIGINS, DEFAULT_API_URL, AppConfig, ConfigError, get_config,
    load_config, read_settings, setup_config,
)


class TestLoadConfig:
    """Tests for configuration loading."""

    def test_defaults(self):
        config = load_config(environ={})

        assert config.api_key is None
        assert not config.has_api_key
        assert config.api_url == DEFAULT_API_URL
        assert config.allowed_origins == DEFAULT_ALLOWED_ORIGINS
        assert config.request_timeout is None
        assert config.max_workers == 8
        assert config.cache_max_age == 300
        assert config.log_level == 'INFO'

    def test_environment_values(self):
        config = load_config(environ={
            'LASTFM_API_KEY': ' abc123 ',
            'LASTFM_ALLOWED_ORIGINS': 'https://a.example, https://b.example,',
            'LASTFM_TIMEOUT': '4.5',
            'LASTFM_MAX_WORKERS': '2',
            'LASTFM_CACHE_MAX_AGE': '0',
            'LASTFM_LOG_LEVEL': 'debug',
        })

        assert config.api_key == 'abc123'
        assert config.allowed_origins == ('https://a.example', 'https://b.example')
        assert config.request_timeout == 4.5
        assert config.max_workers == 2
        assert config.cache_max_age == 0
        assert config.log_level == 'DEBUG'

    @pytest.mark.parametrize("key,value", [
        ('LASTFM_MAX_WORKERS', 'many'),
        ('LASTFM_MAX_WORKERS', '0'),
        ('LASTFM_CACHE_MAX_AGE', '-1'),
        ('LASTFM_TIMEOUT', 'soon'),
        ('LASTFM_TIMEOUT', '0'),
        ('LASTFM_LOG_LEVEL', 'LOUD'),
    ])
    def test_invalid_values(self, key, value):
        with pytest.raises(ConfigError):
            load_config(environ={key: value})

    def test_env_file_and_environment_precedence(self, tmp_path):
        env_file = tmp_path / '.env'
        env_file.write_text("LASTFM_API_KEY=from_file\nLASTFM_MAX_WORKERS=3\n")

        config = load_config(str(env_file), environ={'LASTFM_API_KEY': 'from_env'})

        assert config.api_key == 'from_env'
        assert config.max_workers == 3

    def test_missing_env_file(self, tmp_path):
        with pytest.raises(ConfigError):
            read_settings(str(tmp_path / 'absent.env'), environ={})

    def test_unrelated_environment_ignored(self):
        settings = read_settings(environ={'HOME': '/root', 'LASTFM_API_KEY': 'k'})
        assert settings == {'LASTFM_API_KEY': 'k'}


class TestAppConfig:
    """Tests for AppConfig helpers."""

    def test_require_api_key(self):
        with pytest.raises(ConfigError):
            AppConfig().require_api_key()
        assert AppConfig(api_key='k').require_api_key() == 'k'

    def test_origin_allow_list(self):
        config = AppConfig(allowed_origins=('https://a.example',))
        assert config.is_origin_allowed('https://a.example')
        assert not config.is_origin_allowed('https://evil.example')
        assert not config.is_origin_allowed('')
        assert not config.is_origin_allowed(None)

    def test_summary_hides_key(self):
        summary = AppConfig(api_key='super_secret_key').summary()
        assert summary['has_api_key'] is True
        assert 'super_secret_key' not in str(summary)


class TestGlobalConfig:
    """Tests for the process-wide configuration."""

    def test_get_config_reads_environment_once(self):
        os.environ['LASTFM_API_KEY'] = 'first'
        config = get_config()
        os.environ['LASTFM_API_KEY'] = 'second'

        assert get_config() is config
        assert config.api_key == 'first'

    def test_setup_config_replaces_global(self, tmp_path):
        env_file = tmp_path / 'custom.env'
        env_file.write_text("LASTFM_CACHE_MAX_AGE=60\n")

        config = setup_config(str(env_file))

        assert get_config() is config
        assert config.cache_max_age == 60
