import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Any, Mapping, Optional, Tuple

from dotenv import dotenv_values


DEFAULT_API_URL = 'https://ws.audioscrobbler.com/2.0/'
DEFAULT_ALLOWED_ORIGINS = ('https://lastfm-lab.vercel.app',)
DEFAULT_CACHE_MAX_AGE = 300
DEFAULT_MAX_WORKERS = 8


class ConfigError(Exception):
    """Configuration error."""
    pass


@dataclass(frozen=True)
class AppConfig:
    """Immutable process configuration, loaded once at startup."""

    api_key: Optional[str] = None
    api_url: str = DEFAULT_API_URL
    allowed_origins: Tuple[str, ...] = DEFAULT_ALLOWED_ORIGINS
    request_timeout: Optional[float] = None
    max_workers: int = DEFAULT_MAX_WORKERS
    cache_max_age: int = DEFAULT_CACHE_MAX_AGE
    log_level: str = 'INFO'

    @property
    def has_api_key(self) -> bool:
        return bool(self.api_key)

    def require_api_key(self) -> str:
        """Return the API key or fail when it was never configured."""
        if not self.api_key:
            raise ConfigError("LASTFM_API_KEY not found in environment")
        return self.api_key

    def is_origin_allowed(self, origin: Optional[str]) -> bool:
        return bool(origin) and origin in self.allowed_origins

    def summary(self) -> Dict[str, Any]:
        """Get configuration summary (without sensitive data)."""
        return {
            'api_url': self.api_url,
            'has_api_key': self.has_api_key,
            'allowed_origins': list(self.allowed_origins),
            'request_timeout': self.request_timeout,
            'max_workers': self.max_workers,
            'cache_max_age': self.cache_max_age,
            'log_level': self.log_level,
        }


def _parse_origins(raw: Optional[str]) -> Tuple[str, ...]:
    if raw is None:
        return DEFAULT_ALLOWED_ORIGINS
    return tuple(origin.strip() for origin in raw.split(',') if origin.strip())


def _parse_int(name: str, raw: Optional[str], default: int, minimum: int) -> int:
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}")
    if value < minimum:
        raise ConfigError(f"{name} must be >= {minimum}, got {value}")
    return value


def _parse_timeout(raw: Optional[str]) -> Optional[float]:
    if raw is None or not raw.strip():
        return None
    try:
        value = float(raw)
    except ValueError:
        raise ConfigError(f"LASTFM_TIMEOUT must be a number of seconds, got {raw!r}")
    if value <= 0:
        raise ConfigError(f"LASTFM_TIMEOUT must be positive, got {value}")
    return value


def read_settings(env_file: Optional[str] = None,
                  environ: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    """Merge .env file values with the process environment (environment wins)."""
    settings: Dict[str, str] = {}
    if env_file:
        path = Path(env_file)
        if not path.exists():
            raise ConfigError(f"Env file {env_file} does not exist")
        settings.update({k: v for k, v in dotenv_values(path).items() if v is not None})
    source = os.environ if environ is None else environ
    settings.update({k: v for k, v in source.items() if k.startswith('LASTFM_')})
    return settings


def load_config(env_file: Optional[str] = None,
                environ: Optional[Mapping[str, str]] = None) -> AppConfig:
    """Build an AppConfig from a .env file and the environment."""
    settings = read_settings(env_file, environ)

    api_key = (settings.get('LASTFM_API_KEY') or '').strip() or None
    log_level = (settings.get('LASTFM_LOG_LEVEL') or 'INFO').strip().upper()
    if log_level not in ('DEBUG', 'INFO', 'WARNING', 'ERROR'):
        raise ConfigError(f"LASTFM_LOG_LEVEL must be DEBUG, INFO, WARNING or ERROR, got {log_level!r}")

    return AppConfig(
        api_key=api_key,
        api_url=(settings.get('LASTFM_API_URL') or DEFAULT_API_URL).strip(),
        allowed_origins=_parse_origins(settings.get('LASTFM_ALLOWED_ORIGINS')),
        request_timeout=_parse_timeout(settings.get('LASTFM_TIMEOUT')),
        max_workers=_parse_int('LASTFM_MAX_WORKERS', settings.get('LASTFM_MAX_WORKERS'),
                               DEFAULT_MAX_WORKERS, minimum=1),
        cache_max_age=_parse_int('LASTFM_CACHE_MAX_AGE', settings.get('LASTFM_CACHE_MAX_AGE'),
                                 DEFAULT_CACHE_MAX_AGE, minimum=0),
        log_level=log_level,
    )


# Global instance, loaded lazily on first use
_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Get global configuration instance."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def setup_config(env_file: Optional[str] = None) -> AppConfig:
    """Load configuration, optionally from a custom .env file, and make it global."""
    global _config
    _config = load_config(env_file)
    return _config
