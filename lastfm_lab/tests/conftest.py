import os
import sys
import pytest


def _ensure_project_root_on_sys_path() -> None:
    here = os.path.dirname(__file__)
    project_root = os.path.abspath(os.path.join(here, "..", ".."))
    if project_root not in sys.path:
        sys.path.insert(0, project_root)


_ensure_project_root_on_sys_path()


@pytest.fixture(autouse=True)
def _clear_lastfm_env():
    """Ensure LASTFM_* settings from the developer's shell or a loaded .env
    do not leak into tests; restore them afterwards.
    """
    keys = [k for k in os.environ if k.startswith('LASTFM_')]
    backup = {k: os.environ.get(k) for k in keys}
    for k in keys:
        os.environ.pop(k, None)
    try:
        yield
    finally:
        for k in [k for k in os.environ if k.startswith('LASTFM_')]:
            os.environ.pop(k, None)
        for k, v in backup.items():
            os.environ[k] = v


@pytest.fixture(autouse=True)
def _reset_global_config():
    """Drop the lazily loaded global config so each test reads its own environment."""
    import lastfm_lab.crosscutting.config as config_module
    config_module._config = None
    yield
    config_module._config = None
