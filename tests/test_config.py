# tests/test_config.py
from pathlib import Path

import pytest

from stocksynapse.config import load_settings
from stocksynapse.errors import ConfigurationError


def test_defaults():
    s = load_settings(env_file=None, environ={})
    assert s.gemini_api_key is None
    assert s.gemini_model == "gemini-pro"
    assert s.forecast_max_attempts == 3
    assert s.forecast_backoff_seconds == 30.0
    assert s.inventory_backend == "json"
    assert s.inventory_file == Path("inventory.json")
    assert s.api_port == 8085


def test_properties_file_then_environment(tmp_path):
    props = tmp_path / "local.properties"
    props.write_text(
        "GEMINI_API_KEY=from-file\n"
        "DB_URL=sqlite:///file.db\n"
        "DB_USER=alice\n"
        "API_PORT=9000\n"
    )
    s = load_settings(env_file=props, environ={"GEMINI_API_KEY": "from-env", "INVENTORY_BACKEND": "SQL"})
    assert s.gemini_api_key == "from-env"
    assert s.db_url == "sqlite:///file.db"
    assert s.db_user == "alice"
    assert s.api_port == 9000
    assert s.inventory_backend == "sql"


def test_missing_properties_file_is_fine(tmp_path):
    s = load_settings(env_file=tmp_path / "nope.properties", environ={"LOG_LEVEL": "debug"})
    assert s.log_level == "DEBUG"


def test_blank_key_counts_as_missing():
    s = load_settings(env_file=None, environ={"GEMINI_API_KEY": "   "})
    assert s.gemini_api_key is None
    with pytest.raises(ConfigurationError):
        s.require_api_key()


def test_require_api_key():
    assert load_settings(env_file=None, environ={"GEMINI_API_KEY": "abc"}).require_api_key() == "abc"


@pytest.mark.parametrize("environ", [
    {"API_PORT": "eighty"},
    {"INVENTORY_BACKEND": "csv"},
    {"FORECAST_MAX_ATTEMPTS": "0"},
])
def test_invalid_values(environ):
    with pytest.raises(ConfigurationError) as exc:
        load_settings(env_file=None, environ=environ)
    assert list(environ)[0] in str(exc.value)
