# stocksynapse/config.py
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import pydantic
from dotenv import dotenv_values
from pydantic import BaseModel, Field, field_validator

from .errors import ConfigurationError

DEFAULT_ENV_FILE = "local.properties"
DEFAULT_API_BASE = "https://generativelanguage.googleapis.com/v1"
DEFAULT_MODEL = "gemini-pro"

# Settings field -> configuration key (env var / local.properties entry)
_KEYS = {
    "gemini_api_key": "GEMINI_API_KEY",
    "gemini_model": "GEMINI_MODEL",
    "gemini_api_base": "GEMINI_API_BASE",
    "forecast_max_attempts": "FORECAST_MAX_ATTEMPTS",
    "forecast_backoff_seconds": "FORECAST_BACKOFF_SECONDS",
    "forecast_timeout_seconds": "FORECAST_TIMEOUT_SECONDS",
    "inventory_backend": "INVENTORY_BACKEND",
    "inventory_file": "INVENTORY_FILE",
    "db_url": "DB_URL",
    "db_user": "DB_USER",
    "db_password": "DB_PASSWORD",
    "api_host": "API_HOST",
    "api_port": "API_PORT",
    "api_url": "API_URL",
    "log_level": "LOG_LEVEL",
}


class Settings(BaseModel):
    gemini_api_key: Optional[str] = None
    gemini_model: str = DEFAULT_MODEL
    gemini_api_base: str = DEFAULT_API_BASE
    forecast_max_attempts: int = Field(default=3, ge=1)
    forecast_backoff_seconds: float = Field(default=30.0, ge=0)
    forecast_timeout_seconds: float = Field(default=60.0, gt=0)

    inventory_backend: str = "json"
    inventory_file: Path = Path("inventory.json")
    db_url: Optional[str] = None
    db_user: Optional[str] = None
    db_password: Optional[str] = None

    api_host: str = "127.0.0.1"
    api_port: int = Field(default=8085, ge=1, le=65535)
    api_url: str = "http://127.0.0.1:8085"
    log_level: str = "INFO"

    @field_validator("gemini_api_key", "db_url", "db_user", "db_password", mode="before")
    @classmethod
    def _blank_as_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("inventory_backend")
    @classmethod
    def _known_backend(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in ("json", "sql"):
            raise ValueError("must be 'json' or 'sql'")
        return v

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, v: str) -> str:
        return v.strip().upper()

    def require_api_key(self) -> str:
        if not self.gemini_api_key:
            raise ConfigurationError(
                "GEMINI_API_KEY is not set. Set it in the environment or in a "
                f"'{DEFAULT_ENV_FILE}' file."
            )
        return self.gemini_api_key


def load_settings(env_file: Union[str, Path, None] = DEFAULT_ENV_FILE,
                  environ: Optional[Mapping[str, str]] = None,
                  **overrides: Any) -> Settings:
    """
    Build Settings once at process start.

    Values come from `env_file` (KEY=VALUE lines, read with python-dotenv),
    then from the process environment, then from explicit keyword overrides;
    later sources win. A missing file is fine.
    """
    environ = os.environ if environ is None else environ
    raw: Dict[str, Any] = {}

    if env_file is not None and Path(env_file).is_file():
        file_values = dotenv_values(env_file)
        for field, key in _KEYS.items():
            if file_values.get(key) is not None:
                raw[field] = file_values[key]

    for field, key in _KEYS.items():
        if key in environ:
            raw[field] = environ[key]

    raw.update(overrides)

    try:
        return Settings(**raw)
    except pydantic.ValidationError as e:
        problems = "; ".join(
            f"{_KEYS.get(str(err['loc'][0]), err['loc'][0])}: {err['msg']}" for err in e.errors()
        )
        raise ConfigurationError(f"Invalid configuration: {problems}") from e
