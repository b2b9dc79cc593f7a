"""
Environment-driven settings.

Values are read from the process environment (and a local .env file
when present) each time `get_settings()` is called.
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()

DEFAULT_AUTOSAVE_DELAY_SECONDS = 2.0
DEFAULT_API_TIMEOUT_SECONDS = 30.0


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return float(raw)


@dataclass(frozen=True)
class Settings:
    api_base_url: str | None
    api_timeout_seconds: float
    autosave_delay_seconds: float
    cors_allowed_origins: list[str]
    log_level: str


def get_settings() -> Settings:
    return Settings(
        api_base_url=os.getenv("FORMFLOW_API_BASE_URL"),
        api_timeout_seconds=_float_env("FORMFLOW_API_TIMEOUT_SECONDS", DEFAULT_API_TIMEOUT_SECONDS),
        autosave_delay_seconds=_float_env(
            "FORMFLOW_AUTOSAVE_DELAY_SECONDS", DEFAULT_AUTOSAVE_DELAY_SECONDS
        ),
        cors_allowed_origins=os.getenv("CORS_ALLOWED_ORIGINS", "*").split(","),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
