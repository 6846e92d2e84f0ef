from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from pydantic import AnyHttpUrl, ValidationError

from auth.meli_oauth2 import MELI_AUTHORIZE_URL, MELI_PROFILE_URL, MELI_TOKEN_URL

from .constants import (
    DEFAULT_REDIRECT_PATH,
    DEFAULT_SHEET_NAME,
    DEFAULT_TOKEN_SINK_PATH,
    LOGGER,
)


@dataclass(frozen=True)
class RelaySettings:
    client_id: str
    client_secret: str
    base_url: str
    redirect_path: str = DEFAULT_REDIRECT_PATH
    authorize_url: str = MELI_AUTHORIZE_URL
    token_url: str = MELI_TOKEN_URL
    profile_url: str = MELI_PROFILE_URL
    http_timeout: float = 10.0
    http_max_retries: int = 2
    state_ttl_seconds: int = 600
    state_sweep_interval_seconds: int = 60
    google_client_id: str = ""
    google_client_secret: str = ""
    google_refresh_token: str = ""
    spreadsheet_id: str = ""
    sheet_name: str = DEFAULT_SHEET_NAME
    token_sink_path: str = DEFAULT_TOKEN_SINK_PATH

    @property
    def redirect_uri(self) -> str:
        return f"{self.base_url}{self.redirect_path}"

    @property
    def sheets_enabled(self) -> bool:
        return all(
            (
                self.spreadsheet_id,
                self.google_client_id,
                self.google_client_secret,
                self.google_refresh_token,
            )
        )


def is_truthy(value: str | None) -> bool:
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_env_str(key: str, default: str = "") -> str:
    return os.getenv(key, "").strip() or default


def _get_env_int(key: str, default: int) -> int:
    raw = os.getenv(key, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{key} must be an integer value.")


def _get_env_float(key: str, default: float) -> float:
    raw = os.getenv(key, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise RuntimeError(f"{key} must be a number.")


def load_env() -> None:
    env_path = Path(__file__).resolve().parent.parent / ".env"
    if not env_path.exists():
        return
    from dotenv import load_dotenv

    load_dotenv(env_path, override=True)


def validate_env() -> None:
    required = ("ML_CLIENT_ID", "ML_CLIENT_SECRET", "BASE_URL")
    missing = [key for key in required if not os.getenv(key, "").strip()]
    if missing:
        raise RuntimeError(f"Missing required environment variables: {', '.join(missing)}")

    base_url = os.getenv("BASE_URL", "").strip()
    try:
        AnyHttpUrl(base_url)
    except ValidationError as error:
        raise RuntimeError(
            "BASE_URL must be a valid http(s) URL (for example: "
            "https://meli-oauth-server.onrender.com)."
        ) from error

    redirect_path = os.getenv("REDIRECT_PATH", DEFAULT_REDIRECT_PATH).strip()
    if not redirect_path.startswith("/"):
        raise RuntimeError("REDIRECT_PATH must start with '/'.")


def load_settings() -> RelaySettings:
    validate_env()

    settings = RelaySettings(
        client_id=_get_env_str("ML_CLIENT_ID"),
        client_secret=_get_env_str("ML_CLIENT_SECRET"),
        base_url=_get_env_str("BASE_URL").rstrip("/"),
        redirect_path=_get_env_str("REDIRECT_PATH", DEFAULT_REDIRECT_PATH),
        authorize_url=_get_env_str("ML_AUTHORIZE_URL", MELI_AUTHORIZE_URL),
        token_url=_get_env_str("ML_TOKEN_URL", MELI_TOKEN_URL),
        profile_url=_get_env_str("ML_PROFILE_URL", MELI_PROFILE_URL),
        http_timeout=_get_env_float("ML_HTTP_TIMEOUT", 10.0),
        http_max_retries=_get_env_int("ML_HTTP_MAX_RETRIES", 2),
        state_ttl_seconds=_get_env_int("STATE_TTL_SECONDS", 600),
        state_sweep_interval_seconds=_get_env_int("STATE_SWEEP_INTERVAL_SECONDS", 60),
        google_client_id=_get_env_str("GOOGLE_CLIENT_ID"),
        google_client_secret=_get_env_str("GOOGLE_CLIENT_SECRET"),
        google_refresh_token=_get_env_str("GOOGLE_REFRESH_TOKEN"),
        spreadsheet_id=_get_env_str("SPREADSHEET_ID"),
        sheet_name=_get_env_str("SHEET_NAME", DEFAULT_SHEET_NAME),
        token_sink_path=_get_env_str("TOKEN_SINK_PATH", DEFAULT_TOKEN_SINK_PATH),
    )

    if settings.state_ttl_seconds <= 0:
        raise RuntimeError("STATE_TTL_SECONDS must be positive.")
    if settings.state_sweep_interval_seconds <= 0:
        raise RuntimeError("STATE_SWEEP_INTERVAL_SECONDS must be positive.")
    if settings.http_timeout <= 0:
        raise RuntimeError("ML_HTTP_TIMEOUT must be positive.")
    if settings.spreadsheet_id and not settings.sheets_enabled:
        LOGGER.warning(
            "SPREADSHEET_ID is set but Google credentials are incomplete; "
            "tokens will be written to %s instead.",
            settings.token_sink_path,
        )
    return settings


def setup_logging() -> bool:
    debug_enabled = is_truthy(os.getenv("RELAY_DEBUG", "1"))
    if debug_enabled:
        logging.basicConfig(level=logging.INFO)
        LOGGER.setLevel(logging.INFO)
    return debug_enabled
