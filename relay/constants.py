from __future__ import annotations

import logging

LOGGER = logging.getLogger("meli_relay")
APP_VERSION = "0.1.0"
SERVICE_BANNER = "OK - ML OAuth PKCE server up"

DEFAULT_REDIRECT_PATH = "/callback"
DEFAULT_SHEET_NAME = "Tokens"
DEFAULT_TOKEN_SINK_PATH = ".tokens.json"
