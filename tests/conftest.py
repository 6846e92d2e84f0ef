import pytest

RELAY_ENV_KEYS = (
    "ML_CLIENT_ID",
    "ML_CLIENT_SECRET",
    "BASE_URL",
    "REDIRECT_PATH",
    "ML_AUTHORIZE_URL",
    "ML_TOKEN_URL",
    "ML_PROFILE_URL",
    "ML_HTTP_TIMEOUT",
    "ML_HTTP_MAX_RETRIES",
    "STATE_TTL_SECONDS",
    "STATE_SWEEP_INTERVAL_SECONDS",
    "GOOGLE_CLIENT_ID",
    "GOOGLE_CLIENT_SECRET",
    "GOOGLE_REFRESH_TOKEN",
    "SPREADSHEET_ID",
    "SHEET_NAME",
    "TOKEN_SINK_PATH",
    "RELAY_DEBUG",
    "HOST",
    "PORT",
)


@pytest.fixture
def relay_env(monkeypatch, tmp_path):
    for key in RELAY_ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("ML_CLIENT_ID", "ml-client")
    monkeypatch.setenv("ML_CLIENT_SECRET", "ml-secret")
    monkeypatch.setenv("BASE_URL", "https://relay.example.com")
    monkeypatch.setenv("TOKEN_SINK_PATH", str(tmp_path / "tokens.json"))
    return monkeypatch
