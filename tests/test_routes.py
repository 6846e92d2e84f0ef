import urllib.parse

from auth.errors import TokenExchangeFailed
from auth.meli_oauth2 import MELI_AUTHORIZE_URL
from relay.constants import APP_VERSION, SERVICE_BANNER
from tests.oauth_helpers import RecordingTokenSink, _build_client, _issued_state


def test_root_banner() -> None:
    _, _, test_client = _build_client()

    response = test_client.get("/")

    assert response.status_code == 200
    assert response.text == SERVICE_BANNER


def test_health() -> None:
    _, _, test_client = _build_client()

    response = test_client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "version": APP_VERSION}


def test_start_redirects_to_provider() -> None:
    flow, _, test_client = _build_client()

    response = test_client.get("/start", follow_redirects=False)

    assert response.status_code == 302
    location = response.headers["location"]
    assert location.startswith(MELI_AUTHORIZE_URL)
    query = urllib.parse.parse_qs(urllib.parse.urlparse(location).query)
    assert query["code_challenge_method"] == ["S256"]
    assert _issued_state(location) in flow.state_store


def test_start_never_reuses_state() -> None:
    _, _, test_client = _build_client()

    first = test_client.get("/start", follow_redirects=False)
    second = test_client.get("/start", follow_redirects=False)

    assert _issued_state(first.headers["location"]) != _issued_state(second.headers["location"])


def test_callback_returns_tokens_and_persists() -> None:
    sink = RecordingTokenSink()
    _, calls, test_client = _build_client(token_sink=sink)
    state = _issued_state(test_client.get("/start", follow_redirects=False).headers["location"])

    response = test_client.get("/callback", params={"code": "abc", "state": state})

    assert response.status_code == 200
    payload = response.json()
    assert payload["accessToken"] == "APP_USR-access"
    assert payload["refreshToken"] == "TG-refresh"
    assert payload["expiresIn"] == 21600
    assert payload["userId"] == "123456789"
    assert payload["nickname"] == "LOJA_TESTE"
    assert payload["access_token"] == "APP_USR-access"
    assert payload["scope"] == "offline_access read write"
    assert calls["exchange"][0]["code"] == "abc"
    [record] = sink.records
    assert record.access_token == "APP_USR-access"
    assert record.refresh_token == "TG-refresh"


def test_callback_replay_is_rejected() -> None:
    _, calls, test_client = _build_client()
    state = _issued_state(test_client.get("/start", follow_redirects=False).headers["location"])

    first = test_client.get("/callback", params={"code": "abc", "state": state})
    second = test_client.get("/callback", params={"code": "abc", "state": state})

    assert first.status_code == 200
    assert second.status_code == 400
    assert second.json()["error"] == "invalid_state"
    assert len(calls["exchange"]) == 1


def test_callback_unknown_state() -> None:
    _, calls, test_client = _build_client()

    response = test_client.get("/callback", params={"code": "abc", "state": "missing"})

    assert response.status_code == 400
    assert response.json()["error"] == "invalid_state"
    assert calls["exchange"] == []


def test_callback_missing_code() -> None:
    _, calls, test_client = _build_client()
    state = _issued_state(test_client.get("/start", follow_redirects=False).headers["location"])

    response = test_client.get("/callback", params={"state": state})

    assert response.status_code == 400
    assert response.json()["error"] == "missing_parameter"
    assert calls["exchange"] == []


def test_callback_missing_everything() -> None:
    _, calls, test_client = _build_client()

    response = test_client.get("/callback")

    assert response.status_code == 400
    assert "code, state" in response.json()["error_description"]
    assert calls["exchange"] == []


def test_callback_provider_error() -> None:
    _, calls, test_client = _build_client()

    response = test_client.get(
        "/callback",
        params={"error": "access_denied", "error_description": "user declined"},
    )

    assert response.status_code == 400
    assert response.json()["error"] == "provider_error"
    assert "user declined" in response.json()["error_description"]
    assert calls["exchange"] == []


def test_callback_exchange_failure_returns_500_without_persisting() -> None:
    async def failing_exchange(**kwargs):
        del kwargs
        raise TokenExchangeFailed(
            "Token request failed with status 400",
            status=400,
            body='{"error":"invalid_grant"}',
        )

    sink = RecordingTokenSink()
    _, _, test_client = _build_client(exchange_code_fn=failing_exchange, token_sink=sink)
    state = _issued_state(test_client.get("/start", follow_redirects=False).headers["location"])

    response = test_client.get("/callback", params={"code": "abc", "state": state})

    assert response.status_code == 500
    assert response.json()["error"] == "token_exchange_failed"
    assert "invalid_grant" in response.json()["error_description"]
    assert sink.records == []


def test_callback_succeeds_when_persistence_fails() -> None:
    sink = RecordingTokenSink(error=RuntimeError("quota exceeded"))
    _, _, test_client = _build_client(token_sink=sink)
    state = _issued_state(test_client.get("/start", follow_redirects=False).headers["location"])

    response = test_client.get("/callback", params={"code": "abc", "state": state})

    assert response.status_code == 200
    assert response.json()["accessToken"] == "APP_USR-access"


def test_callback_succeeds_when_profile_lookup_fails() -> None:
    async def failing_nickname(access_token: str) -> str:
        raise RuntimeError("profile down")

    sink = RecordingTokenSink()
    _, _, test_client = _build_client(fetch_nickname_fn=failing_nickname, token_sink=sink)
    state = _issued_state(test_client.get("/start", follow_redirects=False).headers["location"])

    response = test_client.get("/callback", params={"code": "abc", "state": state})

    assert response.status_code == 200
    assert "nickname" not in response.json()
    assert sink.records[0].nickname == ""
