from __future__ import annotations

import urllib.parse
from dataclasses import dataclass, field
from typing import Any

import httpx

from auth.errors import ProfileLookupFailed, TokenExchangeFailed

MELI_AUTHORIZE_URL = "https://auth.mercadolivre.com.br/authorization"
MELI_TOKEN_URL = "https://api.mercadolibre.com/oauth/token"
MELI_PROFILE_URL = "https://api.mercadolibre.com/users/me"

DEFAULT_TIMEOUT_SECONDS = 10.0


@dataclass
class TokenResponse:
    access_token: str
    refresh_token: str
    expires_in: int | None
    user_id: str
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Any) -> "TokenResponse":
        if not isinstance(payload, dict):
            raise TokenExchangeFailed("Token response must be a JSON object.")

        access_token = payload.get("access_token")
        refresh_token = payload.get("refresh_token") or ""
        expires_in = payload.get("expires_in")
        user_id = payload.get("user_id")

        if not isinstance(access_token, str) or not access_token:
            raise TokenExchangeFailed("Token response missing access_token.")
        if not isinstance(refresh_token, str):
            raise TokenExchangeFailed("Token response refresh_token must be a string.")
        if expires_in is not None and not isinstance(expires_in, int):
            raise TokenExchangeFailed("Token response expires_in must be an integer.")

        return cls(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=expires_in,
            user_id="" if user_id is None else str(user_id),
            raw=payload,
        )


def build_authorization_url(
    client_id: str,
    redirect_uri: str,
    state: str,
    code_challenge: str,
    *,
    authorize_url: str = MELI_AUTHORIZE_URL,
) -> str:
    query = {
        "response_type": "code",
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "state": state,
        "code_challenge_method": "S256",
        "code_challenge": code_challenge,
    }
    return f"{authorize_url}?{urllib.parse.urlencode(query)}"


async def exchange_code(
    client_id: str,
    client_secret: str,
    code: str,
    redirect_uri: str,
    code_verifier: str,
    *,
    token_url: str = MELI_TOKEN_URL,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    client: httpx.AsyncClient | None = None,
) -> TokenResponse:
    """Trade an authorization code for provider tokens.

    Not retried: an authorization code can be redeemed only once.
    """
    own_client = client is None
    http_client = client or httpx.AsyncClient()
    payload = {
        "grant_type": "authorization_code",
        "client_id": client_id,
        "client_secret": client_secret,
        "code": code,
        "redirect_uri": redirect_uri,
        "code_verifier": code_verifier,
    }

    try:
        response = await http_client.post(
            token_url,
            data=payload,
            headers={"Accept": "application/json"},
            timeout=timeout,
        )
        response.raise_for_status()
        body = response.json()
    except httpx.HTTPStatusError as error:
        detail = error.response.text
        raise TokenExchangeFailed(
            f"Token request failed with status {error.response.status_code}: {detail}",
            status=error.response.status_code,
            body=detail,
        ) from error
    except httpx.HTTPError as error:
        raise TokenExchangeFailed(f"Token request failed: {error!r}") from error
    except ValueError as error:
        raise TokenExchangeFailed("Token response is not valid JSON.") from error
    finally:
        if own_client:
            await http_client.aclose()

    return TokenResponse.from_payload(body)


async def fetch_nickname(
    access_token: str,
    *,
    profile_url: str = MELI_PROFILE_URL,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    client: httpx.AsyncClient | None = None,
) -> str:
    own_client = client is None
    http_client = client or httpx.AsyncClient()

    try:
        response = await http_client.get(
            profile_url,
            headers={"Authorization": f"Bearer {access_token}"},
            timeout=timeout,
        )
        response.raise_for_status()
        payload = response.json()
    except httpx.HTTPStatusError as error:
        raise ProfileLookupFailed(
            f"Profile request failed with status {error.response.status_code}."
        ) from error
    except (httpx.HTTPError, ValueError) as error:
        raise ProfileLookupFailed(f"Profile request failed: {error!r}") from error
    finally:
        if own_client:
            await http_client.aclose()

    nickname = payload.get("nickname") if isinstance(payload, dict) else None
    return nickname if isinstance(nickname, str) else ""
