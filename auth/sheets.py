from __future__ import annotations

import time
import urllib.parse

import httpx

from auth.models import TokenRecord
from auth.token_sink import TokenSink

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
SHEETS_API_URL = "https://sheets.googleapis.com/v4/spreadsheets"

# Refresh the Google access token this many seconds before it expires.
TOKEN_EXPIRY_MARGIN_SECONDS = 60


class SheetsTokenSink(TokenSink):
    """Append token records as rows of a Google Sheets tab.

    Authenticates with a Google OAuth2 refresh token and calls the Sheets v4
    ``values:append`` endpoint directly. Rows are written as
    ``timestamp | user_id | nickname | access_token | refresh_token``.
    """

    def __init__(
        self,
        *,
        spreadsheet_id: str,
        google_client_id: str,
        google_client_secret: str,
        google_refresh_token: str,
        sheet_name: str = "Tokens",
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.spreadsheet_id = spreadsheet_id
        self.sheet_name = sheet_name
        self._google_client_id = google_client_id
        self._google_client_secret = google_client_secret
        self._google_refresh_token = google_refresh_token
        self._timeout = timeout
        self._own_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._access_token: str | None = None
        self._access_token_expires_at = 0.0

    @property
    def append_url(self) -> str:
        cell_range = urllib.parse.quote(f"{self.sheet_name}!A:E", safe="")
        return f"{SHEETS_API_URL}/{self.spreadsheet_id}/values/{cell_range}:append"

    async def append(self, record: TokenRecord) -> None:
        access_token = await self._get_access_token()
        response = await self._client.post(
            self.append_url,
            params={"valueInputOption": "RAW", "insertDataOption": "INSERT_ROWS"},
            json={"values": [record.as_row()]},
            headers={"Authorization": f"Bearer {access_token}"},
            timeout=self._timeout,
        )
        if response.status_code >= 400:
            raise RuntimeError(
                f"Sheets append failed with status {response.status_code}: {response.text}"
            )

    async def aclose(self) -> None:
        if self._own_client:
            await self._client.aclose()

    async def _get_access_token(self) -> str:
        if self._access_token and time.time() < self._access_token_expires_at:
            return self._access_token

        response = await self._client.post(
            GOOGLE_TOKEN_URL,
            data={
                "grant_type": "refresh_token",
                "client_id": self._google_client_id,
                "client_secret": self._google_client_secret,
                "refresh_token": self._google_refresh_token,
            },
            timeout=self._timeout,
        )
        if response.status_code >= 400:
            raise RuntimeError(
                f"Google token refresh failed with status {response.status_code}: "
                f"{response.text}"
            )

        payload = response.json()
        access_token = payload.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            raise RuntimeError("Google token response missing access_token.")

        expires_in = payload.get("expires_in", 3600)
        self._access_token = access_token
        self._access_token_expires_at = (
            time.time() + int(expires_in) - TOKEN_EXPIRY_MARGIN_SECONDS
        )
        return access_token
