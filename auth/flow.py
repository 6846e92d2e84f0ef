from __future__ import annotations

import asyncio
from typing import Awaitable, Callable

from auth import meli_oauth2, pkce
from auth.errors import (
    InvalidOrExpiredState,
    MissingParameter,
    PersistenceFailed,
    ProfileLookupFailed,
    TokenExchangeFailed,
)
from auth.models import TokenRecord, TokenResult
from auth.state_store import StateStore
from auth.token_sink import TokenSink
from relay.constants import LOGGER

PersistenceOutcomeFn = Callable[[TokenRecord, PersistenceFailed | None], None]


class AuthorizationFlow:
    """Coordinates one PKCE authorization-code round trip with the provider.

    ``begin_authorization`` issues a state/verifier pair and returns the
    provider URL to redirect the browser to. ``complete_authorization``
    consumes that pair exactly once, exchanges the code, and enriches the
    result. Persistence runs separately through ``persist`` so the caller can
    schedule it after the user-facing response is built.
    """

    def __init__(
        self,
        *,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        state_store: StateStore,
        token_sink: TokenSink | None = None,
        authorize_url: str = meli_oauth2.MELI_AUTHORIZE_URL,
        verifier_length: int = pkce.DEFAULT_VERIFIER_LENGTH,
        profile_timeout: float = meli_oauth2.DEFAULT_TIMEOUT_SECONDS,
        exchange_code_fn: Callable[..., Awaitable[meli_oauth2.TokenResponse]] = (
            meli_oauth2.exchange_code
        ),
        fetch_nickname_fn: Callable[[str], Awaitable[str]] | None = meli_oauth2.fetch_nickname,
        on_persistence_outcome: PersistenceOutcomeFn | None = None,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.state_store = state_store
        self.token_sink = token_sink
        self.authorize_url = authorize_url
        self.verifier_length = verifier_length
        self.profile_timeout = profile_timeout

        self._exchange_code_fn = exchange_code_fn
        self._fetch_nickname_fn = fetch_nickname_fn
        self._on_persistence_outcome = on_persistence_outcome
        self._background_tasks: set[asyncio.Task] = set()

    async def begin_authorization(self) -> str:
        verifier = pkce.new_verifier(self.verifier_length)
        state = pkce.new_state()
        await self.state_store.put(state, verifier)
        LOGGER.info("Issued authorization state %s...", state[:8])

        return meli_oauth2.build_authorization_url(
            client_id=self.client_id,
            redirect_uri=self.redirect_uri,
            state=state,
            code_challenge=pkce.challenge_for(verifier),
            authorize_url=self.authorize_url,
        )

    async def complete_authorization(self, code: str | None, state: str | None) -> TokenResult:
        missing = [
            name
            for name, value in (("code", code), ("state", state))
            if not (value or "").strip()
        ]
        if missing:
            raise MissingParameter(missing)

        verifier = await self.state_store.take(state)
        if verifier is None:
            LOGGER.warning("Rejected callback with unknown or expired state %s...", state[:8])
            raise InvalidOrExpiredState()
        LOGGER.info("Consumed authorization state %s...", state[:8])

        try:
            exchanged = await self._exchange_code_fn(
                client_id=self.client_id,
                client_secret=self.client_secret,
                code=code,
                redirect_uri=self.redirect_uri,
                code_verifier=verifier,
            )
        except TokenExchangeFailed as error:
            LOGGER.error("Token exchange failed: %s", error)
            raise
        except Exception as error:
            LOGGER.error("Token exchange failed: %r", error)
            raise TokenExchangeFailed(f"Token exchange failed: {error}") from error

        result = TokenResult(
            access_token=exchanged.access_token,
            refresh_token=exchanged.refresh_token,
            expires_in=exchanged.expires_in,
            user_id=exchanged.user_id,
            raw=exchanged.raw,
        )
        result.nickname = await self.lookup_nickname(result.access_token)
        return result

    async def lookup_nickname(self, access_token: str) -> str:
        if self._fetch_nickname_fn is None:
            return ""
        try:
            return await asyncio.wait_for(
                self._fetch_nickname_fn(access_token), timeout=self.profile_timeout
            )
        except asyncio.TimeoutError:
            LOGGER.warning(
                "%s Continuing without nickname.",
                ProfileLookupFailed(f"Profile lookup timed out after {self.profile_timeout}s."),
            )
        except ProfileLookupFailed as error:
            LOGGER.warning("%s Continuing without nickname.", error)
        except Exception as error:
            LOGGER.warning("Profile lookup failed: %r. Continuing without nickname.", error)
        return ""

    async def persist(self, result: TokenResult) -> bool:
        record = TokenRecord.from_result(result)
        if self.token_sink is None:
            LOGGER.warning("No token sink configured; tokens for user %s not stored.", record.user_id)
            return False

        failure: PersistenceFailed | None = None
        try:
            await self.token_sink.append(record)
        except Exception as error:
            failure = PersistenceFailed(f"Failed to store tokens: {error}")
            LOGGER.error("%s (user %s)", failure, record.user_id)
        else:
            LOGGER.info("Stored tokens for user %s.", record.user_id)

        self._report_outcome(record, failure)
        return failure is None

    def dispatch_persistence(self, result: TokenResult) -> asyncio.Task:
        task = asyncio.create_task(self.persist(result))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
        return task

    async def sweep_expired(self) -> int:
        removed = await self.state_store.sweep()
        if removed:
            LOGGER.info("Discarded %s expired authorization state(s).", removed)
        return removed

    def _report_outcome(self, record: TokenRecord, failure: PersistenceFailed | None) -> None:
        if self._on_persistence_outcome is None:
            return
        try:
            self._on_persistence_outcome(record, failure)
        except Exception:
            LOGGER.exception("Persistence outcome callback raised.")
