from __future__ import annotations

import asyncio
import contextlib
import functools
import os

import uvicorn
from starlette.applications import Starlette

from auth import meli_oauth2
from auth.flow import AuthorizationFlow
from auth.routes import RelayRoutes
from auth.sheets import SheetsTokenSink
from auth.state_store import MemoryStateStore
from auth.token_sink import FileTokenSink, TokenSink
from relay.constants import LOGGER
from relay.env import RelaySettings, _get_env_int, load_env, load_settings, setup_logging
from relay.http import build_async_client


def build_token_sink(settings: RelaySettings) -> TokenSink:
    if settings.sheets_enabled:
        LOGGER.info(
            "Storing tokens in spreadsheet %s (tab %s).",
            settings.spreadsheet_id,
            settings.sheet_name,
        )
        return SheetsTokenSink(
            spreadsheet_id=settings.spreadsheet_id,
            google_client_id=settings.google_client_id,
            google_client_secret=settings.google_client_secret,
            google_refresh_token=settings.google_refresh_token,
            sheet_name=settings.sheet_name,
            timeout=settings.http_timeout,
        )

    LOGGER.warning(
        "Google Sheets is not configured; storing tokens in %s.",
        settings.token_sink_path,
    )
    return FileTokenSink(settings.token_sink_path)


async def sweep_expired_states(flow: AuthorizationFlow, interval_seconds: float) -> None:
    while True:
        await asyncio.sleep(interval_seconds)
        await flow.sweep_expired()


def create_app(
    settings: RelaySettings | None = None,
    *,
    token_sink: TokenSink | None = None,
    debug_enabled: bool = False,
) -> Starlette:
    if settings is None:
        load_env()
        debug_enabled = setup_logging()
        settings = load_settings()

    sink = token_sink if token_sink is not None else build_token_sink(settings)
    exchange_client = build_async_client(
        timeout=settings.http_timeout,
        debug_enabled=debug_enabled,
    )
    profile_client = build_async_client(
        timeout=settings.http_timeout,
        max_retries=settings.http_max_retries,
        debug_enabled=debug_enabled,
    )

    flow = AuthorizationFlow(
        client_id=settings.client_id,
        client_secret=settings.client_secret,
        redirect_uri=settings.redirect_uri,
        state_store=MemoryStateStore(settings.state_ttl_seconds),
        token_sink=sink,
        authorize_url=settings.authorize_url,
        profile_timeout=settings.http_timeout,
        exchange_code_fn=functools.partial(
            meli_oauth2.exchange_code,
            token_url=settings.token_url,
            timeout=settings.http_timeout,
            client=exchange_client,
        ),
        fetch_nickname_fn=functools.partial(
            meli_oauth2.fetch_nickname,
            profile_url=settings.profile_url,
            timeout=settings.http_timeout,
            client=profile_client,
        ),
    )

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette):
        del app
        sweeper = asyncio.create_task(
            sweep_expired_states(flow, settings.state_sweep_interval_seconds)
        )
        LOGGER.info("Callback URL: %s", settings.redirect_uri)
        try:
            yield
        finally:
            sweeper.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await sweeper
            await exchange_client.aclose()
            await profile_client.aclose()
            await sink.aclose()

    app = Starlette(
        routes=RelayRoutes(flow, redirect_path=settings.redirect_path).routes(),
        lifespan=lifespan,
    )
    app.state.flow = flow
    app.state.settings = settings
    return app


def main() -> None:
    host = os.getenv("HOST", "0.0.0.0")
    port = _get_env_int("PORT", 3000)
    app = create_app()
    LOGGER.info("Listening on http://%s:%s", host, port)
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    main()
