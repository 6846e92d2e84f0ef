from __future__ import annotations

from starlette.background import BackgroundTask
from starlette.requests import Request
from starlette.responses import JSONResponse, PlainTextResponse, RedirectResponse, Response
from starlette.routing import Route

from auth.errors import AuthorizationFlowError, TokenExchangeFailed
from auth.flow import AuthorizationFlow
from relay.constants import APP_VERSION, DEFAULT_REDIRECT_PATH, SERVICE_BANNER


class RelayRoutes:
    def __init__(
        self,
        flow: AuthorizationFlow,
        *,
        redirect_path: str = DEFAULT_REDIRECT_PATH,
    ) -> None:
        self.flow = flow
        self.redirect_path = redirect_path

    def routes(self) -> list[Route]:
        return [
            Route("/", self._handle_root, methods=["GET"]),
            Route("/health", self._handle_health, methods=["GET"]),
            Route("/start", self._handle_start, methods=["GET"]),
            Route(self.redirect_path, self._handle_callback, methods=["GET"]),
        ]

    # -- handlers --------------------------------------------------------------

    async def _handle_root(self, request: Request) -> Response:
        del request
        return PlainTextResponse(SERVICE_BANNER)

    async def _handle_health(self, request: Request) -> Response:
        del request
        return JSONResponse({"status": "ok", "version": APP_VERSION})

    async def _handle_start(self, request: Request) -> Response:
        del request
        authorization_url = await self.flow.begin_authorization()
        return RedirectResponse(url=authorization_url, status_code=302)

    async def _handle_callback(self, request: Request) -> Response:
        provider_error = request.query_params.get("error")
        if provider_error:
            description = request.query_params.get("error_description") or provider_error
            return self._error("provider_error", f"Authorization was not granted: {description}", 400)

        try:
            result = await self.flow.complete_authorization(
                code=request.query_params.get("code"),
                state=request.query_params.get("state"),
            )
        except TokenExchangeFailed as error:
            detail = error.body or error.description
            return self._error(error.code, f"Failed to exchange code for token: {detail}", 500)
        except AuthorizationFlowError as error:
            return self._error(error.code, error.description, error.status_code)

        return JSONResponse(
            result.to_payload(),
            background=BackgroundTask(self.flow.persist, result),
        )

    # -- helpers ---------------------------------------------------------------

    def _error(self, code: str, description: str, status_code: int) -> Response:
        return JSONResponse(
            {"error": code, "error_description": description},
            status_code=status_code,
        )
