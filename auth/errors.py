from __future__ import annotations


class AuthorizationFlowError(RuntimeError):
    code = "authorization_failed"
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.description = message


class MissingParameter(AuthorizationFlowError):
    code = "missing_parameter"
    status_code = 400

    def __init__(self, names: list[str]) -> None:
        super().__init__(f"Missing required parameter(s): {', '.join(names)}.")
        self.names = names


class InvalidOrExpiredState(AuthorizationFlowError):
    code = "invalid_state"
    status_code = 400

    def __init__(self) -> None:
        super().__init__("Unknown, expired or already used state.")


class TokenExchangeFailed(AuthorizationFlowError):
    code = "token_exchange_failed"
    status_code = 500

    def __init__(self, message: str, *, status: int | None = None, body: str = "") -> None:
        super().__init__(message)
        self.status = status
        self.body = body


class PersistenceFailed(AuthorizationFlowError):
    code = "persistence_failed"


class ProfileLookupFailed(AuthorizationFlowError):
    code = "profile_lookup_failed"
