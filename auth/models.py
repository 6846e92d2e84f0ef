from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


@dataclass
class PendingAuthorization:
    state: str
    verifier: str
    created_at: float

    def is_expired(self, ttl_seconds: float, *, now: float | None = None) -> bool:
        current = time.time() if now is None else now
        return current - self.created_at >= ttl_seconds


@dataclass
class TokenResult:
    access_token: str
    refresh_token: str
    expires_in: int | None
    user_id: str
    raw: dict[str, Any] = field(default_factory=dict)
    nickname: str = ""

    def to_payload(self) -> dict[str, Any]:
        payload = dict(self.raw)
        payload.update(
            {
                "accessToken": self.access_token,
                "refreshToken": self.refresh_token,
                "expiresIn": self.expires_in,
                "userId": self.user_id,
            }
        )
        if self.nickname:
            payload["nickname"] = self.nickname
        return payload


@dataclass
class TokenRecord:
    timestamp: str
    user_id: str
    access_token: str
    refresh_token: str
    nickname: str = ""

    @classmethod
    def from_result(cls, result: TokenResult, *, now: datetime | None = None) -> "TokenRecord":
        moment = now or datetime.now(timezone.utc)
        return cls(
            timestamp=moment.isoformat(),
            user_id=result.user_id,
            access_token=result.access_token,
            refresh_token=result.refresh_token,
            nickname=result.nickname,
        )

    def as_row(self) -> list[str]:
        return [
            self.timestamp,
            self.user_id,
            self.nickname,
            self.access_token,
            self.refresh_token,
        ]
