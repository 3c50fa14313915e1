from __future__ import annotations

import time
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any

DEFAULT_HEADER_NAME = "x-csrf-token"
DEFAULT_COOKIE_NAME = "__csrf_token"
BODY_FIELD = "_csrf"

PROTECTED_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})


def now_ms() -> int:
    return int(time.time() * 1000)


class TokenState(str, Enum):
    EMPTY = "empty"
    VALID = "valid"
    NEARING_EXPIRY = "nearing_expiry"
    EXPIRED = "expired"


@dataclass(frozen=True, slots=True)
class TokenRecord:
    token: str
    expires_at: int  # epoch ms
    header_name: str = DEFAULT_HEADER_NAME
    cookie_name: str = DEFAULT_COOKIE_NAME

    def is_valid(self, now: int) -> bool:
        return int(now) < int(self.expires_at)

    def ms_until_expiry(self, now: int) -> int:
        return max(0, int(self.expires_at) - int(now))

    def state(self, now: int, *, refresh_threshold_ms: int) -> TokenState:
        if not self.is_valid(now):
            return TokenState.EXPIRED
        if int(self.expires_at) - int(now) <= int(refresh_threshold_ms):
            return TokenState.NEARING_EXPIRY
        return TokenState.VALID


@dataclass(frozen=True, slots=True)
class TokenResponse:
    """
    Parsed token endpoint payload.

    `token`/`expires_at` are None for a refresh answer that did not rotate.
    """

    rotated: bool
    token: str | None = None
    expires_at: int | None = None
    header_name: str | None = None
    cookie_name: str | None = None

    def to_record(self, *, header_name: str, cookie_name: str) -> TokenRecord:
        if not self.token or self.expires_at is None:
            raise ValueError("token response carries no token")
        return TokenRecord(
            token=self.token,
            expires_at=int(self.expires_at),
            header_name=self.header_name or header_name,
            cookie_name=self.cookie_name or cookie_name,
        )


@dataclass(frozen=True, slots=True)
class CsrfStatus:
    has_token: bool
    state: TokenState
    token_expiry: int | None
    is_expiring: bool
    time_until_expiry_ms: int
    header_name: str
    cookie_name: str
    is_refreshing: bool
    sweep_running: bool

    def as_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["state"] = self.state.value
        return d
