from __future__ import annotations

import math
from collections.abc import Callable
from typing import Any

import httpx

from lingaplink_csrf.csrf.errors import AuthRequiredError, NetworkError, TokenFetchError
from lingaplink_csrf.csrf.models import BODY_FIELD, TokenResponse
from lingaplink_csrf.utils.log import logger

AuthHeaderProvider = Callable[[], str | None]


def _no_auth() -> str | None:
    return None


def _server_message(resp: httpx.Response) -> str | None:
    try:
        data = resp.json()
    except ValueError:
        return None
    if isinstance(data, dict):
        for key in ("message", "error", "detail"):
            v = data.get(key)
            if isinstance(v, str) and v.strip():
                return v.strip()
    return None


def _parse_expiry(raw: Any) -> int | None:
    if isinstance(raw, bool) or raw is None:
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError, OverflowError):
        return None
    if not math.isfinite(value):
        return None
    return int(value)


def _opt_str(raw: Any) -> str | None:
    if isinstance(raw, str) and raw.strip():
        return raw.strip()
    return None


class TokenEndpointClient:
    """
    Thin async client for the CSRF token issuing endpoints.

    Maps every outcome onto TokenResponse or one of the CsrfError kinds.
    The Authorization value comes from `auth_header`; nothing else is attached here.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        *,
        token_url: str,
        refresh_url: str,
        auth_header: AuthHeaderProvider | None = None,
        owns_http: bool = False,
    ) -> None:
        self.http = http
        self.token_url = token_url
        self.refresh_url = refresh_url
        self.auth_header = auth_header or _no_auth
        self.owns_http = owns_http

    async def aclose(self) -> None:
        if self.owns_http:
            await self.http.aclose()

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        auth = self.auth_header()
        if auth:
            headers["Authorization"] = auth
        return headers

    async def _send(self, method: str, url: str, *, action: str, **kwargs: Any) -> dict[str, Any]:
        try:
            resp = await self.http.request(method, url, **kwargs)
        except httpx.TransportError as ex:
            logger.warning("csrf_endpoint_unreachable", action=action, url=url, error=str(ex))
            raise NetworkError(f"Network error during CSRF token {action}: {ex}") from ex
        except httpx.HTTPError as ex:
            logger.warning("csrf_endpoint_bad_response", action=action, url=url, error=str(ex))
            raise TokenFetchError(f"Malformed CSRF token {action} response: {ex}") from ex

        if resp.status_code == 401:
            raise AuthRequiredError(
                f"Authentication required for CSRF token {action}", status_code=401
            )
        if not resp.is_success:
            msg = _server_message(resp) or f"HTTP {resp.status_code}: {resp.reason_phrase}"
            raise TokenFetchError(msg, status_code=resp.status_code)

        try:
            data = resp.json()
        except ValueError as ex:
            raise TokenFetchError(
                f"Malformed CSRF token {action} response", status_code=resp.status_code
            ) from ex
        if not isinstance(data, dict):
            raise TokenFetchError(
                f"Malformed CSRF token {action} response", status_code=resp.status_code
            )
        if not data.get("success"):
            msg = _opt_str(data.get("message")) or f"Failed to {action} CSRF token"
            raise TokenFetchError(msg, status_code=resp.status_code)
        return data

    async def fetch_token(self) -> TokenResponse:
        data = await self._send("GET", self.token_url, action="fetch", headers=self._headers())
        token = _opt_str(data.get("csrfToken"))
        if token is None:
            raise TokenFetchError(_opt_str(data.get("message")) or "Failed to fetch CSRF token")
        expires_at = _parse_expiry(data.get("expiry"))
        if expires_at is None:
            raise TokenFetchError("CSRF token response carries no usable expiry")
        return TokenResponse(
            rotated=True,
            token=token,
            expires_at=expires_at,
            header_name=_opt_str(data.get("headerName")),
            cookie_name=_opt_str(data.get("cookieName")),
        )

    async def refresh_token(self, current: str | None, *, header_name: str) -> TokenResponse:
        headers = self._headers()
        # double-submit: header and body carry the same value
        if current:
            headers[header_name] = current
        data = await self._send(
            "POST",
            self.refresh_url,
            action="refresh",
            headers=headers,
            json={BODY_FIELD: current},
        )
        if not data.get("rotated"):
            return TokenResponse(rotated=False)
        token = _opt_str(data.get("csrfToken"))
        expires_at = _parse_expiry(data.get("expiry"))
        if token is None or expires_at is None:
            raise TokenFetchError("Rotated CSRF token response is missing csrfToken or expiry")
        return TokenResponse(
            rotated=True,
            token=token,
            expires_at=expires_at,
            header_name=_opt_str(data.get("headerName")),
            cookie_name=_opt_str(data.get("cookieName")),
        )
