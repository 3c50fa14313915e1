"""
Application wiring boundary.

Library code never reaches for a global manager; only this module composes one
from settings and hands out the shared instance.
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import httpx

from lingaplink_csrf.config import Settings, get_settings
from lingaplink_csrf.csrf.client import AuthHeaderProvider, TokenEndpointClient
from lingaplink_csrf.csrf.manager import TokenLifecycleManager
from lingaplink_csrf.csrf.models import now_ms
from lingaplink_csrf.csrf.store import SessionStore, build_session_store


def settings_auth_header() -> str | None:
    """Authorization value from LINGAPLINK_AUTH_TOKEN, or None when unset."""
    return get_settings().auth_header()


def build_token_manager(
    settings: Settings | None = None,
    *,
    http: httpx.AsyncClient | None = None,
    store: SessionStore | None = None,
    clock: Callable[[], int] = now_ms,
    auth_header: AuthHeaderProvider | None = None,
) -> TokenLifecycleManager:
    s = settings or get_settings()
    owns_http = http is None
    if http is None:
        http = httpx.AsyncClient(timeout=httpx.Timeout(float(s.csrf_request_timeout_sec)))
    client = TokenEndpointClient(
        http,
        token_url=s.public.token_url(),
        refresh_url=s.public.refresh_url(),
        auth_header=auth_header or settings_auth_header,
        owns_http=owns_http,
    )
    if store is None:
        store = build_session_store(
            str(s.csrf_store_backend), db_path=Path(s.public.store_path())
        )
    return TokenLifecycleManager(
        client,
        store,
        clock=clock,
        refresh_threshold_ms=int(float(s.csrf_refresh_threshold_sec) * 1000),
        sweep_interval_s=float(s.csrf_sweep_interval_sec),
        default_header_name=str(s.csrf_default_header_name),
        default_cookie_name=str(s.csrf_default_cookie_name),
    )


_manager_singleton: TokenLifecycleManager | None = None


def get_token_manager() -> TokenLifecycleManager:
    """Return the shared TokenLifecycleManager instance."""
    global _manager_singleton
    if _manager_singleton is None:
        _manager_singleton = build_token_manager()
    return _manager_singleton


def reset_token_manager() -> None:
    """Forget the shared instance (tests, logical session teardown)."""
    global _manager_singleton
    _manager_singleton = None
