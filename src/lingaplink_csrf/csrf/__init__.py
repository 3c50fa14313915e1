"""
Client-side CSRF token lifecycle.

Acquires, caches, refreshes and attaches the CSRF token the LingapLink API
requires on state-changing requests.
"""

from __future__ import annotations

from lingaplink_csrf.csrf.client import TokenEndpointClient
from lingaplink_csrf.csrf.errors import (
    AuthRequiredError,
    CsrfError,
    NetworkError,
    SessionStoreError,
    TokenFetchError,
)
from lingaplink_csrf.csrf.manager import TokenLifecycleManager
from lingaplink_csrf.csrf.models import CsrfStatus, TokenRecord, TokenState
from lingaplink_csrf.csrf.store import MemorySessionStore, SessionStore, SqliteSessionStore
from lingaplink_csrf.csrf.sweep import SweepHandle

__all__ = [
    "AuthRequiredError",
    "CsrfError",
    "CsrfStatus",
    "MemorySessionStore",
    "NetworkError",
    "SessionStore",
    "SessionStoreError",
    "SqliteSessionStore",
    "SweepHandle",
    "TokenEndpointClient",
    "TokenFetchError",
    "TokenLifecycleManager",
    "TokenRecord",
    "TokenState",
]
