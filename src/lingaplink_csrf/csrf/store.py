from __future__ import annotations

import threading
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Protocol

from sqlitedict import SqliteDict  # type: ignore

from lingaplink_csrf.csrf.errors import SessionStoreError
from lingaplink_csrf.csrf.models import TokenRecord

KEY_TOKEN = "csrf_token"
KEY_EXPIRY = "csrf_token_expiry"
KEY_HEADER_NAME = "csrf_header_name"
KEY_COOKIE_NAME = "csrf_cookie_name"

RECORD_KEYS = (KEY_TOKEN, KEY_EXPIRY, KEY_HEADER_NAME, KEY_COOKIE_NAME)


class SessionStore(Protocol):
    """
    Session-scoped string key/value store.

    `write` and `delete` apply to the whole group of keys at once.
    """

    def read(self, keys: Iterable[str]) -> dict[str, str]: ...
    def write(self, items: Mapping[str, str]) -> None: ...
    def delete(self, keys: Iterable[str]) -> None: ...


class MemorySessionStore:
    """
    Process-local store; lives as long as the object does.
    """

    def __init__(self, initial: Mapping[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def read(self, keys: Iterable[str]) -> dict[str, str]:
        with self._lock:
            return {k: self._data[k] for k in keys if k in self._data}

    def write(self, items: Mapping[str, str]) -> None:
        with self._lock:
            self._data.update({str(k): str(v) for k, v in items.items()})

    def delete(self, keys: Iterable[str]) -> None:
        with self._lock:
            for k in keys:
                self._data.pop(k, None)

    def snapshot(self) -> dict[str, str]:
        with self._lock:
            return dict(self._data)


class SqliteSessionStore:
    """
    File-backed store so a token survives process restarts within a session.

    One transaction per write/delete.
    """

    def __init__(self, db_path: Path, *, tablename: str = "csrf_session") -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.tablename = tablename

    def _db(self) -> SqliteDict:
        # Open/close per operation
        return SqliteDict(str(self.db_path), tablename=self.tablename, autocommit=False)

    def read(self, keys: Iterable[str]) -> dict[str, str]:
        try:
            with self._db() as db:
                return {k: str(db[k]) for k in keys if k in db}
        except Exception as ex:
            raise SessionStoreError(f"session store read failed: {ex}") from ex

    def write(self, items: Mapping[str, str]) -> None:
        try:
            with self._db() as db:
                for k, v in items.items():
                    db[str(k)] = str(v)
                db.commit()
        except Exception as ex:
            raise SessionStoreError(f"session store write failed: {ex}") from ex

    def delete(self, keys: Iterable[str]) -> None:
        try:
            with self._db() as db:
                for k in keys:
                    if k in db:
                        del db[k]
                db.commit()
        except Exception as ex:
            raise SessionStoreError(f"session store delete failed: {ex}") from ex


def record_to_items(record: TokenRecord) -> dict[str, str]:
    return {
        KEY_TOKEN: record.token,
        KEY_EXPIRY: str(int(record.expires_at)),
        KEY_HEADER_NAME: record.header_name,
        KEY_COOKIE_NAME: record.cookie_name,
    }


def record_from_items(items: Mapping[str, str]) -> TokenRecord | None:
    """
    Rebuild a record from stored items.

    Returns None unless all four keys are present and the expiry parses.
    """
    if any(not str(items.get(k) or "").strip() for k in RECORD_KEYS):
        return None
    try:
        expires_at = int(str(items[KEY_EXPIRY]).strip())
    except ValueError:
        return None
    return TokenRecord(
        token=str(items[KEY_TOKEN]),
        expires_at=expires_at,
        header_name=str(items[KEY_HEADER_NAME]),
        cookie_name=str(items[KEY_COOKIE_NAME]),
    )


def build_session_store(backend: str, *, db_path: Path) -> SessionStore:
    """
    Build the session store named by CSRF_STORE_BACKEND.
    """
    b = str(backend or "memory").strip().lower()
    if b == "sqlite":
        return SqliteSessionStore(db_path)
    return MemorySessionStore()
