from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

import httpx

from lingaplink_csrf.csrf.client import TokenEndpointClient
from lingaplink_csrf.csrf.errors import (
    AuthRequiredError,
    CsrfError,
    SessionStoreError,
    TokenFetchError,
)
from lingaplink_csrf.csrf.models import (
    DEFAULT_COOKIE_NAME,
    DEFAULT_HEADER_NAME,
    CsrfStatus,
    TokenRecord,
    TokenState,
    now_ms,
)
from lingaplink_csrf.csrf.shaping import (
    is_json_shaped,
    is_protected_method,
    with_body_token,
    with_header,
)
from lingaplink_csrf.csrf.store import (
    RECORD_KEYS,
    SessionStore,
    record_from_items,
    record_to_items,
)
from lingaplink_csrf.csrf.sweep import SweepHandle
from lingaplink_csrf.utils.log import fingerprint, logger

DEFAULT_REFRESH_THRESHOLD_MS = 5 * 60 * 1000
DEFAULT_SWEEP_INTERVAL_S = 60.0


class TokenLifecycleManager:
    """
    Owns the current CSRF token and keeps it usable.

    - At most one fetch/refresh request is outstanding; every concurrent caller
      awaits the same task (single-flight).
    - A record is handed out only while `now < expires_at`; inside the refresh
      threshold it is still handed out but a refresh is triggered first.
    - `logout()` bumps a generation counter so a late network result from a
      detached task cannot write state back.

    All collaborators are injected: endpoint client, session store, clock (epoch ms).
    """

    def __init__(
        self,
        client: TokenEndpointClient,
        store: SessionStore,
        *,
        clock: Callable[[], int] = now_ms,
        refresh_threshold_ms: int = DEFAULT_REFRESH_THRESHOLD_MS,
        sweep_interval_s: float = DEFAULT_SWEEP_INTERVAL_S,
        default_header_name: str = DEFAULT_HEADER_NAME,
        default_cookie_name: str = DEFAULT_COOKIE_NAME,
        load: bool = True,
    ) -> None:
        self.client = client
        self.store = store
        self.clock = clock
        self.refresh_threshold_ms = int(refresh_threshold_ms)
        self.sweep_interval_s = float(sweep_interval_s)
        self._default_header_name = default_header_name
        self._default_cookie_name = default_cookie_name

        self._record: TokenRecord | None = None
        self._header_name = default_header_name
        self._cookie_name = default_cookie_name
        self._inflight: asyncio.Task | None = None
        self._generation = 0
        self._sweep: SweepHandle | None = None

        if load:
            self.load_from_store()

    # --- read-only views ---

    @property
    def record(self) -> TokenRecord | None:
        return self._record

    @property
    def header_name(self) -> str:
        return self._header_name

    @property
    def cookie_name(self) -> str:
        return self._cookie_name

    @property
    def is_refreshing(self) -> bool:
        t = self._inflight
        return t is not None and not t.done()

    def state(self, now: int | None = None) -> TokenState:
        rec = self._record
        if rec is None:
            return TokenState.EMPTY
        ts = self.clock() if now is None else int(now)
        return rec.state(ts, refresh_threshold_ms=self.refresh_threshold_ms)

    def status(self) -> CsrfStatus:
        now = self.clock()
        rec = self._record
        st = self.state(now)
        return CsrfStatus(
            has_token=rec is not None,
            state=st,
            token_expiry=rec.expires_at if rec is not None else None,
            is_expiring=st in {TokenState.NEARING_EXPIRY, TokenState.EXPIRED},
            time_until_expiry_ms=rec.ms_until_expiry(now) if rec is not None else 0,
            header_name=self._header_name,
            cookie_name=self._cookie_name,
            is_refreshing=self.is_refreshing,
            sweep_running=self._sweep is not None and self._sweep.running,
        )

    # --- persistence ---

    def load_from_store(self) -> TokenRecord | None:
        try:
            items = self.store.read(RECORD_KEYS)
        except SessionStoreError as ex:
            logger.warning("csrf_store_load_failed", error=str(ex))
            return None
        if not items:
            return None

        rec = record_from_items(items)
        if rec is None:
            logger.warning("csrf_stored_token_incomplete", keys=sorted(items.keys()))
            self._clear_store()
            return None
        if not rec.is_valid(self.clock()):
            logger.info("csrf_stored_token_expired", expires_at=rec.expires_at)
            self._clear_store()
            return None

        self._set_record(rec)
        logger.info("csrf_stored_token_loaded", fp=fingerprint(rec.token), expires_at=rec.expires_at)
        return rec

    def persist(self, record: TokenRecord) -> None:
        try:
            self.store.write(record_to_items(record))
        except SessionStoreError as ex:
            # memory state stays authoritative
            logger.warning("csrf_persist_failed", error=str(ex))

    def _clear_store(self) -> None:
        try:
            self.store.delete(RECORD_KEYS)
        except SessionStoreError as ex:
            logger.warning("csrf_store_clear_failed", error=str(ex))

    def _set_record(self, record: TokenRecord) -> None:
        self._record = record
        self._header_name = record.header_name
        self._cookie_name = record.cookie_name

    def _install(self, record: TokenRecord, generation: int) -> TokenRecord:
        self._check_generation(generation)
        self._set_record(record)
        self.persist(record)
        return record

    def _check_generation(self, generation: int) -> None:
        if generation != self._generation:
            logger.info("csrf_result_discarded_after_logout")
            raise TokenFetchError("CSRF token request was superseded by logout")

    # --- network operations (run inside the single-flight task) ---

    async def _do_fetch(self, generation: int) -> TokenRecord:
        try:
            resp = await self.client.fetch_token()
        except CsrfError as ex:
            logger.warning(
                "csrf_token_fetch_failed",
                kind=type(ex).__name__,
                status_code=ex.status_code,
                error=ex.message,
            )
            raise
        record = resp.to_record(header_name=self._header_name, cookie_name=self._cookie_name)
        self._install(record, generation)
        logger.info(
            "csrf_token_fetched",
            fp=fingerprint(record.token),
            expires_at=record.expires_at,
            header_name=record.header_name,
        )
        return record

    async def _do_refresh(self, generation: int) -> TokenRecord:
        current = self._record
        try:
            resp = await self.client.refresh_token(
                current.token if current is not None else None,
                header_name=self._header_name,
            )
        except AuthRequiredError:
            logger.warning("csrf_token_refresh_auth_required")
            raise
        except CsrfError as ex:
            logger.warning(
                "csrf_refresh_fallback_fetch",
                kind=type(ex).__name__,
                status_code=ex.status_code,
                error=ex.message,
            )
            self._check_generation(generation)
            return await self._do_fetch(generation)

        self._check_generation(generation)
        if not resp.rotated:
            rec = self._record
            if rec is None:
                return await self._do_fetch(generation)
            logger.info("csrf_token_not_rotated", fp=fingerprint(rec.token))
            return rec

        record = resp.to_record(header_name=self._header_name, cookie_name=self._cookie_name)
        self._install(record, generation)
        logger.info(
            "csrf_token_rotated",
            fp=fingerprint(record.token),
            expires_at=record.expires_at,
        )
        return record

    def _on_inflight_done(self, task: asyncio.Task) -> None:
        if self._inflight is task:
            self._inflight = None
        # detached tasks may have no awaiter left
        if not task.cancelled():
            task.exception()

    def _join_or_start(
        self, op: Callable[[int], Awaitable[TokenRecord]], *, name: str
    ) -> asyncio.Task:
        t = self._inflight
        if t is not None and not t.done():
            return t
        task = asyncio.get_running_loop().create_task(op(self._generation), name=name)
        task.add_done_callback(self._on_inflight_done)
        self._inflight = task
        return task

    async def fetch(self) -> TokenRecord:
        # shield: one caller's cancellation must not cancel the shared request
        return await asyncio.shield(self._join_or_start(self._do_fetch, name="csrf.fetch"))

    async def refresh(self) -> TokenRecord:
        return await asyncio.shield(self._join_or_start(self._do_refresh, name="csrf.refresh"))

    async def get_token(self) -> str:
        rec = self._record
        st = self.state()
        if rec is not None and st is TokenState.VALID:
            return rec.token

        if st is TokenState.NEARING_EXPIRY:
            record = await self.refresh()
        else:
            record = await self.fetch()

        if not record.is_valid(self.clock()):
            raise TokenFetchError("CSRF token expired before it could be used")
        return record.token

    # --- outbound request shaping (fail-open) ---

    async def attach_to_headers(self, headers: Mapping[str, str] | None = None) -> Any:
        try:
            token = await self.get_token()
        except CsrfError as ex:
            logger.warning("csrf_attach_headers_failed", kind=type(ex).__name__, error=ex.message)
            return headers if headers is not None else {}
        return with_header(headers, self._header_name, token)

    async def attach_to_body(self, body: Mapping[str, Any] | None = None) -> Any:
        try:
            token = await self.get_token()
        except CsrfError as ex:
            logger.warning("csrf_attach_body_failed", kind=type(ex).__name__, error=ex.message)
            return body if body is not None else {}
        return with_body_token(body if body is not None else {}, token)

    async def secure_request(
        self, method: str, headers: Mapping[str, str] | None, body: Any
    ) -> tuple[Any, Any]:
        if not is_protected_method(method):
            return headers, body
        headers = await self.attach_to_headers(headers)
        if is_json_shaped(body):
            body = await self.attach_to_body(body)
        return headers, body

    async def secure_send(
        self,
        http: httpx.AsyncClient,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        json: Any = None,
        content: str | bytes | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """
        Send through the caller's client with CSRF protection applied.

        CSRF failures never block the call.
        """
        if json is not None:
            headers, json = await self.secure_request(method, headers, json)
        else:
            headers, content = await self.secure_request(method, headers, content)
        return await http.request(
            method, url, headers=headers, json=json, content=content, **kwargs
        )

    # --- background sweep ---

    async def sweep_once(self) -> bool:
        if self.state() is not TokenState.NEARING_EXPIRY:
            return False
        await self.refresh()
        return True

    def start_background_sweep(self, interval_s: float | None = None) -> SweepHandle:
        if self._sweep is not None and self._sweep.running:
            return self._sweep
        self._sweep = SweepHandle.start(
            self.sweep_once,
            interval_s=self.sweep_interval_s if interval_s is None else interval_s,
        )
        return self._sweep

    def stop_background_sweep(self) -> None:
        if self._sweep is not None:
            self._sweep.cancel()
            self._sweep = None

    # --- teardown ---

    def logout(self) -> None:
        self._generation += 1
        self._inflight = None
        self._record = None
        self._header_name = self._default_header_name
        self._cookie_name = self._default_cookie_name
        self._clear_store()
        self.stop_background_sweep()
        logger.info("csrf_logout")

    async def aclose(self) -> None:
        sweep, self._sweep = self._sweep, None
        if sweep is not None:
            await sweep.stop()
        await self.client.aclose()
