from __future__ import annotations

import asyncio
import json

import httpx

from lingaplink_csrf.csrf.shaping import (
    is_json_shaped,
    is_protected_method,
    with_body_token,
    with_header,
)
from tests._helpers.fake_api import HOUR_MS, NOW, FakeTokenApi, make_manager, stored, token_payload


def _valid_manager(header: str = "x-csrf-token"):
    return make_manager(FakeTokenApi(), store=stored("tok-1", NOW + HOUR_MS, header=header))


def _failing_manager():
    return make_manager(FakeTokenApi(fetch_replies=[(401, {"message": "login"})]))


def test_attach_to_headers_fails_open() -> None:
    mgr = _failing_manager()
    h = {"Accept": "application/json"}

    out = asyncio.run(mgr.attach_to_headers(h))
    assert out is h
    assert out == {"Accept": "application/json"}


def test_attach_to_body_fails_open() -> None:
    mgr = make_manager(FakeTokenApi(fetch_replies=[httpx.ReadTimeout("slow")]))
    body = {"name": "Juan"}

    assert asyncio.run(mgr.attach_to_body(body)) is body


def test_attach_fails_open_on_unusable_expiry() -> None:
    api = FakeTokenApi(
        fetch_replies=[(200, {"success": True, "csrfToken": "t", "expiry": "1e400"})]
    )
    mgr = make_manager(api)
    h = {"Accept": "application/json"}
    b = {"x": 1}

    assert asyncio.run(mgr.attach_to_headers(h)) is h
    assert asyncio.run(mgr.attach_to_body(b)) is b
    assert mgr.record is None


def test_attach_uses_server_supplied_header_name() -> None:
    mgr = _valid_manager(header="x-lingap-csrf")
    h = {"Accept": "application/json"}

    out = asyncio.run(mgr.attach_to_headers(h))
    assert out == {"Accept": "application/json", "x-lingap-csrf": "tok-1"}
    # input untouched
    assert h == {"Accept": "application/json"}


def test_attach_to_body_sets_csrf_field() -> None:
    mgr = _valid_manager()
    assert asyncio.run(mgr.attach_to_body({"a": 1})) == {"a": 1, "_csrf": "tok-1"}


def test_secure_request_passes_safe_methods_through() -> None:
    api = FakeTokenApi(fetch_replies=[(200, token_payload("x", NOW + HOUR_MS))])
    mgr = make_manager(api)
    h = {"Accept": "application/json"}
    b = {"q": "1"}

    for method in ("GET", "head", "OPTIONS"):
        out_h, out_b = asyncio.run(mgr.secure_request(method, h, b))
        assert out_h is h
        assert out_b is b
    assert api.requests == []


def test_secure_request_protects_state_changing_methods() -> None:
    mgr = _valid_manager()
    for method in ("POST", "put", "Patch", "DELETE"):
        out_h, out_b = asyncio.run(mgr.secure_request(method, {}, {"id": 7}))
        assert out_h == {"x-csrf-token": "tok-1"}
        assert out_b == {"id": 7, "_csrf": "tok-1"}


def test_secure_request_json_string_body_is_reserialized() -> None:
    mgr = _valid_manager()
    _, body = asyncio.run(mgr.secure_request("POST", None, '{"appointment": "a-1"}'))
    assert isinstance(body, str)
    assert json.loads(body) == {"appointment": "a-1", "_csrf": "tok-1"}


def test_secure_request_non_json_body_gets_header_only() -> None:
    mgr = _valid_manager()
    headers, body = asyncio.run(mgr.secure_request("POST", {}, "name=juan&age=3"))
    assert headers == {"x-csrf-token": "tok-1"}
    assert body == "name=juan&age=3"

    headers, body = asyncio.run(mgr.secure_request("POST", {}, None))
    assert headers == {"x-csrf-token": "tok-1"}
    assert body is None


def test_secure_request_fails_open_when_token_unavailable() -> None:
    mgr = _failing_manager()
    h = {"Accept": "application/json"}
    b = {"x": 1}

    out_h, out_b = asyncio.run(mgr.secure_request("POST", h, b))
    assert out_h is h
    assert out_b is b


def test_secure_send_attaches_token_and_sends() -> None:
    mgr = _valid_manager()
    seen: list[httpx.Request] = []

    def _handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(201, json={"ok": True})

    async def _go() -> httpx.Response:
        async with httpx.AsyncClient(transport=httpx.MockTransport(_handler)) as http:
            return await mgr.secure_send(
                http, "POST", "http://lingaplink.test/api/patients", json={"name": "Ana"}
            )

    resp = asyncio.run(_go())
    assert resp.status_code == 201
    assert seen[0].headers["x-csrf-token"] == "tok-1"
    assert json.loads(seen[0].content) == {"name": "Ana", "_csrf": "tok-1"}


def test_shaping_helpers() -> None:
    assert is_protected_method("delete")
    assert not is_protected_method(None)
    assert is_json_shaped({"a": 1})
    assert is_json_shaped(b'{"a": 1}')
    assert not is_json_shaped("[1, 2]")
    assert not is_json_shaped(None)
    assert with_header({"X-CSRF-Token": "old"}, "x-csrf-token", "new") == {"x-csrf-token": "new"}
    assert json.loads(with_body_token(b'{"a": 1}', "t")) == {"a": 1, "_csrf": "t"}
    assert with_body_token([1, 2], "t") == [1, 2]
