"""
Double-submit request shaping.

Pure functions: no I/O, no HTTP client. Inputs are never mutated; a changed
value is always a new object.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

from lingaplink_csrf.csrf.models import BODY_FIELD, PROTECTED_METHODS


def is_protected_method(method: str | None) -> bool:
    return str(method or "GET").strip().upper() in PROTECTED_METHODS


def with_header(headers: Mapping[str, str] | None, name: str, token: str) -> dict[str, str]:
    out = dict(headers or {})
    # drop any stale copy under a different casing
    for k in [k for k in out if k.lower() == name.lower()]:
        del out[k]
    out[name] = token
    return out


def is_json_shaped(body: Any) -> bool:
    if isinstance(body, Mapping):
        return True
    if isinstance(body, (str, bytes)):
        return _parse_json_object(body) is not None
    return False


def _parse_json_object(raw: str | bytes) -> dict[str, Any] | None:
    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError):
        return None
    return parsed if isinstance(parsed, dict) else None


def with_body_token(body: Any, token: str) -> Any:
    """
    Return `body` carrying `_csrf`.

    Mappings come back as dicts, JSON strings/bytes as re-serialized JSON of the
    same type. Anything else is returned as-is.
    """
    if isinstance(body, Mapping):
        out = dict(body)
        out[BODY_FIELD] = token
        return out
    if isinstance(body, (str, bytes)):
        obj = _parse_json_object(body)
        if obj is None:
            return body
        obj[BODY_FIELD] = token
        encoded = json.dumps(obj, separators=(",", ":"))
        return encoded.encode("utf-8") if isinstance(body, bytes) else encoded
    return body
