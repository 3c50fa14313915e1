from __future__ import annotations

import logging
from pathlib import Path

from lingaplink_csrf.utils.log import _redact_str, fingerprint, redact_event


def test_bearer_and_csrf_values_are_redacted() -> None:
    s = _redact_str("Authorization: Bearer abc.def-123 x-csrf-token: tok999 _csrf=tok999")
    assert "abc.def-123" not in s
    assert "tok999" not in s
    assert "Bearer ***REDACTED***" in s


def test_event_names_are_left_alone() -> None:
    ev = redact_event(None, None, {"event": "csrf_token_fetched", "fp": "deadbeef"})
    assert ev["event"] == "csrf_token_fetched"
    assert ev["fp"] == "deadbeef"


def test_fingerprint_is_short_and_stable() -> None:
    assert fingerprint("abc") == fingerprint("abc")
    assert len(fingerprint("abc")) == 8
    assert fingerprint(None) == ""


def test_log_file_is_written_outside_the_checkout() -> None:
    files = [
        Path(h.baseFilename)
        for h in logging.getLogger().handlers
        if isinstance(h, logging.FileHandler)
    ]
    repo_root = Path(__file__).resolve().parent.parent
    assert files
    assert all(repo_root not in p.resolve().parents for p in files)
