from __future__ import annotations

import hashlib
import logging
import re
import sys
from contextlib import suppress
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

import structlog

from lingaplink_csrf.config import get_settings

_REDACTED = "***REDACTED***"

_JWT_RE = re.compile(r"\beyJ[a-zA-Z0-9_\-]+\.[a-zA-Z0-9_\-]+\.[a-zA-Z0-9_\-]+\b")
_BEARER_RE = re.compile(r"(?i)\bBearer\s+([A-Za-z0-9_\-\.=~+/]+)")
_CSRF_HEADER_RE = re.compile(r"(?i)\b(x-csrf-token|x-xsrf-token)\s*:\s*([^\s,;]+)")
_KV_RE = re.compile(
    r"(?i)\b(csrf_token|csrfToken|_csrf|auth_token|token|secret|password)\b(\s*[=:]\s*)([^\s,;&]+)"
)


def _secret_literals() -> list[str]:
    """
    Return configured secret values that must never appear in logs.
    """
    vals: list[str] = []
    with suppress(Exception):
        auth = get_settings().secret.auth_token
        raw = str(auth.get_secret_value() or "") if auth is not None else ""
        if len(raw) >= 8:
            vals.append(raw)
    return vals


def _redact_str(s: str) -> str:
    for lit in _secret_literals():
        if lit in s:
            s = s.replace(lit, _REDACTED)
    s = _JWT_RE.sub(_REDACTED, s)
    s = _BEARER_RE.sub(f"Bearer {_REDACTED}", s)
    s = _CSRF_HEADER_RE.sub(lambda m: f"{m.group(1)}: {_REDACTED}", s)
    s = _KV_RE.sub(lambda m: f"{m.group(1)}{m.group(2)}{_REDACTED}", s)
    return s


def redact_event(_, __, event_dict: dict[str, Any]) -> dict[str, Any]:
    for k, v in list(event_dict.items()):
        if isinstance(v, str):
            event_dict[k] = _redact_str(v)
    return event_dict


def rename_event_to_msg(_, __, event_dict: dict[str, Any]) -> dict[str, Any]:
    if "msg" not in event_dict and "event" in event_dict:
        event_dict["msg"] = event_dict.pop("event")
    return event_dict


def fingerprint(token: str | None) -> str:
    """Short, non-reversible token id for log correlation."""
    if not token:
        return ""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()[:8]


def _log_path() -> Path:
    s = get_settings()
    return Path(s.log_dir) / "app.log"


def _configure_structlog() -> structlog.stdlib.BoundLogger:
    s = get_settings()
    level = str(s.log_level).upper()

    root = logging.getLogger()
    root.setLevel(level)

    # Avoid duplicates if re-imported
    if getattr(root, "_lingaplink_structlog_configured", False):
        return structlog.get_logger("lingaplink_csrf")

    foreign_pre_chain = [
        structlog.processors.TimeStamper(fmt="iso", utc=True, key="ts"),
        structlog.stdlib.add_log_level,
        redact_event,
        structlog.processors.format_exc_info,
        rename_event_to_msg,
    ]

    formatter = structlog.stdlib.ProcessorFormatter(
        processor=structlog.processors.JSONRenderer(),
        foreign_pre_chain=foreign_pre_chain,
    )

    root.handlers.clear()
    try:
        log_path = _log_path()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            filename=str(log_path),
            maxBytes=int(s.log_max_bytes),
            backupCount=int(s.log_backup_count),
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)
    except OSError:
        # read-only log dir: stdout only
        pass

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(formatter)
    root.addHandler(stream_handler)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso", utc=True, key="ts"),
            structlog.stdlib.add_log_level,
            redact_event,
            structlog.processors.format_exc_info,
            rename_event_to_msg,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    root._lingaplink_structlog_configured = True
    return structlog.get_logger("lingaplink_csrf")


logger = _configure_structlog()


def set_log_level(level: str) -> None:
    """
    Runtime log level override (CLI convenience).
    Does not change handlers/formatters; only raises/lowers filtering level.
    """
    lvl = getattr(logging, str(level).upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(lvl)
    for h in root.handlers:
        h.setLevel(lvl)
