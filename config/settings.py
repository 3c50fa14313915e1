from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Any

from pydantic import SecretStr

from .public_config import PublicConfig
from .secret_config import SecretConfig

_STORE_BACKENDS = {"memory", "sqlite"}


class ConfigError(RuntimeError):
    pass


@dataclass(frozen=True, slots=True)
class Settings:
    """
    Merged settings view (dot-access).

    Precedence:
      - secrets override public when names overlap
    """

    public: PublicConfig
    secret: SecretConfig

    def __getattr__(self, name: str) -> Any:
        if hasattr(self.secret, name):
            return getattr(self.secret, name)
        return getattr(self.public, name)

    def auth_header(self) -> str | None:
        tok = _secret_value(self.secret.auth_token).strip()
        if not tok:
            return None
        return f"Bearer {tok}"


def _secret_value(secret: SecretStr | None) -> str:
    try:
        return secret.get_secret_value() if secret else ""
    except Exception:
        return ""


def _validate(s: Settings) -> None:
    """
    Reject values the token lifecycle cannot run with.
    """
    bad: list[str] = []
    if float(s.public.csrf_refresh_threshold_sec) <= 0:
        bad.append("CSRF_REFRESH_THRESHOLD_SEC")
    if float(s.public.csrf_sweep_interval_sec) <= 0:
        bad.append("CSRF_SWEEP_INTERVAL_SEC")
    if float(s.public.csrf_request_timeout_sec) <= 0:
        bad.append("CSRF_REQUEST_TIMEOUT_SEC")
    backend = str(s.public.csrf_store_backend or "").strip().lower()
    if backend not in _STORE_BACKENDS:
        bad.append("CSRF_STORE_BACKEND")
    if not str(s.public.csrf_default_header_name or "").strip():
        bad.append("CSRF_DEFAULT_HEADER_NAME")
    if not str(s.public.api_base_url or "").strip():
        bad.append("LINGAPLINK_API_BASE_URL")
    if bad:
        raise ConfigError(
            "Invalid CSRF client configuration: "
            + ", ".join(sorted(set(bad)))
            + ". Fix them via environment variables or `.env`."
        )


def get_safe_config_report() -> dict[str, Any]:
    """
    Deterministic, non-sensitive config report.

    - Public values are included (paths are stringified)
    - Secret values are NEVER included; only SET/UNSET markers
    """
    s = get_settings()

    pub = s.public.model_dump()
    pub_s: dict[str, Any] = {}
    for k, v in pub.items():
        # stringify Paths for stable JSON output
        pub_s[k] = str(v) if hasattr(v, "__fspath__") else v

    sec: dict[str, str] = {}
    for k in sorted(type(s.secret).model_fields.keys()):
        v = getattr(s.secret, k, None)
        if v is None:
            sec[k] = "UNSET"
        elif isinstance(v, SecretStr):
            sec[k] = "SET" if v.get_secret_value() else "UNSET"
        else:
            sec[k] = "SET" if str(v).strip() else "UNSET"

    return {
        "public": pub_s,
        "secrets": sec,
    }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    public = PublicConfig()
    secret = SecretConfig()
    s = Settings(public=public, secret=secret)
    _validate(s)
    return s
