from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_state_dir() -> Path:
    """
    Default runtime state directory.

    Uses `<LINGAPLINK_HOME>/_state` when set, otherwise `./_state`.
    """
    env = os.environ.get("LINGAPLINK_HOME")
    if env:
        return (Path(env) / "_state").resolve()
    return (Path.cwd() / "_state").resolve()


class PublicConfig(BaseSettings):
    """
    Non-sensitive config with safe defaults.

    Loaded from (in order):
      - process env
      - optional `.env` file
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- token endpoint ---
    api_base_url: str = Field(default="http://localhost:3000", alias="LINGAPLINK_API_BASE_URL")
    csrf_token_path: str = Field(default="/api/auth/csrf-token", alias="CSRF_TOKEN_PATH")
    csrf_refresh_path: str = Field(
        default="/api/auth/csrf-token/refresh", alias="CSRF_REFRESH_PATH"
    )
    csrf_request_timeout_sec: float = Field(default=10.0, alias="CSRF_REQUEST_TIMEOUT_SEC")

    # Fallback names until the server supplies its own.
    csrf_default_header_name: str = Field(default="x-csrf-token", alias="CSRF_DEFAULT_HEADER_NAME")
    csrf_default_cookie_name: str = Field(default="__csrf_token", alias="CSRF_DEFAULT_COOKIE_NAME")

    # --- lifecycle ---
    csrf_refresh_threshold_sec: float = Field(default=300.0, alias="CSRF_REFRESH_THRESHOLD_SEC")
    csrf_sweep_interval_sec: float = Field(default=60.0, alias="CSRF_SWEEP_INTERVAL_SEC")

    # --- session store ---
    # memory | sqlite
    csrf_store_backend: str = Field(default="memory", alias="CSRF_STORE_BACKEND")
    # If unset, defaults to "<LINGAPLINK_STATE_DIR>/csrf_session.sqlite".
    csrf_store_path: Path | None = Field(default=None, alias="CSRF_STORE_PATH")
    state_dir: Path = Field(default_factory=_default_state_dir, alias="LINGAPLINK_STATE_DIR")

    # --- logging ---
    log_dir: Path = Field(
        default_factory=lambda: (Path.cwd() / "logs").resolve(), alias="LINGAPLINK_LOG_DIR"
    )
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_max_bytes: int = Field(default=5 * 1024 * 1024, alias="LOG_MAX_BYTES")
    log_backup_count: int = Field(default=3, alias="LOG_BACKUP_COUNT")

    def token_url(self) -> str:
        return self.api_base_url.rstrip("/") + "/" + self.csrf_token_path.lstrip("/")

    def refresh_url(self) -> str:
        return self.api_base_url.rstrip("/") + "/" + self.csrf_refresh_path.lstrip("/")

    def store_path(self) -> Path:
        if self.csrf_store_path is not None:
            return Path(self.csrf_store_path)
        return Path(self.state_dir) / "csrf_session.sqlite"
