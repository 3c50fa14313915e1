from __future__ import annotations

import os
import tempfile

import pytest


def pytest_configure(config: pytest.Config) -> None:
    # logging is wired when lingaplink_csrf.utils.log is first imported (test collection),
    # so the log dir must point away from the checkout before any test module loads
    if not os.environ.get("LINGAPLINK_LOG_DIR"):
        os.environ["LINGAPLINK_LOG_DIR"] = tempfile.mkdtemp(prefix="lingaplink_csrf_logs_")


@pytest.fixture(autouse=True)
def _test_env(
    tmp_path_factory: pytest.TempPathFactory, monkeypatch: pytest.MonkeyPatch
) -> None:
    from lingaplink_csrf.config import get_settings
    from lingaplink_csrf.wiring import reset_token_manager

    root = tmp_path_factory.mktemp("csrf_test")
    (root / "logs").mkdir(parents=True, exist_ok=True)
    (root / "_state").mkdir(parents=True, exist_ok=True)

    monkeypatch.setenv("LINGAPLINK_LOG_DIR", str(root / "logs"))
    monkeypatch.setenv("LINGAPLINK_STATE_DIR", str(root / "_state"))
    monkeypatch.setenv("LINGAPLINK_API_BASE_URL", "http://lingaplink.test")
    monkeypatch.setenv("CSRF_STORE_BACKEND", "memory")
    monkeypatch.delenv("LINGAPLINK_AUTH_TOKEN", raising=False)
    monkeypatch.delenv("CSRF_STORE_PATH", raising=False)
    get_settings.cache_clear()
    reset_token_manager()
