from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable
from typing import TypeVar

import click

from lingaplink_csrf.config import get_safe_config_report, get_settings
from lingaplink_csrf.csrf.errors import AuthRequiredError, CsrfError
from lingaplink_csrf.csrf.manager import TokenLifecycleManager
from lingaplink_csrf.csrf.models import CsrfStatus
from lingaplink_csrf.utils.log import fingerprint, set_log_level
from lingaplink_csrf.wiring import build_token_manager

T = TypeVar("T")


def _run(op: Callable[[TokenLifecycleManager], Awaitable[T]]) -> T:
    async def _main() -> T:
        mgr = build_token_manager()
        try:
            return await op(mgr)
        finally:
            await mgr.aclose()

    try:
        return asyncio.run(_main())
    except AuthRequiredError as ex:
        click.echo(f"Authentication required: {ex.message}", err=True)
        raise SystemExit(3) from ex
    except CsrfError as ex:
        click.echo(f"CSRF token error: {ex.message}", err=True)
        raise SystemExit(2) from ex


def _warn_if_ephemeral() -> bool:
    backend = str(get_settings().csrf_store_backend or "").strip().lower()
    if backend != "memory":
        return False
    click.echo(
        "warning: CSRF_STORE_BACKEND=memory; nothing persists between runs. "
        "Set CSRF_STORE_BACKEND=sqlite to inspect or clear a stored token.",
        err=True,
    )
    return True


@click.group()
@click.option("--log-level", default=None, help="Override LOG_LEVEL for this run.")
def cli(log_level: str | None) -> None:
    """
    LingapLink CSRF token client.
    """
    if log_level:
        set_log_level(log_level)


@cli.command()
@click.option("--json", "json_flag", is_flag=True, default=False, help="Print JSON.")
def status(json_flag: bool) -> None:
    """Show the stored token status (no network)."""
    _warn_if_ephemeral()

    async def _op(mgr: TokenLifecycleManager) -> CsrfStatus:
        return mgr.status()

    st = _run(_op)
    if json_flag:
        click.echo(json.dumps(st.as_dict(), sort_keys=True))
        return
    click.echo(f"state: {st.state.value}")
    click.echo(f"header: {st.header_name}")
    click.echo(f"cookie: {st.cookie_name}")
    if st.has_token:
        click.echo(f"expires in: {st.time_until_expiry_ms // 1000}s")


@cli.command()
@click.option("--show", is_flag=True, default=False, help="Print the raw token value.")
def token(show: bool) -> None:
    """Acquire a usable token (fetching or refreshing as needed)."""

    async def _op(mgr: TokenLifecycleManager) -> tuple[str, str]:
        value = await mgr.get_token()
        return mgr.header_name, value

    # header name may have been replaced by the server response
    header_name, value = _run(_op)
    click.echo(f"{header_name}: {value if show else fingerprint(value)}")


@cli.command()
def refresh() -> None:
    """Force a refresh against the refresh endpoint."""

    async def _op(mgr: TokenLifecycleManager) -> str:
        rec = await mgr.refresh()
        return fingerprint(rec.token)

    click.echo(f"token: {_run(_op)}")


@cli.command()
def logout() -> None:
    """Clear the stored token."""
    ephemeral = _warn_if_ephemeral()

    async def _op(mgr: TokenLifecycleManager) -> None:
        mgr.logout()

    _run(_op)
    click.echo("nothing stored to clear" if ephemeral else "CSRF token cleared")


@cli.command(name="config")
def show_config() -> None:
    """Print the effective (non-secret) configuration."""
    click.echo(json.dumps(get_safe_config_report(), indent=2, sort_keys=True))


if __name__ == "__main__":  # pragma: no cover
    cli()
