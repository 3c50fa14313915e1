from __future__ import annotations


class CsrfError(RuntimeError):
    """Base for every failure the token lifecycle surfaces to callers."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = str(message)
        self.status_code = status_code


class AuthRequiredError(CsrfError):
    """
    The token endpoint answered 401.

    Only re-authentication fixes this; never retried automatically.
    """


class NetworkError(CsrfError):
    """No response was received (connect/read failure, timeout)."""


class TokenFetchError(CsrfError):
    """The server answered, but the payload was unsuccessful or malformed."""


class SessionStoreError(RuntimeError):
    pass
