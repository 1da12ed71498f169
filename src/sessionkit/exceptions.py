"""Exception hierarchy for sessionkit.

All exceptions inherit from :class:`SessionKitError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`sessionkit.exit_codes`.
The command line catches ``SessionKitError`` and exits with that code.

Errors raised by a session-aware request form the :class:`ApiError` family.
Only a 401 is recovered inside the client (refresh and retry once); every
other error reaches the caller unchanged so calling code can render its own
message.

Subclass hierarchy::

    SessionKitError (exit 1)
    +-- ConfigError              (exit 1)
    +-- InvalidUsageError        (exit 2)
    +-- RefreshError             (exit 3)
    +-- ApiError                 (exit 1)
        +-- TransportError       (exit 6)
        +-- HttpError            (exit 5)
        |   +-- UnauthorizedError  (exit 3)
        |   +-- ServerError        (exit 5)
        +-- SessionExpiredError  (exit 3)
"""

from __future__ import annotations

import enum
from typing import Any

from sessionkit.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_HTTP_ERROR,
    EXIT_INVALID_USAGE,
)


class SessionKitError(Exception):
    """Base exception for all sessionkit errors.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class ConfigError(SessionKitError):
    """Raised for configuration problems (missing base URL, invalid JSON, bad values)."""

    exit_code = EXIT_GENERIC_FAILURE


class InvalidUsageError(SessionKitError):
    """Raised for invalid CLI arguments such as a malformed ``--param``."""

    exit_code = EXIT_INVALID_USAGE


class RefreshFailure(str, enum.Enum):
    """Why a credential refresh did not produce a new pair."""

    NO_REFRESH_TOKEN = "no_refresh_token"
    REJECTED = "rejected"
    TRANSPORT = "transport"
    MALFORMED_RESPONSE = "malformed_response"


class RefreshError(SessionKitError):
    """Raised by the refresh coordinator when a refresh cannot complete.

    A failed refresh is terminal for the current session; it is never
    retried automatically.

    Args:
        message: Human-readable description.
        reason: The :class:`RefreshFailure` category.
        status: HTTP status of the refresh response, when one was received.
    """

    exit_code = EXIT_AUTH_FAILURE

    def __init__(
        self,
        message: str,
        reason: RefreshFailure,
        status: int | None = None,
    ):
        super().__init__(message)
        self.reason = reason
        self.status = status


class ApiError(SessionKitError):
    """Base class for every failure surfaced by a session-aware request."""


class TransportError(ApiError):
    """No response reached the client (DNS failure, refused connection, timeout).

    Surfaced to the caller as-is; the client does not retry it.
    """

    exit_code = EXIT_CONNECTION_ERROR


class HttpError(ApiError):
    """The server answered with a non-2xx status.

    Args:
        status: The HTTP status code.
        body: The decoded response body (JSON value, text, or ``None``).
        message: Optional override for the generated message.
    """

    exit_code = EXIT_HTTP_ERROR

    def __init__(self, status: int, body: Any = None, message: str | None = None):
        super().__init__(message or _status_message(status, body))
        self.status = status
        self.body = body


class UnauthorizedError(HttpError):
    """HTTP 401. Recovered by refresh-and-retry unless recovery fails."""

    exit_code = EXIT_AUTH_FAILURE

    def __init__(self, body: Any = None, message: str | None = None):
        super().__init__(401, body, message)


class ServerError(HttpError):
    """Any non-2xx response other than 401. Never retried."""


class SessionExpiredError(ApiError):
    """The session could not be recovered and has been torn down.

    Callers should treat this as "force logout / redirect to sign-in".
    """

    exit_code = EXIT_AUTH_FAILURE


def _status_message(status: int, body: Any) -> str:
    """Build ``HTTP <status>: <detail>`` from a decoded error body."""
    detail = ""
    if isinstance(body, dict):
        detail = str(body.get("message") or body.get("error") or body.get("detail") or "")
    elif body:
        detail = str(body)[:200]
    prefix = f"HTTP {status}"
    return f"{prefix}: {detail}" if detail else prefix
