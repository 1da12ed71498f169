"""sessionkit -- Session-aware HTTP client with single-flight token refresh.

This package wraps :mod:`httpx` with a bearer-credential session: every
outbound request carries the current access token, an HTTP 401 triggers one
shared refresh of the credential pair, and the failed request is replayed
exactly once with the new token.  When the refresh itself fails the session
is torn down and callers receive :class:`~sessionkit.exceptions.SessionExpiredError`.

Typical usage::

    from sessionkit import SessionClient, resolve_config

    async with SessionClient(resolve_config()) as client:
        await client.login("ana@example.com", "s3cret")
        profile = await client.get("/profile")

Modules:
    models: Pydantic models shared across the package.
    config: XDG-aware configuration and precedence resolution.
    exceptions: Exception hierarchy with exit-code mapping.
    auth: Credential store, session teardown, and refresh coordination.
    client: Request executor, session interceptor, and the public clients.
    app: Typer command line entry point.
"""

__version__ = "0.1.0"

from sessionkit.client import SessionClient, SyncSessionClient  # noqa: E402
from sessionkit.config import resolve_config  # noqa: E402

__all__ = ["SessionClient", "SyncSessionClient", "resolve_config", "__version__"]
