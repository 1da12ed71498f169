"""HTTP client module for sessionkit.

Provides session-aware clients that wrap :mod:`httpx` with bearer-token
injection and a refresh-and-retry-once policy for expired credentials.

Classes:
    :class:`SessionClient` -- asyncio client backed by :class:`httpx.AsyncClient`.
    :class:`SyncSessionClient` -- blocking, thread-safe client backed by
    :class:`httpx.Client`.
    :class:`SessionInterceptor` / :class:`SyncSessionInterceptor` -- the
    retry policy, usable on their own with a custom executor.

Example::

    from sessionkit.client import SessionClient

    async with SessionClient(config) as client:
        data = await client.request("GET", "/profile")
"""

from sessionkit.client.executor import RequestExecutor, SyncRequestExecutor
from sessionkit.client.interceptor import SessionInterceptor, SyncSessionInterceptor
from sessionkit.client.session_client import SessionClient
from sessionkit.client.sync_client import SyncSessionClient

__all__ = [
    "RequestExecutor",
    "SessionClient",
    "SessionInterceptor",
    "SyncRequestExecutor",
    "SyncSessionClient",
    "SyncSessionInterceptor",
]
