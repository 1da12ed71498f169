"""Credential storage, session lifecycle, and single-flight refresh.

The main entry points are:

- :class:`CredentialStore` -- namespaced access/refresh token storage on top
  of a :class:`FileBackend` or :class:`MemoryBackend`.
- :class:`Session` -- owns the store, starts sessions and performs the
  idempotent teardown that notifies session-expired listeners.
- :class:`RefreshCoordinator` / :class:`ThreadedRefreshCoordinator` --
  exchange the refresh token for a new pair, at most one call at a time.

Typical usage::

    from sessionkit.auth import CredentialStore, MemoryBackend, Session

    session = Session(CredentialStore(MemoryBackend()))
    session.on_expired(lambda reason: print("please sign in again"))
"""

from sessionkit.auth.credential_store import (
    CredentialStore,
    FileBackend,
    KeyValueBackend,
    MemoryBackend,
    create_store,
)
from sessionkit.auth.refresh import RefreshCoordinator, ThreadedRefreshCoordinator
from sessionkit.auth.session import Session

__all__ = [
    "CredentialStore",
    "FileBackend",
    "KeyValueBackend",
    "MemoryBackend",
    "RefreshCoordinator",
    "Session",
    "ThreadedRefreshCoordinator",
    "create_store",
]
