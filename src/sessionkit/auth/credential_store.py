"""Persistent credential store for the access/refresh token pair.

Tokens are kept in a small key-value backend so that a session survives
process restarts:

- :class:`FileBackend` -- one JSON document per namespace under
  ``~/.local/share/sessionkit/sessions/<namespace>.json`` (XDG) or the
  platform equivalent.  Writes are atomic and the file is created with
  ``0o600`` permissions so tokens are never world-readable, even
  momentarily.
- :class:`MemoryBackend` -- a plain dict, for tests and throwaway sessions.

:class:`CredentialStore` is the only component that reads or writes the
keys.  The access and refresh tokens are always written in one backend call
and removed together; a backend holding only one of them reads as
unauthenticated.

See Also:
    :class:`~sessionkit.auth.session.Session` -- owns the store and its teardown.
    :class:`~sessionkit.auth.refresh.RefreshCoordinator` -- writes refreshed pairs.
"""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Iterable, Optional, Protocol

from pydantic import ValidationError

from sessionkit.config import atomic_write, get_data_dir
from sessionkit.models import ClientConfig, CredentialPair, StorageKind, User

logger = logging.getLogger(__name__)

ACCESS_TOKEN_KEY = "accessToken"
REFRESH_TOKEN_KEY = "refreshToken"
USER_KEY = "user"


class KeyValueBackend(Protocol):
    """String key-value storage used by :class:`CredentialStore`."""

    def get_item(self, key: str) -> Optional[str]: ...

    def set_items(self, items: dict[str, str]) -> None: ...

    def remove_items(self, keys: Iterable[str]) -> None: ...


class MemoryBackend:
    """In-process backend; nothing survives the interpreter."""

    def __init__(self, initial: Optional[dict[str, str]] = None) -> None:
        self._items: dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_items(self, items: dict[str, str]) -> None:
        self._items.update(items)

    def remove_items(self, keys: Iterable[str]) -> None:
        for key in keys:
            self._items.pop(key, None)

    def snapshot(self) -> dict[str, str]:
        """Return a copy of the stored items."""
        return dict(self._items)


class FileBackend:
    """JSON-file backend with atomic, owner-only writes.

    The whole document is re-read on every access so that several processes
    sharing one session file observe each other's refreshes.

    Args:
        path: Location of the JSON document.
    """

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        """The filesystem path of the session file."""
        return self._path

    def get_item(self, key: str) -> Optional[str]:
        value = self._read().get(key)
        return value if isinstance(value, str) else None

    def set_items(self, items: dict[str, str]) -> None:
        data = self._read()
        data.update(items)
        self._write(data)

    def remove_items(self, keys: Iterable[str]) -> None:
        data = self._read()
        changed = False
        for key in keys:
            if key in data:
                del data[key]
                changed = True
        if not changed:
            return
        if data:
            self._write(data)
        elif self._path.is_file():
            self._path.unlink()

    def _read(self) -> dict[str, str]:
        if not self._path.is_file():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, ValueError, OSError) as exc:
            logger.warning("Ignoring unreadable session file %s: %s", self._path, exc)
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: dict[str, str]) -> None:
        atomic_write(self._path, json.dumps(data, indent=2) + "\n", mode=0o600)


class CredentialStore:
    """Read/write the credential pair (and the signed-in user) for one namespace.

    Every key is prefixed with ``<namespace>:`` so several sessions can
    share a backend.  All methods take an internal re-entrant lock, which
    makes the store safe to use from threads as well as from asyncio tasks.

    Args:
        backend: The key-value backend to persist into.
        namespace: Key prefix, e.g. ``"sessionkit"``.

    Example::

        store = CredentialStore(MemoryBackend())
        store.set(CredentialPair(access_token="a1", refresh_token="r1"))
        assert store.get().access_token == "a1"
        store.clear()
        assert store.get() is None
    """

    def __init__(self, backend: KeyValueBackend, namespace: str = "sessionkit") -> None:
        self._backend = backend
        self._namespace = namespace
        self._lock = threading.RLock()

    @property
    def backend(self) -> KeyValueBackend:
        return self._backend

    @property
    def namespace(self) -> str:
        return self._namespace

    def _key(self, name: str) -> str:
        return f"{self._namespace}:{name}"

    def get(self) -> Optional[CredentialPair]:
        """Return the stored pair, or ``None`` when either token is missing."""
        with self._lock:
            access = self._backend.get_item(self._key(ACCESS_TOKEN_KEY))
            refresh = self._backend.get_item(self._key(REFRESH_TOKEN_KEY))
        if not access or not refresh:
            return None
        return CredentialPair(access_token=access, refresh_token=refresh)

    def access_token(self) -> Optional[str]:
        """Return the stored access token, even when the pair is incomplete."""
        with self._lock:
            return self._backend.get_item(self._key(ACCESS_TOKEN_KEY)) or None

    def refresh_token(self) -> Optional[str]:
        """Return the stored refresh token, even when the pair is incomplete."""
        with self._lock:
            return self._backend.get_item(self._key(REFRESH_TOKEN_KEY)) or None

    def set(self, pair: CredentialPair) -> None:
        """Overwrite both tokens in a single backend write."""
        with self._lock:
            self._backend.set_items(
                {
                    self._key(ACCESS_TOKEN_KEY): pair.access_token,
                    self._key(REFRESH_TOKEN_KEY): pair.refresh_token,
                }
            )

    def clear(self) -> None:
        """Remove the tokens and the stored user. No-op when already empty."""
        with self._lock:
            self._backend.remove_items(
                [
                    self._key(ACCESS_TOKEN_KEY),
                    self._key(REFRESH_TOKEN_KEY),
                    self._key(USER_KEY),
                ]
            )

    def get_user(self) -> Optional[User]:
        """Return the stored user, or ``None`` if absent or unparsable."""
        with self._lock:
            raw = self._backend.get_item(self._key(USER_KEY))
        if not raw:
            return None
        try:
            return User.model_validate_json(raw)
        except ValidationError:
            logger.warning("Discarding unparsable stored user for '%s'", self._namespace)
            return None

    def set_user(self, user: User) -> None:
        with self._lock:
            self._backend.set_items({self._key(USER_KEY): user.model_dump_json()})


def session_file_path(namespace: str) -> Path:
    """Return the session file used by :func:`create_store` for *namespace*."""
    return get_data_dir() / "sessions" / f"{namespace}.json"


def create_store(config: ClientConfig) -> CredentialStore:
    """Build the credential store described by *config*."""
    backend: KeyValueBackend
    if config.storage == StorageKind.MEMORY:
        backend = MemoryBackend()
    else:
        backend = FileBackend(session_file_path(config.storage_namespace))
    return CredentialStore(backend, namespace=config.storage_namespace)
