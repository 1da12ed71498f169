"""Session lifecycle: start, teardown, and session-expired listeners.

A :class:`Session` owns the :class:`~sessionkit.auth.credential_store.CredentialStore`
for one signed-in identity.  Starting a session stores a fresh credential
pair; tearing it down clears the store and tells every registered listener
that the user must sign in again.

A session is active whenever the store holds a token, however the token
got there.  Teardown always clears the store; the listeners are notified
only by the call that found the session active, so when many requests fail
at once the user is told to sign in again exactly once.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from sessionkit.auth.credential_store import CredentialStore
from sessionkit.models import CredentialPair, User

logger = logging.getLogger(__name__)

ExpiredListener = Callable[[str], None]
"""Called with the teardown reason once the session has been cleared."""


class Session:
    """Authenticated session state shared by every request flow of a client.

    Args:
        store: The credential store this session reads and clears.

    Example::

        session = Session(CredentialStore(MemoryBackend()))
        session.on_expired(lambda reason: print("sign in again:", reason))
        session.start(CredentialPair(access_token="a", refresh_token="r"))
        session.teardown("refresh rejected")   # clears, notifies -> True
        session.teardown("refresh rejected")   # already torn down -> False
    """

    def __init__(self, store: CredentialStore) -> None:
        self._store = store
        self._lock = threading.Lock()
        self._listeners: list[ExpiredListener] = []

    @property
    def store(self) -> CredentialStore:
        return self._store

    @property
    def is_active(self) -> bool:
        """Whether the store holds an access or refresh token."""
        return self._holds_tokens()

    def _holds_tokens(self) -> bool:
        return bool(self._store.access_token() or self._store.refresh_token())

    def start(self, pair: CredentialPair, user: Optional[User] = None) -> None:
        """Store *pair* (and *user*)."""
        with self._lock:
            self._store.set(pair)
            if user is not None:
                self._store.set_user(user)
        logger.info("Session started for namespace '%s'", self._store.namespace)

    def on_expired(self, listener: ExpiredListener) -> None:
        """Register *listener* to run after each teardown."""
        self._listeners.append(listener)

    def teardown(self, reason: str = "session expired") -> bool:
        """End the session: clear credentials and notify listeners.

        Safe to call repeatedly and concurrently.  The store is cleared on
        every call; only the call that finds tokens in it notifies listeners.

        Returns:
            ``True`` if this call ended an active session, ``False`` if no
            tokens were stored.
        """
        with self._lock:
            active = self._holds_tokens()
            self._store.clear()
        if not active:
            return False

        logger.warning("Session '%s' ended: %s", self._store.namespace, reason)
        for listener in list(self._listeners):
            try:
                listener(reason)
            except Exception:
                logger.warning("Session-expired listener %r failed", listener, exc_info=True)
        return True
