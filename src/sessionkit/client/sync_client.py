"""Synchronous session client -- mirrors :class:`~sessionkit.client.session_client.SessionClient`.

:class:`SyncSessionClient` applies the same retry-on-401 policy on a
blocking :class:`httpx.Client`.  It may be shared between threads: the
credential store is lock-guarded and the
:class:`~sessionkit.auth.refresh.ThreadedRefreshCoordinator` lets only one
thread call the refresh endpoint while the others wait for its result.

The command line uses this client.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from sessionkit.auth.credential_store import CredentialStore, create_store
from sessionkit.auth.refresh import ThreadedRefreshCoordinator
from sessionkit.auth.session import ExpiredListener, Session
from sessionkit.client.executor import SyncRequestExecutor, check_response
from sessionkit.client.interceptor import SyncSessionInterceptor
from sessionkit.client.response import extract_response_data
from sessionkit.client.session_client import parse_login_response
from sessionkit.config import require_base_url
from sessionkit.exceptions import ApiError, SessionExpiredError, TransportError
from sessionkit.models import ClientConfig, RequestDescriptor, User

logger = logging.getLogger(__name__)


class SyncSessionClient:
    """Blocking session-aware HTTP client.  Must be used as a context manager.

    Args:
        config: Resolved client configuration; ``base_url`` is required.
        store: Credential store to use; defaults to ``create_store(config)``.
        transport: Optional :mod:`httpx` transport.

    Example::

        with SyncSessionClient(resolve_config()) as client:
            print(client.get("/profile"))
    """

    def __init__(
        self,
        config: ClientConfig,
        store: Optional[CredentialStore] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._config = config
        self._base_url = require_base_url(config)
        self._session = Session(store if store is not None else create_store(config))
        self._transport = transport
        self._http: Optional[httpx.Client] = None
        self._coordinator: Optional[ThreadedRefreshCoordinator] = None
        self._interceptor: Optional[SyncSessionInterceptor] = None

    # ------------------------------------------------------------------ #
    # Context manager
    # ------------------------------------------------------------------ #

    def __enter__(self) -> SyncSessionClient:
        self._http = httpx.Client(
            base_url=self._base_url,
            timeout=self._config.timeout,
            verify=self._config.verify_ssl,
            follow_redirects=True,
            transport=self._transport,
        )
        store = self._session.store
        self._coordinator = ThreadedRefreshCoordinator(
            self._session,
            self._http,
            refresh_path=self._config.refresh_path,
            payload=self._config.refresh_payload,
        )
        self._interceptor = SyncSessionInterceptor(
            SyncRequestExecutor(self._http, store), self._coordinator, self._session
        )
        return self

    def __exit__(self, *args: object) -> None:
        if self._http:
            self._http.close()
        self._http = None
        self._coordinator = None
        self._interceptor = None

    # ------------------------------------------------------------------ #
    # Session state
    # ------------------------------------------------------------------ #

    @property
    def session(self) -> Session:
        return self._session

    @property
    def store(self) -> CredentialStore:
        return self._session.store

    @property
    def is_authenticated(self) -> bool:
        return self._session.store.get() is not None

    def current_user(self) -> Optional[User]:
        return self._session.store.get_user()

    def on_session_expired(self, listener: ExpiredListener) -> None:
        self._session.on_expired(listener)

    # ------------------------------------------------------------------ #
    # Requests
    # ------------------------------------------------------------------ #

    def send(self, descriptor: RequestDescriptor) -> httpx.Response:
        assert self._interceptor is not None, "Client not initialised -- use as context manager"
        return self._interceptor.call(descriptor)

    def request(
        self,
        method: str,
        path: str,
        body: Any = None,
        *,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> Any:
        """Make a session-aware request and return the decoded body.

        See :meth:`SessionClient.request <sessionkit.client.session_client.SessionClient.request>`.
        """
        descriptor = RequestDescriptor.build(method, path, body, params=params, headers=headers)
        return extract_response_data(self.send(descriptor))

    def get(self, path: str, **kwargs: Any) -> Any:
        return self.request("GET", path, **kwargs)

    def post(self, path: str, body: Any = None, **kwargs: Any) -> Any:
        return self.request("POST", path, body, **kwargs)

    def put(self, path: str, body: Any = None, **kwargs: Any) -> Any:
        return self.request("PUT", path, body, **kwargs)

    def patch(self, path: str, body: Any = None, **kwargs: Any) -> Any:
        return self.request("PATCH", path, body, **kwargs)

    def delete(self, path: str, **kwargs: Any) -> Any:
        return self.request("DELETE", path, **kwargs)

    # ------------------------------------------------------------------ #
    # Session flows
    # ------------------------------------------------------------------ #

    def login(self, email: str, password: str) -> Optional[User]:
        assert self._http is not None, "Client not initialised -- use as context manager"
        try:
            response = self._http.post(
                self._config.login_path, json={"email": email, "password": password}
            )
        except httpx.TransportError as exc:
            raise TransportError(f"POST {self._config.login_path} failed: {exc}") from exc
        login = parse_login_response(check_response(response))
        self._session.start(login.to_pair(), login.user)
        return login.user

    def register(self, name: str, email: str, password: str) -> Any:
        assert self._http is not None, "Client not initialised -- use as context manager"
        path = self._config.register_path
        try:
            response = self._http.post(
                path, json={"name": name, "email": email, "password": password}
            )
        except httpx.TransportError as exc:
            raise TransportError(f"POST {path} failed: {exc}") from exc
        return extract_response_data(check_response(response))

    def logout(self) -> None:
        if self._session.store.access_token() is not None:
            try:
                self.send(RequestDescriptor.build("POST", self._config.logout_path))
            except ApiError as exc:
                logger.warning("Logout request failed: %s", exc)
        self._session.teardown("logged out")

    def check_auth(self, probe_path: Optional[str] = None) -> bool:
        if self._session.store.get() is None:
            return False
        path = probe_path or self._config.auth_check_path
        if path is None:
            return True
        try:
            self.send(RequestDescriptor.build("GET", path))
        except SessionExpiredError:
            return False
        return True
