"""Asynchronous session client -- the public entry point for collaborators.

:class:`SessionClient` wires one :class:`httpx.AsyncClient` to the request
executor, the refresh coordinator and the session interceptor, and offers
the single primitive the rest of an application needs::

    data = await client.request("GET", "/personal-finance/categories")

Every call made this way already embeds the retry-on-401 policy, so callers
never see a raw 401 for an authenticated session.  Around that primitive
the client provides the session flows a front end needs: :meth:`register`,
:meth:`login`, :meth:`logout`, :meth:`check_auth` and the session-expired
hook.

See Also:
    :class:`~sessionkit.client.sync_client.SyncSessionClient` for the
    blocking, thread-safe equivalent.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from sessionkit.auth.credential_store import CredentialStore, create_store
from sessionkit.auth.refresh import RefreshCoordinator
from sessionkit.auth.session import ExpiredListener, Session
from sessionkit.client.executor import RequestExecutor, check_response
from sessionkit.client.interceptor import SessionInterceptor
from sessionkit.client.response import extract_response_data
from sessionkit.config import require_base_url
from sessionkit.exceptions import ApiError, SessionExpiredError, TransportError
from sessionkit.models import ClientConfig, LoginResponse, RequestDescriptor, User

logger = logging.getLogger(__name__)


def parse_login_response(response: httpx.Response) -> LoginResponse:
    """Validate a login response body.

    Raises:
        ApiError: If the body lacks the token pair.
    """
    try:
        return LoginResponse.model_validate(response.json())
    except ValueError as exc:
        raise ApiError(
            f"Login response did not contain accessToken and refreshToken: {exc}"
        ) from exc


class SessionClient:
    """Session-aware HTTP client for asyncio code.  Must be used as an async context manager.

    Args:
        config: Resolved client configuration; ``base_url`` is required.
        store: Credential store to use.  Defaults to the store described by
            ``config.storage`` (session file or memory).
        transport: Optional :mod:`httpx` transport, e.g. a
            :class:`httpx.MockTransport` in tests.

    Raises:
        ConfigError: If ``config`` has no base URL.

    Example::

        async with SessionClient(resolve_config()) as client:
            client.on_session_expired(lambda reason: go_to("/login"))
            await client.login("ana@example.com", "s3cret")
            goals = await client.get("/personal-finance/goals")
    """

    def __init__(
        self,
        config: ClientConfig,
        store: Optional[CredentialStore] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._config = config
        self._base_url = require_base_url(config)
        self._session = Session(store if store is not None else create_store(config))
        self._transport = transport
        self._http: Optional[httpx.AsyncClient] = None
        self._executor: Optional[RequestExecutor] = None
        self._coordinator: Optional[RefreshCoordinator] = None
        self._interceptor: Optional[SessionInterceptor] = None

    # ------------------------------------------------------------------ #
    # Async context manager
    # ------------------------------------------------------------------ #

    async def __aenter__(self) -> SessionClient:
        self._http = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._config.timeout,
            verify=self._config.verify_ssl,
            follow_redirects=True,
            transport=self._transport,
        )
        store = self._session.store
        self._executor = RequestExecutor(self._http, store)
        self._coordinator = RefreshCoordinator(
            self._session,
            self._http,
            refresh_path=self._config.refresh_path,
            payload=self._config.refresh_payload,
        )
        self._interceptor = SessionInterceptor(self._executor, self._coordinator, self._session)
        return self

    async def __aexit__(self, *args: object) -> None:
        if self._http:
            await self._http.aclose()
        self._http = None
        self._executor = None
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
    def coordinator(self) -> RefreshCoordinator:
        assert self._coordinator is not None, "Client not initialised -- use as async context manager"
        return self._coordinator

    @property
    def is_authenticated(self) -> bool:
        """Whether a complete credential pair is stored."""
        return self._session.store.get() is not None

    def current_user(self) -> Optional[User]:
        """Return the user stored at login, if any."""
        return self._session.store.get_user()

    def on_session_expired(self, listener: ExpiredListener) -> None:
        """Register *listener* to run once whenever the session is torn down."""
        self._session.on_expired(listener)

    # ------------------------------------------------------------------ #
    # Requests
    # ------------------------------------------------------------------ #

    async def send(self, descriptor: RequestDescriptor) -> httpx.Response:
        """Run *descriptor* through the session interceptor and return the raw response."""
        assert self._interceptor is not None, "Client not initialised -- use as async context manager"
        return await self._interceptor.call(descriptor)

    async def request(
        self,
        method: str,
        path: str,
        body: Any = None,
        *,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> Any:
        """Make a session-aware request and return the decoded response body.

        Args:
            method: HTTP method (GET, POST, PUT, PATCH, DELETE).
            path: URL path relative to the configured base URL.
            body: JSON-serialisable body, or ``str``/``bytes`` sent verbatim.
            params: Query parameters.
            headers: Extra request headers.

        Returns:
            The JSON-decoded body, the raw text for non-JSON bodies, or
            ``None`` for an empty body.

        Raises:
            SessionExpiredError: If credentials could not be refreshed.
            ServerError: On any non-2xx status other than 401.
            TransportError: On network errors and timeouts.
        """
        descriptor = RequestDescriptor.build(method, path, body, params=params, headers=headers)
        response = await self.send(descriptor)
        return extract_response_data(response)

    async def get(self, path: str, **kwargs: Any) -> Any:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, body: Any = None, **kwargs: Any) -> Any:
        return await self.request("POST", path, body, **kwargs)

    async def put(self, path: str, body: Any = None, **kwargs: Any) -> Any:
        return await self.request("PUT", path, body, **kwargs)

    async def patch(self, path: str, body: Any = None, **kwargs: Any) -> Any:
        return await self.request("PATCH", path, body, **kwargs)

    async def delete(self, path: str, **kwargs: Any) -> Any:
        return await self.request("DELETE", path, **kwargs)

    # ------------------------------------------------------------------ #
    # Session flows
    # ------------------------------------------------------------------ #

    async def login(self, email: str, password: str) -> Optional[User]:
        """Exchange email and password for a credential pair and start the session.

        The login call is sent without any stored token and bypasses the
        refresh policy, so a 401 here means the credentials were wrong.

        Returns:
            The user returned by the server, if any.

        Raises:
            UnauthorizedError: If the server rejects the credentials.
            ApiError: For any other failure.
        """
        assert self._http is not None, "Client not initialised -- use as async context manager"
        try:
            response = await self._http.post(
                self._config.login_path, json={"email": email, "password": password}
            )
        except httpx.TransportError as exc:
            raise TransportError(f"POST {self._config.login_path} failed: {exc}") from exc
        login = parse_login_response(check_response(response))
        self._session.start(login.to_pair(), login.user)
        return login.user

    async def register(self, name: str, email: str, password: str) -> Any:
        """Create an account.  No session is started; log in afterwards.

        Like :meth:`login`, the call carries no stored token and bypasses the
        refresh policy.

        Returns:
            The decoded response body.

        Raises:
            HttpError: If the server refuses the registration.
            TransportError: If no response was received.
        """
        assert self._http is not None, "Client not initialised -- use as async context manager"
        path = self._config.register_path
        try:
            response = await self._http.post(
                path, json={"name": name, "email": email, "password": password}
            )
        except httpx.TransportError as exc:
            raise TransportError(f"POST {path} failed: {exc}") from exc
        return extract_response_data(check_response(response))

    async def logout(self) -> None:
        """Tell the server to end the session, then tear it down locally.

        The server call is best effort: its failure is logged and the local
        teardown happens regardless.  Calling this without a session is a no-op.
        """
        if self._session.store.access_token() is not None:
            try:
                await self.send(RequestDescriptor.build("POST", self._config.logout_path))
            except ApiError as exc:
                logger.warning("Logout request failed: %s", exc)
        self._session.teardown("logged out")

    async def check_auth(self, probe_path: Optional[str] = None) -> bool:
        """Report whether the stored session is usable.

        Without a complete credential pair this is ``False`` and no request
        is made.  With a probe path (argument or ``config.auth_check_path``)
        a ``GET`` is sent through the full refresh policy: success means
        ``True``, an expired session means ``False``.  Without a probe path
        the stored pair alone answers ``True``.

        Raises:
            ServerError: If the probe fails with a status other than 401.
            TransportError: If the probe gets no response.
        """
        if self._session.store.get() is None:
            return False
        path = probe_path or self._config.auth_check_path
        if path is None:
            return True
        try:
            await self.send(RequestDescriptor.build("GET", path))
        except SessionExpiredError:
            return False
        return True
