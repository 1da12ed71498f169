"""Single-flight credential refresh.

When an access token expires, every request in flight tends to receive a
401 at about the same time.  Each of them needs a new token, but the
refresh endpoint must be called only once: many authorization servers
rotate the refresh token on use and reject the second caller, which would
log the user out for no reason.

Two coordinators implement the same protocol:

- :class:`RefreshCoordinator` -- for asyncio.  The refresh runs in its own
  task and concurrent callers, the one that started it included, await one
  shared :class:`asyncio.Future`.
- :class:`ThreadedRefreshCoordinator` -- for threads.  A lock guards the
  ``IDLE -> REFRESHING`` transition and followers block on an event.

Protocol, per call to ``refresh()``:

1. ``REFRESHING``: join the pending refresh; no second network call.
2. ``IDLE`` and the stored access token differs from the one the caller's
   request was rejected with: another flow already refreshed, so return
   the stored pair.
3. ``IDLE`` and no refresh token stored: fail with
   :attr:`~sessionkit.exceptions.RefreshFailure.NO_REFRESH_TOKEN` without a
   network call.
4. Otherwise post the refresh token.  On success the new pair is stored
   before any waiter is released.  On failure the session is torn down and
   every waiter receives the same :class:`~sessionkit.exceptions.RefreshError`.

A failed refresh is never retried.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import threading
from typing import Any, Optional

import httpx

from sessionkit.auth.session import Session
from sessionkit.exceptions import RefreshError, RefreshFailure
from sessionkit.models import CredentialPair, RefreshPayload, RefreshResponse, RefreshState

logger = logging.getLogger(__name__)


def build_refresh_request(
    refresh_token: str, payload: RefreshPayload
) -> tuple[Optional[dict[str, Any]], dict[str, str]]:
    """Return the ``(json_body, headers)`` that present *refresh_token*."""
    if payload == RefreshPayload.BEARER:
        return {}, {"Authorization": f"Bearer {refresh_token}"}
    return {"refreshToken": refresh_token}, {}


def parse_refresh_response(response: httpx.Response, refresh_token: str) -> CredentialPair:
    """Turn a refresh endpoint response into the new credential pair.

    Args:
        response: The refresh endpoint's response.
        refresh_token: The refresh token that was sent; kept when the server
            does not rotate it.

    Raises:
        RefreshError: ``REJECTED`` for a non-2xx status, ``MALFORMED_RESPONSE``
            when the body has no usable ``accessToken``.
    """
    if not response.is_success:
        raise RefreshError(
            f"Refresh rejected with HTTP {response.status_code}",
            RefreshFailure.REJECTED,
            status=response.status_code,
        )
    try:
        body = RefreshResponse.model_validate(response.json())
    except ValueError as exc:
        raise RefreshError(
            f"Refresh response is missing a usable accessToken: {exc}",
            RefreshFailure.MALFORMED_RESPONSE,
            status=response.status_code,
        ) from exc
    return body.to_pair(refresh_token)


def _no_refresh_token() -> RefreshError:
    return RefreshError("No refresh token available", RefreshFailure.NO_REFRESH_TOKEN)


def _interrupted() -> RefreshError:
    return RefreshError("Refresh was interrupted", RefreshFailure.TRANSPORT)


class RefreshCoordinator:
    """Asyncio single-flight refresh for one :class:`~sessionkit.auth.session.Session`.

    Args:
        session: Session whose store is read and updated.
        http: Client used for the refresh call; its ``base_url`` must be the
            API base URL.
        refresh_path: Path of the refresh endpoint.
        payload: How the refresh token is presented.
    """

    def __init__(
        self,
        session: Session,
        http: httpx.AsyncClient,
        refresh_path: str = "/auth/refresh",
        payload: RefreshPayload = RefreshPayload.BODY,
    ) -> None:
        self._session = session
        self._http = http
        self._refresh_path = refresh_path
        self._payload = payload
        self._state = RefreshState.IDLE
        self._pending: Optional[asyncio.Future[CredentialPair]] = None
        self._task: Optional[asyncio.Future[None]] = None

    @property
    def state(self) -> RefreshState:
        return self._state

    async def refresh(self, failed_token: Optional[str] = None) -> CredentialPair:
        """Return a fresh credential pair, sharing any refresh already in flight.

        Args:
            failed_token: The access token the caller's request was rejected
                with, if known.

        Raises:
            RefreshError: If no refresh token is stored or the refresh fails.
        """
        if self._state == RefreshState.REFRESHING and self._pending is not None:
            logger.debug("Joining refresh already in flight")
            return await asyncio.shield(self._pending)

        store = self._session.store
        if failed_token is not None:
            current = store.get()
            if current is not None and current.access_token != failed_token:
                logger.debug("Credentials were refreshed by another request; reusing them")
                return current

        refresh_token = store.refresh_token()
        if not refresh_token:
            self._session.teardown("no refresh token")
            raise _no_refresh_token()

        future: asyncio.Future[CredentialPair] = asyncio.get_running_loop().create_future()
        self._pending = future
        self._state = RefreshState.REFRESHING
        logger.debug("Refreshing credentials via %s", self._refresh_path)
        self._task = asyncio.ensure_future(self._lead(refresh_token, future))
        self._task.add_done_callback(functools.partial(self._on_lead_done, future))
        return await asyncio.shield(future)

    async def _lead(self, refresh_token: str, future: asyncio.Future[CredentialPair]) -> None:
        """Run one refresh and publish its outcome on *future*.

        Runs as its own task, so cancelling the caller that started it leaves
        the refresh running for everyone else waiting on *future*.
        """
        try:
            pair = await self._exchange(refresh_token)
        except RefreshError as exc:
            self._session.teardown(f"refresh failed ({exc.reason.value})")
            self._settle()
            self._reject(future, exc)
            return

        self._session.store.set(pair)
        self._settle()
        future.set_result(pair)
        logger.info("Credentials refreshed")

    def _on_lead_done(
        self, future: asyncio.Future[CredentialPair], task: asyncio.Future[None]
    ) -> None:
        """Fail the waiters of a refresh task that was cancelled or crashed."""
        if not task.cancelled() and task.exception() is not None:
            logger.warning("Refresh task failed", exc_info=task.exception())
        if future.done():
            return
        self._settle()
        self._reject(future, _interrupted())

    async def _exchange(self, refresh_token: str) -> CredentialPair:
        json_body, headers = build_refresh_request(refresh_token, self._payload)
        try:
            response = await self._http.post(self._refresh_path, json=json_body, headers=headers)
        except httpx.TransportError as exc:
            raise RefreshError(
                f"Refresh request failed: {exc}", RefreshFailure.TRANSPORT
            ) from exc
        return parse_refresh_response(response, refresh_token)

    def _settle(self) -> None:
        self._state = RefreshState.IDLE
        self._pending = None

    @staticmethod
    def _reject(future: asyncio.Future[CredentialPair], exc: BaseException) -> None:
        future.set_exception(exc)
        # Mark retrieved: with no followers nobody else awaits the future.
        future.exception()


class _InflightRefresh:
    """Result slot shared by the leader and followers of one threaded refresh."""

    def __init__(self) -> None:
        self._done = threading.Event()
        self._pair: Optional[CredentialPair] = None
        self._error: Optional[RefreshError] = None

    def resolve(self, pair: CredentialPair) -> None:
        self._pair = pair
        self._done.set()

    def fail(self, error: RefreshError) -> None:
        self._error = error
        self._done.set()

    def wait(self) -> CredentialPair:
        self._done.wait()
        if self._pair is None:
            raise self._error if self._error is not None else _interrupted()
        return self._pair


class ThreadedRefreshCoordinator:
    """Thread-safe single-flight refresh backed by a blocking :class:`httpx.Client`.

    The first thread to ask becomes the leader and performs the network
    call; threads arriving while it runs wait for its outcome.

    Args:
        session: Session whose store is read and updated.
        http: Blocking client whose ``base_url`` is the API base URL.
        refresh_path: Path of the refresh endpoint.
        payload: How the refresh token is presented.
    """

    def __init__(
        self,
        session: Session,
        http: httpx.Client,
        refresh_path: str = "/auth/refresh",
        payload: RefreshPayload = RefreshPayload.BODY,
    ) -> None:
        self._session = session
        self._http = http
        self._refresh_path = refresh_path
        self._payload = payload
        self._lock = threading.Lock()
        self._state = RefreshState.IDLE
        self._inflight: Optional[_InflightRefresh] = None

    @property
    def state(self) -> RefreshState:
        return self._state

    def refresh(self, failed_token: Optional[str] = None) -> CredentialPair:
        """Blocking counterpart of :meth:`RefreshCoordinator.refresh`."""
        store = self._session.store
        leader: Optional[_InflightRefresh] = None
        refresh_token: Optional[str] = None
        with self._lock:
            inflight = self._inflight
            if inflight is None:
                current = store.get()
                if (
                    failed_token is not None
                    and current is not None
                    and current.access_token != failed_token
                ):
                    return current
                refresh_token = store.refresh_token()
                if refresh_token:
                    leader = self._inflight = _InflightRefresh()
                    self._state = RefreshState.REFRESHING

        if inflight is not None:
            logger.debug("Joining refresh already in flight")
            return inflight.wait()
        if leader is None or not refresh_token:
            self._session.teardown("no refresh token")
            raise _no_refresh_token()

        logger.debug("Refreshing credentials via %s", self._refresh_path)

        try:
            pair = self._exchange(refresh_token)
        except RefreshError as exc:
            # Clear before going IDLE: a caller arriving in between must not
            # find the rejected refresh token and post it again.
            self._session.teardown(f"refresh failed ({exc.reason.value})")
            self._settle()
            leader.fail(exc)
            raise
        except BaseException:
            self._settle()
            leader.fail(_interrupted())
            raise

        store.set(pair)
        self._settle()
        leader.resolve(pair)
        logger.info("Credentials refreshed")
        return pair

    def _exchange(self, refresh_token: str) -> CredentialPair:
        json_body, headers = build_refresh_request(refresh_token, self._payload)
        try:
            response = self._http.post(self._refresh_path, json=json_body, headers=headers)
        except httpx.TransportError as exc:
            raise RefreshError(
                f"Refresh request failed: {exc}", RefreshFailure.TRANSPORT
            ) from exc
        return parse_refresh_response(response, refresh_token)

    def _settle(self) -> None:
        with self._lock:
            self._state = RefreshState.IDLE
            self._inflight = None
