"""Session interceptor -- the retry-on-401 policy around a request executor.

Per logical call the interceptor walks this state machine::

    Initial -> Executing -> Success
                         -> NeedsRefresh -> Refreshing -> Retrying -> Success | Failed

- **Executing**: 2xx is returned.  401 on a first attempt moves to
  *NeedsRefresh*; 401 on the replay is terminal (:class:`SessionExpiredError`).
  Every other error passes through unchanged and is never retried.
- **Refreshing**: the refresh coordinator is asked for a new pair.  If it
  fails, the session is torn down and :class:`SessionExpiredError` is raised.
- **Retrying**: a new descriptor with ``is_retry=True`` and the refreshed
  access token is executed exactly once.  Whatever happens is final.

A request sent with no credentials at all (nothing in the store) has no
session to recover; its 401 reaches the caller as
:class:`~sessionkit.exceptions.UnauthorizedError`.
"""

from __future__ import annotations

import logging

import httpx

from sessionkit.auth.refresh import RefreshCoordinator, ThreadedRefreshCoordinator
from sessionkit.auth.session import Session
from sessionkit.client.executor import RequestExecutor, SyncRequestExecutor
from sessionkit.exceptions import RefreshError, SessionExpiredError, UnauthorizedError
from sessionkit.models import RequestDescriptor

logger = logging.getLogger(__name__)


class _InterceptorBase:
    def __init__(self, session: Session) -> None:
        self._session = session

    def _pin_token(self, descriptor: RequestDescriptor) -> RequestDescriptor:
        """Fix the access token the first attempt is sent with."""
        if descriptor.access_token is not None:
            return descriptor
        token = self._session.store.access_token()
        if token is None:
            return descriptor
        return descriptor.model_copy(update={"access_token": token})

    def _can_recover(self, descriptor: RequestDescriptor) -> bool:
        return descriptor.access_token is not None or self._session.store.refresh_token() is not None

    def _expire(self, descriptor: RequestDescriptor, reason: str) -> SessionExpiredError:
        self._session.teardown(reason)
        return SessionExpiredError(
            f"Session expired during {descriptor.method} {descriptor.path}: {reason}"
        )


class SessionInterceptor(_InterceptorBase):
    """Asyncio session interceptor.

    Args:
        executor: Performs the individual HTTP calls.
        coordinator: Shared single-flight refresh coordinator.
        session: Session to tear down when recovery fails.
    """

    def __init__(
        self,
        executor: RequestExecutor,
        coordinator: RefreshCoordinator,
        session: Session,
    ) -> None:
        super().__init__(session)
        self._executor = executor
        self._coordinator = coordinator

    async def call(self, descriptor: RequestDescriptor) -> httpx.Response:
        """Execute *descriptor*, refreshing and replaying once on a 401.

        Raises:
            SessionExpiredError: If the refresh fails or the replay is rejected.
            UnauthorizedError: If the request carried no credentials at all.
            ServerError: For any other non-2xx status.
            TransportError: When no response was received.
        """
        descriptor = self._pin_token(descriptor)
        try:
            return await self._executor.execute(descriptor)
        except UnauthorizedError as exc:
            if descriptor.is_retry:
                raise self._expire(descriptor, "retried request was rejected") from exc
            if not self._can_recover(descriptor):
                raise

        logger.debug("%s %s got 401; refreshing", descriptor.method, descriptor.path)
        try:
            pair = await self._coordinator.refresh(descriptor.access_token)
        except RefreshError as exc:
            raise self._expire(descriptor, f"refresh failed ({exc.reason.value})") from exc

        retry = descriptor.for_retry(pair.access_token)
        try:
            return await self._executor.execute(retry)
        except UnauthorizedError as exc:
            raise self._expire(retry, "retried request was rejected") from exc


class SyncSessionInterceptor(_InterceptorBase):
    """Blocking counterpart of :class:`SessionInterceptor` for threaded use."""

    def __init__(
        self,
        executor: SyncRequestExecutor,
        coordinator: ThreadedRefreshCoordinator,
        session: Session,
    ) -> None:
        super().__init__(session)
        self._executor = executor
        self._coordinator = coordinator

    def call(self, descriptor: RequestDescriptor) -> httpx.Response:
        descriptor = self._pin_token(descriptor)
        try:
            return self._executor.execute(descriptor)
        except UnauthorizedError as exc:
            if descriptor.is_retry:
                raise self._expire(descriptor, "retried request was rejected") from exc
            if not self._can_recover(descriptor):
                raise

        logger.debug("%s %s got 401; refreshing", descriptor.method, descriptor.path)
        try:
            pair = self._coordinator.refresh(descriptor.access_token)
        except RefreshError as exc:
            raise self._expire(descriptor, f"refresh failed ({exc.reason.value})") from exc

        retry = descriptor.for_retry(pair.access_token)
        try:
            return self._executor.execute(retry)
        except UnauthorizedError as exc:
            raise self._expire(retry, "retried request was rejected") from exc
