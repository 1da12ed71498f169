"""Request executors -- one outbound HTTP call with the bearer token attached.

An executor turns a :class:`~sessionkit.models.RequestDescriptor` into a
single request on a shared :mod:`httpx` client and maps the outcome:

- 2xx -- the :class:`httpx.Response` is returned.
- 401 -- :class:`~sessionkit.exceptions.UnauthorizedError`.
- any other non-2xx -- :class:`~sessionkit.exceptions.ServerError`.
- no response at all -- :class:`~sessionkit.exceptions.TransportError`.

Executors never retry; retry-on-401 lives in the session interceptor.

Classes:
    :class:`RequestExecutor` -- backed by :class:`httpx.AsyncClient`.
    :class:`SyncRequestExecutor` -- backed by :class:`httpx.Client`.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from sessionkit.auth.credential_store import CredentialStore
from sessionkit.client.response import extract_response_data
from sessionkit.exceptions import ServerError, TransportError, UnauthorizedError
from sessionkit.models import RequestDescriptor

logger = logging.getLogger(__name__)


def build_request_kwargs(descriptor: RequestDescriptor, store: CredentialStore) -> dict[str, Any]:
    """Build the ``httpx`` request arguments for *descriptor*.

    The access token pinned on the descriptor wins over the store's current
    one.  Without any token no ``Authorization`` header is added.
    """
    headers = dict(descriptor.headers)
    token = descriptor.access_token or store.access_token()
    if token:
        headers["Authorization"] = f"Bearer {token}"

    kwargs: dict[str, Any] = {
        "method": descriptor.method,
        "url": descriptor.path,
        "headers": headers,
    }
    if descriptor.params:
        kwargs["params"] = descriptor.params
    if isinstance(descriptor.body, (str, bytes)):
        kwargs["content"] = descriptor.body
    elif descriptor.body is not None:
        kwargs["json"] = descriptor.body
    return kwargs


def check_response(response: httpx.Response) -> httpx.Response:
    """Return *response* if it is 2xx, otherwise raise the typed HTTP error."""
    if response.is_success:
        return response
    body = extract_response_data(response)
    if response.status_code == 401:
        raise UnauthorizedError(body)
    raise ServerError(response.status_code, body)


def _log_request(descriptor: RequestDescriptor) -> None:
    logger.debug(
        "%s %s%s", descriptor.method, descriptor.path, " (retry)" if descriptor.is_retry else ""
    )


class RequestExecutor:
    """Perform one request on an :class:`httpx.AsyncClient`.

    Args:
        http: Client whose ``base_url`` is the API base URL.
        store: Source of the current access token.

    Example::

        executor = RequestExecutor(http, store)
        response = await executor.execute(RequestDescriptor.build("GET", "/profile"))
    """

    def __init__(self, http: httpx.AsyncClient, store: CredentialStore) -> None:
        self._http = http
        self._store = store

    async def execute(self, descriptor: RequestDescriptor) -> httpx.Response:
        """Send *descriptor* once.

        Raises:
            UnauthorizedError: On 401.
            ServerError: On any other non-2xx status.
            TransportError: When no response was received.
        """
        kwargs = build_request_kwargs(descriptor, self._store)
        _log_request(descriptor)
        try:
            response = await self._http.request(**kwargs)
        except httpx.TransportError as exc:
            raise TransportError(
                f"{descriptor.method} {descriptor.path} failed: {exc}"
            ) from exc
        return check_response(response)


class SyncRequestExecutor:
    """Blocking counterpart of :class:`RequestExecutor`."""

    def __init__(self, http: httpx.Client, store: CredentialStore) -> None:
        self._http = http
        self._store = store

    def execute(self, descriptor: RequestDescriptor) -> httpx.Response:
        kwargs = build_request_kwargs(descriptor, self._store)
        _log_request(descriptor)
        try:
            response = self._http.request(**kwargs)
        except httpx.TransportError as exc:
            raise TransportError(
                f"{descriptor.method} {descriptor.path} failed: {exc}"
            ) from exc
        return check_response(response)
