"""Tests for the request executors."""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from sessionkit.auth.credential_store import CredentialStore
from sessionkit.client.executor import (
    RequestExecutor,
    SyncRequestExecutor,
    build_request_kwargs,
    check_response,
)
from sessionkit.exceptions import ServerError, TransportError, UnauthorizedError
from sessionkit.models import CredentialPair, RequestDescriptor

from conftest import BASE_URL


def _response(status: int, **kwargs) -> httpx.Response:
    return httpx.Response(status, request=httpx.Request("GET", f"{BASE_URL}/x"), **kwargs)


# ---------------------------------------------------------------------------
# build_request_kwargs
# ---------------------------------------------------------------------------


class TestBuildRequestKwargs:
    def test_no_token_no_authorization(self, store: CredentialStore) -> None:
        kwargs = build_request_kwargs(RequestDescriptor.build("GET", "/public"), store)
        assert "Authorization" not in kwargs["headers"]
        assert kwargs["method"] == "GET"
        assert kwargs["url"] == "/public"

    def test_store_token_attached(self, store: CredentialStore) -> None:
        store.set(CredentialPair(access_token="a1", refresh_token="r1"))
        kwargs = build_request_kwargs(RequestDescriptor.build("GET", "/x"), store)
        assert kwargs["headers"]["Authorization"] == "Bearer a1"

    def test_pinned_token_wins(self, store: CredentialStore) -> None:
        store.set(CredentialPair(access_token="a1", refresh_token="r1"))
        descriptor = RequestDescriptor.build("GET", "/x").for_retry("a2")
        kwargs = build_request_kwargs(descriptor, store)
        assert kwargs["headers"]["Authorization"] == "Bearer a2"

    def test_json_body(self, store: CredentialStore) -> None:
        kwargs = build_request_kwargs(RequestDescriptor.build("POST", "/x", {"a": 1}), store)
        assert kwargs["json"] == {"a": 1}
        assert "content" not in kwargs

    def test_string_body_sent_verbatim(self, store: CredentialStore) -> None:
        kwargs = build_request_kwargs(RequestDescriptor.build("POST", "/x", "raw"), store)
        assert kwargs["content"] == "raw"
        assert "json" not in kwargs

    def test_params_only_when_present(self, store: CredentialStore) -> None:
        assert "params" not in build_request_kwargs(RequestDescriptor.build("GET", "/x"), store)
        kwargs = build_request_kwargs(
            RequestDescriptor.build("GET", "/x", params={"year": 2025}), store
        )
        assert kwargs["params"] == {"year": 2025}

    def test_caller_headers_kept(self, store: CredentialStore) -> None:
        descriptor = RequestDescriptor.build("GET", "/x", headers={"X-Trace": "t1"})
        assert build_request_kwargs(descriptor, store)["headers"]["X-Trace"] == "t1"


# ---------------------------------------------------------------------------
# check_response
# ---------------------------------------------------------------------------


class TestCheckResponse:
    def test_success_passes_through(self) -> None:
        resp = _response(204)
        assert check_response(resp) is resp

    def test_401_is_unauthorized(self) -> None:
        with pytest.raises(UnauthorizedError) as exc_info:
            check_response(_response(401, json={"message": "Token expired"}))
        assert exc_info.value.status == 401
        assert exc_info.value.body == {"message": "Token expired"}
        assert "Token expired" in str(exc_info.value)

    @pytest.mark.parametrize("status", [400, 403, 404, 409, 500, 503])
    def test_other_errors_are_server_errors(self, status: int) -> None:
        with pytest.raises(ServerError) as exc_info:
            check_response(_response(status, text="failure detail"))
        assert exc_info.value.status == status
        assert exc_info.value.body == "failure detail"


# ---------------------------------------------------------------------------
# Executors
# ---------------------------------------------------------------------------


class TestRequestExecutor:
    def test_sends_request_with_bearer(self, store: CredentialStore) -> None:
        store.set(CredentialPair(access_token="a1", refresh_token="r1"))
        captured: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            captured.append(request)
            return httpx.Response(200, json={"ok": True})

        async def _run() -> httpx.Response:
            async with httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(handler)) as http:
                return await RequestExecutor(http, store).execute(
                    RequestDescriptor.build("post", "/goals", {"name": "Trip"}, params={"year": "2025"})
                )

        response = asyncio.run(_run())
        assert response.json() == {"ok": True}
        request = captured[0]
        assert request.method == "POST"
        assert request.url.path == "/goals"
        assert request.url.params["year"] == "2025"
        assert request.headers["authorization"] == "Bearer a1"
        assert json.loads(request.content) == {"name": "Trip"}

    def test_401_raises_unauthorized(self, store: CredentialStore) -> None:
        transport = httpx.MockTransport(lambda request: httpx.Response(401))

        async def _run() -> None:
            async with httpx.AsyncClient(base_url=BASE_URL, transport=transport) as http:
                await RequestExecutor(http, store).execute(RequestDescriptor.build("GET", "/x"))

        with pytest.raises(UnauthorizedError):
            asyncio.run(_run())

    def test_network_failure_raises_transport_error(self, store: CredentialStore) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async def _run() -> None:
            async with httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(handler)) as http:
                await RequestExecutor(http, store).execute(RequestDescriptor.build("GET", "/x"))

        with pytest.raises(TransportError, match="GET /x failed"):
            asyncio.run(_run())


class TestSyncRequestExecutor:
    def test_sends_without_authorization_when_logged_out(self, store: CredentialStore) -> None:
        captured: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            captured.append(request)
            return httpx.Response(200, text="pong")

        with httpx.Client(base_url=BASE_URL, transport=httpx.MockTransport(handler)) as http:
            response = SyncRequestExecutor(http, store).execute(RequestDescriptor.build("GET", "/ping"))

        assert response.text == "pong"
        assert "authorization" not in captured[0].headers

    def test_server_error_is_not_retried(self, store: CredentialStore) -> None:
        calls: list[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(1)
            return httpx.Response(500, json={"error": "boom"})

        with httpx.Client(base_url=BASE_URL, transport=httpx.MockTransport(handler)) as http:
            with pytest.raises(ServerError, match="boom"):
                SyncRequestExecutor(http, store).execute(RequestDescriptor.build("GET", "/x"))
        assert len(calls) == 1

    def test_timeout_raises_transport_error(self, store: CredentialStore) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        with httpx.Client(base_url=BASE_URL, transport=httpx.MockTransport(handler)) as http:
            with pytest.raises(TransportError):
                SyncRequestExecutor(http, store).execute(RequestDescriptor.build("GET", "/x"))
