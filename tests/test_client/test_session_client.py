"""Tests for the asynchronous session client."""

from __future__ import annotations

import asyncio
import json
from typing import Any, Awaitable, Callable

import httpx
import pytest

from sessionkit.auth.credential_store import CredentialStore
from sessionkit.client.session_client import SessionClient, parse_login_response
from sessionkit.exceptions import (
    ApiError,
    ConfigError,
    ServerError,
    SessionExpiredError,
    TransportError,
    UnauthorizedError,
)
from sessionkit.models import ClientConfig, CredentialPair, User

from conftest import BASE_URL, FakeAuthServer


def _run(
    config: ClientConfig,
    store: CredentialStore,
    transport: httpx.AsyncBaseTransport,
    body: Callable[[SessionClient], Awaitable[Any]],
) -> Any:
    async def _main() -> Any:
        async with SessionClient(config, store=store, transport=transport) as client:
            return await body(client)

    return asyncio.run(_main())


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------


class TestConstruction:
    def test_requires_base_url(self) -> None:
        with pytest.raises(ConfigError, match="No base URL"):
            SessionClient(ClientConfig())

    def test_default_store_follows_config(self, config: ClientConfig) -> None:
        client = SessionClient(config)
        assert client.store.namespace == "test"
        assert client.is_authenticated is False

    def test_send_outside_context_manager(self, config: ClientConfig, store: CredentialStore) -> None:
        client = SessionClient(config, store=store)
        with pytest.raises(AssertionError, match="context manager"):
            asyncio.run(client.get("/data"))

    def test_trailing_slash_in_base_url(self, server: FakeAuthServer, store: CredentialStore) -> None:
        store.set(CredentialPair(access_token="access-1", refresh_token="refresh-1"))
        config = ClientConfig(base_url=f"{BASE_URL}/", storage="memory")
        data = _run(config, store, server.async_transport(), lambda c: c.get("/data"))
        assert data == {"path": "/data", "method": "GET"}


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class TestRequests:
    def test_request_returns_decoded_json(
        self, server: FakeAuthServer, config: ClientConfig, store: CredentialStore
    ) -> None:
        store.set(CredentialPair(access_token="access-1", refresh_token="refresh-1"))
        data = _run(config, store, server.async_transport(), lambda c: c.get("/categories"))
        assert data == {"path": "/categories", "method": "GET"}

    def test_verbs(self, server: FakeAuthServer, config: ClientConfig, store: CredentialStore) -> None:
        store.set(CredentialPair(access_token="access-1", refresh_token="refresh-1"))

        async def body(client: SessionClient) -> list[Any]:
            return [
                await client.post("/goals", {"name": "Trip"}),
                await client.put("/goals/1", {"name": "Trip"}),
                await client.patch("/goals/1", {"done": True}),
                await client.delete("/goals/1"),
            ]

        results = _run(config, store, server.async_transport(), body)
        assert [r["method"] for r in results] == ["POST", "PUT", "PATCH", "DELETE"]

    def test_request_sends_params_and_body(self, config: ClientConfig, store: CredentialStore) -> None:
        captured: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            captured.append(request)
            return httpx.Response(201, json={"id": 7})

        data = _run(
            config,
            store,
            httpx.MockTransport(handler),
            lambda c: c.post("/goals", {"name": "Trip"}, params={"year": "2025"}),
        )
        assert data == {"id": 7}
        assert captured[0].url.params["year"] == "2025"
        assert json.loads(captured[0].content) == {"name": "Trip"}

    def test_empty_body_returns_none(self, config: ClientConfig, store: CredentialStore) -> None:
        transport = httpx.MockTransport(lambda request: httpx.Response(204))
        assert _run(config, store, transport, lambda c: c.delete("/goals/1")) is None

    def test_text_body_returned_as_text(self, config: ClientConfig, store: CredentialStore) -> None:
        transport = httpx.MockTransport(lambda request: httpx.Response(200, text="plain text"))
        assert _run(config, store, transport, lambda c: c.get("/readme")) == "plain text"

    def test_expired_session_is_recovered(
        self, server: FakeAuthServer, config: ClientConfig, expired_store: CredentialStore
    ) -> None:
        data = _run(config, expired_store, server.async_transport(), lambda c: c.get("/data"))
        assert data["path"] == "/data"
        assert server.count("POST", "/auth/refresh") == 1

    def test_unrecoverable_session_notifies_listener(
        self, server: FakeAuthServer, config: ClientConfig, store: CredentialStore
    ) -> None:
        store.set(CredentialPair(access_token="stale", refresh_token="revoked"))
        reasons: list[str] = []

        async def body(client: SessionClient) -> None:
            client.on_session_expired(reasons.append)
            await client.get("/data")

        with pytest.raises(SessionExpiredError):
            _run(config, store, server.async_transport(), body)
        assert len(reasons) == 1
        assert store.get() is None

    def test_credentials_stored_after_open_are_cleared_on_expiry(
        self, server: FakeAuthServer, config: ClientConfig, store: CredentialStore
    ) -> None:
        async def body(client: SessionClient) -> None:
            client.store.set(CredentialPair(access_token="stale", refresh_token="revoked"))
            with pytest.raises(SessionExpiredError):
                await client.get("/profile")
            assert client.store.get() is None
            with pytest.raises(UnauthorizedError):
                await client.get("/profile")

        _run(config, store, server.async_transport(), body)
        assert server.count("POST", "/auth/refresh") == 1

    def test_server_error_surfaces(self, server: FakeAuthServer, config: ClientConfig, store: CredentialStore) -> None:
        server.fixed["/fail"] = 500
        with pytest.raises(ServerError) as exc_info:
            _run(config, store, server.async_transport(), lambda c: c.get("/fail"))
        assert exc_info.value.status == 500


# ---------------------------------------------------------------------------
# Login / logout / check_auth
# ---------------------------------------------------------------------------


class TestLogin:
    def test_login_stores_pair_and_user(
        self, server: FakeAuthServer, config: ClientConfig, store: CredentialStore
    ) -> None:
        user = _run(
            config, store, server.async_transport(), lambda c: c.login("ana@example.com", "s3cret")
        )
        assert user == User(id="u1", email="ana@example.com", name="Ana")
        assert store.get() == CredentialPair(access_token="access-1", refresh_token="refresh-1")
        assert store.get_user() == user

    def test_login_ignores_stored_token(
        self, server: FakeAuthServer, config: ClientConfig, expired_store: CredentialStore
    ) -> None:
        _run(config, expired_store, server.async_transport(), lambda c: c.login("ana@example.com", "s3cret"))
        assert server.auth_headers("/auth/login") == [None]
        assert server.count("POST", "/auth/refresh") == 0

    def test_wrong_password(self, server: FakeAuthServer, config: ClientConfig, store: CredentialStore) -> None:
        with pytest.raises(UnauthorizedError):
            _run(config, store, server.async_transport(), lambda c: c.login("ana@example.com", "nope"))
        assert store.get() is None
        assert server.count("POST", "/auth/refresh") == 0

    def test_login_rearms_session_after_teardown(
        self, server: FakeAuthServer, config: ClientConfig, store: CredentialStore
    ) -> None:
        reasons: list[str] = []

        async def body(client: SessionClient) -> None:
            client.on_session_expired(reasons.append)
            await client.login("ana@example.com", "s3cret")
            await client.logout()
            await client.login("ana@example.com", "s3cret")
            await client.logout()

        _run(config, store, server.async_transport(), body)
        assert reasons == ["logged out", "logged out"]

    def test_login_network_failure(self, config: ClientConfig, store: CredentialStore) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(TransportError):
            _run(config, store, httpx.MockTransport(handler), lambda c: c.login("a@b.c", "x"))

    def test_parse_login_response_without_tokens(self) -> None:
        response = httpx.Response(200, json={"user": {"id": "u1", "email": "a@b.c"}})
        with pytest.raises(ApiError, match="accessToken"):
            parse_login_response(response)


class TestRegister:
    def test_register_returns_created_account(
        self, server: FakeAuthServer, config: ClientConfig, store: CredentialStore
    ) -> None:
        created = _run(
            config,
            store,
            server.async_transport(),
            lambda c: c.register("Bia", "bia@example.com", "pw123456"),
        )
        assert created == {"id": "u2", "email": "bia@example.com", "name": "Bia"}
        assert store.get() is None

    def test_register_sends_no_stored_token(
        self, server: FakeAuthServer, config: ClientConfig, expired_store: CredentialStore
    ) -> None:
        _run(
            config,
            expired_store,
            server.async_transport(),
            lambda c: c.register("Bia", "bia@example.com", "pw123456"),
        )
        assert server.auth_headers("/auth/register") == [None]
        assert server.count("POST", "/auth/refresh") == 0

    def test_register_conflict(self, server: FakeAuthServer, config: ClientConfig, store: CredentialStore) -> None:
        with pytest.raises(ServerError) as exc_info:
            _run(
                config,
                store,
                server.async_transport(),
                lambda c: c.register("Ana", "ana@example.com", "s3cret"),
            )
        assert exc_info.value.status == 409

    def test_register_path_from_config(self, store: CredentialStore) -> None:
        paths: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            paths.append(request.url.path)
            return httpx.Response(201, json={"id": "u2"})

        config = ClientConfig(base_url=BASE_URL, storage="memory", register_path="/users")
        _run(config, store, httpx.MockTransport(handler), lambda c: c.register("Bia", "b@c.d", "pw"))
        assert paths == ["/users"]


class TestLogout:
    def test_logout_calls_server_and_clears(
        self, server: FakeAuthServer, config: ClientConfig, store: CredentialStore
    ) -> None:
        store.set(CredentialPair(access_token="access-1", refresh_token="refresh-1"))
        _run(config, store, server.async_transport(), lambda c: c.logout())
        assert server.auth_headers("/auth/logout") == ["Bearer access-1"]
        assert store.get() is None

    def test_logout_survives_server_failure(
        self, server: FakeAuthServer, config: ClientConfig, store: CredentialStore
    ) -> None:
        server.fixed["/auth/logout"] = 500
        store.set(CredentialPair(access_token="access-1", refresh_token="refresh-1"))
        _run(config, store, server.async_transport(), lambda c: c.logout())
        assert store.get() is None

    def test_logout_without_session_sends_nothing(
        self, server: FakeAuthServer, config: ClientConfig, store: CredentialStore
    ) -> None:
        _run(config, store, server.async_transport(), lambda c: c.logout())
        assert server.log == []


class TestCheckAuth:
    def test_no_credentials(self, server: FakeAuthServer, config: ClientConfig, store: CredentialStore) -> None:
        assert _run(config, store, server.async_transport(), lambda c: c.check_auth("/me")) is False
        assert server.log == []

    def test_stored_pair_without_probe(
        self, server: FakeAuthServer, config: ClientConfig, expired_store: CredentialStore
    ) -> None:
        assert _run(config, expired_store, server.async_transport(), lambda c: c.check_auth()) is True
        assert server.log == []

    def test_probe_recovers_expired_token(
        self, server: FakeAuthServer, config: ClientConfig, expired_store: CredentialStore
    ) -> None:
        assert _run(config, expired_store, server.async_transport(), lambda c: c.check_auth("/me")) is True
        assert server.count("POST", "/auth/refresh") == 1

    def test_probe_from_config(self, server: FakeAuthServer, store: CredentialStore) -> None:
        store.set(CredentialPair(access_token="stale", refresh_token="revoked"))
        config = ClientConfig(base_url=BASE_URL, storage="memory", auth_check_path="/categories")
        assert _run(config, store, server.async_transport(), lambda c: c.check_auth()) is False
        assert server.count("GET", "/categories") == 1
        assert store.get() is None
