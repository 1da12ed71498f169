"""Shared test fixtures for sessionkit.

Provides an in-process fake of the authentication API (served through
:class:`httpx.MockTransport`), isolated config directories, a memory-backed
credential store, and automatic reset of the global output manager.
"""

from __future__ import annotations

import asyncio
import json
import logging
import threading
from pathlib import Path
from typing import Optional

import httpx
import pytest

from sessionkit.auth.credential_store import CredentialStore, MemoryBackend
from sessionkit.models import ClientConfig, CredentialPair, StorageKind
from sessionkit.output import OutputManager, reset_output, set_output


BASE_URL = "https://api.example.com"


class FakeAuthServer:
    """A tiny stand-in for the API, with a request log.

    - ``POST /auth/login`` accepts ``ana@example.com`` / ``s3cret``.
    - ``POST /auth/refresh`` accepts the current refresh token and rotates
      both tokens (``access-2``/``refresh-2``, ...).
    - Every other path answers 200 for the current access token and 401
      otherwise, unless a fixed status was registered in :attr:`fixed`.
    """

    def __init__(self, access: str = "access-1", refresh: str = "refresh-1") -> None:
        self.current_access = access
        self.current_refresh = refresh
        self.rotate_refresh = True
        self.refresh_status: Optional[int] = None
        self.fixed: dict[str, int] = {}
        self.log: list[tuple[str, str, Optional[str]]] = []
        self.unauthorized = 0
        self._generation = 1
        self._lock = threading.Lock()
        # Threaded tests: refresh blocks until this many 401s were served.
        self.hold_refresh_until: Optional[int] = None
        self._release = threading.Event()

    # -- bookkeeping -------------------------------------------------- #

    def count(self, method: str, path: str) -> int:
        return sum(1 for m, p, _ in self.log if m == method and p == path)

    def auth_headers(self, path: str) -> list[Optional[str]]:
        return [auth for _, p, auth in self.log if p == path]

    # -- routing ------------------------------------------------------ #

    def route(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        auth = request.headers.get("authorization")
        with self._lock:
            self.log.append((request.method, path, auth))

        if path == "/auth/login":
            return self._login(request)
        if path == "/auth/register":
            return self._register(request)
        if path == "/auth/refresh":
            return self._refresh(request)
        if path in self.fixed:
            return httpx.Response(self.fixed[path], json={"message": f"status {self.fixed[path]}"})
        if auth != f"Bearer {self.current_access}":
            with self._lock:
                self.unauthorized += 1
                if self.hold_refresh_until is not None and self.unauthorized >= self.hold_refresh_until:
                    self._release.set()
            return httpx.Response(401, json={"message": "Token expired"})
        return httpx.Response(200, json={"path": path, "method": request.method})

    def _login(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content or b"{}")
        if body != {"email": "ana@example.com", "password": "s3cret"}:
            return httpx.Response(401, json={"message": "Invalid credentials"})
        return httpx.Response(
            200,
            json={
                "accessToken": self.current_access,
                "refreshToken": self.current_refresh,
                "user": {"id": "u1", "email": "ana@example.com", "name": "Ana"},
            },
        )

    def _register(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content or b"{}")
        if set(body) != {"name", "email", "password"}:
            return httpx.Response(400, json={"message": "name, email and password are required"})
        if body["email"] == "ana@example.com":
            return httpx.Response(409, json={"message": "Email already registered"})
        return httpx.Response(201, json={"id": "u2", "email": body["email"], "name": body["name"]})

    def _refresh(self, request: httpx.Request) -> httpx.Response:
        if self.hold_refresh_until is not None:
            self._release.wait(timeout=5)
        if self.refresh_status is not None:
            return httpx.Response(self.refresh_status, json={"message": "refresh rejected"})
        body = json.loads(request.content or b"{}")
        if body.get("refreshToken") != self.current_refresh:
            return httpx.Response(401, json={"message": "Invalid refresh token"})
        with self._lock:
            self._generation += 1
            self.current_access = f"access-{self._generation}"
            payload = {"accessToken": self.current_access}
            if self.rotate_refresh:
                self.current_refresh = f"refresh-{self._generation}"
                payload["refreshToken"] = self.current_refresh
        return httpx.Response(200, json=payload)

    # -- transports --------------------------------------------------- #

    def sync_transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.route)

    def async_transport(self, refresh_gate: Optional[asyncio.Event] = None) -> httpx.MockTransport:
        """Async transport that yields to the event loop on every request.

        When *refresh_gate* is given, refresh calls wait for it to be set.
        """

        async def handler(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(0)
            if refresh_gate is not None and request.url.path == "/auth/refresh":
                await refresh_gate.wait()
            return self.route(request)

        return httpx.MockTransport(handler)


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Install a quiet output manager and drop it after every test.

    CLI invocations attach a Rich log handler bound to the runner's
    streams; it is removed here so later tests log normally.
    """
    set_output(OutputManager(no_color=True, quiet=True))
    yield
    reset_output()
    logger = logging.getLogger("sessionkit")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)
    logger.propagate = True


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


@pytest.fixture
def server() -> FakeAuthServer:
    return FakeAuthServer()


@pytest.fixture
def backend() -> MemoryBackend:
    return MemoryBackend()


@pytest.fixture
def store(backend: MemoryBackend) -> CredentialStore:
    return CredentialStore(backend, namespace="test")


@pytest.fixture
def expired_store(store: CredentialStore) -> CredentialStore:
    """A store holding an expired access token and the server's valid refresh token."""
    store.set(CredentialPair(access_token="stale", refresh_token="refresh-1"))
    return store


@pytest.fixture
def config() -> ClientConfig:
    return ClientConfig(base_url=BASE_URL, storage=StorageKind.MEMORY, storage_namespace="test")


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point XDG directories at tmp_path and clear SESSIONKIT_* variables.

    Returns:
        The tmp_path root directory.
    """
    monkeypatch.setattr("sessionkit.config._is_xdg_platform", lambda: True)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    for var in [
        "SESSIONKIT_BASE_URL",
        "SESSIONKIT_TIMEOUT",
        "SESSIONKIT_STORAGE",
        "SESSIONKIT_NAMESPACE",
    ]:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path
