"""Canonical Pydantic models shared across all sessionkit modules.

The models fall into three groups:

**Credential models** -- what the credential store persists and what the
auth endpoints return:
    :class:`CredentialPair`, :class:`User`, :class:`RefreshResponse`,
    :class:`LoginResponse`.

**Request models** -- the per-call state the session interceptor threads
through the executor:
    :class:`RequestDescriptor`, :class:`RefreshState`.

**Configuration models** -- serialised as JSON in the user's config
directory:
    :class:`StorageKind`, :class:`RefreshPayload`, :class:`ClientConfig`.

Wire-facing models accept both the camelCase names used by the API
(``accessToken``) and the snake_case attribute names (``access_token``).
"""

from __future__ import annotations

import enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


# --- Credentials ---


class CredentialPair(BaseModel):
    """The access/refresh token pair that identifies an authenticated session.

    Both tokens are always present together; the credential store reports a
    partially stored pair as no pair at all.  Instances are immutable -- a
    refresh produces a new pair instead of editing the current one.

    Example::

        pair = CredentialPair(access_token="a1", refresh_token="r1")
        pair.model_dump(by_alias=True)
        # {"accessToken": "a1", "refreshToken": "r1"}
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    access_token: str = Field(alias="accessToken", min_length=1)
    refresh_token: str = Field(alias="refreshToken", min_length=1)


class User(BaseModel):
    """The signed-in user's profile, stored next to the credential pair."""

    model_config = ConfigDict(extra="allow")

    id: str
    email: str
    name: str = ""
    avatar: Optional[str] = None


class RefreshResponse(BaseModel):
    """Success body of ``POST /auth/refresh``.

    The server may rotate the refresh token; when it does not,
    :meth:`to_pair` keeps the one that was sent.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    access_token: str = Field(alias="accessToken", min_length=1)
    refresh_token: Optional[str] = Field(default=None, alias="refreshToken")

    def to_pair(self, previous_refresh_token: str) -> CredentialPair:
        return CredentialPair(
            access_token=self.access_token,
            refresh_token=self.refresh_token or previous_refresh_token,
        )


class LoginResponse(BaseModel):
    """Success body of ``POST /auth/login``."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    access_token: str = Field(alias="accessToken", min_length=1)
    refresh_token: str = Field(alias="refreshToken", min_length=1)
    user: Optional[User] = None

    def to_pair(self) -> CredentialPair:
        return CredentialPair(
            access_token=self.access_token, refresh_token=self.refresh_token
        )


# --- Requests ---


class RequestDescriptor(BaseModel):
    """One logical outbound request as seen by the session interceptor.

    Descriptors are immutable.  The replay after a refresh is a new
    descriptor built by :meth:`for_retry`, which sets :attr:`is_retry` and
    pins the refreshed access token so the retry cannot pick up a token
    written by some later refresh.

    Attributes:
        method: Upper-case HTTP method.
        path: Path relative to the configured base URL.
        headers: Extra request headers supplied by the caller.
        params: Query-string parameters.
        body: JSON-serialisable value, or ``str``/``bytes`` sent verbatim.
        is_retry: ``True`` only for the single replay after a refresh.
        access_token: Token to send instead of the store's current one.
    """

    model_config = ConfigDict(frozen=True)

    method: str
    path: str
    headers: dict[str, str] = Field(default_factory=dict)
    params: dict[str, Any] = Field(default_factory=dict)
    body: Any = None
    is_retry: bool = False
    access_token: Optional[str] = None

    @classmethod
    def build(
        cls,
        method: str,
        path: str,
        body: Any = None,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> RequestDescriptor:
        return cls(
            method=method.upper(),
            path=path,
            body=body,
            params=dict(params or {}),
            headers=dict(headers or {}),
        )

    def for_retry(self, access_token: str) -> RequestDescriptor:
        """Return the replay descriptor carrying *access_token*."""
        return self.model_copy(update={"is_retry": True, "access_token": access_token})


class RefreshState(str, enum.Enum):
    """State of a refresh coordinator."""

    IDLE = "idle"
    REFRESHING = "refreshing"


# --- Configuration ---


class StorageKind(str, enum.Enum):
    """Where the credential store keeps tokens."""

    FILE = "file"
    MEMORY = "memory"


class RefreshPayload(str, enum.Enum):
    """How the refresh token is presented to the refresh endpoint.

    ``BODY`` posts ``{"refreshToken": ...}``; ``BEARER`` posts an empty body
    with the refresh token in the ``Authorization`` header.
    """

    BODY = "body"
    BEARER = "bearer"


class ClientConfig(BaseModel):
    """Connection and session settings, persisted at ``~/.config/sessionkit/config.json``.

    Loaded by :func:`~sessionkit.config.load_config` and layered with
    environment variables and CLI flags by
    :func:`~sessionkit.config.resolve_config`.
    """

    base_url: Optional[str] = Field(
        default=None, description="API base URL; every request path is relative to it"
    )
    timeout: float = Field(default=30.0, gt=0, description="Request timeout in seconds")
    verify_ssl: bool = Field(default=True, description="Verify SSL certificates")
    refresh_path: str = Field(default="/auth/refresh")
    login_path: str = Field(default="/auth/login")
    register_path: str = Field(default="/auth/register")
    logout_path: str = Field(default="/auth/logout")
    auth_check_path: Optional[str] = Field(
        default=None, description="GET endpoint used to probe whether the session is valid"
    )
    refresh_payload: RefreshPayload = Field(default=RefreshPayload.BODY)
    storage: StorageKind = Field(default=StorageKind.FILE)
    storage_namespace: str = Field(
        default="sessionkit",
        min_length=1,
        description="Prefix for persisted keys and the session file name",
    )
