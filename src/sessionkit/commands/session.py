"""Session commands -- register, log in, log out, inspect the session and call the API.

Every command opens a :class:`~sessionkit.client.SyncSessionClient` built
from the resolved configuration, so ``sessionkit request`` gets the same
refresh-and-retry behaviour as library callers.

Typical workflow::

    sessionkit --base-url https://api.example.com register -n Ana -e ana@example.com
    sessionkit login -e ana@example.com
    sessionkit request GET /personal-finance/categories
    sessionkit status --probe /personal-finance/categories
    sessionkit logout
"""

from __future__ import annotations

import json
from typing import Any, Optional

import typer

from sessionkit.exceptions import (
    InvalidUsageError,
    SessionExpiredError,
    SessionKitError,
    UnauthorizedError,
)
from sessionkit.exit_codes import EXIT_AUTH_FAILURE
from sessionkit.output import error, format_response, info, success, suggest, warning


def _open_client(ctx: typer.Context):  # noqa: ANN202
    """Build a :class:`SyncSessionClient` from the resolved configuration."""
    from sessionkit.client import SyncSessionClient
    from sessionkit.config import resolve_config

    obj = ctx.obj or {}
    try:
        config = resolve_config(cli_base_url=obj.get("base_url"))
        client = SyncSessionClient(config)
    except SessionKitError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None
    client.on_session_expired(lambda reason: warning(f"Session ended: {reason}"))
    return client


def _fail(exc: SessionKitError) -> typer.Exit:
    error(str(exc))
    if isinstance(exc, SessionExpiredError):
        suggest("Log in again: sessionkit login")
    return typer.Exit(code=exc.exit_code)


def _parse_pairs(values: Optional[list[str]], separator: str, flag: str) -> dict[str, str]:
    pairs: dict[str, str] = {}
    for item in values or []:
        key, sep, value = item.partition(separator)
        if not sep or not key.strip():
            raise InvalidUsageError(f"Expected {flag} in the form 'name{separator}value', got: {item}")
        pairs[key.strip()] = value.strip()
    return pairs


def _parse_body(data: Optional[str]) -> Any:  # noqa: ANN401
    """Parse *data* as JSON if possible, returning the raw string on failure."""
    if data is None:
        return None
    try:
        return json.loads(data)
    except (json.JSONDecodeError, TypeError):
        return data


def login_command(
    ctx: typer.Context,
    email: str = typer.Option(..., "--email", "-e", prompt=True, help="Account email."),
    password: str = typer.Option(
        ..., "--password", prompt=True, hide_input=True, help="Account password."
    ),
) -> None:
    """Log in and store the credential pair.

    Example::

        sessionkit login --email ana@example.com
    """
    with _open_client(ctx) as client:
        try:
            user = client.login(email, password)
        except UnauthorizedError:
            error("Invalid email or password.")
            raise typer.Exit(code=EXIT_AUTH_FAILURE) from None
        except SessionKitError as exc:
            raise _fail(exc) from None

    name = (user.name or user.email) if user else email
    success(f"Logged in as {name}.")


def register_command(
    ctx: typer.Context,
    name: str = typer.Option(..., "--name", "-n", prompt=True, help="Display name."),
    email: str = typer.Option(..., "--email", "-e", prompt=True, help="Account email."),
    password: str = typer.Option(
        ...,
        "--password",
        prompt=True,
        hide_input=True,
        confirmation_prompt=True,
        help="Account password.",
    ),
) -> None:
    """Create an account.  Log in afterwards to start a session.

    Example::

        sessionkit register --name Ana --email ana@example.com
    """
    with _open_client(ctx) as client:
        try:
            client.register(name, email, password)
        except SessionKitError as exc:
            raise _fail(exc) from None

    success(f"Account created for {email}.")
    suggest(f"Log in: sessionkit login --email {email}")


def logout_command(ctx: typer.Context) -> None:
    """End the session on the server (best effort) and clear stored credentials."""
    with _open_client(ctx) as client:
        if not client.session.is_active:
            info("Not logged in.")
            return
        client.logout()
    success("Logged out.")


def status_command(
    ctx: typer.Context,
    probe: Optional[str] = typer.Option(
        None, "--probe", help="GET endpoint used to verify the session with the server."
    ),
) -> None:
    """Report whether the stored session is usable.

    Exits with code 3 when there is no usable session.
    """
    with _open_client(ctx) as client:
        try:
            authenticated = client.check_auth(probe)
        except SessionKitError as exc:
            raise _fail(exc) from None

    if authenticated:
        success("Authenticated.")
        return
    info("Not authenticated.")
    suggest("Log in: sessionkit login")
    raise typer.Exit(code=EXIT_AUTH_FAILURE)


def whoami_command(ctx: typer.Context) -> None:
    """Print the user stored at login."""
    with _open_client(ctx) as client:
        user = client.current_user() if client.is_authenticated else None

    if user is None:
        info("No signed-in user.")
        raise typer.Exit(code=EXIT_AUTH_FAILURE)
    format_response(user.model_dump(mode="json"))


def request_command(
    ctx: typer.Context,
    method: str = typer.Argument(help="HTTP method (GET, POST, PUT, PATCH, DELETE)."),
    path: str = typer.Argument(help="Path relative to the base URL, e.g. /profile."),
    data: Optional[str] = typer.Option(
        None, "--data", "-d", help="Request body; parsed as JSON when possible."
    ),
    param: Optional[list[str]] = typer.Option(
        None, "--param", "-P", help="Query parameter as name=value. Repeatable."
    ),
    header: Optional[list[str]] = typer.Option(
        None, "--header", "-H", help="Extra header as 'Name: value'. Repeatable."
    ),
) -> None:
    """Send a session-aware request and print the response body.

    Example::

        sessionkit request GET /personal-finance/goals -P year=2025
        sessionkit request POST /personal-finance/goals -d '{"name": "Trip"}'
    """
    from sessionkit.client.response import format_api_response
    from sessionkit.models import RequestDescriptor

    try:
        descriptor = RequestDescriptor.build(
            method,
            path,
            _parse_body(data),
            params=_parse_pairs(param, "=", "--param"),
            headers=_parse_pairs(header, ":", "--header"),
        )
    except InvalidUsageError as exc:
        raise _fail(exc) from None

    with _open_client(ctx) as client:
        try:
            response = client.send(descriptor)
        except SessionKitError as exc:
            raise _fail(exc) from None
        format_api_response(response)
