"""Decoding of response bodies for callers and for the ``request`` command.

:meth:`SessionClient.request <sessionkit.client.session_client.SessionClient.request>`
hands back whatever :func:`extract_response_data` makes of the body, so
callers receive plain Python values rather than :class:`httpx.Response`
objects.
"""

from __future__ import annotations

from typing import Any

import httpx

from sessionkit.output import get_output


def extract_response_data(response: httpx.Response) -> Any:
    """Decode a response body: JSON value, else raw text, ``None`` when empty."""
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


def format_api_response(response: httpx.Response) -> None:
    """Show ``HTTP <status> <reason>`` on stderr and the decoded body on stdout."""
    output = get_output()
    status_line = f"HTTP {response.status_code}"
    if response.reason_phrase:
        status_line += f" {response.reason_phrase}"
    output.info(status_line)

    data = extract_response_data(response)
    if data is None:
        return
    output.format_response(data, response.headers.get("content-type", "application/json"))
