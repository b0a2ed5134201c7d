"""HTTP helpers shared by the upstream clients.

Every request goes through :func:`send` so that transport failures and
timeouts surface as tokenator errors naming the step that failed.
"""

from __future__ import annotations

from typing import Any

import requests

from tokenator._errors import UpstreamProtocolError, UpstreamTimeoutError

REQUEST_TIMEOUT_SECONDS = 30


def send(
    session: requests.Session,
    method: str,
    url: str,
    *,
    step: str,
    **kwargs: Any,
) -> requests.Response:
    """Issue a request with the default timeout and wrap transport errors."""

    kwargs.setdefault("timeout", REQUEST_TIMEOUT_SECONDS)
    try:
        return session.request(method, url, **kwargs)
    except requests.Timeout as exc:
        msg = f"{step}: request to {url} timed out"
        raise UpstreamTimeoutError(msg) from exc
    except requests.RequestException as exc:
        msg = f"{step}: request to {url} failed: {exc}"
        raise UpstreamProtocolError(msg) from exc


def expect_ok(response: requests.Response, step: str) -> requests.Response:
    """Return ``response`` or raise when its status is not 2xx."""

    try:
        response.raise_for_status()
    except requests.HTTPError as exc:
        msg = f"{step}: unexpected status {response.status_code} from {response.url}"
        raise UpstreamProtocolError(msg) from exc
    return response


def json_body(response: requests.Response, step: str) -> Any:
    """Decode the JSON body of ``response``."""

    try:
        return response.json()
    except ValueError as exc:
        msg = f"{step}: response body is not valid JSON"
        raise UpstreamProtocolError(msg) from exc


def json_field(response: requests.Response, field: str, step: str) -> Any:
    """Return ``field`` from a JSON object body, raising when it is absent."""

    body = json_body(response, step)
    if not isinstance(body, dict) or body.get(field) is None:
        msg = f"{step}: no {field!r} found in response json"
        raise UpstreamProtocolError(msg)
    return body[field]


__all__ = ["REQUEST_TIMEOUT_SECONDS", "expect_ok", "json_body", "json_field", "send"]
