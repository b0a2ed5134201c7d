"""Minimal bearer-authenticated client for the GitHub REST API."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import requests

from tokenator._errors import UpstreamProtocolError
from tokenator._http import expect_ok, json_body, send

GITHUB_API_URL = "https://api.github.com"
GITHUB_API_VERSION = "2022-11-28"


@dataclass(slots=True)
class GitHubRestClient:
    """Issue REST calls with a bearer token and the pinned API version."""

    token: str = field(repr=False)
    session: requests.Session = field(default_factory=requests.Session, repr=False)
    base_url: str = GITHUB_API_URL

    def url(self, path_or_url: str) -> str:
        """Return an absolute URL for ``path_or_url``.

        Examples
        --------
        >>> GitHubRestClient(token="t").url("/app/installations")
        'https://api.github.com/app/installations'
        """

        if path_or_url.startswith(("http://", "https://")):
            return path_or_url
        return f"{self.base_url}{path_or_url}"

    def headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": GITHUB_API_VERSION,
        }

    def request(
        self,
        method: str,
        path_or_url: str,
        *,
        step: str,
        json: Any = None,
        params: dict[str, Any] | None = None,
    ) -> requests.Response:
        """Send a request without judging its status."""

        return send(
            self.session,
            method,
            self.url(path_or_url),
            step=step,
            headers=self.headers(),
            json=json,
            params=params,
        )

    def call(
        self,
        method: str,
        path_or_url: str,
        *,
        step: str,
        json: Any = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Send a request, require a 2xx status and return the decoded body."""

        response = expect_ok(
            self.request(method, path_or_url, step=step, json=json, params=params),
            step,
        )
        if not response.content:
            return None
        return json_body(response, step)

    def paginate(
        self,
        path_or_url: str,
        *,
        step: str,
        params: dict[str, Any] | None = None,
    ) -> list[Any]:
        """GET every page of a list endpoint, following ``Link: rel="next"``."""

        items: list[Any] = []
        next_url: str | None = path_or_url
        while next_url:
            response = expect_ok(self.request("GET", next_url, step=step, params=params), step)
            page = json_body(response, step)
            if not isinstance(page, list):
                msg = f"{step}: expected a JSON array"
                raise UpstreamProtocolError(msg)
            items.extend(page)
            next_url = response.links.get("next", {}).get("url")
            # The next link already carries the query string.
            params = None
        return items


__all__ = ["GITHUB_API_URL", "GITHUB_API_VERSION", "GitHubRestClient"]
