"""GitHub App authentication and personal access token request approval.

Fine-grained personal access tokens scoped to an organization stay pending
until an org owner, or an app with the right permission, approves them. The
org's GitHub App signs a short-lived JWT, exchanges it for an installation
token, and uses that token to find and approve the request raised when the
bot account created its token.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import jwt
import requests
from cryptography.hazmat.primitives import serialization

from tokenator._config import GitHubAppCredentials
from tokenator._errors import (
    AmbiguousMatchError,
    ConfigurationError,
    MissingAccessTokenError,
    NoInstallationError,
    UpstreamProtocolError,
)
from tokenator._github_rest import GitHubRestClient

logger = logging.getLogger(__name__)

JWT_LIFETIME_SECONDS = 10 * 60


def encode_app_jwt(app_id: int, private_key_pem: str, now: int | None = None) -> str:
    """Return an RS256 JWT identifying the app for ten minutes."""

    try:
        key = serialization.load_pem_private_key(private_key_pem.encode("utf-8"), password=None)
    except (ValueError, TypeError) as exc:
        msg = f"error parsing private key for JWT: {exc}"
        raise ConfigurationError(msg) from exc

    issued_at = int(time.time()) if now is None else now
    claims = {
        "iat": issued_at,
        "exp": issued_at + JWT_LIFETIME_SECONDS,
        "iss": str(app_id),
    }
    return jwt.encode(claims, key, algorithm="RS256")


def _installation_tokens_url(app: GitHubRestClient) -> str:
    step = "failed to get token endpoint for app"
    installations = app.call("GET", "/app/installations", step=step)
    if not isinstance(installations, list) or not installations:
        msg = f"{step}: the app has no installations"
        raise NoInstallationError(msg)
    url = installations[0].get("access_tokens_url") if isinstance(installations[0], dict) else None
    if not url:
        msg = f"{step}: no access token URL found in response json"
        raise NoInstallationError(msg)
    return str(url)


def get_installation_token(
    app_id: int,
    private_key_pem: str,
    session: requests.Session | None = None,
) -> str:
    """Exchange the app's JWT for an installation access token."""

    assertion = encode_app_jwt(app_id, private_key_pem)
    app = GitHubRestClient(token=assertion, session=session or requests.Session())

    tokens_url = _installation_tokens_url(app)
    step = "failed to get token for app"
    body = app.call("POST", tokens_url, step=step)
    token = body.get("token") if isinstance(body, dict) else None
    if not token:
        msg = f"{step}: no access token found in response json"
        raise MissingAccessTokenError(msg)
    return str(token)


@dataclass(frozen=True, slots=True)
class PendingTokenRequest:
    """An org-level request to approve a fine-grained personal access token."""

    id: int
    repositories_url: str
    token_name: str | None = None

    @classmethod
    def from_api(cls, payload: dict[str, Any]) -> PendingTokenRequest:
        try:
            return cls(
                id=int(payload["id"]),
                repositories_url=str(payload["repositories_url"]),
                token_name=payload.get("token_name"),
            )
        except (KeyError, TypeError, ValueError) as exc:
            msg = f"malformed personal access token request: {exc}"
            raise UpstreamProtocolError(msg) from exc


type TokenFactory = Callable[[], str]


@dataclass(slots=True)
class OrgClient:
    """Administrative calls against ``org`` authenticated as the GitHub App."""

    credentials: GitHubAppCredentials
    org: str
    auxiliary_repo: str
    session: requests.Session = field(default_factory=requests.Session, repr=False)
    token_factory: TokenFactory | None = field(default=None, repr=False)
    _rest: GitHubRestClient | None = field(default=None, init=False, repr=False)

    def client(self) -> GitHubRestClient:
        """Return a REST client, minting the installation token on first use."""

        if self._rest is None:
            if self.token_factory is not None:
                token = self.token_factory()
            else:
                token = get_installation_token(
                    self.credentials.app_id, self.credentials.private_key, self.session
                )
            self._rest = GitHubRestClient(token=token, session=self.session)
        return self._rest

    def approve_pending_token_request(self, repo: str, token_name: str | None = None) -> None:
        """Approve the pending request raised for a token scoped to ``repo``."""

        request = self.find_pending_token_request(repo, token_name)
        self.client().call(
            "POST",
            f"/orgs/{self.org}/personal-access-token-requests/{request.id}",
            step=f"failed to approve personal access token request {request.id}",
            json={"action": "approve"},
        )
        logger.debug("approved personal access token request %s for %s/%s", request.id, self.org, repo)

    def find_pending_token_request(
        self, repo: str, token_name: str | None = None
    ) -> PendingTokenRequest:
        """Return the single pending request scoped to ``repo`` and the auxiliary repo.

        Tokenator only creates requests covering exactly two repositories, so
        requests with any other scope belong to someone else and are skipped.
        """

        expected = {f"{self.org}/{repo}", f"{self.org}/{self.auxiliary_repo}"}
        matches = [
            request
            for request in self.list_pending_token_requests()
            if self._repositories(request) == expected
        ]
        if len(matches) > 1 and token_name is not None:
            matches = [request for request in matches if request.token_name == token_name]
        if len(matches) != 1:
            msg = (
                f"could not find a unique personal access token request for "
                f"{self.org}/{repo} ({len(matches)} candidates)"
            )
            raise AmbiguousMatchError(msg)
        return matches[0]

    def list_pending_token_requests(self) -> list[PendingTokenRequest]:
        items = self.client().paginate(
            f"/orgs/{self.org}/personal-access-token-requests",
            step="failed to list personal access token requests",
            params={"per_page": 100},
        )
        return [PendingTokenRequest.from_api(item) for item in items]

    def _repositories(self, request: PendingTokenRequest) -> set[str] | None:
        body = self.client().call(
            "GET",
            request.repositories_url,
            step=f"failed to list repositories of token request {request.id}",
        )
        if not isinstance(body, list):
            msg = f"failed to list repositories of token request {request.id}: expected a JSON array"
            raise UpstreamProtocolError(msg)
        names = [item.get("full_name") for item in body if isinstance(item, dict)]
        if len(names) != 2:
            return None
        return set(names)


__all__ = [
    "OrgClient",
    "PendingTokenRequest",
    "encode_app_jwt",
    "get_installation_token",
]
