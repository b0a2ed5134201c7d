"""Snap Store credential issuance.

The store issues publishing credentials as macaroons. A root macaroon is
requested from the store's ACL endpoint, scoped to one package, track and
channel; it carries a third-party caveat that Ubuntu One must discharge.
The discharge is obtained by presenting the caveat id together with the
account login, and the pair is wrapped in the ``u1-macaroon`` envelope that
snapcraft understands as an exported login.

Examples
--------
>>> request = build_token_request("signal-desktop", "latest", "stable")
>>> request.permissions
('package_access', 'package_release')
>>> request.to_payload()["channels"]
['latest/stable']
"""

from __future__ import annotations

import base64
import json
import logging
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlparse

import requests
from pymacaroons import Macaroon
from pymacaroons.exceptions import MacaroonDeserializationException

from tokenator._config import LoginCredentials
from tokenator._errors import InvalidChannelError, UpstreamProtocolError
from tokenator._http import expect_ok, json_field, send

logger = logging.getLogger(__name__)

# Permissions granted to store tokens, keyed by the channel they release to.
CHANNEL_PERMISSIONS: dict[str, tuple[str, ...]] = {
    "candidate": ("package_access", "package_push", "package_update", "package_release"),
    "stable": ("package_access", "package_release"),
}
TOKEN_TTL_SECONDS = 60 * 60 * 24 * 365
TOKEN_TYPE = "u1-macaroon"


@dataclass(frozen=True, slots=True)
class StoreEndpoints:
    """Base and authentication URLs for a Canonical store.

    Attributes
    ----------
    base_url
        Store dashboard URL that issues root macaroons.
    auth_url
        Ubuntu One URL that discharges the root macaroon's caveat.
    tokens
        Path of the ACL endpoint on ``base_url``.
    tokens_exchange
        Path of the discharge endpoint on ``auth_url``.
    """

    base_url: str
    auth_url: str
    tokens: str = "/dev/api/acl/"
    tokens_exchange: str = "/api/v2/tokens/discharge"

    @property
    def auth_host(self) -> str:
        return urlparse(self.auth_url).netloc


SNAP_STORE_ENDPOINTS = StoreEndpoints(
    base_url="https://dashboard.snapcraft.io",
    auth_url="https://login.ubuntu.com",
)


@dataclass(frozen=True, slots=True)
class StoreTokenRequest:
    """Scope of a store token: package, channel, permissions and lifetime."""

    package: str
    track: str
    channel: str
    permissions: tuple[str, ...]
    description: str
    ttl: int = TOKEN_TTL_SECONDS

    def to_payload(self) -> dict[str, Any]:
        """Return the JSON body for the store's ACL endpoint."""

        return {
            "permissions": list(self.permissions),
            "description": self.description,
            "ttl": self.ttl,
            "packages": [{"name": self.package, "type": "snap"}],
            "channels": [f"{self.track}/{self.channel}"],
        }


def build_token_request(package: str, track: str, channel: str) -> StoreTokenRequest:
    """Build the token request for ``channel``, rejecting unknown channels."""

    permissions = CHANNEL_PERMISSIONS.get(channel)
    if permissions is None:
        msg = f"invalid channel specified: {channel!r}"
        raise InvalidChannelError(msg)
    return StoreTokenRequest(
        package=package,
        track=track,
        channel=channel,
        permissions=permissions,
        description=f"tokenator-{package}-{track}",
    )


def _to_binary_text(macaroon: Macaroon) -> str:
    return macaroon.serialize().rstrip("=")


def encode_u1_token(root: Macaroon, discharge: Macaroon) -> str:
    """Wrap a root and discharge macaroon into a base64 ``u1-macaroon`` envelope."""

    envelope = {
        "t": TOKEN_TYPE,
        "v": {
            "r": _to_binary_text(root),
            "d": _to_binary_text(discharge),
        },
    }
    return base64.b64encode(json.dumps(envelope).encode("utf-8")).decode("ascii")


def deserialize_macaroon(serialized: str, step: str) -> Macaroon:
    """Decode a url-safe base64 binary macaroon."""

    try:
        return Macaroon.deserialize(serialized)
    except (MacaroonDeserializationException, ValueError, TypeError, IndexError) as exc:
        msg = f"{step}: failed to deserialize macaroon"
        raise UpstreamProtocolError(msg) from exc


@dataclass(slots=True)
class StoreClient:
    """Client that logs into a Canonical store and mints scoped tokens."""

    credentials: LoginCredentials
    endpoints: StoreEndpoints = SNAP_STORE_ENDPOINTS
    session: requests.Session = field(default_factory=requests.Session, repr=False)

    def generate_store_token(self, package: str, track: str, channel: str) -> str:
        """Return a one-year store token for ``package`` on ``track/channel``."""

        request = build_token_request(package, track, channel)
        root = self._root_macaroon(request)
        discharge = self._discharge_macaroon(root)
        logger.debug(
            "store token issued for %s on %s/%s", package, track, channel
        )
        return encode_u1_token(root, discharge)

    def _root_macaroon(self, request: StoreTokenRequest) -> Macaroon:
        step = "failed to get root macaroon"
        response = self._post(
            self.endpoints.base_url + self.endpoints.tokens,
            request.to_payload(),
            step,
        )
        return deserialize_macaroon(json_field(response, "macaroon", step), step)

    def _discharge_macaroon(self, root: Macaroon) -> Macaroon:
        step = "failed to get discharged macaroon"
        caveat_id = self._third_party_caveat_id(root, step)
        body = {
            "email": self.credentials.login,
            "password": self.credentials.password,
            "caveat_id": caveat_id,
        }
        response = self._post(
            self.endpoints.auth_url + self.endpoints.tokens_exchange,
            body,
            step,
        )
        return deserialize_macaroon(json_field(response, "discharge_macaroon", step), step)

    def _third_party_caveat_id(self, root: Macaroon, step: str) -> str:
        host = self.endpoints.auth_host
        for caveat in root.caveats:
            if caveat.location == host:
                return caveat.caveat_id
        msg = f"{step}: root macaroon has no caveat for {host}"
        raise UpstreamProtocolError(msg)

    def _post(self, url: str, body: dict[str, Any], step: str) -> requests.Response:
        response = send(
            self.session,
            "POST",
            url,
            step=step,
            json=body,
            headers={"Content-Type": "application/json", "Accept": "application/json"},
        )
        return expect_ok(response, step)


__all__ = [
    "CHANNEL_PERMISSIONS",
    "SNAP_STORE_ENDPOINTS",
    "StoreClient",
    "StoreEndpoints",
    "StoreTokenRequest",
    "build_token_request",
    "deserialize_macaroon",
    "encode_u1_token",
]
