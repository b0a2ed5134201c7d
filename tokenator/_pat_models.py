"""Data models for personal access tokens managed by tokenator.

Tokens created by tokenator are named ``token8r-<run id>-<repo>-<track>``.
The run identifier distinguishes the token minted by the current run from
the ones left behind by earlier runs for the same repository and track.

Repository and track names may themselves contain ``-``, so each field is
escaped (``%`` as ``%25``, ``-`` as ``%2D``) before joining. Every ``-`` left
in a name is then a separator, and a name splits back into exactly one
repository and track.

Examples
--------
>>> name = TokenName(run_id="1a2b", repo="signal-desktop", track="latest")
>>> str(name)
'token8r-1a2b-signal%2Ddesktop-latest'
>>> parsed = TokenName.parse("token8r-9f9f-signal%2Ddesktop-latest")
>>> parsed.run_id, parsed.belongs_to("signal-desktop", "latest")
('9f9f', True)
>>> parsed.belongs_to("signal", "desktop-latest")
False
"""

from __future__ import annotations

import hashlib
import re
import time
from dataclasses import dataclass, field

TOKEN_PREFIX = "token8r"
RUN_ID_LENGTH = 4

_NAME_PATTERN = re.compile(
    rf"^{TOKEN_PREFIX}-(?P<run_id>[0-9a-f]{{{RUN_ID_LENGTH}}})"
    r"-(?P<repo>[^-]+)-(?P<track>[^-]+)$"
)
_ESCAPES = {"%": "%25", "-": "%2D"}
_ESCAPED = re.compile(r"%(25|2D)", re.IGNORECASE)


def escape_field(value: str) -> str:
    """Escape ``value`` so it contains no ``-``.

    Examples
    --------
    >>> escape_field("100%-beta")
    '100%25%2Dbeta'
    """

    return "".join(_ESCAPES.get(char, char) for char in value)


def unescape_field(value: str) -> str:
    """Reverse :func:`escape_field`.

    Examples
    --------
    >>> unescape_field("100%25%2Dbeta")
    '100%-beta'
    """

    return _ESCAPED.sub(lambda match: chr(int(match[1], 16)), value)


def generate_run_id(now: float | None = None) -> str:
    """Return the first four hex characters of sha256 over the unix time.

    Examples
    --------
    >>> generate_run_id(0)
    '5fec'
    """

    seconds = int(time.time() if now is None else now)
    digest = hashlib.sha256(str(seconds).encode("ascii")).hexdigest()
    return digest[:RUN_ID_LENGTH]


@dataclass(frozen=True, slots=True)
class TokenName:
    """Structured name of a token created for one repository and track."""

    run_id: str
    repo: str
    track: str

    def __str__(self) -> str:
        return f"{TOKEN_PREFIX}-{self.run_id}-{escape_field(self.repo)}-{escape_field(self.track)}"

    @classmethod
    def parse(cls, name: str) -> TokenName | None:
        """Parse ``name``, returning ``None`` when it was not minted by tokenator."""

        match = _NAME_PATTERN.match(name.strip())
        if match is None:
            return None
        return cls(
            run_id=match["run_id"],
            repo=unescape_field(match["repo"]),
            track=unescape_field(match["track"]),
        )

    def belongs_to(self, repo: str, track: str) -> bool:
        """Return True when the name was minted for exactly ``repo`` and ``track``."""

        return self.repo == repo and self.track == track


@dataclass(frozen=True, slots=True)
class PersonalToken:
    """A fine-grained personal access token listed or created via the settings UI.

    Attributes
    ----------
    id
        Numeric identifier used in settings URLs.
    name
        Display name of the token.
    token
        Secret value; only available straight after creation.
    delete_token
        Per-token authenticity token for the deletion form.
    """

    id: str
    name: str
    token: str | None = field(default=None, repr=False)
    delete_token: str = field(default="", repr=False)

    @property
    def structured_name(self) -> TokenName | None:
        return TokenName.parse(self.name)


__all__ = [
    "RUN_ID_LENGTH",
    "TOKEN_PREFIX",
    "PersonalToken",
    "TokenName",
    "escape_field",
    "generate_run_id",
    "unescape_field",
]
