"""Credential distribution across the configured repositories.

For every repository and track the manager sets four environment secrets,
in a fixed order:

- ``SNAP_STORE_CANDIDATE``: store token able to push and release to candidate;
- ``SNAP_STORE_STABLE``: store token able to release to stable;
- ``LP_BUILD_SECRET``: Launchpad remote-build credentials, passed through;
- ``SNAPCRAFTERS_BOT_COMMIT``: a fresh bot personal access token.

Bot tokens from earlier runs for the same repository and track are deleted
once the new token is installed. The first failure ends the run; secrets
already written are left in place and overwritten by the next run.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from typing import Protocol

import requests

from tokenator._config import Credentials, RepoTarget, TokenatorConfig, Track
from tokenator._errors import CleanupError, TokenatorError
from tokenator._github_app import OrgClient
from tokenator._github_rest import GitHubRestClient
from tokenator._pat_client import PersonalTokenClient
from tokenator._pat_models import TOKEN_PREFIX, PersonalToken, TokenName, generate_run_id
from tokenator._repo_secrets import RepoSecretClient
from tokenator._store import StoreClient

logger = logging.getLogger(__name__)

STORE_CHANNELS = ("candidate", "stable")
LAUNCHPAD_SECRET = "LP_BUILD_SECRET"
BOT_COMMIT_SECRET = "SNAPCRAFTERS_BOT_COMMIT"


def store_secret_name(channel: str) -> str:
    """Return the secret name holding the store token for ``channel``.

    Examples
    --------
    >>> store_secret_name("candidate")
    'SNAP_STORE_CANDIDATE'
    """

    return f"SNAP_STORE_{channel.upper()}"


def _with_context[**P, R](
    context: str, func: Callable[P, R], *args: P.args, **kwargs: P.kwargs
) -> R:
    """Call ``func``, prefixing any tokenator error message with ``context``."""

    try:
        return func(*args, **kwargs)
    except TokenatorError as exc:
        msg = f"{context}: {exc}"
        raise type(exc)(msg) from exc


class StoreTokens(Protocol):
    def generate_store_token(self, package: str, track: str, channel: str) -> str: ...


class EnvironmentSecrets(Protocol):
    def set_environment_secret(self, repo: str, track: Track, name: str, value: str) -> None: ...


class PersonalTokens(Protocol):
    def list(self, name_filter: str = "") -> list[PersonalToken]: ...

    def create(self, name: str, repos: Sequence[str], owner: str) -> PersonalToken: ...

    def delete(self, token: PersonalToken) -> None: ...


class TokenApprovals(Protocol):
    def approve_pending_token_request(self, repo: str, token_name: str | None = None) -> None: ...


@dataclass(slots=True)
class Manager:
    """Iterate the configured repositories and populate their secrets."""

    config: TokenatorConfig
    launchpad_secret: str = field(repr=False)
    store: StoreTokens
    repo_secrets: EnvironmentSecrets
    pats: PersonalTokens
    approvals: TokenApprovals
    run_id: str = field(default_factory=generate_run_id)

    @classmethod
    def from_credentials(cls, config: TokenatorConfig, credentials: Credentials) -> Manager:
        """Build a manager wired to the real upstream clients."""

        return cls(
            config=config,
            launchpad_secret=credentials.launchpad,
            store=StoreClient(credentials.snap_store),
            repo_secrets=RepoSecretClient(
                rest=GitHubRestClient(token=credentials.github_token), org=config.org
            ),
            pats=PersonalTokenClient(credentials.bot),
            approvals=OrgClient(
                credentials=credentials.github_app,
                org=config.org,
                auxiliary_repo=config.auxiliary_repo,
                session=requests.Session(),
            ),
        )

    def process(self, names: Iterable[str] = ()) -> None:
        """Distribute credentials to all configured repositories, or ``names`` only."""

        logger.info("starting run %s", self.run_id)
        existing = _with_context(
            "failed to list personal access tokens", self.pats.list, TOKEN_PREFIX
        )

        for target in self.config.select(names):
            target = target.with_default_tracks()
            for track in target.tracks:
                self.process_track(target, track, existing)

    def process_track(
        self, target: RepoTarget, track: Track, existing: Sequence[PersonalToken]
    ) -> None:
        """Set all four secrets for one repository and track."""

        for channel in STORE_CHANNELS:
            _with_context(
                f"failed to set {track.name}/{channel} store secret",
                self.set_store_secret,
                target,
                track,
                channel,
            )
        _with_context("failed to set Launchpad secret", self.set_launchpad_secret, target, track)
        _with_context(
            "failed to set bot commit secret", self.set_bot_commit_secret, target, track, existing
        )

    def set_store_secret(self, target: RepoTarget, track: Track, channel: str) -> None:
        token = self.store.generate_store_token(target.name, track.name, channel)
        self._install(target, track, store_secret_name(channel), token)

    def set_launchpad_secret(self, target: RepoTarget, track: Track) -> None:
        self._install(target, track, LAUNCHPAD_SECRET, self.launchpad_secret)

    def set_bot_commit_secret(
        self, target: RepoTarget, track: Track, existing: Sequence[PersonalToken]
    ) -> None:
        """Create, approve and install a bot token, then remove superseded ones."""

        name = str(TokenName(run_id=self.run_id, repo=target.name, track=track.name))
        scope = [target.full_name, f"{self.config.org}/{self.config.auxiliary_repo}"]

        pat = _with_context(
            "failed to create personal access token",
            self.pats.create,
            name,
            scope,
            self.config.org,
        )
        if not pat.token:
            msg = f"personal access token {name} was created without a value"
            raise TokenatorError(msg)
        _with_context(
            "failed to approve personal access token request",
            self.approvals.approve_pending_token_request,
            target.name,
            name,
        )
        self._install(target, track, BOT_COMMIT_SECRET, pat.token)
        self.delete_superseded(target, track, existing)

    def superseded(
        self, target: RepoTarget, track: Track, existing: Iterable[PersonalToken]
    ) -> list[PersonalToken]:
        """Return earlier runs' tokens for exactly this repository and track."""

        stale: list[PersonalToken] = []
        for token in existing:
            parsed = token.structured_name
            if parsed is None or parsed.run_id == self.run_id:
                continue
            if parsed.belongs_to(target.name, track.name):
                stale.append(token)
        return stale

    def delete_superseded(
        self, target: RepoTarget, track: Track, existing: Iterable[PersonalToken]
    ) -> None:
        failures: list[str] = []
        for token in self.superseded(target, track, existing):
            try:
                self.pats.delete(token)
            except TokenatorError as exc:
                logger.error("failed to delete personal access token %s: %s", token.name, exc)
                failures.append(token.name)
        if failures:
            msg = f"failed to delete personal access tokens: {', '.join(failures)}"
            raise CleanupError(msg)

    def _install(self, target: RepoTarget, track: Track, name: str, value: str) -> None:
        _with_context(
            f"failed to set {name} secret",
            self.repo_secrets.set_environment_secret,
            target.name,
            track,
            name,
            value,
        )
        logger.info(
            "secret set: repo=%s secret_name=%s environment=%s",
            target.full_name,
            name,
            track.environment,
        )


__all__ = [
    "BOT_COMMIT_SECRET",
    "LAUNCHPAD_SECRET",
    "Manager",
    "STORE_CHANNELS",
    "store_secret_name",
]
