"""Configuration and credential loading for tokenator.

The configuration file names the GitHub organization and the repositories
that receive credentials, optionally mapping each repository to a set of
store tracks, branches and GitHub environments. Credentials never live in the
file; they are resolved from ``TOKENATOR_*`` environment variables.

Examples
--------
>>> config = parse_config({"org": "snapcrafters", "repos": [{"name": "signal-desktop"}]})
>>> config.repos[0].full_name
'snapcrafters/signal-desktop'
>>> config.repos[0].with_default_tracks().tracks[0].environment
'Candidate Branch'
"""

from __future__ import annotations

import os
from collections import abc as cabc
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import yaml

from tokenator._errors import ConfigurationError
from tokenator._input_resolution import InputResolution, resolve_input

CONFIG_FILE_NAME = "tokenator.yaml"
AUXILIARY_REPOSITORY = "ci-screenshots"


@dataclass(frozen=True, slots=True)
class Track:
    """A store track tied to a repository branch and a GitHub environment.

    Attributes
    ----------
    name
        Store track name (e.g., ``latest``).
    branch
        Repository branch allowed to deploy to ``environment``.
    environment
        GitHub Actions environment that holds the secrets.
    """

    name: str
    branch: str
    environment: str


DEFAULT_TRACK = Track(name="latest", branch="candidate", environment="Candidate Branch")


@dataclass(frozen=True, slots=True)
class RepoTarget:
    """A repository that receives store, build and bot credentials."""

    name: str
    org: str
    tracks: tuple[Track, ...] = ()

    @property
    def full_name(self) -> str:
        return f"{self.org}/{self.name}"

    def with_default_tracks(self) -> RepoTarget:
        """Return the target with the default track when none is configured.

        Examples
        --------
        >>> target = RepoTarget(name="app", org="org").with_default_tracks()
        >>> target.with_default_tracks() == target
        True
        """

        if self.tracks:
            return self
        return replace(self, tracks=(DEFAULT_TRACK,))


@dataclass(frozen=True, slots=True)
class TokenatorConfig:
    """Top-level configuration parsed from ``tokenator.yaml``."""

    org: str
    repos: tuple[RepoTarget, ...] = ()
    auxiliary_repo: str = AUXILIARY_REPOSITORY

    def select(self, names: cabc.Iterable[str] = ()) -> list[RepoTarget]:
        """Return configured repositories, optionally restricted to ``names``.

        Configuration order is preserved and unknown names are ignored.

        Examples
        --------
        >>> config = parse_config({"org": "o", "repos": [{"name": "a"}, {"name": "b"}]})
        >>> [repo.name for repo in config.select(["b", "zzz"])]
        ['b']
        """

        wanted = set(names)
        if not wanted:
            return list(self.repos)
        return [repo for repo in self.repos if repo.name in wanted]


@dataclass(frozen=True, slots=True)
class LoginCredentials:
    """Username and password pair for an interactive login."""

    login: str
    password: str = field(repr=False)


@dataclass(frozen=True, slots=True)
class GitHubAppCredentials:
    """GitHub App identifier and PEM-encoded private key."""

    app_id: int
    private_key: str = field(repr=False)


@dataclass(frozen=True, slots=True)
class Credentials:
    """All credentials needed for a tokenator run.

    Attributes
    ----------
    github_token
        Personal access token with administrative rights over the org.
    snap_store
        Ubuntu One login for the Snap Store.
    launchpad
        Launchpad remote-build auth file contents, distributed verbatim.
    bot
        GitHub login for the bot account that owns the commit tokens.
    github_app
        App used to approve personal access token requests.
    """

    github_token: str = field(repr=False)
    snap_store: LoginCredentials
    launchpad: str = field(repr=False)
    bot: LoginCredentials
    github_app: GitHubAppCredentials


def default_config_paths(env: cabc.Mapping[str, str] | None = None) -> list[Path]:
    """Return the config file locations searched in order."""

    environ = env if env is not None else os.environ
    paths = [Path.cwd() / CONFIG_FILE_NAME]
    home = environ.get("HOME")
    if home:
        paths.append(Path(home) / ".config" / "tokenator" / CONFIG_FILE_NAME)
    paths.append(Path("/etc/tokenator") / CONFIG_FILE_NAME)
    return paths


def discover_config_path(
    explicit: Path | None = None,
    candidates: cabc.Iterable[Path] | None = None,
) -> Path:
    """Return the first existing configuration file."""

    if explicit is not None:
        if not explicit.is_file():
            msg = f"config file {explicit} does not exist"
            raise ConfigurationError(msg)
        return explicit
    searched = list(candidates) if candidates is not None else default_config_paths()
    for path in searched:
        if path.is_file():
            return path
    msg = "no config file found, see 'tokenator --help' for details"
    raise ConfigurationError(msg)


def _parse_tracks(raw_tracks: Any, repo_name: str) -> tuple[Track, ...]:
    if raw_tracks is None:
        return ()
    if not isinstance(raw_tracks, list):
        msg = f"tracks for {repo_name!r} must be a list"
        raise ConfigurationError(msg)
    tracks: list[Track] = []
    for entry in raw_tracks:
        if not isinstance(entry, dict):
            msg = f"track entries for {repo_name!r} must be mappings"
            raise ConfigurationError(msg)
        try:
            tracks.append(
                Track(
                    name=str(entry["name"]),
                    branch=str(entry["branch"]),
                    environment=str(entry["environment"]),
                )
            )
        except KeyError as exc:
            msg = f"track for {repo_name!r} is missing {exc.args[0]!r}"
            raise ConfigurationError(msg) from exc
    return tuple(tracks)


def parse_config(payload: Any) -> TokenatorConfig:
    """Build a :class:`TokenatorConfig` from a decoded YAML document."""

    if not isinstance(payload, dict):
        msg = "error parsing tokenator config file: expected a mapping"
        raise ConfigurationError(msg)
    org = payload.get("org")
    if not org:
        msg = "error parsing tokenator config file: 'org' is required"
        raise ConfigurationError(msg)

    raw_repos = payload.get("repos") or []
    if not isinstance(raw_repos, list):
        msg = "error parsing tokenator config file: 'repos' must be a list"
        raise ConfigurationError(msg)

    repos: list[RepoTarget] = []
    for entry in raw_repos:
        if not isinstance(entry, dict) or not entry.get("name"):
            msg = "error parsing tokenator config file: each repo needs a 'name'"
            raise ConfigurationError(msg)
        name = str(entry["name"])
        repos.append(
            RepoTarget(name=name, org=str(org), tracks=_parse_tracks(entry.get("tracks"), name))
        )

    return TokenatorConfig(
        org=str(org),
        repos=tuple(repos),
        auxiliary_repo=str(payload.get("auxiliary_repo") or AUXILIARY_REPOSITORY),
    )


def load_config(path: Path) -> TokenatorConfig:
    """Read and parse the YAML configuration file at ``path``."""

    try:
        payload = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        msg = f"error parsing tokenator config file {path}: {exc}"
        raise ConfigurationError(msg) from exc
    return parse_config(payload)


def _required(key: str, env: cabc.Mapping[str, str] | None) -> str:
    return str(resolve_input(None, InputResolution(env_key=key, required=True), env=env))


def resolve_credentials(env: cabc.Mapping[str, str] | None = None) -> Credentials:
    """Resolve every required credential from ``TOKENATOR_*`` variables.

    Examples
    --------
    >>> resolve_credentials({})
    Traceback (most recent call last):
    ...
    tokenator._errors.ConfigurationError: TOKENATOR_SNAPCRAFTERS_ORG_PAT is required
    """

    github_token = _required("SNAPCRAFTERS_ORG_PAT", env)
    snap_store = LoginCredentials(
        login=_required("SNAPCRAFT_LOGIN", env),
        password=_required("SNAPCRAFT_PASSWORD", env),
    )
    launchpad = _required("LP_AUTH", env)
    bot = LoginCredentials(
        login=_required("SNAPCRAFTERS_BOT_LOGIN", env),
        password=_required("SNAPCRAFTERS_BOT_PASSWORD", env),
    )
    raw_app_id = _required("APP_ID", env)
    try:
        app_id = int(raw_app_id)
    except ValueError as exc:
        msg = f"TOKENATOR_APP_ID must be an integer, got: {raw_app_id!r}"
        raise ConfigurationError(msg) from exc
    github_app = GitHubAppCredentials(app_id=app_id, private_key=_required("APP_SECRET", env))

    return Credentials(
        github_token=github_token,
        snap_store=snap_store,
        launchpad=launchpad,
        bot=bot,
        github_app=github_app,
    )


__all__ = [
    "AUXILIARY_REPOSITORY",
    "DEFAULT_TRACK",
    "Credentials",
    "GitHubAppCredentials",
    "LoginCredentials",
    "RepoTarget",
    "TokenatorConfig",
    "Track",
    "default_config_paths",
    "discover_config_path",
    "load_config",
    "parse_config",
    "resolve_credentials",
]
