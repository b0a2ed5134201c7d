"""Distribute CI credentials to the repositories of a GitHub organization.

For every configured repository and track, the command sets four GitHub
Actions environment secrets:

- ``SNAP_STORE_CANDIDATE`` and ``SNAP_STORE_STABLE``: Snap Store tokens;
- ``LP_BUILD_SECRET``: Launchpad remote-build credentials;
- ``SNAPCRAFTERS_BOT_COMMIT``: a bot personal access token able to commit.

Configuration is read from the first file found among:

- the path passed with ``--config`` or set in ``TOKENATOR_CONFIG``;
- ``./tokenator.yaml``;
- ``$HOME/.config/tokenator/tokenator.yaml``;
- ``/etc/tokenator/tokenator.yaml``.

Credentials are read from the environment: ``TOKENATOR_SNAPCRAFTERS_ORG_PAT``,
``TOKENATOR_SNAPCRAFT_LOGIN``, ``TOKENATOR_SNAPCRAFT_PASSWORD``,
``TOKENATOR_LP_AUTH``, ``TOKENATOR_SNAPCRAFTERS_BOT_LOGIN``,
``TOKENATOR_SNAPCRAFTERS_BOT_PASSWORD``, ``TOKENATOR_APP_ID`` and
``TOKENATOR_APP_SECRET``.

Usage:
  tokenator
  tokenator --repos signal-desktop,discord --verbose
"""

from __future__ import annotations

import logging
from collections import abc as cabc
from importlib import metadata
from pathlib import Path
from typing import Annotated

from cyclopts import App, Parameter

from tokenator._config import discover_config_path, load_config, resolve_credentials
from tokenator._errors import TokenatorError
from tokenator._input_resolution import InputResolution, resolve_input
from tokenator._manager import Manager

logger = logging.getLogger(__name__)

PACKAGE_NAME = "tokenator"


def package_version() -> str:
    """Return the installed tokenator version, or ``unknown`` outside an install."""

    try:
        return metadata.version(PACKAGE_NAME)
    except metadata.PackageNotFoundError:
        return "unknown"


app = App(
    name=PACKAGE_NAME,
    help=__doc__,
    version=package_version,
)


def split_repos(repos: str | None) -> list[str]:
    """Split a comma-separated repository list, dropping blanks.

    Examples
    --------
    >>> split_repos("signal-desktop, discord,,")
    ['signal-desktop', 'discord']
    >>> split_repos(None)
    []
    """

    if not repos:
        return []
    return [name.strip() for name in repos.split(",") if name.strip()]


def configure_logging(*, verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def run(
    repos: cabc.Sequence[str],
    config_path: Path | None = None,
    env: cabc.Mapping[str, str] | None = None,
) -> None:
    """Load configuration and credentials, then distribute credentials."""

    explicit = resolve_input(config_path, InputResolution(env_key="CONFIG", as_path=True), env=env)
    config = load_config(discover_config_path(Path(explicit) if explicit is not None else None))
    credentials = resolve_credentials(env)
    Manager.from_credentials(config, credentials).process(repos)


@app.default
def main(
    *,
    repos: Annotated[
        str | None,
        Parameter(name=["--repos", "-r"], help="Comma-separated repositories to process."),
    ] = None,
    verbose: Annotated[
        bool,
        Parameter(name=["--verbose", "-v"], help="Enable debug logging."),
    ] = False,
    config: Annotated[
        Path | None,
        Parameter(name=["--config"], help="Path to tokenator.yaml."),
    ] = None,
) -> int:
    """Distribute store, Launchpad and bot credentials to repositories."""

    configure_logging(verbose=verbose)
    try:
        run(split_repos(repos), config)
    except TokenatorError as exc:
        logger.error("%s", exc)
        return 1
    logger.info("all credentials distributed")
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    raise SystemExit(app())
