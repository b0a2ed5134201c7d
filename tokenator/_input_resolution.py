"""Shared helpers for resolving CLI and environment inputs."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from collections import abc as cabc

from tokenator._errors import ConfigurationError

ENV_PREFIX = "TOKENATOR_"


@dataclass(frozen=True, slots=True)
class InputResolution:
    """Configuration for resolving an input from multiple sources."""

    env_key: str
    default: str | Path | None = None
    required: bool = False
    as_path: bool = False

    @property
    def variable(self) -> str:
        """Return the prefixed environment variable name.

        Examples
        --------
        >>> InputResolution(env_key="APP_ID").variable
        'TOKENATOR_APP_ID'
        """

        return f"{ENV_PREFIX}{self.env_key}"


def resolve_input(
    param_value: str | Path | None,
    resolution: InputResolution,
    env: cabc.Mapping[str, str] | None = None,
) -> str | Path | None:
    """Resolve input from parameter, environment variable, or default."""

    if param_value is not None:
        return param_value

    env_value = (env if env is not None else os.environ).get(resolution.variable)
    if env_value:
        return Path(env_value) if resolution.as_path else env_value

    if resolution.required:
        msg = f"{resolution.variable} is required"
        raise ConfigurationError(msg)

    return resolution.default
