"""Shared tokenator error types.

This module defines the exception hierarchy used across the credential
clients and the orchestrator, covering configuration problems, upstream
protocol failures, rejected logins, and ambiguous approval matches.

Exceptions
----------
TokenatorError
ConfigurationError
InvalidChannelError
UpstreamProtocolError
UpstreamTimeoutError
RepositoryNotFoundError
NoInstallationError
MissingAccessTokenError
AuthenticationError
TokenCreationError
AmbiguousMatchError
CleanupError
"""

from __future__ import annotations


class TokenatorError(Exception):
    """Base error for credential issuance and distribution."""


class ConfigurationError(TokenatorError):
    """Raised when configuration or credentials are missing or invalid."""


class InvalidChannelError(ConfigurationError):
    """Raised when a store token is requested for an unsupported channel."""


class UpstreamProtocolError(TokenatorError):
    """Raised when an upstream response is malformed or incomplete."""


class UpstreamTimeoutError(UpstreamProtocolError):
    """Raised when an upstream request exceeds its timeout."""


class RepositoryNotFoundError(UpstreamProtocolError):
    """Raised when a configured repository does not exist upstream."""


class NoInstallationError(UpstreamProtocolError):
    """Raised when the GitHub App has no installation to mint tokens for."""


class MissingAccessTokenError(UpstreamProtocolError):
    """Raised when an installation token response carries no token."""


class AuthenticationError(TokenatorError):
    """Raised when an upstream login is rejected."""


class TokenCreationError(TokenatorError):
    """Raised when the personal access token form is rejected."""


class AmbiguousMatchError(TokenatorError):
    """Raised when a pending token request cannot be matched exactly once."""


class CleanupError(TokenatorError):
    """Raised when superseded personal access tokens cannot be deleted."""


__all__ = [
    "AmbiguousMatchError",
    "AuthenticationError",
    "CleanupError",
    "ConfigurationError",
    "InvalidChannelError",
    "MissingAccessTokenError",
    "NoInstallationError",
    "RepositoryNotFoundError",
    "TokenCreationError",
    "TokenatorError",
    "UpstreamProtocolError",
    "UpstreamTimeoutError",
]
