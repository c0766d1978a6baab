"""
Error taxonomy shared by the token lifecycle and integration clients.
"""

from __future__ import annotations


class ConfigurationError(Exception):
    """Raised when a required secret or setting is missing or malformed."""


class SquareAccessUnavailableError(ConfigurationError):
    """Raised when neither the environment nor storage yields a Square token."""


class TokenUnavailableError(Exception):
    """Base class for 'nothing to work with' conditions."""


class OAuthTokenNotFoundError(TokenUnavailableError):
    """Raised when no persisted OAuth token exists for a service."""


class RefreshTokenUnavailableError(TokenUnavailableError):
    """Raised when a token has expired and no refresh token was stored."""


class UpstreamDataUnavailableError(TokenUnavailableError):
    """Raised when an upstream listing (accounts, locations) comes back empty."""


class UpstreamAPIError(Exception):
    """Raised when a provider responds with a non-success status."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def __str__(self) -> str:
        if self.status_code is None:
            return self.message
        return f"{self.message} (status {self.status_code})"


class OAuthTokenExchangeError(UpstreamAPIError):
    """Raised when the token endpoint returns an error."""


class OAuthReauthorizationRequired(OAuthTokenExchangeError):
    """Raised when the provider rejects a refresh token outright."""


class UnexpectedResponseError(UpstreamAPIError):
    """Raised when a provider payload does not match the expected shape."""


class TokenDecryptionError(ValueError):
    """Raised when an encrypted secret cannot be decrypted."""


class TokenStorageError(Exception):
    """Raised when the token store cannot be read or written."""


class InvalidOAuthStateError(ValueError):
    """Raised when an OAuth state value is forged, malformed or stale."""


__all__ = [
    "ConfigurationError",
    "InvalidOAuthStateError",
    "OAuthReauthorizationRequired",
    "OAuthTokenExchangeError",
    "OAuthTokenNotFoundError",
    "RefreshTokenUnavailableError",
    "SquareAccessUnavailableError",
    "TokenDecryptionError",
    "TokenStorageError",
    "TokenUnavailableError",
    "UnexpectedResponseError",
    "UpstreamAPIError",
    "UpstreamDataUnavailableError",
]
