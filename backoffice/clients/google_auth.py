"""
Google OAuth utilities.

These helpers manage the Business Profile authorization flow and the token
refresh lifecycle, plus the signed ``state`` values shared by every provider.
"""

from __future__ import annotations

import base64
import binascii
import hmac
import json
import logging
from datetime import datetime, timedelta, timezone
from hashlib import sha256
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import httpx

from backoffice.core.config import GoogleSettings, OAuthSettings
from backoffice.core.errors import (
    ConfigurationError,
    InvalidOAuthStateError,
    OAuthReauthorizationRequired,
    OAuthTokenExchangeError,
)
from backoffice.models.oauth import TokenGrant

logger = logging.getLogger(__name__)


class OAuthStateEncoder:
    """Encode and decode OAuth state values to guard against tampering."""

    def __init__(self, secret_key: str) -> None:
        self._secret_key = secret_key.encode("utf-8")

    def encode(self, payload: Dict[str, Any]) -> str:
        serialized = json.dumps(payload, separators=(",", ":"), sort_keys=True)
        signature = hmac.new(self._secret_key, serialized.encode("utf-8"), sha256).digest()
        return base64.urlsafe_b64encode(signature + serialized.encode("utf-8")).decode("utf-8")

    def decode(self, token: str, *, max_age_seconds: Optional[int] = None) -> Dict[str, Any]:
        """Verify the signature (and optionally the age) of a state token."""
        try:
            decoded = base64.urlsafe_b64decode(token.encode("utf-8"))
        except (binascii.Error, ValueError) as exc:
            raise InvalidOAuthStateError("Malformed OAuth state.") from exc
        signature, serialized = decoded[:32], decoded[32:]
        expected_signature = hmac.new(self._secret_key, serialized, sha256).digest()
        if not hmac.compare_digest(signature, expected_signature):
            raise InvalidOAuthStateError("Invalid OAuth state signature.")
        payload = json.loads(serialized)

        if max_age_seconds is not None:
            try:
                issued_at = datetime.fromisoformat(payload["issued_at"])
            except (KeyError, TypeError, ValueError) as exc:
                raise InvalidOAuthStateError("Missing or invalid issued_at in state.") from exc
            if issued_at.tzinfo is None:
                issued_at = issued_at.replace(tzinfo=timezone.utc)
            if datetime.now(timezone.utc) - issued_at > timedelta(seconds=max_age_seconds):
                raise InvalidOAuthStateError("OAuth state token has expired.")
        return payload


class GoogleOAuthClient:
    """Build Google authorization URLs, exchange codes and refresh tokens."""

    AUTH_BASE_URL = "https://accounts.google.com/o/oauth2/v2/auth"
    TOKEN_URL = "https://oauth2.googleapis.com/token"

    def __init__(
        self,
        google_settings: GoogleSettings,
        oauth_settings: OAuthSettings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._google = google_settings
        self._oauth = oauth_settings
        self._transport = transport

    def _require_config(self) -> None:
        if not self._google.is_configured:
            raise ConfigurationError("Google OAuth not configured")

    def build_authorization_url(self, state: str, access_type: str = "offline") -> str:
        """Construct the Google OAuth consent URL."""
        self._require_config()
        params = {
            "client_id": self._google.client_id,
            "redirect_uri": str(self._google.redirect_uri),
            "response_type": "code",
            "scope": " ".join(self._oauth.google_scopes),
            "access_type": access_type,
            "prompt": "consent",
            "state": state,
        }
        return f"{self.AUTH_BASE_URL}?{urlencode(params)}"

    async def _post_token(self, payload: Dict[str, str]) -> httpx.Response:
        async with httpx.AsyncClient(
            timeout=self._oauth.http_timeout_seconds, transport=self._transport
        ) as client:
            return await client.post(self.TOKEN_URL, data=payload)

    async def exchange_authorization_code(self, code: str) -> TokenGrant:
        """Exchange an authorization code for tokens.

        Google only issues a refresh token on the first consent, so the
        returned grant may not carry one.
        """
        self._require_config()
        payload = {
            "code": code,
            "client_id": self._google.client_id,
            "client_secret": self._google.client_secret,
            "redirect_uri": str(self._google.redirect_uri),
            "grant_type": "authorization_code",
        }
        issued_at = datetime.now(timezone.utc)
        response = await self._post_token(payload)

        if response.status_code != httpx.codes.OK:
            logger.warning("Google code exchange failed with status %s", response.status_code)
            raise OAuthTokenExchangeError(response.text, status_code=response.status_code)

        token_payload = response.json()
        access_token = token_payload.get("access_token")
        expires_in = token_payload.get("expires_in")
        if not access_token or not expires_in:
            raise OAuthTokenExchangeError("Incomplete token payload returned from Google.")

        return TokenGrant(
            access_token=access_token,
            refresh_token=token_payload.get("refresh_token") or None,
            expires_at=issued_at + timedelta(seconds=int(expires_in)),
        )

    async def refresh_token(self, refresh_token: str) -> TokenGrant:
        """Refresh the access token using a stored refresh token."""
        self._require_config()
        payload = {
            "client_id": self._google.client_id,
            "client_secret": self._google.client_secret,
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
        }
        issued_at = datetime.now(timezone.utc)
        response = await self._post_token(payload)

        if response.status_code != httpx.codes.OK:
            if _is_invalid_grant(response):
                raise OAuthReauthorizationRequired(
                    "Google refresh token was revoked; re-authorization required.",
                    status_code=response.status_code,
                )
            raise OAuthTokenExchangeError(response.text, status_code=response.status_code)

        token_payload = response.json()
        access_token = token_payload.get("access_token")
        expires_in = token_payload.get("expires_in")
        if not access_token or not expires_in:
            raise OAuthTokenExchangeError("Incomplete refresh payload returned from Google.")

        return TokenGrant(
            access_token=access_token,
            refresh_token=token_payload.get("refresh_token") or None,
            expires_at=issued_at + timedelta(seconds=int(expires_in)),
        )


def _is_invalid_grant(response: httpx.Response) -> bool:
    if response.status_code not in (httpx.codes.BAD_REQUEST, httpx.codes.UNAUTHORIZED):
        return False
    try:
        body = response.json()
    except ValueError:
        return False
    return isinstance(body, dict) and body.get("error") == "invalid_grant"


__all__ = [
    "GoogleOAuthClient",
    "OAuthStateEncoder",
]
