"""
Square OAuth and REST helpers.

Square's environment (sandbox or production) decides both the OAuth host and
the REST host; everything here reads it from ``SquareSettings``.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List
from urllib.parse import urlencode

import httpx
from pydantic import BaseModel, ValidationError

from backoffice.core.config import OAuthSettings, SquareSettings
from backoffice.core.errors import (
    ConfigurationError,
    OAuthReauthorizationRequired,
    OAuthTokenExchangeError,
    UnexpectedResponseError,
    UpstreamAPIError,
)
from backoffice.models.oauth import TokenGrant

logger = logging.getLogger(__name__)

# Used when Square omits expires_at from a token response.
DEFAULT_TOKEN_LIFETIME = timedelta(minutes=55)


class SquareLocation(BaseModel):
    id: str
    name: str | None = None
    status: str | None = None


class SquareLocationList(BaseModel):
    locations: List[SquareLocation] = []


class SquareOAuthClient:
    """Build Square authorization URLs, exchange codes and refresh tokens."""

    def __init__(
        self,
        square_settings: SquareSettings,
        oauth_settings: OAuthSettings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._square = square_settings
        self._oauth = oauth_settings
        self._transport = transport

    @property
    def token_url(self) -> str:
        return f"{self._square.oauth_base_url}/oauth2/token"

    def _require_config(self) -> None:
        if not self._square.enabled:
            raise ConfigurationError("Square not enabled")
        if not (
            self._square.application_id
            and self._square.application_secret
            and self._square.redirect_url
        ):
            raise ConfigurationError("Square OAuth is not configured")

    def build_authorization_url(self, state: str) -> str:
        self._require_config()
        params = {
            "client_id": self._square.application_id,
            "redirect_uri": str(self._square.redirect_url),
            "scope": " ".join(self._square.scopes),
            "state": state,
        }
        return f"{self._square.oauth_base_url}/oauth2/authorize?{urlencode(params)}"

    async def _request_token(self, body: Dict[str, str]) -> TokenGrant:
        issued_at = datetime.now(timezone.utc)
        async with httpx.AsyncClient(
            timeout=self._oauth.http_timeout_seconds, transport=self._transport
        ) as client:
            response = await client.post(self.token_url, json=body)

        if response.status_code != httpx.codes.OK:
            logger.warning("Square token request failed with status %s", response.status_code)
            if (
                body.get("grant_type") == "refresh_token"
                and response.status_code == httpx.codes.UNAUTHORIZED
            ):
                raise OAuthReauthorizationRequired(
                    "Square refresh token was rejected; re-authorization required.",
                    status_code=response.status_code,
                )
            raise OAuthTokenExchangeError(
                f"Square OAuth failed: {response.text}", status_code=response.status_code
            )

        data = response.json()
        if not data.get("access_token"):
            raise OAuthTokenExchangeError("Square OAuth response missing access token")

        expires_raw = data.get("expires_at")
        if expires_raw:
            expires_at = datetime.fromisoformat(expires_raw.replace("Z", "+00:00"))
        else:
            expires_at = issued_at + DEFAULT_TOKEN_LIFETIME

        return TokenGrant(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token") or None,
            expires_at=expires_at,
            merchant_id=data.get("merchant_id"),
            location_id=data.get("location_id"),
        )

    async def exchange_authorization_code(self, code: str) -> TokenGrant:
        self._require_config()
        return await self._request_token(
            {
                "client_id": self._square.application_id,
                "client_secret": self._square.application_secret,
                "code": code,
                "grant_type": "authorization_code",
                "redirect_uri": str(self._square.redirect_url),
            }
        )

    async def refresh_token(self, refresh_token: str) -> TokenGrant:
        self._require_config()
        return await self._request_token(
            {
                "client_id": self._square.application_id,
                "client_secret": self._square.application_secret,
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
            }
        )


class SquareClient:
    """Minimal Square REST client for the calls the back-office needs."""

    def __init__(
        self,
        square_settings: SquareSettings,
        oauth_settings: OAuthSettings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._square = square_settings
        self._oauth = oauth_settings
        self._transport = transport

    def _headers(self, access_token: str) -> Dict[str, Any]:
        return {
            "Square-Version": self._square.api_version,
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
        }

    async def list_locations(self, access_token: str) -> List[SquareLocation]:
        async with httpx.AsyncClient(
            timeout=self._oauth.http_timeout_seconds, transport=self._transport
        ) as client:
            response = await client.get(
                f"{self._square.api_base_url}/locations",
                headers=self._headers(access_token),
            )

        if response.status_code != httpx.codes.OK:
            raise UpstreamAPIError(
                f"Square API error: {response.text}", status_code=response.status_code
            )
        try:
            return SquareLocationList.model_validate(response.json()).locations
        except ValidationError as exc:
            raise UnexpectedResponseError(
                f"Unexpected Square locations payload: {exc}"
            ) from exc


__all__ = [
    "DEFAULT_TOKEN_LIFETIME",
    "SquareClient",
    "SquareLocation",
    "SquareOAuthClient",
]
