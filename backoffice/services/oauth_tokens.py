"""
Helpers for persisting OAuth tokens and keeping them valid.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Mapping, Optional, Protocol

from backoffice.core.errors import (
    ConfigurationError,
    OAuthTokenNotFoundError,
    RefreshTokenUnavailableError,
)
from backoffice.models.oauth import OAuthTokenRecord, TokenGrant
from backoffice.services.token_cipher import TokenCipherService

if TYPE_CHECKING:
    from backoffice.clients.token_store import SQLiteTokenStore

logger = logging.getLogger(__name__)


class TokenRefresher(Protocol):
    async def refresh_token(self, refresh_token: str) -> TokenGrant:
        ...


class OAuthTokenManager:
    """Owns the save / check / refresh cycle for per-service OAuth tokens.

    Every call re-reads storage; nothing is cached between calls. Two callers
    racing past an expired token may both refresh, and the last write wins.
    """

    def __init__(
        self,
        store: SQLiteTokenStore,
        token_cipher: TokenCipherService,
        refreshers: Mapping[str, TokenRefresher],
        *,
        refresh_skew: timedelta = timedelta(0),
    ) -> None:
        self._store = store
        self._cipher = token_cipher
        self._refreshers = dict(refreshers)
        self._refresh_skew = refresh_skew

    def save_tokens(
        self,
        service: str,
        access_token: str,
        refresh_token: Optional[str],
        expires_at: datetime,
        *,
        location_id: Optional[str] = None,
        merchant_id: Optional[str] = None,
    ) -> OAuthTokenRecord:
        """Encrypt and persist a token set, replacing any previous one."""
        return self._store.upsert(
            service,
            access_token,
            refresh_token,
            expires_at,
            location_id=location_id,
            merchant_id=merchant_id,
        )

    def save_grant(self, service: str, grant: TokenGrant) -> OAuthTokenRecord:
        return self.save_tokens(
            service,
            grant.access_token,
            grant.refresh_token,
            grant.expires_at,
            location_id=grant.location_id,
            merchant_id=grant.merchant_id,
        )

    def get_record(self, service: str) -> Optional[OAuthTokenRecord]:
        return self._store.get(service)

    async def get_valid_token(self, service: str) -> str:
        """Return a plaintext access token, refreshing it first if it expired."""
        record = self._store.get(service)
        if record is None:
            raise OAuthTokenNotFoundError(f"No OAuth token found for {service}.")

        now = datetime.now(timezone.utc)
        if now < record.expires_at - self._refresh_skew:
            return self._cipher.decrypt(record.access_token)

        refresh_token = (
            self._cipher.decrypt(record.refresh_token) if record.refresh_token else None
        )
        if not refresh_token:
            raise RefreshTokenUnavailableError(
                f"Token for {service} expired and no refresh token is available."
            )

        refresher = self._refreshers.get(service)
        if refresher is None:
            raise ConfigurationError(f"No token refresh routine registered for {service}.")

        logger.info("Access token for %s expired at %s; refreshing", service, record.expires_at)
        grant = await refresher.refresh_token(refresh_token)
        # Providers do not always rotate refresh tokens; keep the old one if not.
        self.save_tokens(
            service,
            grant.access_token,
            grant.refresh_token or refresh_token,
            grant.expires_at,
            location_id=grant.location_id,
            merchant_id=grant.merchant_id,
        )
        return grant.access_token


__all__ = ["OAuthTokenManager", "TokenRefresher"]
