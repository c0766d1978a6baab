"""
Resolve the Square access token and location for commerce calls.

Static environment values win over stored OAuth tokens, which win over a
remote lookup, so operators can pin sandbox or production credentials without
touching persisted state.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from backoffice.clients.square import SquareClient
from backoffice.core.config import SquareSettings
from backoffice.core.errors import (
    SquareAccessUnavailableError,
    UpstreamDataUnavailableError,
)
from backoffice.services.oauth_tokens import OAuthTokenManager
from backoffice.services.token_cipher import TokenCipherService

logger = logging.getLogger(__name__)

SQUARE_SERVICE = "square"


class SquareAccessResolver:
    def __init__(
        self,
        square_settings: SquareSettings,
        token_manager: OAuthTokenManager,
        token_cipher: TokenCipherService,
        square_client: SquareClient,
    ) -> None:
        self._square = square_settings
        self._tokens = token_manager
        self._cipher = token_cipher
        self._client = square_client

    def resolve_access_token(self) -> str:
        if self._square.access_token:
            return self._square.access_token
        record = self._tokens.get_record(SQUARE_SERVICE)
        if record is None or not record.access_token:
            raise SquareAccessUnavailableError("Square access token not available")
        return self._cipher.decrypt(record.access_token)

    async def resolve_location_id(self, access_token: Optional[str] = None) -> str:
        if self._square.location_id:
            return self._square.location_id

        record = self._tokens.get_record(SQUARE_SERVICE)
        if record is not None and record.location_id:
            return record.location_id

        token = access_token or self.resolve_access_token()
        locations = await self._client.list_locations(token)
        if not locations:
            raise UpstreamDataUnavailableError("Square location not available")
        logger.info("Using first Square location %s from remote lookup", locations[0].id)
        return locations[0].id

    def connection_summary(self) -> Dict[str, Any]:
        """Describe the stored Square connection without exposing tokens."""
        record = self._tokens.get_record(SQUARE_SERVICE)
        summary: Dict[str, Any] = {
            "connected": record is not None,
            "environment": self._square.environment_name,
        }
        if record is not None:
            summary["merchant_id"] = record.merchant_id
            summary["location_id"] = record.location_id
        return summary


__all__ = ["SQUARE_SERVICE", "SquareAccessResolver"]
