"""
Domain models for OAuth token persistence.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class OAuthTokenRecord(BaseModel):
    """Represents the single token row stored for an external service."""

    service: str = Field(..., description="Natural key, e.g. 'square' or 'google'.")
    access_token: str = Field(..., description="Encrypted access token.")
    refresh_token: Optional[str] = Field(None, description="Encrypted refresh token.")
    location_id: Optional[str] = None
    merchant_id: Optional[str] = None
    expires_at: datetime
    updated_at: Optional[datetime] = None


class TokenGrant(BaseModel):
    """Plaintext tokens returned by a code exchange or refresh."""

    access_token: str
    refresh_token: Optional[str] = None
    expires_at: datetime
    merchant_id: Optional[str] = None
    location_id: Optional[str] = None


__all__ = ["OAuthTokenRecord", "TokenGrant"]
