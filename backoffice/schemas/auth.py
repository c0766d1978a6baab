"""Schemas related to OAuth flows."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class OAuthCallbackPayload(BaseModel):
    """Payload sent to complete the OAuth callback exchange."""

    code: str = Field(..., description="Authorization code returned by the provider.")
    state: str = Field(..., description="Opaque state token issued when starting OAuth.")


class OAuthConnectionResult(BaseModel):
    status: str = "connected"
    provider: str
    redirect_to: Optional[str] = None


__all__ = ["OAuthCallbackPayload", "OAuthConnectionResult"]
