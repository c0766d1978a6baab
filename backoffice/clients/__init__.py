"""Expose constructed client wrappers."""

from .google_auth import GoogleOAuthClient, OAuthStateEncoder
from .google_reviews import GoogleReviewsClient
from .square import SquareClient, SquareOAuthClient
from .token_store import SQLiteTokenStore

__all__ = [
    "GoogleOAuthClient",
    "GoogleReviewsClient",
    "OAuthStateEncoder",
    "SQLiteTokenStore",
    "SquareClient",
    "SquareOAuthClient",
]
