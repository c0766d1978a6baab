"""Public schema exports."""

from .auth import OAuthCallbackPayload, OAuthConnectionResult
from .reviews import ImportedReview

__all__ = [
    "ImportedReview",
    "OAuthCallbackPayload",
    "OAuthConnectionResult",
]
