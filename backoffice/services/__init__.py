"""Service layer exports."""

from .oauth_tokens import OAuthTokenManager, TokenRefresher
from .square_access import SquareAccessResolver
from .token_cipher import TokenCipherService

__all__ = [
    "OAuthTokenManager",
    "SquareAccessResolver",
    "TokenCipherService",
    "TokenRefresher",
]
