"""
Factory functions to provide shared clients and services as FastAPI dependencies.
"""

from datetime import timedelta
from functools import lru_cache

from backoffice.clients import (
    GoogleOAuthClient,
    GoogleReviewsClient,
    OAuthStateEncoder,
    SQLiteTokenStore,
    SquareClient,
    SquareOAuthClient,
)
from backoffice.clients.google_reviews import GOOGLE_SERVICE
from backoffice.core.config import get_settings
from backoffice.core.errors import ConfigurationError
from backoffice.services import (
    OAuthTokenManager,
    SquareAccessResolver,
    TokenCipherService,
)
from backoffice.services.square_access import SQUARE_SERVICE


@lru_cache()
def _settings():
    """Internal helper to cache settings for client factories."""
    return get_settings()


@lru_cache()
def get_oauth_state_encoder() -> OAuthStateEncoder:
    """Provide an OAuth state encoder keyed by the token encryption secret."""
    secret = _settings().security.encryption_key
    if not secret:
        raise ConfigurationError("ENCRYPTION_KEY not configured")
    return OAuthStateEncoder(secret_key=secret)


@lru_cache()
def get_token_cipher_service() -> TokenCipherService:
    """Provide symmetric encryption helper for token storage."""
    return TokenCipherService(secret=_settings().security.encryption_key)


@lru_cache()
def get_token_store() -> SQLiteTokenStore:
    """Provide the shared SQLite token store."""
    return SQLiteTokenStore(_settings().token_db_path, get_token_cipher_service())


@lru_cache()
def get_google_oauth_client() -> GoogleOAuthClient:
    """Create a singleton Google OAuth client."""
    settings = _settings()
    return GoogleOAuthClient(settings.google, settings.oauth)


@lru_cache()
def get_square_oauth_client() -> SquareOAuthClient:
    settings = _settings()
    return SquareOAuthClient(settings.square, settings.oauth)


@lru_cache()
def get_square_client() -> SquareClient:
    settings = _settings()
    return SquareClient(settings.square, settings.oauth)


@lru_cache()
def get_oauth_token_manager() -> OAuthTokenManager:
    """Provide the token lifecycle manager with every provider's refresher."""
    settings = _settings()
    return OAuthTokenManager(
        store=get_token_store(),
        token_cipher=get_token_cipher_service(),
        refreshers={
            GOOGLE_SERVICE: get_google_oauth_client(),
            SQUARE_SERVICE: get_square_oauth_client(),
        },
        refresh_skew=timedelta(seconds=settings.oauth.refresh_skew_seconds),
    )


@lru_cache()
def get_google_reviews_client() -> GoogleReviewsClient:
    return GoogleReviewsClient(get_oauth_token_manager(), _settings().oauth)


@lru_cache()
def get_square_access_resolver() -> SquareAccessResolver:
    return SquareAccessResolver(
        square_settings=_settings().square,
        token_manager=get_oauth_token_manager(),
        token_cipher=get_token_cipher_service(),
        square_client=get_square_client(),
    )


__all__ = [
    "get_google_oauth_client",
    "get_google_reviews_client",
    "get_oauth_state_encoder",
    "get_oauth_token_manager",
    "get_square_access_resolver",
    "get_square_client",
    "get_square_oauth_client",
    "get_token_cipher_service",
    "get_token_store",
]
