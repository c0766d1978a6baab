"""Expose dependency helpers for FastAPI routers."""

from .clients import (
    get_google_oauth_client,
    get_google_reviews_client,
    get_oauth_state_encoder,
    get_oauth_token_manager,
    get_square_access_resolver,
    get_square_client,
    get_square_oauth_client,
    get_token_cipher_service,
    get_token_store,
)
from .config import SettingsDependency, get_app_settings

__all__ = [
    "SettingsDependency",
    "get_app_settings",
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
