"""
FastAPI application entrypoint for the back-office integrations.
"""

from __future__ import annotations

import logging
from http import HTTPStatus

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from backoffice.api.routes import router as api_router
from backoffice.core.config import get_settings
from backoffice.core.errors import ConfigurationError, TokenDecryptionError, TokenStorageError
from backoffice.core.logging import configure_logging

logger = logging.getLogger(__name__)


async def _configuration_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Configuration error on %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=HTTPStatus.SERVICE_UNAVAILABLE, content={"detail": str(exc)}
    )


async def _storage_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Token storage error on %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=HTTPStatus.SERVICE_UNAVAILABLE,
        content={"detail": "Token storage unavailable."},
    )


async def _decryption_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Stored token could not be decrypted on %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=HTTPStatus.INTERNAL_SERVER_ERROR,
        content={
            "detail": "Stored token could not be decrypted; check ENCRYPTION_KEY "
            "or reconnect the integration."
        },
    )


async def _transport_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.warning("Upstream request failed on %s: %r", request.url.path, exc)
    return JSONResponse(
        status_code=HTTPStatus.BAD_GATEWAY,
        content={"detail": "Upstream provider unreachable."},
    )


def create_app() -> FastAPI:
    """Factory for the FastAPI application."""
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="Home Services Back Office",
        version="0.1.0",
        description="Admin API for Square and Google Business Profile integrations.",
    )
    app.add_exception_handler(ConfigurationError, _configuration_error_handler)
    app.add_exception_handler(TokenStorageError, _storage_error_handler)
    app.add_exception_handler(TokenDecryptionError, _decryption_error_handler)
    app.add_exception_handler(httpx.TransportError, _transport_error_handler)
    app.include_router(api_router, prefix="/api")
    return app


app = create_app()

__all__ = ["app", "create_app"]
