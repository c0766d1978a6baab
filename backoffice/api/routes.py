"""
FastAPI admin routes for the back-office integrations.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from http import HTTPStatus
from typing import Annotated, Any, List

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from fastapi.responses import JSONResponse, RedirectResponse

from backoffice.clients.google_reviews import GOOGLE_SERVICE
from backoffice.core.errors import (
    InvalidOAuthStateError,
    OAuthReauthorizationRequired,
    OAuthTokenExchangeError,
    TokenUnavailableError,
    UpstreamAPIError,
    UpstreamDataUnavailableError,
)
from backoffice.dependencies import (
    get_app_settings,
    get_google_oauth_client,
    get_google_reviews_client,
    get_oauth_state_encoder,
    get_oauth_token_manager,
    get_square_access_resolver,
    get_square_oauth_client,
)
from backoffice.schemas import ImportedReview, OAuthCallbackPayload, OAuthConnectionResult
from backoffice.services.square_access import SQUARE_SERVICE

router = APIRouter()
logger = logging.getLogger(__name__)


def _wants_html(request: Request) -> bool:
    return "text/html" in request.headers.get("accept", "").lower()


def _start_oauth_flow(
    provider: str,
    request: Request,
    oauth_client: Any,
    state_encoder: Any,
    redirect_to: str | None,
    redirect: bool,
) -> Response | dict:
    state = state_encoder.encode(
        {
            "provider": provider,
            "nonce": uuid.uuid4().hex,
            "redirect_to": redirect_to,
            "issued_at": datetime.now(timezone.utc).isoformat(),
        }
    )
    authorization_url = oauth_client.build_authorization_url(state=state)

    if redirect or _wants_html(request):
        return RedirectResponse(url=authorization_url, status_code=HTTPStatus.TEMPORARY_REDIRECT)
    return {"authorization_url": authorization_url, "state": state}


async def _complete_oauth_flow(
    provider: str,
    payload: OAuthCallbackPayload,
    oauth_client: Any,
    state_encoder: Any,
    token_manager: Any,
    settings: Any,
) -> OAuthConnectionResult:
    try:
        state_data = state_encoder.decode(
            payload.state, max_age_seconds=settings.oauth.state_ttl_seconds
        )
    except InvalidOAuthStateError as exc:
        raise HTTPException(status_code=HTTPStatus.BAD_REQUEST, detail=str(exc)) from exc

    if state_data.get("provider") != provider:
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST,
            detail="OAuth state was issued for a different provider.",
        )

    try:
        grant = await oauth_client.exchange_authorization_code(payload.code)
    except OAuthTokenExchangeError as exc:
        logger.warning("%s code exchange failed: %s", provider, exc)
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST,
            detail="Failed to exchange authorization code.",
        ) from exc

    token_manager.save_grant(provider, grant)
    logger.info("Stored %s OAuth tokens expiring at %s", provider, grant.expires_at)
    return OAuthConnectionResult(provider=provider, redirect_to=state_data.get("redirect_to"))


def _require_code(provider: str, code: str | None, error: str | None) -> str:
    """Reject callbacks where the user denied consent or the provider failed."""
    if error:
        logger.info("%s authorization was not granted: %s", provider, error)
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST,
            detail=f"{provider} authorization failed: {error}",
        )
    if not code:
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST, detail="Missing authorization code."
        )
    return code


def _callback_response(
    request: Request, result: OAuthConnectionResult, settings: Any, redirect: bool
) -> Response:
    redirect_target = result.redirect_to or settings.frontend_base_url
    if redirect_target and (redirect or _wants_html(request)):
        return RedirectResponse(url=str(redirect_target), status_code=HTTPStatus.TEMPORARY_REDIRECT)
    return JSONResponse(content=result.model_dump())


@router.get("/health", status_code=HTTPStatus.OK)
async def healthcheck() -> dict:
    """Simple health endpoint for monitoring."""
    return {"status": "ok"}


@router.get("/auth/google/authorize", status_code=HTTPStatus.OK)
async def start_google_oauth_flow(
    request: Request,
    oauth_client: Annotated[Any, Depends(get_google_oauth_client)],
    state_encoder: Annotated[Any, Depends(get_oauth_state_encoder)],
    redirect_to: str | None = Query(
        default=None,
        description="Optional URL to redirect back to on successful authentication.",
    ),
    redirect: bool = Query(
        default=False,
        description="When true, respond with a redirect to the Google consent screen.",
    ),
) -> Any:
    """Kick off the Google Business Profile OAuth flow."""
    return _start_oauth_flow(
        GOOGLE_SERVICE, request, oauth_client, state_encoder, redirect_to, redirect
    )


@router.post("/auth/google/callback", status_code=HTTPStatus.OK)
async def handle_google_oauth_callback(
    payload: OAuthCallbackPayload,
    oauth_client: Annotated[Any, Depends(get_google_oauth_client)],
    state_encoder: Annotated[Any, Depends(get_oauth_state_encoder)],
    token_manager: Annotated[Any, Depends(get_oauth_token_manager)],
    settings: Annotated[Any, Depends(get_app_settings)],
) -> OAuthConnectionResult:
    """Complete the OAuth exchange and store the encrypted tokens."""
    return await _complete_oauth_flow(
        GOOGLE_SERVICE, payload, oauth_client, state_encoder, token_manager, settings
    )


@router.get("/auth/google/callback", status_code=HTTPStatus.OK)
async def handle_google_oauth_callback_get(
    request: Request,
    oauth_client: Annotated[Any, Depends(get_google_oauth_client)],
    state_encoder: Annotated[Any, Depends(get_oauth_state_encoder)],
    token_manager: Annotated[Any, Depends(get_oauth_token_manager)],
    settings: Annotated[Any, Depends(get_app_settings)],
    state: str = Query(..., description="OAuth state token."),
    code: str | None = Query(None, description="Authorization code returned by Google."),
    error: str | None = Query(None, description="Error returned when consent is denied."),
    redirect: bool = Query(
        default=False,
        description="When true, redirect browser clients instead of returning JSON.",
    ),
) -> Response:
    code = _require_code(GOOGLE_SERVICE, code, error)
    result = await _complete_oauth_flow(
        GOOGLE_SERVICE,
        OAuthCallbackPayload(state=state, code=code),
        oauth_client,
        state_encoder,
        token_manager,
        settings,
    )
    return _callback_response(request, result, settings, redirect)


@router.get("/auth/google/status", status_code=HTTPStatus.OK)
async def get_google_connection(
    token_manager: Annotated[Any, Depends(get_oauth_token_manager)],
) -> dict:
    """Report whether a Google account is connected, without touching tokens."""
    record = token_manager.get_record(GOOGLE_SERVICE)
    if record is None:
        return {"connected": False}
    return {
        "connected": True,
        "expires_at": record.expires_at.isoformat(),
        "can_refresh": record.refresh_token is not None,
    }


@router.get("/auth/square/authorize", status_code=HTTPStatus.OK)
async def start_square_oauth_flow(
    request: Request,
    oauth_client: Annotated[Any, Depends(get_square_oauth_client)],
    state_encoder: Annotated[Any, Depends(get_oauth_state_encoder)],
    redirect_to: str | None = Query(default=None),
    redirect: bool = Query(default=False),
) -> Any:
    """Kick off the Square OAuth flow."""
    return _start_oauth_flow(
        SQUARE_SERVICE, request, oauth_client, state_encoder, redirect_to, redirect
    )


@router.get("/auth/square/callback", status_code=HTTPStatus.OK)
async def handle_square_oauth_callback(
    request: Request,
    oauth_client: Annotated[Any, Depends(get_square_oauth_client)],
    state_encoder: Annotated[Any, Depends(get_oauth_state_encoder)],
    token_manager: Annotated[Any, Depends(get_oauth_token_manager)],
    settings: Annotated[Any, Depends(get_app_settings)],
    state: str = Query(...),
    code: str | None = Query(None),
    error: str | None = Query(None),
    redirect: bool = Query(default=False),
) -> Response:
    code = _require_code(SQUARE_SERVICE, code, error)
    result = await _complete_oauth_flow(
        SQUARE_SERVICE,
        OAuthCallbackPayload(state=state, code=code),
        oauth_client,
        state_encoder,
        token_manager,
        settings,
    )
    return _callback_response(request, result, settings, redirect)


@router.get("/square/connection", status_code=HTTPStatus.OK)
async def get_square_connection(
    resolver: Annotated[Any, Depends(get_square_access_resolver)],
) -> dict:
    """Report whether Square is connected and which merchant/location it uses."""
    return resolver.connection_summary()


@router.get("/google/reviews", response_model=List[ImportedReview])
async def list_google_reviews(
    reviews_client: Annotated[Any, Depends(get_google_reviews_client)],
) -> List[ImportedReview]:
    """Fetch the connected business's Google reviews for import."""
    try:
        return await reviews_client.fetch_reviews()
    except OAuthReauthorizationRequired as exc:
        raise HTTPException(
            status_code=HTTPStatus.UNAUTHORIZED,
            detail="Google authorization was revoked; reconnect the account.",
        ) from exc
    except UpstreamDataUnavailableError as exc:
        raise HTTPException(status_code=HTTPStatus.NOT_FOUND, detail=str(exc)) from exc
    except TokenUnavailableError as exc:
        raise HTTPException(
            status_code=HTTPStatus.UNAUTHORIZED,
            detail="Google account not connected.",
        ) from exc
    except UpstreamAPIError as exc:
        raise HTTPException(status_code=HTTPStatus.BAD_GATEWAY, detail=str(exc)) from exc


__all__ = ["router"]
