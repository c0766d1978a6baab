from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from backoffice.clients.square import SquareClient, SquareOAuthClient
from backoffice.core.config import OAuthSettings, SquareSettings
from backoffice.core.errors import (
    ConfigurationError,
    OAuthReauthorizationRequired,
    OAuthTokenExchangeError,
    UpstreamAPIError,
)


def _square_settings(**overrides) -> SquareSettings:
    values = {
        "SQUARE_ENABLED": True,
        "SQUARE_ENVIRONMENT": "sandbox",
        "SQUARE_APPLICATION_ID": "sq-app",
        "SQUARE_APPLICATION_SECRET": "sq-secret",
        "SQUARE_REDIRECT_URL": "https://example.com/square/callback",
        "SQUARE_ACCESS_TOKEN": None,
        "SQUARE_LOCATION_ID": None,
    }
    values.update(overrides)
    return SquareSettings(**values)


def _recording_transport(handler):
    seen: list[httpx.Request] = []

    def recording_handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return handler(request)

    return httpx.MockTransport(recording_handler), seen


@pytest.mark.parametrize(
    "raw, expected_name, expected_host",
    [
        ("sandbox", "sandbox", "https://connect.squareupsandbox.com"),
        ("PRODUCTION", "production", "https://connect.squareup.com"),
        ("Production", "production", "https://connect.squareup.com"),
        ("staging", "sandbox", "https://connect.squareupsandbox.com"),
    ],
)
def test_environment_selection_is_case_insensitive(raw, expected_name, expected_host) -> None:
    settings = _square_settings(SQUARE_ENVIRONMENT=raw)

    assert settings.environment_name == expected_name
    assert settings.oauth_base_url == expected_host
    assert settings.api_base_url == f"{expected_host}/v2"


def test_scopes_accept_comma_or_space_separated_values() -> None:
    settings = _square_settings(SQUARE_OAUTH_SCOPES="ITEMS_READ, MERCHANT_PROFILE_READ ORDERS_READ")

    assert settings.scopes == ("ITEMS_READ", "MERCHANT_PROFILE_READ", "ORDERS_READ")


def test_authorization_url_contains_scopes_and_state() -> None:
    client = SquareOAuthClient(_square_settings(), OAuthSettings())

    url = client.build_authorization_url(state="abc")

    assert url.startswith("https://connect.squareupsandbox.com/oauth2/authorize?")
    assert "client_id=sq-app" in url
    assert "scope=ITEMS_READ" in url
    assert "state=abc" in url


def test_disabled_square_raises_configuration_error() -> None:
    client = SquareOAuthClient(_square_settings(SQUARE_ENABLED=False), OAuthSettings())

    with pytest.raises(ConfigurationError, match="Square not enabled"):
        client.build_authorization_url(state="abc")


def test_missing_application_credentials_raise_configuration_error() -> None:
    client = SquareOAuthClient(
        _square_settings(SQUARE_APPLICATION_SECRET=None), OAuthSettings()
    )

    with pytest.raises(ConfigurationError, match="not configured"):
        client.build_authorization_url(state="abc")


@pytest.mark.asyncio
async def test_exchange_code_returns_merchant_and_expiry() -> None:
    transport, seen = _recording_transport(
        lambda request: httpx.Response(
            200,
            json={
                "access_token": "sq-access",
                "refresh_token": "sq-refresh",
                "expires_at": "2030-01-01T00:00:00Z",
                "merchant_id": "M123",
                "token_type": "bearer",
            },
        )
    )
    client = SquareOAuthClient(_square_settings(), OAuthSettings(), transport=transport)

    grant = await client.exchange_authorization_code("code-1")

    body = json.loads(seen[0].content)
    assert str(seen[0].url) == "https://connect.squareupsandbox.com/oauth2/token"
    assert body["grant_type"] == "authorization_code"
    assert body["code"] == "code-1"
    assert grant.access_token == "sq-access"
    assert grant.refresh_token == "sq-refresh"
    assert grant.merchant_id == "M123"
    assert grant.expires_at == datetime(2030, 1, 1, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_missing_expiry_defaults_to_fifty_five_minutes() -> None:
    transport, _ = _recording_transport(
        lambda request: httpx.Response(200, json={"access_token": "sq-access"})
    )
    client = SquareOAuthClient(_square_settings(), OAuthSettings(), transport=transport)

    grant = await client.refresh_token("sq-refresh")

    expected = datetime.now(timezone.utc) + timedelta(minutes=55)
    assert abs((grant.expires_at - expected).total_seconds()) < 5


@pytest.mark.asyncio
async def test_missing_access_token_is_rejected() -> None:
    transport, _ = _recording_transport(lambda request: httpx.Response(200, json={}))
    client = SquareOAuthClient(_square_settings(), OAuthSettings(), transport=transport)

    with pytest.raises(OAuthTokenExchangeError, match="missing access token"):
        await client.exchange_authorization_code("code-1")


@pytest.mark.asyncio
async def test_rejected_refresh_requires_reauthorization() -> None:
    transport, seen = _recording_transport(
        lambda request: httpx.Response(401, json={"errors": [{"code": "UNAUTHORIZED"}]})
    )
    client = SquareOAuthClient(_square_settings(), OAuthSettings(), transport=transport)

    with pytest.raises(OAuthReauthorizationRequired):
        await client.refresh_token("revoked")

    assert json.loads(seen[0].content)["grant_type"] == "refresh_token"


@pytest.mark.asyncio
async def test_list_locations_sends_version_header() -> None:
    transport, seen = _recording_transport(
        lambda request: httpx.Response(
            200, json={"locations": [{"id": "L1", "status": "ACTIVE"}, {"id": "L2"}]}
        )
    )
    client = SquareClient(
        _square_settings(SQUARE_ENVIRONMENT="production"), OAuthSettings(), transport=transport
    )

    locations = await client.list_locations("token-1")

    assert [location.id for location in locations] == ["L1", "L2"]
    assert str(seen[0].url) == "https://connect.squareup.com/v2/locations"
    assert seen[0].headers["square-version"] == "2024-12-18"
    assert seen[0].headers["authorization"] == "Bearer token-1"


@pytest.mark.asyncio
async def test_list_locations_error_is_upstream_error() -> None:
    transport, _ = _recording_transport(lambda request: httpx.Response(401, text="nope"))
    client = SquareClient(_square_settings(), OAuthSettings(), transport=transport)

    with pytest.raises(UpstreamAPIError) as excinfo:
        await client.list_locations("bad-token")

    assert excinfo.value.status_code == 401
