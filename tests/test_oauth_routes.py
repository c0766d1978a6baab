try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover
    import _bootstrap  # type: ignore # noqa: F401

from datetime import datetime, timedelta, timezone

import httpx
import pytest

from backoffice.clients.google_auth import OAuthStateEncoder
from backoffice.core.errors import (
    ConfigurationError,
    OAuthReauthorizationRequired,
    OAuthTokenNotFoundError,
    TokenDecryptionError,
    UpstreamAPIError,
    UpstreamDataUnavailableError,
)
from backoffice.main import app
from backoffice.models.oauth import OAuthTokenRecord, TokenGrant
from backoffice.schemas import ImportedReview


class DummyOAuthClient:
    def __init__(self, base_url: str = "https://oauth.example.com/auth") -> None:
        self.base_url = base_url
        self.states: list[str] = []
        self.codes: list[str] = []

    def build_authorization_url(self, state: str) -> str:
        self.states.append(state)
        return f"{self.base_url}?state={state}"

    async def exchange_authorization_code(self, code: str) -> TokenGrant:
        self.codes.append(code)
        return TokenGrant(
            access_token="access-token",
            refresh_token="refresh-token",
            expires_at=datetime.now(timezone.utc) + timedelta(hours=1),
            merchant_id="M1",
        )


class DummyTokenManager:
    def __init__(self) -> None:
        self.saved: list[tuple[str, TokenGrant]] = []
        self.records: dict[str, OAuthTokenRecord] = {}

    def get_record(self, service: str) -> OAuthTokenRecord | None:
        return self.records.get(service)

    def save_grant(self, service: str, grant: TokenGrant) -> None:
        self.saved.append((service, grant))


class DummyReviewsClient:
    def __init__(self, result=None, error: Exception | None = None) -> None:
        self.result = result or []
        self.error = error

    async def fetch_reviews(self):
        if self.error is not None:
            raise self.error
        return self.result


class DummyResolver:
    def connection_summary(self) -> dict:
        return {"connected": True, "environment": "sandbox", "merchant_id": "M1", "location_id": "L1"}


@pytest.fixture()
def oauth_overrides():
    from backoffice import dependencies
    from backoffice.core.config import get_settings

    google_client = DummyOAuthClient()
    square_client = DummyOAuthClient("https://squareup.example.com/oauth2/authorize")
    token_manager = DummyTokenManager()
    encoder = OAuthStateEncoder(secret_key="route-test-secret")
    base_settings = get_settings().model_copy(deep=True)
    base_settings.frontend_base_url = None

    overrides = {
        dependencies.get_google_oauth_client: lambda: google_client,
        dependencies.get_square_oauth_client: lambda: square_client,
        dependencies.get_oauth_token_manager: lambda: token_manager,
        dependencies.get_oauth_state_encoder: lambda: encoder,
        dependencies.get_app_settings: lambda: base_settings,
        dependencies.get_square_access_resolver: lambda: DummyResolver(),
    }

    app.dependency_overrides.update(overrides)

    yield google_client, square_client, token_manager, base_settings

    app.dependency_overrides.clear()


def _client() -> httpx.AsyncClient:
    return httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="http://testserver"
    )


@pytest.mark.anyio
async def test_authorize_returns_json_by_default(oauth_overrides):
    google_client, _, _, _ = oauth_overrides
    async with _client() as client:
        response = await client.get("/api/auth/google/authorize")

    assert response.status_code == 200
    data = response.json()
    assert data["authorization_url"].startswith("https://")
    assert data["state"] == google_client.states[-1]


@pytest.mark.anyio
async def test_authorize_redirects_for_html_accept(oauth_overrides):
    async with _client() as client:
        response = await client.get(
            "/api/auth/google/authorize",
            headers={"accept": "text/html"},
        )

    assert response.status_code == 307
    assert response.headers["location"].startswith("https://oauth.example.com/auth")


@pytest.mark.anyio
async def test_google_callback_stores_tokens(oauth_overrides):
    google_client, _, token_manager, _ = oauth_overrides

    async with _client() as client:
        await client.get("/api/auth/google/authorize")
        state = google_client.states[-1]
        callback_resp = await client.get(
            "/api/auth/google/callback",
            params={"state": state, "code": "oauth-code"},
        )

    assert callback_resp.status_code == 200
    data = callback_resp.json()
    assert data["status"] == "connected"
    assert data["provider"] == "google"
    assert google_client.codes[-1] == "oauth-code"
    assert token_manager.saved[-1][0] == "google"
    assert token_manager.saved[-1][1].access_token == "access-token"


@pytest.mark.anyio
async def test_google_callback_post_accepts_json_payload(oauth_overrides):
    google_client, _, token_manager, _ = oauth_overrides

    async with _client() as client:
        await client.get("/api/auth/google/authorize")
        response = await client.post(
            "/api/auth/google/callback",
            json={"state": google_client.states[-1], "code": "posted-code"},
        )

    assert response.status_code == 200
    assert google_client.codes[-1] == "posted-code"
    assert len(token_manager.saved) == 1


@pytest.mark.anyio
async def test_callback_redirects_when_frontend_available(oauth_overrides):
    google_client, _, _, settings = oauth_overrides
    settings.frontend_base_url = "https://admin.example.com/integrations"

    async with _client() as client:
        await client.get("/api/auth/google/authorize")
        callback_resp = await client.get(
            "/api/auth/google/callback",
            params={"state": google_client.states[-1], "code": "oauth-code"},
            headers={"accept": "text/html"},
        )

    assert callback_resp.status_code == 307
    assert callback_resp.headers["location"] == "https://admin.example.com/integrations"


@pytest.mark.anyio
async def test_callback_rejects_tampered_state(oauth_overrides):
    _, _, token_manager, _ = oauth_overrides
    forged = OAuthStateEncoder(secret_key="attacker").encode(
        {"provider": "google", "issued_at": datetime.now(timezone.utc).isoformat()}
    )

    async with _client() as client:
        response = await client.get(
            "/api/auth/google/callback",
            params={"state": forged, "code": "oauth-code"},
        )

    assert response.status_code == 400
    assert token_manager.saved == []


@pytest.mark.anyio
async def test_callback_rejects_state_for_other_provider(oauth_overrides):
    google_client, _, token_manager, _ = oauth_overrides

    async with _client() as client:
        await client.get("/api/auth/google/authorize")
        response = await client.get(
            "/api/auth/square/callback",
            params={"state": google_client.states[-1], "code": "oauth-code"},
        )

    assert response.status_code == 400
    assert token_manager.saved == []


@pytest.mark.anyio
async def test_square_flow_stores_tokens_under_square(oauth_overrides):
    _, square_client, token_manager, _ = oauth_overrides

    async with _client() as client:
        auth_resp = await client.get("/api/auth/square/authorize")
        callback_resp = await client.get(
            "/api/auth/square/callback",
            params={"state": auth_resp.json()["state"], "code": "sq-code"},
        )

    assert callback_resp.status_code == 200
    assert square_client.codes == ["sq-code"]
    service, grant = token_manager.saved[-1]
    assert service == "square"
    assert grant.merchant_id == "M1"


@pytest.mark.anyio
async def test_square_connection_summary(oauth_overrides):
    async with _client() as client:
        response = await client.get("/api/square/connection")

    assert response.status_code == 200
    assert response.json()["connected"] is True


@pytest.mark.anyio
async def test_missing_configuration_maps_to_service_unavailable(oauth_overrides):
    from backoffice import dependencies

    def broken_encoder():
        raise ConfigurationError("ENCRYPTION_KEY not configured")

    app.dependency_overrides[dependencies.get_oauth_state_encoder] = broken_encoder

    async with _client() as client:
        response = await client.get("/api/auth/google/authorize")

    assert response.status_code == 503
    assert response.json()["detail"] == "ENCRYPTION_KEY not configured"


@pytest.mark.anyio
@pytest.mark.parametrize(
    "error, status",
    [
        (OAuthTokenNotFoundError("No OAuth token found for google."), 401),
        (OAuthReauthorizationRequired("revoked", status_code=400), 401),
        (UpstreamDataUnavailableError("No Google Business accounts available."), 404),
        (UpstreamAPIError("Google API error: Forbidden", status_code=403), 502),
    ],
)
async def test_reviews_errors_map_to_http_status(oauth_overrides, error, status):
    from backoffice import dependencies

    app.dependency_overrides[dependencies.get_google_reviews_client] = (
        lambda: DummyReviewsClient(error=error)
    )

    async with _client() as client:
        response = await client.get("/api/google/reviews")

    assert response.status_code == status


@pytest.mark.anyio
async def test_reviews_returns_normalized_reviews(oauth_overrides):
    from backoffice import dependencies

    review = ImportedReview(
        external_id="r-1",
        author="Dana",
        content="Great job",
        rating=5,
        created_at=datetime(2024, 5, 1, tzinfo=timezone.utc),
    )
    app.dependency_overrides[dependencies.get_google_reviews_client] = (
        lambda: DummyReviewsClient(result=[review])
    )

    async with _client() as client:
        response = await client.get("/api/google/reviews")

    assert response.status_code == 200
    assert response.json()[0]["external_id"] == "r-1"
    assert response.json()[0]["rating"] == 5


@pytest.mark.anyio
@pytest.mark.parametrize("provider", ["google", "square"])
async def test_denied_consent_returns_provider_error(oauth_overrides, provider):
    google_client, square_client, token_manager, _ = oauth_overrides

    async with _client() as client:
        auth_resp = await client.get(f"/api/auth/{provider}/authorize")
        response = await client.get(
            f"/api/auth/{provider}/callback",
            params={"state": auth_resp.json()["state"], "error": "access_denied"},
        )

    assert response.status_code == 400
    assert "access_denied" in response.json()["detail"]
    assert google_client.codes == []
    assert square_client.codes == []
    assert token_manager.saved == []


@pytest.mark.anyio
async def test_callback_without_code_or_error_is_bad_request(oauth_overrides):
    google_client, _, _, _ = oauth_overrides

    async with _client() as client:
        await client.get("/api/auth/google/authorize")
        response = await client.get(
            "/api/auth/google/callback", params={"state": google_client.states[-1]}
        )

    assert response.status_code == 400
    assert google_client.codes == []


@pytest.mark.anyio
async def test_google_status_reports_connection(oauth_overrides):
    _, _, token_manager, _ = oauth_overrides

    async with _client() as client:
        disconnected = await client.get("/api/auth/google/status")

        expires_at = datetime(2030, 1, 1, tzinfo=timezone.utc)
        token_manager.records["google"] = OAuthTokenRecord(
            service="google",
            access_token="iv:cipher",
            refresh_token="iv:cipher",
            expires_at=expires_at,
            updated_at=datetime.now(timezone.utc),
        )
        connected = await client.get("/api/auth/google/status")

    assert disconnected.json() == {"connected": False}
    body = connected.json()
    assert body["connected"] is True
    assert body["can_refresh"] is True
    assert body["expires_at"] == expires_at.isoformat()
    assert "iv:cipher" not in connected.text


@pytest.mark.anyio
async def test_unreachable_provider_maps_to_bad_gateway(oauth_overrides):
    from backoffice import dependencies

    error = httpx.ConnectError("connection refused")
    app.dependency_overrides[dependencies.get_google_reviews_client] = (
        lambda: DummyReviewsClient(error=error)
    )

    async with _client() as client:
        response = await client.get("/api/google/reviews")

    assert response.status_code == 502
    assert response.json()["detail"] == "Upstream provider unreachable."


@pytest.mark.anyio
async def test_corrupt_stored_token_maps_to_server_error_with_detail(oauth_overrides):
    from backoffice import dependencies

    error = TokenDecryptionError("Invalid encrypted payload.")
    app.dependency_overrides[dependencies.get_google_reviews_client] = (
        lambda: DummyReviewsClient(error=error)
    )

    async with _client() as client:
        response = await client.get("/api/google/reviews")

    assert response.status_code == 500
    assert "ENCRYPTION_KEY" in response.json()["detail"]
