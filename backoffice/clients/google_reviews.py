"""
Fetch reviews from the Google Business Profile APIs.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, List, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from backoffice.core.config import OAuthSettings
from backoffice.core.errors import (
    UnexpectedResponseError,
    UpstreamAPIError,
    UpstreamDataUnavailableError,
)
from backoffice.schemas.reviews import (
    GoogleAccountList,
    GoogleLocationList,
    GoogleReview,
    GoogleReviewList,
    ImportedReview,
)

if TYPE_CHECKING:
    from backoffice.services.oauth_tokens import OAuthTokenManager

logger = logging.getLogger(__name__)

GOOGLE_SERVICE = "google"

STAR_RATINGS = {
    "FIVE": 5,
    "FOUR": 4,
    "THREE": 3,
    "TWO": 2,
}

ANONYMOUS_AUTHOR = "Anonymous"

ModelT = TypeVar("ModelT", bound=BaseModel)


def star_rating_to_int(star_rating: str) -> int:
    """Map Google's StarRating enum to 1-5; unknown values count as one star."""
    return STAR_RATINGS.get(star_rating, 1)


def normalize_review(review: GoogleReview) -> ImportedReview:
    photo = review.reviewer.profile_photo_url
    return ImportedReview(
        external_id=review.review_id,
        author=review.reviewer.display_name or ANONYMOUS_AUTHOR,
        content=review.comment or "",
        rating=star_rating_to_int(review.star_rating),
        source_url=f"https://www.google.com/maps/contrib/{photo}" if photo else None,
        created_at=review.create_time,
    )


class GoogleReviewsClient:
    """Walk accounts -> locations -> reviews for the connected business."""

    ACCOUNTS_URL = "https://mybusinessaccountmanagement.googleapis.com/v1/accounts"
    BUSINESS_API_BASE = "https://mybusiness.googleapis.com/v4"

    def __init__(
        self,
        token_manager: OAuthTokenManager,
        oauth_settings: OAuthSettings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._tokens = token_manager
        self._oauth = oauth_settings
        self._transport = transport

    async def _get(
        self, client: httpx.AsyncClient, url: str, model: Type[ModelT]
    ) -> ModelT:
        response = await client.get(url)
        if response.status_code != httpx.codes.OK:
            logger.warning("Google API %s returned %s", url, response.status_code)
            raise UpstreamAPIError(
                f"Google API error: {response.reason_phrase}",
                status_code=response.status_code,
            )
        try:
            return model.model_validate(response.json())
        except (ValidationError, ValueError) as exc:
            raise UnexpectedResponseError(
                f"Unexpected Google payload from {url}: {exc}",
                status_code=response.status_code,
            ) from exc

    async def fetch_reviews(self) -> List[ImportedReview]:
        access_token = await self._tokens.get_valid_token(GOOGLE_SERVICE)
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
        }
        async with httpx.AsyncClient(
            timeout=self._oauth.http_timeout_seconds,
            headers=headers,
            transport=self._transport,
        ) as client:
            accounts = await self._get(client, self.ACCOUNTS_URL, GoogleAccountList)
            if not accounts.accounts:
                raise UpstreamDataUnavailableError("No Google Business accounts available.")
            account = accounts.accounts[0]

            locations = await self._get(
                client,
                f"{self.BUSINESS_API_BASE}/{account.name}/locations",
                GoogleLocationList,
            )
            if not locations.locations:
                raise UpstreamDataUnavailableError(
                    f"No locations available for {account.name}."
                )
            location = locations.locations[0]

            reviews = await self._get(
                client,
                f"{self.BUSINESS_API_BASE}/{location.name}/reviews",
                GoogleReviewList,
            )

        logger.info("Fetched %d Google reviews for %s", len(reviews.reviews), location.name)
        return [normalize_review(review) for review in reviews.reviews]


__all__ = [
    "ANONYMOUS_AUTHOR",
    "GOOGLE_SERVICE",
    "GoogleReviewsClient",
    "STAR_RATINGS",
    "normalize_review",
    "star_rating_to_int",
]
