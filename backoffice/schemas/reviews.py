"""Schemas for Google Business Profile review payloads."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class GoogleAccount(BaseModel):
    name: str = Field(..., description="Resource name, e.g. 'accounts/123'.")


class GoogleAccountList(BaseModel):
    accounts: List[GoogleAccount] = Field(default_factory=list)


class GoogleLocation(BaseModel):
    name: str


class GoogleLocationList(BaseModel):
    locations: List[GoogleLocation] = Field(default_factory=list)


class GoogleReviewer(BaseModel):
    display_name: Optional[str] = Field(None, alias="displayName")
    profile_photo_url: Optional[str] = Field(None, alias="profilePhotoUrl")
    is_anonymous: bool = Field(False, alias="isAnonymous")


class GoogleReview(BaseModel):
    review_id: str = Field(..., alias="reviewId")
    reviewer: GoogleReviewer = Field(default_factory=GoogleReviewer)
    star_rating: str = Field(..., alias="starRating")
    comment: Optional[str] = None
    create_time: datetime = Field(..., alias="createTime")


class GoogleReviewList(BaseModel):
    reviews: List[GoogleReview] = Field(default_factory=list)


class ImportedReview(BaseModel):
    """Provider-neutral review ready to be turned into a testimonial."""

    external_id: str
    author: str
    content: str
    rating: int = Field(..., ge=1, le=5)
    source_url: Optional[str] = None
    created_at: datetime


__all__ = [
    "GoogleAccount",
    "GoogleAccountList",
    "GoogleLocation",
    "GoogleLocationList",
    "GoogleReview",
    "GoogleReviewList",
    "GoogleReviewer",
    "ImportedReview",
]
