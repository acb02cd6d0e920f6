"""Raw request payloads as sent by the page-signal extractor.

Two image shapes exist in the wild: the legacy flat list and the
structured ``{main, subs, hasVideo}`` object.  Field names follow the
extractor's camelCase JSON; both aliases and Python names are accepted.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class LegacyImage(_Payload):
    """One entry of the legacy flat image list."""

    url: str
    width: int | None = None
    height: int | None = None
    bg_is_white: bool | None = Field(default=None, alias="bgIsWhite")
    fill_ratio: float | None = Field(default=None, alias="fillRatio", ge=0, le=1)


class StructuredMainImage(_Payload):
    url: str
    width: int | None = None
    height: int | None = None
    bg_is_white: bool | None = Field(default=None, alias="bgIsWhite")
    fill_ratio: float | None = Field(default=None, alias="fillRatio", ge=0, le=1)


class StructuredSubImage(_Payload):
    url: str
    width: int | None = None
    height: int | None = None


class StructuredImages(_Payload):
    main: StructuredMainImage | None = None
    subs: list[StructuredSubImage] | None = None
    has_video: bool | None = Field(default=None, alias="hasVideo")


class ReviewsPayload(_Payload):
    average_rating: float | None = Field(default=None, alias="averageRating", ge=0, le=5)
    total_count: int | None = Field(default=None, alias="totalCount", ge=0)
    negative_reviews: list[str] | None = Field(default=None, alias="negativeReviews")


class AplusPayload(_Payload):
    has_aplus: bool | None = Field(default=None, alias="hasAPlus")
    module_count: int | None = Field(default=None, alias="moduleCount", ge=0)
    is_premium: bool | None = Field(default=None, alias="isPremium")
    image_urls: list[str] = Field(default=[], alias="imageUrls")


class BrandPayload(_Payload):
    has_brand_story: bool | None = Field(default=None, alias="hasBrandStory")


class ListingPayload(_Payload):
    """Everything the extractor may send for one product page."""

    asin: str = Field(min_length=1)
    url: str | None = None
    title: str | None = None
    description: str | None = None
    bullets: list[str] | None = None

    # Either shape; pydantic picks the member by JSON type (array vs object).
    images: list[LegacyImage] | StructuredImages | None = None
    image_urls: list[str] | None = Field(default=None, alias="imageUrls")
    sub_image_has_video: bool | None = Field(default=None, alias="subImageHasVideo")

    reviews: ReviewsPayload | None = None
    rating: float | None = Field(default=None, ge=0, le=5)
    review_count: int | None = Field(default=None, alias="reviewCount", ge=0)

    aplus: AplusPayload | None = None
    aplus_content: bool | None = Field(default=None, alias="aPlusContent")
    has_aplus: bool | None = Field(default=None, alias="hasAplus")
    aplus_is_premium: bool | None = Field(default=None, alias="aplusIsPremium")
    aplus_module_count: int | None = Field(default=None, alias="aplusModuleCount", ge=0)
    aplus_image_urls: list[str] | None = Field(default=None, alias="aplusImageUrls")

    brand: BrandPayload | None = None
    brand_content: bool | None = Field(default=None, alias="brandContent")
