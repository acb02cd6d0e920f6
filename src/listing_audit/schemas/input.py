"""Canonical ``AnalysisInput``: the one shape both score engines consume.

Every optional signal defaults to ``None`` so that "unknown" stays
distinguishable from ``False`` / ``0``.  Absence drives ``missing_signals``.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class MainImage(BaseModel):
    """The listing's primary image."""

    model_config = ConfigDict(frozen=True)

    url: str
    width: int | None = Field(default=None, ge=0)
    height: int | None = Field(default=None, ge=0)
    is_white_background: bool | None = None
    fill_ratio: float | None = Field(default=None, ge=0, le=1)


class SubImage(BaseModel):
    """A secondary gallery image."""

    model_config = ConfigDict(frozen=True)

    url: str
    width: int | None = Field(default=None, ge=0)
    height: int | None = Field(default=None, ge=0)


class ImageSignals(BaseModel):
    model_config = ConfigDict(frozen=True)

    main: MainImage | None = None
    subs: list[SubImage] | None = None  # None = unknown, [] = known to be empty
    has_video: bool | None = None


class ReviewSignals(BaseModel):
    model_config = ConfigDict(frozen=True)

    rating: float | None = Field(default=None, ge=0, le=5)
    count: int | None = Field(default=None, ge=0)
    negative_reviews: list[str] | None = None  # 1-3 star review texts, if scraped


class RichContentSignals(BaseModel):
    model_config = ConfigDict(frozen=True)

    present: bool | None = None
    is_premium_tier: bool | None = None
    module_count: int | None = Field(default=None, ge=0)
    image_urls: list[str] = []


class BrandSignals(BaseModel):
    model_config = ConfigDict(frozen=True)

    has_story: bool | None = None


class AnalysisInput(BaseModel):
    """Normalized product-listing signals."""

    model_config = ConfigDict(frozen=True)

    asin: str = Field(min_length=1)
    url: str | None = None
    title: str | None = None
    description: str | None = None  # bullet lines joined by "\n"
    images: ImageSignals = ImageSignals()
    reviews: ReviewSignals = ReviewSignals()
    rich_content: RichContentSignals = RichContentSignals()
    brand: BrandSignals = BrandSignals()
