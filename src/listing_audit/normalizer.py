"""Signal Normalizer: reshapes extractor payloads into one ``AnalysisInput``.

Downstream engines never branch on the payload shape; everything shape
specific lives here.  Optional fields are never defaulted to a falsy
value: an absent signal stays ``None``.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from listing_audit.errors import InvalidInputError
from listing_audit.schemas.input import (
    AnalysisInput,
    BrandSignals,
    ImageSignals,
    MainImage,
    ReviewSignals,
    RichContentSignals,
    SubImage,
)
from listing_audit.schemas.payload import ListingPayload, StructuredImages

logger = logging.getLogger(__name__)


def _first_known(*values: Any) -> Any:
    """Return the first value that is not ``None`` (``False``/``0`` count as known)."""
    for value in values:
        if value is not None:
            return value
    return None


def _normalize_images(payload: ListingPayload) -> ImageSignals:
    images = payload.images

    if isinstance(images, StructuredImages):
        main = None
        if images.main is not None:
            main = MainImage(
                url=images.main.url,
                width=images.main.width,
                height=images.main.height,
                is_white_background=images.main.bg_is_white,
                fill_ratio=images.main.fill_ratio,
            )
        subs = None
        if images.subs is not None:
            subs = [SubImage(url=s.url, width=s.width, height=s.height) for s in images.subs]
        return ImageSignals(
            main=main,
            subs=subs,
            has_video=_first_known(payload.sub_image_has_video, images.has_video),
        )

    if isinstance(images, list):
        # Legacy flat list: first entry is the main image, the rest are subs.
        main = None
        subs: list[SubImage] = []
        if images:
            first = images[0]
            main = MainImage(
                url=first.url,
                width=first.width,
                height=first.height,
                is_white_background=first.bg_is_white,
                fill_ratio=first.fill_ratio,
            )
            subs = [SubImage(url=i.url, width=i.width, height=i.height) for i in images[1:]]
        return ImageSignals(main=main, subs=subs, has_video=payload.sub_image_has_video)

    if payload.image_urls:
        main = MainImage(url=payload.image_urls[0])
        subs = [SubImage(url=u) for u in payload.image_urls[1:]]
        return ImageSignals(main=main, subs=subs, has_video=payload.sub_image_has_video)

    return ImageSignals(has_video=payload.sub_image_has_video)


def _normalize_description(payload: ListingPayload) -> str | None:
    if payload.description is not None:
        return payload.description
    if payload.bullets is not None:
        return "\n".join(b.strip() for b in payload.bullets)
    return None


def _normalize_reviews(payload: ListingPayload) -> ReviewSignals:
    nested = payload.reviews
    return ReviewSignals(
        rating=_first_known(payload.rating, nested.average_rating if nested else None),
        count=_first_known(payload.review_count, nested.total_count if nested else None),
        negative_reviews=nested.negative_reviews if nested else None,
    )


def _normalize_rich_content(payload: ListingPayload) -> RichContentSignals:
    aplus = payload.aplus
    if aplus is not None:
        return RichContentSignals(
            present=aplus.has_aplus,
            is_premium_tier=aplus.is_premium,
            module_count=aplus.module_count,
            image_urls=aplus.image_urls or payload.aplus_image_urls or [],
        )
    return RichContentSignals(
        present=_first_known(payload.aplus_content, payload.has_aplus),
        is_premium_tier=payload.aplus_is_premium,
        module_count=payload.aplus_module_count,
        image_urls=payload.aplus_image_urls or [],
    )


def normalize(payload: ListingPayload | dict[str, Any]) -> AnalysisInput:
    """Turn a raw extractor payload into the canonical ``AnalysisInput``.

    Raises ``InvalidInputError`` if the payload cannot be validated.
    """
    try:
        if not isinstance(payload, ListingPayload):
            payload = ListingPayload.model_validate(payload)

        brand_story = _first_known(
            payload.brand.has_brand_story if payload.brand else None,
            payload.brand_content,
        )

        result = AnalysisInput(
            asin=payload.asin,
            url=payload.url,
            title=payload.title,
            description=_normalize_description(payload),
            images=_normalize_images(payload),
            reviews=_normalize_reviews(payload),
            rich_content=_normalize_rich_content(payload),
            brand=BrandSignals(has_story=brand_story),
        )
    except ValidationError as exc:
        logger.error("Payload failed normalization: %s", exc)
        raise InvalidInputError(f"Invalid listing payload: {exc}") from exc

    logger.debug(
        "Normalized %s: main=%s subs=%s rating=%s count=%s",
        result.asin,
        result.images.main is not None,
        None if result.images.subs is None else len(result.images.subs),
        result.reviews.rating,
        result.reviews.count,
    )
    return result
