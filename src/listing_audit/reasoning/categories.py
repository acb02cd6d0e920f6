"""The five reasoning categories: dimensions, maxima, rubrics and fallbacks."""

from __future__ import annotations

from listing_audit.reasoning.base import CategorySpec, Dimension, ShortCircuit
from listing_audit.schemas.config import ReasoningSettings
from listing_audit.schemas.input import AnalysisInput

MAX_NEGATIVE_REVIEWS = 10


def _fmt(value: object) -> str:
    if value is None:
        return "unknown"
    if isinstance(value, bool):
        return "yes" if value else "no"
    return str(value)


# ── Main image ────────────────────────────────────────────────────────

def _main_image_urls(inp: AnalysisInput, settings: ReasoningSettings) -> list[str]:
    main = inp.images.main
    return [main.url] if main and main.url else []


def _main_image_metadata(inp: AnalysisInput) -> list[str]:
    main = inp.images.main
    if main is None:
        return ["- main image: none"]
    return [
        f"- url: {main.url}",
        f"- size: {_fmt(main.width)} x {_fmt(main.height)} px",
        f"- white background: {_fmt(main.is_white_background)}",
        f"- product fill ratio: {_fmt(main.fill_ratio)}",
    ]


def _main_image_short_circuit(inp: AnalysisInput) -> ShortCircuit | None:
    if inp.images.main is None:
        return ShortCircuit("No main image was provided.", at_max=False)
    return None


MAIN_IMAGE = CategorySpec(
    name="main_image",
    display_name="main image",
    dimensions=(
        Dimension("list_visibility", 8, "Stands out in search results (CTR)"),
        Dimension("visual_impact", 5, "Depth and visual impact"),
        Dimension("instant_understanding", 4, "Product understood at a glance"),
        Dimension("cvr_blockers", 3, "Nothing that lowers conversion"),
    ),
    fallback={"list_visibility": 4, "visual_impact": 2, "instant_understanding": 2, "cvr_blockers": 1},
    rubric="""\
1. list_visibility (0-8): does the image stand out when shown small in a grid?
2. visual_impact (0-5): depth, lighting and contrast.
3. instant_understanding (0-4): is it clear in one second what the product is?
4. cvr_blockers (0-3): fewer conversion blockers (watermarks, clutter,
   misleading props) score higher.""",
    vision_focus=(
        "Visibility when shown small in a grid",
        "Depth, lighting, contrast",
        "Instant clarity of what the product is",
    ),
    image_urls=_main_image_urls,
    metadata=_main_image_metadata,
    short_circuit=_main_image_short_circuit,
)


# ── Title ─────────────────────────────────────────────────────────────

def _title_metadata(inp: AnalysisInput) -> list[str]:
    title = inp.title or ""
    return [f'- title: "{title}"', f"- length: {len(title)} characters"]


def _title_short_circuit(inp: AnalysisInput) -> ShortCircuit | None:
    if not (inp.title or "").strip():
        return ShortCircuit("No title was provided.", at_max=False)
    return None


TITLE = CategorySpec(
    name="title",
    display_name="title",
    dimensions=(
        Dimension("seo_structure", 4, "SEO and CTR balance"),
        Dimension("ctr_design", 4, "Reason to click"),
        Dimension("readability", 2, "Readability"),
    ),
    fallback={"seo_structure": 2, "ctr_design": 2, "readability": 1},
    rubric="""\
1. seo_structure (0-4): do the main keywords come first without hurting CTR?
2. ctr_design (0-4): is it easy to read and does it give a reason to click?
3. readability (0-2): can a shopper parse it on a phone?""",
    image_urls=lambda inp, settings: [],
    metadata=_title_metadata,
    short_circuit=_title_short_circuit,
)


# ── Sub-images ────────────────────────────────────────────────────────

def _sub_image_urls(inp: AnalysisInput, settings: ReasoningSettings) -> list[str]:
    subs = inp.images.subs or []
    return [s.url for s in subs if s.url][: settings.max_sub_images]


def _sub_image_metadata(inp: AnalysisInput) -> list[str]:
    subs = inp.images.subs
    if subs is None:
        return ["- sub-images: unknown"]
    lines = [f"- sub-image count: {len(subs)}", f"- video present: {_fmt(inp.images.has_video)}"]
    for i, sub in enumerate(subs, 1):
        lines.append(f"- image {i}: {_fmt(sub.width)} x {_fmt(sub.height)} px")
    return lines


def _sub_image_short_circuit(inp: AnalysisInput) -> ShortCircuit | None:
    if not inp.images.subs:
        return ShortCircuit("No sub-images were provided.", at_max=False)
    return None


SUB_IMAGES = CategorySpec(
    name="sub_images",
    display_name="sub-image",
    dimensions=(
        Dimension("benefit_design", 10, "Benefit-led"),
        Dimension("world_view", 5, "Consistent visual identity", aliases=("design_worldview",)),
        Dimension("information_design", 5, "Information order and flow"),
        Dimension("text_visibility", 5, "Text density and legibility"),
        Dimension("cvr_blockers", 5, "Nothing that lowers conversion"),
    ),
    fallback={
        "benefit_design": 5, "world_view": 2, "information_design": 2,
        "text_visibility": 2, "cvr_blockers": 2,
    },
    rubric="""\
1. benefit_design (0-10): do the images lead with benefits rather than specs?
2. world_view (0-5): are colour, typography and tone consistent?
3. information_design (0-5): does the sequence tell a story in a sensible order?
4. text_visibility (0-5): is the text share appropriate and legible on mobile?
5. cvr_blockers (0-5): fewer anxiety-inducing claims or confusing comparisons
   score higher.
Reasons must cite what is in the images ("the copy 'extra firm' ...",
"the thin serif font ...").""",
    vision_focus=(
        "Whether images communicate benefits visually",
        "Consistency of color, style, and tone",
        "Text density and readability on mobile",
        "Whether the image sequence tells a story",
    ),
    image_urls=_sub_image_urls,
    metadata=_sub_image_metadata,
    short_circuit=_sub_image_short_circuit,
)


# ── Reviews ───────────────────────────────────────────────────────────

def _review_metadata(inp: AnalysisInput) -> list[str]:
    reviews = inp.reviews
    rating = f"{reviews.rating:.1f}" if reviews.rating is not None else "unknown"
    lines = [f"- review count: {_fmt(reviews.count)}", f"- average rating: {rating} stars"]
    negatives = (reviews.negative_reviews or [])[:MAX_NEGATIVE_REVIEWS]
    if negatives:
        lines.append(f"- negative reviews (1-3 stars, {len(negatives)} shown):")
        lines.extend(f"  {i}. {text}" for i, text in enumerate(negatives, 1))
    else:
        lines.append("- negative review texts: not available")
    return lines


def _review_short_circuit(inp: AnalysisInput) -> ShortCircuit | None:
    reviews = inp.reviews
    if not reviews.count:
        return ShortCircuit("No reviews, so no negative review can hurt conversion.", at_max=True)
    if reviews.negative_reviews is not None and not reviews.negative_reviews:
        return ShortCircuit("No 1-3 star reviews were found; full marks.", at_max=True)
    return None


REVIEWS = CategorySpec(
    name="reviews",
    display_name="reviews",
    dimensions=(
        Dimension("negative_visibility", 4, "Visibility of negative reviews"),
        Dimension("negative_severity", 3, "Severity of complaints", aliases=("fatal_content",)),
        Dimension("reassurance_path", 3, "Reassurance path"),
    ),
    fallback={"negative_visibility": 4, "negative_severity": 3, "reassurance_path": 3},
    missing_default="max",
    rubric="""\
This is a DEDUCTION score. If no clear negative element is present, award the
maximum automatically. Do not go looking for faults; a calm review section
deserves full marks.

1. negative_visibility (0-4):
   4 = no 1-2 star reviews visible at first glance;
   3 = a 3-star review, not aggressive;
   2 = 1-2 star reviews visible but short and inconspicuous;
   1 = clear 1-2 star reviews with words like "worst" or "arrived broken".
2. negative_severity (0-3):
   3 = no low-rated reviews at all;
   2 = complaints unrelated to product quality (delivery, taste);
   1 = complaints limited to some users (size, ease of use);
   0 = fatal defects (broke immediately, counterfeit, health or safety).
3. reassurance_path (0-3):
   3 = no negative reviews, or a sincere seller reply is shown;
   2 = negatives are followed by high-rated reviews that answer them;
   1 = negatives are left unanswered.
State "full marks" explicitly when no negative element exists.""",
    image_urls=lambda inp, settings: [],
    metadata=_review_metadata,
    short_circuit=_review_short_circuit,
)


# ── Rich content + brand ──────────────────────────────────────────────

def _rich_content_urls(inp: AnalysisInput, settings: ReasoningSettings) -> list[str]:
    return list(inp.rich_content.image_urls[: settings.max_rich_content_images])


def _rich_brand_metadata(inp: AnalysisInput) -> list[str]:
    rich = inp.rich_content
    lines = [
        f"- rich content present: {_fmt(rich.present)}",
        f"- premium rich content: {_fmt(rich.is_premium_tier)}",
        f"- module count: {_fmt(rich.module_count)}",
        f"- brand story: {_fmt(inp.brand.has_story)}",
    ]
    if rich.image_urls:
        lines.append(f"- rich content images: {len(rich.image_urls)}")
    return lines


RICH_BRAND = CategorySpec(
    name="rich_brand",
    display_name="rich content and brand",
    dimensions=(
        Dimension("composition_design", 8, "Clear composition"),
        Dimension("benefit_appeal", 8, "Clear benefits"),
        Dimension("world_view", 6, "Consistent brand identity"),
        Dimension("visual_design", 5, "Visually easy to read"),
        Dimension("comparison_reassurance", 3, "Comparison and reassurance"),
    ),
    fallback={
        "composition_design": 4, "benefit_appeal": 4, "world_view": 3,
        "visual_design": 2, "comparison_reassurance": 1,
    },
    rubric="""\
1. composition_design (0-8): does the structure avoid confusing the shopper?
2. benefit_appeal (0-8): are the benefits explicit?
3. world_view (0-6): is the brand identity consistent with the images?
4. visual_design (0-5): is it visually easy to read?
5. comparison_reassurance (0-3): does it compare options or resolve doubts?
Missing rich content or brand story should lower the relevant dimensions.""",
    vision_focus=(
        "Visual hierarchy",
        "Balance between text and imagery",
        "Consistency with main and sub images",
    ),
    image_urls=_rich_content_urls,
    metadata=_rich_brand_metadata,
    short_circuit=lambda inp: None,
)


CATEGORIES: tuple[CategorySpec, ...] = (MAIN_IMAGE, TITLE, SUB_IMAGES, REVIEWS, RICH_BRAND)
