"""Rule Score Engine: deterministic 0–100 score from explicit thresholds.

No model calls, no clock, no randomness: identical input always yields an
identical ``RuleScoreResult``.  A category whose determining signal is
absent scores 0 and names the signal in ``missing_signals``; a signal that
is present but fails its rule just scores 0.
"""

from __future__ import annotations

import re
from typing import NamedTuple

from listing_audit.schemas.input import AnalysisInput
from listing_audit.schemas.score import CategoryScore, RuleScoreResult

# Category maxima
TITLE_MAX = 10
MAIN_IMAGE_MAX = 10
SUB_IMAGES_MAX = 20
DESCRIPTION_MAX = 5
REVIEWS_MAX = 25
RICH_BRAND_MAX = 20

TITLE_KEYWORD_MIN = 7
HIGH_RES_PX = 1500
SQUARE_TOLERANCE = 0.05
SUB_IMAGE_MIN_COUNT = 6
BULLET_MIN_LINES = 5
RICH_MODULE_MIN = 5

# Full-width 【】 first, then the ASCII and full-width pairs.
_BRACKET_PATTERNS = (
    re.compile(r"【[^】]*】"),
    re.compile(r"\[[^\]]*\]"),
    re.compile(r"\([^)]*\)"),
    re.compile(r"\{[^}]*\}"),
    re.compile(r"（[^）]*）"),
)
_WHITESPACE = re.compile(r"[\s　]+")

# Japanese grammatical particles; a token containing one is not a keyword.
TITLE_PARTICLES = ("の", "は", "に", "を", "と", "で", "も", "が", "へ", "や", "から", "まで", "より")


class _Rule(NamedTuple):
    score: CategoryScore
    missing: list[str]
    notes: list[str]


class TitleTokens(NamedTuple):
    keywords: list[str]
    excluded: list[str]
    bracket_segments: int


def tokenize_title(title: str) -> TitleTokens:
    """Split a title into SEO keyword tokens.

    Bracketed segments are removed, the rest is split on half- and
    full-width whitespace, and tokens that are pure symbols/digits, a single
    character, or contain a particle are discarded.
    """
    cleaned = title
    bracket_segments = 0
    for pattern in _BRACKET_PATTERNS:
        bracket_segments += len(pattern.findall(cleaned))
        cleaned = pattern.sub(" ", cleaned)

    keywords: list[str] = []
    excluded: list[str] = []
    for token in _WHITESPACE.split(cleaned):
        token = token.strip()
        if not token:
            continue
        if not any(ch.isalnum() for ch in token) or token.isdigit():
            excluded.append(token)
        elif len(token) == 1:
            excluded.append(token)
        elif any(p in token for p in TITLE_PARTICLES):
            excluded.append(token)
        else:
            keywords.append(token)
    return TitleTokens(keywords, excluded, bracket_segments)


def score_title(inp: AnalysisInput) -> _Rule:
    if not inp.title:
        details = {"keyword_count": 0, "keyword_min": TITLE_KEYWORD_MIN, "passed": False}
        return _Rule(CategoryScore(score=0, max=TITLE_MAX, details=details), ["title"], [])

    tokens = tokenize_title(inp.title)
    passed = len(tokens.keywords) >= TITLE_KEYWORD_MIN
    details = {
        "keyword_count": len(tokens.keywords),
        "keyword_min": TITLE_KEYWORD_MIN,
        "passed": passed,
        "excluded_bracket_count": tokens.bracket_segments,
    }
    notes = []
    if tokens.bracket_segments:
        notes.append(f"title: ignored {tokens.bracket_segments} bracketed segment(s)")
    score = TITLE_MAX if passed else 0
    return _Rule(CategoryScore(score=score, max=TITLE_MAX, details=details), [], notes)


def score_main_image(inp: AnalysisInput) -> _Rule:
    main = inp.images.main
    if main is None:
        return _Rule(
            CategoryScore(score=0, max=MAIN_IMAGE_MAX),
            ["mainImageDimensions", "mainImageBgWhite"],
            [],
        )

    score = 0
    missing: list[str] = []

    if main.width is not None and main.height is not None:
        longest = max(main.width, main.height)
        shortest = min(main.width, main.height)
        if shortest >= HIGH_RES_PX and abs(main.width - main.height) / longest < SQUARE_TOLERANCE:
            score += 5
    else:
        missing.append("mainImageDimensions")

    if main.is_white_background is None:
        missing.append("mainImageBgWhite")
    elif main.is_white_background is True:
        score += 5

    return _Rule(CategoryScore(score=score, max=MAIN_IMAGE_MAX), missing, [])


def score_sub_images(inp: AnalysisInput) -> _Rule:
    subs = inp.images.subs
    if subs is None:
        return _Rule(
            CategoryScore(score=0, max=SUB_IMAGES_MAX),
            ["subImageCount", "subImageDimensions", "subImageHasVideo"],
            [],
        )

    score = 0
    missing: list[str] = []

    if len(subs) >= SUB_IMAGE_MIN_COUNT:
        score += 10

    sized = [s for s in subs if s.width is not None and s.height is not None]
    if any(s.width >= HIGH_RES_PX and s.height >= HIGH_RES_PX for s in sized):
        score += 5
    elif not sized:
        missing.append("subImageDimensions")

    if inp.images.has_video is None:
        missing.append("subImageHasVideo")
    elif inp.images.has_video is True:
        score += 5

    return _Rule(CategoryScore(score=score, max=SUB_IMAGES_MAX), missing, [])


def score_description(inp: AnalysisInput) -> _Rule:
    if inp.description is None:
        return _Rule(CategoryScore(score=0, max=DESCRIPTION_MAX), ["bullets"], [])

    lines = [line for line in inp.description.split("\n") if line.strip()]
    score = DESCRIPTION_MAX if len(lines) >= BULLET_MIN_LINES else 0
    return _Rule(CategoryScore(score=score, max=DESCRIPTION_MAX), [], [])


def score_reviews(inp: AnalysisInput) -> _Rule:
    rating = inp.reviews.rating
    count = inp.reviews.count
    score = 0
    missing: list[str] = []

    if rating is None:
        missing.append("reviewRating")
    else:
        if rating >= 4.0:
            score += 5
        if rating >= 4.3:
            score += 5

    if count is None:
        missing.append("reviewCount")
    else:
        for threshold in (30, 100, 1000):
            if count >= threshold:
                score += 5

    return _Rule(CategoryScore(score=score, max=REVIEWS_MAX), missing, [])


def score_rich_brand(inp: AnalysisInput) -> _Rule:
    rich = inp.rich_content
    score = 0
    missing: list[str] = []

    flags = (
        (rich.present, "richContentPresence"),
        (rich.is_premium_tier, "richContentIsPremium"),
        (inp.brand.has_story, "brandStory"),
    )
    for value, signal in flags:
        if value is None:
            missing.append(signal)
        elif value is True:
            score += 5

    if rich.module_count is None:
        missing.append("richContentModuleCount")
    elif rich.module_count >= RICH_MODULE_MIN:
        score += 5

    return _Rule(CategoryScore(score=score, max=RICH_BRAND_MAX), missing, [])


_CATEGORY_RULES = (
    ("title", score_title),
    ("main_image", score_main_image),
    ("sub_images", score_sub_images),
    ("description", score_description),
    ("reviews", score_reviews),
    ("rich_brand", score_rich_brand),
)


def compute_rule_score(inp: AnalysisInput) -> RuleScoreResult:
    """Score a listing with the fixed rule table.

    Never raises on partial input; unknown signals are reported in
    ``missing_signals`` instead.
    """
    breakdown: dict[str, CategoryScore] = {}
    missing: list[str] = []
    notes: list[str] = []

    for name, rule in _CATEGORY_RULES:
        result = rule(inp)
        breakdown[name] = result.score
        missing.extend(result.missing)
        notes.extend(result.notes)

    return RuleScoreResult(
        total=sum(c.score for c in breakdown.values()),
        breakdown=breakdown,
        missing_signals=missing,
        notes=notes,
    )
