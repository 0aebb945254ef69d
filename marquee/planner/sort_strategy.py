"""Intent-aware ordering and media-type classification.

Sort intent hierarchy (first match wins):
1. Temporal: "latest"/"newest"/"recent" → date descending;
   "chronological"/"oldest"/"first ... films" (or a timeline question) → date ascending
2. Quality: "best"/"top rated" → vote_average.desc; "worst" → vote_average.asc,
   both with a minimum vote count so one-vote extremes don't dominate
3. Tier default: popularity.desc for list questions, nothing otherwise

Keyword intents override whatever sort the injection pipeline chose. The tier
default only fills an unset sort_by, so a revenue-driven sort survives.
"""

import logging
import re

from ..core.models import (
    EntityBase,
    ExecutionStep,
    InjectionPhase,
    MediaType,
    MediaTypeEntity,
    NetworkEntity,
    RevenueEntity,
    SortIntent,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Media type classification
# =============================================================================

_TV_CUES = re.compile(
    r"\b(tv|television|shows?|series|seasons?|episodes?|sitcoms?|miniseries|docuseries)\b",
    re.IGNORECASE,
)


def classify_media_types(query: str, entities: list[EntityBase]) -> list[MediaType]:
    """Decide which media the query is about.

    Explicit media_type entities win outright. A network entity means TV only.
    Otherwise TV cues ("shows", "series", ...) mean TV only whatever movie words
    sit beside them ("shows based on movies"), unless a movie-only entity such
    as box-office revenue is present, which makes the query both. Movie cues or
    no cues at all mean movies.
    """
    explicit = [e.media_type for e in entities if isinstance(e, MediaTypeEntity)]
    if explicit:
        return [m for m in (MediaType.MOVIE, MediaType.TV) if m in explicit]

    if any(isinstance(e, NetworkEntity) for e in entities):
        return [MediaType.TV]
    if _TV_CUES.search(query):
        if any(isinstance(e, RevenueEntity) for e in entities):
            return [MediaType.MOVIE, MediaType.TV]
        return [MediaType.TV]
    return [MediaType.MOVIE]


def primary_media_type(media_types: list[MediaType]) -> MediaType:
    return media_types[0] if media_types else MediaType.MOVIE


# =============================================================================
# Sort intent classification
# =============================================================================

_RECENT = re.compile(
    r"\b(latest|newest|most recent|recent(?:ly)?|upcoming|brand new|this year|last year|new releases?)\b",
    re.IGNORECASE,
)
_CHRONOLOGICAL = re.compile(
    r"\b(chronological(?:ly)?|in order|oldest|earliest|order of release|over the years|timeline"
    r"|first(?:\s+[\w'-]+){0,2}\s+(?:films|movies|shows|seasons|episodes|roles))\b",
    re.IGNORECASE,
)
_QUALITY_HIGH = re.compile(
    r"\b(best|top[- ]rated|top \d+|highest[- ]rated|highly[- ]rated|acclaimed|greatest|masterpieces?|critically)\b",
    re.IGNORECASE,
)
_QUALITY_LOW = re.compile(
    r"\b(worst|lowest[- ]rated|poorly[- ]rated|terrible|awful|bad)\b",
    re.IGNORECASE,
)


def date_field(media_type: MediaType) -> str:
    return "first_air_date" if media_type == MediaType.TV else "release_date"


def _first_match(pattern: re.Pattern, text: str) -> re.Match | None:
    return pattern.search(text) if text else None


def classify_sort_intent(
    query: str,
    question_type: str = "list",
    media_type: MediaType = MediaType.MOVIE,
    quality_min_votes: int = 200,
) -> SortIntent:
    """Classify the query's ordering intent. Pure and deterministic."""
    field = date_field(media_type)

    recent = _first_match(_RECENT, query)
    chrono = _first_match(_CHRONOLOGICAL, query)
    if recent and chrono:
        # Both present: the cue that appears first in the text wins.
        if recent.start() <= chrono.start():
            chrono = None
        else:
            recent = None
    if recent:
        return SortIntent(
            category="temporal_recent",
            sort_by=f"{field}.desc",
            matched=(recent.group(0).lower(),),
        )
    if chrono or question_type == "timeline":
        matched = (chrono.group(0).lower(),) if chrono else ("timeline",)
        return SortIntent(
            category="temporal_chronological",
            sort_by=f"{field}.asc",
            matched=matched,
        )

    high = _first_match(_QUALITY_HIGH, query)
    low = _first_match(_QUALITY_LOW, query)
    if high and low:
        if high.start() <= low.start():
            low = None
        else:
            high = None
    if high:
        return SortIntent(
            category="quality_high",
            sort_by="vote_average.desc",
            min_votes=quality_min_votes,
            matched=(high.group(0).lower(),),
        )
    if low:
        return SortIntent(
            category="quality_low",
            sort_by="vote_average.asc",
            min_votes=quality_min_votes,
            matched=(low.group(0).lower(),),
        )

    if question_type == "list":
        return SortIntent(category="default", sort_by="popularity.desc")
    return SortIntent(category="none")


def apply_sort_strategy(step: ExecutionStep, intent: SortIntent) -> ExecutionStep:
    """Apply the sort intent as the final override before dispatch.

    Keyword intents replace sort_by; the tier default only fills a gap. A
    quality intent's vote floor never replaces a constraint-derived one.
    """
    step.sort_intent = intent
    if intent.sort_by:
        if intent.is_keyword_driven or not step.has_param("sort_by"):
            step.set_param("sort_by", intent.sort_by, InjectionPhase.SORT)
    if intent.min_votes is not None:
        if step.phase_log.get("vote_count.gte") != InjectionPhase.CONSTRAINT:
            current = step.parameters.get("vote_count.gte")
            floor = max(intent.min_votes, int(current)) if current else intent.min_votes
            step.set_param("vote_count.gte", str(floor), InjectionPhase.SORT)
    logger.debug(
        f"[PLANNER] Sort intent {intent.category} -> sort_by={step.parameters.get('sort_by')}"
    )
    return step
