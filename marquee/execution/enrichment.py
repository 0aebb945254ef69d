"""Financial detail enrichment.

Listing endpoints don't carry revenue, so a revenue threshold needs one detail
call per item. This is the N+1 path: only the first `sample_size` items are
enriched, in chunks of `max_concurrency`, and remaining chunks are abandoned
as soon as enough items pass the threshold.
"""

import asyncio
import logging
from typing import Any

from ..client.tmdb import SearchAPI
from ..core.errors import ExternalAPIError
from ..core.models import MediaType, RevenueThreshold

logger = logging.getLogger(__name__)

FINANCIAL_FIELDS = ("revenue", "budget", "runtime")


def detail_path(item: dict[str, Any], media_type: MediaType) -> str:
    media = item.get("media_type") or media_type.value
    return f"/{media}/{item['id']}"


async def _fetch_detail(
    api: SearchAPI,
    item: dict[str, Any],
    media_type: MediaType,
) -> dict[str, Any] | None:
    path = detail_path(item, media_type)
    try:
        detail = await api.get(path, {})
    except ExternalAPIError as e:
        logger.warning(f"[EXECUTE] Detail fetch {path} failed: {e}")
        return None
    merged = dict(item)
    for field in FINANCIAL_FIELDS:
        if field in detail:
            merged[field] = detail[field]
    return merged


async def enrich_and_filter(
    api: SearchAPI,
    items: list[dict[str, Any]],
    threshold: RevenueThreshold,
    media_type: MediaType = MediaType.MOVIE,
    sample_size: int = 20,
    max_concurrency: int = 8,
    enough: int | None = None,
) -> tuple[list[dict[str, Any]], int]:
    """Fetch detail for a bounded sample and keep items meeting the threshold.

    Args:
        enough: Stop issuing further chunks once this many items match.

    Returns:
        (matching items in input order, number of detail calls made)
    """
    sample = [item for item in items if item.get("id") is not None][: max(0, sample_size)]
    chunk_size = max(1, max_concurrency)
    matched: list[dict[str, Any]] = []
    fetched = 0

    for start in range(0, len(sample), chunk_size):
        chunk = sample[start : start + chunk_size]
        details = await asyncio.gather(*(_fetch_detail(api, item, media_type) for item in chunk))
        fetched += len(chunk)
        for detail in details:
            if detail is not None and threshold.matches(detail.get("revenue")):
                matched.append(detail)
        if enough is not None and len(matched) >= enough:
            remaining = len(sample) - fetched
            if remaining:
                logger.debug(f"[EXECUTE] Enough revenue matches; skipping {remaining} detail calls")
            break

    logger.info(
        f"[EXECUTE] Revenue {threshold.operator} {threshold.amount}: "
        f"{len(matched)}/{fetched} enriched items match"
    )
    return matched, fetched
