"""Endpoint-aware result validation.

Items returned by a listing endpoint are checked against the constraint tree
(AND/OR evaluation, one predicate per leaf). The one exception is a credits
endpoint queried for a lone person constraint: the endpoint's own scoping
already satisfies the constraint, so re-filtering is skipped.

Listing payloads are shallow; a leaf whose field is absent from the item
passes unless the field is always present on title listings (dates and
vote averages).
"""

import logging
from typing import Any

from ..core.models import (
    ConstraintNode,
    ConstraintTree,
    DateEntity,
    RatingEntity,
    RuntimeEntity,
    is_credits_path,
)

logger = logging.getLogger(__name__)

_ROLE_JOBS = {
    "director": {"Director"},
    "writer": {"Writer", "Screenplay", "Story", "Novel", "Author"},
    "composer": {"Original Music Composer", "Music", "Composer"},
    "producer": {"Producer", "Executive Producer"},
}


def should_bypass_validation(path: str, flattened: list[ConstraintNode]) -> bool:
    """Bypass iff credits endpoint AND exactly one constraint AND it is a person."""
    return (
        is_credits_path(path)
        and len(flattened) == 1
        and flattened[0].key == "person_id"
    )


def item_date(item: dict[str, Any]) -> str:
    return item.get("release_date") or item.get("first_air_date") or ""


def item_year(item: dict[str, Any]) -> int | None:
    date = item_date(item)
    if len(date) >= 4 and date[:4].isdigit():
        return int(date[:4])
    return None


def _compare(actual: float, operator: str | None, expected: float) -> bool:
    if operator == "greater_than":
        return actual > expected
    if operator == "greater_than_equal":
        return actual >= expected
    if operator == "less_than":
        return actual < expected
    if operator == "less_than_equal":
        return actual <= expected
    return actual == expected


def _ids(item: dict[str, Any], flat_key: str, nested_key: str) -> set[str] | None:
    if flat_key in item:
        return {str(v) for v in item.get(flat_key) or []}
    if nested_key in item:
        return {str(v.get("id")) for v in item.get(nested_key) or [] if isinstance(v, dict)}
    return None


def _person_matches(item: dict[str, Any], leaf: ConstraintNode) -> bool:
    credited = item.get("credit_person_id")
    if credited is None or str(credited) != leaf.value:
        # Listing items don't carry people; only a credit row can be checked.
        return True
    role = leaf.role
    if role is None:
        return True
    if role == "cast":
        return item.get("credit_type") == "cast"
    if item.get("credit_type") != "crew":
        return False
    jobs = _ROLE_JOBS.get(role)
    if jobs is None:
        return True
    return item.get("job") in jobs


def leaf_matches(item: dict[str, Any], leaf: ConstraintNode) -> bool:
    """Whether one item satisfies one leaf constraint."""
    key = leaf.key
    source = leaf.source

    if key.endswith("_id") and not (leaf.value or "").isdigit():
        # Unresolved name; nothing to check against.
        return True

    if key == "person_id":
        return _person_matches(item, leaf)
    if key == "genre_id":
        ids = _ids(item, "genre_ids", "genres")
        return ids is None or leaf.value in ids
    if key == "network_id":
        ids = _ids(item, "network_ids", "networks")
        return ids is None or leaf.value in ids
    if key == "company_id":
        ids = _ids(item, "company_ids", "production_companies")
        return ids is None or leaf.value in ids
    if key == "keyword_id":
        ids = _ids(item, "keyword_ids", "keywords")
        return ids is None or leaf.value in ids
    if key == "language":
        language = item.get("original_language")
        return language is None or language == leaf.value

    if key == "date" and isinstance(source, DateEntity):
        year = item_year(item)
        if year is None:
            return False
        low, high = source.year_bounds()
        return (low is None or year >= low) and (high is None or year <= high)
    if key == "rating" and isinstance(source, RatingEntity):
        average = item.get("vote_average")
        if average is None:
            return False
        return _compare(float(average), leaf.operator, source.threshold)
    if key == "runtime" and isinstance(source, RuntimeEntity):
        runtime = item.get("runtime")
        if not runtime:
            return True
        return _compare(float(runtime), leaf.operator, source.minutes)

    # Revenue is enforced by the enrichment threshold filter.
    return True


def item_matches(item: dict[str, Any], tree: ConstraintTree) -> bool:
    return tree.evaluate(lambda leaf: leaf_matches(item, leaf))


def validate_items(
    items: list[dict[str, Any]],
    tree: ConstraintTree,
    path: str,
) -> tuple[list[dict[str, Any]], bool]:
    """Filter items against the tree unless the bypass rule applies.

    Returns:
        (kept items, whether validation was bypassed)
    """
    if should_bypass_validation(path, tree.flatten()):
        logger.debug(f"[EXECUTE] Validation bypassed for {path}")
        return list(items), True
    kept = [item for item in items if item_matches(item, tree)]
    if len(kept) < len(items):
        logger.debug(f"[EXECUTE] Validation kept {len(kept)}/{len(items)} items from {path}")
    return kept, False
