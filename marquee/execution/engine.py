"""Execution engine: dispatch one ExecutionStep and post-process its results.

Order of operations:
1. Fetch up to `max_pages` pages (credits endpoints return one payload)
2. Flatten listing/credits payloads into title items
3. Validate against the constraint tree (or bypass, see validation.py)
4. Enrich + threshold-filter when the step carries revenue metadata
5. Apply the vote-count floor locally, de-duplicate, and sort by `sort_by`

API failures never propagate: after the client's retries they become a
zero-result StepResult with the error attached.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from ..client.tmdb import SearchAPI, fetch_pages
from ..config import ApiConfig, ExecutionConfig
from ..core.errors import ExternalAPIError
from ..core.instrumentation import Instrumentation
from ..core.models import ConstraintTree, EndpointStyle, ExecutionStep
from ..core.provenance import ProvenanceLog
from .enrichment import enrich_and_filter
from .validation import item_date, validate_items

logger = logging.getLogger(__name__)


@dataclass
class StepResult:
    """Outcome of executing one step."""

    items: list[dict[str, Any]] = field(default_factory=list)
    fetched: int = 0
    bypassed: bool = False
    enriched: int = 0
    error: ExternalAPIError | None = None

    @property
    def count(self) -> int:
        return len(self.items)


# =============================================================================
# Payload handling
# =============================================================================


def extract_items(payloads: list[dict[str, Any]], step: ExecutionStep) -> list[dict[str, Any]]:
    """Title items from listing pages or a credits payload.

    Credit rows are tagged with `credit_type` and `credit_person_id` so role
    checks can tell a directing credit from an acting one.
    """
    items: list[dict[str, Any]] = []
    person_id = step.path_params.get("person_id")
    for payload in payloads:
        if "results" in payload:
            items.extend(r for r in payload.get("results") or [] if isinstance(r, dict))
            continue
        for credit_type in ("cast", "crew"):
            for row in payload.get(credit_type) or []:
                if not isinstance(row, dict):
                    continue
                items.append({**row, "credit_type": credit_type, "credit_person_id": person_id})
    return items


def dedupe(items: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Keep the first occurrence of each (media_type, id)."""
    seen: set[tuple[Any, Any]] = set()
    unique: list[dict[str, Any]] = []
    for item in items:
        key = (item.get("media_type"), item.get("id"))
        if item.get("id") is not None and key in seen:
            continue
        seen.add(key)
        unique.append(item)
    return unique


_DATE_SORT_FIELDS = {"release_date", "primary_release_date", "first_air_date"}


def _sort_value(item: dict[str, Any], sort_field: str) -> Any:
    if sort_field in _DATE_SORT_FIELDS:
        return item_date(item) or None
    if sort_field in ("title", "original_title"):
        return item.get("title") or item.get("name")
    return item.get(sort_field)


def _id_key(item: dict[str, Any]) -> tuple[int, Any]:
    item_id = item.get("id")
    if isinstance(item_id, int):
        return (0, item_id)
    return (1, str(item_id))


def sort_items(items: list[dict[str, Any]], sort_by: str | None) -> list[dict[str, Any]]:
    """Deterministic local ordering: by `field.direction`, missing values last, ties by id.

    Without a sort key the API's own order is kept.
    """
    if not sort_by:
        return list(items)
    sort_field, _, direction = sort_by.partition(".")
    # Stable sorts: id order survives among equal sort values, even reversed.
    by_id = sorted(items, key=_id_key)
    present = [item for item in by_id if _sort_value(item, sort_field) is not None]
    missing = [item for item in by_id if _sort_value(item, sort_field) is None]
    present.sort(key=lambda item: _sort_value(item, sort_field), reverse=direction == "desc")
    return present + missing


def apply_vote_floor(items: list[dict[str, Any]], step: ExecutionStep) -> list[dict[str, Any]]:
    floor = step.parameters.get("vote_count.gte")
    if not floor:
        return items
    minimum = int(floor)
    return [item for item in items if item.get("vote_count") is None or item["vote_count"] >= minimum]


# =============================================================================
# Engine
# =============================================================================


class ExecutionEngine:
    """Runs ExecutionSteps against a SearchAPI.

    Args:
        api: Search/discovery API client
        config: Result-count and enrichment settings
        api_config: Pagination and concurrency caps
        provenance: Query-scoped log for execution notes
        instrumentation: Span sink fan-out
    """

    def __init__(
        self,
        api: SearchAPI,
        config: ExecutionConfig | None = None,
        api_config: ApiConfig | None = None,
        provenance: ProvenanceLog | None = None,
        instrumentation: Instrumentation | None = None,
    ) -> None:
        self.api = api
        self.config = config or ExecutionConfig()
        self.api_config = api_config or ApiConfig()
        self.provenance = provenance or ProvenanceLog()
        self.instrumentation = instrumentation or Instrumentation()

    async def _dispatch(self, step: ExecutionStep) -> list[dict[str, Any]]:
        path = step.resolved_path()
        if "{" in path:
            raise ExternalAPIError(f"Unfilled path parameter in {path}", path=path)
        max_pages = 1 if step.endpoint.style == EndpointStyle.CREDITS else self.api_config.max_pages
        return await fetch_pages(self.api, path, step.query_params(), max_pages)

    async def execute(self, step: ExecutionStep, tree: ConstraintTree) -> StepResult:
        """Execute a step and return validated, filtered, ordered items."""
        with self.instrumentation.span(
            "executor", step=step.step_id, endpoint=step.endpoint.path
        ) as span:
            try:
                payloads = await self._dispatch(step)
            except ExternalAPIError as e:
                logger.warning(f"[EXECUTE] {step.endpoint.path} yielded no results: {e}")
                self.provenance.note(
                    "executor",
                    f"API failure treated as zero results: {e}",
                    status_code=e.status_code,
                    endpoint=step.endpoint.path,
                )
                span["error"] = str(e)
                span["results"] = 0
                return StepResult(error=e)

            items = extract_items(payloads, step)
            result = StepResult(fetched=len(items))

            if step.validate_results:
                items, result.bypassed = validate_items(items, tree, step.endpoint.path)
                if result.bypassed:
                    self.provenance.note(
                        "executor",
                        "credits endpoint already scoped to the single person constraint; validation bypassed",
                        endpoint=step.endpoint.path,
                    )
            else:
                self.provenance.note(
                    "executor", "symbolic validation disabled", endpoint=step.endpoint.path
                )

            items = apply_vote_floor(items, step)
            items = dedupe(items)

            if step.revenue_threshold is not None:
                with self.instrumentation.span("enrichment", candidates=len(items)) as enrichment:
                    items, result.enriched = await enrich_and_filter(
                        self.api,
                        sort_items(items, step.sort_by),
                        step.revenue_threshold,
                        media_type=step.media_type,
                        sample_size=self.config.enrichment_sample_size,
                        max_concurrency=self.api_config.max_concurrency,
                        enough=self.config.max_entries,
                    )
                    enrichment["fetched"] = result.enriched
                    enrichment["matched"] = len(items)
                self.provenance.note(
                    "enrichment",
                    f"revenue {step.revenue_threshold.operator} {step.revenue_threshold.amount}: "
                    f"{len(items)} of {result.enriched} enriched items kept",
                )

            result.items = sort_items(items, step.sort_by)
            span["fetched"] = result.fetched
            span["results"] = result.count
            logger.info(
                f"[EXECUTE] {step.resolved_path()}: {result.fetched} fetched, {result.count} kept"
            )
            return result
