"""Four-phase parameter injection.

Phases run in a fixed order over one ExecutionStep, and that order alone
encodes precedence (constraint > entity > semantic inference > default):

1. Entity-based      direct entity → parameter mapping
2. Constraint-based  tree-derived values; overrides phase 1 keys and resolves
                     known conflicts (a date range always removes a
                     single-year parameter)
3. Semantic          fills gaps only; never touches a key set earlier
4. Revenue           operator picks the sort; threshold becomes step metadata

Every write goes through ExecutionStep.set_param() so `phase_log` shows which
phase produced each key. The pipeline is a pure function of its inputs.
"""

import logging
import re

from ..core.models import (
    ConstraintNode,
    ConstraintTree,
    DateEntity,
    EndpointCandidate,
    EndpointStyle,
    ExecutionStep,
    InjectionPhase,
    LogicalOp,
    MediaType,
    REVENUE_OPERATORS,
    RatingEntity,
    RevenueThreshold,
    RuntimeEntity,
    Tier,
    parse_money,
)

logger = logging.getLogger(__name__)


# Constraint key -> discover parameter for id-valued kinds.
_ID_PARAMS = {
    "person_id": "with_people",
    "genre_id": "with_genres",
    "network_id": "with_networks",
    "company_id": "with_companies",
    "keyword_id": "with_keywords",
    "language": "with_original_language",
}

_HIGHLY_RATED = re.compile(
    r"\b(highly[- ]rated|well[- ]reviewed|acclaimed|top[- ]rated|best|must[- ]see)\b",
    re.IGNORECASE,
)
_FAMILY = re.compile(r"\b(kids?|children|family[- ]friendly)\b", re.IGNORECASE)

INFERRED_MIN_VOTES = 100
HIGH_RATING_FLOOR = 7.0


# =============================================================================
# Helpers
# =============================================================================


def year_param(media_type: MediaType) -> str:
    return "first_air_date_year" if media_type == MediaType.TV else "primary_release_year"


def date_range_prefix(media_type: MediaType) -> str:
    return "first_air_date" if media_type == MediaType.TV else "primary_release_date"


def revenue_sort_for(operator: str) -> str:
    """Sort order implied by a revenue operator.

    Upper bounds sort by popularity so near-zero (unreported) revenue does not
    flood an ascending revenue sort; lower bounds sort by revenue descending.

    Raises:
        ValueError: For any operator outside the four bounding comparisons.
    """
    if operator in ("less_than", "less_than_equal"):
        return "popularity.desc"
    if operator in ("greater_than", "greater_than_equal"):
        return "revenue.desc"
    raise ValueError(f"Unsupported revenue operator: {operator!r}")


def _combine_bounds(
    bounds: list[tuple[float | None, float | None]],
    op: LogicalOp,
) -> tuple[float | None, float | None]:
    """AND intersects bounds; OR takes their hull (an open side stays open)."""
    lows = [b[0] for b in bounds]
    highs = [b[1] for b in bounds]
    if op == LogicalOp.AND:
        low = max((x for x in lows if x is not None), default=None)
        high = min((x for x in highs if x is not None), default=None)
    else:
        low = None if any(x is None for x in lows) else min(lows)
        high = None if any(x is None for x in highs) else max(highs)
    return low, high


def _numeric_bounds(leaf: ConstraintNode, value: float) -> tuple[float | None, float | None]:
    op = leaf.operator
    if op in ("greater_than", "greater_than_equal"):
        return value, None
    if op in ("less_than", "less_than_equal"):
        return None, value
    return value, value


def _kind_bounds(tree: ConstraintTree, key: str, bounds_of) -> tuple[float | None, float | None] | None:
    """Combine the bounds of every `key` leaf following the tree's AND/OR structure."""
    leaves = [leaf for leaf in tree.flatten() if leaf.key == key]
    if not leaves:
        return None
    per_group: dict[int, list[tuple[float | None, float | None]]] = {}
    for leaf in leaves:
        per_group.setdefault(leaf.parent or 0, []).append(bounds_of(leaf))
    combined = []
    for group_index, bounds in per_group.items():
        combined.append(_combine_bounds(bounds, tree.node(group_index).logical_op))
    # Separate groups sit under the AND root.
    return _combine_bounds(combined, LogicalOp.AND)


def _format_number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else f"{value:g}"


# =============================================================================
# Phases
# =============================================================================


def inject_entities(step: ExecutionStep, tree: ConstraintTree, tiers: set[Tier] | None = None) -> None:
    """Phase 1: one direct mapping per active leaf's source entity."""
    collected: dict[str, list[str]] = {}
    for leaf in tree.flatten():
        if tiers is not None and leaf.tier not in tiers:
            continue
        source = leaf.source
        if leaf.key in _ID_PARAMS:
            if not leaf.is_resolved:
                logger.debug(f"[PLANNER] Skipping unresolved {leaf.key}={leaf.value!r}")
                continue
            if leaf.key == "person_id" and step.endpoint.is_credits:
                step.path_params.setdefault("person_id", leaf.value)
                continue
            values = collected.setdefault(_ID_PARAMS[leaf.key], [])
            if leaf.value not in values:
                values.append(leaf.value)
        elif isinstance(source, DateEntity) and source.is_single_year:
            key = year_param(step.media_type)
            if not step.has_param(key):
                step.set_param(key, str(source.year_bounds()[0]), InjectionPhase.ENTITY)

    for param, values in collected.items():
        step.set_param(param, ",".join(values), InjectionPhase.ENTITY)


def inject_constraints(step: ExecutionStep, tree: ConstraintTree) -> None:
    """Phase 2: tree-derived parameters, overriding phase 1."""
    # Id kinds: OR groups join with "|", everything ANDed at the root with ",".
    for key, param in _ID_PARAMS.items():
        if key == "person_id" and step.endpoint.is_credits:
            continue
        parts: list[str] = []
        for child_index in tree.root.children:
            child = tree.node(child_index)
            if child.key != key:
                continue
            if child.is_leaf:
                values = [child.value] if child.is_resolved else []
                joiner = ","
            else:
                members = [tree.node(i) for i in child.children]
                values = [m.value for m in members if m.is_resolved]
                joiner = "|" if child.logical_op == LogicalOp.OR else ","
            if values:
                parts.append(joiner.join(values))
        if parts:
            step.set_param(param, ",".join(parts), InjectionPhase.CONSTRAINT)

    # Dates: a single year stays a year; anything wider becomes a range.
    def _date_bounds(leaf: ConstraintNode):
        if isinstance(leaf.source, DateEntity):
            return leaf.source.year_bounds()
        return (None, None)

    date_bounds = _kind_bounds(tree, "date", _date_bounds)
    if date_bounds is not None:
        low, high = date_bounds
        prefix = date_range_prefix(step.media_type)
        single = year_param(step.media_type)
        if low is not None and low == high:
            step.set_param(single, str(int(low)), InjectionPhase.CONSTRAINT)
        else:
            if step.has_param(single):
                logger.debug(
                    f"[PLANNER] Date range overrides {single}={step.parameters[single]}"
                )
                step.remove_param(single)
            if low is not None:
                step.set_param(f"{prefix}.gte", f"{int(low)}-01-01", InjectionPhase.CONSTRAINT)
            if high is not None:
                step.set_param(f"{prefix}.lte", f"{int(high)}-12-31", InjectionPhase.CONSTRAINT)

    def _rating_bounds(leaf: ConstraintNode):
        if isinstance(leaf.source, RatingEntity):
            return _numeric_bounds(leaf, leaf.source.threshold)
        return (None, None)

    rating_bounds = _kind_bounds(tree, "rating", _rating_bounds)
    if rating_bounds is not None:
        low, high = rating_bounds
        if low is not None:
            step.set_param("vote_average.gte", _format_number(low), InjectionPhase.CONSTRAINT)
        if high is not None:
            step.set_param("vote_average.lte", _format_number(high), InjectionPhase.CONSTRAINT)

    def _runtime_bounds(leaf: ConstraintNode):
        if isinstance(leaf.source, RuntimeEntity):
            return _numeric_bounds(leaf, leaf.source.minutes)
        return (None, None)

    runtime_bounds = _kind_bounds(tree, "runtime", _runtime_bounds)
    if runtime_bounds is not None:
        low, high = runtime_bounds
        if low is not None:
            step.set_param("with_runtime.gte", _format_number(low), InjectionPhase.CONSTRAINT)
        if high is not None:
            step.set_param("with_runtime.lte", _format_number(high), InjectionPhase.CONSTRAINT)


def _fill(step: ExecutionStep, key: str, value: str) -> bool:
    """Set a key only if no earlier phase did. Returns True when written."""
    if step.has_param(key):
        return False
    step.set_param(key, value, InjectionPhase.SEMANTIC)
    return True


def infer_semantics(step: ExecutionStep, tree: ConstraintTree, query: str = "") -> None:
    """Phase 3: gap-filling inferences from query wording and constraint context."""
    supported = set(step.endpoint.supported_params)

    if "include_adult" in supported:
        _fill(step, "include_adult", "false")

    if step.endpoint.style == EndpointStyle.SEARCH and query.strip():
        _fill(step, "query", query.strip())

    wants_votes = bool(_HIGHLY_RATED.search(query))
    for leaf in tree.leaves(Tier.SECONDARY):
        if isinstance(leaf.source, RatingEntity) and leaf.source.threshold >= HIGH_RATING_FLOOR:
            wants_votes = True
    if wants_votes and "vote_count.gte" in supported:
        _fill(step, "vote_count.gte", str(INFERRED_MIN_VOTES))

    if _FAMILY.search(query) and "certification_country" in supported:
        if _fill(step, "certification_country", "US"):
            _fill(step, "certification.lte", "PG")


def specialize_revenue(step: ExecutionStep, tree: ConstraintTree) -> None:
    """Phase 4: revenue operator decides sort; threshold kept as metadata."""
    revenue_leaves = [leaf for leaf in tree.flatten() if leaf.key == "revenue"]
    if not revenue_leaves:
        step.revenue_threshold = None
        return
    leaf = revenue_leaves[0]
    if len(revenue_leaves) > 1:
        logger.warning(
            f"[PLANNER] {len(revenue_leaves)} revenue constraints; using the first ({leaf.value})"
        )
    operator = leaf.operator or "greater_than_equal"
    if operator not in REVENUE_OPERATORS:
        raise ValueError(f"Unsupported revenue operator: {operator!r}")
    step.set_param("sort_by", revenue_sort_for(operator), InjectionPhase.REVENUE)
    step.revenue_threshold = RevenueThreshold(amount=parse_money(leaf.value), operator=operator)


# =============================================================================
# Pipeline
# =============================================================================


class ParameterInjector:
    """Runs the four injection phases to produce an ExecutionStep.

    Usage:
        injector = ParameterInjector()
        step = injector.build_step(endpoint, tree, MediaType.MOVIE, query="...")
    """

    def build_step(
        self,
        endpoint: EndpointCandidate,
        tree: ConstraintTree,
        media_type: MediaType = MediaType.MOVIE,
        query: str = "",
        step_id: str = "step-1",
    ) -> ExecutionStep:
        step = ExecutionStep(step_id=step_id, endpoint=endpoint, media_type=media_type)
        inject_entities(step, tree)
        inject_constraints(step, tree)
        infer_semantics(step, tree, query)
        specialize_revenue(step, tree)
        logger.debug(f"[PLANNER] {step_id} {endpoint.path} params={step.parameters}")
        return step

    def build_minimal_step(
        self,
        endpoint: EndpointCandidate,
        tree: ConstraintTree,
        media_type: MediaType = MediaType.MOVIE,
        query: str = "",
        step_id: str = "step-1",
    ) -> ExecutionStep:
        """Primary-tier entity mapping plus gap fills, and no result validation."""
        step = ExecutionStep(
            step_id=step_id,
            endpoint=endpoint,
            media_type=media_type,
            validate_results=False,
        )
        inject_entities(step, tree, tiers={Tier.PRIMARY})
        infer_semantics(step, tree.without_tiers([Tier.SECONDARY, Tier.TERTIARY]), query)
        return step
