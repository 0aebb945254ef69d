"""Endpoint candidate scoring.

    score = w1 * semantic_score + w2 * param_coverage + w3 * performance_prior

`param_coverage` is the fraction of primary-tier leaf constraints the
candidate can express. A credits endpoint takes one person as a path
parameter, so it covers at most one person leaf. A name that never resolved
to an id is expressible nowhere; on the primary tier it makes selection fail,
so the query relaxes rather than being answered strictly without it.

Tie-breaks among candidates within `tie_margin` of the best score, in order:
  (a) more than one tier present → discover-style beats search-style
  (b) exactly one constraint, a person → credits endpoint wins
"""

import logging

from ..config import PlannerConfig
from ..core.errors import EndpointSelectionError
from ..core.models import (
    ConstraintTree,
    EndpointCandidate,
    EndpointStyle,
    MediaType,
    ScoredCandidate,
    Tier,
)
from .catalog import supported_keys

logger = logging.getLogger(__name__)

NON_TITLE_PATHS = frozenset({"/search/person", "/search/company", "/search/keyword"})


def is_listing_candidate(candidate: EndpointCandidate, media_types: list[MediaType]) -> bool:
    """Whether a candidate can return titles of the requested media."""
    if candidate.style == EndpointStyle.DETAIL or candidate.path in NON_TITLE_PATHS:
        return False
    if candidate.media_type is not None and candidate.media_type not in media_types:
        return False
    return True


def single_person_constraint(tree: ConstraintTree) -> bool:
    """True when the whole tree is exactly one person constraint."""
    leaves = tree.flatten()
    return len(leaves) == 1 and leaves[0].key == "person_id"


def param_coverage(candidate: EndpointCandidate, tree: ConstraintTree) -> float:
    """Fraction of primary-tier leaves the candidate can express (1.0 if none)."""
    primary = tree.leaves(Tier.PRIMARY)
    if not primary:
        return 1.0
    expressible = supported_keys(candidate)
    covered = 0
    person_slots = 1 if candidate.is_credits else None
    for leaf in primary:
        if leaf.key not in expressible or not leaf.is_resolved:
            continue
        if leaf.key == "person_id" and person_slots is not None:
            if person_slots == 0:
                continue
            person_slots -= 1
        covered += 1
    return covered / len(primary)


def score_candidates(
    candidates: list[EndpointCandidate],
    tree: ConstraintTree,
    media_types: list[MediaType],
    config: PlannerConfig | None = None,
) -> list[ScoredCandidate]:
    """Score every listing-capable candidate, best first.

    Ties in score keep retrieval order.
    """
    config = config or PlannerConfig()
    scored: list[tuple[int, ScoredCandidate]] = []
    for position, candidate in enumerate(candidates):
        if not is_listing_candidate(candidate, media_types):
            continue
        coverage = param_coverage(candidate, tree)
        score = (
            config.semantic_weight * candidate.semantic_score
            + config.coverage_weight * coverage
            + config.performance_weight * candidate.performance_prior
        )
        scored.append(
            (position, ScoredCandidate(candidate=candidate, coverage=coverage, score=round(score, 6)))
        )
    scored.sort(key=lambda item: (-item[1].score, item[0]))
    return [s for _, s in scored]


def _apply_tie_breaks(
    ranked: list[ScoredCandidate],
    tree: ConstraintTree,
    tie_margin: float,
) -> ScoredCandidate:
    best = ranked[0]
    contenders = [c for c in ranked if best.score - c.score <= tie_margin]

    # (a) Multi-tier queries need filter-capable discovery, not title search.
    if len(tree.tiers_present()) > 1 and best.candidate.style == EndpointStyle.SEARCH:
        for contender in contenders:
            if contender.candidate.style == EndpointStyle.DISCOVER:
                logger.debug(
                    f"[PLANNER] Tie-break (a): {contender.path} over {best.path}"
                )
                return contender

    # (b) A lone person constraint is served best by that person's credits.
    if single_person_constraint(tree) and not best.candidate.is_credits:
        for contender in contenders:
            if contender.candidate.is_credits:
                logger.debug(
                    f"[PLANNER] Tie-break (b): {contender.path} over {best.path}"
                )
                return contender

    return best


def select_endpoint(
    candidates: list[EndpointCandidate],
    tree: ConstraintTree,
    media_types: list[MediaType],
    config: PlannerConfig | None = None,
) -> tuple[ScoredCandidate, list[ScoredCandidate]]:
    """Pick the endpoint to call.

    Returns:
        (selected, full ranking)

    Raises:
        EndpointSelectionError: No candidate reaches `min_coverage`, or a
            primary constraint names something that never resolved to an id.
    """
    config = config or PlannerConfig()
    ranking = score_candidates(candidates, tree, media_types, config)
    unresolved = [leaf.to_record() for leaf in tree.leaves(Tier.PRIMARY) if not leaf.is_resolved]
    if unresolved:
        best_coverage = max((s.coverage for s in ranking), default=0.0)
        names = ", ".join(r.describe() for r in unresolved)
        raise EndpointSelectionError(
            f"Unresolved primary constraints cannot be expressed: {names}",
            best_coverage=best_coverage,
            unresolved=unresolved,
        )
    viable = [s for s in ranking if s.coverage >= config.min_coverage]
    if not viable:
        best_coverage = max((s.coverage for s in ranking), default=0.0)
        raise EndpointSelectionError(
            f"No endpoint covers the primary constraints "
            f"(best coverage {best_coverage:.2f} < {config.min_coverage:.2f})",
            best_coverage=best_coverage,
        )
    selected = _apply_tie_breaks(viable, tree, config.tie_margin)
    logger.info(
        f"[PLANNER] Selected {selected.path} "
        f"(score={selected.score:.3f}, coverage={selected.coverage:.2f})"
    )
    return selected, ranking


def best_semantic_candidate(
    candidates: list[EndpointCandidate],
    tree: ConstraintTree,
    media_types: list[MediaType],
) -> EndpointCandidate | None:
    """Highest semantic score among callable listing candidates.

    Credits endpoints are callable only while a resolved person constraint remains.
    """
    has_person = any(leaf.key == "person_id" and leaf.is_resolved for leaf in tree.flatten())
    pool = [
        c
        for c in candidates
        if is_listing_candidate(c, media_types) and (has_person or not c.is_credits)
    ]
    if not pool:
        return None
    return max(enumerate(pool), key=lambda item: (item[1].semantic_score, -item[0]))[1]
