"""Progressive relaxation.

    STRICT → RELAX_TERTIARY → RELAX_SECONDARY → SEMANTIC_FALLBACK
           → GENERIC_DISCOVERY → EXHAUSTED

`transition()` is the pure state function: given the current state, the
validated result count and the active tree, it returns the next state and
the tree that state runs with. Each step gives up exactly one thing:

- RELAX_TERTIARY     tertiary constraints (keywords, language, mood)
- RELAX_SECONDARY    secondary constraints (dates, ratings, runtime, revenue)
- SEMANTIC_FALLBACK  symbolic validation and endpoint scoring
- GENERIC_DISCOVERY  primary constraints; only media type and sort remain
- EXHAUSTED          nothing left; the last results are returned

RelaxationController drives the ladder: plan, execute, transition, repeat.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from ..client.tmdb import SearchAPI
from ..config import MarqueeConfig
from ..core.errors import EndpointSelectionError
from ..core.instrumentation import Instrumentation
from ..core.models import (
    RELAXATION_LADDER,
    ConstraintRecord,
    ConstraintTree,
    EndpointCandidate,
    ExecutionStep,
    MediaType,
    RelaxationEvent,
    RelaxationState,
    SortIntent,
    Tier,
)
from ..core.provenance import ProvenanceLog
from ..planner.catalog import EndpointCatalog
from ..planner.injection import ParameterInjector
from ..planner.scorer import best_semantic_candidate, select_endpoint
from ..planner.sort_strategy import apply_sort_strategy, primary_media_type
from .engine import ExecutionEngine

logger = logging.getLogger(__name__)

# Tier given up on entering each state.
_TIER_REMOVED = {
    RelaxationState.RELAX_TERTIARY: Tier.TERTIARY,
    RelaxationState.RELAX_SECONDARY: Tier.SECONDARY,
    RelaxationState.GENERIC_DISCOVERY: Tier.PRIMARY,
}

_STATE_REASONS = {
    RelaxationState.RELAX_TERTIARY: "dropped tertiary (stylistic) constraints",
    RelaxationState.RELAX_SECONDARY: "dropped secondary (temporal/quality/financial) constraints",
    RelaxationState.SEMANTIC_FALLBACK: "dropped symbolic validation; using best semantic endpoint",
    RelaxationState.GENERIC_DISCOVERY: "dropped primary constraints; generic discovery by media type",
    RelaxationState.EXHAUSTED: "no relaxation steps left",
}


@dataclass(frozen=True)
class Transition:
    next_state: RelaxationState
    tree: ConstraintTree
    removed: list[ConstraintRecord] = field(default_factory=list)


def next_state(state: RelaxationState) -> RelaxationState:
    """The state after `state` on the ladder (EXHAUSTED maps to itself)."""
    if state.is_terminal:
        return state
    return RELAXATION_LADDER[state.position + 1]


def transition(
    state: RelaxationState,
    result_count: int,
    tree: ConstraintTree,
    min_results: int = 1,
) -> Transition:
    """Pure relaxation step.

    Stays put when the result count is sufficient or the state is terminal;
    otherwise moves exactly one rung and removes at most one tier.
    """
    if result_count >= min_results or state.is_terminal:
        return Transition(next_state=state, tree=tree)
    target = next_state(state)
    tier = _TIER_REMOVED.get(target)
    if tier is None:
        return Transition(next_state=target, tree=tree)
    return Transition(
        next_state=target,
        tree=tree.without_tiers([tier]),
        removed=tree.records([tier]),
    )


def describe_event_reason(state: RelaxationState, removed: list[ConstraintRecord], result_count: int) -> str:
    reason = _STATE_REASONS[state]
    if state in _TIER_REMOVED and not removed:
        reason = f"no {_TIER_REMOVED[state].value} constraints to drop"
    return f"{result_count} results below threshold; {reason}"


# =============================================================================
# Controller
# =============================================================================


@dataclass
class RelaxationOutcome:
    """Final result of a relaxation run."""

    items: list[dict[str, Any]]
    state: RelaxationState
    tree: ConstraintTree
    step: ExecutionStep | None = None
    events: list[RelaxationEvent] = field(default_factory=list)


class RelaxationController:
    """Plans and executes each ladder state until results suffice.

    Args:
        api: Search/discovery API client
        catalog: Endpoint catalog (generic discovery endpoints)
        config: Planner/execution/API settings
        provenance: Query-scoped provenance log (receives every event)
        instrumentation: Span fan-out, one "relaxation" span per state
    """

    def __init__(
        self,
        api: SearchAPI,
        catalog: EndpointCatalog | None = None,
        config: MarqueeConfig | None = None,
        provenance: ProvenanceLog | None = None,
        instrumentation: Instrumentation | None = None,
        injector: ParameterInjector | None = None,
    ) -> None:
        self.catalog = catalog or EndpointCatalog()
        self.config = config or MarqueeConfig()
        self.provenance = provenance or ProvenanceLog()
        self.instrumentation = instrumentation or Instrumentation()
        self.injector = injector or ParameterInjector()
        self.engine = ExecutionEngine(
            api,
            config=self.config.execution,
            api_config=self.config.api,
            provenance=self.provenance,
            instrumentation=self.instrumentation,
        )

    def plan(
        self,
        state: RelaxationState,
        tree: ConstraintTree,
        candidates: list[EndpointCandidate],
        media_types: list[MediaType],
        sort_intent: SortIntent,
        query: str = "",
    ) -> ExecutionStep:
        """Build the step a state runs.

        Raises:
            EndpointSelectionError: Scored states only, when no candidate
                clears the coverage threshold.
        """
        step_id = f"step-{state.position + 1}"
        media = primary_media_type(media_types)

        with self.instrumentation.span("scorer", state=state.value, candidates=len(candidates)) as span:
            if state == RelaxationState.GENERIC_DISCOVERY:
                endpoint = self.catalog.discover_for(media)
            elif state == RelaxationState.SEMANTIC_FALLBACK:
                endpoint = best_semantic_candidate(candidates, tree, media_types)
                if endpoint is None:
                    endpoint = self.catalog.discover_for(media)
            else:
                selected, _ = select_endpoint(candidates, tree, media_types, self.config.planner)
                endpoint = selected.candidate
                span["score"] = selected.score
            span["selected"] = endpoint.path

        with self.instrumentation.span("injector", endpoint=endpoint.path) as span:
            endpoint_media = endpoint.media_type or media
            if state == RelaxationState.GENERIC_DISCOVERY:
                step = self.injector.build_step(
                    endpoint, ConstraintTree.empty(), media, query="", step_id=step_id
                )
            elif state == RelaxationState.SEMANTIC_FALLBACK:
                step = self.injector.build_minimal_step(
                    endpoint, tree, endpoint_media, query=query, step_id=step_id
                )
            else:
                step = self.injector.build_step(
                    endpoint, tree, endpoint_media, query=query, step_id=step_id
                )
            apply_sort_strategy(step, sort_intent)
            span["parameters"] = len(step.parameters)
        return step

    async def run(
        self,
        tree: ConstraintTree,
        candidates: list[EndpointCandidate],
        media_types: list[MediaType],
        sort_intent: SortIntent,
        query: str = "",
    ) -> RelaxationOutcome:
        """Walk the ladder from STRICT until results suffice or it is exhausted."""
        min_results = self.config.execution.min_results
        state = RelaxationState.STRICT
        active = tree
        last_items: list[dict[str, Any]] = []
        last_step: ExecutionStep | None = None
        count = 0
        no_viable_endpoint = False
        unresolved: list[ConstraintRecord] = []
        events: list[RelaxationEvent] = []

        while True:
            with self.instrumentation.span("relaxation", state=state.value) as span:
                dispatch = not state.is_terminal
                if no_viable_endpoint and state.position < RelaxationState.SEMANTIC_FALLBACK.position:
                    dispatch = False
                if (
                    dispatch
                    and last_step is not None
                    and state in (RelaxationState.RELAX_TERTIARY, RelaxationState.RELAX_SECONDARY)
                    and not events[-1].removed_or_modified_constraint
                ):
                    # Nothing was dropped, so the same request would return the same items.
                    dispatch = False

                if dispatch:
                    try:
                        step = self.plan(state, active, candidates, media_types, sort_intent, query)
                    except EndpointSelectionError as e:
                        logger.info(f"[RELAX] {state.value}: {e}")
                        self.provenance.note("scorer", f"no viable endpoint: {e}", state=state)
                        no_viable_endpoint = True
                        unresolved = e.unresolved
                        count = 0
                    else:
                        result = await self.engine.execute(step, active)
                        count = result.count
                        last_step = step
                        if result.items or not last_items:
                            last_items = result.items
                span["results"] = count

            if state.is_terminal or count >= min_results:
                break

            moved = transition(state, count, active, min_results)
            reason = describe_event_reason(moved.next_state, moved.removed, count)
            removed = list(moved.removed)
            if no_viable_endpoint and moved.next_state.position <= RelaxationState.SEMANTIC_FALLBACK.position:
                reason = f"no viable endpoint; {_STATE_REASONS[moved.next_state]}"
                if unresolved:
                    names = ", ".join(r.describe() for r in unresolved)
                    reason = f"no viable endpoint; unresolved {names}; {_STATE_REASONS[moved.next_state]}"
                    if moved.next_state == RelaxationState.SEMANTIC_FALLBACK:
                        # The fallback runs without them.
                        removed.extend(unresolved)
            event = RelaxationEvent(
                removed_or_modified_constraint=removed,
                reason=reason,
                tier_before=state,
                tier_after=moved.next_state,
                result_count_before=count,
            )
            events.append(event)
            self.provenance.record_event(event)
            state, active = moved.next_state, moved.tree

        if not state.is_terminal:
            self.provenance.record_kept(active, state)
        return RelaxationOutcome(
            items=last_items,
            state=state,
            tree=active,
            step=last_step,
            events=events,
        )
