"""End-to-end query pipeline.

    request → parse → media classification → name resolution → constraint tree
            → sort intent → relaxation ladder (score, inject, sort, execute)
            → ResultEnvelope

`plan()` stops before dispatch and is safe to run without network access
(names resolve through the override table only). `run()` executes.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path

from .client.lookup import EntityLookupService
from .client.tmdb import SearchAPI
from .config import MarqueeConfig, get_config
from .core.errors import EndpointSelectionError
from .core.instrumentation import Instrumentation, RecordingSink
from .core.models import (
    ConstraintTree,
    EndpointCandidate,
    EntityBase,
    ExecutionStep,
    MediaType,
    QueryRequest,
    RelaxationState,
    ResultEnvelope,
    RetrievalHit,
    ScoredCandidate,
    SortIntent,
)
from .core.provenance import ProvenanceLog
from .execution.relaxation import RelaxationController
from .planner.catalog import EndpointCatalog
from .planner.scorer import score_candidates
from .planner.sort_strategy import (
    classify_media_types,
    classify_sort_intent,
    primary_media_type,
)
from .planner.tree_builder import ConstraintTreeBuilder

logger = logging.getLogger(__name__)


@dataclass
class QueryPlan:
    """Everything decided before the first dispatch."""

    request: QueryRequest
    entities: list[EntityBase]
    tree: ConstraintTree
    media_types: list[MediaType]
    sort_intent: SortIntent
    candidates: list[EndpointCandidate]
    ranking: list[ScoredCandidate] = field(default_factory=list)
    step: ExecutionStep | None = None
    selection_error: str | None = None
    skipped: list[EntityBase] = field(default_factory=list)


class QueryPipeline:
    """Plans and runs one query at a time against a SearchAPI.

    Args:
        api: Search/discovery API client. Only `run()` needs it.
        lookup: Name → id resolution service (defaults to one over `api`)
        catalog: Endpoint catalog used to interpret retrieval hits
        config: Settings (defaults to the global config)
        instrumentation: Span sinks shared across runs
    """

    def __init__(
        self,
        api: SearchAPI | None = None,
        lookup: EntityLookupService | None = None,
        catalog: EndpointCatalog | None = None,
        config: MarqueeConfig | None = None,
        instrumentation: Instrumentation | None = None,
    ) -> None:
        self.api = api
        self.config = config or get_config()
        self.catalog = catalog or EndpointCatalog()
        self.instrumentation = instrumentation or Instrumentation()
        if lookup is None:
            overrides_path = self.config.execution.overrides_path
            if overrides_path and Path(overrides_path).exists():
                lookup = EntityLookupService.with_override_file(
                    api, overrides_path, self.config.api.max_concurrency
                )
            else:
                lookup = EntityLookupService(api, max_concurrency=self.config.api.max_concurrency)
        self.lookup = lookup

    async def _prepare(
        self,
        request: QueryRequest,
        hits: list[RetrievalHit | dict],
        instrumentation: Instrumentation,
        provenance: ProvenanceLog,
    ) -> QueryPlan:
        entities = request.parsed_entities()
        media_types = classify_media_types(request.query, entities)
        media = primary_media_type(media_types)

        with instrumentation.span("lookup", entities=len(entities)) as span:
            entities = await self.lookup.resolve_all(entities, media)
            unresolved = [e for e in entities if e.needs_lookup and e.resolved_id is None]
            span["unresolved"] = len(unresolved)
        for entity in unresolved:
            provenance.note("lookup", f"could not resolve {entity.kind} {entity.value!r}")

        builder = ConstraintTreeBuilder(min_confidence=self.config.planner.min_entity_confidence)
        with instrumentation.span("builder") as span:
            tree = builder.build(entities)
            span["leaves"] = len(tree.flatten())
        provenance.record_tree(tree)
        for entity in builder.skipped:
            provenance.note(
                "builder",
                f"skipped low-confidence {entity.kind} {entity.value!r} ({entity.confidence:.2f})",
            )

        with instrumentation.span("sort") as span:
            sort_intent = classify_sort_intent(
                request.query,
                request.question_type,
                media,
                self.config.execution.quality_min_votes,
            )
            span["category"] = sort_intent.category

        logger.info(
            f"[PLANNER] media={[m.value for m in media_types]} "
            f"tree={tree.describe()} sort={sort_intent.category}"
        )
        return QueryPlan(
            request=request,
            entities=entities,
            tree=tree,
            media_types=media_types,
            sort_intent=sort_intent,
            candidates=self.catalog.candidates(hits),
            skipped=list(builder.skipped),
        )

    async def plan(self, request: QueryRequest, hits: list[RetrievalHit | dict]) -> QueryPlan:
        """Build the strict-state plan without dispatching anything.

        Raises:
            ExtractionError: Malformed entity in the request.
        """
        provenance = ProvenanceLog()
        plan = await self._prepare(request, hits, self.instrumentation, provenance)
        plan.ranking = score_candidates(
            plan.candidates, plan.tree, plan.media_types, self.config.planner
        )
        controller = RelaxationController(
            self.api,
            catalog=self.catalog,
            config=self.config,
            provenance=provenance,
            instrumentation=self.instrumentation,
        )
        try:
            plan.step = controller.plan(
                RelaxationState.STRICT,
                plan.tree,
                plan.candidates,
                plan.media_types,
                plan.sort_intent,
                request.query,
            )
        except EndpointSelectionError as e:
            plan.selection_error = str(e)
        return plan

    async def run(self, request: QueryRequest, hits: list[RetrievalHit | dict]) -> ResultEnvelope:
        """Plan, execute and relax until the answer is useful or the ladder is exhausted.

        Raises:
            ExtractionError: Malformed entity in the request. Nothing else is fatal.
        """
        if self.api is None:
            raise ValueError("QueryPipeline.run() needs a SearchAPI")

        recorder = RecordingSink()
        instrumentation = Instrumentation(sinks=[*self.instrumentation.sinks, recorder])
        provenance = ProvenanceLog()

        plan = await self._prepare(request, hits, instrumentation, provenance)
        controller = RelaxationController(
            self.api,
            catalog=self.catalog,
            config=self.config,
            provenance=provenance,
            instrumentation=instrumentation,
        )
        outcome = await controller.run(
            plan.tree,
            plan.candidates,
            plan.media_types,
            plan.sort_intent,
            request.query,
        )

        entries = outcome.items[: self.config.execution.max_entries]
        logger.info(
            f"[PLANNER] Finished at {outcome.state.value} with {len(outcome.items)} results "
            f"({len(outcome.events)} relaxation events)"
        )
        return ResultEnvelope(
            entries=entries,
            response_format=request.resolved_response_format(),
            provenance_trail=provenance.records,
            relaxation_events=provenance.events,
            final_state=outcome.state,
            media_types=plan.media_types,
            endpoint=outcome.step.endpoint.path if outcome.step else None,
            parameters=outcome.step.query_params() if outcome.step else {},
            spans=list(recorder.spans),
        )


async def run_query(
    api: SearchAPI,
    request: QueryRequest | dict,
    hits: list[RetrievalHit | dict],
    config: MarqueeConfig | None = None,
) -> ResultEnvelope:
    """One-shot convenience wrapper around QueryPipeline.run()."""
    if isinstance(request, dict):
        request = QueryRequest(**request)
    return await QueryPipeline(api, config=config).run(request, hits)
