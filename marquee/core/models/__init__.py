"""All Pydantic models for Marquee, organized by domain.

- entities.py: extracted entity union and the NLU request contract
- constraints.py: constraint arena (nodes, tree, records)
- execution.py: endpoint candidates, execution steps, sort intent
- results.py: relaxation states/events, provenance, result envelope
"""

from .entities import (
    Tier,
    MediaType,
    QuestionType,
    EntityBase,
    Entity,
    PersonEntity,
    GenreEntity,
    NetworkEntity,
    CompanyEntity,
    DateEntity,
    RatingEntity,
    RuntimeEntity,
    RevenueEntity,
    KeywordEntity,
    LanguageEntity,
    MoodEntity,
    MediaTypeEntity,
    ENTITY_TYPES,
    normalize_comparison,
    normalize_name,
    parse_year_span,
    parse_money,
    parse_entity,
    parse_entities,
    QueryRequest,
)
from .constraints import (
    LogicalOp,
    ConstraintRecord,
    ConstraintNode,
    ConstraintTree,
    ArenaBuilder,
)
from .execution import (
    EndpointStyle,
    CREDITS_PATTERN,
    is_credits_path,
    endpoint_style,
    RetrievalHit,
    EndpointCandidate,
    ScoredCandidate,
    InjectionPhase,
    REVENUE_OPERATORS,
    RevenueThreshold,
    SortIntent,
    ExecutionStep,
)
from .results import (
    RelaxationState,
    RELAXATION_LADDER,
    RelaxationEvent,
    ProvenanceRecord,
    SpanRecord,
    ResultEnvelope,
)

__all__ = [
    # Entities
    "Tier",
    "MediaType",
    "QuestionType",
    "EntityBase",
    "Entity",
    "PersonEntity",
    "GenreEntity",
    "NetworkEntity",
    "CompanyEntity",
    "DateEntity",
    "RatingEntity",
    "RuntimeEntity",
    "RevenueEntity",
    "KeywordEntity",
    "LanguageEntity",
    "MoodEntity",
    "MediaTypeEntity",
    "ENTITY_TYPES",
    "normalize_comparison",
    "normalize_name",
    "parse_year_span",
    "parse_money",
    "parse_entity",
    "parse_entities",
    "QueryRequest",
    # Constraints
    "LogicalOp",
    "ConstraintRecord",
    "ConstraintNode",
    "ConstraintTree",
    "ArenaBuilder",
    # Execution
    "EndpointStyle",
    "CREDITS_PATTERN",
    "is_credits_path",
    "endpoint_style",
    "RetrievalHit",
    "EndpointCandidate",
    "ScoredCandidate",
    "InjectionPhase",
    "REVENUE_OPERATORS",
    "RevenueThreshold",
    "SortIntent",
    "ExecutionStep",
    # Results
    "RelaxationState",
    "RELAXATION_LADDER",
    "RelaxationEvent",
    "ProvenanceRecord",
    "SpanRecord",
    "ResultEnvelope",
]
