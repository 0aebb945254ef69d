"""Query planning: constraint trees, endpoint scoring, parameter injection and sort intent."""

from .catalog import EndpointCatalog, PARAMETER_VOCABULARY, supported_keys
from .tree_builder import ConstraintTreeBuilder, build_constraint_tree
from .scorer import (
    best_semantic_candidate,
    param_coverage,
    score_candidates,
    select_endpoint,
)
from .injection import ParameterInjector, parse_money, revenue_sort_for
from .sort_strategy import (
    apply_sort_strategy,
    classify_media_types,
    classify_sort_intent,
    primary_media_type,
)

__all__ = [
    "EndpointCatalog",
    "PARAMETER_VOCABULARY",
    "supported_keys",
    "ConstraintTreeBuilder",
    "build_constraint_tree",
    "best_semantic_candidate",
    "param_coverage",
    "score_candidates",
    "select_endpoint",
    "ParameterInjector",
    "parse_money",
    "revenue_sort_for",
    "apply_sort_strategy",
    "classify_media_types",
    "classify_sort_intent",
    "primary_media_type",
]
