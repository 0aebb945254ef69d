"""Execution: dispatch, validation, financial enrichment and progressive relaxation."""

from .validation import item_matches, should_bypass_validation, validate_items
from .enrichment import enrich_and_filter
from .engine import ExecutionEngine, StepResult, sort_items
from .relaxation import (
    RelaxationController,
    RelaxationOutcome,
    Transition,
    next_state,
    transition,
)

__all__ = [
    "item_matches",
    "should_bypass_validation",
    "validate_items",
    "enrich_and_filter",
    "ExecutionEngine",
    "StepResult",
    "sort_items",
    "RelaxationController",
    "RelaxationOutcome",
    "Transition",
    "next_state",
    "transition",
]
