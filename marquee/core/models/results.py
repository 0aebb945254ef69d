"""Relaxation, provenance and output models.

ResultEnvelope is the only object handed to the external formatting layer.
"""

import time
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from .constraints import ConstraintRecord
from .entities import MediaType


class RelaxationState(str, Enum):
    """Fallback ladder, in order. EXHAUSTED is terminal."""

    STRICT = "strict"
    RELAX_TERTIARY = "relax_tertiary"
    RELAX_SECONDARY = "relax_secondary"
    SEMANTIC_FALLBACK = "semantic_fallback"
    GENERIC_DISCOVERY = "generic_discovery"
    EXHAUSTED = "exhausted"

    @property
    def position(self) -> int:
        return RELAXATION_LADDER.index(self)

    @property
    def is_terminal(self) -> bool:
        return self == RelaxationState.EXHAUSTED


RELAXATION_LADDER: tuple[RelaxationState, ...] = (
    RelaxationState.STRICT,
    RelaxationState.RELAX_TERTIARY,
    RelaxationState.RELAX_SECONDARY,
    RelaxationState.SEMANTIC_FALLBACK,
    RelaxationState.GENERIC_DISCOVERY,
    RelaxationState.EXHAUSTED,
)


class RelaxationEvent(BaseModel):
    """One relaxation attempt. Appended to the trail, never removed."""

    model_config = ConfigDict(frozen=True)

    removed_or_modified_constraint: list[ConstraintRecord] = Field(default_factory=list)
    reason: str
    tier_before: RelaxationState
    tier_after: RelaxationState
    result_count_before: int = 0
    timestamp: float = Field(default_factory=time.time)


ProvenanceAction = Literal["added", "kept", "removed", "modified", "note"]


class ProvenanceRecord(BaseModel):
    """A single entry in the provenance trail."""

    model_config = ConfigDict(frozen=True)

    action: ProvenanceAction
    stage: str
    reason: str
    constraint: ConstraintRecord | None = None
    state: RelaxationState | None = None
    details: dict[str, Any] = Field(default_factory=dict)
    timestamp: float = Field(default_factory=time.time)


class SpanRecord(BaseModel):
    """One instrumentation span (a pipeline stage execution)."""

    model_config = ConfigDict(frozen=True)

    stage: str
    started_at: float
    duration_ms: float
    status: Literal["ok", "error"] = "ok"
    attributes: dict[str, Any] = Field(default_factory=dict)
    error: str | None = None


class ResultEnvelope(BaseModel):
    """Final ordered answer set plus everything needed to explain it."""

    entries: list[dict[str, Any]] = Field(default_factory=list)
    response_format: str = "list"
    provenance_trail: list[ProvenanceRecord] = Field(default_factory=list)
    relaxation_events: list[RelaxationEvent] = Field(default_factory=list)
    final_state: RelaxationState = RelaxationState.STRICT
    media_types: list[MediaType] = Field(default_factory=list)
    endpoint: str | None = None
    parameters: dict[str, str] = Field(default_factory=dict)
    spans: list[SpanRecord] = Field(default_factory=list)

    @property
    def exhausted(self) -> bool:
        return self.final_state == RelaxationState.EXHAUSTED

    def dropped_constraints(self) -> list[ConstraintRecord]:
        """Every constraint given up across all relaxation events, in order."""
        dropped: list[ConstraintRecord] = []
        for event in self.relaxation_events:
            dropped.extend(event.removed_or_modified_constraint)
        return dropped
