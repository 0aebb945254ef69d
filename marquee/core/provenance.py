"""Append-only provenance log for a single query.

Every constraint added, kept or removed, every relaxation event and every
notable execution outcome is recorded here. Concurrent enrichment and lookup
tasks append through `record()`, which is the single accumulation point.
"""

import logging
import threading

from .models import (
    ConstraintRecord,
    ConstraintTree,
    ProvenanceRecord,
    RelaxationEvent,
    RelaxationState,
)
from .models.results import ProvenanceAction

logger = logging.getLogger(__name__)


class ProvenanceLog:
    """Query-scoped, thread-safe, append-only log.

    Note: Not a Pydantic model because it guards mutable state with a lock;
    snapshots (`records`, `events`) are plain lists of frozen models.
    """

    def __init__(self) -> None:
        self._records: list[ProvenanceRecord] = []
        self._events: list[RelaxationEvent] = []
        self._lock = threading.Lock()

    def record(
        self,
        action: ProvenanceAction,
        stage: str,
        reason: str,
        constraint: ConstraintRecord | None = None,
        state: RelaxationState | None = None,
        **details,
    ) -> ProvenanceRecord:
        entry = ProvenanceRecord(
            action=action,
            stage=stage,
            reason=reason,
            constraint=constraint,
            state=state,
            details=details,
        )
        with self._lock:
            self._records.append(entry)
        return entry

    def note(self, stage: str, reason: str, state: RelaxationState | None = None, **details) -> ProvenanceRecord:
        return self.record("note", stage, reason, state=state, **details)

    def record_tree(self, tree: ConstraintTree, stage: str = "builder") -> None:
        """Log every leaf of a freshly built tree as added."""
        for leaf in tree.flatten():
            self.record(
                "added",
                stage,
                f"{leaf.tier.value} constraint from {leaf.source.kind if leaf.source else 'query'} entity",
                constraint=leaf.to_record(),
                state=RelaxationState.STRICT,
            )

    def record_event(self, event: RelaxationEvent) -> None:
        """Append a relaxation event plus one 'removed' record per dropped constraint."""
        with self._lock:
            self._events.append(event)
        if not event.removed_or_modified_constraint:
            self.note("relaxation", event.reason, state=event.tier_after)
        for constraint in event.removed_or_modified_constraint:
            self.record(
                "removed",
                "relaxation",
                event.reason,
                constraint=constraint,
                state=event.tier_after,
            )
        logger.info(
            f"[RELAX] {event.tier_before.value} -> {event.tier_after.value}: "
            f"{event.reason} ({len(event.removed_or_modified_constraint)} constraints)"
        )

    def record_kept(self, tree: ConstraintTree, state: RelaxationState) -> None:
        """Log the constraints still active when a state produced the final answer."""
        for leaf in tree.flatten():
            self.record(
                "kept",
                "relaxation",
                f"satisfied at {state.value}",
                constraint=leaf.to_record(),
                state=state,
            )

    @property
    def records(self) -> list[ProvenanceRecord]:
        with self._lock:
            return list(self._records)

    @property
    def events(self) -> list[RelaxationEvent]:
        with self._lock:
            return list(self._events)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
