"""Constraint tree construction from extracted entities.

Tier assignment comes from the entity model (identity → primary,
temporal/quality → secondary, stylistic → tertiary). Entities of the same
kind are grouped under one node combined with OR; distinct kinds are ANDed
at the root. People are individuals and are always ANDed.

Building is pure: no lookups, no parameter mapping. Revenue nodes keep their
raw threshold and operator for the injection pipeline to interpret.
"""

import logging

from ..core.errors import ExtractionError
from ..core.models import (
    ArenaBuilder,
    ConstraintTree,
    EntityBase,
    LogicalOp,
    MediaTypeEntity,
    PersonEntity,
    parse_entity,
)
from ..core.models.entities import ComparisonEntity

logger = logging.getLogger(__name__)


def _group_op(members: list[EntityBase]) -> LogicalOp:
    """How same-kind members combine.

    Comparison kinds AND together when every member is a bound (a range such
    as "after 2000" + "before 2010"); otherwise they are alternatives. Other
    kinds default to OR unless a member explicitly asks for "and".
    """
    if isinstance(members[0], ComparisonEntity):
        if all(m.operator not in (None, "equal") for m in members):
            return LogicalOp.AND
        return LogicalOp.OR
    if any(m.operator == "and" for m in members):
        return LogicalOp.AND
    return LogicalOp.OR


class ConstraintTreeBuilder:
    """Builds an immutable ConstraintTree from entities.

    Args:
        min_confidence: Entities below this NLU confidence are left out and
            listed in `skipped` after build().
    """

    def __init__(self, min_confidence: float = 0.0) -> None:
        self.min_confidence = min_confidence
        self.skipped: list[EntityBase] = []

    def _group_key(self, position: int, entity: EntityBase) -> tuple:
        if isinstance(entity, PersonEntity):
            # "X or Y" people share one OR group; otherwise each person stands alone.
            if entity.operator == "or":
                return ("person", "or")
            return ("person", position)
        return (entity.kind, entity.role or "")

    def build(self, entities: list[EntityBase | dict]) -> ConstraintTree:
        """Build the tree.

        Raises:
            ExtractionError: If any entity is malformed. Nothing is guessed.
        """
        self.skipped = []
        groups: dict[tuple, list[EntityBase]] = {}

        for position, raw in enumerate(entities):
            if raw is None:
                raise ExtractionError(f"Entity at position {position} is empty")
            entity = parse_entity(raw)
            if isinstance(entity, MediaTypeEntity):
                continue
            if entity.confidence < self.min_confidence:
                logger.info(
                    f"[PLANNER] Skipping {entity.kind} {entity.value!r}: "
                    f"confidence {entity.confidence:.2f} < {self.min_confidence:.2f}"
                )
                self.skipped.append(entity)
                continue
            groups.setdefault(self._group_key(position, entity), []).append(entity)

        arena = ArenaBuilder()
        for members in groups.values():
            first = members[0]
            parent = arena.root
            if len(members) > 1:
                parent = arena.add(
                    key=first.constraint_key,
                    tier=first.tier,
                    logical_op=_group_op(members),
                    parent=arena.root,
                )
            for entity in members:
                arena.add(
                    key=entity.constraint_key,
                    value=entity.constraint_value,
                    tier=entity.tier,
                    parent=parent,
                    operator=entity.operator if isinstance(entity, ComparisonEntity) else None,
                    role=entity.role,
                    source=entity,
                )

        tree = arena.build()
        logger.debug(f"[PLANNER] Built constraint tree: {tree.describe()}")
        return tree


def build_constraint_tree(
    entities: list[EntityBase | dict],
    min_confidence: float = 0.0,
) -> ConstraintTree:
    """Convenience wrapper around ConstraintTreeBuilder.build()."""
    return ConstraintTreeBuilder(min_confidence=min_confidence).build(entities)
