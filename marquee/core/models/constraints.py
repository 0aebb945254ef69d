"""Constraint tree models.

The tree is stored as an arena: `ConstraintTree.nodes` is a tuple of
`ConstraintNode`s that reference their parent and children by index. Node 0 is
always the root (an AND node). Trees are frozen; relaxation builds a new tree
with `without_tiers()` rather than editing nodes.
"""

from enum import Enum
from typing import Callable, Iterable

from pydantic import BaseModel, ConfigDict, Field

from .entities import EntityBase, Tier


class LogicalOp(str, Enum):
    AND = "AND"
    OR = "OR"


ROOT_KEY = "root"


class ConstraintRecord(BaseModel):
    """Serializable summary of a leaf constraint, used in provenance."""

    model_config = ConfigDict(frozen=True)

    key: str
    value: str
    tier: Tier
    operator: str | None = None
    role: str | None = None
    label: str | None = None

    def describe(self) -> str:
        text = f"{self.key}={self.value}"
        if self.operator:
            text = f"{self.key} {self.operator} {self.value}"
        if self.role:
            text += f" ({self.role})"
        if self.label and self.label != self.value:
            text += f" [{self.label}]"
        return text


class ConstraintNode(BaseModel):
    """One node in the constraint arena.

    Leaves carry a `value`; group nodes (root and same-kind OR/AND groups)
    carry `value=None` and combine their children with `logical_op`.
    """

    model_config = ConfigDict(frozen=True)

    index: int
    key: str
    value: str | None = None
    tier: Tier = Tier.PRIMARY
    logical_op: LogicalOp = LogicalOp.AND
    children: tuple[int, ...] = ()
    parent: int | None = None
    operator: str | None = None
    role: str | None = None
    source: EntityBase | None = Field(default=None, repr=False)

    @property
    def is_leaf(self) -> bool:
        return self.value is not None

    @property
    def is_resolved(self) -> bool:
        """False for an identity leaf whose name never mapped to an id."""
        if self.key == "language":
            return self.value is not None and len(self.value) == 2
        if self.key.endswith("_id"):
            return bool(self.value) and self.value.isdigit()
        return True

    def to_record(self) -> ConstraintRecord:
        return ConstraintRecord(
            key=self.key,
            value=self.value or "",
            tier=self.tier,
            operator=self.operator,
            role=self.role,
            label=self.source.value if self.source is not None else None,
        )


class ArenaBuilder:
    """Mutable scratch space for assembling a ConstraintTree.

    Children lists stay mutable until build(), which freezes everything.
    """

    def __init__(self) -> None:
        self._nodes: list[dict] = []
        self._children: list[list[int]] = []
        self.root = self.add(key=ROOT_KEY, tier=Tier.PRIMARY, logical_op=LogicalOp.AND)

    def add(
        self,
        *,
        key: str,
        tier: Tier,
        logical_op: LogicalOp = LogicalOp.AND,
        value: str | None = None,
        parent: int | None = None,
        operator: str | None = None,
        role: str | None = None,
        source: EntityBase | None = None,
    ) -> int:
        index = len(self._nodes)
        self._nodes.append(
            {
                "index": index,
                "key": key,
                "value": value,
                "tier": tier,
                "logical_op": logical_op,
                "parent": parent,
                "operator": operator,
                "role": role,
                "source": source,
            }
        )
        self._children.append([])
        if parent is not None:
            self._children[parent].append(index)
        return index

    def build(self) -> "ConstraintTree":
        nodes = tuple(
            ConstraintNode(children=tuple(children), **fields)
            for fields, children in zip(self._nodes, self._children)
        )
        return ConstraintTree(nodes=nodes)


class ConstraintTree(BaseModel):
    """Immutable arena of constraint nodes rooted at index 0."""

    model_config = ConfigDict(frozen=True)

    nodes: tuple[ConstraintNode, ...]

    @classmethod
    def empty(cls) -> "ConstraintTree":
        return ArenaBuilder().build()

    @property
    def root(self) -> ConstraintNode:
        return self.nodes[0]

    def node(self, index: int) -> ConstraintNode:
        return self.nodes[index]

    def _preorder(self) -> list[ConstraintNode]:
        order: list[ConstraintNode] = []
        stack = [0]
        while stack:
            node = self.nodes[stack.pop()]
            order.append(node)
            stack.extend(reversed(node.children))
        return order

    def flatten(self) -> list[ConstraintNode]:
        """Leaf constraints ordered by tier, then insertion order."""
        leaves = [n for n in self._preorder() if n.is_leaf]
        return sorted(leaves, key=lambda n: (n.tier.rank, n.index))

    def leaves(self, tier: Tier | None = None) -> list[ConstraintNode]:
        flat = self.flatten()
        if tier is None:
            return flat
        return [n for n in flat if n.tier == tier]

    @property
    def is_empty(self) -> bool:
        return not any(n.is_leaf for n in self.nodes)

    def tiers_present(self) -> set[Tier]:
        return {n.tier for n in self.nodes if n.is_leaf}

    def keys(self, tier: Tier | None = None) -> list[str]:
        """Distinct leaf keys in flatten order."""
        seen: list[str] = []
        for node in self.leaves(tier):
            if node.key not in seen:
                seen.append(node.key)
        return seen

    def group_of(self, leaf: ConstraintNode) -> ConstraintNode:
        """The node combining this leaf with its siblings (a group or the root)."""
        return self.nodes[leaf.parent] if leaf.parent is not None else self.root

    def records(self, tiers: Iterable[Tier] | None = None) -> list[ConstraintRecord]:
        wanted = set(tiers) if tiers is not None else None
        return [
            n.to_record()
            for n in self.flatten()
            if wanted is None or n.tier in wanted
        ]

    def without_tiers(self, tiers: Iterable[Tier]) -> "ConstraintTree":
        """Copy of this tree with every leaf of the given tiers removed.

        Group nodes left without leaves are dropped; surviving nodes keep
        their relative order.
        """
        removed = set(tiers)
        order = self._preorder()

        keep: dict[int, bool] = {}
        for node in reversed(order):
            if node.is_leaf:
                keep[node.index] = node.tier not in removed
            else:
                keep[node.index] = any(keep[c] for c in node.children)

        builder = ArenaBuilder()
        remap = {0: builder.root}
        for node in order[1:]:
            if not keep[node.index]:
                continue
            remap[node.index] = builder.add(
                key=node.key,
                tier=node.tier,
                logical_op=node.logical_op,
                value=node.value,
                parent=remap[node.parent if node.parent is not None else 0],
                operator=node.operator,
                role=node.role,
                source=node.source,
            )
        return builder.build()

    def evaluate(self, predicate: Callable[[ConstraintNode], bool]) -> bool:
        """Evaluate the AND/OR structure with `predicate` deciding each leaf.

        An empty group is vacuously true.
        """
        results: dict[int, bool] = {}
        for node in reversed(self._preorder()):
            if node.is_leaf:
                results[node.index] = predicate(node)
            elif not node.children:
                results[node.index] = True
            elif node.logical_op == LogicalOp.OR:
                results[node.index] = any(results[c] for c in node.children)
            else:
                results[node.index] = all(results[c] for c in node.children)
        return results[0]

    def describe(self) -> str:
        """Compact infix rendering, e.g. `(genre_id=27 OR genre_id=35) AND date 1990s`."""
        rendered: dict[int, str] = {}
        for node in reversed(self._preorder()):
            if node.is_leaf:
                rendered[node.index] = node.to_record().describe()
                continue
            parts = [rendered[c] for c in node.children]
            joiner = f" {node.logical_op.value} "
            text = joiner.join(parts)
            if node.index != 0 and len(parts) > 1:
                text = f"({text})"
            rendered[node.index] = text
        return rendered[0] or "<no constraints>"
