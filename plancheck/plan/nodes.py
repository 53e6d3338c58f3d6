"""Plan tree nodes decoded from EXPLAIN (FORMAT JSON) output."""

from dataclasses import dataclass, field, replace
from typing import FrozenSet, Optional, Tuple


UNKNOWN_NODE_TYPE = "Unknown"

JOIN_NODE_TYPES: FrozenSet[str] = frozenset(
    {
        "Hash Join",
        "Merge Join",
        "Nested Loop",
    }
)

# Single-child operators that keep the join shape and relation set of their input
TRANSPARENT_NODE_TYPES: FrozenSet[str] = frozenset(
    {
        "Hash",
        "Sort",
        "Materialize",
        "Memoize",
        "Gather",
        "Gather Merge",
        "Result",
        "ProjectSet",
        "Unique",
        "Incremental Sort",
        "Aggregate",
        "Group",
        "Limit",
    }
)


def is_join_type(node_type: str) -> bool:
    """Return True when the node type is a binary join operator."""
    return node_type in JOIN_NODE_TYPES


def is_transparent_type(node_type: str) -> bool:
    """Return True when the node type is a pass-through wrapper."""
    return node_type in TRANSPARENT_NODE_TYPES


@dataclass(frozen=True)
class PlanNode:
    """One operator of a query execution plan.

    Children keep the order found in the source document. For join nodes
    child 0 is the outer (left) operand and child 1 the inner (right) one;
    use ``outer_child`` and ``inner_child`` instead of indexing.

    The relation set of the subtree is computed once, when the node is
    built, from the node's own relation name and the sets of its children.
    """

    node_type: str = UNKNOWN_NODE_TYPE
    join_type: Optional[str] = None
    relation_name: Optional[str] = None
    alias: Optional[str] = None
    plan_rows: Optional[float] = None
    join_condition: Optional[str] = None
    filter: Optional[str] = None
    children: Tuple["PlanNode", ...] = ()
    relations: FrozenSet[str] = field(
        init=False, compare=False, repr=False, default=frozenset()
    )

    def __post_init__(self):
        if not self.node_type:
            object.__setattr__(self, "node_type", UNKNOWN_NODE_TYPE)
        if not isinstance(self.children, tuple):
            object.__setattr__(self, "children", tuple(self.children))
        collected = set()
        if self.relation_name is not None:
            collected.add(self.relation_name)
        for child in self.children:
            collected.update(child.relations)
        object.__setattr__(self, "relations", frozenset(collected))

    @property
    def is_join(self) -> bool:
        return is_join_type(self.node_type)

    @property
    def is_transparent(self) -> bool:
        return is_transparent_type(self.node_type)

    @property
    def is_leaf(self) -> bool:
        return len(self.children) == 0

    @property
    def outer_child(self) -> Optional["PlanNode"]:
        """Left/outer operand (child 0), if present."""
        if len(self.children) > 0:
            return self.children[0]
        return None

    @property
    def inner_child(self) -> Optional["PlanNode"]:
        """Right/inner operand (child 1), if present."""
        if len(self.children) > 1:
            return self.children[1]
        return None

    def label(self) -> str:
        """Short display label: node type, join type and relation."""
        parts = [self.node_type]
        if self.join_type is not None:
            parts.append(f"[{self.join_type}]")
        if self.relation_name is not None:
            rel = self.relation_name
            if self.alias is not None and self.alias != rel:
                rel = f"{rel} {self.alias}"
            parts.append("{" + rel + "}")
        elif self.alias is not None:
            parts.append("{" + self.alias + "}")
        return " ".join(parts)

    def node_count(self) -> int:
        """Number of nodes in this subtree."""
        count = 0
        stack = [self]
        while stack:
            node = stack.pop()
            count += 1
            stack.extend(node.children)
        return count

    def __repr__(self) -> str:
        return f"PlanNode({self.label()}, children={len(self.children)})"


@dataclass(frozen=True)
class PlanDocument:
    """A parsed plan plus the metadata the corpus loader attaches to it."""

    root: PlanNode
    source: Optional[str] = None
    query_id: Optional[str] = None
    mode: Optional[str] = None
    target: Optional[str] = None

    @property
    def document_id(self) -> str:
        """Identifier used in verdicts and diagnostics."""
        if self.query_id is not None and self.mode is not None:
            return f"{self.query_id}.{self.mode}"
        if self.query_id is not None:
            return self.query_id
        if self.source is not None:
            return self.source
        return "<plan>"

    def with_metadata(self, **changes) -> "PlanDocument":
        """Return a copy with updated metadata fields."""
        return replace(self, **changes)
