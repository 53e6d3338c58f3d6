"""Structural predicates over plan trees.

Every predicate walks the tree in pre-order and reports the first node that
violates its condition. A violation anywhere in the subtree makes the
predicate true. The walk is the same for all of them; only the per-node
test differs.

Two different notions of "bushy" are kept apart on purpose:

* ``leftdeep-shape``: a join whose inner operand (after skipping
  pass-through wrappers) is itself a join.
* ``bushy`` / ``target-bushy``: a join where both operands cover more than
  one base relation.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from ..plan.nodes import PlanNode
from .relations import relations_of
from .unwrap import unwrap


@dataclass(frozen=True)
class Violation:
    """Location and description of the node that made a predicate fire."""

    path: str
    node_type: str
    relations: Tuple[str, ...]
    detail: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "node_type": self.node_type,
            "relations": list(self.relations),
            "detail": self.detail,
        }

    def __str__(self) -> str:
        rels = ",".join(self.relations)
        return f"{self.node_type} at {self.path} {{{rels}}}: {self.detail}"


# A node test returns a detail message when the node itself violates
NodeTest = Callable[[PlanNode], Optional[str]]


def walk(node: PlanNode) -> Iterator[Tuple[str, PlanNode]]:
    """Yield (path, node) pairs in pre-order.

    The root has path ``"0"``; child ``i`` of a node at ``p`` has ``p.i``.
    """
    stack: List[Tuple[str, PlanNode]] = [("0", node)]
    while stack:
        path, current = stack.pop()
        yield path, current
        index = len(current.children) - 1
        while index >= 0:
            stack.append((f"{path}.{index}", current.children[index]))
            index -= 1


def _first_match(node: PlanNode, test: NodeTest) -> Optional[Tuple[str, PlanNode, str]]:
    for path, current in walk(node):
        detail = test(current)
        if detail is not None:
            return path, current, detail
    return None


def _find(node: PlanNode, test: NodeTest) -> Optional[Violation]:
    match = _first_match(node, test)
    if match is None:
        return None
    path, current, detail = match
    return Violation(
        path=path,
        node_type=current.node_type,
        relations=tuple(sorted(relations_of(current))),
        detail=detail,
    )


def _is_binary_join(node: PlanNode) -> bool:
    return node.is_join and len(node.children) >= 2


def _describe_side(node: PlanNode) -> str:
    rels = ",".join(sorted(relations_of(node)))
    return f"{node.node_type} {{{rels}}}"


# -- leftdeep-shape -----------------------------------------------------------


def _inner_join_test(node: PlanNode) -> Optional[str]:
    if not _is_binary_join(node):
        return None
    inner = unwrap(node.inner_child)
    if inner.is_join:
        return f"inner operand is a join: {_describe_side(inner)}"
    return None


def find_non_left_deep_shape(node: PlanNode) -> Optional[Violation]:
    """Find a join whose inner operand is itself a join."""
    return _find(node, _inner_join_test)


def has_non_left_deep_shape(node: PlanNode) -> bool:
    """Return True when some join has a join on its inner side.

    Transparent wrappers (Hash, Sort, Materialize, ...) on the inner side are
    skipped before looking at the operand's type.
    """
    return find_non_left_deep_shape(node) is not None


# -- no-intermediate-hash-build -----------------------------------------------


def _hash_build_test(node: PlanNode) -> Optional[str]:
    if node.node_type != "Hash Join" or len(node.children) < 2:
        return None
    inner = node.inner_child
    if inner.node_type != "Hash":
        return None
    build = inner.outer_child
    if build is not None and build.is_join:
        return f"hash table built from join output: {_describe_side(build)}"
    return None


def find_intermediate_hash_build(node: PlanNode) -> Optional[Violation]:
    """Find a Hash Join whose Hash node sits directly on a join."""
    return _find(node, _hash_build_test)


def has_intermediate_hash_build(node: PlanNode) -> bool:
    """Return True when a hash table is built straight from a join result.

    Only the exact shape ``Hash Join -> Hash -> <join>`` counts; wrappers
    between the Hash node and the join are not skipped here.
    """
    return find_intermediate_hash_build(node) is not None


# -- bushy / target-bushy -----------------------------------------------------


def _bushy_sides(node: PlanNode) -> Optional[Tuple[PlanNode, PlanNode]]:
    if not _is_binary_join(node):
        return None
    outer = node.outer_child
    inner = node.inner_child
    if len(relations_of(outer)) > 1 and len(relations_of(inner)) > 1:
        return outer, inner
    return None


def _bushy_test(node: PlanNode) -> Optional[str]:
    sides = _bushy_sides(node)
    if sides is None:
        return None
    outer, inner = sides
    return f"bushy join: outer {_describe_side(outer)}, inner {_describe_side(inner)}"


def _bushy_target_test(target: str) -> NodeTest:
    def test(node: PlanNode) -> Optional[str]:
        sides = _bushy_sides(node)
        if sides is None:
            return None
        outer, inner = sides
        if target in relations_of(outer):
            return f"{target} on outer side of bushy join: {_describe_side(outer)}"
        if target in relations_of(inner):
            return f"{target} on inner side of bushy join: {_describe_side(inner)}"
        return None

    return test


def find_bushy_join(node: PlanNode) -> Optional[Violation]:
    """Find a join whose operands both cover more than one relation."""
    return _find(node, _bushy_test)


def has_bushy_join(node: PlanNode) -> bool:
    return find_bushy_join(node) is not None


def find_bushy_involving_relation(node: PlanNode, target: str) -> Optional[Violation]:
    """Find a bushy join that has ``target`` on either side."""
    return _find(node, _bushy_target_test(target))


def has_bushy_involving_relation(node: PlanNode, target: str) -> bool:
    """Return True when ``target`` takes part in a bushy join.

    A join is bushy here when both operands cover more than one base
    relation. Bushy joins among other relations do not count.
    """
    return find_bushy_involving_relation(node, target) is not None


def pick_bushy_target(node: PlanNode) -> Optional[str]:
    """Pick a relation from the inner side of the first bushy join.

    Returns the lexicographically smallest relation name on that side, or
    None when the plan has no bushy join.
    """
    match = _first_match(node, _bushy_test)
    if match is None:
        return None
    _, join, _ = match
    names = sorted(relations_of(join.inner_child))
    if not names:
        return None
    return names[0]


# -- registry -----------------------------------------------------------------


class UnknownPredicate(ValueError):
    """Raised for a predicate name that is not registered."""


class MissingTarget(ValueError):
    """Raised when a predicate needs a target relation and none was given."""


@dataclass(frozen=True)
class Predicate:
    """A named predicate usable from the evaluator and the CLI."""

    name: str
    description: str
    finder: Callable[..., Optional[Violation]]
    requires_target: bool = False

    def find(self, node: PlanNode, target: Optional[str] = None) -> Optional[Violation]:
        """Run the predicate and return the first violation, if any.

        Raises:
            MissingTarget: If the predicate needs a target and none is given
        """
        if self.requires_target:
            if not target:
                raise MissingTarget(f"predicate '{self.name}' requires a target relation")
            return self.finder(node, target)
        return self.finder(node)

    def matches(self, node: PlanNode, target: Optional[str] = None) -> bool:
        return self.find(node, target) is not None


PREDICATES: Dict[str, Predicate] = {
    "leftdeep-shape": Predicate(
        name="leftdeep-shape",
        description="a join has a join subtree on its inner side",
        finder=find_non_left_deep_shape,
    ),
    "no-intermediate-hash-build": Predicate(
        name="no-intermediate-hash-build",
        description="a Hash Join builds its hash table from a join result",
        finder=find_intermediate_hash_build,
    ),
    "target-bushy": Predicate(
        name="target-bushy",
        description="the target relation takes part in a bushy join",
        finder=find_bushy_involving_relation,
        requires_target=True,
    ),
    "bushy": Predicate(
        name="bushy",
        description="a join has multi-relation operands on both sides",
        finder=find_bushy_join,
    ),
}

PREDICATE_ALIASES: Dict[str, str] = {
    "bushy-shape": "leftdeep-shape",
    "target-missing-stats-not-in-bushy": "target-bushy",
}


def predicate_names() -> List[str]:
    """Names accepted by get_predicate, aliases included."""
    names = list(PREDICATES.keys())
    names.extend(PREDICATE_ALIASES.keys())
    return names


def get_predicate(name: str) -> Predicate:
    """Look up a predicate by name or alias.

    Raises:
        UnknownPredicate: If the name is not registered
    """
    canonical = PREDICATE_ALIASES.get(name, name)
    predicate = PREDICATES.get(canonical)
    if predicate is None:
        known = ", ".join(sorted(PREDICATES.keys()))
        raise UnknownPredicate(f"unknown predicate '{name}' (known: {known})")
    return predicate
