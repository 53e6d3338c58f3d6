"""Relation sets covered by plan subtrees."""

from typing import FrozenSet

from ..plan.nodes import PlanNode


def relations_of(node: PlanNode) -> FrozenSet[str]:
    """Return the base relations read anywhere in the subtree.

    The set is built bottom-up when the tree is constructed, so this is a
    lookup rather than a traversal.

    Args:
        node: Subtree root

    Returns:
        Distinct relation names of the node and all its descendants
    """
    return node.relations


def is_single_relation(node: PlanNode) -> bool:
    """Return True when the subtree reads at most one base relation."""
    return len(node.relations) <= 1
