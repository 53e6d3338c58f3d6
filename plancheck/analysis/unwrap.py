"""Skip pass-through wrappers to reach the operator underneath."""

from ..plan.nodes import PlanNode


def unwrap(node: PlanNode) -> PlanNode:
    """Follow single-child transparent wrappers down to the real operator.

    Stops at the first node that is a join, has other than exactly one
    child, or is not a transparent kind. Each step descends one level, so
    the loop ends at a leaf at the latest.

    Args:
        node: Starting node

    Returns:
        The canonical node (the input itself if already canonical)
    """
    current = node
    while len(current.children) == 1:
        if current.is_join:
            break
        if not current.is_transparent:
            break
        current = current.children[0]
    return current
