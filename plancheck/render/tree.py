"""ASCII rendering of plan trees."""

from typing import List

from ..analysis.unwrap import unwrap
from ..plan.nodes import PlanNode

RIGHT_JOIN_MARKER = "[RIGHT-JOIN-SUBTREE]"


def starts_with_join(node: PlanNode) -> bool:
    """Return True when the subtree is a join once wrappers are skipped."""
    return unwrap(node).is_join


def render_tree(root: PlanNode) -> List[str]:
    """Render a plan as indented ASCII lines.

    Inner (right-side) children that start with a join are marked with
    ``[RIGHT-JOIN-SUBTREE]``, the spots where the plan is not left-deep.

    Args:
        root: Plan root

    Returns:
        One line per node, root first
    """
    lines: List[str] = []
    # (node, prefix, is_last, side, is_root)
    stack = [(root, "", True, "ROOT", True)]
    while stack:
        node, prefix, is_last, side, is_root = stack.pop()
        lines.append(_format_line(node, prefix, is_last, side, is_root))

        if is_root:
            next_prefix = prefix
        elif is_last:
            next_prefix = prefix + "   "
        else:
            next_prefix = prefix + "|  "

        index = len(node.children) - 1
        while index >= 0:
            child = node.children[index]
            child_last = index == len(node.children) - 1
            child_side = "L" if index == 0 else "R"
            stack.append((child, next_prefix, child_last, child_side, False))
            index -= 1
    return lines


def _format_line(node: PlanNode, prefix: str, is_last: bool, side: str, is_root: bool) -> str:
    if is_root:
        branch = ""
    elif is_last:
        branch = "\\- "
    else:
        branch = "|- "
    line = prefix + branch + node.label()
    if side == "R" and starts_with_join(node):
        line += "  " + RIGHT_JOIN_MARKER
    return line
