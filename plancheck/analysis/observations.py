"""Row-estimate observations for scans and joins of a plan."""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..plan.nodes import PlanNode
from .predicates import walk


@dataclass
class ScanObservation:
    """A node that reads a base relation."""

    path: str
    node_type: str
    relation: str
    alias: Optional[str]
    rows: float
    filter: Optional[str] = None


@dataclass
class JoinObservation:
    """Estimated cardinalities around one binary join."""

    path: str
    node_type: str
    join_type: Optional[str]
    outer_rows: float
    inner_rows: float
    output_rows: float
    condition: Optional[str] = None

    @property
    def selectivity(self) -> Optional[float]:
        """Output rows over the cross product of the operand estimates."""
        if self.outer_rows <= 0 or self.inner_rows <= 0:
            return None
        return self.output_rows / (self.outer_rows * self.inner_rows)

    @property
    def distinct_hint(self) -> Optional[float]:
        """Upper bound on join-key distinct values implied by the estimate."""
        if self.outer_rows <= 0 or self.inner_rows <= 0 or self.output_rows <= 0:
            return None
        return (self.outer_rows * self.inner_rows) / self.output_rows


@dataclass
class RelationObservation:
    """Scans of the same relation folded together."""

    relation: str
    max_rows: float = 0.0
    scan_count: int = 0
    has_filter: bool = False
    aliases: List[str] = field(default_factory=list)


@dataclass
class PlanObservations:
    root_rows: float
    scans: List[ScanObservation]
    joins: List[JoinObservation]

    def relations(self) -> List[RelationObservation]:
        """Per-relation summary sorted by relation name."""
        folded: Dict[str, RelationObservation] = {}
        for scan in self.scans:
            entry = folded.get(scan.relation)
            if entry is None:
                entry = RelationObservation(relation=scan.relation)
                folded[scan.relation] = entry
            entry.scan_count += 1
            if scan.rows > entry.max_rows:
                entry.max_rows = scan.rows
            if scan.filter is not None:
                entry.has_filter = True
            if scan.alias and scan.alias not in entry.aliases:
                entry.aliases.append(scan.alias)
        result = []
        for name in sorted(folded.keys()):
            entry = folded[name]
            entry.aliases.sort()
            result.append(entry)
        return result


def _rows(node: Optional[PlanNode]) -> float:
    if node is None or node.plan_rows is None:
        return 0.0
    return node.plan_rows


def observe(root: PlanNode) -> PlanObservations:
    """Collect scan and join observations in pre-order.

    Args:
        root: Plan root

    Returns:
        Observations with rows defaulting to 0 where the plan has no estimate
    """
    scans: List[ScanObservation] = []
    joins: List[JoinObservation] = []
    for path, node in walk(root):
        if node.relation_name is not None:
            scans.append(
                ScanObservation(
                    path=path,
                    node_type=node.node_type,
                    relation=node.relation_name,
                    alias=node.alias,
                    rows=_rows(node),
                    filter=node.filter,
                )
            )
        if node.is_join and len(node.children) >= 2:
            joins.append(
                JoinObservation(
                    path=path,
                    node_type=node.node_type,
                    join_type=node.join_type,
                    outer_rows=_rows(node.outer_child),
                    inner_rows=_rows(node.inner_child),
                    output_rows=_rows(node),
                    condition=node.join_condition,
                )
            )
    return PlanObservations(root_rows=_rows(root), scans=scans, joins=joins)
