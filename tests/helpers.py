"""Plan builders shared by the tests."""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional


E2E_SCENARIO_1 = (
    '{"Node Type":"Hash Join","Plans":['
    '{"Node Type":"Seq Scan","Relation Name":"t1"},'
    '{"Node Type":"Hash Join","Plans":['
    '{"Node Type":"Seq Scan","Relation Name":"t2"},'
    '{"Node Type":"Seq Scan","Relation Name":"t3"}]}]}'
)


def scan(relation: str, rows: float = 100, alias: Optional[str] = None) -> Dict[str, Any]:
    node: Dict[str, Any] = {
        "Node Type": "Seq Scan",
        "Relation Name": relation,
        "Plan Rows": rows,
    }
    if alias is not None:
        node["Alias"] = alias
    return node


def wrap(node_type: str, child: Dict[str, Any]) -> Dict[str, Any]:
    return {"Node Type": node_type, "Plans": [child]}


def join(
    node_type: str,
    outer: Dict[str, Any],
    inner: Dict[str, Any],
    rows: float = 100,
    cond: Optional[str] = None,
) -> Dict[str, Any]:
    node: Dict[str, Any] = {
        "Node Type": node_type,
        "Join Type": "Inner",
        "Plan Rows": rows,
        "Plans": [outer, inner],
    }
    if cond is not None:
        node["Hash Cond"] = cond
    return node


def hash_join(outer: Dict[str, Any], inner: Dict[str, Any], **kwargs) -> Dict[str, Any]:
    """Hash Join with the inner side wrapped in a Hash node, as PostgreSQL emits it."""
    return join("Hash Join", outer, wrap("Hash", inner), **kwargs)


def explain_document(root: Dict[str, Any]) -> List[Dict[str, Any]]:
    """The array shape produced by EXPLAIN (FORMAT JSON)."""
    return [{"Plan": root, "Planning Time": 0.1}]


def left_deep_plan(relations: List[str]) -> Dict[str, Any]:
    current = scan(relations[0])
    index = 1
    while index < len(relations):
        current = hash_join(current, scan(relations[index]))
        index += 1
    return current


def bushy_plan(target: str = "t3") -> Dict[str, Any]:
    """(t1 x t2) joined with (target x t4)."""
    left = hash_join(scan("t1"), scan("t2"))
    right = hash_join(scan(target), scan("t4"))
    return join("Hash Join", left, wrap("Hash", right))


def write_plan(directory: Path, name: str, root: Dict[str, Any]) -> Path:
    path = directory / name
    path.write_text(json.dumps(explain_document(root), indent=2), encoding="utf-8")
    return path
