"""Tests for relation sets and wrapper unwrapping."""

import json

from plancheck.analysis import is_single_relation, relations_of, unwrap
from plancheck.plan import PlanNode, parse

from .helpers import bushy_plan, explain_document, left_deep_plan


def _naive_relations(node: PlanNode):
    result = set()
    if node.relation_name is not None:
        result.add(node.relation_name)
    for child in node.children:
        result |= _naive_relations(child)
    return result


def _all_nodes(node: PlanNode):
    nodes = [node]
    for child in node.children:
        nodes.extend(_all_nodes(child))
    return nodes


def test_leaf_relations():
    """A leaf covers its own relation, or nothing."""
    assert relations_of(PlanNode("Seq Scan", relation_name="t1")) == frozenset({"t1"})
    assert relations_of(PlanNode("Result")) == frozenset()


def test_relations_are_monotone_and_match_naive_walk():
    """Every node covers its children's relations, equal to a fresh recursion."""
    root = parse(json.dumps(explain_document(bushy_plan()))).root
    for node in _all_nodes(root):
        assert relations_of(node) == frozenset(_naive_relations(node))
        for child in node.children:
            assert relations_of(child) <= relations_of(node)


def test_duplicate_relation_counted_once():
    """Self-joins collapse to one relation name."""
    node = PlanNode(
        "Nested Loop",
        children=(
            PlanNode("Seq Scan", relation_name="t1", alias="a"),
            PlanNode("Index Scan", relation_name="t1", alias="b"),
        ),
    )
    assert relations_of(node) == frozenset({"t1"})
    assert is_single_relation(node)


def test_children_list_is_frozen_to_tuple():
    """Children passed as a list are stored as a tuple."""
    node = PlanNode("Sort", children=[PlanNode("Seq Scan", relation_name="t1")])
    assert isinstance(node.children, tuple)
    assert node.relations == frozenset({"t1"})


def test_unwrap_skips_transparent_chain():
    """Hash, Sort, Materialize and friends are skipped."""
    scan_node = PlanNode("Seq Scan", relation_name="t1")
    wrapped = PlanNode(
        "Gather",
        children=(PlanNode("Sort", children=(PlanNode("Materialize", children=(scan_node,)),)),),
    )
    assert unwrap(wrapped) is scan_node


def test_unwrap_stops_at_join_and_opaque_nodes():
    """Joins and non-transparent single-child nodes are canonical."""
    join_node = PlanNode(
        "Hash Join",
        children=(PlanNode("Seq Scan", relation_name="a"), PlanNode("Seq Scan", relation_name="b")),
    )
    assert unwrap(join_node) is join_node
    assert unwrap(PlanNode("Hash", children=(join_node,))) is join_node

    subquery = PlanNode("Subquery Scan", children=(join_node,))
    assert unwrap(subquery) is subquery


def test_unwrap_leaves_multi_child_wrappers():
    """A transparent kind with two children is returned unchanged."""
    odd = PlanNode(
        "Result",
        children=(PlanNode("Seq Scan", relation_name="a"), PlanNode("Seq Scan", relation_name="b")),
    )
    assert unwrap(odd) is odd


def test_unwrap_idempotent_and_never_grows():
    """unwrap(unwrap(n)) == unwrap(n) and the subtree never gets larger."""
    root = parse(json.dumps(explain_document(left_deep_plan(["a", "b", "c", "d"])))).root
    for node in _all_nodes(root):
        once = unwrap(node)
        assert unwrap(once) is once
        assert once.node_count() <= node.node_count()
