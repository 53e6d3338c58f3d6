"""Tests for row-estimate observations."""

import json

from plancheck.analysis import observe
from plancheck.plan import parse

from .helpers import explain_document, hash_join, scan


def _plan():
    filtered = scan("orders", rows=50, alias="o")
    filtered["Filter"] = "(o.status = 'open')"
    inner = hash_join(scan("customers", rows=200, alias="c"), scan("orders", rows=10, alias="o2"), rows=20)
    return hash_join(filtered, inner, rows=400, cond="(o.customer_id = c.id)")


def test_observe_scans_and_joins():
    """Scans and joins are collected in pre-order with their estimates."""
    observations = observe(parse(json.dumps(explain_document(_plan()))).root)

    assert observations.root_rows == 400
    assert [scan_obs.relation for scan_obs in observations.scans] == [
        "orders",
        "customers",
        "orders",
    ]
    assert [join_obs.path for join_obs in observations.joins] == ["0", "0.1.0"]

    top = observations.joins[0]
    assert top.outer_rows == 50
    # the inner operand is the Hash node, which has no estimate of its own
    assert top.inner_rows == 0
    assert top.selectivity is None
    assert top.condition == "(o.customer_id = c.id)"

    nested = observations.joins[1]
    assert nested.outer_rows == 200
    assert nested.inner_rows == 0


def test_selectivity_and_distinct_hint():
    """Selectivity divides output by the operand product."""
    plan = {
        "Node Type": "Merge Join",
        "Join Type": "Inner",
        "Plan Rows": 50,
        "Merge Cond": "(a.id = b.id)",
        "Plans": [scan("a", rows=100), scan("b", rows=10)],
    }
    join_obs = observe(parse(json.dumps(explain_document(plan))).root).joins[0]

    assert join_obs.selectivity == 0.05
    assert join_obs.distinct_hint == 20
    assert join_obs.condition == "(a.id = b.id)"


def test_relation_summary_folds_scans():
    """Scans of the same relation are folded per relation name."""
    observations = observe(parse(json.dumps(explain_document(_plan()))).root)
    relations = observations.relations()

    assert [entry.relation for entry in relations] == ["customers", "orders"]
    orders = relations[1]
    assert orders.scan_count == 2
    assert orders.max_rows == 50
    assert orders.has_filter
    assert orders.aliases == ["o", "o2"]
