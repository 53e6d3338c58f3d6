"""Plan shape analysis."""

from .relations import relations_of, is_single_relation
from .unwrap import unwrap
from .predicates import (
    Violation,
    Predicate,
    PREDICATES,
    UnknownPredicate,
    MissingTarget,
    walk,
    get_predicate,
    predicate_names,
    has_non_left_deep_shape,
    find_non_left_deep_shape,
    has_intermediate_hash_build,
    find_intermediate_hash_build,
    has_bushy_involving_relation,
    find_bushy_involving_relation,
    has_bushy_join,
    find_bushy_join,
    pick_bushy_target,
)
from .observations import (
    PlanObservations,
    ScanObservation,
    JoinObservation,
    RelationObservation,
    observe,
)

__all__ = [
    "relations_of",
    "is_single_relation",
    "unwrap",
    "Violation",
    "Predicate",
    "PREDICATES",
    "UnknownPredicate",
    "MissingTarget",
    "walk",
    "get_predicate",
    "predicate_names",
    "has_non_left_deep_shape",
    "find_non_left_deep_shape",
    "has_intermediate_hash_build",
    "find_intermediate_hash_build",
    "has_bushy_involving_relation",
    "find_bushy_involving_relation",
    "has_bushy_join",
    "find_bushy_join",
    "pick_bushy_target",
    "PlanObservations",
    "ScanObservation",
    "JoinObservation",
    "RelationObservation",
    "observe",
]
