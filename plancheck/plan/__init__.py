"""Plan tree model and EXPLAIN JSON parser."""

from .nodes import (
    PlanNode,
    PlanDocument,
    JOIN_NODE_TYPES,
    TRANSPARENT_NODE_TYPES,
    UNKNOWN_NODE_TYPE,
    is_join_type,
    is_transparent_type,
)
from .parser import MalformedDocument, parse, parse_file

__all__ = [
    "PlanNode",
    "PlanDocument",
    "JOIN_NODE_TYPES",
    "TRANSPARENT_NODE_TYPES",
    "UNKNOWN_NODE_TYPE",
    "is_join_type",
    "is_transparent_type",
    "MalformedDocument",
    "parse",
    "parse_file",
]
