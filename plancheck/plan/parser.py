"""Parser for EXPLAIN (FORMAT JSON) plan documents."""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

from .nodes import PlanDocument, PlanNode, UNKNOWN_NODE_TYPE

logger = logging.getLogger(__name__)

_OPENING_BRACKETS = "[{"
_JOIN_CONDITION_KEYS = ("Hash Cond", "Merge Cond", "Join Filter")


class MalformedDocument(ValueError):
    """Raised when text does not contain a usable plan document."""

    def __init__(self, message: str, source: Optional[str] = None):
        self.source = source
        if source:
            message = f"{source}: {message}"
        super().__init__(message)


def parse(text: str, source: Optional[str] = None) -> PlanDocument:
    """Parse plan text into a PlanDocument.

    Client banners before the JSON value are skipped: the document starts at
    the first line whose first non-blank character is ``[`` or ``{``. Only
    that value is decoded, so a truncated or wrongly rooted document is an
    error. Text after the JSON value is ignored.

    Args:
        text: Raw EXPLAIN output, possibly with leading status lines
        source: Optional label (usually the file path) for diagnostics

    Returns:
        Parsed plan document

    Raises:
        MalformedDocument: If the document cannot be decoded or has no plan root
    """
    if not text or not text.strip():
        raise MalformedDocument("empty plan document", source)

    start = _document_start(text)
    if start is None:
        raise MalformedDocument("no JSON object or array found", source)

    try:
        value, _ = json.JSONDecoder().raw_decode(text, start)
    except json.JSONDecodeError as exc:
        raise MalformedDocument(f"invalid or truncated JSON: {exc}", source) from exc

    root = _find_plan_root(value)
    if root is None:
        raise MalformedDocument("JSON found but no plan root field", source)
    node = _build_node(root, "0", source)
    return PlanDocument(root=node, source=source)


def parse_file(path: Union[str, Path]) -> PlanDocument:
    """Read a UTF-8 plan file and parse it.

    Args:
        path: Plan file path

    Returns:
        Parsed plan document with ``source`` set to the path
    """
    label = str(path)
    try:
        text = Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise MalformedDocument(f"cannot read plan file: {exc}", label) from exc
    logger.debug(f"Parsing plan file {label}")
    return parse(text, source=label)


def _document_start(text: str) -> Optional[int]:
    """Offset of the first line-leading opening bracket, if any."""
    offset = 0
    for line in text.splitlines(keepends=True):
        stripped = line.lstrip()
        if stripped and stripped[0] in _OPENING_BRACKETS:
            return offset + len(line) - len(stripped)
        offset += len(line)
    return None


def _find_plan_root(value: Any) -> Optional[Dict[str, Any]]:
    """Locate the root node object in a decoded JSON value."""
    if isinstance(value, list):
        if not value:
            return None
        first = value[0]
        if isinstance(first, dict) and isinstance(first.get("Plan"), dict):
            return first["Plan"]
        return None
    if isinstance(value, dict):
        if isinstance(value.get("Plan"), dict):
            return value["Plan"]
        if "Node Type" in value:
            return value
    return None


def _build_node(data: Any, path: str, source: Optional[str]) -> PlanNode:
    if not isinstance(data, dict):
        raise MalformedDocument(f"plan node at {path} is not an object", source)

    raw_children = data.get("Plans")
    if raw_children is None:
        raw_children = []
    if not isinstance(raw_children, list):
        raise MalformedDocument(f"'Plans' at {path} is not an array", source)

    children = []
    index = 0
    while index < len(raw_children):
        child_path = f"{path}.{index}"
        children.append(_build_node(raw_children[index], child_path, source))
        index += 1

    node_type = _optional_text(data.get("Node Type"))
    if not node_type:
        node_type = UNKNOWN_NODE_TYPE

    return PlanNode(
        node_type=node_type,
        join_type=_optional_text(data.get("Join Type")),
        relation_name=_optional_text(data.get("Relation Name")),
        alias=_optional_text(data.get("Alias")),
        plan_rows=_optional_number(data.get("Plan Rows")),
        join_condition=_join_condition(data),
        filter=_optional_text(data.get("Filter")),
        children=tuple(children),
    )


def _join_condition(data: Dict[str, Any]) -> Optional[str]:
    for key in _JOIN_CONDITION_KEYS:
        value = _optional_text(data.get(key))
        if value:
            return value
    return None


def _optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return str(value)


def _optional_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    return None
