"""Discovery and loading of plan files on disk.

Plan files follow the ``<query>.<mode>.json`` naming used by the capture
scripts, e.g. ``q01_inner_6way.off.json`` and ``q01_inner_6way.on.json``.
"""

import logging
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from ..plan import PlanDocument, parse_file

logger = logging.getLogger(__name__)

ALL_MODES = ("both", "all")


@dataclass(frozen=True)
class PlanSource:
    """A plan file plus the test-case metadata derived for it."""

    path: Path
    query_id: str
    mode: Optional[str] = None
    target: Optional[str] = None

    @property
    def document_id(self) -> str:
        if self.mode is not None:
            return f"{self.query_id}.{self.mode}"
        return self.query_id

    @classmethod
    def from_path(
        cls, path: Union[str, Path], target: Optional[str] = None
    ) -> "PlanSource":
        """Build a source, taking query id and mode from the file name."""
        plan_path = Path(path)
        query_id, mode = split_plan_name(plan_path)
        return cls(path=plan_path, query_id=query_id, mode=mode, target=target)


@dataclass(frozen=True)
class ComparisonCase:
    """A before/after pair of plans for one query (and optional target)."""

    query_id: str
    before: Optional[PlanSource]
    after: Optional[PlanSource]
    target: Optional[str] = None

    def with_target(self, target: str) -> "ComparisonCase":
        """Return a copy whose case and plan sources use ``target``."""
        before = self.before
        if before is not None:
            before = replace(before, target=target)
        after = self.after
        if after is not None:
            after = replace(after, target=target)
        return replace(self, before=before, after=after, target=target)


def split_plan_name(path: Path) -> Tuple[str, Optional[str]]:
    """Split ``name.mode.json`` into (name, mode).

    Files without a mode part give (stem, None).
    """
    stem = path.name
    if stem.endswith(".json"):
        stem = stem[: -len(".json")]
    if "." in stem:
        query_id, mode = stem.rsplit(".", 1)
        if query_id and mode:
            return query_id, mode
    return stem, None


def matches_mode(
    item: Union[PlanSource, PlanDocument], mode_filter: Optional[str]
) -> bool:
    """Return True when a plan source or document passes the mode filter."""
    if mode_filter is None or mode_filter in ALL_MODES:
        return True
    return item.mode == mode_filter


def discover_plans(
    directory: Union[str, Path],
    mode_filter: Optional[str] = "both",
    target: Optional[str] = None,
) -> List[PlanSource]:
    """List plan files in a directory, sorted by file name.

    Args:
        directory: Directory containing ``*.json`` plan files
        mode_filter: ``both``/``all`` for every file, or a mode name
        target: Target relation attached to every source

    Returns:
        Plan sources that pass the mode filter
    """
    root = Path(directory)
    if not root.is_dir():
        raise FileNotFoundError(f"Plans directory not found: {directory}")

    sources: List[PlanSource] = []
    for path in sorted(root.glob("*.json")):
        if not path.is_file():
            continue
        source = PlanSource.from_path(path, target=target)
        if matches_mode(source, mode_filter):
            sources.append(source)
    logger.debug(f"Discovered {len(sources)} plan files in {root} (mode={mode_filter})")
    return sources


def pair_plans(
    directory: Union[str, Path],
    before_mode: str,
    after_mode: str,
    target: Optional[str] = None,
) -> List[ComparisonCase]:
    """Pair ``<q>.<before>.json`` with ``<q>.<after>.json`` for every query.

    Queries that only have one of the two files still produce a case with
    the missing side set to None, so the comparison can report them.
    """
    sources = discover_plans(directory, mode_filter="both", target=target)
    befores: Dict[str, PlanSource] = {}
    afters: Dict[str, PlanSource] = {}
    for source in sources:
        if source.mode == before_mode:
            befores[source.query_id] = source
        elif source.mode == after_mode:
            afters[source.query_id] = source

    query_ids = sorted(set(befores.keys()) | set(afters.keys()))
    cases: List[ComparisonCase] = []
    for query_id in query_ids:
        cases.append(
            ComparisonCase(
                query_id=query_id,
                before=befores.get(query_id),
                after=afters.get(query_id),
                target=target,
            )
        )
    return cases


def load_document(source: PlanSource) -> PlanDocument:
    """Parse a plan source and attach its metadata.

    Raises:
        MalformedDocument: If the file cannot be read or parsed
    """
    document = parse_file(source.path)
    return document.with_metadata(
        query_id=source.query_id,
        mode=source.mode,
        target=source.target,
    )
