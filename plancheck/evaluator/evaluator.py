"""Apply shape predicates to a corpus of plans and compare plan pairs."""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Sequence, TypeVar, Union

import pyarrow as pa
from pyarrow import csv as pa_csv

from ..analysis.predicates import MissingTarget, Predicate, Violation, get_predicate
from ..plan import MalformedDocument, PlanDocument
from ..utils.logging import plan_logger
from .corpus import ComparisonCase, PlanSource, load_document, matches_mode

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

DocumentInput = Union[PlanDocument, PlanSource]


class CompareOutcome(Enum):
    """Result of a before/after comparison."""

    PASS = "PASS"
    FAIL = "FAIL"
    INCONCLUSIVE = "INCONCLUSIVE"
    ERROR = "ERROR"


@dataclass
class Verdict:
    """Outcome of one predicate run on one document."""

    document_id: str
    passed: bool
    matched_predicate: bool
    violation: Optional[Violation] = None
    error: Optional[str] = None
    source: Optional[str] = None
    mode: Optional[str] = None


@dataclass
class ComparisonRow:
    """One line of the before/after summary."""

    target: Optional[str]
    query_id: str
    before_matched: Optional[bool]
    after_matched: Optional[bool]
    outcome: CompareOutcome
    before_violation: Optional[Violation] = None
    after_violation: Optional[Violation] = None
    error: Optional[str] = None


@dataclass
class ComparisonReport:
    """All comparison rows of a batch plus the aggregate decision."""

    predicate: str
    rows: List[ComparisonRow] = field(default_factory=list)
    expect_before_at_least: int = 0

    def count(self, outcome: CompareOutcome) -> int:
        total = 0
        for row in self.rows:
            if row.outcome == outcome:
                total += 1
        return total

    @property
    def before_matched_count(self) -> int:
        """Rows whose "before" plan exhibited the tested condition."""
        total = 0
        for row in self.rows:
            if row.before_matched:
                total += 1
        return total

    @property
    def threshold_met(self) -> bool:
        return self.before_matched_count >= self.expect_before_at_least

    @property
    def ok(self) -> bool:
        """True when there is no FAIL or ERROR row and the threshold holds."""
        if self.count(CompareOutcome.FAIL) > 0:
            return False
        if self.count(CompareOutcome.ERROR) > 0:
            return False
        return self.threshold_met

    def summary_line(self) -> str:
        return (
            f"Summary: pass={self.count(CompareOutcome.PASS)} "
            f"fail={self.count(CompareOutcome.FAIL)} "
            f"inconclusive={self.count(CompareOutcome.INCONCLUSIVE)} "
            f"error={self.count(CompareOutcome.ERROR)}"
        )

    def to_table(self) -> pa.Table:
        """Tabular summary with columns target, query, before, after, result."""
        targets: List[str] = []
        queries: List[str] = []
        befores: List[str] = []
        afters: List[str] = []
        results: List[str] = []
        for row in self.rows:
            targets.append(row.target or "")
            queries.append(row.query_id)
            befores.append(_flag(row.before_matched))
            afters.append(_flag(row.after_matched))
            results.append(row.outcome.value)
        arrays = [
            pa.array(targets, type=pa.string()),
            pa.array(queries, type=pa.string()),
            pa.array(befores, type=pa.string()),
            pa.array(afters, type=pa.string()),
            pa.array(results, type=pa.string()),
        ]
        return pa.Table.from_arrays(
            arrays, names=["target", "query", "before", "after", "result"]
        )

    def write_tsv(self, path: Union[str, Path]) -> None:
        """Write the summary table as tab-separated values with a header row."""
        options = pa_csv.WriteOptions(
            include_header=True, delimiter="\t", quoting_style="none"
        )
        pa_csv.write_csv(self.to_table(), str(path), write_options=options)


def _flag(value: Optional[bool]) -> str:
    if value is None:
        return ""
    if value:
        return "1"
    return "0"


def _map_ordered(func: Callable[[T], R], items: Sequence[T], workers: int) -> List[R]:
    """Apply func to every item, optionally on a thread pool, keeping order."""
    if workers <= 1 or len(items) <= 1:
        results = []
        for item in items:
            results.append(func(item))
        return results
    with ThreadPoolExecutor(max_workers=workers) as pool:
        return list(pool.map(func, items))


def _as_document(item: DocumentInput) -> PlanDocument:
    if isinstance(item, PlanDocument):
        return item
    return load_document(item)


def _item_mode(item: DocumentInput) -> Optional[str]:
    return item.mode


def _item_id(item: DocumentInput) -> str:
    return item.document_id


def _item_target(item: DocumentInput) -> Optional[str]:
    return item.target


def _check_targets(
    predicate: Predicate, items: Iterable[DocumentInput], target: Optional[str]
) -> None:
    if not predicate.requires_target or target:
        return
    for item in items:
        if not _item_target(item):
            raise MissingTarget(
                f"predicate '{predicate.name}' requires a target relation "
                f"(missing for {_item_id(item)})"
            )


def evaluate(
    documents: Iterable[DocumentInput],
    predicate_name: str,
    mode_filter: Optional[str] = "both",
    target: Optional[str] = None,
    workers: int = 1,
) -> List[Verdict]:
    """Run one predicate over many documents.

    A document that cannot be parsed yields a verdict with ``error`` set;
    the rest of the corpus is still evaluated.

    Args:
        documents: Parsed documents or plan sources still to be loaded
        predicate_name: Registered predicate name
        mode_filter: ``both``/``all``, or the only mode to evaluate
        target: Target relation for predicates that need one; a target
            attached to a document takes precedence
        workers: Thread count; 1 evaluates serially

    Returns:
        One verdict per selected document, in input order

    Raises:
        UnknownPredicate: If the predicate name is not registered
        MissingTarget: If the predicate needs a target that is not available
    """
    predicate = get_predicate(predicate_name)
    selected = []
    for item in documents:
        if matches_mode(item, mode_filter):
            selected.append(item)
    _check_targets(predicate, selected, target)

    def run(item: DocumentInput) -> Verdict:
        return _evaluate_one(predicate, item, target)

    verdicts = _map_ordered(run, selected, workers)
    failed = 0
    for verdict in verdicts:
        if not verdict.passed:
            failed += 1
    logger.info(
        f"Evaluated {len(verdicts)} documents with '{predicate.name}': "
        f"{failed} not passed",
        extra={"predicate": predicate.name, "mode": mode_filter},
    )
    return verdicts


def _evaluate_one(
    predicate: Predicate, item: DocumentInput, target: Optional[str]
) -> Verdict:
    document_id = _item_id(item)
    log = plan_logger(
        __name__,
        query_id=item.query_id,
        mode=_item_mode(item),
        predicate=predicate.name,
        target=_item_target(item) or target,
    )
    try:
        document = _as_document(item)
    except MalformedDocument as exc:
        log.warning(f"Skipping unparsable plan {document_id}: {exc}")
        return Verdict(
            document_id=document_id,
            passed=False,
            matched_predicate=False,
            error=str(exc),
            source=_source_label(item),
            mode=_item_mode(item),
        )

    effective_target = document.target or target
    violation = predicate.find(document.root, effective_target)
    matched = violation is not None
    log.debug(f"{document_id}: matched={matched}")
    return Verdict(
        document_id=document_id,
        passed=not matched,
        matched_predicate=matched,
        violation=violation,
        source=document.source,
        mode=document.mode,
    )


def _source_label(item: DocumentInput) -> Optional[str]:
    if isinstance(item, PlanSource):
        return str(item.path)
    return item.source


def compare(
    before_doc: PlanDocument,
    after_doc: PlanDocument,
    predicate_name: str,
    target: Optional[str] = None,
) -> CompareOutcome:
    """Compare one plan pair under a predicate.

    PASS when the predicate holds before and not after, INCONCLUSIVE when it
    holds on neither, FAIL otherwise (in particular whenever it holds after).
    """
    predicate = get_predicate(predicate_name)
    before_target = target or before_doc.target
    after_target = target or after_doc.target
    before = predicate.matches(before_doc.root, before_target)
    after = predicate.matches(after_doc.root, after_target)
    return outcome_for(before, after)


def outcome_for(before_matched: bool, after_matched: bool) -> CompareOutcome:
    """Map raw before/after predicate results to an outcome."""
    if before_matched and not after_matched:
        return CompareOutcome.PASS
    if not before_matched and not after_matched:
        return CompareOutcome.INCONCLUSIVE
    return CompareOutcome.FAIL


def compare_cases(
    cases: Sequence[ComparisonCase],
    predicate_name: str,
    workers: int = 1,
    expect_before_at_least: int = 0,
) -> ComparisonReport:
    """Compare a batch of plan pairs.

    Missing or unparsable plans produce ERROR rows instead of aborting.

    Args:
        cases: Before/after pairs
        predicate_name: Registered predicate name
        workers: Thread count; 1 compares serially
        expect_before_at_least: Minimum number of pairs whose "before" plan
            must match for the batch to count as ok

    Returns:
        Report with one row per case, in input order
    """
    predicate = get_predicate(predicate_name)
    for case in cases:
        if predicate.requires_target and not case.target:
            raise MissingTarget(
                f"predicate '{predicate.name}' requires a target relation "
                f"(missing for {case.query_id})"
            )

    def run(case: ComparisonCase) -> ComparisonRow:
        return _compare_case(predicate, case)

    rows = _map_ordered(run, list(cases), workers)
    report = ComparisonReport(
        predicate=predicate.name,
        rows=rows,
        expect_before_at_least=expect_before_at_least,
    )
    logger.info(report.summary_line(), extra={"predicate": predicate.name})
    return report


def _compare_case(predicate: Predicate, case: ComparisonCase) -> ComparisonRow:
    log = plan_logger(
        __name__, query_id=case.query_id, predicate=predicate.name, target=case.target
    )
    missing = []
    if case.before is None:
        missing.append("before")
    if case.after is None:
        missing.append("after")
    if missing:
        message = f"missing {' and '.join(missing)} plan"
        log.warning(message)
        return _error_row(case, message)

    try:
        before_doc = load_document(case.before)
        after_doc = load_document(case.after)
    except MalformedDocument as exc:
        log.warning(f"Cannot compare: {exc}")
        return _error_row(case, str(exc))

    before_violation = predicate.find(before_doc.root, case.target)
    after_violation = predicate.find(after_doc.root, case.target)
    before_matched = before_violation is not None
    after_matched = after_violation is not None
    outcome = outcome_for(before_matched, after_matched)
    log.debug(f"before={before_matched} after={after_matched} -> {outcome.value}")
    return ComparisonRow(
        target=case.target,
        query_id=case.query_id,
        before_matched=before_matched,
        after_matched=after_matched,
        outcome=outcome,
        before_violation=before_violation,
        after_violation=after_violation,
    )


def _error_row(case: ComparisonCase, message: str) -> ComparisonRow:
    return ComparisonRow(
        target=case.target,
        query_id=case.query_id,
        before_matched=None,
        after_matched=None,
        outcome=CompareOutcome.ERROR,
        error=message,
    )
