"""Command line driver for plan shape checks."""

from __future__ import annotations

import json
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import click
import pyarrow as pa

from ..analysis import (
    MissingTarget,
    UnknownPredicate,
    get_predicate,
    observe,
    pick_bushy_target,
    predicate_names,
)
from ..config import Config, ConfigError, load_config, load_manifest
from ..datasources import CaptureError, PlanCapture, read_query_file
from ..evaluator import (
    CompareOutcome,
    ComparisonReport,
    Verdict,
    compare_cases,
    discover_plans,
    evaluate,
    pair_plans,
)
from ..plan import MalformedDocument, parse_file
from ..render import render_tree
from ..utils.logging import setup_logging

PREDICATE_HELP = "Predicate name: " + ", ".join(predicate_names())


def format_table(table: pa.Table) -> List[str]:
    """Render an Arrow table as a bordered text grid, one line per row."""
    headers = table.column_names
    columns = [[_cell_text(value) for value in column.to_pylist()] for column in table.columns]
    widths = [
        max([len(header)] + [len(text) for text in column])
        for header, column in zip(headers, columns)
    ]

    def line(values: List[str]) -> str:
        cells = [value.ljust(width) for value, width in zip(values, widths)]
        return "| " + " | ".join(cells) + " |"

    border = "+" + "+".join("-" * (width + 2) for width in widths) + "+"
    lines = [border, line(headers), border]
    for index in range(table.num_rows):
        lines.append(line([column[index] for column in columns]))
    lines.append(border)
    return lines


def _cell_text(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, float):
        return f"{value:g}"
    return str(value)


def _echo_table(table: pa.Table, elapsed_ms: Optional[float] = None) -> None:
    for text in format_table(table):
        click.echo(text)
    summary = f"{table.num_rows} rows"
    if elapsed_ms is not None:
        summary += f" in {elapsed_ms:.2f} ms"
    click.echo(summary)


def _fail(message: str, code: int = 2) -> None:
    click.echo(f"error: {message}", err=True)
    click.get_current_context().exit(code)


def _resolve_predicate(config: Config, name: Optional[str]) -> str:
    if name:
        return name
    return config.evaluation.predicate


def _resolve_workers(config: Config, workers: Optional[int]) -> int:
    if workers is not None:
        return workers
    return config.evaluation.workers


def _verdict_status(verdict: Verdict) -> str:
    if verdict.error is not None:
        return "ERROR"
    if verdict.passed:
        return "PASS"
    return "FAIL"


def build_verdict_table(verdicts: List[Verdict]) -> pa.Table:
    """Arrow table with one row per verdict."""
    documents: List[str] = []
    modes: List[Optional[str]] = []
    matched: List[str] = []
    results: List[str] = []
    paths: List[Optional[str]] = []
    for verdict in verdicts:
        documents.append(verdict.document_id)
        modes.append(verdict.mode)
        if verdict.error is not None:
            matched.append("")
        else:
            matched.append("1" if verdict.matched_predicate else "0")
        results.append(_verdict_status(verdict))
        if verdict.violation is not None:
            paths.append(verdict.violation.path)
        else:
            paths.append(None)
    return pa.Table.from_pydict(
        {
            "document": pa.array(documents, type=pa.string()),
            "mode": pa.array(modes, type=pa.string()),
            "matched": pa.array(matched, type=pa.string()),
            "result": pa.array(results, type=pa.string()),
            "violation_path": pa.array(paths, type=pa.string()),
        }
    )


@click.group()
@click.option(
    "-c",
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, readable=True),
    help="Path to YAML config file.",
)
@click.option("--log-level", default=None, help="DEBUG, INFO, WARNING or ERROR.")
@click.option("--structured-logs", is_flag=True, default=False, help="Log as JSON lines.")
@click.pass_context
def cli(
    ctx: click.Context,
    config_path: Optional[str],
    log_level: Optional[str],
    structured_logs: bool,
) -> None:
    """Check join shapes of EXPLAIN (FORMAT JSON) plans."""
    config = Config()
    if config_path:
        try:
            config = load_config(config_path)
        except (ConfigError, FileNotFoundError) as exc:
            _fail(str(exc))
    level = log_level or config.logging.level
    structured = structured_logs or config.logging.structured
    setup_logging(level=level, structured=structured, log_file=config.logging.log_file)
    ctx.obj = config


@cli.command()
@click.argument("plan_file", type=click.Path(exists=True, dir_okay=False))
@click.option("-p", "--predicate", default=None, help=PREDICATE_HELP)
@click.option("-t", "--target", default=None, help="Target relation for target-bushy.")
@click.pass_obj
def check(config: Config, plan_file: str, predicate: Optional[str], target: Optional[str]) -> None:
    """Run one predicate on one plan and print the result as JSON.

    Exits 1 when the predicate matched, 0 otherwise.
    """
    name = _resolve_predicate(config, predicate)
    try:
        selected = get_predicate(name)
        document = parse_file(plan_file)
        violation = selected.find(document.root, target)
    except (MalformedDocument, UnknownPredicate, MissingTarget) as exc:
        _fail(str(exc))
        return

    payload: Dict[str, Any] = {
        "source": plan_file,
        "predicate": selected.name,
        "target": target,
        "matched": violation is not None,
        "violation": violation.to_dict() if violation is not None else None,
    }
    click.echo(json.dumps(payload, indent=2))
    if violation is not None:
        click.get_current_context().exit(1)


@cli.command()
@click.argument("plans_dir", type=click.Path(exists=True, file_okay=False))
@click.option("-p", "--predicate", default=None, help=PREDICATE_HELP)
@click.option(
    "-m",
    "--mode",
    "mode_filter",
    default="both",
    show_default=True,
    help="Only evaluate <query>.<mode>.json files of this mode; 'both' for all.",
)
@click.option("-t", "--target", default=None, help="Target relation for target-bushy.")
@click.option("-w", "--workers", type=int, default=None, help="Evaluation threads.")
@click.pass_obj
def scan(
    config: Config,
    plans_dir: str,
    predicate: Optional[str],
    mode_filter: str,
    target: Optional[str],
    workers: Optional[int],
) -> None:
    """Evaluate every plan in a directory.

    A plan fails when the predicate matches it. Exits 0 only when every plan
    passed and none failed to parse.
    """
    name = _resolve_predicate(config, predicate)
    start = time.time()
    try:
        sources = discover_plans(plans_dir, mode_filter=mode_filter, target=target)
        verdicts = evaluate(
            sources,
            name,
            mode_filter=mode_filter,
            target=target,
            workers=_resolve_workers(config, workers),
        )
    except (UnknownPredicate, MissingTarget, FileNotFoundError) as exc:
        _fail(str(exc))
        return
    elapsed = (time.time() - start) * 1000

    _echo_table(build_verdict_table(verdicts), elapsed)

    passed = 0
    failed = 0
    errors = 0
    for verdict in verdicts:
        status = _verdict_status(verdict)
        if status == "PASS":
            passed += 1
        elif status == "FAIL":
            failed += 1
            click.echo(f"FAIL {verdict.document_id}: {verdict.violation} ({verdict.source})")
        else:
            errors += 1
            click.echo(f"ERROR {verdict.document_id}: {verdict.error}")
    click.echo(f"Total: {len(verdicts)} passed={passed} failed={failed} errors={errors}")
    if failed or errors:
        click.get_current_context().exit(1)


def _load_cases(
    config: Config,
    plans_dir: Optional[str],
    manifest_path: Optional[str],
    predicate: Optional[str],
    target: Optional[str],
    before_mode: Optional[str],
    after_mode: Optional[str],
) -> Tuple[list, str]:
    if manifest_path:
        manifest = load_manifest(manifest_path)
        name = predicate or manifest.predicate or config.evaluation.predicate
        cases = manifest.cases
        if target:
            cases = [case.with_target(target) for case in cases]
        return cases, name
    cases = pair_plans(
        plans_dir,
        before_mode or config.evaluation.before_mode,
        after_mode or config.evaluation.after_mode,
        target=target,
    )
    return cases, _resolve_predicate(config, predicate)


def _print_report_details(report: ComparisonReport) -> None:
    for row in report.rows:
        if row.outcome == CompareOutcome.FAIL:
            where = row.after_violation or row.before_violation
            click.echo(f"FAIL {row.query_id} target={row.target or '-'}: {where}")
        elif row.outcome == CompareOutcome.ERROR:
            click.echo(f"ERROR {row.query_id} target={row.target or '-'}: {row.error}")


@cli.command()
@click.argument("plans_dir", required=False, type=click.Path(exists=True, file_okay=False))
@click.option(
    "--manifest",
    "manifest_path",
    type=click.Path(exists=True, dir_okay=False),
    help="YAML file listing before/after plan pairs.",
)
@click.option("-p", "--predicate", default=None, help=PREDICATE_HELP)
@click.option(
    "-t",
    "--target",
    default=None,
    help="Target relation for every pair; overrides manifest targets.",
)
@click.option("--before-mode", default=None, help="Mode of the 'before' plans (default: off).")
@click.option("--after-mode", default=None, help="Mode of the 'after' plans (default: on).")
@click.option(
    "--summary",
    "summary_path",
    type=click.Path(dir_okay=False),
    help="Write the summary table as TSV.",
)
@click.option(
    "--expect-before-at-least",
    type=int,
    default=None,
    help="Minimum number of 'before' plans that must match the predicate.",
)
@click.option("-w", "--workers", type=int, default=None, help="Comparison threads.")
@click.pass_obj
def compare(
    config: Config,
    plans_dir: Optional[str],
    manifest_path: Optional[str],
    predicate: Optional[str],
    target: Optional[str],
    before_mode: Optional[str],
    after_mode: Optional[str],
    summary_path: Optional[str],
    expect_before_at_least: Optional[int],
    workers: Optional[int],
) -> None:
    """Compare before/after plan pairs.

    PASS: predicate matches before and not after. INCONCLUSIVE: matches
    neither. FAIL: anything else. Exits 0 only without FAIL or ERROR rows.
    """
    if bool(plans_dir) == bool(manifest_path):
        raise click.UsageError("Give either PLANS_DIR or --manifest.")

    threshold = expect_before_at_least
    if threshold is None:
        threshold = config.evaluation.expect_before_at_least

    try:
        cases, name = _load_cases(
            config, plans_dir, manifest_path, predicate, target, before_mode, after_mode
        )
        report = compare_cases(
            cases,
            name,
            workers=_resolve_workers(config, workers),
            expect_before_at_least=threshold,
        )
    except (UnknownPredicate, MissingTarget, ConfigError, FileNotFoundError) as exc:
        _fail(str(exc))
        return

    _echo_table(report.to_table())
    _print_report_details(report)
    click.echo(report.summary_line())
    if threshold > 0:
        status = "ok" if report.threshold_met else "FAIL"
        click.echo(
            f"Before matches: {report.before_matched_count}, "
            f"expected at least {threshold} ({status})"
        )
    if summary_path:
        report.write_tsv(summary_path)
        click.echo(f"Details: {summary_path}")
    if not report.ok:
        click.get_current_context().exit(1)


@cli.command()
@click.argument("plan_files", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
def tree(plan_files: Tuple[str, ...]) -> None:
    """Print plans as ASCII trees, marking join subtrees on the inner side."""
    for plan_file in plan_files:
        try:
            document = parse_file(plan_file)
        except MalformedDocument as exc:
            _fail(str(exc))
            return
        click.echo(f"=== {plan_file} ===")
        for line in render_tree(document.root):
            click.echo(line)
        click.echo("")


@cli.command("pick-target")
@click.argument("plan_file", type=click.Path(exists=True, dir_okay=False))
def pick_target(plan_file: str) -> None:
    """Print a relation from the inner side of the first bushy join."""
    try:
        document = parse_file(plan_file)
    except MalformedDocument as exc:
        _fail(str(exc))
        return
    target = pick_bushy_target(document.root)
    if target is None:
        click.echo("no bushy join found", err=True)
        click.get_current_context().exit(1)
        return
    click.echo(target)


@cli.command("observe")
@click.argument("plan_file", type=click.Path(exists=True, dir_okay=False))
def observe_plan(plan_file: str) -> None:
    """Print scan, relation and join row estimates of a plan."""
    try:
        document = parse_file(plan_file)
    except MalformedDocument as exc:
        _fail(str(exc))
        return
    observations = observe(document.root)

    click.echo(f"Root estimated rows: {observations.root_rows:g}")
    click.echo(f"Scan nodes: {len(observations.scans)}, join nodes: {len(observations.joins)}")

    click.echo("\n=== Base relation observations ===")
    relations = observations.relations()
    _echo_table(
        pa.Table.from_pydict(
            {
                "relation": [entry.relation for entry in relations],
                "max_scan_rows": [entry.max_rows for entry in relations],
                "has_filter": ["yes" if entry.has_filter else "no" for entry in relations],
                "scan_count": [entry.scan_count for entry in relations],
                "aliases": [",".join(entry.aliases) for entry in relations],
            }
        )
    )

    click.echo("\n=== Join observations ===")
    joins = observations.joins
    _echo_table(
        pa.Table.from_pydict(
            {
                "path": [join.path for join in joins],
                "node_type": [join.node_type for join in joins],
                "join_type": pa.array([join.join_type for join in joins], type=pa.string()),
                "outer_rows": [join.outer_rows for join in joins],
                "inner_rows": [join.inner_rows for join in joins],
                "out_rows": [join.output_rows for join in joins],
                "join_sel": [_format_optional(join.selectivity, "{:.3e}") for join in joins],
                "max_ndv_hint": [_format_optional(join.distinct_hint, "{:.2f}") for join in joins],
                "cond": [" ".join((join.condition or "").split()) for join in joins],
            }
        )
    )


def _format_optional(value: Optional[float], pattern: str) -> str:
    if value is None:
        return "n/a"
    return pattern.format(value)


@cli.command()
@click.argument("query_files", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
@click.option(
    "-o",
    "--out-dir",
    required=True,
    type=click.Path(file_okay=False),
    help="Directory for <query>.<mode>.json files.",
)
@click.option(
    "-m",
    "--mode",
    "modes",
    multiple=True,
    help="Mode to capture (repeatable). Defaults to the before and after modes.",
)
@click.pass_obj
def capture(config: Config, query_files: Tuple[str, ...], out_dir: str, modes: Tuple[str, ...]) -> None:
    """Capture EXPLAIN (FORMAT JSON) plans from a running server."""
    selected_modes = list(modes)
    if not selected_modes:
        selected_modes = [config.evaluation.before_mode, config.evaluation.after_mode]

    queries = []
    for query_file in query_files:
        queries.append(read_query_file(Path(query_file)))

    try:
        with PlanCapture(config.database, config.modes) as plan_capture:
            written = plan_capture.capture_all(queries, selected_modes, Path(out_dir))
    except CaptureError as exc:
        _fail(str(exc))
        return

    for path in written:
        click.echo(str(path))
    click.echo(f"Captured {len(written)} plans into {out_dir}")
