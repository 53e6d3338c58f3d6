"""Tests for the plancheck command line interface."""

import json
from unittest import mock

import pyarrow as pa
from click.testing import CliRunner

from plancheck.cli.plancheck import cli, format_table

from .helpers import bushy_plan, explain_document, left_deep_plan, write_plan


def _run(args):
    runner = CliRunner()
    return runner.invoke(cli, ["--log-level", "ERROR"] + list(args))


def test_format_table_pads_columns():
    """Columns are as wide as their longest cell; nulls render empty."""
    table = pa.table({"query": ["q1", "q10"], "rows": [2.5, None]})

    assert format_table(table) == [
        "+-------+------+",
        "| query | rows |",
        "+-------+------+",
        "| q1    | 2.5  |",
        "| q10   |      |",
        "+-------+------+",
    ]


def test_check_reports_match(tmp_path):
    """check prints JSON and exits 1 when the predicate matched."""
    path = write_plan(tmp_path, "bushy.json", bushy_plan())

    result = _run(["check", str(path), "--predicate", "leftdeep-shape"])

    assert result.exit_code == 1
    payload = json.loads(result.output)
    assert payload["matched"] is True
    assert payload["predicate"] == "leftdeep-shape"
    assert payload["violation"]["path"] == "0"


def test_check_clean_plan(tmp_path):
    """check exits 0 when the predicate does not match."""
    path = write_plan(tmp_path, "flat.json", left_deep_plan(["a", "b", "c"]))

    result = _run(["check", str(path), "-p", "no-intermediate-hash-build"])

    assert result.exit_code == 0
    assert json.loads(result.output)["violation"] is None


def test_check_with_target(tmp_path):
    """target-bushy uses the --target relation."""
    path = write_plan(tmp_path, "bushy.json", bushy_plan("t3"))

    assert _run(["check", str(path), "-p", "target-bushy", "-t", "t3"]).exit_code == 1
    assert _run(["check", str(path), "-p", "target-bushy", "-t", "t5"]).exit_code == 0


def test_check_usage_errors(tmp_path):
    """Malformed input, unknown predicates and missing targets exit 2."""
    broken = tmp_path / "broken.json"
    broken.write_text("EXPLAIN failed", encoding="utf-8")
    good = write_plan(tmp_path, "good.json", bushy_plan())

    result = _run(["check", str(broken)])
    assert result.exit_code == 2
    assert "error:" in result.output

    assert _run(["check", str(good), "-p", "bogus"]).exit_code == 2
    assert _run(["check", str(good), "-p", "target-bushy"]).exit_code == 2


def test_scan_lists_failures(plans_dir):
    """scan prints a verdict table and exits 1 when any plan matched."""
    result = _run(["scan", str(plans_dir)])

    assert result.exit_code == 1
    assert "FAIL q1.off" in result.output
    assert "FAIL q3.on" in result.output
    assert "Total: 6 passed=4 failed=2 errors=0" in result.output


def test_scan_mode_filter_and_errors(tmp_path):
    """Filtered clean corpora exit 0; broken files count as errors."""
    write_plan(tmp_path, "q1.on.json", left_deep_plan(["a", "b"]))
    write_plan(tmp_path, "q1.off.json", bushy_plan())

    clean = _run(["scan", str(tmp_path), "--mode", "on", "--workers", "2"])
    assert clean.exit_code == 0
    assert "Total: 1 passed=1 failed=0 errors=0" in clean.output

    (tmp_path / "q2.on.json").write_text("[", encoding="utf-8")
    broken = _run(["scan", str(tmp_path), "--mode", "on"])
    assert broken.exit_code == 1
    assert "ERROR q2.on" in broken.output


def test_compare_directory(plans_dir, tmp_path):
    """compare pairs off/on plans, prints the summary and writes the TSV."""
    summary = tmp_path / "summary.tsv"

    result = _run(["compare", str(plans_dir), "--summary", str(summary)])

    assert result.exit_code == 1
    assert "Summary: pass=1 fail=1 inconclusive=1 error=0" in result.output
    assert "FAIL q3" in result.output
    assert summary.exists()


def test_compare_ok_and_threshold(plans_dir):
    """Without FAIL rows compare exits 0 unless the threshold is missed."""
    (plans_dir / "q3.off.json").unlink()
    (plans_dir / "q3.on.json").unlink()

    assert _run(["compare", str(plans_dir)]).exit_code == 0

    result = _run(["compare", str(plans_dir), "--expect-before-at-least", "2"])
    assert result.exit_code == 1
    assert "expected at least 2 (FAIL)" in result.output


def test_compare_manifest(plans_dir, tmp_path):
    """Cases can come from a YAML manifest with per-case targets."""
    manifest = tmp_path / "cases.yaml"
    manifest.write_text(
        """
predicate: target-bushy
cases:
  - query: q1
    target: t3
    before: plans/q1.off.json
    after: plans/q1.on.json
""",
        encoding="utf-8",
    )

    result = _run(["compare", "--manifest", str(manifest)])

    assert result.exit_code == 0
    assert "Summary: pass=1 fail=0 inconclusive=0 error=0" in result.output


def test_compare_needs_one_input(plans_dir, tmp_path):
    """Either a directory or a manifest must be given, not both or neither."""
    assert _run(["compare"]).exit_code == 2

    manifest = tmp_path / "cases.yaml"
    manifest.write_text("cases: []\n", encoding="utf-8")
    assert _run(["compare", str(plans_dir), "--manifest", str(manifest)]).exit_code == 2


def test_tree_and_pick_target(tmp_path):
    """tree marks inner join subtrees; pick-target prints a relation."""
    bushy = write_plan(tmp_path, "bushy.json", bushy_plan("t3"))
    flat = write_plan(tmp_path, "flat.json", left_deep_plan(["a", "b"]))

    tree = _run(["tree", str(bushy), str(flat)])
    assert tree.exit_code == 0
    assert "[RIGHT-JOIN-SUBTREE]" in tree.output
    assert f"=== {flat} ===" in tree.output

    picked = _run(["pick-target", str(bushy)])
    assert picked.exit_code == 0
    assert picked.output.strip() == "t3"

    assert _run(["pick-target", str(flat)]).exit_code == 1


def test_observe(tmp_path):
    """observe prints relation and join tables."""
    path = write_plan(tmp_path, "bushy.json", bushy_plan())

    result = _run(["observe", str(path)])

    assert result.exit_code == 0
    assert "=== Base relation observations ===" in result.output
    assert "=== Join observations ===" in result.output
    assert "Scan nodes: 4, join nodes: 3" in result.output


def test_config_defaults_apply(plans_dir, tmp_path):
    """Evaluation settings from the config file become command defaults."""
    config = tmp_path / "config.yaml"
    config.write_text(
        "evaluation:\n  predicate: no-intermediate-hash-build\nlogging:\n  level: ERROR\n",
        encoding="utf-8",
    )

    result = CliRunner().invoke(cli, ["--config", str(config), "scan", str(plans_dir)])

    # bushy fixtures build their hash tables from a join
    assert result.exit_code == 1
    assert "Total: 6 passed=4 failed=2" in result.output


def test_invalid_config_exits_2(tmp_path):
    """A broken config file is a usage error."""
    config = tmp_path / "config.yaml"
    config.write_text("- not a mapping\n", encoding="utf-8")

    result = CliRunner().invoke(cli, ["--config", str(config), "tree", str(config)])

    assert result.exit_code == 2
    assert "error:" in result.output


def test_capture_command(tmp_path):
    """capture writes one file per query and mode."""
    query = tmp_path / "q1.sql"
    query.write_text("SELECT 1;", encoding="utf-8")
    connection = mock.MagicMock()
    cursor = connection.cursor.return_value.__enter__.return_value
    cursor.fetchone.return_value = (explain_document(left_deep_plan(["a", "b"])),)

    with mock.patch("psycopg2.connect", return_value=connection):
        result = _run(["capture", str(query), "--out-dir", str(tmp_path / "plans")])

    assert result.exit_code == 0
    assert (tmp_path / "plans" / "q1.off.json").exists()
    assert (tmp_path / "plans" / "q1.on.json").exists()
    assert "Captured 2 plans" in result.output


def test_compare_manifest_target_option(plans_dir, tmp_path):
    """-t supplies the target for manifest cases and overrides their own."""
    manifest = tmp_path / "cases.yaml"
    manifest.write_text(
        """
predicate: target-bushy
cases:
  - query: q1
    before: plans/q1.off.json
    after: plans/q1.on.json
  - query: q3
    target: t9
    before: plans/q3.off.json
    after: plans/q3.on.json
""",
        encoding="utf-8",
    )

    result = _run(["compare", "--manifest", str(manifest), "-t", "t3"])

    # q1 loses its bushy t3 join (PASS); q3 gains one (FAIL) once t3 is the target
    assert result.exit_code == 1
    assert "Summary: pass=1 fail=1 inconclusive=0 error=0" in result.output
    assert "t9" not in result.output
