"""Shared plan fixtures."""

import pytest

from .helpers import bushy_plan, left_deep_plan, write_plan


@pytest.fixture
def plans_dir(tmp_path):
    """A directory with one before/after pair per query.

    q1: bushy before, left-deep after (PASS for leftdeep-shape)
    q2: left-deep on both sides (INCONCLUSIVE)
    q3: left-deep before, bushy after (FAIL)
    """
    directory = tmp_path / "plans"
    directory.mkdir()
    write_plan(directory, "q1.off.json", bushy_plan())
    write_plan(directory, "q1.on.json", left_deep_plan(["t1", "t2", "t3", "t4"]))
    write_plan(directory, "q2.off.json", left_deep_plan(["a", "b", "c"]))
    write_plan(directory, "q2.on.json", left_deep_plan(["a", "c", "b"]))
    write_plan(directory, "q3.off.json", left_deep_plan(["t1", "t2", "t3", "t4"]))
    write_plan(directory, "q3.on.json", bushy_plan())
    return directory
