"""Vector runner specs."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from escrow_engine.test_accounts import BUYER, SELLER, TOKEN
from escrow_engine.vectors import find_vector_files, run_suite, run_vector

VECTOR_DIR = Path(__file__).resolve().parent.parent / "vectors"


def _vector(**overrides) -> dict:
    vector = {
        "name": "active_buyer",
        "record": {
            "id": "0x00000000000000000000000000000000000000c7",
            "buyer": BUYER,
            "seller": SELLER,
            "token": TOKEN,
            "amount": "1000",
            "state": "ACTIVE",
            "createdAt": "1700000000",
        },
        "identity": BUYER,
        "now": 1700000100,
        "expected": {
            "role": "buyer",
            "actions": ["release", "openDispute", "proposeSplit"],
        },
    }
    vector.update(overrides)
    return vector


def test_find_vector_files() -> None:
    files = find_vector_files(str(VECTOR_DIR))
    names = {Path(f).name for f in files}
    assert {"permissions.yaml", "timers.yaml", "split.yaml"} <= names
    assert files == sorted(files)


@pytest.mark.parametrize("suite", find_vector_files(str(VECTOR_DIR)), ids=lambda p: Path(p).stem)
def test_shipped_suites_pass(suite: str) -> None:
    result = run_suite(suite)
    failures = [
        (r.vector_name, r.error, [(d.field, d.expected, d.actual) for d in r.divergences])
        for r in result.test_results
        if not r.passed
    ]
    assert failures == []
    assert result.total_tests > 0
    assert result.pass_rate == 100.0


def test_passing_vector() -> None:
    result = run_vector(_vector())
    assert result.passed
    assert result.divergences == []


def test_action_divergence_reported() -> None:
    result = run_vector(_vector(expected={"role": "seller", "actions": ["release"]}))
    assert not result.passed
    fields = {d.field for d in result.divergences}
    assert fields == {"role", "actions"}
    role = next(d for d in result.divergences if d.field == "role")
    assert (role.expected, role.actual) == ("seller", "buyer")


def test_timer_divergence_reported() -> None:
    vector = _vector(expected={"timers": {"acceptance": {"has_limit": True}}})
    result = run_vector(vector)
    assert [d.field for d in result.divergences] == ["timers.acceptance.has_limit"]


def test_intent_outcome_checked() -> None:
    vector = _vector(
        intent={"action": "release", "params": []},
        expected={"intent": {"ok": False, "error": "ACTION_NOT_AVAILABLE"}},
    )
    result = run_vector(vector)
    assert [d.field for d in result.divergences] == ["intent.ok"]


def test_broken_vector_is_an_error() -> None:
    vector = _vector()
    vector["record"] = {"id": "0xdead"}
    result = run_vector(vector)
    assert not result.passed
    assert "missing field" in result.error


def test_suite_stop_on_first_failure(tmp_path) -> None:
    suite = {
        "test_vectors": [
            _vector(name="bad", expected={"role": "agent"}),
            _vector(name="good"),
        ]
    }
    path = tmp_path / "suite.yaml"
    path.write_text(yaml.safe_dump(suite))

    full = run_suite(str(path))
    assert (full.total_tests, full.passed_tests, full.failed_tests) == (2, 1, 1)
    assert full.test_results[0].suite_name == "suite"

    stopped = run_suite(str(path), stop_on_first_failure=True)
    assert (stopped.total_tests, stopped.skipped_tests) == (1, 1)
