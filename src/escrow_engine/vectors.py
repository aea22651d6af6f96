"""
Vector runner for the escrow engine.

Each suite is a YAML file with a `test_vectors` list. A vector pins a
snapshot, an identity and a timestamp, and lists the expected role, action
set, timers and (optionally) the outcome of building an intent.
"""

from __future__ import annotations

import glob
import logging
import os
import time
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .errors import EngineError
from .facade import EscrowView, build_intent, build_view
from .snapshot_io import record_from_json
from .types import Action

logger = logging.getLogger(__name__)

_TIMER_NAMES = ("acceptance", "protection", "agent_response")


@dataclass
class Divergence:
    """A computed value that differs from the vector's expectation."""
    field: str
    expected: Any
    actual: Any
    vector_name: str
    details: Optional[str] = None


@dataclass
class VectorResult:
    """Result of a single vector."""
    vector_name: str
    suite_name: str
    passed: bool
    execution_time_ms: float
    divergences: List[Divergence] = field(default_factory=list)
    error: Optional[str] = None


@dataclass
class SuiteResult:
    """Result of a suite (collection of vectors)."""
    suite_name: str
    total_tests: int
    passed_tests: int
    failed_tests: int
    skipped_tests: int
    execution_time_ms: float
    test_results: List[VectorResult]

    @property
    def pass_rate(self) -> float:
        if self.total_tests == 0:
            return 0.0
        return self.passed_tests / self.total_tests * 100


def _compare(name: str, path: str, expected: Any, actual: Any, out: List[Divergence]) -> None:
    if expected != actual:
        out.append(Divergence(field=path, expected=expected, actual=actual, vector_name=name))


def _check_intent(name: str, request: Dict[str, Any], view: EscrowView, expected: Dict[str, Any]) -> List[Divergence]:
    divergences: List[Divergence] = []
    try:
        intent = build_intent(
            view,
            request["action"],
            tuple(request.get("params", ())),
            now=request.get("now"),
        )
    except EngineError as e:
        _compare(name, "intent.ok", expected.get("ok", False), False, divergences)
        if "error" in expected:
            _compare(name, "intent.error", expected["error"], e.code.name, divergences)
        return divergences

    _compare(name, "intent.ok", expected.get("ok", True), True, divergences)
    if "params" in expected:
        _compare(name, "intent.params", list(expected["params"]), list(intent.call_args()), divergences)
    return divergences


def compute_divergences(vector: Dict[str, Any]) -> List[Divergence]:
    name = vector.get("name", "unknown")
    expected = vector.get("expected", {})
    record = record_from_json(vector["record"])
    view = build_view(
        record,
        vector.get("identity"),
        vector["now"],
        vector.get("agent_response_time"),
    )

    divergences: List[Divergence] = []
    if "role" in expected:
        _compare(name, "role", expected["role"], view.role.value, divergences)
    if "actions" in expected:
        wanted = sorted(Action.parse(a).value for a in expected["actions"])
        _compare(name, "actions", wanted, sorted(a.value for a in view.actions), divergences)

    for timer_name, fields in (expected.get("timers") or {}).items():
        if timer_name not in _TIMER_NAMES:
            raise ValueError(f"unknown timer: {timer_name}")
        actual = asdict(getattr(view.timers, timer_name))
        for key, value in fields.items():
            _compare(name, f"timers.{timer_name}.{key}", value, actual[key], divergences)

    if "intent" in vector:
        divergences.extend(_check_intent(name, vector["intent"], view, expected.get("intent", {})))
    return divergences


def run_vector(vector: Dict[str, Any]) -> VectorResult:
    """Run a single vector."""
    vector_name = vector.get("name", "unknown")
    start_time = time.time()

    try:
        divergences = compute_divergences(vector)
    except Exception as e:
        logger.exception(f"Error running vector {vector_name}")
        return VectorResult(
            vector_name=vector_name,
            suite_name="",
            passed=False,
            execution_time_ms=(time.time() - start_time) * 1000,
            error=str(e),
        )

    for d in divergences:
        logger.debug(f"    {d.field}: expected {d.expected!r}, got {d.actual!r}")
    return VectorResult(
        vector_name=vector_name,
        suite_name="",
        passed=not divergences,
        execution_time_ms=(time.time() - start_time) * 1000,
        divergences=divergences,
    )


def run_suite(suite_path: str, stop_on_first_failure: bool = False) -> SuiteResult:
    """Run a suite from a YAML file."""
    suite_name = Path(suite_path).stem
    logger.info(f"Running suite: {suite_name}")

    start_time = time.time()

    with open(suite_path) as f:
        suite = yaml.safe_load(f) or {}

    vectors = suite.get("test_vectors", [])
    test_results = []

    for vector in vectors:
        result = run_vector(vector)
        result.suite_name = suite_name
        test_results.append(result)

        status = "PASS" if result.passed else "FAIL"
        logger.info(f"  [{status}] {result.vector_name}")

        if not result.passed and stop_on_first_failure:
            break

    passed = sum(1 for r in test_results if r.passed)
    failed = sum(1 for r in test_results if not r.passed)

    return SuiteResult(
        suite_name=suite_name,
        total_tests=len(test_results),
        passed_tests=passed,
        failed_tests=failed,
        skipped_tests=len(vectors) - len(test_results),
        execution_time_ms=(time.time() - start_time) * 1000,
        test_results=test_results,
    )


def find_vector_files(vector_dir: str) -> List[str]:
    """Find all vector YAML files in directory."""
    patterns = [
        os.path.join(vector_dir, "**", "*.yaml"),
        os.path.join(vector_dir, "**", "*.yml"),
    ]

    files = []
    for pattern in patterns:
        files.extend(glob.glob(pattern, recursive=True))

    return sorted(files)
