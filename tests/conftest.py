"""Pytest hooks to generate escrow vector suites."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Optional

import pytest
import yaml

from escrow_engine.facade import EscrowView, build_view
from escrow_engine.snapshot_io import record_to_json
from escrow_engine.timers import FixedClock
from escrow_engine.types import EscrowRecord

T0 = 1_700_000_000

_VIEW_CASES: dict[str, list[dict[str, Any]]] = {}
_VECTOR_CASES: dict[str, list[dict[str, Any]]] = {}


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--output",
        action="store",
        default=None,
        help="Output directory for generated vector suites",
    )


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(T0)


@pytest.fixture
def view_test_group() -> Callable[..., EscrowView]:
    """Compute a view and collect it as a vector under a specific suite path."""

    def _view_test_group(
        rel_path: str,
        name: str,
        record: EscrowRecord,
        identity: Optional[str],
        now: int,
        agent_response_time: Optional[int] = None,
    ) -> EscrowView:
        view = build_view(record, identity, now, agent_response_time)
        vector: dict[str, Any] = {
            "name": name,
            "record": record_to_json(record),
            "identity": identity,
            "now": now,
        }
        if agent_response_time is not None:
            vector["agent_response_time"] = agent_response_time
        vector["expected"] = {
            "role": view.role.value,
            "actions": sorted(a.value for a in view.actions),
        }
        _VIEW_CASES.setdefault(rel_path, []).append(vector)
        return view

    return _view_test_group


@pytest.fixture
def vector_test_group() -> Callable[[str, dict[str, Any]], None]:
    """Collect pre-built test_vectors under a specific suite path."""

    def _vector_test_group(rel_path: str, vector: dict[str, Any]) -> None:
        _VECTOR_CASES.setdefault(rel_path, []).append(vector)

    return _vector_test_group


def pytest_sessionfinish(session: pytest.Session, exitstatus: int) -> None:
    output_dir = session.config.getoption("--output")
    if not output_dir:
        return

    out = Path(output_dir)
    out.mkdir(parents=True, exist_ok=True)

    suites: dict[str, list[dict[str, Any]]] = {}
    for cases in (_VIEW_CASES, _VECTOR_CASES):
        for rel_path, vectors in cases.items():
            suites.setdefault(rel_path, []).extend(vectors)

    for rel_path, vectors in suites.items():
        if not vectors:
            continue
        target = out / rel_path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(yaml.safe_dump({"test_vectors": vectors}, sort_keys=False))
