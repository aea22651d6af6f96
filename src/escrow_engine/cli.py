"""Command-line entry point: inspect snapshots and run vector suites."""

from __future__ import annotations

import json
import logging
import os
import sys
from dataclasses import asdict
from typing import Any, Dict, Optional

import click

from .config import EngineConfig, chain_name
from .errors import EngineError
from .facade import EscrowView, build_view
from .snapshot_io import load_record
from .timers import SystemClock, format_remaining_time
from .types import ACTION_LABELS
from .vectors import SuiteResult, find_vector_files, run_suite

logger = logging.getLogger(__name__)


def _configure_logging(config: EngineConfig) -> None:
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(message)s",
    )


def _view_to_json(view: EscrowView) -> Dict[str, Any]:
    return {
        "id": view.record.id,
        "state": view.record.state.value,
        "identity": view.identity,
        "now": view.now,
        "role": view.role.value,
        "terminal": view.is_terminal,
        "has_agent": view.has_agent,
        "is_proposer": view.is_proposer,
        "timers": {
            "acceptance": asdict(view.timers.acceptance),
            "protection": asdict(view.timers.protection),
            "agent_response": asdict(view.timers.agent_response),
        },
        "actions": sorted(a.value for a in view.actions),
    }


def _print_view(view: EscrowView) -> None:
    record = view.record
    click.echo(f"Escrow:  {record.id} ({chain_name(record.chain_id)})")
    click.echo(f"State:   {record.state.value}")
    click.echo(f"Role:    {view.role.value}")
    for name in ("acceptance", "protection", "agent_response"):
        timer = getattr(view.timers, name)
        if not timer.has_limit:
            continue
        click.echo(f"Timer:   {name} {format_remaining_time(timer.remaining_seconds)} ({timer.progress_percent:.1f}%)")
    proposal = view.split_proposal
    if proposal is not None:
        click.echo(
            f"Split:   {proposal.buyer_bps}/{proposal.seller_bps} bps by {proposal.proposer} "
            f"(buyer_approved={proposal.buyer_approved}, seller_approved={proposal.seller_approved})"
        )
    if not view.actions:
        click.echo("Actions: none")
        return
    click.echo("Actions:")
    for action in sorted(view.actions, key=lambda a: a.value):
        click.echo(f"  {action.value:<24} {ACTION_LABELS[action]}")


@click.group()
@click.option("--verbose", is_flag=True, help="Enable verbose output")
@click.pass_context
def main(ctx: click.Context, verbose: bool) -> None:
    """Escrow lifecycle and permission engine."""
    try:
        config = EngineConfig.from_env()
    except ValueError as e:
        raise click.BadParameter(str(e)) from e
    if verbose:
        config.verbose = True
        config.log_level = "DEBUG"
    _configure_logging(config)
    if config.verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    ctx.obj = config


@main.command()
@click.argument("snapshot", type=click.Path(exists=True, dir_okay=False))
@click.option("--identity", default=None, help="Address of the caller")
@click.option("--now", "now", type=int, default=None, help="Unix timestamp to evaluate at")
@click.option("--agent-response-time", type=int, default=None, help="Agent response window in seconds")
@click.option("--json", "as_json", is_flag=True, help="Print the view as JSON")
@click.pass_obj
def inspect(
    config: EngineConfig,
    snapshot: str,
    identity: Optional[str],
    now: Optional[int],
    agent_response_time: Optional[int],
    as_json: bool,
) -> None:
    """Show role, timers and available actions for SNAPSHOT."""
    try:
        record = load_record(snapshot)
    except EngineError as e:
        logger.error(f"Invalid snapshot {snapshot}: {e}")
        sys.exit(1)

    if now is None:
        now = SystemClock().now()
    view = build_view(record, identity, now, agent_response_time, config)

    if as_json:
        click.echo(json.dumps(_view_to_json(view), indent=2))
    else:
        _print_view(view)


def _print_summary(results: list[SuiteResult]) -> None:
    total = sum(r.total_tests for r in results)
    passed = sum(r.passed_tests for r in results)
    failed = sum(r.failed_tests for r in results)
    click.echo(f"{len(results)} suites, {total} vectors: {passed} passed, {failed} failed")
    for suite in results:
        for result in suite.test_results:
            if result.passed:
                continue
            click.echo(f"FAIL {suite.suite_name}/{result.vector_name}")
            if result.error:
                click.echo(f"  error: {result.error}")
            for d in result.divergences:
                click.echo(f"  {d.field}: expected {d.expected!r}, got {d.actual!r}")


@main.command()
@click.argument("path", required=False, default=None)
@click.option("--verbose", is_flag=True, help="Enable verbose output")
@click.option("--stop-on-failure", is_flag=True, help="Stop on first vector failure")
@click.pass_obj
def vectors(config: EngineConfig, path: Optional[str], verbose: bool, stop_on_failure: bool) -> None:
    """Run vector suites from PATH (file or directory)."""
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    vector_dir = path or config.vector_dir
    if os.path.isfile(vector_dir):
        vector_files = [vector_dir]
    else:
        vector_files = find_vector_files(vector_dir)

    if not vector_files:
        logger.error(f"No vector files found in {vector_dir}")
        sys.exit(1)

    logger.info(f"Found {len(vector_files)} vector files")

    results = []
    for vector_file in vector_files:
        result = run_suite(vector_file, stop_on_first_failure=stop_on_failure)
        results.append(result)
        if result.failed_tests and stop_on_failure:
            break

    _print_summary(results)
    sys.exit(0 if all(r.failed_tests == 0 for r in results) else 1)


if __name__ == "__main__":
    main()
