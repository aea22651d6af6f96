"""Composition of role, timers and permissions into a single escrow view.

Views are values: nothing here caches, subscribes or schedules. Callers tick
`now` themselves (see `EscrowView.needs_tick`) and re-fetch snapshots after
every executed action.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from .config import EngineConfig
from .errors import EngineError, ErrorCode
from .executor import ActionExecutor, ActionSerializer, execute_intent
from .intents import build_intent as _build_intent
from .lifecycle import check_successor
from .permissions import available_actions, is_split_proposer
from .roles import RoleInfo, is_valid_address, resolve_role
from .timers import Clock, SystemClock, compute_timers, has_live_timer
from .types import (
    Action,
    ActionIntent,
    EscrowRecord,
    EscrowTimers,
    Receipt,
    Role,
    SplitProposal,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EscrowView:
    record: EscrowRecord
    identity: Optional[str]
    now: int
    agent_response_time: Optional[int]
    role_info: RoleInfo
    timers: EscrowTimers
    actions: frozenset[Action]

    @property
    def role(self) -> Role:
        return self.role_info.role

    @property
    def is_terminal(self) -> bool:
        return self.record.is_terminal

    @property
    def has_agent(self) -> bool:
        return is_valid_address(self.record.agent)

    @property
    def split_proposal(self) -> Optional[SplitProposal]:
        return self.record.split_proposal

    @property
    def is_proposer(self) -> bool:
        return is_split_proposer(self.record.split_proposal, self.identity)

    @property
    def needs_tick(self) -> bool:
        return has_live_timer(self.record)

    def can(self, action: Action | str) -> bool:
        return Action.parse(action) in self.actions


def _resolve_response_time(agent_response_time: Optional[int], config: Optional[EngineConfig]) -> Optional[int]:
    if agent_response_time is not None:
        return agent_response_time
    if config is not None:
        return config.agent_response_time
    return None


def build_view(
    record: EscrowRecord,
    identity: Optional[str],
    now: int,
    agent_response_time: Optional[int] = None,
    config: Optional[EngineConfig] = None,
) -> EscrowView:
    """Derive everything a caller needs to render or act on `record` at `now`.

    Without an agent response time (argument or config) the agent timer has
    no limit and claimAgentTimeout never becomes available.
    """
    response_time = _resolve_response_time(agent_response_time, config)
    role_info = resolve_role(record, identity)
    timers = compute_timers(record, now, response_time)
    actions = available_actions(record, role_info.role, timers, identity)
    return EscrowView(
        record=record,
        identity=identity,
        now=now,
        agent_response_time=response_time,
        role_info=role_info,
        timers=timers,
        actions=actions,
    )


def refresh(view: EscrowView, now: int) -> EscrowView:
    """Recompute `view` for a new `now`; the snapshot is unchanged."""
    return build_view(view.record, view.identity, now, view.agent_response_time)


def replace_record(view: EscrowView, record: EscrowRecord, now: Optional[int] = None) -> EscrowView:
    """Recompute `view` for a freshly fetched snapshot of the same escrow.

    Pass the fetch time as `now`; without it the old `view.now` is kept and
    timer-gated actions reflect that instant until the next `refresh`.
    """
    check_successor(view.record, record)
    return build_view(record, view.identity, view.now if now is None else now, view.agent_response_time)


def build_intent(
    view: EscrowView,
    action: Action | str,
    params: Sequence[int] = (),
    now: Optional[int] = None,
) -> ActionIntent:
    """Build an intent for an action offered by `view`, re-checked at `now`.

    An action the view offered that is gone at `now` raises
    StaleSnapshotError; one it never offered raises PermissionDenied.
    """
    return _build_intent(
        view.record,
        view.identity,
        action,
        view.now if now is None else now,
        view.agent_response_time,
        params,
        decided_actions=view.actions,
    )


class EscrowEngine:
    """Wires the external capabilities into view and execution calls."""

    def __init__(
        self,
        resolve_identity: Callable[[], Optional[str]],
        clock: Optional[Clock] = None,
        agent_response_time: Optional[int] = None,
        executor: Optional[ActionExecutor] = None,
        serializer: Optional[ActionSerializer] = None,
        config: Optional[EngineConfig] = None,
    ):
        self.resolve_identity = resolve_identity
        self.clock = clock or SystemClock()
        self.agent_response_time = _resolve_response_time(agent_response_time, config)
        self.executor = executor
        self.serializer = serializer

    def view(self, record: EscrowRecord) -> EscrowView:
        view = build_view(record, self.resolve_identity(), self.clock.now(), self.agent_response_time)
        logger.debug(
            f"{record.id}: {record.state.value} as {view.role.value}, "
            f"actions={sorted(a.value for a in view.actions)}"
        )
        return view

    def intent(self, record: EscrowRecord, action: Action | str, *params: int) -> ActionIntent:
        return self.intent_from_view(self.view(record), action, *params)

    def intent_from_view(self, view: EscrowView, action: Action | str, *params: int) -> ActionIntent:
        intent = build_intent(view, action, params, now=self.clock.now())
        logger.info(f"{intent.escrow_id}: {intent.role.value} intends {intent.action.value} {intent.call_args()}")
        return intent

    async def perform(self, record: EscrowRecord, action: Action | str, *params: int) -> Receipt:
        return await self.submit(self.view(record), action, *params)

    async def submit(self, view: EscrowView, action: Action | str, *params: int) -> Receipt:
        """Execute an action chosen from `view`; the view is re-checked first."""
        if self.executor is None:
            raise EngineError(ErrorCode.INTERNAL_ERROR, "no action executor configured")
        intent = self.intent_from_view(view, action, *params)
        if self.serializer is not None:
            return await self.serializer.run(self.executor, intent)
        return await execute_intent(self.executor, intent)
