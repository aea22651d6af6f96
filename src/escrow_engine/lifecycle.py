"""Escrow lifecycle transition table.

The ledger applies these transitions; the engine only uses the table to tell
whether a freshly fetched snapshot is a plausible successor of the previous
one. It never advances a record locally.
"""

from __future__ import annotations

import logging
from typing import Optional

from .errors import ErrorCode, StaleSnapshotError, ValidationError
from .types import TERMINAL_STATES, Action, EscrowRecord, EscrowState

logger = logging.getLogger(__name__)

_S = EscrowState

_OPEN_AFTER_ACCEPTANCE = frozenset({_S.ACTIVE, _S.FULFILLED, _S.DISPUTED, _S.AGENT_INVITED})

# action -> (source states, target state); split actions leave the state alone.
TRANSITIONS: dict[Action, tuple[frozenset[EscrowState], Optional[EscrowState]]] = {
    Action.ACCEPT: (frozenset({_S.PENDING}), _S.ACTIVE),
    Action.DECLINE: (frozenset({_S.PENDING}), _S.REFUNDED),
    Action.CANCEL_EXPIRED: (frozenset({_S.PENDING}), _S.REFUNDED),
    Action.CONFIRM_FULFILLMENT: (frozenset({_S.ACTIVE}), _S.FULFILLED),
    Action.OPEN_DISPUTE: (frozenset({_S.ACTIVE, _S.FULFILLED}), _S.DISPUTED),
    Action.RELEASE: (_OPEN_AFTER_ACCEPTANCE, _S.RELEASED),
    Action.RELEASE_AFTER_PROTECTION: (frozenset({_S.FULFILLED}), _S.RELEASED),
    Action.SELLER_REFUND: (_OPEN_AFTER_ACCEPTANCE, _S.REFUNDED),
    Action.INVITE_AGENT: (frozenset({_S.DISPUTED}), _S.AGENT_INVITED),
    Action.AGENT_RESOLVE: (frozenset({_S.AGENT_INVITED}), _S.AGENT_RESOLVED),
    Action.CLAIM_AGENT_TIMEOUT: (frozenset({_S.AGENT_INVITED}), _S.DISPUTED),
    Action.PROPOSE_SPLIT: (_OPEN_AFTER_ACCEPTANCE, None),
    Action.CANCEL_SPLIT: (_OPEN_AFTER_ACCEPTANCE, None),
    # The second approval settles the split.
    Action.APPROVE_SPLIT: (_OPEN_AFTER_ACCEPTANCE, _S.SPLIT),
}


def next_states(state: EscrowState) -> frozenset[EscrowState]:
    """States one ledger transition away from `state`."""
    if state in TERMINAL_STATES:
        return frozenset()
    return frozenset(
        target
        for sources, target in TRANSITIONS.values()
        if target is not None and state in sources
    )


def reachable_states(state: EscrowState) -> frozenset[EscrowState]:
    """`state` plus every state reachable from it."""
    seen = {state}
    frontier = [state]
    while frontier:
        current = frontier.pop()
        for target in next_states(current):
            if target not in seen:
                seen.add(target)
                frontier.append(target)
    return frozenset(seen)


def predicted_target(state: EscrowState, action: Action) -> Optional[EscrowState]:
    """Ledger state expected after `action` succeeds from `state`, if it moves."""
    sources, target = TRANSITIONS[action]
    if state not in sources:
        return None
    return target


def check_successor(previous: EscrowRecord, current: EscrowRecord) -> None:
    """Reject a fresh snapshot that regresses relative to the previous one.

    Indexers can lag the ledger; a snapshot whose state cannot follow the
    previous state is treated as stale rather than trusted.
    """
    if previous.id.lower() != current.id.lower():
        raise ValidationError(
            ErrorCode.RECORD_MISMATCH,
            f"snapshot for {current.id} cannot replace {previous.id}",
        )
    if current.state not in reachable_states(previous.state):
        logger.debug(f"{current.id}: {previous.state.value} -> {current.state.value} is a regression")
        raise StaleSnapshotError(
            ErrorCode.SNAPSHOT_REGRESSED,
            f"state {current.state.value} cannot follow {previous.state.value}",
        )
