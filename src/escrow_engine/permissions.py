"""Permission matrix: which actions a role may invoke right now.

Mirrors the escrow contract's access rules so callers never attempt an action
the settlement layer would reject. The result is advisory; the ledger stays
authoritative.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

from .errors import ErrorCode, PermissionDenied
from .roles import addresses_equal, is_valid_address, party_address
from .types import (
    Action,
    EscrowRecord,
    EscrowState,
    EscrowTimers,
    ExpiryFlags,
    Role,
    SplitProposal,
    is_terminal_state,
)

NO_ACTIONS: frozenset[Action] = frozenset()

_RELEASABLE_STATES = frozenset({
    EscrowState.ACTIVE,
    EscrowState.FULFILLED,
    EscrowState.DISPUTED,
    EscrowState.AGENT_INVITED,
})

_DISPUTABLE_STATES = frozenset({
    EscrowState.ACTIVE,
    EscrowState.FULFILLED,
})


@dataclass(frozen=True)
class _Conditions:
    state: EscrowState
    flags: ExpiryFlags
    has_agent: bool
    has_proposal: bool
    is_proposer: bool


_Rule = Callable[[_Conditions], bool]


def _can_cancel_expired(c: _Conditions) -> bool:
    return c.state is EscrowState.PENDING and c.flags.acceptance_expired


def _can_release(c: _Conditions) -> bool:
    return c.state in _RELEASABLE_STATES


def _can_open_dispute(c: _Conditions) -> bool:
    return c.state in _DISPUTABLE_STATES


def _can_invite_agent(c: _Conditions) -> bool:
    return c.state is EscrowState.DISPUTED and c.has_agent


def _can_claim_agent_timeout(c: _Conditions) -> bool:
    return c.state is EscrowState.AGENT_INVITED and c.flags.agent_timeout_expired


def _can_propose_split(c: _Conditions) -> bool:
    return c.state is not EscrowState.PENDING


def _can_approve_split(c: _Conditions) -> bool:
    return c.state is not EscrowState.PENDING and c.has_proposal and not c.is_proposer


def _can_cancel_split(c: _Conditions) -> bool:
    return c.state is not EscrowState.PENDING and c.is_proposer


def _is_pending(c: _Conditions) -> bool:
    return c.state is EscrowState.PENDING


def _can_confirm_fulfillment(c: _Conditions) -> bool:
    return c.state is EscrowState.ACTIVE


def _can_release_after_protection(c: _Conditions) -> bool:
    return c.state is EscrowState.FULFILLED and c.flags.protection_expired


def _can_seller_refund(c: _Conditions) -> bool:
    return c.state is not EscrowState.PENDING


def _can_agent_resolve(c: _Conditions) -> bool:
    return c.state is EscrowState.AGENT_INVITED


# Rules shared by both parties.
_PARTY_RULES: dict[Action, _Rule] = {
    Action.INVITE_AGENT: _can_invite_agent,
    Action.CLAIM_AGENT_TIMEOUT: _can_claim_agent_timeout,
    Action.PROPOSE_SPLIT: _can_propose_split,
    Action.APPROVE_SPLIT: _can_approve_split,
    Action.CANCEL_SPLIT: _can_cancel_split,
}

_BUYER_RULES: dict[Action, _Rule] = {
    Action.CANCEL_EXPIRED: _can_cancel_expired,
    Action.RELEASE: _can_release,
    Action.OPEN_DISPUTE: _can_open_dispute,
    **_PARTY_RULES,
}

_SELLER_RULES: dict[Action, _Rule] = {
    Action.ACCEPT: _is_pending,
    Action.DECLINE: _is_pending,
    Action.CONFIRM_FULFILLMENT: _can_confirm_fulfillment,
    Action.RELEASE_AFTER_PROTECTION: _can_release_after_protection,
    Action.SELLER_REFUND: _can_seller_refund,
    **_PARTY_RULES,
}

_AGENT_RULES: dict[Action, _Rule] = {
    Action.AGENT_RESOLVE: _can_agent_resolve,
}

PERMISSION_RULES: dict[Role, dict[Action, _Rule]] = {
    Role.BUYER: _BUYER_RULES,
    Role.SELLER: _SELLER_RULES,
    Role.AGENT: _AGENT_RULES,
    Role.VIEWER: {},
}


def has_active_split_proposal(proposal: Optional[SplitProposal]) -> bool:
    return proposal is not None and is_valid_address(proposal.proposer)


def is_split_proposer(proposal: Optional[SplitProposal], identity: Optional[str]) -> bool:
    return has_active_split_proposal(proposal) and addresses_equal(proposal.proposer, identity)


def compute_available_actions(
    state: Optional[EscrowState],
    role: Role,
    flags: ExpiryFlags,
    has_agent: bool,
    split_proposal: Optional[SplitProposal],
    is_proposer: bool,
) -> frozenset[Action]:
    """Exact set of actions `role` may invoke in `state`.

    Viewers, a missing state and terminal states always yield the empty set.
    """
    if role is Role.VIEWER or state is None or is_terminal_state(state):
        return NO_ACTIONS

    has_proposal = has_active_split_proposal(split_proposal)
    conditions = _Conditions(
        state=state,
        flags=flags,
        has_agent=has_agent,
        has_proposal=has_proposal,
        is_proposer=has_proposal and is_proposer,
    )
    rules = PERMISSION_RULES[role]
    return frozenset(action for action, rule in rules.items() if rule(conditions))


def available_actions(
    record: EscrowRecord,
    role: Role,
    timers: EscrowTimers,
    identity: Optional[str] = None,
) -> frozenset[Action]:
    """Record-level wrapper deriving agent and proposal facts from the snapshot."""
    proposal = record.split_proposal
    caller = identity or party_address(record, role)
    return compute_available_actions(
        state=record.state,
        role=role,
        flags=timers.flags(),
        has_agent=is_valid_address(record.agent),
        split_proposal=proposal,
        is_proposer=is_split_proposer(proposal, caller),
    )


def explain_unavailable(
    action: Action,
    record: EscrowRecord,
    role: Role,
    timers: EscrowTimers,
) -> str:
    """Short reason an action is not available, for error messages."""
    state = record.state
    flags = timers.flags()
    if role is Role.VIEWER:
        return "viewers cannot act on an escrow"
    if is_terminal_state(state):
        return f"escrow is finalized ({state.value})"
    if action not in PERMISSION_RULES[role]:
        return f"{action.value} is not available to the {role.value}"
    if action is Action.CANCEL_EXPIRED and state is EscrowState.PENDING and not flags.acceptance_expired:
        return "seller acceptance window is still open"
    if action is Action.RELEASE_AFTER_PROTECTION and state is EscrowState.FULFILLED and not flags.protection_expired:
        return "buyer protection period is still active"
    if action is Action.CLAIM_AGENT_TIMEOUT and state is EscrowState.AGENT_INVITED and not flags.agent_timeout_expired:
        return "agent response timeout has not been reached"
    if action is Action.INVITE_AGENT and state is EscrowState.DISPUTED and not is_valid_address(record.agent):
        return "no agent is assigned to this escrow"
    if action is Action.APPROVE_SPLIT and state is not EscrowState.PENDING:
        if not has_active_split_proposal(record.split_proposal):
            return "there is no active split proposal"
        return "cannot approve your own split proposal"
    if action is Action.CANCEL_SPLIT and state is not EscrowState.PENDING:
        return "only the proposer can cancel the split proposal"
    return f"{action.value} is not available in state {state.value}"


def require_action(
    actions: frozenset[Action],
    action: Action,
    reason: Optional[str] = None,
) -> None:
    if action not in actions:
        raise PermissionDenied(
            ErrorCode.ACTION_NOT_AVAILABLE,
            reason or f"{action.value} is not available",
        )
