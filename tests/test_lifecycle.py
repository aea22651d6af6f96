"""Lifecycle transition specs."""

from __future__ import annotations

import pytest

from escrow_engine.errors import ErrorCode, StaleSnapshotError, ValidationError
from escrow_engine.lifecycle import (
    TRANSITIONS,
    check_successor,
    next_states,
    predicted_target,
    reachable_states,
)
from escrow_engine.test_accounts import BUYER, SELLER, TOKEN
from escrow_engine.types import TERMINAL_STATES, Action, EscrowRecord, EscrowState

S = EscrowState


def _record(state: EscrowState, escrow_id: str = "0x00000000000000000000000000000000000000aa") -> EscrowRecord:
    return EscrowRecord(
        id=escrow_id,
        buyer=BUYER,
        seller=SELLER,
        token=TOKEN,
        amount=1_000,
        state=state,
        created_at=1_700_000_000,
    )


def test_every_action_has_a_transition() -> None:
    assert set(TRANSITIONS) == set(Action)


def test_next_states_from_pending() -> None:
    assert next_states(S.PENDING) == {S.ACTIVE, S.REFUNDED}


def test_next_states_from_active() -> None:
    assert next_states(S.ACTIVE) == {S.FULFILLED, S.DISPUTED, S.RELEASED, S.REFUNDED, S.SPLIT}


def test_next_states_from_agent_invited() -> None:
    assert next_states(S.AGENT_INVITED) == {S.AGENT_RESOLVED, S.DISPUTED, S.RELEASED, S.REFUNDED, S.SPLIT}


@pytest.mark.parametrize("state", sorted(TERMINAL_STATES, key=lambda s: s.value))
def test_terminal_states_have_no_successors(state: EscrowState) -> None:
    assert next_states(state) == frozenset()
    assert reachable_states(state) == {state}


def test_reachable_from_pending_covers_everything() -> None:
    assert reachable_states(S.PENDING) == set(EscrowState)


def test_reachable_from_disputed() -> None:
    reachable = reachable_states(S.DISPUTED)
    assert S.AGENT_INVITED in reachable
    assert S.AGENT_RESOLVED in reachable
    assert not reachable & {S.PENDING, S.ACTIVE, S.FULFILLED}


def test_predicted_target() -> None:
    assert predicted_target(S.FULFILLED, Action.RELEASE_AFTER_PROTECTION) is S.RELEASED
    assert predicted_target(S.AGENT_INVITED, Action.CLAIM_AGENT_TIMEOUT) is S.DISPUTED
    assert predicted_target(S.PENDING, Action.RELEASE) is None
    assert predicted_target(S.ACTIVE, Action.PROPOSE_SPLIT) is None


# --- check_successor specs ---


def test_same_state_is_a_valid_successor() -> None:
    check_successor(_record(S.ACTIVE), _record(S.ACTIVE))


def test_forward_transition_accepted() -> None:
    check_successor(_record(S.ACTIVE), _record(S.FULFILLED))
    check_successor(_record(S.PENDING), _record(S.AGENT_RESOLVED))
    check_successor(_record(S.AGENT_INVITED), _record(S.DISPUTED))


def test_id_compared_case_insensitively() -> None:
    check_successor(
        _record(S.ACTIVE, "0x00000000000000000000000000000000000000AA"),
        _record(S.FULFILLED, "0x00000000000000000000000000000000000000aa"),
    )


@pytest.mark.parametrize(
    "previous,current",
    [
        (S.FULFILLED, S.ACTIVE),
        (S.ACTIVE, S.PENDING),
        (S.RELEASED, S.ACTIVE),
        (S.DISPUTED, S.FULFILLED),
        (S.REFUNDED, S.RELEASED),
    ],
)
def test_regression_rejected(previous: EscrowState, current: EscrowState) -> None:
    with pytest.raises(StaleSnapshotError) as exc:
        check_successor(_record(previous), _record(current))
    assert exc.value.code == ErrorCode.SNAPSHOT_REGRESSED


def test_different_escrow_rejected() -> None:
    with pytest.raises(ValidationError) as exc:
        check_successor(
            _record(S.ACTIVE),
            _record(S.ACTIVE, "0x00000000000000000000000000000000000000bb"),
        )
    assert exc.value.code == ErrorCode.RECORD_MISMATCH
