"""Action intents: validated requests handed to the external executor.

An intent is only built after the action is confirmed available for the
caller at `now` and its parameters pass the split rules. Nothing partial is
ever emitted.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from blake3 import blake3

from .config import BPS_DENOMINATOR
from .errors import ErrorCode, PermissionDenied, StaleSnapshotError, ValidationError
from .permissions import available_actions, explain_unavailable
from .roles import resolve_role
from .split import approve_split, propose_split
from .timers import compute_timers
from .types import Action, ActionIntent, EscrowRecord, Role, validate_split_bps

logger = logging.getLogger(__name__)

_TIMER_GATED = frozenset({
    Action.CANCEL_EXPIRED,
    Action.RELEASE_AFTER_PROTECTION,
    Action.CLAIM_AGENT_TIMEOUT,
})


def _u256_be(value: int) -> bytes:
    if value < 0:
        raise ValueError("u256 must be non-negative")
    return int(value).to_bytes(32, "big", signed=False)


def _u64_be(value: int) -> bytes:
    if value < 0:
        raise ValueError("u64 must be non-negative")
    return int(value).to_bytes(8, "big", signed=False)


def _field(value: str) -> bytes:
    raw = value.encode("utf-8")
    return _u64_be(len(raw)) + raw


def compute_intent_id(
    escrow_id: str,
    action: Action,
    identity: str,
    created_at: int,
    params: tuple[tuple[str, int], ...],
) -> str:
    """BLAKE3-256 over the intent fields in canonical order."""
    buf = bytearray()
    buf += _field(escrow_id.lower())
    buf += _field(action.value)
    buf += _field(identity.lower())
    buf += _u64_be(created_at)
    buf += _u64_be(len(params))
    for name, value in params:
        buf += _field(name)
        buf += _u256_be(value)
    return blake3(bytes(buf)).hexdigest()


def _expect_params(action: Action, args: Sequence[int], count: int) -> None:
    if len(args) != count:
        raise ValidationError(
            ErrorCode.INVALID_PARAMS,
            f"{action.value} takes {count} parameter(s), got {len(args)}",
        )
    for value in args:
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValidationError(ErrorCode.INVALID_PARAMS, f"{action.value} parameters must be integers")


def _intent_params(
    record: EscrowRecord,
    role: Role,
    action: Action,
    args: Sequence[int],
) -> tuple[tuple[str, int], ...]:
    if action is Action.PROPOSE_SPLIT:
        if len(args) == 2:
            _expect_params(action, args, 2)
            if args[0] + args[1] != BPS_DENOMINATOR:
                raise ValidationError(
                    ErrorCode.INVALID_SPLIT,
                    f"split must sum to {BPS_DENOMINATOR} bps, got {args[0] + args[1]}",
                )
        else:
            _expect_params(action, args, 1)
        proposal = propose_split(record, role, args[0])
        return (("buyerBps", proposal.buyer_bps), ("sellerBps", proposal.seller_bps))

    if action is Action.APPROVE_SPLIT:
        _expect_params(action, args, 2)
        approve_split(record, role, args[0], args[1])
        return (("expectedBuyerBps", args[0]), ("expectedSellerBps", args[1]))

    if action is Action.AGENT_RESOLVE:
        _expect_params(action, args, 2)
        validate_split_bps(args[0], args[1])
        return (("buyerBps", args[0]), ("sellerBps", args[1]))

    _expect_params(action, args, 0)
    return ()


def build_intent(
    record: EscrowRecord,
    identity: Optional[str],
    action: Action | str,
    now: int,
    agent_response_time: Optional[int],
    params: Sequence[int] = (),
    decided_actions: Optional[frozenset[Action]] = None,
) -> ActionIntent:
    """Validate `action` for `identity` at `now` and build its intent.

    `decided_actions` is the action set the caller rendered from; an action
    that was available there but is not any more raises StaleSnapshotError so
    the caller re-queries instead of trusting the cached decision.
    """
    if isinstance(now, bool) or not isinstance(now, int) or now < 0:
        raise ValidationError(ErrorCode.INVALID_PARAMS, f"now must be a non-negative integer, got {now!r}")
    action = Action.parse(action)
    role_info = resolve_role(record, identity)
    timers = compute_timers(record, now, agent_response_time)
    actions = available_actions(record, role_info.role, timers, identity)

    if action not in actions:
        reason = explain_unavailable(action, record, role_info.role, timers)
        if decided_actions is not None and action in decided_actions:
            code = ErrorCode.TIMER_FLIPPED
            if action not in _TIMER_GATED:
                code = ErrorCode.SNAPSHOT_REGRESSED
            logger.debug(f"{record.id}: {action.value} no longer available at {now}: {reason}")
            raise StaleSnapshotError(code, f"{action.value} is no longer available: {reason}")
        raise PermissionDenied(ErrorCode.ACTION_NOT_AVAILABLE, reason)

    params_out = _intent_params(record, role_info.role, action, tuple(params))
    intent_id = compute_intent_id(record.id, action, identity, now, params_out)
    logger.debug(f"{record.id}: built intent {intent_id[:12]} for {action.value} by {role_info.role.value}")
    return ActionIntent(
        escrow_id=record.id,
        action=action,
        identity=identity,
        role=role_info.role,
        created_at=now,
        params=params_out,
        intent_id=intent_id,
    )
