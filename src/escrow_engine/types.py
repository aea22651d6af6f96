"""Core types for the escrow engine.

Records are read-only snapshots of an escrow as the settlement layer reports
it; the engine derives roles, timers and permissions from them and never
writes back.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

from .config import BPS_DENOMINATOR, MAX_SPLIT_BPS, MIN_SPLIT_BPS
from .errors import ErrorCode, ValidationError


class EscrowState(Enum):
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    FULFILLED = "FULFILLED"
    RELEASED = "RELEASED"
    DISPUTED = "DISPUTED"
    AGENT_INVITED = "AGENT_INVITED"
    AGENT_RESOLVED = "AGENT_RESOLVED"
    REFUNDED = "REFUNDED"
    SPLIT = "SPLIT"

    @classmethod
    def from_ordinal(cls, ordinal: int) -> "EscrowState":
        """Map the ledger's uint8 state to a member (declaration order)."""
        members = list(cls)
        if not 0 <= ordinal < len(members):
            raise ValidationError(ErrorCode.INVALID_STATE, f"unknown state ordinal: {ordinal}")
        return members[ordinal]

    @classmethod
    def parse(cls, value: Union["EscrowState", str, int]) -> "EscrowState":
        if isinstance(value, EscrowState):
            return value
        if isinstance(value, bool):
            raise ValidationError(ErrorCode.INVALID_STATE, f"invalid state: {value!r}")
        if isinstance(value, int):
            return cls.from_ordinal(value)
        if isinstance(value, str):
            try:
                return cls[value.strip().upper()]
            except KeyError:
                pass
        raise ValidationError(ErrorCode.INVALID_STATE, f"invalid state: {value!r}")


TERMINAL_STATES = frozenset({
    EscrowState.RELEASED,
    EscrowState.AGENT_RESOLVED,
    EscrowState.REFUNDED,
    EscrowState.SPLIT,
})


def is_terminal_state(state: Optional[EscrowState]) -> bool:
    return state in TERMINAL_STATES


class Role(Enum):
    BUYER = "buyer"
    SELLER = "seller"
    AGENT = "agent"
    VIEWER = "viewer"


def is_party(role: Role) -> bool:
    return role in (Role.BUYER, Role.SELLER)


class Action(Enum):
    ACCEPT = "accept"
    DECLINE = "decline"
    CANCEL_EXPIRED = "cancelExpired"
    CONFIRM_FULFILLMENT = "confirmFulfillment"
    RELEASE = "release"
    RELEASE_AFTER_PROTECTION = "releaseAfterProtection"
    SELLER_REFUND = "sellerRefund"
    OPEN_DISPUTE = "openDispute"
    INVITE_AGENT = "inviteAgent"
    AGENT_RESOLVE = "agentResolve"
    CLAIM_AGENT_TIMEOUT = "claimAgentTimeout"
    PROPOSE_SPLIT = "proposeSplit"
    APPROVE_SPLIT = "approveSplit"
    CANCEL_SPLIT = "cancelSplit"

    @property
    def label(self) -> str:
        return ACTION_LABELS[self]

    @property
    def ledger_function(self) -> str:
        """Name of the ledger function that performs this action."""
        # The ledger only exposes `release()`; the seller's claim is a UI-only name.
        if self is Action.RELEASE_AFTER_PROTECTION:
            return Action.RELEASE.value
        return self.value

    @classmethod
    def parse(cls, value: Union["Action", str]) -> "Action":
        if isinstance(value, Action):
            return value
        try:
            return cls(value)
        except ValueError:
            pass
        try:
            return cls[str(value).upper()]
        except KeyError:
            raise ValidationError(ErrorCode.INVALID_PARAMS, f"unknown action: {value!r}") from None


ACTION_LABELS = {
    Action.ACCEPT: "Accept Escrow",
    Action.DECLINE: "Decline Escrow",
    Action.CANCEL_EXPIRED: "Cancel & Refund",
    Action.CONFIRM_FULFILLMENT: "Confirm Fulfillment",
    Action.RELEASE: "Release Funds",
    Action.RELEASE_AFTER_PROTECTION: "Claim Funds",
    Action.SELLER_REFUND: "Issue Refund",
    Action.OPEN_DISPUTE: "Open Dispute",
    Action.INVITE_AGENT: "Invite Agent",
    Action.AGENT_RESOLVE: "Resolve Dispute",
    Action.CLAIM_AGENT_TIMEOUT: "Claim Agent Timeout",
    Action.PROPOSE_SPLIT: "Propose Split",
    Action.APPROVE_SPLIT: "Approve Split",
    Action.CANCEL_SPLIT: "Cancel Split Proposal",
}


def validate_split_bps(buyer_bps: int, seller_bps: int) -> None:
    for name, bps in (("buyer_bps", buyer_bps), ("seller_bps", seller_bps)):
        if isinstance(bps, bool) or not isinstance(bps, int):
            raise ValidationError(ErrorCode.INVALID_SPLIT, f"{name} must be an integer")
        if bps < MIN_SPLIT_BPS or bps > MAX_SPLIT_BPS:
            raise ValidationError(ErrorCode.INVALID_SPLIT, f"{name} out of range: {bps}")
    if buyer_bps + seller_bps != BPS_DENOMINATOR:
        raise ValidationError(
            ErrorCode.INVALID_SPLIT,
            f"split must sum to {BPS_DENOMINATOR} bps, got {buyer_bps + seller_bps}",
        )


@dataclass(frozen=True)
class SplitProposal:
    proposer: str
    buyer_bps: int
    seller_bps: int
    buyer_approved: bool = False
    seller_approved: bool = False

    def __post_init__(self) -> None:
        validate_split_bps(self.buyer_bps, self.seller_bps)


@dataclass(frozen=True)
class EscrowRecord:
    id: str
    buyer: str
    seller: str
    token: str
    amount: int
    state: EscrowState
    created_at: int = 0
    agent: Optional[str] = None
    seller_accept_deadline: int = 0
    fulfilled_at: Optional[int] = None
    agent_invited_at: Optional[int] = None
    resolved_at: Optional[int] = None
    buyer_protection_time: int = 0
    split_proposal: Optional[SplitProposal] = None
    buyer_received: Optional[int] = None
    seller_received: Optional[int] = None
    agent_fee_received: Optional[int] = None
    # Display-only
    chain_id: Optional[int] = None
    funded_at: Optional[int] = None

    def __post_init__(self) -> None:
        if not self.id:
            raise ValidationError(ErrorCode.INVALID_RECORD, "record id required")
        if not self.buyer or not self.seller:
            raise ValidationError(ErrorCode.INVALID_RECORD, "buyer and seller required")
        if not isinstance(self.state, EscrowState):
            raise ValidationError(ErrorCode.INVALID_RECORD, f"state must be EscrowState, got {self.state!r}")
        if self.amount < 0:
            raise ValidationError(ErrorCode.INVALID_RECORD, "amount must be >= 0")
        for name in (
            "created_at",
            "seller_accept_deadline",
            "fulfilled_at",
            "agent_invited_at",
            "resolved_at",
            "buyer_protection_time",
            "buyer_received",
            "seller_received",
            "agent_fee_received",
        ):
            value = getattr(self, name)
            if value is not None and value < 0:
                raise ValidationError(ErrorCode.INVALID_RECORD, f"{name} must be >= 0")

    @property
    def is_terminal(self) -> bool:
        return is_terminal_state(self.state)


@dataclass(frozen=True)
class TimerState:
    has_limit: bool
    total_seconds: int
    remaining_seconds: int
    is_expired: bool
    expiry_timestamp: int
    progress_percent: float


NO_LIMIT_TIMER = TimerState(
    has_limit=False,
    total_seconds=0,
    remaining_seconds=0,
    is_expired=False,
    expiry_timestamp=0,
    progress_percent=0.0,
)


@dataclass(frozen=True)
class ExpiryFlags:
    acceptance_expired: bool = False
    protection_expired: bool = False
    agent_timeout_expired: bool = False


@dataclass(frozen=True)
class EscrowTimers:
    acceptance: TimerState = NO_LIMIT_TIMER
    protection: TimerState = NO_LIMIT_TIMER
    agent_response: TimerState = NO_LIMIT_TIMER

    def flags(self) -> ExpiryFlags:
        return ExpiryFlags(
            acceptance_expired=self.acceptance.is_expired,
            protection_expired=self.protection.is_expired,
            agent_timeout_expired=self.agent_response.is_expired,
        )


@dataclass(frozen=True)
class ActionIntent:
    escrow_id: str
    action: Action
    identity: str
    role: Role
    created_at: int
    params: tuple[tuple[str, int], ...] = ()
    intent_id: str = ""

    def param(self, name: str) -> int:
        for key, value in self.params:
            if key == name:
                return value
        raise KeyError(name)

    def call_args(self) -> tuple[int, ...]:
        """Positional arguments for the ledger function call."""
        return tuple(value for _, value in self.params)


@dataclass(frozen=True)
class Receipt:
    intent_id: str
    action: Action
    tx_hash: str
    extra: dict = field(default_factory=dict, compare=False, hash=False)
