"""Escrow engine error codes and exceptions."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Optional


class ErrorCategory(IntEnum):
    VALIDATION = 0x01
    AUTHORIZATION = 0x02
    STATE = 0x04
    EXECUTION = 0x05
    INTERNAL = 0xFF


class ErrorCode(IntEnum):
    # Validation
    INVALID_RECORD = 0x0100
    INVALID_STATE = 0x0101
    INVALID_ADDRESS = 0x0102
    INVALID_SPLIT = 0x0103
    SPLIT_PROPOSAL_CHANGED = 0x0104
    INVALID_PARAMS = 0x0105
    RECORD_MISMATCH = 0x0106

    # Authorization
    ACTION_NOT_AVAILABLE = 0x0200
    NOT_PARTY = 0x0201
    NOT_PROPOSER = 0x0202
    SELF_APPROVAL = 0x0203
    NO_SPLIT_PROPOSAL = 0x0204
    ACTION_IN_FLIGHT = 0x0205

    # State
    TIMER_FLIPPED = 0x0400
    SNAPSHOT_REGRESSED = 0x0401

    # Execution
    EXECUTION_FAILED = 0x0500

    # Internal
    INTERNAL_ERROR = 0xFF00

    @property
    def category(self) -> ErrorCategory:
        return ErrorCategory(self.value >> 8)


class ExecutionFailure(Enum):
    USER_REJECTED = "user_rejected"
    NETWORK = "network"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    CONTRACT_REVERT = "contract_revert"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class EngineError(Exception):
    code: ErrorCode
    message: str

    def __str__(self) -> str:
        return f"{self.code.name}({self.code:#06x}): {self.message}"


class PermissionDenied(EngineError):
    """Requested action is not available for this role and state."""


class ActionInFlight(PermissionDenied):
    """Another action is already pending against the same escrow."""


class ValidationError(EngineError):
    """Malformed record, split proposal or intent parameters."""


class StaleSnapshotError(EngineError):
    """A decision was made against a view that no longer holds."""


@dataclass(frozen=True)
class ExecutionError(EngineError):
    action: Optional[str] = None
    failure: ExecutionFailure = ExecutionFailure.UNKNOWN
    cause: Optional[BaseException] = None
    contract_error: Optional[str] = None

    def __str__(self) -> str:
        base = super().__str__()
        if self.action:
            return f"{base} [action={self.action}, failure={self.failure.value}]"
        return base


# Allow Python's Exception machinery to set __traceback__/__context__/__cause__
# while keeping dataclass fields frozen (Python 3.13 contextlib compat).
_EXCEPTION_ATTRS = frozenset(("__traceback__", "__context__", "__cause__", "__suppress_context__"))


def _allow_exception_attrs(cls: type) -> None:
    frozen_setattr = cls.__setattr__

    def _setattr(self: EngineError, name: str, value: object) -> None:
        if name in _EXCEPTION_ATTRS:
            object.__setattr__(self, name, value)
        else:
            frozen_setattr(self, name, value)

    cls.__setattr__ = _setattr  # type: ignore[method-assign]


_allow_exception_attrs(EngineError)
_allow_exception_attrs(ExecutionError)


# --- failure classification ---

_USER_REJECTION_PATTERNS = (
    "user rejected",
    "user denied",
    "rejected by user",
    "user cancelled",
    "user canceled",
    "action_rejected",
    "4001",  # EIP-1193 user rejection code
)

_NETWORK_ERROR_PATTERNS = (
    "network error",
    "failed to fetch",
    "connection refused",
    "timeout",
    "etimedout",
    "econnrefused",
    "network request failed",
    "could not detect network",
)

_INSUFFICIENT_FUNDS_PATTERNS = (
    "insufficient funds",
    "exceeds balance",
    "not enough",
    "insufficient balance",
)

_CUSTOM_ERROR_RES = (
    re.compile(r"reverted with custom error '(\w+)'"),
    re.compile(r"error (\w+__\w+)"),
)

CONTRACT_ERROR_MESSAGES = {
    # Access control
    "Escrow__NotBuyer": "Only the buyer can perform this action.",
    "Escrow__NotSeller": "Only the seller can perform this action.",
    "Escrow__NotAgent": "Only the assigned agent can perform this action.",
    "Escrow__NotParty": "Only the buyer or seller can perform this action.",
    # State
    "Escrow__InvalidState": "This action is not available in the current escrow state.",
    "Escrow__AlreadyFinalized": "This escrow has already been finalized.",
    # Timers
    "Escrow__ProtectionPeriodActive": "The buyer protection period is still active. Please wait for it to expire.",
    "Escrow__AcceptanceWindowActive": "The seller acceptance window has not expired yet. Please wait for the deadline to pass.",
    "Escrow__AgentTimeoutNotReached": "The agent response timeout has not been reached yet.",
    # Agent
    "Escrow__NoAgentAssigned": "No agent is assigned to this escrow.",
    "Escrow__AgentUnavailable": "The assigned agent is no longer available.",
    "Escrow__InvalidAgentFee": "The agent fee configuration is invalid.",
    # Split
    "Escrow__InvalidSplitPercentages": "Split percentages must add up to 100%.",
    "Escrow__NoSplitProposal": "There is no active split proposal to approve.",
    "Escrow__CannotApproveOwnProposal": "You cannot approve your own split proposal.",
    "Escrow__SplitProposalChanged": "The split proposal has changed. Please review the new terms.",
    # General
    "Escrow__ZeroAddress": "Invalid address: zero address is not allowed.",
    "Escrow__ZeroAmount": "Amount must be greater than zero.",
    "Escrow__TransferFailed": "Token transfer failed. Please check your balance and try again.",
}

_ENGINE_MESSAGES = {
    ErrorCode.ACTION_NOT_AVAILABLE: "This action is not available in the current escrow state.",
    ErrorCode.NOT_PARTY: "Only the buyer or seller can perform this action.",
    ErrorCode.NOT_PROPOSER: "Only the proposer can cancel this split proposal.",
    ErrorCode.SELF_APPROVAL: "You cannot approve your own split proposal.",
    ErrorCode.NO_SPLIT_PROPOSAL: "There is no active split proposal to approve.",
    ErrorCode.ACTION_IN_FLIGHT: "You already have a pending transaction. Please wait.",
    ErrorCode.INVALID_SPLIT: "Split percentages must add up to 100%.",
    ErrorCode.SPLIT_PROPOSAL_CHANGED: "The split proposal has changed. Please review the new terms.",
    ErrorCode.TIMER_FLIPPED: "The escrow's deadlines changed since this page was loaded. Please refresh.",
    ErrorCode.SNAPSHOT_REGRESSED: "The escrow data is out of date. Please refresh.",
}

_FAILURE_MESSAGES = {
    ExecutionFailure.USER_REJECTED: "Transaction was cancelled in your wallet.",
    ExecutionFailure.NETWORK: "Network error. Please check your connection and try again.",
    ExecutionFailure.INSUFFICIENT_FUNDS: "Insufficient funds for this transaction.",
    ExecutionFailure.CONTRACT_REVERT: "Transaction failed. The contract rejected this action.",
    ExecutionFailure.UNKNOWN: "An unexpected blockchain error occurred.",
}


def _matches(text: str, patterns: tuple[str, ...]) -> bool:
    lowered = text.lower()
    return any(p in lowered for p in patterns)


def extract_contract_error(text: str) -> Optional[str]:
    for pattern in _CUSTOM_ERROR_RES:
        match = pattern.search(text)
        if match:
            return match.group(1)
    return None


def classify_failure(exc: BaseException) -> tuple[ExecutionFailure, Optional[str]]:
    """Classify an executor failure from its text; the exception is not altered."""
    text = str(exc)
    if _matches(text, _USER_REJECTION_PATTERNS):
        return ExecutionFailure.USER_REJECTED, None
    # Custom error names like Escrow__AgentTimeoutNotReached must not read as network timeouts.
    contract_error = extract_contract_error(text)
    if contract_error:
        return ExecutionFailure.CONTRACT_REVERT, contract_error
    if _matches(text, _NETWORK_ERROR_PATTERNS):
        return ExecutionFailure.NETWORK, None
    if _matches(text, _INSUFFICIENT_FUNDS_PATTERNS):
        return ExecutionFailure.INSUFFICIENT_FUNDS, None
    if "revert" in text.lower():
        return ExecutionFailure.CONTRACT_REVERT, None
    return ExecutionFailure.UNKNOWN, None


def user_message(error: EngineError) -> str:
    """User-facing message for an engine error."""
    if isinstance(error, ExecutionError):
        if error.contract_error:
            name = error.contract_error
            words = re.sub(r"([A-Z])", r" \1", name.replace("__", ": ")).split()
            fallback = "Contract error: " + " ".join(words)
            return CONTRACT_ERROR_MESSAGES.get(name, fallback)
        return _FAILURE_MESSAGES[error.failure]
    return _ENGINE_MESSAGES.get(error.code, error.message)
