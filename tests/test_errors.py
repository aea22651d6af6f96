"""Error layer specs."""

from __future__ import annotations

import dataclasses

import pytest

from escrow_engine.errors import (
    ActionInFlight,
    EngineError,
    ErrorCategory,
    ErrorCode,
    ExecutionError,
    ExecutionFailure,
    PermissionDenied,
    StaleSnapshotError,
    ValidationError,
    classify_failure,
    extract_contract_error,
    user_message,
)


def test_error_string() -> None:
    error = ValidationError(ErrorCode.INVALID_SPLIT, "split must sum to 10000 bps")
    assert str(error) == "INVALID_SPLIT(0x0103): split must sum to 10000 bps"


def test_categories() -> None:
    assert ErrorCode.INVALID_RECORD.category is ErrorCategory.VALIDATION
    assert ErrorCode.SELF_APPROVAL.category is ErrorCategory.AUTHORIZATION
    assert ErrorCode.TIMER_FLIPPED.category is ErrorCategory.STATE
    assert ErrorCode.EXECUTION_FAILED.category is ErrorCategory.EXECUTION
    assert ErrorCode.INTERNAL_ERROR.category is ErrorCategory.INTERNAL


def test_hierarchy() -> None:
    for cls in (PermissionDenied, ValidationError, StaleSnapshotError, ExecutionError):
        assert issubclass(cls, EngineError)
    assert issubclass(ActionInFlight, PermissionDenied)


def test_errors_are_frozen() -> None:
    error = PermissionDenied(ErrorCode.NOT_PARTY, "nope")
    with pytest.raises(dataclasses.FrozenInstanceError):
        error.code = ErrorCode.NOT_PROPOSER


def test_errors_chain() -> None:
    cause = KeyError("missing")
    with pytest.raises(StaleSnapshotError) as exc:
        try:
            raise cause
        except KeyError as e:
            raise StaleSnapshotError(ErrorCode.SNAPSHOT_REGRESSED, "stale") from e
    assert exc.value.__cause__ is cause


def test_execution_error_string() -> None:
    error = ExecutionError(
        ErrorCode.EXECUTION_FAILED,
        "execution reverted",
        action="sellerRefund",
        failure=ExecutionFailure.CONTRACT_REVERT,
    )
    assert str(error) == (
        "EXECUTION_FAILED(0x0500): execution reverted [action=sellerRefund, failure=contract_revert]"
    )


# --- classification ---


@pytest.mark.parametrize(
    "text,expected",
    [
        ("MetaMask Tx Signature: User denied transaction signature.", ExecutionFailure.USER_REJECTED),
        ("code 4001", ExecutionFailure.USER_REJECTED),
        ("ETIMEDOUT", ExecutionFailure.NETWORK),
        ("could not detect network", ExecutionFailure.NETWORK),
        ("Transfer amount exceeds balance", ExecutionFailure.INSUFFICIENT_FUNDS),
        ("transaction reverted without a reason", ExecutionFailure.CONTRACT_REVERT),
        ("something odd happened", ExecutionFailure.UNKNOWN),
    ],
)
def test_classify_failure(text: str, expected: ExecutionFailure) -> None:
    failure, _ = classify_failure(RuntimeError(text))
    assert failure is expected


def test_extract_contract_error() -> None:
    assert extract_contract_error("reverted with custom error 'Escrow__NotBuyer'") == "Escrow__NotBuyer"
    assert extract_contract_error("Error: error Escrow__ZeroAmount()") == "Escrow__ZeroAmount"
    assert extract_contract_error("execution reverted") is None


# --- user messages ---


def test_user_message_for_contract_error() -> None:
    error = ExecutionError(
        ErrorCode.EXECUTION_FAILED,
        "reverted",
        failure=ExecutionFailure.CONTRACT_REVERT,
        contract_error="Escrow__SplitProposalChanged",
    )
    assert user_message(error) == "The split proposal has changed. Please review the new terms."


def test_user_message_for_unknown_contract_error() -> None:
    error = ExecutionError(
        ErrorCode.EXECUTION_FAILED,
        "reverted",
        failure=ExecutionFailure.CONTRACT_REVERT,
        contract_error="Escrow__SomethingNew",
    )
    assert user_message(error) == "Contract error: Escrow: Something New"


def test_user_message_for_failure_kind() -> None:
    error = ExecutionError(ErrorCode.EXECUTION_FAILED, "x", failure=ExecutionFailure.USER_REJECTED)
    assert user_message(error) == "Transaction was cancelled in your wallet."


def test_user_message_for_engine_error() -> None:
    assert user_message(PermissionDenied(ErrorCode.SELF_APPROVAL, "x")) == "You cannot approve your own split proposal."
    assert user_message(ValidationError(ErrorCode.INVALID_RECORD, "missing field: id")) == "missing field: id"
