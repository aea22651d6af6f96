"""Hand-off of validated intents to the external action executor."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Protocol

from .errors import (
    ActionInFlight,
    ErrorCode,
    ExecutionError,
    ExecutionFailure,
    classify_failure,
)
from .types import ActionIntent, Receipt

logger = logging.getLogger(__name__)


class ActionExecutor(Protocol):
    """Submits an intent to the settlement layer (wallet, signer, relayer)."""

    async def execute(self, intent: ActionIntent) -> Receipt: ...


async def execute_intent(executor: ActionExecutor, intent: ActionIntent) -> Receipt:
    """Await the executor once and tag any failure with the action.

    No retry and no local state change: the caller re-fetches the snapshot
    whether the call succeeds or fails.
    """
    action = intent.action.value
    logger.debug(f"{intent.escrow_id}: submitting {action} ({intent.intent_id[:12]})")
    try:
        receipt = await executor.execute(intent)
    except ExecutionError:
        raise
    except Exception as exc:
        failure, contract_error = classify_failure(exc)
        if failure is ExecutionFailure.USER_REJECTED:
            logger.info(f"{intent.escrow_id}: {action} rejected by user")
        else:
            logger.warning(f"{intent.escrow_id}: {action} failed ({failure.value}): {exc}")
        raise ExecutionError(
            ErrorCode.EXECUTION_FAILED,
            str(exc) or type(exc).__name__,
            action=action,
            failure=failure,
            cause=exc,
            contract_error=contract_error,
        ) from exc

    logger.info(f"{intent.escrow_id}: {action} submitted, tx {receipt.tx_hash}")
    return receipt


class ActionSerializer:
    """Allows at most one in-flight action per escrow id.

    Meant for a single event loop; the slot is released on success, failure
    and cancellation alike.
    """

    def __init__(self) -> None:
        self._in_flight: dict[str, str] = {}

    def pending_action(self, escrow_id: str) -> str | None:
        return self._in_flight.get(escrow_id.lower())

    def is_pending(self, escrow_id: str) -> bool:
        return escrow_id.lower() in self._in_flight

    @asynccontextmanager
    async def slot(self, intent: ActionIntent) -> AsyncIterator[None]:
        key = intent.escrow_id.lower()
        current = self._in_flight.get(key)
        if current is not None:
            raise ActionInFlight(
                ErrorCode.ACTION_IN_FLIGHT,
                f"{current} is already pending for {intent.escrow_id}",
            )
        self._in_flight[key] = intent.action.value
        try:
            yield
        finally:
            del self._in_flight[key]

    async def run(self, executor: ActionExecutor, intent: ActionIntent) -> Receipt:
        async with self.slot(intent):
            return await execute_intent(executor, intent)
