"""Countdown timers for the time-bounded escrow phases.

Three timers exist, each live only in one state:

- acceptance: PENDING, from `created_at` to the absolute `seller_accept_deadline`
- protection: FULFILLED, `buyer_protection_time` seconds after `fulfilled_at`
- agent response: AGENT_INVITED, `agent_response_time` seconds after
  `agent_invited_at` (network-wide setting, not stored on the record)

"Now" is always passed in by the caller; nothing here reads the clock except
`SystemClock.now()`, which callers invoke themselves.
"""

from __future__ import annotations

import time
from typing import Optional, Protocol

from .types import NO_LIMIT_TIMER, EscrowRecord, EscrowState, EscrowTimers, TimerState

_LIVE_TIMER_STATES = frozenset({
    EscrowState.PENDING,
    EscrowState.FULFILLED,
    EscrowState.AGENT_INVITED,
})


class Clock(Protocol):
    def now(self) -> int: ...


class SystemClock:
    def now(self) -> int:
        return int(time.time())


class FixedClock:
    """Deterministic clock for tests and replays."""

    def __init__(self, timestamp: int):
        self.timestamp = timestamp

    def now(self) -> int:
        return self.timestamp

    def advance(self, seconds: int) -> None:
        self.timestamp += seconds


def _progress(elapsed: int, total: int) -> float:
    return min(100.0, max(0.0, elapsed / total * 100))


def calculate_timer_state(start: Optional[int], duration: Optional[int], now: int) -> TimerState:
    if not start or not duration:
        return NO_LIMIT_TIMER

    expiry = start + duration
    remaining = expiry - now
    return TimerState(
        has_limit=True,
        total_seconds=duration,
        remaining_seconds=max(0, remaining),
        is_expired=remaining <= 0,
        expiry_timestamp=expiry,
        progress_percent=_progress(now - start, duration),
    )


def acceptance_timer(record: EscrowRecord, now: int) -> TimerState:
    # A zero deadline means the escrow activates without seller acceptance.
    if record.state is not EscrowState.PENDING:
        return NO_LIMIT_TIMER
    if not record.created_at or not record.seller_accept_deadline:
        return NO_LIMIT_TIMER

    deadline = record.seller_accept_deadline
    total = deadline - record.created_at
    if total <= 0:
        # Deadline at or before creation: already closed, total reported as is.
        remaining = deadline - now
        return TimerState(
            has_limit=True,
            total_seconds=total,
            remaining_seconds=max(0, remaining),
            is_expired=remaining <= 0,
            expiry_timestamp=deadline,
            progress_percent=100.0,
        )
    return calculate_timer_state(record.created_at, total, now)


def protection_timer(record: EscrowRecord, now: int) -> TimerState:
    if record.state is not EscrowState.FULFILLED:
        return NO_LIMIT_TIMER
    return calculate_timer_state(record.fulfilled_at, record.buyer_protection_time, now)


def agent_response_timer(record: EscrowRecord, now: int, agent_response_time: Optional[int]) -> TimerState:
    if record.state is not EscrowState.AGENT_INVITED:
        return NO_LIMIT_TIMER
    return calculate_timer_state(record.agent_invited_at, agent_response_time, now)


def compute_timers(record: EscrowRecord, now: int, agent_response_time: Optional[int]) -> EscrowTimers:
    return EscrowTimers(
        acceptance=acceptance_timer(record, now),
        protection=protection_timer(record, now),
        agent_response=agent_response_timer(record, now, agent_response_time),
    )


def has_live_timer(record: EscrowRecord) -> bool:
    """Whether the caller should keep ticking `now` for this record."""
    return record.state in _LIVE_TIMER_STATES


def format_remaining_time(seconds: int) -> str:
    if seconds <= 0:
        return "Expired"

    days, rest = divmod(seconds, 86400)
    hours, rest = divmod(rest, 3600)
    minutes, secs = divmod(rest, 60)

    if days > 0:
        return f"{days}d {hours}h"
    if hours > 0:
        return f"{hours}h {minutes}m"
    if minutes > 0:
        return f"{minutes}m {secs}s"
    return f"{secs}s"
