"""Split negotiation sub-protocol.

A party proposes a basis-point division of the escrowed amount; the other
party approves it against the exact terms they saw. At most one proposal is
live at a time and a new proposal replaces the old one with both approvals
cleared. Every function here returns a new value; records are never touched.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional

from .config import BPS_DENOMINATOR, MAX_SPLIT_BPS, MIN_SPLIT_BPS
from .errors import ErrorCode, PermissionDenied, ValidationError
from .permissions import has_active_split_proposal
from .roles import addresses_equal, party_address
from .types import (
    EscrowRecord,
    EscrowState,
    Role,
    SplitProposal,
    is_party,
    is_terminal_state,
    validate_split_bps,
)


@dataclass(frozen=True)
class SplitAmounts:
    buyer: int
    seller: int


def _require_party(role: Role) -> None:
    if not is_party(role):
        raise PermissionDenied(ErrorCode.NOT_PARTY, f"{role.value} cannot negotiate a split")


def _require_negotiable(record: EscrowRecord) -> None:
    if record.state is EscrowState.PENDING or is_terminal_state(record.state):
        raise PermissionDenied(
            ErrorCode.ACTION_NOT_AVAILABLE,
            f"split negotiation is not available in state {record.state.value}",
        )


def _live_proposal(record: EscrowRecord) -> SplitProposal:
    proposal = record.split_proposal
    if not has_active_split_proposal(proposal):
        raise PermissionDenied(ErrorCode.NO_SPLIT_PROPOSAL, "no active split proposal")
    return proposal


def proposer_role(record: EscrowRecord, proposal: SplitProposal) -> Optional[Role]:
    if addresses_equal(proposal.proposer, record.buyer):
        return Role.BUYER
    if addresses_equal(proposal.proposer, record.seller):
        return Role.SELLER
    return None


def propose_split(record: EscrowRecord, role: Role, buyer_bps: int) -> SplitProposal:
    """New proposal from `role`; replaces any live proposal."""
    _require_party(role)
    _require_negotiable(record)
    if isinstance(buyer_bps, bool) or not isinstance(buyer_bps, int):
        raise ValidationError(ErrorCode.INVALID_SPLIT, "buyer_bps must be an integer")
    if buyer_bps < MIN_SPLIT_BPS or buyer_bps > MAX_SPLIT_BPS:
        raise ValidationError(ErrorCode.INVALID_SPLIT, f"buyer_bps out of range: {buyer_bps}")

    seller_bps = BPS_DENOMINATOR - buyer_bps
    validate_split_bps(buyer_bps, seller_bps)
    return SplitProposal(
        proposer=party_address(record, role),
        buyer_bps=buyer_bps,
        seller_bps=seller_bps,
        buyer_approved=False,
        seller_approved=False,
    )


def approve_split(
    record: EscrowRecord,
    role: Role,
    expected_buyer_bps: int,
    expected_seller_bps: int,
) -> SplitProposal:
    """Approve the live proposal, provided it still has the terms the caller saw."""
    _require_party(role)
    _require_negotiable(record)
    proposal = _live_proposal(record)

    if addresses_equal(proposal.proposer, party_address(record, role)):
        raise PermissionDenied(ErrorCode.SELF_APPROVAL, "cannot approve your own split proposal")

    if (expected_buyer_bps, expected_seller_bps) != (proposal.buyer_bps, proposal.seller_bps):
        raise ValidationError(
            ErrorCode.SPLIT_PROPOSAL_CHANGED,
            f"expected {expected_buyer_bps}/{expected_seller_bps} bps, "
            f"live proposal is {proposal.buyer_bps}/{proposal.seller_bps}",
        )

    if role is Role.BUYER:
        return replace(proposal, buyer_approved=True)
    return replace(proposal, seller_approved=True)


def cancel_split(record: EscrowRecord, role: Role) -> None:
    """Withdraw the caller's own proposal; the result is "no proposal"."""
    _require_party(role)
    _require_negotiable(record)
    proposal = _live_proposal(record)
    if not addresses_equal(proposal.proposer, party_address(record, role)):
        raise PermissionDenied(ErrorCode.NOT_PROPOSER, "only the proposer can cancel a split proposal")
    return None


def has_mutual_consent(proposal: Optional[SplitProposal]) -> bool:
    """Whether the ledger will settle this proposal: both parties approved."""
    if not has_active_split_proposal(proposal):
        return False
    return proposal.buyer_approved and proposal.seller_approved


def compute_split_amounts(amount: int, proposal: SplitProposal) -> SplitAmounts:
    """Token amounts each party receives; rounding dust goes to the seller."""
    validate_split_bps(proposal.buyer_bps, proposal.seller_bps)
    buyer = amount * proposal.buyer_bps // BPS_DENOMINATOR
    return SplitAmounts(buyer=buyer, seller=amount - buyer)
