"""Helpers to read and write escrow snapshots in the indexer's JSON shape."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Optional

import yaml

from .errors import ErrorCode, ValidationError
from .roles import is_valid_address
from .types import EscrowRecord, EscrowState, SplitProposal


def _int(data: dict[str, Any], key: str, default: Optional[int] = None) -> Optional[int]:
    # Indexers serialize bigints as decimal strings.
    value = data.get(key)
    if value is None or value == "":
        return default
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise ValidationError(ErrorCode.INVALID_RECORD, f"{key} must be an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(ErrorCode.INVALID_RECORD, f"{key} must be an integer, got {value!r}") from None


def _required(data: dict[str, Any], key: str) -> Any:
    value = data.get(key)
    if value is None or value == "":
        raise ValidationError(ErrorCode.INVALID_RECORD, f"missing field: {key}")
    return value


def _address(data: dict[str, Any], key: str) -> Optional[str]:
    value = data.get(key)
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise ValidationError(ErrorCode.INVALID_ADDRESS, f"{key} must be a string, got {value!r}")
    return value


def _split_from_json(data: dict[str, Any]) -> Optional[SplitProposal]:
    nested = data.get("splitProposal")
    if isinstance(nested, dict):
        proposer = _address(nested, "proposer")
        source = {
            "buyerBps": nested.get("buyerBps"),
            "sellerBps": nested.get("sellerBps"),
            "buyerApproved": nested.get("buyerApproved"),
            "sellerApproved": nested.get("sellerApproved"),
        }
    else:
        proposer = _address(data, "splitProposer")
        source = {
            "buyerBps": data.get("proposedBuyerBps"),
            "sellerBps": data.get("proposedSellerBps"),
            "buyerApproved": data.get("buyerApprovedSplit"),
            "sellerApproved": data.get("sellerApprovedSplit"),
        }

    # A zero proposer is how the ledger reports "no proposal".
    if not is_valid_address(proposer):
        return None
    return SplitProposal(
        proposer=proposer,
        buyer_bps=_int(source, "buyerBps", 0),
        seller_bps=_int(source, "sellerBps", 0),
        buyer_approved=bool(source["buyerApproved"]),
        seller_approved=bool(source["sellerApproved"]),
    )


def record_from_json(data: dict[str, Any]) -> EscrowRecord:
    if not isinstance(data, dict):
        raise ValidationError(ErrorCode.INVALID_RECORD, f"snapshot must be an object, got {type(data).__name__}")

    agent = _address(data, "agent")
    return EscrowRecord(
        id=_required(data, "id"),
        buyer=_required(data, "buyer"),
        seller=_required(data, "seller"),
        token=data.get("token") or "",
        amount=_int(data, "amount", 0),
        state=EscrowState.parse(_required(data, "state")),
        created_at=_int(data, "createdAt", 0),
        agent=agent if is_valid_address(agent) else None,
        seller_accept_deadline=_int(data, "sellerAcceptDeadline", 0),
        fulfilled_at=_int(data, "fulfilledAt"),
        agent_invited_at=_int(data, "agentInvitedAt"),
        resolved_at=_int(data, "resolvedAt"),
        buyer_protection_time=_int(data, "buyerProtectionTime", 0),
        split_proposal=_split_from_json(data),
        buyer_received=_int(data, "buyerReceived"),
        seller_received=_int(data, "sellerReceived"),
        agent_fee_received=_int(data, "agentFeeReceived"),
        chain_id=_int(data, "chainId"),
        funded_at=_int(data, "fundedAt"),
    )


def _bigint(value: Optional[int]) -> Optional[str]:
    return None if value is None else str(value)


def record_to_json(record: EscrowRecord) -> dict[str, Any]:
    proposal = record.split_proposal
    return {
        "id": record.id,
        "chainId": record.chain_id,
        "buyer": record.buyer,
        "seller": record.seller,
        "agent": record.agent,
        "token": record.token,
        "amount": str(record.amount),
        "buyerProtectionTime": str(record.buyer_protection_time),
        "sellerAcceptDeadline": str(record.seller_accept_deadline),
        "state": record.state.value,
        "createdAt": str(record.created_at),
        "fundedAt": _bigint(record.funded_at),
        "fulfilledAt": _bigint(record.fulfilled_at),
        "resolvedAt": _bigint(record.resolved_at),
        "agentInvitedAt": _bigint(record.agent_invited_at),
        "splitProposer": proposal.proposer if proposal else None,
        "proposedBuyerBps": proposal.buyer_bps if proposal else None,
        "proposedSellerBps": proposal.seller_bps if proposal else None,
        "buyerApprovedSplit": proposal.buyer_approved if proposal else None,
        "sellerApprovedSplit": proposal.seller_approved if proposal else None,
        "buyerReceived": _bigint(record.buyer_received),
        "sellerReceived": _bigint(record.seller_received),
        "agentFeeReceived": _bigint(record.agent_fee_received),
    }


def load_record(path: str | Path) -> EscrowRecord:
    """Read a snapshot from a YAML or JSON file."""
    path = Path(path)
    text = path.read_text()
    try:
        if path.suffix.lower() == ".json":
            data = json.loads(text)
        else:
            data = yaml.safe_load(text)
    except (ValueError, yaml.YAMLError) as e:
        raise ValidationError(ErrorCode.INVALID_RECORD, f"cannot parse {path.name}: {e}") from e
    return record_from_json(data)
