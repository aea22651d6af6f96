"""Role resolution for escrow participants."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from .config import ZERO_ADDRESS
from .types import EscrowRecord, Role

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RoleInfo:
    role: Role
    is_buyer: bool
    is_seller: bool
    is_agent: bool
    identity: Optional[str] = None

    @property
    def is_party(self) -> bool:
        return self.is_buyer or self.is_seller

    @property
    def is_viewer(self) -> bool:
        return self.role is Role.VIEWER


VIEWER_INFO = RoleInfo(role=Role.VIEWER, is_buyer=False, is_seller=False, is_agent=False)


def addresses_equal(a: Optional[str], b: Optional[str]) -> bool:
    if not a or not b:
        return False
    return a.lower() == b.lower()


def is_valid_address(addr: Optional[str]) -> bool:
    return bool(addr) and addr.lower() != ZERO_ADDRESS


def resolve_role(record: EscrowRecord, identity: Optional[str]) -> RoleInfo:
    """Resolve the caller's role; buyer, then seller, then agent, then viewer."""
    if not identity:
        return VIEWER_INFO

    is_buyer = addresses_equal(identity, record.buyer)
    is_seller = addresses_equal(identity, record.seller)
    is_agent = is_valid_address(record.agent) and addresses_equal(identity, record.agent)

    if sum((is_buyer, is_seller, is_agent)) > 1:
        # Not expected on valid records; precedence decides.
        logger.debug(f"identity {identity} matches several parties of {record.id}")

    if is_buyer:
        role = Role.BUYER
    elif is_seller:
        role = Role.SELLER
    elif is_agent:
        role = Role.AGENT
    else:
        role = Role.VIEWER

    return RoleInfo(
        role=role,
        is_buyer=is_buyer,
        is_seller=is_seller,
        is_agent=is_agent,
        identity=identity,
    )


def compute_role(record: EscrowRecord, identity: Optional[str]) -> Role:
    return resolve_role(record, identity).role


def party_address(record: EscrowRecord, role: Role) -> Optional[str]:
    """On-record identity for a role, None for viewers."""
    if role is Role.BUYER:
        return record.buyer
    if role is Role.SELLER:
        return record.seller
    if role is Role.AGENT:
        return record.agent if is_valid_address(record.agent) else None
    return None


def counterparty(role: Role) -> Optional[Role]:
    if role is Role.BUYER:
        return Role.SELLER
    if role is Role.SELLER:
        return Role.BUYER
    return None
