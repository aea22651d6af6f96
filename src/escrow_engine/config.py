"""Escrow engine configuration constants.

Keep the split and timer constants aligned with the escrow implementation
contract (`EscrowImplementation`) and the factory's network-wide settings.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

# Basis points
BPS_DENOMINATOR = 10_000
MIN_SPLIT_BPS = 0
MAX_SPLIT_BPS = 10_000
DEFAULT_SPLIT_BUYER_BPS = 5_000  # 50/50 starting point for a new proposal

# Timers
TIMER_UPDATE_INTERVAL_SECONDS = 1
DEFAULT_AGENT_RESPONSE_TIME = 7 * 24 * 3600  # factory default, 7 days

# Identities
ZERO_ADDRESS = "0x" + "00" * 20

# Chains
CHAIN_ID_MAINNET = 1
CHAIN_ID_SEPOLIA = 11_155_111
CHAIN_NAMES = {
    CHAIN_ID_MAINNET: "Ethereum",
    CHAIN_ID_SEPOLIA: "Sepolia",
}

_TRUTHY = ("true", "1", "yes")


@dataclass
class EngineConfig:
    """Runtime configuration for the engine and its tooling."""
    # Network-wide agent response window (seconds), not part of any record
    agent_response_time: int = DEFAULT_AGENT_RESPONSE_TIME

    # Paths
    vector_dir: str = "vectors"

    # Logging
    verbose: bool = False
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Load configuration from environment variables."""
        config = cls()

        raw = os.environ.get("ESCROW_AGENT_RESPONSE_TIME")
        if raw:
            config.agent_response_time = _parse_seconds(raw)

        config.vector_dir = os.environ.get("ESCROW_VECTOR_DIR", config.vector_dir)
        config.verbose = os.environ.get("ESCROW_VERBOSE", "").lower() in _TRUTHY
        config.log_level = os.environ.get("ESCROW_LOG_LEVEL", config.log_level).upper()
        if config.verbose:
            config.log_level = "DEBUG"

        return config


def _parse_seconds(raw: str) -> int:
    try:
        value = int(raw.strip())
    except ValueError as exc:
        raise ValueError(f"ESCROW_AGENT_RESPONSE_TIME must be an integer, got {raw!r}") from exc
    if value < 0:
        raise ValueError("ESCROW_AGENT_RESPONSE_TIME must be non-negative")
    return value


def chain_name(chain_id: Optional[int]) -> str:
    if not chain_id:
        return "Unknown"
    return CHAIN_NAMES.get(chain_id, f"Chain {chain_id}")
