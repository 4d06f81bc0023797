#!/usr/bin/env python3
"""
BIFROST - Core Configuration

Bundle settings, relay endpoints, and environment management.
"""

import os
import sys
from dataclasses import dataclass

from dotenv import load_dotenv

# Dependency check (single location for the whole package)
try:
    from solana.rpc.async_api import AsyncClient  # noqa: F401
    from solders.keypair import Keypair  # noqa: F401
except ImportError:
    print("Missing dependencies. Install with:")
    print("   pip install solana solders base58 aiohttp python-dotenv websockets rich")
    sys.exit(1)


_dotenv_loaded = False


def _ensure_dotenv() -> None:
    """Load .env file exactly once, on first call."""
    global _dotenv_loaded
    if not _dotenv_loaded:
        load_dotenv()
        _dotenv_loaded = True


# Jito block engines by region
BLOCK_ENGINES = {
    "mainnet": "https://mainnet.block-engine.jito.wtf",
    "ny": "https://ny.mainnet.block-engine.jito.wtf",
    "amsterdam": "https://amsterdam.mainnet.block-engine.jito.wtf",
    "frankfurt": "https://frankfurt.mainnet.block-engine.jito.wtf",
    "tokyo": "https://tokyo.mainnet.block-engine.jito.wtf",
}


@dataclass
class BundlerConfig:
    """
    Everything a launch session needs to know before it touches the network.
    """

    # Network & Connection
    rpc_url: str = ""
    ws_url: str = ""

    # Wallets
    private_key: str = ""  # Base58 encoded fee payer
    keypairs_dir: str = ""  # Directory of JSON keypair files (one per bundle wallet)

    # Sidecar state (LUT address survives between runs)
    state_file: str = ""

    # Relay
    block_engine_region: str = "mainnet"
    block_engine_url: str = ""
    jito_tip_lamports: int = 0  # 0 = no tip instruction
    relay_timeout_seconds: float = 10.0  # HTTP timeout for sendBundle

    # Bundle shape
    chunk_size: int = 7  # Signers per transaction
    instructions_per_tx: int = 10  # For flat instruction lists (ATA creation)
    strict_chunks: bool = False  # Abort on per-signer failure instead of skipping
    bundle_timeout_seconds: float = 30.0
    max_bundle_bytes_warning: int = 50_000  # Advisory only

    # Result feeds
    status_poll_interval_seconds: float = 1.0  # Block engine inflight statuses
    watch_signatures: bool = True  # Also confirm via RPC websocket

    # Iterations
    iterations: int = 1
    iteration_delay_seconds: float = 0.0

    # Logging
    log_level: str = "INFO"
    log_file: str = "bifrost.log"

    def __post_init__(self):
        """Fill env-based defaults after dataclass init (avoids module-level side effects)."""
        _ensure_dotenv()
        if not self.rpc_url:
            self.rpc_url = os.getenv("SOLANA_RPC_URL", "https://api.mainnet-beta.solana.com")
        if not self.ws_url:
            self.ws_url = os.getenv("SOLANA_WS_URL", "wss://api.mainnet-beta.solana.com")
        if not self.private_key:
            self.private_key = os.getenv("WALLET_PRIVATE_KEY", "")
        if not self.keypairs_dir:
            self.keypairs_dir = os.getenv("KEYPAIRS_DIR", "keypairs")
        if not self.state_file:
            self.state_file = os.getenv("BIFROST_STATE_FILE", "keypairs/keyInfo.json")
        if not self.block_engine_url:
            self.block_engine_url = os.getenv(
                "BLOCK_ENGINE_URL",
                BLOCK_ENGINES.get(self.block_engine_region, BLOCK_ENGINES["mainnet"]),
            )

    def __repr__(self) -> str:
        """Redact sensitive fields to prevent accidental secret leakage in logs."""
        pk_display = "***" if self.private_key else "(empty)"
        return (
            f"BundlerConfig(rpc_url='{self.rpc_url[:30]}...', "
            f"private_key='{pk_display}', "
            f"block_engine_url='{self.block_engine_url}', "
            f"chunk_size={self.chunk_size}, "
            f"jito_tip_lamports={self.jito_tip_lamports})"
        )

    def validate(self) -> list[str]:
        """Return every configuration problem at once."""
        errors = []

        if not self.rpc_url:
            errors.append("RPC URL required - get one from QuickNode or Helius")

        if self.rpc_url and not self.rpc_url.startswith("https://"):
            if not self.rpc_url.startswith("http://127.0.0.1") and not self.rpc_url.startswith(
                "http://localhost"
            ):
                errors.append("RPC URL must use HTTPS (plaintext HTTP leaks wallet data)")

        if not self.block_engine_url.startswith("https://"):
            errors.append("Block engine URL must use HTTPS")

        if self.block_engine_region not in BLOCK_ENGINES:
            errors.append(
                f"Unknown block engine region '{self.block_engine_region}' "
                f"(choose from {', '.join(BLOCK_ENGINES)})"
            )

        if self.jito_tip_lamports < 0:
            errors.append("Jito tip must be non-negative")

        if self.chunk_size <= 0:
            errors.append("Chunk size must be positive")

        if self.instructions_per_tx <= 0:
            errors.append("Instructions per transaction must be positive")

        if self.bundle_timeout_seconds <= 0:
            errors.append("Bundle timeout must be positive")

        if self.status_poll_interval_seconds <= 0:
            errors.append("Status poll interval must be positive")

        if self.iterations < 0:
            errors.append("Iterations must be non-negative")

        if self.iteration_delay_seconds < 0:
            errors.append("Iteration delay must be non-negative")

        return errors
