"""
BIFROST - Jito Bundle Launcher

"The bridge that only opens for all travellers at once."
Derive addresses, compress them through lookup tables, pack wallets into
size-bounded transactions, and land them as one atomic Jito bundle.

Usage:
    from bifrost import BundlerConfig, LaunchRunner

    config = BundlerConfig(jito_tip_lamports=100_000)
    runner = LaunchRunner(config)
    await runner.start()
    results = await runner.run_iterations(wallets, make_swap_instructions)
"""

__version__ = "1.0.0"

# Bundle pipeline
from bifrost.bundle.assembler import AssembledBundle, BundleAssembler
from bifrost.bundle.builder import MAX_TRANSACTION_SIZE, TransactionBuilder, UnsignedTransaction
from bifrost.bundle.submitter import (
    BundleOutcome,
    BundleResult,
    BundleResultChannel,
    BundleSubmitter,
    InflightStatusFeed,
    SignatureFeed,
)

# Core configuration
from bifrost.config import BundlerConfig

# Core components
from bifrost.core.client import SolanaClient
from bifrost.core.state import StateFile
from bifrost.core.wallet import Signer, WalletManager, load_keypairs

# Exceptions
from bifrost.exceptions import (
    BifrostError,
    BlockhashUnavailableError,
    BundleTooLargeError,
    ConfigError,
    DerivationExhaustedError,
    InstructionGenerationError,
    InvalidAddressError,
    LookupTableError,
    MissingSignatureError,
    RelaySubmitError,
    SeedError,
    StateFileError,
    TransactionError,
    TransactionTooLargeError,
    WalletError,
)

# Logger
from bifrost.logger import BifrostLogger

# Protocol
from bifrost.protocol.jito import JitoRelayClient, TipSelector
from bifrost.protocol.lookup_table import LookupTableCache, LookupTableManager
from bifrost.protocol.pda import associated_token_address, find_program_address

# Runner
from bifrost.runner import LaunchRunner

__all__ = [
    # Config
    "BundlerConfig",
    # Exceptions
    "BifrostError",
    "ConfigError",
    "WalletError",
    "InvalidAddressError",
    "SeedError",
    "DerivationExhaustedError",
    "LookupTableError",
    "TransactionError",
    "TransactionTooLargeError",
    "MissingSignatureError",
    "BlockhashUnavailableError",
    "InstructionGenerationError",
    "RelaySubmitError",
    "StateFileError",
    "BundleTooLargeError",
    # Logger
    "BifrostLogger",
    # Core
    "Signer",
    "WalletManager",
    "load_keypairs",
    "SolanaClient",
    "StateFile",
    # Protocol
    "find_program_address",
    "associated_token_address",
    "LookupTableCache",
    "LookupTableManager",
    "TipSelector",
    "JitoRelayClient",
    # Bundle
    "MAX_TRANSACTION_SIZE",
    "TransactionBuilder",
    "UnsignedTransaction",
    "BundleAssembler",
    "AssembledBundle",
    "BundleOutcome",
    "BundleResult",
    "BundleResultChannel",
    "BundleSubmitter",
    "InflightStatusFeed",
    "SignatureFeed",
    # Runner
    "LaunchRunner",
]
