"""
BIFROST Core - RPC client, wallets and signers, sidecar state.
"""

from .client import SolanaClient
from .state import StateFile
from .wallet import Signer, WalletManager, load_keypairs

__all__ = [
    "Signer",
    "WalletManager",
    "load_keypairs",
    "SolanaClient",
    "StateFile",
]
