"""
BIFROST Bundle - Transaction building, chunked assembly, and submission.
"""

from .assembler import AssembledBundle, BundleAssembler, chunk
from .builder import MAX_TRANSACTION_SIZE, TransactionBuilder, UnsignedTransaction
from .submitter import (
    BundleOutcome,
    BundleResult,
    BundleResultChannel,
    BundleSubmitter,
    InflightStatusFeed,
    SignatureFeed,
)

__all__ = [
    "TransactionBuilder",
    "UnsignedTransaction",
    "MAX_TRANSACTION_SIZE",
    "BundleAssembler",
    "AssembledBundle",
    "chunk",
    "BundleSubmitter",
    "BundleResult",
    "BundleOutcome",
    "BundleResultChannel",
    "InflightStatusFeed",
    "SignatureFeed",
]
