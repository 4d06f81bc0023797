#!/usr/bin/env python3
"""
BIFROST - Custom Exception Hierarchy

Structured error types for precise error handling.
"""


class BifrostError(Exception):
    """Base exception for all BIFROST errors."""

    pass


class ConfigError(BifrostError):
    """Invalid or missing configuration."""

    pass


class WalletError(BifrostError):
    """Wallet or key management error."""

    pass


class InvalidAddressError(BifrostError, ValueError):
    """Text that does not decode to a 32-byte base-58 address."""

    def __init__(self, value: str, reason: str = ""):
        self.value = value
        detail = f": {reason}" if reason else ""
        super().__init__(f"Invalid address '{value}'{detail}")


class SeedError(BifrostError, ValueError):
    """Seeds that cannot be used for program address derivation."""

    pass


class DerivationExhaustedError(BifrostError):
    """No bump in [0, 255] produced an off-curve program address."""

    def __init__(self, program_id, seeds):
        self.program_id = program_id
        self.seeds = list(seeds)
        super().__init__(
            f"No viable bump seed for program {program_id} ({len(self.seeds)} seeds)"
        )


class LookupTableError(BifrostError):
    """Invalid lookup table operation."""

    pass


class TransactionError(BifrostError):
    """Local transaction building failure."""

    pass


class TransactionTooLargeError(TransactionError):
    """Serialized transaction exceeds the network packet limit."""

    def __init__(self, size: int, limit: int = 1232):
        self.size = size
        self.limit = limit
        super().__init__(f"Transaction too large: {size} > {limit} bytes")


class MissingSignatureError(TransactionError):
    """A required signer did not sign the transaction."""

    def __init__(self, missing):
        self.missing = list(missing)
        names = ", ".join(str(m) for m in self.missing)
        super().__init__(f"Missing signatures for: {names}")


class BlockhashUnavailableError(TransactionError):
    """Could not fetch a recent blockhash; the build step cannot continue."""

    pass


class InstructionGenerationError(BifrostError):
    """Per-signer instruction generation failed inside a chunk."""

    def __init__(self, signer, cause: Exception):
        self.signer = signer
        self.cause = cause
        super().__init__(f"Instruction generation failed for {signer}: {cause}")


class RelaySubmitError(BifrostError):
    """The block engine refused the bundle or could not be reached."""

    pass


class StateFileError(BifrostError):
    """The sidecar state file could not be read or written."""

    pass


class BundleTooLargeError(BifrostError):
    """More transactions than one bundle can carry."""

    def __init__(self, count: int, limit: int = 5):
        self.count = count
        self.limit = limit
        super().__init__(f"Bundle needs {count} transactions; a bundle holds {limit}")
