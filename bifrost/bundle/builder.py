#!/usr/bin/env python3
"""
BIFROST - Transaction Builder

Compiles a fee payer, instructions, a recent blockhash and lookup tables
into a v0 transaction, checks it fits in one packet, and signs it with
whatever Signer implementations the caller hands over.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from solders.address_lookup_table_account import AddressLookupTableAccount
from solders.hash import Hash
from solders.instruction import Instruction
from solders.message import MessageV0, to_bytes_versioned
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import VersionedTransaction

from bifrost.core.wallet import Signer
from bifrost.exceptions import (
    BlockhashUnavailableError,
    MissingSignatureError,
    TransactionError,
    TransactionTooLargeError,
)
from bifrost.logger import BifrostLogger

# Maximum serialized transaction size (IPv6 MTU minus headers)
MAX_TRANSACTION_SIZE = 1232


@dataclass
class UnsignedTransaction:
    """A compiled message waiting for signatures."""

    message: MessageV0
    size: int
    required_signers: list[Pubkey] = field(default_factory=list)
    lookup_tables: list[Pubkey] = field(default_factory=list)

    @property
    def fee_payer(self) -> Pubkey:
        return self.message.account_keys[0]


def serialized_size(message: MessageV0) -> int:
    """Wire size of the transaction once every required signature is attached."""
    num_signatures = message.header.num_required_signatures
    placeholder = VersionedTransaction.populate(message, [Signature.default()] * num_signatures)
    return len(bytes(placeholder))


class TransactionBuilder:
    """
    One transaction per call.

    `client` needs get_latest_blockhash() -> Hash | None; it is only used
    when the caller does not pass a blockhash explicitly.
    """

    def __init__(self, client, logger: BifrostLogger, max_size: int = MAX_TRANSACTION_SIZE):
        self.client = client
        self.logger = logger
        self.max_size = max_size
        self._built = 0

    async def fetch_blockhash(self) -> Hash:
        """Fresh blockhash or BlockhashUnavailableError; a stale one fails at the relay."""
        blockhash = await self.client.get_latest_blockhash()
        if blockhash is None:
            raise BlockhashUnavailableError("Could not fetch a recent blockhash")
        return blockhash

    async def build(
        self,
        payer: Pubkey,
        instructions: Sequence[Instruction],
        lookup_tables: Sequence[AddressLookupTableAccount] = (),
        blockhash: Hash | None = None,
    ) -> UnsignedTransaction:
        """
        Compile an unsigned v0 transaction.

        Raises:
            ValueError: no instructions
            BlockhashUnavailableError: blockhash not given and the RPC fetch failed
            TransactionTooLargeError: serialized size above the packet limit
        """
        if not instructions:
            raise ValueError("Transaction needs at least one instruction")

        if blockhash is None:
            blockhash = await self.fetch_blockhash()

        return self.compile(payer, instructions, lookup_tables, blockhash)

    def compile(
        self,
        payer: Pubkey,
        instructions: Sequence[Instruction],
        lookup_tables: Sequence[AddressLookupTableAccount],
        blockhash: Hash,
    ) -> UnsignedTransaction:
        """Synchronous half of build(): compile and check size, no network."""
        if not instructions:
            raise ValueError("Transaction needs at least one instruction")

        try:
            message = MessageV0.try_compile(
                payer=payer,
                instructions=list(instructions),
                address_lookup_table_accounts=list(lookup_tables),
                recent_blockhash=blockhash,
            )
        except Exception as e:
            raise TransactionError(f"Message compilation failed: {e}") from e

        size = serialized_size(message)
        if size > self.max_size:
            raise TransactionTooLargeError(size, self.max_size)

        num_signers = message.header.num_required_signatures
        self._built += 1
        self.logger.transaction_built(self._built, size, len(instructions), len(lookup_tables))

        return UnsignedTransaction(
            message=message,
            size=size,
            required_signers=list(message.account_keys[:num_signers]),
            lookup_tables=[table.key for table in lookup_tables],
        )

    @staticmethod
    def sign(unsigned: UnsignedTransaction, signers: Iterable[Signer]) -> VersionedTransaction:
        """
        Collect one signature per required signer, in message order.
        Signers the message does not require are ignored.

        Raises:
            MissingSignatureError: a required signer was not provided
        """
        by_address = {signer.pubkey(): signer for signer in signers}
        missing = [key for key in unsigned.required_signers if key not in by_address]
        if missing:
            raise MissingSignatureError(missing)

        message_bytes = to_bytes_versioned(unsigned.message)
        signatures = [
            by_address[key].sign_message(message_bytes) for key in unsigned.required_signers
        ]
        return VersionedTransaction.populate(unsigned.message, signatures)
