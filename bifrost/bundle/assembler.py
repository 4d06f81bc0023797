#!/usr/bin/env python3
"""
BIFROST - Bundle Assembler

Turns one instruction set per wallet into a short, ordered list of signed
transactions that must land together.

Per chunk of wallets:
1. generate each wallet's instructions (skip or abort on failure, see `strict`)
2. pick the lookup tables that compress the chunk's accounts
3. compile one transaction with the shared blockhash
4. sign with every wallet in the chunk plus the fee payer

The fee payer signs every transaction: each one names it as fee payer.
"""

import inspect
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import TypeVar, Union

from solders.hash import Hash
from solders.instruction import Instruction
from solders.pubkey import Pubkey
from solders.transaction import VersionedTransaction

from bifrost.bundle.builder import TransactionBuilder
from bifrost.core.wallet import Signer
from bifrost.exceptions import InstructionGenerationError
from bifrost.logger import BifrostLogger
from bifrost.protocol.jito import TipSelector
from bifrost.protocol.lookup_table import LookupTableManager

DEFAULT_CHUNK_SIZE = 7  # ~19 accounts per swap instruction keeps 7 under 1232 bytes
DEFAULT_INSTRUCTIONS_PER_TX = 10

T = TypeVar("T")

InstructionFactory = Callable[
    [Signer], Union[Sequence[Instruction], Awaitable[Sequence[Instruction]]]
]


def chunk(items: Sequence[T], size: int) -> list[list[T]]:
    """Fixed-size chunks in input order; the last one may be short."""
    if size <= 0:
        raise ValueError(f"Chunk size must be positive, got {size}")
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


def referenced_addresses(instructions: Sequence[Instruction]) -> list[Pubkey]:
    """
    Accounts a lookup table could resolve. Invoked program ids and signers
    must stay in the static keys, so they are left out.
    """
    invoked = {ix.program_id for ix in instructions}
    addresses = []
    for ix in instructions:
        for meta in ix.accounts:
            if not meta.is_signer and meta.pubkey not in invoked:
                addresses.append(meta.pubkey)
    return addresses


@dataclass
class AssembledBundle:
    """Signed transactions in bundle order, plus wallets that were left out."""

    transactions: list[VersionedTransaction] = field(default_factory=list)
    skipped: list[Pubkey] = field(default_factory=list)
    sizes: list[int] = field(default_factory=list)

    @property
    def total_size(self) -> int:
        return sum(self.sizes)

    def __len__(self) -> int:
        return len(self.transactions)


@dataclass
class _Draft:
    instructions: list[Instruction]
    signers: list[Signer]


class BundleAssembler:
    """
    Chunk wallets (or a flat instruction list) into signed transactions.

    strict=False logs and skips a wallet whose instructions fail to generate;
    strict=True raises InstructionGenerationError and builds nothing.
    """

    def __init__(
        self,
        builder: TransactionBuilder,
        logger: BifrostLogger,
        lookup_tables: LookupTableManager | None = None,
        tip_selector: TipSelector | None = None,
        strict: bool = False,
    ):
        self.builder = builder
        self.logger = logger
        self.lookup_tables = lookup_tables
        self.tip_selector = tip_selector or TipSelector()
        self.strict = strict

    async def _instructions_for(self, make_instructions: InstructionFactory, signer: Signer):
        result = make_instructions(signer)
        if inspect.isawaitable(result):
            result = await result
        return list(result)

    async def _compile_and_sign(
        self,
        drafts: list[_Draft],
        fee_payer: Signer,
        blockhash: Hash,
        known_tables: Sequence[Pubkey],
        bundle: AssembledBundle,
    ) -> AssembledBundle:
        for index, draft in enumerate(drafts):
            tables = []
            if self.lookup_tables is not None and known_tables:
                selections = await self.lookup_tables.select_tables_for(
                    referenced_addresses(draft.instructions), known_tables
                )
                tables = self.lookup_tables.lookup_table_accounts(s.table for s in selections)

            unsigned = self.builder.compile(fee_payer.pubkey(), draft.instructions, tables, blockhash)
            transaction = self.builder.sign(unsigned, [*draft.signers, fee_payer])

            self.logger.debug(
                f"Chunk {index + 1}/{len(drafts)}: {len(draft.signers)} wallet(s), {unsigned.size} bytes"
            )
            bundle.transactions.append(transaction)
            bundle.sizes.append(unsigned.size)
        return bundle

    def _append_tip(self, drafts: list[_Draft], payer: Pubkey, tip_lamports: int):
        if tip_lamports > 0 and drafts:
            drafts[-1].instructions.append(self.tip_selector.tip_instruction(payer, tip_lamports))

    async def assemble(
        self,
        signers: Sequence[Signer],
        make_instructions: InstructionFactory,
        fee_payer: Signer,
        blockhash: Hash,
        lookup_tables: Sequence[Pubkey] = (),
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        tip_lamports: int = 0,
    ) -> AssembledBundle:
        """
        Build one transaction per chunk of `signers`, in chunk order.

        Args:
            signers: wallets that each need their own instructions
            make_instructions: signer -> instructions (sync or async)
            fee_payer: pays for and signs every transaction
            blockhash: shared by every transaction of the bundle
            lookup_tables: candidate tables for compression
            chunk_size: wallets per transaction
            tip_lamports: > 0 appends a tip transfer to the final transaction
        """
        bundle = AssembledBundle()
        drafts: list[_Draft] = []

        for chunk_index, wallets in enumerate(chunk(signers, chunk_size)):
            draft = _Draft(instructions=[], signers=[])
            for wallet in wallets:
                try:
                    instructions = await self._instructions_for(make_instructions, wallet)
                except Exception as e:
                    if self.strict:
                        raise InstructionGenerationError(wallet.pubkey(), e) from e
                    self.logger.error(f"Skipping wallet {wallet.pubkey()} in chunk {chunk_index + 1}", e)
                    bundle.skipped.append(wallet.pubkey())
                    continue
                draft.instructions.extend(instructions)
                draft.signers.append(wallet)

            if not draft.instructions:
                self.logger.warning(f"Chunk {chunk_index + 1} produced no instructions; dropped")
                continue
            drafts.append(draft)

        self._append_tip(drafts, fee_payer.pubkey(), tip_lamports)
        return await self._compile_and_sign(drafts, fee_payer, blockhash, lookup_tables, bundle)

    async def assemble_instructions(
        self,
        instructions: Sequence[Instruction],
        fee_payer: Signer,
        blockhash: Hash,
        lookup_tables: Sequence[Pubkey] = (),
        instructions_per_tx: int = DEFAULT_INSTRUCTIONS_PER_TX,
        tip_lamports: int = 0,
        extra_signers: Sequence[Signer] = (),
    ) -> AssembledBundle:
        """
        Pack an already-generated instruction list into transactions of at
        most `instructions_per_tx` instructions each (tip excluded), signed by
        the fee payer and any `extra_signers` the instructions require.
        """
        drafts = [
            _Draft(instructions=batch, signers=list(extra_signers))
            for batch in chunk(instructions, instructions_per_tx)
        ]
        self._append_tip(drafts, fee_payer.pubkey(), tip_lamports)
        return await self._compile_and_sign(drafts, fee_payer, blockhash, lookup_tables, AssembledBundle())
