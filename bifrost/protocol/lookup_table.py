#!/usr/bin/env python3
"""
BIFROST - Address Lookup Tables

Create, extend, and read on-chain address lookup tables, and pick which of
the known tables are worth attaching to a given transaction.

Each address found in an attached table costs 1 byte (an index) in the
compiled message instead of 32, which is what keeps multi-wallet bundle
transactions under the 1232-byte packet limit.

Account layout (LookupTableMeta, 56 bytes, then packed 32-byte keys):
- 4 bytes: type discriminator (1 = initialized table)
- 8 bytes: deactivation_slot
- 8 bytes: last_extended_slot
- 1 byte:  last_extended_slot_start_index
- 1 + 32:  Option<authority>
- 2 bytes: padding
"""

import logging
import struct
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from solders.address_lookup_table_account import AddressLookupTableAccount
from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey
from solders.system_program import ID as SYS_PROGRAM_ID

from bifrost.exceptions import LookupTableError
from bifrost.protocol.pda import find_program_address

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
#                       ADDRESS LOOKUP TABLE PROGRAM
# ═══════════════════════════════════════════════════════════════════════════

LOOKUP_TABLE_PROGRAM_ID = Pubkey.from_string("AddressLookupTab1e1111111111111111111111111")

CREATE_LOOKUP_TABLE = 0
EXTEND_LOOKUP_TABLE = 2

LOOKUP_TABLE_META_SIZE = 56
LOOKUP_TABLE_INITIALIZED = 1

# Practical ceiling: an extend instruction carrying more keys than this no
# longer fits in one transaction next to its own accounts and signatures.
MAX_ADDRESSES_PER_EXTEND = 30

# Selection limits
MIN_ADDRESSES_TO_INCLUDE_TABLE = 2
MAX_TABLES_PER_TRANSACTION = 3


def derive_lookup_table_address(authority: Pubkey, recent_slot: int) -> tuple[Pubkey, int]:
    """Table PDA = find_program_address([authority, u64_le(slot)], ALT program)."""
    return find_program_address(
        [bytes(authority), struct.pack("<Q", recent_slot)],
        LOOKUP_TABLE_PROGRAM_ID,
    )


def decode_lookup_table(data: bytes) -> list[Pubkey] | None:
    """Decode raw table account data. None if the data is not an initialized table."""
    if len(data) < LOOKUP_TABLE_META_SIZE:
        return None
    (discriminator,) = struct.unpack_from("<I", data, 0)
    if discriminator != LOOKUP_TABLE_INITIALIZED:
        return None
    body = data[LOOKUP_TABLE_META_SIZE:]
    if len(body) % 32 != 0:
        return None
    return [Pubkey.from_bytes(body[i:i + 32]) for i in range(0, len(body), 32)]


def chunk_addresses(
    addresses: Sequence[Pubkey], size: int = MAX_ADDRESSES_PER_EXTEND
) -> list[list[Pubkey]]:
    """Split an address list into extend-sized batches, preserving order."""
    if size <= 0 or size > MAX_ADDRESSES_PER_EXTEND:
        raise LookupTableError(
            f"Extend batch size must be between 1 and {MAX_ADDRESSES_PER_EXTEND}, got {size}"
        )
    return [list(addresses[i:i + size]) for i in range(0, len(addresses), size)]


@dataclass
class TableSelection:
    """A table chosen for a transaction and the target addresses it covers."""

    table: Pubkey
    addresses: list[Pubkey]

    def __iter__(self):
        # Unpacks as (table, matched)
        return iter((self.table, self.addresses))


@dataclass
class LookupTableCache:
    """
    Known table contents plus a reverse index (address -> tables holding it).

    Append-only: tables and addresses are added, never removed. One cache per
    session; pass it to whoever needs it.
    """

    tables: dict[Pubkey, list[Pubkey]] = field(default_factory=dict)
    tables_by_address: dict[Pubkey, set[Pubkey]] = field(default_factory=dict)

    def __contains__(self, table: Pubkey) -> bool:
        return table in self.tables

    def get(self, table: Pubkey) -> list[Pubkey] | None:
        addresses = self.tables.get(table)
        return list(addresses) if addresses is not None else None

    def update(self, table: Pubkey, addresses: Iterable[Pubkey]) -> None:
        addresses = list(addresses)
        current = self.tables.get(table, [])
        # Tables only grow; keep the longer view.
        if len(addresses) < len(current):
            return
        self.tables[table] = addresses
        for address in addresses:
            self.tables_by_address.setdefault(address, set()).add(table)

    def account(self, table: Pubkey) -> AddressLookupTableAccount | None:
        addresses = self.tables.get(table)
        if addresses is None:
            return None
        return AddressLookupTableAccount(key=table, addresses=addresses)


class LookupTableManager:
    """
    Create, extend, and query lookup tables for one session.

    `client` needs a single coroutine, get_account_info(Pubkey) -> bytes | None.
    """

    def __init__(self, client, cache: LookupTableCache | None = None):
        self.client = client
        self.cache = cache if cache is not None else LookupTableCache()
        self._create_index = 0

    # ─────────────────────────────── instructions ───────────────────────────

    def create(
        self, payer: Pubkey, authority: Pubkey, recent_slot: int
    ) -> tuple[Instruction, Pubkey]:
        """
        Build a CreateLookupTable instruction.

        Each call in a session advances an internal index (starting at 0) and
        derives from `recent_slot - index`, so repeated creates from the same
        observed slot produce distinct tables.

        Returns:
            (instruction, table_address) - persist the address for later runs
        """
        slot = recent_slot - self._create_index
        if slot < 0:
            raise LookupTableError(f"Recent slot {recent_slot} too low for create #{self._create_index}")

        table_address, bump = derive_lookup_table_address(authority, slot)
        self._create_index += 1

        data = struct.pack("<IQB", CREATE_LOOKUP_TABLE, slot, bump)
        accounts = [
            AccountMeta(pubkey=table_address, is_signer=False, is_writable=True),
            AccountMeta(pubkey=authority, is_signer=True, is_writable=False),
            AccountMeta(pubkey=payer, is_signer=True, is_writable=True),
            AccountMeta(pubkey=SYS_PROGRAM_ID, is_signer=False, is_writable=False),
        ]
        logger.info("LUT create: %s (slot %d, bump %d)", table_address, slot, bump)
        return Instruction(
            program_id=LOOKUP_TABLE_PROGRAM_ID, accounts=accounts, data=data
        ), table_address

    def extend(
        self,
        table: Pubkey,
        authority: Pubkey,
        payer: Pubkey,
        addresses: Sequence[Pubkey],
    ) -> Instruction:
        """
        Build an ExtendLookupTable instruction.

        Raises:
            LookupTableError: empty list or more than MAX_ADDRESSES_PER_EXTEND
                addresses (use chunk_addresses and one call per batch)
        """
        if not addresses:
            raise LookupTableError("Extend requires at least one address")
        if len(addresses) > MAX_ADDRESSES_PER_EXTEND:
            raise LookupTableError(
                f"Extend carries {len(addresses)} addresses (max {MAX_ADDRESSES_PER_EXTEND} per call)"
            )

        data = struct.pack("<IQ", EXTEND_LOOKUP_TABLE, len(addresses))
        data += b"".join(bytes(address) for address in addresses)

        accounts = [
            AccountMeta(pubkey=table, is_signer=False, is_writable=True),
            AccountMeta(pubkey=authority, is_signer=True, is_writable=False),
            AccountMeta(pubkey=payer, is_signer=True, is_writable=True),
            AccountMeta(pubkey=SYS_PROGRAM_ID, is_signer=False, is_writable=False),
        ]
        return Instruction(program_id=LOOKUP_TABLE_PROGRAM_ID, accounts=accounts, data=data)

    # ─────────────────────────────── queries ────────────────────────────────

    async def get_addresses(self, table: Pubkey) -> list[Pubkey] | None:
        """
        Current address list of `table`, from cache when possible.
        None when the table does not exist, cannot be decoded, or the RPC fails.
        """
        cached = self.cache.get(table)
        if cached is not None:
            return cached
        return await self.refresh(table)

    async def refresh(self, table: Pubkey) -> list[Pubkey] | None:
        """
        Re-read `table` from the chain, bypassing the cache. Needed before an
        extend: a timed-out extend may have landed since the table was cached.
        """
        try:
            data = await self.client.get_account_info(table)
        except Exception as e:
            logger.error("Failed to fetch lookup table %s: %s", table, e)
            return None

        if data is None:
            return None

        addresses = decode_lookup_table(data)
        if addresses is None:
            logger.warning("Account %s is not an initialized lookup table", table)
            return None

        self.cache.update(table, addresses)
        return self.cache.get(table)

    async def load(self, table: Pubkey) -> AddressLookupTableAccount | None:
        """Fetch (or reuse) a table and return it ready for message compilation."""
        if await self.get_addresses(table) is None:
            return None
        return self.cache.account(table)

    def lookup_table_accounts(self, tables: Iterable[Pubkey]) -> list[AddressLookupTableAccount]:
        """Cached table accounts for the given addresses; uncached tables are skipped."""
        accounts = []
        for table in tables:
            account = self.cache.account(table)
            if account is not None:
                accounts.append(account)
        return accounts

    async def select_tables_for(
        self,
        addresses: Iterable[Pubkey],
        known_tables: Sequence[Pubkey] = (),
    ) -> list[TableSelection]:
        """
        Choose up to 3 tables that compress the most of `addresses`.

        Greedy on overlap count: a table is taken only while it still covers
        at least 2 of the not-yet-covered targets, and selection stops once
        fewer than 2 coverable targets remain.
        """
        for table in known_tables:
            await self.get_addresses(table)

        candidates = set(known_tables) if known_tables else set(self.cache.tables)

        targets: list[Pubkey] = []
        seen: set[Pubkey] = set()
        for address in addresses:
            if address not in seen:
                seen.add(address)
                targets.append(address)

        overlap: dict[Pubkey, int] = {}
        remaining: set[Pubkey] = set()
        for address in targets:
            holders = self.cache.tables_by_address.get(address, set()) & candidates
            if not holders:
                continue
            remaining.add(address)
            for table in holders:
                overlap[table] = overlap.get(table, 0) + 1

        ranked = sorted(overlap.items(), key=lambda item: item[1], reverse=True)

        selected: list[TableSelection] = []
        for table, count in ranked:
            if count < MIN_ADDRESSES_TO_INCLUDE_TABLE:
                break
            if len(selected) >= MAX_TABLES_PER_TRANSACTION:
                break
            if len(remaining) < MIN_ADDRESSES_TO_INCLUDE_TABLE:
                break

            matched: list[Pubkey] = []
            for address in self.cache.tables.get(table, []):
                if address in remaining and address not in matched:
                    matched.append(address)

            if len(matched) >= MIN_ADDRESSES_TO_INCLUDE_TABLE:
                selected.append(TableSelection(table=table, addresses=matched))
                remaining.difference_update(matched)

        return selected
