#!/usr/bin/env python3
"""
BIFROST - Lookup Table Tests

Instruction encoding, account decoding, caching, and table selection.

Run with: pytest tests/test_lookup_table.py -v
"""

import struct
from unittest.mock import AsyncMock, MagicMock

import pytest
from solders.pubkey import Pubkey

from bifrost.exceptions import LookupTableError
from bifrost.protocol.lookup_table import (
    LOOKUP_TABLE_PROGRAM_ID,
    MAX_ADDRESSES_PER_EXTEND,
    LookupTableCache,
    LookupTableManager,
    chunk_addresses,
    decode_lookup_table,
    derive_lookup_table_address,
)
from tests.conftest import lookup_table_data


def keys(n):
    return [Pubkey.new_unique() for _ in range(n)]


@pytest.fixture
def rpc():
    client = MagicMock()
    client.get_account_info = AsyncMock(return_value=None)
    return client


@pytest.fixture
def manager(rpc):
    return LookupTableManager(rpc, LookupTableCache())


# ═══════════════════════════════════════════════════════════════════════════
#  Instructions
# ═══════════════════════════════════════════════════════════════════════════


class TestCreate:
    """CreateLookupTable instructions."""

    def test_create_encoding(self, manager):
        authority = Pubkey.new_unique()
        ix, table = manager.create(authority, authority, 1000)

        expected_table, bump = derive_lookup_table_address(authority, 1000)
        assert table == expected_table
        assert ix.program_id == LOOKUP_TABLE_PROGRAM_ID
        assert bytes(ix.data) == struct.pack("<IQB", 0, 1000, bump)
        assert ix.accounts[0].pubkey == table
        assert ix.accounts[1].pubkey == authority and ix.accounts[1].is_signer

    def test_repeated_creates_use_distinct_slots(self, manager):
        authority = Pubkey.new_unique()
        _, first = manager.create(authority, authority, 1000)
        ix, second = manager.create(authority, authority, 1000)

        assert first != second
        assert second == derive_lookup_table_address(authority, 999)[0]
        (_, slot, _) = struct.unpack("<IQB", bytes(ix.data))
        assert slot == 999

    def test_address_is_deterministic(self):
        authority = Pubkey.new_unique()
        assert derive_lookup_table_address(authority, 5) == derive_lookup_table_address(authority, 5)

    def test_managers_do_not_share_index(self, rpc):
        authority = Pubkey.new_unique()
        _, a = LookupTableManager(rpc).create(authority, authority, 1000)
        _, b = LookupTableManager(rpc).create(authority, authority, 1000)
        assert a == b


class TestExtend:
    """ExtendLookupTable instructions."""

    def test_extend_encoding(self, manager):
        table, authority = Pubkey.new_unique(), Pubkey.new_unique()
        addresses = keys(3)

        ix = manager.extend(table, authority, authority, addresses)

        data = bytes(ix.data)
        assert struct.unpack_from("<IQ", data) == (2, 3)
        assert data[12:] == b"".join(bytes(a) for a in addresses)
        assert ix.accounts[0].pubkey == table and ix.accounts[0].is_writable

    def test_extend_at_cap(self, manager):
        manager.extend(Pubkey.new_unique(), Pubkey.new_unique(), Pubkey.new_unique(), keys(30))

    def test_extend_over_cap(self, manager):
        with pytest.raises(LookupTableError, match="max 30"):
            manager.extend(Pubkey.new_unique(), Pubkey.new_unique(), Pubkey.new_unique(), keys(31))

    def test_extend_empty(self, manager):
        with pytest.raises(LookupTableError):
            manager.extend(Pubkey.new_unique(), Pubkey.new_unique(), Pubkey.new_unique(), [])

    def test_chunk_addresses(self):
        addresses = keys(65)
        batches = chunk_addresses(addresses)
        assert [len(b) for b in batches] == [30, 30, 5]
        assert [a for b in batches for a in b] == addresses

    def test_chunk_size_above_cap(self):
        with pytest.raises(LookupTableError):
            chunk_addresses(keys(5), MAX_ADDRESSES_PER_EXTEND + 1)


# ═══════════════════════════════════════════════════════════════════════════
#  Reading tables
# ═══════════════════════════════════════════════════════════════════════════


class TestDecode:

    def test_decode_round_trip(self):
        addresses = keys(4)
        assert decode_lookup_table(lookup_table_data(addresses)) == addresses

    def test_decode_empty_table(self):
        assert decode_lookup_table(lookup_table_data([])) == []

    def test_decode_uninitialized(self):
        data = struct.pack("<I", 0) + bytes(52)
        assert decode_lookup_table(data) is None

    def test_decode_short_data(self):
        assert decode_lookup_table(b"\x01\x00") is None

    def test_decode_ragged_body(self):
        assert decode_lookup_table(lookup_table_data(keys(1)) + b"\x00") is None


class TestGetAddresses:

    @pytest.mark.asyncio
    async def test_fetch_then_cache_hit(self, manager, rpc):
        table = Pubkey.new_unique()
        addresses = keys(3)
        rpc.get_account_info.return_value = lookup_table_data(addresses)

        first = await manager.get_addresses(table)
        second = await manager.get_addresses(table)

        assert first == second == addresses
        rpc.get_account_info.assert_awaited_once_with(table)

    @pytest.mark.asyncio
    async def test_missing_table(self, manager):
        assert await manager.get_addresses(Pubkey.new_unique()) is None

    @pytest.mark.asyncio
    async def test_rpc_failure_is_absent(self, manager, rpc):
        rpc.get_account_info.side_effect = RuntimeError("rpc down")
        assert await manager.get_addresses(Pubkey.new_unique()) is None

    @pytest.mark.asyncio
    async def test_load_returns_table_account(self, manager, rpc):
        table = Pubkey.new_unique()
        addresses = keys(2)
        rpc.get_account_info.return_value = lookup_table_data(addresses)

        account = await manager.load(table)

        assert account.key == table
        assert list(account.addresses) == addresses

    @pytest.mark.asyncio
    async def test_refresh_bypasses_cache(self, manager, rpc):
        table = Pubkey.new_unique()
        first, later = keys(2)
        manager.cache.update(table, [first])
        rpc.get_account_info.return_value = lookup_table_data([first, later])

        assert await manager.get_addresses(table) == [first]
        assert await manager.refresh(table) == [first, later]
        assert await manager.get_addresses(table) == [first, later]

    @pytest.mark.asyncio
    async def test_refresh_failure_keeps_cache(self, manager, rpc):
        table = Pubkey.new_unique()
        manager.cache.update(table, keys(2))
        rpc.get_account_info.side_effect = RuntimeError("rpc down")

        assert await manager.refresh(table) is None
        assert len(manager.cache.get(table)) == 2

    def test_cache_only_grows(self):
        cache = LookupTableCache()
        table = Pubkey.new_unique()
        addresses = keys(3)
        cache.update(table, addresses)
        cache.update(table, addresses[:1])
        assert cache.get(table) == addresses
        assert table in cache


# ═══════════════════════════════════════════════════════════════════════════
#  Selection
# ═══════════════════════════════════════════════════════════════════════════


class TestSelectTables:

    @pytest.mark.asyncio
    async def test_greedy_selection(self, manager):
        a = keys(7)
        table_a, table_b, table_c = keys(3)
        manager.cache.update(table_a, a[:5])
        manager.cache.update(table_b, [a[0], a[5]])
        manager.cache.update(table_c, [a[6]])

        selected = await manager.select_tables_for([a[0], a[1], a[2], a[5], a[6]])

        assert len(selected) == 1
        table, matched = selected[0]
        assert table == table_a
        assert matched == [a[0], a[1], a[2]]

    @pytest.mark.asyncio
    async def test_no_table_below_minimum(self, manager):
        a = keys(2)
        manager.cache.update(Pubkey.new_unique(), [a[0]])
        assert await manager.select_tables_for(a) == []

    @pytest.mark.asyncio
    async def test_at_most_three_tables(self, manager):
        targets = []
        # Overlaps of 6, 5, 4, 3, 2 so the ranking is unambiguous
        for size in (6, 5, 4, 3, 2):
            addresses = keys(size)
            manager.cache.update(Pubkey.new_unique(), addresses)
            targets.extend(addresses)

        selected = await manager.select_tables_for(targets)

        assert [len(s.addresses) for s in selected] == [6, 5, 4]

    @pytest.mark.asyncio
    async def test_matched_addresses_disjoint(self, manager):
        shared = keys(4)
        table_a, table_b = keys(2)
        extra = keys(2)
        manager.cache.update(table_a, shared + [extra[0]])
        manager.cache.update(table_b, shared[:2] + extra[1:])

        selected = await manager.select_tables_for(shared + extra)

        seen = set()
        for selection in selected:
            assert len(selection.addresses) >= 2
            assert seen.isdisjoint(selection.addresses)
            seen.update(selection.addresses)

    @pytest.mark.asyncio
    async def test_known_tables_restrict_candidates(self, manager, rpc):
        a = keys(3)
        known, other = keys(2)
        manager.cache.update(other, a)
        rpc.get_account_info.return_value = lookup_table_data(a[:2])

        selected = await manager.select_tables_for(a, known_tables=[known])

        assert [s.table for s in selected] == [known]
        assert selected[0].addresses == a[:2]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
