#!/usr/bin/env python3
"""
BIFROST - Launch Runner Tests

Lookup table creation and extension, and iteration sequencing, with the
RPC client and the block engine mocked out.

Run with: pytest tests/test_runner.py -v
"""

import asyncio
import time
from unittest.mock import AsyncMock, MagicMock

import pytest
from solders.keypair import Keypair
from solders.pubkey import Pubkey

import bifrost.runner as runner_module
from bifrost.bundle.submitter import BundleOutcome, BundleResult
from bifrost.exceptions import BundleTooLargeError, ConfigError, LookupTableError
from bifrost.protocol.lookup_table import derive_lookup_table_address
from bifrost.runner import LaunchRunner, _read_addresses
from tests.conftest import lookup_table_data, noop_instruction


@pytest.fixture
def runner(bundler_config, logger, mock_client, mock_relay, wallet):
    return LaunchRunner(
        bundler_config, logger=logger, client=mock_client, relay=mock_relay, wallet=wallet
    )


def swap(signer):
    return [noop_instruction(signer.pubkey())]


class TestRunnerSetup:

    def test_invalid_config_rejected(self, bundler_config, logger, mock_client, mock_relay, wallet):
        bundler_config.chunk_size = 0
        with pytest.raises(ConfigError, match="Chunk size"):
            LaunchRunner(bundler_config, logger=logger, client=mock_client, relay=mock_relay, wallet=wallet)

    def test_runners_have_separate_caches(self, bundler_config, logger, mock_client, mock_relay, wallet):
        a = LaunchRunner(bundler_config, logger=logger, client=mock_client, relay=mock_relay, wallet=wallet)
        b = LaunchRunner(bundler_config, logger=logger, client=mock_client, relay=mock_relay, wallet=wallet)
        assert a.lookup_tables.cache is not b.lookup_tables.cache

    @pytest.mark.asyncio
    async def test_close_releases_everything(self, runner, mock_client, mock_relay):
        await runner.start()
        await runner.close()
        mock_relay.close.assert_awaited_once()
        mock_client.close.assert_awaited_once()


class TestLookupTableFlows:

    @pytest.mark.asyncio
    async def test_create_saves_table_on_accept(self, runner, wallets, mock_relay, mock_client):
        mock_relay.send_bundle = AsyncMock(return_value="bundle-lut")
        runner.channel.publish(BundleResult.accepted("bundle-lut", slot=1))

        table, result = await runner.create_lookup_table(wallets[:3])

        payer = runner.payer.pubkey()
        assert result.landed
        assert table == derive_lookup_table_address(payer, 250_000_000)[0]
        assert runner.state.lookup_table() == table
        sent = mock_relay.send_bundle.call_args.args[0]
        assert len(sent) == 1

    @pytest.mark.asyncio
    async def test_create_saves_table_on_timeout(self, runner, wallets):
        runner.submitter.timeout = 0.05
        table, result = await runner.create_lookup_table(wallets[:2])

        assert result.outcome == BundleOutcome.TIMED_OUT
        assert runner.state.lookup_table() == table

    @pytest.mark.asyncio
    async def test_create_does_not_save_on_drop(self, runner, wallets):
        runner.channel.publish(BundleResult.dropped("bundle-1", "simulation failure"))

        _, result = await runner.create_lookup_table(wallets[:2])

        assert result.outcome == BundleOutcome.DROPPED
        assert runner.state.lookup_table() is None

    @pytest.mark.asyncio
    async def test_create_needs_slot(self, runner, mock_client):
        mock_client.get_slot = AsyncMock(return_value=None)
        with pytest.raises(LookupTableError):
            await runner.create_lookup_table([])

    @pytest.mark.asyncio
    async def test_extend_adds_only_new_addresses(self, runner, mock_client, mock_relay):
        table = Pubkey.new_unique()
        existing = [Pubkey.new_unique() for _ in range(2)]
        new = [Pubkey.new_unique() for _ in range(3)]
        mock_client.get_account_info = AsyncMock(return_value=lookup_table_data(existing))
        runner.state.save_lookup_table(table)
        runner.channel.publish(BundleResult.accepted("bundle-1"))

        result = await runner.extend_lookup_table(existing + new)

        assert result.landed
        assert runner.lookup_tables.cache.get(table) == existing + new
        assert len(mock_relay.send_bundle.call_args.args[0]) == 1

    @pytest.mark.asyncio
    async def test_extend_rereads_table_before_adding(self, runner, mock_client, mock_relay):
        table = Pubkey.new_unique()
        first, landed_late, fresh = (Pubkey.new_unique() for _ in range(3))
        runner.lookup_tables.cache.update(table, [first])
        # An earlier extend timed out but landed after all
        mock_client.get_account_info = AsyncMock(return_value=lookup_table_data([first, landed_late]))
        runner.lookup_tables.extend = MagicMock(wraps=runner.lookup_tables.extend)
        runner.channel.publish(BundleResult.accepted("bundle-1"))

        await runner.extend_lookup_table([landed_late, fresh], table=table)

        (_, _, _, added), _ = runner.lookup_tables.extend.call_args
        assert added == [fresh]
        assert runner.lookup_tables.cache.get(table) == [first, landed_late, fresh]

    @pytest.mark.asyncio
    async def test_extend_nothing_new(self, runner, mock_client, mock_relay):
        table = Pubkey.new_unique()
        existing = [Pubkey.new_unique() for _ in range(2)]
        mock_client.get_account_info = AsyncMock(return_value=lookup_table_data(existing))

        assert await runner.extend_lookup_table(existing, table=table) is None
        mock_relay.send_bundle.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_extend_larger_than_one_bundle(self, runner, mock_relay):
        addresses = [Pubkey.new_unique() for _ in range(101)]
        with pytest.raises(LookupTableError, match="a bundle holds 5"):
            await runner.extend_lookup_table(addresses, table=Pubkey.new_unique())
        mock_relay.send_bundle.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_extend_without_saved_table(self, runner):
        with pytest.raises(LookupTableError, match="create one first"):
            await runner.extend_lookup_table([Pubkey.new_unique()])


class TestIterations:

    @pytest.mark.asyncio
    async def test_run_once_submits_bundle(self, runner, wallets, mock_relay, bundler_config):
        runner.channel.publish(BundleResult.accepted("bundle-1"))

        result = await runner.run_once(wallets, swap)

        assert result.landed
        sent = mock_relay.send_bundle.call_args.args[0]
        assert len(sent) == 3

    @pytest.mark.asyncio
    async def test_leading_transactions_come_first(self, runner, wallets, mock_relay, signed_tx):
        runner.channel.publish(BundleResult.accepted("bundle-1"))
        seen_blockhashes = []

        def leading(blockhash):
            seen_blockhashes.append(blockhash)
            return [signed_tx]

        await runner.run_once(wallets[:7], swap, leading=leading)

        sent = mock_relay.send_bundle.call_args.args[0]
        assert sent[0] is signed_tx
        assert sent[1].message.recent_blockhash == seen_blockhashes[0]

    @pytest.mark.asyncio
    async def test_every_wallet_failing_is_error(self, runner, wallets, mock_relay):
        def broken(signer):
            raise RuntimeError("boom")

        result = await runner.run_once(wallets[:3], broken)

        assert result.outcome == BundleOutcome.ERROR
        mock_relay.send_bundle.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_iterations_run_in_sequence_with_delay(self, runner, wallets):
        events = []

        async def fake_run_once(wallets, make_instructions, leading=None):
            events.append(("start", time.monotonic()))
            await asyncio.sleep(0)
            events.append(("end", time.monotonic()))
            return BundleResult.accepted(f"b{len(events)}")

        runner.run_once = fake_run_once

        results = await runner.run_iterations(wallets, swap, iterations=3, delay_seconds=0.05)

        assert len(results) == 3
        assert [name for name, _ in events] == ["start", "end"] * 3
        # delay sits between iterations only
        assert events[2][1] - events[1][1] >= 0.04
        assert events[4][1] - events[3][1] >= 0.04

    @pytest.mark.asyncio
    async def test_iteration_timeout_scope(self, runner, wallets, monkeypatch):
        monkeypatch.setattr(runner_module, "BUILD_MARGIN_SECONDS", 0.0)
        runner.config.bundle_timeout_seconds = 0.05

        async def stuck(wallets, make_instructions, leading=None):
            await asyncio.sleep(5)

        runner.run_once = stuck

        results = await runner.run_iterations(wallets, swap, iterations=2, delay_seconds=0)

        assert [r.outcome for r in results] == [BundleOutcome.ERROR, BundleOutcome.ERROR]

    @pytest.mark.asyncio
    async def test_failed_iteration_keeps_earlier_results(self, runner, wallets, mock_client, blockhash):
        mock_client.get_latest_blockhash = AsyncMock(side_effect=[blockhash, None])
        runner.channel.publish(BundleResult.accepted("bundle-1"))

        results = await runner.run_iterations(wallets[:7], swap, iterations=2, delay_seconds=0)

        assert results[0].landed
        assert results[0].bundle_id == "bundle-1"
        assert results[1].outcome == BundleOutcome.ERROR
        assert "blockhash" in results[1].reason

    @pytest.mark.asyncio
    async def test_too_many_wallets_for_one_bundle(self, runner, mock_relay):
        wallets = [Keypair() for _ in range(36)]

        with pytest.raises(BundleTooLargeError) as exc_info:
            await runner.run_once(wallets, swap)

        assert exc_info.value.count == 6
        mock_relay.send_bundle.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_oversized_bundle_is_an_iteration_error(self, runner, mock_relay):
        wallets = [Keypair() for _ in range(36)]

        results = await runner.run_iterations(wallets, swap, iterations=2, delay_seconds=0)

        assert [r.outcome for r in results] == [BundleOutcome.ERROR, BundleOutcome.ERROR]
        mock_relay.send_bundle.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_strict_failure_is_an_iteration_error(self, runner, wallets):
        runner.assembler.strict = True

        def broken(signer):
            raise RuntimeError("no balance")

        results = await runner.run_iterations(wallets[:3], broken, iterations=1)

        assert results[0].outcome == BundleOutcome.ERROR
        assert "no balance" in results[0].reason

    @pytest.mark.asyncio
    async def test_zero_iterations(self, runner, wallets):
        assert await runner.run_iterations(wallets, swap, iterations=0) == []


class TestReadAddresses:

    def test_text_file(self, tmp_path):
        keys = [Pubkey.new_unique() for _ in range(2)]
        path = tmp_path / "addresses.txt"
        path.write_text("\n".join(str(k) for k in keys) + "\n\n")
        assert _read_addresses(str(path)) == keys

    def test_json_file(self, tmp_path):
        keys = [Pubkey.new_unique() for _ in range(2)]
        path = tmp_path / "addresses.json"
        path.write_text("[" + ", ".join(f'"{k}"' for k in keys) + "]")
        assert _read_addresses(str(path)) == keys


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
