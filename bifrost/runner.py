#!/usr/bin/env python3
"""
BIFROST Runner - The Orchestrator

Wires the client, lookup tables, builder, assembler and submitter into the
launch flows: create the shared lookup table, extend it, and run N
build -> submit -> await iterations with a delay between them.
"""

import asyncio
import json
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from solders.hash import Hash
from solders.pubkey import Pubkey
from solders.transaction import VersionedTransaction

from bifrost.bundle.assembler import BundleAssembler, InstructionFactory
from bifrost.bundle.builder import TransactionBuilder
from bifrost.bundle.submitter import (
    BundleOutcome,
    BundleResult,
    BundleResultChannel,
    BundleSubmitter,
    InflightStatusFeed,
    SignatureFeed,
)
from bifrost.config import BLOCK_ENGINES, BundlerConfig
from bifrost.core.client import SolanaClient
from bifrost.core.state import StateFile
from bifrost.core.wallet import Signer, WalletManager, load_keypairs
from bifrost.exceptions import BifrostError, BundleTooLargeError, ConfigError, LookupTableError
from bifrost.logger import BifrostLogger
from bifrost.protocol.jito import MAX_BUNDLE_TRANSACTIONS, JitoRelayClient, TipSelector
from bifrost.protocol.lookup_table import LookupTableCache, LookupTableManager, chunk_addresses
from bifrost.protocol.pda import WSOL_MINT, create_associated_token_account_idempotent, parse_address
from bifrost.ui.report import lookup_table_panel, results_table

# Time allowed for fetching and building before the result wait starts
BUILD_MARGIN_SECONDS = 30.0

# Leaves room for the tip transfer next to the extend instruction
EXTEND_BATCH_SIZE = 20

LeadingTransactions = Callable[[Hash], Sequence[VersionedTransaction]]


class LaunchRunner:
    """
    One launch session. Owns its lookup table cache, its relay session and
    its result feeds; nothing is shared between runners.
    """

    def __init__(
        self,
        config: BundlerConfig,
        logger: Optional[BifrostLogger] = None,
        client=None,
        relay=None,
        wallet: Optional[WalletManager] = None,
    ):
        self.config = config
        self.logger = logger or BifrostLogger(config)

        errors = config.validate()
        if errors:
            for error in errors:
                self.logger.error("Configuration error", Exception(error))
            raise ConfigError("; ".join(errors))

        self.client = client or SolanaClient(config, self.logger)
        self.relay = relay or JitoRelayClient(config.block_engine_url, config.relay_timeout_seconds)
        self.wallet = wallet or WalletManager(config.private_key)
        self.state = StateFile(config.state_file)

        self.lookup_tables = LookupTableManager(self.client, LookupTableCache())
        self.builder = TransactionBuilder(self.client, self.logger)
        self.assembler = BundleAssembler(
            self.builder,
            self.logger,
            lookup_tables=self.lookup_tables,
            tip_selector=TipSelector(),
            strict=config.strict_chunks,
        )

        self.channel = BundleResultChannel()
        self.status_feed = InflightStatusFeed(
            self.relay, self.channel, self.logger, config.status_poll_interval_seconds
        )
        self.signature_feed = (
            SignatureFeed(config.ws_url, self.channel, self.logger)
            if config.watch_signatures
            else None
        )
        self.submitter = BundleSubmitter(
            self.relay,
            self.channel,
            self.logger,
            timeout_seconds=config.bundle_timeout_seconds,
            size_warning_bytes=config.max_bundle_bytes_warning,
            signature_feed=self.signature_feed,
        )

    @property
    def payer(self) -> Signer:
        return self.wallet.signer

    async def start(self):
        self.status_feed.start()

    async def close(self):
        """Graceful shutdown."""
        await self.status_feed.stop()
        if self.signature_feed is not None:
            await self.signature_feed.close()
        await self.relay.close()
        await self.client.close()

    def load_wallets(self) -> list:
        wallets = load_keypairs(self.config.keypairs_dir)
        self.logger.info(f"Loaded {len(wallets)} wallet(s) from {self.config.keypairs_dir}")
        return wallets

    # ─────────────────────────────── lookup tables ──────────────────────────

    async def create_lookup_table(
        self, wallets: Sequence[Signer] = ()
    ) -> tuple[Pubkey, BundleResult]:
        """
        Create the shared lookup table and, in the same bundle, idempotently
        open a WSOL token account for the payer and every wallet.

        The table address is saved to the state file when the bundle was
        accepted or timed out (it may still land); a later run that finds no
        table on-chain creates a new one.
        """
        slot = await self.client.get_slot()
        if slot is None:
            raise LookupTableError("Could not fetch a recent slot for table creation")

        payer = self.payer.pubkey()
        create_ix, table = self.lookup_tables.create(payer, payer, slot)

        instructions = [
            create_ix,
            create_associated_token_account_idempotent(payer, payer, WSOL_MINT),
        ]
        instructions.extend(
            create_associated_token_account_idempotent(payer, wallet.pubkey(), WSOL_MINT)
            for wallet in wallets
        )

        blockhash = await self.builder.fetch_blockhash()
        bundle = await self.assembler.assemble_instructions(
            instructions,
            self.payer,
            blockhash,
            instructions_per_tx=self.config.instructions_per_tx,
            tip_lamports=self.config.jito_tip_lamports,
        )
        if len(bundle) > MAX_BUNDLE_TRANSACTIONS:
            raise LookupTableError(
                f"{len(wallets)} wallets need {len(bundle)} transactions; "
                f"a bundle holds {MAX_BUNDLE_TRANSACTIONS}"
            )
        result = await self.submitter.send(bundle.transactions)

        if result.outcome in (BundleOutcome.ACCEPTED, BundleOutcome.TIMED_OUT):
            self.state.save_lookup_table(table)
            self.logger.lookup_table_saved(str(table), str(self.state.path))
        return table, result

    def saved_lookup_table(self) -> Pubkey:
        table = self.state.lookup_table()
        if table is None:
            raise LookupTableError(
                f"No lookup table recorded in {self.state.path}; create one first"
            )
        return table

    async def extend_lookup_table(
        self, addresses: Sequence[Pubkey], table: Optional[Pubkey] = None
    ) -> Optional[BundleResult]:
        """
        Add addresses the table does not hold yet, one extend per transaction.
        Returns None when there is nothing to add.
        """
        table = table or self.saved_lookup_table()
        existing = (
            await self.lookup_tables.refresh(table) or self.lookup_tables.cache.get(table) or []
        )

        known = set(existing)
        new_addresses: List[Pubkey] = []
        for address in addresses:
            if address not in known:
                known.add(address)
                new_addresses.append(address)

        if not new_addresses:
            self.logger.info(f"Lookup table {table} already holds every address")
            return None

        batches = chunk_addresses(new_addresses, EXTEND_BATCH_SIZE)
        if len(batches) > MAX_BUNDLE_TRANSACTIONS:
            raise LookupTableError(
                f"{len(new_addresses)} new addresses need {len(batches)} transactions; "
                f"a bundle holds {MAX_BUNDLE_TRANSACTIONS}, extend in smaller lists"
            )

        payer = self.payer.pubkey()
        instructions = [
            self.lookup_tables.extend(table, payer, payer, batch)
            for batch in batches
        ]

        blockhash = await self.builder.fetch_blockhash()
        bundle = await self.assembler.assemble_instructions(
            instructions,
            self.payer,
            blockhash,
            instructions_per_tx=1,
            tip_lamports=self.config.jito_tip_lamports,
        )
        result = await self.submitter.send(bundle.transactions)
        if result.landed:
            self.lookup_tables.cache.update(table, existing + new_addresses)
        return result

    # ─────────────────────────────── iterations ─────────────────────────────

    async def run_once(
        self,
        wallets: Sequence[Signer],
        make_instructions: InstructionFactory,
        leading: Optional[LeadingTransactions] = None,
    ) -> BundleResult:
        """
        One full bundle: fresh blockhash, optional leading transactions
        (e.g. pool creation), one swap transaction per wallet chunk, tip on
        the final transaction, submit, await.
        """
        tables = []
        table = self.state.lookup_table()
        if table is not None:
            if await self.lookup_tables.get_addresses(table) is None:
                self.logger.warning(f"Lookup table {table} not readable; building without it")
            else:
                tables.append(table)

        blockhash = await self.builder.fetch_blockhash()
        leading_transactions = list(leading(blockhash)) if leading else []

        bundle = await self.assembler.assemble(
            wallets,
            make_instructions,
            self.payer,
            blockhash,
            lookup_tables=tables,
            chunk_size=self.config.chunk_size,
            tip_lamports=self.config.jito_tip_lamports,
        )
        if bundle.skipped:
            self.logger.warning(f"{len(bundle.skipped)} wallet(s) skipped this iteration")

        transactions = leading_transactions + bundle.transactions
        if not transactions:
            return BundleResult.error("nothing to submit: every wallet failed")
        if len(transactions) > MAX_BUNDLE_TRANSACTIONS:
            raise BundleTooLargeError(len(transactions), MAX_BUNDLE_TRANSACTIONS)
        return await self.submitter.send(transactions)

    async def run_iterations(
        self,
        wallets: Sequence[Signer],
        make_instructions: InstructionFactory,
        leading: Optional[LeadingTransactions] = None,
        iterations: Optional[int] = None,
        delay_seconds: Optional[float] = None,
    ) -> List[BundleResult]:
        """
        Run iterations strictly one after another. Each iteration has its own
        timeout scope; the delay is a scheduled sleep before the next one.
        A build or submit failure ends only its own iteration, as an ERROR result.
        """
        iterations = self.config.iterations if iterations is None else iterations
        delay_seconds = self.config.iteration_delay_seconds if delay_seconds is None else delay_seconds
        scope = self.config.bundle_timeout_seconds + BUILD_MARGIN_SECONDS

        results: List[BundleResult] = []
        for i in range(iterations):
            self.logger.info(f"Iteration {i + 1}/{iterations}")
            try:
                result = await asyncio.wait_for(
                    self.run_once(wallets, make_instructions, leading), timeout=scope
                )
            except asyncio.TimeoutError:
                result = BundleResult.error(f"iteration exceeded {scope:.0f}s")
                self.logger.warning(result.reason)
            except (BifrostError, ValueError) as e:
                self.logger.error(f"Iteration {i + 1} failed", e)
                result = BundleResult.error(str(e))
            results.append(result)

            if i < iterations - 1 and delay_seconds > 0:
                await asyncio.sleep(delay_seconds)

        return results


# ═══════════════════════════════════════════════════════════════════════════
#                                   CLI
# ═══════════════════════════════════════════════════════════════════════════


def _read_addresses(path: str) -> List[Pubkey]:
    text = Path(path).read_text()
    if path.endswith(".json"):
        return [parse_address(str(a)) for a in json.loads(text)]
    return [parse_address(line.strip()) for line in text.splitlines() if line.strip()]


async def main():
    """Command-line entry point."""
    import argparse

    parser = argparse.ArgumentParser(
        description="BIFROST - Jito bundle launcher",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Create the shared lookup table and WSOL accounts for every wallet
  python -m bifrost create-lut --tip 100000

  # Add addresses (one per line, or a JSON list) to the saved table
  python -m bifrost extend-lut addresses.txt

  # Show the saved table and its contents
  python -m bifrost status

Environment Variables (or use .env file):
  SOLANA_RPC_URL          - Your Solana RPC endpoint
  SOLANA_WS_URL           - Websocket endpoint for signature confirmations
  WALLET_PRIVATE_KEY      - Fee payer's base58-encoded private key
  KEYPAIRS_DIR            - Directory of wallet keypair JSON files
  BLOCK_ENGINE_URL        - Jito block engine
        """,
    )
    parser.add_argument("command", choices=["create-lut", "extend-lut", "status"])
    parser.add_argument("addresses", nargs="?", help="Address file for extend-lut")
    parser.add_argument("--tip", type=int, help="Jito tip in lamports")
    parser.add_argument("--region", type=str, help="Block engine region")
    parser.add_argument("--config", type=str, help="Path to config JSON file")

    args = parser.parse_args()

    if args.config and Path(args.config).exists():
        config = BundlerConfig(**json.loads(Path(args.config).read_text()))
    else:
        config = BundlerConfig()

    if args.tip is not None:
        config.jito_tip_lamports = args.tip
    if args.region:
        config.block_engine_region = args.region
        config.block_engine_url = BLOCK_ENGINES.get(args.region, config.block_engine_url)

    console = Console()
    runner = LaunchRunner(config)
    await runner.start()
    try:
        if args.command == "create-lut":
            table, result = await runner.create_lookup_table(runner.load_wallets())
            runner.logger.info(f"Lookup table {table}: {result.outcome.value}")
            console.print(results_table([result]))
        elif args.command == "extend-lut":
            if not args.addresses:
                parser.error("extend-lut needs an address file")
            result = await runner.extend_lookup_table(_read_addresses(args.addresses))
            if result is not None:
                console.print(results_table([result]))
        else:
            table = runner.saved_lookup_table()
            addresses = await runner.lookup_tables.get_addresses(table)
            if addresses is None:
                runner.logger.warning(f"Lookup table {table} not found on-chain")
            console.print(lookup_table_panel(table, addresses))
    finally:
        await runner.close()


if __name__ == "__main__":
    asyncio.run(main())
