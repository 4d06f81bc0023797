"""
BIFROST Test Suite - Shared Fixtures
"""

import struct
from unittest.mock import AsyncMock, MagicMock

import pytest
from solders.hash import Hash
from solders.instruction import AccountMeta, Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from bifrost.config import BundlerConfig
from bifrost.core.wallet import WalletManager
from bifrost.logger import BifrostLogger

# Any program id works for instructions that are only compiled, never executed
NOOP_PROGRAM_ID = Pubkey.from_string("MemoSq4gqABAXKb96qnH8TysNcWxMyWCqXgDLGmfcHr")


def noop_instruction(signer: Pubkey, data: bytes = b"bifrost") -> Instruction:
    """Small instruction that requires `signer` to sign."""
    return Instruction(
        program_id=NOOP_PROGRAM_ID,
        accounts=[AccountMeta(pubkey=signer, is_signer=True, is_writable=False)],
        data=data,
    )


def lookup_table_data(addresses) -> bytes:
    """Raw account bytes of an initialized lookup table holding `addresses`."""
    header = struct.pack("<I", 1) + bytes(52)
    return header + b"".join(bytes(a) for a in addresses)


@pytest.fixture
def bundler_config(tmp_path):
    """Default configuration with state kept in a temp directory."""
    return BundlerConfig(
        rpc_url="https://api.mainnet-beta.solana.com",
        block_engine_url="https://mainnet.block-engine.jito.wtf",
        keypairs_dir=str(tmp_path / "keypairs"),
        state_file=str(tmp_path / "keypairs" / "keyInfo.json"),
        watch_signatures=False,
        log_file=str(tmp_path / "bifrost.log"),
    )


@pytest.fixture
def logger(bundler_config):
    """Logger instance for tests."""
    return BifrostLogger(bundler_config)


@pytest.fixture
def mock_logger():
    """Logger double whose calls can be asserted on."""
    return MagicMock()


@pytest.fixture
def blockhash():
    return Hash.new_unique()


@pytest.fixture
def mock_client(blockhash):
    """RPC client double: every read succeeds with neutral data."""
    client = MagicMock()
    client.get_latest_blockhash = AsyncMock(return_value=blockhash)
    client.get_slot = AsyncMock(return_value=250_000_000)
    client.get_account_info = AsyncMock(return_value=None)
    client.close = AsyncMock()
    return client


@pytest.fixture
def mock_relay():
    relay = MagicMock()
    relay.send_bundle = AsyncMock(return_value="bundle-1")
    relay.get_inflight_bundle_statuses = AsyncMock(return_value=[])
    relay.close = AsyncMock()
    return relay


@pytest.fixture
def payer():
    return Keypair()


@pytest.fixture
def wallet():
    """Ephemeral fee payer wallet."""
    return WalletManager("", ephemeral=True)


@pytest.fixture
def wallets():
    """Twenty bundle wallets."""
    return [Keypair() for _ in range(20)]


@pytest.fixture
def signed_tx(payer, blockhash, mock_client, mock_logger):
    """A real signed v0 transaction, small enough for any bundle."""
    from bifrost.bundle.builder import TransactionBuilder

    builder = TransactionBuilder(mock_client, mock_logger)
    unsigned = builder.compile(payer.pubkey(), [noop_instruction(payer.pubkey())], [], blockhash)
    return builder.sign(unsigned, [payer])
