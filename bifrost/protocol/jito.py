#!/usr/bin/env python3
"""
BIFROST - Jito Block Engine

Tip selection and the block engine's JSON-RPC bundle API.

Jito's block engine executes a bundle atomically and in order: either every
transaction lands or none do. A tip to one of the engine's tip accounts buys
priority; it rides as the last instruction of the last transaction.

Block Engines:
- Mainnet: https://mainnet.block-engine.jito.wtf
- NY: https://ny.mainnet.block-engine.jito.wtf
- Amsterdam: https://amsterdam.mainnet.block-engine.jito.wtf
- Frankfurt: https://frankfurt.mainnet.block-engine.jito.wtf
- Tokyo: https://tokyo.mainnet.block-engine.jito.wtf
"""

import asyncio
import base64
import logging
import random
from collections.abc import Sequence

import aiohttp
from solders.instruction import Instruction
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer
from solders.transaction import VersionedTransaction

from bifrost.config import BLOCK_ENGINES
from bifrost.exceptions import RelaySubmitError

logger = logging.getLogger(__name__)

# Jito tip accounts
TIP_ACCOUNTS = [
    "96gYZGLnJYVFmbjzopPSU6QiEV5fGqZNyN9nmNhvrZU5",
    "HFqU5x63VTqvQss8hp11i4wVV8bD44PvwucfZ2bU7gRe",
    "Cw8CFyM9FkoMi7K7Crf6HNQqf4uEMzpKw6QNghXLvLkY",
    "ADaUMid9yfUytqMBgopwjb2DTLSokTSzL1zt6iGPaS49",
    "DfXygSm4jCyNCybVYYK6DwvWqjKee8pbDmJGcLWNDXjh",
    "ADuUkR4vqLUMWXxW9gh6D6L8pMSawimctcNZ5pGwDcEt",
    "DttWaMuVvTiduZRnguLF7jNxTgiMBZ1hyAumKUiL2KRL",
    "3AVi9Tg9Uo68tJfuvoKvqKNWKkC5wPdSSdeBnizKZ6jT",
]

MAX_BUNDLE_TRANSACTIONS = 5
BUNDLES_PATH = "/api/v1/bundles"


class TipSelector:
    """Picks a tip account uniformly at random, once per bundle."""

    def __init__(self, accounts: Sequence[str] = TIP_ACCOUNTS, rng: random.Random | None = None):
        if not accounts:
            raise ValueError("Tip account pool is empty")
        self.accounts = [Pubkey.from_string(a) for a in accounts]
        self.rng = rng or random.Random()

    def choose(self) -> Pubkey:
        return self.rng.choice(self.accounts)

    def tip_instruction(self, payer: Pubkey, lamports: int) -> Instruction:
        """
        Native SOL transfer from `payer` to a freshly chosen tip account.
        Append it to the final transaction of the bundle.
        """
        if lamports <= 0:
            raise ValueError(f"Tip must be positive, got {lamports} lamports")
        tip_account = self.choose()
        logger.debug("Tip %d lamports -> %s", lamports, tip_account)
        return transfer(
            TransferParams(from_pubkey=payer, to_pubkey=tip_account, lamports=lamports)
        )


def encode_bundle(transactions: Sequence[VersionedTransaction]) -> list[str]:
    """Serialize signed transactions to the base64 strings sendBundle expects."""
    return [base64.b64encode(bytes(tx)).decode("utf-8") for tx in transactions]


class JitoRelayClient:
    """
    Thin JSON-RPC client for the block engine's bundle endpoints.
    One call per method; retries are the caller's decision.
    """

    def __init__(self, block_engine_url: str = BLOCK_ENGINES["mainnet"], timeout_seconds: float = 10.0):
        self.block_engine_url = block_engine_url.rstrip("/")
        self.timeout = timeout_seconds
        self.session: aiohttp.ClientSession | None = None
        self._request_id = 0

    @classmethod
    def for_region(cls, region: str, timeout_seconds: float = 10.0) -> "JitoRelayClient":
        return cls(BLOCK_ENGINES.get(region, BLOCK_ENGINES["mainnet"]), timeout_seconds)

    async def initialize(self):
        """Initialize HTTP session."""
        if not self.session:
            self.session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout))

    async def close(self):
        """Close HTTP session."""
        if self.session:
            await self.session.close()
            self.session = None

    async def _call(self, method: str, params: list):
        if not self.session:
            await self.initialize()

        self._request_id += 1
        payload = {"jsonrpc": "2.0", "id": self._request_id, "method": method, "params": params}
        url = f"{self.block_engine_url}{BUNDLES_PATH}"

        try:
            async with self.session.post(url, json=payload) as response:
                if response.status != 200:
                    body = await response.text()
                    raise RelaySubmitError(f"{method}: HTTP {response.status} {body[:200]}")
                data = await response.json()
        except aiohttp.ClientError as e:
            raise RelaySubmitError(f"{method}: connection failed: {e}") from e
        except asyncio.TimeoutError as e:
            raise RelaySubmitError(f"{method}: timed out after {self.timeout}s") from e

        if "error" in data:
            error = data["error"]
            message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
            raise RelaySubmitError(f"{method}: {message}")
        return data.get("result")

    async def send_bundle(self, transactions: Sequence[VersionedTransaction]) -> str:
        """
        Submit signed transactions as one bundle.

        Returns:
            The bundle id assigned by the block engine

        Raises:
            ValueError: empty bundle or more than 5 transactions
            RelaySubmitError: connection failure or relay-side rejection
        """
        if not transactions:
            raise ValueError("Bundle must contain at least one transaction")
        if len(transactions) > MAX_BUNDLE_TRANSACTIONS:
            raise ValueError(f"Jito bundles limited to {MAX_BUNDLE_TRANSACTIONS} transactions")

        result = await self._call("sendBundle", [encode_bundle(transactions), {"encoding": "base64"}])
        if not result:
            raise RelaySubmitError("sendBundle: empty result")
        return str(result)

    async def get_bundle_statuses(self, bundle_ids: Sequence[str]) -> list[dict]:
        """Landed-bundle statuses (slot, confirmation status, err)."""
        result = await self._call("getBundleStatuses", [list(bundle_ids)])
        return list((result or {}).get("value") or [])

    async def get_inflight_bundle_statuses(self, bundle_ids: Sequence[str]) -> list[dict]:
        """Recent (≈5 min) statuses: Invalid, Pending, Failed, Landed."""
        result = await self._call("getInflightBundleStatuses", [list(bundle_ids)])
        return list((result or {}).get("value") or [])

    async def get_tip_accounts(self) -> list[str]:
        result = await self._call("getTipAccounts", [])
        return list(result or [])
