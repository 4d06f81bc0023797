#!/usr/bin/env python3
"""
BIFROST - Solana Client

The read side of the network: accounts, blockhashes, slots, token accounts.
Every call is bounded by a timeout and degrades to None on failure; the
caller decides whether None is fatal.
"""

import asyncio
from typing import Optional, List

from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed
from solana.rpc.types import TxOpts, TokenAccountOpts
from solders.hash import Hash
from solders.pubkey import Pubkey
from solders.transaction import VersionedTransaction

from bifrost.config import BundlerConfig
from bifrost.logger import BifrostLogger

# Default timeout for individual RPC calls (seconds)
RPC_TIMEOUT_SECONDS = 15


class SolanaClient:
    """
    Read-mostly RPC wrapper used by the lookup table manager, the
    transaction builder, and the launch runner.
    """

    def __init__(self, config: BundlerConfig, logger: BifrostLogger):
        self.config = config
        self.logger = logger
        self.client = AsyncClient(config.rpc_url)

    async def get_account_info(self, pubkey: Pubkey) -> Optional[bytes]:
        """Fetch raw account data bytes. None if missing or on failure."""
        try:
            response = await asyncio.wait_for(
                self.client.get_account_info(pubkey, commitment=Confirmed),
                timeout=RPC_TIMEOUT_SECONDS,
            )
            if response.value and response.value.data:
                return bytes(response.value.data)
            return None
        except asyncio.TimeoutError:
            self.logger.warning(f"RPC timeout: get_account_info {pubkey}")
            return None
        except Exception as e:
            self.logger.error(f"Failed to fetch account info for {pubkey}", e)
            return None

    async def get_latest_blockhash(self) -> Optional[Hash]:
        """Fetch a recent blockhash. Never cached; call right before building."""
        try:
            response = await asyncio.wait_for(
                self.client.get_latest_blockhash(commitment=Confirmed),
                timeout=RPC_TIMEOUT_SECONDS,
            )
            return response.value.blockhash
        except asyncio.TimeoutError:
            self.logger.warning("RPC timeout: get_latest_blockhash")
            return None
        except Exception as e:
            self.logger.error("Failed to fetch latest blockhash", e)
            return None

    async def get_slot(self) -> Optional[int]:
        """Current confirmed slot (lookup table creation needs a recent one)."""
        try:
            response = await asyncio.wait_for(
                self.client.get_slot(commitment=Confirmed),
                timeout=RPC_TIMEOUT_SECONDS,
            )
            return response.value
        except asyncio.TimeoutError:
            self.logger.warning("RPC timeout: get_slot")
            return None
        except Exception as e:
            self.logger.error("Failed to fetch slot", e)
            return None

    async def get_token_accounts_by_owner(self, owner: Pubkey, mint: Pubkey) -> List[Pubkey]:
        """Token accounts `owner` holds for `mint`. Empty on failure."""
        try:
            response = await asyncio.wait_for(
                self.client.get_token_accounts_by_owner(owner, TokenAccountOpts(mint=mint)),
                timeout=RPC_TIMEOUT_SECONDS,
            )
            return [account.pubkey for account in (response.value or [])]
        except asyncio.TimeoutError:
            self.logger.warning(f"RPC timeout: get_token_accounts_by_owner {owner}")
            return []
        except Exception as e:
            self.logger.error(f"Failed to fetch token accounts for {owner}", e)
            return []

    async def send_transaction(
        self,
        transaction: VersionedTransaction,
        skip_preflight: bool = False
    ) -> Optional[str]:
        """Send one transaction outside a bundle. Returns the signature or None."""
        try:
            opts = TxOpts(
                skip_preflight=skip_preflight,
                preflight_commitment=Confirmed
            )
            response = await asyncio.wait_for(
                self.client.send_transaction(transaction, opts),
                timeout=RPC_TIMEOUT_SECONDS,
            )
            return str(response.value)
        except asyncio.TimeoutError:
            self.logger.warning("RPC timeout: send_transaction")
            return None
        except Exception as e:
            self.logger.error("Failed to send transaction", e)
            return None

    async def close(self):
        await self.client.close()
