#!/usr/bin/env python3
"""
BIFROST - Wallets and Signers

The core only ever sees a Signer: something with an address that can sign
bytes. Key material stays inside whoever implements it.
"""

import json
from pathlib import Path
from typing import Protocol, runtime_checkable

import base58
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.signature import Signature

from bifrost.exceptions import WalletError


@runtime_checkable
class Signer(Protocol):
    """Anything that can put a signature on a message for one address."""

    def pubkey(self) -> Pubkey: ...

    def sign_message(self, message: bytes) -> Signature: ...


def load_keypairs(directory: str | Path) -> list[Keypair]:
    """
    Load every *.json keypair file (a JSON array of 64 byte values) from
    `directory`, sorted by file name so wallet order is stable between runs.
    """
    path = Path(directory)
    if not path.is_dir():
        raise WalletError(f"Keypair directory not found: {path}")

    keypairs = []
    for file in sorted(path.glob("*.json")):
        try:
            secret = json.loads(file.read_text())
            if not isinstance(secret, list):
                # keyInfo.json and other state files live next to the keys
                continue
            keypairs.append(Keypair.from_bytes(bytes(secret)))
        except (ValueError, TypeError) as e:
            raise WalletError(f"Invalid keypair file {file.name}: {e}") from e
    return keypairs


class WalletManager:
    """
    Holds the fee payer. Never logs private keys.
    """

    def __init__(self, private_key_b58: str, ephemeral: bool = False):
        self.ephemeral = ephemeral

        if ephemeral:
            # Throwaway keypair for dry runs and tests
            self.keypair = Keypair()
        else:
            if not private_key_b58:
                raise WalletError("Private key required (set WALLET_PRIVATE_KEY)")

            try:
                private_key_bytes = base58.b58decode(private_key_b58)
                self.keypair = Keypair.from_bytes(private_key_bytes)
            except Exception as e:
                raise WalletError(f"Invalid private key format: {e}") from e

        self.pubkey = self.keypair.pubkey()

    @property
    def signer(self) -> Signer:
        return self.keypair

    def get_address(self) -> str:
        """Return the wallet's public address."""
        return str(self.pubkey)
