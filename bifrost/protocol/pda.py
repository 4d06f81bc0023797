#!/usr/bin/env python3
"""
BIFROST - Program Address Derivation

Deterministic program-owned addresses: associated token accounts, pool
vaults, authorities. Everything here is pure; nothing touches the network.

Derivation (the network's find_program_address):
    for bump in 255..0:
        candidate = sha256(seed_1 || ... || seed_n || bump || program_id || "ProgramDerivedAddress")
        if candidate is not on the ed25519 curve: return (candidate, bump)
"""

import hashlib
from collections.abc import Sequence

import base58
from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey
from solders.system_program import ID as SYS_PROGRAM_ID

from bifrost.exceptions import DerivationExhaustedError, InvalidAddressError, SeedError

# ═══════════════════════════════════════════════════════════════════════════
#                             PROGRAM CONSTANTS
# ═══════════════════════════════════════════════════════════════════════════

TOKEN_PROGRAM_ID = Pubkey.from_string("TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA")
ASSOCIATED_TOKEN_PROGRAM_ID = Pubkey.from_string("ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL")
WSOL_MINT = Pubkey.from_string("So11111111111111111111111111111111111111112")

MAX_SEED_LEN = 32
MAX_SEEDS = 16  # including the bump
PDA_MARKER = b"ProgramDerivedAddress"

# AssociatedTokenAccountInstruction::CreateIdempotent
CREATE_IDEMPOTENT_DISCRIMINATOR = bytes([1])


def parse_address(value: str) -> Pubkey:
    """Decode base-58 text into a Pubkey, or raise InvalidAddressError."""
    if not isinstance(value, str) or not value:
        raise InvalidAddressError(str(value), "empty")
    try:
        raw = base58.b58decode(value)
    except ValueError as e:
        raise InvalidAddressError(value, str(e)) from e
    if len(raw) != 32:
        raise InvalidAddressError(value, f"decodes to {len(raw)} bytes, expected 32")
    return Pubkey.from_bytes(raw)


def _validate_seeds(seeds: Sequence[bytes]) -> list[bytes]:
    seeds = [bytes(seed) for seed in seeds]
    # The bump byte takes one seed slot
    if len(seeds) >= MAX_SEEDS:
        raise SeedError(f"Too many seeds: {len(seeds)} (max {MAX_SEEDS - 1} plus bump)")
    for i, seed in enumerate(seeds):
        if len(seed) > MAX_SEED_LEN:
            raise SeedError(f"Seed {i} is {len(seed)} bytes (max {MAX_SEED_LEN})")
    return seeds


def create_program_address(seeds: Sequence[bytes], program_id: Pubkey) -> Pubkey | None:
    """
    Hash seeds (bump included) into a candidate address.
    Returns None when the candidate lands on the curve and is therefore unusable.
    """
    hasher = hashlib.sha256()
    for seed in seeds:
        hasher.update(seed)
    hasher.update(bytes(program_id))
    hasher.update(PDA_MARKER)
    candidate = Pubkey.from_bytes(hasher.digest())
    if candidate.is_on_curve():
        return None
    return candidate


def find_program_address(seeds: Sequence[bytes], program_id: Pubkey) -> tuple[Pubkey, int]:
    """
    Derive the canonical program address and bump for the given seeds.

    Raises:
        SeedError: a seed is longer than 32 bytes or there are too many seeds
        DerivationExhaustedError: every bump produced an on-curve point
    """
    seeds = _validate_seeds(seeds)
    for bump in range(255, -1, -1):
        address = create_program_address(seeds + [bytes([bump])], program_id)
        if address is not None:
            return address, bump
    raise DerivationExhaustedError(program_id, seeds)


def associated_token_address(
    owner: Pubkey,
    mint: Pubkey,
    token_program: Pubkey = TOKEN_PROGRAM_ID,
) -> Pubkey:
    """The canonical token account holding `owner`'s balance of `mint`."""
    address, _ = find_program_address(
        [bytes(owner), bytes(token_program), bytes(mint)],
        ASSOCIATED_TOKEN_PROGRAM_ID,
    )
    return address


def create_associated_token_account_idempotent(
    payer: Pubkey,
    owner: Pubkey,
    mint: Pubkey,
    token_program: Pubkey = TOKEN_PROGRAM_ID,
) -> Instruction:
    """
    Build a CreateIdempotent instruction for the associated token program.
    Succeeds on-chain even when the account already exists.
    """
    ata = associated_token_address(owner, mint, token_program)
    accounts = [
        AccountMeta(pubkey=payer, is_signer=True, is_writable=True),
        AccountMeta(pubkey=ata, is_signer=False, is_writable=True),
        AccountMeta(pubkey=owner, is_signer=False, is_writable=False),
        AccountMeta(pubkey=mint, is_signer=False, is_writable=False),
        AccountMeta(pubkey=SYS_PROGRAM_ID, is_signer=False, is_writable=False),
        AccountMeta(pubkey=token_program, is_signer=False, is_writable=False),
    ]
    return Instruction(
        program_id=ASSOCIATED_TOKEN_PROGRAM_ID,
        accounts=accounts,
        data=CREATE_IDEMPOTENT_DISCRIMINATOR,
    )
