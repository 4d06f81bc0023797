"""
BIFROST Protocol - Program address derivation, lookup tables, and the Jito block engine.
"""

from .jito import TIP_ACCOUNTS, JitoRelayClient, TipSelector, encode_bundle
from .lookup_table import (
    LOOKUP_TABLE_PROGRAM_ID,
    MAX_ADDRESSES_PER_EXTEND,
    MAX_TABLES_PER_TRANSACTION,
    LookupTableCache,
    LookupTableManager,
    TableSelection,
    chunk_addresses,
    decode_lookup_table,
    derive_lookup_table_address,
)
from .pda import (
    ASSOCIATED_TOKEN_PROGRAM_ID,
    TOKEN_PROGRAM_ID,
    WSOL_MINT,
    associated_token_address,
    create_associated_token_account_idempotent,
    find_program_address,
    parse_address,
)

__all__ = [
    "find_program_address",
    "associated_token_address",
    "create_associated_token_account_idempotent",
    "parse_address",
    "TOKEN_PROGRAM_ID",
    "ASSOCIATED_TOKEN_PROGRAM_ID",
    "WSOL_MINT",
    "LookupTableCache",
    "LookupTableManager",
    "TableSelection",
    "chunk_addresses",
    "decode_lookup_table",
    "derive_lookup_table_address",
    "LOOKUP_TABLE_PROGRAM_ID",
    "MAX_ADDRESSES_PER_EXTEND",
    "MAX_TABLES_PER_TRANSACTION",
    "TipSelector",
    "JitoRelayClient",
    "TIP_ACCOUNTS",
    "encode_bundle",
]
