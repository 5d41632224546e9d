"""HD wallet helpers for deterministic address generation."""

from keevo_keyring.hdwallet.eth import (
    add_hex_prefix,
    derive_address,
    parse_extended_key,
    remove_hex_prefix,
    to_checksum_address,
)

__all__ = [
    "add_hex_prefix",
    "derive_address",
    "parse_extended_key",
    "remove_hex_prefix",
    "to_checksum_address",
]
