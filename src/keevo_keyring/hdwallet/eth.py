"""ETH address derivation from a device-supplied extended public key.

Derivation path: <account xpub>/0/index
Address format: 0x... (checksum encoded)

Only the xpub is used - private keys never leave the device.
"""

import re

from bip_utils import Bip32KeyNetVersions, Bip32Secp256k1, EthAddrEncoder, Secp256k1PublicKey
from eth_utils import to_checksum_address

from keevo_keyring.errors import MalformedDeviceResponseError

# Standard BIP32 mainnet versions; the device always reports an xpub
XPUB_KEY_NET_VERSIONS = Bip32KeyNetVersions(
    b'\x04\x88\xb2\x1e',  # xpub
    b'\x04\x88\xad\xe4'   # xprv (not used)
)

_HEX_PREFIX = re.compile(r"^0x")

__all__ = [
    "XPUB_KEY_NET_VERSIONS",
    "add_hex_prefix",
    "decompress_public_key",
    "derive_address",
    "parse_extended_key",
    "public_key_to_address",
    "remove_hex_prefix",
    "to_checksum_address",
]


def remove_hex_prefix(text: str) -> str:
    return _HEX_PREFIX.sub("", text)


def add_hex_prefix(text: str) -> str:
    return "0x" + remove_hex_prefix(text)


def parse_extended_key(xpub: str):
    """Parse an extended public key returned by the device.

    Args:
        xpub: Base58 extended public key

    Returns:
        Public-only BIP32 context

    Raises:
        MalformedDeviceResponseError: If the key cannot be parsed
    """
    if not isinstance(xpub, str) or not xpub.startswith("xpub"):
        raise MalformedDeviceResponseError(f"Device returned an invalid xpub: {xpub!r}")

    try:
        return Bip32Secp256k1.FromExtendedKey(xpub, XPUB_KEY_NET_VERSIONS)
    except Exception as e:
        raise MalformedDeviceResponseError(f"Device returned an invalid xpub: {e}") from e


def _load_public_key(public_key: bytes) -> Secp256k1PublicKey:
    try:
        return Secp256k1PublicKey.FromBytes(public_key)
    except ValueError as e:
        raise MalformedDeviceResponseError(f"Cannot decompress public key: {e}") from e


def decompress_public_key(public_key: bytes) -> bytes:
    """Convert a 33-byte compressed secp256k1 key to its 64-byte raw form."""
    raw = _load_public_key(public_key).RawUncompressed().ToBytes()
    # Some backends keep the 0x04 SEC1 prefix
    if len(raw) == 65 and raw[0] == 0x04:
        raw = raw[1:]
    return raw


def public_key_to_address(public_key: bytes) -> str:
    """Checksummed address of a compressed public key."""
    # Keccak-256 of the uncompressed point, last 20 bytes, checksum casing
    return EthAddrEncoder.EncodeKey(_load_public_key(public_key))


def derive_address(extended_key, index: int) -> str:
    """Derive the checksummed address at m/0/index below an account xpub.

    Args:
        extended_key: xpub string or an already parsed BIP32 context
        index: Non-hardened address index

    Returns:
        0x-prefixed checksum address
    """
    if isinstance(extended_key, str):
        extended_key = parse_extended_key(extended_key)

    child = extended_key.DerivePath(f"0/{index}")
    return EthAddrEncoder.EncodeKey(child.PublicKey().KeyObject())
