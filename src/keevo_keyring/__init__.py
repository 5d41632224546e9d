"""Keyring for the Keevo hardware wallet.

Accounts are derived locally from the device's extended public key; every
signing operation is confirmed on the device through the bridge popup.
"""

from keevo_keyring.bridge.client import BridgeClient
from keevo_keyring.config import BridgeSettings, get_settings
from keevo_keyring.errors import ErrorKind, KeyringError
from keevo_keyring.keyring import (
    ACCOUNTS_PER_PAGE,
    DEFAULT_HD_PATH,
    MAX_ACCOUNTS,
    MAX_PAGES,
    KeevoKeyring,
    KeyringEvent,
    KeyringSnapshot,
    PageAccount,
)
from keevo_keyring.transactions import SignedTransaction, TransactionFields

__version__ = "0.1.0"

__all__ = [
    "ACCOUNTS_PER_PAGE",
    "DEFAULT_HD_PATH",
    "MAX_ACCOUNTS",
    "MAX_PAGES",
    "BridgeClient",
    "BridgeSettings",
    "ErrorKind",
    "KeevoKeyring",
    "KeyringError",
    "KeyringEvent",
    "KeyringSnapshot",
    "PageAccount",
    "SignedTransaction",
    "TransactionFields",
    "get_settings",
]
