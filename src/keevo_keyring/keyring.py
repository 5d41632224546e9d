"""Keevo hardware keyring.

Implements the keyring contract an embedding wallet expects (accounts,
pagination, signing, serialisation) on top of the Keevo bridge popup.

Security: the device only ever hands out its extended public key. Addresses
are derived locally; everything that needs a private key goes to the device.
"""

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from keevo_keyring.bridge.client import BridgeClient
from keevo_keyring.errors import (
    AccountNotFoundError,
    UnsupportedOperationError,
    UnsupportedVersionError,
)
from keevo_keyring.hdwallet.eth import add_hex_prefix, derive_address, parse_extended_key
from keevo_keyring.transactions import (
    SignedTransaction,
    TransactionFields,
    build_signed_transaction,
    decode_signed_transaction,
)
from keevo_keyring.typed_data import SUPPORTED_TYPED_DATA_VERSION, to_canonical_json

logger = logging.getLogger(__name__)

DEFAULT_HD_PATH = "m/44'/60'/0'/0"
# The device exposes a single account slot
MAX_ACCOUNTS = 1
ACCOUNTS_PER_PAGE = 1
MAX_PAGES = math.ceil(MAX_ACCOUNTS / ACCOUNTS_PER_PAGE)


class KeyringAccount(BaseModel):
    """Account tracked by the keyring."""

    model_config = ConfigDict(populate_by_name=True)

    address: str
    derivation_path: str = Field(alias="derivationPath")


class KeyringSnapshot(BaseModel):
    """Persisted keyring state.

    Serialised with camelCase keys:
        {"hdPath", "accounts", "lastUnlockedAccountIndex", "page"}
    """

    model_config = ConfigDict(populate_by_name=True)

    hd_path: str = Field(default=DEFAULT_HD_PATH, alias="hdPath")
    accounts: list[KeyringAccount] = Field(default_factory=list)
    last_unlocked_account_index: int = Field(default=0, ge=0, alias="lastUnlockedAccountIndex")
    page: int = Field(default=0, ge=0)

    @field_validator("hd_path", mode="before")
    @classmethod
    def default_hd_path(cls, value: Any) -> Any:
        return value or DEFAULT_HD_PATH

    @field_validator("accounts", mode="before")
    @classmethod
    def default_accounts(cls, value: Any) -> Any:
        return value or []

    @field_validator("last_unlocked_account_index", "page", mode="before")
    @classmethod
    def default_zero(cls, value: Any) -> Any:
        return value or 0

    def to_dict(self) -> dict:
        return self.model_dump(by_alias=True)


@dataclass
class PageAccount:
    """Address offered on an account selection page."""
    address: str
    index: int
    balance: Optional[int] = None  # filled in by the wallet, never by the keyring


class KeyringEvent(str, Enum):
    """State-change notifications."""
    CONFIGURED = "configured"
    PATH_CHANGED = "path_changed"
    PAGE_CHANGED = "page_changed"
    ACCOUNTS_ADDED = "accounts_added"
    ACCOUNT_REMOVED = "account_removed"
    RESET = "reset"


KeyringListener = Callable[[KeyringEvent, KeyringSnapshot], None]


class KeevoKeyring:
    """Keyring for the Keevo hardware wallet.

    Example:
        keyring = KeevoKeyring(BridgeClient(connector, host))
        await keyring.get_first_page()
        addresses = await keyring.add_accounts(1)
        signed = await keyring.sign_transaction(addresses[0], tx_fields)
    """

    type = "Keevo Hardware"

    def __init__(
        self,
        bridge: BridgeClient,
        options: Optional[Union[KeyringSnapshot, Mapping]] = None,
    ):
        """Initialize the keyring.

        Args:
            bridge: Client for the device popup
            options: Persisted state (partial mappings are accepted)
        """
        self.bridge = bridge
        self.hd_key = None
        self.hd_path = DEFAULT_HD_PATH
        self.accounts: list[KeyringAccount] = []
        self.last_unlocked_account_index = 0
        self.page = 0
        self._listeners: list[KeyringListener] = []

        self.configure(options or {})

    # ======================
    # Notifications
    # ======================

    def subscribe(self, listener: KeyringListener) -> Callable[[], None]:
        """Register a state-change listener.

        Returns:
            Callable that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, event: KeyringEvent) -> None:
        if not self._listeners:
            return

        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(event, snapshot)
            except Exception:
                logger.exception(f"Keyring listener failed on {event.value}")

    # ======================
    # Serialisation
    # ======================

    def snapshot(self) -> KeyringSnapshot:
        return KeyringSnapshot(
            hd_path=self.hd_path,
            accounts=[account.model_copy() for account in self.accounts],
            last_unlocked_account_index=self.last_unlocked_account_index,
            page=self.page,
        )

    def configure(self, options: Union[KeyringSnapshot, Mapping]) -> None:
        """Load persisted state; missing fields fall back to defaults."""
        if isinstance(options, KeyringSnapshot):
            snapshot = options.model_copy(deep=True)
        else:
            snapshot = KeyringSnapshot.model_validate(dict(options))

        if snapshot.hd_path != self.hd_path:
            self.hd_key = None
        self.hd_path = snapshot.hd_path
        self.accounts = list(snapshot.accounts)
        self.last_unlocked_account_index = snapshot.last_unlocked_account_index
        self.page = min(snapshot.page, MAX_PAGES - 1)
        self._notify(KeyringEvent.CONFIGURED)

    async def serialize(self) -> dict:
        return self.snapshot().to_dict()

    async def deserialize(self, options: Optional[Mapping] = None) -> None:
        self.configure(options or {})

    # ======================
    # Accounts
    # ======================

    async def get_accounts(self) -> list[str]:
        return [account.address for account in self.accounts]

    def _find_account(self, address: str) -> Optional[KeyringAccount]:
        address = address.lower()
        for account in self.accounts:
            if account.address.lower() == address:
                return account
        return None

    def _require_account(self, address: str) -> KeyringAccount:
        account = self._find_account(address)
        if account is None:
            raise AccountNotFoundError(address)
        return account

    def is_unlocked(self) -> bool:
        return self.hd_key is not None

    def set_hd_path(self, hd_path: str) -> None:
        """Switch derivation path; a different path drops all derived state."""
        if hd_path == self.hd_path:
            return

        self._clear()
        self.hd_path = hd_path
        logger.info(f"HD path changed to {hd_path}")
        self._notify(KeyringEvent.PATH_CHANGED)

    async def _get_hd_key(self):
        if self.hd_key is not None:
            return self.hd_key

        xpub = await self.bridge.get_xpub(self.hd_path)
        self.hd_key = parse_extended_key(xpub)
        return self.hd_key

    def _remove_hd_key(self) -> None:
        self.hd_key = None

    async def add_accounts(self, count: int = 1) -> list[str]:
        """Track the next ``count`` accounts starting at the unlock index.

        Indexes at or past MAX_ACCOUNTS are skipped. The extended key is
        dropped afterwards so the next use fetches it again.
        """
        start = self.last_unlocked_account_index
        stop = min(start + count, MAX_ACCOUNTS)

        hd_key = await self._get_hd_key()

        added = []
        try:
            for index in range(start, stop):
                address = derive_address(hd_key, index)
                if self._find_account(address) is not None:
                    continue

                self.accounts.append(
                    KeyringAccount(address=address, derivation_path=f"{self.hd_path}/{index}")
                )
                added.append(address)
        finally:
            self._remove_hd_key()

        self.set_current_page(0)

        if added:
            logger.info(f"Added {len(added)} Keevo account(s): {', '.join(added)}")
            self._notify(KeyringEvent.ACCOUNTS_ADDED)

        return await self.get_accounts()

    def set_account_to_unlock(self, index: int) -> None:
        index = int(index)
        if index < 0:
            raise ValueError(f"Account index must be >= 0, got {index}")
        self.last_unlocked_account_index = index

    def remove_account(self, address: str) -> None:
        account = self._require_account(address)
        self.accounts.remove(account)
        self._notify(KeyringEvent.ACCOUNT_REMOVED)

    async def export_account(self, address: Optional[str] = None) -> None:
        raise UnsupportedOperationError("Not supported on Keevo device")

    def _clear(self) -> None:
        self.accounts = []
        self.page = 0
        self.last_unlocked_account_index = 0
        self.hd_key = None

    def reset_state(self) -> None:
        self._clear()
        self.hd_path = DEFAULT_HD_PATH
        self._notify(KeyringEvent.RESET)

    def forget_device(self) -> None:
        self.reset_state()

    # ======================
    # Pagination
    # ======================

    def set_current_page(self, page: int) -> None:
        """Set the page, clamped into [0, MAX_PAGES)."""
        page = max(0, min(int(page), MAX_PAGES - 1))
        if page != self.page:
            self.page = page
            self._notify(KeyringEvent.PAGE_CHANGED)

    async def get_first_page(self) -> list[PageAccount]:
        self.set_current_page(0)
        return await self.get_current_page_accounts()

    async def get_previous_page(self) -> list[PageAccount]:
        self.set_current_page(self.page - 1)
        return await self.get_current_page_accounts()

    async def get_next_page(self) -> list[PageAccount]:
        self.set_current_page(self.page + 1)
        return await self.get_current_page_accounts()

    async def get_current_page_accounts(self) -> list[PageAccount]:
        start = self.page * ACCOUNTS_PER_PAGE
        stop = min(start + ACCOUNTS_PER_PAGE, MAX_ACCOUNTS)

        hd_key = await self._get_hd_key()

        return [
            PageAccount(address=derive_address(hd_key, index), index=index)
            for index in range(start, stop)
        ]

    # ======================
    # Signing
    # ======================

    async def sign_transaction(
        self,
        address: str,
        transaction: Union[TransactionFields, Mapping],
    ) -> SignedTransaction:
        """Sign a transaction on the device.

        The device only signs legacy transactions: fee-market fields are
        narrowed to a gas price and the result is always a type 0 transaction.
        """
        account = self._require_account(address)

        if not isinstance(transaction, TransactionFields):
            transaction = TransactionFields.model_validate(dict(transaction))

        encoded = await self.bridge.sign_transaction(
            address,
            account.derivation_path,
            transaction.to_device_payload(),
        )
        v, r, s = decode_signed_transaction(encoded)

        return build_signed_transaction(transaction, v, r, s)

    async def sign_message(self, address: str, message_hex: str) -> str:
        return await self.sign_personal_message(address, message_hex)

    async def sign_personal_message(self, address: str, message_hex: str) -> str:
        account = self._require_account(address)

        signature = await self.bridge.sign_message(account.derivation_path, message_hex)
        return add_hex_prefix(signature)

    async def sign_typed_data(
        self,
        address: str,
        typed_data: Union[Mapping, str],
        version: str = SUPPORTED_TYPED_DATA_VERSION.value,
    ) -> str:
        """Sign EIP-712 typed data. Only V4 is supported."""
        if version != SUPPORTED_TYPED_DATA_VERSION.value:
            raise UnsupportedVersionError(
                f"Typed data signing {version} is not supported. Use {SUPPORTED_TYPED_DATA_VERSION.value}"
            )

        account = self._require_account(address)

        signature = await self.bridge.sign_typed_data(
            account.derivation_path,
            to_canonical_json(typed_data),
        )
        return add_hex_prefix(signature)
