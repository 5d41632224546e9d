"""Pytest configuration and fixtures."""

import os
from typing import Callable, Optional

import pytest
from bip_utils import Bip39SeedGenerator, Bip44, Bip44Changes, Bip44Coins

# Keep the developer's .env out of the tests
os.environ["KEEVO_ENVIRONMENT"] = "test"

from keevo_keyring.bridge.client import BridgeClient
from keevo_keyring.bridge.memory import MemoryChannel, MemoryConnector
from keevo_keyring.bridge.messages import RequestType, ResponseType
from keevo_keyring.bridge.surface import HostTab, HostWindow, SurfaceHost
from keevo_keyring.config import BridgeSettings

# Standard BIP39 test mnemonic; never use it for real funds
TEST_MNEMONIC = (
    "abandon abandon abandon abandon abandon abandon "
    "abandon abandon abandon abandon abandon about"
)
# m/44'/60'/0'/0/0 of TEST_MNEMONIC
TEST_ADDRESS = "0x9858EfFD232B4033E47d90003D41EC34EcaEda94"

FAKE_SIGNATURE = "ab" * 65


def _eth_account_node():
    seed = Bip39SeedGenerator(TEST_MNEMONIC).Generate()
    return Bip44.FromSeed(seed, Bip44Coins.ETHEREUM).Purpose().Coin().Account(0)


def account_xpub() -> str:
    """Account-level xpub (m/44'/60'/0') as the device reports it."""
    return _eth_account_node().PublicKey().ToExtended()


def account_private_key(index: int = 0) -> bytes:
    node = _eth_account_node().Change(Bip44Changes.CHAIN_EXT).AddressIndex(index)
    return node.PrivateKey().Raw().ToBytes()


def raw_transaction_of(signed) -> bytes:
    """Raw bytes of an eth_account signed transaction (attribute renamed in 0.13)."""
    raw = getattr(signed, "raw_transaction", None)
    if raw is None:
        raw = signed.rawTransaction
    return bytes(raw)


def sign_legacy_with_eth_account(transaction: dict, private_key: bytes):
    """Sign popup transaction JSON as the device would."""
    from eth_account import Account
    from eth_utils import to_checksum_address

    tx = {
        "nonce": int(transaction["nonce"], 16),
        "gasPrice": int(transaction["gasPrice"], 16),
        "gas": int(transaction["gasLimit"], 16),
        "to": to_checksum_address(transaction["to"]),
        "value": int(transaction["value"], 16),
        "data": transaction["data"],
        "chainId": int(transaction["chainId"], 16),
    }
    return Account.sign_transaction(tx, private_key)


class FakePopup:
    """Simulated bridge popup with a device behind it.

    ``responder`` maps each request to the messages the popup sends back.
    """

    def __init__(self, connector: MemoryConnector, port_name: str = "keevo-popup"):
        self.connector = connector
        self.port_name = port_name
        self.channel: Optional[MemoryChannel] = None
        self.auto_attach = True
        self.requests: list[dict] = []
        self.responder: Callable[[dict], list[dict]] = self.device_responder
        self.xpub = account_xpub()
        self.signed_transactions = []

    def on_surface_opened(self) -> None:
        if not self.auto_attach:
            return
        if self.channel is None or not self.channel.is_connected:
            self.attach()

    def attach(self) -> MemoryChannel:
        channel = self.connector.attach(self.port_name)
        channel.add_listener(lambda message: self._on_message(channel, message))
        self.channel = channel
        return channel

    def _on_message(self, channel: MemoryChannel, message: dict) -> None:
        self.requests.append(message)
        for reply in self.responder(message):
            channel.post(reply)

    def send(self, message: dict) -> None:
        self.channel.post(message)

    def device_responder(self, request: dict) -> list[dict]:
        request_type = RequestType(request["type"])
        payload = request["payload"]

        if request_type == RequestType.GET_XPUB:
            return [{"type": ResponseType.GET_XPUB.value, "id": request["id"], "payload": self.xpub}]

        if request_type == RequestType.SIGN_TRANSACTION:
            signed = sign_legacy_with_eth_account(payload["transaction"], account_private_key())
            self.signed_transactions.append(signed)
            return [{
                "type": ResponseType.SIGN_TRANSACTION.value,
                "id": request["id"],
                "payload": raw_transaction_of(signed).hex(),
            }]

        return [{"type": ResponseType.SIGN_MESSAGE.value, "id": request["id"], "payload": FAKE_SIGNATURE}]


class FakeSurfaceHost(SurfaceHost):
    """Host window/tab manager that records what the bridge does."""

    ORIGIN_WINDOW_ID = 1

    def __init__(self, popup: Optional[FakePopup] = None, window_type: str = "normal"):
        self.popup = popup
        self.window_type = window_type
        self.origin_tab = HostTab(id=1, index=3, window_id=self.ORIGIN_WINDOW_ID)
        self.open_tabs: dict[int, HostTab] = {}
        self.created: list[HostTab] = []
        self.focused: list[int] = []
        self.removed: list[int] = []
        self.max_open = 0
        self._next_id = 100

    def _open_popup(self, index: int, window_id: int) -> HostTab:
        self._next_id += 1
        tab = HostTab(id=self._next_id, index=index, window_id=window_id)
        self.open_tabs[tab.id] = tab
        self.created.append(tab)
        self.max_open = max(self.max_open, len(self.open_tabs))
        if self.popup is not None:
            self.popup.on_surface_opened()
        return tab

    async def get_current_window(self) -> HostWindow:
        return HostWindow(id=self.ORIGIN_WINDOW_ID, type=self.window_type)

    async def get_active_tab(self, window_id: Optional[int] = None) -> Optional[HostTab]:
        if window_id is None or window_id == self.ORIGIN_WINDOW_ID:
            return self.origin_tab
        for tab in self.open_tabs.values():
            if tab.window_id == window_id:
                return tab
        return None

    async def create_window(self, url: str) -> HostWindow:
        window_id = self._next_id + 1000
        self._open_popup(index=0, window_id=window_id)
        return HostWindow(id=window_id, type="normal")

    async def create_tab(self, url: str, index: int) -> HostTab:
        return self._open_popup(index=index, window_id=self.ORIGIN_WINDOW_ID)

    async def focus_tab(self, tab_id: int) -> None:
        self.focused.append(tab_id)

    async def remove_tab(self, tab_id: int) -> None:
        self.removed.append(tab_id)
        self.open_tabs.pop(tab_id, None)


@pytest.fixture
def settings() -> BridgeSettings:
    return BridgeSettings(
        _env_file=None,
        environment="test",
        attach_timeout=1.0,
        response_timeout=None,
        gate_timeout=5.0,
    )


@pytest.fixture
def connector() -> MemoryConnector:
    return MemoryConnector()


@pytest.fixture
def popup(connector) -> FakePopup:
    return FakePopup(connector)


@pytest.fixture
def host(popup) -> FakeSurfaceHost:
    return FakeSurfaceHost(popup)


@pytest.fixture
def bridge(connector, host, settings) -> BridgeClient:
    return BridgeClient(connector, host, settings)


@pytest.fixture
def xpub() -> str:
    return account_xpub()
