"""In-process channel transport built on asyncio.

Used when the popup runs in the same event loop as the keyring (embedding,
local tooling and tests). Messages are delivered on the next loop iteration,
like a browser port would.
"""

import asyncio
import logging
from typing import Optional

from keevo_keyring.bridge.channel import ChannelConnector, MessageChannel, MessageListener

logger = logging.getLogger(__name__)


class MemoryChannel(MessageChannel):
    """One end of an in-memory channel pair."""

    def __init__(self, name: str):
        self._name = name
        self._listeners: list[MessageListener] = []
        self._peer: Optional["MemoryChannel"] = None
        self._connected = True

    @classmethod
    def pair(cls, name: str) -> tuple["MemoryChannel", "MemoryChannel"]:
        """Create two connected ends."""
        local, remote = cls(name), cls(name)
        local._peer, remote._peer = remote, local
        return local, remote

    @property
    def name(self) -> str:
        return self._name

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def add_listener(self, listener: MessageListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: MessageListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def post(self, message: dict) -> None:
        if not self._connected or self._peer is None:
            raise ConnectionError(f"Channel {self._name} is disconnected")

        asyncio.get_running_loop().call_soon(self._peer._deliver, message)

    def _deliver(self, message: dict) -> None:
        if not self._connected:
            logger.debug(f"Dropping message on closed channel {self._name}")
            return

        for listener in list(self._listeners):
            listener(message)

    def disconnect(self) -> None:
        if not self._connected:
            return
        self._connected = False
        self._listeners.clear()
        if self._peer is not None:
            self._peer.disconnect()


class MemoryConnector(ChannelConnector):
    """Hands out channels attached by in-process popups."""

    def __init__(self):
        self._waiters: list[tuple[str, asyncio.Future]] = []
        # Channels attached before anyone waited for them
        self._unclaimed: dict[str, MemoryChannel] = {}

    async def wait_for_attach(self, name: str) -> MessageChannel:
        channel = self._unclaimed.pop(name, None)
        if channel is not None and channel.is_connected:
            return channel

        future = asyncio.get_running_loop().create_future()
        self._waiters.append((name, future))
        try:
            return await future
        finally:
            self._waiters = [(n, f) for n, f in self._waiters if f is not future]

    def attach(self, name: str) -> MemoryChannel:
        """Attach a new channel from the remote side.

        Returns:
            The remote end; the local end goes to whoever waits for ``name``
        """
        local, remote = MemoryChannel.pair(name)

        for waiter_name, future in self._waiters:
            if waiter_name == name and not future.done():
                future.set_result(local)
                break
        else:
            logger.debug(f"Channel {name} attached before anybody waited")
            self._unclaimed[name] = local

        return remote
