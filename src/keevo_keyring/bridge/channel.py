"""Message channel interfaces.

The popup opens a named, bidirectional channel back to the keyring once it has
loaded. The host environment provides the concrete transport; the bridge only
relies on the operations below.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable

MessageListener = Callable[[Any], None]


class MessageChannel(ABC):
    """One end of a duplex message channel."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Name the remote side attached with."""
        pass

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """False once either side disconnected."""
        pass

    @abstractmethod
    def add_listener(self, listener: MessageListener) -> None:
        """Register a callback invoked with every inbound message."""
        pass

    @abstractmethod
    def remove_listener(self, listener: MessageListener) -> None:
        """Unregister a callback. Unknown listeners are ignored."""
        pass

    @abstractmethod
    def post(self, message: dict) -> None:
        """Send a message to the remote side."""
        pass

    @abstractmethod
    def disconnect(self) -> None:
        """Close the channel."""
        pass


class ChannelConnector(ABC):
    """Accepts channels attached by the remote side."""

    @abstractmethod
    async def wait_for_attach(self, name: str) -> MessageChannel:
        """Wait until a remote side attaches a channel called ``name``.

        Channels attached under another name are ignored.
        """
        pass
