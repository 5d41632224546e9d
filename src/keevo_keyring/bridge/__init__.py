"""Bridge to the Keevo signing popup."""

from keevo_keyring.bridge.channel import ChannelConnector, MessageChannel
from keevo_keyring.bridge.client import BridgeClient
from keevo_keyring.bridge.memory import MemoryChannel, MemoryConnector
from keevo_keyring.bridge.messages import RequestType, ResponseType
from keevo_keyring.bridge.surface import (
    HostTab,
    HostWindow,
    SigningSurface,
    SurfaceHost,
    SurfaceState,
)

__all__ = [
    "BridgeClient",
    "ChannelConnector",
    "HostTab",
    "HostWindow",
    "MemoryChannel",
    "MemoryConnector",
    "MessageChannel",
    "RequestType",
    "ResponseType",
    "SigningSurface",
    "SurfaceHost",
    "SurfaceState",
]
