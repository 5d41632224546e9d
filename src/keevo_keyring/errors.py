"""Error types raised by the keyring and the device bridge.

Every failure is a ``KeyringError`` tagged with an ``ErrorKind``; the
subclasses exist so callers can catch one kind without inspecting ``kind``.
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Kind of keyring failure."""
    ACCOUNT_NOT_FOUND = "account_not_found"
    UNSUPPORTED_VERSION = "unsupported_version"
    OPERATION_ABORTED = "operation_aborted"
    OPERATION_FAILED = "operation_failed"
    UNSUPPORTED = "unsupported"
    MALFORMED_DEVICE_RESPONSE = "malformed_device_response"
    CHANNEL_UNAVAILABLE = "channel_unavailable"
    BRIDGE_BUSY = "bridge_busy"


class KeyringError(Exception):
    """Base exception for keyring and bridge failures.

    Attributes:
        kind: What went wrong
        detail: Human readable message shown to the user
    """

    kind: ErrorKind = ErrorKind.OPERATION_FAILED

    def __init__(self, detail: str, kind: Optional[ErrorKind] = None):
        if kind is not None:
            self.kind = kind
        self.detail = detail
        super().__init__(detail)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(kind={self.kind.value}, detail={self.detail!r})"


class AccountNotFoundError(KeyringError):
    """Raised when an address is not tracked by the keyring."""
    kind = ErrorKind.ACCOUNT_NOT_FOUND

    def __init__(self, address: str):
        self.address = address
        super().__init__(f"Address {address} not found in this keyring")


class UnsupportedVersionError(KeyringError):
    """Raised when typed data is requested in an unsupported version."""
    kind = ErrorKind.UNSUPPORTED_VERSION


class OperationAbortedError(KeyringError):
    """Raised when the user dismisses the signing surface."""
    kind = ErrorKind.OPERATION_ABORTED


class OperationFailedError(KeyringError):
    """Raised when the signing surface reports an internal error."""
    kind = ErrorKind.OPERATION_FAILED


class UnsupportedOperationError(KeyringError):
    """Raised for operations the device never performs (e.g. key export)."""
    kind = ErrorKind.UNSUPPORTED


class MalformedDeviceResponseError(KeyringError):
    """Raised when data returned by the device cannot be decoded."""
    kind = ErrorKind.MALFORMED_DEVICE_RESPONSE


class ChannelUnavailableError(KeyringError):
    """Raised when the popup never attaches its message channel."""
    kind = ErrorKind.CHANNEL_UNAVAILABLE


class BridgeBusyError(KeyringError):
    """Raised when a previous device request does not finish in time."""
    kind = ErrorKind.BRIDGE_BUSY
