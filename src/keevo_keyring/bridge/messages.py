"""Wire messages exchanged with the signing popup.

Every message is a mapping ``{"type": <tag>, "id": <int>, "payload": <any>}``.
The tag strings are what the popup speaks and must not change.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional


class RequestType(str, Enum):
    """Outbound request tags."""
    GET_XPUB = "keevo-get-xpub"
    SIGN_TRANSACTION = "keevp-sign-transaction"
    SIGN_MESSAGE = "keevo-sign-message"


class ResponseType(str, Enum):
    """Inbound message tags."""
    POPUP_CLOSED = "keevo-popup-closed"
    POPUP_ERROR = "keevo-popup-error"
    GET_XPUB = "keevo-popup-get-xpub-response"
    SIGN_TRANSACTION = "keevp-popup-sign-transaction-response"
    SIGN_MESSAGE = "keevo-popup-sign-message-response"


class PopupError(str, Enum):
    """Payload values carried by POPUP_ERROR."""
    ABORT = "abort"
    ERROR = "error"


# Completion kind expected for each request kind
EXPECTED_RESPONSE = {
    RequestType.GET_XPUB: ResponseType.GET_XPUB,
    RequestType.SIGN_TRANSACTION: ResponseType.SIGN_TRANSACTION,
    RequestType.SIGN_MESSAGE: ResponseType.SIGN_MESSAGE,
}

TERMINAL_TYPES = (ResponseType.POPUP_CLOSED, ResponseType.POPUP_ERROR)


@dataclass(frozen=True)
class BridgeRequest:
    """Request posted to the popup."""
    type: RequestType
    id: int
    payload: Any = None

    def to_wire(self) -> dict:
        return {"type": self.type.value, "id": self.id, "payload": self.payload}

    @property
    def expected_response(self) -> ResponseType:
        return EXPECTED_RESPONSE[self.type]


@dataclass(frozen=True)
class BridgeResponse:
    """Inbound message from the popup."""
    type: ResponseType
    id: Optional[int] = None
    payload: Any = None

    @property
    def is_terminal(self) -> bool:
        """Closed and error messages settle a request whatever their id."""
        return self.type in TERMINAL_TYPES

    def answers(self, request: BridgeRequest) -> bool:
        """True if this is the completion for ``request``."""
        return (
            not self.is_terminal
            and self.type == request.expected_response
            and self.id == request.id
        )


def parse_incoming(message: Any) -> Optional[BridgeResponse]:
    """Parse a raw channel message.

    Returns None for anything that is not an inbound popup message, including
    echoes of our own requests. Completion messages without an integer id are
    dropped as well.
    """
    if not isinstance(message, Mapping):
        return None

    try:
        response_type = ResponseType(message.get("type"))
    except ValueError:
        return None

    message_id = message.get("id")
    if isinstance(message_id, bool) or not isinstance(message_id, int):
        message_id = None

    if response_type not in TERMINAL_TYPES and message_id is None:
        return None

    return BridgeResponse(type=response_type, id=message_id, payload=message.get("payload"))
