"""Client for the Keevo websocket bridge popup.

Each device operation follows the same flow:
1. Wait for the request gate (one request in flight per client)
2. Open the signing popup, or focus it if it is already open
3. Wait for the popup to attach its message channel
4. Post the request and wait for the matching response
5. Close the popup, whatever happened
"""

import asyncio
import itertools
import logging
from typing import Any, Optional

from keevo_keyring.bridge.channel import ChannelConnector, MessageChannel
from keevo_keyring.bridge.messages import (
    BridgeRequest,
    BridgeResponse,
    PopupError,
    RequestType,
    ResponseType,
    parse_incoming,
)
from keevo_keyring.bridge.surface import SigningSurface, SurfaceHost
from keevo_keyring.config import BridgeSettings, get_settings
from keevo_keyring.errors import (
    ChannelUnavailableError,
    MalformedDeviceResponseError,
    OperationAbortedError,
    OperationFailedError,
)
from keevo_keyring.utils.locks import RequestGate

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "Something went wrong. Please try again"


class PopupTerminated(Exception):
    """The popup was closed or reported an error before answering."""

    def __init__(self, response: BridgeResponse):
        self.response = response
        super().__init__(f"Popup terminated the request: {response.type.value}")

    @property
    def is_abort(self) -> bool:
        if self.response.type == ResponseType.POPUP_CLOSED:
            return True
        return self.response.payload == PopupError.ABORT.value


class ResponseTimeout(Exception):
    """No response arrived within response_timeout."""

    def __init__(self, request: BridgeRequest):
        self.request = request
        super().__init__(f"No response to {request.type.value} (id={request.id})")


class BridgeClient:
    """Runs device operations through a transient signing popup.

    Example:
        client = BridgeClient(connector, host)
        xpub = await client.get_xpub("m/44'/60'/0'/0")
    """

    def __init__(
        self,
        connector: ChannelConnector,
        host: SurfaceHost,
        settings: Optional[BridgeSettings] = None,
    ):
        """Initialize the client.

        Args:
            connector: Accepts the channel the popup attaches once loaded
            host: Window/tab manager used to show the popup
            settings: Bridge settings (defaults to environment settings)
        """
        self.settings = settings or get_settings()
        self.settings.require_secure_popup()

        self.connector = connector
        self.surface = SigningSurface(host, self.settings.popup_url)

        self._channel: Optional[MessageChannel] = None
        self._message_ids = itertools.count()
        self._gate = RequestGate(timeout=self.settings.gate_timeout)

    def next_message_id(self) -> int:
        return next(self._message_ids)

    @property
    def busy(self) -> bool:
        return self._gate.locked()

    async def wait_for_channel(self) -> MessageChannel:
        """Return the popup channel, waiting for it to attach if needed.

        Raises:
            ChannelUnavailableError: If nothing attaches within attach_timeout
        """
        if self._channel is not None and self._channel.is_connected:
            return self._channel

        try:
            channel = await asyncio.wait_for(
                self.connector.wait_for_attach(self.settings.port_name),
                timeout=self.settings.attach_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(
                f"Popup channel {self.settings.port_name} did not attach within {self.settings.attach_timeout}s"
            )
            raise ChannelUnavailableError(
                "Keevo popup did not connect. Please try again"
            )

        logger.debug(f"Popup channel {channel.name} attached")
        self._channel = channel
        return channel

    async def _post_and_wait(self, channel: MessageChannel, request: BridgeRequest) -> Any:
        """Post ``request`` and wait for its completion or a terminal message."""
        future = asyncio.get_running_loop().create_future()

        def handle_popup_message(message: Any) -> None:
            if future.done():
                return

            response = parse_incoming(message)
            if response is None:
                return

            if response.is_terminal:
                future.set_exception(PopupTerminated(response))
            elif response.answers(request):
                future.set_result(response.payload)
            else:
                logger.warning(
                    f"Ignoring stray {response.type.value} (id={response.id}) "
                    f"while waiting for {request.expected_response.value} (id={request.id})"
                )

        channel.add_listener(handle_popup_message)
        try:
            logger.debug(f"Posting {request.type.value} (id={request.id})")
            channel.post(request.to_wire())

            if not self.settings.response_timeout:
                return await future
            try:
                return await asyncio.wait_for(future, timeout=self.settings.response_timeout)
            except asyncio.TimeoutError as e:
                raise ResponseTimeout(request) from e
        finally:
            channel.remove_listener(handle_popup_message)

    async def _request(self, request_type: RequestType, payload: dict, aborted_message: str) -> Any:
        async with self._gate.hold(request_type.value):
            try:
                await self.surface.acquire()
                channel = await self.wait_for_channel()
                request = BridgeRequest(request_type, self.next_message_id(), payload)
                return await self._post_and_wait(channel, request)

            except PopupTerminated as e:
                if e.is_abort:
                    logger.info(f"{request_type.value} aborted by the user")
                    raise OperationAbortedError(aborted_message) from e
                logger.warning(f"{request_type.value} failed in popup: {e.response.payload!r}")
                raise OperationFailedError(GENERIC_ERROR_MESSAGE) from e

            except ResponseTimeout as e:
                logger.warning(
                    f"{request_type.value}: no response within {self.settings.response_timeout}s"
                )
                raise OperationAbortedError(
                    f"{aborted_message} (no response within {self.settings.response_timeout}s)"
                ) from e

            finally:
                await self.surface.close()

    @staticmethod
    def _expect_str(value: Any, what: str) -> str:
        if not isinstance(value, str) or not value:
            raise MalformedDeviceResponseError(f"Device returned an invalid {what}: {value!r}")
        return value

    async def get_xpub(self, derivation_path: str) -> str:
        """Fetch the extended public key for ``derivation_path``."""
        xpub = await self._request(
            RequestType.GET_XPUB,
            {"derivationPath": derivation_path},
            "Account adding was aborted",
        )
        return self._expect_str(xpub, "extended public key")

    async def sign_transaction(self, address: str, derivation_path: str, transaction: dict) -> str:
        """Sign a legacy transaction.

        Returns:
            Hex encoded signed transaction (RLP)
        """
        signed = await self._request(
            RequestType.SIGN_TRANSACTION,
            {
                "address": address,
                "derivationPath": derivation_path,
                "transaction": transaction,
            },
            "Transaction signing was aborted",
        )
        return self._expect_str(signed, "signed transaction")

    async def sign_message(self, derivation_path: str, message: str) -> str:
        """Sign a hex encoded personal message.

        Returns:
            Hex encoded signature
        """
        signature = await self._request(
            RequestType.SIGN_MESSAGE,
            {"derivationPath": derivation_path, "message": message},
            "Message signing was aborted",
        )
        return self._expect_str(signature, "signature")

    async def sign_typed_data(self, derivation_path: str, typed_data_json: str) -> str:
        """Sign EIP-712 typed data given as canonical JSON.

        The popup has no dedicated typed-data request; it is sent as a message
        signing request flagged with ``format: eip712``.
        """
        signature = await self._request(
            RequestType.SIGN_MESSAGE,
            {
                "derivationPath": derivation_path,
                "message": typed_data_json,
                "format": "eip712",
            },
            "Typed data signing was aborted",
        )
        return self._expect_str(signature, "signature")

    async def close(self) -> None:
        """Close the popup and drop the channel."""
        await self.surface.close()
        if self._channel is not None:
            self._channel.disconnect()
            self._channel = None
