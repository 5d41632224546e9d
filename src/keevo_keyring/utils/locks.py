"""Concurrency control for device requests.

The popup protocol handles one request at a time, so every bridge client owns
a ``RequestGate`` that serialises its callers.
"""

import asyncio
import logging
from typing import Optional

from keevo_keyring.errors import BridgeBusyError

logger = logging.getLogger(__name__)


class RequestGate:
    """Per-instance mutual exclusion for device requests.

    Example:
        gate = RequestGate(timeout=30.0)
        async with gate.hold("sign_transaction"):
            # Only one request talks to the popup here
            ...
    """

    def __init__(self, timeout: Optional[float] = 30.0):
        """Initialize the gate.

        Args:
            timeout: Maximum time to wait for the gate (None = wait forever)
        """
        self.timeout = timeout
        self._lock = asyncio.Lock()

    def locked(self) -> bool:
        return self._lock.locked()

    def hold(self, operation: str = "device_request") -> "_GateHold":
        return _GateHold(self, operation)


class _GateHold:
    """Async context manager returned by ``RequestGate.hold``."""

    def __init__(self, gate: RequestGate, operation: str):
        self.gate = gate
        self.operation = operation
        self._acquired = False

    async def __aenter__(self) -> "_GateHold":
        lock = self.gate._lock

        if lock.locked():
            logger.debug(f"Waiting for previous device request: {self.operation}")

        try:
            if self.gate.timeout:
                await asyncio.wait_for(lock.acquire(), timeout=self.gate.timeout)
            else:
                await lock.acquire()
        except asyncio.TimeoutError:
            logger.warning(
                f"Gate timeout after {self.gate.timeout}s: {self.operation}"
            )
            raise BridgeBusyError(
                f"Another device request is still in progress ({self.operation} gave up after {self.gate.timeout}s)"
            )

        self._acquired = True
        logger.debug(f"Gate acquired: {self.operation}")
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._acquired:
            self.gate._lock.release()
            self._acquired = False
            logger.debug(f"Gate released: {self.operation}")
        return False
