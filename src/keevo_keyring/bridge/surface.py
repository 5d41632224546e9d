"""Signing surface lifecycle.

The signing surface is the popup tab (or window) in which the user confirms a
device operation. Tabs and windows belong to the host; ``SurfaceHost`` is the
part of the host API the bridge needs, and ``SigningSurface`` tracks one popup
through Closed -> Opening -> Open -> Closing -> Closed.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from keevo_keyring.errors import OperationFailedError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HostWindow:
    """A host window."""
    id: int
    type: str = "normal"  # normal, popup, panel, app


@dataclass(frozen=True)
class HostTab:
    """A host tab."""
    id: Optional[int]
    index: int = 0
    window_id: Optional[int] = None


class SurfaceHost(ABC):
    """Window and tab operations provided by the host environment."""

    @abstractmethod
    async def get_current_window(self) -> HostWindow:
        """Window the keyring is running in."""
        pass

    @abstractmethod
    async def get_active_tab(self, window_id: Optional[int] = None) -> Optional[HostTab]:
        """Active tab of a window (current window when None)."""
        pass

    @abstractmethod
    async def create_window(self, url: str) -> HostWindow:
        """Open ``url`` in a new window."""
        pass

    @abstractmethod
    async def create_tab(self, url: str, index: int) -> HostTab:
        """Open ``url`` in a new tab at ``index`` of the current window."""
        pass

    @abstractmethod
    async def focus_tab(self, tab_id: int) -> None:
        pass

    @abstractmethod
    async def remove_tab(self, tab_id: int) -> None:
        pass


class SurfaceState(str, Enum):
    CLOSED = "closed"
    OPENING = "opening"
    OPEN = "open"
    CLOSING = "closing"


ALLOWED_TRANSITIONS = {
    SurfaceState.CLOSED: {SurfaceState.OPENING},
    SurfaceState.OPENING: {SurfaceState.OPEN, SurfaceState.CLOSED},
    SurfaceState.OPEN: {SurfaceState.CLOSING},
    SurfaceState.CLOSING: {SurfaceState.CLOSED},
}


class InvalidSurfaceTransition(RuntimeError):
    """Raised on a lifecycle transition the surface does not allow."""

    def __init__(self, current: SurfaceState, target: SurfaceState):
        self.current = current
        self.target = target
        super().__init__(f"Signing surface cannot go from {current.value} to {target.value}")


class SigningSurface:
    """A single popup opened through a ``SurfaceHost``.

    At most one popup is open per instance. ``acquire`` refocuses an open
    popup instead of opening another one, and ``close`` also brings back the
    tab that was active when the popup was opened.
    """

    def __init__(self, host: SurfaceHost, url: str):
        self.host = host
        self.url = url
        self._state = SurfaceState.CLOSED
        self._popup_tab: Optional[HostTab] = None
        self._origin_tab: Optional[HostTab] = None

    @property
    def state(self) -> SurfaceState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state == SurfaceState.OPEN

    @property
    def popup_tab(self) -> Optional[HostTab]:
        return self._popup_tab

    def _transition(self, target: SurfaceState) -> None:
        if target not in ALLOWED_TRANSITIONS[self._state]:
            raise InvalidSurfaceTransition(self._state, target)
        logger.debug(f"Signing surface {self._state.value} -> {target.value}")
        self._state = target

    async def acquire(self) -> HostTab:
        """Focus the open popup, or open a new one."""
        if self._state == SurfaceState.OPEN and self._popup_tab is not None:
            await self.host.focus_tab(self._popup_tab.id)
            return self._popup_tab

        self._transition(SurfaceState.OPENING)
        try:
            self._popup_tab = await self._open()
        except BaseException:
            self._popup_tab = None
            self._origin_tab = None
            self._transition(SurfaceState.CLOSED)
            raise

        self._transition(SurfaceState.OPEN)
        logger.info(f"Signing popup opened (tab={self._popup_tab.id})")
        return self._popup_tab

    async def _open(self) -> HostTab:
        current_window = await self.host.get_current_window()

        if current_window.type != "normal":
            # Extension popups cannot host tabs, use a dedicated window
            new_window = await self.host.create_window(self.url)
            popup_tab = await self.host.get_active_tab(new_window.id)
            if popup_tab is None or popup_tab.id is None:
                raise OperationFailedError("An error occurred during popup window opening")
            return popup_tab

        active_tab = await self.host.get_active_tab()
        if active_tab is None or active_tab.id is None:
            raise OperationFailedError("An error occurred during popup tab opening")

        self._origin_tab = active_tab
        return await self.host.create_tab(self.url, index=active_tab.index + 1)

    async def close(self) -> bool:
        """Close the popup and refocus the originating tab.

        Returns:
            True if a popup was closed, False if there was nothing to close
        """
        if self._state != SurfaceState.OPEN:
            return False

        self._transition(SurfaceState.CLOSING)
        popup_tab, origin_tab = self._popup_tab, self._origin_tab
        self._popup_tab = None
        self._origin_tab = None

        try:
            try:
                if popup_tab is not None and popup_tab.id is not None:
                    # Removal finishes even if the caller is cancelled
                    await asyncio.shield(self.host.remove_tab(popup_tab.id))
            except Exception as e:
                logger.warning(f"Failed to remove signing popup tab {popup_tab.id}: {e}")

            try:
                if origin_tab is not None and origin_tab.id is not None:
                    await self.host.focus_tab(origin_tab.id)
            except Exception as e:
                logger.warning(f"Failed to refocus tab {origin_tab.id}: {e}")
        finally:
            self._transition(SurfaceState.CLOSED)
            logger.info("Signing popup closed")

        return True
