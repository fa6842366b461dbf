"""In-memory raw channel.

MemoryWindow stands in for a browser window or frame: posting schedules
delivery on the running event loop (never synchronously), and origin
targeting follows postMessage rules. Used for tests, the CLI check and
for embedding both sides of the bridge in one process.
"""

from __future__ import annotations

import asyncio
import logging

from .base import WILDCARD_ORIGIN, MessageListener, MessageTarget, RawMessage

logger = logging.getLogger(__name__)


class MemoryWindow:
    """In-process window.

    Usage:
        host_window, guest_window = create_window_pair()
        guest_window.post_message('{"id": "x", "type": "hello"}', host_window.origin, host_window)
    """

    def __init__(self, origin: str, name: str | None = None) -> None:
        self._origin = origin
        self.name = name or origin
        self._listeners: list[MessageListener] = []
        self.history: list[RawMessage] = []

    @property
    def origin(self) -> str:
        return self._origin

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def post_message(self, data: str, target_origin: str, source: MessageTarget) -> None:
        if target_origin not in (WILDCARD_ORIGIN, self._origin):
            logger.debug(
                f"[{self.name}] Dropping message for origin {target_origin} "
                f"(window origin is {self._origin})"
            )
            return

        message = RawMessage(data=data, origin=source.origin, source=source)
        asyncio.get_running_loop().call_soon(self._deliver, message)

    def add_message_listener(self, listener: MessageListener) -> None:
        self._listeners.append(listener)

    def remove_message_listener(self, listener: MessageListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def clear(self) -> None:
        """Clear delivered message history."""
        self.history.clear()

    def _deliver(self, message: RawMessage) -> None:
        self.history.append(message)
        # Copy so listeners can detach while being notified
        for listener in list(self._listeners):
            try:
                listener(message)
            except Exception:
                logger.exception(f"[{self.name}] Error in message listener")

    def __repr__(self) -> str:
        return f"MemoryWindow(origin={self._origin!r}, name={self.name!r})"


def create_window_pair(
    host_origin: str = "https://host.example",
    guest_origin: str = "https://guest.example",
) -> tuple[MemoryWindow, MemoryWindow]:
    """Create a host window and a guest window.

    Returns:
        (host_window, guest_window)
    """
    return (
        MemoryWindow(host_origin, name="host"),
        MemoryWindow(guest_origin, name="guest"),
    )
