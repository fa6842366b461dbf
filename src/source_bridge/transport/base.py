"""Raw channel abstraction.

The bridge runs on top of a window-like messaging primitive: each context
can post a string to another context and listen for messages posted to
itself. Every delivered message carries the sender context (`source`) and
the sender's declared origin, which the client uses to discard messages
from anyone but its counterpart.

Implementations:
- MemoryWindow: in-process delivery on the running event loop
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

WILDCARD_ORIGIN = "*"


@dataclass(frozen=True)
class RawMessage:
    """A message as delivered by the raw channel."""

    data: Any
    origin: str  # declared origin of the sender
    source: Any  # sender context, compared by identity


MessageListener = Callable[[RawMessage], None]


@runtime_checkable
class MessageTarget(Protocol):
    """Protocol for contexts that messages can be posted to.

    All targets must implement:
    - origin: the origin this context presents to others
    - post_message: deliver a string to this context
    - add/remove_message_listener: subscribe to messages posted here
    """

    @property
    def origin(self) -> str:
        """Origin presented by this context."""
        ...

    def post_message(self, data: str, target_origin: str, source: MessageTarget) -> None:
        """Post `data` to this context on behalf of `source`.

        Delivery is asynchronous. Messages are dropped if `target_origin`
        is neither "*" nor this context's origin.
        """
        ...

    def add_message_listener(self, listener: MessageListener) -> None:
        """Subscribe to messages posted to this context."""
        ...

    def remove_message_listener(self, listener: MessageListener) -> None:
        """Unsubscribe a listener. Unknown listeners are ignored."""
        ...
