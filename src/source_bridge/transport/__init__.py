"""Raw channel layer.

The bridge client only needs a window-like target it can post strings to
and listen on. Any implementation of MessageTarget works; MemoryWindow is
provided for in-process use.
"""

from .base import WILDCARD_ORIGIN, MessageListener, MessageTarget, RawMessage
from .memory import MemoryWindow, create_window_pair

__all__ = [
    # Base abstractions
    "MessageTarget",
    "MessageListener",
    "RawMessage",
    "WILDCARD_ORIGIN",
    # In-memory implementation
    "MemoryWindow",
    "create_window_pair",
]
