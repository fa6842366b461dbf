"""Source Bridge - messaging between a host and an embedded guest.

Two contexts that can only exchange strings (a host document and a guest it
embeds) get three primitives on top of that channel:
- events: fire-and-forget envelopes
- requests: envelopes answered by a correlated reply
- a hello/ready handshake through which the host supervises the guest

Usage (guest):
    guest = create_guest_session(guest_window, host_window, "https://host.example")
    hello = await guest.init(event_handlers={"foo": handle_foo})

Usage (host):
    host = create_host_session(
        host_window, guest_window, "https://guest.example",
        HostConfig(hello_timeout=1.0, ready_timeout=2.0),
        get_token=fetch_token,
        on_error=handle_error,
    )
    host.boot()
"""

from .client import BridgeClient
from .config import GuestConfig, HostConfig
from .errors import (
    BridgeError,
    BridgeErrorCause,
    HandshakeDataMissingError,
    NotInitializedError,
    RequestFailedError,
    SessionDestroyedError,
)
from .guest import GuestSession, GuestState, create_guest_session
from .host import HostSession, HostState, create_host_session
from .protocol import (
    Auth,
    AuthPayload,
    Context,
    Envelope,
    HelloPayload,
    MessageDefinition,
    PluginInfo,
    ReplyEnvelope,
    generate_request_id,
    parse_envelope,
)
from .transport import MemoryWindow, MessageTarget, RawMessage, create_window_pair

__version__ = "0.1.0"

__all__ = [
    # Sessions
    "GuestSession",
    "GuestState",
    "HostSession",
    "HostState",
    "create_guest_session",
    "create_host_session",
    "GuestConfig",
    "HostConfig",
    # Client
    "BridgeClient",
    # Errors
    "BridgeError",
    "BridgeErrorCause",
    "HandshakeDataMissingError",
    "NotInitializedError",
    "RequestFailedError",
    "SessionDestroyedError",
    # Protocol
    "Envelope",
    "ReplyEnvelope",
    "parse_envelope",
    "generate_request_id",
    "MessageDefinition",
    "Auth",
    "AuthPayload",
    "Context",
    "HelloPayload",
    "PluginInfo",
    # Transport
    "MessageTarget",
    "RawMessage",
    "MemoryWindow",
    "create_window_pair",
]
