"""Wire protocol layer.

Defines the envelope shape shared by both sides of the bridge and the
typed payloads of the built-in messages.

Key concepts:
- Envelope: {id, type, payload?} - events and requests
- ReplyEnvelope: adds {in_reply_to, ok, error?} - correlated responses
- MessageDefinition: binds a message type to a payload schema
"""

from .envelope import (
    REQUEST_ID_ALPHABET,
    REQUEST_ID_LENGTH,
    Envelope,
    ReplyEnvelope,
    generate_request_id,
    parse_envelope,
)
from .messages import (
    AUTHENTICATION,
    CONTEXT,
    HELLO,
    READY,
    Auth,
    AuthenticationMessage,
    AuthPayload,
    Context,
    ContextMessage,
    HelloMessage,
    HelloPayload,
    MessageDefinition,
    PluginInfo,
    format_timestamp,
    parse_timestamp,
)

__all__ = [
    # Envelopes
    "Envelope",
    "ReplyEnvelope",
    "parse_envelope",
    "generate_request_id",
    "REQUEST_ID_ALPHABET",
    "REQUEST_ID_LENGTH",
    # Payloads
    "Auth",
    "AuthPayload",
    "Context",
    "HelloPayload",
    "PluginInfo",
    "MessageDefinition",
    "HelloMessage",
    "AuthenticationMessage",
    "ContextMessage",
    "format_timestamp",
    "parse_timestamp",
    # Built-in message types
    "HELLO",
    "READY",
    "AUTHENTICATION",
    "CONTEXT",
]
