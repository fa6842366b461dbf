"""Adapters from application handlers to client callbacks.

Applications register handlers that take a payload, keyed either by a
message type string (payload passed through as decoded JSON) or by a
MessageDefinition (payload validated into its schema first). Payloads that
fail validation are logged and dropped.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import ValidationError
from pydantic_core import PydanticSerializationError

from .client import BridgeClient, EnvelopeCallback
from .protocol.envelope import Envelope, ReplyEnvelope
from .protocol.messages import MessageDefinition

logger = logging.getLogger(__name__)

HandlerKey = str | MessageDefinition[Any]
EventHandler = Callable[[Any], Awaitable[None]]
RequestHandler = Callable[[Any], Awaitable[Any]]


class _InvalidPayload(Exception):
    pass


def _decode(key: HandlerKey, envelope: Envelope) -> Any:
    if isinstance(key, MessageDefinition):
        try:
            return key.parse(envelope.payload)
        except ValidationError as e:
            logger.warning(f"Invalid {key.type} payload in {envelope.id}: {e}")
            raise _InvalidPayload from e
    return envelope.payload


def key_type(key: HandlerKey) -> str:
    """Message type a handler key refers to."""
    return key.type if isinstance(key, MessageDefinition) else key


def event_callback(key: HandlerKey, handler: EventHandler) -> EnvelopeCallback:
    """Wrap an event handler so it receives the (validated) payload."""

    async def callback(envelope: Envelope) -> None:
        try:
            payload = _decode(key, envelope)
        except _InvalidPayload:
            return
        await handler(payload)

    return callback


def send_result(client: BridgeClient, request: Envelope, result: Any) -> None:
    """Reply to `request` with `result`.

    A result that cannot be serialized is answered with ok=false.
    """
    try:
        client.send_reply(request, result)
    except (PydanticSerializationError, TypeError, ValueError) as e:
        logger.exception(f"Could not serialize reply to {request.type}")
        client.send_event(ReplyEnvelope.reply_to(request, ok=False, error=str(e)))


def request_callback(
    client: BridgeClient, key: HandlerKey, handler: RequestHandler
) -> EnvelopeCallback:
    """Wrap a request handler so its result is sent back as the reply.

    If the payload is invalid or the handler raises, the requester gets a
    reply with ok=false instead of waiting forever.
    """

    async def callback(envelope: Envelope) -> None:
        try:
            payload = _decode(key, envelope)
        except _InvalidPayload:
            client.send_event(ReplyEnvelope.reply_to(envelope, ok=False, error="invalid payload"))
            return

        try:
            result = await handler(payload)
        except Exception as e:
            logger.exception(f"Error in request handler for {envelope.type}")
            client.send_event(ReplyEnvelope.reply_to(envelope, ok=False, error=str(e)))
            return

        send_result(client, envelope, result)

    return callback


def register_handlers(
    client: BridgeClient,
    event_handlers: dict[HandlerKey, EventHandler] | None = None,
    request_handlers: dict[HandlerKey, RequestHandler] | None = None,
) -> None:
    """Register application event and request handlers on `client`."""
    for key, handler in (event_handlers or {}).items():
        client.on_event(key_type(key), event_callback(key, handler))
    for key, handler in (request_handlers or {}).items():
        client.on_event(key_type(key), request_callback(client, key, handler))
