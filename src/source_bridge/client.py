"""Bridge client: one logical channel to one counterpart context.

Owns the pending-request table and the event-handler table, and is the only
component that touches the raw channel.

Routing:
- Replies (envelopes with in_reply_to) resolve the matching pending request
- Everything else is dispatched to the handlers registered for its type

Anything that is not a valid envelope from the configured counterpart is
dropped. The channel may carry arbitrary strings from a buggy or hostile
peer, so nothing received is ever raised to the caller.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from .errors import SessionDestroyedError
from .protocol.envelope import Envelope, ReplyEnvelope, parse_envelope
from .transport.base import WILDCARD_ORIGIN, MessageTarget, RawMessage

logger = logging.getLogger(__name__)

# Type for event callbacks
EnvelopeCallback = Callable[[Envelope], Awaitable[None]]


class BridgeClient:
    """Correlating message client over a window-like channel.

    Usage:
        client = BridgeClient(guest_window, host_window, "https://host.example")
        client.on_event("foo", handle_foo)
        reply = await client.send_request(Envelope.create("authentication"))
        client.close()
    """

    def __init__(
        self,
        window: MessageTarget,
        counterpart: MessageTarget,
        counterpart_origin: str,
        *,
        debug: bool = False,
    ) -> None:
        """Create a client and start listening on `window`.

        Args:
            window: The local context whose messages this client receives
            counterpart: The context this client talks to
            counterpart_origin: Exact origin the counterpart must present
            debug: Log every envelope sent and received at INFO level

        Raises:
            ValueError: If counterpart_origin is empty or the "*" wildcard
        """
        if not counterpart_origin or counterpart_origin == WILDCARD_ORIGIN:
            raise ValueError("counterpart_origin must be a concrete origin, not a wildcard")

        self._window = window
        self._counterpart = counterpart
        self._counterpart_origin = counterpart_origin
        self._debug = debug

        self._pending: dict[str, asyncio.Future[ReplyEnvelope]] = {}
        self._callbacks: dict[str, list[EnvelopeCallback]] = {}
        self._tasks: set[asyncio.Task[None]] = set()
        self._closed = False

        self._window.add_message_listener(self._on_message)

    @property
    def counterpart_origin(self) -> str:
        return self._counterpart_origin

    @property
    def closed(self) -> bool:
        """Check if the client has been closed."""
        return self._closed

    @property
    def pending_count(self) -> int:
        """Number of requests still waiting for a reply."""
        return len(self._pending)

    def send_event(self, envelope: Envelope) -> None:
        """Post an envelope to the counterpart without waiting."""
        self._trace(f"Sending {envelope.type} ({envelope.id})")
        self._counterpart.post_message(envelope.to_json(), self._counterpart_origin, self._window)

    async def send_request(self, envelope: Envelope) -> ReplyEnvelope:
        """Post an envelope and wait for the reply correlated to its id.

        There is no timeout at this layer; wrap the call in
        asyncio.wait_for() for a bounded wait.

        Raises:
            SessionDestroyedError: If the client is or becomes closed
            ValueError: If a request with the same id is already pending
        """
        if self._closed:
            raise SessionDestroyedError(f"Cannot send {envelope.type} request: client is closed")
        if envelope.id in self._pending:
            raise ValueError(f"Request {envelope.id} is already pending")

        future: asyncio.Future[ReplyEnvelope] = asyncio.get_running_loop().create_future()
        self._pending[envelope.id] = future
        try:
            self.send_event(envelope)
            return await future
        finally:
            # The entry is gone already if the reply arrived or close() ran
            if self._pending.get(envelope.id) is future:
                del self._pending[envelope.id]

    def send_reply(self, request: Envelope, payload: object = None) -> None:
        """Answer `request` with a successful reply."""
        self.send_event(ReplyEnvelope.reply_to(request, payload))

    def on_event(self, event_type: str, callback: EnvelopeCallback) -> Callable[[], None]:
        """Register a callback for non-reply envelopes of `event_type`.

        Callbacks for the same type run in registration order.

        Returns:
            Unsubscribe function
        """
        self._callbacks.setdefault(event_type, []).append(callback)

        def unsubscribe() -> None:
            callbacks = self._callbacks.get(event_type)
            if callbacks and callback in callbacks:
                callbacks.remove(callback)

        return unsubscribe

    def close(self) -> None:
        """Stop receiving and fail every pending request. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self._window.remove_message_listener(self._on_message)

        for request_id, future in self._pending.items():
            if not future.done():
                future.set_exception(
                    SessionDestroyedError(f"Client closed while request {request_id} was pending")
                )
        self._pending.clear()
        logger.debug(f"Bridge client for {self._counterpart_origin} closed")

    async def drain(self) -> None:
        """Wait until all in-flight handler dispatches have finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _on_message(self, message: RawMessage) -> None:
        """Listener installed on the local window."""
        if self._closed:
            return

        if message.source is not self._counterpart:
            logger.debug("Ignoring message from a context other than the counterpart")
            return

        if message.origin != self._counterpart_origin:
            logger.debug(
                f"Ignoring message from origin {message.origin} "
                f"(expected {self._counterpart_origin})"
            )
            return

        envelope = parse_envelope(message.data)
        if envelope is None:
            return

        if isinstance(envelope, ReplyEnvelope):
            self._handle_reply(envelope)
            return

        task = asyncio.get_running_loop().create_task(self._dispatch(envelope))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _handle_reply(self, reply: ReplyEnvelope) -> None:
        self._trace(f"Received reply to {reply.in_reply_to}")
        future = self._pending.pop(reply.in_reply_to, None)
        if future is None:
            logger.warning(f"No pending request for reply to {reply.in_reply_to}")
            return
        if not future.done():
            future.set_result(reply)

    async def _dispatch(self, envelope: Envelope) -> None:
        self._trace(f"Received {envelope.type} ({envelope.id})")
        # Copy so handlers can register or unsubscribe during dispatch
        callbacks = list(self._callbacks.get(envelope.type, []))
        if not callbacks:
            logger.debug(f"No handler registered for {envelope.type}")
            return

        for callback in callbacks:
            if self._closed:
                return
            try:
                await callback(envelope)
            except Exception:
                logger.exception(f"Error in handler for {envelope.type}")

    def _trace(self, message: str) -> None:
        if self._debug:
            logger.info(f"[SourceBridge] {message}")
        else:
            logger.debug(f"[SourceBridge] {message}")
