"""Guest side of the bridge.

The guest is the embedded context. It starts the handshake with a `hello`
request, installs its event handlers once the host answers, and announces
`ready` when it is able to serve.

State machine:
    UNINITIALIZED -> INITIALIZING -> INITIALIZED

Synchronous accessors (current_context, info, cached_token) raise
NotInitializedError until the handshake reply has been received.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

from pydantic import ValidationError

from .client import BridgeClient
from .config import GuestConfig
from .errors import HandshakeDataMissingError, NotInitializedError, RequestFailedError
from .handlers import EventHandler, HandlerKey, register_handlers
from .protocol.envelope import Envelope, ReplyEnvelope
from .protocol.messages import (
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
    PluginInfo,
)
from .transport.base import MessageTarget

logger = logging.getLogger(__name__)

ContextCallback = Callable[[Context], Awaitable[None]]


class GuestState(str, Enum):
    """Handshake state machine."""

    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    INITIALIZED = "initialized"


class GuestSession:
    """Guest-side session over one BridgeClient.

    Usage:
        guest = create_guest_session(guest_window, host_window, "https://host.example")
        hello = await guest.init(event_handlers={"foo": handle_foo})
        context = guest.current_context()
        auth = await guest.current_token()
    """

    def __init__(self, client: BridgeClient, config: GuestConfig | None = None) -> None:
        self._client = client
        self._config = config or GuestConfig()
        self._state = GuestState.UNINITIALIZED
        self._init_task: asyncio.Task[HelloPayload] | None = None
        self._init_args: tuple[Any, Any] | None = None
        self._hello: HelloPayload | None = None

        self._auth: Auth | None = None
        self._context: Context | None = None
        self._plugin_info: PluginInfo | None = None
        self._context_callbacks: list[ContextCallback] = []

    @property
    def client(self) -> BridgeClient:
        return self._client

    @property
    def state(self) -> GuestState:
        return self._state

    @property
    def initialized(self) -> bool:
        return self._state == GuestState.INITIALIZED

    async def init(
        self,
        event_handlers: dict[HandlerKey, EventHandler] | None = None,
        *,
        auto_ready: bool | None = None,
    ) -> HelloPayload:
        """Perform the handshake with the host.

        Waits for the hello reply without a timeout; the host's own hello
        timer is what gives up on a guest that never gets through.

        Args:
            event_handlers: Handlers installed once the host has answered,
                keyed by message type or MessageDefinition
            auto_ready: Send `ready` right after the handshake
                (defaults to GuestConfig.auto_ready)

        Returns:
            The host's hello payload
        """
        if self._state == GuestState.INITIALIZED and self._hello is not None:
            return self._hello

        if self._init_task is None:
            self._state = GuestState.INITIALIZING
            self._init_args = (event_handlers, auto_ready)
            ready = self._config.auto_ready if auto_ready is None else auto_ready
            self._init_task = asyncio.get_running_loop().create_task(
                self._handshake(event_handlers, ready)
            )
        elif (event_handlers, auto_ready) != self._init_args:
            logger.warning(
                "init() already in progress; ignoring the event_handlers and auto_ready "
                "of this call"
            )

        return await asyncio.shield(self._init_task)

    async def _handshake(
        self,
        event_handlers: dict[HandlerKey, EventHandler] | None,
        auto_ready: bool,
    ) -> HelloPayload:
        try:
            reply = await self._client.send_request(Envelope.create(HELLO))
            _check_reply(reply)
        except BaseException:
            self._state = GuestState.UNINITIALIZED
            self._init_task = None
            raise

        hello = self._parse_hello(reply.payload)
        self._hello = hello
        if hello.auth is not None:
            self._handle_new_auth(hello.auth)
        if hello.plugin_info is not None:
            self._plugin_info = hello.plugin_info

        register_handlers(self._client, event_handlers)
        self._client.on_event(CONTEXT, self._on_context_event)
        self._client.on_event(AUTHENTICATION, self._on_authentication_event)

        self._state = GuestState.INITIALIZED
        logger.debug("Handshake complete")

        if auto_ready:
            self.ready()

        if hello.context is not None:
            await self._handle_new_context(hello.context)

        return hello

    def send_event(self, event_type: str, payload: Any = None) -> None:
        """Send an event to the host. Legal in any state."""
        self._client.send_event(Envelope.create(event_type, payload))

    async def send_request(self, request_type: str, payload: Any = None) -> Any:
        """Send a request to the host and return the reply payload.

        Raises:
            RequestFailedError: If the host replied with ok=false
            SessionDestroyedError: If the session is destroyed first
        """
        reply = await self._client.send_request(Envelope.create(request_type, payload))
        _check_reply(reply)
        return reply.payload

    def ready(self) -> None:
        """Tell the host the guest is ready. May be called repeatedly."""
        self.send_event(READY)

    async def current_token(self) -> Auth:
        """Fetch a fresh credential from the host.

        Always a new round trip: a cached token may have expired while the
        guest was suspended.
        """
        payload = await self.send_request(AUTHENTICATION)
        auth = Auth.from_payload(AuthenticationMessage.parse(payload))
        self._auth = auth
        return auth

    def cached_token(self) -> Auth:
        """Last credential received from the host, without a round trip."""
        if self._auth is None:
            raise self._missing("cached_token")
        return self._auth

    def current_context(self) -> Context:
        """Context received in the handshake or the latest context event."""
        if self._context is None:
            raise self._missing("current_context")
        return self._context

    def info(self) -> PluginInfo:
        """Where this guest is embedded, as reported in the handshake."""
        if self._plugin_info is None:
            raise self._missing("info")
        return self._plugin_info

    async def on_context_update(self, callback: ContextCallback) -> None:
        """Register a context callback.

        If a context has already been received the callback is called
        immediately, so registering after init() does not miss it.
        """
        self._context_callbacks.append(callback)
        if self._context is not None:
            await callback(self._context)

    def destroy(self) -> None:
        """Close the underlying client. Idempotent."""
        self._client.close()

    def _missing(self, accessor: str) -> NotInitializedError:
        if self.initialized:
            logger.error(f"host sent no data for {accessor}() in the handshake")
            return HandshakeDataMissingError(accessor)
        logger.error(f"called {accessor}() before init()")
        return NotInitializedError(accessor)

    def _parse_hello(self, payload: Any) -> HelloPayload:
        if payload is None:
            return HelloPayload()
        try:
            return HelloMessage.parse(payload)
        except ValidationError as e:
            logger.warning(f"Ignoring malformed hello payload: {e}")
            return HelloPayload()

    async def _on_context_event(self, envelope: Envelope) -> None:
        try:
            context = ContextMessage.parse(envelope.payload)
        except ValidationError as e:
            logger.warning(f"Ignoring malformed context event: {e}")
            return
        await self._handle_new_context(context)

    async def _on_authentication_event(self, envelope: Envelope) -> None:
        try:
            payload = AuthenticationMessage.parse(envelope.payload)
        except ValidationError as e:
            logger.error(f"Could not parse new application token: {e}")
            return
        self._handle_new_auth(payload)

    def _handle_new_auth(self, payload: AuthPayload) -> None:
        logger.debug("Handling new application token")
        if not payload.token or not payload.expires_at:
            logger.error("Could not parse new application token")
            return
        try:
            self._auth = Auth.from_payload(payload)
        except ValueError as e:
            logger.error(f"Could not parse token expiry {payload.expires_at!r}: {e}")

    async def _handle_new_context(self, context: Context) -> None:
        logger.debug(f"Handling new context: {context}")
        self._context = context
        results = await asyncio.gather(
            *(callback(context) for callback in list(self._context_callbacks)),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, Exception):
                logger.error("Error in context callback", exc_info=result)


def _check_reply(reply: ReplyEnvelope) -> None:
    if not reply.ok:
        raise RequestFailedError(reply.type, reply.error)


def create_guest_session(
    window: MessageTarget,
    host: MessageTarget,
    host_origin: str,
    config: GuestConfig | None = None,
) -> GuestSession:
    """Create a guest session talking to `host`.

    Args:
        window: The guest's own window (where host messages arrive)
        host: The embedding window
        host_origin: Origin the host must present
        config: Guest configuration (defaults from GuestConfig())

    Returns:
        GuestSession with its own BridgeClient
    """
    config = config or GuestConfig()
    client = BridgeClient(window, host, host_origin, debug=config.debug)
    return GuestSession(client, config)
