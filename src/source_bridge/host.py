"""Host side of the bridge.

The host embeds exactly one guest per session and supervises its startup:
after boot() the guest has `hello_timeout` seconds to say hello and
`ready_timeout` seconds to say ready. The two timers are independent;
each is cancelled only by its own milestone. A timer that fires reports a
BridgeError to `on_error` once. The session does not tear itself down;
call destroy() from on_error if that is wanted.

State machine:
    CREATED -> BOOTED -> READY | ERRORED
    any state -> DESTROYED (destroy())
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

from .client import BridgeClient
from .config import HostConfig
from .errors import BridgeError, BridgeErrorCause, RequestFailedError, SessionDestroyedError
from .handlers import EventHandler, HandlerKey, RequestHandler, register_handlers, send_result
from .protocol.envelope import Envelope, ReplyEnvelope
from .protocol.messages import AUTHENTICATION, HELLO, READY, Auth
from .transport.base import MessageTarget

logger = logging.getLogger(__name__)

GetTokenFn = Callable[[], Awaitable[Auth]]
ErrorCallback = Callable[[BridgeError], Any]
HelloCallback = Callable[[], Awaitable[Any]]
ReadyCallback = Callable[[], Awaitable[None]]


class HostState(str, Enum):
    """Guest lifecycle as seen by the host."""

    CREATED = "created"
    BOOTED = "booted"
    READY = "ready"
    ERRORED = "errored"
    DESTROYED = "destroyed"


class HostSession:
    """Host-side session supervising one guest.

    Usage:
        host = create_host_session(
            host_window,
            guest_window,
            "https://guest.example",
            HostConfig(hello_timeout=1.0, ready_timeout=2.0),
            get_token=fetch_token,
            on_error=lambda error: host.destroy(),
        )
        host.boot()
    """

    def __init__(
        self,
        client: BridgeClient,
        config: HostConfig | None = None,
        *,
        get_token: GetTokenFn,
        on_error: ErrorCallback,
        on_hello: HelloCallback | None = None,
        on_ready: ReadyCallback | None = None,
        event_handlers: dict[HandlerKey, EventHandler] | None = None,
        request_handlers: dict[HandlerKey, RequestHandler] | None = None,
    ) -> None:
        """Wire the built-in and application handlers onto `client`.

        Args:
            client: Client connected to the guest
            config: Timeouts (validated here)
            get_token: Provides the credential for `authentication` requests
            on_error: Called with a BridgeError when a handshake timer fires
            on_hello: Computes the hello reply payload
            on_ready: Called when the guest says ready
            event_handlers: Handlers for guest events, called with the payload
            request_handlers: Handlers for guest requests; the return value
                is sent back as the reply payload

        Raises:
            ValueError: If the configured timeouts are not positive
        """
        self._config = config or HostConfig()
        self._config.validate()

        self._client = client
        self._get_token = get_token
        self._on_error = on_error
        self._on_hello = on_hello
        self._on_ready = on_ready

        self._state = HostState.CREATED
        self._booted = False
        self._hello_received = False
        self._hello_timer: asyncio.TimerHandle | None = None
        self._ready_timer: asyncio.TimerHandle | None = None
        self._error_tasks: set[asyncio.Task[Any]] = set()

        self._client.on_event(AUTHENTICATION, self._send_auth_response)
        self._client.on_event(HELLO, self._handle_hello)
        self._client.on_event(READY, self._handle_ready)
        register_handlers(self._client, event_handlers, request_handlers)

    @property
    def client(self) -> BridgeClient:
        return self._client

    @property
    def config(self) -> HostConfig:
        return self._config

    @property
    def state(self) -> HostState:
        return self._state

    @property
    def booted(self) -> bool:
        return self._booted

    @property
    def hello_received(self) -> bool:
        return self._hello_received

    def boot(self) -> None:
        """Start the hello and ready timers. Calling again is a no-op.

        Raises:
            SessionDestroyedError: If the session was destroyed
        """
        if self._state == HostState.DESTROYED:
            raise SessionDestroyedError("Cannot boot a destroyed host session")
        if self._booted:
            return

        self._booted = True
        self._state = HostState.BOOTED

        loop = asyncio.get_running_loop()
        self._hello_timer = loop.call_later(
            self._config.hello_timeout, self._emit_error, BridgeErrorCause.NOT_STARTED
        )
        self._ready_timer = loop.call_later(
            self._config.ready_timeout, self._emit_error, BridgeErrorCause.NOT_READY
        )
        self._debug(
            f"Booted (hello_timeout={self._config.hello_timeout}s, "
            f"ready_timeout={self._config.ready_timeout}s)"
        )

    def destroy(self) -> None:
        """Close the client and cancel pending timers. Idempotent."""
        if self._state == HostState.DESTROYED:
            return

        self._client.close()
        self._cancel_hello_timer()
        self._cancel_ready_timer()
        self._booted = False
        self._state = HostState.DESTROYED
        self._debug("Destroyed")

    def send_event(self, event_type: str, payload: Any = None) -> None:
        """Send an event to the guest. Legal in any state."""
        self._client.send_event(Envelope.create(event_type, payload))

    async def send_request(self, request_type: str, payload: Any = None) -> Any:
        """Send a request to the guest and return the reply payload.

        Raises:
            RequestFailedError: If the guest replied with ok=false
            SessionDestroyedError: If the session is destroyed first
        """
        reply = await self._client.send_request(Envelope.create(request_type, payload))
        if not reply.ok:
            raise RequestFailedError(reply.type, reply.error)
        return reply.payload

    def _emit_error(self, cause: BridgeErrorCause) -> None:
        if cause == BridgeErrorCause.NOT_STARTED:
            self._hello_timer = None
        else:
            self._ready_timer = None

        if self._state == HostState.DESTROYED:
            return

        logger.warning(f"Guest failed to load: {cause.value}")
        self._state = HostState.ERRORED
        try:
            result = self._on_error(BridgeError(cause))
        except Exception:
            logger.exception("Error in on_error callback")
            return

        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._error_tasks.add(task)
            task.add_done_callback(self._on_error_task_done)

    def _on_error_task_done(self, task: asyncio.Task[Any]) -> None:
        self._error_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Error in on_error callback", exc_info=task.exception())

    async def _send_auth_response(self, request: Envelope) -> None:
        try:
            auth = await self._get_token()
        except Exception as e:
            logger.exception("Token provider failed")
            self._client.send_event(ReplyEnvelope.reply_to(request, ok=False, error=str(e)))
            return
        send_result(self._client, request, auth.to_payload())

    async def _handle_hello(self, request: Envelope) -> None:
        self._debug("Received hello, returning handshake response")
        self._hello_received = True
        self._cancel_hello_timer()

        payload = None
        if self._on_hello:
            try:
                payload = await self._on_hello()
            except Exception as e:
                logger.exception("Error in on_hello callback")
                self._client.send_event(ReplyEnvelope.reply_to(request, ok=False, error=str(e)))
                return
        send_result(self._client, request, payload)

    async def _handle_ready(self, _request: Envelope) -> None:
        self._debug("Received ready")
        self._cancel_ready_timer()
        if self._state != HostState.DESTROYED:
            self._state = HostState.READY

        if self._on_ready:
            await self._on_ready()

    def _cancel_hello_timer(self) -> None:
        if self._hello_timer is not None:
            self._hello_timer.cancel()
            self._hello_timer = None

    def _cancel_ready_timer(self) -> None:
        if self._ready_timer is not None:
            self._ready_timer.cancel()
            self._ready_timer = None

    def _debug(self, message: str) -> None:
        if self._config.debug:
            logger.info(f"[BridgeHost] {message}")
        else:
            logger.debug(f"[BridgeHost] {message}")


def create_host_session(
    window: MessageTarget,
    guest: MessageTarget,
    guest_origin: str,
    config: HostConfig | None = None,
    **options: Any,
) -> HostSession:
    """Create a host session supervising `guest`.

    Args:
        window: The host's own window (where guest messages arrive)
        guest: The embedded guest window
        guest_origin: Origin the guest must present
        config: Timeouts and debug flag
        **options: Callbacks and handlers passed to HostSession

    Returns:
        HostSession with its own BridgeClient
    """
    config = config or HostConfig()
    config.validate()
    client = BridgeClient(window, guest, guest_origin, debug=config.debug)
    return HostSession(client, config, **options)
