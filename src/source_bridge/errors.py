"""Error taxonomy shared by the guest and host sessions.

Failures visible to callers:
- BridgeError: a handshake timer fired on the host (guest never said hello,
  or never said ready). Delivered to the host's on_error callback.
- NotInitializedError: a synchronous guest accessor was called before the
  handshake reply arrived (HandshakeDataMissingError when the reply
  arrived without that value).
- SessionDestroyedError: a request could not complete because the client
  was closed.
- RequestFailedError: the counterpart's request handler failed and it
  replied with ok=false.

Malformed input and failing application handlers are never raised; they
are logged and contained by the client.
"""

from __future__ import annotations

from enum import Enum


class BridgeErrorCause(str, Enum):
    """Why a guest failed to load."""

    NOT_STARTED = "not_started"  # no hello within hello_timeout
    NOT_READY = "not_ready"  # no ready within ready_timeout


class BridgeError(Exception):
    """Raised (via on_error) when the guest misses a handshake milestone."""

    def __init__(self, cause: BridgeErrorCause) -> None:
        super().__init__(f"Loading Source Bridge guest failed ({cause.value})")
        self.cause = cause


class NotInitializedError(RuntimeError):
    """Raised by guest accessors called before init() completed."""

    def __init__(self, accessor: str, message: str | None = None) -> None:
        super().__init__(
            message
            or f"SourceBridge is not yet initialized. Please call `init()` before {accessor}()"
        )
        self.accessor = accessor


class HandshakeDataMissingError(NotInitializedError):
    """Raised by guest accessors when the host's hello reply left the value out."""

    def __init__(self, accessor: str) -> None:
        super().__init__(
            accessor, f"SourceBridge host sent no data for {accessor}() in the handshake"
        )


class SessionDestroyedError(ConnectionError):
    """Raised for requests that are pending or issued after teardown."""

    pass


class RequestFailedError(Exception):
    """Raised when the counterpart answered a request with ok=false."""

    def __init__(self, request_type: str, error: object = None) -> None:
        super().__init__(f"Request {request_type} failed: {error}")
        self.request_type = request_type
        self.error = error
