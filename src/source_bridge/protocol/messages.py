"""Typed payloads carried inside envelopes.

Wire payloads use snake_case JSON (`expires_at`, `view_key`); the session
API exposes normalized models (`Auth.expires_at` as a datetime).

MessageDefinition binds a message type to a pydantic schema so that
handlers registered with it receive a validated model instead of raw JSON.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict

T = TypeVar("T", bound=BaseModel)

# Built-in message types
HELLO = "hello"
READY = "ready"
AUTHENTICATION = "authentication"
CONTEXT = "context"


@dataclass(frozen=True)
class MessageDefinition(Generic[T]):
    """Typed message definition.

    Usage:
        Foo = MessageDefinition("foo", FooPayload)
        guest.init(event_handlers={Foo: handle_foo})  # handle_foo(FooPayload)
    """

    type: str
    schema: type[T]

    def parse(self, payload: Any) -> T:
        """Validate a raw payload against the schema.

        Raises:
            pydantic.ValidationError: If the payload does not match
        """
        return self.schema.model_validate(payload if payload is not None else {})


def format_timestamp(value: datetime) -> str:
    """Format a datetime as ISO-8601, using 'Z' for UTC."""
    return value.isoformat().replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp (accepts a trailing 'Z')."""
    return datetime.fromisoformat(value)


class AuthPayload(BaseModel):
    """Credential as sent on the wire."""

    token: str
    expires_at: str


class Auth(BaseModel):
    """Credential as exposed by the session API."""

    token: str
    expires_at: datetime

    @classmethod
    def from_payload(cls, payload: AuthPayload) -> Auth:
        return cls(token=payload.token, expires_at=parse_timestamp(payload.expires_at))

    def to_payload(self) -> AuthPayload:
        return AuthPayload(token=self.token, expires_at=format_timestamp(self.expires_at))

    def is_expired(self, now: datetime | None = None) -> bool:
        """Check expiry against `now` (defaults to the current UTC time)."""
        now = now or datetime.now(UTC)
        if self.expires_at.tzinfo is None:
            now = now.replace(tzinfo=None)
        return self.expires_at <= now


class Context(BaseModel):
    """Context pushed from host to guest (handshake and `context` events)."""

    model_config = ConfigDict(extra="allow")

    member: str | None = None


class PluginInfo(BaseModel):
    """Where the guest is embedded."""

    application: str
    view_key: str
    surface: str


class HelloPayload(BaseModel):
    """Host reply to the guest's hello. Every part is optional."""

    model_config = ConfigDict(extra="allow")

    context: Context | None = None
    auth: AuthPayload | None = None
    plugin_info: PluginInfo | None = None


HelloMessage = MessageDefinition(HELLO, HelloPayload)
AuthenticationMessage = MessageDefinition(AUTHENTICATION, AuthPayload)
ContextMessage = MessageDefinition(CONTEXT, Context)
