"""Envelope definitions for the protocol layer.

Every message on the wire is an envelope:
    {"id": "<opaque>", "type": "<name>", "payload": <any>}

Replies additionally carry correlation fields:
    {"id": "...", "type": "...", "in_reply_to": "<request id>", "ok": true, "payload": ...}

A request is an ordinary envelope whose type the receiver is expected to
answer. Correlation is done purely on `in_reply_to`.
"""

from __future__ import annotations

import json
import logging
import secrets
import string
from typing import Any

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

logger = logging.getLogger(__name__)

REQUEST_ID_LENGTH = 16
REQUEST_ID_ALPHABET = string.digits + string.ascii_lowercase + string.ascii_uppercase

_payload_adapter: TypeAdapter[Any] = TypeAdapter(Any)


def generate_request_id() -> str:
    """Generate a 16 character id from [0-9a-zA-Z]."""
    return "".join(secrets.choice(REQUEST_ID_ALPHABET) for _ in range(REQUEST_ID_LENGTH))


class Envelope(BaseModel):
    """An event or request.

    Example:
        {
            "id": "k3Jd92LmQp0aZx7T",
            "type": "hello"
        }
    """

    id: str = Field(default_factory=generate_request_id, min_length=1)
    type: str = Field(min_length=1)
    payload: Any = None

    def is_reply(self) -> bool:
        """Check if this envelope answers another one."""
        return False

    def to_wire(self) -> dict[str, Any]:
        """Convert to the JSON-compatible wire shape."""
        data: dict[str, Any] = {"id": self.id, "type": self.type}
        if self.payload is not None:
            data["payload"] = _payload_adapter.dump_python(self.payload, mode="json")
        return data

    def to_json(self) -> str:
        """Serialize to the wire string."""
        return json.dumps(self.to_wire(), separators=(",", ":"))

    @classmethod
    def create(cls, event_type: str, payload: Any = None) -> Envelope:
        """Factory method for creating envelopes with a fresh id."""
        return cls(type=event_type, payload=payload)


class ReplyEnvelope(Envelope):
    """An envelope answering a prior request.

    Example:
        {
            "id": "Qm81bXcA0dPz4LkE",
            "type": "authentication",
            "in_reply_to": "k3Jd92LmQp0aZx7T",
            "ok": true,
            "payload": {"token": "T", "expires_at": "2024-01-15T10:30:00Z"}
        }
    """

    in_reply_to: str = Field(min_length=1)
    ok: bool = True
    error: Any = None

    def is_reply(self) -> bool:
        return True

    def to_wire(self) -> dict[str, Any]:
        data = super().to_wire()
        data["in_reply_to"] = self.in_reply_to
        data["ok"] = self.ok
        if self.error is not None:
            data["error"] = _payload_adapter.dump_python(self.error, mode="json")
        return data

    @classmethod
    def reply_to(
        cls,
        request: Envelope,
        payload: Any = None,
        *,
        ok: bool = True,
        error: Any = None,
    ) -> ReplyEnvelope:
        """Create a reply correlated to `request`."""
        return cls(
            type=request.type,
            payload=payload,
            in_reply_to=request.id,
            ok=ok,
            error=error,
        )


def parse_envelope(data: Any) -> Envelope | ReplyEnvelope | None:
    """Parse a raw channel payload into an envelope.

    Returns None for anything that is not an envelope: non-string data,
    invalid or too deeply nested JSON, JSON that is not an object, or an
    object without a non-empty string `id` and `type`.
    """
    if isinstance(data, bytes | bytearray):
        try:
            data = data.decode("utf-8")
        except UnicodeDecodeError:
            logger.debug("Dropping non-UTF-8 message")
            return None

    if not isinstance(data, str):
        logger.debug(f"Dropping non-string message of type {type(data).__name__}")
        return None

    try:
        parsed = json.loads(data)
    except (ValueError, RecursionError) as e:
        logger.debug(f"Dropping non-JSON message: {e} (data: {data[:50]})")
        return None

    if not isinstance(parsed, dict):
        logger.debug(f"Dropping non-object message: {data[:50]}")
        return None

    for key in ("id", "type"):
        value = parsed.get(key)
        if not isinstance(value, str) or not value:
            logger.debug(f"Dropping non-envelope message without '{key}': {data[:50]}")
            return None

    in_reply_to = parsed.get("in_reply_to")
    model: type[Envelope] = Envelope
    if in_reply_to:
        if not isinstance(in_reply_to, str):
            logger.debug(f"Dropping reply with non-string 'in_reply_to': {data[:50]}")
            return None
        model = ReplyEnvelope

    try:
        return model.model_validate(parsed)
    except (ValidationError, RecursionError) as e:
        logger.debug(f"Dropping invalid envelope: {e}")
        return None
