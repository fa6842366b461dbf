"""Unit tests for the envelope model and wire parsing."""

import json

from pydantic import BaseModel

from source_bridge.protocol.envelope import (
    REQUEST_ID_ALPHABET,
    REQUEST_ID_LENGTH,
    Envelope,
    ReplyEnvelope,
    generate_request_id,
    parse_envelope,
)


class TestGenerateRequestId:
    """Test request id generation."""

    def test_length_and_alphabet(self):
        """Ids are 16 chars drawn from [0-9a-zA-Z]."""
        request_id = generate_request_id()

        assert len(request_id) == REQUEST_ID_LENGTH == 16
        assert set(request_id) <= set(REQUEST_ID_ALPHABET)
        assert len(REQUEST_ID_ALPHABET) == 62

    def test_ids_are_distinct(self):
        """Consecutive ids should not collide."""
        ids = {generate_request_id() for _ in range(1000)}

        assert len(ids) == 1000


class TestEnvelopeCreation:
    """Test Envelope construction and serialization."""

    def test_create_generates_id(self):
        """Envelope.create() assigns a fresh id."""
        first = Envelope.create("hello")
        second = Envelope.create("hello")

        assert first.type == "hello"
        assert len(first.id) == 16
        assert first.id != second.id
        assert first.payload is None
        assert first.is_reply() is False

    def test_to_json_omits_missing_payload(self):
        """An envelope without payload has only id and type on the wire."""
        envelope = Envelope(id="abc", type="ready")

        assert json.loads(envelope.to_json()) == {"id": "abc", "type": "ready"}

    def test_to_json_includes_payload(self):
        """Payload is serialized as JSON."""
        envelope = Envelope(id="abc", type="foo", payload={"value": 1, "items": [None, "x"]})

        assert json.loads(envelope.to_json()) == {
            "id": "abc",
            "type": "foo",
            "payload": {"value": 1, "items": [None, "x"]},
        }

    def test_to_json_serializes_models(self):
        """Pydantic payloads are converted to plain JSON."""

        class Foo(BaseModel):
            value: str

        envelope = Envelope(id="abc", type="foo", payload=Foo(value="bar"))

        assert json.loads(envelope.to_json())["payload"] == {"value": "bar"}


class TestReplyEnvelope:
    """Test reply construction."""

    def test_reply_to_correlates(self):
        """reply_to() links the reply to the request id."""
        request = Envelope(id="req_1", type="authentication")

        reply = ReplyEnvelope.reply_to(request, {"token": "T"})

        assert reply.in_reply_to == "req_1"
        assert reply.type == "authentication"
        assert reply.ok is True
        assert reply.payload == {"token": "T"}
        assert reply.id != request.id
        assert reply.is_reply() is True

    def test_reply_wire_shape(self):
        """Replies carry in_reply_to and ok on the wire."""
        reply = ReplyEnvelope(id="r", type="hello", in_reply_to="req_1", payload={"a": 1})

        assert json.loads(reply.to_json()) == {
            "id": "r",
            "type": "hello",
            "in_reply_to": "req_1",
            "ok": True,
            "payload": {"a": 1},
        }

    def test_error_reply_wire_shape(self):
        """Failed replies carry ok=false and the error."""
        request = Envelope(id="req_1", type="my")

        reply = ReplyEnvelope.reply_to(request, ok=False, error="boom")
        data = json.loads(reply.to_json())

        assert data["ok"] is False
        assert data["error"] == "boom"
        assert "payload" not in data


class TestParseEnvelope:
    """Test parsing of raw channel data."""

    def test_parse_event(self):
        """A valid event parses to an Envelope."""
        envelope = parse_envelope('{"id": "abc", "type": "foo", "payload": {"x": 1}}')

        assert isinstance(envelope, Envelope)
        assert not isinstance(envelope, ReplyEnvelope)
        assert envelope.id == "abc"
        assert envelope.type == "foo"
        assert envelope.payload == {"x": 1}

    def test_parse_reply(self):
        """An object with in_reply_to parses to a ReplyEnvelope."""
        envelope = parse_envelope(
            '{"id": "r", "type": "hello", "in_reply_to": "abc", "ok": true, "payload": null}'
        )

        assert isinstance(envelope, ReplyEnvelope)
        assert envelope.in_reply_to == "abc"
        assert envelope.ok is True

    def test_parse_bytes(self):
        """UTF-8 bytes are accepted."""
        envelope = parse_envelope(b'{"id": "abc", "type": "foo"}')

        assert envelope is not None
        assert envelope.type == "foo"

    def test_extra_keys_ignored(self):
        """Unknown keys do not invalidate an envelope."""
        envelope = parse_envelope('{"id": "abc", "type": "foo", "extra": 1}')

        assert envelope is not None

    def test_empty_in_reply_to_is_event(self):
        """An empty in_reply_to does not make a reply."""
        envelope = parse_envelope('{"id": "abc", "type": "foo", "in_reply_to": ""}')

        assert envelope is not None
        assert envelope.is_reply() is False

    def test_malformed_json(self):
        """Invalid JSON is not an envelope."""
        assert parse_envelope("not json") is None
        assert parse_envelope('{"id": "abc", "type": ') is None

    def test_non_object_json(self):
        """JSON values other than objects are not envelopes."""
        for data in ("[1, 2]", "42", "null", '"hello"', "true"):
            assert parse_envelope(data) is None

    def test_missing_or_empty_fields(self):
        """Objects without a non-empty id and type are not envelopes."""
        for data in (
            "{}",
            '{"type": "foo"}',
            '{"id": "abc"}',
            '{"id": "", "type": "foo"}',
            '{"id": "abc", "type": ""}',
            '{"id": 5, "type": "foo"}',
            '{"id": "abc", "type": ["foo"]}',
        ):
            assert parse_envelope(data) is None, data

    def test_non_string_data(self):
        """Structured (already-decoded) data is not accepted."""
        assert parse_envelope({"id": "abc", "type": "foo"}) is None
        assert parse_envelope(None) is None
        assert parse_envelope(42) is None

    def test_invalid_reply_fields(self):
        """Replies with malformed correlation fields are dropped."""
        assert parse_envelope('{"id": "r", "type": "t", "in_reply_to": 7}') is None
        assert parse_envelope('{"id": "r", "type": "t", "in_reply_to": "a", "ok": [1]}') is None

    def test_deeply_nested_json(self):
        """JSON nested past the decoder's recursion limit is dropped."""
        nested = "[" * 100000 + "]" * 100000

        assert parse_envelope(nested) is None
        assert parse_envelope('{"id": "abc", "type": "foo", "payload": ' + nested + "}") is None
