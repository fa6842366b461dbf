"""Integration tests: a real HostSession and GuestSession talking over memory windows."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from pydantic import BaseModel

from source_bridge import (
    Auth,
    BridgeErrorCause,
    Context,
    GuestConfig,
    HostConfig,
    HostState,
    MessageDefinition,
    PluginInfo,
    create_guest_session,
    create_host_session,
    create_window_pair,
)

pytestmark = pytest.mark.integration

HOST_CONFIG = HostConfig(hello_timeout=0.2, ready_timeout=0.3)


class FooPayload(BaseModel):
    value: str


Foo = MessageDefinition("foo", FooPayload)


def hello_payload(member="m-1"):
    return {
        "context": {"member": member},
        "plugin_info": {"application": "app", "view_key": "main", "surface": "panel"},
    }


@pytest.fixture
def pair(auth):
    """A host and a guest on their own window pair."""
    host_window, guest_window = create_window_pair()
    on_error = MagicMock()
    on_ready = AsyncMock()

    async def on_hello():
        return hello_payload()

    host = create_host_session(
        host_window,
        guest_window,
        guest_window.origin,
        HOST_CONFIG,
        get_token=AsyncMock(return_value=auth),
        on_error=on_error,
        on_hello=on_hello,
        on_ready=on_ready,
    )
    guest = create_guest_session(guest_window, host_window, host_window.origin)
    yield host, guest, on_error, on_ready
    host.destroy()
    guest.destroy()


class TestHandshake:
    """Test the full hello/ready handshake."""

    @pytest.mark.asyncio
    async def test_full_round_trip(self, pair, auth, settle):
        host, guest, on_error, on_ready = pair
        host.boot()

        hello = await guest.init()
        await settle()

        assert hello.context == Context(member="m-1")
        assert guest.info() == PluginInfo(application="app", view_key="main", surface="panel")
        on_ready.assert_awaited_once()
        assert host.state == HostState.READY

        token = await guest.current_token()
        assert token == auth
        assert token.expires_at == auth.expires_at

        await asyncio.sleep(0.4)
        on_error.assert_not_called()

    @pytest.mark.asyncio
    async def test_guest_without_ready(self, auth):
        host_window, guest_window = create_window_pair()
        on_error = MagicMock()
        host = create_host_session(
            host_window,
            guest_window,
            guest_window.origin,
            HOST_CONFIG,
            get_token=AsyncMock(return_value=auth),
            on_error=on_error,
        )
        guest = create_guest_session(
            guest_window, host_window, host_window.origin, GuestConfig(auto_ready=False)
        )
        host.boot()

        await guest.init()
        await asyncio.sleep(0.4)

        assert [call.args[0].cause for call in on_error.call_args_list] == [
            BridgeErrorCause.NOT_READY
        ]
        assert host.state == HostState.ERRORED
        host.destroy()
        guest.destroy()

    @pytest.mark.asyncio
    async def test_context_pushed_by_host(self, pair, settle):
        host, guest, _, _ = pair
        host.boot()
        await guest.init()
        updates = []

        async def on_context(context):
            updates.append(context.member)

        await guest.on_context_update(on_context)
        host.send_event("context", {"member": "m-2"})
        await settle()

        assert updates == ["m-1", "m-2"]
        assert guest.current_context().member == "m-2"

    @pytest.mark.asyncio
    async def test_token_pushed_by_host(self, pair, auth, settle):
        host, guest, _, _ = pair
        host.boot()
        await guest.init()
        fresh = Auth(token="T2", expires_at=auth.expires_at)

        host.send_event("authentication", fresh.to_payload())
        await settle()

        assert guest.cached_token() == fresh


class TestCustomMessages:
    """Test application messages in both directions."""

    @pytest.mark.asyncio
    async def test_guest_request_to_host_handler(self, auth):
        host_window, guest_window = create_window_pair()

        async def lookup(payload: FooPayload):
            return {"found": payload.value.upper()}

        host = create_host_session(
            host_window,
            guest_window,
            guest_window.origin,
            HOST_CONFIG,
            get_token=AsyncMock(return_value=auth),
            on_error=MagicMock(),
            request_handlers={Foo: lookup},
        )
        guest = create_guest_session(guest_window, host_window, host_window.origin)

        result = await guest.send_request("foo", {"value": "abc"})

        assert result == {"found": "ABC"}
        host.destroy()
        guest.destroy()

    @pytest.mark.asyncio
    async def test_host_event_to_guest_handler(self, pair, settle):
        host, guest, _, _ = pair
        handler = AsyncMock()
        host.boot()
        await guest.init(event_handlers={Foo: handler})

        host.send_event("foo", {"value": "x"})
        await settle()

        handler.assert_awaited_once_with(FooPayload(value="x"))

    @pytest.mark.asyncio
    async def test_guest_event_to_host_handler(self, auth, settle):
        host_window, guest_window = create_window_pair()
        handler = AsyncMock()
        host = create_host_session(
            host_window,
            guest_window,
            guest_window.origin,
            HOST_CONFIG,
            get_token=AsyncMock(return_value=auth),
            on_error=MagicMock(),
            event_handlers={"telemetry": handler},
        )
        guest = create_guest_session(guest_window, host_window, host_window.origin)

        guest.send_event("telemetry", {"clicks": 3})
        await settle()

        handler.assert_awaited_once_with({"clicks": 3})
        host.destroy()
        guest.destroy()


class TestIsolation:
    """Test that sessions only hear their own counterpart."""

    @pytest.mark.asyncio
    async def test_two_guests_are_independent(self, auth, settle):
        sessions = []
        for i in range(2):
            host_window, guest_window = create_window_pair(
                f"https://host{i}.example", f"https://guest{i}.example"
            )

            async def on_hello(member=f"member-{i}"):
                return hello_payload(member)

            host = create_host_session(
                host_window,
                guest_window,
                guest_window.origin,
                HOST_CONFIG,
                get_token=AsyncMock(return_value=auth),
                on_error=MagicMock(),
                on_hello=on_hello,
            )
            guest = create_guest_session(guest_window, host_window, host_window.origin)
            host.boot()
            sessions.append((host, guest))

        await asyncio.gather(*(guest.init() for _, guest in sessions))
        sessions[0][0].send_event("context", {"member": "changed"})
        await settle()

        assert sessions[0][1].current_context().member == "changed"
        assert sessions[1][1].current_context().member == "member-1"
        for host, guest in sessions:
            host.destroy()
            guest.destroy()

    @pytest.mark.asyncio
    async def test_guest_from_wrong_origin_ignored(self, auth, settle):
        host_window, guest_window = create_window_pair()
        on_hello = AsyncMock(return_value=None)
        host = create_host_session(
            host_window,
            guest_window,
            "https://expected.example",
            HOST_CONFIG,
            get_token=AsyncMock(return_value=auth),
            on_error=MagicMock(),
            on_hello=on_hello,
        )
        guest = create_guest_session(guest_window, host_window, host_window.origin)

        with pytest.raises(TimeoutError):
            await asyncio.wait_for(guest.init(), timeout=0.1)

        on_hello.assert_not_awaited()
        host.destroy()
        guest.destroy()
        await settle()
