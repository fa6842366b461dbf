"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime

import pytest

from source_bridge.client import BridgeClient
from source_bridge.protocol.messages import Auth
from source_bridge.transport.memory import MemoryWindow, create_window_pair

HOST_ORIGIN = "https://host.example"
GUEST_ORIGIN = "https://guest.example"

TOKEN_EXPIRY = datetime(2030, 1, 15, 10, 30, 0, 123000, tzinfo=UTC)


async def _settle(rounds: int = 50) -> None:
    """Let scheduled deliveries and dispatch tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def settle() -> Callable[..., Awaitable[None]]:
    """Yield control to the event loop until in-memory traffic has flowed."""
    return _settle


@pytest.fixture
def windows() -> tuple[MemoryWindow, MemoryWindow]:
    """(host_window, guest_window) pair."""
    return create_window_pair(HOST_ORIGIN, GUEST_ORIGIN)


@pytest.fixture
def host_window(windows: tuple[MemoryWindow, MemoryWindow]) -> MemoryWindow:
    return windows[0]


@pytest.fixture
def guest_window(windows: tuple[MemoryWindow, MemoryWindow]) -> MemoryWindow:
    return windows[1]


@pytest.fixture
def host_client(host_window: MemoryWindow, guest_window: MemoryWindow) -> BridgeClient:
    """Raw client on the host window talking to the guest."""
    return BridgeClient(host_window, guest_window, GUEST_ORIGIN)


@pytest.fixture
def guest_client(host_window: MemoryWindow, guest_window: MemoryWindow) -> BridgeClient:
    """Raw client on the guest window talking to the host."""
    return BridgeClient(guest_window, host_window, HOST_ORIGIN)


@pytest.fixture
def auth() -> Auth:
    return Auth(token="T", expires_at=TOKEN_EXPIRY)
