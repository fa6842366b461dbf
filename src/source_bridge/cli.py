"""Source Bridge CLI.

Runs a host and a guest in one process over in-memory windows to check the
handshake and its timeouts.

Usage:
    source-bridge check                          # Full handshake, expect ready
    source-bridge check --scenario no-hello      # Guest never says hello
    source-bridge check --scenario no-ready      # Guest never says ready
    source-bridge check --hello-timeout 0.5 --ready-timeout 1 --format json

Timeouts default to SOURCE_BRIDGE_HELLO_TIMEOUT / SOURCE_BRIDGE_READY_TIMEOUT.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
import time
from dataclasses import asdict, dataclass
from datetime import UTC, datetime, timedelta

import click

from . import __version__
from .config import GuestConfig, HostConfig
from .errors import BridgeError
from .guest import create_guest_session
from .host import create_host_session
from .protocol.messages import Auth
from .transport.memory import create_window_pair

# Output format options
FORMAT_TABLE = "table"
FORMAT_JSON = "json"

SCENARIO_OK = "ok"
SCENARIO_NO_HELLO = "no-hello"
SCENARIO_NO_READY = "no-ready"

OUTCOME_READY = "ready"
OUTCOME_TIMEOUT = "timeout"

EXPECTED_OUTCOMES = {
    SCENARIO_OK: OUTCOME_READY,
    SCENARIO_NO_HELLO: "not_started",
    SCENARIO_NO_READY: "not_ready",
}


@dataclass
class CheckResult:
    """Outcome of one loopback handshake."""

    scenario: str
    expected: str
    outcome: str
    elapsed: float
    token: str | None = None
    member: str | None = None

    @property
    def passed(self) -> bool:
        return self.outcome == self.expected


async def run_check(scenario: str, config: HostConfig) -> CheckResult:
    """Run one handshake between an in-memory host and guest."""
    host_window, guest_window = create_window_pair()
    done = asyncio.Event()
    outcome: list[str] = []

    async def get_token() -> Auth:
        return Auth(token="check-token", expires_at=datetime.now(UTC) + timedelta(hours=1))

    async def on_hello() -> dict[str, object]:
        return {
            "context": {"member": "check-member"},
            "plugin_info": {"application": "check", "view_key": "main", "surface": "cli"},
        }

    async def on_ready() -> None:
        outcome.append(OUTCOME_READY)
        done.set()

    def on_error(error: BridgeError) -> None:
        outcome.append(error.cause.value)
        host.destroy()
        done.set()

    host = create_host_session(
        host_window,
        guest_window,
        guest_window.origin,
        config,
        get_token=get_token,
        on_error=on_error,
        on_hello=on_hello,
        on_ready=on_ready,
    )
    guest = create_guest_session(
        guest_window,
        host_window,
        host_window.origin,
        GuestConfig(auto_ready=scenario == SCENARIO_OK, debug=config.debug),
    )

    started = time.monotonic()
    host.boot()

    guest_init: asyncio.Task[object] | None = None
    if scenario != SCENARIO_NO_HELLO:
        guest_init = asyncio.create_task(guest.init())

    result = CheckResult(
        scenario=scenario,
        expected=EXPECTED_OUTCOMES[scenario],
        outcome=OUTCOME_TIMEOUT,
        elapsed=0.0,
    )
    try:
        wait_limit = max(config.hello_timeout, config.ready_timeout) + 1.0
        await asyncio.wait_for(done.wait(), timeout=wait_limit)
        result.outcome = outcome[0]

        if result.outcome == OUTCOME_READY:
            auth = await guest.current_token()
            result.token = auth.token
            result.member = guest.current_context().member
    except TimeoutError:
        pass
    finally:
        result.elapsed = round(time.monotonic() - started, 3)
        host.destroy()
        guest.destroy()
        if guest_init is not None and not guest_init.done():
            guest_init.cancel()

    return result


@click.group()
@click.version_option(__version__, prog_name="source-bridge")
def main() -> None:
    """Source Bridge - host/guest messaging over string channels."""


@main.command()
@click.option(
    "--scenario",
    type=click.Choice([SCENARIO_OK, SCENARIO_NO_HELLO, SCENARIO_NO_READY]),
    default=SCENARIO_OK,
    help="Guest behaviour to simulate",
)
@click.option("--hello-timeout", type=float, default=None, help="Seconds to wait for hello")
@click.option("--ready-timeout", type=float, default=None, help="Seconds to wait for ready")
@click.option(
    "--format",
    "output_format",
    type=click.Choice([FORMAT_TABLE, FORMAT_JSON]),
    default=FORMAT_TABLE,
    help="Output format",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    default="WARNING",
    help="Log level (logs go to stderr)",
)
def check(
    scenario: str,
    hello_timeout: float | None,
    ready_timeout: float | None,
    output_format: str,
    log_level: str,
) -> None:
    """Run a loopback handshake and verify its outcome."""
    logging.basicConfig(
        level=getattr(logging, log_level),
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        config = HostConfig.from_env()
        if hello_timeout is not None:
            config.hello_timeout = hello_timeout
        if ready_timeout is not None:
            config.ready_timeout = ready_timeout
        config.validate()
    except ValueError as e:
        raise click.UsageError(str(e)) from e

    result = asyncio.run(run_check(scenario, config))

    if output_format == FORMAT_JSON:
        click.echo(json.dumps({**asdict(result), "passed": result.passed}, indent=2))
    else:
        click.echo(f"Scenario:  {result.scenario}")
        click.echo(f"Expected:  {result.expected}")
        click.echo(f"Outcome:   {result.outcome}")
        click.echo(f"Elapsed:   {result.elapsed:.3f}s")
        if result.token:
            click.echo(f"Token:     {result.token}")
        if result.member:
            click.echo(f"Member:    {result.member}")
        click.echo("PASS" if result.passed else "FAIL")

    if not result.passed:
        sys.exit(1)


if __name__ == "__main__":
    main()
