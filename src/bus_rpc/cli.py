"""bus-rpc CLI.

Usage:
    bus-rpc demo                      # Request/response + one-way demo (direct variant)
    bus-rpc demo --variant shared     # Same, over shared request/reply channels
    bus-rpc demo --missing            # Also request a topic nobody answers
    bus-rpc demo --json               # Machine-readable results

    bus-rpc config                    # Show effective configuration
    bus-rpc config --json
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import click

from .bus import InMemoryBus
from .config import RpcConfig, Variant
from .errors import RpcError
from .factory import create_requester, create_responder
from .messaging import Receiver, Sender

logger = logging.getLogger(__name__)

LOG_LEVELS = ["debug", "info", "warning", "error"]


@click.group()
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS),
    default="warning",
    help="Logging verbosity",
)
def main(log_level: str) -> None:
    """Request/response correlation over a publish/subscribe bus."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


async def _greeting(request: dict[str, Any]) -> dict[str, Any]:
    return {"greeting": f"{request['greeting']} to you too."}


async def _how_are_you(request: dict[str, Any]) -> dict[str, Any]:
    return {"good": True}


async def run_demo(config: RpcConfig, missing: bool = False) -> dict[str, Any]:
    """Run the demo scenarios on an in-memory bus and collect the outcomes."""
    bus = InMemoryBus()
    requester = create_requester(bus, config)
    responder = create_responder(bus, config)

    responder.add_responder("GREETING", _greeting)
    responder.add_responder("HOW_ARE_YOU", _how_are_you)

    greeting, how_are_you = await asyncio.gather(
        requester.request("GREETING", {"greeting": "hey"}),
        requester.request("HOW_ARE_YOU", {}),
    )
    results: dict[str, Any] = {
        "variant": config.variant.value,
        "GREETING": greeting,
        "HOW_ARE_YOU": how_are_you,
    }

    if missing:
        loop = asyncio.get_running_loop()
        started = loop.time()
        try:
            results["MISSING"] = await requester.request("MISSING", {})
        except RpcError as e:
            results["MISSING"] = {
                "error": type(e).__name__,
                "message": str(e),
                "elapsed": round(loop.time() - started, 3),
            }

    heard: list[Any] = []
    receiver = Receiver(bus)
    sender = Sender(bus)
    registration = receiver.add_receiver("HEY", heard.append)
    sender.send("HEY", {"callMessage": "Hey Alice!"})
    registration.cancel()
    sender.send("HEY", {"callMessage": "Hey again?"})
    results["HEY"] = heard

    await responder.wait_idle()
    responder.close()
    close = getattr(requester, "close", None)
    if close is not None:
        close()
    return results


@main.command("demo")
@click.option(
    "--variant",
    type=click.Choice([v.value for v in Variant]),
    default=None,
    help="Transport shape (default from BUS_RPC_VARIANT or 'direct')",
)
@click.option("--timeout", type=float, default=None, help="Reply timeout in seconds")
@click.option("--missing", is_flag=True, help="Also request a topic with no responder")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
def demo(variant: str | None, timeout: float | None, missing: bool, output_json: bool) -> None:
    """Run the GREETING / HOW_ARE_YOU / HEY scenarios.

    Examples:

        bus-rpc demo
        bus-rpc demo --variant shared --missing
    """
    try:
        config = RpcConfig.from_env(variant=variant, timeout=timeout)
    except ValueError as e:
        raise click.UsageError(str(e)) from e

    results = asyncio.run(run_demo(config, missing=missing))

    if output_json:
        click.echo(json.dumps(results, indent=2))
        return

    click.echo(f"Variant: {results['variant']}")
    click.echo("-" * 40)
    for topic in ("GREETING", "HOW_ARE_YOU", "MISSING"):
        if topic in results:
            click.echo(f"{topic:<12} {json.dumps(results[topic])}")
    heard = results["HEY"]
    click.echo(f"{'HEY':<12} received {len(heard)} message(s): {json.dumps(heard)}")


@main.command("config")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
def show_config(output_json: bool) -> None:
    """Show current configuration.

    Examples:

        bus-rpc config
        bus-rpc config --json
    """
    try:
        config = RpcConfig.from_env()
    except ValueError as e:
        raise click.UsageError(str(e)) from e

    if output_json:
        click.echo(json.dumps(config.model_dump(mode="json"), indent=2))
        return

    click.echo("bus-rpc Configuration")
    click.echo("-" * 40)
    click.echo(f"Variant:          {config.variant.value}")
    click.echo(f"Timeout:          {config.timeout}s")
    click.echo(f"Request channel:  {config.request_channel}")
    click.echo(f"Reply channel:    {config.reply_channel}")


if __name__ == "__main__":
    main()
