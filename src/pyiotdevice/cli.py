"""Command-line front end.

Configuration comes from ``IOT_*`` environment variables (see
:meth:`IotConfig.from_env`). State changes are printed as they happen.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Any

from pyiotdevice.client import DeviceClient
from pyiotdevice.config import IotConfig
from pyiotdevice.exceptions import IotError
from pyiotdevice.models.gpio import GpioCommand
from pyiotdevice.models.messaging import QualityOfService
from pyiotdevice.state.events import StateChange


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="pyiotdevice",
        description="Provision a device identity and exchange MQTT messages.",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logs.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    identity = sub.add_parser("identity", help="Show, provision or clear the device identity.")
    identity.add_argument("action", choices=("show", "ensure", "clear"))

    listen = sub.add_parser("listen", help="Connect and print messages until Ctrl+C.")
    listen.add_argument("--topic", default=None, help="Topic filter (default: IOT_TOPIC).")
    listen.add_argument("--qos", type=int, choices=(0, 1), default=0)
    listen.add_argument(
        "--gpio",
        action="store_true",
        help="Decode payloads as GPIO lamp commands.",
    )

    publish = sub.add_parser("publish", help="Connect, publish one message, disconnect.")
    publish.add_argument("message")
    publish.add_argument("--topic", default=None, help="Topic (default: IOT_TOPIC).")
    publish.add_argument("--qos", type=int, choices=(0, 1), default=0)

    lamp = sub.add_parser("lamp", help="Switch the sample lamp on or off.")
    lamp.add_argument("state", choices=("on", "off"))
    lamp.add_argument("--topic", default=None, help="Topic (default: IOT_TOPIC).")

    return parser.parse_args(argv)


def _print_state(change: StateChange) -> None:
    suffix = f" (client id {change.client_id})" if change.client_id else ""
    print(f"[state] {change.current.label}{suffix}")


def _print_message(topic: str, gpio: bool) -> Any:
    def handler(text: str) -> None:
        if gpio:
            try:
                command = GpioCommand.from_payload(text)
            except IotError:
                print(f"[{topic}] {text}")
                return
            print(f"[{topic}] lamp {'on' if command.lamp_on else 'off'} (pin {command.pin})")
            return
        print(f"[{topic}] {text}")

    return handler


async def _identity(client: DeviceClient, action: str) -> None:
    if action == "clear":
        removed = await client.clear_identity()
        print("Identity cleared" if removed else "No identity to clear")
        return
    if action == "ensure":
        identity = await client.ensure_identity()
    else:
        loop = asyncio.get_running_loop()
        identity = await loop.run_in_executor(None, client.store.load)
        if identity is None:
            print("No identity persisted")
            return
    print(f"certificateId : {identity.identity_id}")
    print(f"certificateArn: {identity.identity_arn}")
    print(f"source        : {identity.source.value}")


async def _run(args: argparse.Namespace, config: IotConfig) -> None:
    async with DeviceClient(config, on_state_change=_print_state) as client:
        if args.command == "identity":
            await _identity(client, args.action)
            return

        topic = args.topic or config.topic
        await client.connect()

        if args.command == "listen":
            await client.subscribe(topic, QualityOfService(args.qos), _print_message(topic, args.gpio))
            print(f"Subscribed to {topic}. Press Ctrl+C to stop.")
            await asyncio.Event().wait()
        elif args.command == "publish":
            await client.publish(topic, args.message, QualityOfService(args.qos))
        elif args.command == "lamp":
            command = await client.set_lamp(args.state == "on", topic=topic)
            print(f"Sent {command.to_payload()} to {topic}")


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        config = IotConfig.from_env()
        if args.command != "identity" or args.action == "ensure":
            config.validate()
        asyncio.run(_run(args, config))
    except KeyboardInterrupt:
        return 0
    except IotError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2
    return 0
