"""Run one relay account from the environment until interrupted.

Every directive for a ``--device`` is printed as one JSON line on stdout.
With ``--confirm-state`` the commanded state is also reported back to the
relay through a state handler, as a device that applies every command
immediately would.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
import sys

from pyvoicebridge._constants import DEFAULT_ADMIN_PORT
from pyvoicebridge.admin import start_admin_server
from pyvoicebridge.config import BridgeConfig
from pyvoicebridge.exceptions import BridgeConfigError
from pyvoicebridge.handlers import CommandHandler, StateHandler
from pyvoicebridge.models.command import CommandMessage
from pyvoicebridge.registry import AccountRegistry

_LOG = logging.getLogger("pyvoicebridge")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="python -m pyvoicebridge",
        description="Bridge voice-assistant directives from the cloud relay (VOICEBRIDGE_* env vars).",
    )
    parser.add_argument(
        "--device",
        action="append",
        default=[],
        metavar="ENDPOINT_ID",
        help="Endpoint id to receive directives for (repeatable).",
    )
    parser.add_argument(
        "--acknowledge",
        action="store_true",
        help="Acknowledge every directive as successful on receipt.",
    )
    parser.add_argument(
        "--confirm-state",
        action="store_true",
        help="Report the commanded state back to the relay (only acknowledged commands are reported).",
    )
    parser.add_argument(
        "--admin-host",
        default="127.0.0.1",
        help="Bind address of the admin API.",
    )
    parser.add_argument(
        "--admin-port",
        type=int,
        default=DEFAULT_ADMIN_PORT,
        help="Port of the admin API (0 disables it).",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level.",
    )
    return parser.parse_args(argv)


async def _run(args: argparse.Namespace, config: BridgeConfig) -> None:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, stop.set)

    registry = AccountRegistry()
    await registry.add_account(config)
    account_id = config.resolved_account_id

    runner = None
    if args.admin_port:
        runner = await start_admin_server(registry, args.admin_host, args.admin_port)

    handlers: list[CommandHandler | StateHandler] = []
    for device in args.device:
        state_handler: StateHandler | None = None
        if args.confirm_state:
            state_handler = StateHandler(registry, account_id=account_id, device=device)
            handlers.append(state_handler)

        def emit(msg: CommandMessage, state_handler: StateHandler | None = state_handler) -> None:
            print(json.dumps(msg.to_wire(), sort_keys=True), flush=True)
            if state_handler is not None:
                state_handler.input(msg)

        handlers.append(
            CommandHandler(
                registry,
                account_id=account_id,
                device=device,
                output=emit,
                acknowledge=args.acknowledge,
            )
        )
    if not handlers:
        _LOG.warning("No --device given; the relay connection stays closed")
    for handler in handlers:
        handler.start()

    try:
        await stop.wait()
    finally:
        _LOG.info("Shutting down")
        for handler in handlers:
            await handler.close()
        if runner is not None:
            await runner.cleanup()
        await registry.close()


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = BridgeConfig.from_env()
        config.validate()
    except BridgeConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2

    asyncio.run(_run(args, config))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
