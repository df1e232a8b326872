"""Entry point for the Keyra relay process.

Usage:
    python -m keyra.relay [run] [options]
    python -m keyra.relay init-identity OWNER SHIELDED [options]

Options:
    --ledger-url URL            Ledger JSON-RPC endpoint (default: KEYRA_LEDGER_URL or devnet)
    --store-url URL             Object store API URL (default: KEYRA_STORE_URL or http://localhost:5001/api/v0)
    --monitoring-address ADDR   Address the relay watches for signal intents
    --page-size N               Transactions fetched per cycle (default: 10)
    --poll-interval SECS        Seconds between cycles (default: 15)
    --port PORT                 Local status server port (default: 8200)
    --log-dir DIR               Log directory (default: ./logs)
    --once                      Run a single cycle and exit

The signing credential and relay identity are read from
KEYRA_RELAY_CREDENTIAL and KEYRA_RELAY_IDENTITY only.
"""

import argparse
import asyncio
import logging
import signal
import sys

import uvicorn

from ..errors import DispatchFailure
from ..ledger import LedgerClient, LedgerFacade, LedgerProgram
from ..logging import setup_logging
from ..store import StoreClient
from .config import RelayConfig
from .loop import relay_loop
from .monitor import RelayMonitor
from .server import create_relay_app

logger = logging.getLogger("keyra.relay")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="keyra-relay", description="Keyra signal relay")

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--ledger-url", default="", help="Ledger JSON-RPC endpoint")
    common.add_argument("--store-url", default="", help="Object store API URL")
    common.add_argument("--monitoring-address", default="", help="Address to monitor")
    common.add_argument("--log-dir", default="", help="Log directory")

    sub = parser.add_subparsers(dest="command")

    run = sub.add_parser("run", parents=[common], help="Monitor and dispatch signal intents")
    run.add_argument("--page-size", type=int, default=0, help="Transactions fetched per cycle")
    run.add_argument("--poll-interval", type=int, default=0, help="Seconds between cycles")
    run.add_argument("--port", type=int, default=0, help="Local status server port")
    run.add_argument("--once", action="store_true", help="Run a single cycle and exit")

    init = sub.add_parser("init-identity", parents=[common], help="Register an owner with the ledger program")
    init.add_argument("owner", help="Owner signing identity")
    init.add_argument("shielded", help="Initial shielded identity")

    return parser


def parse_args(argv: list[str] | None = None) -> tuple[argparse.Namespace, RelayConfig]:
    argv = list(sys.argv[1:] if argv is None else argv)
    if not argv or argv[0] not in ("run", "init-identity", "-h", "--help"):
        argv.insert(0, "run")

    args = build_parser().parse_args(argv)
    config = RelayConfig(
        ledger_url=args.ledger_url,
        store_url=args.store_url,
        monitoring_address=args.monitoring_address,
        page_size=getattr(args, "page_size", 0),
        poll_interval=getattr(args, "poll_interval", 0),
        port=getattr(args, "port", 0),
        log_dir=args.log_dir,
    )
    return args, config


async def run(config: RelayConfig, once: bool = False):
    shutdown_event = asyncio.Event()

    # Handle SIGTERM/SIGINT: stop scheduling new cycles
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, shutdown_event.set)

    ledger = LedgerClient(config.ledger_url, credential=config.relay_credential)
    program = LedgerProgram(ledger, config.program_id)
    facade = LedgerFacade(program, config.relay_identity)
    monitor = RelayMonitor(
        ledger,
        facade,
        config.monitoring_address,
        page_size=config.page_size,
    )
    store = StoreClient(config.store_url)

    logger.info("Keyra Relay starting")
    logger.info(f"  Relay identity:  {config.relay_identity}")
    logger.info(f"  Ledger:          {config.ledger_url}")
    logger.info(f"  Program:         {config.program_id}")
    logger.info(f"  Monitoring:      {config.monitoring_address}")
    logger.info(f"  Page size:       {config.page_size}")
    logger.info(f"  Poll interval:   {config.poll_interval}s")

    if once:
        try:
            report = await monitor.run_cycle()
            logger.info(f"Single cycle finished: {report.to_dict()}")
        finally:
            await ledger.close()
            await store.close()
        return

    # Store is only pinged for status; connect in the background
    store_task = asyncio.create_task(store.connect(), name="store-connect-startup")

    # Cold start: the first cycle reprocesses the page once
    loop_task = asyncio.create_task(
        relay_loop(monitor, config.poll_interval, shutdown_event),
        name="relay-loop",
    )

    relay_app = create_relay_app(config, monitor, ledger, store)
    uvi_config = uvicorn.Config(
        relay_app,
        host="0.0.0.0",
        port=config.port,
        log_level="warning",
    )
    server = uvicorn.Server(uvi_config)
    server_task = asyncio.create_task(server.serve())

    logger.info("Relay is online and monitoring")

    await shutdown_event.wait()
    logger.info("Shutdown signal received, finishing current cycle")

    # The loop exits after its in-flight cycle completes
    await loop_task
    server.should_exit = True
    await server_task

    if not store_task.done():
        store_task.cancel()
    await store.close()
    await ledger.close()

    logger.info("Relay stopped")


async def init_identity(config: RelayConfig, owner: str, shielded: str) -> str:
    ledger = LedgerClient(config.ledger_url, credential=config.relay_credential)
    try:
        facade = LedgerFacade(LedgerProgram(ledger, config.program_id), config.relay_identity)
        signature = await facade.initialize_identity(owner, shielded)
        logger.info(f"Initialized identity {owner}: {signature}")
        return signature
    finally:
        await ledger.close()


def main(argv: list[str] | None = None):
    args, config = parse_args(argv)
    try:
        config.validate()
    except ValueError as e:
        print(str(e), file=sys.stderr)
        sys.exit(2)

    setup_logging(config.log_dir or None)

    try:
        if args.command == "init-identity":
            try:
                asyncio.run(init_identity(config, args.owner, args.shielded))
            except DispatchFailure as e:
                logger.error(str(e))
                sys.exit(1)
        else:
            asyncio.run(run(config, once=args.once))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
