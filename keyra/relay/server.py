"""Lightweight HTTP server exposed by the relay for status queries."""

import time
from typing import Optional

from fastapi import FastAPI, Query

from ..ledger import LedgerClient
from ..logging import get_recent_logs
from ..store import StoreClient
from .config import RelayConfig
from .monitor import RelayMonitor

_start_time = time.monotonic()


async def check_ledger_connection(ledger: LedgerClient) -> dict:
    """Check the ledger endpoint with its health method."""
    start = time.monotonic()
    healthy = await ledger.get_health()
    latency = int((time.monotonic() - start) * 1000)
    if healthy:
        return {"status": "connected", "latency_ms": latency}
    return {"status": "error", "error": "ledger health check failed"}


async def check_store_connection(store: StoreClient) -> dict:
    """Check the object store with a liveness check."""
    start = time.monotonic()
    connected = await store.check_connection()
    latency = int((time.monotonic() - start) * 1000)
    if connected:
        return {"status": "connected", "latency_ms": latency, "node_id": store.node_id}
    return {"status": "disconnected", "state": store.state.value}


def create_relay_app(
    config: RelayConfig,
    monitor: RelayMonitor,
    ledger: LedgerClient,
    store: Optional[StoreClient] = None,
) -> FastAPI:
    """Create the relay's local FastAPI app."""
    app = FastAPI(title="Keyra Relay", version="0.1.0")

    @app.get("/health")
    async def health():
        return {"status": "healthy"}

    @app.get("/status")
    async def status():
        result = monitor.get_status()
        result["relay_identity"] = config.relay_identity
        result["poll_interval"] = config.poll_interval
        result["uptime_seconds"] = round(time.monotonic() - _start_time, 1)
        return result

    @app.get("/status/connections")
    async def connections():
        result = {"ledger": await check_ledger_connection(ledger)}
        if store is not None:
            result["store"] = await check_store_connection(store)
        return result

    @app.get("/logs")
    async def logs(lines: int = Query(default=100, ge=1, le=5000)):
        return {"lines": get_recent_logs(lines)}

    return app
