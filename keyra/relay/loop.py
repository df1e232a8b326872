"""Background polling loop for the relay."""

import asyncio
import logging

from .monitor import RelayMonitor

logger = logging.getLogger("keyra.relay.loop")


async def relay_loop(
    monitor: RelayMonitor,
    interval: float,
    shutdown_event: asyncio.Event,
):
    """Run relay cycles back to back, ``interval`` seconds apart.

    A cycle always runs to completion before the wait starts, so cycles never
    overlap. Exits once shutdown_event is set; an in-flight cycle is not
    interrupted.
    """
    consecutive_failures = 0

    while not shutdown_event.is_set():
        try:
            report = await monitor.run_cycle()
            failed = report.aborted
        except Exception as e:
            logger.exception(f"Relay cycle crashed: {e}")
            failed = True

        if failed:
            consecutive_failures += 1
            if consecutive_failures >= 3:
                logger.warning("Relay: %d consecutive failed cycles", consecutive_failures)
        else:
            if consecutive_failures > 0:
                logger.info("Relay recovered after %d failed cycles", consecutive_failures)
            consecutive_failures = 0

        # Wait for the interval, but exit immediately on shutdown
        try:
            await asyncio.wait_for(shutdown_event.wait(), timeout=interval)
            break
        except asyncio.TimeoutError:
            pass

    logger.info("Relay loop stopped")
