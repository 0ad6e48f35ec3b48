"""Cadence entry point."""

import asyncio
import logging
import signal

from cadence.config import settings
from cadence.scheduler.engine import SchedulerEngine
from cadence.scheduler.store import TaskStore
from cadence.tasks import default_registry

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=getattr(logging, settings.log_level),
)
logger = logging.getLogger(__name__)


def create_engine() -> SchedulerEngine:
    """Wire the store, built-in sub-tasks and sequences into an engine."""
    return SchedulerEngine(store=TaskStore(), registry=default_registry())


async def run() -> None:
    """Start the scheduler and block until SIGINT / SIGTERM."""
    engine = create_engine()
    stop_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            logger.debug("Signal handlers not supported on this platform")

    await engine.start()
    logger.info("Cadence running (tz=%s)", settings.scheduler_timezone)
    try:
        await stop_event.wait()
    finally:
        await engine.stop()
        running = engine.tracker.running_task_ids()
        if running:
            logger.info("Waiting for %d in-flight run(s) to settle", len(running))
            await engine.tracker.drain()


def main() -> None:
    asyncio.run(run())


if __name__ == "__main__":
    main()
