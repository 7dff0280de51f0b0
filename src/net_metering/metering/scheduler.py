import asyncio
import logging
from collections.abc import Callable

from net_metering.metering.meter import NetMeter

logger = logging.getLogger(__name__)


async def _run_periodic(name: str, interval_ms: int, callback: Callable[[], object]) -> None:
    """Call ``callback`` every ``interval_ms`` until cancelled."""
    interval = interval_ms / 1000.0
    while True:
        await asyncio.sleep(interval)
        try:
            callback()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("%s tick failed", name)


class TickScheduler:
    """Runs the fast and slow ticks of a NetMeter on the event loop.

    Tick bodies are synchronous, so they never interleave with each other.
    """

    def __init__(self, meter: NetMeter, fast_tick_ms: int = 500, slow_tick_ms: int = 5000) -> None:
        self._meter = meter
        self._fast_tick_ms = fast_tick_ms
        self._slow_tick_ms = slow_tick_ms
        self._tasks: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    async def start(self) -> None:
        self._tasks = [
            asyncio.create_task(
                _run_periodic("Integration", self._fast_tick_ms, self._meter.on_fast_tick)
            ),
            asyncio.create_task(
                _run_periodic("Totals", self._slow_tick_ms, self._meter.on_slow_tick)
            ),
        ]
        logger.info(
            "Net metering started (integration every %d ms, totals every %d ms)",
            self._fast_tick_ms,
            self._slow_tick_ms,
        )

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []
        logger.info("Net metering stopped")
