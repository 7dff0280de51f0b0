"""Shelly Pro 3EM source: polls the Gen2 HTTP RPC API."""

import asyncio
import logging
import math
import time
from collections.abc import Callable
from typing import Any, Generic, TypeVar

import httpx

from net_metering.metering.models import ReferenceCounters
from net_metering.sources.base import MeterSource

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Gen2 devices use digest auth with a fixed user name
SHELLY_AUTH_USER = "admin"


def _as_number(value: Any) -> float | None:
    """Return ``value`` as float if it is a finite number, else None."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value):
        return None
    return float(value)


def parse_em_status(data: Any) -> float | None:
    """Extract total active power (W) from an EM.GetStatus response."""
    if not isinstance(data, dict):
        return None
    return _as_number(data.get("total_act_power"))


def parse_emdata_status(data: Any) -> ReferenceCounters | None:
    """Extract the cumulative counters from an EMData.GetStatus response."""
    if not isinstance(data, dict):
        return None
    total = _as_number(data.get("total_act"))
    total_ret = _as_number(data.get("total_act_ret"))
    if total is None or total_ret is None:
        return None
    return ReferenceCounters(total_import_wh=total, total_export_wh=total_ret)


class _Reading(Generic[T]):
    """Latest value of one poll loop with its arrival time."""

    def __init__(self, clock: Callable[[], float]) -> None:
        self._clock = clock
        self.value: T | None = None
        self.updated_at: float | None = None

    def set(self, value: T | None) -> None:
        self.value = value
        self.updated_at = self._clock() if value is not None else None

    def get(self, stale_after: float) -> T | None:
        if self.value is None or self.updated_at is None:
            return None
        if self._clock() - self.updated_at > stale_after:
            return None
        return self.value


class ShellySource(MeterSource):
    """Source that polls a Shelly Pro 3EM for power and energy counters."""

    def __init__(self, config: dict, clock: Callable[[], float] = time.monotonic) -> None:
        self._host = config["host"]
        self._password: str | None = config.get("password")
        self._em_id = config.get("em_id", 0)
        self._emdata_id = config.get("emdata_id", 0)
        self._power_poll_interval = config.get("power_poll_interval", 0.5)
        self._counters_poll_interval = config.get("counters_poll_interval", 5.0)
        self._stale_after = config.get("stale_after", 10.0)
        self._timeout = config.get("timeout", 5.0)
        self._power: _Reading[float] = _Reading(clock)
        self._counters: _Reading[ReferenceCounters] = _Reading(clock)
        self._client: httpx.AsyncClient | None = None
        self._tasks: list[asyncio.Task] = []

    @property
    def em_url(self) -> str:
        return f"http://{self._host}/rpc/EM.GetStatus?id={self._em_id}"

    @property
    def emdata_url(self) -> str:
        return f"http://{self._host}/rpc/EMData.GetStatus?id={self._emdata_id}"

    async def start(self) -> None:
        auth = httpx.DigestAuth(SHELLY_AUTH_USER, self._password) if self._password else None
        self._client = httpx.AsyncClient(auth=auth, timeout=self._timeout)

        # Prime both readings so the baseline can be taken at startup
        await self._poll_once(self.emdata_url, parse_emdata_status, self._counters)
        await self._poll_once(self.em_url, parse_em_status, self._power)

        self._tasks = [
            asyncio.create_task(
                self._poll_loop(
                    self.em_url, parse_em_status, self._power, self._power_poll_interval
                )
            ),
            asyncio.create_task(
                self._poll_loop(
                    self.emdata_url,
                    parse_emdata_status,
                    self._counters,
                    self._counters_poll_interval,
                )
            ),
        ]
        logger.info(
            "Shelly source started: polling %s (power every %.1fs, counters every %.1fs)",
            self._host,
            self._power_poll_interval,
            self._counters_poll_interval,
        )

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        logger.info("Shelly source stopped")

    def read_power(self) -> float | None:
        return self._power.get(self._stale_after)

    def read_reference_counters(self) -> ReferenceCounters | None:
        return self._counters.get(self._stale_after)

    async def _poll_once(
        self, url: str, parser: Callable[[Any], T | None], reading: _Reading[T]
    ) -> None:
        try:
            assert self._client is not None
            resp = await self._client.get(url)
            resp.raise_for_status()
            value = parser(resp.json())
            if value is None:
                logger.debug("Unusable response from %s", url)
            reading.set(value)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Shelly poll failed: %s", url)
            reading.set(None)

    async def _poll_loop(
        self,
        url: str,
        parser: Callable[[Any], T | None],
        reading: _Reading[T],
        interval: float,
    ) -> None:
        while True:
            await asyncio.sleep(interval)
            await self._poll_once(url, parser, reading)
