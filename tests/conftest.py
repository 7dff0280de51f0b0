"""Shared test fixtures."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from net_metering.frontends.shelly import ShellyFrontend
from net_metering.metering.corrector import CorrectionLimits
from net_metering.metering.meter import NetMeter
from net_metering.metering.models import NetMeteredEnergy, ReferenceCounters
from net_metering.sources.base import MeterSource
from net_metering.storage import AccumulatorStore, StorageError


class MockSource(MeterSource):
    """A source that returns configurable test data."""

    def __init__(
        self, power_w: float | None = None, counters: ReferenceCounters | None = None
    ) -> None:
        self.power_w = power_w
        self.counters = counters

    async def start(self) -> None:
        pass

    async def stop(self) -> None:
        pass

    def read_power(self) -> float | None:
        return self.power_w

    def read_reference_counters(self) -> ReferenceCounters | None:
        return self.counters

    def set_counters(self, total_import_wh: float, total_export_wh: float) -> None:
        self.counters = ReferenceCounters(total_import_wh, total_export_wh)


class MemoryStore(AccumulatorStore):
    """Keeps stored totals in memory and can be told to fail."""

    def __init__(self, initial: NetMeteredEnergy | None = None) -> None:
        self.saved = initial
        self.fail = False
        self.store_calls = 0

    def load(self) -> NetMeteredEnergy:
        if self.saved is None:
            return NetMeteredEnergy()
        return NetMeteredEnergy(self.saved.imported_wh, self.saved.exported_wh)

    def store(self, energy: NetMeteredEnergy) -> None:
        self.store_calls += 1
        if self.fail:
            raise StorageError("disk full")
        self.saved = NetMeteredEnergy(energy.imported_wh, energy.exported_wh)


class FakeClock:
    """Manually advanced millisecond clock."""

    def __init__(self, now_ms: int = 1_000) -> None:
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, ms: int) -> None:
        self.now_ms += ms


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def mock_source():
    return MockSource()


@pytest.fixture
def memory_store():
    return MemoryStore()


@pytest.fixture
def meter(mock_source, memory_store, clock):
    return NetMeter(mock_source, memory_store, CorrectionLimits(), clock=clock)


@pytest.fixture
def client(meter):
    """FastAPI test client with a Shelly frontend (no lifespan)."""
    frontend = ShellyFrontend(meter, {})
    test_app = FastAPI()
    test_app.include_router(frontend.get_router())
    with TestClient(test_app) as c:
        yield c
