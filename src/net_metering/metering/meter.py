import logging
import time
from collections.abc import Callable

from net_metering.metering import integrator, stability
from net_metering.metering.corrector import CorrectionLimits, Corrector
from net_metering.metering.models import Correction, NetMeteredEnergy, NetMeteringState
from net_metering.sources.base import MeterSource
from net_metering.storage import AccumulatorStore

logger = logging.getLogger(__name__)


def monotonic_ms() -> int:
    """Milliseconds from the monotonic clock. Only differences are meaningful."""
    return time.monotonic_ns() // 1_000_000


class NetMeter:
    """Drives the metering state from the fast and slow ticks.

    ``on_fast_tick`` integrates the latest power sample. ``on_slow_tick`` reads
    the reference counters, updates change detection and applies a correction
    once the counters have settled. Both are synchronous and must be called
    from the same thread.
    """

    def __init__(
        self,
        source: MeterSource,
        store: AccumulatorStore,
        limits: CorrectionLimits | None = None,
        clock: Callable[[], int] = monotonic_ms,
    ) -> None:
        self._source = source
        self._store = store
        self._clock = clock
        self._corrector = Corrector(store, limits)
        self._state = NetMeteringState()

    @property
    def state(self) -> NetMeteringState:
        return self._state

    @property
    def limits(self) -> CorrectionLimits:
        return self._corrector.limits

    @property
    def energy(self) -> NetMeteredEnergy:
        """Snapshot of the current totals."""
        energy = self._state.energy
        return NetMeteredEnergy(imported_wh=energy.imported_wh, exported_wh=energy.exported_wh)

    @property
    def last_correction(self) -> Correction | None:
        return self._state.last_correction

    def start(self) -> None:
        """Load the persisted totals and try to establish the baseline."""
        self._state.energy = self._store.load()
        counters = self._source.read_reference_counters()
        if counters is not None:
            stability.establish_baseline(self._state, counters, self._clock())
        else:
            logger.info("Reference counters unavailable at startup, baseline deferred")

    def on_fast_tick(self) -> None:
        integrator.integrate(self._state, self._source.read_power(), self._clock())

    def on_slow_tick(self) -> Correction | None:
        if self._state.store_pending:
            self._corrector.persist(self._state)

        counters = self._source.read_reference_counters()
        if counters is None:
            return None

        now_ms = self._clock()
        stability.observe(self._state, counters, now_ms)
        return self._corrector.apply_if_ready(self._state, counters, now_ms)
