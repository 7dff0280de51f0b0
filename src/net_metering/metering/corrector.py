"""Drift correction of the integration window against the reference counters.

The integrator splits energy into import and export from the sign of the
instantaneous total power, which resolves simultaneous opposite flows on
different phases. The device counters are accurate in magnitude but count
those flows twice. The corrector keeps the split from the integrator and only
rescales it, with one factor per window::

    ref_delta = (t - t0) - (r - r0)
    int_delta = window.imported_wh - window.exported_wh
    k         = clamp(ref_delta / int_delta, min_scale, max_scale)

The import/export split must never be taken from the reference counters.
"""

import logging
import math
from dataclasses import dataclass

from net_metering.metering.models import Correction, NetMeteringState, ReferenceCounters
from net_metering.metering.stability import is_settled
from net_metering.storage import AccumulatorStore, StorageError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CorrectionLimits:
    """Tunables for the corrector."""

    debounce_ms: int = 5000
    epsilon_wh: float = 0.001
    min_valid_ratio: float = 0.001
    min_scale: float = 0.1
    max_scale: float = 10.0


def scale_factor(ref_delta_wh: float, int_delta_wh: float, limits: CorrectionLimits) -> float:
    """Ratio reconciling integrated energy with the reference, clamped."""
    k = 1.0
    if abs(int_delta_wh) > limits.epsilon_wh:
        k = ref_delta_wh / int_delta_wh
        if not math.isfinite(k) or k <= limits.min_valid_ratio:
            logger.debug(
                "Degenerate scale factor %s (ref=%.4f Wh, int=%.4f Wh), using 1.0",
                k,
                ref_delta_wh,
                int_delta_wh,
            )
            k = 1.0
    return min(max(k, limits.min_scale), limits.max_scale)


class Corrector:
    """Applies settled reference changes to the persisted totals.

    This is the only writer of ``state.energy``.
    """

    def __init__(self, store: AccumulatorStore, limits: CorrectionLimits | None = None) -> None:
        self._store = store
        self._limits = limits or CorrectionLimits()

    @property
    def limits(self) -> CorrectionLimits:
        return self._limits

    def apply_if_ready(
        self, state: NetMeteringState, counters: ReferenceCounters, now_ms: int
    ) -> Correction | None:
        if state.baseline is None or not is_settled(state.change, now_ms, self._limits.debounce_ms):
            return None

        baseline = state.baseline
        window = state.window

        ref_delta = (counters.total_import_wh - baseline.total_import_wh) - (
            counters.total_export_wh - baseline.total_export_wh
        )
        int_delta = window.net_wh
        k = scale_factor(ref_delta, int_delta, self._limits)

        corrected_import = window.imported_wh * k
        corrected_export = window.exported_wh * k
        state.energy.imported_wh += corrected_import
        state.energy.exported_wh += corrected_export

        persisted = self.persist(state)

        correction = Correction(
            scale_factor=k,
            ref_delta_wh=ref_delta,
            int_delta_wh=int_delta,
            imported_wh=corrected_import,
            exported_wh=corrected_export,
            at_ms=now_ms,
            persisted=persisted,
        )
        logger.info(
            "Correction applied: k=%.4f ref_delta=%.3f Wh int_delta=%.3f Wh "
            "+import=%.3f Wh +export=%.3f Wh -> import=%.3f Wh export=%.3f Wh",
            k,
            ref_delta,
            int_delta,
            corrected_import,
            corrected_export,
            state.energy.imported_wh,
            state.energy.exported_wh,
        )

        state.baseline = counters
        window.reset()
        assert state.change is not None
        state.change.changed_since_last_correction = False
        state.last_integration_ms = now_ms
        state.last_correction = correction
        return correction

    def persist(self, state: NetMeteringState) -> bool:
        """Write the current totals. On failure the write stays pending."""
        try:
            self._store.store(state.energy)
        except StorageError:
            logger.exception("Failed to store net metered energy, will retry")
            state.store_pending = True
            return False
        state.store_pending = False
        return True
