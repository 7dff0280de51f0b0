import logging

from net_metering.metering.models import ChangeState, NetMeteringState, ReferenceCounters

logger = logging.getLogger(__name__)


def establish_baseline(state: NetMeteringState, counters: ReferenceCounters, now_ms: int) -> None:
    """Start the first correction window at ``counters``.

    Energy integrated before any reference was seen has no counterpart on the
    reference side, so the window starts empty.
    """
    state.baseline = counters
    state.change = ChangeState(last_seen=counters, last_change_ms=now_ms)
    state.window.reset()
    logger.info(
        "Baseline initialized: import=%.3f Wh, export=%.3f Wh",
        counters.total_import_wh,
        counters.total_export_wh,
    )


def observe(state: NetMeteringState, counters: ReferenceCounters | None, now_ms: int) -> bool:
    """Record a reference read. Returns True when the counters moved."""
    if counters is None:
        return False

    if state.change is None or state.baseline is None:
        establish_baseline(state, counters, now_ms)
        return False

    change = state.change
    if counters == change.last_seen:
        return False

    change.changed_since_last_correction = True
    change.last_change_ms = now_ms
    change.last_seen = counters
    logger.debug(
        "Reference counters changed: import=%.3f Wh, export=%.3f Wh",
        counters.total_import_wh,
        counters.total_export_wh,
    )
    return True


def is_settled(change: ChangeState | None, now_ms: int, debounce_ms: int) -> bool:
    """True once a detected change has been quiet for ``debounce_ms``."""
    if change is None or not change.changed_since_last_correction:
        return False
    return now_ms - change.last_change_ms >= debounce_ms
