"""Power-to-energy integration over real elapsed time."""

import math

from net_metering.metering.models import NetMeteringState

MS_PER_HOUR = 3_600_000


def power_to_energy_wh(power_w: float, elapsed_ms: int) -> float:
    """Energy in Wh delivered by a constant ``power_w`` over ``elapsed_ms``."""
    return power_w * elapsed_ms / MS_PER_HOUR


def integrate(state: NetMeteringState, power_w: float | None, now_ms: int) -> float:
    """Fold one power sample into the open integration window.

    The first call only anchors the clock. Calls where the clock did not move
    forward are ignored entirely. When the sample is missing the anchor still
    advances, so the gap is never attributed to the next sample.

    Returns the signed energy added (Wh), 0.0 when nothing was integrated.
    """
    if state.last_integration_ms is None:
        state.last_integration_ms = now_ms
        return 0.0

    elapsed_ms = now_ms - state.last_integration_ms
    if elapsed_ms <= 0:
        return 0.0

    state.last_integration_ms = now_ms

    if power_w is None or not math.isfinite(power_w):
        return 0.0

    energy_wh = power_to_energy_wh(power_w, elapsed_ms)
    if energy_wh >= 0:
        state.window.imported_wh += energy_wh
    else:
        state.window.exported_wh += -energy_wh
    return energy_wh
