"""Tests for drift correction."""

import pytest

from net_metering.metering.corrector import CorrectionLimits, Corrector, scale_factor
from net_metering.metering.models import NetMeteredEnergy, NetMeteringState, ReferenceCounters
from net_metering.metering.stability import establish_baseline, observe
from tests.conftest import MemoryStore

LIMITS = CorrectionLimits()


def _settled_state(
    window_import: float, window_export: float, new_counters: ReferenceCounters
) -> NetMeteringState:
    """State with a baseline at (0, 0), a changed reference at t=5000 and a window."""
    state = NetMeteringState()
    establish_baseline(state, ReferenceCounters(0.0, 0.0), 0)
    state.window.imported_wh = window_import
    state.window.exported_wh = window_export
    observe(state, new_counters, 5_000)
    return state


@pytest.mark.parametrize(
    ("ref_delta", "int_delta", "expected"),
    [
        (950.0, 1000.0, 0.95),
        (-50.0, -40.0, 1.25),
        (5.0, 0.0005, 1.0),  # window below epsilon
        (0.0, 0.0, 1.0),
        (-10.0, 10.0, 1.0),  # sign flip
        (0.0005, 1.0, 1.0),  # ratio at or below the validity floor
        (1000.0, 1.0, 10.0),  # clamped high
        (0.05, 1.0, 0.1),  # clamped low
    ],
)
def test_scale_factor(ref_delta, int_delta, expected):
    assert scale_factor(ref_delta, int_delta, LIMITS) == pytest.approx(expected)


@pytest.mark.parametrize("ref_delta", [-1e9, -1.0, 0.0, 1e-6, 0.2, 3.0, 1e9, float("inf")])
@pytest.mark.parametrize("int_delta", [-1e6, -0.5, 0.0, 0.002, 7.0, 1e-12])
def test_scale_factor_is_always_clamped(ref_delta, int_delta):
    k = scale_factor(ref_delta, int_delta, LIMITS)
    assert LIMITS.min_scale <= k <= LIMITS.max_scale


def test_custom_limits():
    limits = CorrectionLimits(min_scale=0.5, max_scale=2.0)
    assert scale_factor(10.0, 1.0, limits) == 2.0
    assert scale_factor(0.2, 1.0, limits) == 0.5


def test_not_ready_without_change():
    store = MemoryStore()
    state = NetMeteringState()
    establish_baseline(state, ReferenceCounters(0.0, 0.0), 0)
    state.window.imported_wh = 10.0

    result = Corrector(store).apply_if_ready(state, ReferenceCounters(0.0, 0.0), 60_000)

    assert result is None
    assert state.window.imported_wh == 10.0
    assert store.store_calls == 0


def test_not_ready_before_debounce():
    store = MemoryStore()
    state = _settled_state(10.0, 0.0, ReferenceCounters(9.0, 0.0))

    assert Corrector(store).apply_if_ready(state, ReferenceCounters(9.0, 0.0), 9_999) is None
    assert state.energy == NetMeteredEnergy()
    assert store.store_calls == 0


def test_one_hour_scenario():
    store = MemoryStore()
    state = _settled_state(1000.0, 0.0, ReferenceCounters(950.0, 0.0))

    result = Corrector(store).apply_if_ready(state, ReferenceCounters(950.0, 0.0), 10_000)

    assert result is not None
    assert result.scale_factor == pytest.approx(0.95)
    assert result.ref_delta_wh == 950.0
    assert result.int_delta_wh == 1000.0
    assert state.energy.imported_wh == pytest.approx(950.0)
    assert state.energy.exported_wh == 0.0
    assert store.saved.imported_wh == pytest.approx(950.0)
    # Window and baseline restart
    assert state.window.imported_wh == 0.0
    assert state.window.exported_wh == 0.0
    assert state.baseline == ReferenceCounters(950.0, 0.0)
    assert state.change.changed_since_last_correction is False
    assert state.last_integration_ms == 10_000
    assert state.last_correction is result


def test_split_is_kept_from_integration():
    """Phase-mixed flows: counters rise on both sides, only the net is trusted."""
    store = MemoryStore()
    # Integrated: 300 Wh import, 100 Wh export. Device counted 500 / 290.
    state = _settled_state(300.0, 100.0, ReferenceCounters(500.0, 290.0))

    result = Corrector(store).apply_if_ready(state, ReferenceCounters(500.0, 290.0), 10_000)

    # ref_delta = 500 - 290 = 210, int_delta = 200 -> k = 1.05
    assert result.scale_factor == pytest.approx(1.05)
    assert state.energy.imported_wh == pytest.approx(315.0)
    assert state.energy.exported_wh == pytest.approx(105.0)


def test_balanced_window_leaves_net_unchanged():
    store = MemoryStore(NetMeteredEnergy(100.0, 50.0))
    state = _settled_state(0.0, 0.0, ReferenceCounters(5.0, 5.0))
    state.energy = store.load()

    result = Corrector(store).apply_if_ready(state, ReferenceCounters(5.0, 5.0), 10_000)

    assert result.scale_factor == 1.0
    assert state.energy == NetMeteredEnergy(100.0, 50.0)


def test_opposite_samples_with_flat_reference():
    store = MemoryStore()
    state = _settled_state(1.0, 1.0, ReferenceCounters(3.0, 3.0))

    result = Corrector(store).apply_if_ready(state, ReferenceCounters(3.0, 3.0), 10_000)

    # int_delta is ~0, so k falls back to 1.0 and the split is added as is
    assert result.scale_factor == 1.0
    assert state.energy.imported_wh == pytest.approx(1.0)
    assert state.energy.exported_wh == pytest.approx(1.0)
    assert state.energy.imported_wh - state.energy.exported_wh == pytest.approx(0.0)


def test_store_failure_keeps_memory_state():
    store = MemoryStore()
    store.fail = True
    corrector = Corrector(store)
    state = _settled_state(10.0, 0.0, ReferenceCounters(10.0, 0.0))

    result = corrector.apply_if_ready(state, ReferenceCounters(10.0, 0.0), 10_000)

    assert result.persisted is False
    assert state.store_pending is True
    assert state.energy.imported_wh == pytest.approx(10.0)
    assert state.window.imported_wh == 0.0

    store.fail = False
    assert corrector.persist(state) is True
    assert state.store_pending is False
    assert store.saved.imported_wh == pytest.approx(10.0)
