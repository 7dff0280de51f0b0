"""Tests for reference counter change detection."""

from net_metering.metering.models import NetMeteringState, ReferenceCounters
from net_metering.metering.stability import establish_baseline, is_settled, observe

REF = ReferenceCounters(total_import_wh=1000.0, total_export_wh=200.0)


def test_absent_read_is_noop():
    state = NetMeteringState()
    assert observe(state, None, 1_000) is False
    assert state.baseline is None
    assert state.change is None


def test_first_read_establishes_baseline():
    state = NetMeteringState()
    state.window.imported_wh = 3.0

    assert observe(state, REF, 1_000) is False
    assert state.baseline == REF
    assert state.change.last_seen == REF
    assert state.change.changed_since_last_correction is False
    assert state.change.last_change_ms == 1_000
    # Energy from before the first reference has nothing to be checked against
    assert state.window.imported_wh == 0.0


def test_unchanged_counters_do_not_flag():
    state = NetMeteringState()
    establish_baseline(state, REF, 0)
    for i in range(10):
        assert observe(state, ReferenceCounters(1000.0, 200.0), (i + 1) * 5_000) is False
    assert state.change.changed_since_last_correction is False
    assert state.change.last_change_ms == 0


def test_change_in_either_field_flags():
    state = NetMeteringState()
    establish_baseline(state, REF, 0)

    assert observe(state, ReferenceCounters(1000.0, 201.0), 5_000) is True
    assert state.change.changed_since_last_correction is True
    assert state.change.last_change_ms == 5_000
    assert state.change.last_seen == ReferenceCounters(1000.0, 201.0)

    assert observe(state, ReferenceCounters(1001.0, 201.0), 10_000) is True
    assert state.change.last_change_ms == 10_000
    # Baseline only moves on correction
    assert state.baseline == REF


def test_flag_persists_across_unchanged_reads():
    state = NetMeteringState()
    establish_baseline(state, REF, 0)
    observe(state, ReferenceCounters(1010.0, 200.0), 5_000)
    observe(state, ReferenceCounters(1010.0, 200.0), 10_000)
    assert state.change.changed_since_last_correction is True
    assert state.change.last_change_ms == 5_000


def test_absent_read_keeps_state():
    state = NetMeteringState()
    establish_baseline(state, REF, 0)
    observe(state, ReferenceCounters(1010.0, 200.0), 5_000)
    observe(state, None, 10_000)
    assert state.change.last_seen == ReferenceCounters(1010.0, 200.0)
    assert state.change.last_change_ms == 5_000


def test_is_settled():
    state = NetMeteringState()
    assert is_settled(state.change, 10_000, 5_000) is False

    establish_baseline(state, REF, 0)
    assert is_settled(state.change, 100_000, 5_000) is False

    observe(state, ReferenceCounters(1010.0, 200.0), 5_000)
    assert is_settled(state.change, 9_999, 5_000) is False
    assert is_settled(state.change, 10_000, 5_000) is True
