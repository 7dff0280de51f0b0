from dataclasses import dataclass, field


@dataclass(frozen=True)
class ReferenceCounters:
    """Cumulative device energy counters (Wh)."""

    total_import_wh: float
    total_export_wh: float


@dataclass
class IntegrationWindow:
    """Energy integrated from total power since the last correction (Wh)."""

    imported_wh: float = 0.0
    exported_wh: float = 0.0

    @property
    def net_wh(self) -> float:
        return self.imported_wh - self.exported_wh

    def reset(self) -> None:
        self.imported_wh = 0.0
        self.exported_wh = 0.0


@dataclass
class ChangeState:
    """Tracks whether the reference counters moved since the last correction."""

    last_seen: ReferenceCounters
    changed_since_last_correction: bool = False
    last_change_ms: int = 0


@dataclass
class NetMeteredEnergy:
    """Phase-balanced net energy totals (Wh). Never decrease."""

    imported_wh: float = 0.0
    exported_wh: float = 0.0


@dataclass(frozen=True)
class Correction:
    """Outcome of one applied correction."""

    scale_factor: float
    ref_delta_wh: float
    int_delta_wh: float
    imported_wh: float  # corrected import added to the totals
    exported_wh: float  # corrected export added to the totals
    at_ms: int
    persisted: bool = True


@dataclass
class NetMeteringState:
    """All mutable metering state, owned by a single NetMeter."""

    energy: NetMeteredEnergy = field(default_factory=NetMeteredEnergy)
    window: IntegrationWindow = field(default_factory=IntegrationWindow)
    baseline: ReferenceCounters | None = None
    change: ChangeState | None = None
    last_integration_ms: int | None = None
    last_correction: Correction | None = None
    store_pending: bool = False
