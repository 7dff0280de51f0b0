from abc import ABC, abstractmethod

from net_metering.metering.models import ReferenceCounters


class MeterSource(ABC):
    """Abstract base class for meter data sources.

    Sources fetch data in the background and cache it. The read methods are
    synchronous and return ``None`` when no fresh, valid value is available.
    """

    @abstractmethod
    async def start(self) -> None:
        """Start the source (e.g., begin polling)."""

    @abstractmethod
    async def stop(self) -> None:
        """Stop the source and clean up resources."""

    @abstractmethod
    def read_power(self) -> float | None:
        """Return the latest total active power (W), positive=import."""

    @abstractmethod
    def read_reference_counters(self) -> ReferenceCounters | None:
        """Return the latest cumulative import/export counters (Wh)."""
