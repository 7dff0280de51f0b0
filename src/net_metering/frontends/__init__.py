"""Frontend registry and factory."""

from net_metering.frontends.base import Frontend
from net_metering.frontends.shelly import ShellyFrontend
from net_metering.metering.meter import NetMeter

_FRONTENDS: dict[str, type[Frontend]] = {
    "shelly": ShellyFrontend,
}


def create_frontend(frontend_type: str, meter: NetMeter, config: dict) -> Frontend:
    """Create a frontend instance by type name."""
    cls = _FRONTENDS.get(frontend_type)
    if cls is None:
        raise ValueError(
            f"Unknown frontend type: {frontend_type!r}. Available: {', '.join(_FRONTENDS)}"
        )
    return cls(meter, config)
