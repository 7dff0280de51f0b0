from net_metering.sources.base import MeterSource
from net_metering.sources.shelly import ShellySource

_SOURCES: dict[str, type[MeterSource]] = {
    "shelly": ShellySource,
}


def create_source(source_type: str, config: dict) -> MeterSource:
    """Create a source instance by type name."""
    cls = _SOURCES.get(source_type)
    if cls is None:
        raise ValueError(
            f"Unknown source type: {source_type!r}. Available: {', '.join(_SOURCES)}"
        )
    return cls(config)
