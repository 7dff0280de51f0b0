import os
import re
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from net_metering.metering.corrector import CorrectionLimits


def _substitute_env_vars(value: str) -> str:
    """Replace ${ENV_VAR} patterns with environment variable values."""

    def replacer(match: re.Match) -> str:
        var_name = match.group(1)
        env_val = os.environ.get(var_name)
        if env_val is None:
            raise ValueError(f"Environment variable {var_name!r} is not set")
        return env_val

    return re.sub(r"\$\{([^}]+)}", replacer, value)


def _walk_and_substitute(obj: object) -> object:
    """Recursively substitute env vars in all string values."""
    if isinstance(obj, str):
        return _substitute_env_vars(obj)
    if isinstance(obj, dict):
        return {k: _walk_and_substitute(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_walk_and_substitute(item) for item in obj]
    return obj


class ServerConfig(BaseModel):
    host: str = "0.0.0.0"
    port: int = 8080


class LoggingConfig(BaseModel):
    level: str = "INFO"

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        v = v.upper()
        if v not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError("level must be one of DEBUG, INFO, WARNING, ERROR, CRITICAL")
        return v


class MeteringConfig(BaseModel):
    fast_tick_ms: int = 500
    slow_tick_ms: int = 5000
    debounce_ms: int = 5000
    epsilon_wh: float = 0.001
    min_valid_ratio: float = 0.001
    min_scale: float = 0.1
    max_scale: float = 10.0

    @field_validator("fast_tick_ms", "slow_tick_ms")
    @classmethod
    def validate_period(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("tick periods must be positive")
        return v

    @field_validator("debounce_ms", "epsilon_wh", "min_valid_ratio")
    @classmethod
    def validate_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("must not be negative")
        return v

    @model_validator(mode="after")
    def validate_scale_bounds(self) -> "MeteringConfig":
        if not 0 < self.min_scale < self.max_scale:
            raise ValueError("scale bounds must satisfy 0 < min_scale < max_scale")
        return self

    def limits(self) -> CorrectionLimits:
        return CorrectionLimits(
            debounce_ms=self.debounce_ms,
            epsilon_wh=self.epsilon_wh,
            min_valid_ratio=self.min_valid_ratio,
            min_scale=self.min_scale,
            max_scale=self.max_scale,
        )


class ShellySourceConfig(BaseModel):
    host: str
    password: str | None = None
    em_id: int = 0
    emdata_id: int = 0
    power_poll_interval: float = 0.5
    counters_poll_interval: float = 5.0
    stale_after: float = 10.0
    timeout: float = 5.0


class SourceConfig(BaseModel):
    type: str = "shelly"
    shelly: ShellySourceConfig | None = None

    @model_validator(mode="after")
    def validate_source_settings(self) -> "SourceConfig":
        if self.type == "shelly" and self.shelly is None:
            raise ValueError("source.shelly settings are required for the shelly source")
        return self


class StorageConfig(BaseModel):
    path: str = "/data/net_metering.json"


class ShellyFrontendConfig(BaseModel):
    import_id: int = 200
    import_name: str = "Net Metered Energy"
    export_id: int = 201
    export_name: str = "Net Metered Energy Return"
    group_id: int = 200
    group_name: str = "Energy Net Metering"

    @model_validator(mode="after")
    def validate_ids(self) -> "ShellyFrontendConfig":
        if self.import_id == self.export_id:
            raise ValueError("import_id and export_id must differ")
        return self


class FrontendConfig(BaseModel):
    type: str = "shelly"
    shelly: ShellyFrontendConfig = Field(default_factory=ShellyFrontendConfig)


class AppConfig(BaseModel):
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    metering: MeteringConfig = Field(default_factory=MeteringConfig)
    source: SourceConfig
    storage: StorageConfig = Field(default_factory=StorageConfig)
    frontend: FrontendConfig = Field(default_factory=FrontendConfig)


def load_config(path: str | Path) -> AppConfig:
    """Load and validate configuration from a YAML file."""
    path = Path(path)
    with path.open() as f:
        raw = yaml.safe_load(f)

    if raw is None:
        raw = {}

    raw = _walk_and_substitute(raw)
    return AppConfig.model_validate(raw)
