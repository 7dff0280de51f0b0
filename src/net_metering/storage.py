"""Durable storage for the net metered energy totals."""

import json
import logging
import math
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ValidationError, field_validator

from net_metering.metering.models import NetMeteredEnergy

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when the totals cannot be read or written."""


class StoredEnergy(BaseModel):
    """On-disk representation of the totals.

    Missing, non-numeric or negative values load as 0.0, the same way a
    freshly created virtual number starts out on the device.
    """

    imported_wh: float = 0.0
    exported_wh: float = 0.0

    @field_validator("imported_wh", "exported_wh", mode="before")
    @classmethod
    def coerce_wh(cls, v: Any) -> float:
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            return 0.0
        if not math.isfinite(v) or v < 0:
            return 0.0
        return float(v)


class AccumulatorStore(ABC):
    """Abstract base class for accumulator persistence."""

    @abstractmethod
    def load(self) -> NetMeteredEnergy:
        """Return the persisted totals, zeros when nothing was stored yet."""

    @abstractmethod
    def store(self, energy: NetMeteredEnergy) -> None:
        """Persist the totals. Raises StorageError on failure."""


class JsonFileStore(AccumulatorStore):
    """Stores the totals in a small JSON file, replaced atomically."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> NetMeteredEnergy:
        try:
            raw = self._path.read_text()
        except FileNotFoundError:
            logger.info("No stored totals at %s, starting from zero", self._path)
            return NetMeteredEnergy()
        except OSError as err:
            raise StorageError(f"Cannot read {self._path}: {err}") from err

        try:
            data = json.loads(raw)
            stored = StoredEnergy.model_validate(data if isinstance(data, dict) else {})
        except (json.JSONDecodeError, ValidationError):
            logger.warning("Stored totals at %s are unreadable, starting from zero", self._path)
            stored = StoredEnergy()

        logger.info(
            "Startup values loaded: import=%.3f Wh, export=%.3f Wh",
            stored.imported_wh,
            stored.exported_wh,
        )
        return NetMeteredEnergy(imported_wh=stored.imported_wh, exported_wh=stored.exported_wh)

    def store(self, energy: NetMeteredEnergy) -> None:
        payload = StoredEnergy(
            imported_wh=energy.imported_wh, exported_wh=energy.exported_wh
        ).model_dump_json()
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self._path.parent, prefix=f".{self._path.name}.")
            try:
                with os.fdopen(fd, "w") as f:
                    f.write(payload)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_name, self._path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as err:
            raise StorageError(f"Cannot write {self._path}: {err}") from err
