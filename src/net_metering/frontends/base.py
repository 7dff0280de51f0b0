"""Abstract base class for net metering frontends."""

from abc import ABC, abstractmethod

from fastapi import APIRouter

from net_metering.metering.meter import NetMeter


class Frontend(ABC):
    """A frontend exposes the net metering results over a specific API."""

    def __init__(self, meter: NetMeter, config: dict) -> None:
        self._meter = meter

    @abstractmethod
    def get_router(self) -> APIRouter:
        """Return the APIRouter with this frontend's HTTP endpoints."""
