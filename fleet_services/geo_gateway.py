"""
GeoGateway -- best-effort access to distance and geocoding providers.

Responsibility:
    Wraps an external ``GeoProvider`` so that slow or failing lookups never
    block a workflow transition.  Every call runs with a bounded timeout;
    errors and timeouts are logged and turned into ``None`` (the caller
    leaves the informational field unset).

Architecture position:
    Services -- outbound adapter.  Used by the vehicle module for
    estimated distance, destination geocoding and trip end-point labels.
"""

from __future__ import annotations

from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, wait
from typing import TypeVar

from fleet_kernel.domain.geo import GeoPoint, GeoProvider, haversine_km
from fleet_kernel.logging_config import get_logger

logger = get_logger("services.geo_gateway")

T = TypeVar("T")


class HaversineGeoProvider:
    """Offline provider: straight-line distance, no geocoding."""

    def calculate_distance(self, origin: GeoPoint, destination: GeoPoint) -> float:
        return haversine_km(origin, destination)

    def geocode_address(self, address: str) -> GeoPoint | None:
        return None

    def reverse_geocode(self, point: GeoPoint) -> str | None:
        return None


class GeoGateway:

    def __init__(
        self,
        provider: GeoProvider | None = None,
        timeout_seconds: float = 5.0,
        executor: ThreadPoolExecutor | None = None,
    ):
        self._provider = provider or HaversineGeoProvider()
        self._timeout = timeout_seconds
        self._executor = executor or ThreadPoolExecutor(
            max_workers=2, thread_name_prefix="fleet-geo",
        )

    def calculate_distance(self, origin: GeoPoint, destination: GeoPoint) -> float | None:
        return self._call(
            "calculate_distance", self._provider.calculate_distance, origin, destination,
        )

    def geocode_address(self, address: str) -> GeoPoint | None:
        if not address:
            return None
        return self._call("geocode_address", self._provider.geocode_address, address)

    def reverse_geocode(self, point: GeoPoint) -> str | None:
        return self._call("reverse_geocode", self._provider.reverse_geocode, point)

    @property
    def timeout_seconds(self) -> float:
        return self._timeout

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False)

    def _call(self, operation: str, fn: Callable[..., T], *args) -> T | None:
        future = self._executor.submit(fn, *args)
        done, _ = wait([future], timeout=self._timeout)
        if not done:
            logger.warning(
                "geo_lookup_timed_out",
                extra={"operation": operation, "timeout_seconds": self._timeout},
            )
            return None
        exc = future.exception()
        if exc is not None:
            logger.warning(
                "geo_lookup_failed",
                extra={"operation": operation},
                exc_info=(type(exc), exc, exc.__traceback__),
            )
            return None
        return future.result()
