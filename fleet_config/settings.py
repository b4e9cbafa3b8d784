"""
Runtime settings (``fleet_config.settings``).

Process-level knobs read from the environment once at startup.  Workflow
routing is not a setting; it lives in the YAML workflow files.

==================================  ======================================
Variable                            Default
==================================  ======================================
FLEET_DATABASE_URL                  sqlite:///fleet.db
FLEET_LOG_LEVEL                     INFO
FLEET_NOTIFICATION_TIMEOUT_SECONDS  5
FLEET_GEO_TIMEOUT_SECONDS           5
FLEET_RETURN_GEOFENCE_KM            0.05
FLEET_MIN_LEAD_TIME_MINUTES         60
FLEET_FUEL_KM_PER_LITRE             10
==================================  ======================================
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import timedelta

DEFAULT_DATABASE_URL = "sqlite:///fleet.db"


@dataclass(frozen=True)
class FleetSettings:
    database_url: str = DEFAULT_DATABASE_URL
    log_level: str = "INFO"
    notification_timeout_seconds: float = 5.0
    geo_timeout_seconds: float = 5.0
    return_geofence_km: float = 0.05
    min_lead_time_minutes: int = 60
    fuel_km_per_litre: float = 10.0

    @property
    def min_lead_time(self) -> timedelta:
        return timedelta(minutes=self.min_lead_time_minutes)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> FleetSettings:
        env = os.environ if environ is None else environ
        defaults = cls()
        try:
            return cls(
                database_url=env.get("FLEET_DATABASE_URL", defaults.database_url),
                log_level=env.get("FLEET_LOG_LEVEL", defaults.log_level).upper(),
                notification_timeout_seconds=float(env.get(
                    "FLEET_NOTIFICATION_TIMEOUT_SECONDS", defaults.notification_timeout_seconds,
                )),
                geo_timeout_seconds=float(env.get(
                    "FLEET_GEO_TIMEOUT_SECONDS", defaults.geo_timeout_seconds,
                )),
                return_geofence_km=float(env.get(
                    "FLEET_RETURN_GEOFENCE_KM", defaults.return_geofence_km,
                )),
                min_lead_time_minutes=int(env.get(
                    "FLEET_MIN_LEAD_TIME_MINUTES", defaults.min_lead_time_minutes,
                )),
                fuel_km_per_litre=float(env.get(
                    "FLEET_FUEL_KM_PER_LITRE", defaults.fuel_km_per_litre,
                )),
            )
        except ValueError as exc:
            raise ValueError(f"Invalid FLEET_* environment setting: {exc}") from exc
