"""
Fleet Modules.

One package per request kind, each layered on the kernel's shared
request lifecycle:

- Vehicle: trip requests, driver/vehicle assignment, trip tracking
- ICT: ICT equipment requests, fulfilled by an admin officer
- Store: store supply requests, fulfilled by an admin officer

Each module contains:
- Domain models (drafts and payload details)
- ORM subclass of the kernel request model (single-table inheritance)
- A request service (creation and correction)

Stage routing per kind lives in ``fleet_config/workflows``.
"""

from fleet_modules import ict, store, vehicle

__all__ = ["ict", "store", "vehicle"]
