"""
Module ORM Registry (``fleet_modules._orm_registry``).

Responsibility
--------------
Ensure every SQLAlchemy ORM model is imported so that ``Base.metadata``
contains its table, and every request kind's polymorphic subclass is
registered, before tables are created or requests are loaded.

Architecture position
---------------------
**Modules layer** -- utility.  Imports sibling ``fleet_modules`` packages
and ``fleet_kernel.db.engine`` (modules -> kernel).  The kernel reaches it
only through the lazy import inside ``create_tables()``.

Usage
-----
Entrypoints and ``tests/conftest.py`` call ``create_all_tables()``.
"""


def import_all_orm_models() -> None:
    """Import kernel models and every ``fleet_modules.*.orm`` module.

    Idempotent -- repeated calls are harmless.
    """
    import fleet_kernel.models  # noqa: F401
    # fmt: off
    import fleet_modules.ict.orm  # noqa: F401
    import fleet_modules.store.orm  # noqa: F401
    import fleet_modules.vehicle.orm  # noqa: F401
    # fmt: on


def create_all_tables() -> None:
    """Create kernel and module tables.

    Preconditions:
        Engine must be initialized via ``init_engine_from_url()``.
    """
    from fleet_kernel.db.engine import create_tables

    import_all_orm_models()
    create_tables()
