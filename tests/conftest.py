"""
Pytest fixtures for the fleet request workflow test suite.

Provides:
- A per-test SQLite file database (real commits, real locking)
- Sessions, a session factory for threaded tests, and a deterministic clock
- The workflow catalog and engine loaded from fleet_config/workflows
- A seeded directory: staff, supervisors, reviewers, drivers, offices, vehicles
- Module services wired for one session, plus draft builders
- Captured structured log records

Environment Variables:
- FLEET_TEST_DATABASE_URL: run against another database (for example
  PostgreSQL).  Tables are dropped at teardown.  Defaults to a fresh SQLite
  file under the test's tmp_path.
"""

import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from io import StringIO
from typing import Generator
from uuid import UUID

import pytest
from sqlalchemy.orm import Session

from fleet_config import get_workflow_catalog
from fleet_kernel.db.engine import (
    drop_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from fleet_kernel.domain.clock import DeterministicClock
from fleet_kernel.domain.geo import GeoPoint
from fleet_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from fleet_kernel.models.directory import OfficeModel, UserModel, VehicleModel, VehicleStatus
from fleet_kernel.services.workflow_engine import WorkflowEngine
from fleet_modules._orm_registry import create_all_tables
from fleet_modules.vehicle.models import VehicleRequestDraft
from fleet_modules.wiring import build_module_services
from fleet_services.geo_gateway import GeoGateway, HaversineGeoProvider

HQ = GeoPoint(5.5560, -0.1969)
MOTOR_POOL = GeoPoint(5.6037, -0.1870)
BRANCH_OFFICE = GeoPoint(5.6500, -0.1000)

TRIP_START = datetime(2025, 1, 10, 9, 0, tzinfo=timezone.utc)
TRIP_END = datetime(2025, 1, 10, 17, 0, tzinfo=timezone.utc)


# =============================================================================
# Logging
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Structured logging at DEBUG for the whole run."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """No correlation or request id leaks from one test into the next."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """Capture fleet log records as parsed JSON dicts.

    Usage:
        def test_something(captured_logs):
            ...
            records = captured_logs()
            assert any(r["message"] == "request_created" for r in records)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("fleet")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "concurrency: runs several threads against one database file"
    )
    config.addinivalue_line(
        "markers", "integration: end-to-end scenario across modules and the orchestrator"
    )


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def db_engine(tmp_path):
    """Fresh database per test.

    SQLite files give every test real commits and real writer locking
    without any cleanup beyond deleting tmp_path.
    """
    override = os.environ.get("FLEET_TEST_DATABASE_URL")
    url = override or f"sqlite:///{tmp_path / 'fleet.db'}"
    engine = init_engine_from_url(url, sqlite_timeout=30.0)
    if override:
        drop_tables()
    create_all_tables()
    yield engine
    if override:
        drop_tables()
    reset_engine()


@pytest.fixture
def session_factory(db_engine):
    """Factory for tests that need one session per thread or per operation."""
    return get_session_factory()


@pytest.fixture
def session(session_factory, directory) -> Generator[Session, None, None]:
    """Session for service-level tests.  Services only flush; nothing commits."""
    sess = session_factory()
    yield sess
    sess.rollback()
    sess.close()


@pytest.fixture
def deterministic_clock():
    """Clock pinned at 2025-01-01 08:00 UTC."""
    return DeterministicClock()


# =============================================================================
# Workflow configuration
# =============================================================================


@pytest.fixture
def catalog():
    return get_workflow_catalog()


@pytest.fixture
def workflow_engine(catalog):
    return WorkflowEngine(catalog)


# =============================================================================
# Seeded directory
# =============================================================================


@dataclass(frozen=True)
class SeededDirectory:
    staff: UUID
    colleague: UUID
    supervisor: UUID
    supervisor_requester: UUID
    finance_supervisor: UUID
    dgs: UUID
    ddgs: UUID
    ad_transport: UUID
    transport_officer: UUID
    admin: UUID
    driver: UUID
    second_driver: UUID
    hq: UUID
    motor_pool: UUID
    branch: UUID
    van: UUID
    sedan: UUID
    minibus: UUID
    workshop_van: UUID
    pool_car: UUID


def _user(name, email, roles, department="ops", is_supervisor=False):
    return UserModel(
        name=name,
        email=email,
        roles=list(roles),
        department=department,
        is_supervisor=is_supervisor,
    )


@pytest.fixture
def directory(db_engine) -> SeededDirectory:
    """Committed users, offices and vehicles shared by every test."""
    users = {
        "staff": _user("Ama Mensah", "ama@example.org", ["staff"]),
        "colleague": _user("Kofi Boateng", "kofi@example.org", ["staff"]),
        "supervisor": _user("Esi Owusu", "esi@example.org", ["staff"], is_supervisor=True),
        "supervisor_requester": _user(
            "Yaw Asante", "yaw@example.org", ["staff"], is_supervisor=True,
        ),
        "finance_supervisor": _user(
            "Abena Ofori", "abena@example.org", ["staff"], department="finance",
            is_supervisor=True,
        ),
        "dgs": _user("Director General", "dgs@example.org", ["staff", "dgs"], "admin"),
        "ddgs": _user("Deputy Director", "ddgs@example.org", ["staff", "ddgs"], "admin"),
        "ad_transport": _user(
            "Transport AD", "adt@example.org", ["staff", "ad_transport"], "transport",
        ),
        "transport_officer": _user(
            "Transport Officer", "to@example.org", ["staff", "transport_officer"], "transport",
        ),
        "admin": _user("Stores Officer", "stores@example.org", ["staff", "admin"], "admin"),
        "driver": _user("Kwame Driver", "kwame@example.org", ["driver"], "transport"),
        "second_driver": _user("Akua Driver", "akua@example.org", ["driver"], "transport"),
    }
    offices = {
        "hq": OfficeModel(name="Head Office", latitude=HQ.latitude, longitude=HQ.longitude),
        "motor_pool": OfficeModel(
            name="Motor Pool", address="1 Depot Road",
            latitude=MOTOR_POOL.latitude, longitude=MOTOR_POOL.longitude,
        ),
        "branch": OfficeModel(
            name="Branch Office",
            latitude=BRANCH_OFFICE.latitude, longitude=BRANCH_OFFICE.longitude,
        ),
    }
    vehicles = {
        "van": VehicleModel(plate_number="GT-1001-25", model="Hiace", capacity=5),
        "sedan": VehicleModel(plate_number="GT-1002-25", model="Corolla", capacity=3),
        "minibus": VehicleModel(plate_number="GT-1003-25", model="Coaster", capacity=12),
        "workshop_van": VehicleModel(
            plate_number="GT-1004-25", model="Hiace", capacity=5,
            status=VehicleStatus.MAINTENANCE.value,
        ),
        "pool_car": VehicleModel(
            plate_number="GT-1005-25", model="Prado", capacity=5,
            status=VehicleStatus.PERMANENTLY_ASSIGNED.value,
        ),
    }
    with session_scope(get_session_factory()) as sess:
        sess.add_all([*users.values(), *offices.values(), *vehicles.values()])
        sess.flush()
        ids = {name: row.id for name, row in {**users, **offices, **vehicles}.items()}
    return SeededDirectory(**ids)


# =============================================================================
# Services and builders
# =============================================================================


@pytest.fixture
def geo_gateway():
    gateway = GeoGateway(HaversineGeoProvider(), timeout_seconds=2.0)
    yield gateway
    gateway.shutdown()


@pytest.fixture
def services(session, workflow_engine, deterministic_clock, geo_gateway):
    """Every module service bound to the test ``session``."""
    return build_module_services(
        session, workflow_engine, clock=deterministic_clock, geo=geo_gateway,
    )


@pytest.fixture
def vehicle_draft(directory):
    """Build a vehicle request draft; keyword overrides replace defaults.

    Defaults: 2025-01-10 09:00-17:00 UTC, 4 passengers, from Head Office to
    "Branch Office", supervised by ``directory.supervisor``.
    """

    def _make(**overrides) -> VehicleRequestDraft:
        fields = dict(
            origin_office_id=directory.hq,
            destination="Branch Office",
            start_date=TRIP_START,
            end_date=TRIP_END,
            passenger_count=4,
            purpose="Quarterly branch audit",
            destination_coordinates=BRANCH_OFFICE,
            participant_ids=(),
            supervisor_id=directory.supervisor,
        )
        fields.update(overrides)
        return VehicleRequestDraft(**fields)

    return _make


@pytest.fixture
def approve_to_assignment(directory):
    """Walk a non-supervisor's vehicle request through every review tier."""

    def _approve(vehicle_service, request_id: UUID):
        view = None
        for reviewer in (
            directory.supervisor, directory.dgs, directory.ddgs, directory.ad_transport,
        ):
            view = vehicle_service.approve(request_id, reviewer).value
        return view

    return _approve


@pytest.fixture
def approved_request(services, vehicle_draft, directory, approve_to_assignment):
    """Factory: a vehicle request waiting at transport_officer_assignment."""

    def _make(**overrides) -> UUID:
        created = services.vehicle.create(vehicle_draft(**overrides), directory.staff).value
        approve_to_assignment(services.vehicle, created.id)
        return created.id

    return _make


@pytest.fixture
def assigned_trip(services, approved_request, directory):
    """An assigned request with its pending trip (driver, van, Motor Pool)."""
    request_id = approved_request()
    return services.assignment.assign(
        request_id, directory.driver, directory.van, directory.motor_pool,
        directory.transport_officer,
    ).value
