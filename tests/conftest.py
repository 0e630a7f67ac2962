"""
Shared pytest fixtures available to every test file automatically.
No imports needed in test files; pytest discovers this by convention.
"""

from __future__ import annotations

from dataclasses import dataclass
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from tortoise import Tortoise, connections

from app.deps import (
    can_admin_settings,
    can_admin_write_booking,
    can_read_booking,
    can_write_booking,
    get_booking_lifecycle,
    get_current_user,
    get_notifications_client,
    get_rate_table,
    get_reservation_engine,
    get_sweeper,
)
from app.ledger import SlotLedger
from app.lifecycle import BookingLifecycle
from app.rates import DEFAULT_SCHEDULE, RateTable
from app.reservations import ReservationEngine
from app.routers import admin, booking
from app.sweeper import ExpirySweeper

from .factories import FixedClock, make_admin, make_customer

# ---------------------------------------------------------------------------
# Default no-op collaborator mocks: prevent real DB / HTTP calls in router tests
# ---------------------------------------------------------------------------


def _noop_notifications_client():
    mock = MagicMock()
    mock.publish = AsyncMock(return_value=True)
    return mock


def _noop_engine():
    """A real engine (so price_slots/clock work) with its I/O methods mocked."""
    rates = MagicMock()
    rates.current = AsyncMock(return_value=DEFAULT_SCHEDULE)
    engine = ReservationEngine(MagicMock(), MagicMock(), rates, FixedClock())
    engine.reserve = AsyncMock()
    engine.cell_snapshot = AsyncMock(return_value=({}, []))
    return engine


def _noop_lifecycle():
    mock = MagicMock()
    mock.approve = AsyncMock()
    mock.reject = AsyncMock()
    mock.record_payment = AsyncMock()
    return mock


def _noop_rate_table():
    mock = MagicMock()
    mock.current = AsyncMock(return_value=DEFAULT_SCHEDULE)
    mock.update = AsyncMock()
    return mock


def _noop_sweeper():
    mock = MagicMock()
    mock.sweep_all = AsyncMock(return_value={})
    return mock


@pytest.fixture(autouse=True)
def no_redis():
    """Every cache helper becomes a no-op unless a test patches it itself."""
    with (
        patch("app.routers.booking.get_slots_cache", AsyncMock(return_value=None)),
        patch("app.routers.booking.slots_version", AsyncMock(return_value="0")),
        patch("app.routers.booking.set_slots_cache", AsyncMock()),
        patch("app.routers.booking.invalidate_slots_cache", AsyncMock()),
        patch("app.routers.admin.invalidate_slots_cache", AsyncMock()),
        patch("app.scheduler.invalidate_slots_cache", AsyncMock()),
    ):
        yield


# ---------------------------------------------------------------------------
# App builder, used by all client fixtures
# ---------------------------------------------------------------------------


@dataclass
class Collaborators:
    engine: ReservationEngine
    lifecycle: MagicMock
    rates: MagicMock
    sweeper: MagicMock
    notifications: MagicMock


def build_app(current_user, collaborators: Collaborators) -> FastAPI:
    """
    Fresh FastAPI app with auth/scope dependencies overridden to return
    `current_user` unconditionally, and the core services replaced by
    the given collaborators.
    """
    app = FastAPI()
    app.include_router(booking.router)
    app.include_router(admin.router)

    async def _user():
        return current_user

    for dep in (
        can_read_booking,
        can_write_booking,
        can_admin_write_booking,
        can_admin_settings,
        get_current_user,
    ):
        app.dependency_overrides[dep] = _user

    app.dependency_overrides[get_reservation_engine] = lambda: collaborators.engine
    app.dependency_overrides[get_booking_lifecycle] = lambda: collaborators.lifecycle
    app.dependency_overrides[get_rate_table] = lambda: collaborators.rates
    app.dependency_overrides[get_sweeper] = lambda: collaborators.sweeper
    app.dependency_overrides[get_notifications_client] = (
        lambda: collaborators.notifications
    )
    return app


# ---------------------------------------------------------------------------
# Reusable client fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def collaborators() -> Collaborators:
    return Collaborators(
        engine=_noop_engine(),
        lifecycle=_noop_lifecycle(),
        rates=_noop_rate_table(),
        sweeper=_noop_sweeper(),
        notifications=_noop_notifications_client(),
    )


@pytest.fixture()
def customer_client(collaborators):
    return TestClient(build_app(make_customer(), collaborators), raise_server_exceptions=True)


@pytest.fixture()
def admin_client(collaborators):
    return TestClient(build_app(make_admin(), collaborators), raise_server_exceptions=True)


@pytest.fixture()
def client_factory(collaborators):
    def _make(current_user) -> TestClient:
        return TestClient(
            build_app(current_user, collaborators), raise_server_exceptions=True
        )

    return _make


@pytest.fixture()
def anon_app():
    """
    Bare app with NO dependency overrides.
    Use this when you want real scope/auth deps to run so you can assert 401/403/422.
    """
    app = FastAPI()
    app.include_router(booking.router)
    app.include_router(admin.router)
    return app


# ---------------------------------------------------------------------------
# Core fixtures: real Tortoise schema on in-memory SQLite
# ---------------------------------------------------------------------------


@pytest.fixture()
async def db():
    await Tortoise.init(
        db_url="sqlite://:memory:",
        modules={"models": ["app.models"]},
        use_tz=True,
        timezone="UTC",
    )
    await Tortoise.generate_schemas()
    yield
    await connections.close_all()


@dataclass
class Core:
    clock: FixedClock
    ledger: SlotLedger
    rates: RateTable
    sweeper: ExpirySweeper
    engine: ReservationEngine
    lifecycle: BookingLifecycle


def build_core(clock: FixedClock | None = None) -> Core:
    clock = clock or FixedClock()
    ledger = SlotLedger()
    rates = RateTable()
    sweeper = ExpirySweeper(ledger, clock)
    return Core(
        clock=clock,
        ledger=ledger,
        rates=rates,
        sweeper=sweeper,
        engine=ReservationEngine(ledger, sweeper, rates, clock),
        lifecycle=BookingLifecycle(ledger, sweeper, clock),
    )


@pytest.fixture()
async def core(db) -> Core:
    """Fresh engine stack with its own locks and a frozen clock."""
    core = build_core()
    await core.rates.current()  # seed default rates outside any test transaction
    return core
