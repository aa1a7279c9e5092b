"""Shared fixtures: a fixed clock, a fresh in-memory store and a seeded property"""
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from types import SimpleNamespace

import pytest

from application.notifications import LoggingNotificationDispatcher
from application.room_status import RoomStatusCoordinator
from application.services import (
    BusinessUnitService, PaymentService, PricingService, ReservationService, RoomRateService,
    RoomService, RoomTypeService,
)
from domain.auth import User
from domain.enums import Role, RoomCategory
from infrastructure.repositories.in_memory_repositories import InMemoryUnitOfWork

# Monday 2025-03-03, 09:00 UTC
NOW = datetime(2025, 3, 3, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def uow():
    return InMemoryUnitOfWork()


@pytest.fixture
def admin():
    return User(username="admin", role=Role.ADMIN)


@pytest.fixture
def notifier():
    return LoggingNotificationDispatcher()


@pytest.fixture
def coordinator(uow, clock):
    return RoomStatusCoordinator(uow, clock)


@pytest.fixture
def business_unit_service(uow, clock):
    return BusinessUnitService(uow, clock)


@pytest.fixture
def room_type_service(uow, clock):
    return RoomTypeService(uow, clock)


@pytest.fixture
def room_service(uow, clock):
    return RoomService(uow, clock)


@pytest.fixture
def rate_service(uow, clock):
    return RoomRateService(uow, clock)


@pytest.fixture
def pricing_service(uow, clock):
    return PricingService(uow, clock)


@pytest.fixture
def reservation_service(uow, pricing_service, coordinator, notifier, clock):
    return ReservationService(
        uow, pricing=pricing_service, coordinator=coordinator, notifier=notifier, clock=clock,
    )


@pytest.fixture
def payment_service(uow, clock):
    return PaymentService(uow, clock)


@pytest.fixture
async def hotel(admin, business_unit_service, room_type_service, room_service):
    """One UTC property with a Deluxe room type (5000 PHP base rate) and rooms 101 and 102"""
    business_unit = await business_unit_service.create_business_unit(
        admin, name="seaside", display_name="Seaside Hotel", primary_currency="PHP", timezone="UTC",
    )
    deluxe = await room_type_service.create_room_type(
        admin,
        business_unit_id=business_unit.business_unit_id,
        name="deluxe",
        display_name="Deluxe",
        category=RoomCategory.DELUXE,
        max_occupancy=3,
        max_adults=2,
        max_children=1,
        max_infants=1,
        base_rate=Decimal("5000"),
    )
    room_101 = await room_service.create_room(
        admin, business_unit.business_unit_id, deluxe.room_type_id, "101", floor=1,
    )
    room_102 = await room_service.create_room(
        admin, business_unit.business_unit_id, deluxe.room_type_id, "102", floor=1,
    )
    return SimpleNamespace(
        business_unit=business_unit,
        business_unit_id=business_unit.business_unit_id,
        deluxe=deluxe,
        room_101=room_101,
        room_102=room_102,
    )
