"""In-Memory Repository Implementations"""
import asyncio
import copy
from contextlib import asynccontextmanager
from typing import Optional, List, Dict
from uuid import UUID
from datetime import date, datetime

from domain.repositories import (
    AuditRepository, BusinessUnitRepository, PaymentRepository, ReservationRepository,
    RoomRateRepository, RoomRepository, RoomTypeRepository, UnitOfWork,
)
from domain.entities import AuditEntry, BusinessUnit, Payment, Reservation, Room, RoomRate, RoomType
from domain.errors import NotFound, RateConfigurationError
from domain.lifecycle import settled_room_status
from domain.value_objects import DateRange


class InMemoryDatabase:
    """Shared tables behind every in-memory repository"""

    TABLES = ("business_units", "room_types", "rooms", "room_rates", "reservations", "payments", "audit")
    # The audit log is append-only; rollback truncates it instead of copying it.
    SNAPSHOT_TABLES = TABLES[:-1]

    def __init__(self):
        self.business_units: Dict[UUID, BusinessUnit] = {}
        self.room_types: Dict[UUID, RoomType] = {}
        self.rooms: Dict[UUID, Room] = {}
        self.room_rates: Dict[UUID, RoomRate] = {}
        self.reservations: Dict[UUID, Reservation] = {}
        self.payments: Dict[UUID, Payment] = {}
        self.audit: List[AuditEntry] = []
        self.lock = asyncio.Lock()

    def snapshot(self) -> dict:
        snapshot = {name: copy.deepcopy(getattr(self, name)) for name in self.SNAPSHOT_TABLES}
        snapshot["audit"] = len(self.audit)
        return snapshot

    def restore(self, snapshot: dict) -> None:
        """Put every table back in place so existing references stay valid"""
        for name in self.SNAPSHOT_TABLES:
            table = getattr(self, name)
            table.clear()
            table.update(snapshot[name])
        del self.audit[snapshot["audit"]:]

    def clear(self) -> None:
        for name in self.TABLES:
            getattr(self, name).clear()


def _copy(entity):
    return entity.model_copy(deep=True) if entity is not None else None


class InMemoryBusinessUnitRepository(BusinessUnitRepository):
    """In-memory implementation of BusinessUnitRepository"""

    def __init__(self, database: InMemoryDatabase):
        self._storage = database.business_units

    async def save(self, business_unit: BusinessUnit) -> BusinessUnit:
        self._storage[business_unit.business_unit_id] = _copy(business_unit)
        return _copy(business_unit)

    async def find_by_id(self, business_unit_id: UUID) -> Optional[BusinessUnit]:
        return _copy(self._storage.get(business_unit_id))

    async def find_all(self) -> List[BusinessUnit]:
        return [_copy(bu) for bu in self._storage.values()]


class InMemoryRoomTypeRepository(RoomTypeRepository):
    """In-memory implementation of RoomTypeRepository"""

    def __init__(self, database: InMemoryDatabase):
        self._storage = database.room_types

    async def save(self, room_type: RoomType) -> RoomType:
        self._storage[room_type.room_type_id] = _copy(room_type)
        return _copy(room_type)

    async def find_by_id(self, room_type_id: UUID) -> Optional[RoomType]:
        return _copy(self._storage.get(room_type_id))

    async def find_by_business_unit(self, business_unit_id: UUID) -> List[RoomType]:
        found = [rt for rt in self._storage.values() if rt.business_unit_id == business_unit_id]
        return [_copy(rt) for rt in sorted(found, key=lambda rt: (rt.sort_order, rt.name))]

    async def delete(self, room_type_id: UUID) -> bool:
        return self._storage.pop(room_type_id, None) is not None


class InMemoryRoomRepository(RoomRepository):
    """In-memory implementation of RoomRepository"""

    def __init__(self, database: InMemoryDatabase):
        self._storage = database.rooms
        self._reservations = database.reservations

    async def save(self, room: Room) -> Room:
        self._storage[room.room_id] = _copy(room)
        return _copy(room)

    async def find_by_id(self, room_id: UUID) -> Optional[Room]:
        return _copy(self._storage.get(room_id))

    async def find_by_number(self, business_unit_id: UUID, room_number: str) -> Optional[Room]:
        for room in self._storage.values():
            if room.business_unit_id == business_unit_id and room.room_number == room_number:
                return _copy(room)
        return None

    async def find_by_business_unit(self, business_unit_id: UUID) -> List[Room]:
        found = [r for r in self._storage.values() if r.business_unit_id == business_unit_id]
        return [_copy(r) for r in sorted(found, key=lambda r: r.room_number)]

    async def find_by_room_type(self, room_type_id: UUID) -> List[Room]:
        found = [r for r in self._storage.values() if r.room_type_id == room_type_id]
        return [_copy(r) for r in sorted(found, key=lambda r: r.room_number)]

    async def release_expired_out_of_order(self, now: datetime) -> List[Room]:
        released = []
        for room in self._storage.values():
            if room.out_of_order_expired(now):
                holders = [
                    r.status for r in self._reservations.values()
                    if r.is_active() and room.room_id in r.room_ids()
                ]
                room.set_status(settled_room_status(holders), now)
                released.append(_copy(room))
        return released

    async def delete(self, room_id: UUID) -> bool:
        return self._storage.pop(room_id, None) is not None


class InMemoryRoomRateRepository(RoomRateRepository):
    """In-memory implementation of RoomRateRepository"""

    def __init__(self, database: InMemoryDatabase):
        self._storage = database.room_rates

    async def save(self, rate: RoomRate) -> RoomRate:
        self._storage[rate.rate_id] = _copy(rate)
        return _copy(rate)

    async def find_by_id(self, rate_id: UUID) -> Optional[RoomRate]:
        return _copy(self._storage.get(rate_id))

    async def find_by_room_type(self, room_type_id: UUID) -> List[RoomRate]:
        found = [r for r in self._storage.values() if r.room_type_id == room_type_id]
        return [_copy(r) for r in sorted(found, key=lambda r: (r.valid_from, r.name))]

    async def set_default(self, room_type_id: UUID, rate_id: UUID, at: datetime) -> RoomRate:
        target = self._storage.get(rate_id)
        if target is None or target.room_type_id != room_type_id:
            raise NotFound("RoomRate", rate_id)
        if not target.is_active:
            raise RateConfigurationError(f"Inactive rate '{target.name}' cannot be the default")

        for rate in self._storage.values():
            if rate.room_type_id != room_type_id:
                continue
            is_default = rate.rate_id == rate_id
            if rate.is_default != is_default:
                rate.is_default = is_default
                rate.updated_at = at
        return _copy(target)

    async def delete(self, rate_id: UUID) -> bool:
        return self._storage.pop(rate_id, None) is not None


class InMemoryReservationRepository(ReservationRepository):
    """In-memory implementation of ReservationRepository"""

    def __init__(self, database: InMemoryDatabase):
        self._storage = database.reservations

    async def save(self, reservation: Reservation) -> Reservation:
        """Save reservation to memory"""
        self._storage[reservation.reservation_id] = _copy(reservation)
        return _copy(reservation)

    async def find_by_id(self, reservation_id: UUID) -> Optional[Reservation]:
        """Find reservation by ID"""
        return _copy(self._storage.get(reservation_id))

    async def find_by_confirmation_number(self, confirmation_number: str) -> Optional[Reservation]:
        """Find reservation by confirmation number"""
        for reservation in self._storage.values():
            if reservation.confirmation_number == confirmation_number:
                return _copy(reservation)
        return None

    async def find_by_guest_id(self, guest_id: UUID) -> List[Reservation]:
        """Find reservations by guest ID"""
        return [_copy(r) for r in self._storage.values() if r.guest_id == guest_id]

    async def find_by_business_unit(self, business_unit_id: UUID) -> List[Reservation]:
        return [_copy(r) for r in self._storage.values() if r.business_unit_id == business_unit_id]

    async def find_all(self) -> List[Reservation]:
        """Find all reservations"""
        return [_copy(r) for r in self._storage.values()]

    async def find_overlapping_active(
        self,
        room_id: UUID,
        check_in: date,
        check_out: date,
        exclude_reservation_id: Optional[UUID] = None,
    ) -> List[Reservation]:
        wanted = DateRange(check_in=check_in, check_out=check_out)
        return [
            _copy(r) for r in self._storage.values()
            if r.reservation_id != exclude_reservation_id
            and r.is_active()
            and room_id in r.room_ids()
            and r.date_range.overlaps(wanted)
        ]

    async def find_active_for_room(self, room_id: UUID) -> List[Reservation]:
        return [_copy(r) for r in self._storage.values() if r.is_active() and room_id in r.room_ids()]

    async def exists_for_room(self, room_id: UUID) -> bool:
        return any(room_id in r.room_ids() for r in self._storage.values())

    async def exists_for_rate(self, rate_id: UUID) -> bool:
        return any(rate_id in r.rate_ids() for r in self._storage.values())


class InMemoryPaymentRepository(PaymentRepository):
    """In-memory implementation of PaymentRepository"""

    def __init__(self, database: InMemoryDatabase):
        self._storage = database.payments

    async def save(self, payment: Payment) -> Payment:
        self._storage[payment.payment_id] = _copy(payment)
        return _copy(payment)

    async def find_by_id(self, payment_id: UUID) -> Optional[Payment]:
        return _copy(self._storage.get(payment_id))

    async def find_by_reservation(self, reservation_id: UUID) -> List[Payment]:
        return [_copy(p) for p in self._storage.values() if p.reservation_id == reservation_id]

    async def find_all(self) -> List[Payment]:
        return [_copy(p) for p in self._storage.values()]


class InMemoryAuditRepository(AuditRepository):
    """In-memory append-only audit log"""

    def __init__(self, database: InMemoryDatabase):
        self._entries = database.audit

    async def append(self, entry: AuditEntry) -> AuditEntry:
        self._entries.append(entry)
        return entry

    async def find_by_entity(self, entity_id: UUID) -> List[AuditEntry]:
        return [e for e in self._entries if e.entity_id == entity_id]


class InMemoryUnitOfWork(UnitOfWork):
    """Serializes transactions on one lock and rolls back from a snapshot"""

    def __init__(self, database: Optional[InMemoryDatabase] = None):
        self.database = database or InMemoryDatabase()
        self.business_units = InMemoryBusinessUnitRepository(self.database)
        self.room_types = InMemoryRoomTypeRepository(self.database)
        self.rooms = InMemoryRoomRepository(self.database)
        self.room_rates = InMemoryRoomRateRepository(self.database)
        self.reservations = InMemoryReservationRepository(self.database)
        self.payments = InMemoryPaymentRepository(self.database)
        self.audit = InMemoryAuditRepository(self.database)

    @asynccontextmanager
    async def transaction(self, read_only: bool = False):
        # Not reentrant: never open a transaction inside another one.
        async with self.database.lock:
            if read_only:
                yield self
                return
            snapshot = self.database.snapshot()
            try:
                yield self
            except BaseException:
                self.database.restore(snapshot)
                raise
