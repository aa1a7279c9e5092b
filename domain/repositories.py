"""Domain Repository Interfaces"""
from abc import ABC, abstractmethod
from typing import AsyncContextManager, Optional, List
from uuid import UUID
from datetime import date, datetime

from domain.entities import (
    AuditEntry, BusinessUnit, Payment, Reservation, Room, RoomRate, RoomType,
)


class BusinessUnitRepository(ABC):
    """Repository interface for BusinessUnit"""

    @abstractmethod
    async def save(self, business_unit: BusinessUnit) -> BusinessUnit:
        pass

    @abstractmethod
    async def find_by_id(self, business_unit_id: UUID) -> Optional[BusinessUnit]:
        pass

    @abstractmethod
    async def find_all(self) -> List[BusinessUnit]:
        pass


class RoomTypeRepository(ABC):
    """Repository interface for RoomType"""

    @abstractmethod
    async def save(self, room_type: RoomType) -> RoomType:
        pass

    @abstractmethod
    async def find_by_id(self, room_type_id: UUID) -> Optional[RoomType]:
        pass

    @abstractmethod
    async def find_by_business_unit(self, business_unit_id: UUID) -> List[RoomType]:
        """Room types of a property ordered by sort order"""
        pass

    @abstractmethod
    async def delete(self, room_type_id: UUID) -> bool:
        pass


class RoomRepository(ABC):
    """Repository interface for Room"""

    @abstractmethod
    async def save(self, room: Room) -> Room:
        pass

    @abstractmethod
    async def find_by_id(self, room_id: UUID) -> Optional[Room]:
        pass

    @abstractmethod
    async def find_by_number(self, business_unit_id: UUID, room_number: str) -> Optional[Room]:
        pass

    @abstractmethod
    async def find_by_business_unit(self, business_unit_id: UUID) -> List[Room]:
        pass

    @abstractmethod
    async def find_by_room_type(self, room_type_id: UUID) -> List[Room]:
        pass

    @abstractmethod
    async def release_expired_out_of_order(self, now: datetime) -> List[Room]:
        """Bring back every OUT_OF_ORDER room whose out_of_order_until < now.

        A room returns RESERVED while a confirmed reservation holds it, else
        AVAILABLE. Single conditional update; returns the rooms it changed.
        """
        pass

    @abstractmethod
    async def delete(self, room_id: UUID) -> bool:
        pass


class RoomRateRepository(ABC):
    """Repository interface for RoomRate"""

    @abstractmethod
    async def save(self, rate: RoomRate) -> RoomRate:
        pass

    @abstractmethod
    async def find_by_id(self, rate_id: UUID) -> Optional[RoomRate]:
        pass

    @abstractmethod
    async def find_by_room_type(self, room_type_id: UUID) -> List[RoomRate]:
        pass

    @abstractmethod
    async def set_default(self, room_type_id: UUID, rate_id: UUID, at: datetime) -> RoomRate:
        """Clear is_default on every other rate of the room type and set it on rate_id"""
        pass

    @abstractmethod
    async def delete(self, rate_id: UUID) -> bool:
        pass


class ReservationRepository(ABC):
    """Repository interface for Reservation Aggregate"""

    @abstractmethod
    async def save(self, reservation: Reservation) -> Reservation:
        """Save reservation"""
        pass

    @abstractmethod
    async def find_by_id(self, reservation_id: UUID) -> Optional[Reservation]:
        """Find reservation by ID"""
        pass

    @abstractmethod
    async def find_by_confirmation_number(self, confirmation_number: str) -> Optional[Reservation]:
        """Find reservation by confirmation number"""
        pass

    @abstractmethod
    async def find_by_guest_id(self, guest_id: UUID) -> List[Reservation]:
        """Find reservations by guest ID"""
        pass

    @abstractmethod
    async def find_by_business_unit(self, business_unit_id: UUID) -> List[Reservation]:
        pass

    @abstractmethod
    async def find_all(self) -> List[Reservation]:
        """Find all reservations"""
        pass

    @abstractmethod
    async def find_overlapping_active(
        self,
        room_id: UUID,
        check_in: date,
        check_out: date,
        exclude_reservation_id: Optional[UUID] = None,
    ) -> List[Reservation]:
        """Active reservations holding room_id on any night of [check_in, check_out)"""
        pass

    @abstractmethod
    async def find_active_for_room(self, room_id: UUID) -> List[Reservation]:
        """Active reservations holding room_id on any date"""
        pass

    @abstractmethod
    async def exists_for_room(self, room_id: UUID) -> bool:
        """Any reservation, in any status, references room_id"""
        pass

    @abstractmethod
    async def exists_for_rate(self, rate_id: UUID) -> bool:
        """Any reservation priced a night with rate_id"""
        pass


class PaymentRepository(ABC):
    """Repository interface for Payment Aggregate"""

    @abstractmethod
    async def save(self, payment: Payment) -> Payment:
        pass

    @abstractmethod
    async def find_by_id(self, payment_id: UUID) -> Optional[Payment]:
        pass

    @abstractmethod
    async def find_by_reservation(self, reservation_id: UUID) -> List[Payment]:
        pass

    @abstractmethod
    async def find_all(self) -> List[Payment]:
        pass


class AuditRepository(ABC):
    """Append-only audit trail"""

    @abstractmethod
    async def append(self, entry: AuditEntry) -> AuditEntry:
        pass

    @abstractmethod
    async def find_by_entity(self, entity_id: UUID) -> List[AuditEntry]:
        pass


class UnitOfWork(ABC):
    """Groups repository calls into one atomic transaction"""

    business_units: BusinessUnitRepository
    room_types: RoomTypeRepository
    rooms: RoomRepository
    room_rates: RoomRateRepository
    reservations: ReservationRepository
    payments: PaymentRepository
    audit: AuditRepository

    @abstractmethod
    def transaction(self, read_only: bool = False) -> AsyncContextManager["UnitOfWork"]:
        """Commit on normal exit, roll back everything on exception.

        A ``read_only`` transaction must not write; it skips the rollback bookkeeping.
        """
        pass
