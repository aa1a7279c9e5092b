"""Application Services - Business use cases"""
import logging
from uuid import UUID
from datetime import date, datetime
from decimal import Decimal
from typing import Callable, Dict, List, Optional

from pydantic import BaseModel

from domain.auth import User
from domain.constraints import ConstraintViolation, ensure_bookable, validate_stay
from domain.entities import (
    BusinessUnit, Payment, Reservation, Room, RoomRate, RoomStay, RoomType, WEEKDAY_FIELDS,
)
from domain.enums import (
    LifecycleAction, PaymentMethod, PaymentStatus, RequestType, ReservationSource,
    ReservationStatus, Role, RoomCategory,
)
from domain.errors import (
    HotelDomainError, NotFound, RateConfigurationError,
    ReferentialIntegrityError, InventoryConflict,
)
from domain.lifecycle import REFUNDABLE_PAYMENT_STATES, Transition
from domain.rates import rates_used, select_rates
from domain.repositories import UnitOfWork
from domain.value_objects import (
    DateRange, GuestCount, Money, NightlyRate, PaymentLineItem, SpecialRequest,
)
from application.notifications import (
    LoggingNotificationDispatcher, NotificationDispatcher, ReservationEvent, notify_safely,
)
from application.room_status import RoomStatusCoordinator
from application.support import (
    CATALOG_ROLES, FRONT_DESK_ROLES, Clock, audit, authorize, utc_now,
)

logger = logging.getLogger(__name__)


async def _business_unit_or_404(uow: UnitOfWork, business_unit_id: UUID) -> BusinessUnit:
    business_unit = await uow.business_units.find_by_id(business_unit_id)
    if business_unit is None:
        raise NotFound("BusinessUnit", business_unit_id)
    return business_unit


async def _room_type_or_404(uow: UnitOfWork, room_type_id: UUID) -> RoomType:
    room_type = await uow.room_types.find_by_id(room_type_id)
    if room_type is None:
        raise NotFound("RoomType", room_type_id)
    return room_type


class BusinessUnitService:
    """Service for properties"""

    def __init__(self, uow: UnitOfWork, clock: Clock = utc_now):
        self.uow = uow
        self.clock = clock

    async def create_business_unit(
        self,
        principal: User,
        name: str,
        display_name: str,
        primary_currency: str = "PHP",
        timezone: str = "Asia/Manila",
        tax_rate: Optional[Decimal] = None,
        service_fee_rate: Optional[Decimal] = None,
    ) -> BusinessUnit:
        authorize(principal, None, Role.ADMIN)
        business_unit = BusinessUnit(
            name=name,
            display_name=display_name,
            primary_currency=primary_currency.upper(),
            timezone=timezone,
            tax_rate=tax_rate,
            service_fee_rate=service_fee_rate,
            created_at=self.clock(),
        )
        async with self.uow.transaction() as uow:
            saved = await uow.business_units.save(business_unit)
        logger.info("Business unit %s created by %s", saved.name, principal.username)
        return saved

    async def get_business_unit(self, principal: User, business_unit_id: UUID) -> Optional[BusinessUnit]:
        async with self.uow.transaction(read_only=True) as uow:
            business_unit = await uow.business_units.find_by_id(business_unit_id)
        if business_unit is not None:
            authorize(principal, business_unit_id)
        return business_unit

    async def list_business_units(self, principal: User) -> List[BusinessUnit]:
        async with self.uow.transaction(read_only=True) as uow:
            units = await uow.business_units.find_all()
        return [bu for bu in units if principal.can_access(bu.business_unit_id)]


class RoomTypeService:
    """Service for room type catalog use cases"""

    UPDATABLE = {
        "name", "display_name", "description", "category", "max_occupancy", "max_adults",
        "max_children", "max_infants", "base_rate", "sort_order",
    }

    def __init__(self, uow: UnitOfWork, clock: Clock = utc_now):
        self.uow = uow
        self.clock = clock

    async def create_room_type(
        self,
        principal: User,
        business_unit_id: UUID,
        name: str,
        display_name: str,
        description: Optional[str] = None,
        category: RoomCategory = RoomCategory.STANDARD,
        max_occupancy: int = 2,
        max_adults: int = 2,
        max_children: int = 0,
        max_infants: int = 0,
        base_rate: Optional[Decimal] = None,
        sort_order: int = 0,
    ) -> RoomType:
        authorize(principal, business_unit_id, *CATALOG_ROLES)
        now = self.clock()
        async with self.uow.transaction() as uow:
            business_unit = await _business_unit_or_404(uow, business_unit_id)
            currency = business_unit.primary_currency
            room_type = RoomType(
                business_unit_id=business_unit_id,
                name=name,
                display_name=display_name,
                description=description,
                category=category,
                max_occupancy=max_occupancy,
                max_adults=max_adults,
                max_children=max_children,
                max_infants=max_infants,
                base_rate=Money(amount=base_rate, currency=currency) if base_rate is not None else None,
                currency=currency,
                sort_order=sort_order,
                created_at=now,
                updated_at=now,
            )
            saved = await uow.room_types.save(room_type)
            await audit(uow, "RoomType", saved.room_type_id, "CREATED", principal, now)
        return saved

    async def get_room_type(self, principal: User, room_type_id: UUID) -> Optional[RoomType]:
        async with self.uow.transaction(read_only=True) as uow:
            room_type = await uow.room_types.find_by_id(room_type_id)
        if room_type is not None:
            authorize(principal, room_type.business_unit_id)
        return room_type

    async def list_room_types(self, principal: User, business_unit_id: UUID) -> List[RoomType]:
        authorize(principal, business_unit_id)
        async with self.uow.transaction(read_only=True) as uow:
            return await uow.room_types.find_by_business_unit(business_unit_id)

    async def update_room_type(self, principal: User, room_type_id: UUID, **changes) -> Optional[RoomType]:
        """Apply a partial update; unknown fields are rejected"""
        unknown = set(changes) - self.UPDATABLE
        if unknown:
            raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")

        now = self.clock()
        async with self.uow.transaction() as uow:
            room_type = await uow.room_types.find_by_id(room_type_id)
            if room_type is None:
                return None
            authorize(principal, room_type.business_unit_id, *CATALOG_ROLES)

            if changes.get("base_rate") is not None and not isinstance(changes["base_rate"], Money):
                changes["base_rate"] = Money(amount=changes["base_rate"], currency=room_type.currency)
            data = room_type.model_dump()
            data.update(changes, updated_at=now)
            updated = RoomType.model_validate(data)
            return await uow.room_types.save(updated)

    async def set_room_type_active(self, principal: User, room_type_id: UUID, is_active: bool) -> Optional[RoomType]:
        now = self.clock()
        async with self.uow.transaction() as uow:
            room_type = await uow.room_types.find_by_id(room_type_id)
            if room_type is None:
                return None
            authorize(principal, room_type.business_unit_id, *CATALOG_ROLES)
            room_type.set_active(is_active, now)
            await audit(
                uow, "RoomType", room_type_id, "ACTIVATED" if is_active else "DEACTIVATED", principal, now,
            )
            return await uow.room_types.save(room_type)

    async def delete_room_type(self, principal: User, room_type_id: UUID) -> bool:
        """Delete a room type that no room or rate refers to"""
        async with self.uow.transaction() as uow:
            room_type = await uow.room_types.find_by_id(room_type_id)
            if room_type is None:
                return False
            authorize(principal, room_type.business_unit_id, *CATALOG_ROLES)
            if await uow.rooms.find_by_room_type(room_type_id):
                raise ReferentialIntegrityError(f"Room type '{room_type.name}' still has rooms; deactivate it instead")
            if await uow.room_rates.find_by_room_type(room_type_id):
                raise ReferentialIntegrityError(f"Room type '{room_type.name}' still has rates; deactivate it instead")
            await audit(uow, "RoomType", room_type_id, "DELETED", principal, self.clock())
            return await uow.room_types.delete(room_type_id)


class RoomService:
    """Service for physical rooms"""

    UPDATABLE = {"room_number", "floor", "wing", "notes", "room_type_id"}

    def __init__(self, uow: UnitOfWork, clock: Clock = utc_now):
        self.uow = uow
        self.clock = clock

    async def create_room(
        self,
        principal: User,
        business_unit_id: UUID,
        room_type_id: UUID,
        room_number: str,
        floor: Optional[int] = None,
        wing: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Room:
        authorize(principal, business_unit_id, *CATALOG_ROLES)
        now = self.clock()
        async with self.uow.transaction() as uow:
            await _business_unit_or_404(uow, business_unit_id)
            room_type = await _room_type_or_404(uow, room_type_id)
            if room_type.business_unit_id != business_unit_id:
                raise ValueError("Room type belongs to another business unit")
            if await uow.rooms.find_by_number(business_unit_id, room_number):
                raise ValueError(f"Room number {room_number} already exists")

            room = Room(
                business_unit_id=business_unit_id,
                room_type_id=room_type_id,
                room_number=room_number,
                floor=floor,
                wing=wing,
                notes=notes,
                created_at=now,
                updated_at=now,
            )
            saved = await uow.rooms.save(room)
            await audit(uow, "Room", saved.room_id, "CREATED", principal, now)
        return saved

    async def get_room(self, principal: User, room_id: UUID) -> Optional[Room]:
        async with self.uow.transaction(read_only=True) as uow:
            room = await uow.rooms.find_by_id(room_id)
        if room is not None:
            authorize(principal, room.business_unit_id)
        return room

    async def list_rooms(
        self,
        principal: User,
        business_unit_id: UUID,
        room_type_id: Optional[UUID] = None,
    ) -> List[Room]:
        authorize(principal, business_unit_id)
        async with self.uow.transaction(read_only=True) as uow:
            rooms = await uow.rooms.find_by_business_unit(business_unit_id)
        if room_type_id is not None:
            rooms = [r for r in rooms if r.room_type_id == room_type_id]
        return rooms

    async def update_room(self, principal: User, room_id: UUID, **changes) -> Optional[Room]:
        unknown = set(changes) - self.UPDATABLE
        if unknown:
            raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")

        now = self.clock()
        async with self.uow.transaction() as uow:
            room = await uow.rooms.find_by_id(room_id)
            if room is None:
                return None
            authorize(principal, room.business_unit_id, *CATALOG_ROLES)

            number = changes.get("room_number")
            if number and number != room.room_number:
                if await uow.rooms.find_by_number(room.business_unit_id, number):
                    raise ValueError(f"Room number {number} already exists")

            new_type_id = changes.get("room_type_id")
            if new_type_id and new_type_id != room.room_type_id:
                room_type = await _room_type_or_404(uow, new_type_id)
                if room_type.business_unit_id != room.business_unit_id:
                    raise ValueError("Room type belongs to another business unit")
                if await uow.reservations.find_active_for_room(room_id):
                    raise InventoryConflict(room_id, reason="active reservations are booked on its current type")

            data = room.model_dump()
            data.update(changes, updated_at=now, version=room.version + 1)
            return await uow.rooms.save(Room.model_validate(data))

    async def set_room_active(self, principal: User, room_id: UUID, is_active: bool) -> Optional[Room]:
        """Take a room out of inventory, or put it back"""
        now = self.clock()
        async with self.uow.transaction() as uow:
            room = await uow.rooms.find_by_id(room_id)
            if room is None:
                return None
            authorize(principal, room.business_unit_id, *CATALOG_ROLES)
            if not is_active:
                holders = await uow.reservations.find_active_for_room(room_id)
                if holders:
                    raise InventoryConflict(room_id, holders[0].reservation_id)
            room.is_active = is_active
            room.updated_at = now
            room.version += 1
            await audit(uow, "Room", room_id, "ACTIVATED" if is_active else "DEACTIVATED", principal, now)
            return await uow.rooms.save(room)

    async def delete_room(self, principal: User, room_id: UUID) -> bool:
        async with self.uow.transaction() as uow:
            room = await uow.rooms.find_by_id(room_id)
            if room is None:
                return False
            authorize(principal, room.business_unit_id, *CATALOG_ROLES)
            if await uow.reservations.exists_for_room(room_id):
                raise ReferentialIntegrityError(
                    f"Room {room.room_number} is referenced by reservations; deactivate it instead"
                )
            await audit(uow, "Room", room_id, "DELETED", principal, self.clock())
            return await uow.rooms.delete(room_id)


class RoomRateService:
    """Service for room rates and the default rate of each room type"""

    UPDATABLE = {
        "name", "description", "base_rate", "valid_from", "valid_to", "min_stay", "max_stay",
        "min_advance", "max_advance", "is_default", *WEEKDAY_FIELDS,
    }

    def __init__(self, uow: UnitOfWork, clock: Clock = utc_now):
        self.uow = uow
        self.clock = clock

    async def create_rate(
        self,
        principal: User,
        room_type_id: UUID,
        name: str,
        base_rate: Decimal,
        valid_from: date,
        valid_to: Optional[date] = None,
        currency: Optional[str] = None,
        description: Optional[str] = None,
        weekdays: Optional[Dict[str, bool]] = None,
        is_default: bool = False,
        is_active: bool = True,
        min_stay: int = 1,
        max_stay: Optional[int] = None,
        min_advance: Optional[int] = None,
        max_advance: Optional[int] = None,
    ) -> RoomRate:
        unknown_days = set(weekdays or {}) - set(WEEKDAY_FIELDS)
        if unknown_days:
            raise ValueError(f"Unknown weekdays: {', '.join(sorted(unknown_days))}")

        now = self.clock()
        async with self.uow.transaction() as uow:
            room_type = await _room_type_or_404(uow, room_type_id)
            authorize(principal, room_type.business_unit_id, *CATALOG_ROLES)
            if currency is not None and currency.upper() != room_type.currency:
                raise RateConfigurationError(
                    f"Rate currency {currency.upper()} does not match room type currency {room_type.currency}"
                )

            rate = RoomRate(
                room_type_id=room_type_id,
                name=name,
                description=description,
                base_rate=Money(amount=base_rate, currency=room_type.currency),
                valid_from=valid_from,
                valid_to=valid_to,
                is_active=is_active,
                min_stay=min_stay,
                max_stay=max_stay,
                min_advance=min_advance,
                max_advance=max_advance,
                created_at=now,
                updated_at=now,
                **(weekdays or {}),
            )
            rate.validate_configuration()
            saved = await uow.room_rates.save(rate)
            if is_default:
                saved = await uow.room_rates.set_default(room_type_id, saved.rate_id, now)
            await audit(uow, "RoomRate", saved.rate_id, "CREATED", principal, now, is_default=is_default)
        logger.info("Rate '%s' created for room type %s by %s", saved.name, room_type_id, principal.username)
        return saved

    async def get_rate(self, principal: User, rate_id: UUID) -> Optional[RoomRate]:
        async with self.uow.transaction(read_only=True) as uow:
            rate = await uow.room_rates.find_by_id(rate_id)
            if rate is not None:
                room_type = await _room_type_or_404(uow, rate.room_type_id)
                authorize(principal, room_type.business_unit_id)
        return rate

    async def list_rates(self, principal: User, room_type_id: UUID) -> List[RoomRate]:
        async with self.uow.transaction(read_only=True) as uow:
            room_type = await _room_type_or_404(uow, room_type_id)
            authorize(principal, room_type.business_unit_id)
            return await uow.room_rates.find_by_room_type(room_type_id)

    async def update_rate(self, principal: User, rate_id: UUID, **changes) -> Optional[RoomRate]:
        """Partial update; priced reservations keep their nightly snapshots"""
        unknown = set(changes) - self.UPDATABLE
        if unknown:
            raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")

        now = self.clock()
        async with self.uow.transaction() as uow:
            rate = await uow.room_rates.find_by_id(rate_id)
            if rate is None:
                return None
            room_type = await _room_type_or_404(uow, rate.room_type_id)
            authorize(principal, room_type.business_unit_id, *CATALOG_ROLES)

            make_default = changes.pop("is_default", None)
            if changes.get("base_rate") is not None and not isinstance(changes["base_rate"], Money):
                changes["base_rate"] = Money(amount=changes["base_rate"], currency=room_type.currency)
            data = rate.model_dump()
            data.update(changes, updated_at=now)
            if make_default is False:
                data["is_default"] = False
            updated = RoomRate.model_validate(data)
            if updated.base_rate.currency != room_type.currency:
                raise RateConfigurationError("Rate currency must match room type currency")
            updated.validate_configuration()

            saved = await uow.room_rates.save(updated)
            if make_default:
                saved = await uow.room_rates.set_default(rate.room_type_id, rate_id, now)
            await audit(uow, "RoomRate", rate_id, "UPDATED", principal, now, fields=",".join(sorted(changes)))
            return saved

    async def set_rate_active(self, principal: User, rate_id: UUID, is_active: bool) -> Optional[RoomRate]:
        """Activate (re-validating the rate) or deactivate; deactivating clears default"""
        now = self.clock()
        async with self.uow.transaction() as uow:
            rate = await uow.room_rates.find_by_id(rate_id)
            if rate is None:
                return None
            room_type = await _room_type_or_404(uow, rate.room_type_id)
            authorize(principal, room_type.business_unit_id, *CATALOG_ROLES)
            rate.set_active(is_active, now)
            if not is_active:
                rate.is_default = False
            await audit(uow, "RoomRate", rate_id, "ACTIVATED" if is_active else "DEACTIVATED", principal, now)
            return await uow.room_rates.save(rate)

    async def set_default_rate(self, principal: User, rate_id: UUID) -> Optional[RoomRate]:
        """Make rate_id the only default rate of its room type"""
        now = self.clock()
        async with self.uow.transaction() as uow:
            rate = await uow.room_rates.find_by_id(rate_id)
            if rate is None:
                return None
            room_type = await _room_type_or_404(uow, rate.room_type_id)
            authorize(principal, room_type.business_unit_id, *CATALOG_ROLES)
            saved = await uow.room_rates.set_default(rate.room_type_id, rate_id, now)
            await audit(uow, "RoomRate", rate_id, "SET_DEFAULT", principal, now)
        logger.info("Rate '%s' is now the default for room type %s", saved.name, saved.room_type_id)
        return saved

    async def delete_rate(self, principal: User, rate_id: UUID) -> bool:
        async with self.uow.transaction() as uow:
            rate = await uow.room_rates.find_by_id(rate_id)
            if rate is None:
                return False
            room_type = await _room_type_or_404(uow, rate.room_type_id)
            authorize(principal, room_type.business_unit_id, *CATALOG_ROLES)
            if await uow.reservations.exists_for_rate(rate_id):
                raise ReferentialIntegrityError(
                    f"Rate '{rate.name}' has priced reservations; deactivate it instead"
                )
            await audit(uow, "RoomRate", rate_id, "DELETED", principal, self.clock())
            return await uow.room_rates.delete(rate_id)


class StayQuote(BaseModel):
    """Priced stay for one room type, with any booking rule violations"""
    room_type_id: UUID
    date_range: DateRange
    nights: int
    nightly_rates: List[NightlyRate]
    subtotal: Money
    taxes: Money
    service_fee: Money
    total: Money
    violations: List[ConstraintViolation] = []

    @property
    def bookable(self) -> bool:
        return not self.violations


class PricingService:
    """Prices stays from the rate calendar and checks the booking rules"""

    def __init__(self, uow: UnitOfWork, clock: Clock = utc_now, max_stay_nights: int = 30):
        self.uow = uow
        self.clock = clock
        self.max_stay_nights = max_stay_nights

    async def price_stay(
        self,
        uow: UnitOfWork,
        business_unit: BusinessUnit,
        room_type: RoomType,
        date_range: DateRange,
        guest_count: GuestCount,
        room_id: Optional[UUID] = None,
    ):
        """Price one room inside the caller's transaction; returns (stay, violations)"""
        if date_range.nights() > self.max_stay_nights:
            raise ValueError(f"Stays are limited to {self.max_stay_nights} nights")
        if room_type.business_unit_id != business_unit.business_unit_id:
            raise ValueError("Room type belongs to another business unit")
        if not room_type.is_active:
            raise ValueError(f"Room type '{room_type.name}' is not bookable")

        rates = await uow.room_rates.find_by_room_type(room_type.room_type_id)
        nightly = select_rates(room_type, rates, date_range)
        today = business_unit.local_today(self.clock())
        violations = validate_stay(date_range, today, rates_used(rates, nightly), room_type, guest_count)
        stay = RoomStay.price(
            room_type_id=room_type.room_type_id,
            nightly_rates=nightly,
            currency=room_type.currency,
            tax_rate=business_unit.tax_rate,
            service_fee_rate=business_unit.service_fee_rate,
            room_id=room_id,
        )
        return stay, violations

    async def quote(
        self,
        principal: User,
        room_type_id: UUID,
        check_in: date,
        check_out: date,
        adults: int = 1,
        children: int = 0,
        infants: int = 0,
    ) -> StayQuote:
        date_range = DateRange(check_in=check_in, check_out=check_out)
        guest_count = GuestCount(adults=adults, children=children, infants=infants)
        async with self.uow.transaction(read_only=True) as uow:
            room_type = await _room_type_or_404(uow, room_type_id)
            authorize(principal, room_type.business_unit_id)
            business_unit = await _business_unit_or_404(uow, room_type.business_unit_id)
            stay, violations = await self.price_stay(uow, business_unit, room_type, date_range, guest_count)

        return StayQuote(
            room_type_id=room_type_id,
            date_range=date_range,
            nights=date_range.nights(),
            nightly_rates=stay.nightly_rates,
            subtotal=stay.subtotal,
            taxes=stay.taxes,
            service_fee=stay.service_fee,
            total=stay.total,
            violations=violations,
        )


class RefundEligibility(BaseModel):
    reservation_id: UUID
    eligible: bool
    reason: str
    payment_ids: List[UUID] = []


class ReservationService:
    """Service for Reservation business use cases"""

    def __init__(
        self,
        uow: UnitOfWork,
        pricing: Optional[PricingService] = None,
        coordinator: Optional[RoomStatusCoordinator] = None,
        notifier: Optional[NotificationDispatcher] = None,
        clock: Clock = utc_now,
    ):
        self.uow = uow
        self.clock = clock
        self.pricing = pricing or PricingService(uow, clock)
        self.coordinator = coordinator or RoomStatusCoordinator(uow, clock)
        self.notifier = notifier or LoggingNotificationDispatcher()

    async def create_reservation(
        self,
        principal: User,
        business_unit_id: UUID,
        guest_id: UUID,
        check_in: date,
        check_out: date,
        rooms: List[dict],
        adults: int = 1,
        children: int = 0,
        infants: int = 0,
        special_requests: Optional[List[dict]] = None,
        reservation_source: ReservationSource = ReservationSource.WEBSITE,
        initial_status: ReservationStatus = ReservationStatus.PENDING,
        internal_notes: Optional[str] = None,
    ) -> Reservation:
        """Price, validate and store a new reservation.

        ``rooms`` holds one ``{"room_type_id": ..., "room_id": ...}`` entry per
        room booked; ``room_id`` is optional except for walk-ins. Nothing is
        stored when any booking rule is violated.
        """
        authorize(principal, business_unit_id, *FRONT_DESK_ROLES)
        if not rooms:
            raise ValueError("At least one room is required")
        date_range = DateRange(check_in=check_in, check_out=check_out)
        guest_count = GuestCount(adults=adults, children=children, infants=infants)
        requests = [self._parse_special_request(req) for req in special_requests or []]
        now = self.clock()

        try:
            async with self.uow.transaction() as uow:
                business_unit = await _business_unit_or_404(uow, business_unit_id)
                if not business_unit.is_active:
                    raise ValueError(f"Business unit '{business_unit.name}' is not accepting reservations")
                walk_in = initial_status == ReservationStatus.WALKED_IN
                if walk_in and check_in != business_unit.local_today(now):
                    raise ValueError("Walk-ins must check in today")

                stays: List[RoomStay] = []
                violations: List[ConstraintViolation] = []
                for requested in rooms:
                    room_type = await _room_type_or_404(uow, UUID(str(requested["room_type_id"])))
                    room_id = requested.get("room_id")
                    if walk_in and room_id is None:
                        raise ValueError("Walk-ins need a room assigned to every stay")
                    stay, stay_violations = await self.pricing.price_stay(
                        uow, business_unit, room_type, date_range, guest_count,
                        room_id=UUID(str(room_id)) if room_id else None,
                    )
                    stays.append(stay)
                    for violation in stay_violations:
                        if violation not in violations:
                            violations.append(violation)
                ensure_bookable(violations)

                confirmation_number = Reservation.generate_confirmation_number(now)
                while await uow.reservations.find_by_confirmation_number(confirmation_number):
                    confirmation_number = Reservation.generate_confirmation_number(now)

                reservation = Reservation.create(
                    business_unit_id=business_unit_id,
                    guest_id=guest_id,
                    date_range=date_range,
                    guest_count=guest_count,
                    room_stays=stays,
                    reservation_source=ReservationSource.WALK_IN if walk_in else reservation_source,
                    at=now,
                    initial_status=initial_status,
                    special_requests=requests,
                    internal_notes=internal_notes,
                    created_by=principal.username,
                    confirmation_number=confirmation_number,
                )
                await self.coordinator.ensure_reservation_assignable(uow, reservation)
                if walk_in:
                    await self.coordinator.occupy_for_walk_in(uow, reservation, now)
                saved = await uow.reservations.save(reservation)
                await audit(
                    uow, "Reservation", saved.reservation_id, "CREATED", principal, now,
                    to_status=saved.status, confirmation_number=saved.confirmation_number,
                )
        except (HotelDomainError, ValueError) as e:
            logger.warning("Reservation for guest %s rejected for %s: %s", guest_id, principal.username, e)
            raise

        logger.info(
            "Reservation %s (%s) created as %s by %s",
            saved.reservation_id, saved.confirmation_number, saved.status.value, principal.username,
        )
        return saved

    @staticmethod
    def _parse_special_request(req: dict) -> SpecialRequest:
        raw_type = req.get("request_type") or req.get("type") or ""
        try:
            request_type = RequestType(str(getattr(raw_type, "value", raw_type)).upper())
        except ValueError:
            raise ValueError(f"Invalid special request type '{raw_type}'")
        return SpecialRequest(request_type=request_type, description=req.get("description", ""))

    async def get_reservation(self, principal: User, reservation_id: UUID) -> Optional[Reservation]:
        """Get reservation by ID"""
        async with self.uow.transaction(read_only=True) as uow:
            reservation = await uow.reservations.find_by_id(reservation_id)
        if reservation is not None:
            authorize(principal, reservation.business_unit_id)
        return reservation

    async def get_reservation_by_confirmation_number(self, principal: User, confirmation_number: str) -> Optional[Reservation]:
        """Get reservation by confirmation number"""
        async with self.uow.transaction(read_only=True) as uow:
            reservation = await uow.reservations.find_by_confirmation_number(confirmation_number)
        if reservation is not None:
            authorize(principal, reservation.business_unit_id)
        return reservation

    async def list_reservations(
        self,
        principal: User,
        business_unit_id: Optional[UUID] = None,
        status: Optional[ReservationStatus] = None,
        guest_id: Optional[UUID] = None,
    ) -> List[Reservation]:
        """Reservations visible to the principal, newest first"""
        if business_unit_id is not None:
            authorize(principal, business_unit_id)
        async with self.uow.transaction(read_only=True) as uow:
            if business_unit_id is not None:
                reservations = await uow.reservations.find_by_business_unit(business_unit_id)
            elif guest_id is not None:
                reservations = await uow.reservations.find_by_guest_id(guest_id)
            else:
                reservations = await uow.reservations.find_all()

        reservations = [r for r in reservations if principal.can_access(r.business_unit_id)]
        if status is not None:
            reservations = [r for r in reservations if r.status == status]
        if guest_id is not None:
            reservations = [r for r in reservations if r.guest_id == guest_id]
        return sorted(reservations, key=lambda r: r.created_at, reverse=True)

    # ==================== LIFECYCLE ====================

    async def confirm_reservation(self, principal: User, reservation_id: UUID) -> Optional[Reservation]:
        """Confirm and hold the assigned rooms; a no-op when already confirmed"""
        return await self._transition(
            principal, reservation_id, LifecycleAction.CONFIRM,
            lambda reservation, today, now: reservation.confirm(now),
        )

    async def check_in_guest(self, principal: User, reservation_id: UUID) -> Optional[Reservation]:
        """Check in guest"""
        return await self._transition(
            principal, reservation_id, LifecycleAction.CHECK_IN,
            lambda reservation, today, now: reservation.check_in(today, now),
        )

    async def check_out_guest(self, principal: User, reservation_id: UUID) -> Optional[Reservation]:
        """Check out guest; the room goes to housekeeping"""
        return await self._transition(
            principal, reservation_id, LifecycleAction.CHECK_OUT,
            lambda reservation, today, now: reservation.check_out(now),
        )

    async def cancel_reservation(self, principal: User, reservation_id: UUID, reason: str) -> Optional[Reservation]:
        """Cancel reservation and release its rooms; a no-op when already cancelled"""
        return await self._transition(
            principal, reservation_id, LifecycleAction.CANCEL,
            lambda reservation, today, now: reservation.cancel(reason, now),
            reason=reason,
        )

    async def mark_no_show(self, principal: User, reservation_id: UUID) -> Optional[Reservation]:
        """Mark reservation as no-show"""
        return await self._transition(
            principal, reservation_id, LifecycleAction.NO_SHOW,
            lambda reservation, today, now: reservation.mark_no_show(today, now),
        )

    async def _transition(
        self,
        principal: User,
        reservation_id: UUID,
        action: LifecycleAction,
        mutate: Callable[[Reservation, date, datetime], Optional[Transition]],
        reason: Optional[str] = None,
    ) -> Optional[Reservation]:
        now = self.clock()
        transition = None
        try:
            async with self.uow.transaction() as uow:
                reservation = await uow.reservations.find_by_id(reservation_id)
                if reservation is None:
                    return None
                authorize(principal, reservation.business_unit_id, *FRONT_DESK_ROLES)
                business_unit = await _business_unit_or_404(uow, reservation.business_unit_id)
                previous = reservation.status

                transition = mutate(reservation, business_unit.local_today(now), now)
                if transition is None:
                    return reservation

                if transition.room_effect.hold:
                    await self.coordinator.ensure_reservation_assignable(uow, reservation)
                await self.coordinator.apply_transition(uow, reservation, transition, now)
                saved = await uow.reservations.save(reservation)
                await audit(
                    uow, "Reservation", reservation_id, action.value, principal, now,
                    from_status=previous, to_status=saved.status, reason=reason,
                )
        except (HotelDomainError, ValueError) as e:
            logger.warning(
                "%s of reservation %s by %s failed: %s", action.value, reservation_id, principal.username, e,
            )
            raise

        logger.info(
            "Reservation %s %s -> %s by %s",
            reservation_id, previous.value, saved.status.value, principal.username,
        )
        if transition.notify:
            await notify_safely(self.notifier, ReservationEvent(
                reservation_id=saved.reservation_id,
                confirmation_number=saved.confirmation_number,
                status=saved.status,
                guest_id=saved.guest_id,
                occurred_at=now,
            ))
        return saved

    # ==================== MODIFICATIONS ====================

    async def assign_room(
        self,
        principal: User,
        reservation_id: UUID,
        stay_id: UUID,
        room_id: UUID,
    ) -> Optional[Reservation]:
        """Put a physical room on one of the reservation's stays"""
        now = self.clock()
        async with self.uow.transaction() as uow:
            reservation = await uow.reservations.find_by_id(reservation_id)
            if reservation is None:
                return None
            authorize(principal, reservation.business_unit_id, *FRONT_DESK_ROLES)
            stay = reservation.find_stay(stay_id)
            if stay is None:
                raise ValueError(f"Room stay {stay_id} is not part of this reservation")

            old_room_id = stay.room_id
            room = await self.coordinator.ensure_assignable(
                uow, reservation, room_id, stay.room_type_id, exclude_stay_id=stay_id,
            )
            reservation.assign_room(stay_id, room_id, now)
            if reservation.status == ReservationStatus.CONFIRMED:
                await self.coordinator.move_hold(uow, reservation, old_room_id, room, now)
            saved = await uow.reservations.save(reservation)
            await audit(
                uow, "Reservation", reservation_id, "ASSIGN_ROOM", principal, now,
                room_id=room_id, previous_room_id=old_room_id,
            )
        logger.info("Room %s assigned to reservation %s by %s", room.room_number, reservation_id, principal.username)
        return saved

    async def add_special_request(
        self,
        principal: User,
        reservation_id: UUID,
        request_type: RequestType,
        description: str,
    ) -> Optional[Reservation]:
        """Add special request to reservation"""
        now = self.clock()
        async with self.uow.transaction() as uow:
            reservation = await uow.reservations.find_by_id(reservation_id)
            if reservation is None:
                return None
            authorize(principal, reservation.business_unit_id, *FRONT_DESK_ROLES)
            reservation.add_special_request(request_type, description, now)
            return await uow.reservations.save(reservation)

    async def update_internal_notes(self, principal: User, reservation_id: UUID, notes: Optional[str]) -> Optional[Reservation]:
        now = self.clock()
        async with self.uow.transaction() as uow:
            reservation = await uow.reservations.find_by_id(reservation_id)
            if reservation is None:
                return None
            authorize(principal, reservation.business_unit_id, *FRONT_DESK_ROLES)
            reservation.update_internal_notes(notes, now)
            return await uow.reservations.save(reservation)

    # ==================== QUERIES ====================

    async def check_refund_eligibility(self, principal: User, reservation_id: UUID) -> Optional[RefundEligibility]:
        """A cancelled reservation with a settled payment can be refunded"""
        async with self.uow.transaction(read_only=True) as uow:
            reservation = await uow.reservations.find_by_id(reservation_id)
            if reservation is None:
                return None
            authorize(principal, reservation.business_unit_id)
            payments = await uow.payments.find_by_reservation(reservation_id)

        refundable = [p.payment_id for p in payments if p.status in REFUNDABLE_PAYMENT_STATES]
        if reservation.status != ReservationStatus.CANCELLED:
            return RefundEligibility(
                reservation_id=reservation_id, eligible=False,
                reason=f"Reservation is {reservation.status.value}, not CANCELLED",
            )
        if not refundable:
            return RefundEligibility(
                reservation_id=reservation_id, eligible=False,
                reason="No succeeded or paid payment to refund",
            )
        return RefundEligibility(
            reservation_id=reservation_id, eligible=True,
            reason="Cancelled reservation with a settled payment", payment_ids=refundable,
        )

    async def get_dashboard_stats(self, principal: User, business_unit_id: UUID) -> Dict[str, int]:
        """Front desk counters for the property's current day"""
        authorize(principal, business_unit_id)
        async with self.uow.transaction(read_only=True) as uow:
            business_unit = await _business_unit_or_404(uow, business_unit_id)
            reservations = await uow.reservations.find_by_business_unit(business_unit_id)
        today = business_unit.local_today(self.clock())

        arriving = (ReservationStatus.CONFIRMED, ReservationStatus.CHECKED_IN)
        gone = (ReservationStatus.CANCELLED, ReservationStatus.NO_SHOW)
        return {
            "total": len(reservations),
            "todays_check_ins": sum(
                1 for r in reservations if r.date_range.check_in == today and r.status in arriving
            ),
            "todays_check_outs": sum(
                1 for r in reservations if r.date_range.check_out == today and r.status not in gone
            ),
            "pending": sum(1 for r in reservations if r.status == ReservationStatus.PENDING),
            "in_house": sum(
                1 for r in reservations
                if r.status in (ReservationStatus.CHECKED_IN, ReservationStatus.WALKED_IN)
            ),
        }


class PaymentService:
    """Service for payments and refunds"""

    def __init__(self, uow: UnitOfWork, clock: Clock = utc_now):
        self.uow = uow
        self.clock = clock

    async def create_payment(
        self,
        principal: User,
        business_unit_id: UUID,
        amount: Decimal,
        currency: Optional[str] = None,
        method: PaymentMethod = PaymentMethod.CARD,
        reservation_id: Optional[UUID] = None,
        provider: Optional[str] = None,
        provider_reference: Optional[str] = None,
        line_items: Optional[List[dict]] = None,
    ) -> Payment:
        authorize(principal, business_unit_id, *FRONT_DESK_ROLES)
        now = self.clock()
        async with self.uow.transaction() as uow:
            business_unit = await _business_unit_or_404(uow, business_unit_id)
            currency = (currency or business_unit.primary_currency).upper()
            if reservation_id is not None:
                reservation = await uow.reservations.find_by_id(reservation_id)
                if reservation is None:
                    raise NotFound("Reservation", reservation_id)
                if reservation.business_unit_id != business_unit_id:
                    raise ValueError("Reservation belongs to another business unit")
                if reservation.total_amount.currency != currency:
                    raise ValueError("Payment currency must match the reservation currency")

            payment = Payment(
                business_unit_id=business_unit_id,
                reservation_id=reservation_id,
                amount=Money(amount=amount, currency=currency),
                method=method,
                provider=provider,
                provider_reference=provider_reference,
                line_items=[PaymentLineItem(**item) for item in line_items or []],
                created_at=now,
                updated_at=now,
            )
            saved = await uow.payments.save(payment)
            await audit(
                uow, "Payment", saved.payment_id, "CREATED", principal, now,
                to_status=saved.status, amount=saved.amount.amount,
            )
        return saved

    async def get_payment(self, principal: User, payment_id: UUID) -> Optional[Payment]:
        async with self.uow.transaction(read_only=True) as uow:
            payment = await uow.payments.find_by_id(payment_id)
        if payment is not None:
            authorize(principal, payment.business_unit_id)
        return payment

    async def list_payments(self, principal: User, reservation_id: Optional[UUID] = None) -> List[Payment]:
        async with self.uow.transaction(read_only=True) as uow:
            if reservation_id is not None:
                payments = await uow.payments.find_by_reservation(reservation_id)
            else:
                payments = await uow.payments.find_all()
        return [p for p in payments if principal.can_access(p.business_unit_id)]

    async def update_payment_status(self, principal: User, payment_id: UUID, status: PaymentStatus) -> Optional[Payment]:
        """Move the payment through its state machine and mirror it on the reservation"""
        if status in (PaymentStatus.REFUNDED, PaymentStatus.PARTIALLY_REFUNDED):
            raise ValueError("Use the refund operation to refund a payment")

        now = self.clock()
        async with self.uow.transaction() as uow:
            payment = await uow.payments.find_by_id(payment_id)
            if payment is None:
                return None
            authorize(principal, payment.business_unit_id, *FRONT_DESK_ROLES)
            previous = payment.status
            if not payment.change_status(status, now):
                return payment
            await self._mirror_on_reservation(uow, payment, now)
            saved = await uow.payments.save(payment)
            await audit(
                uow, "Payment", payment_id, "STATUS_CHANGED", principal, now,
                from_status=previous, to_status=status,
            )
        logger.info("Payment %s %s -> %s by %s", payment_id, previous.value, status.value, principal.username)
        return saved

    async def refund_payment(
        self,
        principal: User,
        payment_id: UUID,
        reason: str,
        amount: Optional[Decimal] = None,
    ) -> Optional[Payment]:
        """Refund in full or in part; repeating a refund is a no-op"""
        now = self.clock()
        async with self.uow.transaction() as uow:
            payment = await uow.payments.find_by_id(payment_id)
            if payment is None:
                return None
            authorize(principal, payment.business_unit_id, *FRONT_DESK_ROLES)
            previous = payment.status
            refund_amount = Money(amount=amount, currency=payment.amount.currency) if amount is not None else None
            record = payment.refund(reason, principal.username, now, amount=refund_amount)
            if record is None:
                return payment

            await self._mirror_on_reservation(uow, payment, now)
            saved = await uow.payments.save(payment)
            await audit(
                uow, "Payment", payment_id, "REFUNDED", principal, now,
                from_status=previous, to_status=saved.status, reason=record.reason,
                refund_id=record.refund_id, amount=record.amount.amount,
            )
        logger.info(
            "Payment %s refunded %s %s by %s",
            payment_id, record.amount.amount, record.amount.currency, principal.username,
        )
        return saved

    async def _mirror_on_reservation(self, uow: UnitOfWork, payment: Payment, at: datetime) -> None:
        if payment.reservation_id is None:
            return
        reservation = await uow.reservations.find_by_id(payment.reservation_id)
        if reservation is not None:
            reservation.record_payment_status(payment.status, at)
            await uow.reservations.save(reservation)
