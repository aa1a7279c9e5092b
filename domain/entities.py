"""Domain Entities - Aggregates"""
import random
import string
from pydantic import BaseModel, Field, validator
from uuid import UUID, uuid4
from datetime import datetime, date, timezone
from typing import Optional, List, Tuple, Set
from decimal import Decimal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from domain.enums import (
    ReservationStatus, ReservationSource, RequestType, RoomStatus, HousekeepingStatus,
    RoomCategory, PaymentStatus, PaymentMethod, LifecycleAction,
)
from domain.errors import InvalidTransition, RateConfigurationError, RefundNotAllowed
from domain.lifecycle import (
    INITIAL_STATES, TERMINAL_STATES, ACTIVE_STATES, REFUNDABLE_PAYMENT_STATES,
    REFUNDED_PAYMENT_STATES, Transition, plan_transition, check_payment_transition,
)
from domain.value_objects import (
    DateRange, GuestCount, Money, NightlyRate, PaymentLineItem, RefundRecord, SpecialRequest,
)

WEEKDAY_FIELDS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

OUT_OF_SERVICE_STATUSES = frozenset({
    RoomStatus.MAINTENANCE,
    RoomStatus.OUT_OF_ORDER,
    RoomStatus.BLOCKED,
})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BusinessUnit(BaseModel):
    """Property owning room types, rooms and reservations"""

    business_unit_id: UUID = Field(default_factory=uuid4)
    name: str
    display_name: str
    primary_currency: str = "PHP"
    timezone: str = "Asia/Manila"
    tax_rate: Optional[Decimal] = Field(default=None, ge=0, le=100)
    service_fee_rate: Optional[Decimal] = Field(default=None, ge=0, le=100)
    is_active: bool = True
    created_at: datetime = Field(default_factory=_utcnow)

    @validator('timezone')
    def timezone_is_known(cls, v):
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone '{v}'")
        return v

    def local_today(self, now: datetime) -> date:
        """Calendar date at the property for an aware instant"""
        return now.astimezone(ZoneInfo(self.timezone)).date()

    class Config:
        from_attributes = True


class RoomType(BaseModel):
    """Category of room within a property"""

    room_type_id: UUID = Field(default_factory=uuid4)
    business_unit_id: UUID
    name: str
    display_name: str
    description: Optional[str] = None
    category: RoomCategory = RoomCategory.STANDARD
    max_occupancy: int = Field(ge=1, default=2)
    max_adults: int = Field(ge=1, default=2)
    max_children: int = Field(ge=0, default=0)
    max_infants: int = Field(ge=0, default=0)
    base_rate: Optional[Money] = None
    currency: str = "PHP"
    is_active: bool = True
    sort_order: int = 0
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @validator('currency')
    def base_rate_matches_currency(cls, v, values):
        base_rate = values.get('base_rate')
        if base_rate is not None and base_rate.currency != v:
            raise ValueError('Base rate currency must match room type currency')
        return v

    @validator('max_adults')
    def adults_within_occupancy(cls, v, values):
        if 'max_occupancy' in values and v > values['max_occupancy']:
            raise ValueError('Max adults cannot exceed max occupancy')
        return v

    def set_active(self, is_active: bool, at: datetime) -> None:
        self.is_active = is_active
        self.updated_at = at

    class Config:
        from_attributes = True


class Room(BaseModel):
    """Physical room"""

    room_id: UUID = Field(default_factory=uuid4)
    business_unit_id: UUID
    room_type_id: UUID
    room_number: str
    floor: Optional[int] = None
    wing: Optional[str] = None
    status: RoomStatus = RoomStatus.AVAILABLE
    housekeeping: HousekeepingStatus = HousekeepingStatus.CLEAN
    out_of_order_until: Optional[datetime] = None
    last_cleaned: Optional[datetime] = None
    last_inspected: Optional[datetime] = None
    notes: Optional[str] = None
    is_active: bool = True
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    version: int = 1

    class Config:
        from_attributes = True

    @property
    def is_out_of_service(self) -> bool:
        return self.status in OUT_OF_SERVICE_STATUSES

    def set_status(self, status: RoomStatus, at: datetime, out_of_order_until: Optional[datetime] = None) -> bool:
        """Change operational status; returns False when nothing changed"""
        if out_of_order_until is not None:
            if status != RoomStatus.OUT_OF_ORDER:
                raise ValueError("out_of_order_until is only valid for OUT_OF_ORDER rooms")
            if out_of_order_until.tzinfo is None:
                raise ValueError("out_of_order_until must be timezone-aware")
            if out_of_order_until <= at:
                raise ValueError("out_of_order_until must be in the future")

        if status == self.status and out_of_order_until == self.out_of_order_until:
            return False

        self.status = status
        self.out_of_order_until = out_of_order_until if status == RoomStatus.OUT_OF_ORDER else None
        self.updated_at = at
        self.version += 1
        return True

    def set_housekeeping(self, housekeeping: HousekeepingStatus, at: datetime) -> None:
        self.housekeeping = housekeeping
        if housekeeping == HousekeepingStatus.CLEAN:
            self.last_cleaned = at
        elif housekeeping == HousekeepingStatus.INSPECTED:
            self.last_inspected = at
        self.updated_at = at
        self.version += 1

    def out_of_order_expired(self, now: datetime) -> bool:
        return (
            self.status == RoomStatus.OUT_OF_ORDER
            and self.out_of_order_until is not None
            and self.out_of_order_until < now
        )


class RoomRate(BaseModel):
    """Pricing rule scoped to one room type"""

    rate_id: UUID = Field(default_factory=uuid4)
    room_type_id: UUID
    name: str
    description: Optional[str] = None
    base_rate: Money
    valid_from: date
    valid_to: Optional[date] = None
    monday: bool = True
    tuesday: bool = True
    wednesday: bool = True
    thursday: bool = True
    friday: bool = True
    saturday: bool = True
    sunday: bool = True
    is_default: bool = False
    is_active: bool = True
    min_stay: int = Field(ge=1, default=1)
    max_stay: Optional[int] = Field(default=None, ge=1)
    min_advance: Optional[int] = Field(default=None, ge=0)
    max_advance: Optional[int] = Field(default=None, ge=0)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    class Config:
        from_attributes = True

    def weekday_flags(self) -> Tuple[bool, ...]:
        """Flags indexed like date.weekday(), Monday first"""
        return tuple(getattr(self, name) for name in WEEKDAY_FIELDS)

    def applies_on_weekday(self, weekday: int) -> bool:
        return self.weekday_flags()[weekday]

    @property
    def applicable_weekday_count(self) -> int:
        return sum(self.weekday_flags())

    def validate_configuration(self) -> None:
        """Reject rates that could never be used or contradict themselves"""
        if self.applicable_weekday_count == 0:
            raise RateConfigurationError(f"Rate '{self.name}' must apply on at least one day of the week")
        if self.valid_to is not None and self.valid_to < self.valid_from:
            raise RateConfigurationError(f"Rate '{self.name}' ends before it starts")
        if self.max_stay is not None and self.max_stay < self.min_stay:
            raise RateConfigurationError(f"Rate '{self.name}' max stay is shorter than min stay")
        if (
            self.min_advance is not None
            and self.max_advance is not None
            and self.max_advance < self.min_advance
        ):
            raise RateConfigurationError(f"Rate '{self.name}' max advance is shorter than min advance")
        if self.base_rate.amount <= 0:
            raise RateConfigurationError(f"Rate '{self.name}' must have a positive base rate")

    def set_active(self, is_active: bool, at: datetime) -> None:
        if is_active:
            self.validate_configuration()
        self.is_active = is_active
        self.updated_at = at


class RoomStay(BaseModel):
    """Reservation line item: one room for the whole stay, priced per night"""

    stay_id: UUID = Field(default_factory=uuid4)
    room_type_id: UUID
    room_id: Optional[UUID] = None
    nightly_rates: List[NightlyRate]
    subtotal: Money
    taxes: Money
    service_fee: Money
    total: Money

    class Config:
        from_attributes = True

    @staticmethod
    def price(
        room_type_id: UUID,
        nightly_rates: List[NightlyRate],
        currency: str,
        tax_rate: Optional[Decimal] = None,
        service_fee_rate: Optional[Decimal] = None,
        room_id: Optional[UUID] = None,
    ) -> "RoomStay":
        """Build a line item from nightly snapshots plus property taxes and fees"""
        if not nightly_rates:
            raise ValueError("A room stay needs at least one night")

        subtotal = Money.zero(currency)
        for nightly in nightly_rates:
            subtotal = subtotal + nightly.amount

        taxes = subtotal.percentage(tax_rate)
        service_fee = subtotal.percentage(service_fee_rate)
        return RoomStay(
            room_type_id=room_type_id,
            room_id=room_id,
            nightly_rates=nightly_rates,
            subtotal=subtotal,
            taxes=taxes,
            service_fee=service_fee,
            total=subtotal + taxes + service_fee,
        )

    def rate_ids(self) -> Set[UUID]:
        return {n.rate_id for n in self.nightly_rates if n.rate_id is not None}


class Reservation(BaseModel):
    """Reservation Aggregate Root Entity"""

    # Identity
    reservation_id: UUID = Field(default_factory=uuid4)
    confirmation_number: str

    # References to other contexts
    business_unit_id: UUID
    guest_id: UUID

    # Value Objects
    date_range: DateRange
    guest_count: GuestCount
    subtotal: Money
    taxes: Money
    service_fee: Money
    total_amount: Money

    # Enums/Status
    status: ReservationStatus = ReservationStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.PENDING
    reservation_source: ReservationSource = ReservationSource.WEBSITE

    # Collections (child entities)
    room_stays: List[RoomStay]
    special_requests: List[SpecialRequest] = []

    internal_notes: Optional[str] = None
    cancellation_reason: Optional[str] = None

    # Lifecycle timestamps
    confirmed_at: Optional[datetime] = None
    checked_in_at: Optional[datetime] = None
    checked_out_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    no_show_at: Optional[datetime] = None

    # Metadata
    created_at: datetime = Field(default_factory=_utcnow)
    modified_at: datetime = Field(default_factory=_utcnow)
    created_by: str = "SYSTEM"
    version: int = 1

    class Config:
        from_attributes = True

    # ==================== FACTORY METHOD ====================
    @staticmethod
    def create(
        business_unit_id: UUID,
        guest_id: UUID,
        date_range: DateRange,
        guest_count: GuestCount,
        room_stays: List[RoomStay],
        reservation_source: ReservationSource,
        at: datetime,
        initial_status: ReservationStatus = ReservationStatus.PENDING,
        special_requests: Optional[List[SpecialRequest]] = None,
        internal_notes: Optional[str] = None,
        created_by: str = "SYSTEM",
        confirmation_number: Optional[str] = None,
    ) -> "Reservation":
        """Create new reservation with validation"""
        if initial_status not in INITIAL_STATES:
            raise ValueError(f"Reservations cannot start in {initial_status.value} status")
        if not room_stays:
            raise ValueError("A reservation needs at least one room")

        currency = room_stays[0].total.currency
        subtotal, taxes, service_fee, total = (Money.zero(currency) for _ in range(4))
        for stay in room_stays:
            if len(stay.nightly_rates) != date_range.nights():
                raise ValueError("Every room must be priced for every night of the stay")
            subtotal = subtotal + stay.subtotal
            taxes = taxes + stay.taxes
            service_fee = service_fee + stay.service_fee
            total = total + stay.total

        return Reservation(
            confirmation_number=confirmation_number or Reservation.generate_confirmation_number(at),
            business_unit_id=business_unit_id,
            guest_id=guest_id,
            date_range=date_range,
            guest_count=guest_count,
            subtotal=subtotal,
            taxes=taxes,
            service_fee=service_fee,
            total_amount=total,
            status=initial_status,
            reservation_source=reservation_source,
            room_stays=room_stays,
            special_requests=special_requests or [],
            internal_notes=internal_notes,
            checked_in_at=at if initial_status == ReservationStatus.WALKED_IN else None,
            created_at=at,
            modified_at=at,
            created_by=created_by,
        )

    @staticmethod
    def generate_confirmation_number(at: datetime) -> str:
        """RES-<base36 epoch millis>-<5 random base36 chars>"""
        alphabet = string.digits + string.ascii_uppercase
        millis = int(at.timestamp() * 1000)
        encoded = ""
        while millis:
            millis, remainder = divmod(millis, 36)
            encoded = alphabet[remainder] + encoded
        suffix = "".join(random.choices(alphabet, k=5))
        return f"RES-{encoded or '0'}-{suffix}"

    # ==================== MODIFICATION METHODS ====================
    def add_special_request(
        self,
        request_type: RequestType,
        description: str,
        at: datetime,
    ) -> SpecialRequest:
        """Add special request from guest"""
        if not isinstance(request_type, RequestType):
            raise ValueError("Invalid request type")
        if self.is_terminal():
            raise ValueError(f"Cannot add requests to a {self.status.value} reservation")

        special_request = SpecialRequest(
            request_type=request_type,
            description=description
        )
        self.special_requests.append(special_request)
        self._touch(at)
        return special_request

    def update_internal_notes(self, notes: Optional[str], at: datetime) -> None:
        self.internal_notes = notes
        self._touch(at)

    def assign_room(self, stay_id: UUID, room_id: UUID, at: datetime) -> RoomStay:
        """Put a physical room on a line item"""
        if self.is_terminal():
            raise InvalidTransition(self.status, None, reason="reservation is closed")
        if self.status in (ReservationStatus.CHECKED_IN, ReservationStatus.WALKED_IN):
            raise InvalidTransition(self.status, None, reason="guest is already in house")
        stay = self.find_stay(stay_id)
        if stay is None:
            raise ValueError(f"Room stay {stay_id} is not part of this reservation")
        stay.room_id = room_id
        self._touch(at)
        return stay

    def record_payment_status(self, status: PaymentStatus, at: datetime) -> None:
        if status != self.payment_status:
            self.payment_status = status
            self._touch(at)

    # ==================== STATE TRANSITION METHODS ====================
    def confirm(self, at: datetime) -> Optional[Transition]:
        """Confirm reservation; None when it already was"""
        transition = plan_transition(self.status, LifecycleAction.CONFIRM)
        if transition is None:
            return None
        missing = [s.stay_id for s in self.room_stays if s.room_id is None]
        if missing:
            raise InvalidTransition(
                self.status, transition.target, LifecycleAction.CONFIRM,
                "every room stay needs an assigned room",
            )
        return self._enter(transition, at)

    def check_in(self, today: date, at: datetime) -> Transition:
        """Mark guest as checked in"""
        transition = plan_transition(self.status, LifecycleAction.CHECK_IN)
        if self.date_range.check_in > today:
            raise InvalidTransition(
                self.status, transition.target, LifecycleAction.CHECK_IN,
                "cannot check in before the check-in date",
            )
        if today >= self.date_range.check_out:
            raise InvalidTransition(
                self.status, transition.target, LifecycleAction.CHECK_IN,
                "the stay has already ended",
            )
        return self._enter(transition, at)

    def check_out(self, at: datetime) -> Transition:
        """Process guest check-out"""
        transition = plan_transition(self.status, LifecycleAction.CHECK_OUT)
        return self._enter(transition, at)

    def cancel(self, reason: str, at: datetime) -> Optional[Transition]:
        """Cancel reservation; None when it already was"""
        transition = plan_transition(self.status, LifecycleAction.CANCEL)
        if transition is None:
            return None
        if not reason or not reason.strip():
            raise ValueError("A cancellation reason is required")
        self.cancellation_reason = reason.strip()
        return self._enter(transition, at)

    def mark_no_show(self, today: date, at: datetime) -> Transition:
        """Mark guest as no-show once the arrival day is over"""
        transition = plan_transition(self.status, LifecycleAction.NO_SHOW)
        if today <= self.date_range.check_in:
            raise InvalidTransition(
                self.status, transition.target, LifecycleAction.NO_SHOW,
                "the check-in date has not fully elapsed",
            )
        return self._enter(transition, at)

    # ==================== QUERY METHODS ====================
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATES

    def is_active(self) -> bool:
        """Holds its rooms for its dates"""
        return self.status in ACTIVE_STATES

    def get_nights(self) -> int:
        """Get number of nights"""
        return self.date_range.nights()

    def find_stay(self, stay_id: UUID) -> Optional[RoomStay]:
        for stay in self.room_stays:
            if stay.stay_id == stay_id:
                return stay
        return None

    def room_ids(self) -> List[UUID]:
        return [s.room_id for s in self.room_stays if s.room_id is not None]

    def rate_ids(self) -> Set[UUID]:
        ids: Set[UUID] = set()
        for stay in self.room_stays:
            ids |= stay.rate_ids()
        return ids

    # ==================== PRIVATE METHODS ====================
    def _enter(self, transition: Transition, at: datetime) -> Transition:
        self.status = transition.target
        setattr(self, transition.timestamp_field, at)
        self._touch(at)
        return transition

    def _touch(self, at: datetime) -> None:
        self.modified_at = at
        self.version += 1


class Payment(BaseModel):
    """Payment Aggregate Root Entity"""

    payment_id: UUID = Field(default_factory=uuid4)
    business_unit_id: UUID
    reservation_id: Optional[UUID] = None
    amount: Money
    status: PaymentStatus = PaymentStatus.PENDING
    method: PaymentMethod = PaymentMethod.CARD
    provider: Optional[str] = None
    provider_reference: Optional[str] = None
    line_items: List[PaymentLineItem] = []
    refunds: List[RefundRecord] = []
    processed_at: Optional[datetime] = None
    refunded_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    version: int = 1

    class Config:
        from_attributes = True

    @validator('amount')
    def amount_is_positive(cls, v):
        if v.amount <= 0:
            raise ValueError('Payment amount must be greater than 0')
        return v

    @property
    def is_refundable(self) -> bool:
        return self.status in REFUNDABLE_PAYMENT_STATES

    @property
    def refunded_amount(self) -> Money:
        total = Money.zero(self.amount.currency)
        for record in self.refunds:
            total = total + record.amount
        return total

    def change_status(self, status: PaymentStatus, at: datetime) -> bool:
        """Move through the payment state machine; False when already there"""
        if not check_payment_transition(self.status, status):
            return False
        self.status = status
        if status in REFUNDABLE_PAYMENT_STATES:
            self.processed_at = at
        self.updated_at = at
        self.version += 1
        return True

    def refund(
        self,
        reason: str,
        processed_by: str,
        at: datetime,
        amount: Optional[Money] = None,
    ) -> Optional[RefundRecord]:
        """Refund the payment; None when it has already been refunded"""
        if self.status in REFUNDED_PAYMENT_STATES:
            return None
        if not self.is_refundable:
            raise RefundNotAllowed(self.status)
        if not reason or not reason.strip():
            raise ValueError("A refund reason is required")

        refund_amount = amount or self.amount
        if refund_amount.currency != self.amount.currency:
            raise ValueError("Refund currency must match payment currency")
        if refund_amount.amount <= 0 or refund_amount.amount > self.amount.amount:
            raise ValueError("Refund amount must be positive and not exceed the payment amount")

        record = RefundRecord(
            amount=refund_amount,
            reason=reason.strip(),
            method=self.method,
            processed_by=processed_by,
            processed_at=at,
        )
        self.refunds.append(record)
        self.status = (
            PaymentStatus.REFUNDED
            if refund_amount.amount == self.amount.amount
            else PaymentStatus.PARTIALLY_REFUNDED
        )
        self.refunded_at = at
        self.updated_at = at
        self.version += 1
        return record


class AuditEntry(BaseModel):
    """Immutable audit trail record"""

    audit_id: UUID = Field(default_factory=uuid4)
    entity_type: str
    entity_id: UUID
    action: str
    from_status: Optional[str] = None
    to_status: Optional[str] = None
    principal: str
    reason: Optional[str] = None
    details: dict = {}
    recorded_at: datetime

    class Config:
        frozen = True
