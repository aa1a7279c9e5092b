"""API Schemas - Request and Response DTOs"""
from pydantic import BaseModel, Field
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID
from typing import Dict, List, Optional

from infrastructure.config import settings
from domain.enums import (
    HousekeepingStatus, PaymentMethod, PaymentStatus, RequestType, ReservationSource,
    ReservationStatus, Role, RoomCategory, RoomStatus,
)


class MoneyResponse(BaseModel):
    """Money response DTO"""
    amount: Decimal
    currency: str


# ============================================================================
# BUSINESS UNIT SCHEMAS
# ============================================================================

class CreateBusinessUnitRequest(BaseModel):
    """Create business unit request DTO"""
    name: str = Field(min_length=1)
    display_name: str = Field(min_length=1)
    primary_currency: str = Field(default=settings.DEFAULT_CURRENCY, min_length=3, max_length=3)
    timezone: str = settings.DEFAULT_TIMEZONE
    tax_rate: Optional[Decimal] = Field(default=None, ge=0, le=100)
    service_fee_rate: Optional[Decimal] = Field(default=None, ge=0, le=100)


class BusinessUnitResponse(BaseModel):
    """Business unit response DTO"""
    business_unit_id: UUID
    name: str
    display_name: str
    primary_currency: str
    timezone: str
    tax_rate: Optional[Decimal] = None
    service_fee_rate: Optional[Decimal] = None
    is_active: bool


# ============================================================================
# ROOM TYPE SCHEMAS
# ============================================================================

class CreateRoomTypeRequest(BaseModel):
    """Create room type request DTO"""
    business_unit_id: UUID
    name: str = Field(min_length=1)
    display_name: str = Field(min_length=1)
    description: Optional[str] = None
    category: RoomCategory = RoomCategory.STANDARD
    max_occupancy: int = Field(ge=1, default=2)
    max_adults: int = Field(ge=1, default=2)
    max_children: int = Field(ge=0, default=0)
    max_infants: int = Field(ge=0, default=0)
    base_rate: Optional[Decimal] = Field(default=None, ge=0)
    sort_order: int = 0


class UpdateRoomTypeRequest(BaseModel):
    """Update room type request DTO; omitted fields are left unchanged"""
    name: Optional[str] = None
    display_name: Optional[str] = None
    description: Optional[str] = None
    category: Optional[RoomCategory] = None
    max_occupancy: Optional[int] = Field(default=None, ge=1)
    max_adults: Optional[int] = Field(default=None, ge=1)
    max_children: Optional[int] = Field(default=None, ge=0)
    max_infants: Optional[int] = Field(default=None, ge=0)
    base_rate: Optional[Decimal] = Field(default=None, ge=0)
    sort_order: Optional[int] = None


class SetActiveRequest(BaseModel):
    """Activate / deactivate request DTO"""
    is_active: bool


class RoomTypeResponse(BaseModel):
    """Room type response DTO"""
    room_type_id: UUID
    business_unit_id: UUID
    name: str
    display_name: str
    description: Optional[str] = None
    category: str
    max_occupancy: int
    max_adults: int
    max_children: int
    max_infants: int
    base_rate: Optional[MoneyResponse] = None
    currency: str
    is_active: bool
    sort_order: int


# ============================================================================
# ROOM SCHEMAS
# ============================================================================

class CreateRoomRequest(BaseModel):
    """Create room request DTO"""
    business_unit_id: UUID
    room_type_id: UUID
    room_number: str = Field(min_length=1)
    floor: Optional[int] = None
    wing: Optional[str] = None
    notes: Optional[str] = None


class UpdateRoomRequest(BaseModel):
    """Update room request DTO"""
    room_type_id: Optional[UUID] = None
    room_number: Optional[str] = None
    floor: Optional[int] = None
    wing: Optional[str] = None
    notes: Optional[str] = None


class RoomStatusRequest(BaseModel):
    """Room status override request DTO"""
    status: RoomStatus
    force: bool = False
    out_of_order_until: Optional[datetime] = None
    reason: Optional[str] = None


class HousekeepingRequest(BaseModel):
    """Housekeeping update request DTO"""
    housekeeping: HousekeepingStatus


class RoomResponse(BaseModel):
    """Room response DTO"""
    room_id: UUID
    business_unit_id: UUID
    room_type_id: UUID
    room_number: str
    floor: Optional[int] = None
    wing: Optional[str] = None
    status: str
    housekeeping: str
    out_of_order_until: Optional[datetime] = None
    last_cleaned: Optional[datetime] = None
    notes: Optional[str] = None
    is_active: bool
    updated_at: datetime
    version: int


class SweepResponse(BaseModel):
    """Out-of-order sweep result DTO"""
    released: int
    room_ids: List[UUID]


# ============================================================================
# ROOM RATE SCHEMAS
# ============================================================================

class CreateRoomRateRequest(BaseModel):
    """Create room rate request DTO"""
    room_type_id: UUID
    name: str = Field(min_length=1)
    description: Optional[str] = None
    base_rate: Decimal = Field(gt=0)
    currency: Optional[str] = None
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


class UpdateRoomRateRequest(BaseModel):
    """Update room rate request DTO; omitted fields are left unchanged"""
    name: Optional[str] = None
    description: Optional[str] = None
    base_rate: Optional[Decimal] = Field(default=None, gt=0)
    valid_from: Optional[date] = None
    valid_to: Optional[date] = None
    monday: Optional[bool] = None
    tuesday: Optional[bool] = None
    wednesday: Optional[bool] = None
    thursday: Optional[bool] = None
    friday: Optional[bool] = None
    saturday: Optional[bool] = None
    sunday: Optional[bool] = None
    is_default: Optional[bool] = None
    min_stay: Optional[int] = Field(default=None, ge=1)
    max_stay: Optional[int] = Field(default=None, ge=1)
    min_advance: Optional[int] = Field(default=None, ge=0)
    max_advance: Optional[int] = Field(default=None, ge=0)


class RoomRateResponse(BaseModel):
    """Room rate response DTO"""
    rate_id: UUID
    room_type_id: UUID
    name: str
    description: Optional[str] = None
    base_rate: MoneyResponse
    valid_from: date
    valid_to: Optional[date] = None
    weekdays: Dict[str, bool]
    is_default: bool
    is_active: bool
    min_stay: int
    max_stay: Optional[int] = None
    min_advance: Optional[int] = None
    max_advance: Optional[int] = None


# ============================================================================
# PRICING SCHEMAS
# ============================================================================

class QuoteRequest(BaseModel):
    """Price quote request DTO"""
    room_type_id: UUID
    check_in: date
    check_out: date
    adults: int = Field(ge=1, le=10, default=1)
    children: int = Field(ge=0, le=10, default=0)
    infants: int = Field(ge=0, le=5, default=0)


class NightlyRateResponse(BaseModel):
    """Nightly rate snapshot DTO"""
    night: date
    amount: Decimal
    currency: str
    source: str
    rate_id: Optional[UUID] = None
    rate_name: Optional[str] = None


class ViolationResponse(BaseModel):
    """Booking rule violation DTO"""
    kind: str
    message: str
    rate_id: Optional[UUID] = None
    limit: Optional[int] = None
    actual: Optional[int] = None


class QuoteResponse(BaseModel):
    """Price quote response DTO"""
    room_type_id: UUID
    check_in: date
    check_out: date
    nights: int
    nightly_rates: List[NightlyRateResponse]
    subtotal: Decimal
    taxes: Decimal
    service_fee: Decimal
    total: Decimal
    currency: str
    bookable: bool
    violations: List[ViolationResponse]


# ============================================================================
# RESERVATION SCHEMAS
# ============================================================================

class SpecialRequestRequest(BaseModel):
    """Special request request DTO"""
    type: RequestType
    description: str


class RoomRequest(BaseModel):
    """One room of a new reservation"""
    room_type_id: UUID
    room_id: Optional[UUID] = None


class CreateReservationRequest(BaseModel):
    """Create reservation request DTO"""
    business_unit_id: UUID
    guest_id: UUID
    check_in: date
    check_out: date
    rooms: List[RoomRequest] = Field(min_length=1)
    adults: int = Field(ge=1, le=10)
    children: int = Field(ge=0, le=10, default=0)
    infants: int = Field(ge=0, le=5, default=0)
    reservation_source: ReservationSource = Field(default=ReservationSource.WEBSITE, description="Source of reservation")
    status: ReservationStatus = Field(default=ReservationStatus.PENDING, description="Initial status")
    special_requests: List[SpecialRequestRequest] = []
    internal_notes: Optional[str] = None


class AssignRoomRequest(BaseModel):
    """Assign room request DTO"""
    stay_id: UUID
    room_id: UUID


class AddSpecialRequestRequest(BaseModel):
    """Add special request request DTO"""
    request_type: RequestType
    description: str


class InternalNotesRequest(BaseModel):
    """Internal notes request DTO"""
    internal_notes: Optional[str] = None


class CancelReservationRequest(BaseModel):
    """Cancel reservation request DTO"""
    reason: str


class SpecialRequestResponse(BaseModel):
    """Special request response DTO"""
    request_id: UUID
    request_type: str
    description: str
    fulfilled: bool = False
    notes: Optional[str] = None
    created_at: datetime


class RoomStayResponse(BaseModel):
    """Room stay line item DTO"""
    stay_id: UUID
    room_type_id: UUID
    room_id: Optional[UUID] = None
    nightly_rates: List[NightlyRateResponse]
    subtotal: Decimal
    taxes: Decimal
    service_fee: Decimal
    total: Decimal


class ReservationResponse(BaseModel):
    """Reservation response DTO"""
    reservation_id: UUID
    confirmation_number: str
    business_unit_id: UUID
    guest_id: UUID
    check_in: date
    check_out: date
    nights: int
    adults: int
    children: int
    infants: int
    room_stays: List[RoomStayResponse]
    subtotal: Decimal
    taxes: Decimal
    service_fee: Decimal
    total_amount: Decimal
    currency: str
    status: str
    payment_status: str
    allowed_actions: List[str] = []
    reservation_source: str
    special_requests: List[SpecialRequestResponse]
    internal_notes: Optional[str] = None
    cancellation_reason: Optional[str] = None
    confirmed_at: Optional[datetime] = None
    checked_in_at: Optional[datetime] = None
    checked_out_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    no_show_at: Optional[datetime] = None
    created_at: datetime
    modified_at: datetime
    created_by: str
    version: int


class RefundEligibilityResponse(BaseModel):
    """Refund eligibility DTO"""
    reservation_id: UUID
    eligible: bool
    reason: str
    payment_ids: List[UUID]


class DashboardStatsResponse(BaseModel):
    """Front desk counters DTO"""
    total: int
    todays_check_ins: int
    todays_check_outs: int
    pending: int
    in_house: int


# ============================================================================
# PAYMENT SCHEMAS
# ============================================================================

class PaymentLineItemRequest(BaseModel):
    """Payment line item DTO"""
    item_type: str = "ROOM"
    name: str
    description: Optional[str] = None
    unit_price: Decimal = Field(ge=0)
    quantity: int = Field(ge=1, default=1)


class CreatePaymentRequest(BaseModel):
    """Create payment request DTO"""
    business_unit_id: UUID
    reservation_id: Optional[UUID] = None
    amount: Decimal = Field(gt=0)
    currency: Optional[str] = None
    method: PaymentMethod = PaymentMethod.CARD
    provider: Optional[str] = None
    provider_reference: Optional[str] = None
    line_items: List[PaymentLineItemRequest] = []


class PaymentStatusRequest(BaseModel):
    """Payment status update request DTO"""
    status: PaymentStatus


class RefundRequest(BaseModel):
    """Refund request DTO; omit amount for a full refund"""
    reason: str
    amount: Optional[Decimal] = Field(default=None, gt=0)


class RefundRecordResponse(BaseModel):
    """Refund record DTO"""
    refund_id: UUID
    amount: Decimal
    currency: str
    reason: str
    processed_by: str
    processed_at: datetime


class PaymentResponse(BaseModel):
    """Payment response DTO"""
    payment_id: UUID
    business_unit_id: UUID
    reservation_id: Optional[UUID] = None
    amount: Decimal
    currency: str
    status: str
    method: str
    provider: Optional[str] = None
    provider_reference: Optional[str] = None
    processed_at: Optional[datetime] = None
    refunded_at: Optional[datetime] = None
    refunds: List[RefundRecordResponse]
    created_at: datetime
    updated_at: datetime
    version: int


# ============================================================================
# AUTH SCHEMAS
# ============================================================================

class Token(BaseModel):
    """Token response DTO"""
    access_token: str
    token_type: str

class TokenData(BaseModel):
    """Token payload DTO"""
    username: Optional[str] = None
    role: Optional[Role] = None

class UserResponse(BaseModel):
    """User response DTO"""
    user_id: UUID
    username: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    disabled: bool
    role: Role
    business_unit_ids: List[UUID]
