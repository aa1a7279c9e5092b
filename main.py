import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Depends, Request
from fastapi.responses import JSONResponse
from uuid import UUID
from datetime import timedelta
from typing import List, Optional
from fastapi.security import OAuth2PasswordRequestForm

from api.schemas import (
    # Business units
    CreateBusinessUnitRequest, BusinessUnitResponse,
    # Room types
    CreateRoomTypeRequest, UpdateRoomTypeRequest, SetActiveRequest, RoomTypeResponse,
    # Rooms
    CreateRoomRequest, UpdateRoomRequest, RoomStatusRequest, HousekeepingRequest,
    RoomResponse, SweepResponse,
    # Rates & pricing
    CreateRoomRateRequest, UpdateRoomRateRequest, RoomRateResponse,
    QuoteRequest, QuoteResponse, NightlyRateResponse, ViolationResponse,
    # Reservations
    CreateReservationRequest, AssignRoomRequest, AddSpecialRequestRequest, InternalNotesRequest,
    CancelReservationRequest, ReservationResponse, RoomStayResponse, SpecialRequestResponse,
    RefundEligibilityResponse, DashboardStatsResponse, MoneyResponse,
    # Payments
    CreatePaymentRequest, PaymentStatusRequest, RefundRequest, PaymentResponse, RefundRecordResponse,
    # Auth
    Token, UserResponse
)

from api.dependencies import get_current_active_user, fake_users_db, get_user
from infrastructure.config import settings
from infrastructure.security import verify_password, create_access_token, ACCESS_TOKEN_EXPIRE_MINUTES
from infrastructure.scheduler import build_scheduler
from domain.auth import User

from application.notifications import LoggingNotificationDispatcher
from application.room_status import RoomStatusCoordinator
from application.services import (
    BusinessUnitService, RoomTypeService, RoomService, RoomRateService, PricingService,
    ReservationService, PaymentService,
)
from infrastructure.repositories.in_memory_repositories import InMemoryUnitOfWork
from domain.entities import WEEKDAY_FIELDS
from domain.lifecycle import allowed_actions
from domain.enums import (
    ReservationSource, ReservationStatus, RequestType, RoomStatus, HousekeepingStatus,
    RoomCategory, PaymentStatus, PaymentMethod,
)
from domain.errors import (
    HotelDomainError, NotFound, PermissionDenied, ConstraintViolationError, RateError,
    RateConfigurationError, InvalidTransition, InvalidPaymentTransition, InventoryConflict,
    RefundNotAllowed, ReferentialIntegrityError,
)

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)-8s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

# Initialize storage and collaborators
uow = InMemoryUnitOfWork()
notifier = LoggingNotificationDispatcher()
room_status_coordinator = RoomStatusCoordinator(uow)


@asynccontextmanager
async def lifespan(app: FastAPI):
    scheduler = None
    if settings.SCHEDULER_ENABLED:
        scheduler = build_scheduler(room_status_coordinator)
        scheduler.start()
        logger.info(
            "Background scheduler started (out-of-order sweep every %ss)",
            settings.OUT_OF_ORDER_SWEEP_INTERVAL_SECONDS,
        )
    yield
    if scheduler is not None:
        scheduler.shutdown(wait=False)
        logger.info("Background scheduler stopped")


app = FastAPI(
    title=settings.APP_NAME,
    description="Room rates, stay rules and the reservation lifecycle for hotel properties",
    version="2.0.0",
    lifespan=lifespan,
)

# Dependency injection
def get_room_status_coordinator() -> RoomStatusCoordinator:
    return room_status_coordinator

def get_business_unit_service() -> BusinessUnitService:
    return BusinessUnitService(uow)

def get_room_type_service() -> RoomTypeService:
    return RoomTypeService(uow)

def get_room_service() -> RoomService:
    return RoomService(uow)

def get_room_rate_service() -> RoomRateService:
    return RoomRateService(uow)

def get_pricing_service() -> PricingService:
    return PricingService(uow, max_stay_nights=settings.MAX_STAY_NIGHTS)

def get_reservation_service() -> ReservationService:
    return ReservationService(
        uow,
        pricing=get_pricing_service(),
        coordinator=room_status_coordinator,
        notifier=notifier,
    )

def get_payment_service() -> PaymentService:
    return PaymentService(uow)

# ============================================================================
# ERROR HANDLING
# ============================================================================

_ERROR_STATUS = (
    (NotFound, 404),
    (PermissionDenied, 403),
    (ConstraintViolationError, 422),
    (RateError, 422),
    (RateConfigurationError, 400),
    (InvalidTransition, 409),
    (InvalidPaymentTransition, 409),
    (InventoryConflict, 409),
    (RefundNotAllowed, 409),
    (ReferentialIntegrityError, 409),
)

@app.exception_handler(HotelDomainError)
async def domain_error_handler(request: Request, exc: HotelDomainError):
    status_code = next((code for error, code in _ERROR_STATUS if isinstance(exc, error)), 400)
    return JSONResponse(status_code=status_code, content=exc.to_dict())

# ============================================================================
# HEALTH & ENUM REFERENCE ENDPOINTS
# ============================================================================

@app.get("/api/health", tags=["Health"])
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "message": "API is running"}

@app.get("/api/enums/reservation-status", tags=["Enum Reference"])
async def get_reservation_statuses():
    """Get all ReservationStatus enum values"""
    return {
        "values": [item.name for item in ReservationStatus],
        "description": "Initial: PENDING, PROVISIONAL, INQUIRY, WALKED_IN. Terminal: CHECKED_OUT, CANCELLED, NO_SHOW"
    }

@app.get("/api/enums/reservation-source", tags=["Enum Reference"])
async def get_reservation_sources():
    """Get all ReservationSource enum values"""
    return {"values": [item.name for item in ReservationSource]}

@app.get("/api/enums/request-type", tags=["Enum Reference"])
async def get_request_types():
    """Get all RequestType enum values"""
    return {"values": [item.name for item in RequestType]}

@app.get("/api/enums/room-status", tags=["Enum Reference"])
async def get_room_statuses():
    """Get all RoomStatus enum values"""
    return {
        "values": [item.name for item in RoomStatus],
        "description": "OCCUPIED and RESERVED are set by reservations only"
    }

@app.get("/api/enums/housekeeping-status", tags=["Enum Reference"])
async def get_housekeeping_statuses():
    return {"values": [item.name for item in HousekeepingStatus]}

@app.get("/api/enums/room-category", tags=["Enum Reference"])
async def get_room_categories():
    return {"values": [item.name for item in RoomCategory]}

@app.get("/api/enums/payment-status", tags=["Enum Reference"])
async def get_payment_statuses():
    return {"values": [item.name for item in PaymentStatus]}

@app.get("/api/enums/payment-method", tags=["Enum Reference"])
async def get_payment_methods():
    return {"values": [item.name for item in PaymentMethod]}

# ============================================================================
# AUTH ENDPOINTS
# ============================================================================

@app.post("/token", response_model=Token, tags=["Auth"])
async def login_for_access_token(form_data: OAuth2PasswordRequestForm = Depends()):
    user = get_user(fake_users_db, form_data.username)
    if not user or not verify_password(form_data.password, user.hashed_password):
        logger.warning("Failed login for %s", form_data.username)
        raise HTTPException(
            status_code=401,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    access_token_expires = timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    access_token = create_access_token(
        data={"sub": user.username, "role": user.role.value}, expires_delta=access_token_expires
    )
    return {"access_token": access_token, "token_type": "bearer"}

@app.get("/users/me", response_model=UserResponse, tags=["Auth"])
async def read_users_me(current_user: User = Depends(get_current_active_user)):
    return current_user

# ============================================================================
# BUSINESS UNIT ENDPOINTS
# ============================================================================

@app.post("/api/business-units", response_model=BusinessUnitResponse, status_code=201, tags=["Business Units"])
async def create_business_unit(
    request: CreateBusinessUnitRequest,
    service: BusinessUnitService = Depends(get_business_unit_service),
    current_user: User = Depends(get_current_active_user)
):
    """Create a property"""
    try:
        business_unit = await service.create_business_unit(current_user, **request.model_dump())
        return _business_unit_to_response(business_unit)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

@app.get("/api/business-units", response_model=List[BusinessUnitResponse], tags=["Business Units"])
async def list_business_units(
    service: BusinessUnitService = Depends(get_business_unit_service),
    current_user: User = Depends(get_current_active_user)
):
    units = await service.list_business_units(current_user)
    return [_business_unit_to_response(bu) for bu in units]

@app.get("/api/business-units/{business_unit_id}", response_model=BusinessUnitResponse, tags=["Business Units"])
async def get_business_unit(
    business_unit_id: UUID,
    service: BusinessUnitService = Depends(get_business_unit_service),
    current_user: User = Depends(get_current_active_user)
):
    business_unit = await service.get_business_unit(current_user, business_unit_id)
    if not business_unit:
        raise HTTPException(status_code=404, detail="Business unit not found")
    return _business_unit_to_response(business_unit)

# ============================================================================
# ROOM TYPE ENDPOINTS
# ============================================================================

@app.post("/api/room-types", response_model=RoomTypeResponse, status_code=201, tags=["Room Types"])
async def create_room_type(
    request: CreateRoomTypeRequest,
    service: RoomTypeService = Depends(get_room_type_service),
    current_user: User = Depends(get_current_active_user)
):
    """Create room type"""
    try:
        room_type = await service.create_room_type(current_user, **request.model_dump())
        return _room_type_to_response(room_type)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

@app.get("/api/room-types", response_model=List[RoomTypeResponse], tags=["Room Types"])
async def list_room_types(
    business_unit_id: UUID,
    service: RoomTypeService = Depends(get_room_type_service),
    current_user: User = Depends(get_current_active_user)
):
    room_types = await service.list_room_types(current_user, business_unit_id)
    return [_room_type_to_response(rt) for rt in room_types]

@app.get("/api/room-types/{room_type_id}", response_model=RoomTypeResponse, tags=["Room Types"])
async def get_room_type(
    room_type_id: UUID,
    service: RoomTypeService = Depends(get_room_type_service),
    current_user: User = Depends(get_current_active_user)
):
    room_type = await service.get_room_type(current_user, room_type_id)
    if not room_type:
        raise HTTPException(status_code=404, detail="Room type not found")
    return _room_type_to_response(room_type)

@app.put("/api/room-types/{room_type_id}", response_model=RoomTypeResponse, tags=["Room Types"])
async def update_room_type(
    room_type_id: UUID,
    request: UpdateRoomTypeRequest,
    service: RoomTypeService = Depends(get_room_type_service),
    current_user: User = Depends(get_current_active_user)
):
    try:
        room_type = await service.update_room_type(
            current_user, room_type_id, **request.model_dump(exclude_unset=True)
        )
        if not room_type:
            raise HTTPException(status_code=404, detail="Room type not found")
        return _room_type_to_response(room_type)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

@app.post("/api/room-types/{room_type_id}/status", response_model=RoomTypeResponse, tags=["Room Types"])
async def set_room_type_status(
    room_type_id: UUID,
    request: SetActiveRequest,
    service: RoomTypeService = Depends(get_room_type_service),
    current_user: User = Depends(get_current_active_user)
):
    """Activate or deactivate a room type"""
    room_type = await service.set_room_type_active(current_user, room_type_id, request.is_active)
    if not room_type:
        raise HTTPException(status_code=404, detail="Room type not found")
    return _room_type_to_response(room_type)

@app.delete("/api/room-types/{room_type_id}", status_code=204, tags=["Room Types"])
async def delete_room_type(
    room_type_id: UUID,
    service: RoomTypeService = Depends(get_room_type_service),
    current_user: User = Depends(get_current_active_user)
):
    if not await service.delete_room_type(current_user, room_type_id):
        raise HTTPException(status_code=404, detail="Room type not found")

# ============================================================================
# ROOM ENDPOINTS
# ============================================================================

@app.post("/api/rooms", response_model=RoomResponse, status_code=201, tags=["Rooms"])
async def create_room(
    request: CreateRoomRequest,
    service: RoomService = Depends(get_room_service),
    current_user: User = Depends(get_current_active_user)
):
    try:
        room = await service.create_room(current_user, **request.model_dump())
        return _room_to_response(room)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

@app.get("/api/rooms", response_model=List[RoomResponse], tags=["Rooms"])
async def list_rooms(
    business_unit_id: UUID,
    room_type_id: Optional[UUID] = None,
    service: RoomService = Depends(get_room_service),
    current_user: User = Depends(get_current_active_user)
):
    rooms = await service.list_rooms(current_user, business_unit_id, room_type_id)
    return [_room_to_response(r) for r in rooms]

@app.post("/api/rooms/out-of-order/sweep", response_model=SweepResponse, tags=["Rooms"])
async def sweep_out_of_order_rooms(
    coordinator: RoomStatusCoordinator = Depends(get_room_status_coordinator),
    current_user: User = Depends(get_current_active_user)
):
    """Return rooms whose out-of-order period has ended to service"""
    released = await coordinator.sweep_out_of_order(current_user)
    return {"released": len(released), "room_ids": [r.room_id for r in released]}

@app.get("/api/rooms/{room_id}", response_model=RoomResponse, tags=["Rooms"])
async def get_room(
    room_id: UUID,
    service: RoomService = Depends(get_room_service),
    current_user: User = Depends(get_current_active_user)
):
    room = await service.get_room(current_user, room_id)
    if not room:
        raise HTTPException(status_code=404, detail="Room not found")
    return _room_to_response(room)

@app.put("/api/rooms/{room_id}", response_model=RoomResponse, tags=["Rooms"])
async def update_room(
    room_id: UUID,
    request: UpdateRoomRequest,
    service: RoomService = Depends(get_room_service),
    current_user: User = Depends(get_current_active_user)
):
    try:
        room = await service.update_room(current_user, room_id, **request.model_dump(exclude_unset=True))
        if not room:
            raise HTTPException(status_code=404, detail="Room not found")
        return _room_to_response(room)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

@app.delete("/api/rooms/{room_id}", status_code=204, tags=["Rooms"])
async def delete_room(
    room_id: UUID,
    service: RoomService = Depends(get_room_service),
    current_user: User = Depends(get_current_active_user)
):
    if not await service.delete_room(current_user, room_id):
        raise HTTPException(status_code=404, detail="Room not found")

@app.post("/api/rooms/{room_id}/status", response_model=RoomResponse, tags=["Rooms"])
async def override_room_status(
    room_id: UUID,
    request: RoomStatusRequest,
    coordinator: RoomStatusCoordinator = Depends(get_room_status_coordinator),
    current_user: User = Depends(get_current_active_user)
):
    """Set room status by hand; force=true overrides active reservations"""
    try:
        room = await coordinator.override_status(
            current_user,
            room_id,
            request.status,
            force=request.force,
            out_of_order_until=request.out_of_order_until,
            reason=request.reason,
        )
        return _room_to_response(room)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

@app.post("/api/rooms/{room_id}/housekeeping", response_model=RoomResponse, tags=["Rooms"])
async def update_housekeeping(
    room_id: UUID,
    request: HousekeepingRequest,
    coordinator: RoomStatusCoordinator = Depends(get_room_status_coordinator),
    current_user: User = Depends(get_current_active_user)
):
    room = await coordinator.update_housekeeping(current_user, room_id, request.housekeeping)
    return _room_to_response(room)

@app.post("/api/rooms/{room_id}/active", response_model=RoomResponse, tags=["Rooms"])
async def set_room_active(
    room_id: UUID,
    request: SetActiveRequest,
    service: RoomService = Depends(get_room_service),
    current_user: User = Depends(get_current_active_user)
):
    room = await service.set_room_active(current_user, room_id, request.is_active)
    if not room:
        raise HTTPException(status_code=404, detail="Room not found")
    return _room_to_response(room)

# ============================================================================
# ROOM RATE ENDPOINTS
# ============================================================================

@app.post("/api/room-rates", response_model=RoomRateResponse, status_code=201, tags=["Room Rates"])
async def create_room_rate(
    request: CreateRoomRateRequest,
    service: RoomRateService = Depends(get_room_rate_service),
    current_user: User = Depends(get_current_active_user)
):
    try:
        data = request.model_dump()
        weekdays = {day: data.pop(day) for day in WEEKDAY_FIELDS}
        rate = await service.create_rate(current_user, weekdays=weekdays, **data)
        return _rate_to_response(rate)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

@app.get("/api/room-rates", response_model=List[RoomRateResponse], tags=["Room Rates"])
async def list_room_rates(
    room_type_id: UUID,
    service: RoomRateService = Depends(get_room_rate_service),
    current_user: User = Depends(get_current_active_user)
):
    rates = await service.list_rates(current_user, room_type_id)
    return [_rate_to_response(r) for r in rates]

@app.get("/api/room-rates/{rate_id}", response_model=RoomRateResponse, tags=["Room Rates"])
async def get_room_rate(
    rate_id: UUID,
    service: RoomRateService = Depends(get_room_rate_service),
    current_user: User = Depends(get_current_active_user)
):
    rate = await service.get_rate(current_user, rate_id)
    if not rate:
        raise HTTPException(status_code=404, detail="Room rate not found")
    return _rate_to_response(rate)

@app.put("/api/room-rates/{rate_id}", response_model=RoomRateResponse, tags=["Room Rates"])
async def update_room_rate(
    rate_id: UUID,
    request: UpdateRoomRateRequest,
    service: RoomRateService = Depends(get_room_rate_service),
    current_user: User = Depends(get_current_active_user)
):
    try:
        rate = await service.update_rate(current_user, rate_id, **request.model_dump(exclude_unset=True))
        if not rate:
            raise HTTPException(status_code=404, detail="Room rate not found")
        return _rate_to_response(rate)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

@app.post("/api/room-rates/{rate_id}/status", response_model=RoomRateResponse, tags=["Room Rates"])
async def set_room_rate_status(
    rate_id: UUID,
    request: SetActiveRequest,
    service: RoomRateService = Depends(get_room_rate_service),
    current_user: User = Depends(get_current_active_user)
):
    rate = await service.set_rate_active(current_user, rate_id, request.is_active)
    if not rate:
        raise HTTPException(status_code=404, detail="Room rate not found")
    return _rate_to_response(rate)

@app.post("/api/room-rates/{rate_id}/default", response_model=RoomRateResponse, tags=["Room Rates"])
async def set_default_room_rate(
    rate_id: UUID,
    service: RoomRateService = Depends(get_room_rate_service),
    current_user: User = Depends(get_current_active_user)
):
    """Make this the only default rate of its room type"""
    rate = await service.set_default_rate(current_user, rate_id)
    if not rate:
        raise HTTPException(status_code=404, detail="Room rate not found")
    return _rate_to_response(rate)

@app.delete("/api/room-rates/{rate_id}", status_code=204, tags=["Room Rates"])
async def delete_room_rate(
    rate_id: UUID,
    service: RoomRateService = Depends(get_room_rate_service),
    current_user: User = Depends(get_current_active_user)
):
    if not await service.delete_rate(current_user, rate_id):
        raise HTTPException(status_code=404, detail="Room rate not found")

# ============================================================================
# PRICING ENDPOINTS
# ============================================================================

@app.post("/api/pricing/quote", response_model=QuoteResponse, tags=["Pricing"])
async def quote_stay(
    request: QuoteRequest,
    service: PricingService = Depends(get_pricing_service),
    current_user: User = Depends(get_current_active_user)
):
    """Price a stay night by night and report any booking rule it breaks"""
    try:
        quote = await service.quote(current_user, **request.model_dump())
        return QuoteResponse(
            room_type_id=quote.room_type_id,
            check_in=quote.date_range.check_in,
            check_out=quote.date_range.check_out,
            nights=quote.nights,
            nightly_rates=[_nightly_to_response(n) for n in quote.nightly_rates],
            subtotal=quote.subtotal.amount,
            taxes=quote.taxes.amount,
            service_fee=quote.service_fee.amount,
            total=quote.total.amount,
            currency=quote.total.currency,
            bookable=quote.bookable,
            violations=[_violation_to_response(v) for v in quote.violations],
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

# ============================================================================
# RESERVATION ENDPOINTS
# ============================================================================

@app.post("/api/reservations", response_model=ReservationResponse, status_code=201, tags=["Reservations"])
async def create_reservation(
    request: CreateReservationRequest,
    service: ReservationService = Depends(get_reservation_service),
    current_user: User = Depends(get_current_active_user)
):
    """Create new reservation"""
    try:
        special_requests = [{"type": req.type.value, "description": req.description} for req in request.special_requests]

        reservation = await service.create_reservation(
            current_user,
            business_unit_id=request.business_unit_id,
            guest_id=request.guest_id,
            check_in=request.check_in,
            check_out=request.check_out,
            rooms=[room.model_dump() for room in request.rooms],
            adults=request.adults,
            children=request.children,
            infants=request.infants,
            reservation_source=request.reservation_source,
            initial_status=request.status,
            special_requests=special_requests,
            internal_notes=request.internal_notes,
        )

        return _reservation_to_response(reservation)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

@app.get("/api/reservations", response_model=List[ReservationResponse], tags=["Reservations"])
async def get_all_reservations(
    business_unit_id: Optional[UUID] = None,
    status: Optional[ReservationStatus] = None,
    guest_id: Optional[UUID] = None,
    service: ReservationService = Depends(get_reservation_service),
    current_user: User = Depends(get_current_active_user)
):
    """List reservations, optionally filtered"""
    reservations = await service.list_reservations(current_user, business_unit_id, status, guest_id)
    return [_reservation_to_response(r) for r in reservations]

@app.get("/api/reservations/stats", response_model=DashboardStatsResponse, tags=["Reservations"])
async def get_reservation_stats(
    business_unit_id: UUID,
    service: ReservationService = Depends(get_reservation_service),
    current_user: User = Depends(get_current_active_user)
):
    """Today's arrivals, departures and pending count for a property"""
    return await service.get_dashboard_stats(current_user, business_unit_id)

@app.get("/api/reservations/code/{confirmation_number}", response_model=ReservationResponse, tags=["Reservations"])
async def get_reservation_by_code(
    confirmation_number: str,
    service: ReservationService = Depends(get_reservation_service),
    current_user: User = Depends(get_current_active_user)
):
    """Get reservation by confirmation number"""
    reservation = await service.get_reservation_by_confirmation_number(current_user, confirmation_number)
    if not reservation:
        raise HTTPException(status_code=404, detail="Reservation not found")
    return _reservation_to_response(reservation)

@app.get("/api/reservations/{reservation_id}", response_model=ReservationResponse, tags=["Reservations"])
async def get_reservation(
    reservation_id: UUID,
    service: ReservationService = Depends(get_reservation_service),
    current_user: User = Depends(get_current_active_user)
):
    """Get reservation by ID"""
    reservation = await service.get_reservation(current_user, reservation_id)
    if not reservation:
        raise HTTPException(status_code=404, detail="Reservation not found")
    return _reservation_to_response(reservation)

@app.post("/api/reservations/{reservation_id}/rooms", response_model=ReservationResponse, tags=["Reservations"])
async def assign_room(
    reservation_id: UUID,
    request: AssignRoomRequest,
    service: ReservationService = Depends(get_reservation_service),
    current_user: User = Depends(get_current_active_user)
):
    """Assign a physical room to one of the reservation's stays"""
    try:
        reservation = await service.assign_room(current_user, reservation_id, request.stay_id, request.room_id)
        if not reservation:
            raise HTTPException(status_code=404, detail="Reservation not found")
        return _reservation_to_response(reservation)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

@app.post("/api/reservations/{reservation_id}/special-requests", response_model=ReservationResponse, tags=["Reservations"])
async def add_special_request(
    reservation_id: UUID,
    request: AddSpecialRequestRequest,
    service: ReservationService = Depends(get_reservation_service),
    current_user: User = Depends(get_current_active_user)
):
    """Add special request to reservation"""
    try:
        reservation = await service.add_special_request(
            current_user,
            reservation_id=reservation_id,
            request_type=request.request_type,
            description=request.description
        )
        if not reservation:
            raise HTTPException(status_code=404, detail="Reservation not found")
        return _reservation_to_response(reservation)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

@app.post("/api/reservations/{reservation_id}/notes", response_model=ReservationResponse, tags=["Reservations"])
async def update_internal_notes(
    reservation_id: UUID,
    request: InternalNotesRequest,
    service: ReservationService = Depends(get_reservation_service),
    current_user: User = Depends(get_current_active_user)
):
    reservation = await service.update_internal_notes(current_user, reservation_id, request.internal_notes)
    if not reservation:
        raise HTTPException(status_code=404, detail="Reservation not found")
    return _reservation_to_response(reservation)

@app.post("/api/reservations/{reservation_id}/confirm", response_model=ReservationResponse, tags=["Reservations"])
async def confirm_reservation(
    reservation_id: UUID,
    service: ReservationService = Depends(get_reservation_service),
    current_user: User = Depends(get_current_active_user)
):
    """Confirm reservation and hold its rooms"""
    try:
        reservation = await service.confirm_reservation(current_user, reservation_id)
        if not reservation:
            raise HTTPException(status_code=404, detail="Reservation not found")
        return _reservation_to_response(reservation)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

@app.post("/api/reservations/{reservation_id}/check-in", response_model=ReservationResponse, tags=["Reservations"])
async def check_in_guest(
    reservation_id: UUID,
    service: ReservationService = Depends(get_reservation_service),
    current_user: User = Depends(get_current_active_user)
):
    """Check in guest"""
    try:
        reservation = await service.check_in_guest(current_user, reservation_id)
        if not reservation:
            raise HTTPException(status_code=404, detail="Reservation not found")
        return _reservation_to_response(reservation)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

@app.post("/api/reservations/{reservation_id}/check-out", response_model=ReservationResponse, tags=["Reservations"])
async def check_out_guest(
    reservation_id: UUID,
    service: ReservationService = Depends(get_reservation_service),
    current_user: User = Depends(get_current_active_user)
):
    """Check out guest"""
    try:
        reservation = await service.check_out_guest(current_user, reservation_id)
        if not reservation:
            raise HTTPException(status_code=404, detail="Reservation not found")
        return _reservation_to_response(reservation)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

@app.post("/api/reservations/{reservation_id}/cancel", response_model=ReservationResponse, tags=["Reservations"])
async def cancel_reservation(
    reservation_id: UUID,
    request: CancelReservationRequest,
    service: ReservationService = Depends(get_reservation_service),
    current_user: User = Depends(get_current_active_user)
):
    """Cancel reservation"""
    try:
        reservation = await service.cancel_reservation(current_user, reservation_id, request.reason)
        if not reservation:
            raise HTTPException(status_code=404, detail="Reservation not found")
        return _reservation_to_response(reservation)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

@app.post("/api/reservations/{reservation_id}/no-show", response_model=ReservationResponse, tags=["Reservations"])
async def mark_no_show(
    reservation_id: UUID,
    service: ReservationService = Depends(get_reservation_service),
    current_user: User = Depends(get_current_active_user)
):
    """Mark guest as no-show"""
    try:
        reservation = await service.mark_no_show(current_user, reservation_id)
        if not reservation:
            raise HTTPException(status_code=404, detail="Reservation not found")
        return _reservation_to_response(reservation)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

@app.get("/api/reservations/{reservation_id}/refund-eligibility", response_model=RefundEligibilityResponse, tags=["Reservations"])
async def check_refund_eligibility(
    reservation_id: UUID,
    service: ReservationService = Depends(get_reservation_service),
    current_user: User = Depends(get_current_active_user)
):
    eligibility = await service.check_refund_eligibility(current_user, reservation_id)
    if not eligibility:
        raise HTTPException(status_code=404, detail="Reservation not found")
    return eligibility.model_dump()

# ============================================================================
# PAYMENT ENDPOINTS
# ============================================================================

@app.post("/api/payments", response_model=PaymentResponse, status_code=201, tags=["Payments"])
async def create_payment(
    request: CreatePaymentRequest,
    service: PaymentService = Depends(get_payment_service),
    current_user: User = Depends(get_current_active_user)
):
    try:
        data = request.model_dump()
        payment = await service.create_payment(current_user, **data)
        return _payment_to_response(payment)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

@app.get("/api/payments", response_model=List[PaymentResponse], tags=["Payments"])
async def list_payments(
    reservation_id: Optional[UUID] = None,
    service: PaymentService = Depends(get_payment_service),
    current_user: User = Depends(get_current_active_user)
):
    payments = await service.list_payments(current_user, reservation_id)
    return [_payment_to_response(p) for p in payments]

@app.get("/api/payments/{payment_id}", response_model=PaymentResponse, tags=["Payments"])
async def get_payment(
    payment_id: UUID,
    service: PaymentService = Depends(get_payment_service),
    current_user: User = Depends(get_current_active_user)
):
    payment = await service.get_payment(current_user, payment_id)
    if not payment:
        raise HTTPException(status_code=404, detail="Payment not found")
    return _payment_to_response(payment)

@app.post("/api/payments/{payment_id}/status", response_model=PaymentResponse, tags=["Payments"])
async def update_payment_status(
    payment_id: UUID,
    request: PaymentStatusRequest,
    service: PaymentService = Depends(get_payment_service),
    current_user: User = Depends(get_current_active_user)
):
    try:
        payment = await service.update_payment_status(current_user, payment_id, request.status)
        if not payment:
            raise HTTPException(status_code=404, detail="Payment not found")
        return _payment_to_response(payment)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

@app.post("/api/payments/{payment_id}/refund", response_model=PaymentResponse, tags=["Payments"])
async def refund_payment(
    payment_id: UUID,
    request: RefundRequest,
    service: PaymentService = Depends(get_payment_service),
    current_user: User = Depends(get_current_active_user)
):
    """Refund a settled payment in full, or in part when amount is given"""
    try:
        payment = await service.refund_payment(current_user, payment_id, request.reason, request.amount)
        if not payment:
            raise HTTPException(status_code=404, detail="Payment not found")
        return _payment_to_response(payment)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def _money(money) -> MoneyResponse:
    return MoneyResponse(amount=money.amount, currency=money.currency)

def _business_unit_to_response(business_unit) -> BusinessUnitResponse:
    return BusinessUnitResponse(
        business_unit_id=business_unit.business_unit_id,
        name=business_unit.name,
        display_name=business_unit.display_name,
        primary_currency=business_unit.primary_currency,
        timezone=business_unit.timezone,
        tax_rate=business_unit.tax_rate,
        service_fee_rate=business_unit.service_fee_rate,
        is_active=business_unit.is_active,
    )

def _room_type_to_response(room_type) -> RoomTypeResponse:
    return RoomTypeResponse(
        room_type_id=room_type.room_type_id,
        business_unit_id=room_type.business_unit_id,
        name=room_type.name,
        display_name=room_type.display_name,
        description=room_type.description,
        category=room_type.category.value,
        max_occupancy=room_type.max_occupancy,
        max_adults=room_type.max_adults,
        max_children=room_type.max_children,
        max_infants=room_type.max_infants,
        base_rate=_money(room_type.base_rate) if room_type.base_rate else None,
        currency=room_type.currency,
        is_active=room_type.is_active,
        sort_order=room_type.sort_order,
    )

def _room_to_response(room) -> RoomResponse:
    return RoomResponse(
        room_id=room.room_id,
        business_unit_id=room.business_unit_id,
        room_type_id=room.room_type_id,
        room_number=room.room_number,
        floor=room.floor,
        wing=room.wing,
        status=room.status.value,
        housekeeping=room.housekeeping.value,
        out_of_order_until=room.out_of_order_until,
        last_cleaned=room.last_cleaned,
        notes=room.notes,
        is_active=room.is_active,
        updated_at=room.updated_at,
        version=room.version,
    )

def _rate_to_response(rate) -> RoomRateResponse:
    return RoomRateResponse(
        rate_id=rate.rate_id,
        room_type_id=rate.room_type_id,
        name=rate.name,
        description=rate.description,
        base_rate=_money(rate.base_rate),
        valid_from=rate.valid_from,
        valid_to=rate.valid_to,
        weekdays=dict(zip(WEEKDAY_FIELDS, rate.weekday_flags())),
        is_default=rate.is_default,
        is_active=rate.is_active,
        min_stay=rate.min_stay,
        max_stay=rate.max_stay,
        min_advance=rate.min_advance,
        max_advance=rate.max_advance,
    )

def _nightly_to_response(nightly) -> NightlyRateResponse:
    return NightlyRateResponse(
        night=nightly.night,
        amount=nightly.amount.amount,
        currency=nightly.amount.currency,
        source=nightly.source.value,
        rate_id=nightly.rate_id,
        rate_name=nightly.rate_name,
    )

def _violation_to_response(violation) -> ViolationResponse:
    return ViolationResponse(
        kind=violation.kind.value,
        message=violation.message,
        rate_id=violation.rate_id,
        limit=violation.limit,
        actual=violation.actual,
    )

def _reservation_to_response(reservation) -> ReservationResponse:
    """Convert Reservation entity to ReservationResponse"""
    return ReservationResponse(
        reservation_id=reservation.reservation_id,
        confirmation_number=reservation.confirmation_number,
        business_unit_id=reservation.business_unit_id,
        guest_id=reservation.guest_id,
        check_in=reservation.date_range.check_in,
        check_out=reservation.date_range.check_out,
        nights=reservation.get_nights(),
        adults=reservation.guest_count.adults,
        children=reservation.guest_count.children,
        infants=reservation.guest_count.infants,
        room_stays=[
            RoomStayResponse(
                stay_id=stay.stay_id,
                room_type_id=stay.room_type_id,
                room_id=stay.room_id,
                nightly_rates=[_nightly_to_response(n) for n in stay.nightly_rates],
                subtotal=stay.subtotal.amount,
                taxes=stay.taxes.amount,
                service_fee=stay.service_fee.amount,
                total=stay.total.amount,
            )
            for stay in reservation.room_stays
        ],
        subtotal=reservation.subtotal.amount,
        taxes=reservation.taxes.amount,
        service_fee=reservation.service_fee.amount,
        total_amount=reservation.total_amount.amount,
        currency=reservation.total_amount.currency,
        status=reservation.status.value,
        payment_status=reservation.payment_status.value,
        allowed_actions=[action.value for action in allowed_actions(reservation.status)],
        reservation_source=reservation.reservation_source.value,
        special_requests=[
            SpecialRequestResponse(
                request_id=sr.request_id,
                request_type=sr.request_type.value,
                description=sr.description,
                fulfilled=sr.fulfilled,
                notes=sr.notes,
                created_at=sr.created_at
            )
            for sr in reservation.special_requests
        ],
        internal_notes=reservation.internal_notes,
        cancellation_reason=reservation.cancellation_reason,
        confirmed_at=reservation.confirmed_at,
        checked_in_at=reservation.checked_in_at,
        checked_out_at=reservation.checked_out_at,
        cancelled_at=reservation.cancelled_at,
        no_show_at=reservation.no_show_at,
        created_at=reservation.created_at,
        modified_at=reservation.modified_at,
        created_by=reservation.created_by,
        version=reservation.version
    )

def _payment_to_response(payment) -> PaymentResponse:
    return PaymentResponse(
        payment_id=payment.payment_id,
        business_unit_id=payment.business_unit_id,
        reservation_id=payment.reservation_id,
        amount=payment.amount.amount,
        currency=payment.amount.currency,
        status=payment.status.value,
        method=payment.method.value,
        provider=payment.provider,
        provider_reference=payment.provider_reference,
        processed_at=payment.processed_at,
        refunded_at=payment.refunded_at,
        refunds=[
            RefundRecordResponse(
                refund_id=r.refund_id,
                amount=r.amount.amount,
                currency=r.amount.currency,
                reason=r.reason,
                processed_by=r.processed_by,
                processed_at=r.processed_at,
            )
            for r in payment.refunds
        ],
        created_at=payment.created_at,
        updated_at=payment.updated_at,
        version=payment.version,
    )

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
