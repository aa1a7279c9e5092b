"""Domain Errors

Business-rule failures raised by the domain and application layers. Plain input
validation still raises ValueError; everything here maps to a specific HTTP
status in main.py.
"""
from datetime import date
from typing import List, Optional, Sequence
from uuid import UUID

from domain.enums import LifecycleAction, PaymentStatus, ReservationStatus


class HotelDomainError(Exception):
    """Base class for all domain errors"""

    code = "DOMAIN_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"code": self.code, "detail": self.message}


class NotFound(HotelDomainError):
    code = "NOT_FOUND"

    def __init__(self, entity: str, entity_id):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class PermissionDenied(HotelDomainError):
    code = "PERMISSION_DENIED"


class ReferentialIntegrityError(HotelDomainError):
    code = "REFERENTIAL_INTEGRITY"


class RateConfigurationError(HotelDomainError):
    code = "RATE_CONFIGURATION"


class RateError(HotelDomainError):
    code = "RATE_ERROR"


class NoApplicableRate(RateError):
    code = "NO_APPLICABLE_RATE"

    def __init__(self, room_type_id: UUID, night: date):
        self.room_type_id = room_type_id
        self.night = night
        super().__init__(f"No applicable rate for room type {room_type_id} on {night.isoformat()}")

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update(room_type_id=str(self.room_type_id), night=self.night.isoformat())
        return data


class AmbiguousRate(RateError):
    code = "AMBIGUOUS_RATE"

    def __init__(self, night: date, rate_ids: Sequence[UUID]):
        self.night = night
        self.rate_ids = list(rate_ids)
        super().__init__(
            f"Rates {', '.join(str(r) for r in self.rate_ids)} are equally specific on {night.isoformat()}"
        )

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update(night=self.night.isoformat(), rate_ids=[str(r) for r in self.rate_ids])
        return data


class ConstraintViolationError(HotelDomainError):
    """Carries every violated stay constraint at once"""

    code = "CONSTRAINT_VIOLATION"

    def __init__(self, violations: List):
        self.violations = list(violations)
        super().__init__("; ".join(v.message for v in self.violations))

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["violations"] = [v.model_dump(mode="json") for v in self.violations]
        return data


class InvalidTransition(HotelDomainError):
    code = "INVALID_TRANSITION"

    def __init__(
        self,
        from_status: ReservationStatus,
        to_status: Optional[ReservationStatus],
        action: Optional[LifecycleAction] = None,
        reason: Optional[str] = None,
    ):
        self.from_status = from_status
        self.to_status = to_status
        self.action = action
        target = to_status.value if to_status else "?"
        message = f"Cannot transition reservation from {from_status.value} to {target}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update(
            **{
                "from": self.from_status.value,
                "to": self.to_status.value if self.to_status else None,
                "action": self.action.value if self.action else None,
            }
        )
        return data


class InvalidPaymentTransition(HotelDomainError):
    code = "INVALID_PAYMENT_TRANSITION"

    def __init__(self, from_status: PaymentStatus, to_status: PaymentStatus):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(f"Cannot change payment status from {from_status.value} to {to_status.value}")

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update(**{"from": self.from_status.value, "to": self.to_status.value})
        return data


class InventoryConflict(HotelDomainError):
    """Another stay already holds the room; the caller should search again"""

    code = "INVENTORY_CONFLICT"

    def __init__(self, room_id: UUID, conflicting_reservation_id: Optional[UUID] = None, reason: Optional[str] = None):
        self.room_id = room_id
        self.conflicting_reservation_id = conflicting_reservation_id
        if reason is None:
            reason = f"held by reservation {conflicting_reservation_id}"
        super().__init__(f"Room {room_id} is not available: {reason}")

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update(
            room_id=str(self.room_id),
            conflicting_reservation_id=(
                str(self.conflicting_reservation_id) if self.conflicting_reservation_id else None
            ),
            retryable=True,
        )
        return data


class RefundNotAllowed(HotelDomainError):
    code = "REFUND_NOT_ALLOWED"

    def __init__(self, current_status: PaymentStatus):
        self.current_status = current_status
        super().__init__(f"Refund not allowed for payment with status {current_status.value}")

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["current_status"] = self.current_status.value
        return data
