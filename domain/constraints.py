"""Stay Constraint Validator"""
from datetime import date
from typing import List, Optional, Sequence
from uuid import UUID

from pydantic import BaseModel

from domain.entities import RoomRate, RoomType
from domain.enums import ViolationKind
from domain.errors import ConstraintViolationError
from domain.value_objects import DateRange, GuestCount


class ConstraintViolation(BaseModel):
    """A single violated booking rule"""
    kind: ViolationKind
    message: str
    rate_id: Optional[UUID] = None
    limit: Optional[int] = None
    actual: Optional[int] = None

    class Config:
        frozen = True


def validate_stay(
    stay: DateRange,
    today: date,
    rates: Sequence[RoomRate],
    room_type: Optional[RoomType] = None,
    guest_count: Optional[GuestCount] = None,
) -> List[ConstraintViolation]:
    """Collect every violation of the selected rates and room type limits.

    ``rates`` are the rates that priced at least one night of the stay;
    nights priced from the room type's base rate carry no stay rules.
    ``today`` is the property-local date the booking is made on.
    """
    nights = stay.nights()
    lead_days = (stay.check_in - today).days
    violations: List[ConstraintViolation] = []
    seen = set()

    def add(violation: ConstraintViolation) -> None:
        key = (violation.kind, violation.rate_id)
        if key not in seen:
            seen.add(key)
            violations.append(violation)

    for rate in rates:
        if nights < rate.min_stay:
            add(ConstraintViolation(
                kind=ViolationKind.STAY_TOO_SHORT,
                message=f"Rate '{rate.name}' requires at least {rate.min_stay} nights",
                rate_id=rate.rate_id, limit=rate.min_stay, actual=nights,
            ))
        if rate.max_stay is not None and nights > rate.max_stay:
            add(ConstraintViolation(
                kind=ViolationKind.STAY_TOO_LONG,
                message=f"Rate '{rate.name}' allows at most {rate.max_stay} nights",
                rate_id=rate.rate_id, limit=rate.max_stay, actual=nights,
            ))
        if rate.min_advance is not None and lead_days < rate.min_advance:
            add(ConstraintViolation(
                kind=ViolationKind.TOO_EARLY,
                message=f"Rate '{rate.name}' must be booked at least {rate.min_advance} days ahead",
                rate_id=rate.rate_id, limit=rate.min_advance, actual=lead_days,
            ))
        if rate.max_advance is not None and lead_days > rate.max_advance:
            add(ConstraintViolation(
                kind=ViolationKind.TOO_LATE,
                message=f"Rate '{rate.name}' cannot be booked more than {rate.max_advance} days ahead",
                rate_id=rate.rate_id, limit=rate.max_advance, actual=lead_days,
            ))

    if room_type is not None and guest_count is not None:
        violations.extend(_occupancy_violations(room_type, guest_count))

    return violations


def _occupancy_violations(room_type: RoomType, guests: GuestCount) -> List[ConstraintViolation]:
    checks = (
        (ViolationKind.OCCUPANCY_EXCEEDED, "guests", room_type.max_occupancy, guests.total),
        (ViolationKind.TOO_MANY_ADULTS, "adults", room_type.max_adults, guests.adults),
        (ViolationKind.TOO_MANY_CHILDREN, "children", room_type.max_children, guests.children),
        (ViolationKind.TOO_MANY_INFANTS, "infants", room_type.max_infants, guests.infants),
    )
    return [
        ConstraintViolation(
            kind=kind,
            message=f"{room_type.display_name} allows at most {limit} {label}",
            limit=limit,
            actual=actual,
        )
        for kind, label, limit, actual in checks
        if actual > limit
    ]


def ensure_bookable(violations: Sequence[ConstraintViolation]) -> None:
    """Raise ConstraintViolationError carrying every violation, if any"""
    if violations:
        raise ConstraintViolationError(list(violations))
