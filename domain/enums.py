"""Domain Enums"""
from enum import Enum


class ReservationStatus(str, Enum):
    PENDING = "PENDING"
    PROVISIONAL = "PROVISIONAL"
    INQUIRY = "INQUIRY"
    CONFIRMED = "CONFIRMED"
    CHECKED_IN = "CHECKED_IN"
    CHECKED_OUT = "CHECKED_OUT"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"
    WALKED_IN = "WALKED_IN"


class ReservationSource(str, Enum):
    WEBSITE = "WEBSITE"
    MOBILE_APP = "MOBILE_APP"
    PHONE = "PHONE"
    EMAIL = "EMAIL"
    OTA = "OTA"
    DIRECT = "DIRECT"
    CORPORATE = "CORPORATE"
    WALK_IN = "WALK_IN"


class RequestType(str, Enum):
    EARLY_CHECK_IN = "EARLY_CHECK_IN"
    LATE_CHECK_OUT = "LATE_CHECK_OUT"
    HIGH_FLOOR = "HIGH_FLOOR"
    ACCESSIBLE_ROOM = "ACCESSIBLE_ROOM"
    QUIET_ROOM = "QUIET_ROOM"
    CRIBS = "CRIBS"
    EXTRA_BED = "EXTRA_BED"
    SPECIAL_AMENITIES = "SPECIAL_AMENITIES"


class LifecycleAction(str, Enum):
    CONFIRM = "CONFIRM"
    CHECK_IN = "CHECK_IN"
    CHECK_OUT = "CHECK_OUT"
    CANCEL = "CANCEL"
    NO_SHOW = "NO_SHOW"


class RoomStatus(str, Enum):
    AVAILABLE = "AVAILABLE"
    OCCUPIED = "OCCUPIED"
    RESERVED = "RESERVED"
    CLEANING = "CLEANING"
    MAINTENANCE = "MAINTENANCE"
    OUT_OF_ORDER = "OUT_OF_ORDER"
    BLOCKED = "BLOCKED"


class HousekeepingStatus(str, Enum):
    CLEAN = "CLEAN"
    DIRTY = "DIRTY"
    INSPECTED = "INSPECTED"


class RoomCategory(str, Enum):
    STANDARD = "STANDARD"
    DELUXE = "DELUXE"
    SUITE = "SUITE"
    VILLA = "VILLA"
    FAMILY = "FAMILY"
    DORMITORY = "DORMITORY"


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    SUCCEEDED = "SUCCEEDED"
    PAID = "PAID"
    PARTIAL = "PARTIAL"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"
    PARTIALLY_REFUNDED = "PARTIALLY_REFUNDED"
    DISPUTED = "DISPUTED"
    CHARGEBACK = "CHARGEBACK"
    EXPIRED = "EXPIRED"


class PaymentMethod(str, Enum):
    CARD = "CARD"
    CASH = "CASH"
    BANK_TRANSFER = "BANK_TRANSFER"
    GCASH = "GCASH"
    PAYMAYA = "PAYMAYA"
    GRAB_PAY = "GRAB_PAY"
    OTHER = "OTHER"


class RateSource(str, Enum):
    RATE = "RATE"
    BASE_RATE = "BASE_RATE"


class ViolationKind(str, Enum):
    STAY_TOO_SHORT = "STAY_TOO_SHORT"
    STAY_TOO_LONG = "STAY_TOO_LONG"
    TOO_EARLY = "TOO_EARLY"
    TOO_LATE = "TOO_LATE"
    OCCUPANCY_EXCEEDED = "OCCUPANCY_EXCEEDED"
    TOO_MANY_ADULTS = "TOO_MANY_ADULTS"
    TOO_MANY_CHILDREN = "TOO_MANY_CHILDREN"
    TOO_MANY_INFANTS = "TOO_MANY_INFANTS"


class Role(str, Enum):
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    FRONT_DESK = "FRONT_DESK"
    HOUSEKEEPING = "HOUSEKEEPING"
