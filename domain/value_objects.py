"""Domain Value Objects"""
from pydantic import BaseModel, Field, validator
from datetime import date, datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from uuid import UUID, uuid4
from typing import Optional, List
from domain.enums import RequestType, RateSource, PaymentMethod

CENT = Decimal("0.01")


def quantize(amount: Decimal) -> Decimal:
    """Round a monetary amount to cents, half-up"""
    return Decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


class DateRange(BaseModel):
    """Value Object for stay date ranges, check-out exclusive"""
    check_in: date
    check_out: date

    @validator('check_out')
    def check_out_after_check_in(cls, v, values):
        if 'check_in' in values and v <= values['check_in']:
            raise ValueError('Check-out must be after check-in')
        return v

    def nights(self) -> int:
        """Calculate number of nights"""
        return (self.check_out - self.check_in).days

    def each_night(self) -> List[date]:
        """Every night of the stay, check-out day excluded"""
        return [self.check_in + timedelta(days=offset) for offset in range(self.nights())]

    def overlaps(self, other: "DateRange") -> bool:
        """Touching ranges (check-out day == check-in day) do not overlap"""
        return self.check_in < other.check_out and self.check_out > other.check_in

    class Config:
        frozen = True


class Money(BaseModel):
    """Value Object for monetary amounts"""
    amount: Decimal = Field(ge=0)
    currency: str = "PHP"

    @validator('currency')
    def currency_is_iso_code(cls, v):
        if len(v) != 3 or not v.isalpha():
            raise ValueError('Currency must be a 3-letter ISO code')
        return v.upper()

    def __add__(self, other: "Money") -> "Money":
        if other.currency != self.currency:
            raise ValueError(f"Cannot add {other.currency} to {self.currency}")
        return Money(amount=self.amount + other.amount, currency=self.currency)

    def percentage(self, rate: Optional[Decimal]) -> "Money":
        """Percentage of this amount, zero when no rate is configured"""
        if not rate:
            return Money(amount=Decimal("0.00"), currency=self.currency)
        return Money(amount=quantize(self.amount * Decimal(rate) / 100), currency=self.currency)

    @classmethod
    def zero(cls, currency: str) -> "Money":
        return cls(amount=Decimal("0.00"), currency=currency)

    class Config:
        frozen = True


class GuestCount(BaseModel):
    """Value Object for guest count"""
    adults: int = Field(ge=1, le=10)
    children: int = Field(ge=0, le=10, default=0)
    infants: int = Field(ge=0, le=5, default=0)

    @property
    def total(self) -> int:
        """Adults and children; infants do not count towards occupancy"""
        return self.adults + self.children

    class Config:
        frozen = True


class NightlyRate(BaseModel):
    """Price snapshot for a single night of a stay"""
    night: date
    amount: Money
    source: RateSource
    rate_id: Optional[UUID] = None
    rate_name: Optional[str] = None

    class Config:
        frozen = True


class PaymentLineItem(BaseModel):
    """Value Object for a payment line (room, tax, fee)"""
    item_type: str = "ROOM"
    name: str
    description: Optional[str] = None
    unit_price: Decimal = Field(ge=0)
    quantity: int = Field(ge=1, default=1)

    @property
    def total(self) -> Decimal:
        return quantize(self.unit_price * self.quantity)

    class Config:
        frozen = True


class RefundRecord(BaseModel):
    """Immutable record of a refund decision"""
    refund_id: UUID = Field(default_factory=uuid4)
    amount: Money
    reason: str
    method: Optional[PaymentMethod] = None
    processed_by: str
    processed_at: datetime

    class Config:
        frozen = True


class SpecialRequest(BaseModel):
    """Child Entity for special requests"""
    request_id: UUID = Field(default_factory=uuid4)
    request_type: RequestType
    description: str
    fulfilled: bool = False
    notes: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    def fulfill(self, notes: str) -> None:
        """Mark request as fulfilled"""
        self.fulfilled = True
        self.notes = notes

    def is_fulfilled(self) -> bool:
        """Check if request is fulfilled"""
        return self.fulfilled

    class Config:
        from_attributes = True
