"""Domain layer tests: value objects, rate evaluation and selection, stay rules, lifecycle"""
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from domain.constraints import ConstraintViolation, ensure_bookable, validate_stay
from domain.entities import Payment, Reservation, Room, RoomRate, RoomStay, RoomType, WEEKDAY_FIELDS
from domain.enums import (
    LifecycleAction, PaymentStatus, RateSource, ReservationSource, ReservationStatus, RoomStatus,
    ViolationKind,
)
from domain.errors import (
    AmbiguousRate, ConstraintViolationError, InvalidPaymentTransition, InvalidTransition,
    InventoryConflict, NoApplicableRate, RateConfigurationError, RefundNotAllowed,
)
from domain.lifecycle import allowed_actions, check_payment_transition, plan_transition
from domain.rates import applies, pick_rate, rates_used, select_rates, specificity_key
from domain.value_objects import DateRange, GuestCount, Money

AT = datetime(2025, 3, 3, 9, 0, tzinfo=timezone.utc)
WEEKEND = {day: day in ("friday", "saturday", "sunday") for day in WEEKDAY_FIELDS}
NO_DAYS = {day: False for day in WEEKDAY_FIELDS}


def php(amount) -> Money:
    return Money(amount=Decimal(str(amount)), currency="PHP")


@pytest.fixture
def deluxe():
    return RoomType(
        business_unit_id=uuid4(),
        name="deluxe",
        display_name="Deluxe",
        base_rate=php(5000),
        currency="PHP",
    )


def make_rate(room_type, name="Rate", amount=4000, valid_from=date(2024, 1, 1), **kwargs):
    return RoomRate(
        room_type_id=room_type.room_type_id,
        name=name,
        base_rate=php(amount),
        valid_from=valid_from,
        **kwargs,
    )


def make_reservation(room_type, check_in=date(2025, 3, 10), nights=2, room_id=None, status=ReservationStatus.PENDING):
    date_range = DateRange(check_in=check_in, check_out=check_in + timedelta(days=nights))
    nightly = select_rates(room_type, [], date_range)
    stay = RoomStay.price(room_type.room_type_id, nightly, "PHP", Decimal("12"), Decimal("10"), room_id=room_id)
    return Reservation.create(
        business_unit_id=room_type.business_unit_id,
        guest_id=uuid4(),
        date_range=date_range,
        guest_count=GuestCount(adults=2),
        room_stays=[stay],
        reservation_source=ReservationSource.PHONE,
        at=AT,
        initial_status=status,
    )


# ============================================================================
# VALUE OBJECTS
# ============================================================================

class TestValueObjects:

    @pytest.mark.unit
    @pytest.mark.domain
    def test_date_range_nights_exclude_check_out(self):
        stay = DateRange(check_in=date(2025, 3, 7), check_out=date(2025, 3, 10))
        assert stay.nights() == 3
        assert stay.each_night() == [date(2025, 3, 7), date(2025, 3, 8), date(2025, 3, 9)]

    @pytest.mark.unit
    @pytest.mark.domain
    @pytest.mark.edge_case
    def test_date_range_rejects_zero_nights(self):
        with pytest.raises(ValueError, match="Check-out must be after check-in"):
            DateRange(check_in=date(2025, 3, 7), check_out=date(2025, 3, 7))

    @pytest.mark.unit
    @pytest.mark.domain
    def test_touching_ranges_do_not_overlap(self):
        first = DateRange(check_in=date(2025, 3, 1), check_out=date(2025, 3, 3))
        second = DateRange(check_in=date(2025, 3, 3), check_out=date(2025, 3, 5))
        third = DateRange(check_in=date(2025, 3, 2), check_out=date(2025, 3, 4))
        assert not first.overlaps(second)
        assert first.overlaps(third)
        assert third.overlaps(second)

    @pytest.mark.unit
    @pytest.mark.domain
    def test_money_addition_and_percentage(self):
        total = php("100.10") + php("0.20")
        assert total.amount == Decimal("100.30")
        assert php(1000).percentage(Decimal("12")).amount == Decimal("120.00")
        assert php(1000).percentage(None).amount == Decimal("0.00")

    @pytest.mark.unit
    @pytest.mark.domain
    @pytest.mark.edge_case
    def test_money_rejects_mixed_currencies(self):
        with pytest.raises(ValueError, match="Cannot add USD to PHP"):
            php(1) + Money(amount=Decimal("1"), currency="USD")

    @pytest.mark.unit
    @pytest.mark.domain
    def test_guest_count_total_excludes_infants(self):
        assert GuestCount(adults=2, children=1, infants=1).total == 3


# ============================================================================
# RATE CALENDAR EVALUATOR
# ============================================================================

class TestRateCalendar:

    @pytest.mark.unit
    @pytest.mark.domain
    def test_applies_inside_window_on_allowed_weekday(self, deluxe):
        rate = make_rate(deluxe, valid_to=date(2025, 12, 31), **WEEKEND)
        assert applies(rate, date(2025, 3, 7))       # Friday
        assert not applies(rate, date(2025, 3, 10))  # Monday

    @pytest.mark.unit
    @pytest.mark.domain
    @pytest.mark.edge_case
    def test_window_bounds_are_inclusive(self, deluxe):
        rate = make_rate(deluxe, valid_from=date(2025, 3, 1), valid_to=date(2025, 3, 31))
        assert applies(rate, date(2025, 3, 1))
        assert applies(rate, date(2025, 3, 31))
        assert not applies(rate, date(2025, 2, 28))
        assert not applies(rate, date(2025, 4, 1))

    @pytest.mark.unit
    @pytest.mark.domain
    def test_open_ended_rate_applies_far_ahead(self, deluxe):
        rate = make_rate(deluxe)
        assert applies(rate, date(2040, 6, 1))

    @pytest.mark.unit
    @pytest.mark.domain
    def test_inactive_rate_never_applies(self, deluxe):
        rate = make_rate(deluxe, is_active=False)
        assert not applies(rate, date(2025, 3, 7))

    @pytest.mark.unit
    @pytest.mark.domain
    @pytest.mark.edge_case
    def test_rate_without_weekdays_never_applies(self, deluxe):
        rate = make_rate(deluxe, **NO_DAYS)
        start = date(2025, 1, 1)
        assert not any(applies(rate, start + timedelta(days=n)) for n in range(14))

    @pytest.mark.unit
    @pytest.mark.domain
    @pytest.mark.edge_case
    def test_rate_without_weekdays_is_rejected(self, deluxe):
        rate = make_rate(deluxe, is_active=False, **NO_DAYS)
        with pytest.raises(RateConfigurationError, match="at least one day"):
            rate.validate_configuration()
        with pytest.raises(RateConfigurationError):
            rate.set_active(True, AT)
        assert rate.is_active is False

    @pytest.mark.unit
    @pytest.mark.domain
    def test_every_night_of_contained_stay_applies(self, deluxe):
        rate = make_rate(deluxe, valid_from=date(2025, 3, 1), valid_to=date(2025, 3, 31))
        stay = DateRange(check_in=date(2025, 3, 10), check_out=date(2025, 3, 17))
        assert all(applies(rate, night) for night in stay.each_night())

    @pytest.mark.unit
    @pytest.mark.domain
    @pytest.mark.edge_case
    @pytest.mark.parametrize("kwargs, message", [
        ({"valid_from": date(2025, 3, 10), "valid_to": date(2025, 3, 1)}, "ends before it starts"),
        ({"min_stay": 5, "max_stay": 2}, "max stay"),
        ({"min_advance": 10, "max_advance": 3}, "max advance"),
    ])
    def test_contradictory_rate_configuration(self, deluxe, kwargs, message):
        rate = make_rate(deluxe, **kwargs)
        with pytest.raises(RateConfigurationError, match=message):
            rate.validate_configuration()


# ============================================================================
# RATE SELECTOR
# ============================================================================

class TestRateSelector:

    @pytest.mark.unit
    @pytest.mark.domain
    def test_weekend_special_and_base_rate_fallback(self, deluxe):
        weekend = make_rate(deluxe, name="Weekend Special", amount=4000, **WEEKEND)

        fri_to_sun = select_rates(deluxe, [weekend], DateRange(check_in=date(2025, 3, 7), check_out=date(2025, 3, 10)))
        assert [n.amount.amount for n in fri_to_sun] == [Decimal("4000")] * 3
        assert {n.rate_id for n in fri_to_sun} == {weekend.rate_id}

        mon_to_wed = select_rates(deluxe, [weekend], DateRange(check_in=date(2025, 3, 10), check_out=date(2025, 3, 13)))
        assert [n.amount.amount for n in mon_to_wed] == [Decimal("5000")] * 3
        assert all(n.source == RateSource.BASE_RATE and n.rate_id is None for n in mon_to_wed)

    @pytest.mark.unit
    @pytest.mark.domain
    def test_selection_is_deterministic(self, deluxe):
        rates = [
            make_rate(deluxe, name="Default", amount=4500, is_default=True),
            make_rate(deluxe, name="March", amount=4200, valid_to=date(2025, 3, 31)),
            make_rate(deluxe, name="Weekend", amount=3900, **WEEKEND),
        ]
        stay = DateRange(check_in=date(2025, 3, 5), check_out=date(2025, 3, 12))
        assert select_rates(deluxe, rates, stay) == select_rates(deluxe, list(reversed(rates)), stay)

    @pytest.mark.unit
    @pytest.mark.domain
    def test_non_default_beats_default(self, deluxe):
        default = make_rate(deluxe, name="Default", is_default=True)
        promo = make_rate(deluxe, name="Promo")
        assert pick_rate(deluxe, [default, promo], date(2025, 3, 5)) == promo

    @pytest.mark.unit
    @pytest.mark.domain
    def test_narrower_window_beats_open_ended(self, deluxe):
        open_ended = make_rate(deluxe, name="Rack")
        march = make_rate(deluxe, name="March", valid_to=date(2025, 3, 31))
        assert pick_rate(deluxe, [open_ended, march], date(2025, 3, 5)) == march

    @pytest.mark.unit
    @pytest.mark.domain
    def test_fewer_weekdays_beats_more(self, deluxe):
        every_day = make_rate(deluxe, name="Every day")
        weekend = make_rate(deluxe, name="Weekend", **WEEKEND)
        assert pick_rate(deluxe, [every_day, weekend], date(2025, 3, 8)) == weekend

    @pytest.mark.unit
    @pytest.mark.domain
    def test_later_start_beats_earlier(self, deluxe):
        old = make_rate(deluxe, name="Old")
        new = make_rate(deluxe, name="New", valid_from=date(2025, 1, 1))
        assert specificity_key(new) < specificity_key(old)
        assert pick_rate(deluxe, [old, new], date(2025, 3, 5)) == new

    @pytest.mark.unit
    @pytest.mark.domain
    @pytest.mark.edge_case
    def test_equally_specific_rates_are_ambiguous(self, deluxe):
        first = make_rate(deluxe, name="A")
        second = make_rate(deluxe, name="B", amount=4100)
        with pytest.raises(AmbiguousRate) as exc_info:
            pick_rate(deluxe, [first, second], date(2025, 3, 5))
        assert set(exc_info.value.rate_ids) == {first.rate_id, second.rate_id}
        assert exc_info.value.to_dict()["code"] == "AMBIGUOUS_RATE"

    @pytest.mark.unit
    @pytest.mark.domain
    @pytest.mark.edge_case
    def test_no_rate_and_no_base_rate(self, deluxe):
        bare = RoomType(business_unit_id=deluxe.business_unit_id, name="bare", display_name="Bare", currency="PHP")
        with pytest.raises(NoApplicableRate):
            select_rates(bare, [], DateRange(check_in=date(2025, 3, 5), check_out=date(2025, 3, 6)))

    @pytest.mark.unit
    @pytest.mark.domain
    def test_rates_of_other_room_types_are_ignored(self, deluxe):
        other = RoomType(business_unit_id=deluxe.business_unit_id, name="suite", display_name="Suite", currency="PHP")
        foreign = make_rate(other, amount=100)
        nightly = select_rates(deluxe, [foreign], DateRange(check_in=date(2025, 3, 5), check_out=date(2025, 3, 6)))
        assert nightly[0].amount.amount == Decimal("5000")

    @pytest.mark.unit
    @pytest.mark.domain
    def test_rates_used_keeps_first_night_order(self, deluxe):
        weekday = make_rate(deluxe, name="Weekday", **{d: not v for d, v in WEEKEND.items()})
        weekend = make_rate(deluxe, name="Weekend", **WEEKEND)
        nightly = select_rates(deluxe, [weekend, weekday], DateRange(check_in=date(2025, 3, 6), check_out=date(2025, 3, 9)))
        assert rates_used([weekend, weekday], nightly) == [weekday, weekend]


# ============================================================================
# STAY CONSTRAINT VALIDATOR
# ============================================================================

class TestStayConstraints:

    @pytest.mark.unit
    @pytest.mark.domain
    def test_stay_too_short(self, deluxe):
        rate = make_rate(deluxe, min_stay=3)
        violations = validate_stay(DateRange(check_in=date(2025, 3, 10), check_out=date(2025, 3, 12)), date(2025, 3, 3), [rate])
        assert [v.kind for v in violations] == [ViolationKind.STAY_TOO_SHORT]
        assert violations[0].limit == 3 and violations[0].actual == 2

    @pytest.mark.unit
    @pytest.mark.domain
    def test_no_violations_when_rules_hold(self, deluxe):
        rate = make_rate(deluxe, min_stay=2, max_stay=7, min_advance=3, max_advance=60)
        stay = DateRange(check_in=date(2025, 3, 10), check_out=date(2025, 3, 13))
        violations = validate_stay(stay, date(2025, 3, 3), [rate], deluxe, GuestCount(adults=2))
        assert violations == []
        ensure_bookable(violations)

    @pytest.mark.unit
    @pytest.mark.domain
    def test_booked_one_day_ahead_is_too_early(self, deluxe):
        rate = make_rate(deluxe, min_advance=3)
        stay = DateRange(check_in=date(2025, 3, 4), check_out=date(2025, 3, 6))
        violations = validate_stay(stay, date(2025, 3, 3), [rate])
        assert [v.kind for v in violations] == [ViolationKind.TOO_EARLY]
        assert violations[0].actual == 1

    @pytest.mark.unit
    @pytest.mark.domain
    def test_booked_too_far_ahead_is_too_late(self, deluxe):
        rate = make_rate(deluxe, max_advance=30)
        stay = DateRange(check_in=date(2025, 6, 1), check_out=date(2025, 6, 3))
        assert [v.kind for v in validate_stay(stay, date(2025, 3, 3), [rate])] == [ViolationKind.TOO_LATE]

    @pytest.mark.unit
    @pytest.mark.domain
    def test_all_violations_are_reported_together(self, deluxe):
        rate = make_rate(deluxe, min_stay=1, max_stay=2, min_advance=7)
        stay = DateRange(check_in=date(2025, 3, 4), check_out=date(2025, 3, 8))
        kinds = {v.kind for v in validate_stay(stay, date(2025, 3, 3), [rate], deluxe, GuestCount(adults=3))}
        assert kinds == {
            ViolationKind.STAY_TOO_LONG, ViolationKind.TOO_EARLY,
            ViolationKind.OCCUPANCY_EXCEEDED, ViolationKind.TOO_MANY_ADULTS,
        }

    @pytest.mark.unit
    @pytest.mark.domain
    def test_ensure_bookable_raises_with_every_violation(self, deluxe):
        rate = make_rate(deluxe, min_stay=5, min_advance=3)
        stay = DateRange(check_in=date(2025, 3, 4), check_out=date(2025, 3, 5))
        with pytest.raises(ConstraintViolationError) as exc_info:
            ensure_bookable(validate_stay(stay, date(2025, 3, 3), [rate]))
        body = exc_info.value.to_dict()
        assert {v["kind"] for v in body["violations"]} == {"STAY_TOO_SHORT", "TOO_EARLY"}

    @pytest.mark.unit
    @pytest.mark.domain
    def test_violations_are_comparable_values(self):
        a = ConstraintViolation(kind=ViolationKind.TOO_EARLY, message="x", limit=3, actual=1)
        b = ConstraintViolation(kind=ViolationKind.TOO_EARLY, message="x", limit=3, actual=1)
        assert a == b


# ============================================================================
# RESERVATION LIFECYCLE
# ============================================================================

class TestLifecycle:

    @pytest.mark.unit
    @pytest.mark.domain
    @pytest.mark.parametrize("action", list(LifecycleAction))
    def test_nothing_leaves_checked_out(self, action):
        with pytest.raises(InvalidTransition) as exc_info:
            plan_transition(ReservationStatus.CHECKED_OUT, action)
        assert exc_info.value.from_status == ReservationStatus.CHECKED_OUT

    @pytest.mark.unit
    @pytest.mark.domain
    def test_repeat_confirm_and_cancel_are_no_ops(self):
        assert plan_transition(ReservationStatus.CONFIRMED, LifecycleAction.CONFIRM) is None
        assert plan_transition(ReservationStatus.CANCELLED, LifecycleAction.CANCEL) is None

    @pytest.mark.unit
    @pytest.mark.domain
    def test_allowed_actions(self):
        assert allowed_actions(ReservationStatus.PENDING) == [LifecycleAction.CONFIRM, LifecycleAction.CANCEL]
        assert allowed_actions(ReservationStatus.WALKED_IN) == [LifecycleAction.CHECK_OUT]
        assert allowed_actions(ReservationStatus.NO_SHOW) == []

    @pytest.mark.unit
    @pytest.mark.domain
    @pytest.mark.edge_case
    def test_checked_in_cannot_be_cancelled(self):
        with pytest.raises(InvalidTransition):
            plan_transition(ReservationStatus.CHECKED_IN, LifecycleAction.CANCEL)

    @pytest.mark.unit
    @pytest.mark.domain
    def test_payment_transitions(self):
        assert check_payment_transition(PaymentStatus.PENDING, PaymentStatus.SUCCEEDED) is True
        assert check_payment_transition(PaymentStatus.PAID, PaymentStatus.PAID) is False
        with pytest.raises(InvalidPaymentTransition):
            check_payment_transition(PaymentStatus.FAILED, PaymentStatus.SUCCEEDED)


class TestReservationEntity:

    @pytest.mark.unit
    @pytest.mark.domain
    def test_create_sums_room_stays(self, deluxe):
        reservation = make_reservation(deluxe, nights=2)
        assert reservation.subtotal.amount == Decimal("10000")
        assert reservation.taxes.amount == Decimal("1200.00")
        assert reservation.service_fee.amount == Decimal("1000.00")
        assert reservation.total_amount.amount == Decimal("12200.00")
        assert sum(stay.total.amount for stay in reservation.room_stays) == reservation.total_amount.amount
        assert reservation.confirmation_number.startswith("RES-")

    @pytest.mark.unit
    @pytest.mark.domain
    @pytest.mark.edge_case
    def test_create_rejects_non_initial_status(self, deluxe):
        with pytest.raises(ValueError, match="cannot start in CONFIRMED"):
            make_reservation(deluxe, status=ReservationStatus.CONFIRMED)

    @pytest.mark.unit
    @pytest.mark.domain
    def test_confirm_needs_an_assigned_room(self, deluxe):
        reservation = make_reservation(deluxe)
        with pytest.raises(InvalidTransition, match="assigned room"):
            reservation.confirm(AT)
        assert reservation.status == ReservationStatus.PENDING

    @pytest.mark.unit
    @pytest.mark.domain
    def test_confirm_twice_changes_nothing_the_second_time(self, deluxe):
        reservation = make_reservation(deluxe, room_id=uuid4())
        assert reservation.confirm(AT) is not None
        version = reservation.version
        assert reservation.confirm(AT + timedelta(hours=1)) is None
        assert reservation.version == version
        assert reservation.confirmed_at == AT

    @pytest.mark.unit
    @pytest.mark.domain
    def test_check_in_window(self, deluxe):
        reservation = make_reservation(deluxe, check_in=date(2025, 3, 10), room_id=uuid4())
        reservation.confirm(AT)
        with pytest.raises(InvalidTransition, match="before the check-in date"):
            reservation.check_in(date(2025, 3, 9), AT)
        with pytest.raises(InvalidTransition, match="already ended"):
            reservation.check_in(date(2025, 3, 12), AT)
        reservation.check_in(date(2025, 3, 11), AT)
        assert reservation.status == ReservationStatus.CHECKED_IN

    @pytest.mark.unit
    @pytest.mark.domain
    def test_no_show_only_after_arrival_day(self, deluxe):
        reservation = make_reservation(deluxe, check_in=date(2025, 3, 10), room_id=uuid4())
        reservation.confirm(AT)
        with pytest.raises(InvalidTransition):
            reservation.mark_no_show(date(2025, 3, 10), AT)
        reservation.mark_no_show(date(2025, 3, 11), AT)
        assert reservation.status == ReservationStatus.NO_SHOW
        assert reservation.no_show_at == AT

    @pytest.mark.unit
    @pytest.mark.domain
    @pytest.mark.edge_case
    def test_cancel_needs_a_reason(self, deluxe):
        reservation = make_reservation(deluxe)
        with pytest.raises(ValueError, match="reason is required"):
            reservation.cancel("  ", AT)
        reservation.cancel("guest request", AT)
        assert reservation.cancellation_reason == "guest request"

    @pytest.mark.unit
    @pytest.mark.domain
    def test_walk_in_is_checked_in_on_creation(self, deluxe):
        reservation = make_reservation(deluxe, check_in=date(2025, 3, 3), room_id=uuid4(), status=ReservationStatus.WALKED_IN)
        assert reservation.checked_in_at == AT
        assert reservation.is_active()


class TestRoomAndPayment:

    @pytest.mark.unit
    @pytest.mark.domain
    @pytest.mark.edge_case
    def test_out_of_order_until_must_be_future_and_aware(self, deluxe):
        room = Room(business_unit_id=deluxe.business_unit_id, room_type_id=deluxe.room_type_id, room_number="101")
        with pytest.raises(ValueError, match="timezone-aware"):
            room.set_status(RoomStatus.OUT_OF_ORDER, AT, datetime(2025, 3, 4))
        with pytest.raises(ValueError, match="future"):
            room.set_status(RoomStatus.OUT_OF_ORDER, AT, AT - timedelta(hours=1))
        with pytest.raises(ValueError, match="only valid for OUT_OF_ORDER"):
            room.set_status(RoomStatus.MAINTENANCE, AT, AT + timedelta(hours=1))

        assert room.set_status(RoomStatus.OUT_OF_ORDER, AT, AT + timedelta(hours=1))
        assert not room.out_of_order_expired(AT + timedelta(minutes=30))
        assert room.out_of_order_expired(AT + timedelta(hours=2))

    @pytest.mark.unit
    @pytest.mark.domain
    def test_partial_then_repeat_refund(self):
        payment = Payment(business_unit_id=uuid4(), amount=php(1000), status=PaymentStatus.SUCCEEDED)
        record = payment.refund("late arrival", "frontdesk", AT, amount=php(400))
        assert record.amount.amount == Decimal("400")
        assert payment.status == PaymentStatus.PARTIALLY_REFUNDED
        assert payment.refund("again", "frontdesk", AT) is None
        assert payment.refunded_amount.amount == Decimal("400")

    @pytest.mark.unit
    @pytest.mark.domain
    @pytest.mark.edge_case
    def test_refund_requires_settled_payment(self):
        payment = Payment(business_unit_id=uuid4(), amount=php(1000))
        with pytest.raises(RefundNotAllowed) as exc_info:
            payment.refund("guest request", "frontdesk", AT)
        assert exc_info.value.to_dict()["current_status"] == "PENDING"

    @pytest.mark.unit
    @pytest.mark.domain
    @pytest.mark.edge_case
    def test_refund_cannot_exceed_payment(self):
        payment = Payment(business_unit_id=uuid4(), amount=php(1000), status=PaymentStatus.PAID)
        with pytest.raises(ValueError, match="not exceed"):
            payment.refund("oops", "frontdesk", AT, amount=php(1500))
        assert payment.status == PaymentStatus.PAID

    @pytest.mark.unit
    @pytest.mark.domain
    def test_inventory_conflict_is_retryable(self):
        room_id, other_id = uuid4(), uuid4()
        body = InventoryConflict(room_id, other_id).to_dict()
        assert body["retryable"] is True
        assert body["conflicting_reservation_id"] == str(other_id)
