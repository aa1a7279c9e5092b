"""Reservation Lifecycle State Machine

The transition table is the single source of truth for which reservation
status changes are legal and what each one does to the assigned rooms. The
payment status table lives here as well since a reservation's payment status
follows it.
"""
from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, Optional

from domain.enums import (
    HousekeepingStatus,
    LifecycleAction,
    PaymentStatus,
    ReservationStatus,
    RoomStatus,
)
from domain.errors import InvalidPaymentTransition, InvalidTransition

INITIAL_STATES: FrozenSet[ReservationStatus] = frozenset({
    ReservationStatus.PENDING,
    ReservationStatus.PROVISIONAL,
    ReservationStatus.INQUIRY,
    ReservationStatus.WALKED_IN,
})

TERMINAL_STATES: FrozenSet[ReservationStatus] = frozenset({
    ReservationStatus.CHECKED_OUT,
    ReservationStatus.CANCELLED,
    ReservationStatus.NO_SHOW,
})

# Statuses that hold a physical room for their dates.
ACTIVE_STATES: FrozenSet[ReservationStatus] = frozenset({
    ReservationStatus.CONFIRMED,
    ReservationStatus.CHECKED_IN,
    ReservationStatus.WALKED_IN,
})

IN_HOUSE_STATES: FrozenSet[ReservationStatus] = frozenset({
    ReservationStatus.CHECKED_IN,
    ReservationStatus.WALKED_IN,
})


@dataclass(frozen=True)
class RoomEffect:
    """What a transition does to each room assigned to the reservation"""
    status: Optional[RoomStatus] = None
    housekeeping: Optional[HousekeepingStatus] = None
    hold: bool = False
    release: bool = False


@dataclass(frozen=True)
class Transition:
    action: LifecycleAction
    sources: FrozenSet[ReservationStatus]
    target: ReservationStatus
    room_effect: RoomEffect
    timestamp_field: str
    idempotent: bool = False
    notify: bool = False


TRANSITIONS: Dict[LifecycleAction, Transition] = {
    LifecycleAction.CONFIRM: Transition(
        action=LifecycleAction.CONFIRM,
        sources=frozenset({
            ReservationStatus.PENDING,
            ReservationStatus.PROVISIONAL,
            ReservationStatus.INQUIRY,
        }),
        target=ReservationStatus.CONFIRMED,
        room_effect=RoomEffect(status=RoomStatus.RESERVED, hold=True),
        timestamp_field="confirmed_at",
        idempotent=True,
        notify=True,
    ),
    LifecycleAction.CHECK_IN: Transition(
        action=LifecycleAction.CHECK_IN,
        sources=frozenset({ReservationStatus.CONFIRMED}),
        target=ReservationStatus.CHECKED_IN,
        room_effect=RoomEffect(status=RoomStatus.OCCUPIED, hold=True),
        timestamp_field="checked_in_at",
        notify=True,
    ),
    LifecycleAction.CHECK_OUT: Transition(
        action=LifecycleAction.CHECK_OUT,
        sources=frozenset({ReservationStatus.CHECKED_IN, ReservationStatus.WALKED_IN}),
        target=ReservationStatus.CHECKED_OUT,
        room_effect=RoomEffect(status=RoomStatus.CLEANING, housekeeping=HousekeepingStatus.DIRTY),
        timestamp_field="checked_out_at",
    ),
    LifecycleAction.CANCEL: Transition(
        action=LifecycleAction.CANCEL,
        sources=frozenset({
            ReservationStatus.PENDING,
            ReservationStatus.PROVISIONAL,
            ReservationStatus.CONFIRMED,
        }),
        target=ReservationStatus.CANCELLED,
        room_effect=RoomEffect(release=True),
        timestamp_field="cancelled_at",
        idempotent=True,
        notify=True,
    ),
    LifecycleAction.NO_SHOW: Transition(
        action=LifecycleAction.NO_SHOW,
        sources=frozenset({ReservationStatus.CONFIRMED}),
        target=ReservationStatus.NO_SHOW,
        room_effect=RoomEffect(release=True),
        timestamp_field="no_show_at",
    ),
}


def plan_transition(current: ReservationStatus, action: LifecycleAction) -> Optional[Transition]:
    """Look up the transition for ``action`` from ``current``.

    Returns None when the action is idempotent and the reservation is already
    in its target state. Raises InvalidTransition for anything else that is
    not in the table.
    """
    transition = TRANSITIONS[action]
    if transition.idempotent and current == transition.target:
        return None
    if current not in transition.sources:
        raise InvalidTransition(current, transition.target, action)
    return transition


def allowed_actions(current: ReservationStatus):
    """Actions that would change a reservation in ``current`` status"""
    return [action for action, transition in TRANSITIONS.items() if current in transition.sources]


def settled_room_status(holder_statuses: Iterable[ReservationStatus]) -> RoomStatus:
    """Status a ready room takes given the statuses of the active reservations on it"""
    statuses = set(holder_statuses)
    if statuses & IN_HOUSE_STATES:
        return RoomStatus.OCCUPIED
    if ReservationStatus.CONFIRMED in statuses:
        return RoomStatus.RESERVED
    return RoomStatus.AVAILABLE


# ==================== PAYMENT STATUS ====================

REFUNDABLE_PAYMENT_STATES: FrozenSet[PaymentStatus] = frozenset({
    PaymentStatus.SUCCEEDED,
    PaymentStatus.PAID,
})

REFUNDED_PAYMENT_STATES: FrozenSet[PaymentStatus] = frozenset({
    PaymentStatus.REFUNDED,
    PaymentStatus.PARTIALLY_REFUNDED,
})

# Refund states are only reachable through the refund operation.
PAYMENT_TRANSITIONS: Dict[PaymentStatus, FrozenSet[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({
        PaymentStatus.PROCESSING, PaymentStatus.SUCCEEDED, PaymentStatus.PAID, PaymentStatus.PARTIAL,
        PaymentStatus.FAILED, PaymentStatus.CANCELLED, PaymentStatus.EXPIRED,
    }),
    PaymentStatus.PROCESSING: frozenset({
        PaymentStatus.SUCCEEDED, PaymentStatus.PAID, PaymentStatus.PARTIAL,
        PaymentStatus.FAILED, PaymentStatus.CANCELLED,
    }),
    PaymentStatus.PARTIAL: frozenset({
        PaymentStatus.PAID, PaymentStatus.SUCCEEDED, PaymentStatus.CANCELLED, PaymentStatus.DISPUTED,
    }),
    PaymentStatus.SUCCEEDED: frozenset({PaymentStatus.DISPUTED}),
    PaymentStatus.PAID: frozenset({PaymentStatus.DISPUTED}),
    PaymentStatus.DISPUTED: frozenset({PaymentStatus.SUCCEEDED, PaymentStatus.PAID, PaymentStatus.CHARGEBACK}),
    PaymentStatus.FAILED: frozenset(),
    PaymentStatus.CANCELLED: frozenset(),
    PaymentStatus.EXPIRED: frozenset(),
    PaymentStatus.CHARGEBACK: frozenset(),
    PaymentStatus.REFUNDED: frozenset(),
    PaymentStatus.PARTIALLY_REFUNDED: frozenset(),
}


def check_payment_transition(current: PaymentStatus, target: PaymentStatus) -> bool:
    """True if the status changes, False for a no-op; raises when illegal"""
    if current == target:
        return False
    if target not in PAYMENT_TRANSITIONS[current]:
        raise InvalidPaymentTransition(current, target)
    return True
