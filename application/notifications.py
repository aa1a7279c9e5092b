"""Guest notifications fired after reservation lifecycle commits"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List
from uuid import UUID

from domain.enums import ReservationStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReservationEvent:
    reservation_id: UUID
    confirmation_number: str
    status: ReservationStatus
    guest_id: UUID
    occurred_at: datetime
    data: Dict = field(default_factory=dict)


class NotificationDispatcher(ABC):
    """Delivers reservation events to guests (email, SMS, ...)"""

    @abstractmethod
    async def dispatch(self, event: ReservationEvent) -> None:
        pass


class LoggingNotificationDispatcher(NotificationDispatcher):
    """Writes events to the log; stands in until a mail transport is wired up"""

    def __init__(self):
        self.sent: List[ReservationEvent] = []

    async def dispatch(self, event: ReservationEvent) -> None:
        self.sent.append(event)
        logger.info(
            "Notify guest %s: reservation %s is %s",
            event.guest_id, event.confirmation_number, event.status.value,
        )


async def notify_safely(dispatcher: NotificationDispatcher, event: ReservationEvent) -> None:
    """Send without letting a delivery failure reach the caller"""
    try:
        await dispatcher.dispatch(event)
    except Exception:
        logger.exception(
            "Notification for reservation %s (%s) failed",
            event.reservation_id, event.status.value,
        )
