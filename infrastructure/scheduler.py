"""Background jobs"""
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from application.room_status import RoomStatusCoordinator
from infrastructure.config import settings

logger = logging.getLogger(__name__)


def build_scheduler(coordinator: RoomStatusCoordinator) -> AsyncIOScheduler:
    """Scheduler with the periodic out-of-order sweep registered, not started"""
    scheduler = AsyncIOScheduler()

    async def _sweep_out_of_order():
        try:
            await coordinator.sweep_out_of_order()
        except Exception:
            logger.exception("Out-of-order sweep failed")

    scheduler.add_job(
        _sweep_out_of_order,
        IntervalTrigger(seconds=settings.OUT_OF_ORDER_SWEEP_INTERVAL_SECONDS),
        id="out_of_order_sweep",
        max_instances=1,
        coalesce=True,
    )
    return scheduler
