from typing import Awaitable, Callable, List
import asyncio
import logging

from app.core.config import settings
from app.services.reservation_lock import ReservationLock
from app.services.scheduling_service import SchedulingService

logger = logging.getLogger(__name__)


async def sweep_expired_claims(lock: ReservationLock) -> int:
    """Background task to release slot claims whose TTL has passed"""
    try:
        return lock.purge_expired()
    except Exception as e:
        logger.error(f"Error sweeping expired slot claims: {e}")
        return 0


async def advance_due_bookings(service: SchedulingService) -> int:
    """Background task to start and complete sessions as their times pass"""
    try:
        advanced = await service.advance_due_bookings()
        if advanced:
            logger.info(f"Advanced {advanced} booking transitions")
        return advanced
    except Exception as e:
        logger.error(f"Error advancing due bookings: {e}")
        return 0


async def run_periodic(job: Callable[[], Awaitable[int]], interval_seconds: float) -> None:
    while True:
        await job()
        await asyncio.sleep(interval_seconds)


def start_background_tasks(service: SchedulingService) -> List[asyncio.Task]:
    return [
        asyncio.create_task(
            run_periodic(lambda: sweep_expired_claims(service.lock), settings.LOCK_SWEEP_INTERVAL_SECONDS),
            name="sweep-expired-claims",
        ),
        asyncio.create_task(
            run_periodic(lambda: advance_due_bookings(service), settings.BOOKING_ADVANCE_INTERVAL_SECONDS),
            name="advance-due-bookings",
        ),
    ]


async def stop_background_tasks(tasks: List[asyncio.Task]) -> None:
    for task in tasks:
        task.cancel()
    for task in tasks:
        try:
            await task
        except asyncio.CancelledError:
            pass
