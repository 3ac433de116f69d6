from typing import Awaitable, Callable, Iterable, List, Optional
import asyncio
import logging

from app.core.config import settings
from app.domain.events import BookingEvent

logger = logging.getLogger(__name__)

EventHandler = Callable[[BookingEvent], Awaitable[None]]


async def log_booking_event(event: BookingEvent) -> None:
    """Default handler: record the transition in the application log"""
    from_state = event.from_state.value if event.from_state else "new"
    logger.info(
        f"Booking {event.booking_id} moved {from_state} -> {event.to_state.value} "
        f"(actor={event.actor_id or 'system'})"
    )


class NotificationService:
    """Fire-and-forget dispatch of booking events to external notifiers.

    ``publish`` only enqueues; a background worker hands each event to every
    handler, retrying a failing handler with linear backoff before giving up.
    A handler may therefore see the same event more than once.
    """

    def __init__(
        self,
        handlers: Optional[Iterable[EventHandler]] = None,
        max_attempts: Optional[int] = None,
        retry_backoff_seconds: Optional[float] = None,
    ):
        self.handlers: List[EventHandler] = list(handlers) if handlers is not None else [log_booking_event]
        self.max_attempts = max_attempts or settings.NOTIFICATION_MAX_ATTEMPTS
        self.retry_backoff_seconds = (
            settings.NOTIFICATION_RETRY_BACKOFF_SECONDS if retry_backoff_seconds is None else retry_backoff_seconds
        )
        self._queue: asyncio.Queue = asyncio.Queue()
        self._worker: Optional[asyncio.Task] = None

    def add_handler(self, handler: EventHandler) -> None:
        self.handlers.append(handler)

    def publish(self, event: BookingEvent) -> None:
        """Queue ``event`` for delivery; never blocks and never raises on delivery errors"""
        self._queue.put_nowait(event)
        self._ensure_worker()

    async def start(self) -> None:
        self._ensure_worker()

    async def drain(self) -> None:
        """Wait until every queued event has been handed to all handlers"""
        if not self._queue.empty():
            self._ensure_worker()
        await self._queue.join()

    async def stop(self) -> None:
        if self._worker is None:
            return
        await self.drain()
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None

    def _ensure_worker(self) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                for handler in self.handlers:
                    await self._deliver(handler, event)
            finally:
                self._queue.task_done()

    async def _deliver(self, handler: EventHandler, event: BookingEvent) -> bool:
        for attempt in range(1, self.max_attempts + 1):
            try:
                await handler(event)
                return True
            except Exception as e:
                logger.warning(
                    f"Notification handler {getattr(handler, '__name__', handler)} failed for booking "
                    f"{event.booking_id} (attempt {attempt}/{self.max_attempts}): {e}"
                )
                if attempt < self.max_attempts:
                    await asyncio.sleep(self.retry_backoff_seconds * attempt)
        logger.error(f"Giving up delivering {event.to_state.value} event for booking {event.booking_id}")
        return False
