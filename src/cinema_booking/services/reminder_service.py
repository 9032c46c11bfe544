"""
Day-before reminders for paid bookings
"""
import logging
from datetime import datetime, time, timedelta
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import async_sessionmaker

from cinema_booking.core.config import settings
from cinema_booking.core.database import AsyncSessionLocal, transaction
from cinema_booking.models import Booking, BookingStatus, MovieSession
from cinema_booking.services.background_tasks import PeriodicWorker
from cinema_booking.services.notifications import (
    SESSION_REMINDER,
    NotificationDispatcher,
    dispatch_safely,
    notification_dispatcher,
)

logger = logging.getLogger(__name__)


async def send_daily_reminders(
    session_factory: async_sessionmaker,
    dispatcher: NotificationDispatcher,
    now: Optional[datetime] = None,
) -> int:
    """
    Notify the owner of every PAID booking whose session starts tomorrow (UTC).

    A delivered reminder is stamped on the booking and never sent again; a
    failed one is retried on the next run.

    Returns:
        Number of reminders delivered
    """
    now = now or datetime.utcnow()
    day_start = datetime.combine(now.date() + timedelta(days=1), time.min)
    day_end = day_start + timedelta(days=1)

    async with session_factory() as db:
        result = await db.execute(
            select(Booking.id, Booking.user_id, MovieSession.id, MovieSession.start_time)
            .join(MovieSession, MovieSession.id == Booking.session_id)
            .where(
                Booking.status == BookingStatus.PAID,
                Booking.reminder_sent_at.is_(None),
                MovieSession.start_time >= day_start,
                MovieSession.start_time < day_end,
            )
            .order_by(MovieSession.start_time, Booking.id)
        )
        rows = result.all()

    sent = 0
    for booking_id, user_id, session_id, start_time in rows:
        delivered = await dispatch_safely(
            dispatcher,
            user_id,
            SESSION_REMINDER,
            {
                "booking_id": booking_id,
                "session_id": session_id,
                "start_time": start_time.isoformat(),
            },
        )
        if delivered:
            await _mark_reminded(session_factory, booking_id, now)
            sent += 1

    logger.info(f"🔔 Sent {sent}/{len(rows)} session reminders for {day_start.date()}")
    return sent


async def _mark_reminded(session_factory: async_sessionmaker, booking_id: int, now: datetime):
    async with session_factory() as db:
        async with transaction(db, "mark_reminded", booking_id):
            await db.execute(
                update(Booking)
                .where(Booking.id == booking_id, Booking.reminder_sent_at.is_(None))
                .values(reminder_sent_at=now)
            )


class ReminderWorker(PeriodicWorker):
    name = "reminder worker"

    def __init__(
        self,
        session_factory: async_sessionmaker = AsyncSessionLocal,
        dispatcher: NotificationDispatcher = notification_dispatcher,
        interval_seconds: float = settings.REMINDER_CHECK_INTERVAL_SECONDS,
    ):
        super().__init__(interval_seconds)
        self.session_factory = session_factory
        self.dispatcher = dispatcher

    async def run_once(self):
        await send_daily_reminders(self.session_factory, self.dispatcher)


reminder_worker = ReminderWorker()
