"""
Background worker for expiring PENDING bookings that were never paid
"""
import logging
import time
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cinema_booking.core.config import settings
from cinema_booking.core.database import AsyncSessionLocal, transaction
from cinema_booking.core.metrics import payments_finalized_total, sweep_duration_seconds, sweep_failures_total
from cinema_booking.models import Booking, BookingStatus, Payment, PaymentStatus
from cinema_booking.services.background_tasks import PeriodicWorker
from cinema_booking.services.booking_state import transition_booking

logger = logging.getLogger(__name__)


async def _expire_booking(db: AsyncSession, booking_id: int, now: datetime) -> bool:
    async with transaction(db, "expire_booking", booking_id):
        expired = await transition_booking(db, booking_id, BookingStatus.EXPIRED, now=now)
        if not expired:
            return False

        payments = await db.execute(
            update(Payment)
            .where(Payment.booking_id == booking_id, Payment.status == PaymentStatus.PENDING)
            .values(status=PaymentStatus.EXPIRED, updated_at=now)
        )
        if payments.rowcount:
            payments_finalized_total.labels(status=PaymentStatus.EXPIRED.value).inc(payments.rowcount)
    return True


async def expire_stale_bookings(
    session_factory: async_sessionmaker,
    hold_deadline: timedelta,
    now: Optional[datetime] = None,
) -> List[int]:
    """
    Expire every PENDING booking created before ``now - hold_deadline``.

    Each booking is expired in its own transaction with a conditional update, so a
    booking paid or cancelled meanwhile is skipped and a second sweep is a no-op.
    A failure on one booking is logged and the sweep moves on.

    Returns:
        Ids of the bookings this sweep expired
    """
    now = now or datetime.utcnow()
    cutoff = now - hold_deadline
    start_time = time.time()
    expired_ids: List[int] = []

    async with session_factory() as db:
        result = await db.execute(
            select(Booking.id)
            .where(Booking.status == BookingStatus.PENDING, Booking.created_at < cutoff)
            .order_by(Booking.id)
        )
        candidate_ids = [row[0] for row in result.all()]

        if not candidate_ids:
            return expired_ids

        logger.info(f"⏰ Expiring {len(candidate_ids)} bookings...")

        for booking_id in candidate_ids:
            try:
                if await _expire_booking(db, booking_id, now):
                    expired_ids.append(booking_id)
            except Exception as e:
                sweep_failures_total.inc()
                logger.error(
                    f"Failed to expire booking {booking_id}: {e}",
                    extra={"booking_id": booking_id},
                    exc_info=True,
                )

    sweep_duration_seconds.observe(time.time() - start_time)
    logger.info(f"  ✅ Sweep expired {len(expired_ids)} of {len(candidate_ids)} candidates")
    return expired_ids


class ExpiryWorker(PeriodicWorker):
    """Background worker for expiring PENDING bookings"""

    name = "expiry worker"

    def __init__(
        self,
        session_factory: async_sessionmaker = AsyncSessionLocal,
        interval_seconds: float = settings.HOLD_EXPIRY_CHECK_INTERVAL_SECONDS,
        hold_minutes: int = settings.HOLD_DURATION_MINUTES,
    ):
        super().__init__(interval_seconds)
        self.session_factory = session_factory
        self.hold_deadline = timedelta(minutes=hold_minutes)

    async def run_once(self):
        await expire_stale_bookings(self.session_factory, self.hold_deadline)


expiry_worker = ExpiryWorker()
