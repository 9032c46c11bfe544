"""
Booking lifecycle transitions

Every transition is a conditional UPDATE guarded on ``status = PENDING`` so two
writers racing on the same booking cannot both win: the loser sees a zero row
count and becomes a no-op. Callers must already be inside a transaction.
"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from cinema_booking.core.exceptions import InvalidBookingStateError
from cinema_booking.core.metrics import record_transition
from cinema_booking.models import ALLOWED_TRANSITIONS, ACTIVE_STATUSES, Booking, BookingSeat, BookingStatus

logger = logging.getLogger(__name__)

_TIMESTAMP_COLUMNS = {
    BookingStatus.PAID: "paid_at",
    BookingStatus.CANCELLED: "cancelled_at",
}


async def transition_booking(
    db: AsyncSession,
    booking_id: int,
    target: BookingStatus,
    now: Optional[datetime] = None,
) -> bool:
    """
    Move a PENDING booking to ``target``.

    Returns True if this call performed the transition, False if the booking was
    missing or no longer PENDING. Leaving the held states releases the seats in
    the same statement batch.
    """
    if target not in ALLOWED_TRANSITIONS[BookingStatus.PENDING]:
        raise InvalidBookingStateError(
            f"Booking cannot transition to {target.value}",
            booking_id=booking_id,
        )

    now = now or datetime.utcnow()
    values = {"status": target, "updated_at": now}
    timestamp_column = _TIMESTAMP_COLUMNS.get(target)
    if timestamp_column:
        values[timestamp_column] = now

    result = await db.execute(
        update(Booking)
        .where(Booking.id == booking_id, Booking.status == BookingStatus.PENDING)
        .values(**values)
    )
    if result.rowcount == 0:
        logger.info(
            f"Booking {booking_id} not transitioned to {target.value}: no longer PENDING",
            extra={"booking_id": booking_id},
        )
        return False

    if target not in ACTIVE_STATUSES:
        await db.execute(
            update(BookingSeat)
            .where(BookingSeat.booking_id == booking_id)
            .values(is_active=False)
        )

    record_transition(target)
    logger.info(
        f"Booking {booking_id} -> {target.value}",
        extra={"booking_id": booking_id},
    )
    return True
