"""
Outbound side effects: notifications and invoice rendering

Both are fire-and-forget from the booking core's point of view. A failure is
logged and counted and never undoes a committed booking or payment.
"""
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlalchemy.orm import selectinload

from cinema_booking.core.database import AsyncSessionLocal
from cinema_booking.core.metrics import notifications_failed_total
from cinema_booking.models import Booking, BookingSeat, MovieSession

logger = logging.getLogger(__name__)

PAYMENT_RECEIPT = "payment_receipt"
SESSION_REMINDER = "session_reminder"


class NotificationDispatcher(ABC):
    @abstractmethod
    async def notify(self, user_id: int, template: str, payload: Dict[str, Any]) -> None:
        ...


class LoggingNotificationDispatcher(NotificationDispatcher):
    """Default dispatcher: records the notification in the log stream"""

    async def notify(self, user_id: int, template: str, payload: Dict[str, Any]) -> None:
        logger.info(
            f"📨 Notification '{template}' for user {user_id}",
            extra={"user_id": user_id, "booking_id": payload.get("booking_id")},
        )


class InvoiceRenderer(ABC):
    @abstractmethod
    async def render(self, booking_id: int) -> bytes:
        """Render the invoice document of a PAID booking"""


class TextInvoiceRenderer(InvoiceRenderer):
    """Plain-text invoice built from the stored booking and payment"""

    def __init__(self, session_factory: async_sessionmaker = AsyncSessionLocal):
        self.session_factory = session_factory

    async def render(self, booking_id: int) -> bytes:
        async with self.session_factory() as db:
            result = await db.execute(
                select(Booking)
                .where(Booking.id == booking_id)
                .options(
                    selectinload(Booking.booking_seats).selectinload(BookingSeat.seat),
                    selectinload(Booking.session).selectinload(MovieSession.movie),
                    selectinload(Booking.payment),
                )
            )
            booking = result.scalar_one()

        session = booking.session
        lines = [
            f"Invoice for booking #{booking.id}",
            f"{session.movie.title}, {session.start_time:%Y-%m-%d %H:%M} UTC",
            "",
        ]
        for link in booking.booking_seats:
            lines.append(f"  Seat {link.seat.seat_number:<6} {link.seat.category.value:<8} {link.seat_price:>8}")
        lines.append(f"  {'Subtotal':<15} {booking.total_amount:>8}")

        payment = booking.payment
        if payment is not None:
            if payment.amount != booking.total_amount:
                lines.append(f"  {'Discount':<15} {payment.amount - booking.total_amount:>8}")
            lines.append(f"  {'Paid':<15} {payment.amount:>8} {payment.currency.upper()}")

        logger.info(f"🧾 Invoice rendered for booking {booking_id}", extra={"booking_id": booking_id})
        return "\n".join(lines).encode("utf-8")


async def dispatch_safely(
    dispatcher: Optional[NotificationDispatcher],
    user_id: int,
    template: str,
    payload: Dict[str, Any],
) -> bool:
    """Send a notification; returns False instead of raising on failure"""
    if dispatcher is None:
        return False
    try:
        await dispatcher.notify(user_id, template, payload)
        return True
    except Exception as e:
        notifications_failed_total.labels(template=template).inc()
        logger.warning(
            f"⚠️  Notification '{template}' for user {user_id} failed: {e}",
            extra={"user_id": user_id, "booking_id": payload.get("booking_id")},
        )
        return False


async def render_invoice_safely(renderer: Optional[InvoiceRenderer], booking_id: int) -> Optional[bytes]:
    if renderer is None:
        return None
    try:
        return await renderer.render(booking_id)
    except Exception as e:
        notifications_failed_total.labels(template="invoice").inc()
        logger.warning(
            f"⚠️  Invoice rendering for booking {booking_id} failed: {e}",
            extra={"booking_id": booking_id},
        )
        return None


# Global default dispatcher
notification_dispatcher = LoggingNotificationDispatcher()
