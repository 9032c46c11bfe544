"""
Booking Service - creates PENDING bookings without ever double-selling a seat
"""
import logging
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from cinema_booking.core.config import settings
from cinema_booking.core.database import transaction
from cinema_booking.core.exceptions import (
    BookingNotFoundError,
    InvalidBookingStateError,
    InvalidSeatSelectionError,
    SeatNotFoundError,
    SeatsUnavailableError,
    SessionNotFoundError,
)
from cinema_booking.core.metrics import (
    booking_creation_duration_seconds,
    bookings_created_total,
    seat_conflicts_total,
    track_time,
)
from cinema_booking.models import Booking, BookingSeat, BookingStatus, MovieSession, Seat
from cinema_booking.services.availability_service import AvailabilityService
from cinema_booking.services.booking_state import transition_booking

logger = logging.getLogger(__name__)

ACTIVE_SEAT_INDEX = "uq_active_session_seat"


def _is_active_seat_violation(error: IntegrityError) -> bool:
    """True when the partial unique index on active (session_id, seat_id) fired"""
    message = str(error.orig)
    return ACTIVE_SEAT_INDEX in message or "booking_seats.session_id, booking_seats.seat_id" in message


class BookingService:
    """Service for creating, reading and cancelling bookings"""

    @staticmethod
    def _validate_seat_ids(seat_ids: Iterable[int]) -> List[int]:
        seat_ids = list(seat_ids)
        if not seat_ids:
            raise InvalidSeatSelectionError("At least one seat must be selected")

        if len(seat_ids) > settings.MAX_SEATS_PER_BOOKING:
            raise InvalidSeatSelectionError(
                f"Cannot book more than {settings.MAX_SEATS_PER_BOOKING} seats at once"
            )
        return seat_ids

    @staticmethod
    async def _load_requested_seats(db: AsyncSession, session: MovieSession, seat_ids: List[int]) -> List[Seat]:
        result = await db.execute(select(Seat).where(Seat.id.in_(seat_ids)))
        seats = {seat.id: seat for seat in result.scalars().all()}

        missing = sorted(set(seat_ids) - set(seats))
        if missing:
            raise SeatNotFoundError(f"Seats {missing} not found", seat_ids=missing)

        foreign = sorted(seat.id for seat in seats.values() if seat.hall_id != session.hall_id)
        if foreign:
            raise InvalidSeatSelectionError(
                f"Seats {foreign} do not belong to the hall of session {session.id}",
                seat_ids=foreign,
            )

        if len(set(seat_ids)) != len(seat_ids):
            raise InvalidSeatSelectionError("Seat ids must be distinct")

        return [seats[seat_id] for seat_id in seat_ids]

    @staticmethod
    @track_time(booking_creation_duration_seconds)
    async def create_booking(
        db: AsyncSession,
        user_id: int,
        session_id: int,
        seat_ids: Iterable[int],
    ) -> Booking:
        """
        Create a booking with PENDING status holding ``seat_ids``.

        Validation happens before any write. The transaction starts by bumping the
        session's ``hold_version``, which serializes creations for the same session
        (row lock on PostgreSQL, writer lock on SQLite); the held-seat check and the
        inserts then run without interleaving. The partial unique index on active
        seat links backs this up at the database level.
        """
        session = await AvailabilityService.get_session(db, session_id)
        seat_ids = BookingService._validate_seat_ids(seat_ids)
        seats = await BookingService._load_requested_seats(db, session, seat_ids)

        prices = {
            seat.id: AvailabilityService.price_for(session.base_price, seat.category)
            for seat in seats
        }

        async with transaction(db, "create_booking", session_id):
            bumped = await db.execute(
                update(MovieSession)
                .where(MovieSession.id == session_id)
                .values(hold_version=MovieSession.hold_version + 1)
                .execution_options(synchronize_session=False)
            )
            if bumped.rowcount == 0:
                raise SessionNotFoundError(f"Session {session_id} not found", session_id=session_id)

            held = await AvailabilityService.held_seat_ids(db, session_id, seat_ids)
            if held:
                seat_conflicts_total.inc()
                logger.info(
                    f"Seats {sorted(held)} already held for session {session_id}",
                    extra={"user_id": user_id, "session_id": session_id},
                )
                raise SeatsUnavailableError(
                    f"Seats {sorted(held)} are not available",
                    seat_ids=held,
                )

            booking = Booking(
                user_id=user_id,
                session_id=session_id,
                status=BookingStatus.PENDING,
                total_amount=sum(prices.values()),
            )
            db.add(booking)

            try:
                await db.flush()
                for seat_id in seat_ids:
                    db.add(BookingSeat(
                        booking_id=booking.id,
                        seat_id=seat_id,
                        session_id=session_id,
                        seat_price=prices[seat_id],
                        is_active=True,
                    ))
                await db.flush()
            except IntegrityError as e:
                if not _is_active_seat_violation(e):
                    raise
                seat_conflicts_total.inc()
                raise SeatsUnavailableError(
                    "One or more seats were taken by another booking",
                    seat_ids=seat_ids,
                ) from e

        bookings_created_total.inc()
        logger.info(
            f"Booking {booking.id} created PENDING with {len(seat_ids)} seats, total {booking.total_amount}",
            extra={"booking_id": booking.id, "user_id": user_id, "session_id": session_id},
        )
        return await BookingService.get_booking(db, booking.id)

    @staticmethod
    async def get_booking(db: AsyncSession, booking_id: int, user_id: Optional[int] = None) -> Booking:
        """Load a booking with its seat links; scoped to ``user_id`` when given"""
        query = (
            select(Booking)
            .where(Booking.id == booking_id)
            .options(selectinload(Booking.booking_seats).selectinload(BookingSeat.seat))
            .execution_options(populate_existing=True)
        )
        if user_id is not None:
            query = query.where(Booking.user_id == user_id)

        booking = (await db.execute(query)).scalar_one_or_none()
        if not booking:
            raise BookingNotFoundError(f"Booking {booking_id} not found", booking_id=booking_id)
        return booking

    @staticmethod
    async def list_user_bookings(
        db: AsyncSession,
        user_id: int,
        status: Optional[BookingStatus] = None,
    ) -> List[Booking]:
        query = (
            select(Booking)
            .where(Booking.user_id == user_id)
            .options(selectinload(Booking.booking_seats).selectinload(BookingSeat.seat))
            .order_by(Booking.created_at.desc(), Booking.id.desc())
        )
        if status:
            query = query.where(Booking.status == status)

        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def cancel_booking(db: AsyncSession, booking_id: int, user_id: int) -> Booking:
        """Cancel the caller's PENDING booking and release its seats"""
        booking = await BookingService.get_booking(db, booking_id, user_id=user_id)

        async with transaction(db, "cancel_booking", booking_id):
            cancelled = await transition_booking(db, booking_id, BookingStatus.CANCELLED, now=datetime.utcnow())
            if not cancelled:
                raise InvalidBookingStateError(
                    f"Booking {booking_id} is {booking.status.value}, only PENDING bookings can be cancelled",
                    booking_id=booking_id,
                )

        logger.info(
            f"Booking {booking_id} cancelled by user",
            extra={"booking_id": booking_id, "user_id": user_id},
        )
        return await BookingService.get_booking(db, booking_id)
