"""
Seat availability and pricing

Reads are snapshots, never reservations: the authoritative conflict check runs
inside BookingService.create_booking. Nothing here is cached across requests.
"""
import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Set

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cinema_booking.core.exceptions import (
    InvalidSeatSelectionError,
    SeatNotFoundError,
    SessionNotFoundError,
)
from cinema_booking.models import ACTIVE_STATUSES, PRICE_MULTIPLIERS, Booking, BookingSeat, MovieSession, Seat, SeatCategory

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


class AvailabilityService:
    """Read-side queries over seats held for a session"""

    @staticmethod
    def price_for(base_price: Decimal, category: SeatCategory) -> Decimal:
        """Session base price times the category multiplier, rounded to cents"""
        return (Decimal(base_price) * PRICE_MULTIPLIERS[category]).quantize(CENT, rounding=ROUND_HALF_UP)

    @staticmethod
    async def get_session(db: AsyncSession, session_id: int) -> MovieSession:
        result = await db.execute(select(MovieSession).where(MovieSession.id == session_id))
        session = result.scalar_one_or_none()
        if not session:
            raise SessionNotFoundError(f"Session {session_id} not found", session_id=session_id)
        return session

    @staticmethod
    async def held_seat_ids(db: AsyncSession, session_id: int, seat_ids=None) -> Set[int]:
        """Seats of the session referenced by a PENDING or PAID booking"""
        query = (
            select(BookingSeat.seat_id)
            .join(Booking, Booking.id == BookingSeat.booking_id)
            .where(
                BookingSeat.session_id == session_id,
                BookingSeat.is_active == True,  # noqa: E712
                Booking.status.in_(ACTIVE_STATUSES),
            )
        )
        if seat_ids is not None:
            query = query.where(BookingSeat.seat_id.in_(list(seat_ids)))

        result = await db.execute(query)
        return {row[0] for row in result.all()}

    @staticmethod
    async def hall_seats(db: AsyncSession, hall_id: int) -> List[Seat]:
        result = await db.execute(
            select(Seat).where(Seat.hall_id == hall_id).order_by(Seat.id)
        )
        return list(result.scalars().all())

    @staticmethod
    async def available_seats(db: AsyncSession, session_id: int) -> List[Seat]:
        """All seats of the session's hall minus those currently held"""
        session = await AvailabilityService.get_session(db, session_id)
        seats = await AvailabilityService.hall_seats(db, session.hall_id)
        held = await AvailabilityService.held_seat_ids(db, session_id)
        return [seat for seat in seats if seat.id not in held]

    @staticmethod
    async def seat_price(db: AsyncSession, seat_id: int, session_id: int) -> Decimal:
        seat = (await db.execute(select(Seat).where(Seat.id == seat_id))).scalar_one_or_none()
        if not seat:
            raise SeatNotFoundError(f"Seat {seat_id} not found", seat_id=seat_id)

        session = await AvailabilityService.get_session(db, session_id)
        if seat.hall_id != session.hall_id:
            raise InvalidSeatSelectionError(
                f"Seat {seat_id} is not in the hall of session {session_id}",
                seat_id=seat_id,
                session_id=session_id,
            )
        return AvailabilityService.price_for(session.base_price, seat.category)

    @staticmethod
    async def seat_map(db: AsyncSession, session_id: int) -> Dict[str, Any]:
        """Every seat of the hall with its price and availability flag"""
        session = await AvailabilityService.get_session(db, session_id)
        seats = await AvailabilityService.hall_seats(db, session.hall_id)
        held = await AvailabilityService.held_seat_ids(db, session_id)

        entries = [
            {
                "seat_id": seat.id,
                "seat_number": seat.seat_number,
                "category": seat.category,
                "price": AvailabilityService.price_for(session.base_price, seat.category),
                "available": seat.id not in held,
            }
            for seat in seats
        ]
        available_count = sum(1 for entry in entries if entry["available"])

        logger.debug(
            f"Seat map for session {session_id}: {available_count}/{len(entries)} available",
            extra={"session_id": session_id},
        )
        return {
            "session_id": session.id,
            "hall_id": session.hall_id,
            "base_price": session.base_price,
            "seats": entries,
            "total_seats": len(entries),
            "available_seats": available_count,
        }
