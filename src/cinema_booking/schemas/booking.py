"""Booking request/response models"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from cinema_booking.core.config import settings
from cinema_booking.models.booking import BookingStatus
from cinema_booking.models.seat import SeatCategory


class BookingCreate(BaseModel):
    session_id: int = Field(..., gt=0)
    seat_ids: List[int] = Field(..., min_length=1, description="Seats of the session's hall to hold")


class BookingSeatResponse(BaseModel):
    seat_id: int
    seat_number: str
    category: SeatCategory
    seat_price: Decimal = Field(..., description="Price charged for this seat when the booking was made")


class BookingResponse(BaseModel):
    id: int
    user_id: int
    session_id: int
    status: BookingStatus
    total_amount: Decimal
    seats: List[BookingSeatResponse] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime
    paid_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    # Only set while PENDING
    hold_expires_at: Optional[datetime] = None
    time_remaining_seconds: int = 0

    @classmethod
    def from_booking(cls, booking, now: Optional[datetime] = None) -> "BookingResponse":
        """Build from a Booking loaded with its seat links and their seats"""
        response = cls(
            id=booking.id,
            user_id=booking.user_id,
            session_id=booking.session_id,
            status=booking.status,
            total_amount=booking.total_amount,
            seats=[
                BookingSeatResponse(
                    seat_id=link.seat_id,
                    seat_number=link.seat.seat_number,
                    category=link.seat.category,
                    seat_price=link.seat_price,
                )
                for link in booking.booking_seats
            ],
            created_at=booking.created_at,
            updated_at=booking.updated_at,
            paid_at=booking.paid_at,
            cancelled_at=booking.cancelled_at,
        )

        if booking.status == BookingStatus.PENDING:
            deadline = booking.hold_expires_at(settings.HOLD_DURATION_MINUTES)
            left = (deadline - (now or datetime.utcnow())).total_seconds()
            response.hold_expires_at = deadline
            response.time_remaining_seconds = max(0, int(left))
        return response


class BookingListResponse(BaseModel):
    bookings: List[BookingResponse]
    total: int
