"""
Booking model - a user's reservation of seats for one session

Lifecycle: PENDING -> PAID | EXPIRED | CANCELLED. Only PENDING bookings move;
the other three states are terminal.
"""
from datetime import datetime, timedelta
from enum import Enum as PyEnum
from sqlalchemy import Column, Integer, DateTime, Numeric, ForeignKey, Enum
from sqlalchemy.orm import relationship

from cinema_booking.core.database import Base


class BookingStatus(PyEnum):
    """Enum for booking status"""
    PENDING = "PENDING"
    PAID = "PAID"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"


# States whose seat links count as held
ACTIVE_STATUSES = (BookingStatus.PENDING, BookingStatus.PAID)

ALLOWED_TRANSITIONS = {
    BookingStatus.PENDING: {BookingStatus.PAID, BookingStatus.EXPIRED, BookingStatus.CANCELLED},
    BookingStatus.PAID: set(),
    BookingStatus.EXPIRED: set(),
    BookingStatus.CANCELLED: set(),
}


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    session_id = Column(Integer, ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(Enum(BookingStatus), nullable=False, default=BookingStatus.PENDING, index=True)
    total_amount = Column(Numeric(10, 2), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    paid_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    reminder_sent_at = Column(DateTime, nullable=True)

    # Relationships
    user = relationship("User", back_populates="bookings")
    session = relationship("MovieSession", back_populates="bookings")
    booking_seats = relationship(
        "BookingSeat",
        back_populates="booking",
        cascade="all, delete-orphan",
        order_by="BookingSeat.id",
    )
    payment = relationship("Payment", back_populates="booking", uselist=False, cascade="all, delete-orphan")
    review = relationship("Review", back_populates="booking", uselist=False, cascade="all, delete-orphan")

    def __repr__(self):
        return (f"<Booking(id={self.id}, user_id={self.user_id}, session_id={self.session_id}, "
                f"status='{self.status.value}', total={self.total_amount})>")

    @property
    def seat_ids(self):
        return [link.seat_id for link in self.booking_seats]

    def hold_expires_at(self, hold_duration_minutes: int) -> datetime:
        """When the sweeper may expire this booking if it is still PENDING"""
        return self.created_at + timedelta(minutes=hold_duration_minutes)
