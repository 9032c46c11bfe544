"""
BookingSeat model - Junction table linking bookings to seats

Carries the session id and an ``is_active`` flag so the database itself can
enforce that a seat is held by at most one PENDING/PAID booking per session.
"""
from datetime import datetime
from sqlalchemy import (
    Boolean, Column, Integer, DateTime, Numeric, ForeignKey, Index, UniqueConstraint, text
)
from sqlalchemy.orm import relationship

from cinema_booking.core.database import Base


class BookingSeat(Base):
    __tablename__ = "booking_seats"
    __table_args__ = (
        UniqueConstraint('booking_id', 'seat_id', name='uq_booking_seat'),
        Index(
            'uq_active_session_seat',
            'session_id',
            'seat_id',
            unique=True,
            sqlite_where=text('is_active = 1'),
            postgresql_where=text('is_active'),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True)
    seat_id = Column(Integer, ForeignKey("seats.id", ondelete="RESTRICT"), nullable=False, index=True)
    session_id = Column(Integer, ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    seat_price = Column(Numeric(10, 2), nullable=False)  # Snapshot of price at booking time
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    booking = relationship("Booking", back_populates="booking_seats")
    seat = relationship("Seat")

    def __repr__(self):
        return (f"<BookingSeat(id={self.id}, booking_id={self.booking_id}, seat_id={self.seat_id}, "
                f"active={self.is_active}, price={self.seat_price})>")
