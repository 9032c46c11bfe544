"""
Seat model - physical seats of a hall, shared by every session in that hall
"""
from datetime import datetime
from decimal import Decimal
from enum import Enum as PyEnum
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Enum, UniqueConstraint
from sqlalchemy.orm import relationship

from cinema_booking.core.database import Base


class SeatCategory(PyEnum):
    """Seat category, drives the price multiplier"""
    NORMAL = "NORMAL"
    VIP = "VIP"
    REDUCED = "REDUCED"


PRICE_MULTIPLIERS = {
    SeatCategory.NORMAL: Decimal("1.00"),
    SeatCategory.REDUCED: Decimal("1.25"),
    SeatCategory.VIP: Decimal("1.50"),
}


class Seat(Base):
    __tablename__ = "seats"
    __table_args__ = (
        UniqueConstraint("hall_id", "seat_number", name="uq_seat_hall_number"),
    )

    id = Column(Integer, primary_key=True, index=True)
    hall_id = Column(Integer, ForeignKey("cinema_halls.id", ondelete="CASCADE"), nullable=False, index=True)
    seat_number = Column(String(10), nullable=False)  # 'A1', 'B12'
    category = Column(Enum(SeatCategory), nullable=False, default=SeatCategory.NORMAL)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    hall = relationship("CinemaHall", back_populates="seats")

    def __repr__(self):
        return (f"<Seat(id={self.id}, hall_id={self.hall_id}, "
                f"seat='{self.seat_number}', category='{self.category.value}')>")
