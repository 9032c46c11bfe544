"""
Cinema hall model - catalog data synced upstream, read-only here
"""
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.orm import relationship

from cinema_booking.core.database import Base


class CinemaHall(Base):
    __tablename__ = "cinema_halls"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    cinema_name = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    seats = relationship("Seat", back_populates="hall", cascade="all, delete-orphan")
    sessions = relationship("MovieSession", back_populates="hall")

    def __repr__(self):
        return f"<CinemaHall(id={self.id}, name='{self.name}')>"
