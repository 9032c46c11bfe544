"""
MovieSession model - one screening of a movie in a hall

``hold_version`` is bumped by every booking creation for the session; the
write serializes concurrent creations for the same session.
"""
from datetime import datetime
from sqlalchemy import Column, Integer, DateTime, Numeric, ForeignKey
from sqlalchemy.orm import relationship

from cinema_booking.core.database import Base


class MovieSession(Base):
    __tablename__ = "sessions"

    id = Column(Integer, primary_key=True, index=True)
    movie_id = Column(Integer, ForeignKey("movies.id", ondelete="CASCADE"), nullable=False, index=True)
    hall_id = Column(Integer, ForeignKey("cinema_halls.id", ondelete="CASCADE"), nullable=False, index=True)
    start_time = Column(DateTime, nullable=False, index=True)
    end_time = Column(DateTime, nullable=False)
    base_price = Column(Numeric(6, 2), nullable=False)
    hold_version = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    movie = relationship("Movie", back_populates="sessions")
    hall = relationship("CinemaHall", back_populates="sessions")
    bookings = relationship("Booking", back_populates="session")

    def __repr__(self):
        return (f"<MovieSession(id={self.id}, movie_id={self.movie_id}, "
                f"hall_id={self.hall_id}, start='{self.start_time}')>")
