"""
SQLAlchemy Models for the Cinema Booking core

Import all models here for easy access and to ensure proper relationship setup.
"""
from cinema_booking.core.database import Base

# Import all models to register them with SQLAlchemy
from cinema_booking.models.user import User
from cinema_booking.models.movie import Movie
from cinema_booking.models.cinema_hall import CinemaHall
from cinema_booking.models.seat import Seat, SeatCategory, PRICE_MULTIPLIERS
from cinema_booking.models.movie_session import MovieSession
from cinema_booking.models.booking import Booking, BookingStatus, ACTIVE_STATUSES, ALLOWED_TRANSITIONS
from cinema_booking.models.booking_seat import BookingSeat
from cinema_booking.models.voucher import Voucher
from cinema_booking.models.payment import Payment, PaymentStatus
from cinema_booking.models.review import Review

# Export all models
__all__ = [
    "Base",
    "User",
    "Movie",
    "CinemaHall",
    "Seat",
    "SeatCategory",
    "PRICE_MULTIPLIERS",
    "MovieSession",
    "Booking",
    "BookingStatus",
    "ACTIVE_STATUSES",
    "ALLOWED_TRANSITIONS",
    "BookingSeat",
    "Voucher",
    "Payment",
    "PaymentStatus",
    "Review",
]
