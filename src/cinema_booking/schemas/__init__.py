"""
Pydantic schemas for API request/response validation
"""
from cinema_booking.schemas.seat import SeatAvailability, SeatMapResponse, SeatPriceResponse
from cinema_booking.schemas.booking import (
    BookingCreate,
    BookingSeatResponse,
    BookingResponse,
    BookingListResponse,
)
from cinema_booking.schemas.payment import (
    CheckoutCreate,
    CheckoutResponse,
    PaymentStatusResponse,
    VoucherResponse,
)
from cinema_booking.schemas.review import ReviewCreate, ReviewResponse

__all__ = [
    # Seats
    "SeatAvailability",
    "SeatMapResponse",
    "SeatPriceResponse",
    # Bookings
    "BookingCreate",
    "BookingSeatResponse",
    "BookingResponse",
    "BookingListResponse",
    # Payments
    "CheckoutCreate",
    "CheckoutResponse",
    "PaymentStatusResponse",
    "VoucherResponse",
    # Reviews
    "ReviewCreate",
    "ReviewResponse",
]
