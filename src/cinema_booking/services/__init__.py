"""
Services package exports
"""
from cinema_booking.services.availability_service import AvailabilityService
from cinema_booking.services.booking_service import BookingService
from cinema_booking.services.booking_state import transition_booking
from cinema_booking.services.expiry_worker import ExpiryWorker, expire_stale_bookings
from cinema_booking.services.payment_provider import (
    IntentOutcome,
    PaymentIntent,
    PaymentProvider,
    StripePaymentProvider,
)
from cinema_booking.services.payment_service import PaymentService, get_payment_service
from cinema_booking.services.reminder_service import ReminderWorker, reminder_worker, send_daily_reminders
from cinema_booking.services.review_service import ReviewService
from cinema_booking.services.voucher_service import VoucherService

__all__ = [
    "AvailabilityService",
    "BookingService",
    "transition_booking",
    "ExpiryWorker",
    "expire_stale_bookings",
    "IntentOutcome",
    "PaymentIntent",
    "PaymentProvider",
    "StripePaymentProvider",
    "PaymentService",
    "get_payment_service",
    "ReminderWorker",
    "reminder_worker",
    "send_daily_reminders",
    "ReviewService",
    "VoucherService",
]
