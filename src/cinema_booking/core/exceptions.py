"""
Booking domain exceptions

Every error carries a stable ``kind`` so callers can tell a seat conflict apart
from a missing session, plus a machine ``code`` and the HTTP status used by the API.
"""
from typing import Any, Dict, Optional


class BookingServiceError(Exception):
    """Base exception for booking service errors"""

    kind = "booking_error"
    code = "booking_error"
    http_status = 400

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.kind, "code": self.code, "message": self.message}


# ==================== NotFound ====================

class NotFoundError(BookingServiceError):
    kind = "not_found"
    code = "not_found"
    http_status = 404


class SessionNotFoundError(NotFoundError):
    """Raised when a session doesn't exist"""
    code = "session_not_found"


class SeatNotFoundError(NotFoundError):
    code = "seat_not_found"


class BookingNotFoundError(NotFoundError):
    """Raised when booking doesn't exist"""
    code = "booking_not_found"


class PaymentNotFoundError(NotFoundError):
    code = "payment_not_found"


class VoucherNotFoundError(NotFoundError):
    code = "voucher_not_found"


# ==================== InvalidRequest ====================

class InvalidRequestError(BookingServiceError):
    kind = "invalid_request"
    code = "invalid_request"
    http_status = 400


class InvalidSeatSelectionError(InvalidRequestError):
    """Empty, duplicated, oversized or cross-hall seat selection"""
    code = "invalid_seat_selection"


class VoucherInvalidError(InvalidRequestError):
    """Voucher missing, expired or exhausted"""
    code = "voucher_invalid"


class InvalidReviewError(InvalidRequestError):
    code = "invalid_review"


class InvalidWebhookError(InvalidRequestError):
    """Webhook payload malformed or its signature did not verify"""
    code = "invalid_webhook"


# ==================== Conflict ====================

class ConflictError(BookingServiceError):
    kind = "conflict"
    code = "conflict"
    http_status = 409


class SeatsUnavailableError(ConflictError):
    """Raised when requested seats are already held for the session"""
    code = "seat_unavailable"

    def __init__(self, message: str, seat_ids=None, **context: Any):
        super().__init__(message, **context)
        self.seat_ids = sorted(seat_ids or [])

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["seat_ids"] = self.seat_ids
        return data


class ReviewAlreadyExistsError(ConflictError):
    code = "review_exists"


class RequestInProgressError(ConflictError):
    """An identical request from the same caller is still being processed"""
    code = "request_in_progress"


# ==================== InvalidState ====================

class InvalidStateError(BookingServiceError):
    kind = "invalid_state"
    code = "invalid_state"
    http_status = 409


class InvalidBookingStateError(InvalidStateError):
    """Operation attempted on a booking that is not in the required state"""
    code = "invalid_booking_state"


class BookingExpiredError(InvalidStateError):
    """Raised when trying to pay for a booking whose hold has lapsed"""
    code = "booking_expired"
    http_status = 410


# ==================== Infrastructure ====================

class StoreFailureError(BookingServiceError):
    """Underlying transactional failure, wrapped with operation context"""

    kind = "store_failure"
    code = "store_failure"
    http_status = 503

    def __init__(self, operation: str, entity_id: Optional[Any] = None, cause: Optional[BaseException] = None):
        target = f" for {entity_id}" if entity_id is not None else ""
        message = f"{operation} failed{target}"
        if cause is not None:
            message = f"{message}: {cause.__class__.__name__}"
        super().__init__(message, operation=operation, entity_id=entity_id)
        self.operation = operation
        self.entity_id = entity_id


class PaymentProviderError(BookingServiceError):
    """Payment gateway error"""

    kind = "provider_failure"
    code = "provider_failure"
    http_status = 502
