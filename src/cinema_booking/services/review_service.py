"""
Review Service - one review per PAID booking
"""
import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from cinema_booking.core.database import transaction
from cinema_booking.core.exceptions import (
    BookingNotFoundError,
    InvalidBookingStateError,
    InvalidReviewError,
    ReviewAlreadyExistsError,
)
from cinema_booking.models import Booking, BookingStatus, Review

logger = logging.getLogger(__name__)

MAX_COMMENT_LENGTH = 1000


class ReviewService:

    @staticmethod
    async def create_review(
        db: AsyncSession,
        booking_id: int,
        user_id: int,
        rating: int,
        comment: Optional[str] = None,
    ) -> Review:
        if not 1 <= rating <= 5:
            raise InvalidReviewError("Rating must be between 1 and 5")
        if comment is not None and len(comment) > MAX_COMMENT_LENGTH:
            raise InvalidReviewError(f"Comment must be at most {MAX_COMMENT_LENGTH} characters")

        result = await db.execute(
            select(Booking)
            .where(Booking.id == booking_id, Booking.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        booking = result.scalar_one_or_none()
        if not booking:
            raise BookingNotFoundError(f"Booking {booking_id} not found", booking_id=booking_id)

        if booking.status != BookingStatus.PAID:
            raise InvalidBookingStateError(
                f"Only paid bookings can be reviewed, booking {booking_id} is {booking.status.value}",
                booking_id=booking_id,
            )

        existing = await db.execute(select(Review.id).where(Review.booking_id == booking_id))
        if existing.first():
            raise ReviewAlreadyExistsError(f"Booking {booking_id} already has a review", booking_id=booking_id)

        review = Review(booking_id=booking_id, rating=rating, comment=comment)
        async with transaction(db, "create_review", booking_id):
            db.add(review)
            try:
                await db.flush()
            except IntegrityError as e:
                raise ReviewAlreadyExistsError(
                    f"Booking {booking_id} already has a review",
                    booking_id=booking_id,
                ) from e

        logger.info(
            f"Review {review.id} ({rating}/5) added to booking {booking_id}",
            extra={"booking_id": booking_id, "user_id": user_id},
        )
        return review
