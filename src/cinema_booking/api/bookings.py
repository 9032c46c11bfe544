"""Booking endpoints: hold seats, read and cancel the caller's bookings"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from cinema_booking.api.deps import get_current_user_id
from cinema_booking.core.database import get_db
from cinema_booking.core.exceptions import BookingNotFoundError, RequestInProgressError
from cinema_booking.middleware.rate_limiter import limiter
from cinema_booking.models import ACTIVE_STATUSES, BookingStatus
from cinema_booking.schemas import BookingCreate, BookingListResponse, BookingResponse
from cinema_booking.services import BookingService
from cinema_booking.services.idempotency import idempotency_service

logger = logging.getLogger(__name__)

router = APIRouter()


async def _replay_booking(db: AsyncSession, key: str, user_id: int) -> Optional[BookingResponse]:
    """
    Current state of the booking a stored response points at, while it still
    holds its seats. A released hold is forgotten so the request runs again.
    """
    stored = await idempotency_service.replay(key)
    if stored is None:
        return None

    try:
        booking = await BookingService.get_booking(db, stored["id"], user_id=user_id)
    except BookingNotFoundError:
        booking = None

    if booking is None or booking.status not in ACTIVE_STATUSES:
        logger.info(f"Stored booking {stored['id']} no longer holds seats, forgetting {key}")
        await idempotency_service.forget(key)
        return None
    return BookingResponse.from_booking(booking)


@router.post("/bookings", response_model=BookingResponse, status_code=201)
@limiter.limit("10/minute")
async def create_booking(
    request: Request,
    payload: BookingCreate,
    user_id: int = Depends(get_current_user_id),
    client_key: Optional[str] = Header(None, alias="X-Idempotency-Key"),
    db: AsyncSession = Depends(get_db),
):
    """
    Hold seats for a session; the booking starts PENDING.

    A retry carrying the same `X-Idempotency-Key` (or, without one, the same
    body) gets the first booking back instead of a seat conflict, for as long as
    that booking is still PENDING or PAID.
    """
    key = idempotency_service.key_for(
        user_id,
        "create_booking",
        client_key=client_key,
        params={"session_id": payload.session_id, "seat_ids": payload.seat_ids},
    )

    replayed = await _replay_booking(db, key, user_id)
    if replayed is not None:
        return replayed

    if not await idempotency_service.claim(key):
        raise RequestInProgressError("An identical booking request is still in progress")

    try:
        booking = await BookingService.create_booking(db, user_id, payload.session_id, payload.seat_ids)
        response = BookingResponse.from_booking(booking)
        await idempotency_service.remember(key, response.model_dump(mode="json"))
        return response
    finally:
        await idempotency_service.release(key)


@router.get("/bookings", response_model=BookingListResponse)
@limiter.limit("30/minute")
async def list_bookings(
    request: Request,
    user_id: int = Depends(get_current_user_id),
    status: Optional[BookingStatus] = Query(None, description="Only bookings in this state"),
    db: AsyncSession = Depends(get_db),
):
    bookings = await BookingService.list_user_bookings(db, user_id, status=status)
    items = [BookingResponse.from_booking(booking) for booking in bookings]
    return BookingListResponse(bookings=items, total=len(items))


@router.get("/bookings/{booking_id}", response_model=BookingResponse)
@limiter.limit("60/minute")
async def read_booking(
    request: Request,
    booking_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    booking = await BookingService.get_booking(db, booking_id, user_id=user_id)
    return BookingResponse.from_booking(booking)


@router.delete("/bookings/{booking_id}", response_model=BookingResponse)
@limiter.limit("10/minute")
async def cancel_booking(
    request: Request,
    booking_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Cancel a PENDING booking; its seats become available immediately"""
    booking = await BookingService.cancel_booking(db, booking_id, user_id)
    return BookingResponse.from_booking(booking)
