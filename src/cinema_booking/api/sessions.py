"""Seat availability endpoints"""
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from cinema_booking.core.database import get_db
from cinema_booking.middleware.rate_limiter import limiter
from cinema_booking.schemas import SeatMapResponse, SeatPriceResponse
from cinema_booking.services import AvailabilityService

router = APIRouter()


@router.get("/sessions/{session_id}/seats", response_model=SeatMapResponse)
@limiter.limit("60/minute")
async def get_session_seats(
    request: Request,
    session_id: int,
    available_only: bool = Query(False, description="Only return seats that are free"),
    db: AsyncSession = Depends(get_db),
):
    """Seat map of the session's hall with per-seat price; never cached"""
    seat_map = await AvailabilityService.seat_map(db, session_id)
    if available_only:
        seat_map["seats"] = [seat for seat in seat_map["seats"] if seat["available"]]
    return SeatMapResponse(**seat_map)


@router.get("/seats/{seat_id}/price", response_model=SeatPriceResponse)
@limiter.limit("60/minute")
async def get_seat_price(
    request: Request,
    seat_id: int,
    session_id: int = Query(..., gt=0),
    db: AsyncSession = Depends(get_db),
):
    price = await AvailabilityService.seat_price(db, seat_id, session_id)
    return SeatPriceResponse(seat_id=seat_id, session_id=session_id, price=price)
