"""
Pydantic schemas for Seat resources
"""
from decimal import Decimal
from typing import List
from pydantic import BaseModel, Field

from cinema_booking.models.seat import SeatCategory


class SeatAvailability(BaseModel):
    """One seat of the session's hall"""
    seat_id: int
    seat_number: str = Field(..., max_length=10)
    category: SeatCategory
    price: Decimal = Field(..., description="Session base price times the category multiplier")
    available: bool


class SeatMapResponse(BaseModel):
    """Response schema for seat map"""
    session_id: int
    hall_id: int
    base_price: Decimal
    seats: List[SeatAvailability]
    total_seats: int
    available_seats: int


class SeatPriceResponse(BaseModel):
    seat_id: int
    session_id: int
    price: Decimal
