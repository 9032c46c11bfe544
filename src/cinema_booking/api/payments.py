"""Payment, voucher and review endpoints"""
import logging

from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from cinema_booking.api.deps import get_current_user_id
from cinema_booking.core.database import get_db
from cinema_booking.core.exceptions import PaymentNotFoundError
from cinema_booking.middleware.rate_limiter import limiter
from cinema_booking.schemas import (
    CheckoutCreate,
    CheckoutResponse,
    PaymentStatusResponse,
    ReviewCreate,
    ReviewResponse,
    VoucherResponse,
)
from cinema_booking.services import (
    BookingService,
    IntentOutcome,
    PaymentService,
    ReviewService,
    VoucherService,
    get_payment_service,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/payments/checkout", response_model=CheckoutResponse, status_code=201)
@limiter.limit("10/minute")
async def create_checkout(
    request: Request,
    checkout: CheckoutCreate,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    payments: PaymentService = Depends(get_payment_service),
):
    """Open a payment intent for the caller's PENDING booking"""
    # Ownership check; raises BookingNotFoundError for other users' bookings
    await BookingService.get_booking(db, checkout.booking_id, user_id=user_id)

    client_secret = await payments.create_checkout(db, checkout.booking_id, checkout.voucher_id)
    return CheckoutResponse(booking_id=checkout.booking_id, client_secret=client_secret)


@router.post("/payments/webhook", status_code=200)
async def payment_webhook(
    request: Request,
    stripe_signature: str = Header(..., alias="Stripe-Signature"),
    db: AsyncSession = Depends(get_db),
    payments: PaymentService = Depends(get_payment_service),
):
    """Signed provider events settling a payment intent"""
    payload = await request.body()
    event = payments.provider.parse_webhook(payload, stripe_signature)
    if event is None:
        return {"received": True}

    try:
        status = await payments.confirm_payment(db, event.intent_id, outcome=event.outcome)
    except PaymentNotFoundError:
        # Intents replaced by a newer checkout are cancelled and no longer mapped
        if event.outcome == IntentOutcome.SUCCEEDED:
            raise
        logger.info(f"Webhook {event.event_type} for unmapped intent {event.intent_id} acknowledged")
        return {"received": True}
    logger.info(f"Webhook {event.event_type} for {event.intent_id} -> {status.value}")
    return {"received": True, "status": status.value}


@router.post("/payments/{provider_payment_id}/confirm", response_model=PaymentStatusResponse)
@limiter.limit("20/minute")
async def confirm_payment(
    request: Request,
    provider_payment_id: str,
    db: AsyncSession = Depends(get_db),
    payments: PaymentService = Depends(get_payment_service),
):
    """Poll the provider and apply its verdict; safe to retry"""
    status = await payments.confirm_payment(db, provider_payment_id)
    return PaymentStatusResponse(provider_payment_id=provider_payment_id, status=status)


@router.get("/payments/{provider_payment_id}/status", response_model=PaymentStatusResponse)
@limiter.limit("60/minute")
async def get_payment_status(
    request: Request,
    provider_payment_id: str,
    db: AsyncSession = Depends(get_db),
    payments: PaymentService = Depends(get_payment_service),
):
    status = await payments.check_status(db, provider_payment_id)
    return PaymentStatusResponse(provider_payment_id=provider_payment_id, status=status)


@router.get("/vouchers/{code}", response_model=VoucherResponse)
@limiter.limit("30/minute")
async def get_voucher(
    request: Request,
    code: str,
    db: AsyncSession = Depends(get_db),
):
    """Look up a voucher that can still be applied"""
    voucher = await VoucherService.get_by_code(db, code)
    return VoucherResponse.model_validate(voucher)


@router.post("/reviews", response_model=ReviewResponse, status_code=201)
@limiter.limit("10/minute")
async def create_review(
    request: Request,
    review_data: ReviewCreate,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    review = await ReviewService.create_review(
        db,
        booking_id=review_data.booking_id,
        user_id=user_id,
        rating=review_data.rating,
        comment=review_data.comment,
    )
    return ReviewResponse.model_validate(review)
