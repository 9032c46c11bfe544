"""
Payment orchestration: checkout and confirmation of PENDING bookings

Checkout opens a provider intent and records it on the booking's single Payment
row, cancelling the intent it replaces; the voucher is validated but not
consumed. Confirmation marks the payment PAID, moves the booking to PAID and
consumes the voucher in one transaction, so either all three happen or none does. Confirmation is idempotent on the
provider payment id, which makes provider-side retries safe.
"""
import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from cinema_booking.core.config import settings
from cinema_booking.core.database import transaction
from cinema_booking.core.exceptions import (
    BookingExpiredError,
    BookingNotFoundError,
    InvalidBookingStateError,
    PaymentNotFoundError,
    RequestInProgressError,
    VoucherInvalidError,
)
from cinema_booking.core.metrics import checkouts_created_total, payments_finalized_total
from cinema_booking.models import Booking, BookingStatus, Payment, PaymentStatus
from cinema_booking.services.booking_state import transition_booking
from cinema_booking.services.notifications import (
    PAYMENT_RECEIPT,
    InvoiceRenderer,
    NotificationDispatcher,
    dispatch_safely,
    TextInvoiceRenderer,
    notification_dispatcher,
    render_invoice_safely,
)
from cinema_booking.services.payment_provider import IntentOutcome, PaymentProvider, StripePaymentProvider
from cinema_booking.services.voucher_service import VoucherService

logger = logging.getLogger(__name__)


class PaymentService:
    """Orchestrates provider intents against the booking lifecycle"""

    def __init__(
        self,
        provider: PaymentProvider,
        notifier: Optional[NotificationDispatcher] = None,
        invoice_renderer: Optional[InvoiceRenderer] = None,
        hold_minutes: int = settings.HOLD_DURATION_MINUTES,
        currency: str = settings.PAYMENT_CURRENCY,
    ):
        self.provider = provider
        self.notifier = notifier
        self.invoice_renderer = invoice_renderer
        self.hold_deadline = timedelta(minutes=hold_minutes)
        self.currency = currency

    @staticmethod
    async def _get_booking(db: AsyncSession, booking_id: int) -> Booking:
        result = await db.execute(
            select(Booking).where(Booking.id == booking_id).execution_options(populate_existing=True)
        )
        booking = result.scalar_one_or_none()
        if not booking:
            raise BookingNotFoundError(f"Booking {booking_id} not found", booking_id=booking_id)
        return booking

    @staticmethod
    async def _get_payment(db: AsyncSession, provider_payment_id: str) -> Payment:
        result = await db.execute(
            select(Payment)
            .where(Payment.provider_payment_id == provider_payment_id)
            .execution_options(populate_existing=True)
        )
        payment = result.scalar_one_or_none()
        if not payment:
            raise PaymentNotFoundError(f"Payment {provider_payment_id} not found", payment_id=provider_payment_id)
        return payment

    @staticmethod
    async def _current_intent(db: AsyncSession, booking_id: int) -> Optional[str]:
        """Intent id already recorded for the booking; refuses a booking that is paid"""
        result = await db.execute(
            select(Payment.provider_payment_id, Payment.status).where(Payment.booking_id == booking_id)
        )
        row = result.one_or_none()
        if row is None:
            return None
        if row.status == PaymentStatus.PAID:
            raise InvalidBookingStateError(f"Booking {booking_id} is already paid", booking_id=booking_id)
        return row.provider_payment_id

    async def create_checkout(
        self,
        db: AsyncSession,
        booking_id: int,
        voucher_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> str:
        """
        Open a payment intent for a PENDING booking.

        Returns:
            The provider client secret the frontend completes the payment with

        Raises:
            BookingNotFoundError, InvalidBookingStateError, BookingExpiredError,
            VoucherInvalidError, PaymentProviderError (also when the replaced intent
            cannot be cancelled), RequestInProgressError
        """
        now = now or datetime.utcnow()
        booking = await self._get_booking(db, booking_id)

        if booking.status != BookingStatus.PENDING:
            raise InvalidBookingStateError(
                f"Booking {booking_id} is {booking.status.value}, only PENDING bookings can be paid",
                booking_id=booking_id,
            )
        if now >= booking.created_at + self.hold_deadline:
            raise BookingExpiredError(f"Hold on booking {booking_id} has expired", booking_id=booking_id)

        amount = Decimal(booking.total_amount)
        if voucher_id is not None:
            voucher = await VoucherService.validate_for_checkout(db, voucher_id, now)
            amount = VoucherService.apply_discount(amount, voucher.value)

        # A replaced intent must not stay payable once nothing maps it to the booking
        superseded = await self._current_intent(db, booking_id)
        if superseded is not None:
            await self.provider.cancel_intent(superseded)
            logger.info(f"Cancelled superseded intent {superseded} of booking {booking_id}")

        # Provider call happens outside any transaction; a failure leaves the booking PENDING
        intent = await self.provider.create_intent(
            amount_cents=int(amount * 100),
            currency=self.currency,
            metadata={"booking_id": booking_id, "user_id": booking.user_id},
        )

        async with transaction(db, "create_checkout", booking_id):
            still_pending = await db.execute(
                update(Booking)
                .where(Booking.id == booking_id, Booking.status == BookingStatus.PENDING)
                .values(updated_at=now)
                .execution_options(synchronize_session=False)
            )
            if still_pending.rowcount == 0:
                raise InvalidBookingStateError(
                    f"Booking {booking_id} left PENDING during checkout",
                    booking_id=booking_id,
                )

            result = await db.execute(
                select(Payment)
                .where(Payment.booking_id == booking_id)
                .execution_options(populate_existing=True)
            )
            payment = result.scalar_one_or_none()
            if payment is None:
                payment = Payment(booking_id=booking_id)
                db.add(payment)
            elif payment.status == PaymentStatus.PAID:
                raise InvalidBookingStateError(f"Booking {booking_id} is already paid", booking_id=booking_id)
            elif payment.provider_payment_id != superseded:
                raise RequestInProgressError(
                    f"Another checkout for booking {booking_id} is in progress",
                    booking_id=booking_id,
                )

            payment.provider = self.provider.name
            payment.provider_payment_id = intent.intent_id
            payment.amount = amount
            payment.currency = self.currency
            payment.voucher_id = voucher_id
            payment.status = PaymentStatus.PENDING
            payment.updated_at = now

        checkouts_created_total.inc()
        logger.info(
            f"Checkout opened for booking {booking_id}: {amount} {self.currency}",
            extra={"booking_id": booking_id, "payment_id": intent.intent_id, "voucher_id": voucher_id},
        )
        return intent.client_secret

    async def confirm_payment(
        self,
        db: AsyncSession,
        provider_payment_id: str,
        outcome: Optional[IntentOutcome] = None,
        now: Optional[datetime] = None,
    ) -> PaymentStatus:
        """
        Apply the provider's verdict on an intent.

        ``outcome`` comes from a verified webhook; without it the provider is
        polled. On success the payment, booking and voucher are updated in one
        transaction. If the booking already left PENDING (expired or cancelled)
        the payment is recorded as EXPIRED instead. Replays return the stored
        status without side effects.
        """
        payment = await self._get_payment(db, provider_payment_id)
        if payment.status == PaymentStatus.PAID:
            return PaymentStatus.PAID

        if outcome is None:
            outcome = await self.provider.retrieve_outcome(provider_payment_id)

        if outcome == IntentOutcome.PROCESSING:
            return payment.status

        now = now or datetime.utcnow()
        payment_id = payment.id
        booking_id = payment.booking_id
        voucher_id = payment.voucher_id

        if outcome == IntentOutcome.FAILED:
            async with transaction(db, "fail_payment", provider_payment_id):
                await db.execute(
                    update(Payment)
                    .where(Payment.id == payment_id, Payment.status == PaymentStatus.PENDING)
                    .values(status=PaymentStatus.FAILED, updated_at=now)
                    .execution_options(synchronize_session=False)
                )
            payments_finalized_total.labels(status=PaymentStatus.FAILED.value).inc()
            logger.info(
                f"Payment {provider_payment_id} failed; booking {booking_id} stays PENDING",
                extra={"booking_id": booking_id, "payment_id": provider_payment_id},
            )
            return (await self._get_payment(db, provider_payment_id)).status

        async with transaction(db, "confirm_payment", provider_payment_id):
            claimed = await db.execute(
                update(Payment)
                .where(Payment.id == payment_id, Payment.status != PaymentStatus.PAID)
                .values(status=PaymentStatus.PAID, paid_at=now, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            if claimed.rowcount == 0:
                # A concurrent confirmation already finalized it
                return PaymentStatus.PAID

            paid = await transition_booking(db, booking_id, BookingStatus.PAID, now=now)
            if not paid:
                await db.execute(
                    update(Payment)
                    .where(Payment.id == payment_id)
                    .values(status=PaymentStatus.EXPIRED, paid_at=None, updated_at=now)
                    .execution_options(synchronize_session=False)
                )
                final_status = PaymentStatus.EXPIRED
            else:
                if voucher_id is not None and not await VoucherService.redeem(db, voucher_id):
                    raise VoucherInvalidError(
                        f"Voucher {voucher_id} reached its usage cap before payment {provider_payment_id} settled",
                        voucher_id=voucher_id,
                    )
                final_status = PaymentStatus.PAID

        payments_finalized_total.labels(status=final_status.value).inc()

        if final_status == PaymentStatus.EXPIRED:
            logger.warning(
                f"Payment {provider_payment_id} settled after booking {booking_id} left PENDING",
                extra={"booking_id": booking_id, "payment_id": provider_payment_id},
            )
            return final_status

        logger.info(
            f"💳 Booking {booking_id} paid via {provider_payment_id}",
            extra={"booking_id": booking_id, "payment_id": provider_payment_id, "voucher_id": voucher_id},
        )
        await self._after_paid(db, booking_id, provider_payment_id)
        return final_status

    async def _after_paid(self, db: AsyncSession, booking_id: int, provider_payment_id: str):
        booking = await self._get_booking(db, booking_id)
        payment = await self._get_payment(db, provider_payment_id)
        await dispatch_safely(
            self.notifier,
            booking.user_id,
            PAYMENT_RECEIPT,
            {
                "booking_id": booking_id,
                "session_id": booking.session_id,
                "amount": str(payment.amount),
                "currency": payment.currency,
            },
        )
        await render_invoice_safely(self.invoice_renderer, booking_id)

    async def check_status(self, db: AsyncSession, provider_payment_id: str) -> PaymentStatus:
        """Stored status of a payment; no provider call, no writes"""
        payment = await self._get_payment(db, provider_payment_id)
        return payment.status


def build_payment_service() -> PaymentService:
    return PaymentService(
        provider=StripePaymentProvider(),
        notifier=notification_dispatcher,
        invoice_renderer=TextInvoiceRenderer(),
    )


_payment_service: Optional[PaymentService] = None


def get_payment_service() -> PaymentService:
    """FastAPI dependency; tests override it with a fake provider"""
    global _payment_service
    if _payment_service is None:
        _payment_service = build_payment_service()
    return _payment_service
