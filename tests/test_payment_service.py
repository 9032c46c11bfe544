"""
Checkout and payment confirmation tests
"""
from datetime import datetime, timedelta
from decimal import Decimal
import hashlib
import hmac
import json
import time

import pytest
from sqlalchemy import select

from cinema_booking.core.exceptions import (
    BookingExpiredError,
    BookingNotFoundError,
    InvalidBookingStateError,
    InvalidWebhookError,
    PaymentNotFoundError,
    PaymentProviderError,
    VoucherInvalidError,
)
from cinema_booking.models import Booking, BookingStatus, Payment, PaymentStatus, Voucher
from cinema_booking.services import BookingService, IntentOutcome, PaymentService, expire_stale_bookings
from cinema_booking.services.notifications import TextInvoiceRenderer
from cinema_booking.services.payment_provider import StripePaymentProvider
from tests.fakes import RecordingDispatcher, RecordingInvoiceRenderer


async def load(session_factory, model, entity_id):
    async with session_factory() as db:
        return await db.get(model, entity_id)


async def payment_for(session_factory, booking_id):
    async with session_factory() as db:
        result = await db.execute(select(Payment).where(Payment.booking_id == booking_id))
        return result.scalar_one_or_none()


# ============================================================================
# CHECKOUT
# ============================================================================
class TestCreateCheckout:

    @pytest.mark.asyncio
    async def test_checkout_opens_intent(self, db, session_factory, seed, payment_service, provider):
        booking = await BookingService.create_booking(db, seed.user1, seed.session, [seed.a1, seed.a2])

        secret = await payment_service.create_checkout(db, booking.id)

        assert secret == f"{provider.last_intent_id}_secret"
        assert provider.intents[provider.last_intent_id]["amount_cents"] == 2500
        assert provider.intents[provider.last_intent_id]["currency"] == "eur"

        payment = await payment_for(session_factory, booking.id)
        assert payment.status == PaymentStatus.PENDING
        assert payment.amount == Decimal("25.00")
        assert payment.voucher_id is None
        assert payment.provider == "fake"

    @pytest.mark.asyncio
    async def test_checkout_with_voucher_discounts(self, db, session_factory, seed, payment_service, provider):
        booking = await BookingService.create_booking(db, seed.user1, seed.session, [seed.a1, seed.a2])

        await payment_service.create_checkout(db, booking.id, voucher_id=seed.voucher)

        assert provider.intents[provider.last_intent_id]["amount_cents"] == 2000
        payment = await payment_for(session_factory, booking.id)
        assert payment.amount == Decimal("20.00")
        assert payment.voucher_id == seed.voucher
        # Not consumed until the payment is confirmed
        assert (await load(session_factory, Voucher, seed.voucher)).usages == 4

    @pytest.mark.asyncio
    async def test_missing_booking(self, db, seed, payment_service):
        with pytest.raises(BookingNotFoundError):
            await payment_service.create_checkout(db, 9999)

    @pytest.mark.asyncio
    async def test_non_pending_booking(self, db, seed, payment_service):
        booking = await BookingService.create_booking(db, seed.user1, seed.session, [seed.a1])
        await BookingService.cancel_booking(db, booking.id, seed.user1)

        with pytest.raises(InvalidBookingStateError):
            await payment_service.create_checkout(db, booking.id)

    @pytest.mark.asyncio
    async def test_lapsed_hold(self, db, seed, payment_service, provider):
        booking = await BookingService.create_booking(db, seed.user1, seed.session, [seed.a1])

        with pytest.raises(BookingExpiredError) as exc_info:
            await payment_service.create_checkout(db, booking.id, now=datetime.utcnow() + timedelta(minutes=20))
        assert exc_info.value.http_status == 410
        assert provider.intents == {}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("voucher_attr", ["expired_voucher", "exhausted_voucher"])
    async def test_unusable_voucher(self, db, seed, payment_service, provider, voucher_attr):
        booking = await BookingService.create_booking(db, seed.user1, seed.session, [seed.a1])

        with pytest.raises(VoucherInvalidError) as exc_info:
            await payment_service.create_checkout(db, booking.id, voucher_id=getattr(seed, voucher_attr))
        assert exc_info.value.kind == "invalid_request"
        assert provider.intents == {}

    @pytest.mark.asyncio
    async def test_unknown_voucher(self, db, seed, payment_service):
        booking = await BookingService.create_booking(db, seed.user1, seed.session, [seed.a1])
        with pytest.raises(VoucherInvalidError):
            await payment_service.create_checkout(db, booking.id, voucher_id=9999)

    @pytest.mark.asyncio
    async def test_provider_failure_leaves_booking_pending(self, db, session_factory, seed, payment_service, provider):
        booking = await BookingService.create_booking(db, seed.user1, seed.session, [seed.a1])
        provider.fail_create = True

        with pytest.raises(PaymentProviderError) as exc_info:
            await payment_service.create_checkout(db, booking.id)

        assert exc_info.value.kind == "provider_failure"
        assert (await load(session_factory, Booking, booking.id)).status == BookingStatus.PENDING
        assert await payment_for(session_factory, booking.id) is None

        provider.fail_create = False
        assert await payment_service.create_checkout(db, booking.id)

    @pytest.mark.asyncio
    async def test_retry_replaces_intent_on_same_payment(self, db, session_factory, seed, payment_service, provider):
        booking = await BookingService.create_booking(db, seed.user1, seed.session, [seed.a1])
        await payment_service.create_checkout(db, booking.id)
        first_intent = provider.last_intent_id
        await payment_service.confirm_payment(db, first_intent, outcome=IntentOutcome.FAILED)

        await payment_service.create_checkout(db, booking.id)

        payment = await payment_for(session_factory, booking.id)
        assert payment.provider_payment_id == provider.last_intent_id != first_intent
        assert payment.status == PaymentStatus.PENDING
        assert provider.cancelled == [first_intent]
        with pytest.raises(PaymentNotFoundError):
            await payment_service.check_status(db, first_intent)

    @pytest.mark.asyncio
    async def test_retry_while_pending_cancels_previous_intent(self, db, session_factory, seed, payment_service, provider):
        booking = await BookingService.create_booking(db, seed.user1, seed.session, [seed.a1])
        await payment_service.create_checkout(db, booking.id)
        first_intent = provider.last_intent_id

        await payment_service.create_checkout(db, booking.id)

        assert provider.cancelled == [first_intent]
        assert provider.outcomes[first_intent] == IntentOutcome.FAILED
        assert (await payment_for(session_factory, booking.id)).provider_payment_id == provider.last_intent_id

    @pytest.mark.asyncio
    async def test_retry_after_customer_paid_keeps_first_intent(self, db, session_factory, seed, payment_service, provider):
        booking_id = (await BookingService.create_booking(db, seed.user1, seed.session, [seed.a1])).id
        await payment_service.create_checkout(db, booking_id)
        first_intent = provider.last_intent_id
        provider.outcomes[first_intent] = IntentOutcome.SUCCEEDED

        with pytest.raises(PaymentProviderError):
            await payment_service.create_checkout(db, booking_id)

        assert provider.last_intent_id == first_intent
        assert await payment_service.confirm_payment(db, first_intent, outcome=IntentOutcome.SUCCEEDED) == PaymentStatus.PAID
        assert (await load(session_factory, Booking, booking_id)).status == BookingStatus.PAID


# ============================================================================
# CONFIRMATION
# ============================================================================
class TestConfirmPayment:

    @pytest.mark.asyncio
    async def test_voucher_scenario(self, db, session_factory, seed, payment_service, provider):
        b2 = await BookingService.create_booking(db, seed.user2, seed.session, [seed.a2])
        await payment_service.create_checkout(db, b2.id, voucher_id=seed.voucher)
        assert provider.intents[provider.last_intent_id]["amount_cents"] == 1200

        provider.outcomes[provider.last_intent_id] = IntentOutcome.SUCCEEDED
        status = await payment_service.confirm_payment(db, provider.last_intent_id)

        assert status == PaymentStatus.PAID
        booking = await load(session_factory, Booking, b2.id)
        assert booking.status == BookingStatus.PAID
        assert booking.paid_at is not None
        assert (await load(session_factory, Voucher, seed.voucher)).usages == 5

        another = await BookingService.create_booking(db, seed.user3, seed.session, [seed.a3])
        with pytest.raises(VoucherInvalidError):
            await payment_service.create_checkout(db, another.id, voucher_id=seed.voucher)

    @pytest.mark.asyncio
    async def test_failure_keeps_booking_pending(self, db, session_factory, seed, payment_service, provider):
        booking = await BookingService.create_booking(db, seed.user1, seed.session, [seed.a1])
        await payment_service.create_checkout(db, booking.id, voucher_id=seed.voucher)
        provider.outcomes[provider.last_intent_id] = IntentOutcome.FAILED

        status = await payment_service.confirm_payment(db, provider.last_intent_id)

        assert status == PaymentStatus.FAILED
        assert (await load(session_factory, Booking, booking.id)).status == BookingStatus.PENDING
        assert (await load(session_factory, Voucher, seed.voucher)).usages == 4

    @pytest.mark.asyncio
    async def test_processing_changes_nothing(self, db, seed, payment_service, provider):
        booking = await BookingService.create_booking(db, seed.user1, seed.session, [seed.a1])
        await payment_service.create_checkout(db, booking.id)

        assert await payment_service.confirm_payment(db, provider.last_intent_id) == PaymentStatus.PENDING

    @pytest.mark.asyncio
    async def test_unknown_payment(self, db, seed, payment_service):
        with pytest.raises(PaymentNotFoundError):
            await payment_service.confirm_payment(db, "pi_missing", outcome=IntentOutcome.SUCCEEDED)

    @pytest.mark.asyncio
    async def test_confirmation_is_idempotent(self, db, session_factory, seed, payment_service, provider, dispatcher):
        booking = await BookingService.create_booking(db, seed.user1, seed.session, [seed.a1])
        await payment_service.create_checkout(db, booking.id, voucher_id=seed.voucher)
        intent_id = provider.last_intent_id

        first = await payment_service.confirm_payment(db, intent_id, outcome=IntentOutcome.SUCCEEDED)
        second = await payment_service.confirm_payment(db, intent_id, outcome=IntentOutcome.SUCCEEDED)
        late_failure = await payment_service.confirm_payment(db, intent_id, outcome=IntentOutcome.FAILED)

        assert first == second == late_failure == PaymentStatus.PAID
        assert (await load(session_factory, Voucher, seed.voucher)).usages == 5
        assert [template for _, template, _ in dispatcher.sent] == ["payment_receipt"]

    @pytest.mark.asyncio
    async def test_voucher_cap_race_rolls_back_everything(self, db, session_factory, seed, payment_service, provider):
        """Two checkouts passed validation with one usage left; only the first confirmation may use it"""
        first = (await BookingService.create_booking(db, seed.user1, seed.session, [seed.a1])).id
        second = (await BookingService.create_booking(db, seed.user2, seed.session, [seed.a2])).id
        await payment_service.create_checkout(db, first, voucher_id=seed.voucher)
        first_intent = provider.last_intent_id
        await payment_service.create_checkout(db, second, voucher_id=seed.voucher)
        second_intent = provider.last_intent_id

        assert await payment_service.confirm_payment(db, first_intent, outcome=IntentOutcome.SUCCEEDED) == PaymentStatus.PAID
        with pytest.raises(VoucherInvalidError):
            await payment_service.confirm_payment(db, second_intent, outcome=IntentOutcome.SUCCEEDED)

        assert (await load(session_factory, Booking, second)).status == BookingStatus.PENDING
        assert (await payment_for(session_factory, second)).status == PaymentStatus.PENDING
        assert (await load(session_factory, Voucher, seed.voucher)).usages == 5

    @pytest.mark.asyncio
    async def test_confirmation_after_expiry_does_not_resurrect(
        self, db, session_factory, seed, payment_service, provider, backdate
    ):
        booking = await BookingService.create_booking(db, seed.user1, seed.session, [seed.a1])
        await payment_service.create_checkout(db, booking.id, voucher_id=seed.voucher)
        await backdate(booking.id, minutes=20)
        await expire_stale_bookings(session_factory, timedelta(minutes=15))

        status = await payment_service.confirm_payment(db, provider.last_intent_id, outcome=IntentOutcome.SUCCEEDED)

        assert status == PaymentStatus.EXPIRED
        assert (await load(session_factory, Booking, booking.id)).status == BookingStatus.EXPIRED
        assert (await load(session_factory, Voucher, seed.voucher)).usages == 4

    @pytest.mark.asyncio
    async def test_side_effect_failures_do_not_roll_back(self, db, session_factory, seed, provider):
        service = PaymentService(
            provider=provider,
            notifier=RecordingDispatcher(fail=True),
            invoice_renderer=RecordingInvoiceRenderer(fail=True),
        )
        booking = await BookingService.create_booking(db, seed.user1, seed.session, [seed.a1])
        await service.create_checkout(db, booking.id)

        status = await service.confirm_payment(db, provider.last_intent_id, outcome=IntentOutcome.SUCCEEDED)

        assert status == PaymentStatus.PAID
        assert (await load(session_factory, Booking, booking.id)).status == BookingStatus.PAID

    @pytest.mark.asyncio
    async def test_receipt_and_invoice_after_payment(
        self, db, seed, payment_service, provider, dispatcher, invoice_renderer
    ):
        booking = await BookingService.create_booking(db, seed.user1, seed.session, [seed.a1])
        await payment_service.create_checkout(db, booking.id)

        await payment_service.confirm_payment(db, provider.last_intent_id, outcome=IntentOutcome.SUCCEEDED)

        user_id, template, payload = dispatcher.sent[0]
        assert (user_id, template) == (seed.user1, "payment_receipt")
        assert payload["booking_id"] == booking.id
        assert payload["amount"] == "10.00"
        assert invoice_renderer.rendered == [booking.id]

    @pytest.mark.asyncio
    async def test_paid_booking_cannot_checkout_again(self, db, seed, payment_service, provider):
        booking = await BookingService.create_booking(db, seed.user1, seed.session, [seed.a1])
        await payment_service.create_checkout(db, booking.id)
        await payment_service.confirm_payment(db, provider.last_intent_id, outcome=IntentOutcome.SUCCEEDED)

        with pytest.raises(InvalidBookingStateError):
            await payment_service.create_checkout(db, booking.id)


class TestCheckStatus:

    @pytest.mark.asyncio
    async def test_reads_stored_status_only(self, db, seed, payment_service, provider):
        booking = await BookingService.create_booking(db, seed.user1, seed.session, [seed.a1])
        await payment_service.create_checkout(db, booking.id)
        provider.outcomes[provider.last_intent_id] = IntentOutcome.SUCCEEDED

        assert await payment_service.check_status(db, provider.last_intent_id) == PaymentStatus.PENDING


class TestTextInvoice:

    @pytest.mark.asyncio
    async def test_invoice_lists_seats_and_discount(self, db, session_factory, seed, payment_service, provider):
        booking = await BookingService.create_booking(db, seed.user1, seed.session, [seed.a1, seed.a2])
        await payment_service.create_checkout(db, booking.id, voucher_id=seed.voucher)
        await payment_service.confirm_payment(db, provider.last_intent_id, outcome=IntentOutcome.SUCCEEDED)

        text = (await TextInvoiceRenderer(session_factory).render(booking.id)).decode()

        assert text.startswith(f"Invoice for booking #{booking.id}")
        assert "Metropolis" in text
        assert "A2" in text and "VIP" in text
        assert "-5.00" in text
        assert "20.00 EUR" in text


class TestStripeWebhook:
    SECRET = "whsec_test_secret"

    def sign(self, payload: str) -> str:
        timestamp = int(time.time())
        digest = hmac.new(self.SECRET.encode(), f"{timestamp}.{payload}".encode(), hashlib.sha256).hexdigest()
        return f"t={timestamp},v1={digest}"

    def event(self, event_type: str) -> str:
        return json.dumps({
            "id": "evt_1",
            "object": "event",
            "type": event_type,
            "data": {"object": {"id": "pi_123", "object": "payment_intent"}},
        })

    def test_verified_event(self):
        provider = StripePaymentProvider(api_key="sk_test_x", webhook_secret=self.SECRET)
        payload = self.event("payment_intent.succeeded")

        event = provider.parse_webhook(payload.encode(), self.sign(payload))

        assert event.intent_id == "pi_123"
        assert event.outcome == IntentOutcome.SUCCEEDED

    def test_unrelated_event_is_ignored(self):
        provider = StripePaymentProvider(api_key="sk_test_x", webhook_secret=self.SECRET)
        payload = self.event("customer.created")

        assert provider.parse_webhook(payload.encode(), self.sign(payload)) is None

    def test_bad_signature(self):
        provider = StripePaymentProvider(api_key="sk_test_x", webhook_secret=self.SECRET)
        payload = self.event("payment_intent.succeeded")

        with pytest.raises(InvalidWebhookError):
            provider.parse_webhook(payload.encode(), f"t={int(time.time())},v1=deadbeef")

    def test_missing_secret(self):
        provider = StripePaymentProvider(api_key="sk_test_x")

        with pytest.raises(PaymentProviderError):
            provider.parse_webhook(b"{}", "t=1,v1=x")
