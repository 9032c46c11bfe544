"""
Day-before session reminders
"""
from datetime import datetime, timedelta

import pytest

from cinema_booking.services import BookingService, IntentOutcome
from cinema_booking.services.notifications import SESSION_REMINDER
from cinema_booking.services.reminder_service import ReminderWorker, send_daily_reminders
from tests.fakes import RecordingDispatcher


async def pay_for(db, payment_service, provider, booking_id):
    await payment_service.create_checkout(db, booking_id)
    await payment_service.confirm_payment(db, provider.last_intent_id, outcome=IntentOutcome.SUCCEEDED)


@pytest.mark.asyncio
async def test_paid_booking_for_tomorrow_gets_reminder(db, session_factory, seed, payment_service, provider):
    booking = await BookingService.create_booking(db, seed.user1, seed.session, [seed.a1])
    await pay_for(db, payment_service, provider, booking.id)

    dispatcher = RecordingDispatcher()
    sent = await send_daily_reminders(session_factory, dispatcher)

    assert sent == 1
    user_id, template, payload = dispatcher.sent[0]
    assert user_id == seed.user1
    assert template == SESSION_REMINDER
    assert payload["booking_id"] == booking.id
    assert payload["session_id"] == seed.session


@pytest.mark.asyncio
async def test_unpaid_and_later_sessions_are_skipped(db, session_factory, seed, payment_service, provider):
    await BookingService.create_booking(db, seed.user1, seed.session, [seed.a1])
    later = await BookingService.create_booking(db, seed.user2, seed.later_session, [seed.a1])
    await pay_for(db, payment_service, provider, later.id)

    dispatcher = RecordingDispatcher()

    assert await send_daily_reminders(session_factory, dispatcher) == 0
    assert dispatcher.sent == []


@pytest.mark.asyncio
async def test_reminder_day_follows_now(db, session_factory, seed, payment_service, provider):
    booking = await BookingService.create_booking(db, seed.user1, seed.later_session, [seed.a2])
    await pay_for(db, payment_service, provider, booking.id)

    dispatcher = RecordingDispatcher()
    six_days_on = datetime.utcnow() + timedelta(days=6)

    assert await send_daily_reminders(session_factory, dispatcher, now=six_days_on) == 1


@pytest.mark.asyncio
async def test_failing_dispatcher_is_contained(db, session_factory, seed, payment_service, provider):
    booking = await BookingService.create_booking(db, seed.user1, seed.session, [seed.a1])
    await pay_for(db, payment_service, provider, booking.id)

    assert await send_daily_reminders(session_factory, RecordingDispatcher(fail=True)) == 0


@pytest.mark.asyncio
async def test_reminder_worker_tick(db, session_factory, seed, payment_service, provider):
    booking = await BookingService.create_booking(db, seed.user1, seed.session, [seed.a3])
    await pay_for(db, payment_service, provider, booking.id)

    dispatcher = RecordingDispatcher()
    worker = ReminderWorker(session_factory=session_factory, dispatcher=dispatcher, interval_seconds=60)
    await worker.tick()

    assert [entry[0] for entry in dispatcher.sent] == [seed.user1]


@pytest.mark.asyncio
async def test_reminder_is_sent_once(db, session_factory, seed, payment_service, provider):
    booking = await BookingService.create_booking(db, seed.user1, seed.session, [seed.a1])
    await pay_for(db, payment_service, provider, booking.id)

    dispatcher = RecordingDispatcher()

    assert await send_daily_reminders(session_factory, dispatcher) == 1
    assert await send_daily_reminders(session_factory, dispatcher) == 0
    assert len(dispatcher.sent) == 1


@pytest.mark.asyncio
async def test_failed_reminder_is_retried(db, session_factory, seed, payment_service, provider):
    booking = await BookingService.create_booking(db, seed.user1, seed.session, [seed.a1])
    await pay_for(db, payment_service, provider, booking.id)

    assert await send_daily_reminders(session_factory, RecordingDispatcher(fail=True)) == 0

    dispatcher = RecordingDispatcher()
    assert await send_daily_reminders(session_factory, dispatcher) == 1
    assert dispatcher.sent[0][2]["booking_id"] == booking.id
