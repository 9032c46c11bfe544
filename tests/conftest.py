import os

# Must be set before cinema_booking.core.config is imported
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["WORKERS_ENABLED"] = "false"
os.environ["LOG_JSON"] = "false"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["HOLD_DURATION_MINUTES"] = "15"

from datetime import datetime, time, timedelta
from decimal import Decimal
from types import SimpleNamespace

import pytest
import pytest_asyncio
from sqlalchemy import update

from cinema_booking.core.database import build_engine, build_session_factory, init_db
from cinema_booking.models import Booking, CinemaHall, Movie, MovieSession, Seat, SeatCategory, User, Voucher
from cinema_booking.services.payment_service import PaymentService
from tests.fakes import FakePaymentProvider, RecordingDispatcher, RecordingInvoiceRenderer


@pytest_asyncio.fixture
async def engine(tmp_path):
    """Fresh SQLite file database per test"""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'cinema.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return build_session_factory(engine)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def seed(session_factory):
    """
    Hall H: A1 (normal), A2 (VIP), A3 (reduced); hall H2: B1.
    Session S in H starts tomorrow at 20:00 with base price 10.00.
    Voucher V: 20% off, 4 of 5 usages spent.
    """
    now = datetime.utcnow()
    tomorrow_evening = datetime.combine(now.date() + timedelta(days=1), time(20, 0))

    async with session_factory() as db:
        users = [User(name=f"User {i}", email=f"user{i}@example.com") for i in range(1, 4)]
        movie = Movie(title="Metropolis", duration_minutes=150)
        hall = CinemaHall(name="H")
        other_hall = CinemaHall(name="H2")
        db.add_all(users + [movie, hall, other_hall])
        await db.flush()

        a1 = Seat(hall_id=hall.id, seat_number="A1", category=SeatCategory.NORMAL)
        a2 = Seat(hall_id=hall.id, seat_number="A2", category=SeatCategory.VIP)
        a3 = Seat(hall_id=hall.id, seat_number="A3", category=SeatCategory.REDUCED)
        b1 = Seat(hall_id=other_hall.id, seat_number="B1", category=SeatCategory.NORMAL)
        db.add_all([a1, a2, a3, b1])

        session = MovieSession(
            movie_id=movie.id,
            hall_id=hall.id,
            start_time=tomorrow_evening,
            end_time=tomorrow_evening + timedelta(minutes=150),
            base_price=Decimal("10.00"),
        )
        later_session = MovieSession(
            movie_id=movie.id,
            hall_id=hall.id,
            start_time=tomorrow_evening + timedelta(days=6),
            end_time=tomorrow_evening + timedelta(days=6, minutes=150),
            base_price=Decimal("12.00"),
        )
        voucher = Voucher(
            code="SPRING20",
            value=Decimal("0.20"),
            valid_until=now + timedelta(days=30),
            max_usages=5,
            usages=4,
        )
        expired_voucher = Voucher(
            code="OLDCODE",
            value=Decimal("0.50"),
            valid_until=now - timedelta(days=1),
            max_usages=5,
            usages=0,
        )
        exhausted_voucher = Voucher(
            code="USEDUP",
            value=Decimal("0.10"),
            valid_until=now + timedelta(days=30),
            max_usages=2,
            usages=2,
        )
        db.add_all([session, later_session, voucher, expired_voucher, exhausted_voucher])
        await db.commit()

        return SimpleNamespace(
            user1=users[0].id,
            user2=users[1].id,
            user3=users[2].id,
            hall=hall.id,
            other_hall=other_hall.id,
            a1=a1.id,
            a2=a2.id,
            a3=a3.id,
            b1=b1.id,
            session=session.id,
            later_session=later_session.id,
            voucher=voucher.id,
            expired_voucher=expired_voucher.id,
            exhausted_voucher=exhausted_voucher.id,
        )


@pytest.fixture
def backdate(session_factory):
    """Move a booking's created_at into the past"""

    async def _backdate(booking_id, minutes):
        async with session_factory() as db:
            await db.execute(
                update(Booking)
                .where(Booking.id == booking_id)
                .values(created_at=datetime.utcnow() - timedelta(minutes=minutes))
            )
            await db.commit()

    return _backdate


@pytest.fixture
def provider():
    return FakePaymentProvider()


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def invoice_renderer():
    return RecordingInvoiceRenderer()


@pytest.fixture
def payment_service(provider, dispatcher, invoice_renderer):
    return PaymentService(
        provider=provider,
        notifier=dispatcher,
        invoice_renderer=invoice_renderer,
        hold_minutes=15,
        currency="eur",
    )
