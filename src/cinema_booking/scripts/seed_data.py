"""
Seed script to populate database with sample data for local development

Usage:
    python -m cinema_booking.scripts.seed_data
"""
import asyncio
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import select

from cinema_booking.core.database import AsyncSessionLocal, init_db
from cinema_booking.models import CinemaHall, Movie, MovieSession, Seat, SeatCategory, User, Voucher


async def get_or_add(db, model, lookup: dict, **fields):
    """Return the row matching `lookup`, adding it with `fields` if missing"""
    query = select(model).filter_by(**lookup)
    row = (await db.execute(query)).scalar_one_or_none()
    if row is not None:
        return row, False
    row = model(**lookup, **fields)
    db.add(row)
    return row, True


async def create_sample_users(db):
    people = [
        ("john@example.com", "John Doe"),
        ("jane@example.com", "Jane Smith"),
        ("bob@example.com", "Bob Johnson"),
    ]

    users = []
    for email, name in people:
        user, created = await get_or_add(db, User, {"email": email}, name=name)
        print(f"{'Created' if created else 'Found existing'} user: {email}")
        users.append(user)

    await db.commit()
    return users


def seat_category_for_row(row_index: int, total_rows: int) -> SeatCategory:
    """Front row is reduced, back two rows are VIP, everything else normal"""
    if row_index == 0:
        return SeatCategory.REDUCED
    if row_index >= total_rows - 2:
        return SeatCategory.VIP
    return SeatCategory.NORMAL


async def create_hall_with_seats(db, name: str, rows: int, seats_per_row: int) -> CinemaHall:
    result = await db.execute(select(CinemaHall).where(CinemaHall.name == name))
    hall = result.scalar_one_or_none()
    if hall:
        print(f"Hall '{name}' already exists, skipping...")
        return hall

    hall = CinemaHall(name=name, cinema_name="Downtown Cinema")
    db.add(hall)
    await db.flush()  # Get hall ID

    for row_index in range(rows):
        row_label = chr(ord("A") + row_index)
        for number in range(1, seats_per_row + 1):
            db.add(Seat(
                hall_id=hall.id,
                seat_number=f"{row_label}{number}",
                category=seat_category_for_row(row_index, rows),
            ))

    print(f"Created hall: {name} with {rows * seats_per_row} seats")
    return hall


async def create_sample_sessions(db, halls):
    """Create a movie and a few sessions per hall, starting tomorrow"""
    movie, _ = await get_or_add(db, Movie, {"title": "The Grand Budapest Hotel"}, duration_minutes=100)
    await db.flush()

    tomorrow = (datetime.utcnow() + timedelta(days=1)).replace(hour=17, minute=0, second=0, microsecond=0)
    sessions = []
    for hall in halls:
        for slot, base_price in enumerate([Decimal("9.50"), Decimal("11.00"), Decimal("12.50")]):
            start_time = tomorrow + timedelta(hours=3 * slot)
            result = await db.execute(
                select(MovieSession).where(
                    MovieSession.hall_id == hall.id,
                    MovieSession.start_time == start_time,
                )
            )
            if result.scalar_one_or_none():
                continue

            session = MovieSession(
                movie_id=movie.id,
                hall_id=hall.id,
                start_time=start_time,
                end_time=start_time + timedelta(minutes=movie.duration_minutes),
                base_price=base_price,
            )
            db.add(session)
            sessions.append(session)

    await db.commit()
    print(f"Created {len(sessions)} sessions")
    return sessions


async def create_sample_vouchers(db):
    vouchers_data = [
        {"code": "WELCOME20", "value": Decimal("0.20"), "max_usages": 100},
        {"code": "HALFPRICE", "value": Decimal("0.50"), "max_usages": 5},
    ]
    valid_until = datetime.utcnow() + timedelta(days=90)

    for voucher_data in vouchers_data:
        code = voucher_data.pop("code")
        _, created = await get_or_add(db, Voucher, {"code": code}, valid_until=valid_until, usages=0, **voucher_data)
        if created:
            print(f"Created voucher: {code}")

    await db.commit()


async def seed_database():
    print("Seeding development data...")
    await init_db()

    async with AsyncSessionLocal() as db:
        try:
            print("\n=== Creating Users ===")
            users = await create_sample_users(db)

            print("\n=== Creating Halls and Seats ===")
            halls = [
                await create_hall_with_seats(db, "Hall 1", rows=8, seats_per_row=12),
                await create_hall_with_seats(db, "Hall 2", rows=5, seats_per_row=10),
            ]
            await db.commit()

            print("\n=== Creating Sessions ===")
            sessions = await create_sample_sessions(db, halls)

            print("\n=== Creating Vouchers ===")
            await create_sample_vouchers(db)

            print(f"\nDone. Users: {len(users)}, halls: {len(halls)}, new sessions: {len(sessions)}")

        except Exception:
            print("Seeding failed, rolling back")
            await db.rollback()
            raise


if __name__ == "__main__":
    asyncio.run(seed_database())
