"""
Pytest fixtures for test database, client, and authentication.

Each test gets a fresh file-backed SQLite database (aiosqlite), so two
sessions can run against it concurrently. Set TEST_DATABASE_URL to run the
suite against PostgreSQL instead.

"Today" is pinned to 2024-12-15: next month is January 2025, where the 6th
is a Monday, the 8th a Wednesday and the 10th a Friday.
"""

import os

os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("NOTIFIER", "log")

from datetime import date, time
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from swimclub.main import app
from swimclub.api.dependencies import get_clock, get_price_table
from swimclub.core.security import create_access_token
from swimclub.db.base import Base
from swimclub.db.session import get_db
from swimclub.models import CancellationRefund, DayAvailability, Reservation, Role, Schedule, User
from swimclub.services.booking_engine import BookingEngine
from swimclub.services.interfaces.notifier import Notifier
from swimclub.services.notifier_factory import get_notifier
from swimclub.services.pricing import PriceTable

TODAY = date(2024, 12, 15)
PRICES = PriceTable(member=2000, non_member=3000)

MONDAY = date(2025, 1, 6)
WEDNESDAY = date(2025, 1, 8)
FRIDAY = date(2025, 1, 10)


class RecordingNotifier(Notifier):
    """Keeps every notification; raises when `fail` is set."""

    def __init__(self):
        self.sent = []
        self.fail = False

    async def send_batch_confirmation(self, user, details):
        if self.fail:
            raise ConnectionError("SMTP relay unreachable")
        self.sent.append(("batch", user.id, details))

    async def send_release_confirmation(self, user, details):
        if self.fail:
            raise ConnectionError("SMTP relay unreachable")
        self.sent.append(("release", user.id, details))


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    url = os.getenv("TEST_DATABASE_URL") or f"sqlite+aiosqlite:///{tmp_path / 'swimclub.db'}"
    connect_args = {"timeout": 15} if url.startswith("sqlite") else {}
    engine = create_async_engine(url, echo=False, connect_args=connect_args)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def engine(db_session: AsyncSession, notifier: RecordingNotifier) -> BookingEngine:
    """Booking engine on the test session with the clock pinned to TODAY."""
    return BookingEngine.for_session(db_session, notifier, PRICES, clock=lambda: TODAY)


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession, notifier: RecordingNotifier) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client with the DB, clock, prices and notifier dependencies overridden."""

    async def override_get_db():
        try:
            yield db_session
            await db_session.commit()
        except Exception:
            await db_session.rollback()
            raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: (lambda: TODAY)
    app.dependency_overrides[get_price_table] = lambda: PRICES
    app.dependency_overrides[get_notifier] = lambda: notifier

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


async def _persist(session_factory, obj):
    """Insert through a short-lived session; the returned object is detached and fully loaded."""
    async with session_factory() as session:
        session.add(obj)
        await session.commit()
        await session.refresh(obj)
    return obj


@pytest.fixture
def fetch(session_factory):
    """Run a SELECT in a fresh session and return the scalars, bypassing any cached state."""

    async def run(stmt) -> list:
        async with session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    return run


def _user(email: str, name: str, role: Role = Role.USER, is_member: bool = False) -> User:
    return User(email=email, name=name, role=role.value, is_member=is_member)


@pytest_asyncio.fixture
async def member(session_factory) -> User:
    return await _persist(session_factory, _user("member@example.com", "Marta Member", is_member=True))


@pytest_asyncio.fixture
async def non_member(session_factory) -> User:
    return await _persist(session_factory, _user("guest@example.com", "Gabriel Guest"))


@pytest_asyncio.fixture
async def admin(session_factory) -> User:
    return await _persist(session_factory, _user("admin@example.com", "Ada Admin", role=Role.ADMIN))


@pytest_asyncio.fixture
async def treasurer(session_factory) -> User:
    return await _persist(session_factory, _user("treasurer@example.com", "Tomas Treasurer", role=Role.TREASURER))


@pytest.fixture
def make_users(session_factory):
    """Factory for N extra non-member users, used to fill sessions up."""

    async def factory(count: int, prefix: str = "filler") -> list[User]:
        return [
            await _persist(session_factory, _user(f"{prefix}{i}@example.com", f"{prefix.title()} {i}"))
            for i in range(count)
        ]

    return factory


def headers_for(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(data={'sub': str(user.id)})}"}


@pytest.fixture
def member_headers(member: User) -> dict:
    return headers_for(member)


@pytest.fixture
def non_member_headers(non_member: User) -> dict:
    return headers_for(non_member)


@pytest.fixture
def admin_headers(admin: User) -> dict:
    return headers_for(admin)


@pytest.fixture
def treasurer_headers(treasurer: User) -> dict:
    return headers_for(treasurer)


def _schedule(day_of_week: int, capacity: int) -> Schedule:
    return Schedule(
        day_of_week=day_of_week,
        start_time=time(19, 0),
        end_time=time(20, 30),
        max_capacity=capacity,
        lane_count=4,
        is_active=True,
    )


@pytest_asyncio.fixture
async def monday_schedule(session_factory) -> Schedule:
    """Monday session, 5 places."""
    return await _persist(session_factory, _schedule(0, 5))


@pytest_asyncio.fixture
async def wednesday_schedule(session_factory) -> Schedule:
    """Wednesday session, 10 places."""
    return await _persist(session_factory, _schedule(2, 10))


@pytest_asyncio.fixture
async def friday_schedule(session_factory) -> Schedule:
    """Friday session, a single place."""
    return await _persist(session_factory, _schedule(4, 1))


@pytest.fixture
def open_day(session_factory):
    """Factory that writes a DayAvailability row, open unless told otherwise."""

    async def factory(day: date, schedule: Schedule, capacity_override=None, is_available=True) -> DayAvailability:
        return await _persist(
            session_factory,
            DayAvailability(
                date=day,
                schedule_id=schedule.id,
                is_available=is_available,
                capacity_override=capacity_override,
            ),
        )

    return factory


@pytest.fixture
def add_reservation(session_factory):
    """Factory that inserts a reservation directly, bypassing the engine."""

    async def factory(user: User, schedule: Schedule, day: date, status: str = "PENDING", is_paid: bool = False) -> Reservation:
        return await _persist(
            session_factory,
            Reservation(user_id=user.id, schedule_id=schedule.id, date=day, status=status, is_paid=is_paid),
        )

    return factory


@pytest.fixture
def add_refund(session_factory):
    """Factory for a refund owed to `user`, attached to one of their reservations."""

    async def factory(user: User, reservation: Reservation, amount: int, status: str = "PENDING") -> CancellationRefund:
        return await _persist(
            session_factory,
            CancellationRefund(user_id=user.id, reservation_id=reservation.id, amount=amount, status=status),
        )

    return factory
