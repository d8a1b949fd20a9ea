"""
Pytest fixtures for test database, client, seeded catalog and authentication.

Each test gets its own file-backed SQLite database under tmp_path, so
concurrent sessions in one test really contend for the same database.
"""

import os

# Must be set before parkpass is imported: settings are cached on first use.
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["REDIS_ENABLED"] = "false"
os.environ["ENVIRONMENT"] = "test"

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import AsyncGenerator

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from parkpass.core.security import Role, create_access_token
from parkpass.db.base import Base
from parkpass.db.session import build_engine, build_sessionmaker, get_db
from parkpass.main import app
from parkpass.models import Event, Game, Product, TicketType
from parkpass.models.enums import GameStatus, PaymentMethod, ProductKind, TicketCategory
from parkpass.services.booking_service import CartLine, create_booking

VISITOR_ID = 1
OTHER_VISITOR_ID = 2
STAFF_ID = 50
ADMIN_ID = 99


@pytest_asyncio.fixture
async def engine(tmp_path):
    """Fresh schema per test."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'parkpass_test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return build_sessionmaker(engine)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client with one real session per request, like production."""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# Helpers. Each one opens and closes its own session so it never holds the
# SQLite write lock across a test step.

@pytest_asyncio.fixture
async def book(session_factory):
    """Create a booking in a fresh session."""

    async def _book(*lines, owner_id=VISITOR_ID, guest=None, **kwargs):
        async with session_factory() as session:
            return await create_booking(
                session,
                owner_id=owner_id,
                lines=[CartLine(tt.id, qty) for tt, qty in lines],
                payment_method=PaymentMethod.CREDIT_CARD,
                guest=guest,
                **kwargs,
            )

    return _book


@pytest_asyncio.fixture
async def sold_of(session_factory):
    async def _sold(event_id: int) -> int:
        async with session_factory() as session:
            return (await session.execute(select(Event.sold).where(Event.id == event_id))).scalar_one()

    return _sold


@pytest_asyncio.fixture
async def count_rows(session_factory):
    async def _count(model) -> int:
        async with session_factory() as session:
            return (await session.execute(select(func.count()).select_from(model))).scalar_one()

    return _count


# Catalog

@pytest_asyncio.fixture
async def bumper_cars(db_session: AsyncSession) -> Product:
    """Open game with an ADULT (100.00) and a CHILD (60.00) ticket type."""
    game = Game(name="Bumper Cars", description="Classic dodgems", status=GameStatus.OPEN.value)
    product = Product(name="Bumper Cars Ride", kind=ProductKind.GAME.value, game=game, valid_days=1)
    product.ticket_types = [
        TicketType(category=TicketCategory.ADULT.value, price=Decimal("100.00")),
        TicketType(category=TicketCategory.CHILD.value, price=Decimal("60.00")),
    ]
    db_session.add(product)
    await db_session.commit()
    return product


@pytest_asyncio.fixture
async def game_adult(bumper_cars: Product) -> TicketType:
    return bumper_cars.ticket_types[0]


@pytest_asyncio.fixture
async def game_child(bumper_cars: Product) -> TicketType:
    return bumper_cars.ticket_types[1]


async def _event_ticket_type(
    db: AsyncSession, name: str, capacity: int, price: Decimal = Decimal("250.00"), **ticket_type_kwargs
) -> TicketType:
    event = Event(
        name=name,
        description=f"{name} at the main stage",
        starts_at=datetime.now(timezone.utc) + timedelta(days=7),
        capacity=capacity,
        sold=0,
        is_active=True,
    )
    product = Product(name=f"{name} Entry", kind=ProductKind.EVENT.value, event=event, valid_days=None)
    ticket_type = TicketType(
        product=product, category=TicketCategory.ADULT.value, price=price, **ticket_type_kwargs
    )
    db.add(ticket_type)
    await db.commit()
    return ticket_type


@pytest_asyncio.fixture
async def concert(db_session: AsyncSession) -> TicketType:
    """ADULT ticket type for an event with 10 places."""
    return await _event_ticket_type(db_session, "Summer Concert", capacity=10)


@pytest_asyncio.fixture
async def magic_show(db_session: AsyncSession) -> TicketType:
    """ADULT ticket type for a small event with 3 places."""
    return await _event_ticket_type(db_session, "Magic Show", capacity=3, price=Decimal("80.00"))


@pytest_asyncio.fixture
async def limited_ticket(db_session: AsyncSession) -> TicketType:
    """At most 4 per booking."""
    return await _event_ticket_type(db_session, "Fireworks", capacity=50, price=Decimal("40.00"), max_quantity=4)


@pytest_asyncio.fixture
async def retired_ticket(db_session: AsyncSession) -> TicketType:
    """Ticket type switched off by catalog management."""
    return await _event_ticket_type(db_session, "Old Parade", capacity=20, is_active=False)


@pytest_asyncio.fixture
async def closed_game_ticket(db_session: AsyncSession) -> TicketType:
    game = Game(name="Haunted House", status=GameStatus.ON_MAINTENANCE.value)
    product = Product(name="Haunted House Ride", kind=ProductKind.GAME.value, game=game)
    ticket_type = TicketType(product=product, category=TicketCategory.ADULT.value, price=Decimal("50.00"))
    db_session.add(ticket_type)
    await db_session.commit()
    return ticket_type


# Auth

def _headers(user_id: int, role: Role) -> dict:
    token = create_access_token(data={"sub": str(user_id), "role": role.value})
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def visitor_headers() -> dict:
    return _headers(VISITOR_ID, Role.VISITOR)


@pytest_asyncio.fixture
async def other_visitor_headers() -> dict:
    return _headers(OTHER_VISITOR_ID, Role.VISITOR)


@pytest_asyncio.fixture
async def staff_headers() -> dict:
    return _headers(STAFF_ID, Role.STAFF)


@pytest_asyncio.fixture
async def admin_headers() -> dict:
    return _headers(ADMIN_ID, Role.ADMIN)
