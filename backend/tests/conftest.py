"""
Pytest fixtures for test database, client, users, products and notifications.

Each test gets its own SQLite file database so concurrent requests run in
separate connections and transactions, the way they do against PostgreSQL.
"""

import os

# Settings are cached on first import; configure before importing the app
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("NOTIFIER_BACKEND", "log")
os.environ.setdefault("ADMIN_ALERTS", "true")
os.environ.setdefault("ADMIN_EMAIL", "admin-alerts@brainwareuniversity.ac.in")
os.environ.setdefault("BOOKING_RETRY_BACKOFF_SECONDS", "0.01")

from typing import AsyncGenerator, Callable

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from campus_market.main import app
from campus_market.db.base import Base
from campus_market.db.session import get_db
from campus_market.core.exceptions import NotificationError
from campus_market.core.security import create_access_token, hash_password
from campus_market.models.product import Product, ProductStatus
from campus_market.models.user import User, UserRole
from campus_market.services.interfaces.notifier import EmailMessage, Notifier
from campus_market.services.notifier_factory import get_notifier

# One bcrypt hash for every fixture user keeps the suite fast
PASSWORD = "testpassword123"
PASSWORD_HASH = hash_password(PASSWORD)


class RecordingNotifier(Notifier):
    """Collects messages; raises for addresses listed in `fail_for`."""

    def __init__(self):
        self.sent: list[EmailMessage] = []
        self.fail_for: set[str] = set()

    async def send(self, message: EmailMessage) -> None:
        if message.to in self.fail_for:
            raise NotificationError(f"mailbox unavailable: {message.to}")
        self.sent.append(message)

    def recipients(self) -> list[str]:
        return [message.to for message in self.sent]


@pytest_asyncio.fixture
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker, None]:
    """Create tables in a fresh database, yield a session factory, then dispose."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        connect_args={"timeout": 10},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest_asyncio.fixture
async def client(session_factory, notifier) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client with a new session per request, like production."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifier

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db_session: AsyncSession) -> Callable:
    async def _make_user(name: str, role: str = UserRole.STUDENT.value) -> User:
        user = User(
            name=name.title(),
            email=f"{name}@brainwareuniversity.ac.in",
            hashed_password=PASSWORD_HASH,
            role=role,
        )
        db_session.add(user)
        await db_session.commit()
        return user

    return _make_user


@pytest.fixture
def make_product(db_session: AsyncSession) -> Callable:
    async def _make_product(
        seller: User,
        title: str = "Widget",
        price: float = 100.0,
        quantity: int = 5,
        status: str = ProductStatus.APPROVED.value,
        category: str = "Books",
    ) -> Product:
        product = Product(
            title=title,
            description=f"A second-hand {title.lower()}",
            category=category,
            price=price,
            quantity=quantity,
            status=status,
            seller_id=seller.id,
            seller_name=seller.name,
            seller_email=seller.email,
        )
        db_session.add(product)
        await db_session.commit()
        return product

    return _make_product


@pytest_asyncio.fixture
async def buyer(make_user) -> User:
    return await make_user("buyer")


@pytest_asyncio.fixture
async def seller(make_user) -> User:
    return await make_user("seller")


@pytest_asyncio.fixture
async def other_seller(make_user) -> User:
    return await make_user("otherseller")


@pytest_asyncio.fixture
async def stranger(make_user) -> User:
    return await make_user("stranger")


@pytest_asyncio.fixture
async def admin(make_user) -> User:
    return await make_user("admin", role=UserRole.ADMIN.value)


def headers_for(user: User) -> dict:
    """Authorization headers with a Bearer token for `user`."""
    return {"Authorization": f"Bearer {create_access_token(data={'sub': str(user.id)})}"}


@pytest.fixture
def auth_headers(buyer: User) -> dict:
    return headers_for(buyer)


async def current_quantity(db: AsyncSession, product_id: int) -> int:
    product = await db.get(Product, product_id, populate_existing=True)
    return product.quantity
