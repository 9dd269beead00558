# tests/conftest.py
import os

os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL_ASYNC", "sqlite+aiosqlite:///:memory:")

import pytest
from typing import AsyncGenerator, Callable
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

from marketplace.main import app
from marketplace.core.auth import create_access_token, generate_passwd_hash
from marketplace.db.models import NotificationSound, Product, User
from marketplace.db.session import get_session

# Use an in-memory SQLite database for testing
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture(scope="function")
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.drop_all)
    await engine.dispose()


@pytest.fixture(scope="function")
def session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture(scope="function")
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    async with session_maker() as session:
        yield session


@pytest.fixture(scope="function")
async def client(session_maker) -> AsyncGenerator[AsyncClient, None]:
    async def override_get_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(session_maker) -> Callable:
    async def _make_user(username: str, password: str = "strongpassword", **kwargs) -> User:
        user = User(username=username, hashed_password=generate_passwd_hash(password), **kwargs)
        async with session_maker() as session:
            session.add(user)
            await session.commit()
        return user

    return _make_user


@pytest.fixture
async def buyer(make_user) -> User:
    return await make_user("buyer_one")


@pytest.fixture
async def seller(make_user) -> User:
    return await make_user("seller_one", notification_sound=NotificationSound.CHIME)


@pytest.fixture
async def stranger(make_user) -> User:
    return await make_user("stranger")


@pytest.fixture
async def product(session_maker, seller: User) -> Product:
    product = Product(
        seller_id=seller.id,
        title="Road bike, 54cm",
        price=180.0,
        images=["https://cdn.example.com/bike-1.jpg", "https://cdn.example.com/bike-2.jpg"],
    )
    async with session_maker() as session:
        session.add(product)
        await session.commit()
    return product


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user=user)}"}


@pytest.fixture(name="auth_headers")
def auth_headers_fixture() -> Callable[[User], dict]:
    return auth_headers
