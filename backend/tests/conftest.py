from collections.abc import AsyncGenerator

import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel.ext.asyncio.session import AsyncSession

from courseboard.api.deps import get_db
from courseboard.core.db import init_db
from courseboard.main import app
from courseboard.models import Course, Module, User, UserRole
from tests.utils.course import create_random_course
from tests.utils.user import create_random_user


@pytest_asyncio.fixture(scope="function")
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """
    Fresh in-memory database per test.
    """
    test_engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await init_db(test_engine)
    yield test_engine
    await test_engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db(engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSession(engine, expire_on_commit=False) as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture(scope="function")
async def client() -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as c:
        yield c


@pytest_asyncio.fixture(scope="function")
async def client_with_test_db(
    db: AsyncSession, client: AsyncClient
) -> AsyncGenerator[AsyncClient, None]:
    """
    Wraps the client and overrides the DB session to use the test session.
    """

    async def _override_get_session():
        yield db  # Reuse the same session

    app.dependency_overrides[get_db] = _override_get_session
    yield client
    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def create_user(db: AsyncSession) -> User:
    """
    Fixture to create a random student.
    """
    return await create_random_user(db)


@pytest_asyncio.fixture(scope="function")
async def create_course(db: AsyncSession) -> tuple[Course, list[Module]]:
    """
    Fixture to create a course with four modules, each with a two-question quiz.
    """
    author = await create_random_user(db, role=UserRole.INSTRUCTOR)
    return await create_random_course(db, author=author, module_count=4)


@pytest_asyncio.fixture(scope="function")
async def file_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """
    File-backed database, so concurrent sessions get separate connections.
    """
    test_engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'courseboard.db'}",
        connect_args={"timeout": 30},
    )
    await init_db(test_engine)
    yield test_engine
    await test_engine.dispose()
