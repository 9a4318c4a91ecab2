import os

# Must be set before bydbio.config is imported anywhere.
os.environ["OTEL_ENABLED"] = "false"
os.environ["KAFKA_ENABLED"] = "false"

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

import bydbio.models  # noqa: F401  (registers tables on Base.metadata)
from bydbio.database import Base, get_db, get_session_factory
from bydbio.models import User


class Seed:
    """Writes fixture rows through their own committed session."""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    async def add(self, *records):
        async with self.session_factory() as session:
            session.add_all(records)
            await session.commit()
        return records[0] if len(records) == 1 else records

    async def user(self, user_id: str, **fields) -> User:
        fields.setdefault("username", user_id)
        fields.setdefault("name", user_id.title())
        return await self.add(User(user_id=user_id, **fields))

    async def get(self, model, pk):
        async with self.session_factory() as session:
            return await session.get(model, pk)


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'bydbio.db'}", poolclass=NullPool
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def seed(session_factory):
    return Seed(session_factory)


@pytest.fixture
async def client(session_factory):
    from bydbio.main import app

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
