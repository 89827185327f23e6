"""
Test infrastructure for the forum API.

Strategy
--------
- SQLite in-memory via aiosqlite with ``StaticPool`` so every session
  (each request's and the test's own) sees the same connection.
- The app's ``get_db`` dependency is rebuilt over the test session
  factory with ``session_dependency``; tables are created before and
  dropped after each test.
- The cache is off by default (``cache._redis = None``); the manager
  degrades to no-op reads/writes.  Tests that exercise the Redis paths of
  the cache or the invalidation bus request the ``fake_redis`` fixture,
  which plugs a fakeredis client into the cache singleton.
"""
import fakeredis
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from forum.cache import cache
from forum.context import CallContext
from forum.database import Base, get_db, session_dependency
from forum.main import app
from forum.middleware import install_query_counter

# ---------------------------------------------------------------------------
# Test database engine: SQLite in-memory with aiosqlite
# ---------------------------------------------------------------------------

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

engine_test = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

install_query_counter(engine_test)

async_session_test = async_sessionmaker(
    engine_test,
    class_=AsyncSession,
    expire_on_commit=False,
)


app.dependency_overrides[get_db] = session_dependency(async_session_test)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture(autouse=True)
async def setup_db():
    """Fresh tables and a disabled cache for every test."""
    cache._redis = None
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    cache._redis = None


@pytest_asyncio.fixture
async def db_session() -> AsyncSession:
    async with async_session_test() as session:
        yield session


@pytest_asyncio.fixture
async def ctx(db_session: AsyncSession) -> CallContext:
    """Anonymous call context on the test session, for service-level tests."""
    return CallContext(db=db_session)


@pytest_asyncio.fixture
async def fake_redis():
    """A fakeredis client wired into the cache singleton."""
    client = fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer(), decode_responses=True)
    cache._redis = client
    yield client
    cache._redis = None
    await client.flushall()
    await client.aclose()


@pytest_asyncio.fixture
async def async_client() -> AsyncClient:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

async def register(client: AsyncClient, username: str, email: str | None = None,
                   password: str = "secret123") -> dict:
    """Register a user over HTTP; return the ``user`` payload (with token)."""
    resp = await client.post("/api/users", json={"user": {
        "username": username,
        "email": email or f"{username}@example.com",
        "password": password,
    }})
    assert resp.status_code == 201, resp.text
    return resp.json()["user"]


def auth(user: dict) -> dict:
    return {"Authorization": f"Token {user['token']}"}


async def create_channel(client: AsyncClient, owner: dict, title: str = "General",
                         description: str = "General chat") -> dict:
    resp = await client.post(
        "/api/channels",
        json={"channel": {"title": title, "description": description}},
        headers=auth(owner),
    )
    assert resp.status_code == 201, resp.text
    return resp.json()["channel"]


async def create_topic(client: AsyncClient, owner: dict, channel_slug: str,
                       title: str = "Welcome", description: str = "Say hello") -> dict:
    resp = await client.post(
        f"/api/channels/{channel_slug}/topics",
        json={"topic": {"title": title, "description": description}},
        headers=auth(owner),
    )
    assert resp.status_code == 201, resp.text
    return resp.json()["topic"]
