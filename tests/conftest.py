"""
Test infrastructure for the content engagement API.

Strategy
--------
- SQLite in-memory via aiosqlite keeps the suite free of a running
  Postgres instance.
- StaticPool forces every session onto the same in-memory connection;
  SQLite in-memory databases are connection-scoped.
- The driver's own transaction handling is switched off and BEGIN is
  emitted explicitly, so SAVEPOINT (``session.begin_nested()``) behaves
  as it does on Postgres.  Foreign keys are enforced with a PRAGMA.
- The app's get_db dependency is overridden so every request uses the
  test session factory.
- All tables are created before each test and dropped after.
- The Redis cache is disabled by setting cache._redis = None; the
  CacheManager turns reads into misses and writes into no-ops.
- Service tests use ``db_session``; endpoint tests use ``async_client``.
  The two share one connection, so a single test should not hold a
  ``db_session`` transaction open while making requests.
"""
import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from app.cache import cache
from app.database import Base, get_db
from app.main import app
from app.middleware import install_query_counter
from app.models import User, UserRole

# ---------------------------------------------------------------------------
# Test database engine — SQLite in-memory with aiosqlite
# ---------------------------------------------------------------------------

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

engine_test = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


@event.listens_for(engine_test.sync_engine, "connect")
def _sqlite_on_connect(dbapi_connection, connection_record):
    dbapi_connection.isolation_level = None
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


@event.listens_for(engine_test.sync_engine, "begin")
def _sqlite_on_begin(conn):
    conn.exec_driver_sql("BEGIN")


install_query_counter(engine_test)

async_session_test = async_sessionmaker(
    engine_test,
    class_=AsyncSession,
    expire_on_commit=False,
)


# ---------------------------------------------------------------------------
# Dependency override
# ---------------------------------------------------------------------------

async def override_get_db():
    async with async_session_test() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


app.dependency_overrides[get_db] = override_get_db


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture(autouse=True)
async def setup_db():
    """Create all tables before each test, drop after to guarantee isolation."""
    cache._redis = None
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine_test.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture
async def db_session() -> AsyncSession:
    """A live session for service-level tests."""
    async with async_session_test() as session:
        yield session


@pytest_asyncio.fixture
async def async_client() -> AsyncClient:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def make_user(db_session: AsyncSession):
    """
    Factory fixture: ``await make_user("alice", UserRole.AUTHOR)`` inserts
    and flushes a user in ``db_session``.
    """

    async def _make(username: str, role: UserRole = UserRole.READER, display_name: str | None = None) -> User:
        user = User(
            username=username,
            email=f"{username}@example.com",
            display_name=display_name,
            role=role,
        )
        db_session.add(user)
        await db_session.flush()
        return user

    return _make
