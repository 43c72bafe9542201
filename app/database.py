from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from app.config import settings
from app.middleware import install_query_counter


def _engine_options(url: str) -> dict:
    options = {"echo": settings.SQL_ECHO, "pool_pre_ping": True}
    # SQLite URLs get SQLAlchemy's default pool, which takes no sizing.
    if not url.startswith("sqlite"):
        options["pool_size"] = settings.DB_POOL_SIZE
        options["max_overflow"] = settings.DB_MAX_OVERFLOW
    return options


# Tests swap in their own engine through the get_db override.
engine = create_async_engine(settings.DATABASE_URL, **_engine_options(settings.DATABASE_URL))
install_query_counter(engine)

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


async def get_db():
    """
    Yield one session per request.

    The request is a single transaction: it commits when the handler
    returns and rolls back on any exception.  Services group coupled
    multi-row writes in ``session.begin_nested()`` blocks inside it.
    """
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
