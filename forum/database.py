from collections.abc import AsyncIterator, Callable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from forum.bus import bus
from forum.config import settings
from forum.middleware import install_query_counter

# Module-level engine variable allows tests to override with a test engine.
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    pool_pre_ping=True,
)

install_query_counter(engine)

async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    pass


def session_dependency(
    factory: async_sessionmaker[AsyncSession],
) -> Callable[[], AsyncIterator[AsyncSession]]:
    """
    Build a ``get_db``-style dependency over *factory*.

    One session (and one transaction) per request, shared by every service
    the request reaches.  Kinds announced on the bus during the request are
    broadcast a second time after the commit; on rollback they are dropped.
    """

    async def _get_db() -> AsyncIterator[AsyncSession]:
        async with factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                bus.discard_pending(session)
                raise
            await bus.flush_pending(session)

    return _get_db


get_db = session_dependency(async_session)
