from contextlib import asynccontextmanager
from typing import AsyncIterator
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine


engine: AsyncEngine | None = None
session_maker: async_sessionmaker[AsyncSession] | None = None


def create_engine(url: str) -> AsyncEngine:
    if url.startswith('sqlite'):
        new_engine = create_async_engine(url)

        # SQLite has no row locks. Write transactions are started with `BEGIN IMMEDIATE`,
        # so concurrent reconciliations of one payment are serialized on the database lock
        # https://docs.sqlalchemy.org/en/20/dialects/sqlite.html#serializable-isolation-savepoints-transactional-ddl
        @event.listens_for(new_engine.sync_engine, 'connect')
        def _disable_pysqlite_transactions(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(new_engine.sync_engine, 'begin')
        def _begin_immediate(conn):
            conn.exec_driver_sql('BEGIN IMMEDIATE')

        return new_engine

    return create_async_engine(
        url,
        pool_size=20,
        max_overflow=30,
    )


def init(url: str):
    global engine, session_maker

    engine = create_engine(url)
    session_maker = async_sessionmaker(engine, expire_on_commit=False)


async def dispose():
    global engine, session_maker

    if engine is not None:
        await engine.dispose()
    engine = None
    session_maker = None


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    assert session_maker is not None, 'database is not initialized'
    return session_maker


@asynccontextmanager
async def transaction(maker: async_sessionmaker[AsyncSession]) -> AsyncIterator[AsyncSession]:
    """Scoped unit of work.

    Commits when the block exits normally, rolls back on any exception
    (including early `raise` from inside the block), always closes the session.
    """
    async with maker() as session, session.begin():
        yield session
