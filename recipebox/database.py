from functools import lru_cache
from typing import AsyncIterator

from fastapi import Request
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from recipebox.config import settings


def configure_sqlite(engine: AsyncEngine) -> None:
    """
    Make SQLite behave like the production store for our purposes:
    enforce foreign keys (cascade deletes) and take the write lock at
    BEGIN so concurrent transactions serialize instead of failing mid-way.
    """
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # Stop the driver from issuing its own BEGIN; we emit ours below.
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_engine_for(url: str, echo: bool = False) -> AsyncEngine:
    engine = create_async_engine(url, echo=echo, future=True)
    if engine.dialect.name == "sqlite":
        configure_sqlite(engine)
    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@lru_cache
def get_engine() -> AsyncEngine:
    return create_engine_for(settings.DATABASE_URL, echo=settings.DATABASE_ECHO)


async def init_db(engine: AsyncEngine) -> None:
    # Import models so they are registered with SQLModel metadata
    import recipebox.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


async def get_session(request: Request) -> AsyncIterator[AsyncSession]:
    session_factory = request.app.state.session_factory
    async with session_factory() as session:
        yield session
