"""
Database engine and session management.

The engine and session factory are built once per process by the application
context; nothing here holds module-level connection state.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy import event
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel

PG_UNIQUE_VIOLATION = "23505"
SQLITE_BUSY_TIMEOUT_SECONDS = 30


def create_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create the async engine.

    SQLite needs two connection hooks: the driver's implicit transaction
    handling is switched off so SAVEPOINT works, and foreign keys are turned
    on so ON DELETE rules are honoured. Transactions start with
    ``BEGIN IMMEDIATE`` and wait on a busy timeout, so concurrent writers queue
    up instead of failing with "database is locked".
    """
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args["timeout"] = SQLITE_BUSY_TIMEOUT_SECONDS
    engine = create_async_engine(database_url, echo=echo, future=True, connect_args=connect_args)

    if engine.dialect.name == "sqlite":

        @event.listens_for(engine.sync_engine, "connect")
        def _sqlite_connect(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        @event.listens_for(engine.sync_engine, "begin")
        def _sqlite_begin(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


def create_session_factory(engine: AsyncEngine) -> sessionmaker:
    return sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def init_db(engine: AsyncEngine) -> None:
    """Create all tables (development and tests; use migrations in production)."""
    import uoa_server.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


@asynccontextmanager
async def session_scope(factory: sessionmaker) -> AsyncGenerator[AsyncSession, None]:
    """One session, one transaction: commit on success, roll back on error."""
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def is_unique_violation(exc: IntegrityError) -> bool:
    """True when ``exc`` was raised by a unique constraint or unique index."""
    orig = exc.orig
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if code is not None:
        return code == PG_UNIQUE_VIOLATION
    return "UNIQUE constraint failed" in str(orig)
