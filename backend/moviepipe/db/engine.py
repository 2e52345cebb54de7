"""Async engine and session factory for the generation history store.

The history database is small and written once per finished job, so a
single SQLite file (via aiosqlite) shared by the API and the CLI is enough.
"""
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from moviepipe.config import settings


def configure_sqlite_pragmas(dbapi_conn, connection_record):
    """Let the API server and a CLI run share the history file.

    WAL keeps readers of ``moviepipe history`` from blocking a job that is
    recording its result; the busy timeout covers the short write overlap.
    """
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=FULL")
    cursor.execute("PRAGMA busy_timeout=5000")
    cursor.close()


engine = create_async_engine(
    settings.storage.database_url,
    echo=False,
)

# aiosqlite connections surface on the sync engine
if engine.dialect.name == "sqlite":
    event.listens_for(engine.sync_engine, "connect")(configure_sqlite_pragmas)

# History rows are read after the session commits
async_session = async_sessionmaker(
    engine,
    expire_on_commit=False,
    class_=AsyncSession,
)


async def shutdown():
    """Close pooled history connections."""
    await engine.dispose()
