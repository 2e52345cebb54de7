"""Generation history storage (SQLite through SQLAlchemy async)."""
from moviepipe.db.engine import async_session, engine, shutdown
from moviepipe.db.models import Base, HistoryEntry, HistoryKind


async def init_database(bind=None):
    """Create the schema on first run."""
    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


__all__ = [
    "Base",
    "HistoryEntry",
    "HistoryKind",
    "engine",
    "async_session",
    "shutdown",
    "init_database",
]
