"""Generation history stored in the database, newest first, capped in size."""

import logging
import re
from typing import Any, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from moviepipe.db.models import HistoryEntry, HistoryKind

logger = logging.getLogger(__name__)

TITLE_LENGTH = 50
_TITLE_STRIP = re.compile(r"[^a-zA-Z0-9\s]")


def make_title(prompt: str) -> str:
    """Short display title: the prompt cut to 50 characters, punctuation removed."""
    title = prompt if len(prompt) <= TITLE_LENGTH else prompt[: TITLE_LENGTH - 3]
    return _TITLE_STRIP.sub("", title).strip() or "Untitled"


class HistoryService:
    """Add, list and remove history entries.

    Only the newest ``limit`` entries are kept; older ones are pruned on
    every insert.
    """

    def __init__(self, session_factory: Optional[async_sessionmaker[AsyncSession]] = None, limit: int = 50):
        if session_factory is None:
            from moviepipe.db import async_session
            session_factory = async_session
        self.session_factory = session_factory
        self.limit = limit

    async def _add(self, kind: HistoryKind, prompt: str, **fields: Any) -> HistoryEntry:
        entry = HistoryEntry(kind=kind.value, title=make_title(prompt), prompt=prompt, **fields)
        async with self.session_factory() as session:
            session.add(entry)
            await session.flush()
            await self._prune(session)
            await session.commit()
        logger.info(f"History: added {kind.value} entry {entry.id} ({entry.title!r})")
        return entry

    async def _prune(self, session: AsyncSession) -> None:
        keep = (
            select(HistoryEntry.id)
            .order_by(HistoryEntry.id.desc())
            .limit(self.limit)
            .scalar_subquery()
        )
        result = await session.execute(delete(HistoryEntry).where(HistoryEntry.id.not_in(keep)))
        if result.rowcount:
            logger.debug(f"History: pruned {result.rowcount} old entries")

    async def add_movie(
        self,
        prompt: str,
        url: str,
        settings: Optional[dict] = None,
        details: Optional[dict] = None,
        job_id: Optional[str] = None,
        scene_count: Optional[int] = None,
    ) -> HistoryEntry:
        return await self._add(
            HistoryKind.MOVIE,
            prompt,
            url=url,
            settings=settings,
            details=details,
            job_id=job_id,
            scene_count=scene_count,
        )

    async def add_image(
        self, prompt: str, url: str, model: str, aspect_ratio: Optional[str] = None
    ) -> HistoryEntry:
        return await self._add(
            HistoryKind.IMAGE,
            prompt,
            url=url,
            settings={"model": model, "aspect_ratio": aspect_ratio},
        )

    async def list_entries(self, kind: Optional[HistoryKind] = None) -> list[HistoryEntry]:
        """Entries newest first, optionally filtered by kind."""
        stmt = select(HistoryEntry).order_by(HistoryEntry.id.desc())
        if kind is not None:
            stmt = stmt.where(HistoryEntry.kind == HistoryKind(kind).value)
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def count(self) -> int:
        async with self.session_factory() as session:
            return (await session.execute(select(func.count(HistoryEntry.id)))).scalar_one()

    async def remove(self, entry_id: int) -> bool:
        async with self.session_factory() as session:
            result = await session.execute(delete(HistoryEntry).where(HistoryEntry.id == entry_id))
            await session.commit()
        return bool(result.rowcount)

    async def clear(self) -> int:
        async with self.session_factory() as session:
            result = await session.execute(delete(HistoryEntry))
            await session.commit()
        logger.info(f"History: cleared {result.rowcount} entries")
        return result.rowcount
