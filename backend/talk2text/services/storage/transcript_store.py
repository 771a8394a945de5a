# talk2text/services/storage/transcript_store.py

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncContextManager, AsyncIterator, Callable

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from talk2text.db.db import SessionScope
from talk2text.db.models import AudioFile

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """The transcript store refused or failed a read or write."""


class TranscriptStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    @classmethod
    def opener(cls, open_session: SessionScope) -> Callable[[], AsyncContextManager["TranscriptStore"]]:
        """Defers opening a session until the store is actually needed."""

        @asynccontextmanager
        async def _open() -> AsyncIterator[TranscriptStore]:
            async with open_session() as db:
                yield cls(db)

        return _open

    async def insert(self, *, user_id: str, file_name: str, transcription: str) -> AudioFile:
        """
        Single atomic write. The row is either committed and visible to
        list_by_owner, or rolled back and absent. id and created_at are
        already populated by the flush, so nothing is read back after commit.
        """
        owner = (user_id or "").strip()
        if not owner:
            raise StorageError("user_id is required")
        if not (transcription or "").strip():
            raise StorageError("transcription is empty")

        row = AudioFile(
            user_id=owner,
            file_name=file_name or "",
            transcription=transcription,
        )
        try:
            self.db.add(row)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise StorageError(f"insert failed: {e}") from e

        logger.info("Saved transcript id=%s for user=%s", row.id, owner)
        return row

    async def list_by_owner(self, *, user_id: str) -> list[AudioFile]:
        owner = (user_id or "").strip()
        if not owner:
            return []

        q = (
            select(AudioFile)
            .where(AudioFile.user_id == owner)
            .order_by(AudioFile.created_at.desc(), AudioFile.id.desc())
        )
        try:
            r = await self.db.execute(q)
        except SQLAlchemyError as e:
            raise StorageError(f"query failed: {e}") from e

        return list(r.scalars().all())
