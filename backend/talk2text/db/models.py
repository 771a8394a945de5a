# talk2text/db/models.py

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import DateTime, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AudioFile(Base):
    """One persisted transcript. Rows are only ever inserted."""

    __tablename__ = "audio_files"

    # Integer ids are insert-ordered, so they double as the created_at tiebreaker
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Client-supplied name, stored verbatim and only ever displayed
    file_name: Mapped[str] = mapped_column(Text, nullable=False)
    transcription: Mapped[str] = mapped_column(Text, nullable=False)

    user_id: Mapped[str] = mapped_column(String(128), index=True, nullable=False)

    created_at: Mapped[Any] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        index=True,
    )

    def to_dict(self) -> dict:
        created = self.created_at
        return {
            "id": self.id,
            "file_name": self.file_name,
            "transcription": self.transcription,
            "created_at": created.isoformat() if isinstance(created, datetime) else created,
        }
