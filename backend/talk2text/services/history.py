# talk2text/services/history.py

from __future__ import annotations

from talk2text.services.storage.transcript_store import TranscriptStore


class HistoryService:
    def __init__(self, store: TranscriptStore):
        self.store = store

    async def list_for(self, *, user_id: str) -> list[dict]:
        """Newest-first transcripts for one owner, in the response shape."""
        rows = await self.store.list_by_owner(user_id=user_id)
        return [row.to_dict() for row in rows]
