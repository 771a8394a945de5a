# talk2text/routes/history.py

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from talk2text.db.db import get_db
from talk2text.services.auth.identity import IdentityMismatch, resolve_owner
from talk2text.services.history import HistoryService
from talk2text.services.storage.transcript_store import StorageError, TranscriptStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["history"])


@router.get("/transcriptions/{user_id}")
async def list_transcriptions(
    user_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    try:
        owner = resolve_owner(request, user_id)
    except IdentityMismatch as e:
        logger.warning("History request rejected: %s", e)
        return JSONResponse({"error": "Not allowed"}, status_code=403)

    if not owner:
        return JSONResponse({"error": "Not signed in"}, status_code=400)

    try:
        rows = await HistoryService(TranscriptStore(db)).list_for(user_id=owner)
    except StorageError as e:
        logger.error("Failed to fetch transcriptions for user=%s: %s", owner, e)
        return JSONResponse({"error": "Failed to fetch transcriptions"}, status_code=500)

    return JSONResponse({"message": "Success", "transcriptions": rows})
