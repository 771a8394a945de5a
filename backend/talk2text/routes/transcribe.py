# talk2text/routes/transcribe.py

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from fastapi.responses import JSONResponse
from talk2text.db.db import SessionScope, get_session_scope
from talk2text.services.auth.identity import IdentityMismatch, resolve_owner
from talk2text.services.pipeline import TranscriptionPipeline
from talk2text.services.speech.google_stt import GoogleSTT
from talk2text.services.speech.stt_base import STTProvider
from talk2text.services.storage.transcript_store import TranscriptStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["transcribe"])

_gateway: GoogleSTT | None = None


def get_gateway() -> STTProvider:
    global _gateway
    if _gateway is None:
        _gateway = GoogleSTT()
    return _gateway


@router.post("/transcribe", response_model=None)
async def transcribe(
    request: Request,
    audio: Optional[UploadFile] = File(None),
    user_id: str = Form(""),
    open_session: SessionScope = Depends(get_session_scope),
    gateway: STTProvider = Depends(get_gateway),
) -> JSONResponse:
    logger.info("Received POST /transcribe")

    try:
        owner = resolve_owner(request, user_id)
    except IdentityMismatch as e:
        logger.warning("Upload rejected: %s", e)
        owner = None

    pipeline = TranscriptionPipeline(gateway=gateway, open_store=TranscriptStore.opener(open_session))
    result = await pipeline.run(owner_id=owner, upload=audio)
    return JSONResponse(result.body(), status_code=result.status_code)
