# talk2text/services/pipeline.py

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncContextManager, Callable, Optional, Protocol

from sqlalchemy.exc import SQLAlchemyError

from talk2text.core import settings
from talk2text.db.models import AudioFile
from talk2text.services.speech.stt_base import (
    Empty,
    FailureCause,
    ServiceFailure,
    STTProvider,
    Success,
    detect_encoding,
)
from talk2text.services.storage.transcript_store import StorageError, TranscriptStore
from talk2text.services.uploads import UploadCheck, check_upload

logger = logging.getLogger(__name__)


class StagedUpload(Protocol):
    """What the pipeline needs from an uploaded file (starlette's UploadFile fits)."""

    filename: Optional[str]
    content_type: Optional[str]
    size: Optional[int]

    async def read(self, size: int = -1) -> bytes: ...

    async def close(self) -> None: ...


class PipelineState(str, Enum):
    COMPLETED = "completed"
    REJECTED = "rejected"
    TRANSCRIPTION_FAILED = "transcription_failed"
    PERSIST_FAILED = "persist_failed"


class Reason(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    MISSING_FILE = "missing_file"
    UNSUPPORTED_MEDIA_TYPE = "unsupported_media_type"
    TOO_LARGE = "too_large"
    SERVICE_FAILURE = "service_failure"
    EMPTY = "empty"
    STORAGE_FAILURE = "storage_failure"


_MESSAGES = {
    Reason.UNAUTHENTICATED: "Not signed in",
    Reason.MISSING_FILE: "No file uploaded",
    Reason.UNSUPPORTED_MEDIA_TYPE: "Invalid file type",
    Reason.TOO_LARGE: "Audio file too large",
    Reason.SERVICE_FAILURE: "Speech-to-Text failed",
    Reason.EMPTY: "No speech detected",
    Reason.STORAGE_FAILURE: "Failed to save transcription",
}

_STATUS = {
    Reason.UNAUTHENTICATED: 400,
    Reason.MISSING_FILE: 400,
    Reason.UNSUPPORTED_MEDIA_TYPE: 400,
    Reason.TOO_LARGE: 413,
    Reason.SERVICE_FAILURE: 500,
    Reason.EMPTY: 500,
    Reason.STORAGE_FAILURE: 500,
}

_CHECK_TO_REASON = {
    UploadCheck.MISSING_FILE: Reason.MISSING_FILE,
    UploadCheck.UNSUPPORTED_MEDIA_TYPE: Reason.UNSUPPORTED_MEDIA_TYPE,
    UploadCheck.TOO_LARGE: Reason.TOO_LARGE,
}


@dataclass
class PipelineResult:
    state: PipelineState
    reason: Optional[Reason] = None
    text: Optional[str] = None
    record: Optional[AudioFile] = None
    cause: Optional[FailureCause] = None
    # text handed back on a failed save, only when policy allows it
    unsaved_text: Optional[str] = field(default=None, repr=False)

    @property
    def ok(self) -> bool:
        return self.state is PipelineState.COMPLETED

    @property
    def status_code(self) -> int:
        if self.ok:
            return 200
        assert self.reason is not None
        return _STATUS[self.reason]

    def body(self) -> dict[str, Any]:
        if self.ok:
            return {"message": "Success", "transcription": self.text or ""}

        assert self.reason is not None
        out: dict[str, Any] = {"error": _MESSAGES[self.reason]}
        if self.unsaved_text:
            out["transcription"] = self.unsaved_text
        return out


def _rejected(reason: Reason) -> PipelineResult:
    return PipelineResult(state=PipelineState.REJECTED, reason=reason)


class TranscriptionPipeline:
    """
    One upload, start to finish:

        received -> validated -> transcribed -> persisted -> completed

    Every exit path closes the staged upload. Nothing is written unless the
    gateway produced text; nothing is reported complete unless it was saved.
    """

    def __init__(
        self,
        *,
        gateway: STTProvider,
        open_store: Callable[[], AsyncContextManager[TranscriptStore]],
        max_bytes: Optional[int] = None,
        empty_is_error: Optional[bool] = None,
        return_text_on_persist_failure: Optional[bool] = None,
        default_encoding: Optional[str] = None,
        default_sample_rate_hz: Optional[int] = None,
        language_code: Optional[str] = None,
    ) -> None:
        self.gateway = gateway
        self.open_store = open_store
        self.max_bytes = settings.MAX_AUDIO_BYTES if max_bytes is None else int(max_bytes)
        self.empty_is_error = settings.EMPTY_IS_ERROR if empty_is_error is None else bool(empty_is_error)
        self.return_text_on_persist_failure = (
            settings.RETURN_TEXT_ON_PERSIST_FAILURE
            if return_text_on_persist_failure is None
            else bool(return_text_on_persist_failure)
        )
        self.default_encoding = default_encoding or settings.STT_ENCODING
        self.default_sample_rate_hz = int(default_sample_rate_hz or settings.STT_SAMPLE_RATE_HZ)
        self.language_code = language_code or settings.STT_LANGUAGE_CODE

    async def run(self, *, owner_id: Optional[str], upload: Optional[StagedUpload]) -> PipelineResult:
        try:
            return await self._run(owner_id=(owner_id or "").strip(), upload=upload)
        finally:
            if upload is not None:
                await upload.close()

    async def _run(self, *, owner_id: str, upload: Optional[StagedUpload]) -> PipelineResult:
        if not owner_id:
            logger.info("Rejected upload: no owner identity")
            return _rejected(Reason.UNAUTHENTICATED)

        content_type = upload.content_type if upload is not None else None
        check = check_upload(
            present=upload is not None,
            content_type=content_type,
            size=upload.size if upload is not None else None,
            max_bytes=self.max_bytes,
        )
        if check is not UploadCheck.ACCEPTED:
            logger.info("Rejected upload from user=%s: %s", owner_id, check.value)
            return _rejected(_CHECK_TO_REASON[check])

        assert upload is not None
        data = await upload.read()
        # declared size may be missing or wrong; re-check against what was actually read
        check = check_upload(present=True, content_type=content_type, size=len(data), max_bytes=self.max_bytes)
        if check is not UploadCheck.ACCEPTED:
            logger.info("Rejected upload from user=%s: %s", owner_id, check.value)
            return _rejected(_CHECK_TO_REASON[check])

        file_name = upload.filename or ""
        logger.info("Transcribing %r (%d bytes) for user=%s", file_name, len(data), owner_id)

        try:
            hint = detect_encoding(
                data,
                content_type or "",
                default_encoding=self.default_encoding,
                default_sample_rate_hz=self.default_sample_rate_hz,
                language_code=self.language_code,
            )
        except ValueError as e:
            logger.warning("Unusable audio %r: %s", file_name, e)
            return PipelineResult(
                state=PipelineState.TRANSCRIPTION_FAILED,
                reason=Reason.SERVICE_FAILURE,
                cause=FailureCause.INVALID_AUDIO,
            )

        try:
            outcome = await self.gateway.transcribe(data, hint)
        except Exception as e:
            logger.exception("Unexpected transcription error for %r", file_name)
            outcome = ServiceFailure(FailureCause.SERVICE, str(e))

        if isinstance(outcome, ServiceFailure):
            logger.warning("Transcription failed for %r: %s %s", file_name, outcome.cause.value, outcome.detail)
            return PipelineResult(
                state=PipelineState.TRANSCRIPTION_FAILED,
                reason=Reason.SERVICE_FAILURE,
                cause=outcome.cause,
            )

        if isinstance(outcome, Empty):
            logger.info("No speech detected in %r (%d segments)", file_name, outcome.segments)
            if self.empty_is_error:
                return PipelineResult(state=PipelineState.TRANSCRIPTION_FAILED, reason=Reason.EMPTY)
            # empty success: reported, never stored
            return PipelineResult(state=PipelineState.COMPLETED, text="")

        assert isinstance(outcome, Success)
        logger.info("Transcribed %r: %d chars", file_name, len(outcome.text))

        try:
            # first storage I/O of the request
            async with self.open_store() as store:
                record = await store.insert(
                    user_id=owner_id,
                    file_name=file_name,
                    transcription=outcome.text,
                )
        except (StorageError, SQLAlchemyError, OSError) as e:
            logger.error("Could not save transcript for user=%s: %s", owner_id, e)
            return PipelineResult(
                state=PipelineState.PERSIST_FAILED,
                reason=Reason.STORAGE_FAILURE,
                unsaved_text=outcome.text if self.return_text_on_persist_failure else None,
            )

        return PipelineResult(state=PipelineState.COMPLETED, text=record.transcription, record=record)
