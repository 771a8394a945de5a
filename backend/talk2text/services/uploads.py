# talk2text/services/uploads.py

from __future__ import annotations

from enum import Enum
from typing import Optional

from talk2text.services.speech.stt_base import WAV_MEDIA_TYPES, base_media_type

ALLOWED_MEDIA_TYPES = frozenset({"audio/mpeg", "audio/mp3"}) | WAV_MEDIA_TYPES


class UploadCheck(str, Enum):
    ACCEPTED = "accepted"
    MISSING_FILE = "missing_file"
    UNSUPPORTED_MEDIA_TYPE = "unsupported_media_type"
    TOO_LARGE = "too_large"


def check_upload(
    *,
    present: bool,
    content_type: Optional[str],
    size: Optional[int],
    max_bytes: int = 0,
) -> UploadCheck:
    """Classify an incoming file. Pure; runs before any network or storage I/O."""
    if not present or size == 0:
        return UploadCheck.MISSING_FILE

    if base_media_type(content_type or "") not in ALLOWED_MEDIA_TYPES:
        return UploadCheck.UNSUPPORTED_MEDIA_TYPE

    if max_bytes > 0 and size is not None and size > max_bytes:
        return UploadCheck.TOO_LARGE

    return UploadCheck.ACCEPTED
