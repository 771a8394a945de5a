# talk2text/services/speech/google_stt.py

from __future__ import annotations

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Any, Optional

from google.cloud import speech_v1 as speech
from google.api_core.exceptions import DeadlineExceeded, GoogleAPIError
from google.auth.exceptions import DefaultCredentialsError, GoogleAuthError
from google.oauth2 import service_account

from talk2text.core import settings
from talk2text.services.speech.stt_base import (
    EncodingHint,
    Empty,
    FailureCause,
    ServiceFailure,
    STTProvider,
    Success,
    TranscriptionOutcome,
)

logger = logging.getLogger(__name__)


def _resolve_creds_path() -> str:
    for p in (settings.GOOGLE_STT_CREDENTIALS, settings.GOOGLE_APPLICATION_CREDENTIALS):
        p = (p or "").strip()
        if p and Path(p).exists():
            return p
    return ""


def make_speech_client() -> speech.SpeechClient:
    """
    Supports:
      1) GOOGLE_STT_CREDENTIALS_JSON (secret-as-env style)
      2) GOOGLE_STT_CREDENTIALS / GOOGLE_APPLICATION_CREDENTIALS file path
      3) Default ADC (gcloud auth, etc)
    """
    raw_json = (
        os.getenv("GOOGLE_STT_CREDENTIALS_JSON", "").strip()
        or os.getenv("GOOGLE_APPLICATION_CREDENTIALS_JSON", "").strip()
    )
    if raw_json:
        try:
            info = json.loads(raw_json)
            creds = service_account.Credentials.from_service_account_info(info)
        except (ValueError, KeyError) as e:
            raise RuntimeError(f"Invalid GOOGLE_STT_CREDENTIALS_JSON: {e}") from e
        return speech.SpeechClient(credentials=creds)

    creds_path = _resolve_creds_path()
    if creds_path:
        try:
            creds = service_account.Credentials.from_service_account_file(creds_path)
        except (OSError, ValueError, KeyError) as e:
            raise RuntimeError(f"Failed to load STT credentials file: {e}") from e
        return speech.SpeechClient(credentials=creds)

    try:
        return speech.SpeechClient()
    except DefaultCredentialsError as e:
        raise RuntimeError(
            "Google STT credentials not found. Set GOOGLE_STT_CREDENTIALS / GOOGLE_APPLICATION_CREDENTIALS "
            "or provide GOOGLE_STT_CREDENTIALS_JSON."
        ) from e


def join_top_alternatives(results: Any) -> str:
    """Top alternative of each segment, one line per segment, service order kept."""
    parts = []
    for r in (results or []):
        if not r.alternatives:
            continue
        # kept as returned; only blank segments are dropped
        t = r.alternatives[0].transcript or ""
        if t.strip():
            parts.append(t)
    return "\n".join(parts)


class GoogleSTT(STTProvider):
    name = "google"

    def __init__(
        self,
        client: Optional[Any] = None,
        *,
        timeout_s: Optional[float] = None,
        enable_punctuation: Optional[bool] = None,
        model: Optional[str] = None,
    ) -> None:
        self._client = client
        self.timeout_s = float(settings.TRANSCRIBE_TIMEOUT_SECONDS if timeout_s is None else timeout_s)
        self.enable_punctuation = (
            settings.STT_ENABLE_PUNCTUATION if enable_punctuation is None else bool(enable_punctuation)
        )
        self.model = (settings.STT_MODEL if model is None else model).strip()

    @property
    def client(self) -> Any:
        # built on first use so a missing credential only fails the calls that need it
        if self._client is None:
            self._client = make_speech_client()
        return self._client

    def build_config(self, hint: EncodingHint) -> speech.RecognitionConfig:
        cfg_kwargs = dict(
            encoding=speech.RecognitionConfig.AudioEncoding[hint.encoding],
            sample_rate_hertz=int(hint.sample_rate_hz),
            language_code=hint.language_code,
        )
        if hint.channels:
            cfg_kwargs["audio_channel_count"] = int(hint.channels)
        if self.enable_punctuation:
            cfg_kwargs["enable_automatic_punctuation"] = True
        if self.model:
            cfg_kwargs["model"] = self.model
        return speech.RecognitionConfig(**cfg_kwargs)

    async def transcribe(self, audio_bytes: bytes, hint: EncodingHint) -> TranscriptionOutcome:
        try:
            config = self.build_config(hint)
        except KeyError:
            return ServiceFailure(FailureCause.INVALID_AUDIO, f"unsupported encoding {hint.encoding}")

        # The client puts these bytes in the request's content envelope
        audio = speech.RecognitionAudio(content=audio_bytes)
        deadline = self.timeout_s if self.timeout_s > 0 else None

        try:
            client = self.client
        except RuntimeError as e:
            logger.error("%s", e)
            return ServiceFailure(FailureCause.CREDENTIALS, str(e))

        def _call():
            return client.recognize(config=config, audio=audio, timeout=deadline)

        try:
            resp = await asyncio.wait_for(asyncio.to_thread(_call), timeout=deadline)
        except (asyncio.TimeoutError, DeadlineExceeded) as e:
            logger.warning("Google STT timed out after %ss", deadline)
            return ServiceFailure(FailureCause.TIMEOUT, str(e))
        except GoogleAuthError as e:
            # missing, expired or revoked credentials
            logger.error("Google STT credentials error: %s", e)
            return ServiceFailure(FailureCause.CREDENTIALS, str(e))
        except (GoogleAPIError, OSError) as e:
            logger.error("Google STT error: %s", e)
            return ServiceFailure(FailureCause.SERVICE, str(e))

        results = list(resp.results or [])
        text = join_top_alternatives(results)
        if not text:
            return Empty(segments=len(results))

        return Success(text=text)
