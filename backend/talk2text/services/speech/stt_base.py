# talk2text/services/speech/stt_base.py

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import NamedTuple, Optional, Union


class FailureCause(str, Enum):
    TIMEOUT = "timeout"
    CREDENTIALS = "credentials"
    SERVICE = "service"
    INVALID_AUDIO = "invalid_audio"


@dataclass(frozen=True)
class Success:
    text: str


@dataclass(frozen=True)
class Empty:
    segments: int = 0


@dataclass(frozen=True)
class ServiceFailure:
    cause: FailureCause
    detail: str = ""


TranscriptionOutcome = Union[Success, Empty, ServiceFailure]


@dataclass(frozen=True)
class EncodingHint:
    """Recognition parameters for one upload."""

    encoding: str  # MP3 | LINEAR16
    sample_rate_hz: int
    language_code: str
    channels: Optional[int] = None


class STTProvider(ABC):
    name: str = "base"

    @abstractmethod
    async def transcribe(self, audio_bytes: bytes, hint: EncodingHint) -> TranscriptionOutcome:
        raise NotImplementedError


class WavInfo(NamedTuple):
    sample_rate_hz: int
    channels: int
    bits_per_sample: int
    audio_format: int


WAV_MEDIA_TYPES = frozenset({"audio/wav", "audio/x-wav", "audio/wave", "audio/vnd.wave"})


def is_wav(audio_bytes: bytes) -> bool:
    return (
        isinstance(audio_bytes, (bytes, bytearray))
        and len(audio_bytes) >= 12
        and audio_bytes[0:4] == b"RIFF"
        and audio_bytes[8:12] == b"WAVE"
    )


def _read_u16_le(b: bytes, off: int) -> int:
    return int.from_bytes(b[off : off + 2], "little", signed=False)


def _read_u32_le(b: bytes, off: int) -> int:
    return int.from_bytes(b[off : off + 4], "little", signed=False)


def parse_wav_info(wav_bytes: bytes) -> WavInfo:
    """
    Read the fmt chunk of a RIFF/WAVE file.
    Raises ValueError if malformed or not 16-bit PCM.
    """
    if not is_wav(wav_bytes):
        raise ValueError("Not a WAV file")

    i = 12  # after RIFF header
    info: Optional[WavInfo] = None
    data_found = False

    while i + 8 <= len(wav_bytes):
        chunk_id = wav_bytes[i : i + 4]
        chunk_size = _read_u32_le(wav_bytes, i + 4)
        i += 8

        if chunk_id == b"fmt ":
            if chunk_size < 16 or i + 16 > len(wav_bytes):
                raise ValueError("Invalid WAV fmt chunk")
            info = WavInfo(
                sample_rate_hz=_read_u32_le(wav_bytes, i + 4),
                channels=_read_u16_le(wav_bytes, i + 2),
                bits_per_sample=_read_u16_le(wav_bytes, i + 14),
                audio_format=_read_u16_le(wav_bytes, i + 0),
            )
        elif chunk_id == b"data":
            data_found = True

        if info is not None and data_found:
            break

        # chunks are word-aligned
        i += chunk_size + (chunk_size % 2)

    if info is None or not data_found:
        raise ValueError("WAV fmt/data chunk not found")

    # PCM=1, extensible=65534
    if info.audio_format not in (1, 65534):
        raise ValueError(f"WAV must be PCM (audio_format={info.audio_format})")

    if info.sample_rate_hz <= 0 or info.sample_rate_hz > 192000:
        raise ValueError(f"Unreasonable WAV sample rate: {info.sample_rate_hz}")

    if info.channels <= 0 or info.channels > 8:
        raise ValueError(f"Unsupported channel count: {info.channels}")

    if info.bits_per_sample != 16:
        raise ValueError(f"Unsupported bits_per_sample: {info.bits_per_sample} (expected 16)")

    return info


def base_media_type(content_type: str) -> str:
    return (content_type or "").split(";", 1)[0].strip().lower()


def detect_encoding(
    audio_bytes: bytes,
    content_type: str,
    *,
    default_encoding: str,
    default_sample_rate_hz: int,
    language_code: str,
) -> EncodingHint:
    """
    WAV uploads carry their own sample rate and channel count, so read them
    from the header. Anything else falls back to the static default config.
    Raises ValueError for a WAV whose header can't be used.
    """
    if base_media_type(content_type) in WAV_MEDIA_TYPES or is_wav(audio_bytes):
        info = parse_wav_info(audio_bytes)
        return EncodingHint(
            encoding="LINEAR16",
            sample_rate_hz=info.sample_rate_hz,
            language_code=language_code,
            channels=info.channels,
        )

    return EncodingHint(
        encoding=default_encoding,
        sample_rate_hz=default_sample_rate_hz,
        language_code=language_code,
    )
