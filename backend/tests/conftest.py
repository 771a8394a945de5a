import asyncio
import base64
import json
import struct
from contextlib import asynccontextmanager
from types import SimpleNamespace

import itsdangerous
import pytest
import pytest_asyncio
from sqlalchemy.pool import NullPool

from talk2text.db.db import create_schema, get_db, get_session_scope, make_engine, make_sessionmaker
from talk2text.main import create_app
from talk2text.routes.transcribe import get_gateway
from talk2text.services.speech.stt_base import EncodingHint, STTProvider, Success

TEST_SESSION_SECRET = "test-session-secret"


def pcm16_to_wav(pcm: bytes, sample_rate_hz: int = 16000, channels: int = 1) -> bytes:
    bits_per_sample = 16
    byte_rate = sample_rate_hz * channels * (bits_per_sample // 8)
    block_align = channels * (bits_per_sample // 8)
    return b"".join(
        [
            b"RIFF",
            struct.pack("<I", 36 + len(pcm)),
            b"WAVE",
            b"fmt ",
            struct.pack("<I", 16),
            struct.pack("<H", 1),
            struct.pack("<H", channels),
            struct.pack("<I", sample_rate_hz),
            struct.pack("<I", byte_rate),
            struct.pack("<H", block_align),
            struct.pack("<H", bits_per_sample),
            b"data",
            struct.pack("<I", len(pcm)),
            pcm,
        ]
    )


def silent_wav(seconds: float = 0.5, sample_rate_hz: int = 16000) -> bytes:
    return pcm16_to_wav(b"\x00\x00" * int(seconds * sample_rate_hz), sample_rate_hz)


def recognize_response(*segments):
    """Shape of a speech RecognizeResponse: each segment is a list of alternatives."""
    return SimpleNamespace(
        results=[
            SimpleNamespace(alternatives=[SimpleNamespace(transcript=t) for t in alts])
            for alts in segments
        ]
    )


def session_cookie(data: dict, secret: str = TEST_SESSION_SECRET) -> str:
    # same encoding starlette's SessionMiddleware uses
    payload = base64.b64encode(json.dumps(data).encode("utf-8"))
    return itsdangerous.TimestampSigner(secret).sign(payload).decode("utf-8")


class FakeUpload:
    def __init__(self, data: bytes, filename: str = "clip.mp3", content_type: str = "audio/mpeg", size=-1):
        self.data = data
        self.filename = filename
        self.content_type = content_type
        self.size = len(data) if size == -1 else size
        self.reads = 0
        self.closed = False

    async def read(self, size: int = -1) -> bytes:
        self.reads += 1
        return self.data

    async def close(self) -> None:
        self.closed = True


class FakeGateway(STTProvider):
    name = "fake"

    def __init__(self, outcome=None):
        self.outcome = outcome if outcome is not None else Success("hello world")
        self.calls: list[tuple[bytes, EncodingHint]] = []

    async def transcribe(self, audio_bytes, hint):
        self.calls.append((audio_bytes, hint))
        return self.outcome


@pytest_asyncio.fixture
async def sessionmaker(tmp_path):
    engine = make_engine(f"sqlite+aiosqlite:///{(tmp_path / 'test.db').as_posix()}")
    await create_schema(engine)
    yield make_sessionmaker(engine)
    await engine.dispose()


@pytest_asyncio.fixture
async def db(sessionmaker):
    async with sessionmaker() as session:
        yield session


@pytest.fixture
def http_sessionmaker(tmp_path):
    # NullPool: TestClient may run each request on its own event loop
    engine = make_engine(
        f"sqlite+aiosqlite:///{(tmp_path / 'http.db').as_posix()}",
        poolclass=NullPool,
    )
    asyncio.run(create_schema(engine))
    return make_sessionmaker(engine)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def app(http_sessionmaker, gateway):
    app = create_app(session_secret=TEST_SESSION_SECRET)

    async def _get_db():
        async with http_sessionmaker() as session:
            yield session

    @asynccontextmanager
    async def _scope():
        async with http_sessionmaker() as session:
            yield session

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_session_scope] = lambda: _scope
    app.dependency_overrides[get_gateway] = lambda: gateway
    return app
