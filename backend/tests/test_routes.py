import asyncio
from contextlib import asynccontextmanager
from unittest.mock import MagicMock

from fastapi.testclient import TestClient
from google.auth.exceptions import RefreshError
from sqlalchemy import func, select

from conftest import recognize_response, session_cookie, silent_wav
from talk2text.core.settings import SESSION_COOKIE_NAME
from talk2text.db.db import get_db, get_session_scope
from talk2text.db.models import AudioFile
from talk2text.routes.transcribe import get_gateway
from talk2text.services.speech.google_stt import GoogleSTT
from talk2text.services.speech.stt_base import Empty, Success
from talk2text.services.storage.transcript_store import StorageError, TranscriptStore


def _count_rows(sessionmaker) -> int:
    async def _count():
        async with sessionmaker() as session:
            return await session.scalar(select(func.count()).select_from(AudioFile))

    return asyncio.run(_count())


def _upload(client, data=b"ID3-mp3", *, filename="clip.mp3", content_type="audio/mpeg", user_id="u1"):
    form = {"user_id": user_id} if user_id is not None else {}
    return client.post("/transcribe", files={"audio": (filename, data, content_type)}, data=form)


def test_health(app):
    client = TestClient(app)
    assert client.get("/").status_code == 200
    assert client.get("/health").json() == {"ok": True}


def test_transcribe_then_history(app, gateway):
    client = TestClient(app)
    gateway.outcome = Success("hello world")

    r = _upload(client, filename="hello.mp3")
    assert r.status_code == 200
    assert r.json() == {"message": "Success", "transcription": "hello world"}

    r = client.get("/transcriptions/u1")
    assert r.status_code == 200
    items = r.json()["transcriptions"]
    assert items[0]["transcription"] == "hello world"
    assert items[0]["file_name"] == "hello.mp3"
    assert set(items[0]) == {"id", "file_name", "transcription", "created_at"}


def test_history_for_unknown_owner_is_empty(app):
    r = TestClient(app).get("/transcriptions/someone-new")
    assert r.status_code == 200
    assert r.json() == {"message": "Success", "transcriptions": []}


def test_wrong_type_is_400_and_never_transcribed(app, gateway, http_sessionmaker):
    r = _upload(TestClient(app), b"plain text", filename="notes.txt", content_type="text/plain")
    assert r.status_code == 400
    assert r.json() == {"error": "Invalid file type"}
    assert gateway.calls == []
    assert _count_rows(http_sessionmaker) == 0


def test_missing_file_is_400(app, gateway):
    r = TestClient(app).post("/transcribe", data={"user_id": "u1"})
    assert r.status_code == 400
    assert r.json() == {"error": "No file uploaded"}
    assert gateway.calls == []


def test_missing_owner_is_400(app, gateway):
    r = _upload(TestClient(app), user_id=None)
    assert r.status_code == 400
    assert r.json() == {"error": "Not signed in"}
    assert gateway.calls == []


def test_silence_is_500_and_nothing_stored(app, gateway, http_sessionmaker):
    gateway.outcome = Empty()
    r = _upload(TestClient(app), silent_wav(), filename="silence.wav", content_type="audio/wav")

    assert r.status_code == 500
    assert r.json() == {"error": "No speech detected"}
    assert _count_rows(http_sessionmaker) == 0


def test_store_failure_is_500_without_text(app, monkeypatch):
    async def _fail(self, **kwargs):
        raise StorageError("db down")

    monkeypatch.setattr(TranscriptStore, "insert", _fail)
    r = _upload(TestClient(app))
    assert r.status_code == 500
    assert r.json() == {"error": "Failed to save transcription"}


def test_history_store_failure_is_500(app, monkeypatch):
    async def _fail(self, **kwargs):
        raise StorageError("db down")

    monkeypatch.setattr(TranscriptStore, "list_by_owner", _fail)
    r = TestClient(app).get("/transcriptions/u1")
    assert r.status_code == 500
    assert r.json() == {"error": "Failed to fetch transcriptions"}


def test_hello_world_end_to_end_is_scoped_to_owner(app):
    speech_client = MagicMock()
    speech_client.recognize.return_value = recognize_response(["hello world"])
    app.dependency_overrides[get_gateway] = lambda: GoogleSTT(
        speech_client, timeout_s=5, enable_punctuation=False, model=""
    )
    client = TestClient(app)

    # u1 already has an older transcript, u2 has its own
    assert _upload(client, filename="older.mp3").status_code == 200
    assert _upload(client, filename="other.mp3", user_id="u2").status_code == 200

    r = _upload(client, b"ID3-hello", filename="hello.mp3")
    assert r.json()["transcription"] == "hello world"

    u1 = client.get("/transcriptions/u1").json()["transcriptions"]
    assert [i["file_name"] for i in u1] == ["hello.mp3", "older.mp3"]
    assert u1[0]["transcription"] == "hello world"

    u2 = client.get("/transcriptions/u2").json()["transcriptions"]
    assert [i["file_name"] for i in u2] == ["other.mp3"]

    sent = speech_client.recognize.call_args.kwargs
    assert sent["audio"].content == b"ID3-hello"


def test_session_user_overrides_missing_form_field(app, gateway):
    client = TestClient(app, cookies={SESSION_COOKIE_NAME: session_cookie({"user": {"id": "sess-1"}})})

    assert _upload(client, user_id=None).status_code == 200
    items = client.get("/transcriptions/sess-1").json()["transcriptions"]
    assert len(items) == 1


def test_session_user_cannot_read_someone_else(app):
    client = TestClient(app, cookies={SESSION_COOKIE_NAME: session_cookie({"user": {"id": "sess-1"}})})
    r = client.get("/transcriptions/u2")
    assert r.status_code == 403


def test_session_user_cannot_upload_as_someone_else(app, gateway):
    client = TestClient(app, cookies={SESSION_COOKIE_NAME: session_cookie({"user": {"id": "sess-1"}})})
    r = _upload(client, user_id="u2")
    assert r.status_code == 400
    assert r.json() == {"error": "Not signed in"}
    assert gateway.calls == []


def test_auth_me_and_logout(app):
    client = TestClient(app, cookies={SESSION_COOKIE_NAME: session_cookie({"user": {"id": "sess-1"}})})
    assert client.get("/auth/me").json() == {"user": {"id": "sess-1"}}

    r = client.post("/auth/logout")
    assert r.json() == {"ok": True}
    # session cookie is expired on the way out
    assert r.headers["set-cookie"].startswith(f"{SESSION_COOKIE_NAME}=null")


def test_claimed_owner_ignored_when_untrusted(app, gateway, monkeypatch):
    monkeypatch.setattr("talk2text.core.settings.TRUST_CLIENT_USER_ID", False)
    client = TestClient(app)
    assert _upload(client).status_code == 400
    assert client.get("/transcriptions/u1").status_code == 400
    assert gateway.calls == []


def test_rejections_do_not_need_the_database(app, gateway):
    @asynccontextmanager
    async def _unreachable():
        raise ConnectionRefusedError("database is down")
        yield

    async def _unreachable_db():
        raise ConnectionRefusedError("database is down")
        yield

    app.dependency_overrides[get_session_scope] = lambda: _unreachable
    app.dependency_overrides[get_db] = _unreachable_db
    client = TestClient(app)

    r = _upload(client, b"plain text", filename="notes.txt", content_type="text/plain")
    assert r.status_code == 400
    assert r.json() == {"error": "Invalid file type"}

    r = _upload(client, user_id=None)
    assert r.status_code == 400
    assert r.json() == {"error": "Not signed in"}

    # a valid upload only fails once it gets to saving
    r = _upload(client)
    assert r.status_code == 500
    assert r.json() == {"error": "Failed to save transcription"}
    assert len(gateway.calls) == 1


def test_revoked_credentials_are_json_500(app, http_sessionmaker):
    speech_client = MagicMock()
    speech_client.recognize.side_effect = RefreshError("invalid_grant")
    app.dependency_overrides[get_gateway] = lambda: GoogleSTT(
        speech_client, timeout_s=5, enable_punctuation=False, model=""
    )

    r = _upload(TestClient(app))
    assert r.status_code == 500
    assert r.json() == {"error": "Speech-to-Text failed"}
    assert _count_rows(http_sessionmaker) == 0
