# talk2text/core/settings.py

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

BACKEND_ROOT = Path(__file__).resolve().parents[2]  # .../backend

# backend/.env (works no matter where uvicorn is launched from)
load_dotenv(BACKEND_ROOT / ".env")


def _norm_path(p: str) -> str:
    p = (p or "").strip()
    if not p:
        return ""
    p = os.path.expandvars(os.path.expanduser(p))
    pp = Path(p)
    if not pp.is_absolute():
        pp = (BACKEND_ROOT / pp).resolve()
    return str(pp)


def _env_bool(name: str, default: bool = False) -> bool:
    v = os.getenv(name, "")
    if v is None or str(v).strip() == "":
        return bool(default)
    return str(v).strip().lower() in ("1", "true", "yes", "y", "on")


def _env_int(name: str, default: int) -> int:
    try:
        return int(str(os.getenv(name, str(default))).strip())
    except ValueError:
        return int(default)


def _env_float(name: str, default: float) -> float:
    try:
        return float(str(os.getenv(name, str(default))).strip())
    except ValueError:
        return float(default)


# -----------------------------
# App
# -----------------------------
PORT = _env_int("PORT", 5000)
LOG_LEVEL = (os.getenv("LOG_LEVEL", "INFO") or "INFO").strip().upper()

# -----------------------------
# CORS
# -----------------------------
ALLOWED_ORIGINS = os.getenv(
    "ALLOWED_ORIGINS",
    "http://localhost:5173,https://talk2text-mern.vercel.app",
).strip()
ALLOWED_ORIGIN_REGEX = (os.getenv("ALLOWED_ORIGIN_REGEX", "") or "").strip() or None
# Optional override (useful when you KNOW you don't want cookies)
CORS_ALLOW_CREDENTIALS: Optional[bool]
_raw_cac = (os.getenv("CORS_ALLOW_CREDENTIALS", "") or "").strip()
if _raw_cac == "":
    CORS_ALLOW_CREDENTIALS = None
else:
    CORS_ALLOW_CREDENTIALS = _env_bool("CORS_ALLOW_CREDENTIALS", True)

# -----------------------------
# Google Cloud Speech-to-Text (service account JSON path)
# -----------------------------
GOOGLE_APPLICATION_CREDENTIALS = _norm_path(os.getenv("GOOGLE_APPLICATION_CREDENTIALS", ""))

# (Optional) Separate creds for STT. If empty, we fallback to GOOGLE_APPLICATION_CREDENTIALS.
GOOGLE_STT_CREDENTIALS = _norm_path(os.getenv("GOOGLE_STT_CREDENTIALS", ""))

# Recognition config used when the upload carries no encoding metadata (MP3)
STT_ENCODING = (os.getenv("STT_ENCODING", "MP3") or "MP3").strip().upper()
STT_SAMPLE_RATE_HZ = _env_int("STT_SAMPLE_RATE_HZ", 16000)
STT_LANGUAGE_CODE = (os.getenv("STT_LANGUAGE_CODE", "en-US") or "en-US").strip()
STT_ENABLE_PUNCTUATION = _env_bool("STT_ENABLE_PUNCTUATION", False)
STT_MODEL = (os.getenv("STT_MODEL", "") or "").strip()

# Upper bound on a single recognize call; 0 disables it
TRANSCRIBE_TIMEOUT_SECONDS = _env_float("TRANSCRIBE_TIMEOUT_SECONDS", 60.0)

# Max bytes accepted by POST /transcribe (0 = unlimited)
MAX_AUDIO_BYTES = _env_int("MAX_AUDIO_BYTES", 10 * 1024 * 1024)

# -----------------------------
# Pipeline policy
# -----------------------------
# Trust the user_id form/path field when no session user is present
TRUST_CLIENT_USER_ID = _env_bool("TRUST_CLIENT_USER_ID", True)
# "No speech detected" is reported as an error instead of an empty success
EMPTY_IS_ERROR = _env_bool("EMPTY_IS_ERROR", True)
# Hand the recognized text back even when saving it failed
RETURN_TEXT_ON_PERSIST_FAILURE = _env_bool("RETURN_TEXT_ON_PERSIST_FAILURE", False)

# -----------------------------
# Sessions (cookie issued by the identity provider)
# -----------------------------
SESSION_SECRET = (os.getenv("SESSION_SECRET", os.getenv("SESSION_KEY", "")) or "").strip()
SESSION_COOKIE_NAME = (os.getenv("SESSION_COOKIE_NAME", "t2t_session") or "t2t_session").strip()
SESSION_MAX_AGE_SECONDS = _env_int("SESSION_MAX_AGE_SECONDS", 60 * 60 * 24 * 7)  # 7 days
SESSION_COOKIE_SECURE = _env_bool("SESSION_COOKIE_SECURE", False)

# default: "none" when secure (typical prod cross-site), else "lax" for local dev
SESSION_COOKIE_SAMESITE = (os.getenv("SESSION_COOKIE_SAMESITE", "") or "").strip().lower()
if SESSION_COOKIE_SAMESITE not in ("lax", "strict", "none"):
    SESSION_COOKIE_SAMESITE = "none" if SESSION_COOKIE_SECURE else "lax"
