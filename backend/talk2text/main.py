# talk2text/main.py

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.sessions import SessionMiddleware

from talk2text.core.settings import (
    ALLOWED_ORIGINS,
    ALLOWED_ORIGIN_REGEX,
    CORS_ALLOW_CREDENTIALS,
    LOG_LEVEL,
    PORT,
    SESSION_SECRET,
    SESSION_COOKIE_NAME,
    SESSION_MAX_AGE_SECONDS,
    SESSION_COOKIE_SECURE,
    SESSION_COOKIE_SAMESITE,
)
from talk2text.routes.auth import router as auth_router
from talk2text.routes.health import router as health_router
from talk2text.routes.history import router as history_router
from talk2text.routes.transcribe import router as transcribe_router


def _cors_kwargs(raw: str) -> dict:
    raw = (raw or "*").strip()

    kwargs = dict(
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    origins = [o.strip() for o in raw.split(",") if o.strip()]
    if not origins or "*" in origins:
        kwargs.update(allow_origins=["*"], allow_credentials=False)
        return kwargs

    allow_credentials = True if CORS_ALLOW_CREDENTIALS is None else bool(CORS_ALLOW_CREDENTIALS)
    kwargs.update(allow_origins=origins, allow_credentials=allow_credentials)
    if ALLOWED_ORIGIN_REGEX:
        kwargs["allow_origin_regex"] = ALLOWED_ORIGIN_REGEX
    return kwargs


def create_app(*, session_secret: str = SESSION_SECRET) -> FastAPI:
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(title="Talk2Text API")

    # sessions are issued by the identity provider; we only read them
    if session_secret:
        app.add_middleware(
            SessionMiddleware,
            secret_key=session_secret,
            session_cookie=SESSION_COOKIE_NAME,
            max_age=SESSION_MAX_AGE_SECONDS,
            same_site=SESSION_COOKIE_SAMESITE,
            https_only=SESSION_COOKIE_SECURE,
        )

    app.add_middleware(CORSMiddleware, **_cors_kwargs(ALLOWED_ORIGINS))

    app.include_router(health_router)
    app.include_router(transcribe_router)
    app.include_router(history_router)
    app.include_router(auth_router)
    return app


app = create_app()


def run() -> None:
    import uvicorn

    uvicorn.run("talk2text.main:app", host="0.0.0.0", port=PORT)
